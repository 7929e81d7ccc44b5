"""Enums for the maintenance core - these define the valid values for roles, statuses and actions."""
from enum import Enum


class Role(str, Enum):
    """The closed set of roles an identity can hold. No other roles exist."""
    VIEWER = "Viewer"
    FITTER = "Fitter"
    SUPERVISOR = "Supervisor"
    MANAGER = "Manager"
    ADMIN = "Admin"


class WorkOrderStatus(str, Enum):
    """The eight states a WorkOrder can be in."""
    OPEN = "Open"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "InProgress"
    WAITING_PARTS = "WaitingParts"
    WAITING_VENDOR = "WaitingVendor"
    COMPLETED = "Completed"
    APPROVED_CLOSED = "ApprovedClosed"
    CANCELLED = "Cancelled"


TERMINAL_STATUSES = frozenset({WorkOrderStatus.APPROVED_CLOSED, WorkOrderStatus.CANCELLED})


class WorkOrderType(str, Enum):
    PPM = "PPM"
    INSPECTION = "Inspection"
    BREAKDOWN = "Breakdown"
    DEFECT = "Defect"
    CALIBRATION = "Calibration"
    FIRE_SUPPRESSION = "FireSuppression"
    LOLER = "LOLER"
    PUWER = "PUWER"
    CORRECTIVE = "Corrective"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class AuditAction(str, Enum):
    """Actions recorded on audit events."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPROVE = "APPROVE"
    CLOSE = "CLOSE"
    ASSIGN = "ASSIGN"
    STATUS_CHANGE = "STATUS_CHANGE"
