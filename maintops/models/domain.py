"""Domain models - counters, asset registry and work orders."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Enum as SQLEnum, Text
from sqlalchemy.orm import relationship

from maintops.database import Base
from maintops.models.enums import WorkOrderStatus, WorkOrderType, Priority


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class Counter(Base):
    """
    A named, monotonically increasing sequence.

    Invariants:
    - key is unique
    - value only ever increases, and only through the sequence allocator
    """
    __tablename__ = "counters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String, nullable=False, unique=True, index=True)
    value = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class AssetType(Base):
    """An asset category whose prefix names the counter its asset codes come from."""
    __tablename__ = "asset_types"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    prefix = Column(String(10), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    assets = relationship("Asset", back_populates="asset_type")


class Asset(Base):
    __tablename__ = "assets"

    id = Column(String(36), primary_key=True, default=new_id)
    code = Column(String, nullable=False, unique=True, index=True)  # PREFIX-000001
    name = Column(String, nullable=False)
    asset_type_id = Column(String(36), ForeignKey("asset_types.id"), nullable=False)
    site_id = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    created_by_id = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    asset_type = relationship("AssetType", back_populates="assets")
    work_orders = relationship("WorkOrder", back_populates="asset")


class WorkOrder(Base):
    """
    A work order moves through its lifecycle only via the lifecycle engine.

    Invariants:
    - number is unique (WO-YYYYMMDD-000001)
    - closed_at is set if and only if status is ApprovedClosed
    - completed_at is set once Completed is first reached and never cleared
    - version guards concurrent transitions against lost updates
    """
    __tablename__ = "work_orders"

    id = Column(String(36), primary_key=True, default=new_id)
    number = Column(String, nullable=False, unique=True, index=True)
    site_id = Column(String, nullable=False, index=True)
    asset_id = Column(String(36), ForeignKey("assets.id"), nullable=False)
    type = Column(SQLEnum(WorkOrderType), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(SQLEnum(Priority), nullable=False, default=Priority.MEDIUM)
    status = Column(SQLEnum(WorkOrderStatus), nullable=False, default=WorkOrderStatus.OPEN)

    assigned_to_id = Column(String, nullable=True)
    created_by_id = Column(String, nullable=False)
    approved_by_id = Column(String, nullable=True)

    completed_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    asset = relationship("Asset", back_populates="work_orders")
    notes = relationship(
        "WorkOrderNote",
        back_populates="work_order",
        order_by="WorkOrderNote.created_at.desc()",
    )


class WorkOrderNote(Base):
    """Append-only note. Never edited once written."""
    __tablename__ = "work_order_notes"

    id = Column(String(36), primary_key=True, default=new_id)
    work_order_id = Column(String(36), ForeignKey("work_orders.id"), nullable=False, index=True)
    note = Column(Text, nullable=False)
    created_by_id = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    work_order = relationship("WorkOrder", back_populates="notes")
