"""API routes - a thin adapter from HTTP to the lifecycle engine and asset registry."""
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from maintops.api.auth import get_identity
from maintops.api.schemas import (
    AssetCreate,
    AssetResponse,
    AssetTypeCreate,
    AssetTypeResponse,
    ErrorResponse,
    NoteCreate,
    NoteResponse,
    Pagination,
    WorkOrderAssign,
    WorkOrderCreate,
    WorkOrderDetail,
    WorkOrderPage,
    WorkOrderResponse,
    WorkOrderStatusUpdate,
)
from maintops.database import get_db
from maintops.models.audit import DatabaseAuditSink
from maintops.models.enums import WorkOrderStatus, WorkOrderType
from maintops.services.assets import AssetRegistry
from maintops.services.lifecycle import WorkOrderLifecycle
from maintops.services.policy import Identity

router = APIRouter()

ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "No valid identity"},
    403: {"model": ErrorResponse, "description": "Identity may not perform this action"},
    404: {"model": ErrorResponse, "description": "Referenced entity not found"},
    409: {"model": ErrorResponse, "description": "Illegal transition or persistent write conflict"},
}


def get_lifecycle(db: Session = Depends(get_db)) -> WorkOrderLifecycle:
    return WorkOrderLifecycle(db, audit_sink=DatabaseAuditSink(db))


def get_registry(db: Session = Depends(get_db)) -> AssetRegistry:
    return AssetRegistry(db, audit_sink=DatabaseAuditSink(db))


# Asset endpoints
@router.post("/asset-types", response_model=AssetTypeResponse, status_code=status.HTTP_201_CREATED,
             responses=ERROR_RESPONSES)
def create_asset_type(
    data: AssetTypeCreate,
    identity: Identity = Depends(get_identity),
    registry: AssetRegistry = Depends(get_registry),
):
    """Create an asset type and provision its code counter (Admin only)."""
    return registry.create_asset_type(identity, name=data.name, prefix=data.prefix)


@router.post("/assets", response_model=AssetResponse, status_code=status.HTTP_201_CREATED,
             responses=ERROR_RESPONSES)
def create_asset(
    data: AssetCreate,
    identity: Identity = Depends(get_identity),
    registry: AssetRegistry = Depends(get_registry),
):
    """Create an asset with the next code for its type."""
    return registry.create_asset(
        identity,
        asset_type_id=data.asset_type_id,
        site_id=data.site_id,
        name=data.name,
        description=data.description,
    )


# WorkOrder endpoints
@router.get("/work-orders", response_model=WorkOrderPage, responses=ERROR_RESPONSES)
def list_work_orders(
    site_id: Optional[str] = None,
    status_filter: Optional[WorkOrderStatus] = Query(None, alias="status"),
    type_filter: Optional[WorkOrderType] = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_identity),
    lifecycle: WorkOrderLifecycle = Depends(get_lifecycle),
):
    """List work orders visible to the caller."""
    items, total = lifecycle.list_work_orders(
        identity, site_id=site_id, status=status_filter, type=type_filter, page=page, limit=limit
    )
    return WorkOrderPage(
        data=[WorkOrderResponse.model_validate(item) for item in items],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
    )


@router.get("/work-orders/{work_order_id}", response_model=WorkOrderDetail, responses=ERROR_RESPONSES)
def get_work_order(
    work_order_id: str,
    identity: Identity = Depends(get_identity),
    lifecycle: WorkOrderLifecycle = Depends(get_lifecycle),
):
    """Get a work order with its notes, newest first."""
    return lifecycle.get_work_order(identity, work_order_id)


@router.post("/work-orders", response_model=WorkOrderResponse, status_code=status.HTTP_201_CREATED,
             responses=ERROR_RESPONSES)
def create_work_order(
    data: WorkOrderCreate,
    identity: Identity = Depends(get_identity),
    lifecycle: WorkOrderLifecycle = Depends(get_lifecycle),
):
    """Create a new work order in Open status."""
    return lifecycle.create_work_order(
        identity,
        site_id=data.site_id,
        asset_id=data.asset_id,
        type=data.type,
        title=data.title,
        description=data.description,
        priority=data.priority,
    )


@router.patch("/work-orders/{work_order_id}/status", response_model=WorkOrderResponse,
              responses=ERROR_RESPONSES)
def update_work_order_status(
    work_order_id: str,
    data: WorkOrderStatusUpdate,
    identity: Identity = Depends(get_identity),
    lifecycle: WorkOrderLifecycle = Depends(get_lifecycle),
):
    """
    Change a work order's status.
    Completed needs create rights, ApprovedClosed needs approve rights.
    """
    return lifecycle.transition_status(identity, work_order_id, data.status, note=data.notes)


@router.post("/work-orders/{work_order_id}/assign", response_model=WorkOrderResponse,
             responses=ERROR_RESPONSES)
def assign_work_order(
    work_order_id: str,
    data: WorkOrderAssign,
    identity: Identity = Depends(get_identity),
    lifecycle: WorkOrderLifecycle = Depends(get_lifecycle),
):
    """Assign a work order (Supervisor and above)."""
    return lifecycle.assign(identity, work_order_id, data.assigned_to_id)


@router.post("/work-orders/{work_order_id}/notes", response_model=NoteResponse,
             status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
def add_work_order_note(
    work_order_id: str,
    data: NoteCreate,
    identity: Identity = Depends(get_identity),
    lifecycle: WorkOrderLifecycle = Depends(get_lifecycle),
):
    """Append a note. Does not change status."""
    return lifecycle.add_note(identity, work_order_id, data.note)
