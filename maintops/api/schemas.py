"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from maintops.models.enums import Priority, WorkOrderStatus, WorkOrderType


# Asset schemas
class AssetTypeCreate(BaseModel):
    name: str = Field(..., min_length=1)
    prefix: str = Field(..., min_length=1, max_length=10, pattern=r"^[A-Z0-9]+$")


class AssetTypeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    prefix: str
    created_at: datetime


class AssetCreate(BaseModel):
    asset_type_id: str
    site_id: str
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class AssetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    name: str
    asset_type_id: str
    site_id: str
    description: Optional[str]
    created_by_id: str
    created_at: datetime


# WorkOrder schemas
class WorkOrderCreate(BaseModel):
    site_id: str
    asset_id: str
    type: WorkOrderType
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    priority: Priority = Priority.MEDIUM


class WorkOrderStatusUpdate(BaseModel):
    status: WorkOrderStatus
    notes: Optional[str] = None


class WorkOrderAssign(BaseModel):
    assigned_to_id: str = Field(..., min_length=1)


class NoteCreate(BaseModel):
    note: str = Field(..., min_length=1)


class NoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    work_order_id: str
    note: str
    created_by_id: str
    created_at: datetime


class WorkOrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    number: str
    site_id: str
    asset_id: str
    type: WorkOrderType
    title: str
    description: Optional[str]
    priority: Priority
    status: WorkOrderStatus
    assigned_to_id: Optional[str]
    created_by_id: str
    approved_by_id: Optional[str]
    completed_at: Optional[datetime]
    closed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class WorkOrderDetail(WorkOrderResponse):
    notes: List[NoteResponse] = []


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class WorkOrderPage(BaseModel):
    data: List[WorkOrderResponse]
    pagination: Pagination


# Error response
class ErrorResponse(BaseModel):
    """Response when an action is rejected."""
    error: str
