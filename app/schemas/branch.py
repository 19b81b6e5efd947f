from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict
from app.models.branch import BranchRequestStatus
from app.services.branch_retirement import TransferStrategy


class BranchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    address: Optional[str] = None
    phone: Optional[str] = None


class BranchUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    address: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None


class BranchDelete(BaseModel):
    confirm_name: str
    transfer_to: Optional[str] = None


class DependentCountsResponse(BaseModel):
    users: int = 0
    sales: int = 0
    products: int = 0
    expenses: int = 0


class BranchResponse(BaseModel):
    id: str
    tenant_id: str
    name: str
    address: Optional[str]
    phone: Optional[str]
    is_main: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BranchDetail(BranchResponse):
    counts: DependentCountsResponse


class BranchRetirementResponse(BaseModel):
    branch_id: str
    branch_name: str
    tenant_id: str
    was_main: bool
    transferred_to: Optional[str]
    new_main_branch_id: Optional[str]
    transferred: Dict[str, int]
    strategy: TransferStrategy


class BranchRequestCreate(BaseModel):
    branch_name: str = Field(..., min_length=1, max_length=120)
    address: Optional[str] = None
    phone: Optional[str] = None
    reason: str


class BranchRequestReject(BaseModel):
    reason: str


class BranchRequestResponse(BaseModel):
    id: str
    tenant_id: str
    branch_name: str
    address: Optional[str]
    phone: Optional[str]
    reason: str
    status: BranchRequestStatus
    rejection_reason: Optional[str]
    requester_id: Optional[str]
    reviewer_id: Optional[str]
    reviewed_at: Optional[datetime]
    branch_id: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class BranchRequestListResponse(BaseModel):
    requests: List[BranchRequestResponse]
    total: int


class BranchStat(BaseModel):
    id: str
    name: str
    is_main: bool
    is_active: bool
    staff_count: int
    product_count: int
    revenue: float
    transactions: int
    voided_transactions: int


class BranchStatsResponse(BaseModel):
    selection: Optional[str]
    branches: List[BranchStat]
    totals: Dict[str, float]
    branch_count: int
