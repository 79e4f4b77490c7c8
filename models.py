from pydantic import BaseModel
from typing import Optional, Literal
from datetime import date, datetime

Status = Literal["pending", "approved", "rejected", "cancelled", "returned"]
Role = Literal["staff", "admin"]

class EquipmentIn(BaseModel):
    name: str
    code: str = ""
    unit: str = ""
    available_quantity: int = 0
    is_active: bool = True

class EquipmentUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    unit: Optional[str] = None
    is_active: Optional[bool] = None

class Equipment(BaseModel):
    id: str
    name: str
    code: str
    unit: str
    available_quantity: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

class LineItemIn(BaseModel):
    equipment_id: str
    quantity: int

class LoanRequestIn(BaseModel):
    items: list[LineItemIn] = []
    reason: Optional[str] = None
    expected_return_date: Optional[date] = None

    academic_year_code: str = ""
    request_date: str = ""
    department_code: str = ""

class LineItem(BaseModel):
    equipment_id: str
    equipment_name: str
    code: str = ""
    unit: str = ""
    quantity: int

class LoanRequest(BaseModel):
    id: str
    created_by_uid: str
    created_by_email: str = ""
    status: Status = "pending"
    items: list[LineItem] = []
    reason: str = ""
    expected_return_date: Optional[date] = None
    created_at: datetime

    approved_by_uid: Optional[str] = None
    approved_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None

    academic_year_code: str = ""
    request_date: str = ""
    department_code: str = ""

class RequestsMeta(BaseModel):
    total: int
    limit: int
    offset: int
    total_pages: int

class Caller(BaseModel):
    uid: str
    email: str = ""
    role: Role = "staff"

class AdminCredential(BaseModel):
    """Proof that the caller was verified as an admin by the HTTP layer."""
    uid: str
