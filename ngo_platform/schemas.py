# ==============================================================================
# schemas.py - Pydantic request bodies
# ==============================================================================

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# --- Identity ---

class RegisterRequest(BaseModel):
    email: str
    password: str = Field(min_length=6)
    name: str
    organization_name: str
    organization_slug: str = Field(pattern=r"^[a-z0-9][a-z0-9-]*$")


class SwitchOrganizationRequest(BaseModel):
    organization_id: int


# --- Courses ---

CourseType = Literal["online", "in_person", "hybrid"]
CourseRoleName = Literal["student", "instructor", "assistant", "observer"]


class CourseCreate(BaseModel):
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    course_type: CourseType = "online"
    pass_score: int = Field(default=70, ge=0, le=100)
    certificate_enabled: bool = True
    duration_hours: Optional[int] = None
    status: str = "draft"


class ModuleCreate(BaseModel):
    title: str
    description: Optional[str] = None
    order_index: Optional[int] = None
    content: Optional[Dict[str, Any]] = None
    duration: Optional[int] = None
    is_required: bool = True


class CourseRoleAssign(BaseModel):
    user_id: int
    role: CourseRoleName
    notes: Optional[str] = None


class FormSubmissionRequest(BaseModel):
    responses: Any = None


class GradeCreate(BaseModel):
    user_id: int
    grade_scale: float
    feedback: Optional[str] = None
    grade_type: Literal["course", "final"] = "course"
    passed: Optional[bool] = None


# --- Domain records ---

class ProjectCreate(BaseModel):
    name: str
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget: Optional[Decimal] = None
    status: Literal["planning", "active", "paused", "completed", "cancelled"] = "planning"
    manager_id: Optional[int] = None


class DonorCreate(BaseModel):
    type: Literal["individual", "corporate"]
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    document: Optional[str] = None
    communication_consent: bool = False
    status: Literal["active", "inactive", "opted_out"] = "active"


class DonationCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    donor_id: Optional[int] = None
    project_id: Optional[int] = None
    currency: str = "BRL"
    payment_method: Optional[Literal["pix", "credit_card", "bank_transfer", "cash"]] = None
    payment_status: Optional[Literal["pending", "completed", "failed", "refunded"]] = None
    is_recurring: bool = False


class BeneficiaryCreate(BaseModel):
    registration_number: str
    name: str
    email: Optional[str] = None
    birth_date: Optional[date] = None
    document: Optional[str] = None
    needs: Optional[str] = None
    status: Literal["active", "inactive", "completed"] = "active"


class VolunteerCreate(BaseModel):
    volunteer_number: str
    name: str
    email: Optional[str] = None
    skills: Optional[List[str]] = None
    status: Literal["pending", "active", "inactive", "suspended"] = "pending"


class FunderCreate(BaseModel):
    name: str
    type: Optional[Literal["government", "foundation", "corporate", "international"]] = None
    contact_person: Optional[str] = None
    email: Optional[str] = None
    relationship_status: Optional[Literal["prospect", "active", "inactive", "lost"]] = None
    next_report_due: Optional[date] = None


class AccountReceivableCreate(BaseModel):
    description: str
    amount: Decimal = Field(gt=0)
    due_date: date
    donor_id: Optional[int] = None
    project_id: Optional[int] = None
    status: Literal["pending", "overdue", "received", "cancelled"] = "pending"
    invoice_number: Optional[str] = None


class AccountPayableCreate(BaseModel):
    supplier_name: str
    description: str
    amount: Decimal = Field(gt=0)
    due_date: date
    project_id: Optional[int] = None
    status: Literal["pending", "approved", "paid", "overdue", "cancelled"] = "pending"
    category: Optional[Literal["administrative", "project", "operational"]] = None
    paid_date: Optional[date] = None
