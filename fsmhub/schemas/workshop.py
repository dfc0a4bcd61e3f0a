import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Dict
from enum import Enum

from pydantic import BaseModel, Field, field_validator


# Enums
class EquipmentRepairStatus(str, Enum):
    pending_intake = "pending_intake"
    in_transit = "in_transit"
    received = "received"
    in_repair = "in_repair"
    repair_completed = "repair_completed"
    ready_for_pickup = "ready_for_pickup"
    out_for_delivery = "out_for_delivery"
    returned = "returned"


class JobStatus(str, Enum):
    pending = "pending"
    assigned = "assigned"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"
    on_hold = "on_hold"


class JobPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class LocationType(str, Enum):
    on_site = "on_site"
    workshop = "workshop"


class QueueSortBy(str, Enum):
    priority = "priority"
    intake_date = "intake_date"
    estimated_completion = "estimated_completion"


# Nested summaries
class UserSummary(BaseModel):
    id: uuid.UUID
    full_name: str
    email: Optional[str] = None

    class Config:
        from_attributes = True


class TechnicianSummary(BaseModel):
    id: uuid.UUID
    employee_id: Optional[str] = None
    is_available: bool = True
    user: Optional[UserSummary] = None

    class Config:
        from_attributes = True


class CustomerSummary(BaseModel):
    id: uuid.UUID
    name: str
    company_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    class Config:
        from_attributes = True


class EquipmentTypeSummary(BaseModel):
    id: uuid.UUID
    name: str
    brand: Optional[str] = None
    model: Optional[str] = None

    class Config:
        from_attributes = True


class EquipmentSummary(BaseModel):
    id: uuid.UUID
    serial_number: Optional[str] = None
    equipment_type: Optional[EquipmentTypeSummary] = None

    class Config:
        from_attributes = True


# Equipment status
class EquipmentStatusResponse(BaseModel):
    id: uuid.UUID
    job_id: uuid.UUID
    current_status: EquipmentRepairStatus
    pending_intake_at: Optional[datetime] = None
    in_transit_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    in_repair_at: Optional[datetime] = None
    repair_completed_at: Optional[datetime] = None
    ready_for_pickup_at: Optional[datetime] = None
    out_for_delivery_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StatusHistoryEntry(BaseModel):
    id: uuid.UUID
    equipment_status_id: uuid.UUID
    job_id: uuid.UUID
    from_status: Optional[EquipmentRepairStatus] = None
    to_status: EquipmentRepairStatus
    changed_by: Optional[uuid.UUID] = None
    changed_at: datetime
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class StatusTransitionRequest(BaseModel):
    status: EquipmentRepairStatus
    notes: Optional[str] = None


# Intake
class IntakeBase(BaseModel):
    reported_issue: str
    visual_condition: Optional[str] = None
    physical_damage_notes: Optional[str] = None
    accessories_included: Optional[List[str]] = None
    photos: Optional[List[str]] = None
    customer_signature: Optional[str] = None
    customer_notes: Optional[str] = None
    internal_notes: Optional[str] = None
    estimated_repair_time: Optional[int] = None  # hours


class IntakeCreate(IntakeBase):
    job_id: uuid.UUID
    intake_date: Optional[datetime] = None


class IntakeNotesUpdate(BaseModel):
    visual_condition: Optional[str] = None
    physical_damage_notes: Optional[str] = None
    accessories_included: Optional[List[str]] = None
    customer_notes: Optional[str] = None
    internal_notes: Optional[str] = None


class IntakeResponse(IntakeBase):
    id: uuid.UUID
    job_id: uuid.UUID
    intake_date: datetime
    received_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Jobs
class WorkshopJobResponse(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    job_number: str
    title: str
    description: Optional[str] = None
    priority: JobPriority
    status: JobStatus
    location_type: LocationType
    customer_id: uuid.UUID
    technician_id: Optional[uuid.UUID] = None
    equipment_id: Optional[uuid.UUID] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_completion_date: Optional[datetime] = None
    total_cost: Optional[Decimal] = None
    pickup_delivery_fee: Optional[Decimal] = None
    delivery_scheduled_date: Optional[datetime] = None
    delivery_technician_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    customer: Optional[CustomerSummary] = None
    technician: Optional[TechnicianSummary] = None
    equipment: Optional[EquipmentSummary] = None
    equipment_status: Optional[EquipmentStatusResponse] = None
    intake: Optional[IntakeResponse] = None

    class Config:
        from_attributes = True


class WorkshopJobListResponse(BaseModel):
    items: List[WorkshopJobResponse]
    total: int
    page: int
    limit: int
    total_pages: int


# Queue
class QueueItemResponse(BaseModel):
    job: WorkshopJobResponse
    priority_score: int
    days_waiting: int
    is_overdue: bool

    class Config:
        from_attributes = True


class QueueCapacityHeadline(BaseModel):
    utilization: float
    current_jobs: int
    max_jobs: int


class QueueResponse(BaseModel):
    items: List[QueueItemResponse]
    total: int
    page: int
    limit: int
    total_pages: int
    capacity: QueueCapacityHeadline


# Claim
class ClaimRequest(BaseModel):
    technician_id: uuid.UUID


class ClaimResponse(BaseModel):
    job: WorkshopJobResponse
    message: str = "Job claimed successfully"


# Capacity
class CapacityCheckResponse(BaseModel):
    valid: bool
    current_count: int
    max_capacity: Optional[int] = None
    message: Optional[str] = None

    class Config:
        from_attributes = True


class WorkshopCapacity(BaseModel):
    max_concurrent_jobs: int
    current_active_jobs: int
    utilization_percentage: float
    available_capacity: int
    warning: bool = False

    class Config:
        from_attributes = True


class TechnicianUtilization(BaseModel):
    technician_id: uuid.UUID
    technician_name: str
    active_jobs: int
    max_jobs: int
    utilization_percentage: float
    available_capacity: int
    warning: bool = False

    class Config:
        from_attributes = True


class CapacitySnapshotResponse(BaseModel):
    workshop: WorkshopCapacity
    technicians: List[TechnicianUtilization]

    class Config:
        from_attributes = True


# Return logistics
class ReadyForPickupRequest(BaseModel):
    notify_customer: bool = True
    notes: Optional[str] = None


class ScheduleDeliveryRequest(BaseModel):
    delivery_date: datetime
    delivery_technician_id: uuid.UUID
    delivery_fee: Optional[Decimal] = None

    @field_validator("delivery_fee")
    @classmethod
    def _fee_not_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("delivery_fee must be >= 0")
        return v


class MarkReturnedRequest(BaseModel):
    customer_signature: str
    return_notes: Optional[str] = None


# Invoicing
class InvoiceReadinessResponse(BaseModel):
    job_id: uuid.UUID
    ready: bool
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class JobTotalResponse(BaseModel):
    job_id: uuid.UUID
    total: Decimal


class InvoiceReadyJob(BaseModel):
    id: uuid.UUID
    job_number: str
    title: str
    location_type: LocationType
    completed_at: Optional[datetime] = None
    total_cost: Optional[Decimal] = None
    customer: Optional[CustomerSummary] = None

    class Config:
        from_attributes = True


class InvoiceReadyListResponse(BaseModel):
    items: List[InvoiceReadyJob]
    total: int
    page: int
    limit: int
    total_pages: int


# Metrics
class TechnicianLoad(BaseModel):
    technician_id: uuid.UUID
    technician_name: str
    active_jobs: int

    class Config:
        from_attributes = True


class WorkshopMetricsResponse(BaseModel):
    total_jobs: int
    jobs_by_status: Dict[str, int] = Field(default_factory=dict)
    average_repair_time_hours: float
    on_time_completion_rate: float
    current_capacity_utilization: float
    jobs_per_technician: List[TechnicianLoad] = Field(default_factory=list)

    class Config:
        from_attributes = True
