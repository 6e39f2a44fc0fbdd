"""
Check-in API endpoints.

Scanner stations check registrants in and out; admins inspect and repair
the per-course ticket counters of queue activities.
"""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, model_validator

from checkin.auth.dependencies import verify_admin_access
from checkin.dependencies import get_check_in_service, get_queue_allocator
from checkin.services.check_in import CheckInResult, CheckInService
from checkin.services.queue_allocator import QueueAllocator

router = APIRouter()


# =============================================================================
# Schemas
# =============================================================================

class RegistrationResponse(BaseModel):
    id: uuid.UUID
    activity_id: uuid.UUID
    national_id: str
    full_name: str
    student_id: Optional[str] = None
    course: Optional[str] = None
    status: str
    queue_number: Optional[int] = None
    display_queue_number: Optional[str] = None
    seat_number: Optional[str] = None
    called_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScanRequest(BaseModel):
    """A QR scan (registration id) or a manual search (national id)."""
    registration_id: Optional[uuid.UUID] = None
    national_id: Optional[str] = None

    @model_validator(mode="after")
    def _one_identifier(self):
        if self.registration_id is None and not self.national_id:
            raise ValueError("registration_id or national_id is required")
        return self


class CheckInRequest(ScanRequest):
    seat_number: Optional[str] = None  # Required for seated activities unless already on file


class CheckInResponse(BaseModel):
    registration: RegistrationResponse
    queue_number: Optional[int] = None
    display_queue_number: Optional[str] = None
    reused_pre_assigned: bool = False
    seat_number: Optional[str] = None
    notified: bool


class AllocationResponse(BaseModel):
    queue_number: int
    display_queue_number: str
    reused: bool


class CounterResponse(BaseModel):
    course: str
    last_number: Optional[int] = None  # None = unknown, recovered on next allocation
    recovered_number: int
    next_display_queue_number: str


class CounterUpdate(BaseModel):
    course: str
    value: int = Field(ge=0)


def _check_in_response(result: CheckInResult) -> CheckInResponse:
    allocation = result.allocation
    return CheckInResponse(
        registration=RegistrationResponse.model_validate(result.registration),
        queue_number=allocation.queue_number if allocation else None,
        display_queue_number=allocation.display_queue_number if allocation else None,
        reused_pre_assigned=allocation.reused if allocation else False,
        seat_number=result.registration.seat_number,
        notified=result.notified,
    )


# =============================================================================
# Scanner Endpoints
# =============================================================================

@router.get("/{activity_id}/registrations/lookup", response_model=RegistrationResponse)
async def lookup_registration(
    activity_id: uuid.UUID,
    registration_id: Optional[uuid.UUID] = Query(None),
    national_id: Optional[str] = Query(None),
    service: CheckInService = Depends(get_check_in_service),
    _admin: None = Depends(verify_admin_access),
):
    """Find a registrant before checking them in."""
    return await service.lookup(activity_id, registration_id, national_id)


@router.post("/{activity_id}/check-in", response_model=CheckInResponse)
async def check_in(
    activity_id: uuid.UUID,
    data: CheckInRequest,
    service: CheckInService = Depends(get_check_in_service),
    _admin: None = Depends(verify_admin_access),
):
    """
    Check a registrant in.

    Queue activities issue the next ticket of the registrant's course
    (or honour a pre-assigned one); seated activities record the seat.
    """
    result = await service.check_in(
        activity_id,
        registration_id=data.registration_id,
        national_id=data.national_id,
        seat_number=data.seat_number,
    )
    return _check_in_response(result)


@router.post("/{activity_id}/check-out", response_model=CheckInResponse)
async def check_out(
    activity_id: uuid.UUID,
    data: ScanRequest,
    service: CheckInService = Depends(get_check_in_service),
    _admin: None = Depends(verify_admin_access),
):
    result = await service.check_out(
        activity_id,
        registration_id=data.registration_id,
        national_id=data.national_id,
    )
    return _check_in_response(result)


@router.post(
    "/{activity_id}/registrations/{registration_id}/allocate",
    response_model=AllocationResponse,
)
async def allocate_ticket(
    activity_id: uuid.UUID,
    registration_id: uuid.UUID,
    allocator: QueueAllocator = Depends(get_queue_allocator),
    _admin: None = Depends(verify_admin_access),
):
    """Issue a queue ticket to one registration without the check-in side effects."""
    result = await allocator.allocate(activity_id, registration_id)
    return AllocationResponse(**result.to_dict())


# =============================================================================
# Counter Admin Endpoints
# =============================================================================

@router.get("/{activity_id}/counters", response_model=list[CounterResponse])
async def list_counters(
    activity_id: uuid.UUID,
    allocator: QueueAllocator = Depends(get_queue_allocator),
    _admin: None = Depends(verify_admin_access),
):
    overview = await allocator.counter_overview(activity_id)
    return [CounterResponse(**vars(item)) for item in overview]


@router.put("/{activity_id}/counters", response_model=list[CounterResponse])
async def update_counter(
    activity_id: uuid.UUID,
    data: CounterUpdate,
    allocator: QueueAllocator = Depends(get_queue_allocator),
    _admin: None = Depends(verify_admin_access),
):
    """Set a course counter by hand; the next ticket will be `value + 1`."""
    await allocator.set_counter(activity_id, data.course, data.value)
    overview = await allocator.counter_overview(activity_id)
    return [CounterResponse(**vars(item)) for item in overview]


@router.post("/{activity_id}/counters/repair", response_model=dict[str, int])
async def repair_counters(
    activity_id: uuid.UUID,
    allocator: QueueAllocator = Depends(get_queue_allocator),
    _admin: None = Depends(verify_admin_access),
):
    """
    Resume from missing numbers: every counter is set so the next ticket
    fills the first gap of its course.
    """
    return await allocator.reset_all_counters(activity_id)
