"""
Seat assignment API endpoints.
"""

import uuid
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from checkin.auth.dependencies import verify_admin_access
from checkin.dependencies import get_seat_assignment_service
from checkin.services.seat_assignment import SeatAssignmentService

router = APIRouter()


class AssignRequest(BaseModel):
    sort_key: Literal["import_order", "full_name", "student_id", "national_id", "course"] = "import_order"
    descending: bool = False


class SeatAssignment(BaseModel):
    registration_id: uuid.UUID
    seat_number: str


class AssignResponse(BaseModel):
    seating_revision: int
    assigned: int
    unassigned: list[uuid.UUID]
    assignments: list[SeatAssignment]


@router.post("/activities/{activity_id}/assign", response_model=AssignResponse)
async def assign_seats(
    activity_id: uuid.UUID,
    data: AssignRequest,
    service: SeatAssignmentService = Depends(get_seat_assignment_service),
    _admin: None = Depends(verify_admin_access),
):
    """
    Reassign every registrant's seat in the given order.

    Overwrites existing seats; the client confirms with the operator first.
    """
    result = await service.assign_seats(activity_id, data.sort_key, data.descending)
    return AssignResponse(
        seating_revision=result.seating_revision,
        assigned=result.assigned_count,
        unassigned=result.unassigned,
        assignments=[
            SeatAssignment(registration_id=registration_id, seat_number=seat)
            for registration_id, seat in result.assignments
        ],
    )


@router.get("/activities/{activity_id}/chart")
async def seating_chart(
    activity_id: uuid.UUID,
    service: SeatAssignmentService = Depends(get_seat_assignment_service),
):
    return await service.seating_chart(activity_id)
