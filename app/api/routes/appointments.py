from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_account, get_session
from app.models.account import Account
from app.models.appointment import Appointment, AppointmentPublic, AppointmentStatus
from app.services.appointment_service import (
    AppointmentTransitionError,
    list_appointments_for_account,
    transition_appointment,
)

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _to_public(a: Appointment) -> AppointmentPublic:
    return AppointmentPublic.model_validate(a, from_attributes=True)


@router.get("", response_model=list[AppointmentPublic])
async def list_my_appointments(
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    session: AsyncSession = Depends(get_session),
    current_account: Account = Depends(get_current_account),
) -> list[AppointmentPublic]:
    appointments = await list_appointments_for_account(session, current_account.id, status=status_filter)
    return [_to_public(a) for a in appointments]


async def _transition(
    session: AsyncSession, appointment_id: int, account_id: int, new_status: AppointmentStatus
) -> AppointmentPublic:
    try:
        appointment = await transition_appointment(session, appointment_id, account_id, new_status)
    except AppointmentTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    if not appointment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Appointment not found or not yours",
        )
    return _to_public(appointment)


@router.post("/{appointment_id}/cancel", response_model=AppointmentPublic)
async def cancel_my_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    current_account: Account = Depends(get_current_account),
) -> AppointmentPublic:
    return await _transition(session, appointment_id, current_account.id, AppointmentStatus.CANCELLED)


@router.post("/{appointment_id}/complete", response_model=AppointmentPublic)
async def complete_my_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    current_account: Account = Depends(get_current_account),
) -> AppointmentPublic:
    return await _transition(session, appointment_id, current_account.id, AppointmentStatus.COMPLETED)
