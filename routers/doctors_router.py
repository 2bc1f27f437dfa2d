from typing import List

from fastapi import APIRouter, Depends
from models import AppointmentReassign, AppointmentResponse
from auth import get_security_context
from authorization import SecurityContext
import services

router = APIRouter(prefix="/doctors", tags=["Doctors"])


@router.get("/appointments", response_model=List[AppointmentResponse])
def get_my_appointments(caller: SecurityContext = Depends(get_security_context)):
    """Appointments of the logged-in doctor"""
    return services.get_doctor_appointments(caller, caller.account_id)


@router.get("/{doctor_id}/appointments", response_model=List[AppointmentResponse])
def get_appointments_of_doctor(doctor_id: int, caller: SecurityContext = Depends(get_security_context)):
    """Appointments of a doctor (Administrator, or that doctor)"""
    return services.get_doctor_appointments(caller, doctor_id)


@router.put("/appointments/{appointment_id}/reassign", response_model=AppointmentResponse)
def reassign_appointment(
    appointment_id: int,
    reassign: AppointmentReassign,
    caller: SecurityContext = Depends(get_security_context)
):
    """Move an appointment to another doctor"""
    return services.reassign_appointment(caller, appointment_id, reassign.doctor_id)
