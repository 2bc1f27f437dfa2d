from fastapi import APIRouter, Depends
from models import AppointmentCreate, AppointmentResponse, PatientResponse
from auth import get_security_context
from authorization import SecurityContext
import services

router = APIRouter(prefix="/patients", tags=["Patients"])


@router.get("/profile", response_model=PatientResponse)
def get_patient_profile(caller: SecurityContext = Depends(get_security_context)):
    """Patient profile of the logged-in account"""
    return services.get_own_profile(caller)


@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
def create_new_appointment(
    appointment: AppointmentCreate,
    caller: SecurityContext = Depends(get_security_context)
):
    """Book an appointment with a doctor"""
    return services.create_appointment(
        caller,
        doctor_id=appointment.doctor_id,
        appointment_time=appointment.appointment_time,
        reason=appointment.reason,
    )


@router.get("/{patient_id}", response_model=PatientResponse)
def get_patient_by_id(patient_id: int, caller: SecurityContext = Depends(get_security_context)):
    return services.get_patient(caller, patient_id)
