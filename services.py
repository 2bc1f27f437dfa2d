"""Hospital operations. Each one that touches a specific resource owner states
its fine-grained rule with ``pre_authorize`` on top of the URL-level rules."""
import logging
import math
from datetime import datetime
from typing import List

import database
from authorization import SecurityContext, pre_authorize
from errors import Conflict, NotFound
from models import (AppointmentResponse, DepartmentCreate, DepartmentResponse, DoctorResponse, InsuranceCreate,
                    OnboardDoctorRequest, PatientPage, PatientResponse)

logger = logging.getLogger(__name__)


def _owns_patient(caller: SecurityContext, patient_id: int) -> bool:
    patient = database.get_patient(patient_id)
    return patient is not None and caller.is_account(patient["user_id"])


def _require_doctor(doctor_id: int) -> dict:
    doctor = database.get_doctor(doctor_id)
    if doctor is None:
        raise NotFound(f"Doctor not found: {doctor_id}")
    return doctor


def _require_patient(patient_id: int) -> dict:
    patient = database.get_patient(patient_id)
    if patient is None:
        raise NotFound(f"Patient not found: {patient_id}")
    return patient


# Patients

def get_own_profile(caller: SecurityContext) -> PatientResponse:
    patient = database.get_patient_by_user(caller.account_id)
    if patient is None:
        raise NotFound("Patient profile not found")
    return PatientResponse(**patient)


@pre_authorize(lambda caller, patient_id, **_: caller.has_role("ADMIN") or caller.has_role("DOCTOR")
               or _owns_patient(caller, patient_id))
def get_patient(caller: SecurityContext, patient_id: int) -> PatientResponse:
    return PatientResponse(**_require_patient(patient_id))


def list_patients(page: int, size: int) -> PatientPage:
    total = database.count_patients()
    rows = database.list_patients(offset=page * size, limit=size)
    return PatientPage(
        content=[PatientResponse(**row) for row in rows],
        page=page,
        size=size,
        total_elements=total,
        total_pages=math.ceil(total / size) if size else 0,
    )


def delete_patient(patient_id: int):
    if not database.delete_patient(patient_id):
        raise NotFound(f"Patient not found: {patient_id}")
    logger.info("Deleted patient %s", patient_id)


def assign_insurance(patient_id: int, insurance: InsuranceCreate) -> PatientResponse:
    _require_patient(patient_id)
    database.assign_insurance(patient_id, insurance.policy_number, insurance.provider, insurance.valid_until)
    return PatientResponse(**database.get_patient(patient_id))


def remove_insurance(patient_id: int) -> PatientResponse:
    _require_patient(patient_id)
    if not database.remove_insurance(patient_id):
        raise NotFound(f"Patient {patient_id} has no insurance")
    return PatientResponse(**database.get_patient(patient_id))


# Doctors

def list_doctors() -> List[DoctorResponse]:
    return [DoctorResponse(**row) for row in database.list_doctors()]


def onboard_doctor(request: OnboardDoctorRequest) -> DoctorResponse:
    """Promote an existing account to DOCTOR"""
    user = database.get_user_by_id(request.user_id)
    if user is None:
        raise NotFound(f"User not found: {request.user_id}")
    if database.get_doctor(request.user_id) is not None:
        raise Conflict("Already a doctor")

    doctor = database.create_doctor_for_user(request.user_id, request.name, request.specialization,
                                             email=user["username"])
    logger.info("Onboarded user id %s as doctor", request.user_id)
    return DoctorResponse(**doctor)


# Departments

def create_department(request: DepartmentCreate) -> DepartmentResponse:
    if request.head_doctor_id is not None:
        _require_doctor(request.head_doctor_id)
    return DepartmentResponse(**database.create_department(request.name, request.head_doctor_id))


def list_departments() -> List[DepartmentResponse]:
    return [DepartmentResponse(**row) for row in database.list_departments()]


def add_doctor_to_department(department_id: int, doctor_id: int) -> DepartmentResponse:
    if database.get_department(department_id) is None:
        raise NotFound(f"Department not found: {department_id}")
    _require_doctor(doctor_id)
    database.add_doctor_to_department(department_id, doctor_id)
    return DepartmentResponse(**database.get_department(department_id))


# Appointments

@pre_authorize(lambda caller, doctor_id, **_: caller.has_authority("appointment:write")
               or caller.is_account(doctor_id))
def create_appointment(caller: SecurityContext, doctor_id: int, appointment_time: datetime,
                       reason: str) -> AppointmentResponse:
    """Book an appointment for the caller's own patient profile"""
    patient = database.get_patient_by_user(caller.account_id)
    if patient is None:
        raise NotFound("Patient profile not found")
    _require_doctor(doctor_id)

    appointment = database.create_appointment(patient["id"], doctor_id, appointment_time, reason)
    logger.info("Booked appointment %s with doctor %s", appointment["id"], doctor_id)
    return AppointmentResponse(**appointment)


@pre_authorize(lambda caller, doctor_id, **_: caller.has_role("ADMIN")
               or (caller.has_role("DOCTOR") and caller.is_account(doctor_id)))
def get_doctor_appointments(caller: SecurityContext, doctor_id: int) -> List[AppointmentResponse]:
    _require_doctor(doctor_id)
    return [AppointmentResponse(**row) for row in database.list_appointments_for_doctor(doctor_id)]


@pre_authorize(lambda caller, doctor_id, **_: caller.has_authority("appointment:write")
               or caller.is_account(doctor_id))
def reassign_appointment(caller: SecurityContext, appointment_id: int, doctor_id: int) -> AppointmentResponse:
    if database.get_appointment(appointment_id) is None:
        raise NotFound(f"Appointment not found: {appointment_id}")
    _require_doctor(doctor_id)

    appointment = database.update_appointment_doctor(appointment_id, doctor_id)
    logger.info("Reassigned appointment %s to doctor %s", appointment_id, doctor_id)
    return AppointmentResponse(**appointment)


@pre_authorize(lambda caller, **_: caller.has_authority("appointment:delete"))
def delete_appointment(caller: SecurityContext, appointment_id: int):
    if not database.delete_appointment(appointment_id):
        raise NotFound(f"Appointment not found: {appointment_id}")
    logger.info("Deleted appointment %s", appointment_id)
