from typing import List

from fastapi import APIRouter, Depends, Query
from models import (DepartmentCreate, DepartmentResponse, DoctorResponse, InsuranceCreate, OnboardDoctorRequest,
                    PatientPage, PatientResponse)
from auth import get_security_context, require_permission
from authorization import SecurityContext
import services

router = APIRouter(prefix="/admin", tags=["Administration"])


@router.get("/patients", response_model=PatientPage)
def get_all_patients(
    page: int = Query(0, ge=0),
    size: int = Query(10, ge=1, le=100),
):
    """List patients one page at a time"""
    return services.list_patients(page, size)


@router.delete("/patients/{patient_id}", status_code=204)
def delete_patient(patient_id: int, caller: SecurityContext = Depends(require_permission("user:manage"))):
    services.delete_patient(patient_id)


@router.post("/patients/{patient_id}/insurance", response_model=PatientResponse)
def assign_insurance(
    patient_id: int,
    insurance: InsuranceCreate,
    caller: SecurityContext = Depends(require_permission("patient:write"))
):
    return services.assign_insurance(patient_id, insurance)


@router.delete("/patients/{patient_id}/insurance", response_model=PatientResponse)
def remove_insurance(patient_id: int, caller: SecurityContext = Depends(require_permission("patient:write"))):
    return services.remove_insurance(patient_id)


@router.post("/onBoardNewDoctor", response_model=DoctorResponse, status_code=201)
def onboard_new_doctor(
    request: OnboardDoctorRequest,
    caller: SecurityContext = Depends(require_permission("user:manage"))
):
    """Promote an existing user to doctor (Administrator only)"""
    return services.onboard_doctor(request)


@router.delete("/appointments/{appointment_id}", status_code=204)
def delete_appointment(appointment_id: int, caller: SecurityContext = Depends(get_security_context)):
    services.delete_appointment(caller, appointment_id)


@router.post("/departments", response_model=DepartmentResponse, status_code=201)
def create_department(
    department: DepartmentCreate,
    caller: SecurityContext = Depends(require_permission("user:manage"))
):
    return services.create_department(department)


@router.get("/departments", response_model=List[DepartmentResponse])
def get_all_departments():
    return services.list_departments()


@router.put("/departments/{department_id}/doctors/{doctor_id}", response_model=DepartmentResponse)
def add_doctor_to_department(
    department_id: int,
    doctor_id: int,
    caller: SecurityContext = Depends(require_permission("user:manage"))
):
    return services.add_doctor_to_department(department_id, doctor_id)
