from datetime import date, datetime
from enum import Enum
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, Field


class RoleType(str, Enum):
    ADMIN = "ADMIN"
    DOCTOR = "DOCTOR"
    PATIENT = "PATIENT"


class PermissionType(str, Enum):
    PATIENT_READ = "patient:read"
    PATIENT_WRITE = "patient:write"
    APPOINTMENT_READ = "appointment:read"
    APPOINTMENT_WRITE = "appointment:write"
    APPOINTMENT_DELETE = "appointment:delete"
    USER_MANAGE = "user:manage"
    REPORT_VIEW = "report:view"


class AuthProviderType(str, Enum):
    EMAIL = "EMAIL"
    GOOGLE = "GOOGLE"
    GITHUB = "GITHUB"
    FACEBOOK = "FACEBOOK"
    TWITTER = "TWITTER"


class BloodGroupType(str, Enum):
    A_POSITIVE = "A_POSITIVE"
    A_NEGATIVE = "A_NEGATIVE"
    B_POSITIVE = "B_POSITIVE"
    B_NEGATIVE = "B_NEGATIVE"
    AB_POSITIVE = "AB_POSITIVE"
    AB_NEGATIVE = "AB_NEGATIVE"
    O_POSITIVE = "O_POSITIVE"
    O_NEGATIVE = "O_NEGATIVE"


class Account(BaseModel):
    """A login identity; local accounts carry a password hash, OAuth ones a provider id"""
    id: int
    username: str
    password_hash: Optional[str] = None
    provider_id: Optional[str] = None
    provider_type: AuthProviderType = AuthProviderType.EMAIL
    roles: FrozenSet[str] = frozenset()


# Authentication

class LoginRequest(BaseModel):
    username: str
    password: str


class SignupRequest(BaseModel):
    username: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8)
    name: str = Field(min_length=1, max_length=100)


class TokenResponse(BaseModel):
    access_token: str
    user_id: int
    token_type: str = "bearer"
    expires_in: int = 600


class SignupResponse(BaseModel):
    id: int
    username: str


class UserInfo(BaseModel):
    id: int
    username: str
    roles: List[str]
    permissions: List[str]


# Patients

class InsuranceCreate(BaseModel):
    policy_number: str = Field(min_length=1, max_length=50)
    provider: str = Field(min_length=1, max_length=100)
    valid_until: date


class InsuranceResponse(BaseModel):
    id: int
    policy_number: str
    provider: str
    valid_until: date
    created_at: datetime


class PatientResponse(BaseModel):
    id: int
    name: str
    gender: Optional[str] = None
    birth_date: Optional[date] = None
    email: Optional[str] = None
    blood_group: Optional[BloodGroupType] = None
    insurance: Optional[InsuranceResponse] = None


class PatientPage(BaseModel):
    content: List[PatientResponse]
    page: int
    size: int
    total_elements: int
    total_pages: int


# Doctors and departments

class DoctorResponse(BaseModel):
    id: int
    name: str
    specialization: Optional[str] = None
    email: Optional[str] = None


class OnboardDoctorRequest(BaseModel):
    user_id: int
    name: str = Field(min_length=1, max_length=100)
    specialization: str = Field(min_length=1, max_length=100)


class DepartmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    head_doctor_id: Optional[int] = None


class DepartmentResponse(BaseModel):
    id: int
    name: str
    head_doctor_id: Optional[int] = None
    doctor_ids: List[int] = []


# Appointments

class AppointmentCreate(BaseModel):
    doctor_id: int
    appointment_time: datetime
    reason: str = Field(min_length=1, max_length=500)


class AppointmentReassign(BaseModel):
    doctor_id: int


class AppointmentResponse(BaseModel):
    id: int
    appointment_time: datetime
    reason: str
    patient_id: int
    doctor_id: int
