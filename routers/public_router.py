from typing import List

from fastapi import APIRouter
from models import DoctorResponse
import services

router = APIRouter(prefix="/public", tags=["Public"])


@router.get("/doctors", response_model=List[DoctorResponse])
def get_all_doctors():
    return services.list_doctors()
