from fastapi import APIRouter, Depends
from models import UserInfo
from auth import get_security_context
from authorization import SecurityContext

router = APIRouter(prefix="/users", tags=["User Management"])


@router.get("/me", response_model=UserInfo)
def get_current_user_info(caller: SecurityContext = Depends(get_security_context)):
    """Get current user info"""
    return UserInfo(
        id=caller.account_id,
        username=caller.username,
        roles=sorted(caller.roles),
        permissions=sorted(caller.authorities),
    )
