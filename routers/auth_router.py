from fastapi import APIRouter
from models import LoginRequest, SignupRequest, SignupResponse, TokenResponse
from auth import authenticate_user, signup, token_service

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest):
    """Authenticate user and return JWT token"""
    account = authenticate_user(request.username, request.password)
    access_token = token_service.issue(account.id, account.username)
    return TokenResponse(access_token=access_token, user_id=account.id, expires_in=token_service.expires_in)


@router.post("/signup", response_model=SignupResponse, status_code=201)
def register(request: SignupRequest):
    """Create a patient account with username and password"""
    account = signup(request.username, request.password, request.name)
    return SignupResponse(id=account.id, username=account.username)
