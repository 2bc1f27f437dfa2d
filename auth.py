import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from fastapi.concurrency import run_in_threadpool

from authorization import AuthorizationGate, SecurityContext, hospital_rules
from config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, ROLE_PERMISSIONS, SECRET_KEY
from database import create_account_with_patient, get_user_by_id, get_user_by_username
from errors import (AuthenticationRequired, BadCredentials, Conflict, Forbidden, HospitalError,
                    InvalidToken, NotFound, error_envelope)
from models import Account, AuthProviderType, RoleType
from permissions import PermissionCatalog
from security import hash_password, verify_password

logger = logging.getLogger(__name__)

# Shortest secret accepted per HMAC algorithm, in bytes
MIN_SECRET_BYTES = {"HS256": 32, "HS384": 48, "HS512": 64}


@dataclass(frozen=True)
class TokenClaims:
    account_id: int
    username: str
    issued_at: datetime
    expires_at: datetime


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Issues and verifies signed, short-lived session tokens.

    Tokens carry the username as ``sub`` and the account id as ``userId``.
    Nothing is stored server side, so a token stays valid until it expires
    or the signing secret changes.
    """

    def __init__(self, secret_key: str, algorithm: str = ALGORITHM,
                 expire_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
                 clock: Callable[[], datetime] = _utc_now):
        minimum = MIN_SECRET_BYTES.get(algorithm)
        if minimum is None:
            raise ValueError(f"Unsupported signing algorithm: {algorithm}")
        if len(secret_key.encode("utf-8")) < minimum:
            raise ValueError(f"Signing secret for {algorithm} must be at least {minimum} bytes")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._lifetime = timedelta(minutes=expire_minutes)
        self._clock = clock

    @property
    def expires_in(self) -> int:
        return int(self._lifetime.total_seconds())

    def issue(self, account_id: int, username: str) -> str:
        now = self._clock()
        payload = {
            "sub": username,
            "userId": account_id,
            "iat": now,
            "exp": now + self._lifetime,
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims:
        try:
            # Expiry is checked below against the injected clock
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm],
                                 options={"verify_exp": False})
        except JWTError as exc:
            raise InvalidToken("Invalid token") from exc

        username = payload.get("sub")
        account_id = payload.get("userId")
        issued_at = payload.get("iat")
        expires_at = payload.get("exp")
        if not isinstance(username, str) or not username:
            raise InvalidToken("Invalid token")
        if not isinstance(account_id, int) or isinstance(account_id, bool):
            raise InvalidToken("Invalid token")
        if not isinstance(issued_at, (int, float)) or not isinstance(expires_at, (int, float)):
            raise InvalidToken("Invalid token")
        if self._clock().timestamp() > expires_at:
            raise InvalidToken("Token has expired")

        return TokenClaims(
            account_id=account_id,
            username=username,
            issued_at=datetime.fromtimestamp(issued_at, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc),
        )


permission_catalog = PermissionCatalog(ROLE_PERMISSIONS)
token_service = TokenService(SECRET_KEY)
authorization_gate = AuthorizationGate(hospital_rules())

security = HTTPBearer(auto_error=False)


def load_account(account_id: int) -> Account:
    user = get_user_by_id(account_id)
    if user is None:
        raise NotFound(f"User not found: {account_id}")
    return Account(**user)


def security_context_for(account: Account) -> SecurityContext:
    return SecurityContext(
        account_id=account.id,
        username=account.username,
        roles=frozenset(account.roles),
        authorities=permission_catalog.authorities_for(account.roles),
    )


def authenticate_user(username: str, password: str) -> Account:
    """Authenticate user against SQLite database"""
    user = get_user_by_username(username)
    if user is None:
        logger.info("Login failed: unknown user")
        raise NotFound(f"User not found: {username}")
    if not user["password_hash"] or not verify_password(password, user["password_hash"]):
        logger.info("Login failed: bad credentials for user id %s", user["id"])
        raise BadCredentials("Incorrect username or password")
    return Account(**user)


def signup(username: str, password: str, name: str) -> Account:
    """Create a local account holding the PATIENT role, with its patient profile"""
    if get_user_by_username(username) is not None:
        raise Conflict(f"User already exists: {username}")
    user_id = create_account_with_patient(
        username=username,
        password_hash=hash_password(password),
        provider_id=None,
        provider_type=AuthProviderType.EMAIL.value,
        roles=[RoleType.PATIENT.value],
        patient_name=name,
        email=username,
    )
    logger.info("Signed up user id %s", user_id)
    return load_account(user_id)


def authenticate_token(token: str) -> SecurityContext:
    """Verify a bearer token and build the caller's security context"""
    claims = token_service.verify(token)
    try:
        account = load_account(claims.account_id)
    except NotFound as exc:
        raise InvalidToken("Invalid token") from exc
    return security_context_for(account)


async def jwt_middleware(request: Request, call_next):
    """JWT Authentication Middleware"""
    if request.method == "OPTIONS":
        return await call_next(request)

    context: Optional[SecurityContext] = None
    auth_header = request.headers.get("Authorization")
    if auth_header is not None:
        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return error_envelope("Missing or invalid authorization header", 401)
        try:
            context = await run_in_threadpool(authenticate_token, token.strip())
        except InvalidToken as exc:
            logger.warning("Rejected bearer token on %s %s: %s", request.method, request.url.path, exc.message)
            return error_envelope(exc.message, exc.status_code)

    request.state.security_context = context
    try:
        authorization_gate.check_request(request.method, request.url.path, context)
    except HospitalError as exc:
        return error_envelope(exc.message, exc.status_code)

    return await call_next(request)


def get_security_context(request: Request,
                         # declares the bearer scheme in the OpenAPI docs; the middleware reads the header
                         credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> SecurityContext:
    """Caller populated by the middleware for this request"""
    context = getattr(request.state, "security_context", None)
    if context is None:
        raise AuthenticationRequired("Authentication required")
    return context


def require_permission(permission: str):
    """Dependency requiring a specific permission"""
    def check_permission(caller: SecurityContext = Depends(get_security_context)):
        if not caller.has_authority(permission):
            raise Forbidden()
        return caller
    return check_permission
