# Configuration settings for the Hospital Management System
import os
from types import MappingProxyType


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# JWT Configuration
SECRET_KEY = os.getenv(
    "HOSPITAL_SECRET_KEY",
    "hospital-management-dev-secret-change-me-0123456789abcdef",
)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("HOSPITAL_TOKEN_EXPIRE_MINUTES", "10"))
OAUTH_STATE_EXPIRE_MINUTES = 5

# Password hashing
PASSWORD_HASH_ITERATIONS = int(os.getenv("HOSPITAL_PASSWORD_ITERATIONS", "260000"))

# Database Configuration
DATABASE_PATH = os.getenv("HOSPITAL_DATABASE_PATH", "hospital.db")
DATABASE_TIMEOUT_SECONDS = 10.0
SEED_DEFAULT_DATA = _env_bool("HOSPITAL_SEED_DATA", True)

# Role permissions mapping, read-only once the process starts
ROLE_PERMISSIONS = MappingProxyType({
    "PATIENT": frozenset({
        "patient:read",
        "appointment:read",
        "appointment:write",
    }),
    "DOCTOR": frozenset({
        "patient:read",
        "appointment:read",
        "appointment:write",
        "appointment:delete",
    }),
    "ADMIN": frozenset({
        "patient:read",
        "patient:write",
        "appointment:read",
        "appointment:write",
        "appointment:delete",
        "user:manage",
        "report:view",
    }),
})

# OAuth2 client registrations
OAUTH_REDIRECT_BASE_URL = os.getenv("OAUTH_REDIRECT_BASE_URL", "http://127.0.0.1:8000")
OAUTH_CLIENTS = MappingProxyType({
    "google": MappingProxyType({
        "client_id": os.getenv("GOOGLE_CLIENT_ID", ""),
        "client_secret": os.getenv("GOOGLE_CLIENT_SECRET", ""),
        "authorization_uri": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_uri": "https://oauth2.googleapis.com/token",
        "user_info_uri": "https://openidconnect.googleapis.com/v1/userinfo",
        "scope": "openid email profile",
    }),
    "github": MappingProxyType({
        "client_id": os.getenv("GITHUB_CLIENT_ID", ""),
        "client_secret": os.getenv("GITHUB_CLIENT_SECRET", ""),
        "authorization_uri": "https://github.com/login/oauth/authorize",
        "token_uri": "https://github.com/login/oauth/access_token",
        "user_info_uri": "https://api.github.com/user",
        "scope": "read:user user:email",
    }),
})

# Logging
LOG_LEVEL = os.getenv("HOSPITAL_LOG_LEVEL", "INFO")

# API Configuration
API_TITLE = "Hospital Management System"
API_VERSION = "1.0.0"
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8000"))
