"""OAuth2 login: provider registrations, the authorization-code flow and
provisioning of local accounts for external identities.

Setup (Google):
    Create an OAuth client at https://console.cloud.google.com/apis/credentials
    with redirect URI ``<OAUTH_REDIRECT_BASE_URL>/login/oauth2/code/google`` and
    set GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET.

Setup (GitHub):
    Register an OAuth app at https://github.com/settings/developers with
    callback ``<OAUTH_REDIRECT_BASE_URL>/login/oauth2/code/github`` and set
    GITHUB_CLIENT_ID / GITHUB_CLIENT_SECRET.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt

from auth import load_account
from config import (ALGORITHM, OAUTH_CLIENTS, OAUTH_REDIRECT_BASE_URL, OAUTH_STATE_EXPIRE_MINUTES,
                    SECRET_KEY)
from database import create_account_with_patient, get_user_by_provider, get_user_by_username, update_username
from errors import Conflict, InvalidRequest, NotFound, OAuthError, ProviderConflict
from models import Account, AuthProviderType, RoleType

logger = logging.getLogger(__name__)

STATE_PURPOSE = "oauth2_state"


# Provisioning

def handle_oauth_callback(provider_type: AuthProviderType, provider_id: str, email: Optional[str],
                          name: Optional[str] = None) -> Account:
    """Resolve or create the local account for an external identity.

    1. An account linked to (provider_id, provider_type) wins; its username
       follows the provider's email when that changed.
    2. Otherwise an existing account holding the same email is a conflict,
       never a silent merge across identity providers.
    3. Otherwise a PATIENT account and its patient profile are created together.
    """
    provider_id = str(provider_id)
    user = get_user_by_provider(provider_id, provider_type.value)
    if user is not None:
        if email and email != user["username"]:
            logger.info("Syncing email for user id %s from %s", user["id"], provider_type.value)
            update_username(user["id"], email)
        return load_account(user["id"])

    username = email or provider_id
    email_user = get_user_by_username(username)
    if email_user is not None and (email_user["provider_id"], email_user["provider_type"]) == \
            (provider_id, provider_type.value):
        # linked by a concurrent callback since the lookup above
        return load_account(email_user["id"])
    if email_user is not None:
        logger.warning("OAuth login via %s collides with user id %s registered with %s",
                       provider_type.value, email_user["id"], email_user["provider_type"])
        raise ProviderConflict(f"This email is already registered with provider {email_user['provider_type']}")

    try:
        user_id = create_account_with_patient(
            username=username,
            password_hash=None,
            provider_id=provider_id,
            provider_type=provider_type.value,
            roles=[RoleType.PATIENT.value],
            patient_name=name or username,
            email=email,
        )
    except Conflict:
        # same identity provisioned by a concurrent callback
        existing = get_user_by_provider(provider_id, provider_type.value)
        if existing is None:
            raise
        return load_account(existing["id"])

    logger.info("Provisioned user id %s from %s", user_id, provider_type.value)
    return load_account(user_id)


# Provider registrations

@dataclass(frozen=True)
class ClientRegistration:
    registration_id: str
    provider_type: AuthProviderType
    client_id: str
    client_secret: str
    authorization_uri: str
    token_uri: str
    user_info_uri: str
    scope: str

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def redirect_uri(self) -> str:
        return f"{OAUTH_REDIRECT_BASE_URL}/login/oauth2/code/{self.registration_id}"


def get_registration(registration_id: str) -> ClientRegistration:
    settings = OAUTH_CLIENTS.get(registration_id)
    if settings is None:
        raise NotFound(f"Unknown OAuth2 provider: {registration_id}")
    registration = ClientRegistration(
        registration_id=registration_id,
        provider_type=AuthProviderType(registration_id.upper()),
        **settings,
    )
    if not registration.is_configured:
        raise NotFound(f"OAuth2 provider not configured: {registration_id}")
    return registration


def provider_id_from(registration: ClientRegistration, user_info: Dict[str, Any]) -> str:
    """Google identifies users by ``sub``, GitHub by a numeric ``id``"""
    key = "sub" if registration.provider_type is AuthProviderType.GOOGLE else "id"
    provider_id = user_info.get(key)
    if provider_id is None:
        raise OAuthError(f"{registration.registration_id} user info has no '{key}'")
    return str(provider_id)


# Stateless CSRF protection: the state parameter is a short-lived signed token

def create_state(registration_id: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "purpose": STATE_PURPOSE,
        "registration": registration_id,
        "nonce": secrets.token_urlsafe(16),
        "iat": now,
        "exp": now + timedelta(minutes=OAUTH_STATE_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_state(state: Optional[str], registration_id: str):
    if not state:
        raise InvalidRequest("OAuth2 state parameter missing")
    try:
        payload = jwt.decode(state, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise InvalidRequest("OAuth2 state parameter mismatch") from exc
    if payload.get("purpose") != STATE_PURPOSE or payload.get("registration") != registration_id:
        raise InvalidRequest("OAuth2 state parameter mismatch")


def authorization_url(registration: ClientRegistration) -> str:
    params = {
        "response_type": "code",
        "client_id": registration.client_id,
        "redirect_uri": registration.redirect_uri,
        "scope": registration.scope,
        "state": create_state(registration.registration_id),
    }
    return f"{registration.authorization_uri}?{urlencode(params)}"


# Authorization-code flow

async def get_http_client():
    async with httpx.AsyncClient(timeout=10.0) as client:
        yield client


async def exchange_code(client: httpx.AsyncClient, registration: ClientRegistration, code: str) -> str:
    response = await client.post(
        registration.token_uri,
        data={
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": registration.redirect_uri,
            "client_id": registration.client_id,
            "client_secret": registration.client_secret,
        },
        headers={"Accept": "application/json"},
    )
    if response.status_code != 200:
        logger.error("Token exchange with %s failed (HTTP %d)", registration.registration_id, response.status_code)
        raise OAuthError(f"Token exchange failed: {response.status_code}")

    access_token = response.json().get("access_token")
    if not access_token:
        raise OAuthError("Token exchange did not return an access token")
    return access_token


async def fetch_user_info(client: httpx.AsyncClient, registration: ClientRegistration,
                          access_token: str) -> Dict[str, Any]:
    headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
    response = await client.get(registration.user_info_uri, headers=headers)
    if response.status_code != 200:
        logger.error("User info fetch from %s failed (HTTP %d)", registration.registration_id, response.status_code)
        raise OAuthError(f"User info fetch failed: {response.status_code}")
    user_info = response.json()

    # GitHub omits private emails from /user
    if registration.provider_type is AuthProviderType.GITHUB and not user_info.get("email"):
        emails = await client.get(f"{registration.user_info_uri}/emails", headers=headers)
        if emails.status_code == 200:
            primary = next((e for e in emails.json() if e.get("primary") and e.get("verified")), None)
            if primary:
                user_info["email"] = primary["email"]
    return user_info
