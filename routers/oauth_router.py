from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from fastapi.concurrency import run_in_threadpool

from auth import token_service
from errors import InvalidRequest
from models import TokenResponse
from oauth import (authorization_url, exchange_code, fetch_user_info, get_http_client, get_registration,
                   handle_oauth_callback, provider_id_from, verify_state)

router = APIRouter(tags=["OAuth2 Login"])


@router.get("/oauth2/authorization/{provider}")
def start_oauth_login(provider: str):
    """Redirect the browser to the provider's sign-in page"""
    return RedirectResponse(authorization_url(get_registration(provider)), status_code=302)


@router.get("/login/oauth2/code/{provider}", response_model=TokenResponse)
async def oauth_callback(
    provider: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Finish the provider login and return a JWT for the linked account"""
    registration = get_registration(provider)
    verify_state(state, provider)
    if error:
        raise InvalidRequest(f"OAuth2 provider returned error: {error}")
    if not code:
        raise InvalidRequest("No authorization code in callback")

    access_token = await exchange_code(client, registration, code)
    user_info = await fetch_user_info(client, registration, access_token)
    account = await run_in_threadpool(
        handle_oauth_callback,
        registration.provider_type,
        provider_id_from(registration, user_info),
        user_info.get("email"),
        user_info.get("name"),
    )
    return TokenResponse(
        access_token=token_service.issue(account.id, account.username),
        user_id=account.id,
        expires_in=token_service.expires_in,
    )
