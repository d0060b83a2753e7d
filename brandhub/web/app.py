"""
FastAPI Web Application - Business Profile JSON API
===================================================

JSON routes the admin UI calls to sign in with Google and to read or change
Business Profile data. The client a request runs with is chosen from:

- gbp_access_token / gbp_refresh_token cookies -> delegated credential
- otherwise the configured service account (one client shared by all requests)
- otherwise 401 (authentication required)

Integration failures are mapped to HTTP statuses in one exception handler.
"""

import logging
import secrets
import threading
from contextlib import asynccontextmanager
from datetime import date
from functools import lru_cache
from typing import Any, Optional
from urllib.parse import urlencode

import requests
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from brandhub.infrastructure.config import Settings, get_settings
from brandhub.infrastructure.gbp import (
    AuthUnavailable,
    BusinessProfileClient,
    BusinessProfileError,
    CallToAction,
    Classification,
    Coordinates,
    DelegatedCredential,
    InvalidRequest,
    OAuthFlow,
    service_identity,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

STATE_COOKIE = "gbp_oauth_state"

HTTP_STATUS = {
    Classification.AUTH_UNAVAILABLE: 401,
    Classification.AUTH_EXPIRED: 401,
    Classification.PERMISSION_DENIED: 403,
    Classification.NOT_FOUND: 404,
    Classification.INVALID_REQUEST: 400,
    Classification.RATE_LIMITED: 429,
    Classification.TRANSIENT: 503,
    Classification.MALFORMED_RESPONSE: 502,
}


# ── Lifespan ───────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    for issue in get_settings().validate():
        logger.warning(issue)
    yield


app = FastAPI(
    title="Brand Hub",
    description="Google Business Profile integration for brands and storefronts",
    lifespan=lifespan,
)


@app.exception_handler(BusinessProfileError)
async def business_profile_error_handler(request: Request, exc: BusinessProfileError):
    status = HTTP_STATUS.get(exc.classification, 500)
    logger.warning(f"{request.method} {request.url.path} -> {status}: {exc}")
    return JSONResponse(
        status_code=status,
        content={
            "success": False,
            "error": exc.classification.value,
            "detail": exc.detail,
            "retryable": exc.retryable,
        },
    )


# ── Request models ─────────────────────────────────────────────────

class LocationFields(BaseModel):
    display_name: Optional[str] = None
    store_code: Optional[str] = None
    phone: Optional[str] = None
    website_url: Optional[str] = None
    primary_category: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    language_code: Optional[str] = None

    def changes(self) -> dict:
        fields = self.model_dump(exclude_none=True, exclude={"latitude", "longitude"})
        if self.latitude is not None and self.longitude is not None:
            fields["coordinates"] = Coordinates(self.latitude, self.longitude)
        return fields


class ReplyBody(BaseModel):
    comment: str


class PostBody(BaseModel):
    summary: str
    topic_type: str = "STANDARD"
    action_type: Optional[str] = None
    action_url: Optional[str] = None
    language_code: str = "en"


# ── Clients ────────────────────────────────────────────────────────

def get_http_session() -> requests.Session:
    return requests.Session()


_service_client_lock = threading.Lock()


@lru_cache(maxsize=1)
def _build_service_client() -> BusinessProfileClient:
    settings = get_settings()
    logger.info(f"Service account client for {settings.service_account.client_email}")
    return BusinessProfileClient.from_credential(
        service_identity(settings.service_account), settings, session=get_http_session()
    )


def get_service_client() -> BusinessProfileClient:
    """
    The one client of the configured service account.

    Shared by every request so its token is minted once and reused until it
    nears expiry, and concurrent renewals wait on a single lock.
    """
    with _service_client_lock:
        return _build_service_client()


def _delegated_from_request(request: Request, settings: Settings) -> Optional[DelegatedCredential]:
    access = request.cookies.get(settings.web.access_cookie)
    refresh = request.cookies.get(settings.web.refresh_cookie)
    if access or refresh:
        return DelegatedCredential(access_token=access, refresh_token=refresh)
    return None


def get_client(request: Request) -> BusinessProfileClient:
    """Signed-in user's tokens (per request), else the shared service account client."""
    settings = get_settings()
    credential = _delegated_from_request(request, settings)
    if credential is not None:
        return BusinessProfileClient.from_credential(credential, settings, session=get_http_session())
    if settings.service_account.is_configured:
        return get_service_client()
    raise AuthUnavailable("Sign in with Google or configure a service account")


def _respond(request: Request, client: BusinessProfileClient, **payload: Any) -> JSONResponse:
    """JSON success response; writes a refreshed access token back to its cookie."""
    response = JSONResponse({"success": True, **jsonable_encoder(payload)})
    settings = get_settings()
    credential = client.credentials.credential
    if (
        isinstance(credential, DelegatedCredential)
        and credential.access_token
        and credential.access_token != request.cookies.get(settings.web.access_cookie)
    ):
        response.set_cookie(
            settings.web.access_cookie,
            credential.access_token,
            max_age=settings.web.access_cookie_max_age,
            httponly=True,
            secure=settings.web.secure_cookies,
            samesite="lax",
        )
    return response


def _parse_date(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise InvalidRequest(f"{name} must be an ISO date (YYYY-MM-DD), got {value!r}")


# ── Auth routes ────────────────────────────────────────────────────

@app.get("/api/google-business/auth/login")
def auth_login():
    settings = get_settings()
    if not settings.oauth.is_configured:
        raise AuthUnavailable("GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET are not configured")
    state = secrets.token_urlsafe(16)
    response = RedirectResponse(OAuthFlow(settings.oauth).authorization_url(state=state), status_code=302)
    response.set_cookie(STATE_COOKIE, state, max_age=600, httponly=True, samesite="lax")
    return response


@app.get("/api/google-business/auth/callback")
def auth_callback(request: Request, code: Optional[str] = None, error: Optional[str] = None, state: Optional[str] = None):
    settings = get_settings()
    target = f"{settings.web.app_url}/google-business"

    def redirect(**params) -> RedirectResponse:
        response = RedirectResponse(f"{target}?{urlencode(params)}", status_code=303)
        response.delete_cookie(STATE_COOKIE)
        return response

    if error:
        logger.error(f"Google OAuth error: {error}")
        return redirect(error=error)
    if not code:
        return redirect(error="No authorization code received")
    expected_state = request.cookies.get(STATE_COOKIE)
    if not expected_state or not secrets.compare_digest((state or "").encode(), expected_state.encode()):
        logger.warning("OAuth callback state mismatch")
        return redirect(error="Sign-in session expired, please try again")

    try:
        credential = OAuthFlow(settings.oauth).exchange_code(code)
    except BusinessProfileError as e:
        logger.error(f"Authorization code exchange failed: {e}")
        return redirect(error="Failed to exchange authorization code")

    response = redirect(success="Authentication successful")
    cookie_args = {"httponly": True, "secure": settings.web.secure_cookies, "samesite": "lax"}
    response.set_cookie(
        settings.web.access_cookie, credential.access_token,
        max_age=settings.web.access_cookie_max_age, **cookie_args,
    )
    if credential.refresh_token:
        response.set_cookie(
            settings.web.refresh_cookie, credential.refresh_token,
            max_age=settings.web.refresh_cookie_max_age, **cookie_args,
        )
    return response


@app.get("/api/google-business/auth/status")
def auth_status(request: Request):
    settings = get_settings()
    if request.cookies.get(settings.web.access_cookie) or request.cookies.get(settings.web.refresh_cookie):
        mode = "oauth"
    elif settings.service_account.is_configured:
        mode = "service_account"
    else:
        mode = None
    return {
        "authenticated": mode is not None,
        "mode": mode,
        "can_refresh": bool(request.cookies.get(settings.web.refresh_cookie)) and settings.oauth.is_configured,
    }


@app.post("/api/google-business/auth/logout")
def auth_logout():
    settings = get_settings()
    response = JSONResponse({"success": True})
    response.delete_cookie(settings.web.access_cookie)
    response.delete_cookie(settings.web.refresh_cookie)
    return response


# ── Accounts ───────────────────────────────────────────────────────

@app.get("/api/google-business/accounts")
def list_accounts(request: Request, diagnostic: bool = False, client: BusinessProfileClient = Depends(get_client)):
    if diagnostic:
        check = client.check_connection()
        return _respond(request, client, generation=check.generation, host=check.host, accounts=check.accounts)
    return _respond(request, client, accounts=client.list_accounts())


# ── Locations ──────────────────────────────────────────────────────

@app.get("/api/google-business/locations")
def get_locations(
    request: Request,
    accountName: Optional[str] = None,
    locationName: Optional[str] = None,
    client: BusinessProfileClient = Depends(get_client),
):
    if locationName:
        return _respond(request, client, location=client.get_location(locationName, account=accountName))
    if not accountName:
        raise InvalidRequest("accountName or locationName is required")
    return _respond(request, client, locations=client.list_locations(accountName))


@app.patch("/api/google-business/locations")
def update_location(
    request: Request,
    locationName: str,
    fields: LocationFields,
    client: BusinessProfileClient = Depends(get_client),
):
    return _respond(request, client, location=client.update_location(locationName, fields.changes()))


@app.post("/api/google-business/locations")
def create_location(
    request: Request,
    accountName: str,
    fields: LocationFields,
    validateOnly: bool = False,
    client: BusinessProfileClient = Depends(get_client),
):
    location = client.create_location(accountName, fields.changes(), validate_only=validateOnly)
    return _respond(request, client, location=location)


# ── Reviews ────────────────────────────────────────────────────────

@app.get("/api/google-business/reviews")
def list_reviews(
    request: Request,
    locationName: str,
    accountName: Optional[str] = None,
    client: BusinessProfileClient = Depends(get_client),
):
    return _respond(request, client, reviews=client.list_reviews(locationName, account=accountName))


@app.post("/api/google-business/reviews/reply")
def reply_to_review(
    request: Request,
    reviewName: str,
    body: ReplyBody,
    client: BusinessProfileClient = Depends(get_client),
):
    return _respond(request, client, reply=client.reply_to_review(reviewName, body.comment))


# ── Posts ──────────────────────────────────────────────────────────

@app.get("/api/google-business/posts")
def list_posts(request: Request, locationName: str, client: BusinessProfileClient = Depends(get_client)):
    return _respond(request, client, posts=client.list_posts(locationName))


@app.post("/api/google-business/posts")
def create_post(
    request: Request,
    locationName: str,
    body: PostBody,
    client: BusinessProfileClient = Depends(get_client),
):
    action = CallToAction(body.action_type, body.action_url) if body.action_type else None
    post = client.create_post(
        locationName,
        body.summary,
        topic_type=body.topic_type,
        call_to_action=action,
        language_code=body.language_code,
    )
    return _respond(request, client, post=post)


@app.delete("/api/google-business/posts")
def delete_post(request: Request, postName: str, client: BusinessProfileClient = Depends(get_client)):
    client.delete_post(postName)
    return _respond(request, client)


# ── Insights ───────────────────────────────────────────────────────

@app.get("/api/google-business/insights")
def fetch_insights(
    request: Request,
    locationName: str,
    startDate: str,
    endDate: str,
    metrics: Optional[str] = None,
    client: BusinessProfileClient = Depends(get_client),
):
    metric_names = [m.strip() for m in (metrics or "").split(",") if m.strip()] or None
    series = client.fetch_insights(
        locationName,
        _parse_date(startDate, "startDate"),
        _parse_date(endDate, "endDate"),
        metrics=metric_names,
    )
    return _respond(request, client, performance=series)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
