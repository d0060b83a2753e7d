"""
OAuth - Token Endpoint Exchanges
================================

Every way this integration obtains an access token from the vendor:

- TokenRefresher:        refresh_token grant (delegated credentials)
- ServiceTokenExchanger: jwt-bearer grant with an RS256-signed assertion
                         (service identities)
- OAuthFlow:             consent URL + authorization_code grant (sign-in)

None of these retry on their own: a failed exchange is reported once and
the caller decides what to do next.
"""

import logging
import time
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import requests
from jose import jwt
from jose.exceptions import JOSEError

from ..config.settings import OAuthSettings
from .credentials import DelegatedCredential, ServiceIdentity, Token
from .errors import AuthExpired, AuthUnavailable, TransientError, describe

logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"


def _decode(response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _token_from(body: Any, now: float) -> Optional[Token]:
    """Build a Token from a token-endpoint reply, or None if it has none."""
    if not isinstance(body, dict) or not body.get("access_token"):
        return None
    expires_in = body.get("expires_in")
    try:
        expires_at = now + float(expires_in) if expires_in is not None else None
    except (TypeError, ValueError):
        expires_at = None
    return Token(body["access_token"], expires_at)


class TokenRefresher:
    """
    Exchanges a refresh token for a new access token.

    Any rejection (invalid_grant, revoked grant, network failure) raises
    AuthExpired: the user has to authorize again, retrying will not help.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_uri: str = "https://oauth2.googleapis.com/token",
        session: Optional[requests.Session] = None,
        timeout: float = 15.0,
        clock: Callable[[], float] = time.time,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_uri = token_uri
        self._session = session or requests.Session()
        self._timeout = timeout
        self._clock = clock

    def refresh(self, credential: DelegatedCredential) -> Token:
        if not credential.refresh_token:
            raise AuthExpired("No refresh token to exchange", operation="refresh_token")

        data = {
            "grant_type": "refresh_token",
            "refresh_token": credential.refresh_token,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }

        try:
            response = self._session.post(
                self._token_uri,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Token refresh failed, endpoint unreachable: {e}")
            raise AuthExpired(f"Token endpoint unreachable: {e}", operation="refresh_token")

        body = _decode(response)
        if not 200 <= response.status_code < 300:
            detail = describe(body) or "refresh rejected"
            logger.warning(f"Token refresh rejected ({response.status_code}): {detail}")
            raise AuthExpired(detail, status=response.status_code, operation="refresh_token")

        token = _token_from(body, self._clock())
        if token is None:
            raise AuthExpired("Token endpoint reply has no access_token", operation="refresh_token")

        logger.info("Access token refreshed")
        return token


class ServiceTokenExchanger:
    """
    Signs a short-lived assertion with the service-account key and trades
    it for an access token.

    USAGE:
        exchanger = ServiceTokenExchanger()
        token = exchanger.exchange(identity)
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 15.0,
        clock: Callable[[], float] = time.time,
        assertion_lifetime: int = 3600,
    ):
        self._session = session or requests.Session()
        self._timeout = timeout
        self._clock = clock
        self._lifetime = assertion_lifetime

    def sign_assertion(self, identity: ServiceIdentity) -> str:
        """Build the RS256-signed JWT assertion for the jwt-bearer grant."""
        now = int(self._clock())
        claims = {
            "iss": identity.issuer,
            "scope": " ".join(identity.scopes),
            "aud": identity.audience,
            "iat": now,
            "exp": now + self._lifetime,
        }
        if identity.subject:
            claims["sub"] = identity.subject
        headers = {"kid": identity.key_id} if identity.key_id else None

        try:
            return jwt.encode(claims, identity.signing_key, algorithm="RS256", headers=headers)
        except (JOSEError, ValueError) as e:
            raise AuthUnavailable(f"Service account key cannot sign assertions: {e}", operation="sign_assertion")

    def exchange(self, identity: ServiceIdentity) -> Token:
        assertion = self.sign_assertion(identity)

        try:
            response = self._session.post(
                identity.audience,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Service token exchange failed, endpoint unreachable: {e}")
            raise TransientError(f"Token endpoint unreachable: {e}", operation="service_token")

        body = _decode(response)
        status = response.status_code
        if status >= 500:
            raise TransientError(describe(body), status=status, operation="service_token")
        if not 200 <= status < 300:
            detail = describe(body) or "assertion rejected"
            logger.error(f"Service account {identity.issuer} rejected ({status}): {detail}")
            raise AuthUnavailable(detail, status=status, operation="service_token")

        token = _token_from(body, self._clock())
        if token is None:
            raise AuthUnavailable("Token endpoint reply has no access_token", operation="service_token")
        return token


class OAuthFlow:
    """Consent screen URL and authorization-code exchange for user sign-in."""

    def __init__(
        self,
        settings: OAuthSettings,
        session: Optional[requests.Session] = None,
        timeout: float = 15.0,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings
        self._session = session or requests.Session()
        self._timeout = timeout
        self._clock = clock

    def authorization_url(self, state: Optional[str] = None) -> str:
        params = {
            "client_id": self._settings.client_id,
            "redirect_uri": self._settings.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self._settings.scopes),
            # offline + consent makes the vendor issue a refresh token every time
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{self._settings.auth_uri}?{urlencode(params)}"

    def exchange_code(self, code: str) -> DelegatedCredential:
        """
        Trade an authorization code for a delegated credential.

        Raises:
            AuthUnavailable: the code was rejected or no access token came back.
            TransientError: the token endpoint could not be reached.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            "redirect_uri": self._settings.redirect_uri,
        }
        try:
            response = self._session.post(
                self._settings.token_uri,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise TransientError(f"Token endpoint unreachable: {e}", operation="authorization_code")

        body = _decode(response)
        if not 200 <= response.status_code < 300:
            detail = describe(body) or "authorization code rejected"
            logger.error(f"Token exchange failed ({response.status_code}): {detail}")
            raise AuthUnavailable(detail, status=response.status_code, operation="authorization_code")

        token = _token_from(body, self._clock())
        if token is None:
            raise AuthUnavailable("No access token received", operation="authorization_code")

        return DelegatedCredential(
            access_token=token.value,
            refresh_token=body.get("refresh_token"),
            expiry=token.expires_at,
        )
