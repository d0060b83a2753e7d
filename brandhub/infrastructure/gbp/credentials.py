"""
Credential Store - Bearer Tokens for the Business Profile APIs
==============================================================

Two mutually exclusive strategies:

- DelegatedCredential: access/refresh token pair obtained from a user
  through the OAuth consent screen.
- ServiceIdentity: service-account key used to mint short-lived signed
  assertions, no user in the loop.

The store hands out the current bearer token and renews it lazily. Renewal
is single-flight per credential: concurrent callers that find an expired
token wait on the credential's lock and reuse the token fetched by the
first one. The only state ever mutated is the access token (and its
expiry); a refresh token is never dropped, whether the refresh succeeds or
fails.

USAGE:
    store = CredentialStore(
        DelegatedCredential(refresh_token="1//0g..."),
        refresher=TokenRefresher(client_id, client_secret),
    )
    token = store.current_bearer_token()
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Tuple

from .errors import AuthUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Token:
    """Access token plus its POSIX expiry time (None = unknown)."""
    value: str
    expires_at: Optional[float] = None

    def is_live(self, now: float, skew: float = 0.0) -> bool:
        if not self.value:
            return False
        if self.expires_at is None:
            return True
        return now < self.expires_at - skew


@dataclass(eq=False)
class DelegatedCredential:
    """
    User-delegated OAuth tokens.

    refresh_token is fixed for the lifetime of the object; access_token and
    expiry are replaced in place by CredentialStore when it refreshes.
    """
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expiry: Optional[float] = None
    lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __repr__(self) -> str:
        # Never leak token material into logs
        return (
            f"DelegatedCredential(access_token={'set' if self.access_token else None}, "
            f"refresh_token={'set' if self.refresh_token else None}, expiry={self.expiry})"
        )

    @property
    def access(self) -> Optional[Token]:
        if not self.access_token:
            return None
        return Token(self.access_token, self.expiry)


@dataclass(frozen=True, eq=False)
class ServiceIdentity:
    """Service-account key material used to sign token assertions."""
    issuer: str
    signing_key: str = field(repr=False)
    audience: str = "https://oauth2.googleapis.com/token"
    key_id: Optional[str] = None
    scopes: Tuple[str, ...] = ("https://www.googleapis.com/auth/business.manage",)
    subject: Optional[str] = None
    lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)


class DelegatedTokenSource(Protocol):
    def refresh(self, credential: DelegatedCredential) -> Token: ...


class ServiceTokenSource(Protocol):
    def exchange(self, identity: ServiceIdentity) -> Token: ...


class CredentialStore:
    """
    Holds one credential and supplies bearer tokens for it.

    The acquisition routine is picked here, once, from the credential kind:
    refresh-token exchange for delegated credentials, signed-assertion
    exchange for service identities.
    """

    def __init__(
        self,
        credential,
        refresher: Optional[DelegatedTokenSource] = None,
        exchanger: Optional[ServiceTokenSource] = None,
        clock: Callable[[], float] = time.time,
        expiry_skew: float = 60.0,
    ):
        self._credential = credential
        self._clock = clock
        self._skew = expiry_skew
        self._service_token: Optional[Token] = None

        if isinstance(credential, DelegatedCredential):
            self._refresher = refresher
            self._cached = self._cached_delegated
            self._acquire = self._refresh_delegated
        elif isinstance(credential, ServiceIdentity):
            if exchanger is None:
                raise ValueError("A service identity needs a token exchanger")
            self._exchanger = exchanger
            self._cached = self._cached_service
            self._acquire = self._exchange_assertion
        else:
            raise TypeError(f"Unsupported credential type: {type(credential).__name__}")

    @property
    def credential(self):
        return self._credential

    @property
    def kind(self) -> str:
        """'oauth' for delegated credentials, 'service_account' otherwise."""
        return "oauth" if isinstance(self._credential, DelegatedCredential) else "service_account"

    @property
    def can_renew(self) -> bool:
        """True if a fresh token can be obtained without user action."""
        if isinstance(self._credential, ServiceIdentity):
            return True
        return bool(self._credential.refresh_token and self._refresher is not None)

    def current_bearer_token(self) -> str:
        """
        Return a usable access token, renewing it if needed.

        Raises:
            AuthUnavailable: no access token and nothing to renew it with.
            AuthExpired: the refresh token was rejected.
        """
        with self._credential.lock:
            token = self._cached()
            if token is not None:
                return token
            return self._acquire()

    def invalidate(self, token: str) -> None:
        """
        Forget an access token the vendor rejected.

        Only clears the cache if it still holds that token, so a token
        renewed meanwhile by another caller survives.
        """
        with self._credential.lock:
            if isinstance(self._credential, DelegatedCredential):
                if self._credential.access_token == token:
                    self._credential.access_token = None
                    self._credential.expiry = None
            elif self._service_token is not None and self._service_token.value == token:
                self._service_token = None

    # ── Delegated ──────────────────────────────────────────────────

    def _cached_delegated(self) -> Optional[str]:
        access = self._credential.access
        if access is not None and access.is_live(self._clock(), self._skew):
            return access.value
        return None

    def _refresh_delegated(self) -> str:
        credential = self._credential
        if not credential.refresh_token:
            if credential.access_token:
                raise AuthUnavailable("Access token expired and no refresh token is stored")
            raise AuthUnavailable("No access token or refresh token; authentication required")
        if self._refresher is None:
            raise AuthUnavailable("Refresh token present but no OAuth client is configured")

        logger.info("Access token missing or expired, refreshing")
        token = self._refresher.refresh(credential)
        credential.access_token = token.value
        credential.expiry = token.expires_at
        return token.value

    # ── Service identity ───────────────────────────────────────────

    def _cached_service(self) -> Optional[str]:
        if self._service_token is not None and self._service_token.is_live(self._clock(), self._skew):
            return self._service_token.value
        return None

    def _exchange_assertion(self) -> str:
        logger.info(f"Minting service-account token for {self._credential.issuer}")
        self._service_token = self._exchanger.exchange(self._credential)
        return self._service_token.value
