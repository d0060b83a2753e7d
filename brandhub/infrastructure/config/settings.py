"""
Settings Module - Centralized Configuration Management
=======================================================

ARCHITECTURAL DECISION:
- All configuration is loaded from environment variables (no hardcoded secrets)
- Settings are immutable dataclasses for safety and clarity
- Single source of truth for OAuth, service-account, API and web settings

SERVICE ACCOUNT:
- GOOGLE_SERVICE_ACCOUNT_JSON may hold the whole key file as JSON
- Otherwise GOOGLE_CLIENT_EMAIL + GOOGLE_PRIVATE_KEY (+ GOOGLE_PRIVATE_KEY_ID)
  are used; literal "\\n" sequences in the key are turned into newlines
"""

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv

# Load .env file if present (development convenience)
load_dotenv()

BUSINESS_MANAGE_SCOPE = "https://www.googleapis.com/auth/business.manage"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _service_account_blob() -> dict:
    raw = os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON", "")
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"GOOGLE_SERVICE_ACCOUNT_JSON is not valid JSON: {e}")


@dataclass(frozen=True)
class OAuthSettings:
    """OAuth client used for delegated (end-user) authorization."""

    client_id: str = field(default_factory=lambda: os.getenv("GOOGLE_CLIENT_ID", ""))
    client_secret: str = field(default_factory=lambda: os.getenv("GOOGLE_CLIENT_SECRET", ""))
    redirect_uri: str = field(
        default_factory=lambda: os.getenv(
            "GOOGLE_REDIRECT_URI",
            os.getenv("APP_URL", "http://localhost:8000").rstrip("/")
            + "/api/google-business/auth/callback",
        )
    )

    auth_uri: str = "https://accounts.google.com/o/oauth2/v2/auth"
    token_uri: str = DEFAULT_TOKEN_URI
    scopes: Tuple[str, ...] = (BUSINESS_MANAGE_SCOPE,)

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class ServiceAccountSettings:
    """Service identity used for machine-to-machine access."""

    client_email: str = field(
        default_factory=lambda: _service_account_blob().get("client_email")
        or os.getenv("GOOGLE_CLIENT_EMAIL", "")
    )
    private_key: str = field(
        default_factory=lambda: (
            _service_account_blob().get("private_key")
            or os.getenv("GOOGLE_PRIVATE_KEY", "")
        ).replace("\\n", "\n")
    )
    private_key_id: str = field(
        default_factory=lambda: _service_account_blob().get("private_key_id")
        or os.getenv("GOOGLE_PRIVATE_KEY_ID", "")
    )
    token_uri: str = field(
        default_factory=lambda: _service_account_blob().get("token_uri") or DEFAULT_TOKEN_URI
    )
    # Optional user to act on behalf of (domain-wide delegation)
    subject: Optional[str] = field(
        default_factory=lambda: os.getenv("GOOGLE_IMPERSONATE_SUBJECT") or None
    )
    scopes: Tuple[str, ...] = (BUSINESS_MANAGE_SCOPE,)

    @property
    def is_configured(self) -> bool:
        return bool(self.client_email and self.private_key)


@dataclass(frozen=True)
class ApiSettings:
    """Vendor API behaviour."""

    # Bounds every single candidate attempt
    request_timeout_seconds: float = field(
        default_factory=lambda: _env_float("GBP_REQUEST_TIMEOUT_SECONDS", 15.0)
    )
    # Cached tokens are renewed this long before they expire
    token_expiry_skew_seconds: float = field(
        default_factory=lambda: _env_float("GBP_TOKEN_EXPIRY_SKEW_SECONDS", 60.0)
    )
    # Lifetime of minted service-account assertions (vendor maximum is 1h)
    assertion_lifetime_seconds: int = 3600

    default_insight_metrics: Tuple[str, ...] = (
        "BUSINESS_IMPRESSIONS_DESKTOP_SEARCH",
        "BUSINESS_IMPRESSIONS_MOBILE_SEARCH",
        "BUSINESS_IMPRESSIONS_DESKTOP_MAPS",
        "BUSINESS_IMPRESSIONS_MOBILE_MAPS",
        "WEBSITE_CLICKS",
        "CALL_CLICKS",
        "BUSINESS_DIRECTION_REQUESTS",
    )


@dataclass(frozen=True)
class WebSettings:
    """JSON API / cookie settings."""

    app_url: str = field(
        default_factory=lambda: os.getenv("APP_URL", "http://localhost:8000").rstrip("/")
    )
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development"))

    access_cookie: str = "gbp_access_token"
    refresh_cookie: str = "gbp_refresh_token"
    access_cookie_max_age: int = 3600  # 1 hour
    refresh_cookie_max_age: int = 30 * 24 * 60 * 60  # 30 days

    @property
    def secure_cookies(self) -> bool:
        return self.environment == "production"


@dataclass(frozen=True)
class Settings:
    """
    Root settings container - Single source of truth for all configuration.

    Usage:
        from brandhub.infrastructure.config import get_settings
        settings = get_settings()
        print(settings.api.request_timeout_seconds)
    """

    oauth: OAuthSettings = field(default_factory=OAuthSettings)
    service_account: ServiceAccountSettings = field(default_factory=ServiceAccountSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
    web: WebSettings = field(default_factory=WebSettings)

    def validate(self) -> list[str]:
        """
        Validate settings and return list of warnings/errors.
        Returns empty list if all settings are valid.
        """
        issues = []

        if not self.oauth.is_configured:
            issues.append(
                "WARNING: GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET not set. "
                "Delegated sign-in and token refresh are unavailable."
            )

        if not self.service_account.is_configured:
            issues.append(
                "WARNING: No service account configured "
                "(GOOGLE_SERVICE_ACCOUNT_JSON or GOOGLE_CLIENT_EMAIL + GOOGLE_PRIVATE_KEY). "
                "Requests without a signed-in user will be rejected."
            )
        elif "BEGIN PRIVATE KEY" not in self.service_account.private_key:
            issues.append(
                "WARNING: GOOGLE_PRIVATE_KEY does not look like a PEM private key."
            )

        if self.api.request_timeout_seconds <= 0:
            issues.append("ERROR: GBP_REQUEST_TIMEOUT_SECONDS must be positive.")

        return issues


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get singleton Settings instance.
    Cached to ensure consistent settings throughout application lifecycle.
    """
    return Settings()
