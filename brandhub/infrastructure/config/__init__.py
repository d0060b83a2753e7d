from .settings import (
    ApiSettings,
    OAuthSettings,
    ServiceAccountSettings,
    Settings,
    WebSettings,
    get_settings,
)

__all__ = [
    "ApiSettings",
    "OAuthSettings",
    "ServiceAccountSettings",
    "Settings",
    "WebSettings",
    "get_settings",
]
