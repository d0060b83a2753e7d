from .catalog import CATALOG, Candidate, CatalogEntry, Operation
from .client import BusinessProfileClient, service_identity
from .credentials import CredentialStore, DelegatedCredential, ServiceIdentity, Token
from .errors import (
    AuthExpired,
    AuthUnavailable,
    BusinessProfileError,
    Classification,
    InvalidRequest,
    MalformedResponse,
    NotFound,
    PermissionDenied,
    RateLimited,
    TransientError,
    classify,
)
from .executor import ExecutionResult, RequestExecutor
from .models import (
    Account,
    CallToAction,
    ConnectionCheck,
    Coordinates,
    InsightSeries,
    Location,
    Post,
    Review,
    ReviewReply,
)
from .normalizer import ResponseNormalizer, normalize_rating
from .oauth import OAuthFlow, ServiceTokenExchanger, TokenRefresher

__all__ = [
    "CATALOG",
    "Candidate",
    "CatalogEntry",
    "Operation",
    "BusinessProfileClient",
    "service_identity",
    "CredentialStore",
    "DelegatedCredential",
    "ServiceIdentity",
    "Token",
    "AuthExpired",
    "AuthUnavailable",
    "BusinessProfileError",
    "Classification",
    "InvalidRequest",
    "MalformedResponse",
    "NotFound",
    "PermissionDenied",
    "RateLimited",
    "TransientError",
    "classify",
    "ExecutionResult",
    "RequestExecutor",
    "Account",
    "CallToAction",
    "ConnectionCheck",
    "Coordinates",
    "InsightSeries",
    "Location",
    "Post",
    "Review",
    "ReviewReply",
    "ResponseNormalizer",
    "normalize_rating",
    "OAuthFlow",
    "ServiceTokenExchanger",
    "TokenRefresher",
]
