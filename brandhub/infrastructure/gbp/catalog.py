"""
Endpoint Catalog - Candidate Requests per Logical Operation
===========================================================

The vendor serves the same business concepts from several API generations
whose availability differs per account and region. Each logical operation
maps to an ordered tuple of candidate request templates; RequestExecutor
tries them in order and stops at the first success.

Adding a new API generation is a change to CATALOG only.
"""

from dataclasses import dataclass, field
from enum import Enum
from string import Formatter
from typing import Dict, FrozenSet, Mapping, Tuple
from urllib.parse import quote

from .errors import TERMINAL, Classification

ACCOUNT_MANAGEMENT_HOST = "https://mybusinessaccountmanagement.googleapis.com"
BUSINESS_INFORMATION_HOST = "https://mybusinessbusinessinformation.googleapis.com"
PERFORMANCE_HOST = "https://businessprofileperformance.googleapis.com"
LEGACY_HOST = "https://mybusiness.googleapis.com"

# Generation labels, also the keys of the normalizer's mapping table
V1 = "v1"
V4 = "v4"

# Fields requested from business information v1 for a single location
LOCATION_READ_MASK = (
    "name,title,storeCode,categories,phoneNumbers,websiteUri,latlng,openInfo"
)


class Operation(Enum):
    LIST_ACCOUNTS = "list-accounts"
    CHECK_CONNECTION = "check-connection"
    LIST_LOCATIONS = "list-locations"
    GET_LOCATION = "get-location"
    UPDATE_LOCATION = "update-location"
    CREATE_LOCATION = "create-location"
    LIST_REVIEWS = "list-reviews"
    REPLY_REVIEW = "reply-review"
    LIST_POSTS = "list-posts"
    CREATE_POST = "create-post"
    DELETE_POST = "delete-post"
    FETCH_INSIGHTS = "fetch-insights"


@dataclass(frozen=True)
class Candidate:
    """One concrete request template for an operation."""
    generation: str
    method: str
    host: str
    path: str
    query: Mapping[str, str] = field(default_factory=dict)

    @property
    def required_params(self) -> FrozenSet[str]:
        return frozenset(
            name for _, name, _, _ in Formatter().parse(self.path) if name
        )

    def accepts(self, params: Mapping[str, str]) -> bool:
        """True if every placeholder of the path has a non-empty value."""
        return all(params.get(name) for name in self.required_params)

    def url(self, params: Mapping[str, str]) -> str:
        quoted = {name: quote(str(params[name]), safe="") for name in self.required_params}
        return self.host + self.path.format(**quoted)


@dataclass(frozen=True)
class CatalogEntry:
    candidates: Tuple[Candidate, ...]
    # Failures after which the next candidate is tried
    fallthrough_on: FrozenSet[Classification] = TERMINAL


_ACCOUNT_MGMT_ACCOUNTS = Candidate(V1, "GET", ACCOUNT_MANAGEMENT_HOST, "/v1/accounts")

CATALOG: Dict[Operation, CatalogEntry] = {
    Operation.LIST_ACCOUNTS: CatalogEntry((_ACCOUNT_MGMT_ACCOUNTS,)),

    # Diagnostic path only: any failure but an auth one moves on
    Operation.CHECK_CONNECTION: CatalogEntry(
        (
            _ACCOUNT_MGMT_ACCOUNTS,
            Candidate(V1, "GET", PERFORMANCE_HOST, "/v1/accounts"),
            Candidate(V4, "GET", LEGACY_HOST, "/v4/accounts"),
        ),
        fallthrough_on=frozenset(Classification) - {
            Classification.SUCCESS,
            Classification.AUTH_EXPIRED,
            Classification.AUTH_UNAVAILABLE,
        },
    ),

    Operation.LIST_LOCATIONS: CatalogEntry(
        (
            Candidate(
                V1, "GET", BUSINESS_INFORMATION_HOST,
                "/v1/accounts/{account_id}/locations",
                {"readMask": "name,title"},
            ),
            Candidate(V4, "GET", LEGACY_HOST, "/v4/accounts/{account_id}/locations"),
        ),
        fallthrough_on=frozenset({Classification.NOT_FOUND, Classification.PERMISSION_DENIED}),
    ),

    Operation.GET_LOCATION: CatalogEntry(
        (
            Candidate(
                V1, "GET", BUSINESS_INFORMATION_HOST,
                "/v1/locations/{location_id}",
                {"readMask": LOCATION_READ_MASK},
            ),
            Candidate(V4, "GET", LEGACY_HOST, "/v4/accounts/{account_id}/locations/{location_id}"),
        ),
    ),

    Operation.UPDATE_LOCATION: CatalogEntry(
        (Candidate(V1, "PATCH", BUSINESS_INFORMATION_HOST, "/v1/locations/{location_id}"),),
    ),

    Operation.CREATE_LOCATION: CatalogEntry(
        (Candidate(V1, "POST", BUSINESS_INFORMATION_HOST, "/v1/accounts/{account_id}/locations"),),
    ),

    # Reviews only exist on the legacy generation
    Operation.LIST_REVIEWS: CatalogEntry(
        (
            Candidate(
                V4, "GET", LEGACY_HOST,
                "/v4/accounts/{account_id}/locations/{location_id}/reviews",
                {"orderBy": "updateTime desc", "pageSize": "50"},
            ),
        ),
    ),

    Operation.REPLY_REVIEW: CatalogEntry(
        (
            Candidate(
                V4, "PUT", LEGACY_HOST,
                "/v4/accounts/{account_id}/locations/{location_id}/reviews/{review_id}:updateReply",
            ),
        ),
    ),

    Operation.LIST_POSTS: CatalogEntry(
        (Candidate(V4, "GET", LEGACY_HOST, "/v4/accounts/{account_id}/locations/{location_id}/localPosts"),),
    ),

    Operation.CREATE_POST: CatalogEntry(
        (
            Candidate(
                V1, "POST", ACCOUNT_MANAGEMENT_HOST,
                "/v1/accounts/{account_id}/locations/{location_id}/localPosts",
            ),
            Candidate(
                V4, "POST", LEGACY_HOST,
                "/v4/accounts/{account_id}/locations/{location_id}/localPosts",
            ),
        ),
    ),

    Operation.DELETE_POST: CatalogEntry(
        (
            Candidate(
                V4, "DELETE", LEGACY_HOST,
                "/v4/accounts/{account_id}/locations/{location_id}/localPosts/{post_id}",
            ),
        ),
    ),

    Operation.FETCH_INSIGHTS: CatalogEntry(
        (
            Candidate(
                V1, "GET", PERFORMANCE_HOST,
                "/v1/locations/{location_id}:fetchMultiDailyMetricsTimeSeries",
            ),
        ),
    ),
}
