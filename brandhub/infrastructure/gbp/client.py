"""
Business Profile Client - Logical Operations
============================================

The only entry point the rest of the application uses. A client is an
explicit value built per request (or per job) around one credential; there
is no module-level instance.

USAGE:
    client = BusinessProfileClient.from_credential(
        DelegatedCredential(refresh_token=cookie_value)
    )
    for location in client.list_locations("accounts/112022557985287772374"):
        print(location.display_name)

IDENTIFIERS:
    Accounts, locations, reviews and posts may be passed as full resource
    names ("accounts/1/locations/2") or as bare numeric ids; they are
    qualified here, before any request is built.

AUTH RETRY:
    If the vendor answers 401 and the credential can be renewed, the token
    is dropped and the whole operation is retried exactly once.
"""

import logging
import re
import time
from datetime import date
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

import requests

from ..config.settings import ApiSettings, ServiceAccountSettings, Settings, get_settings
from .catalog import Operation
from .credentials import CredentialStore, ServiceIdentity
from .errors import AuthExpired, AuthUnavailable, InvalidRequest
from .executor import ExecutionResult, RequestExecutor
from .models import (
    Account,
    CallToAction,
    ConnectionCheck,
    InsightSeries,
    Location,
    Post,
    Review,
    ReviewReply,
)
from .normalizer import ResponseNormalizer, denormalize_location, post_body
from .oauth import ServiceTokenExchanger, TokenRefresher

logger = logging.getLogger(__name__)

_SEGMENT = r"[A-Za-z0-9_\-]+"
_LOCATION_NAME = re.compile(rf"^(?:accounts/({_SEGMENT})/)?locations/({_SEGMENT})$")
_CHILD_NAME = re.compile(rf"^accounts/({_SEGMENT})/locations/({_SEGMENT})/(reviews|localPosts)/({_SEGMENT})$")
_BARE = re.compile(rf"^{_SEGMENT}$")


def account_id(account: str) -> str:
    """'accounts/123' or '123' -> '123'"""
    value = (account or "").strip()
    if value.startswith("accounts/"):
        value = value[len("accounts/"):]
    if not _BARE.match(value):
        raise InvalidRequest(f"not an account identifier: {account!r}")
    return value


def split_location(location: str, account: Optional[str] = None) -> Tuple[Optional[str], str]:
    """
    'accounts/1/locations/2', 'locations/2' or '2' -> (account id or None, '2').

    An account embedded in the location name wins over the account argument.
    """
    value = (location or "").strip()
    match = _LOCATION_NAME.match(value)
    if match:
        embedded, location_id = match.groups()
    elif _BARE.match(value):
        embedded, location_id = None, value
    else:
        raise InvalidRequest(f"not a location identifier: {location!r}")
    if embedded:
        return embedded, location_id
    return (account_id(account) if account else None), location_id


def split_child(name: str, kind: str) -> Tuple[str, str, str]:
    """'accounts/1/locations/2/reviews/3' -> ('1', '2', '3')"""
    match = _CHILD_NAME.match((name or "").strip())
    if not match or match.group(3) != kind:
        raise InvalidRequest(f"expected accounts/{{id}}/locations/{{id}}/{kind}/{{id}}, got {name!r}")
    account, location, _, child = match.groups()
    return account, location, child


def _location_name(account: Optional[str], location: str) -> str:
    return f"accounts/{account}/locations/{location}" if account else f"locations/{location}"


def service_identity(settings: ServiceAccountSettings) -> ServiceIdentity:
    """Build the service identity described by the environment."""
    if not settings.is_configured:
        raise AuthUnavailable("No service account configured")
    return ServiceIdentity(
        issuer=settings.client_email,
        signing_key=settings.private_key,
        audience=settings.token_uri,
        key_id=settings.private_key_id or None,
        scopes=settings.scopes,
        subject=settings.subject,
    )


class BusinessProfileClient:
    """
    Accounts, locations, reviews, posts and insights of one credential.

    Every method returns canonical records (see models.py) or raises a
    BusinessProfileError subclass (see errors.py).
    """

    def __init__(
        self,
        credentials: CredentialStore,
        executor: Optional[RequestExecutor] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        api_settings: Optional[ApiSettings] = None,
    ):
        self._credentials = credentials
        self._api = api_settings or ApiSettings()
        self._executor = executor or RequestExecutor(credentials, timeout=self._api.request_timeout_seconds)
        self._normalizer = normalizer or ResponseNormalizer()

    @classmethod
    def from_credential(
        cls,
        credential,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ) -> "BusinessProfileClient":
        """Wire store, token sources and executor for one credential."""
        settings = settings or get_settings()
        session = session or requests.Session()
        timeout = settings.api.request_timeout_seconds

        refresher = None
        if settings.oauth.is_configured:
            refresher = TokenRefresher(
                settings.oauth.client_id,
                settings.oauth.client_secret,
                token_uri=settings.oauth.token_uri,
                session=session,
                timeout=timeout,
                clock=clock,
            )
        exchanger = ServiceTokenExchanger(
            session=session,
            timeout=timeout,
            clock=clock,
            assertion_lifetime=settings.api.assertion_lifetime_seconds,
        )
        store = CredentialStore(
            credential,
            refresher=refresher,
            exchanger=exchanger,
            clock=clock,
            expiry_skew=settings.api.token_expiry_skew_seconds,
        )
        executor = RequestExecutor(store, session=session, timeout=timeout)
        return cls(store, executor=executor, api_settings=settings.api)

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    # ── Plumbing ───────────────────────────────────────────────────

    def _execute(
        self,
        operation: Operation,
        params: Mapping[str, Optional[str]],
        query: Optional[Mapping[str, Any]] = None,
        body: Optional[Any] = None,
    ) -> ExecutionResult:
        # Fails with AuthUnavailable before any request is made
        token = self._credentials.current_bearer_token()
        try:
            return self._executor.execute(operation, params, query=query, body=body)
        except AuthExpired:
            if not self._credentials.can_renew:
                raise
            logger.info(f"[{operation.value}] access token rejected, renewing and retrying once")
            self._credentials.invalidate(token)
            return self._executor.execute(operation, params, query=query, body=body)

    def _run(
        self,
        operation: Operation,
        params: Mapping[str, Optional[str]],
        query: Optional[Mapping[str, Any]] = None,
        body: Optional[Any] = None,
        **context: Any,
    ) -> List[Any]:
        result = self._execute(operation, params, query=query, body=body)
        return self._normalizer.normalize(operation, result.generation, result.payload, **context)

    # ── Accounts ───────────────────────────────────────────────────

    def list_accounts(self) -> List[Account]:
        return self._run(Operation.LIST_ACCOUNTS, {})

    def check_connection(self) -> ConnectionCheck:
        """
        Diagnostic account listing across every API generation.

        Tries account management, then performance, then the legacy API
        and reports which one answered.
        """
        result = self._execute(Operation.CHECK_CONNECTION, {})
        accounts = self._normalizer.normalize(Operation.CHECK_CONNECTION, result.generation, result.payload)
        logger.info(
            f"Connection check answered by {result.candidate.host} "
            f"after {result.attempts} attempt(s), {len(accounts)} account(s)"
        )
        return ConnectionCheck(result.generation, result.candidate.host, tuple(accounts))

    # ── Locations ──────────────────────────────────────────────────

    def list_locations(self, account: str) -> List[Location]:
        acc = account_id(account)
        return self._run(
            Operation.LIST_LOCATIONS,
            {"account_id": acc},
            account_id=f"accounts/{acc}",
        )

    def get_location(self, location: str, account: Optional[str] = None) -> Location:
        acc, loc = split_location(location, account)
        return self._run(
            Operation.GET_LOCATION,
            {"account_id": acc, "location_id": loc},
            account_id=f"accounts/{acc}" if acc else None,
        )[0]

    def update_location(self, location: str, changes: Mapping[str, Any], account: Optional[str] = None) -> Location:
        """
        Patch canonical location fields (display_name, store_code, phone,
        website_url, primary_category, coordinates, language_code).
        """
        acc, loc = split_location(location, account)
        body, mask = denormalize_location(changes)
        return self._run(
            Operation.UPDATE_LOCATION,
            {"location_id": loc},
            query={"updateMask": mask},
            body=body,
            account_id=f"accounts/{acc}" if acc else None,
        )[0]

    def create_location(
        self,
        account: str,
        fields: Mapping[str, Any],
        request_id: Optional[str] = None,
        validate_only: bool = False,
    ) -> Location:
        acc = account_id(account)
        body, _ = denormalize_location(fields)
        query = {}
        if request_id:
            query["requestId"] = request_id
        if validate_only:
            query["validateOnly"] = "true"
        return self._run(
            Operation.CREATE_LOCATION,
            {"account_id": acc},
            query=query,
            body=body,
            account_id=f"accounts/{acc}",
        )[0]

    # ── Reviews ────────────────────────────────────────────────────

    def list_reviews(self, location: str, account: Optional[str] = None) -> List[Review]:
        """Newest-updated first, at most 50 (legacy API only)."""
        acc, loc = split_location(location, account)
        return self._run(
            Operation.LIST_REVIEWS,
            {"account_id": acc, "location_id": loc},
            location_id=_location_name(acc, loc),
        )

    def reply_to_review(self, review: str, comment: str) -> ReviewReply:
        acc, loc, review_id = split_child(review, "reviews")
        if not comment or not comment.strip():
            raise InvalidRequest("reply comment is empty", operation=Operation.REPLY_REVIEW.value)
        return self._run(
            Operation.REPLY_REVIEW,
            {"account_id": acc, "location_id": loc, "review_id": review_id},
            body={"comment": comment},
        )[0]

    # ── Posts ──────────────────────────────────────────────────────

    def list_posts(self, location: str, account: Optional[str] = None) -> List[Post]:
        acc, loc = split_location(location, account)
        return self._run(
            Operation.LIST_POSTS,
            {"account_id": acc, "location_id": loc},
            location_id=_location_name(acc, loc),
        )

    def create_post(
        self,
        location: str,
        summary: str,
        topic_type: str = "STANDARD",
        call_to_action: Optional[CallToAction] = None,
        language_code: str = "en",
        account: Optional[str] = None,
    ) -> Post:
        acc, loc = split_location(location, account)
        return self._run(
            Operation.CREATE_POST,
            {"account_id": acc, "location_id": loc},
            body=post_body(summary, topic_type, call_to_action, language_code),
            location_id=_location_name(acc, loc),
        )[0]

    def delete_post(self, post: str) -> None:
        acc, loc, post_id = split_child(post, "localPosts")
        self._run(
            Operation.DELETE_POST,
            {"account_id": acc, "location_id": loc, "post_id": post_id},
        )

    # ── Insights ───────────────────────────────────────────────────

    def fetch_insights(
        self,
        location: str,
        start: date,
        end: date,
        metrics: Optional[Sequence[str]] = None,
    ) -> List[InsightSeries]:
        """
        Daily performance metrics between start and end (inclusive).

        The range goes out as discrete year/month/day query parameters.
        """
        if start > end:
            raise InvalidRequest(
                f"start date {start} is after end date {end}",
                operation=Operation.FETCH_INSIGHTS.value,
            )
        acc, loc = split_location(location)
        query = {
            "dailyMetrics": list(metrics or self._api.default_insight_metrics),
            "dailyRange.start_date.year": start.year,
            "dailyRange.start_date.month": start.month,
            "dailyRange.start_date.day": start.day,
            "dailyRange.end_date.year": end.year,
            "dailyRange.end_date.month": end.month,
            "dailyRange.end_date.day": end.day,
        }
        return self._run(
            Operation.FETCH_INSIGHTS,
            {"location_id": loc},
            query=query,
            location_id=_location_name(acc, loc),
        )
