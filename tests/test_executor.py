"""
Request Executor Tests
======================

Ordered candidate fallback: first success wins, only the operation's
fall-through failures advance, AuthExpired never advances, and the error
of the last attempted candidate is the one raised.
"""

import pytest
import requests

from brandhub.infrastructure.gbp import (
    AuthExpired,
    CredentialStore,
    DelegatedCredential,
    InvalidRequest,
    MalformedResponse,
    NotFound,
    Operation,
    PermissionDenied,
    RateLimited,
    RequestExecutor,
    TransientError,
)
from brandhub.infrastructure.gbp.catalog import (
    BUSINESS_INFORMATION_HOST,
    CATALOG,
    LEGACY_HOST,
    PERFORMANCE_HOST,
    Candidate,
)

from .conftest import FakeResponse, FakeSession

ACCOUNT = {"account_id": "112022557985287772374"}
NOT_FOUND = (404, {"error": {"code": 404, "message": "Requested entity was not found.", "status": "NOT_FOUND"}})


def make_executor(session: FakeSession) -> RequestExecutor:
    store = CredentialStore(DelegatedCredential(access_token="ya29.live"))
    return RequestExecutor(store, session=session, timeout=5.0)


# =============================================================================
# SECTION 1: FALLBACK ORDER
# =============================================================================

class TestFallback:

    def test_first_success_stops_the_walk(self):
        session = FakeSession((200, {"locations": []}))
        result = make_executor(session).execute(Operation.LIST_LOCATIONS, ACCOUNT)

        assert result.generation == "v1"
        assert result.attempts == 1
        assert result.payload == {"locations": []}
        assert session.urls == [
            f"{BUSINESS_INFORMATION_HOST}/v1/accounts/112022557985287772374/locations"
        ]

    def test_not_found_falls_through_to_legacy(self):
        session = FakeSession(NOT_FOUND, (200, {"locations": [{"name": "accounts/1/locations/2"}]}))
        result = make_executor(session).execute(Operation.LIST_LOCATIONS, ACCOUNT)

        assert result.generation == "v4"
        assert result.attempts == 2
        assert session.urls[1] == f"{LEGACY_HOST}/v4/accounts/112022557985287772374/locations"

    def test_last_candidate_error_is_raised(self):
        session = FakeSession(NOT_FOUND, (403, {"error": {"message": "The caller does not have permission"}}))
        with pytest.raises(PermissionDenied) as exc:
            make_executor(session).execute(Operation.LIST_LOCATIONS, ACCOUNT)

        assert exc.value.status == 403
        assert exc.value.operation == "list-locations"
        assert len(session.calls) == 2

    def test_auth_expired_never_advances(self):
        session = FakeSession((401, {"error": {"code": 401, "status": "UNAUTHENTICATED"}}))
        with pytest.raises(AuthExpired):
            make_executor(session).execute(Operation.LIST_LOCATIONS, ACCOUNT)
        assert len(session.calls) == 1

    def test_rate_limit_outside_fallthrough_set_is_raised(self):
        session = FakeSession((429, {"error": {"status": "RESOURCE_EXHAUSTED"}}))
        with pytest.raises(RateLimited):
            make_executor(session).execute(Operation.LIST_LOCATIONS, ACCOUNT)
        assert len(session.calls) == 1

    def test_connection_check_walks_every_generation(self):
        session = FakeSession(
            (500, {"error": {"status": "INTERNAL"}}),
            (403, {"error": {"status": "PERMISSION_DENIED"}}),
            (200, {"accounts": [{"name": "accounts/1"}]}),
        )
        result = make_executor(session).execute(Operation.CHECK_CONNECTION, {})

        assert result.generation == "v4"
        assert result.attempts == 3
        assert session.urls[1] == f"{PERFORMANCE_HOST}/v1/accounts"

    def test_last_candidate_error_is_raised_even_if_it_could_fall_through(self):
        session = FakeSession((500, {}), (503, {}), NOT_FOUND)
        with pytest.raises(NotFound) as exc:
            make_executor(session).execute(Operation.CHECK_CONNECTION, {})

        assert exc.value.status == 404
        assert session.urls[-1] == f"{LEGACY_HOST}/v4/accounts"
        assert len(session.calls) == 3

    def test_connection_check_stops_on_auth_expired(self):
        session = FakeSession((401, {}))
        with pytest.raises(AuthExpired):
            make_executor(session).execute(Operation.CHECK_CONNECTION, {})
        assert len(session.calls) == 1


# =============================================================================
# SECTION 2: CANDIDATE SELECTION
# =============================================================================

class TestCandidateSelection:

    def test_candidates_missing_identifiers_are_skipped(self):
        session = FakeSession(NOT_FOUND)
        with pytest.raises(NotFound):
            make_executor(session).execute(Operation.GET_LOCATION, {"location_id": "2", "account_id": None})
        assert len(session.calls) == 1

    def test_no_usable_candidate(self):
        session = FakeSession()
        with pytest.raises(InvalidRequest) as exc:
            make_executor(session).execute(Operation.LIST_REVIEWS, {"location_id": "2"})
        assert "account_id" in exc.value.detail
        assert session.calls == []

    def test_path_parameters_are_escaped(self):
        candidate = Candidate("v1", "GET", BUSINESS_INFORMATION_HOST, "/v1/locations/{location_id}")
        assert candidate.url({"location_id": "a/b c"}) == f"{BUSINESS_INFORMATION_HOST}/v1/locations/a%2Fb%20c"

    def test_every_entry_has_candidates(self):
        for operation in Operation:
            assert CATALOG[operation].candidates


# =============================================================================
# SECTION 3: REQUEST SHAPE AND RESPONSE BODIES
# =============================================================================

class TestRequestShape:

    def test_headers_query_and_timeout(self):
        session = FakeSession((200, {"reviews": []}))
        make_executor(session).execute(
            Operation.LIST_REVIEWS,
            {"account_id": "1", "location_id": "2"},
            query={"pageSize": "10"},
        )
        [call] = session.calls
        assert call["method"] == "GET"
        assert call["headers"]["Authorization"] == "Bearer ya29.live"
        assert call["headers"]["Accept"] == "application/json"
        assert call["params"] == {"orderBy": "updateTime desc", "pageSize": "10"}
        assert call["timeout"] == 5.0

    def test_json_body_is_sent(self):
        session = FakeSession((200, {"comment": "Thanks"}))
        make_executor(session).execute(
            Operation.REPLY_REVIEW,
            {"account_id": "1", "location_id": "2", "review_id": "3"},
            body={"comment": "Thanks"},
        )
        [call] = session.calls
        assert call["method"] == "PUT"
        assert call["url"].endswith("/v4/accounts/1/locations/2/reviews/3:updateReply")
        assert call["json"] == {"comment": "Thanks"}

    def test_empty_success_body_is_empty_object(self):
        session = FakeSession(FakeResponse(200, None))
        result = make_executor(session).execute(
            Operation.DELETE_POST, {"account_id": "1", "location_id": "2", "post_id": "3"}
        )
        assert result.payload == {}

    def test_non_json_success_body(self):
        session = FakeSession((200, "<html>maintenance</html>"))
        with pytest.raises(MalformedResponse):
            make_executor(session).execute(Operation.LIST_ACCOUNTS, {})

    @pytest.mark.parametrize("failure", [
        requests.Timeout("read timed out"),
        requests.ConnectionError("connection reset"),
    ])
    def test_network_failures_are_transient(self, failure):
        session = FakeSession(failure)
        with pytest.raises(TransientError) as exc:
            make_executor(session).execute(Operation.LIST_ACCOUNTS, {})
        assert exc.value.retryable
