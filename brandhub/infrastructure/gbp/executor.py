"""
Request Executor - Ordered Candidate Fallback
=============================================

Walks the catalog candidates of one operation strictly in order, one
attempt each, and returns the first successful payload.

RULES:
- Success: return at once, later candidates are never tried
- AuthExpired: raise at once so the caller can refresh and retry once
- A failure in the operation's fall-through set moves on to the next
  candidate, if there is one
- Anything else, or no candidates left: raise the failure of the LAST
  attempted candidate

Candidates are never tried concurrently: every attempt costs one unit of
vendor quota.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import requests

from .catalog import CATALOG, Candidate, CatalogEntry, Operation
from .credentials import CredentialStore
from .errors import (
    BusinessProfileError,
    Classification,
    InvalidRequest,
    MalformedResponse,
    classify,
    describe,
    error_for,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionResult:
    """Payload of the first successful candidate."""
    candidate: Candidate
    payload: Any
    attempts: int = 1

    @property
    def generation(self) -> str:
        return self.candidate.generation


class RequestExecutor:
    """
    Issues the HTTP calls for logical operations.

    USAGE:
        executor = RequestExecutor(store, timeout=15)
        result = executor.execute(Operation.LIST_LOCATIONS, {"account_id": "123"})
        result.generation   # "v1" or "v4"
        result.payload      # decoded JSON
    """

    def __init__(
        self,
        credentials: CredentialStore,
        session: Optional[requests.Session] = None,
        timeout: float = 15.0,
        catalog: Mapping[Operation, CatalogEntry] = CATALOG,
    ):
        self._credentials = credentials
        self._session = session or requests.Session()
        self._timeout = timeout
        self._catalog = catalog

    def execute(
        self,
        operation: Operation,
        params: Mapping[str, str],
        query: Optional[Mapping[str, Any]] = None,
        body: Optional[Any] = None,
    ) -> ExecutionResult:
        entry = self._catalog[operation]
        candidates = [c for c in entry.candidates if c.accepts(params)]
        if not candidates:
            missing = sorted(n for n in entry.candidates[0].required_params if not params.get(n))
            raise InvalidRequest(
                f"missing identifiers: {', '.join(missing)}",
                operation=operation.value,
            )

        *earlier, last = candidates
        for attempt, candidate in enumerate(earlier, start=1):
            try:
                return self._answer(operation, candidate, attempt, params, query, body)
            except BusinessProfileError as e:
                if e.classification is Classification.AUTH_EXPIRED:
                    raise
                if e.classification not in entry.fallthrough_on:
                    raise
                logger.warning(
                    f"[{operation.value}] {candidate.generation} candidate {candidate.host} "
                    f"failed with {e.classification.value}, trying next candidate"
                )

        # No fallback left: whatever the last candidate raises goes to the caller
        return self._answer(operation, last, len(candidates), params, query, body)

    def _answer(
        self,
        operation: Operation,
        candidate: Candidate,
        attempt: int,
        params: Mapping[str, str],
        query: Optional[Mapping[str, Any]],
        body: Optional[Any],
    ) -> ExecutionResult:
        payload = self._attempt(operation, candidate, params, query, body)
        if attempt > 1:
            logger.info(
                f"[{operation.value}] answered by fallback candidate "
                f"{candidate.generation} {candidate.host}"
            )
        return ExecutionResult(candidate, payload, attempts=attempt)

    def _attempt(
        self,
        operation: Operation,
        candidate: Candidate,
        params: Mapping[str, str],
        query: Optional[Mapping[str, Any]],
        body: Optional[Any],
    ) -> Any:
        token = self._credentials.current_bearer_token()
        url = candidate.url(params)
        merged_query = {**candidate.query, **(query or {})}
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

        logger.debug(f"[{operation.value}] {candidate.method} {url}")
        try:
            response = self._session.request(
                candidate.method,
                url,
                headers=headers,
                params=merged_query or None,
                json=body,
                timeout=self._timeout,
            )
        except requests.Timeout:
            raise error_for(
                Classification.TRANSIENT,
                f"timed out after {self._timeout}s at {candidate.host}",
                operation=operation.value,
            )
        except requests.RequestException as e:
            raise error_for(Classification.TRANSIENT, f"{candidate.host}: {e}", operation=operation.value)

        decoded = _decode(response)
        classification = classify(response.status_code, decoded)
        if classification is not Classification.SUCCESS:
            logger.info(
                f"[{operation.value}] {candidate.generation} {candidate.host} "
                f"-> {response.status_code} {classification.value}"
            )
            raise error_for(
                classification,
                describe(decoded),
                status=response.status_code,
                operation=operation.value,
            )

        if decoded is None:
            return {}
        if isinstance(decoded, str):
            logger.error(f"[{operation.value}] non-JSON success body from {candidate.host}")
            raise MalformedResponse(
                "success response is not JSON",
                status=response.status_code,
                operation=operation.value,
            )
        return decoded


def _decode(response) -> Any:
    """JSON body, the raw text if it is not JSON, or None if empty."""
    text = response.text
    if not text or not text.strip():
        return None
    try:
        return response.json()
    except ValueError:
        return text
