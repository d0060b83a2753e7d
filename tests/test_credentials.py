"""
Credential Store Tests
======================

Token caching, lazy renewal, single-flight refresh and the rule that a
refresh token is never lost.
"""

import threading
import time

import pytest

from brandhub.infrastructure.gbp import (
    AuthExpired,
    AuthUnavailable,
    CredentialStore,
    DelegatedCredential,
    ServiceIdentity,
    Token,
)


class FakeRefresher:
    def __init__(self, clock, value="fresh-token", lifetime=3600, error=None, delay=0.0):
        self.clock = clock
        self.value = value
        self.lifetime = lifetime
        self.error = error
        self.delay = delay
        self.calls = 0

    def refresh(self, credential):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        return Token(f"{self.value}-{self.calls}", self.clock() + self.lifetime)


class FakeExchanger:
    def __init__(self, clock, lifetime=3600):
        self.clock = clock
        self.lifetime = lifetime
        self.calls = 0

    def exchange(self, identity):
        self.calls += 1
        return Token(f"svc-{self.calls}", self.clock() + self.lifetime)


IDENTITY = ServiceIdentity(issuer="svc@project.iam.gserviceaccount.com", signing_key="unused")


# =============================================================================
# SECTION 1: DELEGATED CREDENTIALS
# =============================================================================

class TestDelegated:

    def test_live_token_is_returned_without_refresh(self, clock):
        refresher = FakeRefresher(clock)
        credential = DelegatedCredential("live", "refresh", expiry=clock() + 3600)
        store = CredentialStore(credential, refresher=refresher, clock=clock)

        assert store.current_bearer_token() == "live"
        assert refresher.calls == 0

    def test_unknown_expiry_counts_as_live(self, clock):
        store = CredentialStore(DelegatedCredential("live"), clock=clock)
        assert store.current_bearer_token() == "live"

    def test_expired_token_is_refreshed_and_refresh_token_kept(self, clock):
        refresher = FakeRefresher(clock)
        credential = DelegatedCredential("stale", "refresh-1", expiry=clock() - 1)
        store = CredentialStore(credential, refresher=refresher, clock=clock)

        assert store.current_bearer_token() == "fresh-token-1"
        assert credential.access_token == "fresh-token-1"
        assert credential.expiry == clock() + 3600
        assert credential.refresh_token == "refresh-1"

        # Cached from now on
        assert store.current_bearer_token() == "fresh-token-1"
        assert refresher.calls == 1

    def test_token_inside_skew_window_is_renewed(self, clock):
        refresher = FakeRefresher(clock)
        credential = DelegatedCredential("nearly", "refresh", expiry=clock() + 30)
        store = CredentialStore(credential, refresher=refresher, clock=clock, expiry_skew=60)

        assert store.current_bearer_token() == "fresh-token-1"

    def test_missing_access_token_is_fetched(self, clock):
        refresher = FakeRefresher(clock)
        store = CredentialStore(DelegatedCredential(refresh_token="refresh"), refresher=refresher, clock=clock)
        assert store.current_bearer_token() == "fresh-token-1"

    def test_no_tokens_at_all(self, clock):
        refresher = FakeRefresher(clock)
        store = CredentialStore(DelegatedCredential(), refresher=refresher, clock=clock)

        with pytest.raises(AuthUnavailable):
            store.current_bearer_token()
        assert refresher.calls == 0

    def test_expired_without_refresh_token(self, clock):
        refresher = FakeRefresher(clock)
        credential = DelegatedCredential("stale", expiry=clock() - 1)
        store = CredentialStore(credential, refresher=refresher, clock=clock)

        with pytest.raises(AuthUnavailable) as exc:
            store.current_bearer_token()
        assert "no refresh token" in exc.value.detail
        assert refresher.calls == 0

    def test_refresh_token_without_oauth_client(self, clock):
        store = CredentialStore(DelegatedCredential(refresh_token="refresh"), clock=clock)
        with pytest.raises(AuthUnavailable):
            store.current_bearer_token()
        assert not store.can_renew

    def test_failed_refresh_keeps_refresh_token(self, clock):
        refresher = FakeRefresher(clock, error=AuthExpired("invalid_grant", status=400))
        credential = DelegatedCredential("stale", "refresh-1", expiry=clock() - 1)
        store = CredentialStore(credential, refresher=refresher, clock=clock)

        with pytest.raises(AuthExpired):
            store.current_bearer_token()
        assert credential.refresh_token == "refresh-1"

    def test_concurrent_callers_share_one_refresh(self):
        refresher = FakeRefresher(time.time, delay=0.05)
        credential = DelegatedCredential(refresh_token="refresh")
        store = CredentialStore(credential, refresher=refresher)

        results = []

        def worker():
            results.append(store.current_bearer_token())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert refresher.calls == 1
        assert results == ["fresh-token-1"] * 8

    def test_invalidate_only_drops_the_rejected_token(self, clock):
        credential = DelegatedCredential("current", "refresh")
        store = CredentialStore(credential, refresher=FakeRefresher(clock), clock=clock)

        store.invalidate("older")
        assert credential.access_token == "current"

        store.invalidate("current")
        assert credential.access_token is None
        assert credential.refresh_token == "refresh"
        assert store.current_bearer_token() == "fresh-token-1"

    def test_repr_hides_tokens(self):
        text = repr(DelegatedCredential("ya29.secret", "1//secret"))
        assert "secret" not in text


# =============================================================================
# SECTION 2: SERVICE IDENTITY
# =============================================================================

class TestServiceIdentity:

    def test_token_is_cached_until_expiry(self, clock):
        exchanger = FakeExchanger(clock)
        store = CredentialStore(IDENTITY, exchanger=exchanger, clock=clock)

        assert store.current_bearer_token() == "svc-1"
        assert store.current_bearer_token() == "svc-1"
        assert exchanger.calls == 1

        clock.advance(3600 - 59)
        assert store.current_bearer_token() == "svc-2"
        assert exchanger.calls == 2

    def test_invalidate_forces_a_new_exchange(self, clock):
        exchanger = FakeExchanger(clock)
        store = CredentialStore(IDENTITY, exchanger=exchanger, clock=clock)

        token = store.current_bearer_token()
        store.invalidate(token)
        assert store.current_bearer_token() == "svc-2"

    def test_needs_an_exchanger(self):
        with pytest.raises(ValueError):
            CredentialStore(IDENTITY)

    def test_kind_and_renewal(self, clock):
        store = CredentialStore(IDENTITY, exchanger=FakeExchanger(clock), clock=clock)
        assert store.kind == "service_account"
        assert store.can_renew

        delegated = CredentialStore(DelegatedCredential("a", "r"), refresher=FakeRefresher(clock))
        assert delegated.kind == "oauth"
        assert delegated.can_renew


def test_unsupported_credential_type():
    with pytest.raises(TypeError):
        CredentialStore({"access_token": "x"})
