"""
Entitlement Gate Tests

Covers every decision branch of ``core.gate.decide`` plus property tests
for the quota rule and purity.

Example usage:
    pytest tests/test_gate.py -v
"""

import dataclasses

import pytest
from hypothesis import given
from hypothesis import strategies as st

from core.gate import GateDecision, decide
from core.identity import AnonymousLead, AuthenticatedAccount, UnknownAccount


def account(used, quota=50, metered=False):
    return AuthenticatedAccount(
        id="acc_1",
        images_used=used,
        images_quota=quota,
        tier="starter",
        metered_billing_enabled=metered,
        metered_billing_handle="cus_1" if metered else None,
    )


class TestAnonymousLead:

    def test_no_email_requires_email(self):
        assert decide(AnonymousLead("203.0.113.7")) is GateDecision.EMAIL_REQUIRED

    def test_no_email_wins_over_exhausted_trial(self):
        lead = AnonymousLead("203.0.113.7", usage_count=10)
        assert decide(lead) is GateDecision.EMAIL_REQUIRED

    @pytest.mark.parametrize("used", [0, 1, 2])
    def test_trial_allows_first_three(self, used):
        lead = AnonymousLead("203.0.113.7", email="a@example.com", usage_count=used)
        assert decide(lead) is GateDecision.ALLOWED

    @pytest.mark.parametrize("used", [3, 4, 100])
    def test_trial_exhausted(self, used):
        lead = AnonymousLead("203.0.113.7", email="a@example.com", usage_count=used)
        assert decide(lead) is GateDecision.LIMIT_REACHED

    def test_pro_lead_ignores_trial_limit(self):
        lead = AnonymousLead("203.0.113.7", email="a@example.com", usage_count=50, is_pro=True)
        assert decide(lead) is GateDecision.ALLOWED

    def test_custom_trial_limit(self):
        lead = AnonymousLead("203.0.113.7", email="a@example.com", usage_count=3)
        assert decide(lead, trial_limit=5) is GateDecision.ALLOWED


class TestAuthenticatedAccount:

    def test_within_quota(self):
        assert decide(account(49)) is GateDecision.ALLOWED

    def test_quota_exhausted(self):
        assert decide(account(50)) is GateDecision.QUOTA_EXCEEDED

    def test_metered_may_exceed_quota(self):
        assert decide(account(75, metered=True)) is GateDecision.ALLOWED


class TestUnknownAccount:

    def test_user_not_found(self):
        assert decide(UnknownAccount("gone")) is GateDecision.USER_NOT_FOUND

    def test_unsupported_identity(self):
        with pytest.raises(TypeError):
            decide(object())


class TestDecisionMetadata:

    @pytest.mark.parametrize("decision,status", [
        (GateDecision.ALLOWED, 200),
        (GateDecision.EMAIL_REQUIRED, 401),
        (GateDecision.LIMIT_REACHED, 403),
        (GateDecision.QUOTA_EXCEEDED, 403),
        (GateDecision.USER_NOT_FOUND, 404),
    ])
    def test_status_codes(self, decision, status):
        assert decision.status_code == status

    def test_only_allowed_is_allowed(self):
        assert [d for d in GateDecision if d.allowed] == [GateDecision.ALLOWED]

    def test_every_decision_has_message(self):
        assert all(d.message for d in GateDecision)


@given(used=st.integers(min_value=0, max_value=10_000), quota=st.integers(min_value=1, max_value=10_000))
def test_non_metered_quota_rule(used, quota):
    expected = GateDecision.QUOTA_EXCEEDED if used >= quota else GateDecision.ALLOWED
    assert decide(account(used, quota)) is expected


@given(used=st.integers(min_value=0, max_value=10_000), quota=st.integers(min_value=1, max_value=10_000))
def test_metered_always_allowed(used, quota):
    assert decide(account(used, quota, metered=True)) is GateDecision.ALLOWED


@given(
    email=st.one_of(st.none(), st.emails()),
    usage=st.integers(min_value=0, max_value=1000),
    is_pro=st.booleans(),
)
def test_decide_is_pure(email, usage, is_pro):
    lead = AnonymousLead("198.51.100.1", email=email, usage_count=usage, is_pro=is_pro)
    snapshot = dataclasses.asdict(lead)

    first = decide(lead)
    second = decide(lead)

    assert first is second
    assert dataclasses.asdict(lead) == snapshot
