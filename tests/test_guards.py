"""Tests for authorization predicates, the circuit breaker and the reentrancy guard."""

from __future__ import annotations

import pytest

from rebalancer.errors import StateError
from rebalancer.guards import (
    CircuitBreaker,
    ReentrancyGuard,
    is_allow_listed,
    is_owner_or_admin,
    is_relay,
    recover_callback_signer,
    same_identity,
    sign_callback,
    signature_authorizes,
)

PID = b"\x11" * 32
CHAIN_ID = 1597


class TestIdentity:
    def test_same_identity_ignores_case(self, accounts) -> None:
        address = accounts.owner.address
        assert same_identity(address, address.lower())

    def test_missing_identity_never_matches(self, accounts) -> None:
        assert not same_identity(None, accounts.owner.address)
        assert not same_identity(accounts.owner.address, "")
        assert not same_identity("garbage", "garbage")

    def test_relay_and_owner_predicates(self, accounts) -> None:
        assert is_relay(accounts.relay.address, accounts.relay.address)
        assert not is_relay(accounts.relay.address, accounts.owner.address)

        assert is_owner_or_admin(accounts.owner.address, accounts.admin.address, accounts.owner.address)
        assert is_owner_or_admin(accounts.owner.address, accounts.admin.address, accounts.admin.address)
        assert not is_owner_or_admin(accounts.owner.address, accounts.admin.address, accounts.other.address)

    def test_allow_list(self, accounts) -> None:
        allow = {accounts.relay.address}
        assert is_allow_listed(allow, accounts.relay.address.lower())
        assert not is_allow_listed(allow, accounts.other.address)
        assert not is_allow_listed(allow, None)


class TestCallbackSignatures:
    def test_signature_recovers_signer(self, accounts) -> None:
        signature = sign_callback(accounts.relay.key, PID, CHAIN_ID)

        assert len(signature) == 65
        assert recover_callback_signer(PID, CHAIN_ID, signature) == accounts.relay.address
        assert signature_authorizes({accounts.relay.address}, PID, CHAIN_ID, signature)

    def test_signature_is_bound_to_chain_and_position(self, accounts) -> None:
        signature = sign_callback(accounts.relay.key, PID, CHAIN_ID)

        assert recover_callback_signer(PID, CHAIN_ID + 1, signature) != accounts.relay.address
        assert recover_callback_signer(b"\x12" * 32, CHAIN_ID, signature) != accounts.relay.address

    def test_signer_not_allow_listed(self, accounts) -> None:
        signature = sign_callback(accounts.outsider.key, PID, CHAIN_ID)
        assert not signature_authorizes({accounts.relay.address}, PID, CHAIN_ID, signature)

    def test_unusable_signatures(self) -> None:
        assert recover_callback_signer(PID, CHAIN_ID, b"\x01" * 64) is None
        assert recover_callback_signer(PID, CHAIN_ID, b"\x00" * 65) is None


class TestCircuitBreaker:
    def test_engage_and_release(self) -> None:
        breaker = CircuitBreaker(domain="manager")
        breaker.ensure_released()

        breaker.engage()
        with pytest.raises(StateError, match="paused"):
            breaker.ensure_released()

        breaker.release()
        breaker.ensure_released()

    def test_double_engage_and_release_rejected(self) -> None:
        breaker = CircuitBreaker(domain="origin")
        with pytest.raises(StateError):
            breaker.release()
        breaker.engage()
        with pytest.raises(StateError):
            breaker.engage()


class TestReentrancyGuard:
    def test_nested_same_entrypoint_rejected(self) -> None:
        guard = ReentrancyGuard()
        with guard.hold("react"):
            assert guard.is_held("react")
            with pytest.raises(StateError, match="Reentrant"):
                with guard.hold("react"):
                    pass
        assert not guard.is_held("react")

    def test_distinct_entrypoints_may_nest(self) -> None:
        guard = ReentrancyGuard()
        with guard.hold("process_callback"):
            with guard.hold("deposit"):
                assert guard.is_held("deposit")

    def test_released_after_error(self) -> None:
        guard = ReentrancyGuard()
        with pytest.raises(RuntimeError):
            with guard.hold("react"):
                raise RuntimeError("boom")
        assert not guard.is_held("react")
