"""
Reference collaborators: ledger, randomness, Ed25519 authentication.

Run with: pytest tests/test_integrations.py -v
"""

from decimal import Decimal

import pytest

from coursepass.errors import BelowMinimum, InsufficientFunds
from coursepass.hardening import ValidationError
from coursepass.integrations.auth import (
    Ed25519Authenticator,
    NonceRegistry,
    Rejected,
    SignedCall,
    generate_account,
    sign_call,
)
from coursepass.integrations.ledger import InMemoryLedger
from coursepass.integrations.randomness import BlockContext, BlockRandomness
from coursepass.ports import ExistenceRequirement


class TestInMemoryLedger:
    """Balances with an existential deposit."""

    @pytest.fixture
    def ledger(self):
        ledger = InMemoryLedger(existential_deposit="1")
        ledger.set_balance("alice", 100)
        return ledger

    def test_transfer(self, ledger):
        ledger.transfer("alice", "bob", Decimal("40"))
        assert ledger.balance_of("alice") == Decimal("60")
        assert ledger.balance_of("bob") == Decimal("40")

    def test_insufficient_funds_moves_nothing(self, ledger):
        with pytest.raises(InsufficientFunds):
            ledger.transfer("alice", "bob", 101)
        assert ledger.balances() == {"alice": "100"}

    def test_keep_alive_refuses_to_drain(self, ledger):
        with pytest.raises(BelowMinimum):
            ledger.transfer("alice", "bob", Decimal("99.5"))
        with pytest.raises(BelowMinimum):
            ledger.transfer("alice", "bob", 100)
        assert ledger.balance_of("alice") == Decimal("100")

    def test_allow_death_empties_account(self, ledger):
        ledger.transfer("alice", "bob", 100, ExistenceRequirement.ALLOW_DEATH)
        assert ledger.balance_of("alice") == Decimal("0")
        assert ledger.balances() == {"bob": "100"}

    def test_deposit(self, ledger):
        assert ledger.deposit("alice", "0.5") == Decimal("100.5")

    def test_rejects_negative_amounts(self, ledger):
        with pytest.raises(ValidationError):
            ledger.transfer("alice", "bob", -1)


class TestBlockRandomness:
    """Seeded per-block randomness."""

    def test_stable_within_block(self):
        context = BlockContext()
        source = BlockRandomness(context, seed=b"s")
        first = source.random_bytes(b"dna")
        context.next_step()
        assert source.random_bytes(b"dna") == first
        assert source.draws == 2

    def test_changes_across_blocks_and_tags(self):
        context = BlockContext()
        source = BlockRandomness(context, seed=b"s")
        first = source.random_bytes(b"dna")
        assert source.random_bytes(b"other") != first
        context.new_block()
        assert source.random_bytes(b"dna") != first

    def test_seed_matters(self):
        context = BlockContext()
        assert (
            BlockRandomness(context, seed=b"a").random_bytes(b"dna")
            != BlockRandomness(context, seed=b"b").random_bytes(b"dna")
        )

    def test_context_counters(self):
        context = BlockContext(height=5)
        assert context.next_step() == 1
        assert context.next_step() == 2
        assert context.new_block() == 6
        assert context.current_sequence_number() == 0


class TestEd25519Authenticator:
    """Signed requests."""

    def test_valid_signature(self):
        key, account = generate_account()
        request = sign_call(key, "mint", {}, "n1")
        assert Ed25519Authenticator().authenticate(request) == account

    def test_accepts_dict_form(self):
        key, account = generate_account()
        request = sign_call(key, "transfer", {"course_id": "ab" * 32, "to": "bob"}, "n1")
        assert Ed25519Authenticator().authenticate(request.to_dict()) == account

    def test_replay_rejected(self):
        key, _ = generate_account()
        auth = Ed25519Authenticator()
        request = sign_call(key, "mint", {}, "n1")
        auth.authenticate(request)
        with pytest.raises(Rejected, match="already used"):
            auth.authenticate(request)

    def test_tampered_args_rejected(self):
        key, _ = generate_account()
        request = sign_call(key, "set_price", {"new_price": "1"}, "n1")
        request.args["new_price"] = "0"
        with pytest.raises(Rejected, match="invalid signature"):
            Ed25519Authenticator().authenticate(request)

    def test_signature_from_other_key_rejected(self):
        key, _ = generate_account()
        _, other = generate_account()
        request = sign_call(key, "mint", {}, "n1")
        request.account = other
        with pytest.raises(Rejected):
            Ed25519Authenticator().authenticate(request)

    @pytest.mark.parametrize("request_obj", [
        SignedCall(account="zz", call="mint", nonce="n", signature="00"),
        SignedCall(account="ab" * 32, call="mint", nonce="", signature="00" * 64),
        {"call": "mint"},
        "mint",
    ])
    def test_malformed_requests(self, request_obj):
        with pytest.raises(Rejected):
            Ed25519Authenticator().authenticate(request_obj)

    def test_nonce_registry(self):
        nonces = NonceRegistry()
        assert nonces.check_and_register("a")
        assert not nonces.check_and_register("a")
        assert nonces.size() == 1
