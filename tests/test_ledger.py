"""
Mint store and soulbound token ledger tests.

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from conftest import OTHER_RECIPIENT, RECIPIENT
from soulmint.hardening import (
    NullifierUsed,
    TransferNotAllowed,
    UserAlreadyRegistered,
    ValidationError,
)
from soulmint.ledger import MintStore, SoulboundTokenLedger, TokenLedger

TOKEN_ID = 7


class TestMintStore:
    """Nullifier set and recipient registry."""

    def test_record_mint(self, store):
        store.record_mint(1, RECIPIENT)
        assert store.is_nullifier_used(1)
        assert store.is_registered(RECIPIENT)
        assert store.nullifier_of(RECIPIENT) == 1
        assert store.mint_count == 1

    def test_addresses_are_case_insensitive(self, store):
        store.record_mint(1, RECIPIENT.upper().replace("0X", "0x"))
        assert store.is_registered(RECIPIENT)

    def test_nullifier_reuse_rejected(self, store):
        store.record_mint(1, RECIPIENT)
        with pytest.raises(NullifierUsed):
            store.record_mint(1, OTHER_RECIPIENT)
        assert not store.is_registered(OTHER_RECIPIENT)

    def test_recipient_reuse_rejected(self, store):
        store.record_mint(1, RECIPIENT)
        with pytest.raises(UserAlreadyRegistered):
            store.record_mint(2, RECIPIENT)
        assert not store.is_nullifier_used(2)

    def test_nullifier_checked_first(self, store):
        store.record_mint(1, RECIPIENT)
        with pytest.raises(NullifierUsed):
            store.check_eligible(1, RECIPIENT)

    def test_eligibility_ignores_address_case(self, store):
        store.record_mint(1, RECIPIENT)
        with pytest.raises(UserAlreadyRegistered):
            store.check_eligible(2, RECIPIENT.upper().replace("0X", "0x"))

    def test_eligibility_rejects_malformed_address(self, store):
        with pytest.raises(ValidationError):
            store.check_eligible(1, "0x1234")

    def test_unknown_recipient_has_no_nullifier(self, store):
        with pytest.raises(KeyError):
            store.nullifier_of(RECIPIENT)

    def test_malformed_address_rejected(self, store):
        with pytest.raises(ValidationError):
            store.record_mint(1, "0x1234")
        with pytest.raises(ValidationError):
            store.is_registered("not-an-address")

    def test_transaction_rollback(self, store):
        store.record_mint(1, RECIPIENT)
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.record_mint(2, OTHER_RECIPIENT)
                raise RuntimeError("abort")

        assert store.is_nullifier_used(1)
        assert not store.is_nullifier_used(2)
        assert not store.is_registered(OTHER_RECIPIENT)
        assert store.mint_count == 1

    def test_transaction_commit(self, store):
        with store.transaction():
            store.record_mint(2, OTHER_RECIPIENT)
        assert store.is_registered(OTHER_RECIPIENT)


class TestSoulboundTokenLedger:
    """Issued tokens never move."""

    def test_issue(self, token_ledger):
        assert isinstance(token_ledger, TokenLedger)
        token_ledger.issue(RECIPIENT, TOKEN_ID, 1)
        assert token_ledger.balance_of(RECIPIENT, TOKEN_ID) == 1
        assert token_ledger.balance_of(OTHER_RECIPIENT, TOKEN_ID) == 0
        assert token_ledger.total_supply(TOKEN_ID) == 1

    def test_non_positive_amount_rejected(self, token_ledger):
        with pytest.raises(ValueError):
            token_ledger.issue(RECIPIENT, TOKEN_ID, 0)

    def test_transfer_not_allowed(self, token_ledger):
        token_ledger.issue(RECIPIENT, TOKEN_ID, 1)
        with pytest.raises(TransferNotAllowed) as exc_info:
            token_ledger.transfer(RECIPIENT, OTHER_RECIPIENT, TOKEN_ID, 1)
        assert exc_info.value.code == "TRANSFER_NOT_ALLOWED"
        assert token_ledger.balance_of(RECIPIENT, TOKEN_ID) == 1

    def test_batch_transfer_not_allowed(self, token_ledger):
        with pytest.raises(TransferNotAllowed):
            token_ledger.batch_transfer(RECIPIENT, OTHER_RECIPIENT, [TOKEN_ID], [1])

    def test_burn_not_allowed(self, token_ledger):
        token_ledger.issue(RECIPIENT, TOKEN_ID, 1)
        with pytest.raises(TransferNotAllowed):
            token_ledger.burn(RECIPIENT, TOKEN_ID, 1)
        assert token_ledger.total_supply(TOKEN_ID) == 1


class TestStoreIsolation:
    def test_stores_do_not_share_state(self):
        a, b = MintStore(), MintStore()
        a.record_mint(1, RECIPIENT)
        assert not b.is_nullifier_used(1)
        assert SoulboundTokenLedger().total_supply(TOKEN_ID) == 0
