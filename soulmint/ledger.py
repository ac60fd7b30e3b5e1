"""
SOULMINT Mint Store and Token Ledger

Shared mutable state of the mint pipeline, held in explicit objects that the
authorizer receives by reference:

    MintStore             nullifier set + recipient registry (append-only)
    SoulboundTokenLedger  reference ERC-1155-style issuance sink in which
                          issued tokens can never move or be destroyed

``MintStore.transaction()`` runs a unit of work under the store lock and
rolls it back if the block raises. Issuance is the last write of a mint, so
the token ledger needs no rollback of its own.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Protocol, Sequence, Set, Tuple, runtime_checkable

from soulmint.hardening import (
    NullifierUsed,
    TransferNotAllowed,
    UserAlreadyRegistered,
    Validators,
)
from soulmint.observability import MintLayer, get_logger

logger = get_logger("store", MintLayer.LEDGER)


# =============================================================================
# MINT STORE
# =============================================================================

class MintStore:
    """
    Nullifier set and recipient registry.

    Invariants:
        - a nullifier is recorded at most once and never removed
        - a recipient, once registered, stays registered
    Rollback inside ``transaction()`` only undoes writes made by that
    transaction.
    """

    def __init__(self):
        self._nullifiers: Set[int] = set()
        self._recipients: Dict[str, int] = {}
        self._journal: List[Tuple[int, str]] = []
        self._lock = threading.RLock()

    def is_nullifier_used(self, nullifier: int) -> bool:
        with self._lock:
            return nullifier in self._nullifiers

    def is_registered(self, recipient: str) -> bool:
        recipient = Validators.validate_address(recipient, "recipient").unwrap()
        with self._lock:
            return recipient in self._recipients

    def nullifier_of(self, recipient: str) -> int:
        """Nullifier consumed by ``recipient``'s mint (KeyError if none)."""
        recipient = Validators.validate_address(recipient, "recipient").unwrap()
        with self._lock:
            return self._recipients[recipient]

    def check_eligible(self, nullifier: int, recipient: str) -> None:
        """
        Raises:
            NullifierUsed: checked first.
            UserAlreadyRegistered: checked second.
        """
        recipient = Validators.validate_address(recipient, "recipient").unwrap()
        with self._lock:
            if nullifier in self._nullifiers:
                raise NullifierUsed(nullifier)
            if recipient in self._recipients:
                raise UserAlreadyRegistered(recipient)

    def record_mint(self, nullifier: int, recipient: str) -> None:
        """Consume ``nullifier`` and register ``recipient`` as one write."""
        recipient = Validators.validate_address(recipient, "recipient").unwrap()
        with self._lock:
            self.check_eligible(nullifier, recipient)
            self._nullifiers.add(nullifier)
            self._recipients[recipient] = nullifier
            self._journal.append((nullifier, recipient))

    @property
    def mint_count(self) -> int:
        with self._lock:
            return len(self._journal)

    def _undo_to(self, mark: int) -> None:
        while len(self._journal) > mark:
            nullifier, recipient = self._journal.pop()
            self._nullifiers.discard(nullifier)
            self._recipients.pop(recipient, None)

    @contextmanager
    def transaction(self) -> Iterator['MintStore']:
        with self._lock:
            mark = len(self._journal)
            try:
                yield self
            except BaseException:
                self._undo_to(mark)
                logger.debug("Mint store rolled back", operation="rollback", undone_to=mark)
                raise


# =============================================================================
# TOKEN LEDGER
# =============================================================================

@runtime_checkable
class TokenLedger(Protocol):
    """Token issuance sink the authorizer mints into."""

    def issue(self, recipient: str, token_id: int, amount: int) -> None:
        ...

    def balance_of(self, holder: str, token_id: int) -> int:
        ...


class SoulboundTokenLedger:
    """
    Reference multi-token ledger whose tokens are bound to their holder.

    ``issue`` is the only way balances change. ``transfer``,
    ``batch_transfer`` and ``burn`` always raise ``TransferNotAllowed``.
    """

    def __init__(self):
        self._balances: Dict[Tuple[str, int], int] = {}
        self._supply: Dict[int, int] = {}
        self._lock = threading.RLock()

    def issue(self, recipient: str, token_id: int, amount: int) -> None:
        recipient = Validators.validate_address(recipient, "recipient").unwrap()
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")
        with self._lock:
            key = (recipient, token_id)
            self._balances[key] = self._balances.get(key, 0) + amount
            self._supply[token_id] = self._supply.get(token_id, 0) + amount
        logger.info(
            "Token issued",
            operation="issue",
            recipient=recipient,
            token_id=hex(token_id),
            amount=amount,
        )

    def balance_of(self, holder: str, token_id: int) -> int:
        holder = Validators.validate_address(holder, "holder").unwrap()
        with self._lock:
            return self._balances.get((holder, token_id), 0)

    def total_supply(self, token_id: int) -> int:
        with self._lock:
            return self._supply.get(token_id, 0)

    def transfer(self, sender: str, receiver: str, token_id: int, amount: int) -> None:
        logger.warning(
            "Transfer attempt on soulbound token",
            operation="transfer",
            error_code=TransferNotAllowed.code,
            sender=sender,
            receiver=receiver,
        )
        raise TransferNotAllowed("transfer")

    def batch_transfer(
        self,
        sender: str,
        receiver: str,
        token_ids: Sequence[int],
        amounts: Sequence[int],
    ) -> None:
        raise TransferNotAllowed("batch_transfer")

    def burn(self, holder: str, token_id: int, amount: int) -> None:
        raise TransferNotAllowed("burn")

