"""
SOULMINT Registry Root Ledger

Append-only history of identity-registry roots. Each accepted root records
the effective timestamp asserted by the upstream registry and the local
clock time at which it was accepted.

Validity policy:
    - The current root is always valid.
    - A superseded root stays valid for ``validity_window`` seconds after the
      moment it was superseded, so proofs generated just before a root
      advances still verify.
    - The zero root is never valid.

Transitions must strictly advance the effective timestamp and carry an
attestation the injected ``AttestationVerifier`` accepts. Records are never
mutated or deleted; "superseded at" is the acceptance time of the next record.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

from soulmint.attestation import AttestationVerifier, Ed25519AttestationVerifier
from soulmint.config import SoulmintConfig, get_config
from soulmint.events import EventBus, RootTransitioned
from soulmint.hardening import (
    InvalidAttestation,
    InvariantChecker,
    StaleTransition,
    Validators,
)
from soulmint.observability import MintLayer, get_logger

logger = get_logger("ledger", MintLayer.ROOTS)


def _system_clock() -> int:
    return int(time.time())


@dataclass(frozen=True)
class RootRecord:
    """One accepted registry root."""
    root: int
    effective_timestamp: int
    accepted_at: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "root": f"{self.root:#066x}",
            "effective_timestamp": self.effective_timestamp,
            "accepted_at": self.accepted_at,
        }


class RegistryRootLedger:
    """
    Thread-safe, append-only registry root history.

    Without an explicit ``validity_window`` the ledger reads
    ``registry.root_validity_seconds`` from configuration.

    Example:
        ledger = RegistryRootLedger(verifier, validity_window=3600)
        ledger.transition(new_root, effective_timestamp, attestation)
        assert ledger.is_valid(new_root)
    """

    def __init__(
        self,
        attestation_verifier: AttestationVerifier,
        validity_window: Optional[int] = None,
        clock: Optional[Callable[[], int]] = None,
        event_bus: Optional[EventBus] = None,
        genesis_root: Optional[int] = None,
        genesis_timestamp: int = 0,
    ):
        if validity_window is None:
            validity_window = get_config().registry.root_validity_seconds.get()
        if validity_window < 0:
            raise ValueError("validity_window must be non-negative")
        self._verifier = attestation_verifier
        self.validity_window = validity_window
        self._clock = clock or _system_clock
        self._event_bus = event_bus
        self._records: List[RootRecord] = []
        self._latest_index: Dict[int, int] = {}
        self._lock = threading.RLock()
        self._tx_depth = 0
        self._pending_events: List[RootTransitioned] = []

        if genesis_root is not None:
            root = Validators.validate_uint(genesis_root, "genesis_root").unwrap()
            self._append(RootRecord(root, genesis_timestamp, self._clock()))

    @classmethod
    def from_config(
        cls,
        attestation_verifier: Optional[AttestationVerifier] = None,
        config: Optional[SoulmintConfig] = None,
        **kwargs,
    ) -> 'RegistryRootLedger':
        """
        Build a ledger from the ``registry`` settings.

        The verifier defaults to an Ed25519 verifier over the configured
        trusted keys and threshold.
        """
        config = config or get_config()
        if attestation_verifier is None:
            attestation_verifier = Ed25519AttestationVerifier.from_config(config)
        return cls(
            attestation_verifier,
            validity_window=config.registry.root_validity_seconds.get(),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def current(self) -> Optional[RootRecord]:
        with self._lock:
            return self._records[-1] if self._records else None

    @property
    def current_root(self) -> int:
        record = self.current
        return record.root if record else 0

    @property
    def current_timestamp(self) -> int:
        record = self.current
        return record.effective_timestamp if record else 0

    def history(self) -> List[RootRecord]:
        with self._lock:
            return list(self._records)

    def get(self, root: int) -> Optional[RootRecord]:
        """Most recent record for ``root``, if any."""
        with self._lock:
            index = self._latest_index.get(root)
            return self._records[index] if index is not None else None

    def superseded_at(self, root: int) -> Optional[int]:
        """Local time at which ``root`` stopped being current, or None."""
        with self._lock:
            index = self._latest_index.get(root)
            if index is None or index == len(self._records) - 1:
                return None
            return self._records[index + 1].accepted_at

    def is_valid(self, root: int) -> bool:
        if root == 0:
            return False
        with self._lock:
            index = self._latest_index.get(root)
            if index is None:
                return False
            if index == len(self._records) - 1:
                return True
            superseded = self._records[index + 1].accepted_at
            return self._clock() < superseded + self.validity_window

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def transition(self, new_root: int, effective_timestamp: int, attestation: bytes) -> RootRecord:
        """
        Advance to ``new_root``.

        Raises:
            ValidationError: malformed root, timestamp or attestation bytes.
            StaleTransition: the timestamp does not strictly advance.
            InvalidAttestation: the authenticity check rejected the attestation.
        """
        new_root = Validators.validate_uint(new_root, "new_root").unwrap()
        effective_timestamp = Validators.validate_uint(
            effective_timestamp, "effective_timestamp", bits=64
        ).unwrap()
        attestation = Validators.validate_bytes(attestation, "attestation").unwrap()

        with self._lock:
            previous = self.current
            if previous is not None and effective_timestamp <= previous.effective_timestamp:
                logger.warning(
                    "Stale root transition",
                    operation="transition",
                    error_code=StaleTransition.code,
                    new_timestamp=effective_timestamp,
                    current_timestamp=previous.effective_timestamp,
                )
                raise StaleTransition(effective_timestamp, previous.effective_timestamp)

            if new_root == 0:
                raise InvalidAttestation(new_root, "zero root cannot be attested")

            if not self._verifier.verify(new_root, effective_timestamp, attestation):
                logger.warning(
                    "Root attestation rejected",
                    operation="transition",
                    error_code=InvalidAttestation.code,
                    root=hex(new_root),
                )
                raise InvalidAttestation(new_root)

            record = RootRecord(new_root, effective_timestamp, self._clock())
            self._append(record)

            logger.info(
                "Registry root advanced",
                operation="transition",
                root=hex(new_root),
                effective_timestamp=effective_timestamp,
                history_length=len(self._records),
            )

            event = RootTransitioned(
                previous_root=previous.root if previous else 0,
                new_root=new_root,
                effective_timestamp=effective_timestamp,
            )
            if self._tx_depth:
                self._pending_events.append(event)
                return record

        self._publish([event])
        return record

    def _append(self, record: RootRecord) -> None:
        if self._records:
            InvariantChecker.check_monotonic_increase(
                "effective_timestamp",
                self._records[-1].effective_timestamp,
                record.effective_timestamp,
            )
        self._records.append(record)
        self._latest_index[record.root] = len(self._records) - 1

    def _publish(self, events: List[RootTransitioned]) -> None:
        if self._event_bus is None:
            return
        for event in events:
            self._event_bus.publish(event)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def snapshot(self) -> int:
        with self._lock:
            return len(self._records)

    def restore(self, snapshot: int) -> None:
        """Drop records appended after ``snapshot``."""
        with self._lock:
            del self._records[snapshot:]
            self._latest_index = {}
            for index, record in enumerate(self._records):
                self._latest_index[record.root] = index

    @contextmanager
    def transaction(self) -> Iterator['RegistryRootLedger']:
        """
        Hold the ledger lock for a unit of work and undo it on failure.

        Transition events raised inside the transaction are published only
        when the outermost transaction commits.
        """
        with self._lock:
            snapshot = len(self._records)
            pending_mark = len(self._pending_events)
            self._tx_depth += 1
            try:
                yield self
            except BaseException:
                self.restore(snapshot)
                del self._pending_events[pending_mark:]
                raise
            finally:
                self._tx_depth -= 1

            if self._tx_depth:
                return
            events, self._pending_events = self._pending_events, []

        self._publish(events)
