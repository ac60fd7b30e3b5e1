"""
SOULMINT Validation and Hardening Module

Validation, error taxonomy, and defensive utilities shared by every layer of
the mint pipeline. It covers:

1. The caller-visible rejection taxonomy (one exception type per failed check)
2. Input validation with sanitization for addresses, digests and integers
3. State machine invariant enforcement

Security Model:
    - All inputs are untrusted until validated
    - Every rejection names the first failing check and carries its context
    - State mutations are atomic or fully rolled back

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Set,
)


UINT256_MAX = (1 << 256) - 1
UINT64_MAX = (1 << 64) - 1


# =============================================================================
# VALIDATION ERROR TYPES
# =============================================================================

class ValidationError(Exception):
    """Base exception for validation failures."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class InvariantViolation(Exception):
    """State machine invariant violated."""
    pass


# =============================================================================
# MINT REJECTION TAXONOMY
# =============================================================================

class MintRejected(Exception):
    """
    Base class for every caller-visible rejection.

    Each subclass corresponds to exactly one check of the pipeline. The
    ``code`` attribute is stable and is what logs and events carry.
    """

    code = "MINT_REJECTED"

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }


class InvalidDateEncoding(MintRejected, ValueError):
    """A packed date byte is not an ASCII digit, or month/day is out of range."""

    code = "INVALID_DATE_ENCODING"

    def __init__(self, message: str, value: Any = None):
        self.value = value
        super().__init__(message, value=value)


class DateBeforeEpoch(MintRejected, ValueError):
    """Decoded calendar date precedes 1970-01-01."""

    code = "DATE_BEFORE_EPOCH"

    def __init__(self, year: int, month: int = 1, day: int = 1):
        self.year = year
        self.month = month
        self.day = day
        super().__init__(
            f"Date {year:04d}-{month:02d}-{day:02d} precedes 1970-01-01",
            year=year, month=month, day=day,
        )


class InvalidRoot(MintRejected):
    """Registry root is neither current nor inside the validity window."""

    code = "INVALID_ROOT"

    def __init__(self, root: int):
        self.root = root
        super().__init__(f"Unknown or expired registry root {root:#066x}", root=root)


class StaleTransition(MintRejected):
    """Root transition timestamp does not strictly advance."""

    code = "STALE_TRANSITION"

    def __init__(self, new_timestamp: int, current_timestamp: int):
        self.new_timestamp = new_timestamp
        self.current_timestamp = current_timestamp
        super().__init__(
            f"Transition timestamp {new_timestamp} is not after current {current_timestamp}",
            new_timestamp=new_timestamp,
            current_timestamp=current_timestamp,
        )


class InvalidAttestation(MintRejected):
    """Root transition attestation failed the authenticity check."""

    code = "INVALID_ATTESTATION"

    def __init__(self, root: int, reason: str = "attestation rejected"):
        self.root = root
        self.reason = reason
        super().__init__(f"Invalid attestation for root {root:#066x}: {reason}", root=root)


class InvalidCurrentDate(MintRejected):
    """Claimed current date lies outside ``[lower_bound, now]``."""

    code = "INVALID_CURRENT_DATE"

    def __init__(self, claimed: int, lower_bound: int, now: int):
        self.claimed = claimed
        self.lower_bound = lower_bound
        self.now = now
        super().__init__(
            f"Current date {claimed} outside window [{lower_bound}, {now}]",
            claimed=claimed, lower_bound=lower_bound, now=now,
        )


class InvalidProof(MintRejected):
    """The proof verifier rejected the reconstructed signal vector."""

    code = "INVALID_PROOF"

    def __init__(self, message: str = "Proof verification failed"):
        super().__init__(message)


class NullifierUsed(MintRejected):
    """Nullifier already consumed by an earlier mint."""

    code = "NULLIFIER_USED"

    def __init__(self, nullifier: int):
        self.nullifier = nullifier
        super().__init__(f"Nullifier {nullifier:#x} already used", nullifier=nullifier)


class UserAlreadyRegistered(MintRejected):
    """Recipient already holds the credential."""

    code = "USER_ALREADY_REGISTERED"

    def __init__(self, recipient: str):
        self.recipient = recipient
        super().__init__(f"Recipient {recipient} already registered", recipient=recipient)


class TransferNotAllowed(MintRejected):
    """Issued tokens can never be moved or destroyed."""

    code = "TRANSFER_NOT_ALLOWED"

    def __init__(self, operation: str = "transfer"):
        self.operation = operation
        super().__init__(f"Soulbound token: {operation} is not allowed", operation=operation)


def _jsonable(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool) and value > UINT64_MAX:
        return hex(value)
    if isinstance(value, bytes):
        return value.hex()
    return value


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def unwrap(self) -> Any:
        """Return the sanitized value, raising the first error on failure."""
        if not self.is_valid:
            raise self.errors[0]
        return self.sanitized_value

    @classmethod
    def success(cls, sanitized_value: Any = None) -> 'ValidationResult':
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> 'ValidationResult':
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

class Validators:
    """
    Validators for the three value shapes the pipeline accepts from callers:
    20-byte addresses, unsigned integer words, and opaque byte strings.

    Each returns a ``ValidationResult``; ``unwrap()`` yields the canonical
    form (lowercase address, ``int``, ``bytes``) or raises the first error.
    """

    ADDRESS_PATTERN = re.compile(r'^0x[0-9a-f]{40}$')
    UINT_PATTERN = re.compile(r'^(0x[0-9a-f]+|[0-9]+)$')

    MAX_BYTES = 65536

    @staticmethod
    def _reject(field_name: str, message: str, value: Any) -> ValidationResult:
        return ValidationResult.failure([ValidationError(field_name, message, value)])

    @classmethod
    def validate_address(cls, value: Any, field_name: str = "address") -> ValidationResult:
        if not isinstance(value, str):
            return cls._reject(field_name, f"Expected string, got {type(value).__name__}", value)
        canonical = value.strip().replace('\x00', '').lower()
        if not cls.ADDRESS_PATTERN.match(canonical):
            return cls._reject(field_name, "Must be 0x followed by 40 hex digits", value)
        return ValidationResult.success(canonical)

    @classmethod
    def validate_uint(cls, value: Any, field_name: str, bits: int = 256) -> ValidationResult:
        """
        Unsigned integer below ``2**bits``.

        Decimal and ``0x`` hex strings are accepted, since JSON tooling
        carries field elements as strings.
        """
        if isinstance(value, str):
            text = value.strip().lower()
            if not cls.UINT_PATTERN.match(text):
                return cls._reject(field_name, "Not a decimal or 0x-hex integer", value)
            value = int(text, 0) if text.startswith("0x") else int(text, 10)
        elif isinstance(value, bool) or not isinstance(value, int):
            return cls._reject(field_name, f"Expected integer, got {type(value).__name__}", value)

        if value < 0:
            return cls._reject(field_name, "Must be non-negative", value)
        if value.bit_length() > bits:
            return cls._reject(field_name, f"Exceeds {bits}-bit range", value)
        return ValidationResult.success(value)

    @classmethod
    def validate_bytes(
        cls,
        value: Any,
        field_name: str,
        max_length: Optional[int] = None,
    ) -> ValidationResult:
        """Byte string; ``None`` means empty and hex text (optional 0x) is decoded."""
        limit = cls.MAX_BYTES if max_length is None else max_length
        if value is None:
            value = b""
        elif isinstance(value, str):
            text = value[2:] if value[:2].lower() == "0x" else value
            try:
                value = bytes.fromhex(text)
            except ValueError:
                return cls._reject(field_name, "Invalid hex string", value)
        elif isinstance(value, (bytearray, memoryview)):
            value = bytes(value)

        if not isinstance(value, bytes):
            return cls._reject(field_name, f"Expected bytes, got {type(value).__name__}", value)
        if len(value) > limit:
            return cls._reject(field_name, f"Too long (max {limit} bytes)", value)
        return ValidationResult.success(value)


# =============================================================================
# INVARIANT ENFORCEMENT
# =============================================================================

class InvariantChecker:
    """Enforces state machine invariants."""

    @staticmethod
    def check_state_transition(
        current_state: Enum,
        target_state: Enum,
        valid_transitions: Dict[Enum, Set[Enum]],
    ) -> None:
        """Verify state transition is valid."""
        valid_targets = valid_transitions.get(current_state, set())
        if target_state not in valid_targets:
            raise InvariantViolation(
                f"Invalid state transition: {current_state.value} -> {target_state.value}. "
                f"Valid targets: {sorted(s.value for s in valid_targets)}"
            )

    @staticmethod
    def check_monotonic_increase(
        field_name: str,
        old_value: int,
        new_value: int,
    ) -> None:
        """Ensure value only increases."""
        if new_value < old_value:
            raise InvariantViolation(
                f"{field_name} must be monotonically increasing: "
                f"cannot go from {old_value} to {new_value}"
            )


class ReentrancyGuard:
    """
    Non-blocking guard that rejects nested entry from the same thread.

    The authorizer holds its lock for the whole pipeline; an event handler
    or ledger sink that calls back into ``authorize_mint`` would otherwise
    observe half-committed state.
    """

    def __init__(self) -> None:
        self._local = threading.local()

    def __enter__(self) -> 'ReentrancyGuard':
        if getattr(self._local, "active", False):
            raise InvariantViolation("Re-entrant call into mint pipeline")
        self._local.active = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._local.active = False
