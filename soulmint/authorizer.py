"""
SOULMINT Mint Authorizer

The state machine that decides whether a recipient may receive the
credential token. A request carries an optional root transition, the
recipient, a packed current-date claim, the per-identity metadata that the
proof commits to, and the proof itself.

Lifecycle:
    ┌──────┐   ┌──────────────┐   ┌──────────────────────┐   ┌────────────────┐
    │ IDLE │──▶│ ROOT_RESOLVED│──▶│ SIGNALS_RECONSTRUCTED │──▶│ PROOF_VERIFIED │
    └──────┘   └──────────────┘   └──────────────────────┘   └────────────────┘
                 (date check)                                        │
                                  ┌────────┐   ┌──────────────────────▼┐
                                  │ MINTED │◀──│ ELIGIBILITY_CHECKED   │
                                  └────────┘   └───────────────────────┘

    Any non-terminal state may move to REJECTED.

Check order is fixed: root, date, signals, proof, eligibility, commit. The
first failing check raises its own error type. Every write (root transition,
nullifier, recipient registration, token issuance) happens inside one
transaction over the root ledger and the mint store and is undone if any
later step fails. Events are published only after the transaction commits.

Public signals are always rebuilt here from protocol constants, the resolved
root, and values the circuit itself commits to. Nothing in the signal vector
is taken from the caller unchecked.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from Crypto.Hash import keccak

from soulmint.config import SoulmintConfig, get_config
from soulmint.dates import SECONDS_PER_DAY, PackedDate, decode_date, encode_date, packed_to_int
from soulmint.events import EventBus, MintFailed, TokenMinted, get_event_bus
from soulmint.hardening import (
    InvalidCurrentDate,
    InvalidProof,
    InvalidRoot,
    InvariantChecker,
    MintRejected,
    ReentrancyGuard,
    ValidationError,
    Validators,
)
from soulmint.ledger import MintStore, TokenLedger
from soulmint.observability import (
    AuditLog,
    MintLayer,
    Tracer,
    get_correlation_id,
    get_logger,
    get_tracer,
)
from soulmint.roots import RegistryRootLedger
from soulmint.zkp import QUERY_SELECTOR, ProofGateway, ProofPoints, PublicSignals

logger = get_logger("authorizer", MintLayer.AUTHORIZER)

EVENT_DATA_MASK = (1 << 248) - 1
MINT_AMOUNT = 1


# =============================================================================
# EVENT BINDING
# =============================================================================

def _abi_address(address: str) -> bytes:
    return bytes(12) + bytes.fromhex(address[2:])


def event_data_for(recipient: str, deployment: Optional[str] = None) -> int:
    """
    Bind a proof to its recipient.

    ``keccak256(abi.encode(recipient))`` truncated to 248 bits so it fits the
    scalar field. With ``deployment`` the hash covers
    ``abi.encode(recipient, deployment)``, tying the proof to one authorizer
    instance.
    """
    recipient = Validators.validate_address(recipient, "recipient").unwrap()
    payload = _abi_address(recipient)
    if deployment:
        deployment = Validators.validate_address(deployment, "deployment").unwrap()
        payload += _abi_address(deployment)
    digest = keccak.new(digest_bits=256, data=payload).digest()
    return int.from_bytes(digest, "big") & EVENT_DATA_MASK


# =============================================================================
# REQUEST SHAPES
# =============================================================================

@dataclass(frozen=True)
class TransitionData:
    """
    Optional root transition carried by a mint request.

    An empty ``proof`` makes the transition trivial: ``new_root`` is then
    only looked up, never applied.
    """
    new_root: int
    transition_timestamp: int = 0
    proof: bytes = b""

    @property
    def is_trivial(self) -> bool:
        return not self.proof


@dataclass(frozen=True)
class UserData:
    """Per-identity values committed to by the proof."""
    nullifier: int
    identity_creation_timestamp: int = 0
    identity_counter: int = 0


@dataclass(frozen=True)
class MintPolicy:
    """
    Protocol constants bound into every signal vector.

    Date bounds are packed ``YYMMDD`` integers; ``encode_date("000000")``
    leaves a bound open.
    """
    token_id: int
    selector: int = QUERY_SELECTOR
    citizenship_mask: int = 0
    birth_date_lowerbound: int = encode_date()
    birth_date_upperbound: int = encode_date()
    expiration_date_lowerbound: int = encode_date()
    expiration_date_upperbound: int = encode_date()
    activation_timestamp: int = 0
    deployment_address: Optional[str] = None

    @classmethod
    def from_config(cls, config: Optional[SoulmintConfig] = None) -> 'MintPolicy':
        config = config or get_config()
        policy = config.policy
        deployment = None
        if policy.bind_to_deployment.get():
            deployment = policy.deployment_address.get()
            if not deployment:
                raise ValidationError(
                    "deployment_address", "required when bind_to_deployment is set"
                )
        return cls(
            token_id=policy.token_id.get(),
            citizenship_mask=policy.citizenship_mask.get(),
            birth_date_lowerbound=encode_date(policy.birth_date_lowerbound.get()),
            birth_date_upperbound=encode_date(policy.birth_date_upperbound.get()),
            expiration_date_lowerbound=encode_date(policy.expiration_date_lowerbound.get()),
            expiration_date_upperbound=encode_date(policy.expiration_date_upperbound.get()),
            activation_timestamp=policy.activation_timestamp.get(),
            deployment_address=deployment,
        )


# =============================================================================
# STATE MACHINE
# =============================================================================

class MintState(Enum):
    """States of a single mint attempt."""
    IDLE = "idle"
    ROOT_RESOLVED = "root_resolved"
    SIGNALS_RECONSTRUCTED = "signals_reconstructed"
    PROOF_VERIFIED = "proof_verified"
    ELIGIBILITY_CHECKED = "eligibility_checked"
    MINTED = "minted"
    REJECTED = "rejected"

    def is_terminal(self) -> bool:
        return self in {MintState.MINTED, MintState.REJECTED}


VALID_TRANSITIONS: Dict[MintState, Set[MintState]] = {
    MintState.IDLE: {MintState.ROOT_RESOLVED, MintState.REJECTED},
    MintState.ROOT_RESOLVED: {MintState.SIGNALS_RECONSTRUCTED, MintState.REJECTED},
    MintState.SIGNALS_RECONSTRUCTED: {MintState.PROOF_VERIFIED, MintState.REJECTED},
    MintState.PROOF_VERIFIED: {MintState.ELIGIBILITY_CHECKED, MintState.REJECTED},
    MintState.ELIGIBILITY_CHECKED: {MintState.MINTED, MintState.REJECTED},
    MintState.MINTED: set(),
    MintState.REJECTED: set(),
}


@dataclass
class MintAttempt:
    """Progress of one request through the state machine."""
    recipient: str
    state: MintState = MintState.IDLE
    history: List[Tuple[MintState, float]] = field(default_factory=list)
    reason: Optional[str] = None
    failed_state: Optional[MintState] = None

    def __post_init__(self):
        self.history.append((self.state, time.time()))

    def advance_to(self, target: MintState) -> None:
        InvariantChecker.check_state_transition(self.state, target, VALID_TRANSITIONS)
        self.state = target
        self.history.append((target, time.time()))

    def reject(self, reason: str) -> None:
        if self.state.is_terminal():
            return
        self.failed_state = self.state
        self.reason = reason
        self.advance_to(MintState.REJECTED)

    @property
    def states(self) -> List[MintState]:
        return [state for state, _ in self.history]


@dataclass(frozen=True)
class MintResult:
    """Outcome of a successful mint."""
    recipient: str
    token_id: int
    amount: int
    nullifier: int
    root: int
    signals: PublicSignals
    states: Tuple[MintState, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipient": self.recipient,
            "token_id": str(self.token_id),
            "amount": self.amount,
            "nullifier": str(self.nullifier),
            "root": f"{self.root:#066x}",
            "signals": self.signals.to_dict(),
            "states": [s.value for s in self.states],
        }


def build_public_signals(
    policy: MintPolicy,
    root: int,
    recipient: str,
    current_date: int,
    user_data: UserData,
    activation_timestamp: int,
) -> PublicSignals:
    """
    Rebuild the signal vector a valid proof for this request must match.

    ``timestamp_upperbound`` is the identity's creation time when known and
    otherwise the activation time, so identities registered before
    activation can still mint.
    """
    return PublicSignals(
        nullifier=user_data.nullifier,
        event_id=policy.token_id,
        event_data=event_data_for(recipient, policy.deployment_address),
        id_state_root=root,
        selector=policy.selector,
        current_date=current_date,
        timestamp_lowerbound=0,
        timestamp_upperbound=user_data.identity_creation_timestamp or activation_timestamp,
        identity_counter_lowerbound=0,
        identity_counter_upperbound=user_data.identity_counter + 1,
        birth_date_lowerbound=policy.birth_date_lowerbound,
        birth_date_upperbound=policy.birth_date_upperbound,
        expiration_date_lowerbound=policy.expiration_date_lowerbound,
        expiration_date_upperbound=policy.expiration_date_upperbound,
        citizenship_mask=policy.citizenship_mask,
    )


# =============================================================================
# AUTHORIZER
# =============================================================================

class MintAuthorizer:
    """
    Orchestrates the mint pipeline over explicit, shared stores.

    Calls are serialized by an internal lock: at most one request is in
    flight, and the first writer of a nullifier or recipient wins.

    The current-date claim is accepted from UTC midnight of the activation
    day, not from the activation instant, so a claim for the activation day
    itself passes even though its midnight precedes activation.

    Example:
        authorizer = MintAuthorizer(roots, ProofGateway(verifier), MintStore(),
                                    SoulboundTokenLedger(), policy)
        result = authorizer.authorize_mint(
            TransitionData(root), recipient, encode_date("241209"),
            UserData(nullifier), proof,
        )
    """

    def __init__(
        self,
        roots: RegistryRootLedger,
        gateway: ProofGateway,
        store: MintStore,
        token_ledger: TokenLedger,
        policy: Optional[MintPolicy] = None,
        clock: Optional[Callable[[], int]] = None,
        event_bus: Optional[EventBus] = None,
        audit_log: Optional[AuditLog] = None,
        tracer: Optional[Tracer] = None,
    ):
        self._roots = roots
        self._gateway = gateway
        self._store = store
        self._token_ledger = token_ledger
        self.policy = policy or MintPolicy.from_config()
        self._clock = clock or (lambda: int(time.time()))
        self._event_bus = event_bus or get_event_bus()
        self.audit_log = audit_log or AuditLog()
        self._tracer = tracer or get_tracer()
        self._lock = threading.RLock()
        self._guard = ReentrancyGuard()

        self.activation_timestamp = self.policy.activation_timestamp or self._clock()
        logger.info(
            "Authorizer activated",
            operation="init",
            token_id=hex(self.policy.token_id),
            activation_timestamp=self.activation_timestamp,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def token_id(self) -> int:
        return self.policy.token_id

    @property
    def freshness_lower_bound(self) -> int:
        """Start of the activation day: the earliest acceptable date claim."""
        return self.activation_timestamp - self.activation_timestamp % SECONDS_PER_DAY

    def is_nullifier_used(self, nullifier: int) -> bool:
        return self._store.is_nullifier_used(nullifier)

    def is_registered(self, recipient: str) -> bool:
        return self._store.is_registered(recipient)

    def balance_of(self, holder: str) -> int:
        return self._token_ledger.balance_of(holder, self.policy.token_id)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def authorize_mint(
        self,
        transition_data: TransitionData,
        recipient: str,
        claimed_current_date: PackedDate,
        user_data: UserData,
        proof: ProofPoints,
    ) -> MintResult:
        """
        Run the full pipeline, applying ``transition_data`` when non-trivial.

        Raises the first failing check's ``MintRejected`` subclass; nothing
        is written in that case.
        """
        return self._execute(transition_data, recipient, claimed_current_date, user_data, proof)

    def authorize_mint_for_root(
        self,
        root: int,
        recipient: str,
        claimed_current_date: PackedDate,
        user_data: UserData,
        proof: ProofPoints,
    ) -> MintResult:
        """Mint against an already known root (no transition)."""
        return self._execute(
            TransitionData(new_root=root), recipient, claimed_current_date, user_data, proof
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _validate_request(
        self,
        transition_data: TransitionData,
        recipient: str,
        user_data: UserData,
    ) -> Tuple[TransitionData, str, UserData]:
        recipient = Validators.validate_address(recipient, "recipient").unwrap()
        transition_data = TransitionData(
            new_root=Validators.validate_uint(transition_data.new_root, "new_root").unwrap(),
            transition_timestamp=Validators.validate_uint(
                transition_data.transition_timestamp, "transition_timestamp", bits=64
            ).unwrap(),
            proof=Validators.validate_bytes(transition_data.proof, "transition_proof").unwrap(),
        )
        user_data = UserData(
            nullifier=Validators.validate_uint(user_data.nullifier, "nullifier").unwrap(),
            identity_creation_timestamp=Validators.validate_uint(
                user_data.identity_creation_timestamp, "identity_creation_timestamp", bits=64
            ).unwrap(),
            identity_counter=Validators.validate_uint(
                user_data.identity_counter, "identity_counter", bits=64
            ).unwrap(),
        )
        return transition_data, recipient, user_data

    def _resolve_root(self, transition_data: TransitionData) -> int:
        root = transition_data.new_root
        if not transition_data.is_trivial:
            if self._roots.is_valid(root):
                logger.debug(
                    "Transition target already known, skipping transition",
                    operation="resolve_root",
                    root=hex(root),
                )
                return root
            self._roots.transition(root, transition_data.transition_timestamp, transition_data.proof)
            return root

        if not self._roots.is_valid(root):
            raise InvalidRoot(root)
        return root

    def _check_current_date(self, claimed_current_date: PackedDate) -> Tuple[int, int]:
        """Return the packed claim and its decoded timestamp."""
        packed = packed_to_int(claimed_current_date)
        claimed = decode_date(packed)
        now = self._clock()
        lower_bound = self.freshness_lower_bound
        if claimed < lower_bound or claimed > now:
            raise InvalidCurrentDate(claimed, lower_bound, now)
        return packed, claimed

    def _execute(
        self,
        transition_data: TransitionData,
        recipient: str,
        claimed_current_date: PackedDate,
        user_data: UserData,
        proof: ProofPoints,
    ) -> MintResult:
        transition_data, recipient, user_data = self._validate_request(
            transition_data, recipient, user_data
        )
        attempt = MintAttempt(recipient=recipient)

        with self._lock, self._guard:
            with self._tracer.span("authorize_mint", MintLayer.AUTHORIZER, recipient=recipient) as span:
                try:
                    with self._roots.transaction(), self._store.transaction():
                        root = self._resolve_root(transition_data)
                        attempt.advance_to(MintState.ROOT_RESOLVED)
                        span.record_event("root_resolved", root=hex(root))

                        current_date, claimed = self._check_current_date(claimed_current_date)
                        span.record_event("date_checked", claimed=claimed)

                        signals = build_public_signals(
                            self.policy,
                            root,
                            recipient,
                            current_date,
                            user_data,
                            self.activation_timestamp,
                        )
                        attempt.advance_to(MintState.SIGNALS_RECONSTRUCTED)

                        if not self._gateway.verify(proof, signals):
                            raise InvalidProof()
                        attempt.advance_to(MintState.PROOF_VERIFIED)

                        self._store.check_eligible(user_data.nullifier, recipient)
                        attempt.advance_to(MintState.ELIGIBILITY_CHECKED)

                        self._store.record_mint(user_data.nullifier, recipient)
                        self._token_ledger.issue(recipient, self.policy.token_id, MINT_AMOUNT)
                        attempt.advance_to(MintState.MINTED)
                except MintRejected as e:
                    attempt.reject(e.code)
                    self._on_rejected(attempt, e)
                    raise
                except Exception as e:
                    attempt.reject(type(e).__name__)
                    self._on_rejected(attempt, e)
                    raise

                span.set_attribute("state", attempt.state.value)

        result = MintResult(
            recipient=recipient,
            token_id=self.policy.token_id,
            amount=MINT_AMOUNT,
            nullifier=user_data.nullifier,
            root=root,
            signals=signals,
            states=tuple(attempt.states),
        )
        self._on_minted(result)
        return result

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _on_minted(self, result: MintResult) -> None:
        logger.info(
            "Token minted",
            operation="authorize_mint",
            recipient=result.recipient,
            nullifier=hex(result.nullifier),
        )
        self.audit_log.record(
            result.recipient, "mint", "minted", nullifier=hex(result.nullifier)
        )
        self._event_bus.publish(TokenMinted(
            recipient=result.recipient,
            token_id=result.token_id,
            amount=result.amount,
            nullifier=result.nullifier,
            correlation_id=get_correlation_id(),
        ))

    def _on_rejected(self, attempt: MintAttempt, error: Exception) -> None:
        failed_state = attempt.failed_state.value if attempt.failed_state else ""
        logger.warning(
            f"Mint rejected: {error}",
            operation="authorize_mint",
            error_code=attempt.reason or "",
            recipient=attempt.recipient,
            failed_state=failed_state,
        )
        self.audit_log.record(attempt.recipient, "mint", "rejected", reason=attempt.reason or "")
        self._event_bus.publish(MintFailed(
            recipient=attempt.recipient,
            reason=attempt.reason or "",
            message=str(error),
            failed_state=failed_state,
            correlation_id=get_correlation_id(),
        ))
