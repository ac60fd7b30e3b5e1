"""
SOULMINT — Zero-Knowledge Gated Soulbound Credential Minting

Issues a non-transferable credential token to a recipient once they present
a zero-knowledge proof that a government-issued identity document satisfies
a fixed policy, without revealing the document itself. Each identity mints
at most once (nullifier) and each recipient receives at most one token.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                         MINT AUTHORIZATION                               │
    │                                                                          │
    │  LAYER 3: ORCHESTRATION                                                 │
    │    authorizer.py  State machine: root, date, signals, proof, commit     │
    │    cli.py         Operator tooling (dates, signals, proofs, config)     │
    │                                                                          │
    │  LAYER 2: SHARED STATE                                                  │
    │    roots.py       Append-only registry root history with validity window│
    │    ledger.py      Nullifier set, recipient registry, soulbound ledger   │
    │    events.py      Post-commit TokenMinted / MintFailed / RootTransitioned│
    │                                                                          │
    │  LAYER 1: PRIMITIVES                                                    │
    │    dates.py       Packed YYMMDD <-> Unix timestamp                      │
    │    zkp.py         Groth16 over BN254, signal layout, proof gateway      │
    │    attestation.py Ed25519 root transition attestations                  │
    │    hardening.py   Rejection taxonomy, validators, invariants            │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Design Principles
─────────────────

    Fail Closed: every check either passes or raises its own rejection type;
    a verifier that errors counts as a rejected proof.

    Atomic Mints: root transition, nullifier, registration and issuance
    commit together or not at all.

    Rebuilt Signals: the public-signal vector is always reconstructed from
    protocol constants and the resolved root, never taken from the caller.

Copyright © 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

__version__ = "0.2.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import soulmint modules on first access."""

    # Date exports
    if name in ("decode_date", "encode_date", "days_from_1970", "is_leap_year",
                "pack_date", "packed_to_int", "ZERO_DATE", "SECONDS_PER_DAY"):
        from soulmint import dates
        return getattr(dates, name)

    # Root ledger exports
    if name in ("RegistryRootLedger", "RootRecord"):
        from soulmint import roots
        return getattr(roots, name)

    # Attestation exports
    if name in ("AttestationVerifier", "Ed25519AttestationVerifier", "RootAttestor",
                "StaticAttestationVerifier", "load_public_keys"):
        from soulmint import attestation
        return getattr(attestation, name)

    # ZK exports
    if name in ("ProofPoints", "PublicSignals", "ProofGateway", "Groth16Verifier",
                "VerificationKey", "MockProver", "MockVerifier",
                "SNARK_SCALAR_FIELD", "QUERY_SELECTOR", "QUERY_SIGNAL_LAYOUT"):
        from soulmint import zkp
        return getattr(zkp, name)

    # Ledger exports
    if name in ("MintStore", "SoulboundTokenLedger", "TokenLedger"):
        from soulmint import ledger
        return getattr(ledger, name)

    # Authorizer exports
    if name in ("MintAuthorizer", "MintPolicy", "MintResult", "MintState",
                "TransitionData", "UserData", "build_public_signals", "event_data_for"):
        from soulmint import authorizer
        return getattr(authorizer, name)

    # Event exports
    if name in ("EventBus", "EventLog", "TokenMinted", "MintFailed", "RootTransitioned"):
        from soulmint import events
        return getattr(events, name)

    # Error exports
    if name in ("MintRejected", "InvalidDateEncoding", "DateBeforeEpoch", "InvalidRoot",
                "StaleTransition", "InvalidAttestation", "InvalidCurrentDate",
                "InvalidProof", "NullifierUsed", "UserAlreadyRegistered",
                "TransferNotAllowed", "ValidationError", "InvariantViolation"):
        from soulmint import hardening
        return getattr(hardening, name)

    raise AttributeError(f"module 'soulmint' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Dates
    "decode_date",
    "encode_date",
    "days_from_1970",
    "is_leap_year",
    "pack_date",
    "packed_to_int",
    "ZERO_DATE",
    "SECONDS_PER_DAY",
    # Roots
    "RegistryRootLedger",
    "RootRecord",
    # Attestation
    "AttestationVerifier",
    "Ed25519AttestationVerifier",
    "RootAttestor",
    "StaticAttestationVerifier",
    "load_public_keys",
    # ZK
    "ProofPoints",
    "PublicSignals",
    "ProofGateway",
    "Groth16Verifier",
    "VerificationKey",
    "MockProver",
    "MockVerifier",
    "SNARK_SCALAR_FIELD",
    "QUERY_SELECTOR",
    "QUERY_SIGNAL_LAYOUT",
    # Ledger
    "MintStore",
    "SoulboundTokenLedger",
    "TokenLedger",
    # Authorizer
    "MintAuthorizer",
    "MintPolicy",
    "MintResult",
    "MintState",
    "TransitionData",
    "UserData",
    "build_public_signals",
    "event_data_for",
    # Events
    "EventBus",
    "EventLog",
    "TokenMinted",
    "MintFailed",
    "RootTransitioned",
    # Errors
    "MintRejected",
    "InvalidDateEncoding",
    "DateBeforeEpoch",
    "InvalidRoot",
    "StaleTransition",
    "InvalidAttestation",
    "InvalidCurrentDate",
    "InvalidProof",
    "NullifierUsed",
    "UserAlreadyRegistered",
    "TransferNotAllowed",
    "ValidationError",
    "InvariantViolation",
]
