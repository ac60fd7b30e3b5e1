"""
SOULMINT Root Attestation

Authenticity check for registry root transitions. The identity registry is
replicated from an upstream source of truth; a replicator signs each new root
together with its effective timestamp, and the root ledger accepts a
transition only when the attached attestation verifies.

Attestation format:
    One or more raw 64-byte Ed25519 signatures, concatenated. Each signature
    covers ``root_attestation_message(root, timestamp, domain)``. With a
    threshold of ``k`` the attestation must carry valid signatures from at
    least ``k`` distinct trusted keys.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from soulmint.config import SoulmintConfig, get_config
from soulmint.observability import MintLayer, get_logger

logger = get_logger("attestation", MintLayer.ATTESTATION)

ATTESTATION_DOMAIN_TAG = b"soulmint.root-transition.v1"
SIGNATURE_LENGTH = 64


def root_attestation_message(root: int, timestamp: int, domain: bytes = b"") -> bytes:
    """Domain-separated bytes signed for a root transition."""
    return (
        ATTESTATION_DOMAIN_TAG
        + len(domain).to_bytes(2, "big")
        + domain
        + root.to_bytes(32, "big")
        + timestamp.to_bytes(8, "big")
    )


@runtime_checkable
class AttestationVerifier(Protocol):
    """Authenticity check for a root transition."""

    def verify(self, root: int, timestamp: int, attestation: bytes) -> bool:
        ...


# =============================================================================
# ED25519
# =============================================================================

class RootAttestor:
    """Signs root transitions on behalf of an upstream replicator."""

    def __init__(self, private_key: Ed25519PrivateKey, domain: bytes = b""):
        self._private_key = private_key
        self.domain = domain

    @classmethod
    def generate(cls, domain: bytes = b"") -> 'RootAttestor':
        return cls(Ed25519PrivateKey.generate(), domain)

    @classmethod
    def from_private_hex(cls, hex_key: str, domain: bytes = b"") -> 'RootAttestor':
        raw = bytes.fromhex(hex_key[2:] if hex_key.startswith("0x") else hex_key)
        return cls(Ed25519PrivateKey.from_private_bytes(raw), domain)

    @property
    def private_key_hex(self) -> str:
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        ).hex()

    @property
    def public_key(self) -> Ed25519PublicKey:
        return self._private_key.public_key()

    @property
    def public_key_hex(self) -> str:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        ).hex()

    def attest(self, root: int, timestamp: int) -> bytes:
        return self._private_key.sign(root_attestation_message(root, timestamp, self.domain))


def load_public_keys(hex_keys: Iterable[str]) -> List[Ed25519PublicKey]:
    """Load raw 32-byte Ed25519 public keys from hex strings."""
    keys = []
    for hex_key in hex_keys:
        raw = bytes.fromhex(hex_key[2:] if hex_key.startswith("0x") else hex_key)
        keys.append(Ed25519PublicKey.from_public_bytes(raw))
    return keys


class Ed25519AttestationVerifier:
    """
    Verifies attestations against a fixed set of trusted replicator keys.

    A malformed attestation (wrong length, garbage bytes) is a rejection,
    never an exception.
    """

    def __init__(
        self,
        trusted_keys: Sequence[Ed25519PublicKey],
        threshold: int = 1,
        domain: bytes = b"",
    ):
        if not trusted_keys:
            raise ValueError("At least one trusted key is required")
        if threshold < 1 or threshold > len(trusted_keys):
            raise ValueError(
                f"Threshold {threshold} must be within 1..{len(trusted_keys)}"
            )
        self._trusted_keys = list(trusted_keys)
        self.threshold = threshold
        self.domain = domain

    @classmethod
    def from_config(
        cls,
        config: Optional[SoulmintConfig] = None,
        domain: bytes = b"",
    ) -> 'Ed25519AttestationVerifier':
        """Build from ``registry.trusted_attestor_keys`` and ``attestation_threshold``."""
        config = config or get_config()
        registry = config.registry
        return cls(
            load_public_keys(registry.trusted_attestor_keys.get()),
            threshold=registry.attestation_threshold.get(),
            domain=domain,
        )

    def verify(self, root: int, timestamp: int, attestation: bytes) -> bool:
        if not attestation or len(attestation) % SIGNATURE_LENGTH != 0:
            logger.warning(
                "Malformed attestation",
                operation="verify_attestation",
                length=len(attestation or b""),
            )
            return False

        message = root_attestation_message(root, timestamp, self.domain)
        signers = set()
        for offset in range(0, len(attestation), SIGNATURE_LENGTH):
            signature = attestation[offset:offset + SIGNATURE_LENGTH]
            for index, key in enumerate(self._trusted_keys):
                if index in signers:
                    continue
                try:
                    key.verify(signature, message)
                except InvalidSignature:
                    continue
                signers.add(index)
                break

        accepted = len(signers) >= self.threshold
        logger.debug(
            "Attestation checked",
            operation="verify_attestation",
            signers=len(signers),
            threshold=self.threshold,
            accepted=accepted,
        )
        return accepted


class StaticAttestationVerifier:
    """Accept-all or reject-all verifier for tests and local tooling."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.calls: List[tuple] = []

    def verify(self, root: int, timestamp: int, attestation: bytes) -> bool:
        self.calls.append((root, timestamp, attestation))
        return self.accept
