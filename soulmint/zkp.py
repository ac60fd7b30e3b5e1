"""
SOULMINT Zero-Knowledge Proof Boundary

Everything the authorizer needs to talk to a Groth16 verifier over BN254:

    - Field arithmetic over the SNARK scalar field
    - ProofPoints in the verifier's (EVM precompile) layout
    - The public-signal layout of the identity query circuit
    - A real pairing-based Groth16 verifier (py_ecc) and a mock pair for tests
    - ProofGateway, the single stateless entry point used by the authorizer

Point layout:
    snarkjs emits G2 coordinates as ``[c0, c1]`` (real part first). The BN254
    pairing precompile expects ``[c1, c0]``. ``ProofPoints`` always stores the
    precompile layout; ``ProofPoints.from_snarkjs`` performs the swap on each
    row of ``b`` and ``Groth16Verifier`` swaps back before building ``FQ2``
    elements. Skipping either swap makes honest proofs fail.

Public signal order:
    The circuit output (``nullifier``) comes first, followed by the public
    inputs in declaration order. See ``QUERY_SIGNAL_LAYOUT``.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import hashlib
import json
import pathlib
import time
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Protocol, Sequence, Tuple, Union, runtime_checkable

from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    Z1,
    add,
    b,
    b2,
    curve_order,
    field_modulus,
    is_inf,
    is_on_curve,
    multiply,
    pairing,
)

from soulmint.observability import MintLayer, get_logger, timed_operation

logger = get_logger("gateway", MintLayer.ZK)

# BN254 scalar field order (r). Public signals must be strictly below it.
SNARK_SCALAR_FIELD = curve_order
# BN254 base field order (q). Curve coordinates must be strictly below it.
BASE_FIELD_MODULUS = field_modulus

# Query selector enabling the nullifier, event, timestamp/counter and
# date-bound predicates of the identity query circuit.
QUERY_SELECTOR = 0x1a01

G1Affine = Tuple[int, int]
G2Affine = Tuple[Tuple[int, int], Tuple[int, int]]


def _to_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected integer, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        return int(text, 16) if text.lower().startswith("0x") else int(text, 10)
    raise ValueError(f"{name}: expected integer or numeric string, got {type(value).__name__}")


# =============================================================================
# PROOF POINTS
# =============================================================================

@dataclass(frozen=True)
class ProofPoints:
    """
    Groth16 proof in verifier layout.

    ``b`` rows are ``(imaginary, real)``, i.e. already swapped relative to
    snarkjs output.
    """
    a: G1Affine
    b: G2Affine
    c: G1Affine

    @classmethod
    def from_snarkjs(
        cls,
        pi_a: Sequence[Any],
        pi_b: Sequence[Sequence[Any]],
        pi_c: Sequence[Any],
    ) -> 'ProofPoints':
        """Convert snarkjs ``pi_a``/``pi_b``/``pi_c`` (projective, real-first)."""
        return cls(
            a=(_to_int(pi_a[0], "pi_a"), _to_int(pi_a[1], "pi_a")),
            b=(
                (_to_int(pi_b[0][1], "pi_b"), _to_int(pi_b[0][0], "pi_b")),
                (_to_int(pi_b[1][1], "pi_b"), _to_int(pi_b[1][0], "pi_b")),
            ),
            c=(_to_int(pi_c[0], "pi_c"), _to_int(pi_c[1], "pi_c")),
        )

    @classmethod
    def from_snarkjs_json(cls, proof: Dict[str, Any]) -> 'ProofPoints':
        try:
            return cls.from_snarkjs(proof["pi_a"], proof["pi_b"], proof["pi_c"])
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"Malformed snarkjs proof: {e}") from e

    def to_snarkjs(self) -> Dict[str, Any]:
        return {
            "pi_a": [str(self.a[0]), str(self.a[1]), "1"],
            "pi_b": [
                [str(self.b[0][1]), str(self.b[0][0])],
                [str(self.b[1][1]), str(self.b[1][0])],
                ["1", "0"],
            ],
            "pi_c": [str(self.c[0]), str(self.c[1]), "1"],
            "protocol": "groth16",
            "curve": "bn128",
        }

    def to_calldata(self) -> Tuple[List[int], List[List[int]], List[int]]:
        return (
            list(self.a),
            [list(self.b[0]), list(self.b[1])],
            list(self.c),
        )

    def to_dict(self) -> Dict[str, Any]:
        a, b_, c = self.to_calldata()
        return {
            "a": [hex(v) for v in a],
            "b": [[hex(v) for v in row] for row in b_],
            "c": [hex(v) for v in c],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProofPoints':
        """Inverse of ``to_dict``; values are already in verifier layout."""
        try:
            return cls(
                a=(_to_int(data["a"][0], "a"), _to_int(data["a"][1], "a")),
                b=(
                    (_to_int(data["b"][0][0], "b"), _to_int(data["b"][0][1], "b")),
                    (_to_int(data["b"][1][0], "b"), _to_int(data["b"][1][1], "b")),
                ),
                c=(_to_int(data["c"][0], "c"), _to_int(data["c"][1], "c")),
            )
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"Malformed proof points: {e}") from e


# =============================================================================
# PUBLIC SIGNALS
# =============================================================================

@dataclass(frozen=True)
class PublicSignals:
    """
    Public signals of the identity query circuit.

    Rebuilt by the authorizer for every request and never persisted.
    """
    nullifier: int
    event_id: int
    event_data: int
    id_state_root: int
    selector: int
    current_date: int
    timestamp_lowerbound: int
    timestamp_upperbound: int
    identity_counter_lowerbound: int
    identity_counter_upperbound: int
    birth_date_lowerbound: int
    birth_date_upperbound: int
    expiration_date_lowerbound: int
    expiration_date_upperbound: int
    citizenship_mask: int

    def to_vector(self) -> List[int]:
        return [getattr(self, name) for name in QUERY_SIGNAL_LAYOUT]

    @classmethod
    def from_vector(cls, vector: Sequence[Any]) -> 'PublicSignals':
        if len(vector) != len(QUERY_SIGNAL_LAYOUT):
            raise ValueError(
                f"Expected {len(QUERY_SIGNAL_LAYOUT)} public signals, got {len(vector)}"
            )
        return cls(**{
            name: _to_int(value, name)
            for name, value in zip(QUERY_SIGNAL_LAYOUT, vector)
        })

    def to_dict(self) -> Dict[str, str]:
        return {name: str(getattr(self, name)) for name in QUERY_SIGNAL_LAYOUT}

    def out_of_field(self) -> List[str]:
        """Names of signals that are not canonical field elements."""
        return [
            name for name in QUERY_SIGNAL_LAYOUT
            if not 0 <= getattr(self, name) < SNARK_SCALAR_FIELD
        ]


QUERY_SIGNAL_LAYOUT: Tuple[str, ...] = tuple(f.name for f in fields(PublicSignals))

SignalInput = Union[PublicSignals, Sequence[int]]


def signal_vector(signals: SignalInput) -> List[int]:
    if isinstance(signals, PublicSignals):
        return signals.to_vector()
    return [_to_int(s, "signal") for s in signals]


# =============================================================================
# VERIFIER INTERFACE
# =============================================================================

@runtime_checkable
class Verifier(Protocol):
    """Succinct-proof verifier: deterministic and side-effect free."""

    def verify(self, proof: ProofPoints, signals: Sequence[int]) -> bool:
        ...


# =============================================================================
# GROTH16 OVER BN254
# =============================================================================

def _g1(point: G1Affine) -> tuple:
    x, y = point
    if x >= BASE_FIELD_MODULUS or y >= BASE_FIELD_MODULUS:
        raise ValueError("G1 coordinate outside base field")
    if x == 0 and y == 0:
        return Z1
    return (FQ(x), FQ(y), FQ(1))


def _g2_natural(x: Tuple[int, int], y: Tuple[int, int]) -> tuple:
    """G2 point from real-first coordinates ``(c0, c1)``."""
    for coeff in (*x, *y):
        if coeff >= BASE_FIELD_MODULUS:
            raise ValueError("G2 coordinate outside base field")
    return (FQ2([x[0], x[1]]), FQ2([y[0], y[1]]), FQ2.one())


def _g2_from_verifier_layout(point: G2Affine) -> tuple:
    (x_im, x_re), (y_im, y_re) = point
    return _g2_natural((x_re, x_im), (y_re, y_im))


def _in_g2_subgroup(point: tuple) -> bool:
    return is_inf(multiply(point, SNARK_SCALAR_FIELD))


@dataclass(frozen=True)
class VerificationKey:
    """
    Groth16 verification key, coordinates in snarkjs (real-first) order.

    ``ic`` has one entry per public signal plus the constant term.
    """
    alpha1: G1Affine
    beta2: G2Affine
    gamma2: G2Affine
    delta2: G2Affine
    ic: Tuple[G1Affine, ...]

    @property
    def n_public(self) -> int:
        return len(self.ic) - 1

    @classmethod
    def from_snarkjs(cls, data: Dict[str, Any]) -> 'VerificationKey':
        """Parse a snarkjs ``verification_key.json`` document."""
        def g1(p):
            return (_to_int(p[0], "vk"), _to_int(p[1], "vk"))

        def g2(p):
            return (
                (_to_int(p[0][0], "vk"), _to_int(p[0][1], "vk")),
                (_to_int(p[1][0], "vk"), _to_int(p[1][1], "vk")),
            )

        try:
            if data.get("protocol", "groth16") != "groth16":
                raise ValueError(f"Unsupported protocol {data.get('protocol')!r}")
            vk = cls(
                alpha1=g1(data["vk_alpha_1"]),
                beta2=g2(data["vk_beta_2"]),
                gamma2=g2(data["vk_gamma_2"]),
                delta2=g2(data["vk_delta_2"]),
                ic=tuple(g1(p) for p in data["IC"]),
            )
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"Malformed verification key: {e}") from e

        declared = data.get("nPublic")
        if declared is not None and int(declared) != vk.n_public:
            raise ValueError(
                f"nPublic={declared} does not match {len(vk.ic)} IC points"
            )
        return vk

    @classmethod
    @timed_operation(logger, "load_verification_key")
    def load(cls, path: Union[str, pathlib.Path]) -> 'VerificationKey':
        return cls.from_snarkjs(json.loads(pathlib.Path(path).read_text(encoding="utf-8")))

    def to_snarkjs(self) -> Dict[str, Any]:
        def g1(p):
            return [str(p[0]), str(p[1]), "1"]

        def g2(p):
            return [[str(p[0][0]), str(p[0][1])], [str(p[1][0]), str(p[1][1])], ["1", "0"]]

        return {
            "protocol": "groth16",
            "curve": "bn128",
            "nPublic": self.n_public,
            "vk_alpha_1": g1(self.alpha1),
            "vk_beta_2": g2(self.beta2),
            "vk_gamma_2": g2(self.gamma2),
            "vk_delta_2": g2(self.delta2),
            "IC": [g1(p) for p in self.ic],
        }

    def digest(self) -> str:
        canonical = json.dumps(self.to_snarkjs(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()


class Groth16Verifier:
    """
    Groth16 verifier over BN254 using ``py_ecc.optimized_bn128``.

    Checks ``e(A, B) == e(alpha, beta) * e(vk_x, gamma) * e(C, delta)`` with
    ``vk_x = IC[0] + sum(s_i * IC[i+1])``. Proof points are validated (base
    field range, on curve, G2 subgroup) before any pairing is computed.
    """

    def __init__(self, verification_key: VerificationKey):
        self.verification_key = verification_key
        self._alpha = _g1(verification_key.alpha1)
        self._beta = _g2_natural(*verification_key.beta2)
        self._gamma = _g2_natural(*verification_key.gamma2)
        self._delta = _g2_natural(*verification_key.delta2)
        self._ic = [_g1(p) for p in verification_key.ic]

        for point in (self._alpha, *self._ic):
            if not is_on_curve(point, b):
                raise ValueError("Verification key G1 point not on curve")
        for point in (self._beta, self._gamma, self._delta):
            if not is_on_curve(point, b2):
                raise ValueError("Verification key G2 point not on curve")

        self._alpha_beta = pairing(self._beta, self._alpha)

    def verify(self, proof: ProofPoints, signals: Sequence[int]) -> bool:
        signals = list(signals)
        if len(signals) != self.verification_key.n_public:
            logger.warning(
                "Signal count mismatch",
                operation="groth16_verify",
                expected=self.verification_key.n_public,
                actual=len(signals),
            )
            return False

        if any(not 0 <= s < SNARK_SCALAR_FIELD for s in signals):
            logger.warning("Public signal outside scalar field", operation="groth16_verify")
            return False

        try:
            a = _g1(proof.a)
            b_point = _g2_from_verifier_layout(proof.b)
            c = _g1(proof.c)
        except ValueError as e:
            logger.warning(f"Malformed proof point: {e}", operation="groth16_verify")
            return False

        if not (is_on_curve(a, b) and is_on_curve(c, b) and is_on_curve(b_point, b2)):
            logger.warning("Proof point not on curve", operation="groth16_verify")
            return False
        if not _in_g2_subgroup(b_point):
            logger.warning("Proof point B outside G2 subgroup", operation="groth16_verify")
            return False

        vk_x = self._ic[0]
        for scalar, ic_point in zip(signals, self._ic[1:]):
            if scalar:
                vk_x = add(vk_x, multiply(ic_point, scalar))

        lhs = pairing(b_point, a)
        rhs = self._alpha_beta * pairing(self._gamma, vk_x) * pairing(self._delta, c)
        return lhs == rhs


# =============================================================================
# MOCK IMPLEMENTATIONS (for testing without a proving backend)
# =============================================================================

_MOCK_DOMAIN = b"soulmint.mock-groth16.v1"


def _mock_points(signals: Sequence[int]) -> ProofPoints:
    payload = json.dumps([str(s) for s in signals], separators=(",", ":")).encode()
    words = []
    for index in range(8):
        digest = hashlib.sha256(_MOCK_DOMAIN + bytes([index]) + payload).digest()
        words.append(int.from_bytes(digest, "big") % BASE_FIELD_MODULUS)
    return ProofPoints(
        a=(words[0], words[1]),
        b=((words[2], words[3]), (words[4], words[5])),
        c=(words[6], words[7]),
    )


class MockProver:
    """
    Mock prover for testing.

    Derives deterministic proof points from the public signal vector, so a
    proof only verifies against exactly the signals it was made for.
    NOT CRYPTOGRAPHICALLY SECURE - for testing only.
    """

    def prove(self, signals: SignalInput) -> ProofPoints:
        return _mock_points(signal_vector(signals))


class MockVerifier:
    """
    Mock verifier paired with ``MockProver``.

    NOT CRYPTOGRAPHICALLY SECURE - for testing only.
    """

    def __init__(self, n_public: int = len(QUERY_SIGNAL_LAYOUT)):
        self.n_public = n_public
        self.calls: List[Tuple[ProofPoints, List[int]]] = []

    def verify(self, proof: ProofPoints, signals: Sequence[int]) -> bool:
        signals = list(signals)
        self.calls.append((proof, signals))
        if len(signals) != self.n_public:
            return False
        if any(not 0 <= s < SNARK_SCALAR_FIELD for s in signals):
            return False
        return proof == _mock_points(signals)


# =============================================================================
# GATEWAY
# =============================================================================

class ProofGateway:
    """
    Stateless boundary between the authorizer and a proof verifier.

    The gateway never inspects proof internals; it hands the proof and the
    reconstructed signal vector to the verifier and reports accept/reject.
    A verifier that raises on malformed input is reported as a rejection.
    """

    def __init__(self, verifier: Verifier):
        self._verifier = verifier

    @property
    def verifier(self) -> Verifier:
        return self._verifier

    def verify(self, proof: ProofPoints, signals: SignalInput) -> bool:
        vector = signal_vector(signals)
        start = time.monotonic()
        try:
            accepted = bool(self._verifier.verify(proof, vector))
        except (ValueError, TypeError, ArithmeticError) as e:
            logger.warning(
                f"Verifier raised on malformed input: {e}",
                operation="verify_proof",
                error_code="VERIFIER_ERROR",
            )
            return False

        duration_ms = (time.monotonic() - start) * 1000
        logger.info(
            "Proof accepted" if accepted else "Proof rejected",
            operation="verify_proof",
            duration_ms=duration_ms,
            signal_count=len(vector),
        )
        return accepted
