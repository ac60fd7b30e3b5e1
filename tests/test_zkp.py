"""
Zero-knowledge boundary tests: proof point layout, the public signal
layout, the mock prover/verifier pair, the gateway, and the
pairing-based Groth16 verifier.

The Groth16 tests build a synthetic trusted setup from known scalars, so a
valid proof can be computed directly without a circuit:

    C = (a*b - alpha*beta - x*gamma) / delta,  x = ic0 + sum(s_i * ic_i)

Run the pairing tests with: SOULMINT_RUN_SLOW=1 pytest tests/test_zkp.py -v

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest
from py_ecc.optimized_bn128 import G1, G2, multiply, normalize

from soulmint.zkp import (
    QUERY_SIGNAL_LAYOUT,
    SNARK_SCALAR_FIELD,
    Groth16Verifier,
    MockProver,
    MockVerifier,
    ProofGateway,
    ProofPoints,
    PublicSignals,
    VerificationKey,
    Verifier,
)


def _signals(**overrides) -> PublicSignals:
    values = {name: index + 1 for index, name in enumerate(QUERY_SIGNAL_LAYOUT)}
    values.update(overrides)
    return PublicSignals(**values)


# =============================================================================
# PROOF POINTS
# =============================================================================

class TestProofPoints:
    """Conversion between snarkjs output and the verifier layout."""

    SNARKJS = {
        "pi_a": ["1", "2", "1"],
        "pi_b": [["3", "4"], ["5", "6"], ["1", "0"]],
        "pi_c": ["7", "8", "1"],
        "protocol": "groth16",
        "curve": "bn128",
    }

    def test_b_rows_swapped(self):
        """Each G2 row is reordered to (imaginary, real)."""
        proof = ProofPoints.from_snarkjs_json(self.SNARKJS)
        assert proof.a == (1, 2)
        assert proof.b == ((4, 3), (6, 5))
        assert proof.c == (7, 8)

    def test_to_snarkjs_restores_order(self):
        proof = ProofPoints.from_snarkjs_json(self.SNARKJS)
        assert proof.to_snarkjs()["pi_b"][:2] == [["3", "4"], ["5", "6"]]

    def test_calldata_keeps_verifier_layout(self):
        proof = ProofPoints.from_snarkjs_json(self.SNARKJS)
        a, b, c = proof.to_calldata()
        assert b == [[4, 3], [6, 5]]
        assert ProofPoints.from_dict(proof.to_dict()) == proof

    def test_hex_coordinates_accepted(self):
        proof = ProofPoints.from_snarkjs(["0x1", "0x2"], [["3", "4"], ["5", "6"]], [7, 8])
        assert proof.a == (1, 2)

    def test_malformed_proof_rejected(self):
        with pytest.raises(ValueError):
            ProofPoints.from_snarkjs_json({"pi_a": ["1", "2"]})
        with pytest.raises(ValueError):
            ProofPoints.from_snarkjs(["x", "2"], [["3", "4"], ["5", "6"]], ["7", "8"])


# =============================================================================
# PUBLIC SIGNALS
# =============================================================================

class TestPublicSignals:
    """The identity query circuit's signal layout."""

    def test_layout(self):
        assert len(QUERY_SIGNAL_LAYOUT) == 15
        assert QUERY_SIGNAL_LAYOUT[0] == "nullifier"
        assert QUERY_SIGNAL_LAYOUT[3] == "id_state_root"
        assert QUERY_SIGNAL_LAYOUT[-1] == "citizenship_mask"

    def test_vector_follows_layout(self):
        signals = _signals()
        assert signals.to_vector() == list(range(1, 16))
        assert PublicSignals.from_vector([str(v) for v in range(1, 16)]) == signals

    def test_wrong_length_rejected(self):
        with pytest.raises(ValueError):
            PublicSignals.from_vector([1, 2, 3])

    def test_out_of_field(self):
        signals = _signals(event_data=SNARK_SCALAR_FIELD)
        assert signals.out_of_field() == ["event_data"]
        assert _signals().out_of_field() == []


# =============================================================================
# MOCK PROVER / VERIFIER
# =============================================================================

class TestMockProofSystem:
    def test_honest_proof_verifies(self):
        signals = _signals()
        proof = MockProver().prove(signals)
        verifier = MockVerifier()
        assert isinstance(verifier, Verifier)
        assert verifier.verify(proof, signals.to_vector())
        assert len(verifier.calls) == 1

    def test_proof_bound_to_signals(self):
        proof = MockProver().prove(_signals())
        assert not MockVerifier().verify(proof, _signals(nullifier=999).to_vector())

    def test_wrong_arity_rejected(self):
        proof = MockProver().prove([1, 2])
        assert not MockVerifier().verify(proof, [1, 2])
        assert MockVerifier(n_public=2).verify(proof, [1, 2])


# =============================================================================
# GATEWAY
# =============================================================================

class _RaisingVerifier:
    def verify(self, proof, signals):
        raise ValueError("point not on curve")


class TestProofGateway:
    """The stateless accept/reject boundary."""

    def test_accepts_public_signals_object(self):
        signals = _signals()
        gateway = ProofGateway(MockVerifier())
        assert gateway.verify(MockProver().prove(signals), signals)

    def test_rejects_bad_proof(self):
        gateway = ProofGateway(MockVerifier())
        assert not gateway.verify(MockProver().prove(_signals()), _signals(selector=0))

    def test_verifier_error_is_rejection(self):
        gateway = ProofGateway(_RaisingVerifier())
        assert gateway.verify(MockProver().prove(_signals()), _signals()) is False

    def test_gateway_is_stateless(self):
        """Verifying twice gives the same answer."""
        signals = _signals()
        proof = MockProver().prove(signals)
        gateway = ProofGateway(MockVerifier())
        assert gateway.verify(proof, signals)
        assert gateway.verify(proof, signals)


# =============================================================================
# GROTH16
# =============================================================================

ALPHA, BETA, GAMMA, DELTA = 11, 13, 17, 19
IC_SCALARS = (3, 5, 7)
PROOF_A, PROOF_B = 23, 29
SIGNALS = [42, 99]


def _int(value):
    return value if isinstance(value, int) else value.n


def _g1_json(point):
    x, y = normalize(point)
    return [str(_int(x)), str(_int(y)), "1"]


def _g2_json(point):
    x, y = normalize(point)
    return [
        [str(_int(x.coeffs[0])), str(_int(x.coeffs[1]))],
        [str(_int(y.coeffs[0])), str(_int(y.coeffs[1]))],
        ["1", "0"],
    ]


def _synthetic_setup(signals):
    """Verification key and a valid proof (both snarkjs JSON) for ``signals``."""
    r = SNARK_SCALAR_FIELD
    vk = {
        "protocol": "groth16",
        "curve": "bn128",
        "nPublic": len(signals),
        "vk_alpha_1": _g1_json(multiply(G1, ALPHA)),
        "vk_beta_2": _g2_json(multiply(G2, BETA)),
        "vk_gamma_2": _g2_json(multiply(G2, GAMMA)),
        "vk_delta_2": _g2_json(multiply(G2, DELTA)),
        "IC": [_g1_json(multiply(G1, u)) for u in IC_SCALARS],
    }

    x = IC_SCALARS[0] + sum(s * u for s, u in zip(signals, IC_SCALARS[1:]))
    c = (PROOF_A * PROOF_B - ALPHA * BETA - x * GAMMA) * pow(DELTA, r - 2, r) % r
    proof = {
        "pi_a": _g1_json(multiply(G1, PROOF_A)),
        "pi_b": _g2_json(multiply(G2, PROOF_B)),
        "pi_c": _g1_json(multiply(G1, c)),
        "protocol": "groth16",
        "curve": "bn128",
    }
    return vk, proof


class TestVerificationKey:
    """Parsing snarkjs verification keys."""

    def test_parse_and_digest(self):
        vk_json, _ = _synthetic_setup(SIGNALS)
        vk = VerificationKey.from_snarkjs(vk_json)
        assert vk.n_public == 2
        assert VerificationKey.from_snarkjs(vk.to_snarkjs()) == vk
        assert len(vk.digest()) == 64

    def test_npublic_mismatch_rejected(self):
        vk_json, _ = _synthetic_setup(SIGNALS)
        vk_json["nPublic"] = 3
        with pytest.raises(ValueError):
            VerificationKey.from_snarkjs(vk_json)

    def test_other_protocol_rejected(self):
        vk_json, _ = _synthetic_setup(SIGNALS)
        vk_json["protocol"] = "plonk"
        with pytest.raises(ValueError):
            VerificationKey.from_snarkjs(vk_json)

    def test_missing_field_rejected(self):
        vk_json, _ = _synthetic_setup(SIGNALS)
        del vk_json["vk_delta_2"]
        with pytest.raises(ValueError):
            VerificationKey.from_snarkjs(vk_json)


@pytest.mark.slow
class TestGroth16Verifier:
    """Pairing checks against the synthetic setup."""

    @pytest.fixture(scope="class")
    def setup(self):
        vk_json, proof_json = _synthetic_setup(SIGNALS)
        verifier = Groth16Verifier(VerificationKey.from_snarkjs(vk_json))
        return verifier, ProofPoints.from_snarkjs_json(proof_json), proof_json

    def test_valid_proof(self, setup):
        verifier, proof, _ = setup
        assert verifier.verify(proof, SIGNALS)

    def test_wrong_signals_rejected(self, setup):
        verifier, proof, _ = setup
        assert not verifier.verify(proof, [42, 100])

    def test_unswapped_b_rejected(self, setup):
        """Feeding snarkjs' real-first G2 rows straight through fails."""
        verifier, _, proof_json = setup
        raw = ProofPoints(
            a=(int(proof_json["pi_a"][0]), int(proof_json["pi_a"][1])),
            b=(
                (int(proof_json["pi_b"][0][0]), int(proof_json["pi_b"][0][1])),
                (int(proof_json["pi_b"][1][0]), int(proof_json["pi_b"][1][1])),
            ),
            c=(int(proof_json["pi_c"][0]), int(proof_json["pi_c"][1])),
        )
        assert not verifier.verify(raw, SIGNALS)

    def test_signal_count_mismatch_rejected(self, setup):
        verifier, proof, _ = setup
        assert not verifier.verify(proof, SIGNALS + [1])

    def test_out_of_field_signal_rejected(self, setup):
        verifier, proof, _ = setup
        assert not verifier.verify(proof, [42 + SNARK_SCALAR_FIELD, 99])

    def test_point_off_curve_rejected(self, setup):
        verifier, proof, _ = setup
        bad = ProofPoints(a=(1, 3), b=proof.b, c=proof.c)
        assert not verifier.verify(bad, SIGNALS)

    def test_gateway_over_groth16(self, setup):
        verifier, proof, _ = setup
        assert ProofGateway(verifier).verify(proof, SIGNALS)
        tampered = ProofPoints(a=proof.a, b=proof.b, c=(proof.a[0], proof.a[1]))
        assert not ProofGateway(verifier).verify(tampered, SIGNALS)
