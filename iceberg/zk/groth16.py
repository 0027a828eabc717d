"""
Iceberg Protocol Groth16

Native Groth16 over BN254 for an R1CS built with zk.r1cs.

Setup evaluates every wire's QAP polynomials at the secret tau through the
Lagrange basis (one inverse FFT), then publishes powers of tau in both
groups. Proving interpolates A, B, C from the per-constraint evaluations,
computes H = (A*B - C) / Z on a coset, and commits to the coefficient
vectors with multi-scalar multiplication.

Verification checks
    e(A, B) = e(alpha, beta) * e(vk_x, gamma) * e(C, delta)
with vk_x = IC[0] + sum(IC[i+1] * public[i]), as one product of Miller
loops followed by a single final exponentiation.

Verifying keys and proofs use the snarkjs JSON layout.
"""

from __future__ import annotations
import json
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from py_ecc.optimized_bn128 import FQ12, final_exponentiate, pairing

from iceberg.constants import PROOF_CURVE, PROOF_PROTOCOL
from iceberg.errors import IcebergError, InvalidParameterError, InvalidProofFormatError, WitnessError
from iceberg.zk.curve import (
    CURVE_ORDER,
    G1,
    G2,
    Z1,
    Z2,
    FixedBaseTable,
    G1Ints,
    G2Ints,
    add,
    g1_from_ints,
    g1_to_ints,
    g2_from_ints,
    g2_to_ints,
    multiexp,
    neg,
)
from iceberg.zk.fft import EvaluationDomain, powers
from iceberg.zk.proof import Groth16Proof
from iceberg.zk.r1cs import ConstraintSystem

logger = logging.getLogger(__name__)

R = CURVE_ORDER


# ==============================================================================
# JSON HELPERS
# ==============================================================================

def _g1_json(point: G1Ints) -> List[str]:
    if point == (0, 0):
        return ["0", "1", "0"]
    return [str(point[0]), str(point[1]), "1"]


def _g2_json(point: G2Ints) -> List[List[str]]:
    (x0, x1), (y0, y1) = point
    if not any((x0, x1, y0, y1)):
        return [["0", "0"], ["1", "0"], ["0", "0"]]
    return [[str(x0), str(x1)], [str(y0), str(y1)], ["1", "0"]]


def _g1_parse(data: Sequence[Any]) -> G1Ints:
    try:
        if len(data) > 2 and int(data[2]) == 0:
            return (0, 0)
        return (int(data[0]), int(data[1]))
    except (TypeError, ValueError, IndexError):
        raise InvalidProofFormatError("malformed G1 point") from None


def _g2_parse(data: Sequence[Any]) -> G2Ints:
    try:
        if len(data) > 2 and int(data[2][0]) == 0 and int(data[2][1]) == 0:
            return ((0, 0), (0, 0))
        return (
            (int(data[0][0]), int(data[0][1])),
            (int(data[1][0]), int(data[1][1])),
        )
    except (TypeError, ValueError, IndexError):
        raise InvalidProofFormatError("malformed G2 point") from None


# ==============================================================================
# KEYS
# ==============================================================================

@dataclass
class VerifyingKey:
    """Groth16 verifying key."""
    alpha1: G1Ints
    beta2: G2Ints
    gamma2: G2Ints
    delta2: G2Ints
    ic: List[G1Ints]

    @property
    def n_public(self) -> int:
        return len(self.ic) - 1

    def to_snarkjs(self) -> dict:
        return {
            "protocol": PROOF_PROTOCOL,
            "curve": PROOF_CURVE,
            "nPublic": self.n_public,
            "vk_alpha_1": _g1_json(self.alpha1),
            "vk_beta_2": _g2_json(self.beta2),
            "vk_gamma_2": _g2_json(self.gamma2),
            "vk_delta_2": _g2_json(self.delta2),
            "IC": [_g1_json(p) for p in self.ic],
        }

    @classmethod
    def from_snarkjs(cls, data: Dict[str, Any]) -> "VerifyingKey":
        """
        Parse a snarkjs verification_key.json.

        Raises:
            InvalidProofFormatError: If the key is malformed or for another
                protocol or curve
        """
        if data.get("protocol") != PROOF_PROTOCOL:
            raise InvalidProofFormatError(f"verifying key protocol is {data.get('protocol')}")
        if data.get("curve") != PROOF_CURVE:
            raise InvalidProofFormatError(f"verifying key curve is {data.get('curve')}")
        try:
            vk = cls(
                alpha1=_g1_parse(data["vk_alpha_1"]),
                beta2=_g2_parse(data["vk_beta_2"]),
                gamma2=_g2_parse(data["vk_gamma_2"]),
                delta2=_g2_parse(data["vk_delta_2"]),
                ic=[_g1_parse(p) for p in data["IC"]],
            )
        except KeyError as e:
            raise InvalidProofFormatError(f"verifying key is missing {e}") from None

        if "nPublic" in data and int(data["nPublic"]) != vk.n_public:
            raise InvalidProofFormatError("nPublic does not match IC length")
        return vk

    def save(self, path: str) -> None:
        with open(path, 'w') as f:
            json.dump(self.to_snarkjs(), f, indent=1)

    @classmethod
    def load(cls, path: str) -> "VerifyingKey":
        with open(path, 'r') as f:
            return cls.from_snarkjs(json.load(f))


@dataclass
class ProvingKey:
    """
    Groth16 proving key in monomial form.

    tau_g1/tau_g2: [tau^i] for i < N in G1 and G2
    h_query: [tau^i * Z(tau) / delta] for i < N - 1
    l_query: [(beta*A_m + alpha*B_m + C_m)(tau) / delta] for private wires m
    """
    alpha1: G1Ints
    beta1: G1Ints
    delta1: G1Ints
    beta2: G2Ints
    delta2: G2Ints
    tau_g1: List[G1Ints]
    tau_g2: List[G2Ints]
    h_query: List[G1Ints]
    l_query: List[G1Ints]
    domain_size: int
    num_public: int
    num_wires: int
    fingerprint: Dict[str, Any] = field(default_factory=dict)

    _points: Optional[dict] = field(default=None, repr=False, compare=False)

    def points(self) -> dict:
        """Projective points, converted once."""
        if self._points is None:
            self._points = {
                "alpha1": g1_from_ints(self.alpha1),
                "beta1": g1_from_ints(self.beta1),
                "delta1": g1_from_ints(self.delta1),
                "beta2": g2_from_ints(self.beta2, check_subgroup=False),
                "delta2": g2_from_ints(self.delta2, check_subgroup=False),
                "tau_g1": [g1_from_ints(p) for p in self.tau_g1],
                "tau_g2": [g2_from_ints(p, check_subgroup=False) for p in self.tau_g2],
                "h_query": [g1_from_ints(p) for p in self.h_query],
                "l_query": [g1_from_ints(p) for p in self.l_query],
            }
        return self._points

    def to_dict(self) -> dict:
        return {
            "protocol": PROOF_PROTOCOL,
            "curve": PROOF_CURVE,
            "domainSize": self.domain_size,
            "nPublic": self.num_public,
            "nVars": self.num_wires,
            "fingerprint": self.fingerprint,
            "alpha_1": _g1_json(self.alpha1),
            "beta_1": _g1_json(self.beta1),
            "delta_1": _g1_json(self.delta1),
            "beta_2": _g2_json(self.beta2),
            "delta_2": _g2_json(self.delta2),
            "tauG1": [_g1_json(p) for p in self.tau_g1],
            "tauG2": [_g2_json(p) for p in self.tau_g2],
            "hQuery": [_g1_json(p) for p in self.h_query],
            "lQuery": [_g1_json(p) for p in self.l_query],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProvingKey":
        try:
            return cls(
                alpha1=_g1_parse(data["alpha_1"]),
                beta1=_g1_parse(data["beta_1"]),
                delta1=_g1_parse(data["delta_1"]),
                beta2=_g2_parse(data["beta_2"]),
                delta2=_g2_parse(data["delta_2"]),
                tau_g1=[_g1_parse(p) for p in data["tauG1"]],
                tau_g2=[_g2_parse(p) for p in data["tauG2"]],
                h_query=[_g1_parse(p) for p in data["hQuery"]],
                l_query=[_g1_parse(p) for p in data["lQuery"]],
                domain_size=int(data["domainSize"]),
                num_public=int(data["nPublic"]),
                num_wires=int(data["nVars"]),
                fingerprint=data.get("fingerprint", {}),
            )
        except KeyError as e:
            raise InvalidProofFormatError(f"proving key is missing {e}") from None

    def save(self, path: str) -> None:
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f)

    @classmethod
    def load(cls, path: str) -> "ProvingKey":
        with open(path, 'r') as f:
            return cls.from_dict(json.load(f))


# ==============================================================================
# SETUP
# ==============================================================================

def _random_scalar() -> int:
    return secrets.randbelow(R - 1) + 1


def _qap_at(cs: ConstraintSystem, lagrange: List[int]) -> Tuple[List[int], List[int], List[int]]:
    """A_m(tau), B_m(tau), C_m(tau) for every wire m."""
    a = [0] * cs.num_wires
    b = [0] * cs.num_wires
    c = [0] * cs.num_wires
    for l_i, constraint in zip(lagrange, cs.constraints):
        for m, coeff in constraint.a.items():
            a[m] = (a[m] + l_i * coeff) % R
        for m, coeff in constraint.b.items():
            b[m] = (b[m] + l_i * coeff) % R
        for m, coeff in constraint.c.items():
            c[m] = (c[m] + l_i * coeff) % R
    return a, b, c


def setup(
    cs: ConstraintSystem,
    fingerprint: Optional[Dict[str, Any]] = None,
) -> Tuple[ProvingKey, VerifyingKey]:
    """
    Circuit-specific trusted setup with fresh toxic waste.

    The toxic values (tau, alpha, beta, gamma, delta) exist only inside this
    call.

    Args:
        cs: Sealed constraint system
        fingerprint: Circuit description stored in the proving key

    Returns:
        (proving key, verifying key)
    """
    started = time.monotonic()
    domain = EvaluationDomain.for_constraints(cs.num_constraints)
    n = domain.size

    tau = _random_scalar()
    while domain.vanishing_at(tau) == 0:
        tau = _random_scalar()
    alpha, beta, gamma, delta = (_random_scalar() for _ in range(4))
    gamma_inv = pow(gamma, -1, R)
    delta_inv = pow(delta, -1, R)

    a, b, c = _qap_at(cs, domain.lagrange_at(tau))
    z_tau = domain.vanishing_at(tau)

    g1 = FixedBaseTable(G1, Z1)
    g2 = FixedBaseTable(G2, Z2)

    combined = [(beta * a[m] + alpha * b[m] + c[m]) % R for m in range(cs.num_wires)]
    public_range = range(cs.num_public + 1)
    private_range = range(cs.num_public + 1, cs.num_wires)

    ic = [g1_to_ints(g1.mul(combined[m] * gamma_inv)) for m in public_range]
    l_query = [g1_to_ints(g1.mul(combined[m] * delta_inv)) for m in private_range]

    tau_powers = list(powers(tau, n))
    tau_g1 = [g1_to_ints(g1.mul(t)) for t in tau_powers]
    tau_g2 = [g2_to_ints(g2.mul(t)) for t in tau_powers]
    h_scale = z_tau * delta_inv % R
    h_query = [g1_to_ints(g1.mul(t * h_scale)) for t in tau_powers[:n - 1]]

    pk = ProvingKey(
        alpha1=g1_to_ints(g1.mul(alpha)),
        beta1=g1_to_ints(g1.mul(beta)),
        delta1=g1_to_ints(g1.mul(delta)),
        beta2=g2_to_ints(g2.mul(beta)),
        delta2=g2_to_ints(g2.mul(delta)),
        tau_g1=tau_g1,
        tau_g2=tau_g2,
        h_query=h_query,
        l_query=l_query,
        domain_size=n,
        num_public=cs.num_public,
        num_wires=cs.num_wires,
        fingerprint=dict(fingerprint or {}),
    )
    vk = VerifyingKey(
        alpha1=pk.alpha1,
        beta2=pk.beta2,
        gamma2=g2_to_ints(g2.mul(gamma)),
        delta2=pk.delta2,
        ic=ic,
    )

    logger.info(
        f"Groth16 setup: {cs.num_constraints} constraints, domain {n}, "
        f"{time.monotonic() - started:.1f}s"
    )
    return pk, vk


# ==============================================================================
# PROVE
# ==============================================================================

def prove(
    pk: ProvingKey,
    cs: ConstraintSystem,
    witness: List[int],
    check_witness: bool = True,
) -> Groth16Proof:
    """
    Create a zero-knowledge proof for a full witness.

    Args:
        pk: Proving key for this constraint system
        cs: Constraint system
        witness: Full witness from cs.generate_witness
        check_witness: Refuse witnesses that violate a constraint

    Returns:
        Groth16Proof

    Raises:
        InvalidParameterError: If the key does not belong to the system
        WitnessError: If check_witness is set and the witness is invalid
    """
    if pk.num_wires != cs.num_wires or len(witness) != cs.num_wires:
        raise InvalidParameterError("witness", f"expected {pk.num_wires} wires, got {len(witness)}")
    if check_witness:
        bad = cs.first_unsatisfied(witness)
        if bad is not None:
            raise WitnessError(bad, cs.constraints[bad].label)

    started = time.monotonic()
    domain = EvaluationDomain(pk.domain_size)
    if cs.num_constraints > domain.size:
        raise InvalidParameterError("pk", "domain smaller than constraint count")

    def evaluate(terms: Dict[int, int]) -> int:
        return sum(witness[m] * coeff for m, coeff in terms.items()) % R

    a_evals = [evaluate(con.a) for con in cs.constraints]
    b_evals = [evaluate(con.b) for con in cs.constraints]
    c_evals = [evaluate(con.c) for con in cs.constraints]

    a_coeffs = domain.ifft(a_evals)
    b_coeffs = domain.ifft(b_evals)
    c_coeffs = domain.ifft(c_evals)

    a_coset = domain.coset_fft(a_coeffs)
    b_coset = domain.coset_fft(b_coeffs)
    c_coset = domain.coset_fft(c_coeffs)
    z_inv = domain.vanishing_on_coset_inv
    h_coset = [(x * y - z) * z_inv % R for x, y, z in zip(a_coset, b_coset, c_coset)]
    h_coeffs = domain.coset_ifft(h_coset)[:domain.size - 1]

    r = _random_scalar()
    s = _random_scalar()
    points = pk.points()

    proof_a = multiexp(points["tau_g1"] + [points["alpha1"], points["delta1"]], a_coeffs + [1, r])
    proof_b1 = multiexp(points["tau_g1"] + [points["beta1"], points["delta1"]], b_coeffs + [1, s])
    proof_b2 = multiexp(points["tau_g2"] + [points["beta2"], points["delta2"]], b_coeffs + [1, s], zero=Z2)

    private = witness[cs.num_public + 1:]
    proof_c = multiexp(
        points["l_query"] + points["h_query"] + [proof_a, proof_b1, points["delta1"]],
        private + h_coeffs + [s, r, (-r * s) % R],
    )

    logger.debug(f"Groth16 proof generated in {time.monotonic() - started:.1f}s")
    return Groth16Proof(a=g1_to_ints(proof_a), b=g2_to_ints(proof_b2), c=g1_to_ints(proof_c))


# ==============================================================================
# VERIFY
# ==============================================================================

class Groth16Verifier:
    """Verifier bound to one verifying key."""

    def __init__(self, vk: VerifyingKey):
        self.vk = vk
        self._neg_alpha1 = neg(g1_from_ints(vk.alpha1))
        self._beta2 = g2_from_ints(vk.beta2)
        self._gamma2 = g2_from_ints(vk.gamma2)
        self._delta2 = g2_from_ints(vk.delta2)
        self._ic = [g1_from_ints(p) for p in vk.ic]

    @property
    def n_public(self) -> int:
        return self.vk.n_public

    def verify(self, proof: Groth16Proof, public_inputs: Sequence[int]) -> bool:
        """
        Check a proof against public inputs.

        Malformed proofs, wrong input counts and out-of-range inputs all
        verify as False.

        Args:
            proof: Proof to check
            public_inputs: Field elements in circuit order

        Returns:
            True only for a valid proof
        """
        try:
            if len(public_inputs) != self.n_public:
                logger.debug(f"Expected {self.n_public} public inputs, got {len(public_inputs)}")
                return False
            if any(not 0 <= int(x) < R for x in public_inputs):
                logger.debug("Public input outside the scalar field")
                return False

            a = g1_from_ints(proof.a)
            b = g2_from_ints(proof.b)
            c = g1_from_ints(proof.c)

            vk_x = add(self._ic[0], multiexp(self._ic[1:], [int(x) for x in public_inputs]))

            product = pairing(b, a, final_exponentiate=False)
            product *= pairing(self._beta2, self._neg_alpha1, final_exponentiate=False)
            product *= pairing(self._gamma2, neg(vk_x), final_exponentiate=False)
            product *= pairing(self._delta2, neg(c), final_exponentiate=False)
            return final_exponentiate(product) == FQ12.one()

        except IcebergError as e:
            logger.debug(f"Proof rejected: {e.message}")
            return False
        except (AssertionError, ValueError, TypeError, ZeroDivisionError) as e:
            logger.debug(f"Proof rejected: {e}")
            return False


def verify(vk: VerifyingKey, proof: Groth16Proof, public_inputs: Sequence[int]) -> bool:
    """One-shot verification; see Groth16Verifier.verify."""
    return Groth16Verifier(vk).verify(proof, public_inputs)
