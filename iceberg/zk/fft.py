"""
Iceberg Protocol Evaluation Domain

Radix-2 number theoretic transform over the BN254 scalar field, used to move
QAP polynomials between evaluation form (one value per constraint) and
coefficient form.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, List

from iceberg.constants import FIELD_GENERATOR, FIELD_MODULUS, FIELD_TWO_ADICITY
from iceberg.crypto.field import field_inv
from iceberg.errors import InvalidParameterError

P = FIELD_MODULUS


def root_of_unity(order: int) -> int:
    """
    Primitive root of unity of the given power-of-two order.

    Raises:
        InvalidParameterError: If order is not a power of two supported by
            the field
    """
    if order < 1 or order & (order - 1):
        raise InvalidParameterError("order", f"{order} is not a power of two")
    if order > 1 << FIELD_TWO_ADICITY:
        raise InvalidParameterError("order", f"{order} exceeds 2^{FIELD_TWO_ADICITY}")
    return pow(FIELD_GENERATOR, (P - 1) // order, P)


def powers(base: int, count: int) -> Iterator[int]:
    """base^0, base^1, ..., base^(count-1)"""
    value = 1
    for _ in range(count):
        yield value
        value = value * base % P


def _bit_reverse(values: List[int]) -> List[int]:
    n = len(values)
    bits = n.bit_length() - 1
    result = [0] * n
    for i, v in enumerate(values):
        result[int(format(i, f"0{bits}b")[::-1], 2) if bits else 0] = v
    return result


def _transform(values: List[int], root: int) -> List[int]:
    a = _bit_reverse(values)
    n = len(a)
    length = 2
    while length <= n:
        half = length >> 1
        twiddles = list(powers(pow(root, n // length, P), half))
        for start in range(0, n, length):
            for k in range(half):
                u = a[start + k]
                v = a[start + k + half] * twiddles[k] % P
                a[start + k] = (u + v) % P
                a[start + k + half] = (u - v) % P
        length <<= 1
    return a


@dataclass
class EvaluationDomain:
    """
    Multiplicative subgroup {omega^i} of size N (a power of two).

    The coset used for quotient computation is shift * {omega^i} with shift a
    primitive 2N-th root of unity, so the vanishing polynomial X^N - 1 equals
    -2 at every coset point.
    """
    size: int

    def __post_init__(self):
        self.omega = root_of_unity(self.size)
        self.omega_inv = field_inv(self.omega)
        self.size_inv = field_inv(self.size)
        self.shift = root_of_unity(2 * self.size)
        self.shift_inv = field_inv(self.shift)

    @classmethod
    def for_constraints(cls, count: int) -> "EvaluationDomain":
        """Smallest domain holding count constraints."""
        return cls(1 << max(count - 1, 0).bit_length())

    def _pad(self, values: List[int]) -> List[int]:
        if len(values) > self.size:
            raise InvalidParameterError("values", f"{len(values)} exceeds domain size {self.size}")
        return list(values) + [0] * (self.size - len(values))

    def fft(self, coeffs: List[int]) -> List[int]:
        """Coefficients to evaluations at omega^i."""
        return _transform(self._pad(coeffs), self.omega)

    def ifft(self, evals: List[int]) -> List[int]:
        """Evaluations at omega^i to coefficients."""
        return [c * self.size_inv % P for c in _transform(self._pad(evals), self.omega_inv)]

    def coset_fft(self, coeffs: List[int]) -> List[int]:
        """Coefficients to evaluations at shift * omega^i."""
        shifted = [c * k % P for c, k in zip(self._pad(coeffs), powers(self.shift, self.size))]
        return _transform(shifted, self.omega)

    def coset_ifft(self, evals: List[int]) -> List[int]:
        """Evaluations at shift * omega^i to coefficients."""
        coeffs = self.ifft(evals)
        return [c * k % P for c, k in zip(coeffs, powers(self.shift_inv, self.size))]

    def vanishing_at(self, x: int) -> int:
        """Z(x) = x^N - 1"""
        return (pow(x, self.size, P) - 1) % P

    @property
    def vanishing_on_coset_inv(self) -> int:
        """1 / Z on the coset, i.e. -1/2."""
        return field_inv(P - 2)

    def lagrange_at(self, tau: int) -> List[int]:
        """
        Every Lagrange basis polynomial evaluated at tau.

        ifft of (1, tau, tau^2, ...) gives L_i(tau), since L_i(X) has
        coefficients omega^(-ij) / N.
        """
        return self.ifft(list(powers(tau, self.size)))
