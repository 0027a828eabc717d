"""
Iceberg Protocol Rank-1 Constraint System

Every value in a circuit is a linear combination of witness wires,
represented as {wire_index: coefficient}. Wire 0 is the constant 1, the
public inputs follow, then private inputs and intermediate wires.

Each constraint asserts <A, w> * <B, w> = <C, w>. Wires carry a compute
function so the witness can be generated by running them in order.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union

from iceberg.constants import FIELD_MODULUS
from iceberg.errors import InvalidParameterError, WitnessError

ONE_WIRE = 0

Terms = Dict[int, int]


class LinearCombination:
    """
    Sparse linear combination of wires. Coefficients are kept reduced and
    zero coefficients are dropped.
    """
    __slots__ = ("terms",)

    def __init__(self, terms: Optional[Terms] = None):
        self.terms: Terms = {}
        if terms:
            for wire, coeff in terms.items():
                coeff %= FIELD_MODULUS
                if coeff:
                    self.terms[wire] = coeff

    @classmethod
    def wire(cls, index: int) -> "LinearCombination":
        return cls({index: 1})

    @classmethod
    def constant(cls, value: int) -> "LinearCombination":
        return cls({ONE_WIRE: value})

    @classmethod
    def zero(cls) -> "LinearCombination":
        return cls()

    def __add__(self, other: Union["LinearCombination", int]) -> "LinearCombination":
        if isinstance(other, int):
            other = LinearCombination.constant(other)
        result = LinearCombination(self.terms)
        for wire, coeff in other.terms.items():
            value = (result.terms.get(wire, 0) + coeff) % FIELD_MODULUS
            if value:
                result.terms[wire] = value
            else:
                result.terms.pop(wire, None)
        return result

    __radd__ = __add__

    def __neg__(self) -> "LinearCombination":
        return LinearCombination({w: -c for w, c in self.terms.items()})

    def __sub__(self, other: Union["LinearCombination", int]) -> "LinearCombination":
        if isinstance(other, int):
            other = LinearCombination.constant(other)
        return self + (-other)

    def __rsub__(self, other: int) -> "LinearCombination":
        return LinearCombination.constant(other) + (-self)

    def scale(self, factor: int) -> "LinearCombination":
        return LinearCombination({w: c * factor for w, c in self.terms.items()})

    def evaluate(self, witness: List[int]) -> int:
        return sum(witness[w] * c for w, c in self.terms.items()) % FIELD_MODULUS

    def __len__(self) -> int:
        return len(self.terms)

    def __repr__(self) -> str:
        return f"LinearCombination({len(self.terms)} terms)"


LC = LinearCombination
WireCompute = Callable[[List[int], Dict[str, int]], int]


@dataclass
class Constraint:
    """<a, w> * <b, w> = <c, w>"""
    a: Terms
    b: Terms
    c: Terms
    label: str = ""

    def is_satisfied(self, witness: List[int]) -> bool:
        a = sum(witness[w] * k for w, k in self.a.items())
        b = sum(witness[w] * k for w, k in self.b.items())
        c = sum(witness[w] * k for w, k in self.c.items())
        return (a * b - c) % FIELD_MODULUS == 0


@dataclass
class ConstraintSystem:
    """
    Constraint system builder and witness generator.

    Public inputs must be declared before any other wire so that they occupy
    wires 1..num_public.
    """
    constraints: List[Constraint] = field(default_factory=list)
    wire_names: List[str] = field(default_factory=list)
    num_public: int = 0

    _computes: List[WireCompute] = field(default_factory=list)
    _inputs: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        self.wire_names = ["one"]
        self._computes = [lambda w, inputs: 1]
        self._inputs = {}

    @property
    def num_wires(self) -> int:
        return len(self.wire_names)

    @property
    def num_constraints(self) -> int:
        return len(self.constraints)

    @property
    def public_input_names(self) -> List[str]:
        return self.wire_names[1:self.num_public + 1]

    def _new_wire(self, name: str, compute: WireCompute) -> LinearCombination:
        index = len(self.wire_names)
        self.wire_names.append(name)
        self._computes.append(compute)
        return LinearCombination.wire(index)

    def public_input(self, name: str) -> LinearCombination:
        """Declare a public input wire."""
        if self.num_wires != self.num_public + 1:
            raise InvalidParameterError(name, "public inputs must be declared first")
        self.num_public += 1
        return self._input(name)

    def private_input(self, name: str) -> LinearCombination:
        """Declare a private input wire."""
        return self._input(name)

    def _input(self, name: str) -> LinearCombination:
        if name in self._inputs:
            raise InvalidParameterError(name, "input declared twice")
        self._inputs[name] = self.num_wires
        return self._new_wire(name, lambda w, inputs, _n=name: inputs[_n] % FIELD_MODULUS)

    def enforce(self, a: LC, b: LC, c: LC, label: str = "") -> None:
        """Add the constraint a * b = c."""
        self.constraints.append(Constraint(dict(a.terms), dict(b.terms), dict(c.terms), label))

    def mul(self, a: LC, b: LC, label: str = "") -> LinearCombination:
        """Allocate a wire holding a * b and constrain it."""
        out = self._new_wire(
            label or f"mul{len(self.constraints)}",
            lambda w, inputs, _a=a, _b=b: _a.evaluate(w) * _b.evaluate(w) % FIELD_MODULUS,
        )
        self.enforce(a, b, out, label)
        return out

    def assert_equal(self, a: LC, b: LC, label: str = "") -> None:
        """(a - b) * 1 = 0"""
        self.enforce(a - b, LinearCombination.constant(1), LinearCombination.zero(), label)

    def assert_boolean(self, a: LC, label: str = "") -> None:
        """a * (a - 1) = 0"""
        self.enforce(a, a - 1, LinearCombination.zero(), label)

    def seal_public_inputs(self) -> None:
        """
        Add one row w_i * 0 = 0 per public input (and the constant wire) so
        that their A-polynomials are linearly independent.
        """
        for index in range(self.num_public + 1):
            self.enforce(
                LinearCombination.wire(index),
                LinearCombination.zero(),
                LinearCombination.zero(),
                f"public:{self.wire_names[index]}",
            )

    def generate_witness(self, inputs: Dict[str, int], check: bool = True) -> List[int]:
        """
        Compute every wire from named inputs.

        Args:
            inputs: Value for every declared input name
            check: Verify all constraints afterwards

        Returns:
            Full witness vector, witness[0] == 1

        Raises:
            InvalidParameterError: If an input is missing
            WitnessError: If check is set and a constraint fails
        """
        missing = [name for name in self._inputs if name not in inputs]
        if missing:
            raise InvalidParameterError(missing[0], "missing circuit input")

        witness: List[int] = []
        for compute in self._computes:
            witness.append(compute(witness, inputs))

        if check:
            index = self.first_unsatisfied(witness)
            if index is not None:
                raise WitnessError(index, self.constraints[index].label)
        return witness

    def first_unsatisfied(self, witness: List[int]) -> Optional[int]:
        """Index of the first violated constraint, or None."""
        for index, constraint in enumerate(self.constraints):
            if not constraint.is_satisfied(witness):
                return index
        return None

    def public_values(self, witness: List[int]) -> List[int]:
        return witness[1:self.num_public + 1]
