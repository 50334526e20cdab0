"""Extended rational values: r + k*epsilon, or +/- infinity.

``InfEps(5)`` is the attained value 5, ``InfEps(5, -1)`` is a supremum 5 that
is not attained (infinitesimally below 5) and ``InfEps.infinity()`` is the
result of an unbounded maximization.
"""
import functools
from fractions import Fraction
from typing import Tuple, Union

Number = Union[int, Fraction]


@functools.total_ordering
class InfEps:
    """An element of the ordered group Q x Q[epsilon] extended with +/- infinity."""

    __slots__ = ("_infinity", "_value", "_eps")

    def __init__(self, value: Number = 0, eps: Number = 0, infinity: int = 0):
        if infinity not in (-1, 0, 1):
            raise ValueError(f"infinity must be -1, 0 or 1, got {infinity}")
        self._infinity = infinity
        self._value = Fraction(0) if infinity else Fraction(value)
        self._eps = Fraction(0) if infinity else Fraction(eps)

    @classmethod
    def infinity(cls) -> "InfEps":
        return cls(infinity=1)

    @classmethod
    def minus_infinity(cls) -> "InfEps":
        return cls(infinity=-1)

    @property
    def value(self) -> Fraction:
        return self._value

    @property
    def eps(self) -> Fraction:
        return self._eps

    @property
    def is_infinite(self) -> bool:
        return self._infinity != 0

    @property
    def is_finite(self) -> bool:
        return self._infinity == 0

    @property
    def is_strict(self) -> bool:
        """True for a finite bound that is approached but not attained."""
        return self.is_finite and self._eps != 0

    def _key(self) -> Tuple[int, Fraction, Fraction]:
        return self._infinity, self._value, self._eps

    def __eq__(self, other) -> bool:
        if isinstance(other, (int, Fraction)):
            other = InfEps(other)
        if not isinstance(other, InfEps):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other) -> bool:
        if isinstance(other, (int, Fraction)):
            other = InfEps(other)
        if not isinstance(other, InfEps):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        # equal to the plain number it compares equal to
        if self._infinity == 0 and self._eps == 0:
            return hash(self._value)
        return hash(self._key())

    def __neg__(self) -> "InfEps":
        if self.is_infinite:
            return InfEps(infinity=-self._infinity)
        return InfEps(-self._value, -self._eps)

    def __str__(self) -> str:
        if self._infinity > 0:
            return "oo"
        if self._infinity < 0:
            return "-oo"
        if self._eps == 0:
            return str(self._value)
        sign = "+" if self._eps > 0 else "-"
        eps = abs(self._eps)
        eps_str = "epsilon" if eps == 1 else f"{eps}*epsilon"
        return f"{self._value} {sign} {eps_str}"

    def __repr__(self) -> str:
        if self.is_infinite:
            return f"InfEps(infinity={self._infinity})"
        return f"InfEps({self._value!s}, {self._eps!s})"
