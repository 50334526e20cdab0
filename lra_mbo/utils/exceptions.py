# coding: utf-8
"""
Public subclasses of different Exceptions
"""


class LraMboException(Exception):
    """Base class for lra_mbo exceptions"""

    pass


class TableauInvariantError(LraMboException, AssertionError):
    """A row of the tableau broke its invariant, or a caller contract was violated.

    This signals a programming error in the embedding code (or in the tableau
    itself); it is never an expected runtime outcome.
    """

    pass


class NonLinearTermError(LraMboException, ValueError):
    """A term multiplies or divides two non-constant expressions."""

    pass


class UnsupportedAtomError(LraMboException, ValueError):
    """An atom or term outside of quantifier-free linear real arithmetic."""

    pass
