"""Shared utilities: exceptions and z3 expression helpers."""

from .exceptions import (
    LraMboException,
    TableauInvariantError,
    NonLinearTermError,
    UnsupportedAtomError,
)
