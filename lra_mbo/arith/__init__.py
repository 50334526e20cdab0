"""Linear real arithmetic.

- model_based_opt: the constraint tableau (maximization and projection)
- inf_eps: extended values returned by maximization
"""

from .inf_eps import InfEps
from .model_based_opt import IneqType, ModelBasedOpt, Row, Var

__all__ = [
    "InfEps",
    "IneqType",
    "ModelBasedOpt",
    "Row",
    "Var",
]
