"""Model-based optimization and projection for linear real arithmetic."""
from .arith import InfEps, IneqType, ModelBasedOpt, Row, Var
from .global_params import global_config

__version__ = "0.1.0"
