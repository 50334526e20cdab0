"""Model-based OMT for linear real arithmetic."""

from .arith_opt_mbo import OptResult, arith_opt_with_mbo, maximize_under_model
