"""Quantifier elimination for linear real arithmetic via model-based projection."""

from .qe_mbp import mbp, qelim_exists_mbp
