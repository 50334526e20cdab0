"""Quantifier Elimination via Model-Based Projection (MBP-QE) for LRA

``mbp`` projects real variables out of a conjunction of literals that hold in
a model, using the model-based tableau. ``qelim_exists_mbp`` is lazy model
enumeration (as in LME-QE) with ``mbp`` in place of a generic QE tactic for
each minterm.
"""
import logging
from typing import Iterable, List, Sequence

import z3

from lra_mbo.global_params import global_config
from lra_mbo.utils.exceptions import UnsupportedAtomError
from lra_mbo.utils.z3_expr_utils import (
    TableauBuilder, eval_predicates, get_atoms, get_variables, negate,
)

logger = logging.getLogger(__name__)


def _flatten(fmls: Iterable[z3.ExprRef]) -> List[z3.ExprRef]:
    res = []
    stack = list(reversed(list(fmls)))
    while stack:
        f = stack.pop()
        if z3.is_and(f):
            stack.extend(reversed(f.children()))
        elif not z3.is_true(f):
            res.append(f)
    return res


def mbp(fmls: Sequence[z3.ExprRef], qvars: Sequence[z3.ExprRef], model: z3.ModelRef) -> z3.ExprRef:
    """Project ``qvars`` out of the conjunction ``fmls`` under ``model``.

    Args:
        fmls: Literals (or conjunctions of literals) that hold in ``model``.
        qvars: Real constants to eliminate.
        model: A model of ``fmls``.

    Returns:
        A quantifier-free formula over the remaining variables that holds in
        ``model`` and implies ``Exists(qvars, And(fmls))``.
    """
    qkeys = {v.get_id() for v in qvars}
    builder = TableauBuilder(model)
    residual = []
    lits = _flatten(fmls)
    for lit in lits:
        if builder.add_literal(lit):
            continue
        if any(v.get_id() in qkeys for v in get_variables(lit)):
            raise UnsupportedAtomError(f"cannot project through non-arithmetic literal: {lit}")
        residual.append(lit)
    builder.mbo.project_vars([builder.var_id(v) for v in qvars])
    res = residual + builder.live_constraints()
    logger.debug("mbp: %d literals -> %d", len(lits), len(res))
    return z3.And(res) if res else z3.BoolVal(True)


def qelim_exists_mbp(phi: z3.ExprRef, qvars: Sequence[z3.ExprRef]) -> z3.ExprRef:
    """Eliminate existential quantifiers over real ``qvars`` from ``phi``.

    Raises:
        RuntimeError: If the enumeration does not finish within
            ``global_config.max_iterations`` models.
    """
    s = z3.Solver()
    s.add(phi)
    res = []
    preds = get_atoms(phi)
    iterations = 0
    while s.check() == z3.sat:
        iterations += 1
        if iterations > global_config.max_iterations:
            raise RuntimeError(f"qelim_exists_mbp did not converge in {global_config.max_iterations} iterations")
        m = s.model()
        minterm = eval_predicates(m, preds)
        proj = mbp(minterm, qvars, m)
        res.append(proj)
        s.add(negate(proj))
    logger.info("MBP-QE finished after %d projections", len(res))
    return z3.simplify(z3.Or(res)) if res else z3.BoolVal(False)


def demo_qe():
    """Eliminate x and y from a small formula."""
    x, y, z = z3.Reals("x y z")
    fml = z3.And(z3.Or(x > 2, x < y + 3), z3.Or(x - z > 3, z < 10))
    print(qelim_exists_mbp(fml, [x, y]))


if __name__ == "__main__":
    demo_qe()
