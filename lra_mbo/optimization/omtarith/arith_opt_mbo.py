"""
Model-based OMT for linear real arithmetic.

Each round takes a model of the formula, maximizes the objective over the
implicant of that model with the model-based tableau, and blocks every point
that is no better than the value reached. The value strictly increases from
round to round, so the loop stops after finitely many tableau cells.
"""
import logging
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, Optional, Sequence

import z3

from lra_mbo.arith.inf_eps import InfEps
from lra_mbo.global_params import global_config
from lra_mbo.utils.z3_expr_utils import (
    TableauBuilder, eval_predicates, fraction_to_z3, get_atoms,
)

logger = logging.getLogger(__name__)


@dataclass
class OptResult:
    """Outcome of an OMT query.

    ``status`` is "sat", "unsat" or "unknown". For "sat", ``value`` is the
    optimum in the caller's direction and ``values`` the tableau model
    realizing it (or approaching it, for strict or infinite optima).
    """
    status: str
    value: Optional[InfEps] = None
    values: Dict[str, Fraction] = field(default_factory=dict)


def maximize_under_model(fmls: Sequence[z3.ExprRef], obj: z3.ExprRef,
                         model: z3.ModelRef) -> InfEps:
    """Maximize ``obj`` over the conjunction of literals ``fmls`` that hold in ``model``.

    Non-arithmetic literals do not constrain ``obj`` and are ignored.
    """
    value, _ = _maximize_literals(fmls, obj, model)
    return value


def _maximize_literals(fmls, obj, model):
    builder = TableauBuilder(model)
    for lit in fmls:
        builder.add_literal(lit)
    builder.set_objective(obj)
    value = builder.mbo.maximize()
    return value, builder.values()


def arith_opt_with_mbo(fml: z3.ExprRef, obj: z3.ExprRef, minimize: bool = False) -> OptResult:
    """Optimize a linear real objective subject to a quantifier-free LRA formula.

    Args:
        fml: Z3 formula representing constraints
        obj: Linear real term to optimize
        minimize: Whether to minimize (True) or maximize (False)

    Returns:
        An OptResult; for minimization the value is the infimum, e.g.
        ``InfEps(v, 1)`` when ``v`` is approached from above but not attained.
    """
    target = -obj if minimize else obj
    s = z3.Solver()
    s.add(fml)
    preds = get_atoms(fml)
    best: Optional[InfEps] = None
    best_values: Dict[str, Fraction] = {}
    for iteration in range(global_config.max_iterations):
        res = s.check()
        if res == z3.unknown:
            logger.warning("solver returned unknown after %d rounds", iteration)
            return OptResult("unknown", None if best is None else _orient(best, minimize), best_values)
        if res == z3.unsat:
            break
        m = s.model()
        implicant = eval_predicates(m, preds)
        value, values = _maximize_literals(implicant, target, m)
        logger.debug("round %d: local optimum %s", iteration, value)
        if best is None or value > best:
            best, best_values = value, values
        if value.is_infinite:
            break
        bound = fraction_to_z3(value.value)
        # a strict supremum is not reached by the current implicant
        s.add(target >= bound if value.is_strict else target > bound)
    else:
        logger.warning("no optimum after %d rounds", global_config.max_iterations)
        return OptResult("unknown", None if best is None else _orient(best, minimize), best_values)

    if best is None:
        logger.info("Unsatisfiable")
        return OptResult("unsat")
    result = _orient(best, minimize)
    logger.info("%s: %s", "min" if minimize else "max", result)
    return OptResult("sat", result, best_values)


def _orient(value: InfEps, minimize: bool) -> InfEps:
    return -value if minimize else value


def demo_mbo() -> None:
    """Demo function for model-based arithmetic optimization."""
    x, y = z3.Reals("x y")
    fml = z3.And(z3.Or(x + y <= 3, x < 10), x >= 0, y >= 0, y <= 1)
    print(arith_opt_with_mbo(fml, x + y, minimize=False))


if __name__ == '__main__':
    demo_mbo()
