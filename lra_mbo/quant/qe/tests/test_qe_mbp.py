import pytest
import z3

from lra_mbo.global_params import global_config
from lra_mbo.quant.qe.qe_mbp import mbp, qelim_exists_mbp
from lra_mbo.utils.exceptions import UnsupportedAtomError
from lra_mbo.utils.z3_expr_utils import get_variables


def _model(*fmls):
    s = z3.Solver()
    s.add(*fmls)
    assert s.check() == z3.sat
    return s.model()


def _equivalent(a, b):
    s = z3.Solver()
    s.add(z3.Not(a == b))
    return s.check() == z3.unsat


def test_mbp_implied_equality():
    x, y = z3.Reals("x y")
    fmls = [x - y <= 0, y - x <= 0]
    res = mbp(fmls, [y], _model(x == 2, *fmls))
    assert z3.is_true(res)


def test_mbp_is_existential_projection():
    x, y, z = z3.Reals("x y z")
    fmls = [x <= y, y <= z, y > 0, z <= 5 + x]
    m = _model(*fmls)
    res = mbp(fmls, [y], m)
    assert "y" not in {str(v) for v in get_variables(res)}
    # holds in the model
    assert z3.is_true(m.eval(res, model_completion=True))
    # and implies the existence of a value for y
    s = z3.Solver()
    s.add(res, z3.ForAll([y], z3.Not(z3.And(fmls))))
    assert s.check() == z3.unsat


def test_mbp_with_equality():
    x, y = z3.Reals("x y")
    fmls = [x == 2 * y, y <= 3]
    res = mbp(fmls, [y], _model(*fmls))
    assert _equivalent(res, x <= 6)


def test_mbp_keeps_other_literals():
    x, y = z3.Reals("x y")
    p = z3.Bool("p")
    fmls = [p, x < y, y < 1]
    res = mbp(fmls, [y], _model(*fmls))
    assert _equivalent(res, z3.And(p, x < 1))


def test_mbp_rejects_opaque_literal_on_projected_variable():
    y = z3.Real("y")
    f = z3.Function("f", z3.RealSort(), z3.BoolSort())
    fmls = [f(y), y > 0]
    with pytest.raises(UnsupportedAtomError):
        mbp(fmls, [y], _model(*fmls))


def test_qelim_chain():
    x, y, z = z3.Reals("x y z")
    res = qelim_exists_mbp(z3.And(x < y, y < z), [y])
    assert _equivalent(res, x < z)


def test_qelim_matches_exists():
    x, y, z = z3.Reals("x y z")
    phi = z3.And(z3.Or(x > 2, x < y + 3), z3.Or(x - z > 3, z < 10))
    res = qelim_exists_mbp(phi, [x, y])
    assert _equivalent(res, z3.Exists([x, y], phi))


def test_qelim_disjunction():
    x, y = z3.Reals("x y")
    phi = z3.Or(z3.And(x > y, y > 0), z3.And(x < y, y < -5))
    res = qelim_exists_mbp(phi, [y])
    assert _equivalent(res, z3.Or(x > 0, x < -5))


def test_qelim_unsat():
    x, y = z3.Reals("x y")
    res = qelim_exists_mbp(z3.And(x < y, y < x), [y])
    assert z3.is_false(res)


def test_qelim_iteration_limit():
    x, y = z3.Reals("x y")
    phi = z3.Or(z3.And(x > y, y > 0), z3.And(x < y, y < -5))
    saved = global_config.max_iterations
    global_config.set_option("max_iterations", 1)
    try:
        with pytest.raises(RuntimeError):
            qelim_exists_mbp(phi, [y])
    finally:
        global_config.set_option("max_iterations", saved)
