"""
Helpers for moving between z3 real-arithmetic formulas and the tableau.

- get_atoms / negate / get_variables: generic z3 expression utilities
- linear_form: a linear real term as (coefficients, constant)
- TableauBuilder: a conjunction of literals true in a model -> ModelBasedOpt,
  and live rows -> z3 constraints
"""
import logging
from fractions import Fraction
from typing import Dict, Iterable, List, Optional, Tuple

import z3
from z3.z3consts import (
    Z3_OP_ADD, Z3_OP_DIV, Z3_OP_MUL, Z3_OP_SUB, Z3_OP_TO_REAL, Z3_OP_UMINUS,
    Z3_OP_UNINTERPRETED,
)

from lra_mbo.arith.model_based_opt import IneqType, ModelBasedOpt, Row
from lra_mbo.utils.exceptions import NonLinearTermError, UnsupportedAtomError

logger = logging.getLogger(__name__)


def negate(fml: z3.ExprRef) -> z3.ExprRef:
    """Negate a formula, stripping a top-level negation instead of doubling it."""
    if z3.is_not(fml):
        return fml.arg(0)
    return z3.Not(fml)


def get_variables(expr: z3.ExprRef) -> List[z3.ExprRef]:
    """Uninterpreted constants of ``expr``, in order of first occurrence."""
    seen = set()
    result = []
    stack = [expr]
    while stack:
        e = stack.pop()
        if e.get_id() in seen:
            continue
        seen.add(e.get_id())
        if z3.is_const(e) and e.decl().kind() == Z3_OP_UNINTERPRETED:
            result.append(e)
            continue
        if z3.is_app(e):
            stack.extend(reversed(e.children()))
    return result


def _is_connective(e: z3.ExprRef) -> bool:
    return (z3.is_and(e) or z3.is_or(e) or z3.is_not(e) or z3.is_implies(e)
            or (z3.is_eq(e) and z3.is_bool(e.arg(0)))
            or z3.is_app_of(e, z3.Z3_OP_XOR)
            or (z3.is_app_of(e, z3.Z3_OP_ITE) and z3.is_bool(e)))


def get_atoms(fml: z3.ExprRef) -> List[z3.ExprRef]:
    """Atoms of a quantifier-free formula (Boolean constants excluded)."""
    seen = set()
    atoms = []

    def visit(e):
        if e.get_id() in seen:
            return
        seen.add(e.get_id())
        if z3.is_true(e) or z3.is_false(e):
            return
        if _is_connective(e):
            for child in e.children():
                visit(child)
            return
        if z3.is_bool(e):
            atoms.append(e)

    visit(fml)
    return atoms


def eval_predicates(model: z3.ModelRef, preds: Iterable[z3.ExprRef]) -> List[z3.ExprRef]:
    """The literals over ``preds`` that hold in ``model``."""
    res = []
    for p in preds:
        if z3.is_true(model.eval(p, model_completion=True)):
            res.append(p)
        else:
            res.append(negate(p))
    return res


def z3_value_to_fraction(val: z3.ExprRef) -> Fraction:
    """Convert a z3 numeral to a Fraction."""
    if z3.is_int_value(val):
        return Fraction(val.as_long())
    if z3.is_rational_value(val):
        return Fraction(val.numerator_as_long(), val.denominator_as_long())
    raise UnsupportedAtomError(f"not a rational numeral: {val}")


def fraction_to_z3(val: Fraction) -> z3.ArithRef:
    return z3.Q(val.numerator, val.denominator) if val.denominator != 1 else z3.RealVal(val.numerator)


class _Linear:
    """Accumulator for a linear term ``sum(coeffs) + const``."""

    def __init__(self):
        self.coeffs: Dict[int, Fraction] = {}
        self.vars: Dict[int, z3.ExprRef] = {}
        self.const = Fraction(0)

    def add_var(self, v: z3.ExprRef, coeff: Fraction) -> None:
        key = v.get_id()
        self.vars[key] = v
        self.coeffs[key] = self.coeffs.get(key, Fraction(0)) + coeff

    def is_constant(self) -> bool:
        return all(c == 0 for c in self.coeffs.values())

    def terms(self) -> List[Tuple[z3.ExprRef, Fraction]]:
        return [(self.vars[k], c) for k, c in self.coeffs.items() if c != 0]


def _collect(e: z3.ExprRef, scale: Fraction, acc: _Linear) -> None:
    if z3.is_int_value(e) or z3.is_rational_value(e):
        acc.const += scale * z3_value_to_fraction(e)
    elif z3.is_const(e) and e.decl().kind() == Z3_OP_UNINTERPRETED:
        if not z3.is_real(e):
            raise UnsupportedAtomError(f"only real variables are supported: {e} : {e.sort()}")
        acc.add_var(e, scale)
    elif z3.is_app_of(e, Z3_OP_ADD):
        for child in e.children():
            _collect(child, scale, acc)
    elif z3.is_app_of(e, Z3_OP_SUB):
        children = e.children()
        _collect(children[0], scale, acc)
        for child in children[1:]:
            _collect(child, -scale, acc)
    elif z3.is_app_of(e, Z3_OP_UMINUS):
        _collect(e.arg(0), -scale, acc)
    elif z3.is_app_of(e, Z3_OP_MUL):
        factor = Fraction(1)
        term = None
        for child in e.children():
            sub = _Linear()
            _collect(child, Fraction(1), sub)
            if sub.is_constant():
                factor *= sub.const
            elif term is None:
                term = child
            else:
                raise NonLinearTermError(f"non-linear product: {e}")
        if term is None:
            acc.const += scale * factor
        else:
            _collect(term, scale * factor, acc)
    elif z3.is_app_of(e, Z3_OP_DIV):
        divisor = _Linear()
        _collect(e.arg(1), Fraction(1), divisor)
        if not divisor.is_constant() or divisor.const == 0:
            raise NonLinearTermError(f"division by a non-constant or zero term: {e}")
        _collect(e.arg(0), scale / divisor.const, acc)
    elif z3.is_app_of(e, Z3_OP_TO_REAL) and (z3.is_int_value(e.arg(0))):
        acc.const += scale * z3_value_to_fraction(e.arg(0))
    else:
        raise UnsupportedAtomError(f"unsupported term: {e}")


def linear_form(expr: z3.ExprRef) -> Tuple[List[Tuple[z3.ExprRef, Fraction]], Fraction]:
    """Decompose a linear real term.

    Args:
        expr: A z3 real term built from numerals, real constants, ``+``, ``-``,
            and multiplication/division by numerals.

    Returns:
        ``(terms, const)`` such that ``expr == sum(c * v for v, c in terms) + const``.

    Raises:
        NonLinearTermError: On products of non-constant terms.
        UnsupportedAtomError: On any other operator or a non-real variable.
    """
    acc = _Linear()
    _collect(expr, Fraction(1), acc)
    return acc.terms(), acc.const


_NEGATED = {
    "<=": (">", "<"),
    "<": (">=", "<="),
    ">=": ("<", ">"),
    ">": ("<=", ">="),
}


def _comparison(atom: z3.ExprRef) -> Optional[str]:
    if z3.is_le(atom):
        return "<="
    if z3.is_lt(atom):
        return "<"
    if z3.is_ge(atom):
        return ">="
    if z3.is_gt(atom):
        return ">"
    if z3.is_eq(atom) and z3.is_arith(atom.arg(0)):
        return "=="
    if z3.is_distinct(atom) and atom.num_args() == 2 and z3.is_arith(atom.arg(0)):
        return "!="
    return None


class TableauBuilder:
    """Translate literals that hold in a z3 model into a ModelBasedOpt tableau."""

    def __init__(self, model: z3.ModelRef):
        self.model = model
        self.mbo = ModelBasedOpt()
        self._var_ids: Dict[int, int] = {}
        self._vars: List[z3.ExprRef] = []

    def var_id(self, v: z3.ExprRef) -> int:
        """The tableau variable of a z3 real constant, created on first use."""
        key = v.get_id()
        if key not in self._var_ids:
            value = z3_value_to_fraction(self.model.eval(v, model_completion=True))
            self._var_ids[key] = self.mbo.add_var(value)
            self._vars.append(v)
        return self._var_ids[key]

    def variable(self, var_id: int) -> z3.ExprRef:
        return self._vars[var_id]

    def values(self) -> Dict[str, Fraction]:
        """Current tableau model, by variable name."""
        return {str(v): self.mbo.get_value(i) for i, v in enumerate(self._vars)}

    def _coeffs(self, terms: List[Tuple[z3.ExprRef, Fraction]], sign: int) -> List[Tuple[int, Fraction]]:
        return [(self.var_id(v), sign * c) for v, c in terms]

    def is_arith_literal(self, lit: z3.ExprRef) -> bool:
        atom = lit.arg(0) if z3.is_not(lit) else lit
        return _comparison(atom) is not None

    def add_literal(self, lit: z3.ExprRef) -> bool:
        """Add an arithmetic literal as a row.

        Returns:
            False when ``lit`` is not an arithmetic comparison (the caller keeps it).
        """
        positive = not z3.is_not(lit)
        atom = lit if positive else lit.arg(0)
        op = _comparison(atom)
        if op is None:
            return False
        if not positive:
            if op in ("==", "!="):
                op = "!=" if op == "==" else "=="
            else:
                op = _NEGATED[op][0]
        terms, const = linear_form(atom.arg(0) - atom.arg(1))
        if op == "!=":
            # the model decides which side of the disequality holds
            lhs = const + sum(c * z3_value_to_fraction(self.model.eval(v, model_completion=True))
                              for v, c in terms)
            op = "<" if lhs < 0 else ">"
        if op in ("<=", "<", "=="):
            rel = {"<=": IneqType.LE, "<": IneqType.LT, "==": IneqType.EQ}[op]
            self.mbo.add_constraint(self._coeffs(terms, 1), const, rel)
        else:
            rel = IneqType.LE if op == ">=" else IneqType.LT
            self.mbo.add_constraint(self._coeffs(terms, -1), -const, rel)
        return True

    def set_objective(self, obj: z3.ExprRef) -> None:
        terms, const = linear_form(obj)
        self.mbo.set_objective(self._coeffs(terms, 1), const)

    def row_to_fml(self, r: Row) -> z3.BoolRef:
        lhs = z3.Sum([fraction_to_z3(v.coeff) * self._vars[v.id] for v in r.vars]
                     + [fraction_to_z3(r.coeff)])
        if r.type is IneqType.EQ:
            return lhs == 0
        if r.type is IneqType.LT:
            return lhs < 0
        return lhs <= 0

    def live_constraints(self) -> List[z3.BoolRef]:
        """The live non-objective rows as z3 constraints.

        Variable-free rows hold in the model and are omitted.
        """
        res = []
        for i, r in enumerate(self.mbo.rows):
            if i == self.mbo.objective_id or not r.alive or not r.vars:
                continue
            res.append(self.row_to_fml(r))
        return res
