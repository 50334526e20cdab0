"""
Model-based optimization and projection for linear real arithmetic.

The tableau keeps a conjunction of linear constraints

    sum_i a_i * x_i + c  (=, <, <=)  0

together with a model (a rational value per variable) that satisfies all of
them. Row 0 is the objective. Both ``maximize`` and ``project`` eliminate
variables by Fourier-Motzkin resolution, using the model to select the single
tightest bound to resolve against, instead of producing all pairwise
resolvents.

Rows are never removed. A row that is no longer part of the constraint set is
marked dead, so row ids stored in the variable index remain valid.
"""
import copy
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from fractions import Fraction
from typing import Iterable, List, Optional, Tuple, Union

from lra_mbo.arith.inf_eps import InfEps
from lra_mbo.global_params import global_config
from lra_mbo.utils.exceptions import TableauInvariantError

logger = logging.getLogger(__name__)

Number = Union[int, Fraction]


class IneqType(Enum):
    """Relation of a row against zero."""
    EQ = "="
    LT = "<"
    LE = "<="

    def __str__(self) -> str:
        return f" {self.value} "


@dataclass(frozen=True)
class Var:
    """A non-zero coefficient on variable ``id``."""
    id: int
    coeff: Fraction


@dataclass
class Row:
    """A linear constraint ``sum(vars) + coeff  type  0``.

    ``value`` caches the left-hand side evaluated in the current model.
    """
    vars: List[Var] = field(default_factory=list)
    coeff: Fraction = Fraction(0)
    type: IneqType = IneqType.LE
    value: Fraction = Fraction(0)
    alive: bool = False


Coeffs = Iterable[Union[Var, Tuple[int, Number]]]


class ModelBasedOpt:
    """Constraint tableau with an incrementally maintained model.

    Typical use::

        mbo = ModelBasedOpt()
        x = mbo.add_var(2)
        mbo.add_constraint([(x, 1)], -5, IneqType.LE)    # x - 5 <= 0
        mbo.set_objective([(x, 1)], 0)                   # maximize x
        mbo.maximize()                                   # InfEps(5)
    """

    objective_id = 0

    def __init__(self) -> None:
        self.rows: List[Row] = [Row()]
        self.var2value: List[Fraction] = []
        self.var2row_ids: List[List[int]] = []
        # scratch lists, reset by the operation that fills them
        self.above: List[int] = []
        self.below: List[int] = []
        self.lub: List[int] = []
        self.glb: List[int] = []

    # ------------------------------------------------------------------
    # construction
    # ------------------------------------------------------------------

    def add_var(self, value: Number) -> int:
        """Allocate a variable with the given model value and return its id."""
        x = len(self.var2value)
        self.var2value.append(Fraction(value))
        self.var2row_ids.append([])
        return x

    def get_value(self, var: int) -> Fraction:
        return self.var2value[var]

    @property
    def objective(self) -> Row:
        return self.rows[self.objective_id]

    def _normalize(self, coeffs: Coeffs) -> List[Var]:
        result = []
        for v in coeffs:
            if not isinstance(v, Var):
                v = Var(v[0], Fraction(v[1]))
            elif not isinstance(v.coeff, Fraction):
                v = Var(v.id, Fraction(v.coeff))
            self._check_var_id(v.id)
            result.append(v)
        return result

    def _check_var_id(self, x: int) -> None:
        if not 0 <= x < len(self.var2value):
            raise TableauInvariantError(f"unknown variable v{x}")

    def _make_row(self, row_id: int, coeffs: List[Var], c: Number, rel: IneqType) -> Row:
        r = Row(vars=sorted(coeffs, key=lambda v: v.id), coeff=Fraction(c), type=rel, alive=True)
        r.value = self.get_row_value(r)
        self.invariant_row(row_id, r)
        return r

    def set_row(self, row_id: int, coeffs: Coeffs, c: Number, rel: IneqType) -> None:
        """Populate an empty row and evaluate it in the current model."""
        if self.rows[row_id].vars:
            raise TableauInvariantError(f"row {row_id} is already populated")
        self.rows[row_id] = self._make_row(row_id, self._normalize(coeffs), c, rel)

    def add_constraint(self, coeffs: Coeffs, c: Number, rel: IneqType) -> int:
        """Append the constraint ``sum(coeffs) + c rel 0`` and return its row id.

        The constraint must be satisfied by the current model.
        """
        coeffs = self._normalize(coeffs)
        row_id = len(self.rows)
        self.rows.append(self._make_row(row_id, coeffs, c, rel))
        for v in coeffs:
            self.var2row_ids[v.id].append(row_id)
        return row_id

    def set_objective(self, coeffs: Coeffs, c: Number) -> None:
        """Set the term ``sum(coeffs) + c`` to be maximized."""
        self.rows[self.objective_id] = self._make_row(
            self.objective_id, self._normalize(coeffs), c, IneqType.LE)

    def get_live_rows(self) -> List[Row]:
        """Copies of all live rows, the objective included when it is set."""
        return [replace(r, vars=list(r.vars)) for r in self.rows if r.alive]

    def copy(self) -> "ModelBasedOpt":
        """Independent snapshot of the tableau, for callers that need to backtrack."""
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # invariants
    # ------------------------------------------------------------------

    def invariant(self) -> bool:
        for i, r in enumerate(self.rows):
            self.invariant_row(i, r)
        return True

    def invariant_row(self, index: int, r: Row) -> bool:
        """Check a single row; raises TableauInvariantError on violation."""
        row_vars = r.vars
        for i, v in enumerate(row_vars):
            # variables in each row are sorted and have non-zero coefficients
            if i + 1 < len(row_vars) and not v.id < row_vars[i + 1].id:
                self._fail(index, r, "variables are not strictly sorted")
            if v.coeff == 0:
                self._fail(index, r, f"zero coefficient on v{v.id}")
        if r.value != self.get_row_value(r):
            self._fail(index, r, f"cached value {r.value} differs from {self.get_row_value(r)}")
        # dead rows are no longer constraints
        if index == self.objective_id or not r.alive:
            return True
        if r.type is IneqType.EQ and r.value != 0:
            self._fail(index, r, "equality is not satisfied")
        if r.type is IneqType.LT and not r.value < 0:
            self._fail(index, r, "strict inequality is not satisfied")
        if r.type is IneqType.LE and r.value > 0:
            self._fail(index, r, "inequality is not satisfied")
        return True

    def _fail(self, index: int, r: Row, msg: str) -> None:
        raise TableauInvariantError(f"row {index}: {msg}: {self.display_row(r).strip()}")

    def _check_row(self, index: int, r: Row) -> None:
        if global_config.check_invariants:
            self.invariant_row(index, r)

    def _check(self) -> None:
        if global_config.check_invariants:
            self.invariant()

    def _trace(self, msg: str) -> None:
        if global_config.trace:
            logger.debug("%s\n%s", msg, self.display())

    # ------------------------------------------------------------------
    # linear algebra
    # ------------------------------------------------------------------

    def get_row_value(self, r: Row) -> Fraction:
        val = r.coeff
        for v in r.vars:
            val += v.coeff * self.var2value[v.id]
        return val

    def get_coefficient(self, row_id: int, var_id: int) -> Fraction:
        row_vars = self.rows[row_id].vars
        lo, hi = 0, len(row_vars)
        while lo < hi:
            mid = lo + (hi - lo) // 2
            mid_id = row_vars[mid].id
            if mid_id == var_id:
                return row_vars[mid].coeff
            if mid_id < var_id:
                lo = mid + 1
            else:
                hi = mid
        return Fraction(0)

    #
    # Let
    #   row1: t1 + a1*x <= 0
    #   row2: t2 + a2*x <= 0
    #
    # assume a1, a2 have the same signs:
    #       (t2 + a2*x) <= (t1 + a1*x)*a2/a1
    #   <=> t2*a1/a2 - t1 <= 0
    #   <=> t2 - t1*a2/a1 <= 0
    #
    # assume a1 > 0, -a2 < 0:
    #       t1 + a1*x <= 0,  t2 - a2*x <= 0
    #       t2/a2 <= -t1/a1
    #       t2 + t1*a2/a1 <= 0
    #
    # the resolvent is the same in all cases.
    #
    def resolve(self, row_src: int, a1: Fraction, row_dst: int, x: int) -> None:
        """Eliminate ``x`` from ``row_dst`` using ``row_src`` (coefficient ``a1`` on x)."""
        if a1 == 0 or row_src == row_dst:
            raise TableauInvariantError(f"cannot resolve row {row_dst} against row {row_src} on v{x}")
        if self.rows[row_dst].alive:
            a2 = self.get_coefficient(row_dst, x)
            same_sign = row_dst != self.objective_id and (a1 > 0) == (a2 > 0)
            self.mul_add(same_sign, row_dst, -a2 / a1, row_src)

    def mul_add(self, same_sign: bool, row_id1: int, c: Fraction, row_id2: int) -> None:
        """Set row1 <- row1 + c*row2."""
        if c == 0:
            return
        r1 = self.rows[row_id1]
        r2 = self.rows[row_id2]
        vars1, vars2 = r1.vars, r2.vars
        index_new = row_id1 != self.objective_id
        new_vars: List[Var] = []
        i = j = 0
        while i < len(vars1) or j < len(vars2):
            if j == len(vars2):
                new_vars.extend(vars1[i:])
                break
            if i == len(vars1):
                for v in vars2[j:]:
                    new_vars.append(Var(v.id, v.coeff * c))
                    if index_new:
                        self.var2row_ids[v.id].append(row_id1)
                break
            v1, v2 = vars1[i], vars2[j]
            if v1.id == v2.id:
                coeff = v1.coeff + c * v2.coeff
                if coeff != 0:
                    new_vars.append(Var(v1.id, coeff))
                i += 1
                j += 1
            elif v1.id < v2.id:
                new_vars.append(v1)
                i += 1
            else:
                new_vars.append(Var(v2.id, v2.coeff * c))
                if index_new:
                    self.var2row_ids[v2.id].append(row_id1)
                j += 1
        r1.coeff += c * r2.coeff
        r1.vars = new_vars
        r1.value += c * r2.value

        if not same_sign and r2.type is IneqType.LT:
            r1.type = IneqType.LT
        elif same_sign and r1.type is IneqType.LT and r2.type is IneqType.LT:
            r1.type = IneqType.LE
        self._check_row(row_id1, r1)

    # ------------------------------------------------------------------
    # maximization
    # ------------------------------------------------------------------

    # a1*x + obj
    # a2*x + t2 <= 0
    # a3*x + t3 <= 0
    # a4*x + t4 <= 0
    # a1 > 0, a2 > 0, a3 > 0, a4 < 0
    # x <= -t2/a2
    # x <= -t3/a3
    # determine lub among these, then resolve lub with the others.
    # e.g., -t2/a2 <= -t3/a3, then
    # replace a3*x + t3 <= 0 by -t2/a2 + t3/a3 <= 0
    #
    # symmetrically for a1 < 0 with the glb.
    #
    def maximize(self) -> InfEps:
        """Maximize the objective row subject to the live constraints.

        Destructive: every bound row used is retired and the model is moved
        to the point (or arbitrarily close to the supremum) that realizes the
        returned value.

        Returns:
            ``InfEps.infinity()`` when the objective is unbounded,
            ``InfEps(v)`` when the maximum ``v`` is attained and
            ``InfEps(v, -1)`` when ``v`` is only a supremum.
        """
        self._check()
        bound_trail: List[int] = []
        bound_vars: List[int] = []
        self._trace("tableau")
        while self.objective.vars:
            v = self.objective.vars[-1]
            x, coeff = v.id, v.coeff
            bound = self.find_bound(x, coeff > 0)
            if bound is None:
                logger.debug("unbounded: v%s in %s", x, self.display_row(self.objective).strip())
                self.update_values(bound_vars, bound_trail)
                return InfEps.infinity()
            bound_row_index, bound_coeff = bound
            logger.debug("bound v%s by row %d, resolving %d rows",
                         x, bound_row_index, len(self.above) + len(self.below))
            for row_id in self.above:
                self.resolve(bound_row_index, bound_coeff, row_id, x)
            for row_id in self.below:
                self.resolve(bound_row_index, bound_coeff, row_id, x)
            # coeff*x + objective <= ub
            # a2*x + t2 <= 0
            # => coeff*x <= -t2*coeff/a2
            # objective + t2*coeff/a2 <= ub
            self.mul_add(False, self.objective_id, -coeff / bound_coeff, bound_row_index)
            self.rows[bound_row_index].alive = False
            bound_trail.append(bound_row_index)
            bound_vars.append(x)

        # update the evaluation of variables to satisfy the bounds
        self.update_values(bound_vars, bound_trail)

        value = self.objective.value
        if self.objective.type is IneqType.LT:
            return InfEps(value, -1)
        return InfEps(value)

    def find_bound(self, x: int, is_pos: bool) -> Optional[Tuple[int, Fraction]]:
        """Find the tightest bound on ``x`` in the direction of ``is_pos``.

        Fills ``above`` with the other rows bounding ``x`` in that direction
        and ``below`` with the rows bounding it in the opposite direction.

        Returns:
            ``(row_id, coeff)`` of the bound row, or None if ``x`` is unbounded.
        """
        bound_row_index: Optional[int] = None
        bound_coeff = Fraction(0)
        lub_val = Fraction(0)
        x_val = self.var2value[x]
        visited = set()
        self.above.clear()
        self.below.clear()
        for row_id in self.var2row_ids[x]:
            if row_id == self.objective_id:
                raise TableauInvariantError("the objective row is indexed as a constraint")
            if row_id in visited:
                continue
            visited.add(row_id)
            r = self.rows[row_id]
            if not r.alive:
                continue
            a = self.get_coefficient(row_id, x)
            if a == 0:
                continue
            if (a > 0) == is_pos or r.type is IneqType.EQ:
                value = x_val - r.value / a
                if bound_row_index is None:
                    lub_val = value
                    bound_row_index = row_id
                    bound_coeff = a
                elif ((value == lub_val and r.type is IneqType.LT) or
                      (is_pos and value < lub_val) or
                      (not is_pos and value > lub_val)):
                    self.above.append(bound_row_index)
                    lub_val = value
                    bound_row_index = row_id
                    bound_coeff = a
                else:
                    self.above.append(row_id)
            else:
                self.below.append(row_id)
        if bound_row_index is None:
            return None
        return bound_row_index, bound_coeff

    def update_value(self, x: int, val: Number) -> None:
        """Change the model value of ``x`` and adjust every row that uses it."""
        val = Fraction(val)
        old_val = self.var2value[x]
        self.var2value[x] = val
        # the objective is not indexed
        visited = set()
        for row_id in [self.objective_id] + self.var2row_ids[x]:
            if row_id in visited:
                continue
            visited.add(row_id)
            coeff = self.get_coefficient(row_id, x)
            if coeff == 0:
                continue
            r = self.rows[row_id]
            r.value += coeff * (val - old_val)
            self._check_row(row_id, r)

    def update_values(self, bound_vars: List[int], bound_trail: List[int]) -> None:
        """Back-substitute eliminated variables, last eliminated first."""
        for x, row_id in zip(reversed(bound_vars), reversed(bound_trail)):
            r = self.rows[row_id]
            val = r.coeff
            old_x_val = self.var2value[x]
            x_coeff = Fraction(0)
            for v in r.vars:
                if v.id == x:
                    x_coeff = v.coeff
                else:
                    val += self.var2value[v.id] * v.coeff
            if x_coeff == 0:
                raise TableauInvariantError(f"bound row {row_id} does not mention v{x}")
            new_x_val = -val / x_coeff
            eps = Fraction(0)

            if r.type is IneqType.LT:
                # x is resolved out of every live row, any step into the
                # interior keeps them satisfied
                if old_x_val == new_x_val:
                    eps = Fraction(1)
                else:
                    eps = min(Fraction(1), abs(old_x_val - new_x_val) / 2)
                #     ax + t < 0
                # <=> x < -t/a
                # <=> x := -t/a - epsilon
                if x_coeff > 0:
                    new_x_val -= eps
                #     -ax + t < 0
                # <=> x > t/a
                # <=> x := t/a + epsilon
                else:
                    new_x_val += eps
            logger.debug("v%d coeff_x: %s old_x_val: %s new_x_val: %s eps: %s",
                         x, x_coeff, old_x_val, new_x_val, eps)
            self.var2value[x] = new_x_val
            r.value = self.get_row_value(r)
            self._check_row(row_id, r)

        # update and check bounds for all other affected rows
        for x in reversed(bound_vars):
            for row_id in self.var2row_ids[x]:
                r = self.rows[row_id]
                r.value = self.get_row_value(r)
                self._check_row(row_id, r)
        self._check()

    # ------------------------------------------------------------------
    # projection
    # ------------------------------------------------------------------

    #
    # pick glb and lub representative.
    # The representative is picked such that it
    # represents the fewest inequalities.
    # Suppose there are
    # . N inequalities of the form t <= x
    # . M inequalities of the form s >= x
    # . t0 is glb among N under valuation.
    # . s0 is lub among M under valuation.
    # If N < M
    #    create the inequalities:
    #       t <= t0 for each t other than t0 (N-1 inequalities).
    #       t0 <= s for each s (M inequalities).
    # If N >= M the construction is symmetric.
    #
    def project(self, x: int) -> None:
        """Eliminate ``x`` from the live constraints, guided by the model."""
        self._check_var_id(x)
        lub_rows, glb_rows = self.lub, self.glb
        lub_rows.clear()
        glb_rows.clear()
        lub_index: Optional[int] = None
        glb_index: Optional[int] = None
        lub_strict = glb_strict = False
        lub_val = glb_val = Fraction(0)
        x_val = self.var2value[x]
        visited = set()
        # select the lub and glb
        for row_id in self.var2row_ids[x]:
            if row_id in visited:
                continue
            visited.add(row_id)
            r = self.rows[row_id]
            if not r.alive:
                continue
            a = self.get_coefficient(row_id, x)
            if a == 0:
                continue
            if r.type is IneqType.EQ:
                self.solve_for(row_id, x)
                return
            value = x_val - r.value / a
            if a > 0:
                if (not lub_rows or value < lub_val or
                        (value == lub_val and r.type is IneqType.LT and not lub_strict)):
                    lub_val = value
                    lub_index = row_id
                    lub_strict = r.type is IneqType.LT
                lub_rows.append(row_id)
            else:
                if (not glb_rows or value > glb_val or
                        (value == glb_val and r.type is IneqType.LT and not glb_strict)):
                    glb_val = value
                    glb_index = row_id
                    glb_strict = r.type is IneqType.LT
                glb_rows.append(row_id)

        row_index = lub_index if len(lub_rows) <= len(glb_rows) else glb_index
        row_ids = glb_rows + lub_rows
        if row_index is None:
            logger.debug("v%d is unconstrained on one side, dropping %d rows", x, len(row_ids))
            for row_id in row_ids:
                self.rows[row_id].alive = False
        else:
            logger.debug("project v%d on row %d (lub: %d, glb: %d)",
                         x, row_index, len(lub_rows), len(glb_rows))
            coeff = self.get_coefficient(row_index, x)
            for row_id in row_ids:
                if row_id != row_index:
                    self.resolve(row_index, coeff, row_id, x)
            self.rows[row_index].alive = False
        self._trace(f"after projecting v{x}")

    def solve_for(self, row_id1: int, x: int) -> None:
        """Substitute the equality ``row_id1`` for ``x`` in every row that uses ``x``."""
        a = self.get_coefficient(row_id1, x)
        r1 = self.rows[row_id1]
        if a == 0 or r1.type is not IneqType.EQ or not r1.alive:
            raise TableauInvariantError(f"row {row_id1} is not a live equality on v{x}")
        visited = {row_id1}
        for row_id2 in list(self.var2row_ids[x]):
            if row_id2 not in visited:
                visited.add(row_id2)
                self.resolve(row_id1, a, row_id2, x)
        r1.alive = False
        logger.debug("solved v%d with equality row %d", x, row_id1)

    def project_vars(self, xs: Iterable[int]) -> None:
        """Eliminate each variable of ``xs``, in order."""
        for x in xs:
            self.project(x)

    # ------------------------------------------------------------------
    # display
    # ------------------------------------------------------------------

    def display_row(self, r: Row) -> str:
        out = ["+ " if r.alive else "- "]
        for i, v in enumerate(r.vars):
            if i > 0 and v.coeff > 0:
                out.append("+ ")
            out.append(f"{v.coeff}* v{v.id} ")
        if r.coeff > 0:
            out.append(f" + {r.coeff} ")
        elif r.coeff < 0:
            out.append(f"{r.coeff} ")
        out.append(f"{r.type}0; value: {r.value}\n")
        return "".join(out)

    def display(self) -> str:
        out = [self.display_row(r) for r in self.rows]
        for i, row_ids in enumerate(self.var2row_ids):
            out.append(f"{i}: {' '.join(str(row_id) for row_id in row_ids)}\n")
        return "".join(out)

    def __str__(self) -> str:
        return self.display()
