"""Rendering of IR values and evolution expressions as index formulas.

Formulas are canonical strings describing how an array index is computed,
e.g. ``((b.x * bsize.x) + t.x)``. Grid built-ins render as ``t.<axis>``,
``b.<axis>`` and ``bsize.<axis>``; values the formulas do not look through
render as markers starting with ``#``.
"""

from __future__ import annotations


__copyright__ = "Copyright (C) 2024 The delinear developers"

__license__ = """
Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in
all copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN
THE SOFTWARE.
"""

import logging

from pymbolic.mapper import Mapper

from delinear.diagnostic import (
    UnresolvableTripCountError,
    UnsupportedExpressionError,
    partial_formula,
)
from delinear.evolution import (
    EvolutionConstant,
    EvolutionCouldNotCompute,
    EvolutionMapper,
)
from delinear.intrinsics import AXIS_NAMES, GridAxis
from delinear.ir import Argument, BranchInst, ConstantInt, GlobalValue, ICmpInst
from delinear.options import DEFAULT_ARRAY_CLASS_PREFIX


logger = logging.getLogger(__name__)


__doc__ += """
.. autofunction:: is_array_accessor
.. autofunction:: is_get_dim_accessor
.. autoclass:: ValueFormulaMapper
.. autoclass:: EvolutionFormulaMapper
"""


# {{{ array class member recognition

def is_array_accessor(function, prefix=DEFAULT_ARRAY_CLASS_PREFIX):
    """Whether *function* is the element accessor (``operator()``) of the
    multi-dimensional array class.
    """
    name = function.demangled_name
    return (name.startswith(prefix)
            and "operator()" in name
            and not function.does_not_return)


def is_get_dim_accessor(function, prefix=DEFAULT_ARRAY_CLASS_PREFIX):
    name = function.demangled_name
    return name.startswith(prefix) and "get_dim" in name

# }}}


_BINARY_SYMBOLS = {
        "sdiv": " / ",
        "udiv": " / ",
        "srem": " % ",
        "urem": " % ",
        "shl": " << ",
        "mul": " * ",
        "add": " + ",
        "sub": " - ",
        "and": " ^ ",
        }

_ICMP_SYMBOLS = {
        "eq": " == ",
        "ne": " != ",
        "ugt": " > ",
        "sgt": " > ",
        "uge": " >= ",
        "sge": " >= ",
        "ult": " < ",
        "slt": " < ",
        "ule": " <= ",
        "sle": " <= ",
        }


# {{{ value formulas

def _get_axis_name(index, location):
    if not 0 <= index < len(AXIS_NAMES):
        raise UnsupportedExpressionError("offset axis", location, index)
    return AXIS_NAMES[index]


class ValueFormulaMapper(Mapper):
    """Renders an IR value as a formula string.

    Each call takes the value and a flag telling whether the value is
    reached from inside a phi merge. A phi reached with the flag set
    renders ``#PHIRECURSION`` instead of being expanded again.

    .. attribute:: grid_mask

        A :class:`~delinear.intrinsics.GridAxis` accumulating the axes of the
        thread and block id registers seen so far. Use one instance per
        array dimension.
    """

    def __init__(self, intrinsics, array_class_prefix=DEFAULT_ARRAY_CLASS_PREFIX):
        self.intrinsics = intrinsics
        self.array_class_prefix = array_class_prefix
        self.grid_mask = GridAxis.NONE

    def __call__(self, value, in_phi=False):
        logger.debug("value: %s", value)
        return Mapper.__call__(self, value, in_phi)

    rec = __call__

    # {{{ calls

    def map_call(self, call, in_phi):
        callee = call.callee

        register = self.intrinsics.get(callee.name)
        if register is not None:
            logger.debug("grid register %s", register.formula)
            self.grid_mask |= register.grid_mask
            return register.formula

        if is_array_accessor(callee, self.array_class_prefix):
            return "#MEM"

        if is_get_dim_accessor(callee, self.array_class_prefix):
            if len(call.args) < 2:
                return "dim()"
            dim = call.args[1]
            if isinstance(dim, ConstantInt):
                return f"dim({dim.value})"
            return f"dim({dim.name})"

        return callee.demangled_name

    # }}}

    # {{{ address computation, casts and memory

    def map_extract_value(self, inst, in_phi):
        aggregate = inst.aggregate
        if (isinstance(aggregate, Argument)
                and aggregate.type.is_struct
                and "dim3" in aggregate.type.name
                and aggregate.name.endswith("off")):
            return f"b_off.{_get_axis_name(inst.indices[0], inst)}"

        return self.rec(aggregate, in_phi)

    def map_extract_element(self, inst, in_phi):
        raise UnsupportedExpressionError("extractelement instruction", inst)

    def map_get_element_ptr(self, inst, in_phi):
        return self.rec(inst.pointer, in_phi)

    def map_cast(self, inst, in_phi):
        return self.rec(inst.operand, in_phi)

    def map_load(self, inst, in_phi):
        return self.rec(inst.pointer, in_phi)

    def map_alloca(self, inst, in_phi):
        return ""

    # }}}

    # {{{ constants

    def map_constant_int(self, const, in_phi):
        return str(const.value)

    def map_global_value(self, gv, in_phi):
        if gv.name.startswith("offset"):
            return "off"
        return f"#GLOBAL:{gv.name}"

    def map_constant_expr(self, expr, in_phi):
        base = expr.operands[0]
        if isinstance(base, GlobalValue) and base.name.startswith("offset"):
            result = self.rec(base, in_phi)
            if len(expr.operands) == 3:
                axis = expr.operands[2]
                if not isinstance(axis, ConstantInt):
                    raise UnsupportedExpressionError("offset axis", expr)
                result += f".{_get_axis_name(axis.value, expr)}"
            return result

        parts = []
        with partial_formula(parts):
            for op in expr.operands:
                parts.append(self.rec(op, in_phi))
        return "".join(parts)

    def map_constant_aggregate(self, const, in_phi):
        raise UnsupportedExpressionError("constant", const,
                f"{const.kind} aggregate")

    def map_undef_value(self, const, in_phi):
        raise UnsupportedExpressionError("constant", const, "undef")

    def map_type_size_constant(self, const, in_phi):
        raise UnsupportedExpressionError("constant", const, const.kind)

    # }}}

    # {{{ operators

    def _render_binary(self, inst, symbols, key, in_phi):
        parts = ["("]
        with partial_formula(parts):
            parts.append(self.rec(inst.lhs, in_phi))
            try:
                parts.append(symbols[key])
            except KeyError:
                raise UnsupportedExpressionError(
                        "operator", inst, key) from None
            parts.append(self.rec(inst.rhs, in_phi))
            parts.append(")")
        return "".join(parts)

    def map_binary_operator(self, inst, in_phi):
        return self._render_binary(inst, _BINARY_SYMBOLS, inst.opcode, in_phi)

    def map_icmp(self, inst, in_phi):
        return self._render_binary(inst, _ICMP_SYMBOLS, inst.predicate, in_phi)

    def map_phi(self, phi, in_phi):
        if in_phi:
            return "#PHIRECURSION"

        parts = ["("]
        with partial_formula(parts):
            for i, value in enumerate(phi.operands):
                if i:
                    parts.append(" | ")
                parts.append(self.rec(value, True))
            parts.append(")")
        return "".join(parts)

    # }}}

    def map_argument(self, arg, in_phi):
        return f"#PARAM:{arg.name}"

    def map_foreign(self, value, *args, **kwargs):
        raise UnsupportedExpressionError("value", value, type(value).__name__)

# }}}


# {{{ evolution formulas

class EvolutionFormulaMapper(EvolutionMapper):
    """Renders an evolution expression as a formula string, delegating
    unknowns to a :class:`ValueFormulaMapper`.

    An add recurrence over a loop renders as
    ``{<depth>}<<start> : <bound> , <step>>``. The bound is the loop's
    backedge-taken count when it is computable and loop-invariant, else the
    right-hand operand of the comparison controlling the branch in the loop
    latch.
    """

    def __init__(self, evolution, value_mapper):
        self.evolution = evolution
        self.value_mapper = value_mapper

    def __call__(self, expr, in_phi=False):
        logger.debug("evolution: %s", expr)
        return EvolutionMapper.__call__(self, expr, in_phi)

    rec = __call__

    def map_evolution_unknown(self, expr, in_phi):
        return self.value_mapper(expr.value, in_phi)

    def map_evolution_constant(self, expr, in_phi):
        return str(expr.value)

    def map_evolution_udiv(self, expr, in_phi):
        parts = ["("]
        with partial_formula(parts):
            parts.append(self.rec(expr.lhs, in_phi))
            parts.append("/")
            parts.append(self.rec(expr.rhs, in_phi))
            parts.append(")")
        return "".join(parts)

    # {{{ add recurrences

    def _latch_bound(self, loop, in_phi):
        latch = loop.latch
        if latch is None:
            raise UnresolvableTripCountError(loop, "no unique latch")

        for inst in latch:
            if not isinstance(inst, BranchInst):
                continue

            if not inst.is_conditional:
                raise UnresolvableTripCountError(loop,
                        "latch ends in an unconditional branch")

            cond = inst.condition
            if not isinstance(cond, ICmpInst):
                raise UnsupportedExpressionError("loop condition", cond,
                        "not an integer comparison")

            return self.value_mapper(cond.rhs, in_phi)

        raise UnresolvableTripCountError(loop, "latch has no branch")

    def map_evolution_add_rec(self, expr, in_phi):
        se = self.evolution
        loop = expr.loop

        invariant = se.has_loop_invariant_backedge_taken_count(loop)
        if invariant:
            count = se.get_backedge_taken_count(loop)
        else:
            count = se.get_max_backedge_taken_count(loop)
        logger.debug("loop %s: invariant count: %s, count: %s",
                loop.header.name, invariant, count)

        parts = [f"{{{loop.depth}}}<"]
        with partial_formula(parts):
            parts.append(self.rec(expr.start, in_phi))
            parts.append(" : ")

            if not invariant or isinstance(count, EvolutionCouldNotCompute):
                logger.debug("using loop latch block")
                parts.append(self._latch_bound(loop, in_phi))
            else:
                parts.append(self.rec(count, in_phi))

            parts.append(" , ")
            parts.append(self.rec(expr.get_step_recurrence(), in_phi))
            parts.append(">")

        return "".join(parts)

    # }}}

    # {{{ n-ary expressions

    def _join(self, operands, sep, prefix, in_phi):
        parts = [prefix]
        with partial_formula(parts):
            for i, op in enumerate(operands):
                if i:
                    parts.append(sep)
                parts.append(self.rec(op, in_phi))
            parts.append(")")
        return "".join(parts)

    def map_evolution_mul(self, expr, in_phi):
        return self._join(expr.operands, " * ", "(", in_phi)

    def map_evolution_add(self, expr, in_phi):
        rest = []
        pos = []
        neg = []
        for op in expr.operands:
            if isinstance(op, EvolutionConstant):
                (neg if op.is_negative else pos).append(op)
            else:
                rest.append(op)

        return self._join(rest + pos + neg, " + ", "(", in_phi)

    def map_evolution_smax(self, expr, in_phi):
        return self._join(expr.operands, ", ", "smax(", in_phi)

    def map_evolution_umax(self, expr, in_phi):
        return self._join(expr.operands, ", ", "umax(", in_phi)

    # }}}

    def map_evolution_cast(self, expr, in_phi):
        return self.rec(expr.operand, in_phi)

    map_evolution_zero_extend = map_evolution_cast
    map_evolution_sign_extend = map_evolution_cast
    map_evolution_truncate = map_evolution_cast

    def map_evolution_could_not_compute(self, expr, in_phi):
        return "#EXPR"

# }}}

# vim: foldmethod=marker
