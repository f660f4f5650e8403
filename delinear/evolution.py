"""Closed-form evolution of values across loop iterations."""

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
from enum import Enum
from typing import Any, ClassVar

import pymbolic.primitives as p
from pymbolic.mapper import Mapper
from pymbolic.mapper.stringifier import StringifyMapper

from delinear.diagnostic import DelinearError, UnsupportedExpressionError
from delinear.ir import (
    BinaryOperator,
    BranchInst,
    ICmpInst,
    IRType,
    TypeSizeConstant,
    Value,
)


logger = logging.getLogger(__name__)


__doc__ = """
Evolution expressions
^^^^^^^^^^^^^^^^^^^^^

.. autoclass:: EvolutionExpression
.. autoclass:: EvolutionConstant
.. autoclass:: EvolutionUnknown
.. autoclass:: EvolutionUDiv
.. autoclass:: EvolutionAdd
.. autoclass:: EvolutionMul
.. autoclass:: EvolutionSMax
.. autoclass:: EvolutionUMax
.. autoclass:: EvolutionAddRec
.. autoclass:: EvolutionZeroExtend
.. autoclass:: EvolutionSignExtend
.. autoclass:: EvolutionTruncate
.. autoclass:: EvolutionCouldNotCompute
.. autoclass:: EvolutionMapper

Evolution service
^^^^^^^^^^^^^^^^^

.. autoclass:: LoopDisposition
.. autoclass:: ScalarEvolution
"""


# {{{ expression nodes

class EvolutionExpression(p.ExpressionNode):
    def make_stringifier(self, originating_stringifier=None):
        return EvolutionStringifier()


@p.expr_dataclass()
class EvolutionConstant(EvolutionExpression):
    value: int

    @property
    def is_negative(self):
        return self.value < 0


@p.expr_dataclass()
class EvolutionUnknown(EvolutionExpression):
    """An IR value the evolution layer does not look into."""

    value: Value


@p.expr_dataclass()
class EvolutionUDiv(EvolutionExpression):
    lhs: EvolutionExpression
    rhs: EvolutionExpression

    mapper_method: ClassVar[str] = "map_evolution_udiv"


@p.expr_dataclass()
class EvolutionNAry(EvolutionExpression):
    operands: tuple[EvolutionExpression, ...]


@p.expr_dataclass()
class EvolutionAdd(EvolutionNAry):
    pass


@p.expr_dataclass()
class EvolutionMul(EvolutionNAry):
    pass


@p.expr_dataclass()
class EvolutionSMax(EvolutionNAry):
    mapper_method: ClassVar[str] = "map_evolution_smax"


@p.expr_dataclass()
class EvolutionUMax(EvolutionNAry):
    mapper_method: ClassVar[str] = "map_evolution_umax"


@p.expr_dataclass()
class EvolutionAddRec(EvolutionNAry):
    """The recurrence ``{operands[0],+,operands[1],+,...}`` over the
    iterations of :attr:`loop`.
    """

    loop: Any

    @property
    def start(self):
        return self.operands[0]

    @property
    def is_affine(self):
        return len(self.operands) == 2

    def get_step_recurrence(self):
        if len(self.operands) == 2:
            return self.operands[1]
        return EvolutionAddRec(self.operands[1:], self.loop)


@p.expr_dataclass()
class EvolutionCast(EvolutionExpression):
    operand: EvolutionExpression
    type: IRType


@p.expr_dataclass()
class EvolutionZeroExtend(EvolutionCast):
    pass


@p.expr_dataclass()
class EvolutionSignExtend(EvolutionCast):
    pass


@p.expr_dataclass()
class EvolutionTruncate(EvolutionCast):
    pass


@p.expr_dataclass()
class EvolutionCouldNotCompute(EvolutionExpression):
    pass


COULD_NOT_COMPUTE = EvolutionCouldNotCompute()


class EvolutionStringifier(StringifyMapper):
    def map_evolution_constant(self, expr, enclosing_prec):
        return str(expr.value)

    def map_evolution_unknown(self, expr, enclosing_prec):
        return expr.value.ref()

    def map_evolution_udiv(self, expr, enclosing_prec):
        return "({} /u {})".format(
                self.rec(expr.lhs, enclosing_prec),
                self.rec(expr.rhs, enclosing_prec))

    def _join(self, expr, sep, enclosing_prec):
        return "(%s)" % sep.join(
                self.rec(op, enclosing_prec) for op in expr.operands)

    def map_evolution_add(self, expr, enclosing_prec):
        return self._join(expr, " + ", enclosing_prec)

    def map_evolution_mul(self, expr, enclosing_prec):
        return self._join(expr, " * ", enclosing_prec)

    def map_evolution_smax(self, expr, enclosing_prec):
        return self._join(expr, " smax ", enclosing_prec)

    def map_evolution_umax(self, expr, enclosing_prec):
        return self._join(expr, " umax ", enclosing_prec)

    def map_evolution_add_rec(self, expr, enclosing_prec):
        return "{%s}<%%%s>" % (
                ",+,".join(self.rec(op, enclosing_prec) for op in expr.operands),
                expr.loop.header.name)

    def _cast(self, name, expr, enclosing_prec):
        return f"({name} {self.rec(expr.operand, enclosing_prec)} to {expr.type})"

    def map_evolution_zero_extend(self, expr, enclosing_prec):
        return self._cast("zext", expr, enclosing_prec)

    def map_evolution_sign_extend(self, expr, enclosing_prec):
        return self._cast("sext", expr, enclosing_prec)

    def map_evolution_truncate(self, expr, enclosing_prec):
        return self._cast("trunc", expr, enclosing_prec)

    def map_evolution_could_not_compute(self, expr, enclosing_prec):
        return "***COULDNOTCOMPUTE***"


class EvolutionMapper(Mapper):
    """Base for mappers over evolution expressions. Anything else, including
    pymbolic's own primitives, raises
    :exc:`~delinear.diagnostic.UnsupportedExpressionError`.
    """

    unsupported_kind: ClassVar[str] = "evolution expression"

    def __call__(self, expr, *args, **kwargs):
        if not isinstance(expr, EvolutionExpression):
            return self.map_foreign(expr, *args, **kwargs)
        return Mapper.__call__(self, expr, *args, **kwargs)

    rec = __call__

    def handle_unsupported_expression(self, expr, *args, **kwargs):
        raise UnsupportedExpressionError(self.unsupported_kind, expr,
                type(expr).__name__)

    def map_foreign(self, expr, *args, **kwargs):
        raise UnsupportedExpressionError(self.unsupported_kind, expr,
                type(expr).__name__)

# }}}


# {{{ loop disposition

class LoopDisposition(Enum):
    INVARIANT = 0
    COMPUTABLE = 1
    VARIANT = 2


class LoopDispositionMapper(EvolutionMapper):
    def __init__(self, loop):
        self.loop = loop

    def combine(self, dispositions):
        result = LoopDisposition.INVARIANT
        for disp in dispositions:
            if disp == LoopDisposition.VARIANT:
                return disp
            if disp == LoopDisposition.COMPUTABLE:
                result = disp
        return result

    def map_evolution_constant(self, expr):
        return LoopDisposition.INVARIANT

    map_evolution_could_not_compute = map_evolution_constant

    def map_evolution_unknown(self, expr):
        if self.loop.is_loop_invariant(expr.value):
            return LoopDisposition.INVARIANT
        return LoopDisposition.VARIANT

    def map_evolution_udiv(self, expr):
        return self.combine([self.rec(expr.lhs), self.rec(expr.rhs)])

    def map_evolution_nary(self, expr):
        return self.combine([self.rec(op) for op in expr.operands])

    map_evolution_add = map_evolution_nary
    map_evolution_mul = map_evolution_nary
    map_evolution_smax = map_evolution_nary
    map_evolution_umax = map_evolution_nary

    def map_evolution_add_rec(self, expr):
        if expr.loop is self.loop:
            return LoopDisposition.COMPUTABLE
        if self.loop.contains(expr.loop):
            # recurrence of an inner loop
            return LoopDisposition.VARIANT
        if expr.loop.contains(self.loop):
            return LoopDisposition.INVARIANT
        return self.combine([
            LoopDisposition.VARIANT
            if self.rec(op) != LoopDisposition.INVARIANT
            else LoopDisposition.INVARIANT
            for op in expr.operands])

    def map_evolution_cast(self, expr):
        return self.rec(expr.operand)

    map_evolution_zero_extend = map_evolution_cast
    map_evolution_sign_extend = map_evolution_cast
    map_evolution_truncate = map_evolution_cast

# }}}


# {{{ construction from IR values

def _wrap(value, bits, signed):
    mask = (1 << bits) - 1
    value &= mask
    if signed and value >> (bits - 1):
        value -= 1 << bits
    return value


class _EvolutionBuilder(Mapper):
    """Computes the evolution of a single IR value. Delegates to the owning
    :class:`ScalarEvolution` for operands so results are shared.
    """

    def __init__(self, se):
        self.se = se

    def _unknown(self, value):
        return EvolutionUnknown(value)

    map_argument = _unknown
    map_undef_value = _unknown
    map_constant_aggregate = _unknown
    map_global_value = _unknown
    map_constant_expr = _unknown
    map_type_size_constant = _unknown
    map_call = _unknown
    map_icmp = _unknown
    map_load = _unknown
    map_extract_value = _unknown
    map_extract_element = _unknown
    map_alloca = _unknown

    def map_constant_int(self, value):
        return EvolutionConstant(value.value)

    def map_binary_operator(self, value):
        se = self.se
        lhs = se.get_evolution(value.lhs)
        rhs = se.get_evolution(value.rhs)

        if value.opcode == "add":
            return se.get_add([lhs, rhs])
        elif value.opcode == "sub":
            return se.get_add([lhs, se.get_negative(rhs)])
        elif value.opcode == "mul":
            return se.get_mul([lhs, rhs])
        elif value.opcode == "udiv":
            return se.get_udiv(lhs, rhs)
        elif (value.opcode == "shl"
                and isinstance(rhs, EvolutionConstant)
                and 0 <= rhs.value < value.type.bits):
            return se.get_mul([lhs, EvolutionConstant(1 << rhs.value)])
        else:
            return self._unknown(value)

    def map_cast(self, value):
        se = self.se
        if value.opcode in ("bitcast", "addrspacecast"):
            return se.get_evolution(value.operand)

        if value.opcode not in ("zext", "sext", "trunc"):
            return self._unknown(value)

        operand = se.get_evolution(value.operand)
        if isinstance(operand, EvolutionConstant):
            src_bits = value.operand.type.bits
            dst_bits = value.type.bits
            if value.opcode == "zext":
                return EvolutionConstant(_wrap(operand.value, src_bits, False))
            elif value.opcode == "sext":
                return EvolutionConstant(_wrap(operand.value, src_bits, True))
            else:
                return EvolutionConstant(_wrap(operand.value, dst_bits, True))

        cls = {
                "zext": EvolutionZeroExtend,
                "sext": EvolutionSignExtend,
                "trunc": EvolutionTruncate,
                }[value.opcode]
        return cls(operand, value.type)

    def map_get_element_ptr(self, value):
        se = self.se
        base = se.get_evolution(value.pointer)
        if value.has_all_zero_indices():
            return base
        if len(value.indices) != 1:
            return self._unknown(value)

        index = se.get_evolution(value.indices[0])
        size = EvolutionUnknown(se.get_size_of(value.source_element_type))
        return se.get_add([base, se.get_mul([index, size])])

    def map_phi(self, phi):
        se = self.se
        loop = se.loop_info.get_loop_for(phi.parent)
        if (loop is None
                or loop.header is not phi.parent
                or phi.num_incoming_values != 2):
            return self._unknown(phi)

        start = backedge = None
        for val, bb in phi.incoming:
            if loop.contains(bb):
                backedge = val
            else:
                start = val

        if start is None or backedge is None:
            return self._unknown(phi)

        if not (isinstance(backedge, BinaryOperator)
                and backedge.opcode in ("add", "sub")):
            return self._unknown(phi)

        if backedge.lhs is phi:
            step_value = backedge.rhs
        elif backedge.opcode == "add" and backedge.rhs is phi:
            step_value = backedge.lhs
        else:
            return self._unknown(phi)

        if not loop.is_loop_invariant(step_value):
            return self._unknown(phi)

        step = se.get_evolution(step_value)
        if backedge.opcode == "sub":
            step = se.get_negative(step)

        return se.get_add_rec([se.get_evolution(start), step], loop)

    def map_foreign(self, value):
        raise DelinearError(f"cannot compute the evolution of {value!r}")

# }}}


# {{{ scalar evolution

_SWAPPED_PREDICATES = {
        "eq": "eq", "ne": "ne",
        "slt": "sgt", "sgt": "slt", "sle": "sge", "sge": "sle",
        "ult": "ugt", "ugt": "ult", "ule": "uge", "uge": "ule",
        }

_INVERSE_PREDICATES = {
        "eq": "ne", "ne": "eq",
        "slt": "sge", "sge": "slt", "sgt": "sle", "sle": "sgt",
        "ult": "uge", "uge": "ult", "ugt": "ule", "ule": "ugt",
        }


class ScalarEvolution:
    """Evolution queries for the values of one function.

    .. automethod:: get_evolution
    .. automethod:: set_evolution
    .. automethod:: get_backedge_taken_count
    .. automethod:: get_max_backedge_taken_count
    .. automethod:: has_loop_invariant_backedge_taken_count
    .. automethod:: set_backedge_taken_count
    .. automethod:: get_loop_disposition
    .. automethod:: is_loop_invariant
    """

    def __init__(self, function, loop_info):
        self.function = function
        self.loop_info = loop_info

        self._evolution_cache = {}
        self._evolution_overrides = {}
        self._btc_cache = {}
        self._btc_overrides = {}
        self._size_of_cache = {}

        self._builder = _EvolutionBuilder(self)

    # {{{ values

    def get_evolution(self, value):
        try:
            return self._evolution_overrides[value]
        except KeyError:
            pass

        try:
            return self._evolution_cache[value]
        except KeyError:
            pass

        result = self._builder(value)
        self._evolution_cache[value] = result
        return result

    def set_evolution(self, value, expr):
        """Supply the evolution of *value* from outside, overriding what
        :meth:`get_evolution` would compute.
        """
        self._evolution_overrides[value] = expr

    def get_size_of(self, type):
        try:
            return self._size_of_cache[type]
        except KeyError:
            result = TypeSizeConstant("sizeof", type)
            self._size_of_cache[type] = result
            return result

    # }}}

    # {{{ expression construction

    def get_negative(self, expr):
        return self.get_mul([EvolutionConstant(-1), expr])

    def get_add(self, operands):
        flat = []
        for op in operands:
            if isinstance(op, EvolutionAdd):
                flat.extend(op.operands)
            else:
                flat.append(op)

        if any(isinstance(op, EvolutionCouldNotCompute) for op in flat):
            return COULD_NOT_COMPUTE

        constant = sum(op.value for op in flat
                if isinstance(op, EvolutionConstant))
        rest = [op for op in flat if not isinstance(op, EvolutionConstant)]

        # {{{ fold into the innermost add recurrence

        add_recs = [op for op in rest if isinstance(op, EvolutionAddRec)]
        if add_recs:
            inner = max(add_recs, key=lambda ar: ar.loop.depth)
            loop = inner.loop
            inner_pos = next(i for i, op in enumerate(rest) if op is inner)

            rec_operands = list(inner.operands)
            remaining = []
            invariant = [EvolutionConstant(constant)] if constant else []
            for i, op in enumerate(rest):
                if i == inner_pos:
                    continue
                if (isinstance(op, EvolutionAddRec) and op.loop is loop
                        and len(op.operands) == len(rec_operands)):
                    rec_operands = [
                            self.get_add([a, b])
                            for a, b in zip(rec_operands, op.operands)]
                elif self.is_loop_invariant(op, loop):
                    invariant.append(op)
                else:
                    remaining.append(op)

            if invariant:
                rec_operands[0] = self.get_add([rec_operands[0], *invariant])

            rec = self.get_add_rec(rec_operands, loop)
            if not remaining:
                return rec
            if isinstance(rec, EvolutionAdd):
                return EvolutionAdd((*remaining, *rec.operands))
            return EvolutionAdd((*remaining, rec))

        # }}}

        result = ([EvolutionConstant(constant)] if constant else []) + rest
        if not result:
            return EvolutionConstant(0)
        if len(result) == 1:
            return result[0]
        return EvolutionAdd(tuple(result))

    def get_mul(self, operands):
        flat = []
        for op in operands:
            if isinstance(op, EvolutionMul):
                flat.extend(op.operands)
            else:
                flat.append(op)

        if any(isinstance(op, EvolutionCouldNotCompute) for op in flat):
            return COULD_NOT_COMPUTE

        constant = 1
        for op in flat:
            if isinstance(op, EvolutionConstant):
                constant *= op.value
        rest = [op for op in flat if not isinstance(op, EvolutionConstant)]

        if constant == 0:
            return EvolutionConstant(0)

        add_recs = [op for op in rest if isinstance(op, EvolutionAddRec)]
        if len(add_recs) == 1:
            rec, = add_recs
            factors = [op for op in rest if op is not rec]
            if constant != 1:
                factors.insert(0, EvolutionConstant(constant))
            if all(self.is_loop_invariant(f, rec.loop) for f in factors):
                return self.get_add_rec(
                        [self.get_mul([op, *factors]) for op in rec.operands],
                        rec.loop)

        result = ([EvolutionConstant(constant)] if constant != 1 else []) + rest
        if not result:
            return EvolutionConstant(1)
        if len(result) == 1:
            return result[0]
        return EvolutionMul(tuple(result))

    def get_udiv(self, lhs, rhs):
        if (isinstance(lhs, EvolutionConstant) and isinstance(rhs, EvolutionConstant)
                and lhs.value >= 0 and rhs.value > 0):
            return EvolutionConstant(lhs.value // rhs.value)
        if isinstance(rhs, EvolutionConstant) and rhs.value == 1:
            return lhs
        return EvolutionUDiv(lhs, rhs)

    def get_max(self, cls, operands):
        flat = []
        for op in operands:
            if isinstance(op, cls):
                flat.extend(op.operands)
            else:
                flat.append(op)

        constants = [op.value for op in flat if isinstance(op, EvolutionConstant)]
        rest = []
        for op in flat:
            if not isinstance(op, EvolutionConstant) and op not in rest:
                rest.append(op)

        result = []
        if constants:
            if cls is EvolutionUMax:
                result.append(EvolutionConstant(
                    max(constants, key=lambda c: _wrap(c, 64, False))))
            else:
                result.append(EvolutionConstant(max(constants)))
        result.extend(rest)

        if len(result) == 1:
            return result[0]
        return cls(tuple(result))

    def get_add_rec(self, operands, loop):
        operands = list(operands)
        while (len(operands) > 1
                and isinstance(operands[-1], EvolutionConstant)
                and operands[-1].value == 0):
            operands.pop()
        if len(operands) == 1:
            return operands[0]
        return EvolutionAddRec(tuple(operands), loop)

    # }}}

    # {{{ loop queries

    def get_loop_disposition(self, expr, loop):
        return LoopDispositionMapper(loop)(expr)

    def is_loop_invariant(self, expr, loop):
        return self.get_loop_disposition(expr, loop) == LoopDisposition.INVARIANT

    def set_backedge_taken_count(self, loop, count, max_count=None):
        """Supply the number of times the backedge of *loop* is taken.
        *max_count* defaults to *count*.
        """
        if max_count is None:
            max_count = count
        self._btc_overrides[loop] = (count, max_count)

    def _get_backedge_taken_counts(self, loop):
        try:
            return self._btc_overrides[loop]
        except KeyError:
            pass

        try:
            return self._btc_cache[loop]
        except KeyError:
            pass

        count = self._compute_backedge_taken_count(loop)
        if isinstance(count, EvolutionConstant):
            result = (count, count)
        else:
            result = (count, COULD_NOT_COMPUTE)

        self._btc_cache[loop] = result
        return result

    def _compute_backedge_taken_count(self, loop):
        latch = loop.latch
        if latch is None:
            return COULD_NOT_COMPUTE

        branch = latch.terminator
        if not isinstance(branch, BranchInst) or not branch.is_conditional:
            return COULD_NOT_COMPUTE

        cond = branch.condition
        if not isinstance(cond, ICmpInst):
            return COULD_NOT_COMPUTE

        true_bb, false_bb = branch.targets
        if loop.contains(true_bb) == loop.contains(false_bb):
            return COULD_NOT_COMPUTE

        predicate = cond.predicate
        if not loop.contains(true_bb):
            predicate = _INVERSE_PREDICATES[predicate]

        lhs, rhs = cond.lhs, cond.rhs
        if not loop.is_loop_invariant(rhs):
            lhs, rhs = rhs, lhs
            predicate = _SWAPPED_PREDICATES[predicate]
        if not loop.is_loop_invariant(rhs):
            return COULD_NOT_COMPUTE

        iv = self.get_evolution(lhs)
        if not (isinstance(iv, EvolutionAddRec) and iv.loop is loop
                and iv.is_affine
                and iv.operands[1] == EvolutionConstant(1)):
            return COULD_NOT_COMPUTE

        bound = self.get_evolution(rhs)
        start = iv.start

        if predicate in ("slt", "ult"):
            cls = EvolutionSMax if predicate == "slt" else EvolutionUMax
            count = self.get_add([
                self.get_max(cls, [start, bound]),
                self.get_negative(start)])
        elif predicate == "ne":
            count = self.get_add([bound, self.get_negative(start)])
        else:
            return COULD_NOT_COMPUTE

        logger.debug("backedge-taken count of %s: %s", loop, count)
        return count

    def get_backedge_taken_count(self, loop):
        return self._get_backedge_taken_counts(loop)[0]

    def get_max_backedge_taken_count(self, loop):
        return self._get_backedge_taken_counts(loop)[1]

    def has_loop_invariant_backedge_taken_count(self, loop):
        return not isinstance(
                self.get_backedge_taken_count(loop), EvolutionCouldNotCompute)

    # }}}

# }}}

# vim: foldmethod=marker
