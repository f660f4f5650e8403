"""Byte strides of pointers advancing through loops."""

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

from dataclasses import dataclass

from delinear.diagnostic import DelinearError
from delinear.evolution import EvolutionAddRec, EvolutionMapper
from delinear.ir import PointerType, ScalarType, StructType, TypeSizeConstant


__doc__ = """
.. autoclass:: DataLayout
.. autofunction:: evaluate_step
.. autofunction:: get_stride
.. autofunction:: get_unit_stride
.. autofunction:: is_non_unit_stride
"""


_UINT64_MODULUS = 1 << 64


# {{{ data layout

@dataclass(frozen=True)
class DataLayout:
    """Sizes and alignments of IR types on the target."""

    pointer_size: int = 8

    def get_abi_alignment(self, type):
        if isinstance(type, ScalarType):
            return type.dtype.alignment
        elif isinstance(type, PointerType):
            return self.pointer_size
        elif isinstance(type, StructType):
            return max((self.get_abi_alignment(f) for f in type.fields),
                    default=1)
        else:
            raise DelinearError(f"type '{type}' has no alignment")

    def get_type_store_size(self, type):
        if isinstance(type, ScalarType):
            return type.dtype.itemsize
        elif isinstance(type, PointerType):
            return self.pointer_size
        elif isinstance(type, StructType):
            offset = 0
            for field in type.fields:
                align = self.get_abi_alignment(field)
                offset = -(-offset // align) * align
                offset += self.get_type_alloc_size(field)
            return offset
        else:
            raise DelinearError(f"type '{type}' has no size")

    def get_type_alloc_size(self, type):
        """Store size rounded up to the ABI alignment, i.e. the distance
        between consecutive array elements of *type*.
        """
        size = self.get_type_store_size(type)
        align = self.get_abi_alignment(type)
        return -(-size // align) * align

# }}}


# {{{ step evaluation

class StepEvaluator(EvolutionMapper):
    unsupported_kind = "step expression"

    def __init__(self, data_layout):
        self.data_layout = data_layout

    def map_evolution_mul(self, expr):
        result = 1
        for op in expr.operands:
            result = (result * self.rec(op)) % _UINT64_MODULUS
        return result

    def map_evolution_unknown(self, expr):
        value = expr.value
        if isinstance(value, TypeSizeConstant):
            if value.is_size_of:
                return self.data_layout.get_type_alloc_size(value.measured_type)
            else:
                return self.data_layout.get_abi_alignment(value.measured_type)
        return 0

    def map_evolution_constant(self, expr):
        return expr.value % _UINT64_MODULUS

    def map_evolution_zero_extend(self, expr):
        return self.rec(expr.operand)


def evaluate_step(expr, data_layout):
    """Return the unsigned 64-bit byte count denoted by the evolution
    expression *expr*.

    :raises UnsupportedExpressionError: for expression kinds other than
        products, constants, zero extensions and unknowns.
    """
    return StepEvaluator(data_layout)(expr)

# }}}


def get_stride(pointer, evolution, data_layout):
    """Return the byte stride by which *pointer* advances per iteration of
    its loop, or 0 if its evolution is not an affine recurrence.
    """
    expr = evolution.get_evolution(pointer)
    if not isinstance(expr, EvolutionAddRec) or not expr.is_affine:
        return 0

    return evaluate_step(expr.get_step_recurrence(), data_layout)


def get_unit_stride(pointer, data_layout):
    return data_layout.get_type_alloc_size(pointer.type.pointee)


def is_non_unit_stride(pointer, evolution, data_layout):
    stride = get_stride(pointer, evolution, data_layout)
    return bool(stride) and stride != get_unit_stride(pointer, data_layout)


# vim: foldmethod=marker
