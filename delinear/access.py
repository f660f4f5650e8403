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
from dataclasses import dataclass
from typing import Any

from delinear.diagnostic import DelinearError, KernelAnalysisError
from delinear.formula import EvolutionFormulaMapper, ValueFormulaMapper
from delinear.intrinsics import GridAxis
from delinear.ir import CallInst, Value, strip_pointer_casts
from delinear.options import DEFAULT_ARRAY_CLASS_PREFIX


logger = logging.getLogger(__name__)


__doc__ = """
.. autoclass:: DimensionInfo
.. autoclass:: ArrayAccess
.. autofunction:: extract_access
.. autofunction:: format_access
"""


@dataclass(frozen=True)
class DimensionInfo:
    """
    .. attribute:: index

        Dimension number, 0 being the outermost.

    .. attribute:: formula
    .. attribute:: grid_mask

        The :class:`~delinear.intrinsics.GridAxis` set of grid axes seen
        while building :attr:`formula`.

    .. attribute:: evolution

        The evolution expression the formula was rendered from.
    """

    index: int
    formula: str
    grid_mask: GridAxis
    evolution: Any = None


@dataclass(frozen=True)
class ArrayAccess:
    """One call to the element accessor of an array.

    .. attribute:: array_handle

        Key of the stack slot holding the array object, as returned by
        :meth:`delinear.aggregate.StorageArena.key_for`, or *None* if the
        handle could not be traced to a slot.

    .. attribute:: array

        The accessor's ``this`` argument with pointer casts stripped.

    .. attribute:: call
    .. attribute:: loop

        The innermost :class:`~delinear.loops.Loop` containing :attr:`call`,
        or *None*.

    .. attribute:: dimensions

        A tuple of :class:`DimensionInfo`, indexed by dimension number.

    .. attribute:: is_write
    """

    array_handle: int | None
    array: Value
    call: CallInst
    loop: Any
    dimensions: tuple[DimensionInfo, ...]
    is_write: bool = False

    @property
    def num_dims(self):
        return len(self.dimensions)

    @property
    def array_name(self):
        return self.array.name or self.array.ref()


def extract_access(call, loop, evolution, intrinsics, arena=None,
        array_class_prefix=DEFAULT_ARRAY_CLASS_PREFIX, is_write=False):
    """Build the :class:`ArrayAccess` for the array element accessor *call*.

    Argument 0 of *call* is the array object, each further argument indexes
    one dimension. Argument *i* describes dimension ``num_dims - (i + 1)``.

    :arg evolution: the :class:`~delinear.evolution.ScalarEvolution` of the
        function containing *call*.
    :arg intrinsics: the grid register table, see
        :func:`~delinear.intrinsics.make_nvvm_intrinsic_table`.
    :arg arena: a :class:`~delinear.aggregate.StorageArena` resolving the
        array handle, or *None* to leave it unresolved.
    :raises KernelAnalysisError: wrapping any failure to render a dimension.
    """
    array = strip_pointer_casts(call.args[0])
    if not array.type.is_pointer:
        raise DelinearError(f"array handle '{array}' is not a pointer")

    num_dims = len(call.args) - 1
    logger.debug("arguments: %d", num_dims)

    dimensions = [None] * num_dims
    for i in range(num_dims):
        dim = num_dims - (i + 1)
        value = call.args[i + 1]

        try:
            expr = evolution.get_evolution(value)
            if loop is not None:
                logger.debug("%s is %s in loop %s", expr,
                        evolution.get_loop_disposition(expr, loop).name.lower(),
                        loop.header.name)

            value_mapper = ValueFormulaMapper(intrinsics, array_class_prefix)
            formula = EvolutionFormulaMapper(evolution, value_mapper)(expr)
        except DelinearError as err:
            raise KernelAnalysisError(call.function, err,
                    array=array.name, site=call, dimension=dim) from err

        dimensions[dim] = DimensionInfo(dim, formula, value_mapper.grid_mask, expr)

    return ArrayAccess(
            array_handle=None if arena is None else arena.key_for(array),
            array=array,
            call=call,
            loop=loop,
            dimensions=tuple(dimensions),
            is_write=is_write)


def format_access(access):
    """Return ``name: [ f ][ g ]``, listing the formulas in argument order,
    i.e. from the innermost dimension to the outermost.
    """
    return "{}: {}".format(
            access.array_name,
            "".join(f"[ {dim.formula} ]" for dim in reversed(access.dimensions)))


# vim: foldmethod=marker
