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
from functools import reduce
from operator import or_

from pytools import ImmutableRecord

from delinear.diagnostic import (
    InconsistentDimensionCountError,
    UnmappedArrayWarning,
    warn_with_function,
)
from delinear.intrinsics import GridAxis
from delinear.ir import (
    AllocaInst,
    Argument,
    CallInst,
    CastInst,
    LoadInst,
    StoreInst,
    get_underlying_object,
    strip_pointer_casts,
)


logger = logging.getLogger(__name__)


__doc__ = """
.. autoclass:: StorageArena
.. autofunction:: build_slot_to_argument_map
.. autofunction:: get_array_slot_set
.. autoclass:: PerArrayRecord
.. autofunction:: aggregate_accesses
"""


NVVM_PTR_CONVERSION_PREFIX = "llvm.nvvm.ptr.gen.to."


# {{{ storage slots

class StorageArena:
    """The stack slots of a function, numbered in program order. Slot
    numbers serve as the canonical keys of array objects.

    .. automethod:: find_slot
    .. automethod:: key_for
    """

    def __init__(self, function):
        self.function = function
        self.slots = [inst for inst in function.instructions()
                if isinstance(inst, AllocaInst)]
        self._slot_to_key = {slot: i for i, slot in enumerate(self.slots)}

    def __len__(self):
        return len(self.slots)

    def __getitem__(self, key):
        return self.slots[key]

    def find_slot(self, value):
        """Trace *value* back through bitcasts and one-argument generic to
        specific address space conversions to a stack slot. Return *None* if
        there is none.
        """
        while True:
            if isinstance(value, AllocaInst):
                return value
            elif isinstance(value, CastInst) and value.opcode == "bitcast":
                value = value.operand
            elif (isinstance(value, CallInst)
                    and value.callee.name.startswith(NVVM_PTR_CONVERSION_PREFIX)
                    and value.callee.arg_size == 1):
                value = value.args[0]
            else:
                return None

    def key_for(self, value):
        """Return the slot key of the array object *value*, after stripping
        pointer casts, or *None*.
        """
        slot = self.find_slot(strip_pointer_casts(value))
        if slot is None:
            return None
        return self._slot_to_key[slot]

    def slot_name(self, key):
        slot = self.slots[key]
        return slot.name or slot.ref()


def build_slot_to_argument_map(function, arena):
    """Return a :class:`dict` mapping slot keys to the kernel
    :class:`~delinear.ir.Argument` stored into them.
    """
    result = {}
    for inst in function.instructions():
        if not isinstance(inst, StoreInst):
            continue
        if not isinstance(inst.value, Argument):
            continue

        slot = arena.find_slot(inst.pointer)
        if slot is None:
            continue

        result[arena.key_for(slot)] = inst.value

    return result


def _is_array_storage_call(value):
    if not isinstance(value, CallInst):
        return False
    name = value.callee.name
    return ("cudarrays" in name
            and ("array_storage" in name or "dynarray" in name))


def get_array_slot_set(function, arena, kind):
    """Return the :class:`frozenset` of slot keys of arrays accessed by
    instructions of type *kind* (:class:`~delinear.ir.LoadInst` or
    :class:`~delinear.ir.StoreInst`).
    """
    assert kind in (LoadInst, StoreInst)

    result = set()
    for inst in function.instructions():
        if not isinstance(inst, kind):
            continue

        obj = get_underlying_object(inst.pointer)
        if not _is_array_storage_call(obj):
            continue

        slot = arena.find_slot(obj.args[0])
        if slot is not None:
            result.add(arena.key_for(slot))

    return frozenset(result)

# }}}


# {{{ per-array records

class PerArrayRecord(ImmutableRecord):
    """
    .. attribute:: slot

        Key of the array's stack slot in the :class:`StorageArena`.

    .. attribute:: argument

        The kernel :class:`~delinear.ir.Argument` the slot was initialized
        from.

    .. attribute:: num_dims
    .. attribute:: grid_masks

        A tuple of :class:`~delinear.intrinsics.GridAxis`, one per
        dimension, each the union of the masks of all access sites.

    .. attribute:: is_read
    .. attribute:: is_written
    .. attribute:: accesses

        A tuple of :class:`~delinear.access.ArrayAccess`.
    """

    def __init__(self, slot, argument, num_dims, grid_masks,
            is_read, is_written, accesses):
        ImmutableRecord.__init__(self,
                slot=slot, argument=argument, num_dims=num_dims,
                grid_masks=grid_masks, is_read=is_read, is_written=is_written,
                accesses=accesses)

    @property
    def arg_index(self):
        return self.argument.index


def check_consistent_dims(array, accesses):
    """
    :raises InconsistentDimensionCountError: if not all of *accesses* have
        the same number of dimensions.
    """
    first = accesses[0]
    for access in accesses[1:]:
        if access.num_dims != first.num_dims:
            raise InconsistentDimensionCountError(array, first, access)


def get_dimension_mask(accesses, dim):
    return reduce(or_,
            (dim_info.grid_mask
                for access in accesses
                for dim_info in access.dimensions
                if dim_info.index == dim),
            GridAxis.NONE)


def aggregate_accesses(function, accesses, arena, slot_to_arg,
        read_set, write_set, silenced_warnings=()):
    """Group *accesses* by array and build one :class:`PerArrayRecord` per
    array whose slot is initialized from a kernel argument.

    :returns: a list of :class:`PerArrayRecord` in order of first access.
    :raises InconsistentDimensionCountError:
    """
    by_slot = {}
    for access in accesses:
        if access.array_handle is None:
            warn_with_function(function, "untraced_array_handle",
                    f"accessed array '{access.array_name}' is not held "
                    "in a stack slot, ignoring it",
                    type=UnmappedArrayWarning,
                    silenced_warnings=silenced_warnings)
            continue

        by_slot.setdefault(access.array_handle, []).append(access)

    records = []
    for slot, slot_accesses in by_slot.items():
        name = arena.slot_name(slot)
        check_consistent_dims(name, slot_accesses)

        try:
            argument = slot_to_arg[slot]
        except KeyError:
            warn_with_function(function, "unmapped_array",
                    f"array '{name}' is not initialized from a kernel "
                    "argument, ignoring it",
                    type=UnmappedArrayWarning,
                    silenced_warnings=silenced_warnings)
            continue

        num_dims = slot_accesses[0].num_dims
        records.append(PerArrayRecord(
                slot=slot,
                argument=argument,
                num_dims=num_dims,
                grid_masks=tuple(
                    get_dimension_mask(slot_accesses, dim)
                    for dim in range(num_dims)),
                is_read=slot in read_set,
                is_written=slot in write_set,
                accesses=tuple(slot_accesses)))

        logger.debug("array '%s' (argument %d): %d dimension(s), masks %s",
                name, argument.index, num_dims,
                ", ".join(str(m) for m in records[-1].grid_masks))

    return records

# }}}

# vim: foldmethod=marker
