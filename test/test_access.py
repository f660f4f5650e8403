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

import sys

import pytest

import delinear.ir as ir
from delinear.access import extract_access, format_access
from delinear.aggregate import (
    StorageArena,
    aggregate_accesses,
    build_slot_to_argument_map,
    get_array_slot_set,
)
from delinear.diagnostic import (
    DelinearError,
    InconsistentDimensionCountError,
    KernelAnalysisError,
    UnmappedArrayWarning,
)
from delinear.evolution import ScalarEvolution
from delinear.intrinsics import GridAxis, make_nvvm_intrinsic_table
from delinear.ir import const
from delinear.loops import LoopInfo

from testlib import KernelFixture, dynarray_type, get_accessor

import logging
logger = logging.getLogger(__name__)


def extract_all(knl):
    """Extract every accessor call of *knl*, in program order."""
    loop_info = LoopInfo(knl)
    se = ScalarEvolution(knl, loop_info)
    arena = StorageArena(knl)
    intrinsics = make_nvvm_intrinsic_table()

    return arena, [
            extract_access(inst, loop_info.get_loop_for(inst.parent), se,
                intrinsics, arena=arena)
            for inst in knl.instructions()
            if isinstance(inst, ir.CallInst)
            and "operator()" in inst.callee.demangled_name]


# {{{ access extraction

def test_dimensions_are_reversed():
    fx = KernelFixture()
    fx.read("A", fx.ctaid("x"), fx.tid("y"))
    knl = fx.finish()

    _, (access,) = extract_all(knl)
    assert access.num_dims == 2
    assert access.array_name == "A.addr"
    assert access.array_handle == 0
    assert access.loop is None
    assert not access.is_write

    dim0, dim1 = access.dimensions
    assert (dim0.index, dim0.formula, dim0.grid_mask) == (0, "t.y", GridAxis.Y)
    assert (dim1.index, dim1.formula, dim1.grid_mask) == (1, "b.x", GridAxis.X)

    assert format_access(access) == "A.addr: [ b.x ][ t.y ]"


def test_access_in_loop():
    fx = KernelFixture(arrays=(("A", 1),), scalars=[("n", ir.int32)])
    tid = fx.tid("x")
    i = fx.begin_loop(fx.arg("n"))
    fx.read("A", fx.b.add(i, tid))
    fx.end_loop()
    knl = fx.finish()

    _, (access,) = extract_all(knl)
    assert access.loop.header is i.parent
    assert format_access(access) \
            == "A.addr: [ {1}<t.x : (smax(1, #PARAM:n) + -1) , 1> ]"
    assert access.dimensions[0].grid_mask == GridAxis.X


def test_extraction_failure_is_located():
    fx = KernelFixture()
    b = fx.b
    fx.read("A", b.or_(fx.tid("x"), const(1)), fx.tid("y"))
    knl = fx.finish()

    with pytest.raises(KernelAnalysisError) as exc_info:
        extract_all(knl)

    err = exc_info.value
    assert err.kernel is knl
    assert err.array == "A.addr"
    assert err.dimension == 1
    assert err.cause.formula_so_far == "(t.x"
    assert "copy_kernel" in str(err)


def test_non_pointer_handle():
    module = ir.Module()
    accessor = get_accessor(module, 1)
    fn = ir.Function("f", ir.void, [("A", dynarray_type(1))])
    b = ir.IRBuilder(fn.append_basic_block("entry"))
    call = b.call(accessor, [fn.arguments[0], const(0)])
    b.ret()

    se = ScalarEvolution(fn, LoopInfo(fn))
    with pytest.raises(DelinearError):
        extract_access(call, None, se, make_nvvm_intrinsic_table())

# }}}


# {{{ storage slots

def test_find_slot_through_conversions():
    fx = KernelFixture()
    b = fx.b
    slot = fx.slots["A"]
    to_local = fx.module.get_or_insert_function(
            "llvm.nvvm.ptr.gen.to.local.p5i8.p0i8",
            ir.PointerType(ir.int8, 5), [("p", ir.int8_ptr)])
    converted = b.call(to_local, [b.bitcast(slot, ir.int8_ptr)])
    cast_back = b.bitcast(converted, ir.int8_ptr)
    knl = fx.finish()

    arena = StorageArena(knl)
    assert len(arena) == 1
    assert arena[0] is slot
    assert arena.find_slot(converted) is slot
    assert arena.key_for(cast_back) == 0
    assert arena.find_slot(fx.arg("A")) is None
    assert arena.key_for(fx.arg("A")) is None


def test_slot_to_argument_map():
    fx = KernelFixture(arrays=(("A", 2), ("B", 1)))
    knl = fx.finish()

    arena = StorageArena(knl)
    assert build_slot_to_argument_map(knl, arena) == {
            0: fx.arg("A"), 1: fx.arg("B")}


def test_read_and_write_sets():
    fx = KernelFixture(arrays=(("A", 1), ("B", 1), ("C", 1)))
    tid = fx.tid("x")
    fx.write(fx.read("A", tid), "B", tid)
    fx.access("C", tid)
    knl = fx.finish()

    arena = StorageArena(knl)
    assert get_array_slot_set(knl, arena, ir.LoadInst) == frozenset([0])
    assert get_array_slot_set(knl, arena, ir.StoreInst) == frozenset([1])

# }}}


# {{{ aggregation

def aggregate(knl, **kwargs):
    arena, accesses = extract_all(knl)
    return aggregate_accesses(knl, accesses, arena,
            build_slot_to_argument_map(knl, arena),
            get_array_slot_set(knl, arena, ir.LoadInst),
            get_array_slot_set(knl, arena, ir.StoreInst),
            **kwargs)


def test_masks_are_merged_across_sites():
    fx = KernelFixture(arrays=(("A", 2), ("B", 1)))
    value = fx.read("A", fx.tid("x"), fx.tid("y"))
    fx.read("A", fx.ctaid("y"), fx.tid("y"))
    fx.write(value, "B", fx.ctaid("z"))
    knl = fx.finish()

    rec_a, rec_b = aggregate(knl)

    assert rec_a.arg_index == 0
    assert rec_a.num_dims == 2
    assert rec_a.grid_masks == (GridAxis.Y, GridAxis.X | GridAxis.Y)
    assert (rec_a.is_read, rec_a.is_written) == (True, False)
    assert len(rec_a.accesses) == 2

    assert rec_b.arg_index == 1
    assert rec_b.grid_masks == (GridAxis.Z,)
    assert (rec_b.is_read, rec_b.is_written) == (False, True)


def test_inconsistent_dimension_count():
    fx = KernelFixture()
    fx.read("A", fx.tid("x"), fx.tid("y"))
    one_dim = get_accessor(fx.module, 1)
    fx.b.call(one_dim, [fx.slots["A"], fx.tid("x")])
    knl = fx.finish()

    with pytest.raises(InconsistentDimensionCountError) as exc_info:
        aggregate(knl)
    assert exc_info.value.array == "A.addr"
    assert exc_info.value.site_b.num_dims == 1


def test_unmapped_array_warns():
    fx = KernelFixture()
    tmp = fx.b.alloca(dynarray_type(1), "tmp")
    fx.b.call(get_accessor(fx.module, 1), [tmp, fx.tid("x")])
    fx.read("A", fx.tid("x"), fx.tid("y"))
    knl = fx.finish()

    with pytest.warns(UnmappedArrayWarning, match="unmapped_array"):
        records = aggregate(knl)
    assert [rec.arg_index for rec in records] == [0]


def test_silenced_warning(recwarn):
    fx = KernelFixture()
    tmp = fx.b.alloca(dynarray_type(1), "tmp")
    fx.b.call(get_accessor(fx.module, 1), [tmp, fx.tid("x")])
    knl = fx.finish()

    assert aggregate(knl, silenced_warnings=["unmapped_*"]) == []
    assert not [w for w in recwarn if issubclass(w.category, UnmappedArrayWarning)]

# }}}


if __name__ == "__main__":
    if len(sys.argv) > 1:
        exec(sys.argv[1])
    else:
        from pytest import main
        main([__file__])

# vim: foldmethod=marker
