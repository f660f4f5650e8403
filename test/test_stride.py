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

import pymbolic.primitives as p
import pytest

import delinear.ir as ir
from delinear.diagnostic import UnsupportedExpressionError
from delinear.evolution import (
    EvolutionAdd,
    EvolutionConstant as Const,
    EvolutionMul,
    EvolutionUnknown as Unknown,
    EvolutionZeroExtend,
    ScalarEvolution,
)
from delinear.ir import TypeSizeConstant, const
from delinear.loops import LoopInfo
from delinear.stride import (
    DataLayout,
    evaluate_step,
    get_stride,
    get_unit_stride,
    is_non_unit_stride,
)

from testlib import KernelFixture

import logging
logger = logging.getLogger(__name__)


def test_data_layout():
    dl = DataLayout()

    assert dl.get_type_alloc_size(ir.float32) == 4
    assert dl.get_type_alloc_size(ir.float64) == 8
    assert dl.get_type_alloc_size(ir.PointerType(ir.int8)) == 8
    assert DataLayout(pointer_size=4).get_type_alloc_size(ir.int8_ptr) == 4

    padded = ir.StructType("padded", (ir.int8, ir.int32))
    assert dl.get_abi_alignment(padded) == 4
    assert dl.get_type_store_size(padded) == 8

    tail = ir.StructType("tail", (ir.int32, ir.int8))
    assert dl.get_type_store_size(tail) == 5
    assert dl.get_type_alloc_size(tail) == 8


def test_evaluate_step():
    dl = DataLayout()
    size_f32 = Unknown(TypeSizeConstant("sizeof", ir.float32))
    align_f64 = Unknown(TypeSizeConstant("alignof", ir.float64))

    assert evaluate_step(size_f32, dl) == 4
    assert evaluate_step(align_f64, dl) == 8
    assert evaluate_step(EvolutionMul((Const(3), size_f32)), dl) == 12
    assert evaluate_step(Const(-1), dl) == 2**64 - 1
    assert evaluate_step(EvolutionZeroExtend(Const(3), ir.int64), dl) == 3
    assert evaluate_step(Unknown(const(5)), dl) == 0

    with pytest.raises(UnsupportedExpressionError):
        evaluate_step(EvolutionAdd((Const(1), size_f32)), dl)

    with pytest.raises(UnsupportedExpressionError) as exc_info:
        evaluate_step(p.Variable("n"), dl)
    assert exc_info.value.kind == "step expression"
    with pytest.raises(UnsupportedExpressionError):
        evaluate_step(EvolutionMul((Const(2), p.Variable("n"))), dl)


def build_strided_loop(factor):
    fx = KernelFixture(arrays=(), scalars=[
        ("p", ir.PointerType(ir.float32)), ("n", ir.int32)])
    outside = fx.b.gep(fx.arg("p"), [fx.tid("x")])

    i = fx.begin_loop(fx.arg("n"))
    idx = fx.b.mul(i, const(factor))
    inside = fx.b.gep(fx.arg("p"), [idx])
    fx.b.load(inside)
    fx.end_loop()

    knl = fx.finish()
    return ScalarEvolution(knl, LoopInfo(knl)), outside, inside


@pytest.mark.parametrize(("factor", "stride"), [(1, 4), (2, 8), (3, 12)])
def test_stride(factor, stride):
    se, _, inside = build_strided_loop(factor)
    dl = DataLayout()

    assert get_stride(inside, se, dl) == stride
    assert get_unit_stride(inside, dl) == 4
    assert is_non_unit_stride(inside, se, dl) == (factor != 1)


def test_stride_outside_loop():
    se, outside, _ = build_strided_loop(2)
    dl = DataLayout()

    assert get_stride(outside, se, dl) == 0
    assert not is_non_unit_stride(outside, se, dl)


if __name__ == "__main__":
    if len(sys.argv) > 1:
        exec(sys.argv[1])
    else:
        from pytest import main
        main([__file__])

# vim: foldmethod=marker
