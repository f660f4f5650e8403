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
from delinear.ir import const

import logging
logger = logging.getLogger(__name__)


# {{{ demangling

def test_demangle_leaves_plain_names_alone():
    assert ir.demangle_symbol("llvm.nvvm.read.ptx.sreg.tid.x") \
            == "llvm.nvvm.read.ptx.sreg.tid.x"


def test_demangle_itanium_symbol():
    if ir._get_cxa_demangle() is None:
        pytest.skip("no C++ runtime to demangle with")

    assert ir.demangle_symbol("_Z11copy_kerneli") == "copy_kernel(int)"

    # not a valid mangling
    assert ir.demangle_symbol("_Z!!") == "_Z!!"


def test_explicit_demangled_name():
    fn = ir.Function("_Z3foov", demangled_name="foo()")
    assert fn.demangled_name == "foo()"
    assert fn.is_declaration

# }}}


def test_types():
    assert str(ir.int32) == "i32"
    assert str(ir.int1) == "i1"
    assert ir.int1.bits == 1
    assert str(ir.float32) == "float"
    assert str(ir.PointerType(ir.float64)) == "double*"
    assert str(ir.PointerType(ir.int8, 3)) == "i8 addrspace(3)*"
    assert ir.int64.is_integer
    assert not ir.float32.is_integer
    assert ir.PointerType(ir.int32) == ir.PointerType(ir.int32)


def test_unknown_opcodes_rejected():
    with pytest.raises(ValueError):
        ir.BinaryOperator("frobnicate", const(1), const(2))
    with pytest.raises(ValueError):
        ir.ICmpInst("lt", const(1), const(2))
    with pytest.raises(ValueError):
        ir.CastInst("reinterpret", const(1), ir.int64)


def test_instruction_text():
    fn = ir.Function("f", ir.void, [("n", ir.int32)])
    bb = fn.append_basic_block("entry")
    b = ir.IRBuilder(bb)

    s = b.add(fn.arguments[0], const(1), "s")
    cmp = b.icmp("slt", s, const(10), "c")

    assert str(s) == "%s = add %n, 1"
    assert str(cmp) == "%c = icmp slt %s, 10"
    assert s.function is fn


def test_predecessors_and_successors():
    fn = ir.Function("f")
    entry = fn.append_basic_block("entry")
    left = fn.append_basic_block("left")
    right = fn.append_basic_block("right")
    merge = fn.append_basic_block()

    b = ir.IRBuilder(entry)
    b.cond_br(const(1, ir.int1), left, right)
    for bb in [left, right]:
        b.position_at_end(bb)
        b.br(merge)
    b.position_at_end(merge)
    b.ret()

    assert merge.name == "bb3"
    assert entry.successors == [left, right]
    assert fn.predecessors(merge) == [left, right]
    assert merge.successors == []
    assert not fn.is_declaration


# {{{ pointer provenance

def test_strip_pointer_casts():
    fn = ir.Function("f", ir.void, [("p", ir.PointerType(ir.float32))])
    b = ir.IRBuilder(fn.append_basic_block("entry"))
    p = fn.arguments[0]

    cast = b.bitcast(p, ir.int8_ptr)
    zero_gep = b.gep(cast, [const(0), const(0)])
    assert ir.strip_pointer_casts(zero_gep) is p

    offset_gep = b.gep(p, [const(3)])
    assert ir.strip_pointer_casts(offset_gep) is offset_gep


def test_get_underlying_object():
    fn = ir.Function("f", ir.void, [("p", ir.PointerType(ir.float32))])
    b = ir.IRBuilder(fn.append_basic_block("entry"))
    p = fn.arguments[0]

    ptr = b.gep(b.bitcast(b.gep(p, [const(2)]), ir.int8_ptr), [const(1)])
    assert ir.get_underlying_object(ptr) is p
    assert ir.get_underlying_object(ptr, max_lookup=1) is not p

# }}}


if __name__ == "__main__":
    if len(sys.argv) > 1:
        exec(sys.argv[1])
    else:
        from pytest import main
        main([__file__])

# vim: foldmethod=marker
