"""A read-only, LLVM-shaped intermediate representation."""

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
from sys import intern
from typing import ClassVar

import numpy as np
from pytools import memoize


__doc__ = """
Types
^^^^^

.. autoclass:: IRType
.. autoclass:: VoidType
.. autoclass:: ScalarType
.. autoclass:: PointerType
.. autoclass:: StructType

Values
^^^^^^

Every value class carries a ``mapper_method`` so that
:class:`pymbolic.mapper.Mapper` subclasses can dispatch on it.

.. autoclass:: Value
.. autoclass:: Argument
.. autoclass:: ConstantInt
.. autoclass:: GlobalVariable
.. autoclass:: ConstantExpr
.. autoclass:: TypeSizeConstant
.. autoclass:: Instruction
.. autoclass:: CallInst
.. autoclass:: BinaryOperator
.. autoclass:: ICmpInst
.. autoclass:: PhiNode

Containers
^^^^^^^^^^

.. autoclass:: BasicBlock
.. autoclass:: Function
.. autoclass:: Module
.. autoclass:: IRBuilder

.. autofunction:: demangle_symbol
.. autofunction:: strip_pointer_casts
.. autofunction:: get_underlying_object
"""


# {{{ types

class IRType:
    is_pointer: ClassVar[bool] = False
    is_struct: ClassVar[bool] = False
    is_integer: ClassVar[bool] = False


@dataclass(frozen=True)
class VoidType(IRType):
    def __str__(self):
        return "void"


@dataclass(frozen=True, init=False)
class ScalarType(IRType):
    """A scalar type described by a :class:`numpy.dtype`."""

    dtype: np.dtype

    def __init__(self, dtype):
        object.__setattr__(self, "dtype", np.dtype(dtype))

    @property
    def is_integer(self):
        return (np.issubdtype(self.dtype, np.integer)
                or self.dtype == np.dtype(np.bool_))

    @property
    def bits(self):
        if self.dtype == np.dtype(np.bool_):
            return 1
        return self.dtype.itemsize * 8

    def __str__(self):
        if self.is_integer:
            return f"i{self.bits}"
        elif self.dtype == np.float32:
            return "float"
        elif self.dtype == np.float64:
            return "double"
        return str(self.dtype)


@dataclass(frozen=True)
class PointerType(IRType):
    pointee: IRType
    address_space: int = 0

    is_pointer: ClassVar[bool] = True

    def __str__(self):
        if self.address_space:
            return f"{self.pointee} addrspace({self.address_space})*"
        return f"{self.pointee}*"


@dataclass(frozen=True)
class StructType(IRType):
    name: str
    fields: tuple[IRType, ...] = ()

    is_struct: ClassVar[bool] = True

    def __str__(self):
        return f"%{self.name}"


void = VoidType()
int1 = ScalarType(np.bool_)
int8 = ScalarType(np.int8)
int32 = ScalarType(np.int32)
int64 = ScalarType(np.int64)
float32 = ScalarType(np.float32)
float64 = ScalarType(np.float64)
int8_ptr = PointerType(int8)


def dim3_type(name="struct.dim3"):
    return StructType(name, (int32, int32, int32))

# }}}


# {{{ symbol demangling

@memoize
def _get_cxa_demangle():
    import ctypes
    import ctypes.util

    cxx_name = ctypes.util.find_library("stdc++")
    c_name = ctypes.util.find_library("c")
    if cxx_name is None or c_name is None:
        return None

    try:
        libcxx = ctypes.CDLL(cxx_name)
        libc = ctypes.CDLL(c_name)
    except OSError:
        return None

    demangle = libcxx.__cxa_demangle
    demangle.restype = ctypes.c_void_p
    demangle.argtypes = [
            ctypes.c_char_p, ctypes.c_char_p,
            ctypes.POINTER(ctypes.c_size_t), ctypes.POINTER(ctypes.c_int)]

    free = libc.free
    free.argtypes = [ctypes.c_void_p]
    free.restype = None

    return demangle, free


@memoize
def demangle_symbol(name: str) -> str:
    """Return the demangled form of the Itanium C++ symbol *name*, or *name*
    itself if it cannot be demangled.
    """
    if not name.startswith("_Z"):
        return name

    funcs = _get_cxa_demangle()
    if funcs is None:
        return name
    demangle, free = funcs

    import ctypes
    status = ctypes.c_int()
    ptr = demangle(name.encode(), None, None, ctypes.byref(status))
    if not ptr:
        return name

    try:
        if status.value != 0:
            return name
        return ctypes.string_at(ptr).decode()
    finally:
        free(ptr)

# }}}


# {{{ values

class Value:
    """
    .. attribute:: type
    .. attribute:: name
    """

    mapper_method: ClassVar[str]

    def __init__(self, type: IRType, name: str = ""):
        self.type = type
        self.name = name

    def ref(self):
        if self.name:
            return f"%{self.name}"
        return f"%<{type(self).__name__}@{id(self):x}>"

    def __str__(self):
        return self.ref()

    def __repr__(self):
        return f"<{type(self).__name__} {self}>"


class Argument(Value):
    """
    .. attribute:: index

        Position in the argument list of :attr:`function`.
    """

    mapper_method = intern("map_argument")

    def __init__(self, type, name, index, function=None):
        super().__init__(type, name)
        self.index = index
        self.function = function


# {{{ constants

class Constant(Value):
    pass


class ConstantInt(Constant):
    mapper_method = intern("map_constant_int")

    def __init__(self, value: int, type: IRType = int32):
        super().__init__(type)
        self.value = int(value)

    def ref(self):
        return str(self.value)

    @property
    def is_negative(self):
        return self.value < 0


class UndefValue(Constant):
    mapper_method = intern("map_undef_value")

    def ref(self):
        return "undef"


class ConstantAggregate(Constant):
    """A constant array, struct, vector or data sequence.

    .. attribute:: kind

        One of ``"array"``, ``"struct"``, ``"vector"``, ``"data"``.
    """

    mapper_method = intern("map_constant_aggregate")

    def __init__(self, kind, elements, type):
        super().__init__(type)
        self.kind = kind
        self.elements = tuple(elements)

    def ref(self):
        return "{%s}" % ", ".join(el.ref() for el in self.elements)


class GlobalValue(Constant):
    mapper_method = intern("map_global_value")

    def ref(self):
        return f"@{self.name}"


class GlobalVariable(GlobalValue):
    def __init__(self, name, value_type):
        super().__init__(PointerType(value_type), name)
        self.value_type = value_type


class ConstantExpr(Constant):
    """A constant expression such as a ``getelementptr`` into a global.

    .. attribute:: opcode
    .. attribute:: operands
    """

    mapper_method = intern("map_constant_expr")

    def __init__(self, opcode, operands, type):
        super().__init__(type)
        self.opcode = opcode
        self.operands = list(operands)

    def ref(self):
        return "{} ({})".format(
                self.opcode, ", ".join(op.ref() for op in self.operands))


class TypeSizeConstant(Constant):
    """``sizeof`` or ``alignof`` of *measured_type*, left symbolic until a
    :class:`delinear.stride.DataLayout` is consulted.
    """

    mapper_method = intern("map_type_size_constant")

    def __init__(self, kind, measured_type, type=int64):
        assert kind in ("sizeof", "alignof")
        super().__init__(type)
        self.kind = kind
        self.measured_type = measured_type

    @property
    def is_size_of(self):
        return self.kind == "sizeof"

    @property
    def is_align_of(self):
        return self.kind == "alignof"

    def ref(self):
        return f"{self.kind}({self.measured_type})"

# }}}


# {{{ instructions

class Instruction(Value):
    """
    .. attribute:: parent

        The :class:`BasicBlock` containing the instruction.

    .. attribute:: operands
    """

    opcode: ClassVar[str]

    def __init__(self, type, operands, name=""):
        super().__init__(type, name)
        self.operands = list(operands)
        self.parent = None

    @property
    def function(self):
        if self.parent is None:
            return None
        return self.parent.parent

    def __str__(self):
        ops = ", ".join(op.ref() for op in self.operands)
        if isinstance(self.type, VoidType):
            return f"{self.opcode} {ops}"
        return f"{self.ref()} = {self.opcode} {ops}"


class CallInst(Instruction):
    mapper_method = intern("map_call")
    opcode = "call"

    def __init__(self, callee, args, name=""):
        super().__init__(callee.return_type, args, name)
        self.callee = callee

    @property
    def args(self):
        return self.operands

    def __str__(self):
        args = ", ".join(arg.ref() for arg in self.args)
        call = f"call {self.callee.ref()}({args})"
        if isinstance(self.type, VoidType):
            return call
        return f"{self.ref()} = {call}"


BINARY_OPCODES = frozenset([
    "add", "sub", "mul", "sdiv", "udiv", "srem", "urem",
    "shl", "lshr", "ashr", "and", "or", "xor",
    ])


class BinaryOperator(Instruction):
    mapper_method = intern("map_binary_operator")

    def __init__(self, opcode, lhs, rhs, name=""):
        if opcode not in BINARY_OPCODES:
            raise ValueError(f"unknown binary opcode '{opcode}'")
        super().__init__(lhs.type, [lhs, rhs], name)
        self._opcode = opcode

    @property
    def opcode(self):
        return self._opcode

    @property
    def lhs(self):
        return self.operands[0]

    @property
    def rhs(self):
        return self.operands[1]


ICMP_PREDICATES = frozenset([
    "eq", "ne", "ugt", "uge", "ult", "ule", "sgt", "sge", "slt", "sle",
    ])


class ICmpInst(Instruction):
    mapper_method = intern("map_icmp")
    opcode = "icmp"

    def __init__(self, predicate, lhs, rhs, name=""):
        if predicate not in ICMP_PREDICATES:
            raise ValueError(f"unknown icmp predicate '{predicate}'")
        super().__init__(int1, [lhs, rhs], name)
        self.predicate = predicate

    @property
    def lhs(self):
        return self.operands[0]

    @property
    def rhs(self):
        return self.operands[1]

    def __str__(self):
        return (f"{self.ref()} = icmp {self.predicate} "
                f"{self.lhs.ref()}, {self.rhs.ref()}")


class PhiNode(Instruction):
    """A control-flow merge. Incoming values may be added after the phi is
    created, which allows a phi to refer to itself.
    """

    mapper_method = intern("map_phi")
    opcode = "phi"

    def __init__(self, type, name=""):
        super().__init__(type, [], name)
        self.incoming_blocks = []

    def add_incoming(self, value, block):
        self.operands.append(value)
        self.incoming_blocks.append(block)

    @property
    def incoming(self):
        return list(zip(self.operands, self.incoming_blocks))

    @property
    def num_incoming_values(self):
        return len(self.operands)

    def __str__(self):
        inc = ", ".join(f"[ {val.ref()}, %{bb.name} ]"
                for val, bb in self.incoming)
        return f"{self.ref()} = phi {inc}"


CAST_OPCODES = frozenset([
    "zext", "sext", "trunc", "bitcast", "addrspacecast",
    "ptrtoint", "inttoptr", "sitofp", "uitofp", "fptosi", "fptoui",
    ])


class CastInst(Instruction):
    mapper_method = intern("map_cast")

    def __init__(self, opcode, operand, dest_type, name=""):
        if opcode not in CAST_OPCODES:
            raise ValueError(f"unknown cast opcode '{opcode}'")
        super().__init__(dest_type, [operand], name)
        self._opcode = opcode

    @property
    def opcode(self):
        return self._opcode

    @property
    def operand(self):
        return self.operands[0]


class LoadInst(Instruction):
    mapper_method = intern("map_load")
    opcode = "load"

    def __init__(self, pointer, name="", type=None):
        if type is None:
            type = pointer.type.pointee
        super().__init__(type, [pointer], name)

    @property
    def pointer(self):
        return self.operands[0]


class StoreInst(Instruction):
    mapper_method = intern("map_store")
    opcode = "store"

    def __init__(self, value, pointer):
        super().__init__(void, [value, pointer])

    @property
    def value(self):
        return self.operands[0]

    @property
    def pointer(self):
        return self.operands[1]


class GetElementPtrInst(Instruction):
    mapper_method = intern("map_get_element_ptr")
    opcode = "getelementptr"

    def __init__(self, pointer, indices, name="", result_type=None):
        if result_type is None:
            result_type = pointer.type
        super().__init__(result_type, [pointer, *indices], name)

    @property
    def pointer(self):
        return self.operands[0]

    @property
    def indices(self):
        return self.operands[1:]

    @property
    def source_element_type(self):
        return self.pointer.type.pointee

    def has_all_zero_indices(self):
        return all(isinstance(idx, ConstantInt) and idx.value == 0
                for idx in self.indices)


class ExtractValueInst(Instruction):
    mapper_method = intern("map_extract_value")
    opcode = "extractvalue"

    def __init__(self, aggregate, indices, name="", type=None):
        indices = tuple(indices)
        if type is None:
            type = aggregate.type
            for idx in indices:
                type = type.fields[idx]
        super().__init__(type, [aggregate], name)
        self.indices = indices

    @property
    def aggregate(self):
        return self.operands[0]


class ExtractElementInst(Instruction):
    mapper_method = intern("map_extract_element")
    opcode = "extractelement"

    def __init__(self, vector, index, type, name=""):
        super().__init__(type, [vector, index], name)


class AllocaInst(Instruction):
    mapper_method = intern("map_alloca")
    opcode = "alloca"

    def __init__(self, allocated_type, name=""):
        super().__init__(PointerType(allocated_type), [], name)
        self.allocated_type = allocated_type

    def __str__(self):
        return f"{self.ref()} = alloca {self.allocated_type}"


class BranchInst(Instruction):
    mapper_method = intern("map_branch")
    opcode = "br"

    def __init__(self, targets, condition=None):
        super().__init__(void, [] if condition is None else [condition])
        self.targets = list(targets)
        assert len(self.targets) == (1 if condition is None else 2)

    @property
    def is_conditional(self):
        return bool(self.operands)

    @property
    def condition(self):
        if not self.operands:
            return None
        return self.operands[0]

    @property
    def successors(self):
        return self.targets

    def __str__(self):
        targets = ", ".join(f"%{bb.name}" for bb in self.targets)
        if self.is_conditional:
            return f"br {self.condition.ref()}, {targets}"
        return f"br {targets}"


class ReturnInst(Instruction):
    mapper_method = intern("map_return")
    opcode = "ret"

    def __init__(self, value=None):
        super().__init__(void, [] if value is None else [value])

    @property
    def successors(self):
        return []

# }}}

# }}}


# {{{ containers

class BasicBlock:
    def __init__(self, name, parent=None):
        self.name = name
        self.parent = parent
        self.instructions = []

    def append(self, inst):
        inst.parent = self
        self.instructions.append(inst)
        return inst

    @property
    def terminator(self):
        if self.instructions and isinstance(
                self.instructions[-1], (BranchInst, ReturnInst)):
            return self.instructions[-1]
        return None

    @property
    def successors(self):
        term = self.terminator
        if term is None:
            return []
        return list(term.successors)

    def __iter__(self):
        return iter(self.instructions)

    def __repr__(self):
        return f"<BasicBlock %{self.name}>"


class Function(GlobalValue):
    """
    .. attribute:: arguments

        A list of :class:`Argument`.

    .. attribute:: blocks

        A list of :class:`BasicBlock`; the first is the entry block.
        A function without blocks is a declaration.

    .. attribute:: does_not_return
    """

    def __init__(self, name, return_type=void, args=(),
            demangled_name=None, does_not_return=False):
        super().__init__(int8_ptr, name)
        self.return_type = return_type
        self.arguments = [
                Argument(arg_type, arg_name, i, self)
                for i, (arg_name, arg_type) in enumerate(args)]
        self.blocks = []
        self.does_not_return = does_not_return
        self._demangled_name = demangled_name

    @property
    def demangled_name(self):
        if self._demangled_name is not None:
            return self._demangled_name
        return demangle_symbol(self.name)

    @property
    def is_declaration(self):
        return not self.blocks

    @property
    def arg_size(self):
        return len(self.arguments)

    @property
    def entry_block(self):
        return self.blocks[0]

    def append_basic_block(self, name=""):
        if not name:
            name = f"bb{len(self.blocks)}"
        bb = BasicBlock(name, self)
        self.blocks.append(bb)
        return bb

    def instructions(self):
        for bb in self.blocks:
            yield from bb.instructions

    def predecessors(self, block):
        return [bb for bb in self.blocks if block in bb.successors]

    def __repr__(self):
        return f"<Function @{self.name}>"


class Module:
    def __init__(self, name=""):
        self.name = name
        self.functions = []
        self.globals = []

    def add_function(self, function):
        self.functions.append(function)
        return function

    def get_function(self, name):
        for fn in self.functions:
            if fn.name == name:
                return fn
        return None

    def get_or_insert_function(self, name, return_type=void, args=(),
            **kwargs):
        fn = self.get_function(name)
        if fn is None:
            fn = self.add_function(
                    Function(name, return_type, args, **kwargs))
        return fn

    def add_global(self, name, value_type):
        gv = GlobalVariable(name, value_type)
        self.globals.append(gv)
        return gv

    def __iter__(self):
        return iter(self.functions)

# }}}


# {{{ builder

class IRBuilder:
    """Appends instructions at the end of a :class:`BasicBlock`."""

    def __init__(self, block=None):
        self.block = block

    def position_at_end(self, block):
        self.block = block

    def _insert(self, inst):
        assert self.block is not None, "builder is not positioned"
        return self.block.append(inst)

    def call(self, callee, args, name=""):
        return self._insert(CallInst(callee, args, name))

    def binop(self, opcode, lhs, rhs, name=""):
        return self._insert(BinaryOperator(opcode, lhs, rhs, name))

    def add(self, lhs, rhs, name=""):
        return self.binop("add", lhs, rhs, name)

    def sub(self, lhs, rhs, name=""):
        return self.binop("sub", lhs, rhs, name)

    def mul(self, lhs, rhs, name=""):
        return self.binop("mul", lhs, rhs, name)

    def udiv(self, lhs, rhs, name=""):
        return self.binop("udiv", lhs, rhs, name)

    def sdiv(self, lhs, rhs, name=""):
        return self.binop("sdiv", lhs, rhs, name)

    def urem(self, lhs, rhs, name=""):
        return self.binop("urem", lhs, rhs, name)

    def srem(self, lhs, rhs, name=""):
        return self.binop("srem", lhs, rhs, name)

    def shl(self, lhs, rhs, name=""):
        return self.binop("shl", lhs, rhs, name)

    def and_(self, lhs, rhs, name=""):
        return self.binop("and", lhs, rhs, name)

    def or_(self, lhs, rhs, name=""):
        return self.binop("or", lhs, rhs, name)

    def icmp(self, predicate, lhs, rhs, name=""):
        return self._insert(ICmpInst(predicate, lhs, rhs, name))

    def phi(self, type, name=""):
        return self._insert(PhiNode(type, name))

    def cast(self, opcode, value, dest_type, name=""):
        return self._insert(CastInst(opcode, value, dest_type, name))

    def zext(self, value, dest_type, name=""):
        return self.cast("zext", value, dest_type, name)

    def sext(self, value, dest_type, name=""):
        return self.cast("sext", value, dest_type, name)

    def trunc(self, value, dest_type, name=""):
        return self.cast("trunc", value, dest_type, name)

    def bitcast(self, value, dest_type, name=""):
        return self.cast("bitcast", value, dest_type, name)

    def load(self, pointer, name="", type=None):
        return self._insert(LoadInst(pointer, name, type))

    def store(self, value, pointer):
        return self._insert(StoreInst(value, pointer))

    def gep(self, pointer, indices, name="", result_type=None):
        return self._insert(
                GetElementPtrInst(pointer, indices, name, result_type))

    def extract_value(self, aggregate, indices, name=""):
        return self._insert(ExtractValueInst(aggregate, indices, name))

    def extract_element(self, vector, index, type, name=""):
        return self._insert(ExtractElementInst(vector, index, type, name))

    def alloca(self, allocated_type, name=""):
        return self._insert(AllocaInst(allocated_type, name))

    def br(self, target):
        return self._insert(BranchInst([target]))

    def cond_br(self, condition, true_target, false_target):
        return self._insert(
                BranchInst([true_target, false_target], condition))

    def ret(self, value=None):
        return self._insert(ReturnInst(value))


def const(value, type=int32):
    return ConstantInt(value, type)

# }}}


# {{{ pointer provenance

def _is_pointer_cast(value):
    return (isinstance(value, CastInst)
            and value.opcode in ("bitcast", "addrspacecast"))


def strip_pointer_casts(value):
    """Strip bitcasts, address space casts and all-zero ``getelementptr``
    instructions off *value*.
    """
    visited = set()
    while value not in visited:
        visited.add(value)
        if _is_pointer_cast(value):
            value = value.operand
        elif (isinstance(value, GetElementPtrInst)
                and value.has_all_zero_indices()):
            value = value.pointer
        else:
            break
    return value


def get_underlying_object(pointer, max_lookup=6):
    """Walk *pointer* back through ``getelementptr`` instructions and pointer
    casts, at most *max_lookup* steps.
    """
    for _ in range(max_lookup):
        if isinstance(pointer, GetElementPtrInst):
            pointer = pointer.pointer
        elif _is_pointer_cast(pointer):
            pointer = pointer.operand
        elif (isinstance(pointer, ConstantExpr)
                and pointer.opcode in ("getelementptr", "bitcast")):
            pointer = pointer.operands[0]
        else:
            break
    return pointer

# }}}

# vim: foldmethod=marker
