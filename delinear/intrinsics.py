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
from enum import Enum, IntFlag

from immutables import Map


__doc__ = """
.. autoclass:: GridAxis
.. autoclass:: RegisterKind
.. autoclass:: GridRegister
.. autofunction:: make_nvvm_intrinsic_table
"""


class GridAxis(IntFlag):
    """Set of grid axes driving an array dimension."""

    NONE = 0
    X = 1
    Y = 2
    Z = 4

    @property
    def index(self):
        """Position of a single axis, 0 for X."""
        return {GridAxis.X: 0, GridAxis.Y: 1, GridAxis.Z: 2}[self]

    def axes(self):
        """Yield the single axes set in *self*, in X, Y, Z order."""
        for axis in (GridAxis.X, GridAxis.Y, GridAxis.Z):
            if self & axis:
                yield axis

    def __str__(self):
        names = [axis.name for axis in self.axes()]
        if not names:
            return "{}"
        return "{%s}" % ", ".join(names)


AXIS_NAMES = ("x", "y", "z")


class RegisterKind(Enum):
    THREAD_ID = "t"
    BLOCK_ID = "b"
    BLOCK_SIZE = "bsize"


@dataclass(frozen=True)
class GridRegister:
    kind: RegisterKind
    axis: GridAxis

    @property
    def formula(self):
        return f"{self.kind.value}.{AXIS_NAMES[self.axis.index]}"

    @property
    def grid_mask(self):
        """Axis bits contributed to the enclosing dimension. Thread and block
        ids tie a dimension to their grid axis, block sizes do not.
        """
        if self.kind == RegisterKind.BLOCK_SIZE:
            return GridAxis.NONE
        return self.axis


_NVVM_REGISTER_NAMES = {
        RegisterKind.THREAD_ID: "tid",
        RegisterKind.BLOCK_ID: "ctaid",
        RegisterKind.BLOCK_SIZE: "ntid",
        }


def make_nvvm_intrinsic_table():
    """Return an immutable mapping from NVVM special-register intrinsic names
    to :class:`GridRegister`.
    """
    table = {}
    for kind, reg_name in _NVVM_REGISTER_NAMES.items():
        for axis_name, axis in zip(AXIS_NAMES, (GridAxis.X, GridAxis.Y, GridAxis.Z)):
            table[f"llvm.nvvm.read.ptx.sreg.{reg_name}.{axis_name}"] = \
                    GridRegister(kind, axis)

    return Map(table)


# vim: foldmethod=marker
