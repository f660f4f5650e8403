"""Reconstruction of the grid-axis structure of multi-dimensional array
accesses in GPU kernels."""

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

from delinear.access import ArrayAccess, DimensionInfo, extract_access, format_access
from delinear.aggregate import (
    PerArrayRecord,
    StorageArena,
    aggregate_accesses,
    build_slot_to_argument_map,
    get_array_slot_set,
)
from delinear.diagnostic import (
    DelinearError,
    DelinearWarning,
    InconsistentDimensionCountError,
    KernelAnalysisError,
    UnmappedArrayWarning,
    UnresolvableTripCountError,
    UnsupportedExpressionError,
)
from delinear.driver import (
    ArrayInfoSink,
    KernelAnalysis,
    ModuleAnalysis,
    RecordingSink,
    analyze_kernel,
    analyze_module,
    is_kernel_name,
    publish_kernel,
)
from delinear.evolution import LoopDisposition, ScalarEvolution
from delinear.formula import EvolutionFormulaMapper, ValueFormulaMapper
from delinear.intrinsics import GridAxis, make_nvvm_intrinsic_table
from delinear.loops import Loop, LoopInfo
from delinear.options import Options, make_options
from delinear.stride import (
    DataLayout,
    evaluate_step,
    get_stride,
    get_unit_stride,
    is_non_unit_stride,
)
from delinear.version import VERSION, VERSION_TEXT


__all__ = [
    "VERSION",
    "VERSION_TEXT",
    "ArrayAccess",
    "ArrayInfoSink",
    "DataLayout",
    "DelinearError",
    "DelinearWarning",
    "DimensionInfo",
    "EvolutionFormulaMapper",
    "GridAxis",
    "InconsistentDimensionCountError",
    "KernelAnalysis",
    "KernelAnalysisError",
    "Loop",
    "LoopDisposition",
    "LoopInfo",
    "ModuleAnalysis",
    "Options",
    "PerArrayRecord",
    "RecordingSink",
    "ScalarEvolution",
    "StorageArena",
    "UnmappedArrayWarning",
    "UnresolvableTripCountError",
    "UnsupportedExpressionError",
    "ValueFormulaMapper",
    "aggregate_accesses",
    "analyze_kernel",
    "analyze_module",
    "build_slot_to_argument_map",
    "evaluate_step",
    "extract_access",
    "format_access",
    "get_array_slot_set",
    "get_stride",
    "get_unit_stride",
    "is_kernel_name",
    "is_non_unit_stride",
    "make_nvvm_intrinsic_table",
    "make_options",
    "publish_kernel",
]

# vim: foldmethod=marker
