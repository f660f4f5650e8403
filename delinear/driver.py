"""Per-kernel analysis of a module and publication of the results."""

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

from pytools import ImmutableRecord, ProcessLogger

from delinear.access import extract_access, format_access
from delinear.aggregate import (
    StorageArena,
    aggregate_accesses,
    build_slot_to_argument_map,
    get_array_slot_set,
)
from delinear.diagnostic import DelinearError, KernelAnalysisError
from delinear.evolution import ScalarEvolution
from delinear.formula import is_array_accessor
from delinear.intrinsics import make_nvvm_intrinsic_table
from delinear.ir import (
    CallInst,
    LoadInst,
    StoreInst,
    get_underlying_object,
)
from delinear.loops import LoopInfo
from delinear.options import make_options


logger = logging.getLogger(__name__)


__doc__ = """
.. autofunction:: is_kernel_name

Sinks
^^^^^

.. autoclass:: ArrayInfoSink
.. autoclass:: RecordingSink

Analysis
^^^^^^^^

.. autoclass:: KernelAnalysis
.. autoclass:: ModuleAnalysis
.. autofunction:: analyze_kernel
.. autofunction:: publish_kernel
.. autofunction:: analyze_module
"""


def is_kernel_name(name):
    """Whether the demangled function *name* looks like a kernel entry
    point.
    """
    return ("_kernel(" in name
            or "_kernel<" in name
            or ("_kernel_" in name
                and "_<" not in name
                and "_(" not in name))


# {{{ sinks

class ArrayInfoSink:
    """Receiver of the facts found for each kernel.

    .. automethod:: reset
    .. automethod:: set_array_info
    .. automethod:: set_array_dim_info
    """

    def reset(self, kernel):
        """Called once per kernel, before any other call for it."""
        raise NotImplementedError

    def set_array_info(self, kernel, arg_index, num_dims, is_read, is_written):
        raise NotImplementedError

    def set_array_dim_info(self, kernel, arg_index, dim, grid_dim):
        """Record that dimension *dim* of the array passed as argument
        *arg_index* is driven by grid axis *grid_dim* (0 for x, 1 for y,
        2 for z).
        """
        raise NotImplementedError


class SinkCall(ImmutableRecord):
    """
    .. attribute:: method

        Name of the :class:`ArrayInfoSink` method called.

    .. attribute:: kernel
    .. attribute:: args

        The remaining arguments, as a tuple.
    """

    def __init__(self, method, kernel, args=()):
        ImmutableRecord.__init__(self, method=method, kernel=kernel,
                args=tuple(args))


class RecordingSink(ArrayInfoSink):
    """Stores every call as a :class:`SinkCall` in :attr:`calls`."""

    def __init__(self):
        self.calls = []

    def reset(self, kernel):
        self.calls.append(SinkCall("reset", kernel))

    def set_array_info(self, kernel, arg_index, num_dims, is_read, is_written):
        self.calls.append(SinkCall("set_array_info", kernel,
                (arg_index, num_dims, is_read, is_written)))

    def set_array_dim_info(self, kernel, arg_index, dim, grid_dim):
        self.calls.append(SinkCall("set_array_dim_info", kernel,
                (arg_index, dim, grid_dim)))

    def get_calls(self, method):
        return [call for call in self.calls if call.method == method]

# }}}


# {{{ kernel analysis

class KernelAnalysis(ImmutableRecord):
    """
    .. attribute:: kernel

        The analyzed :class:`~delinear.ir.Function`.

    .. attribute:: accesses

        A tuple of :class:`~delinear.access.ArrayAccess`, in program order.

    .. attribute:: arrays

        A tuple of :class:`~delinear.aggregate.PerArrayRecord`.
    """

    def __init__(self, kernel, accesses, arrays):
        ImmutableRecord.__init__(self, kernel=kernel,
                accesses=tuple(accesses), arrays=tuple(arrays))

    def get_array(self, arg_index):
        for record in self.arrays:
            if record.arg_index == arg_index:
                return record
        raise KeyError(arg_index)


class ModuleAnalysis(ImmutableRecord):
    """
    .. attribute:: kernels

        A list of :class:`KernelAnalysis` of the kernels analyzed
        successfully.

    .. attribute:: failures

        A list of :class:`~delinear.diagnostic.KernelAnalysisError`, one
        per skipped kernel.
    """

    def __init__(self, kernels, failures):
        ImmutableRecord.__init__(self, kernels=kernels, failures=failures)

    def get_kernel(self, name):
        for result in self.kernels:
            if name in (result.kernel.name, result.kernel.demangled_name):
                return result
        raise KeyError(name)


def _scan_accesses(function, loop_info, evolution, arena, intrinsics, options):
    written = set()
    for inst in function.instructions():
        if isinstance(inst, StoreInst):
            obj = get_underlying_object(inst.pointer)
            if isinstance(obj, CallInst):
                written.add(obj)

    accesses = []
    for bb in function.blocks:
        loop = loop_info.get_loop_for(bb)
        for inst in bb:
            if not isinstance(inst, CallInst):
                continue
            if not is_array_accessor(inst.callee, options.array_class_prefix):
                continue

            accesses.append(extract_access(inst, loop, evolution, intrinsics,
                arena=arena, array_class_prefix=options.array_class_prefix,
                is_write=inst in written))

    return accesses


def analyze_kernel(function, options=None, intrinsics=None,
        setup_evolution=None):
    """Find the arrays accessed by the kernel *function* and how their
    dimensions are indexed.

    :arg setup_evolution: if given, called as ``setup_evolution(function,
        evolution, loop_info)`` before the analysis starts, e.g. to supply
        evolution facts through
        :meth:`~delinear.evolution.ScalarEvolution.set_evolution`.
    :returns: a :class:`KernelAnalysis`.
    :raises DelinearError: if the kernel cannot be analyzed.
    """
    options = make_options(options)
    if intrinsics is None:
        intrinsics = make_nvvm_intrinsic_table()

    with ProcessLogger(logger, f"{function.demangled_name}: analyze kernel"):
        loop_info = LoopInfo(function)
        evolution = ScalarEvolution(function, loop_info)
        if setup_evolution is not None:
            setup_evolution(function, evolution, loop_info)

        arena = StorageArena(function)
        accesses = _scan_accesses(
                function, loop_info, evolution, arena, intrinsics, options)

        if options.log_accesses:
            logger.info("%s\n%s", function.demangled_name,
                    "\n".join(f"\t{format_access(access)}" for access in accesses))

        slot_to_arg = build_slot_to_argument_map(function, arena)
        read_set = get_array_slot_set(function, arena, LoadInst)
        write_set = get_array_slot_set(function, arena, StoreInst)

        try:
            arrays = aggregate_accesses(function, accesses, arena, slot_to_arg,
                    read_set, write_set,
                    silenced_warnings=options.silenced_warnings)
        except DelinearError as err:
            raise KernelAnalysisError(function, err,
                    array=getattr(err, "array", None)) from err

    return KernelAnalysis(function, accesses, arrays)


def publish_kernel(result, sinks):
    """Report the arrays of the :class:`KernelAnalysis` *result* to each of
    *sinks*.
    """
    kernel = result.kernel
    for sink in sinks:
        sink.reset(kernel)

        for record in result.arrays:
            sink.set_array_info(kernel, record.arg_index, record.num_dims,
                    record.is_read, record.is_written)

            for dim, mask in enumerate(record.grid_masks):
                for axis in mask.axes():
                    sink.set_array_dim_info(
                            kernel, record.arg_index, dim, axis.index)

# }}}


def analyze_module(module, sinks=(), options=None, setup_evolution=None):
    """Analyze every kernel defined in *module* and publish the results of
    each one to *sinks* once it is complete.

    A kernel that fails to be analyzed is logged and skipped, unless
    :attr:`~delinear.options.Options.fail_fast` is set, in which case the
    error propagates.

    :returns: a :class:`ModuleAnalysis`.
    """
    options = make_options(options)
    intrinsics = make_nvvm_intrinsic_table()

    kernels = []
    failures = []

    for function in module:
        if function.is_declaration:
            continue
        if not is_kernel_name(function.demangled_name):
            logger.debug("%s: not a kernel", function.demangled_name)
            continue

        try:
            result = analyze_kernel(function, options, intrinsics=intrinsics,
                    setup_evolution=setup_evolution)
        except KernelAnalysisError as err:
            if options.fail_fast:
                raise
            error = err
        except DelinearError as err:
            error = KernelAnalysisError(function, err)
            if options.fail_fast:
                raise error from err
        else:
            kernels.append(result)
            publish_kernel(result, sinks)
            continue

        logger.error("skipping kernel: %s", error)
        failures.append(error)

    return ModuleAnalysis(kernels, failures)


# vim: foldmethod=marker
