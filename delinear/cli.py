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
import os
import sys

import numpy as np

import delinear as dl
import delinear.ir as ir
from delinear.driver import ArrayInfoSink, analyze_module
from delinear.options import make_options


OPTIONS_ENV_VAR = "DELINEAR_OPTIONS"


# {{{ report sink

class ReportSink(ArrayInfoSink):
    """Collects the published facts into a human-readable report."""

    def __init__(self, options):
        self.options = options
        self.lines = []
        self._arrays = {}

    def _flush(self):
        fore = self.options._fore
        style = self.options._style
        for arg_index, (name, info, dims) in self._arrays.items():
            num_dims, is_read, is_written = info
            flags = "".join([
                "r" if is_read else "-",
                "w" if is_written else "-"])
            self.lines.append(
                    f"  {fore.GREEN}arg {arg_index}{style.RESET_ALL} "
                    f"({name}): {num_dims} dimension(s), {flags}")
            for dim in range(num_dims):
                axes = "".join("xyz"[axis] for axis in dims.get(dim, []))
                self.lines.append(f"    dim {dim}: {axes or '-'}")
        self._arrays = {}

    def reset(self, kernel):
        self._flush()
        fore = self.options._fore
        style = self.options._style
        self.lines.append(
                f"{fore.CYAN}{kernel.demangled_name}{style.RESET_ALL}")

    def set_array_info(self, kernel, arg_index, num_dims, is_read, is_written):
        name = kernel.arguments[arg_index].name
        self._arrays[arg_index] = (
                name, (num_dims, is_read, is_written), {})

    def set_array_dim_info(self, kernel, arg_index, dim, grid_dim):
        _, _, dims = self._arrays[arg_index]
        dims.setdefault(dim, []).append(grid_dim)

    def get_report(self):
        self._flush()
        return "\n".join(self.lines) + "\n"

# }}}


def main():
    from argparse import ArgumentParser

    parser = ArgumentParser(
            description="Find the grid axes driving each dimension of the "
            "arrays accessed by GPU kernels")

    parser.add_argument("infile", metavar="INPUT_FILE",
            help="Python file binding 'module' to a delinear.ir.Module")
    parser.add_argument("outfile", default="-", metavar="OUTPUT_FILE",
            help="Defaults to stdout ('-').", nargs="?")
    parser.add_argument("--fail-fast", action="store_true",
            help="Stop at the first kernel that cannot be analyzed")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    parser.add_argument("--options", metavar="OPTIONS",
            help="Comma-separated list of name=value options")
    args = parser.parse_args()

    logging.basicConfig(
            level={0: logging.WARNING, 1: logging.INFO}.get(
                args.verbose, logging.DEBUG),
            format="%(levelname)s %(name)s: %(message)s")

    options_str = ",".join(
            s for s in [os.environ.get(OPTIONS_ENV_VAR), args.options] if s)
    options = make_options(options_str or None)
    if args.fail_fast:
        options = options.copy(fail_fast=True)

    # {{{ read input

    if args.infile == "-":
        infile_content = sys.stdin.read()
        infile_name = "<stdin>"
    else:
        with open(args.infile) as infile_fd:
            infile_content = infile_fd.read()
        infile_name = args.infile

        from os.path import abspath, dirname
        infile_dirname = dirname(args.infile)
        sys.path.append(abspath(infile_dirname) if infile_dirname else os.getcwd())

    data_dic = {}
    data_dic["dl"] = dl
    data_dic["ir"] = ir
    data_dic["np"] = np

    exec(compile(infile_content, infile_name, "exec"), data_dic)

    try:
        module = data_dic["module"]
    except KeyError:
        raise RuntimeError("input requires 'module' "
                "to be defined on exit") from None

    # }}}

    sink = ReportSink(options)
    result = analyze_module(module, [sink], options,
            setup_evolution=data_dic.get("evolution_overrides"))

    report = sink.get_report()
    for failure in result.failures:
        report += f"{options._fore.RED}skipped:{options._style.RESET_ALL} " \
                f"{failure}\n"

    if args.outfile == "-":
        sys.stdout.write(report)
    else:
        with open(args.outfile, "w") as outfile_fd:
            outfile_fd.write(report)

    if result.failures:
        sys.exit(1)


if __name__ == "__main__":
    main()

# vim: foldmethod=marker
