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


from pytools import ImmutableRecord
import re
import os


ALLOW_TERMINAL_COLORS = True

DEFAULT_ARRAY_CLASS_PREFIX = "cudarrays::dynarray"


class _ColoramaStub:
    def __getattribute__(self, name):
        return ""


class Options(ImmutableRecord):
    """
    Unless otherwise specified, these options are Boolean-valued
    (i.e. on/off).

    .. rubric:: Analysis options

    .. attribute:: fail_fast

        Abort the whole run on the first kernel that cannot be analyzed,
        instead of logging the failure and moving on to the next kernel.

    .. attribute:: array_class_prefix

        A :class:`str`. Demangled name prefix identifying member functions
        of the multi-dimensional array class, whose ``operator()`` is the
        element accessor and whose ``get_dim`` returns an extent.
        Defaults to ``cudarrays::dynarray``.

    .. attribute:: silenced_warnings

        A list of warning ids (:mod:`fnmatch` patterns allowed) not to
        emit.

    .. rubric:: Output options

    .. attribute:: log_accesses

        Log the per-kernel listing of access sites and their formulas at
        ``INFO`` level. Defaults to *True*.

    .. attribute:: allow_terminal_colors

        A :class:`bool`. Whether to allow colors in terminal output
    """

    def __init__(
            # All Boolean flags in here should default to False for the
            # string-based interface of make_options (below) to make sense.
            self, **kwargs):

        try:
            import colorama  # noqa
        except ImportError:
            allow_terminal_colors_def = False
        else:
            allow_terminal_colors_def = True

        allow_terminal_colors_def = (
                ALLOW_TERMINAL_COLORS
                and allow_terminal_colors_def
                # https://no-color.org/
                and "NO_COLOR" not in os.environ)

        silenced_warnings = kwargs.get("silenced_warnings", [])
        if isinstance(silenced_warnings, str):
            silenced_warnings = silenced_warnings.split(";")

        ImmutableRecord.__init__(
                self,

                fail_fast=kwargs.get("fail_fast", False),
                array_class_prefix=kwargs.get("array_class_prefix",
                    DEFAULT_ARRAY_CLASS_PREFIX),
                silenced_warnings=list(silenced_warnings),
                log_accesses=kwargs.get("log_accesses", True),
                allow_terminal_colors=kwargs.get("allow_terminal_colors",
                    allow_terminal_colors_def),
                )

    @property
    def _fore(self):
        if self.allow_terminal_colors:
            import colorama
            return colorama.Fore
        else:
            return _ColoramaStub()

    @property
    def _style(self):
        if self.allow_terminal_colors:
            import colorama
            return colorama.Style
        else:
            return _ColoramaStub()


KEY_VAL_RE = re.compile("^([a-zA-Z0-9_]+)=(.*)$")


def make_options(options_arg):
    """Build :class:`Options` from *None*, a :class:`dict`, an
    :class:`Options` instance, or a string such as
    ``"fail_fast,log_accesses=0"``.
    """
    if options_arg is None:
        return Options()
    elif isinstance(options_arg, str):
        ioptions_args = {}
        for key_val in options_arg.split(","):
            if not key_val:
                continue

            kv_match = KEY_VAL_RE.match(key_val)
            if kv_match is not None:
                key = kv_match.group(1)
                val = kv_match.group(2)
                try:
                    val = int(val)
                except ValueError:
                    pass

                ioptions_args[key] = val
            else:
                ioptions_args[key_val] = True

        return Options(**ioptions_args)
    elif isinstance(options_arg, Options):
        return options_arg
    elif isinstance(options_arg, dict):
        return Options(**options_arg)
    else:
        raise TypeError("invalid argument to make_options")
