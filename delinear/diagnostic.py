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

from contextlib import contextmanager


# {{{ warnings

class DelinearWarningBase(UserWarning):
    pass


class DelinearWarning(DelinearWarningBase):
    pass


class UnmappedArrayWarning(DelinearWarning):
    pass

# }}}


def warn_with_function(function, id, text, type=DelinearWarning,
        silenced_warnings=(), stacklevel=None):
    from fnmatch import fnmatchcase
    for sw in silenced_warnings:
        if fnmatchcase(id, sw):
            return

    text += (" (add '%s' to the silenced_warnings option to disable)"
            % id)

    if stacklevel is None:
        stacklevel = 2
    else:
        stacklevel = stacklevel + 1
    from warnings import warn
    warn(f"in function {function.demangled_name}: {text}", type,
            stacklevel=stacklevel)


# {{{ errors

class DelinearError(RuntimeError):
    pass


class UnsupportedExpressionError(DelinearError):
    """Raised when a value or evolution expression has a shape the formula
    builders do not know how to render.

    .. attribute:: kind

        A :class:`str` naming the kind of expression that was encountered.

    .. attribute:: location

        The offending IR value or evolution expression.

    .. attribute:: fragments

        The partial formulas of the enclosing expressions, innermost first.
    """

    def __init__(self, kind, location=None, detail=None):
        self.kind = kind
        self.location = location
        self.detail = detail
        self.fragments = []

        msg = f"unsupported {kind}"
        if detail is not None:
            msg += f" ({detail})"
        if location is not None:
            msg += f": {location}"
        super().__init__(msg)

    @property
    def formula_so_far(self):
        """The text of the whole formula up to the point of failure."""
        return "".join(reversed(self.fragments))

    def __str__(self):
        result = super().__str__()
        if self.fragments:
            result += f" [formula so far: '{self.formula_so_far}']"
        return result


class UnresolvableTripCountError(DelinearError):
    def __init__(self, loop, reason):
        self.loop = loop
        self.reason = reason
        super().__init__(f"cannot bound loop headed by '{loop.header.name}': "
                f"{reason}")


class InconsistentDimensionCountError(DelinearError):
    """
    .. attribute:: array
    .. attribute:: site_a
    .. attribute:: site_b

        The two :class:`delinear.access.ArrayAccess` instances that disagree.
    """

    def __init__(self, array, site_a, site_b):
        self.array = array
        self.site_a = site_a
        self.site_b = site_b
        super().__init__(
                f"array '{array}' accessed with {site_a.num_dims} dimension(s) "
                f"at {site_a.call} and with {site_b.num_dims} at {site_b.call}")


class KernelAnalysisError(DelinearError):
    """Wraps an error raised while analyzing one kernel, recording where
    it happened.
    """

    def __init__(self, kernel, cause, array=None, site=None, dimension=None):
        self.kernel = kernel
        self.cause = cause
        self.array = array
        self.site = site
        self.dimension = dimension

        where = [f"kernel '{kernel.demangled_name}'"]
        if array is not None:
            where.append(f"array '{array}'")
        if site is not None:
            where.append(f"site {site}")
        if dimension is not None:
            where.append(f"dimension {dimension}")

        super().__init__(", ".join(where) + f": {cause}")


@contextmanager
def partial_formula(parts):
    """Record the formula text accumulated in *parts* on any
    :exc:`UnsupportedExpressionError` escaping the block.
    """
    try:
        yield parts
    except UnsupportedExpressionError as err:
        err.fragments.append("".join(parts))
        raise

# }}}


# vim: foldmethod=marker
