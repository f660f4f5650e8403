"""Natural loop discovery."""

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

from pytools import memoize_method
from pytools.graph import get_reachable_nodes, reverse_graph

from delinear.ir import Instruction


logger = logging.getLogger(__name__)


__doc__ = """
.. autoclass:: Loop
.. autoclass:: LoopInfo
.. autofunction:: get_control_flow_graph
.. autofunction:: compute_dominators
"""


# {{{ dominators

def get_control_flow_graph(function):
    """Return a :class:`dict` mapping each block of *function* to the
    :class:`frozenset` of its successors.
    """
    return {bb: frozenset(bb.successors) for bb in function.blocks}


def compute_dominators(function):
    """Return a :class:`dict` mapping each block reachable from the entry of
    *function* to the :class:`frozenset` of blocks dominating it.
    """
    if function.is_declaration:
        return {}

    entry = function.entry_block
    seen = get_reachable_nodes(get_control_flow_graph(function), entry)

    # keep program order for determinism
    reachable = [bb for bb in function.blocks if bb in seen]
    preds = {bb: [p for p in function.predecessors(bb) if p in seen]
            for bb in reachable}

    all_blocks = frozenset(reachable)
    dom = {bb: all_blocks for bb in reachable}
    dom[entry] = frozenset([entry])

    changed = True
    while changed:
        changed = False
        for bb in reachable:
            if bb is entry:
                continue
            new_dom = all_blocks
            for pred in preds[bb]:
                new_dom = new_dom & dom[pred]
            new_dom = new_dom | {bb}
            if new_dom != dom[bb]:
                dom[bb] = new_dom
                changed = True

    return dom

# }}}


# {{{ loops

class Loop:
    """A natural loop.

    .. attribute:: header
    .. attribute:: blocks

        Blocks of the loop in function order, including those of subloops.

    .. attribute:: parent

        The enclosing :class:`Loop`, or *None*.

    .. attribute:: subloops
    """

    def __init__(self, header, blocks, latches):
        self.header = header
        self.blocks = blocks
        self._block_set = frozenset(blocks)
        self.latches = latches
        self.parent = None
        self.subloops = []

    @property
    def depth(self):
        """Nesting depth, 1 for outermost loops."""
        result = 1
        loop = self.parent
        while loop is not None:
            result += 1
            loop = loop.parent
        return result

    @property
    def latch(self):
        """The single block branching back to :attr:`header`, or *None* if
        there are several.
        """
        if len(self.latches) != 1:
            return None
        return self.latches[0]

    def contains(self, block_or_loop):
        if isinstance(block_or_loop, Loop):
            return block_or_loop._block_set <= self._block_set
        return block_or_loop in self._block_set

    def is_loop_invariant(self, value):
        """A value is invariant if it is not computed inside the loop."""
        if isinstance(value, Instruction):
            return not self.contains(value.parent)
        return True

    def __repr__(self):
        return f"<Loop at depth {self.depth} headed by %{self.header.name}>"


class LoopInfo:
    """The loop nest of a function.

    .. attribute:: top_level_loops

    .. automethod:: get_loop_for
    .. automethod:: __iter__
    """

    def __init__(self, function):
        self.function = function
        self.dominators = compute_dominators(function)
        self.top_level_loops = []
        self._discover()

    def _discover(self):
        dom = self.dominators
        cfg = get_control_flow_graph(self.function)
        reverse_cfg = reverse_graph(
                {bb: succs for bb, succs in cfg.items() if bb in dom})

        # {{{ find back edges, grouped by header

        back_edges = {}
        for bb in self.function.blocks:
            if bb not in dom:
                continue
            for succ in bb.successors:
                if succ in dom[bb]:
                    back_edges.setdefault(succ, []).append(bb)

        # }}}

        loops = []
        for header in self.function.blocks:
            if header not in back_edges:
                continue
            latches = back_edges[header]

            body = {header}
            for latch in latches:
                body |= get_reachable_nodes(reverse_cfg, latch,
                        exclude_nodes={header})

            blocks = [bb for bb in self.function.blocks if bb in body]
            loops.append(Loop(header, blocks, latches))

        # {{{ establish nesting: innermost enclosing loop is the smallest

        for loop in loops:
            enclosing = [other for other in loops
                    if other is not loop and other.contains(loop.header)
                    and other.contains(loop)]
            if enclosing:
                parent = min(enclosing, key=lambda lp: len(lp.blocks))
                loop.parent = parent
                parent.subloops.append(loop)
            else:
                self.top_level_loops.append(loop)

        # }}}

        self._loops = loops
        logger.debug("%s: found %d loop(s)",
                self.function.name, len(loops))

    def __iter__(self):
        """Iterate over all loops, outermost first."""
        worklist = list(reversed(self.top_level_loops))
        while worklist:
            loop = worklist.pop()
            yield loop
            worklist.extend(reversed(loop.subloops))

    @memoize_method
    def get_loop_for(self, block):
        """Return the innermost :class:`Loop` containing *block*, or *None*."""
        candidates = [loop for loop in self._loops if loop.contains(block)]
        if not candidates:
            return None
        return max(candidates, key=lambda lp: lp.depth)

# }}}

# vim: foldmethod=marker
