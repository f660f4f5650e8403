import delinear.ir as ir
from delinear.ir import const


# {{{ array class

def dynarray_type(ndim):
    return ir.StructType(f"class.cudarrays::dynarray<float, {ndim}u>",
            (ir.PointerType(ir.float32),) + (ir.int32,) * ndim)


def get_accessor(module, ndim, does_not_return=False):
    idx_types = ", ".join(["unsigned int"] * ndim)
    return module.get_or_insert_function(
            f"_ZN9cudarrays8dynarrayIfLj{ndim}EEclE" + "j" * ndim,
            ir.PointerType(ir.float32),
            [("this", ir.PointerType(dynarray_type(ndim)))]
            + [(f"i{i}", ir.int32) for i in range(ndim)],
            demangled_name=(
                f"cudarrays::dynarray<float, {ndim}u>::operator()({idx_types})"),
            does_not_return=does_not_return)


def get_dim_accessor(module, ndim):
    return module.get_or_insert_function(
            f"_ZNK9cudarrays8dynarrayIfLj{ndim}EE7get_dimEj",
            ir.int32,
            [("this", ir.PointerType(dynarray_type(ndim))), ("dim", ir.int32)],
            demangled_name=(
                f"cudarrays::dynarray<float, {ndim}u>::get_dim(unsigned int) "
                "const"))


def get_register(module, reg, axis):
    return module.get_or_insert_function(
            f"llvm.nvvm.read.ptx.sreg.{reg}.{axis}", ir.int32)

# }}}


# {{{ kernel fixture

class KernelFixture:
    """A kernel taking multi-dimensional arrays by value. Each array is copied
    into a stack slot in the entry block; :meth:`access` calls the element
    accessor on that slot.
    """

    def __init__(self, name="copy_kernel", arrays=(("A", 2),), scalars=(),
            module=None):
        if module is None:
            module = ir.Module("test")
        self.module = module

        args = ([(arr_name, dynarray_type(ndim)) for arr_name, ndim in arrays]
                + list(scalars))
        demangled = "{}({})".format(name, ", ".join(
            f"cudarrays::dynarray<float, {ndim}u>" for _, ndim in arrays))
        self.kernel = module.add_function(ir.Function(
            f"_Z{len(name)}{name}v", ir.void, args, demangled_name=demangled))

        self.entry = self.kernel.append_basic_block("entry")
        self.b = ir.IRBuilder(self.entry)

        self.ndims = dict(arrays)
        self.slots = {}
        for arg in self.kernel.arguments:
            if arg.name in self.ndims:
                slot = self.b.alloca(arg.type, f"{arg.name}.addr")
                self.b.store(arg, slot)
                self.slots[arg.name] = slot

        self._loops = []

    def arg(self, name):
        for arg in self.kernel.arguments:
            if arg.name == name:
                return arg
        raise KeyError(name)

    # {{{ grid registers

    def tid(self, axis):
        return self.b.call(get_register(self.module, "tid", axis), [],
                f"tid.{axis}")

    def ctaid(self, axis):
        return self.b.call(get_register(self.module, "ctaid", axis), [],
                f"ctaid.{axis}")

    def ntid(self, axis):
        return self.b.call(get_register(self.module, "ntid", axis), [],
                f"ntid.{axis}")

    # }}}

    # {{{ array accesses

    def access(self, array, *indices, name=""):
        accessor = get_accessor(self.module, self.ndims[array])
        return self.b.call(accessor, [self.slots[array], *indices], name)

    def read(self, array, *indices, name=""):
        return self.b.load(self.access(array, *indices), name)

    def write(self, value, array, *indices):
        return self.b.store(value, self.access(array, *indices))

    def get_dim(self, array, dim):
        accessor = get_dim_accessor(self.module, self.ndims[array])
        return self.b.call(accessor, [self.slots[array], dim])

    # }}}

    # {{{ loops

    def begin_loop(self, bound, start=0, name="i"):
        """Open a rotated counted loop and return its induction variable.
        Code built until :meth:`end_loop` forms the loop body.
        """
        preheader = self.b.block
        header = self.kernel.append_basic_block(f"{name}.header")
        self.b.br(header)
        self.b.position_at_end(header)

        iv = self.b.phi(ir.int32, name)
        if isinstance(start, int):
            start = const(start)
        iv.add_incoming(start, preheader)

        self._loops.append((iv, header, bound))
        return iv

    def end_loop(self, predicate="slt", step=1):
        iv, header, bound = self._loops.pop()

        iv_next = self.b.add(iv, const(step), f"{iv.name}.next")
        cmp = self.b.icmp(predicate, iv_next, bound, f"{iv.name}.cmp")
        latch = self.b.block
        exit_block = self.kernel.append_basic_block(f"{iv.name}.exit")
        self.b.cond_br(cmp, header, exit_block)
        iv.add_incoming(iv_next, latch)

        self.b.position_at_end(exit_block)
        return iv_next

    # }}}

    def finish(self):
        self.b.ret()
        return self.kernel

# }}}


# vim: foldmethod=marker
