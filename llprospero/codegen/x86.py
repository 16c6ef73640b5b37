"""Generate x86-64 AVX assembly for memoized programs."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, TextIO, Union

from ..ir import BinOp, BinOpInst, LoadInst, Location, UnOp, UnOpInst, Var, VarSet
from ..memoize import Memoized, MemoizedFunc
from .regalloc import Config, MemorySpace, Register, Registers, Target, Allocation

STRIDE = 4
_REGISTERS = 16
_MEMORY_SPACES = (
    "(%rsp)",
    "+consts(%rip)",
    "(%rdi)",
    "(%rsi)",
    "(%rdx)",
    "(%rcx)",
    "(%r8)",
    "(%r9)",
    "(%r10)",
)
_CONSTS = MemorySpace.for_vars(VarSet())


@dataclass(frozen=True)
class X86Config:
    """Code generator settings."""

    vectorize: bool = True
    """Process several points at once with SIMD instructions."""
    regalloc: Config = field(default_factory=Config)


class _RmROp(enum.Enum):
    VADDPS = "vaddps"
    VSUBPS = "vsubps"
    VMULPS = "vmulps"
    VMINPS = "vminps"
    VMAXPS = "vmaxps"
    VXORPS = "vxorps"


class _UnaryOp(enum.Enum):
    VBROADCASTSS = "vbroadcastss"
    VMOVAPS = "vmovaps"
    VSQRTPS = "vsqrtps"


class _StoreOp(enum.Enum):
    VMOVAPS = "vmovaps"
    VMOVD = "vmovd"


_BINOP_OPCODES = {
    BinOp.ADD: _RmROp.VADDPS,
    BinOp.SUB: _RmROp.VSUBPS,
    BinOp.MUL: _RmROp.VMULPS,
    BinOp.MIN: _RmROp.VMINPS,
    BinOp.MAX: _RmROp.VMAXPS,
}


@dataclass(frozen=True)
class _Xmm:
    reg: Register

    def __str__(self) -> str:
        return f"%xmm{self.reg}"


@dataclass(frozen=True)
class _Address:
    mem: MemorySpace
    loc: Location
    stride: int

    def __str__(self) -> str:
        space = _MEMORY_SPACES[self.mem.idx]
        if self.loc > 0:
            return f"{self.loc * self.stride * 4:#x}{space}"
        return space


_Operand = Union[_Xmm, _Address]


@dataclass
class _RmR:
    op: _RmROp
    src1: _Xmm
    src2: _Operand
    dst: _Xmm

    def __str__(self) -> str:
        return f"{self.op.value} {self.src2},{self.src1},{self.dst}"


@dataclass
class _Unary:
    op: _UnaryOp
    src: _Operand
    dst: _Xmm

    def __str__(self) -> str:
        return f"{self.op.value} {self.src},{self.dst}"


@dataclass
class _Store:
    op: _StoreOp
    src: _Xmm
    dst: _Address

    def __str__(self) -> str:
        return f"{self.op.value} {self.src},{self.dst}"


_Inst = Union[_RmR, _Unary, _Store]


class _X86Target(Target):
    """Collects instructions in reverse order; ``None`` marks a sunk-load slot."""

    def __init__(self, vectors: Iterable[VarSet]) -> None:
        mask = 0
        for vars in vectors:
            mask |= (1 << MemorySpace.for_vars(vars).idx) | 0b11
        self.vectors = mask
        self.stride = STRIDE if mask else 1
        self.insts: list[_Inst | None] = []

    def is_vector(self, mem: MemorySpace) -> bool:
        return bool(self.vectors & (1 << mem.idx))

    def emit_load(self, reg: Register, mem: MemorySpace, loc: Location) -> None:
        op = _UnaryOp.VMOVAPS if self.is_vector(mem) else _UnaryOp.VBROADCASTSS
        self.insts.append(_Unary(op, _Address(mem, loc, self.stride), _Xmm(reg)))

    def emit_store(self, reg: Register, mem: MemorySpace, loc: Location) -> None:
        op = _StoreOp.VMOVAPS if self.is_vector(mem) else _StoreOp.VMOVD
        self.insts.append(_Store(op, _Xmm(reg), _Address(mem, loc, self.stride)))

    def patch_sunk_load(
        self,
        patch_at: int,
        reg: Register,
        other: tuple[MemorySpace, Location] | None,
    ) -> None:
        if other is not None:
            self.emit_load(reg, *other)
            # Move the new load into the placeholder's slot.
            self.insts[patch_at] = self.insts.pop()
        user = self.insts[patch_at + 1]
        if isinstance(user, _RmR):
            user.src2 = _Xmm(reg)
        elif isinstance(user, _Unary):
            user.src = _Xmm(reg)
        else:
            raise AssertionError("sunk load does not feed an arithmetic instruction")


def _sink_load(regs: Registers[_X86Target], arg: int) -> _Operand:
    target = regs.target
    address = regs.address_of(arg)
    if (
        address is not None
        and target.is_vector(address[0])
        and regs.sink_load(arg, len(target.insts))
    ):
        target.insts.append(None)
        return _Address(address[0], address[1], target.stride)
    return _Xmm(regs.get_reg(arg))


def _emit(
    config: Config,
    neg_const: Location,
    func: MemoizedFunc,
    vectors: Iterable[VarSet],
) -> tuple[_X86Target, Location]:
    allocs: list[Allocation] = []
    for inst in func.insts:
        alloc = Allocation()
        if isinstance(inst, LoadInst):
            alloc.initial_location(MemorySpace.for_vars(inst.vars), inst.loc)
        allocs.append(alloc)

    output_space = MemorySpace.for_vars(func.vars)
    for loc, idx in enumerate(func.outputs):
        if idx is not None:
            allocs[idx].initial_location(output_space, loc)

    neg_alloc = len(allocs)
    sign = Allocation()
    sign.initial_location(_CONSTS, neg_const)
    allocs.append(sign)

    regs = Registers(config, allocs, _REGISTERS, _X86Target(vectors))

    for idx, inst in reversed(list(enumerate(func.insts))):
        match inst:
            case UnOpInst(op=op, arg=arg):
                dst = _Xmm(regs.get_output_reg(idx))
                if op is UnOp.NEG:
                    sign_operand = _sink_load(regs, neg_alloc)
                    src = _Xmm(regs.get_reg(arg))
                    new: _Inst = _RmR(_RmROp.VXORPS, src, sign_operand, dst)
                elif op is UnOp.SQUARE:
                    src = _Xmm(regs.get_reg(arg))
                    new = _RmR(_RmROp.VMULPS, src, src, dst)
                else:
                    new = _Unary(_UnaryOp.VSQRTPS, _sink_load(regs, arg), dst)
                regs.target.insts.append(new)
            case BinOpInst(op=op, args_=(a, b)):
                # Operands must be allocated in this order: nothing may call
                # get_reg between sink_load and get_output_reg.
                dst = _Xmm(regs.get_output_reg(idx))
                src2 = _sink_load(regs, b)
                src1 = _Xmm(regs.get_reg(a))
                regs.target.insts.append(_RmR(_BINOP_OPCODES[op], src1, src2, dst))
            case LoadInst(vars=vars, loc=loc):
                regs.emit_load(idx, MemorySpace.for_vars(vars), loc)
            case _:
                raise ValueError(f"{inst!r} is not allowed in memoized functions")

    regs.emit_load(neg_alloc, _CONSTS, neg_const)
    return regs.finish()


def _write_func(
    out: TextIO,
    config: Config,
    neg_const: Location,
    func: MemoizedFunc,
    vectors: Iterable[VarSet],
) -> None:
    target, stack_slots = _emit(config, neg_const, func, vectors)

    frame_size = stack_slots * target.stride * 4
    if frame_size > 0:
        out.write("pushq %rbp\n")
        out.write("movq %rsp,%rbp\n")
        out.write(f"sub ${frame_size:#x},%rsp\n")

    for inst in reversed(target.insts):
        if inst is not None:
            out.write(f"{inst}\n")

    if frame_size > 0:
        out.write("movq %rbp,%rsp\n")
        out.write("pop %rbp\n")
    out.write("ret\n")


def write(out: TextIO, config: X86Config, memoized: Memoized) -> None:
    """Write assembly for every function of ``memoized`` to ``out``."""
    stride = STRIDE if config.vectorize else 1

    out.write(
        "# compile with: gcc -Wall -g -O2 -o <output> examples/x86-harness.c <output>.s\n"
    )
    out.write(".section .rodata\n")
    out.write(f".align {4 * stride}\n")
    out.write("consts:\n")
    for idx, value in enumerate(memoized.consts):
        out.write(f".L{idx}:")
        for _ in range(stride):
            out.write(f" .long {value.bits:#08x}\n")

    # Only the sign bit set, for negation.
    neg_const = len(memoized.consts)
    for _ in range(stride):
        out.write(f".long {1 << 31:#08x}\n")

    out.write(".globl stride\n")
    out.write(f"stride: .short {stride}\n")

    for func in memoized.funcs:
        out.write("\n")
        out.write(".section .rodata\n")
        out.write(f".globl {func.vars}_size\n")
        out.write(f"{func.vars}_size:\n")
        out.write(f".short {len(func.outputs)}\n")

        out.write("\n")
        out.write(".text\n")
        out.write(".p2align 4\n")
        out.write(f".globl {func.vars}\n")
        out.write(f"{func.vars}:\n")
        vectors = (func.vars, VarSet.of(Var.X)) if config.vectorize else ()
        _write_func(out, config.regalloc, neg_const, func, vectors)