"""Core intermediate representation: constants, operators, instructions and sinks."""

from __future__ import annotations

import abc
import enum
import math
import struct
from dataclasses import dataclass
from typing import ClassVar, Iterator

# Instruction indices must fit in sixteen bits with one value left unused.
MAX_INSTS = 0xFFFF

Location = int


def _f32_bits(value: float) -> int:
    return struct.unpack("<I", struct.pack("<f", value))[0]


@dataclass(frozen=True, order=True, repr=False)
class Const:
    """A finite single-precision constant, stored as its bit pattern."""

    bits: int = 0

    @classmethod
    def from_float(cls, value: float) -> Const:
        """Round ``value`` to single precision; it must stay finite."""
        if not math.isfinite(value):
            raise ValueError(f"constant must be finite, got {value!r}")
        try:
            return cls(_f32_bits(value))
        except OverflowError as exc:
            raise ValueError(f"constant {value!r} is out of range") from exc

    def value(self) -> float:
        """The constant as a Python float."""
        return struct.unpack("<f", struct.pack("<I", self.bits))[0]

    def __str__(self) -> str:
        value = self.value()
        if value == 0.0:
            return "-0" if self.bits >> 31 else "0"
        for precision in range(1, 12):
            text = f"{value:.{precision - 1}e}"
            if _f32_bits(float(text)) == self.bits:
                break
        mantissa, exponent = text.split("e")
        sign = "-" if mantissa.startswith("-") else ""
        digits = mantissa.lstrip("-").replace(".", "").rstrip("0") or "0"
        point = int(exponent) + 1
        if point <= 0:
            body = "0." + "0" * -point + digits
        elif point >= len(digits):
            body = digits + "0" * (point - len(digits))
        else:
            body = digits[:point] + "." + digits[point:]
        return sign + body

    def __repr__(self) -> str:
        return f"Const({self})"


class UnOp(enum.Enum):
    """Unary operators; the value is the textual name."""

    NEG = "neg"
    SQUARE = "square"
    SQRT = "sqrt"


class BinOp(enum.Enum):
    """Binary operators; the value is the textual name."""

    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    MIN = "min"
    MAX = "max"

    def is_commutative(self) -> bool:
        return self is not BinOp.SUB


class Var(enum.IntEnum):
    """Input variables."""

    X = 0
    Y = 1
    Z = 2

    @property
    def letter(self) -> str:
        return "xyz"[self]


@dataclass(frozen=True, order=True)
class VarSet:
    """A set of variables, stored as a bit mask."""

    bits: int = 0

    ALL: ClassVar[VarSet]

    @classmethod
    def of(cls, var: Var) -> VarSet:
        return cls(1 << int(var))

    def __iter__(self) -> Iterator[Var]:
        return (var for var in Var if self.bits & (1 << int(var)))

    def __or__(self, other: VarSet) -> VarSet:
        return VarSet(self.bits | other.bits)

    def __str__(self) -> str:
        return "".join(var.letter for var in self) or "const"


VarSet.ALL = VarSet(0b111)


class Inst:
    """Base class of all instructions."""

    def args(self) -> tuple[int, ...]:
        """Indices of the instructions this one reads."""
        return ()

    def with_args(self, args: tuple[int, ...]) -> Inst:
        """A copy of this instruction reading from ``args`` instead."""
        return self


@dataclass(frozen=True)
class ConstInst(Inst):
    value: Const


@dataclass(frozen=True)
class VarInst(Inst):
    var: Var


@dataclass(frozen=True)
class UnOpInst(Inst):
    op: UnOp
    arg: int

    def args(self) -> tuple[int, ...]:
        return (self.arg,)

    def with_args(self, args: tuple[int, ...]) -> Inst:
        (arg,) = args
        return UnOpInst(self.op, arg)


@dataclass(frozen=True)
class BinOpInst(Inst):
    op: BinOp
    args_: tuple[int, int]

    def args(self) -> tuple[int, ...]:
        return self.args_

    def with_args(self, args: tuple[int, ...]) -> Inst:
        a, b = args
        return BinOpInst(self.op, (a, b))


@dataclass(frozen=True)
class LoadInst(Inst):
    vars: VarSet
    loc: Location


class InstSink(abc.ABC):
    """Receives instructions one by one and builds some output from them."""

    @abc.abstractmethod
    def push_const(self, value: Const): ...

    @abc.abstractmethod
    def push_var(self, var: Var): ...

    @abc.abstractmethod
    def push_unop(self, op: UnOp, arg): ...

    @abc.abstractmethod
    def push_binop(self, op: BinOp, args): ...

    @abc.abstractmethod
    def push_load(self, vars: VarSet, loc: Location): ...

    @abc.abstractmethod
    def finish(self, last): ...


class Insts(InstSink):
    """A flat list of instructions in definition order."""

    def __init__(self, pool: list[Inst] | None = None) -> None:
        self.pool: list[Inst] = list(pool) if pool is not None else []

    def _push(self, inst: Inst) -> int:
        if len(self.pool) >= MAX_INSTS:
            raise OverflowError("too many instructions")
        self.pool.append(inst)
        return len(self.pool) - 1

    def push_const(self, value: Const) -> int:
        return self._push(ConstInst(value))

    def push_var(self, var: Var) -> int:
        return self._push(VarInst(var))

    def push_unop(self, op: UnOp, arg: int) -> int:
        return self._push(UnOpInst(op, arg))

    def push_binop(self, op: BinOp, args) -> int:
        a, b = args
        return self._push(BinOpInst(op, (a, b)))

    def push_load(self, vars: VarSet, loc: Location) -> int:
        return self._push(LoadInst(vars, loc))

    def finish(self, last: int) -> Insts:
        return self