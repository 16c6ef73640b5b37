"""Render a program to a PBM bitmap by evaluating it at every pixel."""

from __future__ import annotations

import math
import struct
from typing import BinaryIO, Sequence

from .ir import (
    BinOp,
    BinOpInst,
    ConstInst,
    Inst,
    Insts,
    LoadInst,
    UnOp,
    UnOpInst,
    VarInst,
)

_NEGATIVE_NAN = math.copysign(math.nan, -1.0)


def _f32(value: float) -> float:
    """Round a float to single precision."""
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _min(a: float, b: float) -> float:
    if math.isnan(a):
        return b
    if math.isnan(b):
        return a
    return min(a, b)


def _max(a: float, b: float) -> float:
    if math.isnan(a):
        return b
    if math.isnan(b):
        return a
    return max(a, b)


def _sqrt(value: float) -> float:
    if value < 0:
        return _NEGATIVE_NAN
    return _f32(math.sqrt(value))


def _unop(op: UnOp, arg: float) -> float:
    if op is UnOp.NEG:
        return -arg
    if op is UnOp.SQUARE:
        return _f32(arg * arg)
    return _sqrt(arg)


def _binop(op: BinOp, a: float, b: float) -> float:
    if op is BinOp.ADD:
        return _f32(a + b)
    if op is BinOp.SUB:
        return _f32(a - b)
    if op is BinOp.MUL:
        return _f32(a * b)
    if op is BinOp.MIN:
        return _min(a, b)
    return _max(a, b)


def _evaluate(pool: Sequence[Inst], coords: Sequence[float]) -> float:
    regs: list[float] = []
    for inst in pool:
        match inst:
            case ConstInst(value=value):
                regs.append(value.value())
            case VarInst(var=var):
                regs.append(coords[var])
            case UnOpInst(op=op, arg=arg):
                regs.append(_unop(op, regs[arg]))
            case BinOpInst(op=op, args_=(a, b)):
                regs.append(_binop(op, regs[a], regs[b]))
    return regs[-1]


def interp(out: BinaryIO, insts: Insts, size: int) -> None:
    """Write a ``size`` by ``size`` binary PBM image of where the program is non-negative."""
    if not 1 <= size <= 0xFFFF:
        raise ValueError(f"image size must be between 1 and 65535, got {size}")
    pool = insts.pool
    if not pool:
        raise ValueError("cannot render an empty program")
    if any(isinstance(inst, LoadInst) for inst in pool):
        raise ValueError("load instructions cannot be interpreted")

    out.write(f"P4 {size} {size}\n".encode("ascii"))

    scale = _f32(2.0 / (size - 1)) if size > 1 else math.inf
    coordinate = [_f32(_f32(i * scale) - 1.0) for i in range(size)]
    row = bytearray((size + 7) // 8)

    for y in reversed(range(size)):
        for x in range(size):
            result = _evaluate(pool, (coordinate[x], coordinate[y], 0.0))
            if math.copysign(1.0, result) > 0:
                row[x >> 3] |= 0x80 >> (x & 7)
        out.write(bytes(row))
        row[:] = bytes(len(row))