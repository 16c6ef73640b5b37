"""Regroup chains of associative operators by the variables their operands use."""

from __future__ import annotations

from typing import Any, Sequence

from .ir import (
    BinOp,
    BinOpInst,
    ConstInst,
    Inst,
    InstSink,
    LoadInst,
    UnOp,
    UnOpInst,
    VarInst,
    VarSet,
)

_SUBTREES = VarSet.ALL.bits + 1
_SATURATE = 0xFF


def _merge(this: Any, other: Any, op: BinOp, sink: InstSink) -> Any:
    if other is None:
        return this
    if this is None:
        return other
    return sink.push_binop(op, (this, other))


class _Subtree:
    """Positive and negated operands gathered for one variable set."""

    __slots__ = ("pos", "neg")

    def __init__(self, pos: Any = None, neg: Any = None) -> None:
        self.pos = pos
        self.neg = neg

    def copy(self) -> _Subtree:
        return _Subtree(self.pos, self.neg)

    def is_empty(self) -> bool:
        return self.pos is None and self.neg is None

    def negate(self) -> None:
        self.pos, self.neg = self.neg, self.pos

    def flush(self, op: BinOp, sink: InstSink) -> None:
        if self.pos is None or self.neg is None:
            return
        if op is BinOp.ADD:
            pos = sink.push_binop(BinOp.SUB, (self.pos, self.neg))
        elif op in (BinOp.MIN, BinOp.MAX):
            neg = sink.push_unop(UnOp.NEG, self.neg)
            pos = sink.push_binop(op, (self.pos, neg))
        else:
            raise AssertionError(f"cannot flush {op.value} subtree with both signs")
        self.pos = pos
        self.neg = None

    def merge(self, other: _Subtree, op: BinOp, sink: InstSink) -> None:
        if op is BinOp.MUL:
            negative = (self.neg is not None) != (other.neg is not None)
            self.pos = self.pos if self.pos is not None else self.neg
            self.neg = None
            operand = other.pos if other.pos is not None else other.neg
            self.pos = _merge(self.pos, operand, BinOp.MUL, sink)
            if negative:
                self.negate()
        elif op is BinOp.ADD:
            self.pos = _merge(self.pos, other.pos, BinOp.ADD, sink)
            self.neg = _merge(self.neg, other.neg, BinOp.ADD, sink)
        elif op is BinOp.MIN:
            self.pos = _merge(self.pos, other.pos, BinOp.MIN, sink)
            self.neg = _merge(self.neg, other.neg, BinOp.MAX, sink)
        elif op is BinOp.MAX:
            self.pos = _merge(self.pos, other.pos, BinOp.MAX, sink)
            self.neg = _merge(self.neg, other.neg, BinOp.MIN, sink)
        else:
            raise AssertionError("subtraction is never merged")


class _InstData:
    """A pending chain of one operator, split by variable set."""

    def __init__(self, op: BinOp | None = None, subtrees: list[_Subtree] | None = None):
        self.op = op
        self.subtrees = subtrees if subtrees is not None else [
            _Subtree() for _ in range(_SUBTREES)
        ]

    @classmethod
    def leaf(cls, vars: VarSet, idx: Any) -> _InstData:
        data = cls()
        data.subtrees[vars.bits].pos = idx
        return data

    def copy(self) -> _InstData:
        return _InstData(self.op, [subtree.copy() for subtree in self.subtrees])

    def negate(self) -> None:
        for subtree in self.subtrees:
            subtree.negate()
        if self.op is BinOp.MIN:
            self.op = BinOp.MAX
        elif self.op is BinOp.MAX:
            self.op = BinOp.MIN

    def flush(self, sink: InstSink) -> None:
        op = self.op
        if op is None:
            return
        # Largest variable set first, flushing before and after each merge:
        # this order empirically moves the most work out of per-pixel code.
        result = _Subtree()
        result_vars = VarSet()
        for bits in reversed(range(_SUBTREES)):
            subtree = self.subtrees[bits]
            if subtree.is_empty():
                continue
            subtree.flush(op, sink)
            result.merge(subtree, op, sink)
            result.flush(op, sink)
            result_vars = result_vars | VarSet(bits)
            self.subtrees[bits] = _Subtree()
        self.subtrees[result_vars.bits] = result
        self.op = None

    def flush_neg(self, sink: InstSink) -> tuple[VarSet, Any]:
        self.flush(sink)
        bits, subtree = next(
            (bits, subtree)
            for bits, subtree in enumerate(self.subtrees)
            if not subtree.is_empty()
        )
        if subtree.pos is not None:
            return VarSet(bits), subtree.pos
        return VarSet(bits), sink.push_unop(UnOp.NEG, subtree.neg)


def count_uses(insts: Sequence[Inst]) -> list[int]:
    """How often each instruction is used by live ones, saturating at 255."""
    uses = [0] * len(insts)
    if uses:
        uses[-1] = 1
    for idx in reversed(range(len(insts))):
        if uses[idx] > 0:
            for arg in insts[idx].args():
                uses[arg] = min(_SATURATE, uses[arg] + 1)
    return uses


def reassociate(insts: Sequence[Inst], sink: InstSink):
    """Feed ``insts`` to ``sink`` with sums, products, minima and maxima regrouped."""
    if not insts:
        raise ValueError("cannot reassociate an empty program")

    data: list[_InstData] = []
    for inst, uses in zip(insts, count_uses(insts)):
        match inst:
            case ConstInst(value=value):
                new = _InstData.leaf(VarSet(), sink.push_const(value))
            case VarInst(var=var):
                new = _InstData.leaf(VarSet.of(var), sink.push_var(var))
            case LoadInst(vars=vars, loc=loc):
                new = _InstData.leaf(vars, sink.push_load(vars, loc))
            case UnOpInst(op=op, arg=arg):
                operand = data[arg].copy()
                if op is UnOp.NEG:
                    operand.negate()
                    new = operand
                else:
                    vars, idx = operand.flush_neg(sink)
                    new = _InstData.leaf(vars, sink.push_unop(op, idx))
            case BinOpInst(op=op, args_=(first, second)):
                a = data[first].copy()
                b = data[second].copy()
                if op is BinOp.SUB:
                    op = BinOp.ADD
                    b.negate()
                if a.op is not op:
                    a.flush(sink)
                if b.op is not op:
                    b.flush(sink)
                for subtree_a, subtree_b in zip(a.subtrees, b.subtrees):
                    subtree_a.merge(subtree_b, op, sink)
                a.op = op
                new = a
            case _:
                raise TypeError(f"unknown instruction {inst!r}")
        if uses > 1:
            new.flush(sink)
        data.append(new)

    _, last = data.pop().flush_neg(sink)
    return sink.finish(last)