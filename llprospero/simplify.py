"""Sink that removes duplicate instructions and folds negations away."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any

from .ir import BinOp, Const, InstSink, Location, UnOp, Var, VarSet


@dataclass(frozen=True)
class Idx:
    """A base index, possibly standing for its negation."""

    value: Any
    negated: bool = False

    def negate(self) -> Idx:
        return Idx(self.value, not self.negated)


def _order_key(value: Any):
    if value is None:
        return (0,)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return (
            1,
            tuple(_order_key(getattr(value, f.name)) for f in dataclasses.fields(value)),
        )
    return (1, value)


class Simplify(InstSink):
    """Global value numbering and negation folding in front of another sink."""

    def __init__(self, base: InstSink) -> None:
        self.base = base
        self._gvn: dict = {}

    def _lookup(self, key, make):
        if key not in self._gvn:
            self._gvn[key] = make()
        return self._gvn[key]

    def _gvn_binop(self, op: BinOp, args: tuple) -> Idx:
        if op is BinOp.SUB:
            a, b = args
            reversed_key = ("binop", op, (b, a))
            if reversed_key in self._gvn:
                return Idx(self._gvn[reversed_key], True)
        else:
            args = tuple(sorted(args, key=_order_key))
        return Idx(
            self._lookup(("binop", op, args), lambda: self.base.push_binop(op, args))
        )

    def _gvn_unop(self, op: UnOp, arg):
        return self._lookup(("unop", op, arg), lambda: self.base.push_unop(op, arg))

    def _force_neg(self, arg: Idx):
        if arg.negated:
            return self._gvn_unop(UnOp.NEG, arg.value)
        return arg.value

    def push_const(self, value: Const) -> Idx:
        return Idx(self._lookup(("const", value), lambda: self.base.push_const(value)))

    def push_var(self, var: Var) -> Idx:
        return Idx(self._lookup(("var", var), lambda: self.base.push_var(var)))

    def push_unop(self, op: UnOp, arg: Idx) -> Idx:
        if op is UnOp.NEG:
            # Delay creating negations in case they cancel out.
            return arg.negate()
        if op is UnOp.SQUARE:
            base_arg = arg.value
        else:
            base_arg = self._force_neg(arg)
        return Idx(self._gvn_unop(op, base_arg))

    def push_binop(self, op: BinOp, args) -> Idx:
        a, b = args
        x, y = a.value, b.value
        negated = False
        if not a.negated and not b.negated:
            pass
        elif op is BinOp.ADD:
            if a.negated and b.negated:
                negated = True
            elif b.negated:
                op = BinOp.SUB
            else:
                op, x, y = BinOp.SUB, y, x
        elif op is BinOp.SUB:
            if a.negated and b.negated:
                x, y = y, x
            elif b.negated:
                op = BinOp.ADD
            else:
                op, negated = BinOp.ADD, True
        elif op is BinOp.MUL:
            negated = a.negated != b.negated
        elif a.negated and b.negated:
            op = BinOp.MAX if op is BinOp.MIN else BinOp.MIN
            negated = True
        elif b.negated:
            y = self._gvn_unop(UnOp.NEG, y)
        else:
            x = self._gvn_unop(UnOp.NEG, x)

        idx = self._gvn_binop(op, (x, y))
        return idx.negate() if negated else idx

    def push_load(self, vars: VarSet, loc: Location) -> Idx:
        return Idx(
            self._lookup(("load", vars, loc), lambda: self.base.push_load(vars, loc))
        )

    def finish(self, last: Idx):
        return self.base.finish(self._force_neg(last))