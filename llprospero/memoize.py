"""Split a program into functions by the set of variables each value depends on."""

from __future__ import annotations

from dataclasses import dataclass, field

from .ir import (
    MAX_INSTS,
    BinOp,
    BinOpInst,
    Const,
    Inst,
    InstSink,
    LoadInst,
    Location,
    UnOp,
    UnOpInst,
    Var,
    VarSet,
)

_FUNC_COUNT = VarSet.ALL.bits


def _func_for(vars: VarSet) -> int:
    if vars.bits == 0:
        raise ValueError("expression does not depend on any variable")
    return vars.bits - 1


@dataclass
class MemoizedFunc:
    """Instructions computed for one set of variables, and their stored outputs."""

    vars: VarSet = field(default_factory=VarSet)
    insts: list[Inst] = field(default_factory=list)
    outputs: list[int | None] = field(default_factory=list)

    def push(self, inst: Inst) -> int:
        if len(self.insts) >= MAX_INSTS:
            raise OverflowError("too many instructions")
        self.insts.append(inst)
        return len(self.insts) - 1

    def add_output(self, definition: int) -> Location:
        self.outputs.append(definition)
        return len(self.outputs) - 1


def _default_funcs() -> list[MemoizedFunc]:
    funcs = [MemoizedFunc(vars=VarSet(idx + 1)) for idx in range(_FUNC_COUNT)]
    # Each single-variable function reserves output slot 0 for the variable itself.
    for var in VarSet.ALL:
        funcs[_func_for(VarSet.of(var))].outputs.append(None)
    return funcs


@dataclass
class Memoized:
    """Shared constants plus one function for each non-empty variable set."""

    consts: list[Const] = field(default_factory=list)
    funcs: list[MemoizedFunc] = field(default_factory=_default_funcs)


@dataclass(frozen=True, order=True)
class MemoIdx:
    """A value reference: the variables it depends on and its index there."""

    vars: VarSet
    idx: int | None


class MemoBuilder(InstSink):
    """Build a Memoized program, placing each value in its narrowest function."""

    def __init__(self) -> None:
        self.result = Memoized()
        self._load: list[dict[MemoIdx, int]] = [{} for _ in range(_FUNC_COUNT)]
        self._store: list[list[Location | None]] = [[] for _ in range(_FUNC_COUNT)]

    def push_const(self, value: Const) -> MemoIdx:
        loc = len(self.result.consts)
        self.result.consts.append(value)
        return MemoIdx(VarSet(), loc)

    def push_var(self, var: Var) -> MemoIdx:
        return MemoIdx(VarSet.of(var), None)

    def push_unop(self, op: UnOp, arg: MemoIdx) -> MemoIdx:
        vars = arg.vars
        loaded = self._ensure_load(vars, arg)
        return self._push(vars, UnOpInst(op, loaded))

    def push_binop(self, op: BinOp, args) -> MemoIdx:
        a, b = args
        vars = a.vars | b.vars
        loaded = (self._ensure_load(vars, a), self._ensure_load(vars, b))
        return self._push(vars, BinOpInst(op, loaded))

    def push_load(self, vars: VarSet, loc: Location) -> MemoIdx:
        raise ValueError("load instructions cannot be memoized")

    def finish(self, last: MemoIdx) -> Memoized:
        if last.idx is None:
            raise ValueError("program result must be computed, not a bare variable")
        self.result.funcs[_func_for(last.vars)].add_output(last.idx)
        return self.result

    def _ensure_load(self, vars: VarSet, arg: MemoIdx) -> int:
        if arg.idx is not None:
            if arg.vars == vars:
                return arg.idx
            if arg.vars.bits:
                arg_func = arg.vars.bits - 1
                stored = self._store[arg_func]
                if stored[arg.idx] is None:
                    stored[arg.idx] = self.result.funcs[arg_func].add_output(arg.idx)
                loc = stored[arg.idx]
            else:
                loc = arg.idx
        else:
            loc = 0
        func_idx = _func_for(vars)
        loads = self._load[func_idx]
        if arg not in loads:
            self._store[func_idx].append(None)
            loads[arg] = self.result.funcs[func_idx].push(LoadInst(arg.vars, loc))
        return loads[arg]

    def _push(self, vars: VarSet, inst: Inst) -> MemoIdx:
        func_idx = _func_for(vars)
        self._store[func_idx].append(None)
        return MemoIdx(vars, self.result.funcs[func_idx].push(inst))


class UnmemoBuilder(InstSink):
    """Build a Memoized program that puts everything in a single function."""

    def __init__(self) -> None:
        self._insts: list[Inst] = []
        self._consts: list[Const] = []
        self._vars = VarSet()

    def _push(self, inst: Inst) -> int:
        if len(self._insts) >= MAX_INSTS:
            raise OverflowError("too many instructions")
        self._insts.append(inst)
        return len(self._insts) - 1

    def push_const(self, value: Const) -> int:
        loc = len(self._consts)
        self._consts.append(value)
        return self._push(LoadInst(VarSet(), loc))

    def push_var(self, var: Var) -> int:
        vars = VarSet.of(var)
        self._vars = self._vars | vars
        return self._push(LoadInst(vars, 0))

    def push_unop(self, op: UnOp, arg: int) -> int:
        return self._push(UnOpInst(op, arg))

    def push_binop(self, op: BinOp, args) -> int:
        a, b = args
        return self._push(BinOpInst(op, (a, b)))

    def push_load(self, vars: VarSet, loc: Location) -> int:
        raise ValueError("load instructions cannot be memoized")

    def finish(self, last: int) -> Memoized:
        memoized = Memoized(consts=self._consts)
        func = memoized.funcs[_func_for(self._vars)]
        func.insts = self._insts
        func.add_output(last)
        return memoized