"""Read and write the textual instruction format."""

from __future__ import annotations

import re
from typing import Iterable, Iterator, TextIO

from .ir import (
    BinOp,
    BinOpInst,
    Const,
    ConstInst,
    Inst,
    InstSink,
    LoadInst,
    UnOp,
    UnOpInst,
    Var,
    VarInst,
)
from .memoize import Memoized

_WHITESPACE = re.compile(r"[ \t\n\x0c\r]+")
_FLOAT = re.compile(
    r"[+-]?(?:inf|infinity|nan|(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?)",
    re.IGNORECASE,
)

_VARS = {"var-x": Var.X, "var-y": Var.Y, "var-z": Var.Z}
_UNOPS = {op.value: op for op in UnOp}
_BINOPS = {op.value: op for op in BinOp}


def _quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


class ParseError(ValueError):
    """Base class of all errors raised while reading a program."""


class EmptyInputError(ParseError):
    def __init__(self) -> None:
        super().__init__("no input")


class InvalidConstError(ParseError):
    def __init__(self, text: str) -> None:
        super().__init__("invalid constant")
        self.text = text


class MissingTokenError(ParseError):
    def __init__(self) -> None:
        super().__init__("missing token")


class ExtraTokenError(ParseError):
    def __init__(self, token: str) -> None:
        super().__init__(f"unexpected token {_quote(token)}")
        self.token = token


class UndefinedNameError(ParseError):
    def __init__(self, name: str) -> None:
        super().__init__(f"argument uses undefined name {_quote(name)}")
        self.name = name


class RedefinedNameError(ParseError):
    def __init__(self, name: str) -> None:
        super().__init__(f"instruction redefines existing name {_quote(name)}")
        self.name = name


class UnknownOpError(ParseError):
    def __init__(self, op: str) -> None:
        super().__init__(f"unknown instruction {_quote(op)}")
        self.op = op


def _tokenize(line: str) -> list[str]:
    tokens = []
    for token in _WHITESPACE.split(line):
        if not token:
            continue
        if token.startswith("#"):
            break
        tokens.append(token)
    return tokens


def _parse_const(text: str) -> Const:
    if not _FLOAT.fullmatch(text):
        raise InvalidConstError(text)
    try:
        return Const.from_float(float(text))
    except ValueError as exc:
        raise InvalidConstError(text) from exc


class _Tokens:
    def __init__(self, tokens: list[str], names: dict) -> None:
        self._tokens: Iterator[str] = iter(tokens)
        self._names = names

    def next(self) -> str:
        try:
            return next(self._tokens)
        except StopIteration:
            raise MissingTokenError() from None

    def arg(self):
        name = self.next()
        try:
            return self._names[name]
        except KeyError:
            raise UndefinedNameError(name) from None

    def ensure_empty(self) -> None:
        extra = next(self._tokens, None)
        if extra is not None:
            raise ExtraTokenError(extra)


def read(lines: Iterable[str], sink: InstSink):
    """Feed every instruction in ``lines`` to ``sink`` and return what it builds."""
    names: dict = {}
    last = None
    have_last = False

    for line in lines:
        tokens = _tokenize(line)
        if not tokens:
            continue
        out = tokens[0]
        stream = _Tokens(tokens[1:], names)

        op = stream.next()
        if op == "const":
            idx = sink.push_const(_parse_const(stream.next()))
        elif op in _VARS:
            idx = sink.push_var(_VARS[op])
        elif op in _UNOPS:
            idx = sink.push_unop(_UNOPS[op], stream.arg())
        elif op in _BINOPS:
            a = stream.arg()
            b = stream.arg()
            idx = sink.push_binop(_BINOPS[op], (a, b))
        else:
            raise UnknownOpError(op)

        stream.ensure_empty()

        if out in names:
            raise RedefinedNameError(out)
        names[out] = idx
        last = idx
        have_last = True

    if not have_last:
        raise EmptyInputError()
    return sink.finish(last)


def _format(inst: Inst) -> str:
    match inst:
        case ConstInst(value=value):
            return f"const {value}"
        case VarInst(var=var):
            return f"var-{var.letter}"
        case UnOpInst(op=op, arg=arg):
            return f"{op.value} v{arg}"
        case BinOpInst(op=op, args_=(a, b)):
            return f"{op.value} v{a} v{b}"
        case LoadInst(vars=vars, loc=loc):
            return f"load {vars} {loc}"
    raise TypeError(f"unknown instruction {inst!r}")


def write(out: TextIO, insts: Iterable[Inst]) -> None:
    """Write instructions, naming each ``v<index>``."""
    for idx, inst in enumerate(insts):
        out.write(f"v{idx} {_format(inst)}\n")


def write_memoized(out: TextIO, memoized: Memoized) -> None:
    """Write the constants and every non-empty function of a memoized program."""
    out.write(f"# consts: {len(memoized.consts)}\n")
    for idx, value in enumerate(memoized.consts):
        out.write(f"v{idx} const {value}\n")

    for func in memoized.funcs:
        if not func.insts:
            continue
        out.write("\n")
        out.write(f"# func {func.vars}: {len(func.outputs)} outputs\n")
        write(out, func.insts)
        for loc, reg in enumerate(func.outputs):
            if reg is not None:
                out.write(f"# store v{reg} {func.vars}:{loc}\n")