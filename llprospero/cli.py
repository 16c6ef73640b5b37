"""Command-line entry points that read a program on standard input."""

from __future__ import annotations

import argparse
import sys

from . import irio
from .codegen import x86
from .codegen.regalloc import Config, SinkLoads
from .interp import interp
from .ir import Insts
from .memoize import MemoBuilder, UnmemoBuilder
from .reassociate import reassociate
from .reorder import reorder
from .simplify import Simplify

_TRUE = {"y", "yes", "t", "true", "on", "1"}
_FALSE = {"n", "no", "f", "false", "off", "0"}


def _boolish(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {text!r}")


def _size(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid size {text!r}") from None
    if not 0 <= value <= 0xFFFF:
        raise argparse.ArgumentTypeError(f"size out of range: {value}")
    return value


def _parser(prog: str, description: str) -> argparse.ArgumentParser:
    return argparse.ArgumentParser(prog=prog, description=description)


def _fail(exc: Exception) -> int:
    print(f"error: {exc}", file=sys.stderr)
    return 1


def print_main(argv=None) -> int:
    """Parse a program and print it with canonical names."""
    _parser("llprospero-print", print_main.__doc__).parse_args(argv)
    try:
        insts = irio.read(sys.stdin, Insts())
    except ValueError as exc:
        return _fail(exc)
    irio.write(sys.stdout, insts.pool)
    return 0


def interp_main(argv=None) -> int:
    """Render a program as a binary PBM image."""
    parser = _parser("llprospero-interp", interp_main.__doc__)
    parser.add_argument(
        "size",
        nargs="?",
        type=_size,
        default=512,
        help="number of pixels wide/tall to render",
    )
    args = parser.parse_args(argv)
    try:
        insts = irio.read(sys.stdin, Insts())
        sys.stdout.flush()
        binary = sys.stdout.buffer
        interp(binary, insts, args.size)
    except ValueError as exc:
        return _fail(exc)
    binary.flush()
    return 0


def memoize_main(argv=None) -> int:
    """Split a program into functions by the variables they depend on."""
    _parser("llprospero-memoize", memoize_main.__doc__).parse_args(argv)
    try:
        memoized = irio.read(sys.stdin, MemoBuilder())
    except ValueError as exc:
        return _fail(exc)
    irio.write_memoized(sys.stdout, memoized)
    return 0


def reassociate_main(argv=None) -> int:
    """Regroup associative chains by variable set."""
    _parser("llprospero-reassociate", reassociate_main.__doc__).parse_args(argv)
    try:
        insts = irio.read(sys.stdin, Insts())
        result = reassociate(insts.pool, Insts())
    except ValueError as exc:
        return _fail(exc)
    irio.write(sys.stdout, result.pool)
    return 0


def reorder_main(argv=None) -> int:
    """Drop dead instructions and order the rest depth-first."""
    _parser("llprospero-reorder", reorder_main.__doc__).parse_args(argv)
    try:
        insts = irio.read(sys.stdin, Insts())
    except ValueError as exc:
        return _fail(exc)
    reorder(insts)
    irio.write(sys.stdout, insts.pool)
    return 0


def simplify_main(argv=None) -> int:
    """Remove duplicate instructions and fold negations."""
    _parser("llprospero-simplify", simplify_main.__doc__).parse_args(argv)
    try:
        insts = irio.read(sys.stdin, Simplify(Insts()))
    except ValueError as exc:
        return _fail(exc)
    irio.write(sys.stdout, insts.pool)
    return 0


def x86_main(argv=None) -> int:
    """Compile a program to x86-64 assembly."""
    parser = _parser("llprospero-x86", x86_main.__doc__)
    parser.add_argument(
        "--memoize",
        type=_boolish,
        default=True,
        metavar="BOOL",
        help="split the program into functions so shared values are computed once",
    )
    parser.add_argument(
        "--vectorize",
        type=_boolish,
        default=True,
        metavar="BOOL",
        help="process multiple points in parallel using SIMD instructions",
    )
    parser.add_argument(
        "--sink-loads",
        choices=[mode.value for mode in SinkLoads],
        default=SinkLoads.SPILL_ANY.value,
        help="when arithmetic instructions may read operands from memory",
    )
    args = parser.parse_args(argv)
    config = x86.X86Config(
        vectorize=args.vectorize,
        regalloc=Config(sink_loads=SinkLoads(args.sink_loads)),
    )
    try:
        sink = MemoBuilder() if args.memoize else UnmemoBuilder()
        memoized = irio.read(sys.stdin, sink)
        x86.write(sys.stdout, config, memoized)
    except ValueError as exc:
        return _fail(exc)
    return 0