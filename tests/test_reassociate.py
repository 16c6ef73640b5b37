import io
import math

import pytest

from llprospero import irio
from llprospero.ir import (
    BinOp,
    BinOpInst,
    ConstInst,
    Insts,
    UnOp,
    UnOpInst,
    Var,
    VarInst,
)
from llprospero.reassociate import count_uses, reassociate
from llprospero.simplify import Simplify

PROGRAMS = [
    "x var-x\ny var-y\nd sub x y\nn neg d\n",
    "x var-x\ny var-y\nc const 2\na add x c\nb add y a\ne add b x\nf sub e c\n",
    "x var-x\ny var-y\nnx neg x\nny neg y\nm mul nx y\np mul m ny\nq mul p x\n",
    "x var-x\ny var-y\nnx neg x\na min nx y\nb max a x\nc min b y\nd neg c\ne max d nx\n",
    "x var-x\ny var-y\ns square x\nt square y\nu add s t\nr sqrt u\nc const 0.5\nf sub r c\n",
    "x var-x\ny var-y\na add x y\nb mul a a\nc sub b x\nd add c a\n",
]

POINTS = [(0.3, -0.7), (-0.2, 0.9), (1.5, 2.5), (-1.25, -0.5)]


def evaluate(pool, x, y):
    coords = (x, y, 0.0)
    values = []
    for inst in pool:
        match inst:
            case ConstInst(value=c):
                values.append(c.value())
            case VarInst(var=v):
                values.append(coords[v])
            case UnOpInst(op=UnOp.NEG, arg=a):
                values.append(-values[a])
            case UnOpInst(op=UnOp.SQUARE, arg=a):
                values.append(values[a] * values[a])
            case UnOpInst(op=UnOp.SQRT, arg=a):
                values.append(math.sqrt(values[a]))
            case BinOpInst(op=op, args_=(a, b)):
                p, q = values[a], values[b]
                values.append(
                    {
                        BinOp.ADD: p + q,
                        BinOp.SUB: p - q,
                        BinOp.MUL: p * q,
                        BinOp.MIN: min(p, q),
                        BinOp.MAX: max(p, q),
                    }[op]
                )
    return values[-1]


def parse(text):
    return irio.read(io.StringIO(text), Insts()).pool


def test_count_uses():
    pool = [
        VarInst(Var.X),
        VarInst(Var.Y),
        BinOpInst(BinOp.ADD, (0, 1)),
        BinOpInst(BinOp.MUL, (2, 2)),
    ]
    assert count_uses(pool) == [1, 1, 2, 1]


def test_count_uses_ignores_dead_code():
    pool = parse("x var-x\ny var-y\ndead neg y\nr square x\n")
    uses = count_uses(pool)
    assert uses[2] == 0
    assert uses[1] == 0
    assert uses[-1] == 1


def test_count_uses_empty():
    assert count_uses([]) == []


def test_negated_difference_is_rewritten():
    result = reassociate(parse(PROGRAMS[0]), Insts()).pool
    assert result == [VarInst(Var.X), VarInst(Var.Y), BinOpInst(BinOp.SUB, (1, 0))]


@pytest.mark.parametrize("text", PROGRAMS)
@pytest.mark.parametrize("point", POINTS)
def test_value_is_preserved(text, point):
    original = parse(text)
    result = reassociate(original, Insts()).pool
    assert math.isclose(
        evaluate(result, *point), evaluate(original, *point), rel_tol=1e-9, abs_tol=1e-12
    )


@pytest.mark.parametrize("text", PROGRAMS)
def test_value_is_preserved_through_simplify(text):
    original = parse(text)
    result = reassociate(original, Simplify(Insts())).pool
    for point in POINTS:
        assert math.isclose(
            evaluate(result, *point),
            evaluate(original, *point),
            rel_tol=1e-9,
            abs_tol=1e-12,
        )


def test_empty_program_is_rejected():
    with pytest.raises(ValueError):
        reassociate([], Insts())