from llprospero.ir import BinOp, BinOpInst, Const, ConstInst, Insts, UnOp, UnOpInst, Var, VarInst
from llprospero.reorder import reorder


def test_empty_is_unchanged():
    insts = Insts()
    reorder(insts)
    assert insts.pool == []


def test_dead_code_is_dropped():
    insts = Insts(
        [
            VarInst(Var.X),
            VarInst(Var.Y),
            ConstInst(Const.from_float(1.0)),
            UnOpInst(UnOp.NEG, 0),
        ]
    )
    reorder(insts)
    assert insts.pool == [VarInst(Var.X), UnOpInst(UnOp.NEG, 0)]


def test_first_argument_placed_first():
    insts = Insts([VarInst(Var.X), VarInst(Var.Y), BinOpInst(BinOp.ADD, (1, 0))])
    reorder(insts)
    assert insts.pool == [VarInst(Var.Y), VarInst(Var.X), BinOpInst(BinOp.ADD, (0, 1))]


def _sample():
    return Insts(
        [
            VarInst(Var.X),
            VarInst(Var.Y),
            ConstInst(Const.from_float(2.0)),
            BinOpInst(BinOp.MUL, (0, 2)),
            UnOpInst(UnOp.SQUARE, 1),
            VarInst(Var.Z),
            BinOpInst(BinOp.ADD, (4, 3)),
            BinOpInst(BinOp.MAX, (6, 0)),
        ]
    )


def test_arguments_precede_users():
    insts = _sample()
    reorder(insts)
    for idx, inst in enumerate(insts.pool):
        assert all(arg < idx for arg in inst.args())
    assert VarInst(Var.Z) not in insts.pool
    assert isinstance(insts.pool[-1], BinOpInst) and insts.pool[-1].op is BinOp.MAX


def test_shared_values_kept_once():
    insts = _sample()
    reorder(insts)
    assert insts.pool.count(VarInst(Var.X)) == 1
    assert len(insts.pool) == len(_sample().pool) - 1


def test_idempotent():
    insts = _sample()
    reorder(insts)
    once = list(insts.pool)
    reorder(insts)
    assert insts.pool == once