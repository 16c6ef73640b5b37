import pytest

from llprospero.codegen.regalloc import (
    Allocation,
    Config,
    Lru,
    MemorySpace,
    Registers,
    SinkLoads,
    Target,
)
from llprospero.ir import VarSet


class Recorder(Target):
    def __init__(self):
        self.events = []

    def emit_load(self, reg, mem, loc):
        self.events.append(("load", reg, mem, loc))

    def emit_store(self, reg, mem, loc):
        self.events.append(("store", reg, mem, loc))

    def patch_sunk_load(self, patch_at, reg, other):
        self.events.append(("patch", patch_at, reg, other))


def make(count, regs, sink_loads=SinkLoads.NONE):
    allocs = [Allocation() for _ in range(count)]
    return allocs, lambda: Registers(Config(sink_loads), allocs, regs, Recorder())


def test_tiny_lru():
    lru = Lru(2)
    lru.mark_used(0)
    assert lru.pop() == 1
    assert lru.pop() == 0

    lru.mark_used(1)
    assert lru.pop() == 0
    assert lru.pop() == 1


def test_medium_lru():
    lru = Lru(10)
    lru.mark_used(0)
    for _ in range(9):
        assert lru.pop() != 0
    assert lru.pop() == 0

    lru.mark_used(1)
    for _ in range(9):
        assert lru.pop() != 1
    assert lru.pop() == 1

    lru.mark_used(4)
    lru.mark_used(5)
    for _ in range(8):
        assert lru.pop() not in (4, 5)
    assert lru.pop() == 4
    assert lru.pop() == 5


def test_lru_pop_first_in_empty_mask_raises():
    lru = Lru(3)
    with pytest.raises(ValueError):
        lru.pop_first_in(0)


def test_memory_space_for_vars():
    assert MemorySpace.STACK.idx == 0
    assert MemorySpace.for_vars(VarSet()).idx == 1
    assert MemorySpace.for_vars(VarSet(1)).idx == 2
    assert MemorySpace.for_vars(VarSet.ALL).idx == 8


def test_initial_location_twice_raises():
    alloc = Allocation()
    alloc.initial_location(MemorySpace.STACK, 3)
    assert (alloc.mem, alloc.loc) == (MemorySpace.STACK, 3)
    with pytest.raises(ValueError):
        alloc.initial_location(MemorySpace.STACK, 4)


def test_output_store_slot_reused_for_spill():
    mem = MemorySpace.for_vars(VarSet(1))
    allocs, build = make(4, 2)
    allocs[2].initial_location(mem, 0)
    regs = build()

    assert regs.get_output_reg(2) == 1
    assert regs.target.events == [("store", 1, mem, 0)]

    assert regs.get_reg(0) == 1
    assert regs.get_reg(1) == 0
    assert regs.get_reg(0) == 1
    assert regs.get_reg(3) == 0
    assert regs.target.events[-1] == ("load", 0, mem, 0)
    assert regs.address_of(1) == (mem, 0)

    target, slots = regs.finish()
    assert slots == 0
    assert target is regs.target


def test_spill_to_new_stack_slot():
    _, build = make(2, 1)
    regs = build()
    assert regs.get_reg(0) == 0
    assert regs.address_of(0) is None
    assert regs.get_reg(1) == 0
    assert regs.target.events == [("load", 0, MemorySpace.STACK, 0)]
    assert regs.address_of(0) == (MemorySpace.STACK, 0)
    _, slots = regs.finish()
    assert slots == 1


def test_emit_load_only_when_register_assigned():
    mem = MemorySpace.for_vars(VarSet(2))
    _, build = make(2, 1)
    regs = build()
    regs.emit_load(0, mem, 5)
    assert regs.target.events == []
    regs.get_reg(1)
    regs.emit_load(1, mem, 5)
    assert regs.target.events == [("load", 0, mem, 5)]


def test_sink_load_disabled():
    _, build = make(1, 2, SinkLoads.NONE)
    regs = build()
    assert regs.sink_load(0, 0) is False


def test_sink_load_all_leaves_value_unallocated():
    allocs, build = make(1, 2, SinkLoads.ALL)
    regs = build()
    assert regs.sink_load(0, 4) is True
    assert allocs[0] == Allocation()


def test_sunk_load_floated_into_clean_register():
    _, build = make(1, 2, SinkLoads.SPILL_ANY)
    regs = build()
    assert regs.sink_load(0, 7) is True
    assert regs.get_reg(0) == 1
    assert regs.target.events == [("patch", 7, 1, None)]


def test_sunk_load_stays_in_memory_when_registers_dirty():
    _, build = make(2, 1, SinkLoads.SPILL_ANY)
    regs = build()
    assert regs.sink_load(0, 3) is True
    assert regs.get_reg(1) == 0
    assert regs.get_reg(0) == 0
    assert regs.target.events == [("load", 0, MemorySpace.STACK, 0)]
    assert all(event[0] != "patch" for event in regs.target.events)


def test_register_count_validated():
    with pytest.raises(ValueError):
        Registers(Config(), [], 0, Recorder())
    with pytest.raises(ValueError):
        Registers(Config(), [], 33, Recorder())


def test_default_config_spills_any():
    assert Config().sink_loads is SinkLoads.SPILL_ANY
    assert SinkLoads("prefer-dead") is SinkLoads.PREFER_DEAD