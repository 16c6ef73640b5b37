"""Reverse linear-scan register allocation with spilling and sunk loads.

A value may live in a register and in memory at the same time, so memory
inputs and outputs of a function are handled exactly like stack spill slots.
Instructions are allocated from last to first.
"""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass, field
from typing import ClassVar, Generic, TypeVar

from ..ir import Location, VarSet

# Registers are plain integer indices starting at zero.
Register = int

_MAX_REGISTERS = 32
_QUEUE_LEN = 32  # must be a power of two


@dataclass(frozen=True)
class MemorySpace:
    """A region of memory: the stack, the constants, or one function's outputs."""

    idx: int

    STACK: ClassVar[MemorySpace]

    @classmethod
    def for_vars(cls, vars: VarSet) -> MemorySpace:
        """The memory space holding values that depend on ``vars``."""
        return cls(vars.bits + 1)


MemorySpace.STACK = MemorySpace(0)


class SinkLoads(enum.Enum):
    """When an arithmetic instruction may read its operand straight from memory."""

    NONE = "none"
    """Never sink loads."""
    SPILL_ANY = "spill-any"
    """Sink loads unless a register is available, even one that needs a spill."""
    PREFER_DEAD = "prefer-dead"
    """Like SPILL_ANY, but prefer registers holding no live value."""
    REQUIRE_DEAD = "require-dead"
    """Sink loads unless a register holding no live value is available."""
    ALL = "all"
    """Sink every load that can be sunk."""


@dataclass(frozen=True)
class Config:
    """Register allocator settings."""

    sink_loads: SinkLoads = SinkLoads.SPILL_ANY


@dataclass
class Allocation:
    """Where a value lives: a register, a pending sunk load, and a memory slot."""

    reg: Register | None = None
    sunk_load: int | None = None
    mem: MemorySpace | None = None
    loc: Location = 0

    def initial_location(self, mem: MemorySpace, loc: Location) -> None:
        """Give a fresh allocation its fixed memory location."""
        if self != Allocation():
            raise ValueError("allocation already has a location")
        self.mem = mem
        self.loc = loc


class Target(abc.ABC):
    """Instruction emitter driven by the allocator."""

    @abc.abstractmethod
    def emit_load(self, reg: Register, mem: MemorySpace, loc: Location) -> None: ...

    @abc.abstractmethod
    def emit_store(self, reg: Register, mem: MemorySpace, loc: Location) -> None: ...

    @abc.abstractmethod
    def patch_sunk_load(
        self,
        patch_at: int,
        reg: Register,
        other: tuple[MemorySpace, Location] | None,
    ) -> None: ...


T = TypeVar("T", bound=Target)


def _dead_regs(live: list[int | None]) -> int:
    mask = 0
    for reg, value in enumerate(live):
        if value is None:
            mask |= 1 << reg
    return mask


class _DirtyPool:
    """Recent sunk loads and, per register, when it was last written."""

    def __init__(self, regs: int) -> None:
        self._loads: list[tuple[int | None, int]] = [(None, 0)] * _QUEUE_LEN
        self._patch_at: list[int] = [0] * _QUEUE_LEN
        self._front = 0
        self._dirty_before = [0] * regs

    def push_load(self, load: int, patch_at: int, free_generation: int) -> int:
        idx = self._front % _QUEUE_LEN
        self._front += 1
        self._loads[idx] = (load, free_generation)
        self._patch_at[idx] = patch_at
        return idx

    def mark_dirty(self, reg: Register) -> None:
        self._dirty_before[reg] = self._front

    def get_clean_regs(self, idx: int, load: int) -> tuple[int, int, int]:
        inst, free_generation = self._loads[idx]
        if inst != load:
            return 0, 0, 0
        patch_at = self._patch_at[idx]

        position = idx | (self._front & ~(_QUEUE_LEN - 1))
        if position >= self._front:
            position -= _QUEUE_LEN

        mask = 0
        for reg, dirty_before in enumerate(self._dirty_before):
            if position >= dirty_before:
                mask |= 1 << reg
        return mask, free_generation, patch_at


class Lru:
    """Circular list of registers ordered from most to least recently used."""

    def __init__(self, length: int) -> None:
        if length < 1:
            raise ValueError("need at least one register")
        self._prev = [(i + length - 1) % length for i in range(length)]
        self._next = [(i + 1) % length for i in range(length)]
        self._head: Register = 0

    def mark_used(self, reg: Register) -> None:
        """Make ``reg`` the newest."""
        self.mark_unused(reg)
        self._head = reg

    def mark_unused(self, reg: Register) -> None:
        """Make ``reg`` the oldest."""
        if reg == self._head:
            self._head = self._next[reg]
            return

        # Unlink it and reinsert it just before the head.
        nxt = self._head
        prev = self._prev[nxt]
        self._prev[nxt] = reg
        if prev != reg:
            self._next[prev] = reg
            old_prev, old_next = self._prev[reg], self._next[reg]
            self._prev[reg], self._next[reg] = prev, nxt
            self._next[old_prev] = old_next
            self._prev[old_next] = old_prev

    def pop(self) -> Register:
        """Return the oldest register, making it the newest."""
        out = self._prev[self._head]
        self._head = out
        return out

    def pop_first_in(self, free_regs: int) -> Register:
        """Return the oldest register in the bit mask, making it the newest."""
        reg = self._head
        while True:
            reg = self._prev[reg]
            if free_regs & (1 << reg):
                self.mark_used(reg)
                return reg
            if reg == self._head:
                raise ValueError("no register in the given set")


class Registers(Generic[T]):
    """Allocates registers for instructions visited from last to first."""

    def __init__(
        self, config: Config, allocs: list[Allocation], regs: int, target: T
    ) -> None:
        if not 1 <= regs <= _MAX_REGISTERS:
            raise ValueError(f"register count must be between 1 and {_MAX_REGISTERS}")
        self._config = config
        self._allocs = allocs
        self._recent = Lru(regs)
        self._live: list[int | None] = [None] * regs
        self._dirty_pool = _DirtyPool(regs)
        self._stack_slots: Location = 0
        self._free_slots: list[tuple[int, MemorySpace, Location]] = []
        self._free_generation = 0
        self.target = target

    def get_output_reg(self, idx: int) -> Register:
        """The register an instruction writes its result to, storing it if needed."""
        reg = self.get_reg(idx)
        self._free_reg(reg)
        alloc = self._allocs[idx]
        if alloc.mem is not None:
            self.target.emit_store(reg, alloc.mem, alloc.loc)
            # Anything stored here is free to use as a spill slot earlier on.
            self._free_slots.append((self._free_generation, alloc.mem, alloc.loc))
            self._free_generation += 1
        return reg

    def get_reg(self, idx: int) -> Register:
        """The register holding value ``idx`` at this point."""
        reg = self._float_load(idx)
        if reg is not None:
            self._recent.mark_used(reg)
            self._dirty_pool.mark_dirty(reg)
            return reg

        reg = self._recent.pop()
        other = self._clobber(idx, reg, self._free_generation)
        if other is not None:
            # A later instruction wants the evicted value in this register.
            self.target.emit_load(reg, *other)
        return reg

    def _clobber(
        self, idx: int, reg: Register, free_generation: int
    ) -> tuple[MemorySpace, Location] | None:
        alloc = self._allocs[idx]
        alloc.reg = reg
        alloc.sunk_load = None
        self._dirty_pool.mark_dirty(reg)

        evicted = self._live[reg]
        self._live[reg] = idx
        if evicted is None:
            return None

        old = self._allocs[evicted]
        if old.mem is not None:
            mem, loc = old.mem, old.loc
        else:
            slot = self._take_free_slot(free_generation)
            if slot is not None:
                mem, loc = slot
            else:
                mem, loc = MemorySpace.STACK, self._stack_slots
                self._stack_slots += 1

        self._allocs[evicted] = Allocation(mem=mem, loc=loc)
        return mem, loc

    def _take_free_slot(self, free_generation: int) -> tuple[MemorySpace, Location] | None:
        slots = self._free_slots
        for pos in reversed(range(len(slots))):
            if slots[pos][0] < free_generation:
                last = slots.pop()
                if pos < len(slots):
                    taken = slots[pos]
                    slots[pos] = last
                else:
                    taken = last
                return taken[1], taken[2]
        return None

    def _free_reg(self, reg: Register) -> None:
        self._recent.mark_unused(reg)
        self._live[reg] = None

    def emit_load(self, idx: int, mem: MemorySpace, loc: Location) -> None:
        """Emit the load defining ``idx``, if some later instruction needs it here."""
        reg = self._allocs[idx].reg
        if reg is not None:
            self._dirty_pool.mark_dirty(reg)
            self.target.emit_load(reg, mem, loc)
            self._free_reg(reg)

    def address_of(self, idx: int) -> tuple[MemorySpace, Location] | None:
        """The memory location of ``idx``, if it has one."""
        alloc = self._allocs[idx]
        if alloc.mem is None:
            return None
        return alloc.mem, alloc.loc

    def sink_load(self, idx: int, patch_at: int) -> bool:
        """Try to let the instruction at ``patch_at`` read ``idx`` from memory."""
        mode = self._config.sink_loads
        if mode is SinkLoads.NONE or self._float_load(idx) is not None:
            return False
        if mode is not SinkLoads.ALL:
            alloc = self._allocs[idx]
            alloc.sunk_load = self._dirty_pool.push_load(
                idx, patch_at, self._free_generation
            )
            alloc.reg = None
        return True

    def _float_load(self, idx: int) -> Register | None:
        alloc = self._allocs[idx]
        if alloc.reg is not None:
            return alloc.reg
        if alloc.sunk_load is None:
            return None

        clean, free_generation, patch_at = self._dirty_pool.get_clean_regs(
            alloc.sunk_load, idx
        )
        mode = self._config.sink_loads
        if mode is SinkLoads.PREFER_DEAD:
            dead = clean & _dead_regs(self._live)
            if dead:
                clean = dead
        elif mode is SinkLoads.REQUIRE_DEAD:
            clean &= _dead_regs(self._live)

        if clean == 0:
            alloc.sunk_load = None
            return None

        reg = self._recent.pop_first_in(clean)
        other = self._clobber(idx, reg, free_generation)
        self.target.patch_sunk_load(patch_at, reg, other)
        return reg

    def finish(self) -> tuple[T, Location]:
        """The target and the number of stack slots used."""
        return self.target, self._stack_slots