"""Drop dead instructions and order the rest depth-first from the result."""

from __future__ import annotations

from .ir import Insts


def reorder(insts: Insts) -> None:
    """Rewrite ``insts.pool`` in place, keeping only what the last instruction needs."""
    pool = insts.pool
    if not pool:
        return

    remap: list[int | None] = [None] * len(pool)
    placed = 0
    stack = [len(pool) - 1]
    while stack:
        idx = stack[-1]
        if remap[idx] is None:
            pending = [arg for arg in reversed(pool[idx].args()) if remap[arg] is None]
            if pending:
                stack.extend(pending)
                continue
            remap[idx] = placed
            placed += 1
        stack.pop()

    order = sorted(
        (new, old) for old, new in enumerate(remap) if new is not None
    )
    insts.pool = [
        pool[old].with_args(tuple(remap[arg] for arg in pool[old].args()))
        for _, old in order
    ]