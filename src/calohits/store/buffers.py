# src/calohits/store/buffers.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional

from calohits.physics.hits import Hit
from .allocators import HitAllocator, ListAllocator

@dataclass
class MergeDiagnostics:
    hits_in: int = 0
    hits_out: int = 0
    merged: int = 0
    # primary -> number of distinct detector cells after merging
    groups_by_primary: Dict[int, int] = field(default_factory=dict)


def merge_sorted(hits: Iterable[Hit]) -> List[Hit]:
    """
    Fold runs of equal (same primary, same cell) hits into one.

    Input must already be sorted so equal hits are adjacent. The first hit of
    each run is copied and accumulates the energy loss of the rest; the input
    hits are not modified.
    """
    out: List[Hit] = []
    for h in hits:
        if out and out[-1] == h:
            out[-1] += h
        else:
            out.append(h.copy())
    return out


class HitBuffer:
    """
    Per-event hit collection.

    Storage is delegated to a HitAllocator (in-process list by default,
    shared memory when hits must cross process boundaries). The buffer is
    not synchronized; fill it from one worker and merge at a single
    aggregation stage.
    """

    def __init__(self, allocator: Optional[HitAllocator] = None):
        self.allocator = allocator if allocator is not None else ListAllocator()

    def add(self, hit: Hit) -> None:
        self.allocator.append(hit)

    def extend(self, hits: Iterable[Hit]) -> None:
        self.allocator.extend(hits)

    def __len__(self) -> int:
        return len(self.allocator)

    def __iter__(self) -> Iterator[Hit]:
        return iter(self.allocator)

    def hits(self) -> List[Hit]:
        return self.allocator.to_list()

    def clear(self) -> None:
        self.allocator.clear()

    def close(self) -> None:
        self.allocator.close()

    def sort(self) -> None:
        """Order stored hits by (primary, det_id); stable for equal hits."""
        self.allocator.replace(sorted(self.allocator.to_list()))

    def total_energy_loss(self) -> float:
        return float(sum(h.energy_loss for h in self.allocator))

    def merge_duplicates(self, diagnostics_level: int = 0) -> MergeDiagnostics:
        """
        Sort, then merge every group of equal hits into a single hit.

        Each merged hit keeps all fields of the first hit of its group and
        carries the summed energy loss of the group.
        """
        diag = MergeDiagnostics()
        hits = sorted(self.allocator.to_list())
        diag.hits_in = len(hits)

        merged = merge_sorted(hits)
        self.allocator.replace(merged)

        diag.hits_out = len(merged)
        diag.merged = diag.hits_in - diag.hits_out
        for h in merged:
            diag.groups_by_primary[h.primary] = diag.groups_by_primary.get(h.primary, 0) + 1

        if diagnostics_level >= 1:
            print(f"[merge] {diag.hits_in} hits -> {diag.hits_out} hits "
                  f"({len(diag.groups_by_primary)} primaries)")
        if diagnostics_level >= 2:
            for primary, ncells in sorted(diag.groups_by_primary.items()):
                print(f"[merge]   primary {primary}: {ncells} cells")
        return diag


def gather_buffers(
    buffers: Iterable[HitBuffer],
    allocator: Optional[HitAllocator] = None,
) -> HitBuffer:
    """Concatenate per-worker buffers into a new buffer (inputs are left as they are)."""
    out = HitBuffer(allocator)
    for buf in buffers:
        out.extend(buf)
    return out
