from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from calohits.config.schemas import Config
from calohits.physics.hits import Hit
from calohits.store.allocators import make_allocator
from calohits.store.buffers import HitBuffer, MergeDiagnostics


def process_event(
    hits: Iterable[Hit],
    cfg: Optional[Config] = None,
) -> Tuple[List[Hit], MergeDiagnostics]:
    """
    Collect the step hits of one event and merge them per (primary, cell).

    The buffer storage follows cfg.store; shared-memory storage created
    here is released before returning.

    Returns
    -------
    merged hits (plain Hit objects), merge diagnostics
    """
    if cfg is None:
        cfg = Config()
    diag_level = cfg.run.diagnostics_level

    buf = HitBuffer(make_allocator(cfg.store))
    try:
        buf.extend(hits)
        if diag_level >= 2:
            print(f"[event] {len(buf)} step hits in {cfg.store.allocator} store, "
                  f"energy loss {buf.total_energy_loss():g}")

        if cfg.merge.enabled:
            diag = buf.merge_duplicates(diagnostics_level=diag_level)
        else:
            n = len(buf)
            diag = MergeDiagnostics(hits_in=n, hits_out=n)
            if diag_level >= 1:
                print(f"[event] merging disabled, keeping {n} hits")
        return buf.hits(), diag
    finally:
        buf.close()
