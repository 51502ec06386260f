# src/calohits/store/layout.py
from __future__ import annotations
from typing import Iterable, List
import numpy as np

from calohits.physics.hits import Hit, INITIAL_ENERGY_DTYPE

# One record per hit. initial_energy keeps the reduced (single) precision of Hit.
HIT_DTYPE = np.dtype([
    ("primary", np.int32),
    ("track_id", np.int32),
    ("det_id", np.int32),
    ("initial_energy", INITIAL_ENERGY_DTYPE),
    ("x", np.float64), ("y", np.float64), ("z", np.float64),
    ("px", np.float64), ("py", np.float64), ("pz", np.float64),
    ("time", np.float64),
    ("energy_loss", np.float64),
])


_INT32 = np.iinfo(np.int32)


def hit_record(hit: Hit) -> np.ndarray:
    """
    Build a private length-1 HIT_DTYPE array from a Hit.

    Raises ValueError for ids outside int32 or a momentum that is not
    3 components; nothing is written anywhere when that happens.
    """
    if not isinstance(hit, Hit):
        raise TypeError(f"Unsupported hit type for record conversion: {type(hit)}")
    for key in ("primary", "track_id", "det_id"):
        v = getattr(hit, key)
        if not _INT32.min <= v <= _INT32.max:
            raise ValueError(f"{key}={v} does not fit the int32 record field")
    mom = np.asarray(hit.momentum, dtype=np.float64)
    if mom.shape != (3,):
        raise ValueError(f"momentum must have 3 components, got shape {mom.shape}")

    rec = np.zeros(1, dtype=HIT_DTYPE)
    rec["primary"] = hit.primary
    rec["track_id"] = hit.track_id
    rec["det_id"] = hit.det_id
    rec["initial_energy"] = hit.initial_energy
    rec["x"], rec["y"], rec["z"] = hit.x, hit.y, hit.z
    rec["px"], rec["py"], rec["pz"] = mom
    rec["time"] = hit.time
    rec["energy_loss"] = hit.energy_loss
    return rec


def hit_from_record(rec) -> Hit:
    return Hit(
        primary=int(rec["primary"]),
        track_id=int(rec["track_id"]),
        det_id=int(rec["det_id"]),
        initial_energy=float(rec["initial_energy"]),
        pos=(float(rec["x"]), float(rec["y"]), float(rec["z"])),
        mom=(float(rec["px"]), float(rec["py"]), float(rec["pz"])),
        tof=float(rec["time"]),
        e_loss=float(rec["energy_loss"]),
    )


def hits_to_array(hits: Iterable[Hit]) -> np.ndarray:
    hits = list(hits)
    arr = np.zeros(len(hits), dtype=HIT_DTYPE)
    for i, h in enumerate(hits):
        arr[i] = hit_record(h)[0]
    return arr


def hits_from_array(arr: np.ndarray) -> List[Hit]:
    if arr.dtype != HIT_DTYPE:
        raise TypeError(f"Expected HIT_DTYPE records, got dtype {arr.dtype}")
    return [hit_from_record(rec) for rec in arr]
