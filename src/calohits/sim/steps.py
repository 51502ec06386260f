from __future__ import annotations
import numpy as np
from typing import Sequence
from ..physics.hits import Hit

# cell pitch of the toy tower layout [cm]
CELL_SIZE_CM = 6.0

def cell_center_cm(det_id: int, n_cols: int = 96) -> np.ndarray:
    """Front-face centre of a cell in a flat n_cols-wide tower grid."""
    row, col = divmod(int(det_id), n_cols)
    return np.array([(col + 0.5) * CELL_SIZE_CM, (row + 0.5) * CELL_SIZE_CM, 0.0])

def synth_shower_steps(
    n_primaries: int,
    cells: Sequence[int],
    steps_per_cell: int = 3,
    initial_energy_GeV: float = 10.0,
    rng: np.random.Generator | None = None,
) -> list[Hit]:
    """
    Generate transport-step hits for a handful of showering primaries:
      - every primary deposits in every cell of ``cells``
      - each (primary, cell) pair gets ``steps_per_cell`` steps from
        successive secondary tracks, later in time and deeper in z
      - deposits are positive and sum to well below the primary energy
    The returned list is shuffled, as hits from a real stepping engine are
    not grouped by cell.
    """
    rng = rng or np.random.default_rng()
    hits: list[Hit] = []
    track = 0

    for primary in range(n_primaries):
        E0 = float(initial_energy_GeV * rng.uniform(0.8, 1.2))
        # direction of the primary, roughly along +z
        u = np.array([rng.normal(0, 0.05), rng.normal(0, 0.05), 1.0])
        u /= np.linalg.norm(u)
        budget = 0.5 * E0 / max(1, len(cells) * steps_per_cell)

        for det in cells:
            centre = cell_center_cm(det)
            for k in range(steps_per_cell):
                track += 1
                pos = centre + np.array([
                    rng.uniform(-0.5, 0.5) * CELL_SIZE_CM,
                    rng.uniform(-0.5, 0.5) * CELL_SIZE_CM,
                    (k + rng.uniform(0.0, 1.0)) * 2.0,
                ])
                t_ns = (440.0 + pos[2]) / 29.9792  # from the vertex, ~4.4 m in front
                p = (E0 * rng.uniform(0.05, 0.5)) * u
                hits.append(Hit(
                    primary=primary,
                    track_id=track,
                    det_id=int(det),
                    initial_energy=E0,
                    pos=pos,
                    mom=p,
                    tof=t_ns,
                    e_loss=float(rng.uniform(0.01, 1.0) * budget),
                ))

    order = rng.permutation(len(hits))
    return [hits[i] for i in order]
