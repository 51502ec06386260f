from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Sequence
import numpy as np

@dataclass(slots=True)
class BasicXYZEHit:
    """
    Spatial energy-deposit record (generic detector step).

    x, y, z: position [cm]
    time: time of flight since event start [ns]
    energy_loss: energy deposited in this step [GeV]
    track_id: index of the transported track producing the step
    det_id: detector segment / cell index
    """
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    time: float = 0.0
    energy_loss: float = 0.0
    track_id: int = 0
    det_id: int = 0

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    def set_position(self, pos: Sequence[float]) -> None:
        self.x, self.y, self.z = (float(c) for c in pos)

    def copy(self) -> "BasicXYZEHit":
        return replace(self)
