from __future__ import annotations
from functools import total_ordering
from io import StringIO
from typing import Optional, Sequence, TextIO, Tuple
import numpy as np

from .base_hits import BasicXYZEHit

# initial energy is kept at single precision; everything else is float64
INITIAL_ENERGY_DTYPE = np.float32


def _reduced(value: float) -> float:
    return float(INITIAL_ENERGY_DTYPE(value))


@total_ordering
class Hit:
    """
    Calorimeter simulation hit (one transport step in one detector cell).

    Builds on a BasicXYZEHit (position, time, energy loss, track, detector)
    and adds the momentum at the step, the primary particle the step descends
    from, and the energy that primary carried when it entered the calorimeter.

    Two hits are *equal* when they come from the same primary and sit in the
    same detector cell; positions and energies are ignored. Ordering is
    lexicographic on (primary, det_id) so sorting a collection makes equal
    hits adjacent. ``a += b`` adds b's energy loss into a and leaves every
    other field of a untouched.

    ``Hit()`` is an all-zero placeholder for collection slots before
    assignment. It is not a real step and carries no identity of its own:
    it still compares as (0, 0), so ``Hit() == Hit(primary=0, det_id=0)``
    is True. Fill it in before sorting or merging it with constructed hits.
    """

    __slots__ = ("base", "momentum", "_primary", "_initial_energy")

    def __init__(
        self,
        primary: int = 0,
        track_id: int = 0,
        det_id: int = 0,
        initial_energy: float = 0.0,
        pos: Optional[Sequence[float]] = None,
        mom: Optional[Sequence[float]] = None,
        tof: float = 0.0,
        e_loss: float = 0.0,
    ):
        x, y, z = (0.0, 0.0, 0.0) if pos is None else (float(c) for c in pos)
        self.base = BasicXYZEHit(x, y, z, float(tof), float(e_loss), int(track_id), int(det_id))
        self.momentum = np.zeros(3) if mom is None else np.array(mom, dtype=np.float64)
        self._primary = int(primary)
        self._initial_energy = _reduced(initial_energy)

    # --- own fields ---------------------------------------------------------

    @property
    def primary(self) -> int:
        """Index of the primary particle at the origin of the hit."""
        return self._primary

    @primary.setter
    def primary(self, value: int) -> None:
        self._primary = int(value)

    @property
    def initial_energy(self) -> float:
        """Energy of the primary when entering the calorimeter (float32 precision)."""
        return self._initial_energy

    @initial_energy.setter
    def initial_energy(self, value: float) -> None:
        self._initial_energy = _reduced(value)

    # --- base record fields -------------------------------------------------

    @property
    def x(self) -> float:
        return self.base.x

    @x.setter
    def x(self, value: float) -> None:
        self.base.x = float(value)

    @property
    def y(self) -> float:
        return self.base.y

    @y.setter
    def y(self, value: float) -> None:
        self.base.y = float(value)

    @property
    def z(self) -> float:
        return self.base.z

    @z.setter
    def z(self, value: float) -> None:
        self.base.z = float(value)

    @property
    def position(self) -> np.ndarray:
        return self.base.position

    @position.setter
    def position(self, pos: Sequence[float]) -> None:
        self.base.set_position(pos)

    @property
    def time(self) -> float:
        return self.base.time

    @time.setter
    def time(self, value: float) -> None:
        self.base.time = float(value)

    @property
    def energy_loss(self) -> float:
        return self.base.energy_loss

    @energy_loss.setter
    def energy_loss(self, value: float) -> None:
        self.base.energy_loss = float(value)

    @property
    def track_id(self) -> int:
        return self.base.track_id

    @track_id.setter
    def track_id(self, value: int) -> None:
        self.base.track_id = int(value)

    @property
    def det_id(self) -> int:
        return self.base.det_id

    @det_id.setter
    def det_id(self, value: int) -> None:
        self.base.det_id = int(value)

    # --- identity, ordering, merge -----------------------------------------

    @property
    def identity(self) -> Tuple[int, int]:
        return (self._primary, self.base.det_id)

    def __eq__(self, rhs: object) -> bool:
        if not isinstance(rhs, Hit):
            return NotImplemented
        return self.identity == rhs.identity

    def __lt__(self, rhs: "Hit") -> bool:
        if not isinstance(rhs, Hit):
            return NotImplemented
        return self.identity < rhs.identity

    # mutable identity, so no hashing; group on .identity instead
    __hash__ = None  # type: ignore[assignment]

    def __iadd__(self, rhs: "Hit") -> "Hit":
        if not isinstance(rhs, Hit):
            return NotImplemented
        assert self == rhs, (
            f"merging hits with different identity: {self.identity} vs {rhs.identity}"
        )
        self.base.energy_loss += rhs.base.energy_loss
        return self

    def __add__(self, rhs: "Hit") -> "Hit":
        if not isinstance(rhs, Hit):
            return NotImplemented
        out = self.copy()
        out += rhs
        return out

    def copy(self) -> "Hit":
        out = Hit.__new__(Hit)
        out.base = self.base.copy()
        out.momentum = self.momentum.copy()
        out._primary = self._primary
        out._initial_energy = self._initial_energy
        return out

    # --- formatting ---------------------------------------------------------

    def print_stream(self, stream: TextIO) -> None:
        """Write a one-line description of the hit to a text stream."""
        px, py, pz = (float(c) for c in self.momentum)
        stream.write(
            f"Calo hit: primary {self._primary} (initial energy {self._initial_energy:g}), "
            f"track {self.track_id} in detector cell {self.det_id} "
            f"at position ({self.x:g}|{self.y:g}|{self.z:g}), "
            f"momentum ({px:g}|{py:g}|{pz:g}), "
            f"time {self.time:g}, energy loss {self.energy_loss:g}"
        )

    def __str__(self) -> str:
        buf = StringIO()
        self.print_stream(buf)
        return buf.getvalue()

    def __repr__(self) -> str:
        return (
            f"Hit(primary={self._primary}, track_id={self.track_id}, det_id={self.det_id}, "
            f"initial_energy={self._initial_energy!r}, pos={self.position.tolist()!r}, "
            f"mom={self.momentum.tolist()!r}, tof={self.time!r}, e_loss={self.energy_loss!r})"
        )
