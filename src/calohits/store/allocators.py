# src/calohits/store/allocators.py
from __future__ import annotations
from multiprocessing import shared_memory
from typing import Iterable, Iterator, List, Optional
import numpy as np

from calohits.physics.hits import Hit
from .layout import HIT_DTYPE, hit_from_record, hit_record, hits_to_array

# --- Interfaces -------------------------------------------------------------

class HitAllocator:
    """Base protocol: backing storage for a collection of hits."""
    name: str

    def append(self, hit: Hit) -> None:
        raise NotImplementedError

    def __len__(self) -> int:
        raise NotImplementedError

    def __getitem__(self, i: int) -> Hit:
        raise NotImplementedError

    def replace(self, hits: Iterable[Hit]) -> None:
        """Drop the current content and store ``hits`` instead."""
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def extend(self, hits: Iterable[Hit]) -> None:
        for h in hits:
            self.append(h)

    def __iter__(self) -> Iterator[Hit]:
        for i in range(len(self)):
            yield self[i]

    def to_list(self) -> List[Hit]:
        return list(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()

# --- Implementations --------------------------------------------------------

class ListAllocator(HitAllocator):
    """Hits kept as Python objects in the current process."""
    name = "list"

    def __init__(self):
        self._hits: List[Hit] = []

    def append(self, hit):
        self._hits.append(hit)

    def __len__(self):
        return len(self._hits)

    def __getitem__(self, i):
        return self._hits[i]

    def __iter__(self):
        return iter(self._hits)

    def replace(self, hits):
        self._hits = list(hits)

    def clear(self):
        self._hits = []


_HEADER_BYTES = np.dtype(np.int64).itemsize


class SharedMemoryAllocator(HitAllocator):
    """
    Hits kept as HIT_DTYPE records in a named shared-memory block, so that
    several processes can fill or read the same buffer.

    Block layout: int64 record count, then ``capacity`` records.
    Hits handed out by __getitem__ are fresh copies; mutate them and
    write back with replace() if the stored values must change.
    """
    name = "shm"

    def __init__(self, capacity: int, name: Optional[str] = None, create: bool = True):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = int(capacity)
        size = _HEADER_BYTES + self.capacity * HIT_DTYPE.itemsize
        self._owner = create
        self._shm = shared_memory.SharedMemory(name=name, create=create, size=size if create else 0)
        if self._shm.size < size:
            self._shm.close()
            raise ValueError(
                f"Shared block {self._shm.name!r} holds {self._shm.size} bytes, "
                f"need {size} for {self.capacity} hits"
            )
        self._count = np.ndarray((1,), dtype=np.int64, buffer=self._shm.buf, offset=0)
        self._records = np.ndarray(
            (self.capacity,), dtype=HIT_DTYPE, buffer=self._shm.buf, offset=_HEADER_BYTES
        )
        if create:
            self._count[0] = 0

    @classmethod
    def attach(cls, name: str, capacity: int) -> "SharedMemoryAllocator":
        """Open a block created by another allocator (possibly in another process)."""
        return cls(capacity, name=name, create=False)

    @property
    def shm_name(self) -> str:
        return self._shm.name

    @property
    def closed(self) -> bool:
        return self._records is None

    def _check_open(self) -> None:
        if self.closed:
            raise ValueError("Shared hit store is closed")

    def append(self, hit):
        self._check_open()
        n = int(self._count[0])
        if n >= self.capacity:
            raise ValueError(f"Shared hit store full ({self.capacity} hits)")
        # no view of the block may outlive a failed conversion
        rec = hit_record(hit)
        self._records[n] = rec[0]
        self._count[0] = n + 1

    def __len__(self):
        self._check_open()
        return int(self._count[0])

    def __getitem__(self, i):
        n = len(self)
        if i < 0:
            i += n
        if not 0 <= i < n:
            raise IndexError(f"hit index {i} out of range for {n} stored hits")
        return hit_from_record(self._records[i:i + 1].copy()[0])

    def records(self) -> np.ndarray:
        """Copy of the stored records."""
        return self._records[:len(self)].copy()

    def replace(self, hits):
        self._check_open()
        hits = list(hits)
        if len(hits) > self.capacity:
            raise ValueError(f"{len(hits)} hits exceed shared store capacity {self.capacity}")
        arr = hits_to_array(hits)
        self._records[:len(arr)] = arr
        self._count[0] = len(hits)

    def clear(self):
        self._check_open()
        self._count[0] = 0

    def close(self):
        if self.closed:
            return
        # views into the mapping must go before the mapping itself
        self._count = None
        self._records = None
        self._shm.close()
        if self._owner:
            self._shm.unlink()

    def unlink(self) -> None:
        """Free the block now, even if other processes still have it attached."""
        self._shm.unlink()
        self._owner = False

# --- Factory ----------------------------------------------------------------

def make_allocator(cfg_store=None) -> HitAllocator:
    if cfg_store is None or cfg_store.allocator == "list":
        return ListAllocator()
    elif cfg_store.allocator == "shm":
        return SharedMemoryAllocator(cfg_store.capacity, name=cfg_store.shm_name)
    else:
        raise ValueError(f"Unknown allocator {cfg_store.allocator}")
