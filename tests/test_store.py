import numpy as np
import pytest

from calohits.config.schemas import StoreCfg
from calohits.physics.hits import Hit
from calohits.store.allocators import ListAllocator, SharedMemoryAllocator, make_allocator
from calohits.store.layout import HIT_DTYPE, hits_from_array, hits_to_array


def _sample_hits():
    return [
        Hit(3, 1, 10, 0.1, (1.0, 2.0, 3.0), (0.5, 0.0, 4.0), 1.5, 0.25),
        Hit(1, 2, 11, 20.0, (0.0, -1.0, 7.5), (0.0, 0.1, 2.0), 2.5, 0.75),
    ]


def test_hit_dtype_keeps_initial_energy_single_precision():
    assert HIT_DTYPE["initial_energy"] == np.float32
    assert HIT_DTYPE["energy_loss"] == np.float64


def test_array_conversion_preserves_fields():
    hits = _sample_hits()
    arr = hits_to_array(hits)
    assert arr.shape == (2,)
    assert arr["det_id"].tolist() == [10, 11]
    back = hits_from_array(arr)
    for h, b in zip(hits, back):
        assert b.identity == h.identity
        assert b.track_id == h.track_id
        assert b.initial_energy == h.initial_energy
        np.testing.assert_array_equal(b.position, h.position)
        np.testing.assert_array_equal(b.momentum, h.momentum)
        assert b.time == h.time and b.energy_loss == h.energy_loss


def test_array_conversion_rejects_foreign_input():
    with pytest.raises(TypeError):
        hits_to_array([{"det_id": 1}])
    with pytest.raises(TypeError):
        hits_from_array(np.zeros(2))


def test_list_allocator_basic():
    alloc = ListAllocator()
    hits = _sample_hits()
    alloc.extend(hits)
    assert len(alloc) == 2
    assert alloc[0] is hits[0]
    alloc.replace(hits[1:])
    assert alloc.to_list() == [hits[1]]
    alloc.clear()
    assert len(alloc) == 0


def test_shared_allocator_stores_and_returns_copies():
    with SharedMemoryAllocator(4) as alloc:
        hits = _sample_hits()
        alloc.extend(hits)
        assert len(alloc) == 2
        got = alloc[-1]
        assert got is not hits[1]
        assert got.identity == (1, 11)
        assert got.energy_loss == 0.75
        assert [h.det_id for h in alloc] == [10, 11]
        assert alloc.records()["primary"].tolist() == [3, 1]
        with pytest.raises(IndexError):
            alloc[2]
    assert alloc.closed


def test_shared_allocator_capacity():
    with SharedMemoryAllocator(1) as alloc:
        alloc.append(Hit(primary=1))
        with pytest.raises(ValueError):
            alloc.append(Hit(primary=2))
        with pytest.raises(ValueError):
            alloc.replace(_sample_hits())
    with pytest.raises(ValueError):
        SharedMemoryAllocator(0)


def test_shared_allocator_attach_sees_writer():
    owner = SharedMemoryAllocator(8)
    try:
        reader = SharedMemoryAllocator.attach(owner.shm_name, 8)
        try:
            owner.extend(_sample_hits())
            assert len(reader) == 2
            assert reader[0].identity == (3, 10)
            reader.clear()
            assert len(owner) == 0
        finally:
            reader.close()
    finally:
        owner.close()


def test_closed_shared_allocator_refuses_access():
    alloc = SharedMemoryAllocator(2)
    alloc.close()
    with pytest.raises(ValueError):
        len(alloc)
    alloc.close()  # second close is a no-op


def test_make_allocator_from_config():
    assert isinstance(make_allocator(None), ListAllocator)
    assert isinstance(make_allocator(StoreCfg()), ListAllocator)
    alloc = make_allocator(StoreCfg(allocator="shm", capacity=16))
    try:
        assert isinstance(alloc, SharedMemoryAllocator)
        assert alloc.capacity == 16
    finally:
        alloc.close()


def _ndarray_locals(tb):
    while tb is not None:
        for v in tb.tb_frame.f_locals.values():
            if isinstance(v, np.ndarray):
                yield v
        tb = tb.tb_next


@pytest.mark.parametrize("bad", [Hit(mom=(1.0, 2.0)), Hit(primary=2**31), Hit(det_id=-2**31 - 1)])
def test_failed_shared_append_leaves_no_view_of_block(bad):
    alloc = SharedMemoryAllocator(2)
    try:
        with pytest.raises(ValueError) as excinfo:
            alloc.append(bad)
        assert len(alloc) == 0
        # frames below this test, i.e. inside the store and the record conversion
        inner = list(_ndarray_locals(excinfo.tb.tb_next))
        leaked = [a for a in inner if np.shares_memory(a, alloc._records)]
        assert leaked == []
        alloc.append(Hit(primary=1, det_id=4, e_loss=0.5))
        assert alloc[0].energy_loss == 0.5
    finally:
        alloc.close()
    assert alloc.closed


def test_failed_shared_replace_keeps_content():
    with SharedMemoryAllocator(4) as alloc:
        alloc.extend(_sample_hits())
        with pytest.raises(ValueError):
            alloc.replace([Hit(primary=1), Hit(track_id=2**40)])
        assert [h.identity for h in alloc] == [(3, 10), (1, 11)]


def test_record_ids_must_fit_int32():
    with pytest.raises(ValueError, match="primary"):
        hits_to_array([Hit(primary=2**31)])
    with pytest.raises(ValueError, match="track_id"):
        hits_to_array([Hit(track_id=-2**31 - 1)])
    arr = hits_to_array([Hit(primary=2**31 - 1, det_id=-2**31)])
    assert arr["primary"][0] == 2**31 - 1
    assert arr["det_id"][0] == -2**31


def test_record_needs_three_momentum_components():
    with pytest.raises(ValueError, match="momentum"):
        hits_to_array([Hit(mom=(1.0, 2.0))])
