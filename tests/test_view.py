"""
Tests for non-owning views and operand pointers
"""

import pytest
import torch
import sys

sys.path.insert(0, "..")
from torch_kronmult import (
    View,
    PreconditionError,
    vector_view,
    column_major,
    set_checks_enabled,
)


def test_vector_view():
    storage = torch.arange(10, dtype=torch.float64)
    v = vector_view(storage, 2, 6)
    assert v.size == 4
    assert v.is_vector
    assert v.data().offset == 2
    torch.testing.assert_close(v.as_tensor().flatten(), storage[2:6])


def test_reshape_is_column_major():
    storage = torch.arange(12, dtype=torch.float64)
    m = vector_view(storage).reshape(3, 4)
    assert m.shape == (3, 4)
    assert m.stride() == 3
    torch.testing.assert_close(m.as_tensor(), storage.reshape(4, 3).t())


def test_reshape_with_offset():
    storage = torch.arange(12, dtype=torch.float64)
    m = vector_view(storage, 2, 10).reshape(2, 2, offset=4)
    assert m.offset == 6
    torch.testing.assert_close(m.as_tensor(), torch.tensor([[6., 8.], [7., 9.]], dtype=torch.float64))


@pytest.mark.parametrize('rows, cols', [(1, 1), (2, 3), (4, 3)])
def test_window_matches_dense_slice(rows, cols):
    dense = torch.randn(6, 5, dtype=torch.float64)
    full = column_major(dense)
    assert full.stride() == 6
    w = full.window(1, 1 + rows, 2, 2 + cols)
    assert w.shape == (rows, cols)
    assert w.stride() == 6
    torch.testing.assert_close(w.as_tensor(), dense[1:1 + rows, 2:2 + cols])


def test_writes_through_view_land_in_storage():
    storage = torch.zeros(8, dtype=torch.float64)
    m = vector_view(storage, 4, 8).reshape(2, 2)
    m.as_tensor().copy_(torch.tensor([[1., 3.], [2., 4.]], dtype=torch.float64))
    torch.testing.assert_close(storage, torch.tensor([0., 0., 0., 0., 1., 2., 3., 4.], dtype=torch.float64))


def test_nested_window():
    dense = torch.randn(8, 8, dtype=torch.float64)
    inner = column_major(dense).window(2, 6, 2, 6).window(1, 3, 0, 2)
    torch.testing.assert_close(inner.as_tensor(), dense[3:5, 2:4])


@pytest.mark.parametrize('bounds', [
    (0, 7, 0, 1),   # rows past the end
    (0, 2, 3, 6),   # cols past the end
    (2, 2, 0, 1),   # empty row range
    (-1, 1, 0, 1),  # negative start
])
def test_window_out_of_range(bounds):
    full = column_major(torch.randn(6, 5, dtype=torch.float64))
    with pytest.raises(PreconditionError):
        full.window(*bounds)


def test_view_exceeding_storage():
    storage = torch.zeros(10, dtype=torch.float64)
    with pytest.raises(PreconditionError):
        View(storage, 4, 3)
    with pytest.raises(PreconditionError):
        View(storage, 2, 2, offset=8)
    with pytest.raises(PreconditionError):
        View(storage, 3, 2, stride=2)


def test_view_requires_flat_storage():
    with pytest.raises(PreconditionError):
        View(torch.zeros(4, 4), 2, 2)


def test_reshape_rejects_strided_view():
    full = column_major(torch.randn(4, 4, dtype=torch.float64))
    with pytest.raises(PreconditionError):
        full.window(0, 2, 0, 2).reshape(4, 1)
    with pytest.raises(PreconditionError):
        vector_view(torch.zeros(6)).reshape(4, 2)


def test_data_ptr_identity():
    storage = torch.zeros(10, dtype=torch.float64)
    p = vector_view(storage, 2, 4).data()
    # a different tensor object over the same memory is the same pointer
    q = vector_view(storage[2:], 0, 2).data()
    r = vector_view(storage, 3, 5).data()
    assert p == q
    assert hash(p) == hash(q)
    assert p != r
    assert p != vector_view(torch.zeros(10, dtype=torch.float64), 2, 4).data()


def test_checks_can_be_disabled():
    previous = set_checks_enabled(False)
    try:
        full = column_major(torch.randn(4, 4, dtype=torch.float64))
        full.window(2, 2, 0, 1)
    finally:
        set_checks_enabled(previous)
    with pytest.raises(PreconditionError):
        full.window(2, 2, 0, 1)
