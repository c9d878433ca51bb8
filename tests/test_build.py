"""
Tests for the sweep driver: connectivity, workspace sizing, batch building
and the end-to-end operator application against a dense reference.
"""

import pytest
import torch
from itertools import product
import sys

sys.path.insert(0, "..")
from torch_kronmult import (
    Dimension,
    ElementChunk,
    ElementTable,
    Limits,
    MatrixPDE,
    PreconditionError,
    RankWorkspace,
    ShapeException,
    apply_operator,
    assign_elements,
    build_batches,
    dense_operator,
    execute_batches,
    full_chunk,
    get_1d_index,
    is_scipy_available,
    max_connected_in_chunk,
    num_elements_in_chunk,
)


BACKENDS = ['pytorch'] + (['scipy'] if is_scipy_available() else [])


def make_pde(num_dims: int, degree: int, level: int, num_terms: int = 1, dtype=torch.float64):
    dims = [Dimension(degree, level) for _ in range(num_dims)]
    coeffs = [[torch.randn(d.coefficient_size, d.coefficient_size, dtype=dtype) for d in dims]
              for _ in range(num_terms)]
    return MatrixPDE(dims, coeffs)


# ============================================================================
# Connectivity
# ============================================================================

@pytest.mark.parametrize(['level', 'cell', 'index'], [(0, 0, 0), (1, 0, 1), (2, 0, 2), (2, 1, 3), (3, 2, 6)])
def test_get_1d_index(level, cell, index):
    assert get_1d_index(level, cell) == index


def test_element_table_from_level():
    assert len(ElementTable.from_level(1, 1)) == 2
    assert len(ElementTable.from_level(3, 1)) == 8
    # levels (0,0) (0,1) (1,0) (1,1) (0,2)x2 (2,0)x2
    assert len(ElementTable.from_level(2, 2)) == 8
    assert len(ElementTable.from_level(2, 2, full_grid=True)) == 16
    table = ElementTable.from_level(2, 3)
    assert table.num_dims == 3
    assert table.get_coords(0).tolist() == [0, 0, 0, 0, 0, 0]


def test_element_table_checks():
    with pytest.raises(PreconditionError):
        ElementTable([[0, 0, 0]])
    with pytest.raises(PreconditionError):
        ElementTable([[0, -1]])
    with pytest.raises(PreconditionError):
        ElementTable([[0, 0]]).get_coords(1)


def test_chunk_helpers():
    chunk = ElementChunk({2: Limits(1, 3), 1: Limits(0, 4)})
    assert chunk.begin() == 1
    assert chunk.end() == 2
    assert [i for i, _ in chunk] == [1, 2]
    assert chunk.at(2) == Limits(1, 3)
    assert num_elements_in_chunk(chunk) == 8
    assert max_connected_in_chunk(chunk) == 5
    with pytest.raises(PreconditionError):
        ElementChunk({0: Limits(0, 1), 2: Limits(0, 1)})
    with pytest.raises(PreconditionError):
        ElementChunk({0: Limits(2, 1)})


@pytest.mark.parametrize('num_chunks', [1, 2, 3, 4, 9])
def test_assign_elements_covers_every_pair_once(num_chunks):
    table = ElementTable.from_level(2, 1)
    n = len(table)
    chunks = assign_elements(table, num_chunks)
    assert len(chunks) == num_chunks
    pairs = [(i, j) for chunk in chunks for i, lim in chunk for j in range(lim.start, lim.stop + 1)]
    assert sorted(pairs) == [(i, j) for i in range(n) for j in range(n)]
    sizes = [num_elements_in_chunk(chunk) for chunk in chunks]
    assert max(sizes) - min(sizes) <= 1


def test_assign_elements_splits_rows():
    table = ElementTable.from_level(2, 1)  # cells at levels 0, 1, 2: 1 + 1 + 2
    assert len(table) == 4
    # 16 pairs in chunks of 6, 5, 5: boundaries fall inside rows 1 and 2
    chunks = assign_elements(table, 3)
    assert chunks[0] == ElementChunk({0: Limits(0, 3), 1: Limits(0, 1)})
    assert chunks[1] == ElementChunk({1: Limits(2, 3), 2: Limits(0, 2)})
    assert chunks[2] == ElementChunk({2: Limits(3, 3), 3: Limits(0, 3)})
    # 16 pairs in chunks of 4 line up with the rows
    chunks = assign_elements(table, 4)
    assert chunks[2] == ElementChunk({2: Limits(0, 3)})


# ============================================================================
# PDE and workspace
# ============================================================================

def test_dimension():
    dim = Dimension(3, 2, domain_min=-1.0, domain_max=1.0)
    assert dim.coefficient_size == 12
    assert dim.get_dt() == pytest.approx(0.5)


def test_matrix_pde_checks():
    dims = [Dimension(2, 1), Dimension(2, 1)]
    with pytest.raises(ShapeException):
        MatrixPDE(dims, [[torch.eye(4), torch.eye(3)]])
    with pytest.raises(PreconditionError):
        MatrixPDE(dims, [[torch.eye(4)]])
    with pytest.raises(PreconditionError):
        MatrixPDE([Dimension(2, 1), Dimension(3, 0)], [[torch.eye(4), torch.eye(3)]]).degree


@pytest.mark.parametrize('num_dims', [1, 2, 3, 4])
def test_workspace_allocate(num_dims):
    pde = make_pde(num_dims, 2, 1, num_terms=2)
    table = ElementTable.from_level(1, num_dims)
    chunk = full_chunk(table)
    workspace = RankWorkspace.allocate(pde, table, chunk)
    elem_size = 2 ** num_dims
    n = len(table)
    assert workspace.batch_input.numel() == n * elem_size
    assert workspace.reduction_space.numel() == n * n * 2 * elem_size
    assert workspace.batch_intermediate.numel() == workspace.reduction_space.numel() * min(num_dims - 1, 2)
    assert workspace.get_unit_vector().numel() == 2 * n
    torch.testing.assert_close(workspace.get_unit_vector(), torch.ones(2 * n, dtype=torch.float64))


# ============================================================================
# Batch building
# ============================================================================

def test_build_two_elements_two_dimensions():
    # element 0 at levels (0, 0), element 1 at levels (0, 1)
    dims = [Dimension(2, 0), Dimension(2, 1)]
    pde = MatrixPDE(dims, [[torch.randn(2, 2, dtype=torch.float64), torch.randn(4, 4, dtype=torch.float64)]])
    table = ElementTable([[0, 0, 0, 0], [0, 1, 0, 0]])
    chunk = full_chunk(table)
    workspace = RankWorkspace.allocate(pde, table, chunk)

    x = torch.randn(8, dtype=torch.float64)
    workspace.batch_input.copy_(x)
    batches = build_batches(pde, table, workspace, chunk)
    assert len(batches) == 2
    assert all(operands.is_filled() for operands in batches)
    assert batches[0].num_entries() == 4

    execute_batches(batches, backend='pytorch')

    c0 = pde.get_coefficients(0, 0).as_tensor()
    c1 = pde.get_coefficients(0, 1).as_tensor()
    offsets = [(0, 0), (0, 2)]
    for i, j in product(range(2), range(2)):
        kron_index = i * 2 + j
        (r0, r1), (s0, s1) = offsets[i], offsets[j]
        operator = torch.kron(c0[r0:r0 + 2, s0:s0 + 2], c1[r1:r1 + 2, s1:s1 + 2])
        torch.testing.assert_close(workspace.reduction_space[kron_index * 4:(kron_index + 1) * 4],
                                   operator @ x[j * 4:(j + 1) * 4])


def test_build_is_deterministic():
    pde = make_pde(3, 2, 1, num_terms=2)
    table = ElementTable.from_level(1, 3)
    chunk = full_chunk(table)
    workspace = RankWorkspace.allocate(pde, table, chunk)
    first = build_batches(pde, table, workspace, chunk)
    second = build_batches(pde, table, workspace, chunk)
    assert first == second


def test_build_rejects_undersized_workspace():
    pde = make_pde(2, 2, 1, num_terms=2)
    table = ElementTable.from_level(1, 2)
    chunk = full_chunk(table)
    good = RankWorkspace.allocate(pde, table, chunk)

    small_reduction = RankWorkspace(good.batch_input, good.reduction_space[:-1].contiguous(),
                                    good.batch_intermediate[:-1].contiguous(), good.unit_vector)
    with pytest.raises(PreconditionError):
        build_batches(pde, table, small_reduction, chunk)

    wrong_intermediate = RankWorkspace(good.batch_input, good.reduction_space,
                                       good.batch_intermediate[:-1], good.unit_vector)
    with pytest.raises(PreconditionError):
        build_batches(pde, table, wrong_intermediate, chunk)

    small_unit = RankWorkspace(good.batch_input, good.reduction_space,
                               good.batch_intermediate, good.unit_vector[:-1])
    with pytest.raises(PreconditionError):
        build_batches(pde, table, small_unit, chunk)

    small_input = RankWorkspace(good.batch_input[:-1], good.reduction_space,
                                good.batch_intermediate, good.unit_vector)
    with pytest.raises(PreconditionError):
        build_batches(pde, table, small_input, chunk)


def test_build_rejects_mismatched_table():
    pde = make_pde(2, 2, 1)
    table = ElementTable.from_level(1, 3)
    chunk = full_chunk(table)
    workspace = RankWorkspace.allocate(make_pde(3, 2, 1), table, chunk)
    with pytest.raises(PreconditionError):
        build_batches(pde, table, workspace, chunk)


# ============================================================================
# End to end
# ============================================================================

@pytest.mark.parametrize(
    ['num_dims', 'degree', 'num_terms', 'full_grid', 'backend'],
    product([1, 2, 3], [2, 3], [1, 2], [False, True], BACKENDS)
    )
def test_apply_operator_matches_dense(num_dims, degree, num_terms, full_grid, backend):
    level = {1: 3, 2: 2, 3: 1}[num_dims]
    pde = make_pde(num_dims, degree, level, num_terms)
    table = ElementTable.from_level(level, num_dims, full_grid=full_grid)
    chunk = full_chunk(table)
    workspace = RankWorkspace.allocate(pde, table, chunk)

    x = torch.randn(len(table) * degree ** num_dims, dtype=torch.float64)
    fx = apply_operator(pde, table, workspace, chunk, x, backend=backend)

    torch.testing.assert_close(fx, dense_operator(pde, table) @ x)


@pytest.mark.parametrize(['num_dims', 'num_chunks'], product([2, 3], [2, 3, 7]))
def test_apply_operator_in_chunks(num_dims, num_chunks):
    level = 2
    pde = make_pde(num_dims, 2, level, num_terms=2)
    table = ElementTable.from_level(level, num_dims)
    chunks = assign_elements(table, num_chunks)
    workspace = RankWorkspace.allocate(pde, table, chunks)

    x = torch.randn(len(table) * 2 ** num_dims, dtype=torch.float64)
    fx = apply_operator(pde, table, workspace, chunks, x, backend='pytorch')

    torch.testing.assert_close(fx, dense_operator(pde, table) @ x)


def test_apply_operator_is_repeatable():
    pde = make_pde(2, 2, 2, num_terms=2)
    table = ElementTable.from_level(2, 2)
    chunks = assign_elements(table, 3)
    workspace = RankWorkspace.allocate(pde, table, chunks)
    x = torch.randn(len(table) * 4, dtype=torch.float64)

    first = apply_operator(pde, table, workspace, chunks, x, backend='pytorch')
    # workspaces are reused across applications without reallocation
    second = apply_operator(pde, table, workspace, chunks, x, backend='pytorch')
    torch.testing.assert_close(first, second)


def test_apply_operator_float32():
    pde = make_pde(2, 2, 2, num_terms=1, dtype=torch.float32)
    table = ElementTable.from_level(2, 2)
    chunk = full_chunk(table)
    workspace = RankWorkspace.allocate(pde, table, chunk, dtype=torch.float32)
    x = torch.randn(len(table) * 4, dtype=torch.float32)

    with pytest.warns(UserWarning):
        fx = apply_operator(pde, table, workspace, chunk, x, backend='pytorch')
    torch.testing.assert_close(fx, dense_operator(pde, table) @ x, rtol=1e-4, atol=1e-4)


def test_apply_operator_rejects_dtype_mismatch():
    pde = make_pde(2, 2, 1)
    table = ElementTable.from_level(1, 2)
    chunk = full_chunk(table)
    workspace = RankWorkspace.allocate(pde, table, chunk, dtype=torch.float32)
    x = torch.randn(len(table) * 4, dtype=torch.float64)
    with pytest.raises(PreconditionError):
        apply_operator(pde, table, workspace, chunk, x)
