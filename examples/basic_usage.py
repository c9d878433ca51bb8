#!/usr/bin/env python
"""
Basic Usage Examples for torch-kronmult

This example demonstrates:
1. Strided views and operand batches
2. One Kronecker product as a sequence of batched GEMMs
3. Applying a sparse-grid operator chunk by chunk
"""

import torch
from torch_kronmult import (
    Batch,
    Dimension,
    ElementTable,
    MatrixPDE,
    RankWorkspace,
    allocate_batches,
    apply_operator,
    assign_elements,
    batched_gemm,
    column_major,
    dense_operator,
    execute_batches,
    full_chunk,
    get_available_backends,
    kronmult_to_batch_sets,
    vector_view,
)


# =============================================================================
# 1. Views and batches
# =============================================================================

def example_1_views():
    """Column-major windows into flat storage."""
    dense = torch.arange(20, dtype=torch.float64).reshape(4, 5)
    full = column_major(dense)
    window = full.window(1, 3, 2, 5)
    print(f"Full: {full}")
    print(f"Window rows 1:3, cols 2:5 (stride {window.stride()}):\n{window.as_tensor()}")

    # Writes through a view land in the storage
    storage = torch.zeros(6, dtype=torch.float64)
    vector_view(storage, 2, 6).reshape(2, 2).as_tensor().fill_(1.0)
    print(f"Storage after write: {storage}")


def example_2_batched_gemm():
    """Three independent 2x2 products in one call."""
    num = 3
    a_store = torch.randn(num * 4, dtype=torch.float64)
    b_store = torch.randn(num * 4, dtype=torch.float64)
    c_store = torch.zeros(num * 4, dtype=torch.float64)

    a = Batch(num, 2, 2, 2, False, torch.float64)
    b = Batch(num, 2, 2, 2, True, torch.float64)
    c = Batch(num, 2, 2, 2, False, torch.float64)
    for i in range(num):
        a.assign_entry(vector_view(a_store, 4 * i, 4 * i + 4).reshape(2, 2), i)
        b.assign_entry(vector_view(b_store, 4 * i, 4 * i + 4).reshape(2, 2), i)
        c.assign_entry(vector_view(c_store, 4 * i, 4 * i + 4).reshape(2, 2), i)

    batched_gemm(a, b, c, 1.0, 0.0)
    print(f"C[0] = A[0] @ B[0]^T:\n{c(0).as_matrix(2, 2, 2)}")


# =============================================================================
# 2. One Kronecker product
# =============================================================================

def example_3_single_kron():
    """y = (A2 kron A1 kron A0) x without forming the 27x27 matrix."""
    degree, num_dims = 3, 3
    size = degree ** num_dims
    pde = MatrixPDE([Dimension(degree, 0)] * num_dims,
                    [[torch.eye(degree, dtype=torch.float64)] * num_dims])

    A = [column_major(torch.randn(degree, degree, dtype=torch.float64)) for _ in range(num_dims)]
    x = vector_view(torch.randn(size, dtype=torch.float64))
    y = vector_view(torch.zeros(size, dtype=torch.float64))
    work_space = torch.zeros(2 * size, dtype=torch.float64)
    work = [vector_view(work_space, 0, size), vector_view(work_space, size, 2 * size)]

    batches = allocate_batches(pde, 1)
    kronmult_to_batch_sets(A, x, y, work, batches, 0, pde)
    execute_batches(batches)

    expected = torch.kron(torch.kron(A[2].as_tensor(), A[1].as_tensor()), A[0].as_tensor()) @ x.as_tensor().flatten()
    error = (y.as_tensor().flatten() - expected).abs().max().item()
    print(f"{num_dims} stages, max error vs dense kron: {error:.2e}")


# =============================================================================
# 3. Sparse-grid operator
# =============================================================================

def example_4_apply_operator():
    """Apply a two-term operator on a level-3 sparse grid in 2D."""
    degree, level, num_dims = 2, 3, 2
    dims = [Dimension(degree, level) for _ in range(num_dims)]
    coeffs = [[torch.randn(d.coefficient_size, d.coefficient_size, dtype=torch.float64) for d in dims]
              for _ in range(2)]
    pde = MatrixPDE(dims, coeffs)
    table = ElementTable.from_level(level, num_dims)
    print(f"{table}, element size {degree ** num_dims}")

    x = torch.randn(len(table) * degree ** num_dims, dtype=torch.float64)
    reference = dense_operator(pde, table) @ x

    # Everything in one chunk
    chunk = full_chunk(table)
    workspace = RankWorkspace.allocate(pde, table, chunk)
    print(f"Single chunk: {workspace}")
    for backend in get_available_backends():
        fx = apply_operator(pde, table, workspace, chunk, x, backend=backend)
        print(f"  {backend:8s} max error: {(fx - reference).abs().max().item():.2e}")

    # Smaller workspace, several chunks
    chunks = assign_elements(table, 5)
    workspace = RankWorkspace.allocate(pde, table, chunks)
    print(f"Five chunks: {workspace}")
    fx = apply_operator(pde, table, workspace, chunks, x)
    print(f"  max error: {(fx - reference).abs().max().item():.2e}")


if __name__ == "__main__":
    print("=" * 60)
    print("1. VIEWS AND BATCHES")
    print("=" * 60)
    example_1_views()
    print()
    example_2_batched_gemm()

    print("\n" + "=" * 60)
    print("2. ONE KRONECKER PRODUCT")
    print("=" * 60)
    example_3_single_kron()

    print("\n" + "=" * 60)
    print("3. SPARSE-GRID OPERATOR")
    print("=" * 60)
    example_4_apply_operator()

    print("\n" + "=" * 60)
    print("All examples completed!")
    print("=" * 60)
