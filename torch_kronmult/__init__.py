"""
torch-kronmult: batched Kronecker products for sparse-grid PDE operators

Applying a d-dimensional Kronecker product of ``degree x degree`` matrices
naively costs ``O(N^d)``. This package factors each application into d stages
of small dense GEMMs, batched across every (element, connected element, term)
triple of a sparse grid, with all reshapes expressed as strided views into a
few shared workspace buffers.

Backends
--------
- 'pytorch': torch.addmm / torch.addmv (CPU & CUDA)
- 'scipy': scipy.linalg.blas ?gemm / ?gemv (CPU)

Usage
-----
>>> import torch
>>> from torch_kronmult import (Dimension, MatrixPDE, ElementTable, RankWorkspace,
...                             full_chunk, apply_operator, dense_operator,
...                             build_batches, batched_gemm)
>>>
>>> dims = [Dimension(degree=2, level=2), Dimension(degree=2, level=2)]
>>> coeffs = [[torch.randn(8, 8, dtype=torch.float64) for _ in dims]]
>>> pde = MatrixPDE(dims, coeffs)
>>> table = ElementTable.from_level(2, num_dims=2)          # sparse grid
>>> chunk = full_chunk(table)
>>> workspace = RankWorkspace.allocate(pde, table, chunk)
>>> x = torch.randn(len(table) * 4, dtype=torch.float64)
>>> fx = apply_operator(pde, table, workspace, chunk, x)
>>> torch.allclose(fx, dense_operator(pde, table) @ x)
True
>>>
>>> # Lower level: fill the batches yourself and run them
>>> batches = build_batches(pde, table, workspace, chunk)
>>> for a, b, c in batches:
...     batched_gemm(a, b, c, 1.0, 0.0, backend='pytorch')
"""

from .check import (
    PreconditionError,
    ShapeException,
    checks_enabled,
    set_checks_enabled,
)

from .view import (
    DataPtr,
    View,
    vector_view,
    column_major,
)

from .batch import (
    Batch,
    BatchOperandSet,
    batched_gemm,
    batched_gemv,
)

from .backends import (
    BlasBackend,
    BackendType,
    BACKENDS,
    get_available_backends,
    get_backend,
    register_backend,
    select_backend,
    is_scipy_available,
)

from .sizing import (
    MatrixSizeSet,
    compute_batch_size,
    compute_dimensions,
    allocate_batches,
)

from .kronmult import (
    kron_base,
    kronmult_to_batch_sets,
)

from .pde import (
    Dimension,
    PDE,
    MatrixPDE,
)

from .element import (
    ElementTable,
    ElementChunk,
    Limits,
    get_1d_index,
    linearize,
    num_elements_in_chunk,
    max_connected_in_chunk,
    columns_in_chunk,
    full_chunk,
    assign_elements,
)

from .workspace import RankWorkspace

from .build import build_batches

from .execute import (
    execute_batches,
    reduce_chunk,
    apply_operator,
    dense_operator,
)

__version__ = "0.1.0"

__all__ = [
    # Checks
    "PreconditionError",
    "ShapeException",
    "checks_enabled",
    "set_checks_enabled",
    # Views
    "DataPtr",
    "View",
    "vector_view",
    "column_major",
    # Batches
    "Batch",
    "BatchOperandSet",
    "batched_gemm",
    "batched_gemv",
    # Backends
    "BlasBackend",
    "BackendType",
    "BACKENDS",
    "get_available_backends",
    "get_backend",
    "register_backend",
    "select_backend",
    "is_scipy_available",
    # Sizing
    "MatrixSizeSet",
    "compute_batch_size",
    "compute_dimensions",
    "allocate_batches",
    # Kronmult
    "kron_base",
    "kronmult_to_batch_sets",
    # PDE
    "Dimension",
    "PDE",
    "MatrixPDE",
    # Connectivity
    "ElementTable",
    "ElementChunk",
    "Limits",
    "get_1d_index",
    "linearize",
    "num_elements_in_chunk",
    "max_connected_in_chunk",
    "columns_in_chunk",
    "full_chunk",
    "assign_elements",
    # Workspace and sweep
    "RankWorkspace",
    "build_batches",
    "execute_batches",
    "reduce_chunk",
    "apply_operator",
    "dense_operator",
    # Version
    "__version__",
]
