"""
Running a sweep: execute the kron batches, then reduce their outputs.

:func:`apply_operator` is the full ``fx = A x`` for the sparse-grid operator
described by a PDE and an element table, chunk by chunk:

1. copy the chunk's input entries into ``workspace.batch_input``
2. :func:`~torch_kronmult.build.build_batches` and :func:`execute_batches`
3. :func:`reduce_chunk` sums, per element, the outputs of all its
   (connected element, term) kron products into ``fx``
"""

from typing import Dict, List, Sequence, Tuple, Union

import torch

from .backends import BlasBackend
from .batch import Batch, BatchOperandSet, batched_gemm, batched_gemv
from .build import build_batches
from .check import expect
from .element import ElementChunk, ElementTable, columns_in_chunk, linearize
from .pde import PDE
from .view import vector_view
from .workspace import RankWorkspace


BackendArg = Union[str, BlasBackend, None]


def execute_batches(batches: Sequence[BatchOperandSet], backend: BackendArg = 'auto') -> None:
    """Run the per-dimension stages in order, each as ``C = A @ B``"""
    for operands in batches:
        batched_gemm(operands.a, operands.b, operands.c, 1.0, 0.0, backend=backend)


def reduce_chunk(pde: PDE,
                 workspace: RankWorkspace,
                 chunk: ElementChunk,
                 fx: torch.Tensor,
                 backend: BackendArg = 'auto') -> None:
    """
    Accumulate the kron outputs of ``chunk`` into ``fx``.

    The outputs of one element are ``num_terms * num_connected`` consecutive
    blocks of ``reduction_space``; viewed as an ``elem_size x width`` matrix
    they are summed with one GEMV against the unit vector. Elements with the
    same width share a batch.

    Parameters
    ----------
    fx : torch.Tensor
        [table_size * elem_size] output vector, accumulated into (``beta = 1``)
    """
    elem_size = pde.degree ** pde.num_dims
    expect(fx.dim() == 1 and fx.is_contiguous(), "fx must be a contiguous 1D tensor")
    expect(fx.dtype == workspace.dtype, f"fx dtype {fx.dtype} does not match workspace {workspace.dtype}")

    groups: Dict[int, List[Tuple[int, int]]] = {}
    prev_row_elems = 0
    for i, connected in chunk:
        width = connected.size() * pde.num_terms
        groups.setdefault(width, []).append((i, prev_row_elems * pde.num_terms * elem_size))
        prev_row_elems += connected.size()

    for width, rows in groups.items():
        expect(workspace.get_unit_vector().numel() >= width,
               f"unit_vector holds {workspace.get_unit_vector().numel()} entries, need {width}")
        a = Batch(len(rows), elem_size, width, elem_size, False, fx.dtype)
        b = Batch(len(rows), width, 1, 1, False, fx.dtype)
        c = Batch(len(rows), elem_size, 1, 1, False, fx.dtype)
        unit = vector_view(workspace.get_unit_vector(), 0, width)
        for position, (element, start) in enumerate(rows):
            outputs = vector_view(workspace.reduction_space, start, start + elem_size * width)
            a.assign_entry(outputs.reshape(elem_size, width), position)
            b.assign_entry(unit, position)
            c.assign_entry(vector_view(fx, element * elem_size, (element + 1) * elem_size), position)
        batched_gemv(a, b, c, 1.0, 1.0, backend=backend)


def apply_operator(pde: PDE,
                   table: ElementTable,
                   workspace: RankWorkspace,
                   chunks: Union[ElementChunk, Sequence[ElementChunk]],
                   x: torch.Tensor,
                   backend: BackendArg = 'auto') -> torch.Tensor:
    """
    Apply the sparse-grid operator to ``x``.

    Parameters
    ----------
    pde : PDE
        problem description
    table : ElementTable
        active elements
    workspace : RankWorkspace
        buffers sized for the largest chunk (see :meth:`RankWorkspace.allocate`)
    chunks : ElementChunk or Sequence[ElementChunk]
        connectivity, split into chunks that together cover every pair once
    x : torch.Tensor
        [table_size * elem_size] input vector
    backend : str or BlasBackend, optional
        linear-algebra backend, by default 'auto'

    Returns
    -------
    torch.Tensor
        [table_size * elem_size] result ``A @ x``
    """
    if isinstance(chunks, ElementChunk):
        chunks = [chunks]
    elem_size = pde.degree ** pde.num_dims
    expect(x.dim() == 1 and x.numel() == table.size() * elem_size,
           f"x has shape {tuple(x.shape)} expected [{table.size() * elem_size}]")
    expect(x.dtype == workspace.dtype, f"x dtype {x.dtype} does not match workspace {workspace.dtype}")

    fx = torch.zeros(x.numel(), dtype=x.dtype, device=workspace.device)
    for chunk in chunks:
        columns = columns_in_chunk(chunk)
        count = columns.size() * elem_size
        expect(workspace.batch_input.numel() >= count,
               f"batch_input holds {workspace.batch_input.numel()} entries, chunk needs {count}")
        workspace.batch_input[:count].copy_(x[columns.start * elem_size:(columns.stop + 1) * elem_size])

        batches = build_batches(pde, table, workspace, chunk)
        execute_batches(batches, backend=backend)
        reduce_chunk(pde, workspace, chunk, fx, backend=backend)
    return fx


def dense_operator(pde: PDE, table: ElementTable) -> torch.Tensor:
    """
    Assemble the operator applied by :func:`apply_operator` as a dense matrix.

    Block ``(i, j)`` is the sum over terms of the Kronecker product of the
    coefficient windows, dimension 0 outermost. Meant for testing and
    debugging; its size grows with the square of the element count.
    """
    degree = pde.degree
    elem_size = degree ** pde.num_dims
    n = table.size()
    coefficients = [[pde.get_coefficients(k, d).as_tensor() for d in range(pde.num_dims)]
                    for k in range(pde.num_terms)]
    dtype = coefficients[0][0].dtype
    device = coefficients[0][0].device

    offsets = [[index * degree for index in linearize(table.get_coords(e).tolist())] for e in range(n)]
    dense = torch.zeros(n * elem_size, n * elem_size, dtype=dtype, device=device)
    for i in range(n):
        for j in range(n):
            block = dense[i * elem_size:(i + 1) * elem_size, j * elem_size:(j + 1) * elem_size]
            for k in range(pde.num_terms):
                product = torch.ones(1, 1, dtype=dtype, device=device)
                for d in range(pde.num_dims):
                    r, c = offsets[i][d], offsets[j][d]
                    product = torch.kron(product, coefficients[k][d][r:r + degree, c:c + degree])
                block += product
    return dense
