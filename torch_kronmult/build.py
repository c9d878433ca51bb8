"""
Sweep driver: turn a chunk of the element connectivity into filled batches.

Every (element ``i``, connected element ``j``, term ``k``) triple of the chunk
is one kron product

.. math::
    y_{ijk} = \\left(A^{(k)}_{0}[i_0, j_0] \\otimes \\cdots \\otimes A^{(k)}_{d-1}[i_{d-1}, j_{d-1}]\\right) x_j

where ``A[i_d, j_d]`` is the ``degree x degree`` window of the term's
coefficient matrix at the elements' 1D indices. Triples are numbered
term-major, then connected element, then element (the kron index); the
number fixes both the batch slots and the workspace blocks a triple uses, so
no two triples share either.
"""

import warnings
from typing import Dict, List

import torch

from .batch import BatchOperandSet
from .check import expect
from .element import (
    ElementChunk,
    ElementTable,
    columns_in_chunk,
    linearize,
    max_connected_in_chunk,
    num_elements_in_chunk,
)
from .kronmult import kronmult_to_batch_sets
from .pde import PDE
from .sizing import allocate_batches
from .view import View, vector_view
from .workspace import RankWorkspace


def build_batches(pde: PDE,
                  elem_table: ElementTable,
                  workspace: RankWorkspace,
                  chunk: ElementChunk) -> List[BatchOperandSet]:
    """
    Allocate and fill the batches computing every kron product of ``chunk``.

    On return, executing the operand sets in order (see
    :func:`torch_kronmult.execute.execute_batches`) writes the output of
    triple ``kron_index`` to
    ``workspace.reduction_space[kron_index * elem_size:(kron_index + 1) * elem_size]``.

    Parameters
    ----------
    pde : PDE
        problem description
    elem_table : ElementTable
        coordinates of the elements
    workspace : RankWorkspace
        buffers; ``batch_input`` must already hold the input entries of the
        chunk's connected elements, starting at ``columns_in_chunk(chunk).start``
    chunk : ElementChunk
        rows of the connectivity to sweep

    Returns
    -------
    List[BatchOperandSet]
        one operand set per dimension, ready for sequential batched GEMMs
    """
    degree = pde.degree
    num_dims = pde.num_dims
    num_terms = pde.num_terms
    elem_size = degree ** num_dims

    expect(elem_table.num_dims == num_dims,
           f"element table has {elem_table.num_dims} dimensions, PDE has {num_dims}")

    columns = columns_in_chunk(chunk)
    expect(columns.stop < elem_table.size(),
           f"chunk connects to element {columns.stop}, table has {elem_table.size()}")
    expect(workspace.batch_input.numel() >= columns.size() * elem_size,
           f"batch_input holds {workspace.batch_input.numel()} entries, "
           f"chunk needs {columns.size() * elem_size}")

    elements_in_chunk = num_elements_in_chunk(chunk)
    expect(workspace.reduction_space.numel() >= elem_size * elements_in_chunk * num_terms,
           f"reduction_space holds {workspace.reduction_space.numel()} entries, "
           f"chunk needs {elem_size * elements_in_chunk * num_terms}")

    num_workspaces = min(num_dims - 1, 2)
    expect(workspace.batch_intermediate.numel() == workspace.reduction_space.numel() * num_workspaces,
           f"batch_intermediate holds {workspace.batch_intermediate.numel()} entries, "
           f"expected {workspace.reduction_space.numel() * num_workspaces}")

    max_items_to_reduce = num_terms * max_connected_in_chunk(chunk)
    expect(workspace.get_unit_vector().numel() >= max_items_to_reduce,
           f"unit_vector holds {workspace.get_unit_vector().numel()} entries, "
           f"chunk needs {max_items_to_reduce}")

    if workspace.dtype != torch.float64:
        warnings.warn("You'd better use float64 to maintain good precision")

    batches = allocate_batches(pde, elements_in_chunk, dtype=workspace.dtype)

    operator_offsets: Dict[int, List[int]] = {}

    def operator_offset(element: int) -> List[int]:
        if element not in operator_offsets:
            coords = elem_table.get_coords(element)
            expect(coords.numel() == num_dims * 2,
                   f"element {element} has {coords.numel()} coordinates expected {num_dims * 2}")
            operator_offsets[element] = [index * degree for index in linearize(coords.tolist())]
        return operator_offsets[element]

    prev_row_elems = 0
    for i, connected in chunk:
        operator_row = operator_offset(i)

        # full connectivity within the declared range
        for j in range(connected.start, connected.stop + 1):
            operator_col = operator_offset(j)
            total_prev_elems = prev_row_elems + j - connected.start

            x_index = (j - columns.start) * elem_size
            x_view = vector_view(workspace.batch_input, x_index, x_index + elem_size)

            for k in range(num_terms):
                kron_index = k + total_prev_elems * num_terms

                y_index = elem_size * kron_index
                y_view = vector_view(workspace.reduction_space, y_index, y_index + elem_size)

                work_index = elem_size * kron_index * num_workspaces
                work_views = [
                    vector_view(workspace.batch_intermediate,
                                work_index + w * elem_size,
                                work_index + (w + 1) * elem_size)
                    for w in range(num_workspaces)
                ]

                operator_views = [
                    _operator_window(pde.get_coefficients(k, d), operator_row[d], operator_col[d], degree)
                    for d in reversed(range(num_dims))
                ]

                kronmult_to_batch_sets(operator_views, x_view, y_view, work_views,
                                       batches, kron_index, pde)

        prev_row_elems += connected.size()

    return batches


def _operator_window(coefficients: View, row: int, col: int, degree: int) -> View:
    return coefficients.window(row, row + degree, col, col + degree)
