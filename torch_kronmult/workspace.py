"""
Flat buffers shared by every kron product of a sweep.
"""

from typing import Optional, Sequence, Union

import torch

from .check import expect
from .element import (
    ElementChunk,
    ElementTable,
    columns_in_chunk,
    max_connected_in_chunk,
    num_elements_in_chunk,
)
from .pde import PDE


class RankWorkspace:
    """
    The four buffers one rank sweeps through.

    Parameters
    ----------
    batch_input : torch.Tensor
        [n_x] input vector entries of the connected elements of a chunk
    reduction_space : torch.Tensor
        [n_y] one ``degree**num_dims`` output block per kron product
    batch_intermediate : torch.Tensor
        [n_y * min(num_dims - 1, 2)] ping-pong scratch space
    unit_vector : torch.Tensor
        [n_u] ones, used to sum kron outputs during reduction
    """

    def __init__(self,
                 batch_input: torch.Tensor,
                 reduction_space: torch.Tensor,
                 batch_intermediate: torch.Tensor,
                 unit_vector: torch.Tensor):
        buffers = (batch_input, reduction_space, batch_intermediate, unit_vector)
        for buffer in buffers:
            expect(buffer.dim() == 1 and buffer.is_contiguous(),
                   f"workspace buffers must be contiguous 1D tensors, got shape {tuple(buffer.shape)}")
        expect(len({b.dtype for b in buffers}) == 1, "workspace buffers must share one dtype")
        expect(len({b.device for b in buffers}) == 1, "workspace buffers must share one device")
        self.batch_input = batch_input
        self.reduction_space = reduction_space
        self.batch_intermediate = batch_intermediate
        self.unit_vector = unit_vector

    @classmethod
    def allocate(cls,
                 pde: PDE,
                 table: ElementTable,
                 chunks: Union[ElementChunk, Sequence[ElementChunk]],
                 dtype: torch.dtype = torch.float64,
                 device: Optional[Union[str, torch.device]] = None) -> "RankWorkspace":
        """Allocate buffers large enough for the largest of ``chunks``"""
        if isinstance(chunks, ElementChunk):
            chunks = [chunks]
        expect(len(chunks) > 0, "need at least one chunk to size the workspace")
        expect(table.num_dims == pde.num_dims,
               f"element table has {table.num_dims} dimensions, PDE has {pde.num_dims}")

        elem_size = pde.degree ** pde.num_dims
        max_elems = max(num_elements_in_chunk(chunk) for chunk in chunks)
        max_connected = max(max_connected_in_chunk(chunk) for chunk in chunks)
        max_columns = max(columns_in_chunk(chunk).size() for chunk in chunks)
        num_workspaces = min(pde.num_dims - 1, 2)

        reduction_size = elem_size * max_elems * pde.num_terms
        return cls(
            batch_input=torch.zeros(max_columns * elem_size, dtype=dtype, device=device),
            reduction_space=torch.zeros(reduction_size, dtype=dtype, device=device),
            batch_intermediate=torch.zeros(reduction_size * num_workspaces, dtype=dtype, device=device),
            unit_vector=torch.ones(pde.num_terms * max_connected, dtype=dtype, device=device),
        )

    def get_unit_vector(self) -> torch.Tensor:
        return self.unit_vector

    @property
    def dtype(self) -> torch.dtype:
        return self.reduction_space.dtype

    @property
    def device(self) -> torch.device:
        return self.reduction_space.device

    def __repr__(self):
        return (f"RankWorkspace(batch_input={self.batch_input.numel()}, "
                f"reduction_space={self.reduction_space.numel()}, "
                f"batch_intermediate={self.batch_intermediate.numel()}, "
                f"unit_vector={self.unit_vector.numel()}, dtype={self.dtype})")
