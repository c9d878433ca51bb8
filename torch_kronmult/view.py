"""
Non-owning column-major views over flat torch storage.

Workspaces and coefficient matrices are flat 1-D tensors (arenas); a
:class:`View` is only a shape, a stride and an element offset into one of them.
Element ``(r, c)`` of a view lives at ``storage[offset + r + c * stride]``.
Views never copy the underlying data, so anything written through
:meth:`View.as_tensor` lands in the arena.
"""

import torch
from typing import Optional, Tuple

from .check import expect


class DataPtr:
    """
    Raw operand pointer: a storage tensor plus an element offset.

    Two pointers compare equal iff they address the same memory location with
    the same element type; the pointee values are never compared.
    """

    __slots__ = ("storage", "offset")

    def __init__(self, storage: torch.Tensor, offset: int = 0):
        self.storage = storage
        self.offset = offset

    @property
    def address(self) -> int:
        return self.storage.data_ptr() + self.offset * self.storage.element_size()

    @property
    def dtype(self) -> torch.dtype:
        return self.storage.dtype

    @property
    def device(self) -> torch.device:
        return self.storage.device

    def as_matrix(self, nrows: int, ncols: int, stride: int) -> torch.Tensor:
        """[nrows, ncols] column-major tensor aliasing the storage"""
        return torch.as_strided(self.storage, (nrows, ncols), (1, stride),
                                self.storage.storage_offset() + self.offset)

    def as_vector(self, size: int, increment: int = 1) -> torch.Tensor:
        """[size] tensor aliasing the storage with the given element increment"""
        return torch.as_strided(self.storage, (size,), (increment,),
                                self.storage.storage_offset() + self.offset)

    def __eq__(self, other):
        if not isinstance(other, DataPtr):
            return NotImplemented
        return (self.address == other.address
                and self.dtype == other.dtype
                and self.device == other.device)

    def __hash__(self):
        return hash((self.address, self.dtype))

    def __repr__(self):
        return f"DataPtr(address={self.address:#x}, offset={self.offset}, dtype={self.dtype})"


class View:
    """
    Column-major window into a flat storage tensor.

    Parameters
    ----------
    storage : torch.Tensor
        [n] contiguous 1-D tensor the view points into; it is not copied
    nrows : int
        number of rows (the length, for a vector view)
    ncols : int, optional
        number of columns, by default 1
    offset : int, optional
        element offset of the view origin within ``storage``, by default 0
    stride : int, optional
        distance between consecutive columns, by default ``nrows``
    """

    __slots__ = ("_storage", "_nrows", "_ncols", "_offset", "_stride")

    def __init__(self,
                 storage: torch.Tensor,
                 nrows: int,
                 ncols: int = 1,
                 offset: int = 0,
                 stride: Optional[int] = None):
        if stride is None:
            stride = nrows
        expect(isinstance(storage, torch.Tensor), "view storage must be a torch.Tensor")
        expect(storage.dim() == 1 and storage.is_contiguous(),
               f"view storage must be a contiguous 1D tensor, got shape {tuple(storage.shape)}")
        expect(nrows > 0, f"nrows must be positive, got {nrows}")
        expect(ncols > 0, f"ncols must be positive, got {ncols}")
        expect(stride >= nrows, f"stride {stride} must be at least nrows {nrows}")
        expect(offset >= 0, f"offset must be non-negative, got {offset}")
        expect(offset + (ncols - 1) * stride + nrows <= storage.numel(),
               f"view [{nrows}x{ncols}, stride {stride}] at offset {offset} "
               f"exceeds storage of size {storage.numel()}")
        self._storage = storage
        self._nrows = nrows
        self._ncols = ncols
        self._offset = offset
        self._stride = stride

    @property
    def storage(self) -> torch.Tensor:
        return self._storage

    def nrows(self) -> int:
        return self._nrows

    def ncols(self) -> int:
        return self._ncols

    def stride(self) -> int:
        return self._stride

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def shape(self) -> Tuple[int, int]:
        return (self._nrows, self._ncols)

    @property
    def size(self) -> int:
        return self._nrows * self._ncols

    @property
    def dtype(self) -> torch.dtype:
        return self._storage.dtype

    @property
    def device(self) -> torch.device:
        return self._storage.device

    @property
    def is_vector(self) -> bool:
        return self._ncols == 1

    @property
    def is_tight(self) -> bool:
        """True if the view covers a gap-free range of storage"""
        return self._ncols == 1 or self._stride == self._nrows

    def data(self) -> DataPtr:
        return DataPtr(self._storage, self._offset)

    def as_tensor(self) -> torch.Tensor:
        """[nrows, ncols] tensor aliasing the viewed storage"""
        return self.data().as_matrix(self._nrows, self._ncols, self._stride)

    def window(self, row_start: int, row_stop: int, col_start: int, col_stop: int) -> "View":
        """Sub-matrix ``[row_start:row_stop, col_start:col_stop]`` sharing this view's stride"""
        expect(0 <= row_start < row_stop <= self._nrows,
               f"row window [{row_start}, {row_stop}) outside [0, {self._nrows})")
        expect(0 <= col_start < col_stop <= self._ncols,
               f"col window [{col_start}, {col_stop}) outside [0, {self._ncols})")
        return View(self._storage,
                    row_stop - row_start,
                    col_stop - col_start,
                    offset=self._offset + row_start + col_start * self._stride,
                    stride=self._stride)

    def segment(self, start: int, stop: int) -> "View":
        """Sub-vector ``[start:stop]`` of a vector view"""
        expect(self.is_vector, f"segment needs a vector view, got shape {self.shape}")
        return self.window(start, stop, 0, 1)

    def reshape(self, nrows: int, ncols: int, offset: int = 0) -> "View":
        """
        Reinterpret ``nrows * ncols`` elements starting ``offset`` elements into
        this (gap-free) view as a tightly packed matrix.
        """
        expect(self.is_tight, f"cannot reshape a strided view of shape {self.shape}, stride {self._stride}")
        expect(offset >= 0, f"offset must be non-negative, got {offset}")
        expect(offset + nrows * ncols <= self.size,
               f"reshape to [{nrows}x{ncols}] at offset {offset} exceeds view of size {self.size}")
        return View(self._storage, nrows, ncols, offset=self._offset + offset, stride=nrows)

    def __repr__(self):
        return (f"View(shape={self.shape}, stride={self._stride}, offset={self._offset}, "
                f"dtype={self.dtype})")


def vector_view(storage: torch.Tensor, start: int = 0, stop: Optional[int] = None) -> View:
    """View of ``storage[start:stop]`` as a vector"""
    if stop is None:
        stop = storage.numel()
    expect(0 <= start < stop, f"invalid vector range [{start}, {stop})")
    return View(storage, stop - start, 1, offset=start)


def column_major(matrix: torch.Tensor) -> View:
    """
    Copy a dense [m, n] tensor into a fresh column-major flat buffer and view all of it.

    The returned view keeps the buffer alive; it is the owner callers should
    hold on to when they need a coefficient matrix in BLAS layout.
    """
    expect(matrix.dim() == 2, f"matrix must be 2D, got shape {tuple(matrix.shape)}")
    m, n = matrix.shape
    storage = matrix.t().contiguous().reshape(-1)
    return View(storage, m, n)
