"""
Operand lists for batched GEMM/GEMV.

A :class:`Batch` is a fixed-length list of operand pointers that all share one
shape, stride and transpose flag. Three batches (A, B, C) of equal length form
a :class:`BatchOperandSet`, i.e. one batched matrix-multiply stage. Batches
never own the memory they point at; they only own the pointer list.
"""

import copy
from typing import Iterator, List, Optional, Union

import torch

from .backends import BlasBackend, get_backend
from .check import PreconditionError, expect
from .view import DataPtr, View


class Batch:
    """
    Fixed-size list of operand pointers for one role (A, B or C) of a batched call.

    Parameters
    ----------
    num_entries : int
        number of slots
    nrows, ncols : int
        shape every assigned operand must have
    stride : int
        leading dimension of every operand (element increment for GEMV vectors)
    do_trans : bool
        whether the operands are used transposed
    dtype : torch.dtype, optional
        if given, every assigned view must have this dtype
    """

    def __init__(self,
                 num_entries: int,
                 nrows: int,
                 ncols: int,
                 stride: int,
                 do_trans: bool,
                 dtype: Optional[torch.dtype] = None):
        expect(num_entries > 0, f"num_entries must be positive, got {num_entries}")
        expect(nrows > 0, f"nrows must be positive, got {nrows}")
        expect(ncols > 0, f"ncols must be positive, got {ncols}")
        expect(stride > 0, f"stride must be positive, got {stride}")
        self._num_entries = num_entries
        self._nrows = nrows
        self._ncols = ncols
        self._stride = stride
        self._do_trans = bool(do_trans)
        self._dtype = dtype
        self._batch: Optional[List[Optional[DataPtr]]] = [None] * num_entries

    def num_entries(self) -> int:
        return self._num_entries

    def nrows(self) -> int:
        return self._nrows

    def ncols(self) -> int:
        return self._ncols

    def get_stride(self) -> int:
        return self._stride

    def get_trans(self) -> bool:
        return self._do_trans

    @property
    def dtype(self) -> Optional[torch.dtype]:
        return self._dtype

    def _slots(self) -> List[Optional[DataPtr]]:
        # a moved-from batch has no slot list to fall back on, even with checks off
        if self._batch is None:
            raise PreconditionError("batch was moved from")
        return self._batch

    def _check_position(self, position: int):
        expect(0 <= position < self._num_entries,
               f"position {position} outside [0, {self._num_entries})")

    def __call__(self, position: int) -> Optional[DataPtr]:
        self._check_position(position)
        return self._slots()[position]

    def assign_entry(self, a: View, position: int) -> None:
        """
        Store ``a.data()`` at ``position``.

        The slot must be empty: every slot is written at most once between
        clears, which is what catches two connectivity entries mapping onto
        the same batch position.
        """
        slots = self._slots()
        expect(a.nrows() == self._nrows and a.ncols() == self._ncols,
               f"view shape {a.shape} does not match batch shape ({self._nrows}, {self._ncols})")
        # the stride of a single column is never used to address it
        if self._ncols != 1:
            expect(a.stride() == self._stride,
                   f"view stride {a.stride()} does not match batch stride {self._stride}")
        if self._dtype is not None:
            expect(a.dtype == self._dtype,
                   f"view dtype {a.dtype} does not match batch dtype {self._dtype}")
        self._check_position(position)
        expect(slots[position] is None, f"batch position {position} is already assigned")
        slots[position] = a.data()

    def clear_entry(self, position: int) -> bool:
        """Unassign one slot; returns whether it had been assigned"""
        self._check_position(position)
        slots = self._slots()
        previous = slots[position]
        slots[position] = None
        return previous is not None

    def clear_all(self) -> "Batch":
        slots = self._slots()
        for i in range(self._num_entries):
            slots[i] = None
        return self

    def is_filled(self) -> bool:
        return all(ptr is not None for ptr in self._slots())

    def get_list(self) -> tuple:
        return tuple(self._slots())

    def assign(self, other: "Batch") -> "Batch":
        """Copy ``other``'s pointers into this batch; both must have the same layout"""
        if other is self:
            return self
        self._check_same_layout(other)
        self._batch = list(other._slots())
        return self

    def move(self) -> "Batch":
        """Transfer the pointer list to a new batch and leave this one unusable"""
        moved = Batch.__new__(Batch)
        moved.__dict__.update(self.__dict__)
        moved._batch = self._slots()
        self._batch = None
        return moved

    def _check_same_layout(self, other: "Batch"):
        expect(self._num_entries == other._num_entries,
               f"num_entries differ: {self._num_entries} vs {other._num_entries}")
        expect(self._nrows == other._nrows and self._ncols == other._ncols,
               f"shapes differ: ({self._nrows}, {self._ncols}) vs ({other._nrows}, {other._ncols})")
        expect(self._stride == other._stride,
               f"strides differ: {self._stride} vs {other._stride}")
        expect(self._do_trans == other._do_trans, "transpose flags differ")
        if self._dtype is not None and other._dtype is not None:
            expect(self._dtype == other._dtype, f"dtypes differ: {self._dtype} vs {other._dtype}")

    def __copy__(self) -> "Batch":
        duplicate = Batch.__new__(Batch)
        duplicate.__dict__.update(self.__dict__)
        duplicate._batch = list(self._slots())
        return duplicate

    def __eq__(self, other):
        if not isinstance(other, Batch):
            return NotImplemented
        if (self._nrows != other._nrows
                or self._ncols != other._ncols
                or self._stride != other._stride
                or self._num_entries != other._num_entries
                or self._do_trans != other._do_trans):
            return False
        return all(p == q for p, q in zip(self._slots(), other._slots()))

    __hash__ = None

    def __iter__(self) -> Iterator[Optional[DataPtr]]:
        return iter(self._slots())

    def __len__(self) -> int:
        return self._num_entries

    def __repr__(self):
        filled = "moved" if self._batch is None else \
            f"{sum(p is not None for p in self._batch)}/{self._num_entries} assigned"
        return (f"Batch([{self._nrows}x{self._ncols}], stride={self._stride}, "
                f"trans={self._do_trans}, {filled})")


class BatchOperandSet:
    """
    The A, B and C batches of one batched matrix-multiply stage.

    A and B are read, C is written; C cannot be transposed.
    """

    __slots__ = ("a", "b", "c")

    def __init__(self, a: Batch, b: Batch, c: Batch):
        expect(a.num_entries() == b.num_entries() == c.num_entries(),
               f"operand batches differ in size: "
               f"{a.num_entries()}, {b.num_entries()}, {c.num_entries()}")
        expect(not c.get_trans(), "the output batch cannot be transposed")
        self.a = a
        self.b = b
        self.c = c

    def __getitem__(self, index: int) -> Batch:
        return (self.a, self.b, self.c)[index]

    def __iter__(self) -> Iterator[Batch]:
        return iter((self.a, self.b, self.c))

    def __len__(self) -> int:
        return 3

    def num_entries(self) -> int:
        return self.a.num_entries()

    def is_filled(self) -> bool:
        return self.a.is_filled() and self.b.is_filled() and self.c.is_filled()

    def clear_all(self) -> "BatchOperandSet":
        for batch in self:
            batch.clear_all()
        return self

    def __copy__(self) -> "BatchOperandSet":
        return BatchOperandSet(copy.copy(self.a), copy.copy(self.b), copy.copy(self.c))

    def __eq__(self, other):
        if not isinstance(other, BatchOperandSet):
            return NotImplemented
        return self.a == other.a and self.b == other.b and self.c == other.c

    __hash__ = None

    def __repr__(self):
        return f"BatchOperandSet(a={self.a}, b={self.b}, c={self.c})"


def _first_output(c: Batch) -> Optional[DataPtr]:
    return next((ptr for ptr in c if ptr is not None), None)


def batched_gemm(a: Batch,
                 b: Batch,
                 c: Batch,
                 alpha: float,
                 beta: float,
                 backend: Union[str, BlasBackend, None] = 'auto') -> None:
    """
    C(i) := alpha * op(A(i)) @ op(B(i)) + beta * C(i) for every populated triple.

    Triples with an unassigned slot are skipped: they are unused capacity of a
    batch sized for the worst case.

    Parameters
    ----------
    a, b, c : Batch
        operand lists of equal cardinality; ``c`` must not be transposed
    alpha, beta : float
        BLAS scalars
    backend : str or BlasBackend, optional
        'auto' (default), 'pytorch', 'scipy' or a backend instance
    """
    expect(a.num_entries() == b.num_entries(),
           f"a and b differ in size: {a.num_entries()} vs {b.num_entries()}")
    expect(b.num_entries() == c.num_entries(),
           f"b and c differ in size: {b.num_entries()} vs {c.num_entries()}")
    expect(not c.get_trans(), "the output batch cannot be transposed")

    # shapes after the optional transpose
    rows_a = a.ncols() if a.get_trans() else a.nrows()
    cols_a = a.nrows() if a.get_trans() else a.ncols()
    rows_b = b.ncols() if b.get_trans() else b.nrows()
    cols_b = b.nrows() if b.get_trans() else b.ncols()

    expect(cols_a == rows_b, f"inner dimensions differ: {cols_a} vs {rows_b}")
    expect(c.nrows() == rows_a and c.ncols() == cols_b,
           f"output shape ({c.nrows()}, {c.ncols()}) expected ({rows_a}, {cols_b})")

    first = _first_output(c)
    if first is None:
        return
    blas = get_backend(backend, first.device, first.dtype)

    for pa, pb, pc in zip(a, b, c):
        if pa is None or pb is None or pc is None:
            continue
        blas.gemm(pa.as_matrix(a.nrows(), a.ncols(), a.get_stride()),
                  pb.as_matrix(b.nrows(), b.ncols(), b.get_stride()),
                  pc.as_matrix(c.nrows(), c.ncols(), c.get_stride()),
                  alpha, beta, a.get_trans(), b.get_trans())


def batched_gemv(a: Batch,
                 b: Batch,
                 c: Batch,
                 alpha: float,
                 beta: float,
                 backend: Union[str, BlasBackend, None] = 'auto') -> None:
    """
    C(i) := alpha * op(A(i)) @ B(i) + beta * C(i) for every populated triple.

    ``b`` and ``c`` hold single-column, untransposed operands; their stride is
    the element increment of the vector.
    """
    expect(a.num_entries() == b.num_entries(),
           f"a and b differ in size: {a.num_entries()} vs {b.num_entries()}")
    expect(b.num_entries() == c.num_entries(),
           f"b and c differ in size: {b.num_entries()} vs {c.num_entries()}")
    expect(not b.get_trans() and not c.get_trans(), "vector batches cannot be transposed")

    rows_a = a.ncols() if a.get_trans() else a.nrows()
    cols_a = a.nrows() if a.get_trans() else a.ncols()

    expect(cols_a == b.nrows(), f"inner dimensions differ: {cols_a} vs {b.nrows()}")
    expect(b.ncols() == 1, f"b must hold vectors, got {b.ncols()} columns")
    expect(c.ncols() == 1, f"c must hold vectors, got {c.ncols()} columns")
    expect(c.nrows() == rows_a, f"c has {c.nrows()} rows expected {rows_a}")

    first = _first_output(c)
    if first is None:
        return
    blas = get_backend(backend, first.device, first.dtype)

    for pa, pb, pc in zip(a, b, c):
        if pa is None or pb is None or pc is None:
            continue
        blas.gemv(pa.as_matrix(a.nrows(), a.ncols(), a.get_stride()),
                  pb.as_vector(b.nrows(), b.get_stride()),
                  pc.as_vector(c.nrows(), c.get_stride()),
                  alpha, beta, a.get_trans())
