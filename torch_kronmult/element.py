"""
Element table and connectivity chunks.

An element is identified by its index in an :class:`ElementTable`; its
coordinate vector holds one level per dimension followed by one cell per
dimension. A chunk is a contiguous range of elements, each paired with an
inclusive range of the elements it is connected to.
"""

import itertools
from typing import Dict, Iterator, List, NamedTuple, Sequence, Tuple

import torch

from .check import expect


def get_1d_index(level: int, cell: int) -> int:
    """Position of (level, cell) in the hierarchical 1D ordering"""
    expect(level >= 0, f"level must be non-negative, got {level}")
    expect(cell >= 0, f"cell must be non-negative, got {cell}")
    if level == 0:
        return 0
    return 2 ** (level - 1) + cell


def linearize(coords: Sequence[int]) -> List[int]:
    """Per-dimension 1D indices from a (levels..., cells...) coordinate vector"""
    expect(len(coords) % 2 == 0, f"coordinate vector must have even length, got {len(coords)}")
    num_dims = len(coords) // 2
    return [get_1d_index(int(coords[d]), int(coords[d + num_dims])) for d in range(num_dims)]


class ElementTable:
    """
    Coordinates of the active grid elements.

    Parameters
    ----------
    coords : Sequence[Sequence[int]]
        [n, 2*num_dims] level and cell indices of every element
    """

    def __init__(self, coords: Sequence[Sequence[int]]):
        coords = torch.as_tensor(coords, dtype=torch.long)
        expect(coords.dim() == 2 and coords.shape[0] > 0,
               f"coords must be a non-empty [n, 2*num_dims] table, got shape {tuple(coords.shape)}")
        expect(coords.shape[1] > 0 and coords.shape[1] % 2 == 0,
               f"coordinate vectors must have even length, got {coords.shape[1]}")
        expect(bool((coords >= 0).all()), "levels and cells must be non-negative")
        self._coords = coords

    @classmethod
    def from_level(cls, level: int, num_dims: int, full_grid: bool = False) -> "ElementTable":
        """
        Enumerate the elements of a sparse grid (level sum <= ``level``) or a
        full grid (every level <= ``level``).
        """
        expect(level >= 0, f"level must be non-negative, got {level}")
        expect(num_dims > 0, f"num_dims must be positive, got {num_dims}")
        coords = []
        for levels in itertools.product(range(level + 1), repeat=num_dims):
            if not full_grid and sum(levels) > level:
                continue
            cell_ranges = [range(max(1, 2 ** (lev - 1))) for lev in levels]
            for cells in itertools.product(*cell_ranges):
                coords.append(list(levels) + list(cells))
        return cls(coords)

    @property
    def num_dims(self) -> int:
        return self._coords.shape[1] // 2

    def get_coords(self, index: int) -> torch.Tensor:
        expect(0 <= index < len(self), f"element {index} outside [0, {len(self)})")
        return self._coords[index]

    def size(self) -> int:
        return self._coords.shape[0]

    def __len__(self) -> int:
        return self.size()

    def __repr__(self):
        return f"ElementTable(num_elements={len(self)}, num_dims={self.num_dims})"


class Limits(NamedTuple):
    """Inclusive element range"""
    start: int
    stop: int

    def size(self) -> int:
        return self.stop - self.start + 1


class ElementChunk:
    """
    Contiguous rows of the connectivity, each with the range of elements it touches.

    Iterating yields ``(element, Limits)`` pairs in element order.
    """

    def __init__(self, rows: Dict[int, Limits]):
        expect(len(rows) > 0, "a chunk needs at least one element")
        ordered = sorted((int(i), Limits(int(lim[0]), int(lim[1]))) for i, lim in rows.items())
        first = ordered[0][0]
        expect([i for i, _ in ordered] == list(range(first, first + len(ordered))),
               "chunk elements must form a contiguous range")
        for i, lim in ordered:
            expect(0 <= lim.start <= lim.stop, f"element {i} has invalid connected range {lim}")
        self._rows = dict(ordered)

    def begin(self) -> int:
        return next(iter(self._rows))

    def end(self) -> int:
        """Last element (inclusive)"""
        return self.begin() + len(self._rows) - 1

    def at(self, element: int) -> Limits:
        expect(element in self._rows, f"element {element} is not part of this chunk")
        return self._rows[element]

    def size(self) -> int:
        return len(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Tuple[int, Limits]]:
        return iter(self._rows.items())

    def __eq__(self, other):
        if not isinstance(other, ElementChunk):
            return NotImplemented
        return self._rows == other._rows

    __hash__ = None

    def __repr__(self):
        return f"ElementChunk({self._rows})"


def num_elements_in_chunk(chunk: ElementChunk) -> int:
    """Number of (element, connected element) pairs in the chunk"""
    return sum(lim.size() for _, lim in chunk)


def max_connected_in_chunk(chunk: ElementChunk) -> int:
    return max(lim.size() for _, lim in chunk)


def columns_in_chunk(chunk: ElementChunk) -> Limits:
    """Smallest range covering every connected element of the chunk"""
    return Limits(min(lim.start for _, lim in chunk), max(lim.stop for _, lim in chunk))


def full_chunk(table: ElementTable) -> ElementChunk:
    """Every element connected to every element, as a single chunk"""
    n = table.size()
    return ElementChunk({i: Limits(0, n - 1) for i in range(n)})


def assign_elements(table: ElementTable, num_chunks: int) -> List[ElementChunk]:
    """
    Split the full connectivity of ``table`` into ``num_chunks`` chunks of
    near-equal work.

    Pairs are taken row-major, so a chunk boundary may fall inside a row: that
    row then appears in both chunks with complementary connected ranges.
    """
    n = table.size()
    total = n * n
    expect(0 < num_chunks <= total, f"num_chunks must be in [1, {total}], got {num_chunks}")

    base, extra = divmod(total, num_chunks)
    chunks = []
    pair = 0
    for c in range(num_chunks):
        count = base + (1 if c < extra else 0)
        first, last = pair, pair + count - 1
        rows = {}
        for row in range(first // n, last // n + 1):
            start = first % n if row == first // n else 0
            stop = last % n if row == last // n else n - 1
            rows[row] = Limits(start, stop)
        chunks.append(ElementChunk(rows))
        pair += count
    return chunks
