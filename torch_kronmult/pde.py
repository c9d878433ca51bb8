"""
PDE descriptors consumed by the batching core.

The core only needs the dimension count, the (uniform) polynomial degree, the
term count and one coefficient matrix per (term, dimension). How those
matrices are produced (basis, quadrature, boundary conditions) is up to the
concrete descriptor.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import torch

from .check import expect, expect_shape
from .view import View, column_major


class Dimension:
    """
    One dimension of the grid.

    Parameters
    ----------
    degree : int
        polynomial degree (basis functions per cell)
    level : int
        refinement level, the dimension has ``2**level`` cells
    domain_min, domain_max : float, optional
        physical extent, by default [0, 1]
    """

    def __init__(self, degree: int, level: int, domain_min: float = 0.0, domain_max: float = 1.0):
        expect(degree > 0, f"degree must be positive, got {degree}")
        expect(level >= 0, f"level must be non-negative, got {level}")
        expect(domain_max > domain_min, f"empty domain [{domain_min}, {domain_max}]")
        self._degree = degree
        self._level = level
        self.domain_min = domain_min
        self.domain_max = domain_max

    def get_degree(self) -> int:
        return self._degree

    def get_level(self) -> int:
        return self._level

    @property
    def num_cells(self) -> int:
        return 2 ** self._level

    @property
    def coefficient_size(self) -> int:
        """Row/column count of this dimension's coefficient matrices"""
        return self._degree * self.num_cells

    def get_dt(self) -> float:
        """Cell width, the base time step the time integrator scales by its CFL number"""
        return (self.domain_max - self.domain_min) / self.num_cells

    def __repr__(self):
        return (f"Dimension(degree={self._degree}, level={self._level}, "
                f"domain=[{self.domain_min}, {self.domain_max}])")


class PDE(ABC):
    """Interface of a PDE as seen by the batching core."""

    def __init__(self, dimensions: Sequence[Dimension], num_terms: int):
        expect(len(dimensions) > 0, "a PDE needs at least one dimension")
        expect(num_terms > 0, f"num_terms must be positive, got {num_terms}")
        self._dimensions = list(dimensions)
        self.num_dims = len(self._dimensions)
        self.num_terms = num_terms

    def get_dimensions(self) -> List[Dimension]:
        return self._dimensions

    @property
    def degree(self) -> int:
        """Polynomial degree, which must be the same in every dimension"""
        degree = self._dimensions[0].get_degree()
        expect(all(d.get_degree() == degree for d in self._dimensions),
               "varying degree across dimensions is not supported")
        return degree

    def get_dt(self, dim: int) -> float:
        return self._dimensions[dim].get_dt()

    @abstractmethod
    def get_coefficients(self, term: int, dim: int) -> View:
        """Square [degree*2**level] coefficient matrix of ``term`` in dimension ``dim``"""


class MatrixPDE(PDE):
    """
    PDE built from precomputed dense coefficient matrices.

    Parameters
    ----------
    dimensions : Sequence[Dimension]
        grid dimensions
    coefficients : Sequence[Sequence[torch.Tensor]]
        ``coefficients[term][dim]`` is a dense [m, m] matrix with
        ``m = dimensions[dim].coefficient_size``
    dtype : torch.dtype, optional
        element type of the stored matrices, by default that of the inputs
    device : torch.device, optional
        device of the stored matrices, by default that of the inputs

    Examples
    --------
    >>> dims = [Dimension(degree=2, level=1)] * 2
    >>> pde = MatrixPDE(dims, [[torch.eye(4), torch.eye(4)]], dtype=torch.float64)
    >>> pde.get_coefficients(0, 1).shape
    (4, 4)
    """

    def __init__(self,
                 dimensions: Sequence[Dimension],
                 coefficients: Sequence[Sequence[torch.Tensor]],
                 dtype: Optional[torch.dtype] = None,
                 device: Optional[torch.device] = None):
        super().__init__(dimensions, len(coefficients))
        self._coefficients: List[List[View]] = []
        for term, matrices in enumerate(coefficients):
            expect(len(matrices) == self.num_dims,
                   f"term {term} has {len(matrices)} coefficient matrices, expected {self.num_dims}")
            views = []
            for dim, matrix in enumerate(matrices):
                matrix = torch.as_tensor(matrix, dtype=dtype, device=device)
                m = self._dimensions[dim].coefficient_size
                expect_shape(f"coefficients[{term}][{dim}]", matrix.shape, (m, m))
                views.append(column_major(matrix))
            self._coefficients.append(views)

    @property
    def dtype(self) -> torch.dtype:
        return self._coefficients[0][0].dtype

    @property
    def device(self) -> torch.device:
        return self._coefficients[0][0].device

    def get_coefficients(self, term: int, dim: int) -> View:
        expect(0 <= term < self.num_terms, f"term {term} outside [0, {self.num_terms})")
        expect(0 <= dim < self.num_dims, f"dim {dim} outside [0, {self.num_dims})")
        return self._coefficients[term][dim]

    def __repr__(self):
        return f"MatrixPDE(num_dims={self.num_dims}, num_terms={self.num_terms}, degree={self.degree})"
