"""
Sizing and allocation of the per-dimension batch operand sets.

A kron product over ``d`` dimensions is applied as ``d`` stages of small
GEMMs. For every stage this module knows how many GEMMs one (element,
connected element, term) triple contributes and what shape their operands
have, and it allocates empty batches accordingly.
"""

from typing import List, NamedTuple, Optional

import torch

from .batch import Batch, BatchOperandSet
from .check import expect
from .pde import PDE


class MatrixSizeSet(NamedTuple):
    rows_a: int
    cols_a: int
    rows_b: int
    cols_b: int


def _check_stage(degree: int, num_dims: int, dimension: int):
    expect(num_dims > 0, f"num_dims must be positive, got {num_dims}")
    expect(degree > 0, f"degree must be positive, got {degree}")
    expect(0 <= dimension < num_dims, f"dimension {dimension} outside [0, {num_dims})")


def compute_batch_size(degree: int, num_dims: int, dimension: int) -> int:
    """
    Number of GEMMs one kron product adds at ``dimension``.

    The first and last stages each touch the whole element in one GEMM; an
    intermediate stage works on ``degree**(num_dims - dimension - 1)`` slabs.
    """
    _check_stage(degree, num_dims, dimension)
    if dimension == 0 or dimension == num_dims - 1:
        return 1
    return degree ** (num_dims - dimension - 1)


def compute_dimensions(degree: int, num_dims: int, dimension: int) -> MatrixSizeSet:
    """Operand shapes of the GEMMs at ``dimension``"""
    _check_stage(degree, num_dims, dimension)
    if dimension == 0:
        return MatrixSizeSet(degree, degree, degree, degree ** (num_dims - 1))
    return MatrixSizeSet(degree ** dimension, degree, degree, degree)


def allocate_batches(pde: PDE, num_elems: int, dtype: Optional[torch.dtype] = None) -> List[BatchOperandSet]:
    """
    Create empty batches with the right shapes and cardinality for ``pde``.

    Parameters
    ----------
    pde : PDE
        problem description
    num_elems : int
        number of (element, connected element) pairs the batches must hold
    dtype : torch.dtype, optional
        if given, the batches only accept views of this dtype

    Returns
    -------
    List[BatchOperandSet]
        one operand set per dimension. Stage 0 multiplies the coefficient
        window (A) with the reshaped input (B); later stages multiply the
        previous stage's output (A) with the transposed coefficient window (B).
    """
    expect(num_elems > 0, f"num_elems must be positive, got {num_elems}")
    degree = pde.degree
    num_dims = pde.num_dims

    # stage s consumes the coefficients of dimension num_dims - 1 - s
    def coefficient_stride(stage: int) -> int:
        return pde.get_coefficients(0, num_dims - 1 - stage).stride()

    batches = []

    num_gemms = pde.num_terms * num_elems
    sizes = compute_dimensions(degree, num_dims, 0)
    batches.append(BatchOperandSet(
        Batch(num_gemms, sizes.rows_a, sizes.cols_a, coefficient_stride(0), False, dtype),
        Batch(num_gemms, sizes.rows_b, sizes.cols_b, sizes.rows_b, False, dtype),
        Batch(num_gemms, sizes.rows_a, sizes.cols_b, sizes.rows_a, False, dtype),
    ))

    for dimension in range(1, num_dims):
        num_gemms = compute_batch_size(degree, num_dims, dimension) * pde.num_terms * num_elems
        sizes = compute_dimensions(degree, num_dims, dimension)
        batches.append(BatchOperandSet(
            Batch(num_gemms, sizes.rows_a, sizes.cols_a, sizes.rows_a, False, dtype),
            Batch(num_gemms, sizes.rows_b, sizes.cols_b, coefficient_stride(dimension), True, dtype),
            Batch(num_gemms, sizes.rows_a, sizes.rows_b, sizes.rows_a, False, dtype),
        ))
    return batches
