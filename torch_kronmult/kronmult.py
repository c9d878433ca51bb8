"""
Kronecker product times vector as a sequence of batched GEMMs.

For operators ``A[0..d-1]`` (each ``degree x degree``) and an input ``x`` of
``degree**d`` entries,

.. math::
    y = (A_{d-1} \\otimes \\cdots \\otimes A_1 \\otimes A_0) x

is computed by viewing ``x`` as a column-major ``degree x ... x degree``
tensor and contracting one mode per stage: stage 0 applies ``A[0]`` to the
fastest-varying mode, stage ``s`` applies ``A[s]`` to mode ``s``. Every reshape
is a :class:`View` over the same storage, so no data moves between stages.
Stages alternate between two work vectors (ping-pong) and the last one writes
straight into ``y``.

Nothing is computed here: the functions only assign views into pre-allocated
batches, which :func:`torch_kronmult.batch.batched_gemm` executes later.
"""

from typing import List, Sequence

from .batch import BatchOperandSet
from .check import expect
from .pde import PDE
from .sizing import compute_batch_size, compute_dimensions
from .view import View


def kron_base(A: View,
              x: View,
              y: View,
              batches: BatchOperandSet,
              batch_offset: int,
              degree: int,
              num_dims: int) -> None:
    """
    Enqueue the stage-0 GEMM ``y = A @ x`` with ``x``/``y`` reshaped to
    ``degree x degree**(num_dims-1)``.
    """
    sizes = compute_dimensions(degree, num_dims, 0)
    batches[0].assign_entry(A, batch_offset)
    batches[1].assign_entry(x.reshape(sizes.rows_b, sizes.cols_b), batch_offset)
    batches[2].assign_entry(y.reshape(sizes.rows_a, sizes.cols_b), batch_offset)


def kronmult_to_batch_sets(A: Sequence[View],
                           x: View,
                           y: View,
                           work: Sequence[View],
                           batches: List[BatchOperandSet],
                           batch_offset: int,
                           pde: PDE) -> None:
    """
    Enqueue the GEMMs computing one kron product times vector.

    Parameters
    ----------
    A : Sequence[View]
        [num_dims] ``degree x degree`` operator windows; ``A[0]`` acts on the
        fastest-varying mode of ``x``
    x : View
        input vector of ``degree**num_dims`` entries
    y : View
        output vector of the same size
    work : Sequence[View]
        ``min(num_dims - 1, 2)`` scratch vectors of the same size
    batches : List[BatchOperandSet]
        one pre-allocated operand set per dimension, filled in place
    batch_offset : int
        ordinal of this kron product; selects the batch slots it owns
    pde : PDE
        supplies degree and dimension count
    """
    degree = pde.degree
    num_dims = pde.num_dims

    result_size = degree ** num_dims
    expect(x.size == result_size, f"x has {x.size} entries expected {result_size}")
    expect(y.size == result_size, f"y has {y.size} entries expected {result_size}")

    expect(len(work) == min(num_dims - 1, 2),
           f"got {len(work)} work vectors expected {min(num_dims - 1, 2)}")
    for vector in work:
        expect(vector.size == result_size, f"work vector has {vector.size} entries expected {result_size}")

    expect(len(A) == num_dims, f"got {len(A)} operator views expected {num_dims}")
    for matrix in A:
        expect(matrix.shape == (degree, degree),
               f"operator view has shape {matrix.shape} expected ({degree}, {degree})")

    expect(len(batches) == num_dims, f"got {len(batches)} operand sets expected {num_dims}")
    expect(batch_offset >= 0, f"batch_offset must be non-negative, got {batch_offset}")

    if num_dims == 1:
        kron_base(A[0], x, y, batches[0], batch_offset, degree, num_dims)
        return

    kron_base(A[0], x, work[0], batches[0], batch_offset, degree, num_dims)

    for dimension in range(1, num_dims - 1):
        sizes = compute_dimensions(degree, num_dims, dimension)
        num_gemms = compute_batch_size(degree, num_dims, dimension)
        block_size = sizes.rows_a * sizes.cols_a
        expect(block_size * num_gemms == result_size,
               f"{num_gemms} blocks of {block_size} do not cover {result_size} entries")

        # each slab of this stage reads and writes its own block of the work vectors
        source = work[(dimension - 1) % 2]
        target = work[dimension % 2]
        for gemm in range(num_gemms):
            position = batch_offset * num_gemms + gemm
            batches[dimension][0].assign_entry(
                source.reshape(sizes.rows_a, sizes.cols_a, block_size * gemm), position)
            batches[dimension][1].assign_entry(A[dimension], position)
            batches[dimension][2].assign_entry(
                target.reshape(sizes.rows_a, sizes.cols_a, block_size * gemm), position)

    last = num_dims - 1
    sizes = compute_dimensions(degree, num_dims, last)
    batches[last][0].assign_entry(work[num_dims % 2].reshape(sizes.rows_a, sizes.cols_a), batch_offset)
    batches[last][1].assign_entry(A[last], batch_offset)
    batches[last][2].assign_entry(y.reshape(sizes.rows_a, sizes.cols_a), batch_offset)
