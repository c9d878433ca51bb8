"""
Interface every dense linear-algebra provider implements.

Operands arrive as strided tensors aliasing caller storage (see
:meth:`torch_kronmult.view.DataPtr.as_matrix`): the BLAS leading dimension is
the tensor's column stride, and results must be written into ``c``/``y`` in
place so they land in the workspace.
"""

from abc import ABC, abstractmethod

import torch


class BlasBackend(ABC):
    """Dense GEMM/GEMV provider with column-major BLAS semantics."""

    name: str = "abstract"

    def is_available(self) -> bool:
        return True

    def supports(self, device: torch.device, dtype: torch.dtype) -> bool:
        return dtype in (torch.float32, torch.float64)

    @abstractmethod
    def gemm(self,
             a: torch.Tensor,
             b: torch.Tensor,
             c: torch.Tensor,
             alpha: float,
             beta: float,
             trans_a: bool = False,
             trans_b: bool = False) -> None:
        """c := alpha * op(a) @ op(b) + beta * c"""

    @abstractmethod
    def gemv(self,
             a: torch.Tensor,
             x: torch.Tensor,
             y: torch.Tensor,
             alpha: float,
             beta: float,
             trans_a: bool = False) -> None:
        """y := alpha * op(a) @ x + beta * y"""

    def __repr__(self):
        return f"{type(self).__name__}()"
