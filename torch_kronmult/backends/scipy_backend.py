"""
SciPy backend for CPU dense BLAS calls.

Calls the ``?gemm`` / ``?gemv`` wrappers from ``scipy.linalg.blas`` (s/d
prefix picked from the operand dtype). The torch views are handed over as
numpy arrays sharing memory; since a windowed view is generally not Fortran
contiguous, the BLAS result is written back through the shared array instead
of relying on ``overwrite_c``.
"""

import torch

from .base import BlasBackend

try:
    import numpy as np
    from scipy.linalg import blas as sla_blas
    SCIPY_AVAILABLE = True
except ImportError:
    SCIPY_AVAILABLE = False


def is_scipy_available() -> bool:
    """Check if SciPy is available"""
    return SCIPY_AVAILABLE


def _to_numpy(t: torch.Tensor) -> "np.ndarray":
    return t.detach().numpy()


class ScipyBackend(BlasBackend):

    name = "scipy"

    def is_available(self) -> bool:
        return SCIPY_AVAILABLE

    def supports(self, device, dtype):
        return torch.device(device).type == "cpu" and dtype in (torch.float32, torch.float64)

    def gemm(self, a, b, c, alpha, beta, trans_a=False, trans_b=False):
        if not SCIPY_AVAILABLE:
            raise ImportError("SciPy is required for the scipy backend")
        a_np, b_np, c_np = _to_numpy(a), _to_numpy(b), _to_numpy(c)
        gemm, = sla_blas.get_blas_funcs(("gemm",), (a_np, b_np, c_np))
        result = gemm(alpha, a_np, b_np, beta=beta, c=c_np,
                      trans_a=int(trans_a), trans_b=int(trans_b))
        c_np[...] = result

    def gemv(self, a, x, y, alpha, beta, trans_a=False):
        if not SCIPY_AVAILABLE:
            raise ImportError("SciPy is required for the scipy backend")
        a_np, x_np, y_np = _to_numpy(a), _to_numpy(x), _to_numpy(y)
        gemv, = sla_blas.get_blas_funcs(("gemv",), (a_np, x_np, y_np))
        result = gemv(alpha, a_np, x_np, beta=beta, y=y_np, trans=int(trans_a))
        y_np[...] = result
