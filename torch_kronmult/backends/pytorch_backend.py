"""
PyTorch-native backend.

Uses ``torch.addmm`` / ``torch.addmv`` on the aliasing views, so it runs
wherever the workspace lives (CPU or CUDA). As with BLAS, when ``beta == 0``
the previous contents of the output are ignored (NaN/inf are not propagated).
"""

import torch

from .base import BlasBackend


class PyTorchBackend(BlasBackend):

    name = "pytorch"

    def gemm(self, a, b, c, alpha, beta, trans_a=False, trans_b=False):
        op_a = a.t() if trans_a else a
        op_b = b.t() if trans_b else b
        c.copy_(torch.addmm(c, op_a, op_b, beta=beta, alpha=alpha))

    def gemv(self, a, x, y, alpha, beta, trans_a=False):
        op_a = a.t() if trans_a else a
        y.copy_(torch.addmv(y, op_a, x, beta=beta, alpha=alpha))
