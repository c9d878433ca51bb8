"""
Backend management for torch-kronmult

The batched executor never calls a linear-algebra library directly; it asks
this module for a :class:`BlasBackend` and hands it strided operand views.

Backends:
- 'pytorch': PyTorch-native (CPU & CUDA) - torch.addmm / torch.addmv
- 'scipy': SciPy BLAS wrappers (CPU only) - ?gemm / ?gemv

Usage:
    # Auto-select backend based on device
    batched_gemm(a, b, c, 1.0, 0.0)                     # scipy on CPU if installed, else pytorch
    batched_gemm(a, b, c, 1.0, 0.0, backend='pytorch')  # by name
    batched_gemm(a, b, c, 1.0, 0.0, backend=MyBackend())  # injected instance
"""

from typing import Dict, List, Literal, Optional, Union
import warnings

import torch

from .base import BlasBackend
from .pytorch_backend import PyTorchBackend
from .scipy_backend import ScipyBackend, is_scipy_available

# Type aliases
BackendType = Literal['pytorch', 'scipy', 'auto']

SUPPORTED_DTYPES = (torch.float32, torch.float64)

# Backend name -> instance
BACKENDS: Dict[str, BlasBackend] = {
    'pytorch': PyTorchBackend(),
    'scipy': ScipyBackend(),
}


def is_pytorch_available() -> bool:
    """Check if PyTorch-native backend is available (always True)"""
    return True


def get_available_backends() -> List[str]:
    """Get list of available backends"""
    return [name for name, backend in BACKENDS.items() if backend.is_available()]


def register_backend(name: str, backend: BlasBackend) -> None:
    """Register (or replace) a named backend"""
    if not isinstance(backend, BlasBackend):
        raise TypeError(f"backend must be a BlasBackend, got {type(backend).__name__}")
    BACKENDS[name] = backend


def select_backend(
    device: torch.device,
    dtype: Optional[torch.dtype] = None,
) -> str:
    """
    Auto-select a backend based on device and dtype.

    - CPU: scipy (reference BLAS semantics) if installed, else pytorch
    - CUDA: pytorch

    Parameters
    ----------
    device : torch.device
        Device the workspace lives on
    dtype : torch.dtype, optional
        Element type of the operands

    Returns
    -------
    str
        Backend name
    """
    device = torch.device(device)
    if dtype is not None and dtype not in SUPPORTED_DTYPES:
        raise ValueError(f"Unsupported dtype: {dtype}, expected one of {SUPPORTED_DTYPES}")

    if device.type == 'cpu':
        if is_scipy_available():
            return 'scipy'
        warnings.warn("SciPy not available, falling back to the pytorch backend")
        return 'pytorch'
    elif device.type == 'cuda':
        return 'pytorch'
    else:
        raise ValueError(f"Unsupported device type: {device.type}")


def get_backend(
    backend: Union[BackendType, str, BlasBackend, None] = 'auto',
    device: Optional[torch.device] = None,
    dtype: Optional[torch.dtype] = None,
) -> BlasBackend:
    """
    Resolve a backend name (or instance) to a :class:`BlasBackend`.

    Parameters
    ----------
    backend : str or BlasBackend, optional
        'auto' / None to pick by device, a registered name, or an instance
    device : torch.device, optional
        Device the operands live on, used by 'auto' and for support checks
    dtype : torch.dtype, optional
        Element type of the operands

    Returns
    -------
    BlasBackend
    """
    if isinstance(backend, BlasBackend):
        return backend

    if backend is None or backend == 'auto':
        backend = select_backend(device if device is not None else torch.device('cpu'), dtype)

    if backend not in BACKENDS:
        raise ValueError(f"Unknown backend: {backend}. Available: {list(BACKENDS)}")

    resolved = BACKENDS[backend]
    if not resolved.is_available():
        raise RuntimeError(f"Backend '{backend}' is not available")
    if device is not None and dtype is not None and not resolved.supports(torch.device(device), dtype):
        raise RuntimeError(f"Backend '{backend}' does not support {dtype} on {torch.device(device)}")
    return resolved


__all__ = [
    "BlasBackend",
    "PyTorchBackend",
    "ScipyBackend",
    "BackendType",
    "BACKENDS",
    "SUPPORTED_DTYPES",
    "is_scipy_available",
    "is_pytorch_available",
    "get_available_backends",
    "register_backend",
    "select_backend",
    "get_backend",
]
