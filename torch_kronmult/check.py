"""
Precondition checks for the batching core.

Every invariant violation in this package (shape mismatch, double assignment
of a batch slot, under-sized workspace, invalid degree/dimension) is a defect
in the caller, not a runtime condition. They all go through :func:`expect`, so
they can be switched off as a whole: checks follow ``__debug__`` (elided
under ``python -O``) unless overridden with :func:`set_checks_enabled`.
"""

_checks_enabled: bool = __debug__


class PreconditionError(AssertionError):
    """Raised when a precondition of the batching core does not hold"""


class ShapeException(PreconditionError):
    def __init__(self, name, shape, expected_shape):
        self.name = name
        self.shape = shape
        self.expected_shape = expected_shape
        super().__init__(f"{name} has shape {shape} expected {expected_shape}")


def checks_enabled() -> bool:
    """Whether precondition checks are currently evaluated"""
    return _checks_enabled


def set_checks_enabled(flag: bool) -> bool:
    """
    Turn precondition checks on or off.

    Parameters
    ----------
    flag : bool
        new state

    Returns
    -------
    bool
        the previous state, so callers can restore it
    """
    global _checks_enabled
    previous = _checks_enabled
    _checks_enabled = bool(flag)
    return previous


def expect(condition, message: str = "precondition failed"):
    """Fail fast with :class:`PreconditionError` if ``condition`` is false"""
    if _checks_enabled and not condition:
        raise PreconditionError(message)


def expect_shape(name: str, shape: tuple, expected_shape: tuple):
    """Fail fast with :class:`ShapeException` if ``shape != expected_shape``"""
    if _checks_enabled and tuple(shape) != tuple(expected_shape):
        raise ShapeException(name, tuple(shape), tuple(expected_shape))
