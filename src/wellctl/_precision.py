from contextlib import contextmanager
from contextvars import ContextVar

import numpy as np


__all__ = [
    "get_dtype",
    "set_dtype",
    "with_precision",
    "use_64bit_precision",
    "use_32bit_precision",
]

_wellctl_dtype: ContextVar[np.typing.DTypeLike] = ContextVar(
    "_wellctl_dtype", default=np.float64
)


def get_dtype() -> np.typing.DTypeLike:
    """
    Get the current data type used for well state arrays.

    :return: The current data type.
    """
    return _wellctl_dtype.get()


def set_dtype(dtype: np.typing.DTypeLike) -> None:
    """
    Set the default data type for well state arrays.

    :param dtype: The data type to set as default.
    """
    _wellctl_dtype.set(dtype)


@contextmanager
def with_precision(dtype: np.typing.DTypeLike):
    """
    Context manager to temporarily set the data type used for well state arrays.

    :param dtype: The data type to set within the context.
    """
    token = _wellctl_dtype.set(dtype)
    try:
        yield
    finally:
        _wellctl_dtype.reset(token)


def use_64bit_precision() -> None:
    """
    Set the default data type to float64.

    Default precision for wellctl. Surface rates are bounded away from zero by
    tiny magnitudes, so single precision is only suitable for coarse studies.
    """
    set_dtype(np.float64)


def use_32bit_precision() -> None:
    """Set the default data type to float32."""
    set_dtype(np.float32)
