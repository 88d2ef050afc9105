import enum
import typing

import numpy as np
from typing_extensions import TypeAlias


__all__ = [
    "FluidPhase",
    "LimitKind",
    "ControlRole",
    "WellName",
    "PartitionKey",
    "FloatArray",
    "Numeric",
    "ConvergenceReport",
]

WellName: TypeAlias = str
"""Identifier of a well within a well group."""
PartitionKey: TypeAlias = typing.Hashable
"""Identifier of an independent coupling partition (well group)."""

Numeric = typing.Union[int, float, np.floating, np.integer]
FloatArray = np.typing.NDArray[np.floating]

ConvergenceReport = typing.Mapping[str, typing.Tuple[bool, float]]
"""Per-quantity convergence flag and error magnitude."""


class FluidPhase(enum.Enum):
    """Enum representing the phase of a fluid at surface conditions."""

    WATER = "water"
    GAS = "gas"
    OIL = "oil"


class ControlRole(enum.Enum):
    """Role a well plays under its current control."""

    INJECTOR = "injector"
    PRODUCER = "producer"
    DISABLED = "disabled"


class LimitKind(enum.Enum):
    """
    Operating limit kinds.

    The declaration order is the order in which limits are checked. When more
    than one limit is violated at the same time, the first one in this order wins.
    """

    BHP = "bhp"
    ORAT = "orat"
    LRAT = "lrat"
    GRAT = "grat"
    WRAT = "wrat"
    RATE = "rate"
    RATE_LOWER = "rate_lower"
    RATE_UPPER = "rate_upper"

    def __str__(self) -> str:
        return self.value
