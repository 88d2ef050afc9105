"""
Well targets.

A target is the quantity a well control holds constant: either the bottom-hole
pressure, a surface volume rate for a subset of phases, or nothing at all for a
disabled well. Targets are immutable value types.
"""

import math
import typing

import attrs

from wellctl.constants import c
from wellctl.errors import ValidationError
from wellctl.types import FluidPhase

__all__ = [
    "WellTarget",
    "DisabledTarget",
    "BottomHolePressureTarget",
    "SurfaceVolumeTarget",
    "SurfaceOilRateTarget",
    "SurfaceLiquidRateTarget",
    "SurfaceGasRateTarget",
    "SurfaceWaterRateTarget",
    "TotalRateTarget",
    "lumped_phases",
    "rate_weighted",
    "target_scaling",
    "target_symbol",
    "is_same_target_kind",
]


def _finite(instance, attribute, value) -> None:
    if not math.isfinite(value):
        raise ValidationError(
            f"{type(instance).__name__}.{attribute.name} must be finite, got {value!r}"
        )


@attrs.frozen(slots=True)
class DisabledTarget:
    """Target of a disabled (shut) well. Has no value."""

    def __str__(self) -> str:
        return "Disabled"


@attrs.frozen(slots=True)
class BottomHolePressureTarget:
    """Hold the bottom-hole pressure at `value` (Pa)."""

    value: float = attrs.field(converter=float, validator=_finite)

    def __str__(self) -> str:
        return f"BHP({self.value:.6g} Pa)"


@attrs.frozen(slots=True)
class SurfaceVolumeTarget:
    """
    Base for targets on a volumetric rate at surface conditions.

    Rates follow the sign convention of the surface mass rate: positive for
    injection, negative for production.
    """

    value: float = attrs.field(converter=float, validator=_finite)

    phases: typing.ClassVar[typing.FrozenSet[FluidPhase]] = frozenset()
    symbol: typing.ClassVar[str] = ""

    def __str__(self) -> str:
        return f"{type(self).__name__.replace('Target', '')}({self.value:.6g})"


@attrs.frozen(slots=True)
class SurfaceOilRateTarget(SurfaceVolumeTarget):
    """Surface oil rate."""

    phases = frozenset({FluidPhase.OIL})
    symbol = "orat"


@attrs.frozen(slots=True)
class SurfaceLiquidRateTarget(SurfaceVolumeTarget):
    """Surface liquid (oil + water) rate."""

    phases = frozenset({FluidPhase.OIL, FluidPhase.WATER})
    symbol = "lrat"


@attrs.frozen(slots=True)
class SurfaceGasRateTarget(SurfaceVolumeTarget):
    """Surface gas rate."""

    phases = frozenset({FluidPhase.GAS})
    symbol = "grat"


@attrs.frozen(slots=True)
class SurfaceWaterRateTarget(SurfaceVolumeTarget):
    """Surface water rate."""

    phases = frozenset({FluidPhase.WATER})
    symbol = "wrat"


@attrs.frozen(slots=True)
class TotalRateTarget(SurfaceVolumeTarget):
    """Total surface volume rate, summed over all phases present in the well."""

    phases = frozenset(FluidPhase)
    symbol = "rate"


WellTarget = typing.Union[
    DisabledTarget,
    BottomHolePressureTarget,
    SurfaceOilRateTarget,
    SurfaceLiquidRateTarget,
    SurfaceGasRateTarget,
    SurfaceWaterRateTarget,
    TotalRateTarget,
]


def lumped_phases(target: SurfaceVolumeTarget) -> typing.FrozenSet[FluidPhase]:
    """
    Phases a surface volume target applies to.

    :param target: A surface volume target.
    :return: The set of phases whose surface volumes make up the targeted rate.
    """
    if not isinstance(target, SurfaceVolumeTarget):
        raise ValidationError(f"{target} is not a surface volume target")
    return type(target).phases


def rate_weighted(target: WellTarget) -> bool:
    """Whether the target value scales with the well's total surface mass rate."""
    return not isinstance(target, (DisabledTarget, BottomHolePressureTarget))


def target_scaling(target: WellTarget) -> float:
    """Scaling applied to the control equation for this target."""
    if isinstance(target, BottomHolePressureTarget):
        return c.BHP_TARGET_SCALING
    return c.RATE_TARGET_SCALING


def target_symbol(target: WellTarget) -> str:
    """Short name of a target, matching the limit kind it corresponds to."""
    if isinstance(target, BottomHolePressureTarget):
        return "bhp"
    if isinstance(target, SurfaceVolumeTarget):
        return type(target).symbol
    return "disabled"


def is_same_target_kind(a: WellTarget, b: WellTarget) -> bool:
    """Whether two targets are the same variant, regardless of their values."""
    return type(a) is type(b)
