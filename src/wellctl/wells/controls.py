"""Well control roles: injector, producer and disabled."""

import math
import typing

import attrs

from wellctl.constants import c
from wellctl.errors import ValidationError
from wellctl.types import ControlRole, FluidPhase
from wellctl.wells.targets import (
    BottomHolePressureTarget,
    DisabledTarget,
    SurfaceVolumeTarget,
    WellTarget,
    target_symbol,
)

__all__ = [
    "InjectorControl",
    "ProducerControl",
    "DisabledControl",
    "WellControl",
    "control_role",
    "replace_target",
    "default_limits",
]


def _active_target(instance, attribute, value) -> None:
    if not isinstance(value, (BottomHolePressureTarget, SurfaceVolumeTarget)):
        raise ValidationError(
            f"{type(instance).__name__} requires a pressure or rate target, got {value!r}"
        )


def _convert_phases(
    phases: typing.Iterable[typing.Tuple[typing.Union[str, FluidPhase], float]],
) -> typing.Tuple[typing.Tuple[FluidPhase, float], ...]:
    if isinstance(phases, typing.Mapping):
        phases = phases.items()
    return tuple((FluidPhase(phase), float(fraction)) for phase, fraction in phases)


@attrs.frozen(slots=True)
class InjectorControl:
    """
    Injector control.

    The injected stream is described by the mass fraction of each phase in the
    mix and the density of the mixture at surface conditions. Together they
    convert the well's total surface mass rate into phase surface volumes.
    """

    target: WellTarget = attrs.field(validator=_active_target)
    """What the injector holds constant."""
    phases: typing.Tuple[typing.Tuple[FluidPhase, float], ...] = attrs.field(
        converter=_convert_phases
    )
    """Pairs of (phase, mass fraction) for the injected mix."""
    mixture_density: float = attrs.field(converter=float)
    """Density of the injected mixture at surface conditions (kg/m³)."""

    @phases.validator
    def _check_phases(self, attribute, value) -> None:
        if not value:
            raise ValidationError("Injector must inject at least one phase.")
        for phase, fraction in value:
            if not math.isfinite(fraction) or fraction < 0.0:
                raise ValidationError(
                    f"Mass fraction for {phase.value} must be a non-negative finite number."
                )

    @mixture_density.validator
    def _check_density(self, attribute, value) -> None:
        if not math.isfinite(value) or value <= 0.0:
            raise ValidationError("Mixture density must be positive and finite.")

    def __str__(self) -> str:
        return f"Injector({self.target})"


@attrs.frozen(slots=True)
class ProducerControl:
    """Producer control."""

    target: WellTarget = attrs.field(validator=_active_target)

    def __str__(self) -> str:
        return f"Producer({self.target})"


@attrs.frozen(slots=True)
class DisabledControl:
    """Control of a shut well. Its target is always `DisabledTarget`."""

    target: DisabledTarget = attrs.field(factory=DisabledTarget, init=False)

    def __str__(self) -> str:
        return "Disabled"


WellControl = typing.Union[InjectorControl, ProducerControl, DisabledControl]


def control_role(control: WellControl) -> ControlRole:
    if isinstance(control, InjectorControl):
        return ControlRole.INJECTOR
    if isinstance(control, ProducerControl):
        return ControlRole.PRODUCER
    if isinstance(control, DisabledControl):
        return ControlRole.DISABLED
    raise ValidationError(f"Unknown well control {control!r}")


def replace_target(control: WellControl, target: WellTarget) -> WellControl:
    """
    Return a copy of `control` operating against `target`.

    The role of the control never changes: an injector stays an injector and a
    producer stays a producer.
    """
    if isinstance(control, DisabledControl):
        if not isinstance(target, DisabledTarget):
            raise ValidationError("A disabled control can only hold a disabled target.")
        return control
    return attrs.evolve(control, target=target)


def default_limits(
    control: WellControl,
) -> typing.Optional[typing.Dict[str, float]]:
    """
    Default limits for a control.

    The control's own target is a limit where the role supports it, so that a
    well later switched away from it by another limit cannot overshoot it.
    Pressure controlled wells additionally get a lower rate limit that keeps
    them from flipping role: injectors from producing and producers from
    injecting.

    :param control: The requested control of a well.
    :return: Limits keyed by limit kind name, or None for disabled wells.
    """
    if isinstance(control, DisabledControl):
        return None

    target = control.target
    symbol = target_symbol(target)
    limits = {}
    # Injectors only take pressure and total rate limits
    if isinstance(control, ProducerControl) or symbol in ("bhp", "rate"):
        limits[symbol] = target.value
    if isinstance(target, BottomHolePressureTarget):
        if isinstance(control, InjectorControl):
            limits["rate_lower"] = c.MIN_ACTIVE_WELL_RATE
        else:
            limits["rate_lower"] = -c.MIN_ACTIVE_WELL_RATE
    return limits or None
