"""Evaluation of well target values from local well physics."""

import typing

import attrs
import numba
import numpy as np

from wellctl._precision import get_dtype
from wellctl.errors import ComputationError, ValidationError
from wellctl.types import FluidPhase
from wellctl.wells.controls import (
    DisabledControl,
    InjectorControl,
    ProducerControl,
    WellControl,
)
from wellctl.wells.targets import (
    BottomHolePressureTarget,
    DisabledTarget,
    SurfaceVolumeTarget,
    TotalRateTarget,
    WellTarget,
    lumped_phases,
    rate_weighted,
)

__all__ = [
    "WellTargetState",
    "well_target",
    "well_target_value",
    "compute_surface_volume_weight",
]


def _as_array(value: typing.Any) -> np.typing.NDArray:
    return np.atleast_1d(np.asarray(value, dtype=get_dtype()))


@attrs.frozen
class WellTargetState:
    """
    Local well quantities needed to evaluate a target.

    Per-phase arrays are ordered like `phases`.
    """

    pressure: np.typing.NDArray = attrs.field(converter=_as_array)
    """Pressure at the well nodes (Pa). The first node is the reference (bottom-hole) node."""
    surface_densities: np.typing.NDArray = attrs.field(converter=_as_array)
    """Phase densities at surface conditions (kg/m³)."""
    surface_volume_fractions: np.typing.NDArray = attrs.field(converter=_as_array)
    """Phase volume fractions of the well stream at surface conditions."""
    phases: typing.Tuple[FluidPhase, ...] = attrs.field(
        converter=lambda phases: tuple(FluidPhase(p) for p in phases)
    )
    """Phases present in the well, in array order."""

    def __attrs_post_init__(self) -> None:
        n = len(self.phases)
        if self.surface_densities.shape != (n,) or self.surface_volume_fractions.shape != (n,):
            raise ValidationError(
                f"Expected {n} surface densities and volume fractions, got "
                f"{self.surface_densities.shape} and {self.surface_volume_fractions.shape}"
            )
        if self.pressure.size == 0:
            raise ValidationError("Well state must have at least one node pressure.")

    @property
    def bottom_hole_pressure(self) -> float:
        return float(self.pressure[0])

    def phase_mask(self, phases: typing.AbstractSet[FluidPhase]) -> np.typing.NDArray:
        """Boolean mask selecting `phases` in array order."""
        return np.array([phase in phases for phase in self.phases], dtype=np.bool_)


@numba.njit(cache=True)
def compute_surface_volume_weight(
    surface_densities: np.typing.NDArray,
    surface_volume_fractions: np.typing.NDArray,
    phase_mask: np.typing.NDArray,
) -> float:
    """
    Surface volume of the selected phases per unit surface mass of the stream.

    The total density of the stream at surface conditions is found by weighting
    phase densities with their surface volume fractions:

        ρ_tot = Σ ρ_p * V_p

    and the weight is the selected volume over that density:

        w = Σ_{p selected} V_p / ρ_tot

    :param surface_densities: Phase densities at surface conditions (kg/m³).
    :param surface_volume_fractions: Phase volume fractions at surface conditions.
    :param phase_mask: Boolean mask selecting the phases counted in the volume.
    :return: The weight (m³/kg).
    """
    total_density = 0.0
    selected_volume = 0.0
    for i in range(surface_densities.shape[0]):
        total_density += surface_densities[i] * surface_volume_fractions[i]
        if phase_mask[i]:
            selected_volume += surface_volume_fractions[i]
    if total_density == 0.0:
        return np.nan
    return selected_volume / total_density


def _injector_rate_weight(control: InjectorControl, target: SurfaceVolumeTarget) -> float:
    if isinstance(target, TotalRateTarget):
        return 1.0 / control.mixture_density
    t_phases = lumped_phases(target)
    mix = sum(fraction for phase, fraction in control.phases if phase in t_phases)
    return mix / control.mixture_density


def _producer_rate_weight(target: SurfaceVolumeTarget, well_state: WellTargetState) -> float:
    if isinstance(target, TotalRateTarget):
        mask = np.ones(len(well_state.phases), dtype=np.bool_)
    else:
        mask = well_state.phase_mask(lumped_phases(target))
    weight = compute_surface_volume_weight(
        well_state.surface_densities, well_state.surface_volume_fractions, mask
    )
    if not np.isfinite(weight):
        raise ComputationError(
            "Non-finite surface volume weight. Check surface densities and volume fractions."
        )
    return float(weight)


def well_target(
    control: WellControl, target: WellTarget, well_state: WellTargetState
) -> float:
    """
    Contribution of the well itself to the value of `target`.

    For rate targets this is the surface volume of the targeted phases per unit
    surface mass rate, which `well_target_value` scales by the actual rate.

    :param control: Current control of the well.
    :param target: The target to evaluate. Need not be the control's own target.
    :param well_state: Local well quantities.
    :return: The pressure (Pa) for pressure targets, the rate weight (m³/kg) for
        rate targets and zero for disabled targets.
    """
    if isinstance(target, DisabledTarget):
        return 0.0
    if isinstance(target, BottomHolePressureTarget):
        return well_state.bottom_hole_pressure
    if not isinstance(target, SurfaceVolumeTarget):
        raise ValidationError(f"Cannot evaluate unknown target {target!r}")

    if isinstance(control, InjectorControl):
        return _injector_rate_weight(control, target)
    if isinstance(control, ProducerControl):
        return _producer_rate_weight(target, well_state)
    if isinstance(control, DisabledControl):
        return 0.0
    raise ValidationError(f"Unknown well control {control!r}")


def well_target_value(
    total_mass_rate: float,
    control: WellControl,
    target: WellTarget,
    well_state: WellTargetState,
) -> float:
    """
    Value of `target` for the well at its current total surface mass rate.

    :param total_mass_rate: Total surface mass rate of the well (kg/s).
    :param control: Current control of the well.
    :param target: The target to evaluate.
    :param well_state: Local well quantities.
    :return: The target value. Surface rates carry the sign of the mass rate.
    """
    value = well_target(control, target, well_state)
    if rate_weighted(target):
        value *= total_mass_rate
    return value
