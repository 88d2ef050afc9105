"""Updates of well controls and surface rates."""

import typing

import numpy as np

from wellctl.constants import c
from wellctl.errors import UnknownWellError, ValidationError
from wellctl.wells.controls import (
    DisabledControl,
    InjectorControl,
    ProducerControl,
    WellControl,
)
from wellctl.wells.forces import WellForces

if typing.TYPE_CHECKING:
    from wellctl.states import WellGroupState


__all__ = [
    "valid_surface_rate_for_control",
    "update_before_step",
    "update_surface_rate",
    "update_surface_rates",
]


def valid_surface_rate_for_control(q_t: float, control: WellControl) -> float:
    """
    Move a surface mass rate into the valid region for a control's role.

    Injectors get at least `MIN_INITIAL_WELL_RATE`, producers at most
    `-MIN_INITIAL_WELL_RATE` and disabled wells exactly zero.

    :param q_t: Current total surface mass rate.
    :param control: The control of the well.
    :return: The valid surface mass rate.
    """
    min_rate = c.MIN_INITIAL_WELL_RATE
    if isinstance(control, InjectorControl):
        return q_t if q_t >= min_rate else min_rate
    if isinstance(control, ProducerControl):
        return q_t if q_t <= -min_rate else -min_rate
    if isinstance(control, DisabledControl):
        return 0.0
    raise ValidationError(f"Unknown well control {control!r}")


def update_before_step(state: "WellGroupState", forces: WellForces) -> None:
    """
    Reconcile the controls requested for a step with the state of the well group.

    For every well with a requested control in `forces`:

    1. A control differing from the previously requested one replaces both the
       requested and the operating control, discarding switches made by limits.
    2. The surface mass rate is clamped into the valid sign region of the control.

    Limits of every well in `forces` then replace the current limits wholesale.

    :param state: The well group state. Updated in place.
    :param forces: The requested controls and limits for the step.
    :raises UnknownWellError: If forces refer to a well outside the group. Nothing
        is changed in that case.
    """
    cfg = state.configuration
    unknown = {
        well
        for well in (*forces.control, *forces.limits)
        if well not in cfg.operating_controls
    }
    if unknown:
        raise UnknownWellError(
            f"Forces given for wells {sorted(unknown)!r} outside the well group."
        )

    q_t = state.total_surface_mass_rate
    for well, new_control in forces.control.items():
        cfg.request_control(well, new_control)
        pos = state.position(well)
        q_t[pos] = valid_surface_rate_for_control(q_t[pos], new_control)

    for well, limits in forces.limits.items():
        cfg.set_limits(well, limits)


def update_surface_rate(
    value: float, increment: float, control: WellControl
) -> float:
    """
    Apply a nonlinear update to a well's surface mass rate.

    Injectors keep strictly positive rates, producers strictly negative rates and
    disabled wells zero rate, whatever the increment.

    :param value: Current surface mass rate.
    :param increment: Proposed change.
    :param control: Operating control of the well.
    :return: The updated surface mass rate.
    """
    min_rate = c.MIN_ACTIVE_WELL_RATE
    if isinstance(control, DisabledControl):
        return 0.0
    updated = value + increment
    if isinstance(control, InjectorControl):
        return max(updated, min_rate)
    if isinstance(control, ProducerControl):
        return min(updated, -min_rate)
    raise ValidationError(f"Unknown well control {control!r}")


def update_surface_rates(
    q_t: np.typing.NDArray,
    dx: np.typing.NDArray,
    controls: typing.Sequence[WellControl],
) -> None:
    """Apply `update_surface_rate` in place to each entry of `q_t`."""
    for i, control in enumerate(controls):
        q_t[i] = update_surface_rate(q_t[i], dx[i], control)
