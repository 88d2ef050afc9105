"""Requested controls and limits for a timestep."""

import logging
import typing

import attrs

from wellctl.errors import UnknownWellError, ValidationError
from wellctl.types import WellName
from wellctl.wells.controls import (
    DisabledControl,
    InjectorControl,
    ProducerControl,
    WellControl,
    default_limits,
)
from wellctl.wells.limits import Limits, LimitsInput

logger = logging.getLogger(__name__)

__all__ = ["WellForces", "setup_forces"]

_CONTROL_TYPES = (InjectorControl, ProducerControl, DisabledControl)


def _convert_controls(
    control: typing.Optional[typing.Mapping[WellName, WellControl]],
) -> typing.Dict[WellName, WellControl]:
    control = dict(control or {})
    for well, ctrl in control.items():
        if not isinstance(ctrl, _CONTROL_TYPES):
            raise ValidationError(f"Invalid control {ctrl!r} for well {well!r}")
    return control


def _convert_limits(
    limits: typing.Optional[typing.Mapping[WellName, typing.Optional[LimitsInput]]],
) -> typing.Dict[WellName, typing.Optional[Limits]]:
    return {
        well: None if lims is None else Limits(lims)
        for well, lims in (limits or {}).items()
    }


@attrs.frozen
class WellForces:
    """Controls requested for wells and the limits they should honour, for one step."""

    control: typing.Dict[WellName, WellControl] = attrs.field(
        factory=dict, converter=_convert_controls
    )
    """Requested control per well."""
    limits: typing.Dict[WellName, typing.Optional[Limits]] = attrs.field(
        factory=dict, converter=_convert_limits
    )
    """Limits per well. None means no limits."""


def setup_forces(
    wells: typing.Iterable[WellName],
    control: typing.Optional[typing.Mapping[WellName, WellControl]] = None,
    limits: typing.Optional[
        typing.Mapping[WellName, typing.Optional[LimitsInput]]
    ] = None,
    set_default_limits: bool = True,
) -> WellForces:
    """
    Build the forces for a well group.

    Wells without a requested control are disabled. With `set_default_limits`,
    every well gets the default limits of its control (see `default_limits`),
    overridden by any limits given for it.

    :param wells: Well symbols of the group.
    :param control: Requested control per well.
    :param limits: Limits per well.
    :param set_default_limits: Whether to add the default limits of each control.
    :return: `WellForces` covering every well of the group.
    :raises UnknownWellError: If controls or limits are given for wells outside the group.
    """
    wells = list(wells)
    control = dict(control or {})
    limits = dict(limits or {})
    for well in (*control, *limits):
        if well not in wells:
            raise UnknownWellError(f"Well {well!r} is not part of the well group.")

    for well in wells:
        control.setdefault(well, DisabledControl())

    merged: typing.Dict[WellName, typing.Optional[LimitsInput]] = {}
    for well in wells:
        given = limits.get(well)
        if set_default_limits:
            defaults = default_limits(control[well])
            if defaults is None:
                merged[well] = given
            elif given is None:
                merged[well] = defaults
            else:
                merged[well] = Limits(defaults).merge(given)
        else:
            merged[well] = given
        logger.debug(f"Limits for {well}: {merged[well]!r}")
    return WellForces(control=control, limits=merged)
