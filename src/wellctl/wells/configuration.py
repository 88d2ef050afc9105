"""Per-well control state of a well group."""

import collections
import logging
import typing

import attrs

from wellctl.constants import c
from wellctl.errors import UnknownWellError, ValidationError
from wellctl.types import ControlRole, WellName
from wellctl.wells.controls import (
    DisabledControl,
    WellControl,
    control_role,
    replace_target,
)
from wellctl.wells.evaluation import WellTargetState
from wellctl.wells.limits import Limits, LimitsInput, check_active_limits
from wellctl.wells.targets import WellTarget, target_symbol

logger = logging.getLogger(__name__)

__all__ = ["WellGroupConfiguration", "LimitSwitch", "name_equation"]


@attrs.frozen(slots=True)
class LimitSwitch:
    """Record of a control switch caused by a violated limit."""

    well: WellName
    previous: WellTarget
    current: WellTarget
    limit_kind: str
    limit_type: str
    computed_value: float
    limit_value: float

    def __str__(self) -> str:
        return (
            f"{self.well}: switched from {self.previous} to {self.current} due to "
            f"{self.limit_type} {self.limit_kind} limit (computed value "
            f"{self.computed_value:.6g}, limit {self.limit_value:.6g})"
        )


def _recent_switches() -> typing.Deque[LimitSwitch]:
    return collections.deque(maxlen=int(c.MAX_RECORDED_LIMIT_SWITCHES))


@attrs.define
class WellGroupConfiguration:
    """
    Control state of every well in a well group.

    - `operating_controls` are authoritative and drive the well equations.
    - `requested_controls` are the controls last set by the caller. They are
      only used to detect that the caller asked for something new.
    - `limits` are the operating limits currently in force.

    The operating control of a well is always its requested control, or the
    requested control with its target replaced by a violated limit. The role
    never changes.
    """

    operating_controls: typing.Dict[WellName, WellControl]
    requested_controls: typing.Dict[WellName, WellControl]
    limits: typing.Dict[WellName, typing.Optional[Limits]]
    switches: typing.Deque[LimitSwitch] = attrs.field(factory=_recent_switches)
    """Recent limit switches, for diagnostics."""

    @classmethod
    def from_wells(cls, wells: typing.Iterable[WellName]) -> "WellGroupConfiguration":
        """
        Create a configuration with all wells disabled and no limits.

        :param wells: Well symbols of the group.
        :return: A new configuration.
        """
        wells = list(wells)
        if len(set(wells)) != len(wells):
            raise ValidationError(f"Duplicate well names in {wells!r}")
        return cls(
            operating_controls={w: DisabledControl() for w in wells},
            requested_controls={w: DisabledControl() for w in wells},
            limits={w: None for w in wells},
        )

    @property
    def wells(self) -> typing.Tuple[WellName, ...]:
        return tuple(self.operating_controls)

    def _check_well(self, well: WellName) -> None:
        if well not in self.operating_controls:
            raise UnknownWellError(f"Well {well!r} is not part of the well group.")

    def operating_control(self, well: WellName) -> WellControl:
        self._check_well(well)
        return self.operating_controls[well]

    def requested_control(self, well: WellName) -> WellControl:
        self._check_well(well)
        return self.requested_controls[well]

    def current_limits(self, well: WellName) -> typing.Optional[Limits]:
        self._check_well(well)
        return self.limits[well]

    def role(self, well: WellName) -> ControlRole:
        return control_role(self.operating_control(well))

    def request_control(self, well: WellName, control: WellControl) -> bool:
        """
        Set the requested control of a well.

        A control that differs from the one previously requested replaces both the
        requested and the operating control, discarding any switch made by a limit.
        Requesting the same control again keeps the operating control as is.

        :return: True if the control changed.
        """
        old = self.requested_control(well)
        if control == old:
            return False
        logger.debug(f"Well {well} switching from {old} to {control}")
        self.requested_controls[well] = control
        self.operating_controls[well] = control
        return True

    def set_limits(self, well: WellName, limits: typing.Optional[LimitsInput]) -> None:
        """Replace the limits of a well."""
        self._check_well(well)
        self.limits[well] = None if limits is None else Limits(limits)

    def apply_well_limit(
        self,
        well: WellName,
        target: WellTarget,
        well_state: WellTargetState,
        total_mass_rate: float,
        tolerance: typing.Optional[float] = None,
    ) -> WellTarget:
        """
        Check the limits of a well and switch its operating control if one is violated.

        :param well: The well to check.
        :param target: Target the well currently operates against.
        :param well_state: Local well quantities used to evaluate the limits.
        :param total_mass_rate: Total surface mass rate of the well.
        :param tolerance: Relative tolerance for the comparison.
        :return: Target the well operates against after the check.
        """
        current_limits = self.current_limits(well)
        if current_limits is None:
            return target

        control = self.operating_controls[well]
        check = check_active_limits(
            control,
            target,
            current_limits,
            well_state,
            total_mass_rate,
            tolerance=tolerance,
        )
        if check.changed:
            old = control.target
            new = replace_target(control, check.target)
            self.operating_controls[well] = new
            switch = LimitSwitch(
                well=well,
                previous=old,
                current=check.target,
                limit_kind=str(check.limit_kind),
                limit_type=check.limit_type,
                computed_value=check.current_value,
                limit_value=check.limit_value,
            )
            self.switches.append(switch)
            logger.debug(f"{switch}. New control: {new}")
        return check.target

    def copy(self) -> "WellGroupConfiguration":
        """Shallow copy. Controls and limits are immutable, so this is independent."""
        return type(self)(
            operating_controls=dict(self.operating_controls),
            requested_controls=dict(self.requested_controls),
            limits=dict(self.limits),
            switches=collections.deque(self.switches, maxlen=self.switches.maxlen),
        )

    def summary(self) -> typing.List[str]:
        """One line per well describing its operating control and limits."""
        lines = []
        for well, control in self.operating_controls.items():
            limits = self.limits[well]
            line = name_equation(well, self)
            if control != self.requested_controls[well]:
                line += f" [requested {self.requested_controls[well]}]"
            if limits:
                line += f" {limits!r}"
            lines.append(line)
        return lines


def name_equation(well: WellName, cfg: WellGroupConfiguration) -> str:
    """
    Label of a well's control equation, e.g. "P1 (P) bhp".

    The letter is I for injectors, P for producers and X for disabled wells.
    """
    ctrl = cfg.operating_control(well)
    role = control_role(ctrl)
    if role is ControlRole.INJECTOR:
        cs = "I"
    elif role is ControlRole.PRODUCER:
        cs = "P"
    else:
        cs = "X"
    return f"{well} ({cs}) {target_symbol(ctrl.target)}"
