"""
Operating limits for wells.

A limit names a quantity (pressure or a surface rate) and a bound on it. When a
well violates one of its limits, it switches to operating against that limit:
the limit is translated into a target and replaces the control's current
target. Producer rates are negative and injector rates positive, so whether a
bound is a lower or an upper bound in signed terms depends on the role.
"""

import collections.abc
import math
import typing

import attrs

from wellctl.constants import c
from wellctl.errors import UnsupportedLimitError, ValidationError
from wellctl.types import LimitKind
from wellctl.wells.controls import InjectorControl, ProducerControl, WellControl
from wellctl.wells.evaluation import WellTargetState, well_target_value
from wellctl.wells.targets import (
    BottomHolePressureTarget,
    SurfaceGasRateTarget,
    SurfaceLiquidRateTarget,
    SurfaceOilRateTarget,
    SurfaceWaterRateTarget,
    TotalRateTarget,
    WellTarget,
    is_same_target_kind,
)

__all__ = [
    "Limits",
    "LimitCheck",
    "translate_limit",
    "check_limit",
    "check_active_limits",
]

LimitsInput = typing.Union[
    "Limits",
    typing.Mapping[typing.Union[str, LimitKind], float],
    typing.Iterable[typing.Tuple[typing.Union[str, LimitKind], float]],
]

_LIMIT_ORDER = {kind: index for index, kind in enumerate(LimitKind)}


def _to_limit_kind(kind: typing.Union[str, LimitKind]) -> LimitKind:
    if isinstance(kind, LimitKind):
        return kind
    try:
        return LimitKind(kind)
    except ValueError:
        supported = ", ".join(k.value for k in LimitKind)
        raise ValidationError(
            f"Unknown limit {kind!r}. Supported limits are: {supported}"
        ) from None


def _convert_limits(
    limits: typing.Optional[LimitsInput],
) -> typing.Tuple[typing.Tuple[LimitKind, float], ...]:
    if limits is None:
        return ()
    if isinstance(limits, Limits):
        return limits._items
    pairs = limits.items() if isinstance(limits, collections.abc.Mapping) else limits

    values: typing.Dict[LimitKind, float] = {}
    for name, bound in pairs:
        kind = _to_limit_kind(name)
        try:
            values[kind] = float(bound)
        except (TypeError, ValueError):
            raise ValidationError(
                f"Limit {kind.value!r} must be a number, got {bound!r}"
            ) from None
    return tuple(sorted(values.items(), key=lambda item: _LIMIT_ORDER[item[0]]))


@attrs.frozen(slots=True, repr=False)
class Limits(collections.abc.Mapping):
    """
    Immutable set of operating limits for a well.

    Keys are validated on construction, so a misspelt limit fails immediately
    rather than at the first check. Non-finite bounds are kept but inactive.
    Iteration follows the checking order of `LimitKind`.
    """

    _items: typing.Tuple[typing.Tuple[LimitKind, float], ...] = attrs.field(
        default=(), converter=_convert_limits
    )

    def __getitem__(self, kind: typing.Union[str, LimitKind]) -> float:
        kind = _to_limit_kind(kind)
        for name, bound in self._items:
            if name is kind:
                return bound
        raise KeyError(kind)

    def __iter__(self) -> typing.Iterator[LimitKind]:
        return (kind for kind, _ in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, kind: object) -> bool:
        try:
            kind = _to_limit_kind(kind)  # type: ignore[arg-type]
        except ValidationError:
            return False
        return any(name is kind for name, _ in self._items)

    def active(self) -> typing.Iterator[typing.Tuple[LimitKind, float]]:
        """Active limits (finite bounds) in checking order."""
        return ((kind, bound) for kind, bound in self._items if math.isfinite(bound))

    def merge(self, other: typing.Optional[LimitsInput]) -> "Limits":
        """Return new limits with the bounds of `other` taking precedence."""
        values = dict(self._items)
        values.update(Limits(other)._items)
        return Limits(values)

    def __repr__(self) -> str:
        body = ", ".join(f"{kind.value}={bound:.6g}" for kind, bound in self._items)
        return f"Limits({body})"


@attrs.frozen(slots=True)
class LimitCheck:
    """Outcome of checking a well's active limits."""

    target: WellTarget
    """Target to operate against after the check."""
    changed: bool
    """Whether a limit was violated and the target replaced."""
    current_value: float = math.nan
    """Evaluated value of the last limit checked, NaN if none was evaluated."""
    limit_value: float = math.nan
    """Bound of the last limit checked."""
    limit_kind: typing.Optional[LimitKind] = None
    """Kind of the violated limit, if any."""
    is_lower: bool = False
    """Whether the last checked bound is a lower bound in signed terms."""

    @property
    def limit_type(self) -> str:
        return "lower" if self.is_lower else "upper"


def translate_limit(
    control: WellControl, kind: typing.Union[str, LimitKind], bound: float
) -> typing.Tuple[WellTarget, bool]:
    """
    Translate a named limit into the target it switches to and its direction.

    Producer rates are negative. An upper bound on the produced magnitude,
    `|q| <= |lim|`, is then `q >= lim`, i.e. a lower bound in signed terms.
    The `rate_lower` limit flips this for producers and shuts the well in to
    the bound rather than letting it start to inject.

    :param control: The control of the well the limit applies to.
    :param kind: The limit kind.
    :param bound: The limit value.
    :return: Tuple of (target, is_lower) where `is_lower` tells whether the
        well must stay above the bound.
    :raises UnsupportedLimitError: If the limit is not supported for the control's role.
    """
    kind = _to_limit_kind(kind)
    if isinstance(control, ProducerControl):
        is_lower = True
        if kind is LimitKind.BHP:
            target_limit = BottomHolePressureTarget(bound)
        elif kind is LimitKind.ORAT:
            target_limit = SurfaceOilRateTarget(bound)
        elif kind is LimitKind.LRAT:
            target_limit = SurfaceLiquidRateTarget(bound)
        elif kind is LimitKind.GRAT:
            target_limit = SurfaceGasRateTarget(bound)
        elif kind is LimitKind.WRAT:
            target_limit = SurfaceWaterRateTarget(bound)
        elif kind in (LimitKind.RATE, LimitKind.RATE_UPPER):
            target_limit = TotalRateTarget(bound)
        elif kind is LimitKind.RATE_LOWER:
            target_limit = TotalRateTarget(bound)
            is_lower = False
        else:
            raise UnsupportedLimitError(
                f"{kind.value} limit not supported for well acting as producer."
            )
        return target_limit, is_lower

    if isinstance(control, InjectorControl):
        is_lower = False
        if kind is LimitKind.BHP:
            target_limit = BottomHolePressureTarget(bound)
        elif kind in (LimitKind.RATE, LimitKind.RATE_UPPER):
            target_limit = TotalRateTarget(bound)
        elif kind is LimitKind.RATE_LOWER:
            target_limit = TotalRateTarget(bound)
            is_lower = True
        else:
            raise UnsupportedLimitError(
                f"{kind.value} limit not supported for well acting as injector."
            )
        return target_limit, is_lower

    raise UnsupportedLimitError(
        f"{kind.value} limit not supported for well with control {control}."
    )


def check_limit(
    current_control: WellControl,
    target_limit: WellTarget,
    target: WellTarget,
    is_lower: bool,
    total_mass_rate: float,
    well_state: WellTargetState,
    tolerance: typing.Optional[float] = None,
) -> typing.Tuple[bool, float, float]:
    """
    Check a single limit.

    :param current_control: Control the well currently operates under.
    :param target_limit: Target the limit translates to.
    :param target: Target the well currently operates against.
    :param is_lower: Whether the limit is a lower bound in signed terms.
    :param total_mass_rate: Total surface mass rate of the well.
    :param well_state: Local well quantities.
    :param tolerance: Relative tolerance. Defaults to `WELL_LIMIT_TOLERANCE`.
    :return: Tuple of (ok, current value, limit value). Values are NaN when the
        well already operates against the limit.
    """
    if is_same_target_kind(target_limit, target):
        # Already operating at this target, it cannot violate itself
        return True, math.nan, math.nan

    limit_value = target_limit.value
    if not math.isfinite(limit_value):
        raise ValidationError(f"Non-finite bound {limit_value!r} for {target_limit}")

    epsilon = c.WELL_LIMIT_TOLERANCE if tolerance is None else tolerance
    current_value = well_target_value(
        total_mass_rate, current_control, target_limit, well_state
    )
    if is_lower:
        ok = current_value >= (1 + epsilon) * limit_value
    else:
        ok = current_value <= (1 - epsilon) * limit_value
    return ok, current_value, limit_value


def check_active_limits(
    control: WellControl,
    target: WellTarget,
    limits: Limits,
    well_state: WellTargetState,
    total_mass_rate: float,
    tolerance: typing.Optional[float] = None,
) -> LimitCheck:
    """
    Check the active limits of a well in order. The first violated limit wins.

    :param control: Control the well currently operates under.
    :param target: Target the well currently operates against.
    :param limits: The well's limits.
    :param well_state: Local well quantities.
    :param total_mass_rate: Total surface mass rate of the well.
    :param tolerance: Relative tolerance for the comparison.
    :return: `LimitCheck` with the target to operate against.
    """
    current_value = limit_value = math.nan
    is_lower = False
    for kind, bound in limits.active():
        target_limit, is_lower = translate_limit(control, kind, bound)
        ok, current_value, limit_value = check_limit(
            control,
            target_limit,
            target,
            is_lower,
            total_mass_rate,
            well_state,
            tolerance=tolerance,
        )
        if not ok:
            return LimitCheck(
                target=target_limit,
                changed=True,
                current_value=current_value,
                limit_value=limit_value,
                limit_kind=kind,
                is_lower=is_lower,
            )
    return LimitCheck(
        target=target,
        changed=False,
        current_value=current_value,
        limit_value=limit_value,
        is_lower=is_lower,
    )
