import typing

import attrs

from wellctl.constants import Constants
from wellctl.errors import ValidationError

__all__ = ["Config"]


def _default_tolerances() -> typing.Dict[str, float]:
    return {"control": 1e-3, "inflow": 1e-3}


def _positive_tolerances(instance, attribute, value) -> None:
    for name, tol in value.items():
        if not tol > 0:
            raise ValidationError(f"Tolerance for {name!r} must be positive, got {tol!r}")


@attrs.frozen
class Config:
    """Well presolve configuration and parameters."""

    well_iterations: int = attrs.field(
        default=25,
        validator=attrs.validators.and_(
            attrs.validators.instance_of(int),
            attrs.validators.ge(0),
            attrs.validators.le(10000),
        ),
    )
    """
    Well iterations to be performed before each step.

    Setting this to 0 disables the well presolve.
    """
    well_acceptance_factor: float = attrs.field(
        default=10.0, converter=float, validator=attrs.validators.ge(1.0)
    )
    """
    Accept well presolve results at this relaxed factor on the last iteration.

    Tolerances are multiplied by this factor on the final allowed iteration, so
    a state that is close enough is accepted rather than rolled back.
    """
    well_info_level: int = -1
    """Info level for the well solver. Values above 0 log a convergence table per iteration."""
    tolerances: typing.Mapping[str, float] = attrs.field(
        factory=_default_tolerances, validator=_positive_tolerances
    )
    """Convergence tolerances per quantity (e.g. 'control', 'inflow')."""
    max_workers: int = attrs.field(default=1, validator=attrs.validators.ge(1))
    """
    Number of threads used to solve independent well groups within an iteration.

    Well groups share no state within an iteration, so with more than one
    worker they are solved concurrently.
    """
    constants: Constants = attrs.field(factory=Constants)
    """Constants used in the well presolve. Limit checks use `WELL_LIMIT_TOLERANCE`."""

    def with_updates(self, **kwargs: typing.Any) -> "Config":
        """Return a copy of the config with the given fields replaced."""
        return attrs.evolve(self, **kwargs)
