import typing

import attrs
import numpy as np

from wellctl._precision import get_dtype
from wellctl.errors import UnknownWellError, ValidationError
from wellctl.types import FluidPhase, WellName
from wellctl.wells.configuration import WellGroupConfiguration
from wellctl.wells.evaluation import WellTargetState


__all__ = [
    "WellGroupState",
    "PrimaryVariables",
    "TOTAL_SURFACE_MASS_RATE",
    "BOTTOM_HOLE_PRESSURE",
]

TOTAL_SURFACE_MASS_RATE = "TotalSurfaceMassRate"
BOTTOM_HOLE_PRESSURE = "BottomHolePressure"

PrimaryVariables = typing.Dict[str, np.typing.NDArray]


def _phases(phases: typing.Iterable[typing.Union[str, FluidPhase]]) -> typing.Tuple[FluidPhase, ...]:
    return tuple(FluidPhase(phase) for phase in phases)


@attrs.define
class WellGroupState:
    """
    State of a well group during a simulation.

    Holds the primary variables of the wells (one entry per well, ordered like
    `wells`), the control configuration of the group and the surface properties
    of each well's stream needed to evaluate rate targets.
    """

    wells: typing.Tuple[WellName, ...] = attrs.field(converter=tuple)
    """Well symbols of the group, in primary variable order."""
    phases: typing.Tuple[FluidPhase, ...] = attrs.field(converter=_phases)
    """Phases of the system, in per-phase array order."""
    primary_variables: PrimaryVariables
    """Primary variables by name. Each array has one entry per well."""
    configuration: WellGroupConfiguration
    """Control configuration of the group."""
    surface_densities: np.typing.NDArray
    """Phase densities at surface conditions, shape (wells, phases) (kg/m³)."""
    surface_volume_fractions: np.typing.NDArray
    """Phase volume fractions at surface conditions, shape (wells, phases)."""

    def __attrs_post_init__(self) -> None:
        n_wells, n_phases = len(self.wells), len(self.phases)
        if len(set(self.wells)) != n_wells:
            raise ValidationError(f"Duplicate well names in {self.wells!r}")
        for name, values in self.primary_variables.items():
            if np.shape(values) != (n_wells,):
                raise ValidationError(
                    f"Primary variable {name!r} must have one value per well, got shape {np.shape(values)}"
                )
        for name in ("surface_densities", "surface_volume_fractions"):
            if np.shape(getattr(self, name)) != (n_wells, n_phases):
                raise ValidationError(
                    f"{name} must have shape {(n_wells, n_phases)}, got {np.shape(getattr(self, name))}"
                )
        missing = set(self.wells) - set(self.configuration.wells)
        if missing:
            raise UnknownWellError(
                f"Wells {sorted(missing)!r} are missing from the configuration."
            )

    @classmethod
    def initialize(
        cls,
        wells: typing.Sequence[WellName],
        phases: typing.Sequence[typing.Union[str, FluidPhase]],
        surface_densities: typing.Any,
        surface_volume_fractions: typing.Optional[typing.Any] = None,
        bottom_hole_pressure: typing.Union[float, typing.Sequence[float]] = 0.0,
        total_surface_mass_rate: typing.Union[float, typing.Sequence[float]] = 0.0,
    ) -> "WellGroupState":
        """
        Create the initial state of a well group with all wells disabled.

        :param wells: Well symbols.
        :param phases: Phases of the system.
        :param surface_densities: Phase surface densities, either per phase
            (shared by all wells) or per well and phase.
        :param surface_volume_fractions: Phase surface volume fractions, per phase or
            per well and phase. Defaults to equal fractions.
        :param bottom_hole_pressure: Initial bottom-hole pressure(s) (Pa).
        :param total_surface_mass_rate: Initial surface mass rate(s) (kg/s).
        :return: The initial state.
        """
        dtype = get_dtype()
        wells = tuple(wells)
        phases = _phases(phases)
        n_wells, n_phases = len(wells), len(phases)
        if surface_volume_fractions is None:
            surface_volume_fractions = np.full(n_phases, 1.0 / n_phases)

        def per_well(values: typing.Any) -> np.typing.NDArray:
            return np.array(
                np.broadcast_to(np.asarray(values, dtype=dtype), (n_wells, n_phases))
            )

        return cls(
            wells=wells,
            phases=phases,
            primary_variables={
                BOTTOM_HOLE_PRESSURE: np.array(
                    np.broadcast_to(np.asarray(bottom_hole_pressure, dtype=dtype), (n_wells,))
                ),
                TOTAL_SURFACE_MASS_RATE: np.array(
                    np.broadcast_to(np.asarray(total_surface_mass_rate, dtype=dtype), (n_wells,))
                ),
            },
            configuration=WellGroupConfiguration.from_wells(wells),
            surface_densities=per_well(surface_densities),
            surface_volume_fractions=per_well(surface_volume_fractions),
        )

    def position(self, well: WellName) -> int:
        """Index of a well in the primary variable arrays."""
        try:
            return self.wells.index(well)
        except ValueError:
            raise UnknownWellError(f"Well {well!r} is not part of the well group.") from None

    @property
    def total_surface_mass_rate(self) -> np.typing.NDArray:
        return self.primary_variables[TOTAL_SURFACE_MASS_RATE]

    @property
    def bottom_hole_pressure(self) -> np.typing.NDArray:
        return self.primary_variables[BOTTOM_HOLE_PRESSURE]

    def well_target_state(self, well: WellName) -> WellTargetState:
        """Local quantities of a well used to evaluate its targets and limits."""
        pos = self.position(well)
        return WellTargetState(
            pressure=self.bottom_hole_pressure[pos : pos + 1],
            surface_densities=self.surface_densities[pos],
            surface_volume_fractions=self.surface_volume_fractions[pos],
            phases=self.phases,
        )

    def snapshot(self) -> PrimaryVariables:
        """Full copy of the primary variables."""
        return {name: values.copy() for name, values in self.primary_variables.items()}

    def restore(self, snapshot: PrimaryVariables) -> None:
        """Restore primary variables in place from a snapshot, exactly."""
        for name, values in snapshot.items():
            self.primary_variables[name][...] = values

    def copy(self) -> "WellGroupState":
        """Independent copy of the state, including its configuration."""
        return attrs.evolve(
            self,
            primary_variables=self.snapshot(),
            configuration=self.configuration.copy(),
            surface_densities=self.surface_densities.copy(),
            surface_volume_fractions=self.surface_volume_fractions.copy(),
        )

