"""Well system models usable with the bounded well presolve."""

import typing

import attrs
import numpy as np
from scipy.sparse import lil_matrix

from wellctl.config import Config
from wellctl.errors import UnknownWellError, ValidationError
from wellctl.solvers.base import LinearizedSystem
from wellctl.types import ConvergenceReport, PartitionKey, WellName
from wellctl.wells.configuration import name_equation
from wellctl.wells.controls import DisabledControl
from wellctl.wells.evaluation import well_target
from wellctl.wells.targets import (
    BottomHolePressureTarget,
    DisabledTarget,
    target_scaling,
)
from wellctl.wells.updates import update_surface_rate

if typing.TYPE_CHECKING:
    from wellctl.states import WellGroupState


__all__ = ["InflowWellGroupModel", "CONTROL_EQUATION", "INFLOW_EQUATION"]

CONTROL_EQUATION = "control"
INFLOW_EQUATION = "inflow"


def _positive_values(instance, attribute, value) -> None:
    for well, v in value.items():
        if not (np.isfinite(v) and v > 0):
            raise ValidationError(
                f"{attribute.name} of well {well!r} must be positive and finite, got {v!r}"
            )


def _finite_values(instance, attribute, value) -> None:
    for well, v in value.items():
        if not np.isfinite(v):
            raise ValidationError(
                f"{attribute.name} of well {well!r} must be finite, got {v!r}"
            )


@attrs.define
class InflowWellGroupModel:
    """
    Single node wells connected to a fixed pressure reservoir.

    Each well has two primary variables, the bottom-hole pressure and the
    total surface mass rate `q`, and two equations:

    - inflow: `q - J·(bhp - p_res)`, so a well injects when its bottom-hole
      pressure is above the reservoir pressure;
    - control: the residual of the well's operating target.

    Wells in the same group are assembled into one linearized system. Groups
    are solved independently.
    """

    well_indices: typing.Dict[WellName, float] = attrs.field(
        converter=dict, validator=_positive_values
    )
    """Mass well index `J` of each well (kg/s/Pa)."""
    reservoir_pressures: typing.Dict[WellName, float] = attrs.field(
        converter=dict, validator=_finite_values
    )
    """Reservoir pressure at each well's connection (Pa)."""
    groups: typing.Optional[typing.Sequence[typing.Sequence[WellName]]] = None
    """Coupled well groups. Defaults to one group per well."""

    def __attrs_post_init__(self) -> None:
        if set(self.well_indices) != set(self.reservoir_pressures):
            raise ValidationError(
                "Well indices and reservoir pressures must be given for the same wells."
            )
        if self.groups is not None:
            grouped = [well for group in self.groups for well in group]
            if len(set(grouped)) != len(grouped):
                raise ValidationError("A well can belong to one group only.")

    def partitions(
        self, state: "WellGroupState"
    ) -> typing.Dict[PartitionKey, typing.Tuple[WellName, ...]]:
        """Well groups of the state's wells, keyed by group index."""
        unknown = set(state.wells) - set(self.well_indices)
        if unknown:
            raise UnknownWellError(f"No inflow data for wells {sorted(unknown)!r}")
        if self.groups is None:
            return {i: (well,) for i, well in enumerate(state.wells)}

        partitions = {i: tuple(group) for i, group in enumerate(self.groups) if group}
        grouped = {well for group in partitions.values() for well in group}
        missing = set(state.wells) - grouped
        if missing:
            raise ValidationError(f"Wells {sorted(missing)!r} are not in any group.")
        extra = grouped - set(state.wells)
        if extra:
            raise UnknownWellError(f"Grouped wells {sorted(extra)!r} are not in the state.")
        return partitions

    def update_state_dependents(
        self, state: "WellGroupState", config: typing.Optional[Config] = None
    ) -> None:
        """Check the operating limits of every active well, switching controls as needed."""
        self._apply_limits(state)

    def _apply_limits(self, state: "WellGroupState") -> None:
        cfg = state.configuration
        q_t = state.total_surface_mass_rate
        for well in state.wells:
            control = cfg.operating_control(well)
            if isinstance(control, DisabledControl):
                continue
            cfg.apply_well_limit(
                well,
                control.target,
                state.well_target_state(well),
                float(q_t[state.position(well)]),
            )

    def _control_equation(
        self, state: "WellGroupState", well: WellName
    ) -> typing.Tuple[float, float, float]:
        """Residual and derivatives (d/dbhp, d/dq) of a well's control equation."""
        pos = state.position(well)
        bhp = float(state.bottom_hole_pressure[pos])
        q = float(state.total_surface_mass_rate[pos])
        control = state.configuration.operating_control(well)
        target = control.target
        if isinstance(target, DisabledTarget):
            return q, 0.0, 1.0

        scaling = target_scaling(target)
        if isinstance(target, BottomHolePressureTarget):
            return (bhp - target.value) / scaling, 1.0 / scaling, 0.0

        weight = well_target(control, target, state.well_target_state(well))
        return (weight * q - target.value) / scaling, 0.0, weight / scaling

    def assemble(
        self, state: "WellGroupState"
    ) -> typing.Dict[PartitionKey, LinearizedSystem]:
        """
        Assemble the linearized system of each well group.

        Operating limits are checked first, so control equations use the targets
        the wells operate under.

        Unknowns of a group are ordered `[bhp_0, q_0, bhp_1, q_1, ...]` and rows
        `[control_0, inflow_0, control_1, inflow_1, ...]`.
        """
        self._apply_limits(state)
        cfg = state.configuration
        systems = {}
        for key, wells in self.partitions(state).items():
            n = 2 * len(wells)
            jacobian = lil_matrix((n, n), dtype=np.float64)
            residual = np.zeros(n)
            row_wells, equations, labels = [], [], []
            for i, well in enumerate(wells):
                pos = state.position(well)
                bhp_col, q_col = 2 * i, 2 * i + 1
                control_row, inflow_row = 2 * i, 2 * i + 1

                r, d_bhp, d_q = self._control_equation(state, well)
                residual[control_row] = r
                jacobian[control_row, bhp_col] = d_bhp
                jacobian[control_row, q_col] = d_q

                J = self.well_indices[well]
                p_res = self.reservoir_pressures[well]
                bhp = state.bottom_hole_pressure[pos]
                q = state.total_surface_mass_rate[pos]
                residual[inflow_row] = q - J * (bhp - p_res)
                jacobian[inflow_row, bhp_col] = -J
                jacobian[inflow_row, q_col] = 1.0

                label = name_equation(well, cfg)
                row_wells += [well, well]
                equations += [CONTROL_EQUATION, INFLOW_EQUATION]
                labels += [label, f"{well} inflow"]

            systems[key] = LinearizedSystem(
                jacobian=jacobian.tocsr(),
                residual=residual,
                row_wells=row_wells,
                equations=equations,
                labels=labels,
            )
        return systems

    def apply_update(
        self,
        state: "WellGroupState",
        updates: typing.Mapping[PartitionKey, np.typing.NDArray],
    ) -> None:
        """Apply Newton updates in place. Surface rates keep the sign of their well's role."""
        partitions = self.partitions(state)
        cfg = state.configuration
        bhp = state.bottom_hole_pressure
        q_t = state.total_surface_mass_rate
        for key, dx in updates.items():
            wells = partitions[key]
            if len(dx) != 2 * len(wells):
                raise ValidationError(
                    f"Update of group {key!r} has size {len(dx)}, expected {2 * len(wells)}"
                )
            for i, well in enumerate(wells):
                pos = state.position(well)
                bhp[pos] += dx[2 * i]
                q_t[pos] = update_surface_rate(
                    q_t[pos], dx[2 * i + 1], cfg.operating_control(well)
                )

    def convergence(
        self,
        systems: typing.Mapping[PartitionKey, LinearizedSystem],
        tolerances: typing.Mapping[str, float],
        tol_factor: float = 1.0,
    ) -> ConvergenceReport:
        """Largest absolute residual of each equation kind against its tolerance."""
        report = {}
        for equation in (CONTROL_EQUATION, INFLOW_EQUATION):
            if equation not in tolerances:
                raise ValidationError(f"No tolerance given for {equation!r} equations.")
            error = 0.0
            for system in systems.values():
                errors = system.errors(equation)
                if errors.size:
                    error = max(error, float(errors.max()))
            report[equation] = (error <= tolerances[equation] * tol_factor, error)
        return report
