"""
Bounded well presolve.

Before each step of the full reservoir and well system, the wells alone are
iterated for a capped number of rounds. Each round recomputes dependent
quantities (where limit checks may switch well controls), assembles the
restricted wells-only system, checks convergence and otherwise solves every
coupling partition separately and updates the primary variables. If the wells
do not converge, even with the relaxed tolerances of the final round, their
primary variables are rolled back to the values they had before the presolve.

The presolve is a warm start: its outcome is informational and never aborts
the step.
"""

import logging
import typing

import attrs
import numpy as np

from wellctl.config import Config
from wellctl.errors import SolverError
from wellctl.solvers.base import LinearizedSystem, LinearSolver, LUSolver, solve_partitions
from wellctl.types import ConvergenceReport, PartitionKey, WellName
from wellctl.wells.configuration import name_equation

if typing.TYPE_CHECKING:
    from wellctl.states import WellGroupState

logger = logging.getLogger(__name__)

__all__ = ["WellSystemModel", "PresolveResult", "WellPresolver", "prepare_step"]


class WellSystemModel(typing.Protocol):
    """Interface the presolve needs from the model of the well system."""

    def partitions(
        self, state: "WellGroupState"
    ) -> typing.Mapping[PartitionKey, typing.Sequence[WellName]]:
        """Independent coupling partitions (well groups) and their wells."""
        ...

    def update_state_dependents(self, state: "WellGroupState", config: Config) -> None:
        """Recompute quantities depending on the primary variables. May switch controls."""
        ...

    def assemble(
        self, state: "WellGroupState"
    ) -> typing.Mapping[PartitionKey, LinearizedSystem]:
        """Assemble the restricted linearized system of each partition."""
        ...

    def apply_update(
        self,
        state: "WellGroupState",
        updates: typing.Mapping[PartitionKey, np.typing.NDArray],
    ) -> None:
        """Apply the Newton update of each partition to the primary variables."""
        ...

    def convergence(
        self,
        systems: typing.Mapping[PartitionKey, LinearizedSystem],
        tolerances: typing.Mapping[str, float],
        tol_factor: float = 1.0,
    ) -> ConvergenceReport:
        """Per-quantity convergence flag and error."""
        ...


@attrs.frozen(slots=True)
class PresolveResult:
    """Outcome of a well presolve."""

    converged: bool
    """Whether the wells converged within the allowed iterations."""
    iterations: int
    """Number of iterations performed."""
    rolled_back: bool = False
    """Whether primary variables were restored to their values before the presolve."""
    errors: ConvergenceReport = attrs.field(factory=dict)
    """Convergence report of the last iteration."""
    message: typing.Optional[str] = None


@attrs.define
class WellPresolver:
    """
    Bounded well presolve for one well system model.

    Keeps one linear solver per coupling partition across steps.
    """

    model: WellSystemModel
    config: Config = attrs.field(factory=Config)
    solver_factory: typing.Callable[[], LinearSolver] = LUSolver
    """Creates the linear solver of a partition."""
    _solvers: typing.Dict[PartitionKey, LinearSolver] = attrs.field(
        factory=dict, init=False
    )

    def _partition_solvers(
        self, keys: typing.Iterable[PartitionKey]
    ) -> typing.Dict[PartitionKey, LinearSolver]:
        for key in keys:
            if key not in self._solvers:
                self._solvers[key] = self.solver_factory()
        return self._solvers

    def prepare_step(self, state: "WellGroupState") -> PresolveResult:
        """
        Run the bounded well presolve on `state`, in place.

        :param state: The well group state. Primary variables and the control
            configuration are updated in place.
        :return: `PresolveResult`. Failure to converge is reported, not raised.
        """
        config = self.config
        max_well_iterations = config.well_iterations
        info_level = config.well_info_level
        if max_well_iterations == 0:
            return PresolveResult(
                converged=False, iterations=0, message="Well presolve disabled."
            )

        with config.constants():
            primary = state.snapshot()
            converged = False
            iterations = 0
            errors: ConvergenceReport = {}
            message = None
            for well_it in range(1, max_well_iterations + 1):
                iterations = well_it
                if well_it > 1:
                    # The snapshot already reflects the dependents on the first round
                    self.model.update_state_dependents(state, config)
                systems = self.model.assemble(state)
                if well_it == max_well_iterations:
                    tol_factor = config.well_acceptance_factor
                else:
                    tol_factor = 1.0
                errors = self.model.convergence(
                    systems, config.tolerances, tol_factor=tol_factor
                )
                converged = all(ok for ok, _ in errors.values())
                if info_level > 0:
                    _log_convergence_table(state, systems, errors, well_it, tol_factor, config)
                if converged:
                    break

                solvers = self._partition_solvers(systems)
                try:
                    updates = solve_partitions(
                        systems, solvers, max_workers=config.max_workers
                    )
                except SolverError as exc:
                    logger.warning(
                        f"Linear solve failed in well iteration {well_it}: {exc}"
                    )
                    message = f"Linear solver failure. {exc}"
                    break
                self.model.apply_update(state, updates)

            if converged:
                if info_level > 0:
                    logger.info(f"Wells converged in {iterations} iterations")
                return PresolveResult(
                    converged=True, iterations=iterations, errors=errors
                )

            state.restore(primary)
            self.model.update_state_dependents(state, config)
            logger.info(
                f"Wells did not converge in {iterations} of {max_well_iterations} iterations. "
                "Restored well state from before the presolve."
            )
            return PresolveResult(
                converged=False,
                iterations=iterations,
                rolled_back=True,
                errors=errors,
                message=message,
            )


def prepare_step(
    model: WellSystemModel,
    state: "WellGroupState",
    config: typing.Optional[Config] = None,
) -> PresolveResult:
    """
    Run a bounded well presolve on `state` with a fresh `WellPresolver`.

    :param model: The well system model.
    :param state: The well group state, updated in place.
    :param config: Presolve configuration. Defaults to `Config()`.
    :return: `PresolveResult`.
    """
    return WellPresolver(model=model, config=config or Config()).prepare_step(state)


def _log_convergence_table(
    state: "WellGroupState",
    systems: typing.Mapping[PartitionKey, LinearizedSystem],
    errors: ConvergenceReport,
    well_it: int,
    tol_factor: float,
    config: Config,
) -> None:
    logger.info(f"Well iteration {well_it} (tolerance factor {tol_factor:g})")
    for name, (ok, error) in errors.items():
        tolerance = config.tolerances.get(name, float("nan")) * tol_factor
        logger.info(
            f"  {name:<10} error={error:.4e} tolerance={tolerance:.4e} {'ok' if ok else ''}"
        )
    if config.well_info_level > 1:
        cfg = state.configuration
        for system in systems.values():
            for well, equation, value in zip(system.row_wells, system.equations, system.residual):
                logger.info(f"    {name_equation(well, cfg):<24} {equation:<10} {value:.4e}")
