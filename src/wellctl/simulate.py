import logging
import typing

from wellctl.config import Config
from wellctl.errors import ValidationError
from wellctl.solvers.presolve import (
    PresolveResult,
    WellPresolver,
    WellSystemModel,
)
from wellctl.wells.forces import WellForces
from wellctl.wells.updates import update_before_step

if typing.TYPE_CHECKING:
    from wellctl.states import WellGroupState

logger = logging.getLogger(__name__)

__all__ = ["step_wells", "run"]


def step_wells(
    model: typing.Union[WellSystemModel, WellPresolver],
    state: "WellGroupState",
    forces: WellForces,
    config: typing.Optional[Config] = None,
) -> typing.Tuple["WellGroupState", PresolveResult]:
    """
    Prepare the wells for one step of the outer simulation.

    Applies the requested controls and limits of the step, then runs the bounded
    well presolve. The state is updated in place.

    :param model: The well system model, or a `WellPresolver` to reuse its linear solvers.
    :param state: The well group state.
    :param forces: Requested controls and limits for the step.
    :param config: Presolve configuration. Ignored when `model` is a `WellPresolver`.
    :return: The state and the presolve result.
    """
    if isinstance(model, WellPresolver):
        presolver = model
    else:
        presolver = WellPresolver(model=model, config=config or Config())

    with presolver.config.constants():
        update_before_step(state, forces)
    result = presolver.prepare_step(state)
    return state, result


def run(
    model: WellSystemModel,
    state: "WellGroupState",
    forces: typing.Union[WellForces, typing.Iterable[WellForces]],
    steps: typing.Optional[int] = None,
    config: typing.Optional[Config] = None,
) -> typing.Generator[typing.Tuple[int, PresolveResult], None, None]:
    """
    Prepare the wells for a sequence of steps.

    :param model: The well system model.
    :param state: The well group state, updated in place.
    :param forces: Forces applied at every step, or one `WellForces` per step.
    :param steps: Number of steps. Required when a single `WellForces` is given.
    :param config: Presolve configuration.
    :return: A generator yielding the step number and presolve result of each step.
    """
    presolver = WellPresolver(model=model, config=config or Config())
    if isinstance(forces, WellForces):
        if steps is None:
            raise ValidationError("`steps` is required when a single `WellForces` is given.")
        step_forces: typing.Iterable[WellForces] = (forces for _ in range(steps))
    else:
        step_forces = forces

    for step, forces_at_step in enumerate(step_forces, start=1):
        _, result = step_wells(presolver, state, forces_at_step)
        if result.rolled_back:
            logger.info(f"Step {step}: wells rolled back after {result.iterations} iterations")
        yield step, result
