"""Linear solvers for restricted (wells only) systems."""

from concurrent.futures import ThreadPoolExecutor
import logging
import typing

import attrs
import numpy as np
from scipy.sparse import csc_matrix, csr_matrix, diags, issparse
from scipy.sparse.linalg import (
    LinearOperator,
    bicgstab,
    gmres,
    lgmres,
    spilu,
    splu,
    spsolve,
)

from wellctl.errors import SolverError, ValidationError
from wellctl.types import PartitionKey, WellName

logger = logging.getLogger(__name__)

__all__ = [
    "LinearizedSystem",
    "LinearSolver",
    "LUSolver",
    "IterativeSolver",
    "solve_linear_system",
    "solve_partitions",
]

IterativeSolverName = typing.Literal["bicgstab", "gmres", "lgmres"]
PreconditionerName = typing.Literal["ilu", "diagonal"]

_SOLVER_FUNCS: typing.Dict[str, typing.Callable[..., typing.Tuple[np.ndarray, int]]] = {
    "bicgstab": bicgstab,
    "gmres": gmres,
    "lgmres": lgmres,
}


def _as_csr(matrix: typing.Any) -> csr_matrix:
    return matrix.tocsr() if issparse(matrix) else csr_matrix(np.atleast_2d(matrix))


@attrs.frozen
class LinearizedSystem:
    """
    Linearized restricted system of one coupling partition.

    Row `i` of the system is the equation `equations[i]` of well `row_wells[i]`.
    """

    jacobian: csr_matrix = attrs.field(converter=_as_csr)
    """Jacobian with respect to the partition's primary variables."""
    residual: np.typing.NDArray = attrs.field(
        converter=lambda r: np.asarray(r, dtype=np.float64).ravel()
    )
    """Residual vector."""
    row_wells: typing.Tuple[WellName, ...] = attrs.field(converter=tuple)
    """Well of each row."""
    equations: typing.Tuple[str, ...] = attrs.field(converter=tuple)
    """Equation kind of each row (e.g. 'control', 'inflow')."""
    labels: typing.Tuple[str, ...] = attrs.field(converter=tuple, default=())
    """Optional human readable label of each row."""

    def __attrs_post_init__(self) -> None:
        n = self.residual.shape[0]
        if self.jacobian.shape != (n, n):
            raise ValidationError(
                f"Jacobian shape {self.jacobian.shape} does not match residual size {n}"
            )
        if len(self.row_wells) != n or len(self.equations) != n:
            raise ValidationError("Row wells and equations must have one entry per row.")
        if self.labels and len(self.labels) != n:
            raise ValidationError("Labels must have one entry per row.")

    @property
    def size(self) -> int:
        return self.residual.shape[0]

    def errors(self, equation: str) -> np.typing.NDArray:
        """Absolute residual of the rows of one equation kind."""
        mask = np.array([eq == equation for eq in self.equations], dtype=np.bool_)
        return np.abs(self.residual[mask])


class LinearSolver(typing.Protocol):
    """Solves a linearized system for the Newton update `dx` with `J dx = -r`."""

    def __call__(self, system: LinearizedSystem) -> np.typing.NDArray: ...


def _ilu_preconditioner(A_csr: csr_matrix) -> LinearOperator:
    ilu = spilu(csc_matrix(A_csr))
    return LinearOperator(A_csr.shape, matvec=ilu.solve)


def _diagonal_preconditioner(A_csr: csr_matrix) -> LinearOperator:
    diagonal = A_csr.diagonal()
    # Zero diagonal entries are left unscaled
    safe = np.where(diagonal != 0.0, diagonal, 1.0)
    return diags(1.0 / safe)


_PRECONDITIONER_FACTORIES: typing.Dict[str, typing.Callable[[csr_matrix], LinearOperator]] = {
    "ilu": _ilu_preconditioner,
    "diagonal": _diagonal_preconditioner,
}


def solve_linear_system(
    A_csr: csr_matrix,
    b: np.typing.NDArray,
    solver: typing.Union[IterativeSolverName, typing.Sequence[IterativeSolverName]] = "bicgstab",
    max_iterations: int = 200,
    rtol: float = 1e-10,
    atol: typing.Optional[float] = None,
    preconditioner: typing.Optional[PreconditionerName] = "ilu",
    fallback_to_direct: bool = True,
) -> np.typing.NDArray:
    """
    Solve A·x = b with iterative solver(s), optionally falling back to a direct solve.

    Solvers are tried in order until one converges. Restricted well systems are
    small, so the direct fallback is on by default.

    :param A_csr: Coefficient matrix in CSR format.
    :param b: Right-hand side vector.
    :param solver: Iterative solver name or sequence of names ("bicgstab", "gmres", "lgmres").
    :param max_iterations: Maximum number of iterations for each solver.
    :param rtol: Relative tolerance for convergence.
    :param atol: Absolute tolerance for convergence. Defaults to `rtol * ||b||`.
    :param preconditioner: Preconditioner ("ilu", "diagonal") or None.
    :param fallback_to_direct: Whether to fall back to a direct solver if all iterative solvers fail.
    :return: The solution vector.
    :raises SolverError: If no solver succeeds.
    """
    names = [solver] if isinstance(solver, str) else list(solver)
    for name in names:
        if name not in _SOLVER_FUNCS:
            raise ValidationError(
                f"Unknown solver type: {name!r}. Available solvers: {list(_SOLVER_FUNCS)}"
            )
    if preconditioner is not None and preconditioner not in _PRECONDITIONER_FACTORIES:
        raise ValidationError(
            f"Unknown preconditioner type: {preconditioner!r}. "
            f"Available preconditioners: {list(_PRECONDITIONER_FACTORIES)}"
        )

    b_norm = float(np.linalg.norm(b))
    if b_norm == 0.0:
        return np.zeros_like(b)
    atol = atol if atol is not None else rtol * b_norm

    M = None
    if preconditioner is not None:
        try:
            M = _PRECONDITIONER_FACTORIES[preconditioner](A_csr)
        except RuntimeError as exc:
            logger.warning(f"Could not build {preconditioner} preconditioner: {exc}")

    for name in names:
        x, info = _SOLVER_FUNCS[name](
            A_csr, b, M=M, rtol=rtol, atol=atol, maxiter=max_iterations
        )
        if info == 0 and np.all(np.isfinite(x)):
            return np.ascontiguousarray(x)
        logger.warning(
            f"Solver {name!r} failed to converge within {max_iterations} iterations. Info: {info}"
        )

    if not fallback_to_direct:
        raise SolverError(
            f"All solvers failed to converge within {max_iterations} iterations."
        )

    logger.info("Falling back to direct solver (spsolve).")
    try:
        x = spsolve(csc_matrix(A_csr), b)
    except RuntimeError as exc:
        raise SolverError("Direct solver failed to solve the system.") from exc
    x = np.atleast_1d(x)
    if not np.all(np.isfinite(x)):
        raise SolverError("Direct solver returned a non-finite solution.")
    return np.ascontiguousarray(x)


@attrs.define
class LUSolver:
    """Direct sparse LU solver for the restricted system of one partition."""

    def __call__(self, system: LinearizedSystem) -> np.typing.NDArray:
        try:
            lu = splu(csc_matrix(system.jacobian))
        except RuntimeError as exc:
            raise SolverError(f"LU factorization failed: {exc}") from exc
        dx = lu.solve(-system.residual)
        if not np.all(np.isfinite(dx)):
            raise SolverError("LU solve returned a non-finite update.")
        return dx


@attrs.define
class IterativeSolver:
    """Iterative solver for the restricted system of one partition. See `solve_linear_system`."""

    solver: typing.Union[IterativeSolverName, typing.Sequence[IterativeSolverName]] = "bicgstab"
    preconditioner: typing.Optional[PreconditionerName] = "ilu"
    max_iterations: int = 200
    rtol: float = 1e-10
    fallback_to_direct: bool = True

    def __call__(self, system: LinearizedSystem) -> np.typing.NDArray:
        return solve_linear_system(
            system.jacobian,
            -system.residual,
            solver=self.solver,
            max_iterations=self.max_iterations,
            rtol=self.rtol,
            preconditioner=self.preconditioner,
            fallback_to_direct=self.fallback_to_direct,
        )


def solve_partitions(
    systems: typing.Mapping[PartitionKey, LinearizedSystem],
    solvers: typing.Mapping[PartitionKey, LinearSolver],
    max_workers: int = 1,
) -> typing.Dict[PartitionKey, np.typing.NDArray]:
    """
    Solve the restricted system of each coupling partition separately.

    Partitions share no state, so with `max_workers > 1` they are solved
    concurrently. The order in which they complete does not matter.

    :param systems: Linearized system per partition.
    :param solvers: Linear solver per partition.
    :param max_workers: Number of threads to use.
    :return: Newton update per partition.
    :raises SolverError: If a partition's solve fails.
    """

    def _solve(key: PartitionKey) -> np.typing.NDArray:
        return solvers[key](systems[key])

    keys = list(systems)
    if max_workers <= 1 or len(keys) <= 1:
        return {key: _solve(key) for key in keys}

    with ThreadPoolExecutor(max_workers=min(max_workers, len(keys))) as executor:
        return dict(zip(keys, executor.map(_solve, keys)))
