"""Numerical constants for well control and the well presolve."""

from contextvars import ContextVar
import typing

import attrs


__all__ = ["Constant", "Constants", "c", "ConstantsContext", "get_constant"]


@attrs.frozen(slots=True)
class Constant:
    """A constant value with optional description and unit."""

    value: typing.Any
    """The actual value of the constant."""

    description: typing.Optional[str] = None
    """Optional description of what this constant represents."""

    unit: typing.Optional[str] = None
    """Optional unit of measurement for this constant."""

    def __str__(self) -> str:
        return f"{self.value}{self.unit or ''}"


DEFAULT_CONSTANTS: typing.Dict[str, typing.Union[typing.Any, Constant]] = {
    "MIN_INITIAL_WELL_RATE": Constant(
        value=1e-12,
        description=(
            "Smallest surface mass rate magnitude a well is clamped to when "
            "its control is (re)applied before a step"
        ),
        unit="kg/s",
    ),
    "MIN_ACTIVE_WELL_RATE": Constant(
        value=1e-20,
        description=(
            "Smallest surface mass rate magnitude kept by an active well "
            "during nonlinear updates"
        ),
        unit="kg/s",
    ),
    "WELL_LIMIT_TOLERANCE": Constant(
        value=1e-6,
        description="Relative tolerance used when testing operating limits",
    ),
    "BHP_TARGET_SCALING": Constant(
        value=1e5,
        description="Scaling of bottom-hole pressure control equations",
        unit="Pa",
    ),
    "RATE_TARGET_SCALING": Constant(
        value=1.0,
        description="Scaling of surface rate control equations",
    ),
    "MAX_RECORDED_LIMIT_SWITCHES": Constant(
        value=1000,
        description="Number of limit switches kept for diagnostics",
    ),
}


class Constants:
    """
    Store of constants used by the well control subsystem.

    Values are read with dot notation, `Constant` objects (with metadata) with
    bracket notation. Constants can be modified at runtime.
    """

    __slots__ = ("_store",)

    def __new__(cls) -> "Constants":
        instance = super().__new__(cls)
        instance._store = {}
        return instance

    def __init__(self) -> None:
        for name, value in DEFAULT_CONSTANTS.items():
            self._store[name] = (
                value if isinstance(value, Constant) else Constant(value=value)
            )

    def __getattr__(self, name: str) -> typing.Any:
        if name.startswith("_"):
            return object.__getattribute__(self, name)
        try:
            return self._store[name].value
        except KeyError:
            raise AttributeError(
                f"'{type(self).__name__}' object has no attribute '{name}'"
            ) from None

    def __getitem__(self, name: str) -> Constant:
        return self._store[name]

    def __setattr__(self, name: str, value: typing.Union[typing.Any, Constant]) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self[name] = value

    def __setitem__(self, name: str, value: typing.Union[typing.Any, Constant]) -> None:
        if not isinstance(value, Constant):
            # Keep metadata of the constant being overridden
            existing = self._store.get(name)
            value = (
                attrs.evolve(existing, value=value)
                if existing is not None
                else Constant(value=value)
            )
        self._store[name] = value

    def __contains__(self, name: str) -> bool:
        return name in self._store

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(constants={len(self._store)})"

    def keys(self) -> typing.KeysView[str]:
        return self._store.keys()

    def get(self, name: str, default: typing.Any = None) -> typing.Any:
        """
        Get a constant's value with a default fallback.

        :param name: Name of the constant
        :param default: Default value if constant doesn't exist
        :return: Value of the constant or default
        """
        constant = self._store.get(name)
        if constant is None:
            return default
        return constant.value

    def get_constant(
        self, name: str, default: typing.Optional[Constant] = None
    ) -> typing.Optional[Constant]:
        return self._store.get(name, default)

    def __call__(self) -> "ConstantsContext":
        """
        Create a context manager that temporarily makes this instance the one
        returned by the global proxy `wellctl.c`.
        """
        return ConstantsContext(self)


_constants_context: ContextVar[Constants] = ContextVar(
    "constants_context", default=Constants()
)


class ConstantsContext:
    """Context manager for temporary global `Constants` overrides."""

    def __init__(self, constants: Constants) -> None:
        self._new_constants = constants
        self._token = None

    def __enter__(self) -> Constants:
        self._token = _constants_context.set(self._new_constants)
        return self._new_constants

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if self._token is not None:
            _constants_context.reset(self._token)
            self._token = None


class _ConstantsProxy:
    """Proxy to the `Constants` instance of the current context."""

    @property
    def _constants(self) -> Constants:
        return _constants_context.get()

    def __getattr__(self, name: str) -> typing.Any:
        return getattr(self._constants, name)

    def __getitem__(self, name: str) -> Constant:
        return self._constants[name]


c = _ConstantsProxy()
"""Global proxy to access well control constants."""


def get_constant(name: str) -> typing.Optional[Constant]:
    """Get a `Constant` object by name from the current constants."""
    return c._constants.get_constant(name)
