import numpy as np
import pytest

from wellctl import (
    FluidPhase,
    InjectorControl,
    ProducerControl,
    TotalRateTarget,
    WellGroupState,
    WellTargetState,
)

PHASES = (FluidPhase.WATER, FluidPhase.GAS, FluidPhase.OIL)
SURFACE_DENSITIES = np.array([1000.0, 1.0, 800.0])
SURFACE_VOLUME_FRACTIONS = np.array([0.2, 0.3, 0.5])
# Σ ρ_p V_p of the stream above
STREAM_DENSITY = 1000.0 * 0.2 + 1.0 * 0.3 + 800.0 * 0.5


@pytest.fixture
def well_state():
    return WellTargetState(
        pressure=[50e5],
        surface_densities=SURFACE_DENSITIES,
        surface_volume_fractions=SURFACE_VOLUME_FRACTIONS,
        phases=PHASES,
    )


@pytest.fixture
def water_injector():
    return InjectorControl(
        target=TotalRateTarget(1e-3), phases={"water": 1.0}, mixture_density=1000.0
    )


@pytest.fixture
def producer():
    return ProducerControl(target=TotalRateTarget(-0.05))


@pytest.fixture
def group_state():
    return WellGroupState.initialize(
        wells=["I1", "P1", "P2"],
        phases=PHASES,
        surface_densities=SURFACE_DENSITIES,
        surface_volume_fractions=SURFACE_VOLUME_FRACTIONS,
        bottom_hole_pressure=100e5,
    )
