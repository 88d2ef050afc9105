import pytest

from wellctl import (
    BottomHolePressureTarget,
    ControlRole,
    DisabledControl,
    DisabledTarget,
    FluidPhase,
    InjectorControl,
    ProducerControl,
    SurfaceOilRateTarget,
    SurfaceWaterRateTarget,
    TotalRateTarget,
    ValidationError,
    control_role,
    default_limits,
    replace_target,
)


class TestInjectorControl:
    def test_phases_from_mapping(self):
        control = InjectorControl(
            target=TotalRateTarget(1.0),
            phases={"water": 0.6, FluidPhase.GAS: 0.4},
            mixture_density=500.0,
        )
        assert control.phases == ((FluidPhase.WATER, 0.6), (FluidPhase.GAS, 0.4))

    def test_phases_from_pairs(self):
        control = InjectorControl(
            target=TotalRateTarget(1.0),
            phases=[("gas", 1.0)],
            mixture_density=1.2,
        )
        assert control.phases == ((FluidPhase.GAS, 1.0),)

    @pytest.mark.parametrize(
        "phases, density",
        [
            ({}, 1000.0),
            ({"water": -0.1}, 1000.0),
            ({"water": float("nan")}, 1000.0),
            ({"water": 1.0}, 0.0),
            ({"water": 1.0}, -5.0),
            ({"water": 1.0}, float("inf")),
        ],
    )
    def test_invalid_parameters(self, phases, density):
        with pytest.raises(ValidationError):
            InjectorControl(
                target=TotalRateTarget(1.0), phases=phases, mixture_density=density
            )

    def test_unknown_phase(self):
        with pytest.raises(ValueError):
            InjectorControl(
                target=TotalRateTarget(1.0), phases={"brine": 1.0}, mixture_density=1000.0
            )

    def test_disabled_target_rejected(self):
        with pytest.raises(ValidationError):
            InjectorControl(
                target=DisabledTarget(), phases={"water": 1.0}, mixture_density=1000.0
            )
        with pytest.raises(ValidationError):
            ProducerControl(target=DisabledTarget())


class TestRoles:
    def test_control_role(self, water_injector, producer):
        assert control_role(water_injector) is ControlRole.INJECTOR
        assert control_role(producer) is ControlRole.PRODUCER
        assert control_role(DisabledControl()) is ControlRole.DISABLED

    def test_disabled_control_target(self):
        assert DisabledControl().target == DisabledTarget()
        assert DisabledControl() == DisabledControl()

    def test_replace_target_keeps_role(self, water_injector, producer):
        injector = replace_target(water_injector, BottomHolePressureTarget(200e5))
        assert isinstance(injector, InjectorControl)
        assert injector.target == BottomHolePressureTarget(200e5)
        assert injector.phases == water_injector.phases
        assert water_injector.target == TotalRateTarget(1e-3)

        produced = replace_target(producer, BottomHolePressureTarget(50e5))
        assert isinstance(produced, ProducerControl)
        assert control_role(produced) is ControlRole.PRODUCER

    def test_replace_target_of_disabled(self):
        control = DisabledControl()
        assert replace_target(control, DisabledTarget()) is control
        with pytest.raises(ValidationError):
            replace_target(control, BottomHolePressureTarget(1e5))


class TestDefaultLimits:
    def test_disabled(self):
        assert default_limits(DisabledControl()) is None

    def test_rate_producer(self):
        assert default_limits(ProducerControl(TotalRateTarget(-0.05))) == {"rate": -0.05}
        assert default_limits(ProducerControl(SurfaceOilRateTarget(-0.01))) == {
            "orat": -0.01
        }

    def test_bhp_producer_cannot_inject(self):
        limits = default_limits(ProducerControl(BottomHolePressureTarget(50e5)))
        assert limits == {"bhp": 50e5, "rate_lower": -1e-20}

    def test_bhp_injector_cannot_produce(self):
        control = InjectorControl(
            target=BottomHolePressureTarget(300e5),
            phases={"water": 1.0},
            mixture_density=1000.0,
        )
        assert default_limits(control) == {"bhp": 300e5, "rate_lower": 1e-20}

    def test_rate_injector(self, water_injector):
        assert default_limits(water_injector) == {"rate": 1e-3}

    def test_named_phase_injector_has_no_self_limit(self):
        control = InjectorControl(
            target=SurfaceWaterRateTarget(1e-3),
            phases={"water": 1.0},
            mixture_density=1000.0,
        )
        assert default_limits(control) is None
