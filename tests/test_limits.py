import math

import pytest

from wellctl import (
    BottomHolePressureTarget,
    DisabledControl,
    InjectorControl,
    LimitKind,
    Limits,
    ProducerControl,
    SurfaceGasRateTarget,
    SurfaceLiquidRateTarget,
    SurfaceOilRateTarget,
    SurfaceWaterRateTarget,
    TotalRateTarget,
    UnsupportedLimitError,
    ValidationError,
    WellTargetState,
    check_active_limits,
    check_limit,
    translate_limit,
)

from conftest import PHASES, STREAM_DENSITY, SURFACE_DENSITIES, SURFACE_VOLUME_FRACTIONS


def _state(bhp: float) -> WellTargetState:
    return WellTargetState(
        pressure=[bhp],
        surface_densities=SURFACE_DENSITIES,
        surface_volume_fractions=SURFACE_VOLUME_FRACTIONS,
        phases=PHASES,
    )


@pytest.fixture
def bhp_injector():
    return InjectorControl(
        target=BottomHolePressureTarget(300e5),
        phases={"water": 1.0},
        mixture_density=1000.0,
    )


class TestLimits:
    def test_unknown_limit_key(self):
        with pytest.raises(ValidationError, match="Unknown limit"):
            Limits({"bhp": 1e5, "reservoir_rate": 2.0})

    def test_non_numeric_bound(self):
        with pytest.raises(ValidationError):
            Limits({"bhp": "high"})

    def test_iterates_in_checking_order(self):
        limits = Limits({"rate_upper": 1.0, "bhp": 2e5, "orat": -1.0})
        assert list(limits) == [LimitKind.BHP, LimitKind.ORAT, LimitKind.RATE_UPPER]

    def test_mapping_access(self):
        limits = Limits([("bhp", 2e5), (LimitKind.RATE, 1.0)])
        assert limits["bhp"] == 2e5
        assert limits[LimitKind.RATE] == 1.0
        assert "rate" in limits
        assert "orat" not in limits
        assert "nonsense" not in limits
        assert len(limits) == 2
        with pytest.raises(KeyError):
            limits["orat"]

    def test_non_finite_bounds_are_inactive(self):
        limits = Limits({"bhp": math.inf, "rate": 1.0, "orat": math.nan})
        assert len(limits) == 3
        assert list(limits.active()) == [(LimitKind.RATE, 1.0)]

    def test_merge_prefers_other(self):
        merged = Limits({"bhp": 1e5, "rate": 1.0}).merge({"rate": 2.0, "wrat": -1.0})
        assert dict(merged) == {
            LimitKind.BHP: 1e5,
            LimitKind.WRAT: -1.0,
            LimitKind.RATE: 2.0,
        }
        assert Limits({"bhp": 1e5}).merge(None) == Limits({"bhp": 1e5})

    def test_repr(self):
        assert repr(Limits({"rate": 2.0, "bhp": 1e5})) == "Limits(bhp=100000, rate=2)"


class TestTranslateLimit:
    @pytest.mark.parametrize(
        "kind, target_type, is_lower",
        [
            ("bhp", BottomHolePressureTarget, True),
            ("orat", SurfaceOilRateTarget, True),
            ("lrat", SurfaceLiquidRateTarget, True),
            ("grat", SurfaceGasRateTarget, True),
            ("wrat", SurfaceWaterRateTarget, True),
            ("rate", TotalRateTarget, True),
            ("rate_upper", TotalRateTarget, True),
            ("rate_lower", TotalRateTarget, False),
        ],
    )
    def test_producer(self, producer, kind, target_type, is_lower):
        target, lower = translate_limit(producer, kind, -2.0)
        assert type(target) is target_type
        assert target.value == -2.0
        assert lower is is_lower

    @pytest.mark.parametrize(
        "kind, target_type, is_lower",
        [
            ("bhp", BottomHolePressureTarget, False),
            ("rate", TotalRateTarget, False),
            ("rate_upper", TotalRateTarget, False),
            ("rate_lower", TotalRateTarget, True),
        ],
    )
    def test_injector(self, water_injector, kind, target_type, is_lower):
        target, lower = translate_limit(water_injector, kind, 2.0)
        assert type(target) is target_type
        assert target.value == 2.0
        assert lower is is_lower

    @pytest.mark.parametrize("kind", ["orat", "lrat", "grat", "wrat"])
    def test_injector_phase_limits_unsupported(self, water_injector, kind):
        with pytest.raises(UnsupportedLimitError, match="injector"):
            translate_limit(water_injector, kind, 1.0)

    def test_disabled_unsupported(self):
        with pytest.raises(UnsupportedLimitError):
            translate_limit(DisabledControl(), "bhp", 1e5)


class TestCheckLimits:
    def test_producer_bhp_limit(self):
        control = ProducerControl(TotalRateTarget(100))
        check = check_active_limits(
            control, control.target, Limits({"bhp": 50e5}), _state(40e5), -10.0
        )
        assert check.changed
        assert check.target == BottomHolePressureTarget(50e5)
        assert check.limit_kind is LimitKind.BHP
        assert check.limit_type == "lower"
        assert check.current_value == 40e5
        assert check.limit_value == 50e5

    def test_injector_upper_rate_limit(self, bhp_injector):
        # 250 m³/s of water at 1000 kg/m³
        check = check_active_limits(
            bhp_injector,
            bhp_injector.target,
            Limits({"rate_upper": 200.0}),
            _state(250e5),
            250.0 * 1000.0,
        )
        assert check.changed
        assert check.target == TotalRateTarget(200.0)
        assert check.limit_type == "upper"
        assert check.current_value == pytest.approx(250.0)

    def test_within_limits(self, producer):
        check = check_active_limits(
            producer,
            producer.target,
            Limits({"bhp": 50e5, "rate": -0.05}),
            _state(60e5),
            -0.04 * STREAM_DENSITY,
        )
        assert not check.changed
        assert check.target == producer.target

    def test_production_above_rate_limit(self):
        control = ProducerControl(BottomHolePressureTarget(30e5))
        check = check_active_limits(
            control,
            control.target,
            Limits({"bhp": 30e5, "rate": -0.05}),
            _state(30e5),
            -0.08 * STREAM_DENSITY,
        )
        assert check.changed
        assert check.target == TotalRateTarget(-0.05)

    def test_first_violation_wins(self, producer):
        # Both the bhp and the oil rate limit are violated
        limits = Limits({"orat": -0.001, "bhp": 50e5})
        check = check_active_limits(
            producer, producer.target, limits, _state(40e5), -12.0
        )
        assert check.changed
        assert check.limit_kind is LimitKind.BHP

    def test_switched_target_does_not_switch_again(self):
        control = ProducerControl(TotalRateTarget(-0.05))
        limits = Limits({"bhp": 50e5, "rate": -0.05})
        state = _state(40e5)
        first = check_active_limits(control, control.target, limits, state, -20.0)
        assert first.changed

        switched = ProducerControl(first.target)
        again = check_active_limits(switched, first.target, limits, state, -20.0)
        assert not again.changed
        assert again.target == first.target

    def test_repeated_check_is_stable(self, producer):
        limits = Limits({"bhp": 50e5, "rate": -0.05})
        state = _state(60e5)
        results = [
            check_active_limits(producer, producer.target, limits, state, -10.0)
            for _ in range(3)
        ]
        assert all(r.target == producer.target for r in results)
        assert not any(r.changed for r in results)

    def test_same_kind_is_skipped(self, producer):
        ok, current, limit = check_limit(
            producer,
            TotalRateTarget(-0.01),
            producer.target,
            True,
            -1000.0,
            _state(50e5),
        )
        assert ok
        assert math.isnan(current) and math.isnan(limit)

    def test_tolerance(self):
        control = ProducerControl(TotalRateTarget(-0.05))
        target_limit = BottomHolePressureTarget(50e5)
        # Within the relative tolerance of the bound counts as reaching it
        ok, _, _ = check_limit(
            control, target_limit, control.target, True, -1.0, _state(50e5 * (1 + 1e-7))
        )
        assert not ok
        ok, _, _ = check_limit(
            control,
            target_limit,
            control.target,
            True,
            -1.0,
            _state(50e5 * (1 + 1e-7)),
            tolerance=0.0,
        )
        assert ok

    def test_inactive_limits_are_ignored(self, producer):
        check = check_active_limits(
            producer, producer.target, Limits({"bhp": math.inf}), _state(1e5), -1.0
        )
        assert not check.changed
