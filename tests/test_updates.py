import numpy as np
import numpy.testing as npt
import pytest

from wellctl import (
    BottomHolePressureTarget,
    Constants,
    DisabledControl,
    InjectorControl,
    Limits,
    ProducerControl,
    TotalRateTarget,
    UnknownWellError,
    WellForces,
    setup_forces,
    update_before_step,
    update_surface_rate,
    update_surface_rates,
    valid_surface_rate_for_control,
)

INITIAL_RATES = [-5.0, -1e-13, 0.0, 1e-13, 5.0]


def _injector(target=None):
    return InjectorControl(
        target=target or TotalRateTarget(1e-3), phases={"water": 1.0}, mixture_density=1000.0
    )


class TestValidSurfaceRate:
    @pytest.mark.parametrize("q", INITIAL_RATES)
    def test_injector(self, q):
        assert valid_surface_rate_for_control(q, _injector()) == max(q, 1e-12)

    @pytest.mark.parametrize("q", INITIAL_RATES)
    def test_producer(self, q, producer):
        assert valid_surface_rate_for_control(q, producer) == min(q, -1e-12)

    @pytest.mark.parametrize("q", INITIAL_RATES)
    def test_disabled(self, q):
        assert valid_surface_rate_for_control(q, DisabledControl()) == 0.0

    def test_follows_constants(self):
        constants = Constants()
        constants.MIN_INITIAL_WELL_RATE = 1e-3
        with constants():
            assert valid_surface_rate_for_control(0.0, _injector()) == 1e-3


class TestUpdateBeforeStep:
    @pytest.mark.parametrize("q", INITIAL_RATES)
    def test_rates_match_control_role(self, group_state, producer, q):
        group_state.total_surface_mass_rate[:] = q
        forces = setup_forces(
            group_state.wells, control={"I1": _injector(), "P1": producer}
        )
        update_before_step(group_state, forces)

        q_t = group_state.total_surface_mass_rate
        assert q_t[group_state.position("I1")] >= 1e-12
        assert q_t[group_state.position("P1")] <= -1e-12
        assert q_t[group_state.position("P2")] == 0.0

    def test_controls_and_limits_applied(self, group_state, producer):
        forces = setup_forces(
            group_state.wells, control={"P1": producer}, limits={"P1": {"bhp": 50e5}}
        )
        update_before_step(group_state, forces)
        cfg = group_state.configuration
        assert cfg.operating_control("P1") == producer
        assert cfg.requested_control("P1") == producer
        assert cfg.current_limits("P1") == Limits({"bhp": 50e5, "rate": -0.05})
        assert cfg.current_limits("P2") is None

    def test_same_request_keeps_limit_switch(self, group_state, producer):
        forces = setup_forces(
            group_state.wells, control={"P1": producer}, limits={"P1": {"bhp": 50e5}}
        )
        update_before_step(group_state, forces)
        cfg = group_state.configuration
        pos = group_state.position("P1")
        group_state.bottom_hole_pressure[pos] = 40e5
        cfg.apply_well_limit(
            "P1",
            producer.target,
            group_state.well_target_state("P1"),
            group_state.total_surface_mass_rate[pos],
        )
        switched = ProducerControl(BottomHolePressureTarget(50e5))
        assert cfg.operating_control("P1") == switched

        update_before_step(group_state, forces)
        assert cfg.operating_control("P1") == switched

        forces = setup_forces(
            group_state.wells, control={"P1": ProducerControl(TotalRateTarget(-0.01))}
        )
        update_before_step(group_state, forces)
        assert cfg.operating_control("P1") == ProducerControl(TotalRateTarget(-0.01))

    def test_partial_forces(self, group_state, producer):
        update_before_step(group_state, WellForces(control={"P2": producer}))
        cfg = group_state.configuration
        assert cfg.operating_control("P2") == producer
        assert cfg.operating_control("P1") == DisabledControl()

    def test_unknown_well(self, group_state, producer):
        with pytest.raises(UnknownWellError):
            update_before_step(group_state, WellForces(control={"Q1": producer}))
        with pytest.raises(UnknownWellError):
            update_before_step(group_state, WellForces(limits={"Q1": {"bhp": 1e5}}))

    def test_unknown_well_leaves_group_untouched(self, group_state, producer):
        group_state.total_surface_mass_rate[:] = 0.0
        forces = WellForces(
            control={"I1": _injector(), "P1": producer, "Q1": producer},
            limits={"P1": {"bhp": 50e5}},
        )
        with pytest.raises(UnknownWellError):
            update_before_step(group_state, forces)

        cfg = group_state.configuration
        for well in group_state.wells:
            assert cfg.operating_control(well) == DisabledControl()
            assert cfg.requested_control(well) == DisabledControl()
            assert cfg.current_limits(well) is None
        npt.assert_array_equal(group_state.total_surface_mass_rate, 0.0)

        forces = WellForces(control={"P1": producer}, limits={"Q1": {"bhp": 1e5}})
        with pytest.raises(UnknownWellError):
            update_before_step(group_state, forces)
        assert cfg.operating_control("P1") == DisabledControl()


class TestUpdateSurfaceRate:
    @pytest.mark.parametrize("increment", [-10.0, -1.0, 0.0, 1.0, 10.0])
    def test_roles_keep_sign(self, producer, increment):
        assert update_surface_rate(0.5, increment, _injector()) >= 1e-20
        assert update_surface_rate(-0.5, increment, producer) <= -1e-20
        assert update_surface_rate(0.5, increment, DisabledControl()) == 0.0

    def test_unbounded_within_region(self, producer):
        assert update_surface_rate(2.0, -0.5, _injector()) == 1.5
        assert update_surface_rate(-2.0, 0.5, producer) == -1.5

    def test_in_place_update(self, producer):
        q_t = np.array([1.0, -1.0, 0.3])
        update_surface_rates(
            q_t,
            np.array([-2.0, 0.25, 4.0]),
            [_injector(), producer, DisabledControl()],
        )
        npt.assert_array_equal(q_t, [1e-20, -0.75, 0.0])
