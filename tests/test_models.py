# Copyright (c) 2024. Tudor Oancea
"""
Invariants of the double track planar model.
"""
import numpy as np
import pytest
from casadi import MX, Function

from racing_mpc import TyreIndex, XIndex, g


def evaluate(model, x, u):
    out = model.forward_dynamics({"x": x, "u": u})
    return {k: v.full().ravel() for k, v in out.items()}


STATES = [
    np.array([0.0, 0.0, 0.0, 0.1, 0.02, 40.0]),
    np.array([10.0, -5.0, 1.2, -0.3, -0.05, 25.0]),
    np.array([-3.0, 7.0, -2.5, 0.0, 0.0, 60.0]),
    np.array([0.0, 0.0, 3.0, 0.5, 0.1, 15.0]),
]


class TestForwardDynamics:
    @pytest.mark.parametrize("x", STATES)
    def test_position_derivative_has_speed_magnitude(self, model, x):
        x_dot = evaluate(model, x, np.array([1000.0, 0.0, 0.05]))["x_dot"]
        assert np.hypot(x_dot[XIndex.X], x_dot[XIndex.Y]) == pytest.approx(
            x[XIndex.V], rel=1e-9
        )
        assert x_dot[XIndex.YAW] == pytest.approx(x[XIndex.YAW_RATE])

    def test_straight_line_trim(self, model):
        x = np.array([0.0, 0.0, 0.0, 0.0, 0.0, 30.0])
        out = evaluate(model, x, np.array([0.0, 0.0, 0.0]))
        x_dot = out["x_dot"]
        assert np.all(np.isfinite(x_dot))
        assert x_dot[XIndex.YAW_RATE] == pytest.approx(0.0, abs=1e-9)
        assert x_dot[XIndex.BETA] == pytest.approx(0.0, abs=1e-9)
        assert out["gamma_y"][0] == pytest.approx(0.0, abs=1e-9)
        np.testing.assert_allclose(out["Fy_ij"], 0.0, atol=1e-9)
        # coasting: drag and rolling resistance slow the car down
        assert x_dot[XIndex.V] < 0.0

    def test_golden_values(self, model):
        x = np.array([0.0, 0.0, 0.0, 0.1, 0.02, 40.0])
        u = np.array([500.0, 0.0, 0.1])
        first = evaluate(model, x, u)
        second = evaluate(model, x, u)
        for key in first:
            assert np.all(np.isfinite(first[key]))
            np.testing.assert_array_equal(first[key], second[key])
        x_dot = first["x_dot"]
        np.testing.assert_allclose(
            x_dot,
            [40.0, 0.0, 0.1, 8.5703760816, -1.7260904643e-2, -9.0444872253e-1],
            rtol=1e-6,
            atol=1e-9,
        )
        assert first["gamma_y"][0] == pytest.approx(452.48694632, rel=1e-6)
        np.testing.assert_allclose(
            first["Fz_ij"], [2037.248194, 2489.735140, 2259.664860, 2712.151806], rtol=1e-6
        )
        np.testing.assert_allclose(
            first["Fy_ij"], [1913.238968, 2308.119149, -735.506998, -861.154177], rtol=1e-6
        )
        # steering left at 0.1 rad with a small yaw rate: the car yaws further left
        assert x_dot[XIndex.YAW_RATE] > 0.0
        assert first["gamma_y"][0] > 0.0

    def test_load_transfer_is_self_consistent(self, model):
        x = np.array([0.0, 0.0, 0.0, 0.1, 0.02, 40.0])
        u = np.array([500.0, 0.0, 0.1])
        out = model.forward_dynamics({"x": x, "u": u})
        expected = float(
            model.load_transfer_expr(out["Fx_ij"], out["Fy_ij"], u[2])
        )
        assert float(out["gamma_y"]) == pytest.approx(expected, rel=1e-8, abs=1e-6)

        # evaluating the dynamics with the resolved value yields the same forces
        direct = model.dynamics(x=x, u=u, gamma_y=out["gamma_y"])
        np.testing.assert_allclose(
            direct["Fy_ij"].full(), out["Fy_ij"].full(), rtol=1e-12
        )

    def test_total_vertical_load(self, model, vehicle_config):
        v = 50.0
        x = np.array([0.0, 0.0, 0.0, 0.2, 0.01, v])
        out = evaluate(model, x, np.array([3000.0, 0.0, 0.05]))
        aero = vehicle_config.aero
        m = vehicle_config.chassis.total_mass
        downforce = 0.5 * (aero.cl_f + aero.cl_r) * aero.air_density * aero.frontal_area * v**2
        assert np.sum(out["Fz_ij"]) == pytest.approx(m * g + downforce, rel=1e-9)
        # positive load transfer unloads the left wheels
        assert out["Fz_ij"][TyreIndex.FL] < out["Fz_ij"][TyreIndex.FR]
        assert out["Fz_ij"][TyreIndex.RL] < out["Fz_ij"][TyreIndex.RR]

    def test_longitudinal_forces_split(self, model, vehicle_config):
        fd, fb = 2000.0, -500.0
        out = evaluate(model, STATES[0], np.array([fd, fb, 0.0]))
        chassis = vehicle_config.chassis
        rolling = chassis.fr * chassis.total_mass * g
        assert np.sum(out["Fx_ij"]) == pytest.approx(fd + fb - rolling, rel=1e-9)

    def test_stationary_state_is_guarded(self, model):
        x = np.zeros(6)
        out = evaluate(model, x, np.array([1000.0, 0.0, 0.0]))
        for value in out.values():
            assert np.all(np.isfinite(value))

    def test_symbolic_evaluation_matches_numeric(self, model):
        x_sym = MX.sym("x", 6)
        u_sym = MX.sym("u", 3)
        out = model.forward_dynamics({"x": x_sym, "u": u_sym})
        f = Function("f", [x_sym, u_sym], [out["x_dot"], out["gamma_y"]])
        x = STATES[1]
        u = np.array([800.0, 0.0, -0.05])
        x_dot, gamma_y = f(x, u)
        expected = evaluate(model, x, u)
        np.testing.assert_allclose(x_dot.full().ravel(), expected["x_dot"], rtol=1e-9)
        assert float(gamma_y) == pytest.approx(expected["gamma_y"][0], rel=1e-9)
