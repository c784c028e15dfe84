# Copyright (c) 2024. Tudor Oancea
"""
Hermite-Simpson collocation and per interval NLP constraints.
"""
import numpy as np
import pytest
from casadi import MX, Function, Opti

from racing_mpc import CollocationConstraintBuilder, g, nu, nx, simulate


@pytest.fixture(scope="module")
def builder(model):
    return CollocationConstraintBuilder(model)


@pytest.fixture(scope="module")
def residual_fun(builder):
    x = MX.sym("x", nx)
    u = MX.sym("u", nu)
    gamma_y = MX.sym("gamma_y")
    xip1 = MX.sym("xip1", nx)
    t = MX.sym("t")
    residual, _ = builder.collocation_residual(x, u, gamma_y, xip1, t)
    return Function("residual", [x, u, gamma_y, xip1, t], [residual])


def cruise_force(vehicle_config, v):
    chassis = vehicle_config.chassis
    aero = vehicle_config.aero
    return (
        chassis.fr * chassis.total_mass * g
        + 0.5 * aero.drag_coeff * aero.air_density * aero.frontal_area * v**2
    )


def straight_line(vehicle_config, yaw=0.0, v=30.0, t=0.1):
    x = np.array([1.0, 2.0, yaw, 0.0, 0.0, v])
    u = np.array([cruise_force(vehicle_config, v), 0.0, 0.0])
    xip1 = x + np.array([v * t * np.cos(yaw), v * t * np.sin(yaw), 0.0, 0.0, 0.0, 0.0])
    return x, u, xip1, t


class TestCollocationResidual:
    @pytest.mark.parametrize("yaw", [0.0, 0.7, -2.0, 3.1])
    def test_constant_speed_straight_line(self, residual_fun, vehicle_config, yaw):
        x, u, xip1, t = straight_line(vehicle_config, yaw)
        residual = residual_fun(x, u, 0.0, xip1, t).full().ravel()
        np.testing.assert_allclose(residual, 0.0, atol=1e-8)

    def test_wrong_successor_is_detected(self, residual_fun, vehicle_config):
        x, u, xip1, t = straight_line(vehicle_config)
        xip1[0] += 1.0
        residual = residual_fun(x, u, 0.0, xip1, t).full().ravel()
        assert residual[0] == pytest.approx(-1.0)

    @pytest.mark.parametrize("turns", [-2, -1, 1, 3])
    def test_yaw_wraparound(self, residual_fun, vehicle_config, turns):
        x, u, xip1, t = straight_line(vehicle_config, yaw=3.1)
        reference = residual_fun(x, u, 0.0, xip1, t).full().ravel()
        xip1[2] += 2 * np.pi * turns
        wrapped = residual_fun(x, u, 0.0, xip1, t).full().ravel()
        np.testing.assert_allclose(wrapped, reference, atol=1e-9)

    def test_turning_interval_matches_integration(self, model, residual_fun):
        # small step along a simulated trajectory, the residual is of the order of the
        # integration error
        x = np.array([0.0, 0.0, 0.0, 0.1, 0.02, 40.0])
        u = np.array([500.0, 0.0, 0.1])
        t = 0.02
        xip1 = simulate(model, x, u, t, 20)
        gamma_y = float(model.forward_dynamics({"x": x, "u": u})["gamma_y"])
        residual = residual_fun(x, u, gamma_y, xip1, t).full().ravel()
        np.testing.assert_allclose(residual, 0.0, atol=5e-3)


class TestFrictionEllipse:
    def test_usage_below_one_at_cruise(self, builder, model, vehicle_config):
        x, u, _, _ = straight_line(vehicle_config)
        out = model.dynamics(x=x, u=u, gamma_y=0.0)
        for usage in builder.friction_ellipse(out):
            assert 0.0 <= float(usage) < 1.0

    def test_usage_above_one_when_braking_too_hard(self, builder, model, vehicle_config):
        x, _, _, _ = straight_line(vehicle_config, v=10.0)
        u = np.array([0.0, -1e5, 0.0])
        out = model.dynamics(x=x, u=u, gamma_y=0.0)
        assert max(float(usage) for usage in builder.friction_ellipse(out)) > 1.0


class TestNLPConstraints:
    def make_inputs(self, opti, last):
        x = opti.variable(nx)
        u = opti.variable(nu)
        return {
            "x": x,
            "u": u,
            "gamma_y": opti.variable(),
            "xip1": opti.variable(nx),
            "uip1": None if last else opti.variable(nu),
            "t": opti.variable(),
        }

    def test_constraint_rows_with_rates(self, builder):
        opti = Opti()
        builder.add_nlp_constraints(opti, self.make_inputs(opti, last=False))
        assert opti.ng == 20

    def test_constraint_rows_on_last_interval(self, builder):
        opti = Opti()
        builder.add_nlp_constraints(opti, self.make_inputs(opti, last=True))
        assert opti.ng == 17
