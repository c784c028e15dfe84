# Copyright (c) 2024. Tudor Oancea
from casadi import (
    DM,
    MX,
    SX,
    Function,
    atan,
    cos,
    fmax,
    rootfinder,
    sin,
    vertcat,
)

from .config import VehicleConfig
from .constants import TyreIndex as TI
from .constants import g, nu, nx
from .tyre import TyreForceModel

__all__ = ["DoubleTrackPlanarModel"]


class DoubleTrackPlanarModel:
    """
    Planar double track model with load transfer and extended Pacejka lateral tyre forces.

    x = (X, Y, phi, omega, beta, v)
    u = (F_d, F_b, delta)

    The lateral load transfer gamma_y is an implicit variable: it shifts vertical load between
    left and right wheels and is itself a function of the lateral tyre forces. Two paths are
    compiled once at construction:
    - `dynamics` takes gamma_y as an explicit input. The NLP treats it as a decision variable
      tied by an equality constraint (see CollocationConstraintBuilder).
    - `lateral_load_transfer` is a Newton rootfinder on the same equation, used by
      `forward_dynamics` for standalone evaluation (warm start, simulation).
    """

    config: VehicleConfig
    front_tyre: TyreForceModel
    rear_tyre: TyreForceModel
    dynamics: Function
    lateral_load_transfer: Function

    def __init__(self, config: VehicleConfig) -> None:
        self.config = config
        self.front_tyre = TyreForceModel(config.model.mu, config.front_tyre, "front")
        self.rear_tyre = TyreForceModel(config.model.mu, config.rear_tyre, "rear")
        self.compile_dynamics()

    @property
    def nx(self) -> int:
        return nx

    @property
    def nu(self) -> int:
        return nu

    def load_transfer_expr(
        self, Fx_ij: SX | MX, Fy_ij: SX | MX, delta: SX | MX
    ) -> SX | MX:
        """lateral load transfer implied by the tyre forces"""
        chassis = self.config.chassis
        return (
            chassis.cg_height
            / (0.5 * (chassis.tw_f + chassis.tw_r))
            * (
                Fy_ij[int(TI.RL)]
                + Fy_ij[int(TI.RR)]
                + (Fx_ij[int(TI.FL)] + Fx_ij[int(TI.FR)]) * sin(delta)
                + (Fy_ij[int(TI.FL)] + Fy_ij[int(TI.FR)]) * cos(delta)
            )
        )

    def compile_dynamics(self) -> None:
        x = SX.sym("x", nx)
        u = SX.sym("u", nu)
        gamma_y = SX.sym("gamma_y", 1)  # lateral load transfer

        phi = x[2]  # yaw
        omega = x[3]  # yaw rate
        beta = x[4]  # slip angle
        v = x[5]  # velocity magnitude
        fd = u[0]  # drive force
        fb = u[1]  # brake force
        delta = u[2]  # front wheel angle
        v_sq = v * v

        chassis = self.config.chassis
        aero = self.config.aero
        kd_f = self.config.powertrain.kd  # front drive force bias
        kb_f = self.config.front_brake.bias  # front brake force bias
        m = chassis.total_mass
        Jzz = chassis.moi
        l = chassis.wheel_base
        lf = chassis.lf  # cg to front axle
        lr = chassis.lr  # cg to rear axle
        twf = chassis.tw_f
        twr = chassis.tw_r
        fr = chassis.fr
        hcog = chassis.cg_height
        kroll_f = self.config.model.kroll_f
        rho = aero.air_density
        A = aero.frontal_area
        cd = aero.drag_coeff
        F_drag = 0.5 * cd * rho * A * v_sq

        # longitudinal tyre forces
        Fx_f = 0.5 * kd_f * fd + 0.5 * kb_f * fb - 0.5 * fr * m * g * lr / l
        Fx_r = (
            0.5 * (1.0 - kd_f) * fd
            + 0.5 * (1.0 - kb_f) * fb
            - 0.5 * fr * m * g * lf / l
        )
        Fx_fl = Fx_fr = Fx_f
        Fx_rl = Fx_rr = Fx_r

        # longitudinal acceleration
        ax = (fd + fb - F_drag - fr * m * g) / m

        # vertical tyre forces
        Fz_f = (
            0.5 * m * g * lr / l
            - 0.5 * hcog / l * m * ax
            + 0.25 * aero.cl_f * rho * A * v_sq
        )
        Fz_r = (
            0.5 * m * g * lf / l
            + 0.5 * hcog / l * m * ax
            + 0.25 * aero.cl_r * rho * A * v_sq
        )
        Fz_fl = Fz_f - kroll_f * gamma_y
        Fz_fr = Fz_f + kroll_f * gamma_y
        Fz_rl = Fz_r - (1.0 - kroll_f) * gamma_y
        Fz_rr = Fz_r + (1.0 - kroll_f) * gamma_y

        # tyre slip angles
        v_lon = v * cos(beta)
        a_fl = delta - atan((lf * omega + v * sin(beta)) / (v_lon - 0.5 * twf * omega))
        a_fr = delta - atan((lf * omega + v * sin(beta)) / (v_lon + 0.5 * twf * omega))
        a_rl = atan((lr * omega - v * sin(beta)) / (v_lon - 0.5 * twr * omega))
        a_rr = atan((lr * omega - v * sin(beta)) / (v_lon + 0.5 * twr * omega))

        # lateral tyre forces
        Fy_fl = self.front_tyre.lateral_force(a_fl, Fz_fl)
        Fy_fr = self.front_tyre.lateral_force(a_fr, Fz_fr)
        Fy_rl = self.rear_tyre.lateral_force(a_rl, Fz_rl)
        Fy_rr = self.rear_tyre.lateral_force(a_rr, Fz_rr)

        # dynamics
        v_dot = (
            (Fx_rl + Fx_rr) * cos(beta)
            + (Fx_fl + Fx_fr) * cos(delta - beta)
            + (Fy_rl + Fy_rr) * sin(beta)
            - (Fy_fl + Fy_fr) * sin(delta - beta)
            - F_drag * cos(beta)
        ) / m
        beta_dot = -omega + (
            -(Fx_rl + Fx_rr) * sin(beta)
            + (Fx_fl + Fx_fr) * sin(delta - beta)
            + (Fy_rl + Fy_rr) * cos(beta)
            + (Fy_fl + Fy_fr) * cos(delta - beta)
            + F_drag * sin(beta)
        ) / (m * v)
        omega_dot = (
            (Fx_rr - Fx_rl) * twr / 2.0
            - (Fy_rl + Fy_rr) * lr
            + ((Fx_fr - Fx_fl) * cos(delta) + (Fy_fl - Fy_fr) * sin(delta)) * twf / 2.0
            + ((Fy_fl + Fy_fr) * cos(delta) + (Fx_fl + Fx_fr) * sin(delta)) * lf
        ) / Jzz

        x_dot = vertcat(v * cos(phi), v * sin(phi), omega, omega_dot, beta_dot, v_dot)
        Fx_ij = vertcat(Fx_fl, Fx_fr, Fx_rl, Fx_rr)
        Fy_ij = vertcat(Fy_fl, Fy_fr, Fy_rl, Fy_rr)
        Fz_ij = vertcat(Fz_fl, Fz_fr, Fz_rl, Fz_rr)

        self.dynamics = Function(
            "double_track_planar_model",
            [x, u, gamma_y],
            [x_dot, Fx_ij, Fy_ij, Fz_ij],
            ["x", "u", "gamma_y"],
            ["x_dot", "Fx_ij", "Fy_ij", "Fz_ij"],
        )

        residual = gamma_y - self.load_transfer_expr(Fx_ij, Fy_ij, delta)
        self.lateral_load_transfer = rootfinder(
            "lateral_load_transfer",
            "newton",
            Function("g", [gamma_y, x, u], [residual]),
            {"error_on_fail": False},
        )

    def forward_dynamics(self, inputs: dict) -> dict:
        """
        Standalone evaluation of the dynamics with the load transfer resolved by root finding.

        :param inputs: {"x": state, "u": control}, numeric (array-like, DM) or MX
        :returns: {"x_dot", "Fx_ij", "Fy_ij", "Fz_ij", "gamma_y"}
        """
        x = inputs["x"]
        u = inputs["u"]
        if not isinstance(x, MX):
            x = DM(x)
        if not isinstance(u, MX):
            u = DM(u)

        # keep away from the 1/v singularity
        x_eval = vertcat(x[:5], fmax(x[5], self.config.model.min_speed))

        gamma_y = self.lateral_load_transfer(0.0, x_eval, u)
        out = self.dynamics(x=x_eval, u=u, gamma_y=gamma_y)
        out["gamma_y"] = gamma_y
        return out
