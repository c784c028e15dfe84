# Copyright (c) 2024. Tudor Oancea
from casadi import MX, Opti

from .constants import UIndex, XIndex
from .models import DoubleTrackPlanarModel
from .utils import align_yaw

__all__ = ["CollocationConstraintBuilder"]


class CollocationConstraintBuilder:
    """
    Emits the constraints of one discretization interval of the racing NLP:
    - Hermite-Simpson collocation of the dynamics (controls held over the interval),
    - friction ellipse at each tyre,
    - lateral load transfer consistency,
    - static and dynamic (rate) actuator limits.

    Nothing is evaluated numerically here, the constraints are registered on an externally
    owned casadi.Opti instance.
    """

    model: DoubleTrackPlanarModel

    def __init__(self, model: DoubleTrackPlanarModel) -> None:
        self.model = model

    def collocation_residual(
        self, x: MX, u: MX, gamma_y: MX, xip1: MX, t: MX
    ) -> tuple[MX, dict]:
        """
        residual of the Hermite-Simpson scheme between x and xip1 over a step of length t,
        along with the dynamics outputs at the interval start
        """
        # avoid spurious jumps of 2*pi between consecutive yaw values
        xip1_aligned = MX(xip1)
        xip1_aligned[XIndex.YAW.value] = align_yaw(
            xip1[XIndex.YAW.value], x[XIndex.YAW.value]
        )

        dynamics = self.model.dynamics
        out1 = dynamics(x=x, u=u, gamma_y=gamma_y)
        f1 = out1["x_dot"]
        f2 = dynamics(x=xip1_aligned, u=u, gamma_y=gamma_y)["x_dot"]
        xm = 0.5 * (x + xip1_aligned) + (t / 8.0) * (f1 - f2)
        fm = dynamics(x=xm, u=u, gamma_y=gamma_y)["x_dot"]
        residual = x + (t / 6.0) * (f1 + 4.0 * fm + f2) - xip1_aligned
        return residual, out1

    def friction_ellipse(self, out: dict) -> list[MX]:
        """combined force usage of each tyre, must stay below 1"""
        mu = self.model.config.model.mu
        Fx_ij = out["Fx_ij"]
        Fy_ij = out["Fy_ij"]
        Fz_ij = out["Fz_ij"]
        return [
            (Fx_ij[i] / (mu * Fz_ij[i])) ** 2 + (Fy_ij[i] / (mu * Fz_ij[i])) ** 2
            for i in range(4)
        ]

    def add_nlp_constraints(self, opti: Opti, inputs: dict) -> None:
        """
        :param inputs: {"x", "u", "gamma_y", "xip1", "uip1", "t"}. If "uip1" is None the rate
                       constraints of this interval are skipped (last interval of the horizon).
        """
        x = inputs["x"]
        u = inputs["u"]
        gamma_y = inputs["gamma_y"]
        xip1 = inputs["xip1"]
        uip1 = inputs.get("uip1")
        t = inputs["t"]

        v = x[XIndex.V.value]
        fd = u[UIndex.FD.value]
        fb = u[UIndex.FB.value]
        delta = u[UIndex.STEER.value]

        model_config = self.model.config.model
        steer_config = self.model.config.steer
        P_max = model_config.P_max
        Fd_max = model_config.Fd_max
        Fb_max = model_config.Fb_max
        delta_max = steer_config.max_steer

        # dynamics constraint
        residual, out1 = self.collocation_residual(x, u, gamma_y, xip1, t)
        opti.subject_to(residual == 0)

        # tyre constraints
        for usage in self.friction_ellipse(out1):
            opti.subject_to(usage <= 1)

        # load transfer constraint
        opti.subject_to(
            gamma_y
            == self.model.load_transfer_expr(out1["Fx_ij"], out1["Fy_ij"], delta)
        )

        # static actuator constraints
        opti.subject_to(v * fd <= P_max)
        opti.subject_to(v >= 0.0)
        opti.subject_to(opti.bounded(0.0, fd, Fd_max))
        opti.subject_to(opti.bounded(-Fb_max, fb, 0.0))
        opti.subject_to((fd * fb) ** 2 <= 1.0)
        opti.subject_to(opti.bounded(-delta_max, delta, delta_max))

        # dynamic actuator constraints
        if uip1 is None:
            return
        max_steer_rate = steer_config.max_steer_rate
        opti.subject_to((uip1[UIndex.FD.value] - fd) / t <= Fd_max / model_config.Td)
        opti.subject_to((uip1[UIndex.FB.value] - fb) / t >= -Fb_max / model_config.Tb)
        opti.subject_to(
            opti.bounded(
                -max_steer_rate,
                (uip1[UIndex.STEER.value] - delta) / t,
                max_steer_rate,
            )
        )
