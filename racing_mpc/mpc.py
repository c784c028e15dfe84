# Copyright (c) 2024. Tudor Oancea
from time import perf_counter
from typing import Callable, Optional

import numpy as np
import numpy.typing as npt
from casadi import DM, MX, SX, Function, Opti, repmat, sumsqr
from icecream import ic
from strongpods import PODS

from .collocation import CollocationConstraintBuilder
from .config import RacingMPCConfig
from .constants import UIndex, XIndex, g, nu, nx
from .models import DoubleTrackPlanarModel
from .sim import simulate
from .utils import align_yaw, unwrap_to_pi

__all__ = ["HorizonTrajectory", "SolveResult", "SolveFailure", "RacingMPC"]


@PODS
class HorizonTrajectory:
    x: np.ndarray  # states, shape (nx, N+1)
    u: np.ndarray  # controls, shape (nu, N)
    t: np.ndarray  # step times, shape (N,)
    gamma_y: np.ndarray  # lateral load transfers, shape (N,)

    @property
    def N(self) -> int:
        return self.t.shape[0]

    def shift(self) -> "HorizonTrajectory":
        """drop the first step and repeat the last one, to warm start the next cycle"""
        return HorizonTrajectory(
            x=np.hstack((self.x[:, 1:], self.x[:, -1:])),
            u=np.hstack((self.u[:, 1:], self.u[:, -1:])),
            t=np.append(self.t[1:], self.t[-1]),
            gamma_y=np.append(self.gamma_y[1:], self.gamma_y[-1]),
        )


class SolveResult:
    trajectory: HorizonTrajectory
    success: bool
    status: str
    iterations: int
    solve_time: float

    def __init__(
        self,
        trajectory: HorizonTrajectory,
        success: bool,
        status: str,
        iterations: int,
        solve_time: float,
    ) -> None:
        self.trajectory = trajectory
        self.success = success
        self.status = status
        self.iterations = iterations
        self.solve_time = solve_time

    @property
    def control(self) -> np.ndarray:
        """the control to apply now"""
        return self.trajectory.u[:, 0]


class SolveFailure(RuntimeError):
    """
    The NLP solver did not converge (iteration or time budget exhausted, infeasible problem,
    ...). Carries the last iterate so that it can be used to warm start the next cycle.
    """

    trajectory: HorizonTrajectory
    status: str
    stats: dict

    def __init__(
        self, message: str, trajectory: HorizonTrajectory, status: str, stats: dict
    ) -> None:
        super().__init__(message)
        self.trajectory = trajectory
        self.status = status
        self.stats = stats


class RacingMPC:
    """
    Minimum time tracking MPC for the double track model.

    Decision variables (all scaled): states x (nx, N+1), controls u (nu, N), step times t (N)
    and lateral load transfers gamma_y (N). A new casadi.Opti problem is assembled at each
    call to solve(), while the model dynamics and the stage cost are compiled once.
    """

    config: RacingMPCConfig
    model: DoubleTrackPlanarModel
    constraint_builder: CollocationConstraintBuilder
    scale_x: DM
    scale_u: DM
    min_time_tracking_cost: Function

    def __init__(self, config: RacingMPCConfig, model: DoubleTrackPlanarModel) -> None:
        self.config = config
        self.model = model
        self.constraint_builder = CollocationConstraintBuilder(model)
        self.scale_x = DM(config.scale_x)
        self.scale_u = DM(config.scale_u)

        x = SX.sym("x", nx)
        x_ref = SX.sym("x_ref", nx)
        t = SX.sym("t")
        yaw_err = align_yaw(x[XIndex.YAW.value], x_ref[XIndex.YAW.value]) - x_ref[
            XIndex.YAW.value
        ]
        cost = (
            config.q_time * t
            + config.q_contour
            * (
                (x[XIndex.X.value] - x_ref[XIndex.X.value]) ** 2
                + (x[XIndex.Y.value] - x_ref[XIndex.Y.value]) ** 2
            )
            + config.q_yaw * yaw_err**2
        )
        self.min_time_tracking_cost = Function(
            "min_time_tracking_cost",
            [x, x_ref, t],
            [cost],
            ["x", "x_ref", "t"],
            ["cost"],
        )

    def _check_state(self, x_ic: npt.ArrayLike) -> npt.NDArray[np.float64]:
        x_ic = np.asarray(x_ic, dtype=np.float64).ravel()
        if x_ic.shape != (nx,):
            raise ValueError(f"state must have {nx} entries but has shape {x_ic.shape}")
        return x_ic

    def _guard_speed(self, x_ic: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """the dynamics are singular at zero speed, lift the measured speed to min_speed"""
        x_ic = x_ic.copy()
        x_ic[XIndex.V.value] = max(
            x_ic[XIndex.V.value], self.model.config.model.min_speed
        )
        return x_ic

    def _check_curvature(
        self, kappa_ref: Optional[npt.ArrayLike]
    ) -> Optional[npt.NDArray[np.float64]]:
        if kappa_ref is None:
            return None
        kappa_ref = np.asarray(kappa_ref, dtype=np.float64).ravel()
        if kappa_ref.shape[0] < self.config.N:
            raise ValueError(
                f"curvature profile must have at least {self.config.N} entries but has {kappa_ref.shape[0]}"
            )
        return kappa_ref

    def create_warm_start(
        self,
        x_ic: npt.ArrayLike,
        kappa_ref: Optional[npt.ArrayLike] = None,
    ) -> HorizonTrajectory:
        """
        Forward simulates the model over the horizon with a speed holding drive force and
        either zero steering or a curvature feed-forward steering angle.
        The initial speed is lifted to model.min_speed.
        """
        x_ic = self._guard_speed(self._check_state(x_ic))
        kappa_ref = self._check_curvature(kappa_ref)
        N = self.config.N
        dt = self.config.dt
        vehicle = self.model.config
        chassis = vehicle.chassis
        aero = vehicle.aero
        min_speed = vehicle.model.min_speed

        x = np.zeros((nx, N + 1))
        u = np.zeros((nu, N))
        t = np.full(N, dt)
        gamma_y = np.zeros(N)
        x[:, 0] = x_ic
        for i in range(N):
            v = max(x[XIndex.V.value, i], min_speed)
            fd = (
                chassis.fr * chassis.total_mass * g
                + 0.5 * aero.drag_coeff * aero.air_density * aero.frontal_area * v * v
            )
            fd = np.clip(fd, 0.0, min(vehicle.model.Fd_max, vehicle.model.P_max / v))
            delta = 0.0
            if kappa_ref is not None:
                delta = np.clip(
                    np.arctan(chassis.wheel_base * kappa_ref[i]),
                    -vehicle.steer.max_steer,
                    vehicle.steer.max_steer,
                )
            u[UIndex.FD.value, i] = fd
            u[UIndex.STEER.value, i] = delta
            gamma_y[i] = float(
                self.model.forward_dynamics({"x": x[:, i], "u": u[:, i]})["gamma_y"]
            )
            x[:, i + 1] = simulate(
                self.model, x[:, i], u[:, i], dt, self.config.warm_start_substeps
            )

        return HorizonTrajectory(x=x, u=u, t=t, gamma_y=gamma_y)

    def _extract(
        self, value: Callable, x: MX, u: MX, t: MX, gamma_y: MX
    ) -> HorizonTrajectory:
        N = self.config.N
        return HorizonTrajectory(
            x=np.reshape(np.asarray(value(x), dtype=np.float64), (nx, N + 1)),
            u=np.reshape(np.asarray(value(u), dtype=np.float64), (nu, N)),
            t=np.reshape(np.asarray(value(t), dtype=np.float64), (N,)),
            gamma_y=np.reshape(np.asarray(value(gamma_y), dtype=np.float64), (N,)),
        )

    def solve(
        self,
        x_ic: npt.ArrayLike,
        x_ref: npt.ArrayLike,
        kappa_ref: Optional[npt.ArrayLike] = None,
        warm_start: Optional[HorizonTrajectory] = None,
    ) -> SolveResult:
        """
        Solves the minimum time tracking problem from the measured state.

        :param x_ic: measured state, shape (nx,). Speeds below model.min_speed are lifted
                     to it.
        :param x_ref: reference states along the path, shape (nx, N+1). Only the position and
                      the yaw are tracked.
        :param kappa_ref: reference curvature, only used to build a warm start when none is given
        :param warm_start: initial guess, typically the shifted previous solution
        :raises SolveFailure: if the solver does not converge
        """
        config = self.config
        N = config.N
        x_ic = self._guard_speed(self._check_state(x_ic))
        x_ref = np.array(x_ref, dtype=np.float64)
        if x_ref.shape != (nx, N + 1):
            raise ValueError(
                f"reference must have shape {(nx, N + 1)} but has shape {x_ref.shape}"
            )
        yaw_ref = unwrap_to_pi(x_ref[XIndex.YAW.value])
        x_ref[XIndex.YAW.value] = yaw_ref + (
            float(align_yaw(float(yaw_ref[0]), float(x_ic[XIndex.YAW.value]))) - yaw_ref[0]
        )
        if warm_start is None:
            warm_start = self.create_warm_start(x_ic, kappa_ref)
        elif warm_start.N != N:
            raise ValueError(
                f"warm start has {warm_start.N} steps but the horizon has {N}"
            )

        # decision variables ##################################################################
        opti = Opti()
        x_opt = opti.variable(nx, N + 1)
        u_opt = opti.variable(nu, N)
        t_opt = opti.variable(1, N)
        gamma_y_opt = opti.variable(1, N)
        x = x_opt * repmat(self.scale_x, 1, N + 1)
        u = u_opt * repmat(self.scale_u, 1, N)
        t = t_opt * config.scale_t
        gamma_y = gamma_y_opt * config.scale_gamma_y

        # constraints #########################################################################
        opti.subject_to(x[:, 0] == DM(x_ic))
        opti.subject_to(opti.bounded(config.t_min, t, config.t_max))
        opti.subject_to(x[XIndex.V.value, 1:] >= self.model.config.model.min_speed)
        for i in range(N):
            self.constraint_builder.add_nlp_constraints(
                opti,
                {
                    "x": x[:, i],
                    "u": u[:, i],
                    "gamma_y": gamma_y[i],
                    "xip1": x[:, i + 1],
                    "uip1": u[:, i + 1] if i < N - 1 else None,
                    "t": t[i],
                },
            )

        # cost ################################################################################
        r_u = DM(config.r_u)
        r_du = DM(config.r_du)
        cost = 0.0
        for i in range(N):
            cost += self.min_time_tracking_cost(x[:, i + 1], DM(x_ref[:, i + 1]), t[i])
            cost += sumsqr(r_u * u_opt[:, i])
            if i > 0:
                cost += sumsqr(r_du * (u_opt[:, i] - u_opt[:, i - 1]))
        opti.minimize(cost)

        # initial guess #######################################################################
        x_guess = np.array(warm_start.x, dtype=np.float64)
        x_guess[:, 0] = x_ic
        opti.set_initial(x_opt, x_guess / np.asarray(config.scale_x)[:, None])
        opti.set_initial(u_opt, warm_start.u / np.asarray(config.scale_u)[:, None])
        opti.set_initial(t_opt, np.reshape(warm_start.t, (1, N)) / config.scale_t)
        opti.set_initial(
            gamma_y_opt, np.reshape(warm_start.gamma_y, (1, N)) / config.scale_gamma_y
        )

        # solve ###############################################################################
        opti.solver(
            "ipopt",
            {"expand": True, "print_time": config.verbose},
            {
                "max_iter": config.max_iter,
                "max_cpu_time": config.max_cpu_time,
                "tol": config.tol,
                "print_level": 5 if config.verbose else 0,
                "sb": "yes",
            },
        )
        start = perf_counter()
        try:
            sol = opti.solve()
        except RuntimeError as e:
            solve_time = perf_counter() - start
            stats = opti.stats()
            status = str(stats.get("return_status", "unknown"))
            if config.verbose:
                ic(status, stats.get("iter_count"), solve_time)
            raise SolveFailure(
                f"racing MPC did not converge: {status}",
                trajectory=self._extract(opti.debug.value, x, u, t, gamma_y),
                status=status,
                stats=stats,
            ) from e
        solve_time = perf_counter() - start

        stats = sol.stats()
        result = SolveResult(
            trajectory=self._extract(sol.value, x, u, t, gamma_y),
            success=bool(stats.get("success", True)),
            status=str(stats.get("return_status", "")),
            iterations=int(stats.get("iter_count", 0)),
            solve_time=float(solve_time),
        )
        if config.verbose:
            ic(result.status, result.iterations, result.solve_time)
        return result
