# Copyright (c) 2024. Tudor Oancea
import numpy as np

from .models import DoubleTrackPlanarModel

__all__ = ["continuous_dynamics", "rk4_step", "simulate"]


def continuous_dynamics(
    model: DoubleTrackPlanarModel, x: np.ndarray, u: np.ndarray
) -> np.ndarray:
    return model.forward_dynamics({"x": x, "u": u})["x_dot"].full().ravel()


def rk4_step(
    model: DoubleTrackPlanarModel, x: np.ndarray, u: np.ndarray, dt: float
) -> np.ndarray:
    k1 = continuous_dynamics(model, x, u)
    k2 = continuous_dynamics(model, x + dt / 2 * k1, u)
    k3 = continuous_dynamics(model, x + dt / 2 * k2, u)
    k4 = continuous_dynamics(model, x + dt * k3, u)
    return x + dt / 6 * (k1 + 2 * k2 + 2 * k3 + k4)


def simulate(
    model: DoubleTrackPlanarModel,
    x: np.ndarray,
    u: np.ndarray,
    dt: float,
    num_steps: int = 10,
) -> np.ndarray:
    """
    Integrates the standalone dynamics over dt with a zero order hold on u.
    The lateral tyre dynamics get stiff at low speed, hence the sub-steps.
    """
    x = np.asarray(x, dtype=np.float64)
    u = np.asarray(u, dtype=np.float64)
    h = dt / num_steps
    for _ in range(num_steps):
        x = rk4_step(model, x, u, h)
    return x
