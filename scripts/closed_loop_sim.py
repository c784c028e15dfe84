# Copyright (c) 2024. Tudor Oancea
import os
from time import perf_counter
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np
from icecream import ic
from tqdm import trange

from racing_mpc import (
    PARAMS_DIR,
    DoubleTrackPlanarModel,
    HorizonTrajectory,
    RacingMPC,
    SolveFailure,
    UIndex,
    XIndex,
    load_mpc_config,
    load_vehicle_config,
    nx,
    simulate,
    wrap_to_pi,
)

# circular reference path, counter clockwise around the origin
R = 150.0  # radius [m]
v_ref = 30.0  # reference speed [m/s]
Tsim = 30.0  # simulation length [s]


def circle_reference(x: np.ndarray, N: int, dt: float) -> tuple[np.ndarray, np.ndarray]:
    """
    Reference states and curvature over the horizon, starting from the projection of the
    current position onto the circle.
    """
    theta0 = np.arctan2(x[XIndex.Y], x[XIndex.X])
    theta = theta0 + v_ref * dt / R * np.arange(N + 1)
    x_ref = np.zeros((nx, N + 1))
    x_ref[XIndex.X] = R * np.cos(theta)
    x_ref[XIndex.Y] = R * np.sin(theta)
    x_ref[XIndex.YAW] = wrap_to_pi(theta + np.pi / 2)
    x_ref[XIndex.YAW_RATE] = v_ref / R
    x_ref[XIndex.V] = v_ref
    return x_ref, np.full(N, 1 / R)


def main():
    vehicle_config = load_vehicle_config(os.path.join(PARAMS_DIR, "sample_vehicle.yaml"))
    mpc_config = load_mpc_config(os.path.join(PARAMS_DIR, "racing_mpc.yaml"))

    # create model and controller ######################################################
    start = perf_counter()
    model = DoubleTrackPlanarModel(vehicle_config)
    mpc = RacingMPC(mpc_config, model)
    print(f"Creation of the racing MPC took {perf_counter() - start:.3f} s\n")

    N = mpc_config.N
    dt = mpc_config.dt
    Nsim = int(Tsim / dt) + 1
    x = [np.array([0.0, -R, 0.0, 0.0, 0.0, v_ref])]
    u = []
    runtimes = []
    failures = 0
    warm_start: Optional[HorizonTrajectory] = None

    # simulate #########################################################################
    start_sim = perf_counter()
    for i in trange(Nsim):
        x_ref, kappa_ref = circle_reference(x[-1], N, dt)
        try:
            result = mpc.solve(x[-1], x_ref, kappa_ref, warm_start)
            new_u = result.control
            warm_start = result.trajectory.shift()
            runtimes.append(1000 * result.solve_time)
        except SolveFailure as e:
            # coast with the last steering angle and restart from a fresh warm start
            failures += 1
            ic(i, e.status)
            new_u = np.zeros(3)
            if len(u) > 0:
                new_u[UIndex.STEER] = u[-1][UIndex.STEER]
            warm_start = None
        u.append(new_u)

        new_x = simulate(model, x[-1], new_u, dt, mpc_config.warm_start_substeps)
        if np.any(np.isnan(new_x)):
            print(f"simulation diverged in closed loop iteration {i}.")
            break
        x.append(new_x)

    stop_sim = perf_counter()
    print(f"Simulation took {stop_sim - start_sim:.3f} s")
    print(f"{failures} failed solves out of {len(u)}\n")

    x = np.array(x)
    u = np.array(u)
    runtimes = np.array(runtimes)
    t = dt * np.arange(x.shape[0])

    # plot #############################################################################
    fig = plt.figure(figsize=(15, 7))
    ax_xy = plt.subplot2grid((2, 3), (0, 0), rowspan=2)
    theta = np.linspace(0.0, 2 * np.pi, 200)
    ax_xy.plot(R * np.cos(theta), R * np.sin(theta), "k--", label="reference")
    ax_xy.plot(x[:, XIndex.X], x[:, XIndex.Y], label="closed loop")
    ax_xy.set_aspect("equal")
    ax_xy.legend()
    ax_xy.set_title("trajectory XY [m]")

    ax = plt.subplot2grid((2, 3), (0, 1))
    ax.plot(t, x[:, XIndex.V])
    ax.axhline(v_ref, color="k", linestyle="--")
    ax.set_title("speed v [m/s]")

    ax = plt.subplot2grid((2, 3), (1, 1))
    ax.plot(t[:-1], np.rad2deg(u[:, UIndex.STEER]))
    ax.set_title("steering [deg]")

    ax = plt.subplot2grid((2, 3), (0, 2))
    ax.step(t[:-1], u[:, UIndex.FD], where="post", label="drive")
    ax.step(t[:-1], u[:, UIndex.FB], where="post", label="brake")
    ax.legend()
    ax.set_title("longitudinal forces [N]")

    ax = plt.subplot2grid((2, 3), (1, 2))
    if runtimes.size > 0:
        ax.hist(runtimes, bins=30)
    ax.set_title("solve times [ms]")

    fig.tight_layout()
    plt.show()


if __name__ == "__main__":
    main()
