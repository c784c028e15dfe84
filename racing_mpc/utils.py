# Copyright (c) 2024. Tudor Oancea
import numpy as np
from casadi import MX, SX, floor, pi

__all__ = [
    "align_yaw",
    "teds_projection",
    "wrap_to_pi",
    "unwrap_to_pi",
]


def align_yaw(yaw: SX | MX | float, yaw_ref: SX | MX | float) -> SX | MX | float:
    """shift yaw by a multiple of 2*pi so that it is the closest to yaw_ref"""
    return yaw + 2 * pi * floor((yaw_ref - yaw + pi) / (2 * pi))


def teds_projection(x: np.ndarray | float, a: float):
    """Projection of x onto the interval [a, a + 2*pi)"""
    return np.mod(x - a, 2 * np.pi) + a


def wrap_to_pi(x: np.ndarray | float):
    """Wrap angles to [-pi, pi)"""
    return teds_projection(x, -np.pi)


def unwrap_to_pi(x: np.ndarray):
    """remove discontinuities caused by wrapToPi"""
    diffs = np.diff(x)
    diffs[diffs > 1.5 * np.pi] -= 2 * np.pi
    diffs[diffs < -1.5 * np.pi] += 2 * np.pi
    return np.insert(x[0] + np.cumsum(diffs), 0, x[0])
