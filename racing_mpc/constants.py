# Copyright (c) 2024. Tudor Oancea
from enum import IntEnum

__all__ = ["g", "nx", "nu", "XIndex", "UIndex", "TyreIndex"]

g = 9.8  # gravity

nx = 6  # number of states
nu = 3  # number of controls


class XIndex(IntEnum):
    X = 0  # global x position
    Y = 1  # global y position
    YAW = 2  # yaw angle
    YAW_RATE = 3  # yaw rate
    BETA = 4  # body sideslip angle
    V = 5  # velocity magnitude


class UIndex(IntEnum):
    FD = 0  # drive force
    FB = 1  # brake force (non-positive)
    STEER = 2  # front wheel angle


class TyreIndex(IntEnum):
    FL = 0
    FR = 1
    RL = 2
    RR = 3
