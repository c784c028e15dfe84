# Copyright (c) 2024. Tudor Oancea
import os

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

PARAMS_DIR = os.path.join(os.path.dirname(__file__), "params")

__all__ = [
    "ChassisConfig",
    "AeroConfig",
    "TyreConfig",
    "PowertrainConfig",
    "BrakeConfig",
    "SteerConfig",
    "DoubleTrackPlanarModelConfig",
    "VehicleConfig",
    "RacingMPCConfig",
    "load_vehicle_config",
    "load_mpc_config",
    "PARAMS_DIR",
]


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ChassisConfig(FrozenModel):
    total_mass: float = Field(gt=0.0)  # mass of car
    moi: float = Field(gt=0.0)  # MOI around z axis
    wheel_base: float = Field(gt=0.0)
    cg_ratio: float = Field(gt=0.0, lt=1.0)  # cg to front axle / wheelbase
    tw_f: float = Field(gt=0.0)  # front track width
    tw_r: float = Field(gt=0.0)  # rear track width
    cg_height: float = Field(ge=0.0)
    fr: float = Field(ge=0.0)  # rolling resistance coefficient

    @property
    def lf(self) -> float:
        return self.cg_ratio * self.wheel_base

    @property
    def lr(self) -> float:
        return self.wheel_base - self.lf


class AeroConfig(FrozenModel):
    air_density: float = Field(gt=0.0)
    frontal_area: float = Field(gt=0.0)
    drag_coeff: float = Field(ge=0.0)
    cl_f: float = Field(ge=0.0)  # downforce coefficient at front
    cl_r: float = Field(ge=0.0)  # downforce coefficient at rear


class TyreConfig(FrozenModel):
    pacejka_b: float = Field(gt=0.0)
    pacejka_c: float = Field(gt=0.0)
    pacejka_e: float
    pacejka_fz0: float = Field(gt=0.0)
    pacejka_eps: float  # load sensitivity of the extended magic formula


class PowertrainConfig(FrozenModel):
    kd: float = Field(ge=0.0, le=1.0)  # share of drive force on the front axle


class BrakeConfig(FrozenModel):
    bias: float = Field(ge=0.0, le=1.0)  # share of brake force on the front axle


class SteerConfig(FrozenModel):
    max_steer: float = Field(gt=0.0)
    max_steer_rate: float = Field(gt=0.0)


class DoubleTrackPlanarModelConfig(FrozenModel):
    mu: float = Field(gt=0.0)  # tyre - track friction coefficient
    P_max: float = Field(gt=0.0)  # max engine power
    Fd_max: float = Field(gt=0.0)  # max drive force
    Fb_max: float = Field(gt=0.0)  # max brake force (magnitude)
    Td: float = Field(gt=0.0)  # drive time constant
    Tb: float = Field(gt=0.0)  # brake time constant
    kroll_f: float = Field(ge=0.0, le=1.0)  # front roll moment distribution
    min_speed: float = Field(default=1.0, gt=0.0)


class VehicleConfig(FrozenModel):
    chassis: ChassisConfig
    aero: AeroConfig
    front_tyre: TyreConfig
    rear_tyre: TyreConfig
    powertrain: PowertrainConfig
    front_brake: BrakeConfig
    steer: SteerConfig
    model: DoubleTrackPlanarModelConfig


class RacingMPCConfig(FrozenModel):
    N: int = Field(gt=0)  # horizon length
    dt: float = Field(gt=0.0)  # nominal step time, used by the warm start
    t_min: float = Field(gt=0.0)
    t_max: float = Field(gt=0.0)

    # cost weights
    q_time: float = Field(default=1.0, ge=0.0)
    q_contour: float = Field(default=1.0, ge=0.0)
    q_yaw: float = Field(default=1.0, ge=0.0)
    r_u: tuple[float, float, float] = (1e-3, 1e-3, 1.0)
    r_du: tuple[float, float, float] = (1e-2, 1e-2, 10.0)

    # variable scaling
    scale_x: tuple[float, float, float, float, float, float] = (
        100.0,
        100.0,
        1.0,
        1.0,
        0.1,
        10.0,
    )
    scale_u: tuple[float, float, float] = (1e4, 1e4, 0.1)
    scale_t: float = Field(default=0.1, gt=0.0)
    scale_gamma_y: float = Field(default=1e3, gt=0.0)

    # solver budget
    max_iter: int = Field(default=500, gt=0)
    max_cpu_time: float = Field(default=1.0, gt=0.0)
    tol: float = Field(default=1e-6, gt=0.0)

    warm_start_substeps: int = Field(default=10, gt=0)
    verbose: bool = False

    @model_validator(mode="after")
    def check_bounds(self) -> "RacingMPCConfig":
        if self.t_min >= self.t_max:
            raise ValueError(f"t_min ({self.t_min}) must be below t_max ({self.t_max})")
        if not self.t_min <= self.dt <= self.t_max:
            raise ValueError(f"dt ({self.dt}) must lie in [t_min, t_max]")
        for name in ("r_u", "r_du"):
            if any(w < 0.0 for w in getattr(self, name)):
                raise ValueError(f"{name} must be non-negative")
        for name in ("scale_x", "scale_u"):
            if any(s <= 0.0 for s in getattr(self, name)):
                raise ValueError(f"{name} must be positive")
        return self


def _load_yaml(path: str) -> dict:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Missing config file: {path}")
    with open(path, "r") as f:
        return yaml.safe_load(f)


def load_vehicle_config(path: str) -> VehicleConfig:
    """
    Reads a vehicle parameter file and validates it.

    :param path: YAML file with one section per config group (chassis, aero, ...)
    :raises FileNotFoundError: if the file does not exist
    :raises pydantic.ValidationError: on missing or invalid physical constants
    """
    return VehicleConfig.model_validate(_load_yaml(path))


def load_mpc_config(path: str) -> RacingMPCConfig:
    return RacingMPCConfig.model_validate(_load_yaml(path))
