# Copyright (c) 2024. Tudor Oancea
import os

import pytest

from racing_mpc import (
    PARAMS_DIR,
    DoubleTrackPlanarModel,
    RacingMPC,
    load_mpc_config,
    load_vehicle_config,
)


@pytest.fixture(scope="session")
def vehicle_config():
    return load_vehicle_config(os.path.join(PARAMS_DIR, "sample_vehicle.yaml"))


@pytest.fixture(scope="session")
def mpc_config():
    return load_mpc_config(os.path.join(PARAMS_DIR, "racing_mpc.yaml"))


@pytest.fixture(scope="session")
def model(vehicle_config):
    return DoubleTrackPlanarModel(vehicle_config)


@pytest.fixture(scope="session")
def mpc(mpc_config, model):
    return RacingMPC(mpc_config, model)
