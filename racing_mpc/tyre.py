# Copyright (c) 2024. Tudor Oancea
from casadi import MX, SX, Function, atan, sin

from .config import TyreConfig

__all__ = ["TyreForceModel"]


class TyreForceModel:
    """
    Lateral tyre force from the extended magic formula

        Fy = mu * Fz * (1 + eps * Fz / Fz0) * sin(C * atan(B * alpha - E * (B * alpha - atan(B * alpha))))

    The expression is odd in alpha and vanishes at zero vertical load, so it is smooth and
    defined for all real slip angles. Longitudinal tyre forces are not computed here, they come
    directly from the drive/brake force split of the vehicle model.
    """

    mu: float
    config: TyreConfig
    lat_pacejka: Function

    def __init__(self, mu: float, config: TyreConfig, name: str = "tyre") -> None:
        self.mu = mu
        self.config = config

        alpha = SX.sym("alpha")
        Fz = SX.sym("Fz")
        self.lat_pacejka = Function(
            f"{name}_lat_pacejka",
            [alpha, Fz],
            [self.lateral_force(alpha, Fz)],
            ["alpha", "Fz"],
            ["Fy"],
        )

    def lateral_force(
        self, alpha: SX | MX | float, Fz: SX | MX | float
    ) -> SX | MX | float:
        B = self.config.pacejka_b
        C = self.config.pacejka_c
        E = self.config.pacejka_e
        Fz0 = self.config.pacejka_fz0
        eps = self.config.pacejka_eps
        return (
            self.mu
            * Fz
            * (1.0 + eps * Fz / Fz0)
            * sin(C * atan(B * alpha - E * (B * alpha - atan(B * alpha))))
        )
