"""Configuration schema for dike intrusion simulations.

This module defines Pydantic models that mirror the structure of the YAML
configuration files consumed by :mod:`dikethermal.run`.  Every block has
defaults that reproduce the reference setup (a 30 km x 30 km crustal section
intruded every 0.1 kyr), so ``Config()`` is a valid, runnable configuration.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from . import constants
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SEED = 12345


def _describe_validation_error(exc: ValidationError) -> str:
    """Flatten pydantic errors into ``"loc: message"`` entries."""

    parts = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", ())) or "<root>"
        msg = str(err.get("msg", "")).removeprefix("Value error, ")
        parts.append(f"{loc}: {msg}")
    return "invalid configuration: " + "; ".join(parts)


class Domain(BaseModel):
    """Geometric extent and resolution of the 2D section."""

    width_m: float = Field(30.0e3, gt=0.0, description="Horizontal extent of the domain [m]")
    height_m: float = Field(30.0e3, gt=0.0, description="Vertical extent of the domain [m]; the top sits at z=0")
    nx: int = Field(201, description="Number of grid points along x")
    nz: int = Field(201, description="Number of grid points along z")

    @field_validator("nx", "nz")
    def _check_resolution(cls, value: int) -> int:
        if int(value) < constants.MIN_GRID_POINTS:
            raise ConfigurationError(
                f"grid dimensions must be at least {constants.MIN_GRID_POINTS} per axis (got {value})"
            )
        return int(value)


class Material(BaseModel):
    """Thermal properties shared by host rock and magma."""

    rho: float = Field(constants.RHO_ROCK, gt=0.0, description="Density [kg m^-3]")
    cp: float = Field(constants.CP_ROCK, gt=0.0, description="Heat capacity [J kg^-1 K^-1]")
    k_rock: float = Field(constants.K_ROCK, gt=0.0, description="Conductivity of solid rock [W m^-1 K^-1]")
    k_magma: float = Field(constants.K_MAGMA, gt=0.0, description="Conductivity of molten magma [W m^-1 K^-1]")
    latent_heat: float = Field(
        constants.LATENT_HEAT,
        ge=0.0,
        description="Latent heat of crystallisation [J kg^-1]; 0 disables the source term",
    )


class PhaseModel(BaseModel):
    """Calibration of the logistic solid-fraction closure."""

    T_mid: float = Field(constants.PHASE_T_MID, description="Temperature at which half the material is solid")
    T_width: float = Field(constants.PHASE_T_WIDTH, gt=0.0, description="Width of the crystallisation interval")


class Boundary(BaseModel):
    """Thermal boundary conditions.

    The lateral sides are always flux-free.  Top and bottom default to fixed
    temperatures; ``T_bottom`` is derived from the geothermal gradient when
    omitted.
    """

    top: Literal["dirichlet", "neumann"] = "dirichlet"
    bottom: Literal["dirichlet", "neumann"] = "dirichlet"
    T_top: float = Field(0.0, description="Fixed temperature at the surface")
    T_bottom: Optional[float] = Field(
        None,
        description="Fixed temperature at the base; defaults to T_top + gradient * depth",
    )
    geothermal_gradient_K_per_km: float = Field(constants.GEOTHERMAL_GRADIENT, ge=0.0)


class Initial(BaseModel):
    """Initial temperature field."""

    mode: Literal["geotherm", "uniform"] = "geotherm"
    T_uniform: float = Field(0.0, description="Temperature used when mode='uniform'")


class Intrusion(BaseModel):
    """Dike injection schedule and geometry."""

    enabled: bool = True
    interval_kyr: float = Field(0.1, gt=0.0, description="Inject one dike every interval [kyr]")
    width_m: float = Field(5.0e3, gt=0.0, description="Along-strike length of each dike [m]")
    thickness_m: float = Field(2.0e2, gt=0.0, description="Opening of each dike [m]")
    temperature: float = Field(900.0, description="Intrusion temperature")
    shape: Literal["SquareDike", "ElasticDike"] = "ElasticDike"
    center_x_m: Optional[float] = Field(None, description="Reference centre x [m]; defaults to mid-width")
    center_z_m: Optional[float] = Field(None, description="Reference centre z [m]; defaults to mid-depth")
    range_x_m: Optional[float] = Field(None, ge=0.0, description="Random placement range in x [m]; defaults to width/4")
    range_z_m: Optional[float] = Field(None, ge=0.0, description="Random placement range in z [m]; defaults to height/4")
    angle_range_deg: float = Field(90.0, ge=0.0, le=360.0, description="Full range of random dike rotation [deg]")
    depth_m: float = Field(1.0, gt=0.0, description="Out-of-plane thickness used to turn areas into volumes [m]")


class Tracers(BaseModel):
    """Marker particle settings."""

    per_dike: int = Field(100, ge=0, description="Number of tracers inserted with every dike")
    sampling: Literal["nearest", "bilinear"] = "nearest"
    initial_capacity: int = Field(1024, ge=1)


class Numerics(BaseModel):
    """Integrator control parameters."""

    t_end_kyr: float = Field(15.0, description="Simulated duration [kyr]")
    dt: Union[float, Literal["auto"]] = Field(
        "auto",
        description="Time step [s] or 'auto' to use the explicit stability bound",
    )
    safety_factor: float = Field(
        constants.STABILITY_SAFETY,
        description="Divisor applied to min(dx^2, dz^2)/kappa when computing the stable step",
    )
    backend: Literal["numpy", "numba"] = "numpy"
    seed: Optional[int] = Field(None, description="Seed for dike placement; defaults to DEFAULT_SEED")

    @field_validator("t_end_kyr")
    def _check_t_end(cls, value: float) -> float:
        if value < 0.0:
            raise ConfigurationError("numerics.t_end_kyr must not be negative")
        return float(value)

    @field_validator("dt")
    def _check_dt(cls, value: Union[float, str]) -> Union[float, str]:
        if isinstance(value, str):
            if value.lower() != "auto":
                raise ConfigurationError("numerics.dt must be positive or the string 'auto'")
            return "auto"
        if value <= 0.0:
            raise ConfigurationError("numerics.dt must be positive")
        return float(value)

    @field_validator("safety_factor")
    def _check_safety(cls, value: float) -> float:
        if value < constants.STABILITY_SAFETY_MIN:
            raise ConfigurationError(
                f"numerics.safety_factor must be >= {constants.STABILITY_SAFETY_MIN}"
            )
        return float(value)


class Progress(BaseModel):
    """Console progress display controls."""

    enable: bool = Field(False, description="Enable a lightweight progress bar with ETA on the CLI.")
    refresh_seconds: float = Field(1.0, gt=0.0)


class IO(BaseModel):
    """Output directories and cadence."""

    outdir: Path = Path("out")
    quiet: bool = Field(False, description="Suppress INFO logging and Python warnings.")
    progress: Progress = Progress()
    record_every: int = Field(1, ge=1, description="Keep every n-th step record (steps with a dike are always kept)")
    snapshot_every: int = Field(0, ge=0, description="Write a field snapshot every n steps; 0 disables")
    write_outputs: bool = Field(True, description="Persist series, tracers and summary at the end of a run")


class Config(BaseModel):
    """Top-level configuration object."""

    domain: Domain = Domain()
    material: Material = Material()
    phase: PhaseModel = PhaseModel()
    boundary: Boundary = Boundary()
    initial: Initial = Initial()
    intrusion: Intrusion = Intrusion()
    tracers: Tracers = Tracers()
    numerics: Numerics = Numerics()
    io: IO = IO()

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(_describe_validation_error(exc)) from exc

    @model_validator(mode="before")
    def _forbid_unknown_sections(cls, data: Any) -> Any:
        """Reject top-level keys that do not correspond to a block."""

        if not isinstance(data, dict):
            return data
        unknown = sorted(set(data) - set(cls.model_fields))
        if unknown:
            raise ConfigurationError(f"Unknown configuration section(s): {', '.join(unknown)}")
        return data

    def resolved_T_bottom(self) -> float:
        """Return the bottom boundary temperature, deriving it from the geotherm when unset."""

        if self.boundary.T_bottom is not None:
            return float(self.boundary.T_bottom)
        depth_km = self.domain.height_m / 1.0e3
        return float(self.boundary.T_top + self.boundary.geothermal_gradient_K_per_km * depth_km)

    def resolved_seed(self) -> int:
        """Return the random seed used for dike placement."""

        return DEFAULT_SEED if self.numerics.seed is None else int(self.numerics.seed)


__all__ = [
    "DEFAULT_SEED",
    "Domain",
    "Material",
    "PhaseModel",
    "Boundary",
    "Initial",
    "Intrusion",
    "Tracers",
    "Numerics",
    "Progress",
    "IO",
    "Config",
]
