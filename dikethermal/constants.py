"""Physical constants and reference parameters for the dike intrusion model.

Values are in SI units unless the name says otherwise.  Material defaults
describe a granitic crust intruded by basaltic/andesitic magma and are meant
as sensible starting points, not as a calibration.
"""
from __future__ import annotations

# Seconds in a Julian year (s)
SECONDS_PER_YEAR: float = 365.25 * 24 * 3600.0

# Seconds in one thousand years (s)
SECONDS_PER_KYR: float = 1.0e3 * SECONDS_PER_YEAR

# Host rock density (kg m^-3)
RHO_ROCK: float = 2800.0

# Heat capacity (J kg^-1 K^-1)
CP_ROCK: float = 1050.0

# Thermal conductivity of host rock and magma (W m^-1 K^-1)
K_ROCK: float = 1.5
K_MAGMA: float = 1.2

# Latent heat of crystallisation (J kg^-1)
LATENT_HEAT: float = 350.0e3

# Geothermal gradient (K km^-1)
GEOTHERMAL_GRADIENT: float = 20.0

# Logistic solid-fraction closure: midpoint and width (degC)
PHASE_T_MID: float = 800.0
PHASE_T_WIDTH: float = 23.0

# Explicit diffusion safety factor applied to min(dx^2, dz^2)/kappa
STABILITY_SAFETY: float = 20.0

# Smallest admissible safety factor; 2D FTCS diverges below 4
STABILITY_SAFETY_MIN: float = 4.0

# Smallest grid dimension supported by the 5-point stencil
MIN_GRID_POINTS: int = 3

