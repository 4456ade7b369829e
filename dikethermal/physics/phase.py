"""Solid-fraction closure and latent-heat rate.

The phase state of every cell is described by the **solid fraction**
``phi``: 1 for crystallised rock, 0 for fully molten magma.  It follows a
logistic function of temperature,

    phi(T) = 1 - 1 / (1 + exp((T_mid - T) / T_width)),

which saturates at 0 and 1, equals 0.5 at ``T_mid`` and decreases
monotonically with temperature.  The melt fraction reported to consumers is
``1 - phi``.
"""
from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np
from scipy.special import expit

from .. import constants
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ["solid_fraction", "melt_fraction", "update_phase"]


def solid_fraction(
    T: np.ndarray | float,
    T_mid: float = constants.PHASE_T_MID,
    T_width: float = constants.PHASE_T_WIDTH,
    *,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Return the solid fraction for temperature ``T``.

    ``1 - 1/(1 + e^a)`` is the logistic ``expit(a)``, which is evaluated
    without overflow for arbitrarily large ``|T|``.
    """
    arg = (T_mid - np.asarray(T, dtype=float)) / T_width
    if out is None:
        return expit(arg)
    return expit(arg, out=out)


def melt_fraction(phi: np.ndarray | float) -> np.ndarray:
    """Convert a solid fraction into a melt fraction."""
    return 1.0 - np.asarray(phi, dtype=float)


def update_phase(
    T: np.ndarray,
    phi_prev: np.ndarray,
    dt: float,
    *,
    T_mid: float = constants.PHASE_T_MID,
    T_width: float = constants.PHASE_T_WIDTH,
    phi_out: Optional[np.ndarray] = None,
    dphi_dt_out: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Evaluate the solid fraction and its rate of change.

    ``dphi_dt`` is the first-order backward difference ``(phi - phi_prev)/dt``
    and therefore carries whatever ``dt`` the caller uses.  It is formed
    before ``phi_prev`` is overwritten in place with the new ``phi``, so the
    next call sees the correct previous state.

    Args:
        T: Temperature field.
        phi_prev: Solid fraction of the previous call; updated in place.
        dt: Time step [s].
        T_mid: Temperature at which ``phi == 0.5``.
        T_width: Width of the crystallisation interval.
        phi_out: Optional destination for ``phi``.
        dphi_dt_out: Optional destination for ``dphi_dt``.

    Returns:
        ``(phi, dphi_dt)``.

    Raises:
        ConfigurationError: If ``dt`` is not positive.
    """

    if not dt > 0.0:
        raise ConfigurationError(f"dt must be positive for the phase update (got {dt})")
    phi = solid_fraction(T, T_mid, T_width, out=phi_out)
    if dphi_dt_out is None:
        dphi_dt = (phi - phi_prev) / dt
    else:
        np.subtract(phi, phi_prev, out=dphi_dt_out)
        dphi_dt_out /= dt
        dphi_dt = dphi_dt_out
    phi_prev[...] = phi
    return phi, dphi_dt
