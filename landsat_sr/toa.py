"""
TOA reflectance and brightness temperature from Level-1 digital numbers.

The Level-1 metadata provides, per band, a reflectance gain and bias (or a
radiance gain and bias and the K1/K2 constants for the thermal bands).
Results are clamped to the valid range of the scaled products; fill pixels
are set to the fill value.
"""

from typing import Optional, Union

import numpy as np

from landsat_sr.constants import (
    FILL_VALUE,
    MAX_VALID_REFL,
    MAX_VALID_TH,
    MIN_VALID_REFL,
    MIN_VALID_TH,
)


def toa_reflectance(
    dn: np.ndarray,
    gain: float,
    bias: float,
    solar_zenith: Union[float, np.ndarray],
    fill_mask: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Sun-angle corrected TOA reflectance.

    Parameters
    ----------
    dn : ndarray
        Level-1 digital numbers.
    gain, bias : float
        Reflectance rescaling factors from the metadata.
    solar_zenith : float or ndarray
        Solar zenith angle [degrees], per scene or per pixel.
    fill_mask : ndarray of bool, optional
        Fill pixels.

    Returns
    -------
    ndarray
        float32 TOA reflectance.

    Notes
    -----
    .. math::

        \\rho_{TOA} = \\frac{DN \\cdot g + b}{\\cos\\theta_s}
    """
    mus = np.cos(np.deg2rad(np.asarray(solar_zenith, dtype=np.float64)))
    refl = (np.asarray(dn, dtype=np.float64) * gain + bias) / mus
    refl = np.clip(refl, MIN_VALID_REFL, MAX_VALID_REFL).astype(np.float32)
    if fill_mask is not None:
        refl[fill_mask] = FILL_VALUE
    return refl


def brightness_temperature(
    dn: np.ndarray,
    gain: float,
    bias: float,
    k1: float,
    k2: float,
    fill_mask: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    At-sensor brightness temperature of a thermal band [K].

    Parameters
    ----------
    dn : ndarray
        Level-1 digital numbers.
    gain, bias : float
        Radiance rescaling factors.
    k1, k2 : float
        Thermal conversion constants.
    fill_mask : ndarray of bool, optional
        Fill pixels.

    Notes
    -----
    .. math::

        T = \\frac{K_2}{\\ln(K_1 / L + 1)}
    """
    radiance = np.asarray(dn, dtype=np.float64) * gain + bias
    with np.errstate(divide="ignore", invalid="ignore"):
        bt = k2 / np.log(k1 / radiance + 1.0)
    bt = np.where(np.isfinite(bt), bt, MIN_VALID_TH)
    bt = np.clip(bt, MIN_VALID_TH, MAX_VALID_TH).astype(np.float32)
    if fill_mask is not None:
        bt[fill_mask] = FILL_VALUE
    return bt
