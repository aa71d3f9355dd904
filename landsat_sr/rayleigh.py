"""
Rayleigh scattering by atmospheric gas molecules.

This module provides the molecular scattering terms needed by the lookup
table evaluator:

- Pressure scaling of the band Rayleigh optical thickness
- Geometric air mass factor
- Scattering angle of the sun/sensor geometry
- Single-scattering Rayleigh reflectance (the supplementary scattering
  term ``xrorayp`` that is kept out of the water vapor correction)

References
----------
.. [1] Vermote, E.F., et al. (1997). Second Simulation of the Satellite
       Signal in the Solar Spectrum, 6S: An overview. IEEE Trans. Geosci.
       Remote Sens., 35:675-686.
.. [2] Bodhaine, B.A., et al. (1999). On Rayleigh optical depth calculations.
       J. Atmos. Oceanic Technol., 16:1854-1861.
"""

import numpy as np
from typing import Union

from landsat_sr.constants import REFERENCE_PRESSURE


def rayleigh_optical_thickness(
    tauray: Union[float, np.ndarray],
    pressure: Union[float, np.ndarray] = REFERENCE_PRESSURE,
) -> Union[float, np.ndarray]:
    """
    Scale a band Rayleigh optical thickness to the surface pressure.

    Parameters
    ----------
    tauray : float or array_like
        Rayleigh optical thickness at the reference pressure (1013 hPa).
    pressure : float or array_like, optional
        Surface pressure in hPa.

    Returns
    -------
    float or ndarray
        Rayleigh optical thickness at ``pressure``.

    Notes
    -----
    The optical thickness scales linearly with the column of molecules:

    .. math::

        \\tau_R(P) = \\frac{P}{P_0} \\tau_R(P_0)

    Examples
    --------
    >>> tau = rayleigh_optical_thickness(0.16933, 506.5)
    >>> print(f"{tau:.6f}")
    0.084665
    """
    return np.asarray(tauray) * np.asarray(pressure) / REFERENCE_PRESSURE


def geometric_air_mass_factor(
    solar_zenith: Union[float, np.ndarray],
    view_zenith: Union[float, np.ndarray],
) -> Union[float, np.ndarray]:
    """
    Calculate the geometric air mass factor M.

    Parameters
    ----------
    solar_zenith : float or array_like
        Solar zenith angle in degrees.
    view_zenith : float or array_like
        Viewing zenith angle in degrees.

    Returns
    -------
    float or ndarray
        Air mass factor M = 1/cos(theta_s) + 1/cos(theta_v).

    Examples
    --------
    >>> M = geometric_air_mass_factor(0.0, 0.0)
    >>> print(f"Air mass factor: {M:.3f}")
    Air mass factor: 2.000
    """
    mus = np.cos(np.deg2rad(np.asarray(solar_zenith)))
    muv = np.cos(np.deg2rad(np.asarray(view_zenith)))

    return 1.0 / mus + 1.0 / muv


def scattering_angle(
    solar_zenith: Union[float, np.ndarray],
    view_zenith: Union[float, np.ndarray],
    relative_azimuth: Union[float, np.ndarray],
) -> Union[float, np.ndarray]:
    """
    Scattering angle between the incident and the viewed direction.

    Parameters
    ----------
    solar_zenith, view_zenith : float or array_like
        Zenith angles in degrees.
    relative_azimuth : float or array_like
        Relative azimuth in degrees (0 when sun and sensor are on the
        same side).

    Returns
    -------
    float or ndarray
        Scattering angle in degrees, in [0, 180].

    Notes
    -----
    .. math::

        \\cos\\Theta = -\\mu_s \\mu_v
            - \\sin\\theta_s \\sin\\theta_v \\cos\\phi

    A nadir view of a zenith sun gives exact backscatter (180 degrees).
    """
    ts = np.deg2rad(np.asarray(solar_zenith))
    tv = np.deg2rad(np.asarray(view_zenith))
    phi = np.deg2rad(np.asarray(relative_azimuth))

    cos_theta = (-np.cos(ts) * np.cos(tv)
                 - np.sin(ts) * np.sin(tv) * np.cos(phi))
    cos_theta = np.clip(cos_theta, -1.0, 1.0)

    return np.rad2deg(np.arccos(cos_theta))


def rayleigh_phase_function(
    scatter_angle: Union[float, np.ndarray],
) -> Union[float, np.ndarray]:
    """
    Rayleigh phase function without depolarization, 0.75 (1 + cos^2 Theta).

    Parameters
    ----------
    scatter_angle : float or array_like
        Scattering angle in degrees.
    """
    cos_theta = np.cos(np.deg2rad(np.asarray(scatter_angle)))
    return 0.75 * (1.0 + cos_theta**2)


def rayleigh_reflectance(
    tauray: Union[float, np.ndarray],
    pressure: Union[float, np.ndarray],
    solar_zenith: Union[float, np.ndarray],
    view_zenith: Union[float, np.ndarray],
    relative_azimuth: Union[float, np.ndarray],
) -> Union[float, np.ndarray]:
    """
    Single-scattering Rayleigh reflectance.

    Parameters
    ----------
    tauray : float or array_like
        Rayleigh optical thickness at 1013 hPa.
    pressure : float or array_like
        Surface pressure in hPa.
    solar_zenith, view_zenith, relative_azimuth : float or array_like
        Geometry in degrees.

    Returns
    -------
    float or ndarray
        Rayleigh reflectance (dimensionless).

    Notes
    -----
    .. math::

        \\rho_R = \\frac{\\tau_R(P) \\, P_R(\\Theta)}{4 \\mu_s \\mu_v}

    This is the molecular part of the intrinsic atmospheric reflectance. It
    is excluded from the half water vapor column correction because most
    of the molecular scattering takes place above the water vapor layer.
    """
    tau = rayleigh_optical_thickness(tauray, pressure)
    mus = np.cos(np.deg2rad(np.asarray(solar_zenith)))
    muv = np.cos(np.deg2rad(np.asarray(view_zenith)))
    phase = rayleigh_phase_function(
        scattering_angle(solar_zenith, view_zenith, relative_azimuth)
    )

    return tau * phase / (4.0 * mus * muv)
