"""
Absorption by atmospheric gases.

Closed-form band transmission models for ozone, water vapor and the other
absorbing gases (O2, CO2, CH4, N2O), evaluated from the per-band
coefficients of :class:`~landsat_sr.constants.AtmosphereConstants`.

- Ozone: exponential in the ozone column along the two-way path
- Water vapor: power law in the slant water vapor column
- Other gases: power law with a log-dependent exponent in the pressure
  weighted air mass

References
----------
.. [1] Vermote, E.F., et al. (1997). Second Simulation of the Satellite
       Signal in the Solar Spectrum, 6S: An overview. IEEE Trans. Geosci.
       Remote Sens., 35:675-686.
"""

from dataclasses import dataclass
from typing import Union

import numpy as np

from landsat_sr.constants import (
    AtmosphereConstants,
    Band,
    REFERENCE_PRESSURE,
)
from landsat_sr.rayleigh import geometric_air_mass_factor


@dataclass(frozen=True)
class GasTransmittance:
    """
    Gaseous transmittances of one band.

    Attributes
    ----------
    ozone : float
        Two-way ozone transmittance ``tgoz``.
    water_vapor : float
        Two-way water vapor transmittance ``tgwv``.
    water_vapor_half : float
        Transmittance through half the water vapor column ``tgwvhalf``.
    other_gases : float
        Two-way transmittance of the other gases ``tgog``.
    """

    ozone: float
    water_vapor: float
    water_vapor_half: float
    other_gases: float

    @property
    def tgo(self) -> float:
        """Other-gas transmittance applied to TOA reflectance, tgog * tgoz."""
        return self.other_gases * self.ozone


def ozone_transmittance(
    oztransa: float,
    air_mass: Union[float, np.ndarray],
    ozone: Union[float, np.ndarray],
) -> Union[float, np.ndarray]:
    """
    Two-way ozone transmittance.

    Parameters
    ----------
    oztransa : float
        Band ozone coefficient (negative where ozone absorbs).
    air_mass : float or array_like
        Geometric air mass factor ``1/mus + 1/muv``.
    ozone : float or array_like
        Ozone column in cm-atm.

    Returns
    -------
    float or ndarray
        ``exp(oztransa * m * uoz)``
    """
    return np.exp(oztransa * np.asarray(air_mass) * np.asarray(ozone))


def water_vapor_transmittance(
    wvtransa: float,
    wvtransb: float,
    air_mass: Union[float, np.ndarray],
    water_vapor: Union[float, np.ndarray],
) -> Union[float, np.ndarray]:
    """
    Water vapor transmittance ``exp(-a (m * uwv)^b)``.

    Parameters
    ----------
    wvtransa, wvtransb : float
        Band water vapor coefficients.
    air_mass : float or array_like
        Geometric air mass factor.
    water_vapor : float or array_like
        Water vapor column in g/cm^2.
    """
    column = np.asarray(air_mass) * np.asarray(water_vapor)
    return np.exp(-wvtransa * column**wvtransb)


def other_gases_transmittance(
    ogtransa1: float,
    ogtransb0: float,
    ogtransb1: float,
    air_mass: Union[float, np.ndarray],
    pressure: Union[float, np.ndarray],
) -> Union[float, np.ndarray]:
    """
    Transmittance of the uniformly mixed gases.

    Parameters
    ----------
    ogtransa1, ogtransb0, ogtransb1 : float
        Band coefficients.
    air_mass : float or array_like
        Geometric air mass factor.
    pressure : float or array_like
        Surface pressure in hPa.

    Returns
    -------
    float or ndarray
        Other-gas transmittance.

    Notes
    -----
    .. math::

        x = m \\frac{P}{1013}, \\qquad
        t_{og} = \\exp\\left[-a_1 x^{b_0 + b_1 \\ln x}\\right]
    """
    x = np.asarray(air_mass) * np.asarray(pressure) / REFERENCE_PRESSURE
    return np.exp(-ogtransa1 * x**(ogtransb0 + ogtransb1 * np.log(x)))


def band_gas_transmittance(
    constants: AtmosphereConstants,
    band: Band,
    solar_zenith: float,
    view_zenith: float,
    pressure: float,
    ozone: float,
    water_vapor: float,
) -> GasTransmittance:
    """
    Evaluate all gaseous transmittances of a reflectance band.

    Parameters
    ----------
    constants : AtmosphereConstants
        Gas coefficients.
    band : Band
        Reflectance band.
    solar_zenith, view_zenith : float
        Zenith angles in degrees.
    pressure : float
        Surface pressure in hPa.
    ozone : float
        Ozone column in cm-atm.
    water_vapor : float
        Water vapor column in g/cm^2.

    Returns
    -------
    GasTransmittance
    """
    m = geometric_air_mass_factor(solar_zenith, view_zenith)

    tgoz = ozone_transmittance(constants.oztransa[band], m, ozone)
    tgwv = water_vapor_transmittance(
        constants.wvtransa[band], constants.wvtransb[band], m, water_vapor
    )
    tgwvhalf = water_vapor_transmittance(
        constants.wvtransa[band], constants.wvtransb[band], m, 0.5 * water_vapor
    )
    tgog = other_gases_transmittance(
        constants.ogtransa1[band], constants.ogtransb0[band],
        constants.ogtransb1[band], m, pressure,
    )

    return GasTransmittance(
        ozone=float(tgoz),
        water_vapor=float(tgwv),
        water_vapor_half=float(tgwvhalf),
        other_gases=float(tgog),
    )
