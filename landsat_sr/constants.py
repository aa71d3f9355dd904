"""
Physical constants, band definitions and encoding parameters for the
Landsat 8/9 surface reflectance correction.

This module contains constants used throughout the correction, including:

- Band and satellite enumerations
- Lookup table grids (AOT at 550 nm, surface pressure)
- Gaseous transmission and Rayleigh optical thickness coefficients
- Aerosol retrieval parameters (Angstrom exponents, window size)
- Aerosol QA bit layout
- Output scaling of reflectance and brightness temperature

The radiative transfer coefficients are grouped in the immutable
:class:`AtmosphereConstants` structure so that a recalibration only requires
a new instance, never a change in algorithm code.

References
----------
.. [1] Vermote, E., Justice, C., Claverie, M., and Franch, B. (2016).
       Preliminary analysis of the performance of the Landsat 8/OLI land
       surface reflectance product. Remote Sens. Environ., 185:46-56.
.. [2] Vermote, E.F., et al. (1997). Second Simulation of the Satellite
       Signal in the Solar Spectrum, 6S: An overview. IEEE Trans. Geosci.
       Remote Sens., 35:675-686.
"""

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Tuple

import numpy as np


# =============================================================================
# Bands and Satellites
# =============================================================================

class Band(enum.Enum):
    """Landsat 8/9 OLI/TIRS bands handled by the correction (pan and cirrus excluded)."""

    COASTAL = 1
    BLUE = 2
    GREEN = 3
    RED = 4
    NIR = 5
    SWIR1 = 6
    SWIR2 = 7
    THERMAL1 = 10
    THERMAL2 = 11

    @property
    def is_reflective(self) -> bool:
        """True for the seven reflectance bands."""
        return self.value <= 7

    @property
    def is_thermal(self) -> bool:
        """True for the two TIRS bands."""
        return not self.is_reflective


#: Reflectance bands, in processing order
REFLECTANCE_BANDS: Tuple[Band, ...] = tuple(b for b in Band if b.is_reflective)

#: Thermal bands
THERMAL_BANDS: Tuple[Band, ...] = (Band.THERMAL1, Band.THERMAL2)


class Satellite(enum.Enum):
    """Supported platforms."""

    LANDSAT_8 = "LANDSAT_8"
    LANDSAT_9 = "LANDSAT_9"

    @classmethod
    def from_name(cls, name: str) -> "Satellite":
        """
        Parse a satellite name such as 'LANDSAT_8', 'landsat-9' or 'L8'.

        Raises
        ------
        ValueError
            If the satellite is not recognized.
        """
        key = name.strip().upper().replace("-", "_").replace(" ", "_")
        aliases = {"L8": "LANDSAT_8", "LC08": "LANDSAT_8",
                   "L9": "LANDSAT_9", "LC09": "LANDSAT_9"}
        key = aliases.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValueError(
                f"Unknown satellite: {name}. Supported: LANDSAT_8, LANDSAT_9"
            ) from None


# =============================================================================
# Lookup Table Grids
# =============================================================================

#: AOT at 550 nm levels of the lookup tables
AOT550NM_LEVELS: Tuple[float, ...] = (
    0.01, 0.05, 0.10, 0.15, 0.20, 0.30, 0.40, 0.60, 0.80, 1.00, 1.20,
    1.40, 1.60, 1.80, 2.00, 2.30, 2.60, 3.00, 3.50, 4.00, 4.50, 5.00,
)

#: Surface pressure levels of the lookup tables [hPa], descending
PRESSURE_LEVELS: Tuple[float, ...] = (
    1050.0, 1013.0, 900.0, 800.0, 700.0, 600.0, 500.0,
)

#: Reference pressure used by the gas and Rayleigh models [hPa]
REFERENCE_PRESSURE: float = 1013.0

#: Scale height used to convert DEM elevation to pressure [m]
PRESSURE_SCALE_HEIGHT: float = 8000.0

#: Reference wavelength of the AOT [micrometers]
AOT_REFERENCE_WAVELENGTH: float = 0.55

#: Threshold used to decide whether roatm still increases with AOT
ROATM_MONOTONIC_EPSILON: float = 0.00001


def _frozen(values: Dict[Band, float]) -> Mapping[Band, float]:
    return MappingProxyType(dict(values))


@dataclass(frozen=True)
class AtmosphereConstants:
    """
    Radiative transfer coefficients for the reflectance bands.

    All per-band mappings are keyed by :class:`Band`. The values were
    produced by running 6S for the OLI spectral response functions.

    Attributes
    ----------
    aot_levels : tuple of float
        AOT at 550 nm grid; must equal the lookup table axis.
    pressure_levels : tuple of float
        Surface pressure grid [hPa]; must equal the lookup table axis.
    tauray : mapping
        Molecular (Rayleigh) optical thickness at 1013 hPa.
    oztransa : mapping
        Ozone transmission coefficient.
    wvtransa, wvtransb : mapping
        Water vapor transmission coefficients.
    ogtransa1, ogtransb0, ogtransb1 : mapping
        Other gases transmission coefficients.
    wavelengths : mapping
        Band center wavelengths [micrometers] per satellite.
    """

    aot_levels: Tuple[float, ...] = AOT550NM_LEVELS
    pressure_levels: Tuple[float, ...] = PRESSURE_LEVELS
    tauray: Mapping[Band, float] = field(default_factory=lambda: _frozen({
        Band.COASTAL: 0.23638, Band.BLUE: 0.16933, Band.GREEN: 0.09070,
        Band.RED: 0.04827, Band.NIR: 0.01563, Band.SWIR1: 0.00129,
        Band.SWIR2: 0.00037,
    }))
    oztransa: Mapping[Band, float] = field(default_factory=lambda: _frozen({
        Band.COASTAL: -0.00255649, Band.BLUE: -0.0177861,
        Band.GREEN: -0.0969872, Band.RED: -0.0611428, Band.NIR: 0.0001,
        Band.SWIR1: 0.0001, Band.SWIR2: 0.0001,
    }))
    wvtransa: Mapping[Band, float] = field(default_factory=lambda: _frozen({
        Band.COASTAL: 2.29849e-27, Band.BLUE: 2.29849e-27,
        Band.GREEN: 0.00194772, Band.RED: 0.00404159, Band.NIR: 0.000729136,
        Band.SWIR1: 0.00067324, Band.SWIR2: 0.0177533,
    }))
    wvtransb: Mapping[Band, float] = field(default_factory=lambda: _frozen({
        Band.COASTAL: 0.999742, Band.BLUE: 0.999742, Band.GREEN: 0.775024,
        Band.RED: 0.774482, Band.NIR: 0.893085, Band.SWIR1: 0.939669,
        Band.SWIR2: 0.65094,
    }))
    ogtransa1: Mapping[Band, float] = field(default_factory=lambda: _frozen({
        Band.COASTAL: 4.91586e-20, Band.BLUE: 4.91586e-20,
        Band.GREEN: 4.91586e-20, Band.RED: 1.04801e-05,
        Band.NIR: 1.35216e-05, Band.SWIR1: 0.0205425, Band.SWIR2: 0.0256526,
    }))
    ogtransb0: Mapping[Band, float] = field(default_factory=lambda: _frozen({
        Band.COASTAL: 0.000197019, Band.BLUE: 0.000197019,
        Band.GREEN: 0.000197019, Band.RED: 0.640215, Band.NIR: -0.195998,
        Band.SWIR1: 0.326577, Band.SWIR2: 0.243961,
    }))
    ogtransb1: Mapping[Band, float] = field(default_factory=lambda: _frozen({
        Band.COASTAL: 9.57011e-16, Band.BLUE: 9.57011e-16,
        Band.GREEN: 9.57011e-16, Band.RED: -0.348785, Band.NIR: 0.275239,
        Band.SWIR1: 0.0117192, Band.SWIR2: 0.0616101,
    }))
    wavelengths: Mapping[Satellite, Mapping[Band, float]] = field(
        default_factory=lambda: MappingProxyType({
            Satellite.LANDSAT_8: _frozen({
                Band.COASTAL: 0.4430, Band.BLUE: 0.4826, Band.GREEN: 0.5613,
                Band.RED: 0.6546, Band.NIR: 0.8646, Band.SWIR1: 1.6090,
                Band.SWIR2: 2.2010,
            }),
            Satellite.LANDSAT_9: _frozen({
                Band.COASTAL: 0.4433, Band.BLUE: 0.4821, Band.GREEN: 0.5614,
                Band.RED: 0.6546, Band.NIR: 0.8652, Band.SWIR1: 1.6104,
                Band.SWIR2: 2.1991,
            }),
        })
    )

    def __post_init__(self):
        """Check that every reflectance band has a full set of coefficients."""
        if len(self.aot_levels) < 2 or np.any(np.diff(self.aot_levels) <= 0):
            raise ValueError("aot_levels must be strictly increasing")
        if len(self.pressure_levels) < 2 or np.any(np.diff(self.pressure_levels) >= 0):
            raise ValueError("pressure_levels must be strictly decreasing")
        for name in ("tauray", "oztransa", "wvtransa", "wvtransb",
                     "ogtransa1", "ogtransb0", "ogtransb1"):
            missing = set(REFLECTANCE_BANDS) - set(getattr(self, name))
            if missing:
                raise ValueError(
                    f"{name} has no coefficient for bands "
                    f"{sorted(b.name for b in missing)}"
                )

    def wavelength(self, satellite: Satellite, band: Band) -> float:
        """Band center wavelength in micrometers."""
        return self.wavelengths[satellite][band]


#: Default coefficients (LaSRC values for OLI)
DEFAULT_ATMOSPHERE = AtmosphereConstants()

# =============================================================================
# Aerosol Retrieval Parameters
# =============================================================================

#: Angstrom exponents of the three trial inversions
LOW_EPS: float = 1.0
MOD_EPS: float = 1.75
HIGH_EPS: float = 2.5

#: Angstrom exponent used for the water retrieval
WATER_EPS: float = 1.5

#: AOT level index used for the first-pass correction (0.05)
FIRST_PASS_AOT_INDEX: int = 1

#: Aerosol window size [pixels] and its half size
AERO_WINDOW: int = 3
HALF_AERO_WINDOW: int = AERO_WINDOW // 2

#: Defaults for windows without any valid neighbor
DEFAULT_AOT: float = 0.05
DEFAULT_EPS: float = 1.5

#: Maximum search radius of the gap fill, in windows
MAX_FILL_RADIUS: int = 10

#: NDWI standard deviation below which a climatology ratio cell is unreliable
#: (scaled by 1000)
NDWI_STD_THRESHOLD: int = 200

#: Valid range of the band 1 and band 2 mean ratios (unscaled)
RATIO_VALID_RANGE: Tuple[float, float] = (0.1, 1.0)

#: Scaled default intercepts for unreliable ratio cells
DEFAULT_RATIO_INTERCEPTS: Mapping[Band, int] = _frozen({
    Band.COASTAL: 550, Band.BLUE: 600, Band.SWIR2: 2000,
})

#: Scale factor of the climatology ratio, slope, intercept and NDWI grids
CMG_RATIO_SCALE: float = 0.001

# =============================================================================
# Aerosol QA Bits
# =============================================================================

IPFLAG_FILL: int = 0
IPFLAG_CLEAR: int = 1
IPFLAG_WATER: int = 2
IPFLAG_INTERP_WINDOW: int = 5
AERO1_QA: int = 6
AERO2_QA: int = 7

#: Band 1 adjustment thresholds for the aerosol level bits
LOW_AERO_THRESH: float = 0.05
AVG_AERO_THRESH: float = 0.10

#: Fill bit of the Level-1 QA band
LEVEL1_FILL_BIT: int = 0

# =============================================================================
# Output Encoding
# =============================================================================

#: Fill value of the scaled products (also used in the float work arrays)
FILL_VALUE: int = 0

#: Reflectance scaling: refl = dn * SCALE_REFL + OFFSET_REFL
SCALE_REFL: float = 0.0000275
OFFSET_REFL: float = -0.2

#: Brightness temperature scaling: bt = dn * SCALE_THERM + OFFSET_THERM
SCALE_THERM: float = 0.00341802
OFFSET_THERM: float = 149.0

#: Valid range of the scaled products
MIN_VALID_DN: int = 1
MAX_VALID_DN: int = 65535

#: Valid range of the unscaled reflectance
MIN_VALID_REFL: float = MIN_VALID_DN * SCALE_REFL + OFFSET_REFL
MAX_VALID_REFL: float = MAX_VALID_DN * SCALE_REFL + OFFSET_REFL

#: Valid range of the brightness temperature [K]
MIN_VALID_TH: float = MIN_VALID_DN * SCALE_THERM + OFFSET_THERM
MAX_VALID_TH: float = MAX_VALID_DN * SCALE_THERM + OFFSET_THERM
