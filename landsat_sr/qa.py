"""
Bit helpers for the Level-1 QA band and the aerosol QA band (ipflag).

ipflag bits:

====  =====================================================
bit   meaning
====  =====================================================
0     fill
1     valid aerosol retrieval (clear)
2     water
5     window value repaired by the gap fill
6, 7  aerosol level: 6 = low, 7 = moderate, 6 and 7 = high
====  =====================================================
"""

from typing import Union

import numpy as np

from landsat_sr.constants import (
    AERO1_QA,
    AERO2_QA,
    AVG_AERO_THRESH,
    IPFLAG_CLEAR,
    IPFLAG_FILL,
    IPFLAG_WATER,
    LEVEL1_FILL_BIT,
    LOW_AERO_THRESH,
)

#: Aerosol levels returned by :func:`aerosol_level`
AEROSOL_NONE = 0
AEROSOL_LOW = 1
AEROSOL_MODERATE = 2
AEROSOL_HIGH = 3


def bit(position: int) -> int:
    """Mask with the given bit set."""
    return 1 << position


def has_bit(flags: Union[int, np.ndarray], position: int) -> Union[bool, np.ndarray]:
    """True where the bit is set."""
    return (np.asarray(flags) & bit(position)) != 0


def level1_fill_mask(qaband: np.ndarray) -> np.ndarray:
    """Boolean fill mask of a Level-1 QA band."""
    return has_bit(qaband, LEVEL1_FILL_BIT)


def fill_flags(fill_mask: np.ndarray) -> np.ndarray:
    """Initial ipflag raster: the fill bit where ``fill_mask``, 0 elsewhere."""
    ipflag = np.zeros(np.shape(fill_mask), dtype=np.uint8)
    ipflag[fill_mask] = bit(IPFLAG_FILL)
    return ipflag


def retrieval_flags(clear: bool, water: bool) -> int:
    """ipflag value of a retrieval outcome."""
    flags = 0
    if clear:
        flags |= bit(IPFLAG_CLEAR)
    if water:
        flags |= bit(IPFLAG_WATER)
    return flags


def aerosol_level_bits(adjustment: Union[float, np.ndarray]) -> np.ndarray:
    """
    Aerosol level bits from the band 1 correction magnitude.

    ``|d| <= 0.05`` is low (bit 6), ``|d| < 0.10`` moderate (bit 7), larger
    adjustments are high (bits 6 and 7).
    """
    d = np.abs(np.asarray(adjustment))
    return np.where(
        d <= LOW_AERO_THRESH, bit(AERO1_QA),
        np.where(d < AVG_AERO_THRESH, bit(AERO2_QA), bit(AERO1_QA) | bit(AERO2_QA)),
    ).astype(np.uint8)


def aerosol_level(ipflag: Union[int, np.ndarray]) -> np.ndarray:
    """Decode the aerosol level (0 none, 1 low, 2 moderate, 3 high)."""
    low = has_bit(ipflag, AERO1_QA)
    moderate = has_bit(ipflag, AERO2_QA)
    return np.where(low & moderate, AEROSOL_HIGH,
                    np.where(moderate, AEROSOL_MODERATE,
                             np.where(low, AEROSOL_LOW, AEROSOL_NONE)))
