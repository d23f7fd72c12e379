"""
Classes representing celestial bodies and the environment data they provide.
"""

import numpy as np
import erfa

from .utils import _gpsToTT, iersDut1, sunPos, moonPos, norm
from .constants import (
    EARTH_MU, EARTH_RADIUS, MOON_MU, MOON_RADIUS, SUN_MU, SUN_RADIUS
)
from .gravity import HarmonicCoefficients


# UT1 - TT in days, assuming UT1 ~ UTC and the post-2017 TT - UTC offset.
NOMINAL_DUT1 = -69.184 / 86400


class EarthOrientation:
    """Callable giving the GCRF -> ITRF rotation matrix of the Earth at a GPS
    time in seconds.

    Parameters
    ----------
    recalc_threshold : float
        Threshold for recomputing the precession/nutation matrix. Default is 30
        days.
    useIers : bool
        Interpolate UT1 - TT from the IERS tables (may download them).  If
        False, use the constant `dut1`.
    dut1 : float
        UT1 - TT in days used when `useIers` is False.
    """
    def __init__(self, recalc_threshold=86400 * 30, useIers=False, dut1=NOMINAL_DUT1):
        self.recalc_threshold = recalc_threshold
        self.useIers = useIers
        self._nominal_dut1 = dut1
        self._t = None

    def dut1(self, t):
        """UT1 - TT in days at GPS time t."""
        if self.useIers:
            return iersDut1(t)
        return self._nominal_dut1

    def __call__(self, t):
        """Return the orientation matrix at time t.

        Parameters
        ----------
        t : float
            Time in GPS seconds.

        Returns
        -------
        E : `numpy.ndarray`
            Orientation matrix at time t.
        """
        mjd_tt = _gpsToTT(t)
        if self._t is None or np.abs(t - self._t) > self.recalc_threshold:
            self._t = t
            self._dut1 = self.dut1(t)
            self._T = erfa.pnm80(2400000.5, mjd_tt)
        gst = erfa.gst94(2400000.5, mjd_tt + self._dut1)
        return erfa.rxr(erfa.rv2m([0, 0, gst]), self._T)

    def __repr__(self):
        return "EarthOrientation(useIers={!r})".format(self.useIers)


class MoonPosition:
    """Callable giving the geocentric GCRF position of the Moon, in km, at a
    GPS time in seconds.
    """
    def __call__(self, t):
        return moonPos(t)

    def __repr__(self):
        return "MoonPosition()"


class SunPosition:
    """Callable giving the geocentric GCRF position of the Sun, in km, at a
    GPS time in seconds.

    Parameters
    ----------
    fast : bool
        Use the low precision analytic series instead of erfa.epv00.
    """
    def __init__(self, fast=True):
        self.fast = fast

    def __call__(self, t):
        return sunPos(t, fast=self.fast)

    def __repr__(self):
        return "SunPosition(fast={!r})".format(self.fast)


class Body:
    """Gravitating body: constants plus time dependent providers.

    Parameters
    ----------
    mu : float
        Gravitational parameter in km^3/s^2.
    radius : float
        Mean equatorial radius in km.
    position : callable, optional
        t -> GCRF position in km.  Defaults to the origin.
    orientation : callable, optional
        t -> GCRF to body fixed rotation.  Defaults to the identity.
    harmonics : HarmonicCoefficients, optional
        Geopotential of the body, if modeled.
    """
    def __init__(
        self,
        mu,
        radius,
        position=lambda t: np.zeros(3),
        orientation=lambda t: np.eye(3),
        harmonics=None
    ):
        self.mu = mu
        self.radius = radius
        self.position = position
        self.orientation = orientation
        self.harmonics = harmonics


def get_body(name):
    """Body for "earth", "moon" or "sun" (case insensitive), wired to the
    default providers.
    """
    key = name.lower()
    if key == "earth":
        return Body(
            EARTH_MU, EARTH_RADIUS,
            orientation=EarthOrientation(),
            harmonics=HarmonicCoefficients.egm96()
        )
    if key == "moon":
        return Body(MOON_MU, MOON_RADIUS, position=MoonPosition())
    if key == "sun":
        return Body(SUN_MU, SUN_RADIUS, position=SunPosition())
    raise ValueError(f"Unknown body {name}")


def lightingRatio(satPos, sunPos, occultingRadius=EARTH_RADIUS):
    """Fraction of the solar disk visible from a satellite.

    The Earth and Sun are modeled as disks of their apparent angular radii as
    seen from the satellite; the partially overlapped area gives the penumbra.

    Parameters
    ----------
    satPos : array_like, shape(3,)
        Satellite position in km, Earth centered.
    sunPos : array_like, shape(3,)
        Sun position in km, Earth centered.
    occultingRadius : float, optional
        Radius of the occulting body in km.

    Returns
    -------
    float
        0.0 in umbra, 1.0 in full sunlight.
    """
    satPos = np.asarray(satPos)
    satSun = sunPos - satPos
    dSat = norm(satPos)
    dSun = norm(satSun)
    cosAngle = np.clip(-(satSun @ satPos) / (dSun * dSat), -1.0, 1.0)
    sunSatAngle = np.arccos(cosAngle)
    aCent = np.arcsin(min(1.0, occultingRadius / dSat))
    aSun = np.arcsin(SUN_RADIUS / dSun)

    if sunSatAngle - aCent + aSun <= 1e-10:
        return 0.0
    if sunSatAngle - aCent - aSun >= -1e-10:
        return 1.0
    # partial overlap of two disks (MG 3.4)
    ssa2 = sunSatAngle * sunSatAngle
    ssaInv = 1.0 / (2.0 * sunSatAngle)
    ac2 = aCent * aCent
    as2 = aSun * aSun
    acAsDiff = ac2 - as2
    a1 = (ssa2 - acAsDiff) * ssaInv
    a2 = (ssa2 + acAsDiff) * ssaInv
    p1 = as2 * np.arccos(np.clip(a1 / aSun, -1.0, 1.0)) - a1 * np.sqrt(max(0.0, as2 - a1 * a1))
    p2 = ac2 * np.arccos(np.clip(a2 / aCent, -1.0, 1.0)) - a2 * np.sqrt(max(0.0, ac2 - a2 * a2))
    return float(np.clip(1.0 - (p1 + p2) / (np.pi * as2), 0.0, 1.0))


# Harris-Priester densities for mean solar flux.
# Columns: height [km], minimum density [kg/m^3], maximum density [kg/m^3]
HP_MEAN_FLUX = np.array([
    (100, 4.974e-7, 4.974e-7),
    (120, 2.49e-8, 2.49e-8),
    (130, 8.377e-9, 8.71e-9),
    (140, 3.899e-9, 4.059e-9),
    (150, 2.122e-9, 2.215e-9),
    (160, 1.263e-9, 1.344e-9),
    (170, 8.008e-10, 8.758e-10),
    (180, 5.283e-10, 6.01e-10),
    (190, 3.617e-10, 4.297e-10),
    (200, 2.557e-10, 3.162e-10),
    (210, 1.839e-10, 2.396e-10),
    (220, 1.341e-10, 1.853e-10),
    (230, 9.949e-11, 1.455e-10),
    (240, 7.488e-11, 1.157e-10),
    (250, 5.709e-11, 9.308e-11),
    (260, 4.403e-11, 7.555e-11),
    (270, 3.43e-11, 6.182e-11),
    (280, 2.697e-11, 5.095e-11),
    (290, 2.139e-11, 4.226e-11),
    (300, 1.708e-11, 3.526e-11),
    (320, 1.099e-11, 2.511e-11),
    (340, 7.214e-12, 1.819e-11),
    (360, 4.824e-12, 1.337e-11),
    (380, 3.274e-12, 9.955e-12),
    (400, 2.249e-12, 7.492e-12),
    (420, 1.558e-12, 5.684e-12),
    (440, 1.091e-12, 4.355e-12),
    (460, 7.701e-13, 3.362e-12),
    (480, 5.474e-13, 2.612e-12),
    (500, 3.916e-13, 2.042e-12),
    (520, 2.819e-13, 1.605e-12),
    (540, 2.042e-13, 1.267e-12),
    (560, 1.488e-13, 1.005e-12),
    (580, 1.092e-13, 7.997e-13),
    (600, 8.07e-14, 6.39e-13),
    (620, 6.012e-14, 5.123e-13),
    (640, 4.519e-14, 4.121e-13),
    (660, 3.43e-14, 3.325e-13),
    (680, 2.632e-14, 2.691e-13),
    (700, 2.043e-14, 2.185e-13),
    (720, 1.607e-14, 1.779e-13),
    (740, 1.281e-14, 1.452e-13),
    (760, 1.036e-14, 1.19e-13),
    (780, 8.496e-15, 9.776e-14),
    (800, 7.069e-15, 8.059e-14),
    (840, 4.68e-15, 5.741e-14),
    (880, 3.2e-15, 4.21e-14),
    (920, 2.21e-15, 3.13e-14),
    (960, 1.56e-15, 2.36e-14),
    (1000, 1.15e-15, 1.81e-14),
])


class HarrisPriester:
    """Harris-Priester atmospheric density model.

    Densities are interpolated exponentially between tabulated heights, and
    between the night-side minimum and the day-side maximum according to the
    angle from the diurnal bulge.  See Section 3.5.2 of Montenbruck and Gill.

    Parameters
    ----------
    table : array_like, shape(n, 3)
        Rows of (height [km], minimum density, maximum density [kg/m^3]),
        sorted by height.
    """
    def __init__(self, table=HP_MEAN_FLUX):
        self.table = np.array(table, dtype=float)
        if self.table.ndim != 2 or self.table.shape[1] != 3 or len(self.table) < 2:
            raise ValueError("Harris-Priester table needs at least two (h, min, max) rows")
        if np.any(np.diff(self.table[:, 0]) <= 0):
            raise ValueError("Harris-Priester table heights must be increasing")
        self.hMin = self.table[0, 0]
        self.hMax = self.table[-1, 0]

    def bracket(self, height):
        """Table rows bracketing `height` (km), or None outside the table."""
        if height < self.hMin or height > self.hMax:
            return None
        index = int(np.searchsorted(self.table[:, 0], height, side='left')) - 1
        index = min(max(index, 0), len(self.table) - 2)
        return self.table[index], self.table[index + 1]

    def density(self, height, cosPow):
        """Atmospheric density in kg/m^3.

        Parameters
        ----------
        height : float
            Height above the ellipsoid in km.
        cosPow : float
            Bulge weighting factor cos^n(psi/2) in [0, 1].

        Returns
        -------
        float
            Density, or 0.0 when the height is outside the table.
        """
        rows = self.bracket(height)
        if rows is None:
            return 0.0
        (h0, min0, max0), (h1, min1, max1) = rows
        dH = (h0 - height) / (h0 - h1)
        rhoMin = min0 * (min1 / min0)**dH
        if cosPow == 0:
            return rhoMin
        rhoMax = max0 * (max1 / max0)**dH
        return rhoMin + (rhoMax - rhoMin) * cosPow

    def __repr__(self):
        return "HarrisPriester(hMin={!r}, hMax={!r})".format(self.hMin, self.hMax)
