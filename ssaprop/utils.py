""" This module provides vector operations, time conversions, low precision
ephemerides of the Sun and Moon and relative frame transformations used
throughout ssaprop. """

import os
from functools import lru_cache

import numpy as np
import erfa
from astropy.time import Time

from . import datadir


def find_file(filename, ext=None):
    """Locate `filename` as given, then under the ssaprop data directory.
    With `ext`, each location is retried with the extension appended.
    """
    for name in (filename, filename + ext if ext else None):
        if name is None:
            continue
        for path in (name, os.path.join(datadir, name)):
            if os.path.isfile(path):
                return path
    raise FileNotFoundError(filename)


class lazy_property:
    """Descriptor computing an attribute on first access, then caching it in
    the instance dict.  Only for values that never change.
    """
    def __init__(self, fget):
        self.fget = fget
        self.__doc__ = fget.__doc__
        self.name = fget.__name__

    def __get__(self, obj, cls):
        if obj is None:
            return self
        value = self.fget(obj)
        obj.__dict__[self.name] = value
        return value


def normSq(arr):
    """Squared Euclidean length along the last axis."""
    return np.einsum("...i,...i", arr, arr)


# Duplicated from normSq to skip a call
def norm(arr):
    """Euclidean length along the last axis.

    Parameters
    ----------
    arr : array_like (..., n)

    Returns
    -------
    array_like (...)
    """
    return np.sqrt(np.einsum("...i,...i", arr, arr))


def normed(arr):
    """Unit vectors along the last axis."""
    return arr / norm(arr)[..., None]


def toGps(t):
    """Convert an epoch to GPS seconds.

    Parameters
    ----------
    t : float or astropy.time.Time
        If float, then already GPS seconds; i.e., seconds since
        1980-01-06 00:00:00 UTC

    Returns
    -------
    float
    """
    if isinstance(t, Time):
        return float(t.gps)
    return float(t)


def _gpsToTT(t):
    """MJD in the TT scale for GPS seconds `t`.

    TT runs a constant 51.184 s ahead of GPS, and the GPS epoch is MJD 44244.
    """
    if isinstance(t, Time):
        t = t.gps
    return 44244.0 + (t + 51.184) / 86400


# Mean obliquity of the ecliptic at J2000, radians
_OBLIQUITY = 0.40909280420293637


def _eclipticToGCRF(x, y, z):
    co, so = np.cos(_OBLIQUITY), np.sin(_OBLIQUITY)
    return np.array([x, y * co - z * so, y * so + z * co])


def sunPos(t, fast=True):
    """Geocentric position of the Sun in km.

    Parameters
    ----------
    t : float or astropy.time.Time
        Epoch, GPS seconds if float.
    fast : bool
        Use the low precision series of Montenbruck & Gill section 3.3.2
        (about 0.1 degree) rather than erfa's epv00.

    Returns
    -------
    r : array_like (3,)
    """
    tt = _gpsToTT(toGps(t))
    if not fast:
        pvh, _ = erfa.epv00(2400000.5, tt)
        # epv00 gives the Earth relative to the Sun, in AU
        return -149597870.7 * pvh['p']
    T = (tt - 51544.5) / 36525.0
    M = 6.239998880168239 + 628.3019326367721 * T
    lam = 4.938234585592756 + M + 0.03341335890206922 * np.sin(M) + 0.00034906585039886593 * np.sin(2 * M)
    dist = 1e6 * (149.619 - 2.499 * np.cos(M) - 0.021 * np.cos(2 * M))
    return dist * _eclipticToGCRF(np.cos(lam), np.sin(lam), np.zeros_like(lam))


def moonPos(t):
    """Geocentric position of the Moon in km, from the truncated lunar
    series of Montenbruck & Gill eqs. (3.47) - (3.50).

    Parameters
    ----------
    t : float or astropy.time.Time
        Epoch, GPS seconds if float.

    Returns
    -------
    r : array_like (3,)
    """
    T = (_gpsToTT(toGps(t)) - 51544.5) / 36525.0
    L0 = 3.810335976843669 + 8399.684719711557 * T
    lb = 2.3555473221057053 + 8328.69142518676 * T
    lp = 6.23999591310851 + 628.3019403162209 * T
    D = 5.198467889454092 + 7771.377143901714 * T
    F = 1.6279179861529427 + 8433.46617912181 * T

    # arcseconds
    dL = (
        22640 * np.sin(lb) + 769 * np.sin(2 * lb) - 4586 * np.sin(lb - 2 * D)
        + 2370 * np.sin(2 * D) - 668 * np.sin(lp) - 412 * np.sin(2 * F)
        - 212 * np.sin(2 * lb - 2 * D) - 206 * np.sin(lb + lp - 2 * D)
        + 192 * np.sin(lb + 2 * D) - 165 * np.sin(lp - 2 * D)
        + 148 * np.sin(lb - lp) - 125 * np.sin(D) - 110 * np.sin(lb + lp)
        - 55 * np.sin(2 * F - 2 * D)
    )
    lon = L0 + np.deg2rad(dL / 3600)
    dB = (
        18520 * np.sin(F + lon - L0 + np.deg2rad((412 * np.sin(2 * F) + 541 * np.sin(lp)) / 3600))
        - 526 * np.sin(F - 2 * D) + 44 * np.sin(lb + F - 2 * D)
        - 31 * np.sin(-lb + F - 2 * D) - 25 * np.sin(-2 * lb + F)
        - 23 * np.sin(lp + F - 2 * D) + 21 * np.sin(-lb + F)
        + 11 * np.sin(-lp + F - 2 * D)
    )
    lat = np.deg2rad(dB / 3600)
    dist = (
        385000 - 20905 * np.cos(lb) - 3699 * np.cos(2 * D - lb)
        - 2956 * np.cos(2 * D) - 570 * np.cos(2 * lb)
        + 246 * np.cos(2 * lb - 2 * D) - 205 * np.cos(lp - 2 * D)
        - 171 * np.cos(lb + 2 * D) - 152 * np.cos(lb + lp - 2 * D)
    )
    return dist * _eclipticToGCRF(
        np.cos(lon) * np.cos(lat), np.sin(lon) * np.cos(lat), np.sin(lat)
    )


def ricMatrix(r, v):
    """Rotation matrix from inertial to radial/in-track/cross-track axes.

    R points along the position vector, C along the orbit normal (r x v), and
    I completes the right handed set (C x R); I is parallel to the velocity
    for circular orbits.

    Parameters
    ----------
    r : array_like (3,)
        reference position, km
    v : array_like (3,)
        reference velocity, km/s

    Returns
    -------
    mat : array_like (3, 3)
        rows are the R, I, C unit vectors expressed in the inertial frame
    """
    rvec = normed(r)
    cvec = normed(np.cross(r, v))
    ivec = np.cross(cvec, rvec)
    return np.array([rvec, ivec, cvec])


def rv_to_ric(r, v, rcoord):
    """Convert inertial coordinates to RIC coordinates, using r, v to define
    the RIC system.

    Parameters
    ----------
    r : array_like (3,)
        reference position, km
    v : array_like (3,)
        reference velocity, km/s
    rcoord : array_like (3,)
        position to transform to RIC coordinates

    Returns
    -------
    ric : array_like (3,)
        r, i, c offsets of rcoord from r
    """
    return ricMatrix(r, v) @ (np.asarray(rcoord) - r)


def ric_to_r(r, v, ric, relative=False):
    """Convert RIC coordinates to inertial coordinates, using r, v to define
    the RIC system.

    Parameters
    ----------
    r : array_like (3,)
        reference position, km
    v : array_like (3,)
        reference velocity, km/s
    ric : array_like (3,)
        ric coordinates to transform to inertial coordinates
    relative : bool
        if True, just rotate the RIC coordinates to inertial; do not offset
        the origin so that RIC = 0 -> inertial r.

    Returns
    -------
    r : array_like (3,)
        inertial x, y, z coordinates
    """
    ret = np.dot(ric, ricMatrix(r, v))
    if not relative:
        ret = ret + r
    return ret


@lru_cache(maxsize=None)
def _iersTable():
    from astropy.utils import iers
    from scipy.interpolate import interp1d
    table = iers.earth_orientation_table.get()
    mjd = Time(table['MJD'], format='mjd', scale='utc')
    dut1 = mjd.ut1.mjd - mjd.tt.mjd
    return interp1d(
        mjd.gps, dut1, bounds_error=False, fill_value=(dut1[0], dut1[-1])
    )


def iersDut1(t):
    """UT1 - TT in days at GPS seconds `t`, interpolated from the IERS
    tables.  The tables are fetched by astropy on first use and held outside
    the table range.
    """
    return float(_iersTable()(toGps(t)))


def gcrf_to_teme(t, dut1=None):
    """Rotation matrix taking GCRF vectors to TEME.

    Parameters
    ----------
    t : float or astropy.time.Time
        Epoch, GPS seconds if float.
    dut1 : float, optional
        UT1 - TT in days.  Interpolated from IERS when None.

    Returns
    -------
    rot : array (3, 3)
    """
    t = toGps(t)
    if dut1 is None:
        dut1 = iersDut1(t)
    tt = _gpsToTT(t)
    ut1 = tt + dut1
    # GCRS -> CIRS, then swing the x axis from the CIO to the mean equinox
    c2i = erfa.c2i00b(2400000.5, tt)
    spin = erfa.era00(2400000.5, ut1) - erfa.gmst82(2400000.5, ut1)
    return erfa.rxr(erfa.rv2m([0, 0, spin]), c2i)


def teme_to_gcrf(t, dut1=None):
    """Rotation matrix taking TEME vectors to GCRF; the transpose of
    `gcrf_to_teme`.
    """
    return erfa.tr(gcrf_to_teme(t, dut1=dut1))
