"""
Module to handle spacecraft state vectors.

Notes
-----
A StateVector is a single inertial (GCRF) position/velocity pair at an epoch.
Positions are in kilometers, velocities in kilometers per second and epochs in
GPS seconds.  StateVectors are immutable; every operation that changes a
component returns a new instance.
"""

import numpy as np
from astropy.time import Time

from .utils import norm, normed, lazy_property as _lazy_property, ricMatrix
from .constants import EARTH_MU


# Conversion routines for anomalies
def _ellipticalEccentricToTrueAnomaly(E, e):
    """Compute true anomaly from eccentric anomaly for elliptical orbit.

    Parameters
    ----------
    E : array_like
        Eccentric anomaly in radians.
    e : float
        Eccentricity

    Returns
    -------
    array_like
        True anomaly in radians.
    """
    beta = e / (1 + np.sqrt((1 - e) * (1 + e)))
    return E + 2 * np.arctan(beta * np.sin(E) / (1 - beta * np.cos(E)))


def _ellipticalTrueToEccentricAnomaly(v, e):
    """Compute eccentric anomaly from true anomaly for elliptical orbit.

    Parameters
    ----------
    v : array_like
        True anomaly in radians.
    e : float
        Eccentricity

    Returns
    -------
    array_like
        Eccentric anomaly in radians.
    """
    beta = e / (1 + np.sqrt(1 - e * e))
    return v - 2 * np.arctan(beta * np.sin(v) / (1 + beta * np.cos(v)))


def _ellipticalEccentricToMeanAnomaly(E, e):
    """Compute mean anomaly from eccentric anomaly for elliptical orbit."""
    return E - e * np.sin(E)


def _ellipticalMeanToEccentricAnomaly(M, e, tol=1e-14, maxiter=50):
    """Solve Kepler's equation for the eccentric anomaly.

    Parameters
    ----------
    M : float
        Mean anomaly in radians.
    e : float
        Eccentricity, 0 <= e < 1.
    tol : float, optional
        Convergence tolerance on the Newton update in radians.
    maxiter : int, optional
        Maximum number of Newton iterations.

    Returns
    -------
    float
        Eccentric anomaly in radians, on the same branch as M.
    """
    MM = (M + np.pi) % (2 * np.pi) - np.pi
    E = MM if e < 0.8 else np.pi * np.sign(MM)
    for _ in range(maxiter):
        f = E - e * np.sin(E) - MM
        dE = f / (1 - e * np.cos(E))
        E -= dE
        if abs(dE) < tol:
            break
    return E + (M - MM)


def _hyperbolicTrueToEccentricAnomaly(v, e):
    """Compute hyperbolic eccentric anomaly from true anomaly."""
    return 2 * np.arctanh(np.sqrt((e - 1) / (e + 1)) * np.tan(0.5 * v))


def _hyperbolicEccentricToMeanAnomaly(H, e):
    """Compute hyperbolic mean anomaly from eccentric anomaly."""
    return e * np.sinh(H) - H


class StateVector:
    """
    Inertial state of a spacecraft.

    Parameters
    ----------
    r : (3,) array_like
        Position in kilometers.
    v : (3,) array_like
        Velocity in kilometers per second.
    t : float or astropy.time.Time
        If float, then should correspond to GPS seconds; i.e., seconds since
        1980-01-06 00:00:00 UTC
    mu : float, optional
        Gravitational constant of central body in km^3/s^2.  (Default: Earth's
        gravitational constant in WGS84).

    Attributes
    ----------
    r, position : (3,) ndarray
        Position in kilometers.  Read-only.
    v, velocity : (3,) ndarray
        Velocity in kilometers per second.  Read-only.
    t, epoch : float
        GPS seconds.
    mu : float
        Gravitational constant of central body in km^3/s^2
    rv : (6,) ndarray
        Concatenated position and velocity.
    a : float
        Semimajor axis in kilometers.  Negative for hyperbolic states.
    e : float
        Keplerian eccentricity.
    i : float
        Keplerian inclination in radians.
    pa : float
        Keplerian periapsis argument in radians.
    raan : float
        Keplerian right ascension of the ascending node in radians.
    trueAnomaly : float
        Keplerian true anomaly in radians.
    meanAnomaly : float
        Keplerian mean anomaly in radians.
    period : float
        Orbital period in seconds.  Infinite for unbound states.
    meanMotion : float
        Keplerian mean motion in radians per second.
    angularMomentum : (3,) ndarray
        (Specific) angular momentum in km^2/s.
    energy : float
        (Specific) orbital energy in km^2/s^2.
    keplerianElements
    """
    def __init__(self, r, v, t, mu=EARTH_MU):
        if isinstance(t, Time):
            t = t.gps
        r = np.array(r, dtype=float)
        v = np.array(v, dtype=float)
        if r.shape != (3,) or v.shape != (3,):
            raise ValueError(
                f"position and velocity must have shape (3,), got {r.shape} and {v.shape}"
            )
        r.flags.writeable = False
        v.flags.writeable = False
        self.r = r
        self.v = v
        self.t = float(t)
        self.mu = mu

    @classmethod
    def fromRV(cls, rv, t, mu=EARTH_MU):
        """Construct a StateVector from a concatenated 6-vector.

        Parameters
        ----------
        rv : (6,) array_like
            Position in km followed by velocity in km/s.
        t : float or astropy.time.Time
            Epoch.
        mu : float, optional
            Gravitational constant of central body in km^3/s^2.

        Returns
        -------
        StateVector
        """
        rv = np.asarray(rv, dtype=float)
        return cls(rv[0:3], rv[3:6], t, mu=mu)

    @classmethod
    def fromKeplerianElements(
        cls, a, e, i, pa, raan, trueAnomaly, t, mu=EARTH_MU
    ):
        """Construct a StateVector from Keplerian elements.

        Parameters
        ----------
        a : float
            Semimajor axis in kilometers.
        e : float
            Keplerian eccentricity.
        i : float
            Keplerian inclination in radians.
        pa : float
            Keplerian periapsis argument in radians.
        raan : float
            Keplerian right ascension of the ascending node in radians.
        trueAnomaly : float
            Keplerian true anomaly in radians.
        t : float or astropy.time.Time
            If float, then should correspond to GPS seconds; i.e., seconds since
            1980-01-06 00:00:00 UTC
        mu : float, optional
            Gravitational constant of central body in km^3/s^2.

        Returns
        -------
        StateVector
            The state with given parameters.
        """
        pK, qK = _perifocalAxes(i, pa, raan)
        p = a * (1 - e * e)
        cosV = np.cos(trueAnomaly)
        sinV = np.sin(trueAnomaly)
        rmag = p / (1 + e * cosV)
        velFactor = np.sqrt(mu / p)
        r = rmag * (cosV * pK + sinV * qK)
        v = velFactor * (-sinV * pK + (e + cosV) * qK)
        return cls(r, v, t, mu=mu)

    @property
    def position(self):
        return self.r

    @property
    def velocity(self):
        return self.v

    @property
    def epoch(self):
        return self.t

    def withVelocity(self, v):
        """Return a copy of this state with velocity replaced by `v` (km/s)."""
        return StateVector(self.r, v, self.t, mu=self.mu)

    def toRIC(self, origin):
        """Express this state relative to another state in the origin's
        radial/in-track/cross-track frame.

        Parameters
        ----------
        origin : StateVector
            State defining the RIC frame.

        Returns
        -------
        ricPos : (3,) ndarray
            Relative position in km.
        ricVel : (3,) ndarray
            Relative velocity in km/s.
        """
        mat = ricMatrix(origin.r, origin.v)
        return mat @ (self.r - origin.r), mat @ (self.v - origin.v)

    def __hash__(self):
        return hash((
            "StateVector",
            self.r.tobytes(),
            self.v.tobytes(),
            self.t,
            self.mu
        ))

    def __eq__(self, rhs):
        if not isinstance(rhs, StateVector):
            return False
        return (
            np.array_equal(self.r, rhs.r) and np.array_equal(self.v, rhs.v) and self.t == rhs.t and self.mu == rhs.mu
        )

    def __repr__(self):
        return "StateVector(r={!r}, v={!r}, t={!r})".format(
            list(self.r), list(self.v), self.t
        )

    def _setKeplerian(self):
        # set keplerian angles from state vectors; circular and equatorial
        # states fall back to the x axis as node line and periapsis.
        h = self.angularMomentum
        hhat = normed(h)
        node = np.array([-h[1], h[0], 0.0])
        nnorm = norm(node)
        if nnorm > 1e-12 * norm(h):
            nhat = node / nnorm
        else:
            nhat = np.array([1.0, 0.0, 0.0])
        mhat = np.cross(hhat, nhat)
        evec = self.eccentricityVector
        e = norm(evec)
        if e > 1e-12:
            ehat = evec / e
            pa = np.arctan2(evec @ mhat, evec @ nhat) % (2 * np.pi)
        else:
            ehat = nhat
            pa = 0.0
        qhat = np.cross(hhat, ehat)
        self.i = np.arccos(np.clip(hhat[2], -1.0, 1.0))
        self.raan = np.arctan2(nhat[1], nhat[0]) % (2 * np.pi)
        self.pa = pa
        self.trueAnomaly = np.arctan2(self.r @ qhat, self.r @ ehat) % (2 * np.pi)

    @_lazy_property
    def rv(self):
        """Position and velocity as one 6-vector.
        """
        rv = np.hstack([self.r, self.v])
        rv.flags.writeable = False
        return rv

    @_lazy_property
    def radius(self):
        """Distance from the central body in kilometers.
        """
        return norm(self.r)

    @_lazy_property
    def energy(self):
        """(Specific) orbital energy in km^2/s^2.
        """
        return 0.5 * (self.v @ self.v) - self.mu / self.radius

    @_lazy_property
    def a(self):
        """Semimajor axis in kilometers.
        """
        return -0.5 * self.mu / self.energy

    @_lazy_property
    def angularMomentum(self):
        """(Specific) angular momentum vector in km^2/s.
        """
        return np.cross(self.r, self.v)

    @_lazy_property
    def eccentricityVector(self):
        """Eccentricity vector, pointing at periapsis.
        """
        v2 = self.v @ self.v
        return ((v2 - self.mu / self.radius) * self.r - (self.r @ self.v) * self.v) / self.mu

    @_lazy_property
    def e(self):
        """Eccentricity.
        """
        return norm(self.eccentricityVector)

    @_lazy_property
    def i(self):
        """Inclination in radians.
        """
        self._setKeplerian()
        return self.i

    @_lazy_property
    def pa(self):
        """Periapsis argument in radians.
        """
        self._setKeplerian()
        return self.pa

    @_lazy_property
    def raan(self):
        """Right ascension of the ascending node in radians.
        """
        self._setKeplerian()
        return self.raan

    @_lazy_property
    def trueAnomaly(self):
        """True anomaly in radians.
        """
        self._setKeplerian()
        return self.trueAnomaly

    @_lazy_property
    def meanAnomaly(self):
        """Mean anomaly in radians.
        """
        if self.e < 1:
            return _ellipticalEccentricToMeanAnomaly(
                _ellipticalTrueToEccentricAnomaly(self.trueAnomaly, self.e),
                self.e
            ) % (2 * np.pi)
        return _hyperbolicEccentricToMeanAnomaly(
            _hyperbolicTrueToEccentricAnomaly(self.trueAnomaly, self.e),
            self.e
        )

    @_lazy_property
    def meanMotion(self):
        """Mean motion in radians per second.
        """
        return np.sqrt(self.mu / np.abs(self.a**3))

    @_lazy_property
    def period(self):
        """Orbital period in seconds.
        """
        return 2 * np.pi / self.meanMotion if self.a > 0 else np.inf

    @property
    def keplerianElements(self):
        """Keplerian elements (a, e, i, pa, raan, trueAnomaly).
        """
        return self.a, self.e, self.i, self.pa, self.raan, self.trueAnomaly


def _perifocalAxes(i, pa, raan):
    """Unit vectors towards periapsis and 90 degrees ahead of it in the
    orbital plane."""
    cosRaan = np.cos(raan)
    sinRaan = np.sin(raan)
    cosPa = np.cos(pa)
    sinPa = np.sin(pa)
    cosI = np.cos(i)
    sinI = np.sin(i)
    crcp = cosRaan * cosPa
    crsp = cosRaan * sinPa
    srcp = sinRaan * cosPa
    srsp = sinRaan * sinPa
    pK = np.array([crcp - cosI * srsp, srcp + cosI * crsp, sinI * sinPa])
    qK = np.array([-crsp - cosI * srcp, -srsp + cosI * crcp, sinI * cosPa])
    return pK, qK


