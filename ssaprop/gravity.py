"""
Classes for gravity-related accelerations.
"""

import logging
from functools import lru_cache
from math import factorial

import numpy as np

from .accel import Force as _Force
from .constants import EARTH_MU, MOON_MU, SUN_MU, EGM96_RADIUS, EGM96_MU
from .utils import find_file, norm

log = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def _invnorm(n, m):
    """Factor converting a fully normalized (n, m) coefficient to its
    unnormalized value.
    """
    n, m = int(n), int(m)
    k = 1 if m == 0 else 2
    return np.sqrt(k * (2 * n + 1) * factorial(n - m) / factorial(n + m))


# EGM96 fully normalized coefficients through degree and order 4.
# Rows: (n, m, C, S)
_EGM96_4x4 = (
    (2, 0, -0.484165371736e-3, 0.0),
    (2, 1, -0.186987635955e-9, 0.119528012031e-8),
    (2, 2, 0.243914352398e-5, -0.140016683654e-5),
    (3, 0, 0.957254173792e-6, 0.0),
    (3, 1, 0.202998882184e-5, 0.248513158716e-6),
    (3, 2, 0.904627768605e-6, -0.619025944205e-6),
    (3, 3, 0.721072657057e-6, 0.141435626958e-5),
    (4, 0, 0.539873863789e-6, 0.0),
    (4, 1, -0.536321616971e-6, -0.473440265853e-6),
    (4, 2, 0.350694105785e-6, 0.662671572540e-6),
    (4, 3, 0.990771803829e-6, -0.200928369177e-6),
    (4, 4, -0.188560802735e-6, 0.308853169333e-6),
)


class HarmonicCoefficients:
    """Class to hold coefficients for a spherical harmonic expansion of a
    gravitational potential.

    Coefficients are stored denormalized in a single square matrix CS with
    C(n, m) = CS[n, m] and S(n, m) = CS[m-1, n].  The Keplerian term CS[0, 0]
    is zero so the expansion only describes the non-central part.

    Attributes
    ----------
    name : str
    radius : float
        Reference radius in km.
    MG : float
        Gravitational constant in km^3/s^2.
    CS : ndarray, shape(n_max+1, n_max+1)
    n_max, m_max : int
        Maximum degree and order.
    """
    @classmethod
    def fromArrays(cls, C, S, radius, MG, name="custom"):
        """Construct from fully normalized coefficient arrays.

        Parameters
        ----------
        C, S : array_like, shape(n_max+1, n_max+1)
            Normalized cosine and sine coefficients indexed [n, m].  Entries
            with m > n are ignored.
        radius : float
            Reference radius in km.
        MG : float
            Gravitational constant in km^3/s^2.
        name : str, optional

        Returns
        -------
        HarmonicCoefficients
        """
        C = np.asarray(C, dtype=float)
        S = np.asarray(S, dtype=float)
        if C.ndim != 2 or C.shape[0] != C.shape[1] or C.shape != S.shape:
            raise ValueError("C and S must be square arrays of the same shape")
        n_max = C.shape[0] - 1

        CS = np.zeros((n_max + 1, n_max + 1))
        for n in range(n_max + 1):
            for m in range(n + 1):
                CS[n, m] = C[n, m] * _invnorm(n, m)
                if m != 0:
                    CS[m - 1, n] = S[n, m] * _invnorm(n, m)
        CS[0, 0] = 0.0

        ret = cls.__new__(cls)
        ret.name = name
        ret.radius = radius
        ret.MG = MG
        ret.CS = CS
        ret.n_max = n_max
        ret.m_max = n_max
        return ret

    @classmethod
    def egm96(cls):
        """EGM96 coefficients through degree and order 4."""
        C = np.zeros((5, 5))
        S = np.zeros((5, 5))
        for n, m, c, s in _EGM96_4x4:
            C[n, m] = c
            S[n, m] = s
        return cls.fromArrays(C, S, EGM96_RADIUS, EGM96_MU, name="EGM96")

    @classmethod
    def fromTAB(cls, filename, n_max=40, m_max=40):
        """Construct a HarmonicCoefficients object from a .tab file as available
        from https://pgda.gsfc.nasa.gov/products/50

        The first line holds the reference radius [km], GM [km^3/s^2], its
        uncertainty, the maximum degree and order, the normalization state
        and a reference position; the remaining comma separated rows are
        degree, order, C, S, sigma C, sigma S.
        """
        original_filename = filename
        try:
            filename = find_file(filename, ext=".tab")
        except FileNotFoundError:
            # Reraise with original filename
            raise FileNotFoundError(original_filename)

        with open(filename, "r") as f:
            header = np.array(f.readline().replace(',', ' ').split()).astype(float)
        r_ref_km, GM_km3_s2 = header[0], header[1]
        n_max = min(int(header[3]), n_max)
        m_max = min(int(header[4]), m_max, n_max)

        data = np.atleast_2d(np.genfromtxt(filename, skip_header=1, delimiter=','))
        degree = data[:, 0].astype(int)
        order = data[:, 1].astype(int)

        CS = np.zeros((n_max + 1, n_max + 1))
        for dg, od, C, S in zip(degree, order, data[:, 2], data[:, 3]):
            if dg > n_max or od > m_max:
                continue
            CS[dg, od] = C * _invnorm(dg, od)
            if od != 0:
                CS[od - 1, dg] = S * _invnorm(dg, od)
        CS[0, 0] = 0.0

        ret = cls.__new__(cls)
        ret.name = original_filename
        ret.radius = r_ref_km
        ret.MG = GM_km3_s2
        ret.CS = CS
        ret.n_max = n_max
        ret.m_max = m_max
        return ret

    def C(self, n, m):
        """Denormalized cosine coefficient."""
        return self.CS[n, m]

    def S(self, n, m):
        """Denormalized sine coefficient."""
        return 0.0 if m == 0 else self.CS[m - 1, n]

    def __hash__(self):
        return hash((
            "HarmonicCoefficients",
            self.name, self.radius, self.MG, self.n_max, self.m_max,
            tuple(self.CS.ravel())
        ))

    def __eq__(self, rhs):
        if not isinstance(rhs, HarmonicCoefficients):
            return False
        return (
            self.name == rhs.name and self.radius == rhs.radius and self.MG == rhs.MG and self.n_max == rhs.n_max and self.m_max == rhs.m_max and np.array_equal(self.CS, rhs.CS)
        )

    def __repr__(self):
        return "HarmonicCoefficients({!r}, n_max={}, m_max={})".format(
            self.name, self.n_max, self.m_max
        )


def _harmonicAccel(harmonics, n_max, m_max, r):
    """Acceleration from the non-central geopotential terms.

    Uses the V/W recursion of Montenbruck and Gill section 3.2.5.

    Parameters
    ----------
    harmonics : HarmonicCoefficients
    n_max, m_max : int
        Degree and order to evaluate, already clamped to the coefficients.
    r : array_like, shape(3,)
        Body fixed position in km.

    Returns
    -------
    accel : ndarray, shape(3,)
        Body fixed acceleration in km/s^2.
    """
    CS = harmonics.CS
    R = harmonics.radius
    x, y, z = r
    r2 = x * x + y * y + z * z
    rho = R * R / r2
    x0 = R * x / r2
    y0 = R * y / r2
    z0 = R * z / r2

    N = n_max + 1
    V = np.zeros((N + 1, N + 1))
    W = np.zeros((N + 1, N + 1))
    V[0, 0] = R / np.sqrt(r2)
    for m in range(N + 1):
        if m > 0:
            # sectorial terms (3.30)
            V[m, m] = (2 * m - 1) * (x0 * V[m - 1, m - 1] - y0 * W[m - 1, m - 1])
            W[m, m] = (2 * m - 1) * (x0 * W[m - 1, m - 1] + y0 * V[m - 1, m - 1])
        if m + 1 <= N:
            V[m + 1, m] = (2 * m + 1) * z0 * V[m, m]
            W[m + 1, m] = (2 * m + 1) * z0 * W[m, m]
        # zonal and tesseral terms (3.29)
        for n in range(m + 2, N + 1):
            V[n, m] = ((2 * n - 1) * z0 * V[n - 1, m] - (n + m - 1) * rho * V[n - 2, m]) / (n - m)
            W[n, m] = ((2 * n - 1) * z0 * W[n - 1, m] - (n + m - 1) * rho * W[n - 2, m]) / (n - m)

    # (3.33)
    ax = ay = az = 0.0
    for m in range(m_max + 1):
        for n in range(max(m, 2), n_max + 1):
            if m == 0:
                C = CS[n, 0]
                ax -= C * V[n + 1, 1]
                ay -= C * W[n + 1, 1]
                az -= (n + 1) * C * V[n + 1, 0]
            else:
                C = CS[n, m]
                S = CS[m - 1, n]
                Fac = 0.5 * (n - m + 1) * (n - m + 2)
                ax += 0.5 * (-C * V[n + 1, m + 1] - S * W[n + 1, m + 1]) + Fac * (C * V[n + 1, m - 1] + S * W[n + 1, m - 1])
                ay += 0.5 * (-C * W[n + 1, m + 1] + S * V[n + 1, m + 1]) + Fac * (-C * W[n + 1, m - 1] + S * V[n + 1, m - 1])
                az += (n - m + 1) * (-C * V[n + 1, m] - S * W[n + 1, m])
    return harmonics.MG / (R * R) * np.array([ax, ay, az])


class EarthGravity(_Force):
    """Earth gravity: point mass plus aspherical geopotential terms.

    The aspherical part is evaluated in the Earth-fixed frame given by the
    environment orientation provider.  Requested degree and order above what
    the loaded coefficients support are silently clamped; a degree below 2,
    or an environment without harmonics, gives a spherical Earth.

    Parameters
    ----------
    degree : int
        Maximum degree of the expansion.
    order : int
        Maximum order of the expansion.
    mu : float, optional
        Gravitational constant of the central term in km^3/s^2.
    environment : Environment, optional
        Data providers.  Default: Environment.default().
    """
    def __init__(self, degree=4, order=4, mu=EARTH_MU, environment=None):
        super().__init__(environment)
        self.degree = max(0, int(degree))
        self.order = max(0, min(int(order), self.degree))
        self.mu = mu
        harmonics = self.environment.harmonics
        if harmonics is not None and (
            self.degree > harmonics.n_max or self.order > harmonics.m_max
        ):
            log.debug(
                "clamping geopotential %dx%d to %dx%d supported by %s",
                self.degree, self.order,
                min(self.degree, harmonics.n_max),
                min(self.order, harmonics.m_max),
                harmonics.name
            )

    def _limits(self, harmonics):
        n_max = min(self.degree, harmonics.n_max)
        m_max = min(self.order, harmonics.m_max, n_max)
        return n_max, m_max

    def acceleration(self, state):
        """Evaluate acceleration at a state.

        Parameters
        ----------
        state : StateVector
            Inertial state; position in km.

        Returns
        -------
        accel : array_like, shape(3,)
            Acceleration in km/s^2
        """
        r = state.r
        accel = -self.mu * r / norm(r)**3
        harmonics = self.environment.harmonics
        if harmonics is None or self.degree < 2:
            return accel
        n_max, m_max = self._limits(harmonics)
        if n_max < 2:
            return accel
        E = self.environment.orientation(state.t)
        a_itrf = _harmonicAccel(harmonics, n_max, m_max, E @ r)
        return accel + E.T @ a_itrf

    def __repr__(self):
        return "EarthGravity({!r}, {!r})".format(self.degree, self.order)

    def __hash__(self):
        return hash(("EarthGravity", self.degree, self.order, self.mu))

    def __eq__(self, rhs):
        if not isinstance(rhs, EarthGravity):
            return False
        return (
            self.degree == rhs.degree and self.order == rhs.order and self.mu == rhs.mu
        )


class ThirdBodyGravity(_Force):
    """Perturbing acceleration due to the Moon and/or the Sun.

    Parameters
    ----------
    moon : bool
        Include lunar gravity.
    sun : bool
        Include solar gravity.
    environment : Environment, optional
        Data providers.  Default: Environment.default().
    """
    def __init__(self, moon=False, sun=False, environment=None):
        super().__init__(environment)
        self.moon = moon
        self.sun = sun
        self._moon_mu = MOON_MU
        self._sun_mu = SUN_MU

    @staticmethod
    def _thirdBody(mu, s, r):
        d = s - r
        return mu * (d / norm(d)**3 - s / norm(s)**3)

    def acceleration(self, state):
        """Evaluate acceleration at a state.

        Parameters
        ----------
        state : StateVector
            Inertial state; position in km.

        Returns
        -------
        accel : array_like, shape(3,)
            Acceleration in km/s^2
        """
        accel = np.zeros(3)
        if self.moon:
            accel += self._thirdBody(self._moon_mu, self.environment.moon(state.t), state.r)
        if self.sun:
            accel += self._thirdBody(self._sun_mu, self.environment.sun(state.t), state.r)
        return accel

    def __repr__(self):
        return "ThirdBodyGravity(moon={!r}, sun={!r})".format(self.moon, self.sun)

    def __hash__(self):
        return hash(("ThirdBodyGravity", self.moon, self.sun))

    def __eq__(self, rhs):
        if not isinstance(rhs, ThirdBodyGravity):
            return False
        return self.moon == rhs.moon and self.sun == rhs.sun
