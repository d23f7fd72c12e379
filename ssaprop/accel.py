"""
Classes for modeling accelerations.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager

import numpy as np
import erfa
from astropy.time import Time

from .constants import EARTH_MU, EARTH_OMEGA, AU, SOLAR_PRESSURE
from .utils import norm, normed, ric_to_r

log = logging.getLogger(__name__)


class Force(ABC):
    """Base class for forces acting on a spacecraft.

    A force is a pure function of the spacecraft state and of environment
    lookups.

    Parameters
    ----------
    environment : Environment, optional
        Data providers.  Resolved to Environment.default() on first use.
    """
    def __init__(self, environment=None):
        self._environment = environment

    @property
    def environment(self):
        if self._environment is None:
            from .environment import Environment
            self._environment = Environment.default()
        return self._environment

    @abstractmethod
    def acceleration(self, state):
        """Acceleration in km/s^2 acting on a StateVector."""

    def __call__(self, state):
        return self.acceleration(state)


class Gravity(Force):
    """Keplerian acceleration.  I.e., force is proportional to 1/|r|^2.

    Parameters
    ----------
    mu : float, optional
        Gravitational constant of central body in km^3/s^2.  (Default: Earth's
        gravitational constant in WGS84).
    """
    def __init__(self, mu=EARTH_MU):
        super().__init__()
        self.mu = mu

    def acceleration(self, state):
        r = state.r
        return -self.mu * r / norm(r)**3

    def __repr__(self):
        return "Gravity({!r})".format(self.mu)

    def __hash__(self):
        return hash(("Gravity", self.mu))

    def __eq__(self, rhs):
        if not isinstance(rhs, Gravity):
            return False
        return (self.mu == rhs.mu)


class SolarRadiationPressure(Force):
    """Acceleration due to solar radiation pressure.

    This is a cannonball model in which the direction of the acceleration
    is directly away from the sun and the magnitude is modulated by a single
    solar radiation pressure coefficient `coeff`.  The coefficient is 1.0 for
    purely absorbed light, and 2.0 for purely reflected light.  Rough typical
    values for a variety of different satellite components are

        ~ 1.2  for solar panels
        ~ 1.3  for a high gain antenna
        ~ 1.9  for a aluminum coated mylar solar sail.

    The Earth's shadow is modeled as a cone, so the acceleration fades through
    the penumbra and vanishes in the umbra.

    More details can be found in Section 3.4 of Montenbruck and Gill.

    Parameters
    ----------
    mass : float
        Spacecraft mass in kg.
    area : float
        Cross-sectional area in m^2.
    coeff : float, optional
        Reflectivity coefficient.
    environment : Environment, optional
    """
    def __init__(self, mass, area, coeff=1.2, environment=None):
        super().__init__(environment)
        self.mass = mass
        self.area = area
        self.coeff = coeff

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
        from .body import lightingRatio

        r_sun = self.environment.sun(state.t)
        rr = state.r - r_sun
        ratio = lightingRatio(state.r, r_sun)
        if ratio == 0.0:
            return np.zeros(3)
        # MG (3.75), converted from m/s^2
        return ratio * SOLAR_PRESSURE * self.coeff * self.area / self.mass * rr / norm(rr)**3 * AU**2 * 1e-3

    def __repr__(self):
        return "SolarRadiationPressure({!r}, {!r}, {!r})".format(
            self.mass, self.area, self.coeff
        )

    def __hash__(self):
        return hash(("SolarRadiationPressure", self.mass, self.area, self.coeff))

    def __eq__(self, rhs):
        if not isinstance(rhs, SolarRadiationPressure):
            return False
        return (
            self.mass == rhs.mass and self.area == rhs.area and self.coeff == rhs.coeff
        )


class AtmosphericDrag(Force):
    """Acceleration due to atmospheric drag.

    This class uses the Harris-Priester density model, which includes diurnal
    variation in the atmospheric bulge, but omits longer period seasonal
    variations.  The bulge apex trails the sub-solar point by 30 degrees of
    right ascension, and the atmosphere co-rotates with the Earth.

    The acceleration also depends on a drag coefficient, which is hard to
    determine a priori, but takes on typical values around ~2 to ~2.3 for most
    satellites.

    See Section 3.5 of Montenbruck and Gill for more details.

    Parameters
    ----------
    mass : float
        Spacecraft mass in kg.
    area : float
        Cross-sectional area in m^2.
    coeff : float, optional
        Drag coefficient.
    cosine : int, optional
        Harris-Priester cosine exponent, from 2 for low inclination orbits to
        6 for polar orbits.
    environment : Environment, optional
    """
    _lag = np.deg2rad(30.0)

    def __init__(self, mass, area, coeff=2.2, cosine=4, environment=None):
        super().__init__(environment)
        self.mass = mass
        self.area = area
        self.coeff = coeff
        self.cosine = cosine

    def density(self, state, _E=None):
        """Atmospheric density in kg/m^3 at a state, 0.0 without data."""
        atmosphere = self.environment.atmosphere
        if atmosphere is None:
            return 0.0
        if _E is None:
            _E = self.environment.orientation(state.t)
        r_itrf = _E @ state.r
        _, _, height = erfa.gc2gd(1, r_itrf * 1e3)
        height *= 1e-3
        if atmosphere.bracket(height) is None:
            return 0.0

        sun_itrf = normed(_E @ self.environment.sun(state.t))
        cl, sl = np.cos(self._lag), np.sin(self._lag)
        bulge = np.array([
            cl * sun_itrf[0] - sl * sun_itrf[1],
            sl * sun_itrf[0] + cl * sun_itrf[1],
            sun_itrf[2]
        ])
        cosPsi = bulge @ normed(r_itrf)
        c2Psi2 = 0.5 * (1.0 + cosPsi)
        cPsi2 = np.sqrt(max(c2Psi2, 0.0))
        cosPow = c2Psi2 * cPsi2**(self.cosine - 2) if cPsi2 > 1e-12 else 0.0
        return atmosphere.density(height, cosPow)

    def acceleration(self, state):
        """Evaluate acceleration at a state.

        Parameters
        ----------
        state : StateVector
            Inertial state; position in km, velocity in km/s.

        Returns
        -------
        accel : array_like, shape(3,)
            Acceleration in km/s^2
        """
        E = self.environment.orientation(state.t)
        density = self.density(state, _E=E)
        if not np.isfinite(density):
            raise ValueError("non finite density")
        if density == 0.0:
            return np.zeros(3)
        omega = E.T @ np.array([0.0, 0.0, EARTH_OMEGA])
        v_rel = (state.v - np.cross(omega, state.r)) * 1e3  # MG (3.98), m/s
        a = -0.5 * self.coeff * self.area / self.mass * density * v_rel * norm(v_rel)
        return a * 1e-3

    def __repr__(self):
        return "AtmosphericDrag({!r}, {!r}, {!r}, {!r})".format(
            self.mass, self.area, self.coeff, self.cosine
        )

    def __hash__(self):
        return hash((
            "AtmosphericDrag", self.mass, self.area, self.coeff, self.cosine
        ))

    def __eq__(self, rhs):
        if not isinstance(rhs, AtmosphericDrag):
            return False
        return (
            self.mass == rhs.mass and self.area == rhs.area and self.coeff == rhs.coeff and self.cosine == rhs.cosine
        )


class Thrust(Force):
    """Maneuver expressed as a delta-v in radial/in-track/cross-track axes.

    Intended to enable maneuvers.  Semimajor axis changes are often done by
    thrusting in the in-track direction at perigee, while inclination
    change maneuvers are done by thrusting in the cross-track direction.

    A thrust with zero duration is impulsive and is applied with `apply`.
    Otherwise the delta-v is spread uniformly over a window centered on
    `center`, and `acceleration` is nonzero only inside that window.

    Parameters
    ----------
    center : float or astropy.time.Time
        Maneuver center epoch.  If float, GPS seconds.
    radial, intrack, crosstrack : float
        Delta-v components in m/s.
    durationRate : float, optional
        Burn duration per unit delta-v, in s per m/s.
    """
    def __init__(self, center, radial, intrack, crosstrack, durationRate=0.0):
        super().__init__()
        if isinstance(center, Time):
            center = center.gps
        self.center = float(center)
        self.durationRate = durationRate
        self._ricMps = np.array([radial, intrack, crosstrack], dtype=float)
        self.deltaV = self._ricMps * 1e-3
        self.deltaV.flags.writeable = False
        self.magnitude = norm(self._ricMps)
        self.duration = self.magnitude * durationRate

    @property
    def start(self):
        return self.center - 0.5 * self.duration

    @property
    def stop(self):
        return self.center + 0.5 * self.duration

    @property
    def isImpulsive(self):
        return self.duration <= 0

    def acceleration(self, state):
        """Inertial acceleration in km/s^2; zero outside [start, stop]."""
        if self.isImpulsive or state.t < self.start or state.t > self.stop:
            return np.zeros(3)
        return ric_to_r(state.r, state.v, self.deltaV / self.duration, relative=True)

    def apply(self, state):
        """Apply the full delta-v instantaneously.

        Parameters
        ----------
        state : StateVector

        Returns
        -------
        StateVector
            New state with the same position and epoch.
        """
        dv = ric_to_r(state.r, state.v, self.deltaV, relative=True)
        return state.withVelocity(state.v + dv)

    def __repr__(self):
        return "Thrust({!r}, {!r}, {!r}, {!r}, durationRate={!r})".format(
            self.center, *self._ricMps, self.durationRate
        )

    def __hash__(self):
        return hash((
            "Thrust", self.center, tuple(self._ricMps), self.durationRate
        ))

    def __eq__(self, rhs):
        if not isinstance(rhs, Thrust):
            return False
        return (
            self.center == rhs.center and np.array_equal(self._ricMps, rhs._ricMps) and self.durationRate == rhs.durationRate
        )


class ForceModel:
    """Collection of forces acting on a spacecraft.

    Holds at most one force per category: central gravity, third body
    gravity, solar radiation pressure, atmospheric drag and maneuver thrust.
    Setting a category replaces any force already held there.

    Parameters
    ----------
    environment : Environment, optional
        Data providers passed to every environment dependent force.
        Default: Environment.default().
    """
    _categories = (
        'centralGravity', 'thirdBodyGravity', 'solarRadiationPressure',
        'atmosphericDrag', 'maneuverThrust'
    )

    def __init__(self, environment=None):
        self._environment = environment
        self.centralGravity = None
        self.thirdBodyGravity = None
        self.solarRadiationPressure = None
        self.atmosphericDrag = None
        self.maneuverThrust = None

    @property
    def environment(self):
        if self._environment is None:
            from .environment import Environment
            self._environment = Environment.default()
        return self._environment

    def setGravity(self, mu=EARTH_MU):
        """Use point mass central gravity with gravitational constant `mu`."""
        self.centralGravity = Gravity(mu)

    def setEarthGravity(self, degree, order):
        """Use the Earth geopotential truncated at `degree` and `order`."""
        from .gravity import EarthGravity
        self.centralGravity = EarthGravity(
            degree, order, environment=self.environment
        )

    def setThirdBodyGravity(self, moon=False, sun=False):
        from .gravity import ThirdBodyGravity
        self.thirdBodyGravity = ThirdBodyGravity(
            moon=moon, sun=sun, environment=self.environment
        )

    def setSolarRadiationPressure(self, mass, area, coeff=1.2):
        self.solarRadiationPressure = SolarRadiationPressure(
            mass, area, coeff, environment=self.environment
        )

    def setAtmosphericDrag(self, mass, area, coeff=2.2, cosine=4):
        self.atmosphericDrag = AtmosphericDrag(
            mass, area, coeff, cosine, environment=self.environment
        )

    def clearGravity(self):
        self.centralGravity = None

    def clearThirdBodyGravity(self):
        self.thirdBodyGravity = None

    def clearSolarRadiationPressure(self):
        self.solarRadiationPressure = None

    def clearAtmosphericDrag(self):
        self.atmosphericDrag = None

    def loadManeuver(self, thrust):
        """Install `thrust` as the maneuver force, replacing any other."""
        log.debug("loading maneuver %r", thrust)
        self.maneuverThrust = thrust

    def clearManeuver(self):
        if self.maneuverThrust is not None:
            log.debug("clearing maneuver %r", self.maneuverThrust)
        self.maneuverThrust = None

    @contextmanager
    def maneuverScope(self, thrust):
        """Context manager installing `thrust` for the duration of a block.

        The previously installed maneuver, normally None, is restored on exit
        whether the block completes or raises.
        """
        previous = self.maneuverThrust
        self.loadManeuver(thrust)
        try:
            yield self
        finally:
            self.maneuverThrust = previous
            log.debug("removed maneuver %r", thrust)

    @property
    def forces(self):
        """Active forces in category order."""
        return tuple(
            force for force in (getattr(self, name) for name in self._categories)
            if force is not None
        )

    def acceleration(self, state):
        """Total inertial acceleration in km/s^2 on a StateVector."""
        accel = np.zeros(3)
        for force in self.forces:
            accel += force.acceleration(state)
        return accel

    def derivative(self, state):
        """Time derivative of the 6-vector state, [v, a]."""
        return np.hstack([state.v, self.acceleration(state)])

    def __repr__(self):
        return "ForceModel({})".format(
            ", ".join(repr(force) for force in self.forces)
        )
