"""
Classes for propagating spacecraft states.

Every propagator caches the last state it produced.  `propagate` moves the
cache forward or backward to the requested epoch, `checkpoint`/`restore`
save and recall the cache, and `reset` returns to the initial state.
"""

import logging
import warnings
from abc import ABC, abstractmethod
from functools import partial

import numpy as np
from astropy.time import Time
from scipy.optimize import minimize_scalar

from .accel import ForceModel
from .constants import (
    EARTH_MU, DEFAULT_STEP_SIZE, DEFAULT_TOLERANCE, MIN_TOLERANCE,
    MIN_STEP_SIZE, DEFAULT_FIXED_STEP, DEFAULT_INTERVAL
)
from .ephemeris import Ephemeris
from .integrator import (
    DORMAND_PRINCE_54, PRINCE_DORMAND_87, RUNGE_KUTTA_4, adaptiveStep, fixedStep
)
from .orbit import (
    StateVector, _ellipticalMeanToEccentricAnomaly,
    _ellipticalEccentricToTrueAnomaly
)
from .utils import toGps, teme_to_gcrf

log = logging.getLogger(__name__)


class UnsupportedOperation(NotImplementedError):
    """Raised when a propagator cannot model the requested operation."""


class Propagator(ABC):
    """ Abstract base class for state propagators.

    Subclasses provide the cached state machine; the ephemeris generators and
    the node, apogee and perigee finders are shared.  The finders move the
    cached state as a side effect.
    """

    @abstractmethod
    def propagate(self, epoch):
        """Propagate the cached state to `epoch` and return it."""

    @abstractmethod
    def reset(self):
        """Return the cached state to the initial state."""

    @abstractmethod
    def checkpoint(self):
        """Save the cached state; return its index for `restore`."""

    @abstractmethod
    def restore(self, index):
        """Restore the cached state saved at checkpoint `index`."""

    @abstractmethod
    def clearCheckpoints(self):
        """Forget every saved checkpoint."""

    @property
    @abstractmethod
    def state(self):
        """Last propagated StateVector."""

    @abstractmethod
    def maneuver(self, thrust, interval=DEFAULT_INTERVAL):
        """Integrate across a maneuver and return the visited states."""

    def _maneuverEpoch(self, thrust):
        # Epoch at which a maneuver starts affecting this propagator.
        return thrust.start

    def ephemeris(self, start, stop, interval=DEFAULT_INTERVAL):
        """Sample states from `start` in steps of `interval` until past `stop`.

        Parameters
        ----------
        start, stop : float or astropy.time.Time
            If float, GPS seconds.
        interval : float, optional
            Sampling interval in seconds.

        Returns
        -------
        Ephemeris
        """
        start = toGps(start)
        stop = toGps(stop)
        if interval <= 0:
            raise ValueError(f"ephemeris interval must be positive, got {interval}")
        states = [self.propagate(start)]
        t = start
        while t <= stop:
            t += interval
            states.append(self.propagate(t))
        return Ephemeris(states)

    def _stepTo(self, target, interval, states, skipTarget=False):
        # Propagate forward toward target in hops of at most interval
        while self.state.t < target:
            t = min(self.state.t + interval, target)
            self.propagate(t)
            if not (skipTarget and t == target):
                states.append(self.state)

    def ephemerisManeuver(self, start, finish, maneuvers, interval=DEFAULT_INTERVAL):
        """Ephemeris from `start` to `finish` spliced with maneuvers.

        Maneuvers are sorted by start epoch and kept when their active window
        intersects [start, finish].  The propagator coasts in hops of at most
        `interval` between maneuvers.

        Parameters
        ----------
        start, finish : float or astropy.time.Time
            If float, GPS seconds.
        maneuvers : sequence of Thrust
        interval : float, optional
            Sampling interval in seconds.

        Returns
        -------
        Ephemeris
        """
        start = toGps(start)
        finish = toGps(finish)
        if interval <= 0:
            raise ValueError(f"ephemeris interval must be positive, got {interval}")
        selected = sorted(
            (mvr for mvr in maneuvers
             if mvr.stop >= start and self._maneuverEpoch(mvr) <= finish),
            key=self._maneuverEpoch
        )
        if not selected:
            warnings.warn(
                "No maneuvers intersect the ephemeris window; "
                "generating a coasting ephemeris"
            )
        for prev, mvr in zip(selected, selected[1:]):
            if self._maneuverEpoch(mvr) < prev.stop:
                raise ValueError(f"Overlapping maneuvers {prev!r} and {mvr!r}")

        states = []
        self.propagate(start)
        if not selected or self._maneuverEpoch(selected[0]) > start:
            states.append(self.state)
        for mvr in selected:
            self._stepTo(self._maneuverEpoch(mvr), interval, states, skipTarget=True)
            states.extend(self.maneuver(mvr, interval))
        self._stepTo(finish, interval, states)
        return Ephemeris(states)

    def _nodeEpoch(self, start, ascending):
        start = toGps(start)
        period = self.state.period
        step = period / 8
        current = start
        stop = current + period
        previous = self.propagate(current).r[2]
        while current <= stop:
            current += step
            state = self.propagate(current)
            z = state.r[2]
            rising = state.v[2] > 0 if ascending else state.v[2] < 0
            if np.sign(z) == -np.sign(previous) and rising:
                break
            previous = z
        return _refine(
            lambda x: abs(self.propagate(x).r[2]), current - step, current
        )

    def ascendingNodeEpoch(self, start):
        """GPS epoch of the first ascending node crossing after `start`."""
        return self._nodeEpoch(start, ascending=True)

    def descendingNodeEpoch(self, start):
        """GPS epoch of the first descending node crossing after `start`."""
        return self._nodeEpoch(start, ascending=False)

    def _extremumEpoch(self, start, solveMax, slices=8):
        start = toGps(start)
        step = self.state.period / slices
        current = start
        tCache = current
        rCache = self.propagate(current).radius
        sign = -1.0 if solveMax else 1.0
        for _ in range(slices):
            current += step
            t = _refine(
                lambda x: sign * self.propagate(x).radius, current - step, current
            )
            r = self.propagate(t).radius
            if (r > rCache) if solveMax else (r < rCache):
                tCache = t
                rCache = r
        return tCache

    def apogeeEpoch(self, start):
        """GPS epoch of greatest distance within one period after `start`."""
        return self._extremumEpoch(start, solveMax=True)

    def perigeeEpoch(self, start):
        """GPS epoch of least distance within one period after `start`."""
        return self._extremumEpoch(start, solveMax=False)


def _refine(f, lower, upper, tolerance=1e-3):
    # Bounded minimum of f on [lower, upper], to `tolerance` seconds.  The
    # search runs on the offset from `lower`: the bounded method's tolerance
    # also scales with |x|, which would be coarse at GPS epochs.
    result = minimize_scalar(
        lambda dt: f(lower + dt), bounds=(0.0, upper - lower), method='bounded',
        options={'xatol': tolerance}
    )
    return float(lower + result.x)


def _landOn(state, epoch):
    # Pin the epoch of a final step so repeated float rolls terminate exactly.
    return StateVector(state.r, state.v, epoch, mu=state.mu)


class _NumericalPropagator(Propagator):
    """Shared force model and maneuver handling of the integrating propagators.
    """
    def __init__(self, state, forceModel=None):
        if forceModel is None:
            forceModel = ForceModel()
            forceModel.setGravity()
        self._initState = state
        self._cacheState = state
        self._forceModel = forceModel
        self._checkpoints = []

    @property
    def state(self):
        return self._cacheState

    @property
    def forceModel(self):
        return self._forceModel

    def setForceModel(self, forceModel):
        """Set numerical integration force model."""
        self._forceModel = forceModel

    def clearCheckpoints(self):
        self._checkpoints.clear()

    def _checkpointAt(self, index):
        if not 0 <= index < len(self._checkpoints):
            raise IndexError(
                f"checkpoint index {index} out of range for {len(self._checkpoints)} checkpoints"
            )
        return self._checkpoints[index]

    def maneuver(self, thrust, interval=DEFAULT_INTERVAL):
        """Integrate across a maneuver.

        Impulsive maneuvers propagate to the maneuver center and apply the
        delta-v there.  Finite maneuvers propagate to the burn start, install
        the thrust in the force model and integrate to the burn stop in hops
        of at most `interval` seconds.  The thrust is removed afterwards even
        if integration fails.

        Parameters
        ----------
        thrust : Thrust
        interval : float, optional
            Maximum reporting interval during a finite burn, in seconds.

        Returns
        -------
        list of StateVector
            [before, after] for impulsive maneuvers; the states visited from
            burn start to burn stop otherwise.
        """
        if thrust.isImpulsive:
            before = self.propagate(thrust.center)
            self._cacheState = thrust.apply(before)
            return [before, self._cacheState]
        if interval <= 0:
            raise ValueError(f"maneuver interval must be positive, got {interval}")
        states = [self.propagate(thrust.start)]
        with self._forceModel.maneuverScope(thrust):
            self._stepTo(thrust.stop, interval, states)
        return states


class AdaptivePropagator(_NumericalPropagator):
    """Adaptive step embedded Runge-Kutta propagator.

    Parameters
    ----------
    state : StateVector
        Initial state.
    forceModel : ForceModel, optional
        Forces to integrate.  Default: point mass Earth gravity.
    tolerance : float, optional
        Local error tolerance.  Its magnitude is used, floored at 1e-15.
    tableau : ButcherTableau, optional
        Embedded pair to integrate with.
    """
    def __init__(
        self, state, forceModel=None, tolerance=DEFAULT_TOLERANCE,
        tableau=DORMAND_PRINCE_54
    ):
        super().__init__(state, forceModel)
        self.tolerance = max(MIN_TOLERANCE, abs(tolerance))
        self.tableau = tableau
        self._stepSize = DEFAULT_STEP_SIZE

    def __repr__(self):
        return "AdaptivePropagator({!r}, {!r}, tolerance={!r}, tableau={!r})".format(
            self._initState, self._forceModel, self.tolerance, self.tableau
        )

    @property
    def stepSize(self):
        """Step size in seconds proposed for the next step."""
        return self._stepSize

    def propagate(self, epoch):
        """Propagate the cached state to `epoch`.

        Steps are at most the current step size.  A step whose error estimate
        exceeds the tolerance is discarded and retried with the smaller
        proposed step; the cache only advances on accepted steps.

        Parameters
        ----------
        epoch : float or astropy.time.Time
            If float, GPS seconds.

        Returns
        -------
        StateVector
        """
        epoch = toGps(epoch)
        derivative = self._forceModel.derivative
        delta = epoch - self._cacheState.t
        while delta != 0:
            direction = 1 if delta >= 0 else -1
            final = abs(delta) <= self._stepSize
            dt = min(abs(delta), self._stepSize) * direction
            result = adaptiveStep(
                derivative, self._cacheState, dt, self.tableau, self.tolerance
            )
            self._stepSize = result.newStep
            if result.error > self.tolerance:
                if abs(dt) > MIN_STEP_SIZE:
                    log.debug(
                        "rejected step of %g s at t=%r: error %g > %g",
                        dt, self._cacheState.t, result.error, self.tolerance
                    )
                    continue
                log.warning(
                    "accepting step of %g s at the minimum step size at t=%r: "
                    "error %g > %g", dt, self._cacheState.t, result.error, self.tolerance
                )
            self._cacheState = _landOn(result.state, epoch) if final else result.state
            delta = epoch - self._cacheState.t
        return self._cacheState

    def reset(self):
        self._cacheState = self._initState
        self._stepSize = DEFAULT_STEP_SIZE

    def checkpoint(self):
        self._checkpoints.append((self._cacheState, self._stepSize))
        return len(self._checkpoints) - 1

    def restore(self, index):
        self._cacheState, self._stepSize = self._checkpointAt(index)


DormandPrince54Propagator = partial(AdaptivePropagator, tableau=DORMAND_PRINCE_54)
RungeKutta87Propagator = partial(AdaptivePropagator, tableau=PRINCE_DORMAND_87)


class RungeKutta4Propagator(_NumericalPropagator):
    """Runge-Kutta 4th order fixed step propagator.

    Parameters
    ----------
    state : StateVector
        Initial state.
    forceModel : ForceModel, optional
        Forces to integrate.  Default: point mass Earth gravity.
    stepSize : float
        Step size in seconds.  The last step toward a target epoch is clipped
        to land on it exactly.
    """
    def __init__(self, state, forceModel=None, stepSize=DEFAULT_FIXED_STEP):
        super().__init__(state, forceModel)
        self.setStepSize(stepSize)

    def __repr__(self):
        return "RungeKutta4Propagator({!r}, {!r}, {!r})".format(
            self._initState, self._forceModel, self._stepSize
        )

    @property
    def stepSize(self):
        return self._stepSize

    def setStepSize(self, seconds):
        """Set the integrator step size to the magnitude of `seconds`."""
        if seconds == 0:
            raise ValueError("step size must be nonzero")
        self._stepSize = abs(seconds)

    def propagate(self, epoch):
        epoch = toGps(epoch)
        derivative = self._forceModel.derivative
        delta = epoch - self._cacheState.t
        while delta != 0:
            direction = 1 if delta >= 0 else -1
            if abs(delta) <= self._stepSize:
                state = fixedStep(derivative, self._cacheState, delta, RUNGE_KUTTA_4)
                self._cacheState = _landOn(state, epoch)
            else:
                self._cacheState = fixedStep(
                    derivative, self._cacheState, self._stepSize * direction, RUNGE_KUTTA_4
                )
            delta = epoch - self._cacheState.t
        return self._cacheState

    def reset(self):
        self._cacheState = self._initState

    def checkpoint(self):
        self._checkpoints.append(self._cacheState)
        return len(self._checkpoints) - 1

    def restore(self, index):
        self._cacheState = self._checkpointAt(index)


class KeplerPropagator(Propagator):
    """Analytic two-body propagator.

    The cached state is recomputed from a reference osculating state by
    advancing the mean anomaly.  Maneuvers of any duration are applied as an
    impulse at their center epoch, after which the reference state is
    replaced by the post-maneuver state.

    Parameters
    ----------
    state : StateVector
        Initial state.  Must be elliptical.
    """
    def __init__(self, state):
        if not state.e < 1:
            raise ValueError(
                f"KeplerPropagator requires an elliptical orbit, got e={state.e}"
            )
        self._initState = state
        self._elements = state
        self._cacheState = state
        self._checkpoints = []

    def __repr__(self):
        return "KeplerPropagator({!r})".format(self._initState)

    @property
    def state(self):
        return self._cacheState

    def _maneuverEpoch(self, thrust):
        return thrust.center

    def propagate(self, epoch):
        epoch = toGps(epoch)
        ref = self._elements
        a, e, i, pa, raan, _ = ref.keplerianElements
        M = ref.meanAnomaly + ref.meanMotion * (epoch - ref.t)
        E = _ellipticalMeanToEccentricAnomaly(M, e)
        trueAnomaly = _ellipticalEccentricToTrueAnomaly(E, e)
        self._cacheState = StateVector.fromKeplerianElements(
            a, e, i, pa, raan, trueAnomaly, epoch, mu=ref.mu
        )
        return self._cacheState

    def reset(self):
        self._elements = self._initState
        self._cacheState = self._initState

    def maneuver(self, thrust, interval=DEFAULT_INTERVAL):
        before = self.propagate(thrust.center)
        after = thrust.apply(before)
        if not after.e < 1:
            raise ValueError(
                f"maneuver {thrust!r} leaves an unbound orbit, e={after.e}"
            )
        self._cacheState = after
        self._elements = after
        return [before, after]

    def checkpoint(self):
        self._checkpoints.append((self._cacheState, self._elements))
        return len(self._checkpoints) - 1

    def restore(self, index):
        if not 0 <= index < len(self._checkpoints):
            raise IndexError(
                f"checkpoint index {index} out of range for {len(self._checkpoints)} checkpoints"
            )
        self._cacheState, self._elements = self._checkpoints[index]

    def clearCheckpoints(self):
        self._checkpoints.clear()


class SGP4Propagator(Propagator):
    """Propagate a two-line element set with the SGP4 model.

    SGP4 calculations occur in the TEME frame; states are returned in GCRF.
    SGP4 cannot model maneuvers.

    Parameters
    ----------
    line1, line2 : str
        The two lines of the element set.
    orientation : EarthOrientation, optional
        Source of UT1 - TT used in the TEME to GCRF rotation.  Default:
        EarthOrientation() with its nominal offset.
    """
    def __init__(self, line1, line2, orientation=None):
        from sgp4.api import Satrec
        from .body import EarthOrientation

        self.line1 = line1
        self.line2 = line2
        self._sat = Satrec.twoline2rv(line1, line2)
        self._orientation = EarthOrientation() if orientation is None else orientation
        self.epoch = Time(
            self._sat.jdsatepoch, self._sat.jdsatepochF, format='jd', scale='utc'
        ).gps
        self._initState = self._gcrfState(self.epoch)
        self._cacheState = self._initState
        self._checkpoints = []

    def __repr__(self):
        return "SGP4Propagator({!r}, {!r})".format(self.line1, self.line2)

    @property
    def state(self):
        return self._cacheState

    def propagateTEME(self, epoch):
        """Raw SGP4 output at `epoch`.

        Parameters
        ----------
        epoch : float or astropy.time.Time
            If float, GPS seconds.

        Returns
        -------
        r : ndarray, shape(3,)
            TEME position in km.
        v : ndarray, shape(3,)
            TEME velocity in km/s.
        """
        from sgp4.api import SGP4_ERRORS

        epoch = toGps(epoch)
        utc = Time(epoch, format='gps').utc
        err, r, v = self._sat.sgp4(utc.jd1, utc.jd2)
        if err != 0:
            raise RuntimeError(
                f"SGP4 error {err} at t={epoch}: {SGP4_ERRORS.get(err, 'unknown error')}"
            )
        return np.array(r), np.array(v)

    def _gcrfState(self, epoch):
        r, v = self.propagateTEME(epoch)
        rot = teme_to_gcrf(epoch, dut1=self._orientation.dut1(epoch))
        return StateVector(rot @ r, rot @ v, epoch, mu=EARTH_MU)

    def propagate(self, epoch):
        self._cacheState = self._gcrfState(toGps(epoch))
        return self._cacheState

    def reset(self):
        self._cacheState = self._initState

    def checkpoint(self):
        self._checkpoints.append(self._cacheState)
        return len(self._checkpoints) - 1

    def restore(self, index):
        if not 0 <= index < len(self._checkpoints):
            raise IndexError(
                f"checkpoint index {index} out of range for {len(self._checkpoints)} checkpoints"
            )
        self._cacheState = self._checkpoints[index]

    def clearCheckpoints(self):
        self._checkpoints.clear()

    def maneuver(self, thrust, interval=DEFAULT_INTERVAL):
        raise UnsupportedOperation("Maneuvers cannot be modelled with SGP4.")

    def ephemerisManeuver(self, start, finish, maneuvers, interval=DEFAULT_INTERVAL):
        raise UnsupportedOperation("Maneuvers cannot be modelled with SGP4.")


def default_numerical(state, cls=None, forceModel=None, environment=None, **kwargs):
    """Construct a numerical propagator with sensible default forces.

    Parameters
    ----------
    state : StateVector
        Initial state.
    cls : callable, optional
        Propagator class or preset.  Default of None means
        DormandPrince54Propagator.
    forceModel : ForceModel, optional
        Forces to use.  Default of None means Earth(4, 4), sun, moon.
    environment : Environment, optional
        Data providers for the default force model.
    **kwargs
        Passed on to `cls`.

    Returns
    -------
    Instance of Propagator with desired force model.
    """
    if forceModel is None:
        forceModel = ForceModel(environment)
        forceModel.setEarthGravity(4, 4)
        forceModel.setThirdBodyGravity(moon=True, sun=True)
    if cls is None:
        cls = DormandPrince54Propagator
    return cls(state, forceModel, **kwargs)
