"""
Interpolated ephemerides built from propagated states.
"""

import numpy as np
from scipy.interpolate import make_interp_spline

from .orbit import StateVector
from .utils import toGps


class _Segment:
    """Continuous run of states between two discontinuities."""
    def __init__(self, states):
        self.start = states[0].t
        self.stop = states[-1].t
        self.mu = states[0].mu
        if len(states) == 1:
            self._rv = states[0].rv
            self._spline = None
        else:
            times = np.array([s.t for s in states])
            rvs = np.array([s.rv for s in states])
            self._spline = make_interp_spline(times, rvs, k=min(3, len(states) - 1))

    def __call__(self, t):
        rv = self._rv if self._spline is None else self._spline(t)
        return StateVector.fromRV(rv, t, mu=self.mu)


class Ephemeris:
    """Interpolator over a time ordered sequence of states.

    States are interpolated with cubic splines in each of the six position
    and velocity components (lower degree when a run has fewer than four
    states).  Two consecutive states with the same epoch mark a
    discontinuity, such as an impulsive maneuver; the spline is split there
    and the later state wins at the shared epoch.

    Parameters
    ----------
    states : sequence of StateVector
        States sorted by epoch.
    """
    def __init__(self, states):
        states = tuple(states)
        if len(states) == 0:
            raise ValueError("Ephemeris requires at least one state")
        times = np.array([s.t for s in states])
        if np.any(np.diff(times) < 0):
            raise ValueError("Ephemeris states must be sorted by epoch")
        self._states = states

        breaks = [0] + [i for i in range(1, len(states)) if times[i] == times[i - 1]] + [len(states)]
        self._segments = [
            _Segment(states[lo:hi]) for lo, hi in zip(breaks[:-1], breaks[1:])
        ]

    @property
    def states(self):
        return self._states

    def __len__(self):
        return len(self._states)

    def __repr__(self):
        start, stop = self.window()
        return "Ephemeris({} states, {!r} to {!r})".format(len(self), start, stop)

    def window(self):
        """(start, stop) GPS epochs covered by this ephemeris."""
        return self._states[0].t, self._states[-1].t

    def inWindow(self, t):
        start, stop = self.window()
        return start <= toGps(t) <= stop

    def overlap(self, other):
        """Common (start, stop) window with another ephemeris, or None."""
        start = max(self.window()[0], other.window()[0])
        stop = min(self.window()[1], other.window()[1])
        if start > stop:
            return None
        return start, stop

    def interpolate(self, t):
        """Interpolated state at `t`, or None outside the window.

        Parameters
        ----------
        t : float or astropy.time.Time
            If float, GPS seconds.

        Returns
        -------
        StateVector or None
        """
        t = toGps(t)
        if not self.inWindow(t):
            return None
        for segment in reversed(self._segments):
            if segment.start <= t:
                return segment(t)
