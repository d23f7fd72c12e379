import logging
import warnings

import numpy as np
import pytest
from astropy.time import Time

import ssaprop
from ssaprop import (
    StateVector, ForceModel, Force, Thrust, HarrisPriester, AdaptivePropagator,
    DormandPrince54Propagator, RungeKutta87Propagator, RungeKutta4Propagator,
    KeplerPropagator, default_numerical, DORMAND_PRINCE_54, PRINCE_DORMAND_87
)
from ssaprop.constants import (
    EARTH_MU, EARTH_RADIUS, DEFAULT_STEP_SIZE, MIN_TOLERANCE, MIN_STEP_SIZE
)
from .ssaprop_test_helpers import (
    timer, sample_elements, static_environment, REFERENCE_STATE
)


def energy_change(state, dv):
    # Change in specific energy for a velocity increment dv (km/s)
    v1 = state.v + dv
    return 0.5*(v1 @ v1 - state.v @ state.v)


@timer
def test_against_kepler():
    state = REFERENCE_STATE
    t1 = state.t + 1.5*state.period
    expected = KeplerPropagator(state).propagate(t1)
    for prop, atol in [
        (DormandPrince54Propagator(state), 1e-3),
        (RungeKutta87Propagator(state), 1e-3),
        (RungeKutta4Propagator(state, stepSize=10.0), 1e-2),
    ]:
        out = prop.propagate(t1)
        assert out.t == t1
        assert prop.state is out
        np.testing.assert_allclose(out.r, expected.r, rtol=0, atol=atol)
        np.testing.assert_allclose(out.v, expected.v, rtol=0, atol=atol*1e-3)


@timer
def test_kepler_propagator():
    np.random.seed(5)
    for _ in range(20):
        state = sample_elements(0.0)
        prop = KeplerPropagator(state)
        # Elements other than the anomaly are conserved
        out = prop.propagate(0.37*state.period)
        for name in ['a', 'e', 'i', 'raan']:
            np.testing.assert_allclose(getattr(out, name), getattr(state, name), rtol=1e-9, atol=1e-12)
        np.testing.assert_allclose(out.energy, state.energy, rtol=1e-8)
        # Full periods return to the start
        out = prop.propagate(3*state.period)
        np.testing.assert_allclose(out.r, state.r, rtol=0, atol=1e-5)
        np.testing.assert_allclose(out.v, state.v, rtol=0, atol=1e-8)
        # Backward
        out = prop.propagate(-2*state.period)
        np.testing.assert_allclose(out.r, state.r, rtol=0, atol=1e-5)

    r = 7000.0
    unbound = StateVector([r, 0, 0], [0, 1.1*np.sqrt(2*EARTH_MU/r), 0], 0.0)
    with pytest.raises(ValueError):
        KeplerPropagator(unbound)
    prop = KeplerPropagator(StateVector([r, 0, 0], [0, np.sqrt(EARTH_MU/r), 0], 0.0))
    with pytest.raises(ValueError):
        prop.maneuver(Thrust(100.0, 0.0, 5000.0, 0.0))


@timer
def test_round_trip():
    state = REFERENCE_STATE
    for T in [60.0, 3600.0, state.period]:
        for prop in [
            DormandPrince54Propagator(state),
            RungeKutta87Propagator(state),
            RungeKutta4Propagator(state),
        ]:
            prop.propagate(state.t + T)
            back = prop.propagate(state.t)
            assert back.t == state.t
            np.testing.assert_allclose(back.r, state.r, rtol=0, atol=1e-3)
            np.testing.assert_allclose(back.v, state.v, rtol=0, atol=1e-6)
            # Propagating to the current epoch is a no-op
            assert prop.propagate(state.t) is back

    # Eccentric orbit over a full period, through perigee
    a = 7000.0 / 0.3
    state = StateVector.fromKeplerianElements(a, 0.7, 0.5, 1.0, 2.0, 0.0, REFERENCE_STATE.t)
    for prop in [DormandPrince54Propagator(state), RungeKutta87Propagator(state)]:
        prop.propagate(state.t + state.period)
        back = prop.propagate(state.t)
        np.testing.assert_allclose(back.r, state.r, rtol=0, atol=1e-4)
        np.testing.assert_allclose(back.v, state.v, rtol=0, atol=1e-6)


def test_rejected_step_keeps_state():
    seen = []

    class Watcher(Force):
        def acceleration(self, state):
            seen.append(prop.state)
            return np.zeros(3)

    fm = ForceModel(static_environment())
    fm.setGravity()
    fm.atmosphericDrag = Watcher()
    prop = DormandPrince54Propagator(REFERENCE_STATE, fm, tolerance=1e-11)
    target = REFERENCE_STATE.t + 120.0
    assert prop.propagate(target).t == target

    stages = DORMAND_PRINCE_54.stages
    # The initial 60 s trial and its 12 s retry both start from the untouched cache
    assert all(s is REFERENCE_STATE for s in seen[:2*stages])
    assert prop.stepSize < DEFAULT_STEP_SIZE
    # The cache only moves forward, once per accepted step
    epochs = [s.t for s in seen]
    assert epochs == sorted(epochs)
    assert len(seen) > stages*len(set(epochs))


def test_minimum_step_warning(caplog):
    class Wobble(Force):
        def acceleration(self, state):
            return np.full(3, 1e3*np.sin(1e8*state.t))

    fm = ForceModel(static_environment())
    fm.setGravity()
    fm.atmosphericDrag = Wobble()
    state = StateVector([7000.0, 0.0, 0.0], [0.0, 7.5, 0.0], 0.0)
    prop = DormandPrince54Propagator(state, fm)
    with caplog.at_level(logging.WARNING, logger="ssaprop.propagator"):
        out = prop.propagate(3e-5)
    assert out.t == 3e-5
    assert prop.stepSize == MIN_STEP_SIZE
    assert any("minimum step size" in rec.getMessage() for rec in caplog.records)


def test_exact_epochs():
    state = REFERENCE_STATE
    prop = DormandPrince54Propagator(state)
    rk4 = RungeKutta4Propagator(state, stepSize=7.0)
    for dt in [0.1, 1234.567, 59.9999, 60.0, 600.0001, -17.3]:
        t = state.t + dt
        assert prop.propagate(t).t == t
        assert rk4.propagate(t).t == t
    t = Time("2017-01-07T06:00:00", scale='utc')
    assert prop.propagate(t).t == t.gps


def test_tolerance_floor():
    prop = AdaptivePropagator(REFERENCE_STATE, tolerance=-1e-20)
    assert prop.tolerance == MIN_TOLERANCE
    prop = AdaptivePropagator(REFERENCE_STATE, tolerance=-1e-6)
    assert prop.tolerance == 1e-6
    assert prop.tableau is DORMAND_PRINCE_54
    assert RungeKutta87Propagator(REFERENCE_STATE).tableau is PRINCE_DORMAND_87
    assert prop.stepSize == DEFAULT_STEP_SIZE


@timer
def test_step_size_adapts():
    state = REFERENCE_STATE
    loose = DormandPrince54Propagator(state, tolerance=1e-3)
    tight = DormandPrince54Propagator(state, tolerance=1e-13)
    loose.propagate(state.t + 2000.0)
    tight.propagate(state.t + 2000.0)
    assert tight.stepSize < loose.stepSize


def test_rk4_step_size():
    prop = RungeKutta4Propagator(REFERENCE_STATE)
    assert prop.stepSize == 15.0
    prop.setStepSize(-30.0)
    assert prop.stepSize == 30.0
    with pytest.raises(ValueError):
        prop.setStepSize(0)
    with pytest.raises(ValueError):
        RungeKutta4Propagator(REFERENCE_STATE, stepSize=0.0)


@timer
def test_checkpoint_restore():
    state = REFERENCE_STATE
    for prop in [
        DormandPrince54Propagator(state),
        RungeKutta4Propagator(state),
        KeplerPropagator(state),
    ]:
        s1 = prop.propagate(state.t + 600.0)
        idx = prop.checkpoint()
        assert idx == 0
        s2 = prop.propagate(state.t + 1800.0)
        assert prop.checkpoint() == 1

        prop.restore(idx)
        assert prop.state == s1
        # Integration from a restored checkpoint is reproducible
        assert prop.propagate(state.t + 1800.0) == s2
        prop.restore(1)
        assert prop.state == s2

        with pytest.raises(IndexError):
            prop.restore(2)
        with pytest.raises(IndexError):
            prop.restore(-1)
        prop.clearCheckpoints()
        with pytest.raises(IndexError):
            prop.restore(0)

        prop.reset()
        assert prop.state == state
        prop.reset()
        assert prop.state == state


def test_checkpoint_step_size():
    prop = DormandPrince54Propagator(REFERENCE_STATE)
    prop.propagate(REFERENCE_STATE.t + 600.0)
    stepSize = prop.stepSize
    idx = prop.checkpoint()
    prop.propagate(REFERENCE_STATE.t + 6000.0)
    prop.restore(idx)
    assert prop.stepSize == stepSize
    prop.reset()
    assert prop.stepSize == DEFAULT_STEP_SIZE


def test_kepler_checkpoint_elements():
    # Restoring a checkpoint also restores the orbit being followed
    state = REFERENCE_STATE
    prop = KeplerPropagator(state)
    idx = prop.checkpoint()
    prop.maneuver(Thrust(state.t + 100.0, 0.0, 50.0, 0.0))
    maneuvered = prop.propagate(state.t + 1000.0)
    prop.restore(idx)
    coasted = prop.propagate(state.t + 1000.0)
    expected = KeplerPropagator(state).propagate(state.t + 1000.0)
    np.testing.assert_allclose(coasted.rv, expected.rv, rtol=0, atol=1e-9)
    assert np.linalg.norm(coasted.r - maneuvered.r) > 1.0


@timer
def test_impulsive_maneuver():
    state = REFERENCE_STATE
    for prop in [DormandPrince54Propagator(state), KeplerPropagator(state)]:
        thrust = Thrust(state.t + 500.0, 0.0, 10.0, 0.0)
        before, after = prop.maneuver(thrust)
        assert before.t == after.t == thrust.center
        np.testing.assert_equal(before.r, after.r)
        assert prop.state is after
        dv = after.v - before.v
        np.testing.assert_allclose(np.linalg.norm(dv), 0.01, rtol=1e-12)
        # in-track burn is along the velocity for a nearly circular orbit
        assert dv @ before.v > 0.99*0.01*np.linalg.norm(before.v)
        np.testing.assert_allclose(
            after.energy - before.energy, energy_change(before, dv), rtol=1e-8
        )
        assert after.a > before.a
        # The new orbit is followed afterwards
        later = prop.propagate(state.t + 3000.0)
        np.testing.assert_allclose(later.energy, after.energy, rtol=1e-7)


@timer
def test_finite_maneuver():
    state = REFERENCE_STATE
    prop = DormandPrince54Propagator(state)
    thrust = Thrust(state.t + 500.0, 0.0, 10.0, 0.0, durationRate=12.0)
    assert thrust.duration == 120.0
    states = prop.maneuver(thrust, interval=50.0)
    assert states[0].t == thrust.start
    assert states[-1].t == thrust.stop
    dts = np.diff([s.t for s in states])
    assert np.all(dts > 0)
    assert np.all(dts <= 50.0)
    assert len(states) == 4
    # Thrust is removed afterwards
    assert prop.forceModel.maneuverThrust is None

    # Comparable to an impulse at the center
    impulse = DormandPrince54Propagator(state)
    impulse.maneuver(Thrust(state.t + 500.0, 0.0, 10.0, 0.0))
    impulse.propagate(thrust.stop)
    np.testing.assert_allclose(prop.state.a, impulse.state.a, rtol=1e-4)
    np.testing.assert_allclose(prop.state.r, impulse.state.r, rtol=0, atol=1.0)

    with pytest.raises(ValueError):
        prop.maneuver(thrust, interval=0.0)


def test_maneuver_cleanup():
    class Exploding(Force):
        def acceleration(self, state):
            if state.t > REFERENCE_STATE.t + 510.0:
                raise RuntimeError("boom")
            return np.zeros(3)

    fm = ForceModel(static_environment())
    fm.setGravity()
    fm.atmosphericDrag = Exploding()
    prop = DormandPrince54Propagator(REFERENCE_STATE, fm)
    thrust = Thrust(REFERENCE_STATE.t + 500.0, 0.0, 10.0, 0.0, durationRate=10.0)
    with pytest.raises(RuntimeError):
        prop.maneuver(thrust)
    assert fm.maneuverThrust is None


@timer
def test_ephemeris():
    state = REFERENCE_STATE
    prop = DormandPrince54Propagator(state)
    start = state.t + 100.0
    stop = state.t + 1000.0
    eph = prop.ephemeris(start, stop, interval=60.0)
    t0, t1 = eph.window()
    assert t0 == start
    assert stop < t1 <= stop + 60.0
    assert len(eph) == 17
    np.testing.assert_allclose(np.diff([s.t for s in eph.states]), 60.0)

    expected = KeplerPropagator(state).propagate(state.t + 555.0)
    np.testing.assert_allclose(eph.interpolate(state.t + 555.0).r, expected.r, rtol=0, atol=1e-2)

    # Time objects
    eph = prop.ephemeris(Time(start, format='gps'), Time(stop, format='gps'))
    np.testing.assert_allclose(eph.window()[0], start)

    with pytest.raises(ValueError):
        prop.ephemeris(start, stop, interval=0.0)


@timer
def test_ephemeris_maneuver_impulsive():
    state = REFERENCE_STATE
    start = state.t
    finish = state.t + 1200.0
    thrust = Thrust(state.t + 500.0, 0.0, 10.0, 0.0)
    for prop in [DormandPrince54Propagator(state), KeplerPropagator(state)]:
        eph = prop.ephemerisManeuver(start, finish, [thrust], interval=60.0)
        times = np.array([s.t for s in eph.states])
        assert times[0] == start
        assert times[-1] == finish
        assert np.all(np.diff(times) >= 0)
        assert np.all(np.diff(times) <= 60.0)
        # Exactly one discontinuity, at the maneuver
        same = np.flatnonzero(np.diff(times) == 0)
        assert len(same) == 1
        before, after = eph.states[same[0]], eph.states[same[0] + 1]
        assert before.t == thrust.center
        np.testing.assert_allclose(np.linalg.norm(after.v - before.v), 0.01, rtol=1e-12)
        assert prop.state.t == finish


@timer
def test_ephemeris_maneuver_finite():
    state = REFERENCE_STATE
    start = state.t
    finish = state.t + 1200.0
    thrusts = [
        Thrust(state.t + 900.0, 0.0, 0.0, 5.0, durationRate=10.0),
        Thrust(state.t + 400.0, 0.0, 10.0, 0.0, durationRate=10.0),
    ]
    prop = DormandPrince54Propagator(state)
    eph = prop.ephemerisManeuver(start, finish, thrusts, interval=60.0)
    times = [s.t for s in eph.states]
    assert times[0] == start
    assert times[-1] == finish
    for thrust in thrusts:
        assert thrust.start in times
        assert thrust.stop in times
    assert np.all(np.diff(times) > 0)
    assert prop.forceModel.maneuverThrust is None

    # Kepler applies finite maneuvers as impulses at their centers
    kepler = KeplerPropagator(state)
    eph = kepler.ephemerisManeuver(start, finish, thrusts, interval=60.0)
    times = np.array([s.t for s in eph.states])
    assert set(times[np.flatnonzero(np.diff(times) == 0)]) == {t.center for t in thrusts}


def test_ephemeris_maneuver_selection():
    state = REFERENCE_STATE
    start = state.t + 100.0
    finish = state.t + 700.0
    prop = DormandPrince54Propagator(state)

    with pytest.warns(UserWarning):
        eph = prop.ephemerisManeuver(start, finish, [])
    assert eph.window() == (start, finish)

    outside = [Thrust(state.t + 50.0, 0.0, 1.0, 0.0), Thrust(state.t + 800.0, 0.0, 1.0, 0.0)]
    with pytest.warns(UserWarning):
        eph = prop.ephemerisManeuver(start, finish, outside)
    times = np.array([s.t for s in eph.states])
    assert np.all(np.diff(times) > 0)

    # A maneuver at the very start replaces the initial coasting state
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        eph = prop.ephemerisManeuver(start, finish, [Thrust(start, 0.0, 1.0, 0.0)])
    assert eph.states[0].t == eph.states[1].t == start
    assert eph.states[0] != eph.states[1]

    # A burn straddling the start is kept
    straddle = Thrust(start, 0.0, 1.0, 0.0, durationRate=20.0)
    eph = prop.ephemerisManeuver(start, finish, [straddle])
    assert eph.window()[0] == straddle.start

    overlapping = [
        Thrust(state.t + 300.0, 0.0, 1.0, 0.0, durationRate=100.0),
        Thrust(state.t + 320.0, 0.0, 1.0, 0.0, durationRate=100.0),
    ]
    with pytest.raises(ValueError):
        prop.ephemerisManeuver(start, finish, overlapping)
    with pytest.raises(ValueError):
        prop.ephemerisManeuver(start, finish, [], interval=-1.0)


@timer
def test_apsides():
    np.random.seed(57)
    for _ in range(5):
        state = sample_elements(0.0, a_high=2.6e4, e_high=0.3)
        state = StateVector(state.r, state.v, 0.0)
        a, e = state.a, state.e
        if e < 0.01:
            continue
        prop = KeplerPropagator(state)
        tp = prop.perigeeEpoch(0.0)
        ta = prop.apogeeEpoch(0.0)
        assert 0.0 <= tp <= state.period
        assert 0.0 <= ta <= state.period
        np.testing.assert_allclose(prop.propagate(tp).radius, a*(1 - e), rtol=1e-8)
        np.testing.assert_allclose(prop.propagate(ta).radius, a*(1 + e), rtol=1e-8)
        assert prop.propagate(ta).radius > prop.propagate(tp).radius
        # Half a period apart
        np.testing.assert_allclose(
            np.abs(ta - tp), 0.5*state.period, rtol=0, atol=1.0
        )


@timer
def test_nodes():
    np.random.seed(577)
    for _ in range(5):
        state = sample_elements(0.0, a_high=2.6e4, e_high=0.2)
        prop = KeplerPropagator(state)
        ta = prop.ascendingNodeEpoch(0.0)
        td = prop.descendingNodeEpoch(0.0)
        for t in [ta, td]:
            assert 0.0 <= t <= 1.25*state.period
        sa = prop.propagate(ta)
        sd = prop.propagate(td)
        assert abs(sa.r[2]) < 0.1
        assert abs(sd.r[2]) < 0.1
        assert sa.v[2] > 0
        assert sd.v[2] < 0


@timer
def test_finders_numerical():
    state = REFERENCE_STATE
    prop = DormandPrince54Propagator(state)
    kepler = KeplerPropagator(state)
    np.testing.assert_allclose(
        prop.ascendingNodeEpoch(state.t), kepler.ascendingNodeEpoch(state.t), rtol=0, atol=0.1
    )
    np.testing.assert_allclose(
        prop.perigeeEpoch(state.t), kepler.perigeeEpoch(state.t), rtol=0, atol=5.0
    )


@timer
def test_drag_decay():
    env = static_environment(atmosphere=HarrisPriester())
    fm = ForceModel(env)
    fm.setGravity()
    fm.setAtmosphericDrag(100.0, 10.0)
    r = EARTH_RADIUS + 300.0
    state = StateVector([r, 0, 0], [0, np.sqrt(EARTH_MU/r), 0], 0.0)
    prop = DormandPrince54Propagator(state, fm)
    out = prop.propagate(state.period)
    assert out.energy < state.energy
    assert out.a < state.a

    fm.clearAtmosphericDrag()
    prop = DormandPrince54Propagator(state, fm)
    out = prop.propagate(state.period)
    np.testing.assert_allclose(out.energy, state.energy, rtol=1e-8)


@timer
def test_default_numerical():
    env = static_environment(harmonics=ssaprop.HarmonicCoefficients.egm96())
    prop = default_numerical(REFERENCE_STATE, environment=env)
    assert isinstance(prop, AdaptivePropagator)
    assert prop.tableau is DORMAND_PRINCE_54
    fm = prop.forceModel
    assert fm.centralGravity == ssaprop.EarthGravity(4, 4)
    assert fm.thirdBodyGravity == ssaprop.ThirdBodyGravity(moon=True, sun=True)
    assert fm.solarRadiationPressure is None
    assert fm.atmosphericDrag is None

    # Perturbations are small over a few minutes
    t = REFERENCE_STATE.t + 600.0
    out = prop.propagate(t)
    expected = KeplerPropagator(REFERENCE_STATE).propagate(t)
    assert 1e-3 < np.linalg.norm(out.r - expected.r) < 20.0

    prop = default_numerical(REFERENCE_STATE, cls=RungeKutta4Propagator, environment=env, stepSize=5.0)
    assert isinstance(prop, RungeKutta4Propagator)
    assert prop.stepSize == 5.0

    fm = ForceModel(env)
    fm.setGravity()
    prop = default_numerical(REFERENCE_STATE, cls=RungeKutta87Propagator, forceModel=fm)
    assert prop.forceModel is fm
    assert prop.tableau is PRINCE_DORMAND_87

    other = ForceModel(env)
    prop.setForceModel(other)
    assert prop.forceModel is other


def test_refine():
    from ssaprop.propagator import _refine
    f = lambda x: (x - 1234.5678)**2
    np.testing.assert_allclose(_refine(f, 1000.0, 1500.0), 1234.5678, rtol=0, atol=1e-3)
    # Maxima through negation
    g = lambda x: -np.sin(x/100.0)
    np.testing.assert_allclose(_refine(g, 0.0, 100*np.pi), 50*np.pi, rtol=0, atol=1e-3)
    assert isinstance(_refine(f, 1000.0, 1500.0), float)
    # Resolution holds at GPS epoch magnitudes
    t0 = REFERENCE_STATE.t
    h = lambda x: (x - (t0 + 123.4567))**2
    np.testing.assert_allclose(_refine(h, t0, t0 + 700.0), t0 + 123.4567, rtol=0, atol=1e-3)
