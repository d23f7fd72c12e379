import numpy as np
import pytest
from astropy.time import Time

from ssaprop import utils
from ssaprop.constants import AU
from .ssaprop_test_helpers import timer, sample_LEO_orbit


def test_norm_functions():
    v = np.array([[1.0, 2.0, 2.0]])
    assert np.isclose(utils.normSq(v), 9.0)
    assert np.isclose(utils.norm(v), 3.0)
    np.testing.assert_allclose(utils.normed(v), v / 3.0)

    a = np.random.randn(10, 3)
    np.testing.assert_allclose(utils.norm(a), np.linalg.norm(a, axis=1))
    np.testing.assert_allclose(utils.norm(utils.normed(a)), 1.0)


def test_lazy_property():
    calls = []

    class Foo:
        @utils.lazy_property
        def val(self):
            calls.append(1)
            return 42
    f = Foo()
    assert f.val == 42
    assert f.val == 42
    assert len(calls) == 1


def test_time_conversion():
    t = Time("2020-01-01T00:00:00", scale='utc')
    assert utils.toGps(t) == t.gps
    assert utils.toGps(1.5e9) == 1.5e9
    assert isinstance(utils.toGps(10), float)

    # GPS epoch is MJD 44244 UTC, 19 s behind TAI
    np.testing.assert_allclose(utils._gpsToTT(0.0), 44244 + 51.184/86400, rtol=0, atol=1e-12)
    np.testing.assert_allclose(utils._gpsToTT(t), t.tt.mjd, rtol=0, atol=1e-9)


def test_find_file(tmp_path):
    fn = tmp_path / "coefs.tab"
    fn.write_text("")
    assert utils.find_file(str(fn)) == str(fn)
    assert utils.find_file(str(tmp_path / "coefs"), ext=".tab") == str(fn)
    with pytest.raises(FileNotFoundError):
        utils.find_file(str(tmp_path / "missing"), ext=".tab")


def test_ric():
    np.random.seed(57)
    for _ in range(100):
        state = sample_LEO_orbit(0.0)
        r, v = state.r, state.v
        mat = utils.ricMatrix(r, v)
        np.testing.assert_allclose(mat @ mat.T, np.eye(3), atol=1e-14)
        np.testing.assert_allclose(np.linalg.det(mat), 1.0, atol=1e-14)
        # R along r, C along r x v
        np.testing.assert_allclose(mat[0], r / np.linalg.norm(r), atol=1e-14)
        h = np.cross(r, v)
        np.testing.assert_allclose(mat[2], h / np.linalg.norm(h), atol=1e-14)
        # in-track has positive projection on velocity
        assert mat[1] @ v > 0

        rcoord = r + np.random.uniform(-10, 10, size=3)
        ric = utils.rv_to_ric(r, v, rcoord)
        np.testing.assert_allclose(utils.ric_to_r(r, v, ric), rcoord, rtol=0, atol=1e-9)
        np.testing.assert_allclose(
            utils.ric_to_r(r, v, ric, relative=True), rcoord - r, rtol=0, atol=1e-9
        )


@timer
def test_teme_rotation():
    for t in [Time("2000-06-27T18:50:19.733", scale='utc'), Time("2021-03-01", scale='utc').gps]:
        dut1 = -69.184/86400
        rot = utils.teme_to_gcrf(t, dut1=dut1)
        inv = utils.gcrf_to_teme(t, dut1=dut1)
        np.testing.assert_allclose(rot @ rot.T, np.eye(3), atol=1e-14)
        np.testing.assert_allclose(rot @ inv, np.eye(3), atol=1e-14)
        np.testing.assert_allclose(np.linalg.det(rot), 1.0, atol=1e-14)
        # TEME and GCRF differ by precession/nutation: small, but nonzero
        # for epochs away from J2000
        angle = np.arccos(np.clip((np.trace(rot) - 1) / 2, -1, 1))
        assert angle < np.deg2rad(1.0)


@timer
def test_sun_moon():
    times = Time("2010-01-01", scale='utc').gps + np.linspace(0, 365*86400, 20)
    for t in times:
        rs = utils.sunPos(t)
        assert 0.98*AU < np.linalg.norm(rs) < 1.02*AU
        rs_precise = utils.sunPos(t, fast=False)
        # low precision series is good to ~0.1 degree
        cosAngle = rs @ rs_precise / np.linalg.norm(rs) / np.linalg.norm(rs_precise)
        assert np.arccos(np.clip(cosAngle, -1, 1)) < np.deg2rad(0.1)

        rm = utils.moonPos(t)
        assert 3.5e5 < np.linalg.norm(rm) < 4.1e5

    # Sun near the vernal equinox direction in March
    rs = utils.sunPos(Time("2010-03-20T17:32", scale='utc'))
    assert rs[0] > 0.99*np.linalg.norm(rs)
