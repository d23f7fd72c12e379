import os


def _get_datadir():
    """Get data directory, honoring the SSAPROP_DATADIR override."""
    path = os.environ.get("SSAPROP_DATADIR")
    if path is None:
        path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")
    return path


# Make datadir resolve lazily so the environment variable can be set after import
class _DataDir:
    def __init__(self):
        self._path = None

    def __str__(self):
        if self._path is None:
            self._path = _get_datadir()
        return self._path

    def __fspath__(self):
        return str(self)


datadir = _DataDir()

from .orbit import StateVector
from .body import (
    EarthOrientation, SunPosition, MoonPosition, Body, get_body,
    HarrisPriester, lightingRatio
)
from .environment import Environment
from .gravity import HarmonicCoefficients, EarthGravity, ThirdBodyGravity
from .accel import (
    Force, Gravity, SolarRadiationPressure, AtmosphericDrag, Thrust,
    ForceModel
)
from .integrator import (
    ButcherTableau, DORMAND_PRINCE_54, PRINCE_DORMAND_87, RUNGE_KUTTA_4,
    RkResult, adaptiveStep, fixedStep
)
from .propagator import (
    UnsupportedOperation, Propagator, AdaptivePropagator,
    DormandPrince54Propagator, RungeKutta87Propagator, RungeKutta4Propagator,
    KeplerPropagator, SGP4Propagator, default_numerical
)
from .ephemeris import Ephemeris

from . import constants
from . import utils
