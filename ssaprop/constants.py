"""
A collection of physical constants and propagation defaults.

All lengths are in kilometers and all times in seconds.

.. data:: WGS84_EARTH_MU

    Earth gravitational constant from WGS84 model [km³/s²]

.. data:: WGS84_EARTH_OMEGA

    Earth angular velocity from WGS84 model [rad/s]

.. data:: WGS84_EARTH_RADIUS

    Earth radius at equator from WGS84 model [km]

.. data:: WGS84_EARTH_FLATTENING

    Earth flattening f = (a - b) / a where a and b are the major
    and minor axes respectively, from WGS84 model [unitless]

.. data:: EGM96_RADIUS

    Reference radius of the EGM96 geopotential [km]

.. data:: EGM96_MU

    Gravitational constant of the EGM96 geopotential [km³/s²]

Gravitational constants
-----------------------

.. data:: SUN_MU

    Sun gravitational constant, from IAU 1976 model [km³/s²]

.. data:: MOON_MU

    Moon gravitational constant, from the DE200 ephemeris [km³/s²]

.. data:: EARTH_MU

    Earth gravitational constant, from WGS84 model [km³/s²]

Radius
------

.. data:: SUN_RADIUS

    Sun radius [km]

.. data:: MOON_RADIUS

    Moon radius (source: 10.2138/rmg.2006.60.3) [km]

.. data:: EARTH_RADIUS

    Earth radius [km]

Radiation
---------

.. data:: AU

    Astronomical unit [km]

.. data:: SOLAR_PRESSURE

    Solar radiation pressure at 1 AU [N/m²], MG eqn (3.69)

Propagation defaults
--------------------

.. data:: DEFAULT_STEP_SIZE

    Initial step size of adaptive integrators [s]

.. data:: DEFAULT_TOLERANCE

    Local error tolerance of adaptive integrators

.. data:: MIN_TOLERANCE

    Smallest accepted local error tolerance

.. data:: MIN_STEP_SIZE, MAX_STEP_SIZE

    Absolute bounds on a proposed adaptive step size [s]

.. data:: DEFAULT_FIXED_STEP

    Step size of fixed-step integrators [s]

.. data:: DEFAULT_INTERVAL

    Ephemeris sampling and finite maneuver reporting interval [s]
"""

import numpy as np

# GM
WGS84_EARTH_MU = 398600.4418  # [km^3/s^2]
# angular velocity
WGS84_EARTH_OMEGA = 72.92115147e-6  # [rad/s]
# radius at equator
WGS84_EARTH_RADIUS = 6378.137  # [km]

# flattening f = (a-b)/a with a,b the major,minor axes
WGS84_EARTH_FLATTENING = 1 / 298.257223563

EGM96_RADIUS = 6378.1363  # [km]
EGM96_MU = 398600.4415  # [km^3/s^2]

SUN_MU = 1.32712438e+11  # [km^3/s^2] IAU 1976
MOON_MU = 398600.4415 / 81.300587  # [km^3/s^2] DE200
EARTH_MU = WGS84_EARTH_MU

SUN_RADIUS = 695700.0
MOON_RADIUS = 1738.1  # 10.2138/rmg.2006.60.3
EARTH_RADIUS = WGS84_EARTH_RADIUS
EARTH_OMEGA = WGS84_EARTH_OMEGA

AU = 149597870.7  # [km]
SOLAR_PRESSURE = 4.56e-6  # [N/m^2]

# GEO-sync radius is derived.
RGEO = np.cbrt(WGS84_EARTH_MU / WGS84_EARTH_OMEGA**2)  # [km]

DEFAULT_STEP_SIZE = 60.0
DEFAULT_TOLERANCE = 1e-9
MIN_TOLERANCE = 1e-15
MIN_STEP_SIZE = 1e-5
MAX_STEP_SIZE = 1000.0
DEFAULT_FIXED_STEP = 15.0
DEFAULT_INTERVAL = 60.0
