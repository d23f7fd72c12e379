"""
Explicit bundle of the environment data providers consumed by forces.
"""

import logging

from .body import EarthOrientation, SunPosition, MoonPosition, HarrisPriester
from .gravity import HarmonicCoefficients

log = logging.getLogger(__name__)


class Environment:
    """Environment data used by force models.

    Every force is handed an Environment at construction and performs its
    lookups through it, so independent propagators can run with different
    data.  Optional providers may be None, in which case lookups return
    "no data": zero drag and a spherical Earth.

    Parameters
    ----------
    orientation : callable
        t -> (3, 3) GCRF to ITRF rotation matrix.
    sun : callable
        t -> (3,) Sun position in km.
    moon : callable
        t -> (3,) Moon position in km.
    harmonics : HarmonicCoefficients, optional
        Earth geopotential coefficients.
    atmosphere : HarrisPriester, optional
        Atmospheric density provider.
    """
    _providers = ('orientation', 'sun', 'moon', 'harmonics', 'atmosphere')
    _optional = ('harmonics', 'atmosphere')

    def __init__(
        self, orientation, sun, moon, harmonics=None, atmosphere=None
    ):
        self.orientation = orientation
        self.sun = sun
        self.moon = moon
        self.harmonics = harmonics
        self.atmosphere = atmosphere

    @classmethod
    def default(cls):
        """Environment with erfa Earth orientation, analytic Sun and Moon,
        embedded EGM96 coefficients and the mean flux Harris-Priester table.
        """
        return cls(
            orientation=EarthOrientation(),
            sun=SunPosition(),
            moon=MoonPosition(),
            harmonics=HarmonicCoefficients.egm96(),
            atmosphere=HarrisPriester(),
        )

    def load(self, **providers):
        """Replace providers by keyword, e.g. ``env.load(harmonics=coefs)``.

        Returns
        -------
        self
        """
        for name, provider in providers.items():
            if name not in self._providers:
                raise ValueError(f"Unknown environment provider {name}")
            log.debug("loading environment provider %s", name)
            setattr(self, name, provider)
        return self

    def clear(self):
        """Drop the optional providers.

        Returns
        -------
        self
        """
        for name in self._optional:
            setattr(self, name, None)
        log.debug("cleared optional environment providers")
        return self

    def __repr__(self):
        return "Environment({})".format(
            ", ".join(f"{name}={getattr(self, name)!r}" for name in self._providers)
        )
