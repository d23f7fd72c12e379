"""
Explicit Runge-Kutta integration of spacecraft state vectors.

Every integrator is described by a `ButcherTableau`; one generic stage
evaluator and two step functions, fixed and adaptive, work for all of them.
"""

from collections import namedtuple

import numpy as np

from .constants import MIN_STEP_SIZE, MAX_STEP_SIZE
from .orbit import StateVector
from .utils import norm


def _readonly(arr):
    arr = np.array(arr, dtype=float)
    arr.flags.writeable = False
    return arr


class ButcherTableau:
    """Coefficients of an explicit (optionally embedded) Runge-Kutta pair.

    Parameters
    ----------
    a : array_like, shape(s,)
        Stage time fractions.
    b : sequence of sequences
        Stage weights.  Row i holds the weights of the i prior stages; rows
        may be ragged or zero padded to a full (s, s) lower triangle.
    ch : array_like, shape(s,)
        Weights of the higher order solution, used to advance the state.
    c : array_like, shape(s,)
        Weights of the lower order solution, used for the error estimate.
    order : int
        Order of the higher order solution; sets the step size exponent.
    name : str, optional
    """
    def __init__(self, a, b, ch, c, order, name=""):
        a = np.array(a, dtype=float)
        s = len(a)
        bb = np.zeros((s, s))
        if len(b) != s:
            raise ValueError(f"expected {s} rows of stage weights, got {len(b)}")
        for i, row in enumerate(b):
            row = np.asarray(row, dtype=float)
            if np.any(row[i:] != 0):
                raise ValueError("stage weights must be strictly lower triangular")
            bb[i, :min(len(row), i)] = row[:i]
        if len(ch) != s or len(c) != s:
            raise ValueError("solution weights must have one entry per stage")
        self._a = _readonly(a)
        self._b = _readonly(bb)
        self._ch = _readonly(ch)
        self._c = _readonly(c)
        self._order = int(order)
        self._name = name

    @property
    def a(self):
        return self._a

    @property
    def b(self):
        return self._b

    @property
    def ch(self):
        return self._ch

    @property
    def c(self):
        return self._c

    @property
    def order(self):
        return self._order

    @property
    def name(self):
        return self._name

    @property
    def stages(self):
        return len(self._a)

    def __repr__(self):
        return "ButcherTableau({!r}, stages={}, order={})".format(
            self.name, self.stages, self.order
        )

    def __hash__(self):
        return hash((
            "ButcherTableau", self.name, self.order,
            self._a.tobytes(), self._b.tobytes(), self._ch.tobytes(), self._c.tobytes()
        ))

    def __eq__(self, rhs):
        if not isinstance(rhs, ButcherTableau):
            return False
        return (
            self.order == rhs.order and np.array_equal(self.a, rhs.a) and np.array_equal(self.b, rhs.b) and np.array_equal(self.ch, rhs.ch) and np.array_equal(self.c, rhs.c)
        )


DORMAND_PRINCE_54 = ButcherTableau(
    a=[0, 1 / 5, 3 / 10, 4 / 5, 8 / 9, 1, 1],
    b=[
        [],
        [1 / 5],
        [3 / 40, 9 / 40],
        [44 / 45, -56 / 15, 32 / 9],
        [19372 / 6561, -25360 / 2187, 64448 / 6561, -212 / 729],
        [9017 / 3168, -355 / 33, 46732 / 5247, 49 / 176, -5103 / 18656],
        [35 / 384, 0, 500 / 1113, 125 / 192, -2187 / 6784, 11 / 84],
    ],
    ch=[35 / 384, 0, 500 / 1113, 125 / 192, -2187 / 6784, 11 / 84, 0],
    c=[5179 / 57600, 0, 7571 / 16695, 393 / 640, -92097 / 339200, 187 / 2100, 1 / 40],
    order=5,
    name="Dormand-Prince 5(4)"
)

PRINCE_DORMAND_87 = ButcherTableau(
    a=[0, 1 / 18, 1 / 12, 1 / 8, 5 / 16, 3 / 8, 59 / 400, 93 / 200, 5490023248 / 9719169821, 13 / 20, 1201146811 / 1299019798, 1, 1],
    b=[
        [],
        [1 / 18],
        [1 / 48, 1 / 16],
        [1 / 32, 0, 3 / 32],
        [5 / 16, 0, -75 / 64, 75 / 64],
        [3 / 80, 0, 0, 3 / 16, 3 / 20],
        [29443841 / 614563906, 0, 0, 77736538 / 692538347, -28693883 / 1125000000, 23124283 / 1800000000],
        [16016141 / 946692911, 0, 0, 61564180 / 158732637, 22789713 / 633445777, 545815736 / 2771057229, -180193667 / 1043307555],
        [39632708 / 573591083, 0, 0, -433636366 / 683701615, -421739975 / 2616292301, 100302831 / 723423059, 790204164 / 839813087, 800635310 / 3783071287],
        [246121993 / 1340847787, 0, 0, -37695042795 / 15268766246, -309121744 / 1061227803, -12992083 / 490766935, 6005943493 / 2108947869, 393006217 / 1396673457, 123872331 / 1001029789],
        [-1028468189 / 846180014, 0, 0, 8478235783 / 508512852, 1311729495 / 1432422823, -10304129995 / 1701304382, -48777925059 / 3047939560, 15336726248 / 1032824649, -45442868181 / 3398467696, 3065993473 / 597172653],
        [185892177 / 718116043, 0, 0, -3185094517 / 667107341, -477755414 / 1098053517, -703635378 / 230739211, 5731566787 / 1027545527, 5232866602 / 850066563, -4093664535 / 808688257, 3962137247 / 1805957418, 65686358 / 487910083],
        [403863854 / 491063109, 0, 0, -5068492393 / 434740067, -411421997 / 543043805, 652783627 / 914296604, 11173962825 / 925320556, -13158990841 / 6184727034, 3936647629 / 1978049680, -160528059 / 685178525, 248638103 / 1413531060, 0],
    ],
    ch=[14005451 / 335480064, 0, 0, 0, 0, -59238493 / 1068277825, 181606767 / 758867731, 561292985 / 797845732, -1041891430 / 1371343529, 760417239 / 1151165299, 118820643 / 751138087, -528747749 / 2220607170, 1 / 4],
    c=[13451932 / 455176623, 0, 0, 0, 0, -808719846 / 976000145, 1757004468 / 5645159321, 656045339 / 265891186, -3867574721 / 1518517206, 465885868 / 322736535, 53011238 / 667516719, 2 / 45, 0],
    order=8,
    name="Prince-Dormand 8(7)"
)

# No embedded estimate: both solutions coincide.
RUNGE_KUTTA_4 = ButcherTableau(
    a=[0, 1 / 2, 1 / 2, 1],
    b=[
        [],
        [1 / 2],
        [0, 1 / 2],
        [0, 0, 1],
    ],
    ch=[1 / 6, 1 / 3, 1 / 3, 1 / 6],
    c=[1 / 6, 1 / 3, 1 / 3, 1 / 6],
    order=4,
    name="Runge-Kutta 4"
)


RkResult = namedtuple('RkResult', ['state', 'error', 'newStep'])
RkResult.__doc__ = """Outcome of one adaptive step.

Attributes
----------
state : StateVector
    Higher order solution at ``t + dt``.
error : float
    Euclidean distance between the higher and lower order 6-vectors.
newStep : float
    Proposed magnitude of the next step in seconds.
"""


def evaluateStages(derivative, state, dt, tableau):
    """Evaluate the stage derivatives of one Runge-Kutta step.

    Parameters
    ----------
    derivative : callable
        StateVector -> (6,) time derivative [v, a].
    state : StateVector
        State at the start of the step.
    dt : float
        Signed step in seconds.
    tableau : ButcherTableau

    Returns
    -------
    k : ndarray, shape(stages, 6)
        Stage derivatives, each already multiplied by dt.
    """
    a = tableau.a
    b = tableau.b
    rv = state.rv
    k = np.zeros((tableau.stages, 6), dtype=float)
    for i in range(tableau.stages):
        stage = StateVector.fromRV(rv + b[i] @ k, state.t + a[i] * dt, mu=state.mu)
        k[i] = dt * derivative(stage)
    return k


def adaptiveStep(derivative, state, dt, tableau, tolerance):
    """Take one embedded Runge-Kutta step and propose the next step size.

    The error estimate deliberately mixes position (km) and velocity (km/s)
    components in a single Euclidean norm.

    Parameters
    ----------
    derivative : callable
        StateVector -> (6,) time derivative [v, a].
    state : StateVector
    dt : float
        Signed step in seconds.
    tableau : ButcherTableau
    tolerance : float
        Target local error.

    Returns
    -------
    RkResult
    """
    k = evaluateStages(derivative, state, dt, tableau)
    rv = state.rv
    high = rv + tableau.ch @ k
    low = rv + tableau.c @ k
    error = norm(high - low)
    if error > 0:
        hNew = np.abs(0.9 * dt * (tolerance / error)**(1.0 / tableau.order))
    else:
        hNew = np.inf
    hNew = min(max(hNew, 0.2 * np.abs(dt)), 5.0 * np.abs(dt))
    hNew = min(max(hNew, MIN_STEP_SIZE), MAX_STEP_SIZE)
    return RkResult(
        StateVector.fromRV(high, state.t + dt, mu=state.mu),
        error,
        hNew
    )


def fixedStep(derivative, state, dt, tableau=RUNGE_KUTTA_4):
    """Take one Runge-Kutta step of exactly `dt` seconds.

    Returns
    -------
    StateVector
        Higher order solution at ``t + dt``.
    """
    k = evaluateStages(derivative, state, dt, tableau)
    return StateVector.fromRV(state.rv + tableau.ch @ k, state.t + dt, mu=state.mu)
