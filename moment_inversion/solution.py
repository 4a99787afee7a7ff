"""Data model for moment tensor inversion results.

Classes
-------
- FaultSolution: A single moment tensor solution (one decomposition variant).
- FaultSolutions: The full, trace-null and double-couple solutions of one inversion run.
- SolutionCollection: The ordered sequence of inversion runs for one event.
"""

import copy
import dataclasses
from collections.abc import Sequence
from enum import Enum, StrEnum
from typing import NamedTuple, Optional, Self, overload

import numpy as np
import pandas as pd

MAX_CHANNELS = 1000
"""The maximum number of channels stored for displacement fits."""


class RunType(StrEnum):
    """Provenance of an inversion run."""

    NOMINAL = "N"
    NOISE = "A"
    JACKKNIFE = "J"
    BOOTSTRAP = "B"


class SolutionVariant(Enum):
    """The decomposition variants produced by every inversion run."""

    FULL = ("F", "full")
    TRACE_NULL = ("T", "deviatoric")
    DOUBLE_COUPLE = ("D", "dc")

    def __init__(self, code: str, suffix: str):
        self.code = code
        self.suffix = suffix

    @classmethod
    def from_code(cls, code: str) -> "SolutionVariant":
        """Look up a variant by its single character code.

        Parameters
        ----------
        code : str
            One of F, T, or D.

        Returns
        -------
        SolutionVariant
            The variant with this code.

        Raises
        ------
        ValueError
            If the code is not a known variant.
        """
        for variant in cls:
            if variant.code == code:
                return variant
        raise ValueError(f"Unknown solution variant: {code!r}")


class FaultType(StrEnum):
    """Classification of a mechanism by its steepest principal axis."""

    NORMAL = "Normal fault"
    REVERSE = "Reverse fault"
    STRIKE = "Strike fault"


class NodalPlane(NamedTuple):
    """A fault plane orientation."""

    strike: float
    """Strike of the plane (degrees)."""
    dip: float
    """Dip of the plane (degrees)."""
    rake: float
    """Rake of the slip on the plane (degrees)."""


class PrincipalAxis(NamedTuple):
    """A principal axis of a moment tensor."""

    trend: float
    """Trend of the axis (degrees)."""
    plunge: float
    """Plunge of the axis (degrees)."""
    amplitude: float
    """Eigenvalue associated with the axis (Nm)."""


_NAN_PLANE = NodalPlane(np.nan, np.nan, np.nan)
_NAN_AXIS = PrincipalAxis(np.nan, np.nan, np.nan)


def _nan_array(shape: tuple[int, ...]) -> np.ndarray:
    return np.full(shape, np.nan)


@dataclasses.dataclass
class FaultSolution:
    """A seismic moment tensor solution for one decomposition variant.

    The moment tensor is stored 0-indexed with axes (North, East,
    Down). Use `m` to address components with the physical 1-based
    indices, e.g. `solution.m(1, 2)` for M12.

    Attributes
    ----------
    moment_tensor : np.ndarray
        The 3x3 symmetric moment tensor (Nm).
    scalar_moment : float
        The scalar seismic moment M0 (Nm).
    total_moment : float
        The total seismic moment MT (Nm).
    error : float
        Maximum error of the scalar moment (Nm), the square root of the
        largest diagonal element of the covariance matrix.
    magnitude : float
        Moment magnitude derived from the scalar moment.
    quality : float
        Quality factor, dependent on the quality measure used for the inversion.
    displacement_error : float
        Standard error of the displacement fit.
    explosion, clvd, double_couple : float
        Percentages of the standard decomposition.
    explosion_vavrycuk, clvd_vavrycuk, double_couple_vavrycuk : float
        Percentages of the Vavryčuk decomposition.
    plane_a, plane_b : NodalPlane
        The two nodal planes.
    p_axis, t_axis, b_axis : PrincipalAxis
        The pressure, tension and null axes.
    eigenvalues : np.ndarray
        The eigenvalues of the moment tensor, largest first (Nm).
    fault_type : FaultType, optional
        The mechanism classification, None for degenerate solutions.
    covariance : np.ndarray
        The 6x6 covariance matrix of (M11, M12, M13, M22, M23, M33).
    stations : list[str]
        Station names for each fitted channel.
    measured_displacement : np.ndarray
        Measured displacement for each fitted channel.
    theoretical_displacement : np.ndarray
        Displacement predicted by the solution for each fitted channel.
    degenerate : bool
        True if the inversion had too few usable stations to produce a
        solution, in which case all derived quantities are NaN.
    """

    moment_tensor: np.ndarray = dataclasses.field(
        default_factory=lambda: _nan_array((3, 3))
    )
    scalar_moment: float = np.nan
    total_moment: float = np.nan
    error: float = np.nan
    magnitude: float = np.nan
    quality: float = np.nan
    displacement_error: float = np.nan
    explosion: float = np.nan
    clvd: float = np.nan
    double_couple: float = np.nan
    explosion_vavrycuk: float = np.nan
    clvd_vavrycuk: float = np.nan
    double_couple_vavrycuk: float = np.nan
    plane_a: NodalPlane = _NAN_PLANE
    plane_b: NodalPlane = _NAN_PLANE
    p_axis: PrincipalAxis = _NAN_AXIS
    t_axis: PrincipalAxis = _NAN_AXIS
    b_axis: PrincipalAxis = _NAN_AXIS
    eigenvalues: np.ndarray = dataclasses.field(default_factory=lambda: _nan_array((3,)))
    fault_type: Optional[FaultType] = None
    covariance: np.ndarray = dataclasses.field(
        default_factory=lambda: _nan_array((6, 6))
    )
    stations: list[str] = dataclasses.field(default_factory=list)
    measured_displacement: np.ndarray = dataclasses.field(
        default_factory=lambda: np.zeros(0)
    )
    theoretical_displacement: np.ndarray = dataclasses.field(
        default_factory=lambda: np.zeros(0)
    )
    degenerate: bool = False

    def __post_init__(self):
        """Validate the array shapes of the solution.

        Raises
        ------
        ValueError
            If the moment tensor, eigenvalues or covariance have the wrong
            shape, or the channel arrays are inconsistent or too long.
        """
        self.moment_tensor = np.asarray(self.moment_tensor, dtype=float)
        self.eigenvalues = np.asarray(self.eigenvalues, dtype=float)
        self.covariance = np.asarray(self.covariance, dtype=float)
        self.measured_displacement = np.asarray(self.measured_displacement, dtype=float)
        self.theoretical_displacement = np.asarray(
            self.theoretical_displacement, dtype=float
        )
        if self.moment_tensor.shape != (3, 3):
            raise ValueError(
                f"Moment tensor must be 3x3, got {self.moment_tensor.shape}."
            )
        if self.eigenvalues.shape != (3,):
            raise ValueError(f"Expected 3 eigenvalues, got {self.eigenvalues.shape}.")
        if self.covariance.shape != (6, 6):
            raise ValueError(f"Covariance must be 6x6, got {self.covariance.shape}.")
        if not (
            len(self.stations)
            == len(self.measured_displacement)
            == len(self.theoretical_displacement)
        ):
            raise ValueError(
                "Station, measured and theoretical displacement arrays must have equal length."
            )
        if len(self.stations) > MAX_CHANNELS:
            raise ValueError(
                f"At most {MAX_CHANNELS} channels can be stored, got {len(self.stations)}."
            )

    @classmethod
    def degenerate_solution(cls) -> Self:
        """Create a solution whose derived quantities are all indeterminate.

        Returns
        -------
        FaultSolution
            A solution flagged as degenerate.
        """
        return cls(degenerate=True)

    def m(self, i: int, j: int) -> float:
        """Get a moment tensor component using 1-based axis indices.

        Parameters
        ----------
        i : int
            Row index, 1 (North), 2 (East) or 3 (Down).
        j : int
            Column index, 1 (North), 2 (East) or 3 (Down).

        Returns
        -------
        float
            The component M_ij (Nm).
        """
        if not (1 <= i <= 3 and 1 <= j <= 3):
            raise IndexError(f"Moment tensor indices must be in 1..3, got ({i}, {j}).")
        return self.moment_tensor[i - 1, j - 1]

    @property
    def channel_count(self) -> int:  # numpydoc ignore=RT01
        """int: The number of channels with displacement fits."""
        return len(self.stations)

    @property
    def covariance_diagonal(self) -> np.ndarray:  # numpydoc ignore=RT01
        """np.ndarray: The variances of (M11, M12, M13, M22, M23, M33)."""
        return np.diag(self.covariance)

    def copy(self) -> Self:
        """Create a deep copy of the solution.

        Returns
        -------
        FaultSolution
            A copy sharing no state with this solution.
        """
        return copy.deepcopy(self)


@dataclasses.dataclass(frozen=True)
class FaultSolutions:
    """The three solution variants of a single inversion run.

    Attributes
    ----------
    full : FaultSolution
        The unconstrained moment tensor solution.
    trace_null : FaultSolution
        The deviatoric (trace-null) solution.
    double_couple : FaultSolution
        The double-couple solution.
    run_type : RunType
        The provenance of the run.
    channel : int
        0 for nominal and noise runs, the removed station id for
        jackknife runs and the iteration number for bootstrap runs.
    """

    full: FaultSolution
    trace_null: FaultSolution
    double_couple: FaultSolution
    run_type: RunType = RunType.NOMINAL
    channel: int = 0

    def variant(self, variant: SolutionVariant) -> FaultSolution:
        """Select one of the solution variants.

        Parameters
        ----------
        variant : SolutionVariant
            The variant to select.

        Returns
        -------
        FaultSolution
            The selected solution.
        """
        match variant:
            case SolutionVariant.FULL:
                return self.full
            case SolutionVariant.TRACE_NULL:
                return self.trace_null
            case SolutionVariant.DOUBLE_COUPLE:
                return self.double_couple
        raise TypeError(f"Unsupported solution variant: {variant}")


SUMMARY_COLUMNS = [
    "scalar_moment",
    "total_moment",
    "magnitude",
    "quality",
    "explosion",
    "clvd",
    "double_couple",
    "explosion_vavrycuk",
    "clvd_vavrycuk",
    "double_couple_vavrycuk",
]


class SolutionCollection(Sequence):
    """The ordered, append-only sequence of inversion runs for one event.

    The first run in a collection is always the nominal run. Statistics
    are only meaningful within a single run type, because runs of
    different types are not repeated measurements of the same quantity.

    Parameters
    ----------
    event_id : str
        The identifier of the event.
    """

    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        self._runs: list[FaultSolutions] = []

    @overload
    def __getitem__(self, index: int) -> FaultSolutions: ...

    @overload
    def __getitem__(self, index: slice) -> list[FaultSolutions]: ...

    def __getitem__(self, index):
        return self._runs[index]

    def __len__(self) -> int:
        return len(self._runs)

    @property
    def nominal(self) -> FaultSolutions:  # numpydoc ignore=RT01
        """FaultSolutions: The nominal inversion run."""
        return self._runs[0]

    def append(self, solutions: FaultSolutions) -> None:
        """Append an inversion run to the collection.

        Parameters
        ----------
        solutions : FaultSolutions
            The inversion run to append.

        Raises
        ------
        ValueError
            If the first run is not nominal, or a nominal run is appended
            to a non-empty collection.
        """
        is_nominal = solutions.run_type == RunType.NOMINAL
        if not self._runs and not is_nominal:
            raise ValueError("The first run in a collection must be the nominal run.")
        if self._runs and is_nominal:
            raise ValueError("A collection contains exactly one nominal run.")
        self._runs.append(solutions)

    def group(self, run_type: RunType) -> list[FaultSolutions]:
        """Get the runs of a single type.

        Parameters
        ----------
        run_type : RunType
            The run type to select.

        Returns
        -------
        list[FaultSolutions]
            The runs of this type, in collection order.
        """
        return [run for run in self._runs if run.run_type == run_type]

    def summary(self, variant: SolutionVariant, run_type: RunType) -> pd.DataFrame:
        """Summarise scalar solution values within one run type.

        Parameters
        ----------
        variant : SolutionVariant
            The solution variant to summarise.
        run_type : RunType
            The run type to summarise.

        Returns
        -------
        pd.DataFrame
            A dataframe indexed by statistic (count, mean, std, min, max)
            with one column per entry in `SUMMARY_COLUMNS`.
        """
        values = pd.DataFrame(
            [
                {
                    column: getattr(run.variant(variant), column)
                    for column in SUMMARY_COLUMNS
                }
                for run in self.group(run_type)
            ],
            columns=SUMMARY_COLUMNS,
            dtype=float,
        )
        return values.agg(["count", "mean", "std", "min", "max"])
