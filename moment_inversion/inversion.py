"""Moment tensor inversion from first P-wave pulse amplitudes.

The resampling orchestrator only depends on the `InversionEngine`
protocol. `FirstPulseInversion` is the engine used by the command line
tools: it fits the far-field P-wave displacement

    u_i = (gamma_j gamma_k M_jk) / (4 pi rho v^3 r)

to the measured first pulse moments of every usable station, where
gamma is the ray direction at the source in (North, East, Down)
coordinates.

References
----------
Aki, K. and Richards, P. G. (2002). Quantitative Seismology, 2nd ed.
Jost, M. L. and Herrmann, R. B. (1989). A student's guide to and review
of moment tensors. Seismological Research Letters, 60(2), 37-57.
"""

import logging
from enum import StrEnum
from typing import Protocol

import numpy as np
import pandas as pd
import scipy as sp

from moment_inversion import moment
from moment_inversion.picks import InputDataset
from moment_inversion.solution import (
    MAX_CHANNELS,
    FaultSolution,
    FaultSolutions,
    FaultType,
    NodalPlane,
    PrincipalAxis,
    RunType,
)

logger = logging.getLogger(__name__)


class NormType(StrEnum):
    """The misfit norm minimised by the inversion."""

    L1 = "L1"
    L2 = "L2"


class QualityType(StrEnum):
    """The measure used for the solution quality factor."""

    POLARITY = "polarity"
    """Percentage of stations whose predicted polarity matches the data."""
    RMS = "rms"
    """100 * (1 - |u - u_th| / |u|)."""


class InversionEngine(Protocol):
    """An inversion engine that can be driven by the resampling orchestrator.

    Implementations must be deterministic for identical inputs, must
    return degenerate solutions (rather than raise) for datasets with no
    usable stations, and must compute all three solution variants from
    a single shared inversion.
    """

    def invert(
        self,
        norm: NormType,
        quality: QualityType,
        dataset: InputDataset,
        channel: int,
        run_type: RunType,
    ) -> FaultSolutions:
        """Invert a dataset for a moment tensor.

        Parameters
        ----------
        norm : NormType
            The misfit norm to minimise.
        quality : QualityType
            The quality factor measure.
        dataset : InputDataset
            The station picks to invert.
        channel : int
            The channel tag recorded on the result.
        run_type : RunType
            The run type recorded on the result.

        Returns
        -------
        FaultSolutions
            The full, trace-null and double-couple solutions.
        """
        ...


# (M11, M12, M13, M22, M23, M33) in terms of the five trace-null parameters
# (M11, M12, M13, M22, M23).
TRACE_NULL_BASIS = np.array(
    [
        [1, 0, 0, 0, 0],
        [0, 1, 0, 0, 0],
        [0, 0, 1, 0, 0],
        [0, 0, 0, 1, 0],
        [0, 0, 0, 0, 1],
        [-1, 0, 0, -1, 0],
    ],
    dtype=float,
)


def direction_cosines(azimuth: np.ndarray, takeoff: np.ndarray) -> np.ndarray:
    """Compute ray directions at the source.

    Parameters
    ----------
    azimuth : np.ndarray
        Source to station azimuths (degrees, clockwise from North).
    takeoff : np.ndarray
        Takeoff angles measured from the downward vertical (degrees).

    Returns
    -------
    np.ndarray
        An (n, 3) array of unit vectors in (North, East, Down) coordinates.
    """
    azimuth_rad = np.radians(azimuth)
    takeoff_rad = np.radians(takeoff)
    return np.column_stack(
        [
            np.sin(takeoff_rad) * np.cos(azimuth_rad),
            np.sin(takeoff_rad) * np.sin(azimuth_rad),
            np.cos(takeoff_rad),
        ]
    )


def greens_matrix(picks: pd.DataFrame) -> np.ndarray:
    """Compute the far-field P-wave Green's matrix for a set of picks.

    Parameters
    ----------
    picks : pd.DataFrame
        Station picks with azimuth, takeoff, density, velocity and
        distance columns.

    Returns
    -------
    np.ndarray
        An (n, 6) matrix G with G @ (M11, M12, M13, M22, M23, M33) the
        predicted displacement at each station.
    """
    gamma = direction_cosines(
        picks["azimuth"].to_numpy(dtype=float), picks["takeoff"].to_numpy(dtype=float)
    )
    scale = 1 / (
        4
        * np.pi
        * picks["density"].to_numpy(dtype=float)
        * picks["velocity"].to_numpy(dtype=float) ** 3
        * picks["distance"].to_numpy(dtype=float)
    )
    g1, g2, g3 = gamma.T
    return scale[:, np.newaxis] * np.column_stack(
        [g1 * g1, 2 * g1 * g2, 2 * g1 * g3, g2 * g2, 2 * g2 * g3, g3 * g3]
    )


def vector_to_tensor(components: np.ndarray) -> np.ndarray:
    """Convert (M11, M12, M13, M22, M23, M33) to a symmetric 3x3 tensor.

    Parameters
    ----------
    components : np.ndarray
        The six independent moment tensor components.

    Returns
    -------
    np.ndarray
        The 3x3 moment tensor.
    """
    m11, m12, m13, m22, m23, m33 = components
    return np.array([[m11, m12, m13], [m12, m22, m23], [m13, m23, m33]])


def tensor_to_vector(moment_tensor: np.ndarray) -> np.ndarray:
    """Convert a symmetric 3x3 tensor to (M11, M12, M13, M22, M23, M33).

    Parameters
    ----------
    moment_tensor : np.ndarray
        The 3x3 moment tensor.

    Returns
    -------
    np.ndarray
        The six independent moment tensor components.
    """
    return moment_tensor[np.triu_indices(3)]


def _solve(
    design: np.ndarray, displacement: np.ndarray, norm: NormType
) -> tuple[np.ndarray, np.ndarray]:
    """Solve design @ x = displacement in the chosen norm.

    The system is normalised before solving because P-wave Green's
    functions are many orders of magnitude smaller than the unknowns.

    Returns
    -------
    np.ndarray
        The solution vector x.
    np.ndarray
        The covariance of x, NaN when the system has no degrees of freedom.
    """
    design_scale = np.abs(design).max()
    displacement_scale = np.abs(displacement).max() or 1.0
    a = design / design_scale
    b = displacement / displacement_scale
    n, k = a.shape

    if norm == NormType.L2:
        x = np.linalg.lstsq(a, b, rcond=None)[0]
    else:
        # min sum(t) subject to -t <= a @ x - b <= t.
        identity = np.eye(n)
        result = sp.optimize.linprog(
            np.concatenate([np.zeros(k), np.ones(n)]),
            A_ub=np.block([[a, -identity], [-a, -identity]]),
            b_ub=np.concatenate([b, -b]),
            bounds=[(None, None)] * k + [(0, None)] * n,
            method="highs",
        )
        if not result.success:
            logger.warning(f"L1 inversion failed: {result.message}")
            return np.full(k, np.nan), np.full((k, k), np.nan)
        x = result.x[:k]

    residual = b - a @ x
    degrees_of_freedom = n - k
    if degrees_of_freedom > 0:
        variance = residual @ residual / degrees_of_freedom
        covariance = variance * np.linalg.pinv(a.T @ a)
    else:
        covariance = np.full((k, k), np.nan)

    unit_scale = displacement_scale / design_scale
    return x * unit_scale, covariance * unit_scale**2


def _principal_axis(vector: np.ndarray, amplitude: float) -> PrincipalAxis:
    """Compute the trend and plunge of an axis, pointing it downwards."""
    if vector[2] < 0:
        vector = -vector
    plunge = np.degrees(np.arcsin(np.clip(vector[2], -1.0, 1.0)))
    trend = np.degrees(np.arctan2(vector[1], vector[0])) % 360
    return PrincipalAxis(trend, plunge, amplitude)


def nodal_plane(normal: np.ndarray, slip: np.ndarray) -> NodalPlane:
    """Compute the strike, dip and rake of a fault from its normal and slip.

    Parameters
    ----------
    normal : np.ndarray
        Unit normal to the fault (North, East, Down).
    slip : np.ndarray
        Unit slip vector on the fault (North, East, Down).

    Returns
    -------
    NodalPlane
        The plane orientation in degrees, with strike in [0, 360),
        dip in [0, 90] and rake in [-180, 180).
    """
    # The normal must point upwards for the dip to be at most 90 degrees.
    if normal[2] > 0:
        normal = -normal
        slip = -slip
    nx, ny, nz = normal
    sx, sy, sz = slip
    strike = np.degrees(np.arctan2(-nx, ny)) % 360
    dip = np.degrees(np.arccos(np.clip(-nz, -1.0, 1.0)))
    rake = np.degrees(np.arctan2(-sz, sx * ny - sy * nx))
    rake = (rake + 180) % 360 - 180
    return NodalPlane(strike, dip, rake)


def _describe(
    components: np.ndarray,
    covariance: np.ndarray,
    design: np.ndarray,
    displacement: np.ndarray,
    stations: list[str],
    quality: QualityType,
    unknowns: int,
) -> FaultSolution:
    """Derive every solution quantity from fitted tensor components."""
    if not np.all(np.isfinite(components)) or not np.any(components):
        return FaultSolution.degenerate_solution()

    moment_tensor = vector_to_tensor(components)
    eigenvalues, eigenvectors = np.linalg.eigh(moment_tensor)
    p_axis = _principal_axis(eigenvectors[:, 0], eigenvalues[0])
    b_axis = _principal_axis(eigenvectors[:, 1], eigenvalues[1])
    t_axis = _principal_axis(eigenvectors[:, 2], eigenvalues[2])

    tension = eigenvectors[:, 2]
    pressure = eigenvectors[:, 0]
    normal = (tension + pressure) / np.sqrt(2)
    slip = (tension - pressure) / np.sqrt(2)

    plunges = {
        FaultType.NORMAL: p_axis.plunge,
        FaultType.REVERSE: t_axis.plunge,
        FaultType.STRIKE: b_axis.plunge,
    }

    scalar_moment = moment.scalar_moment(moment_tensor)
    standard = moment.standard_decomposition(moment_tensor)
    vavrycuk = moment.vavrycuk_decomposition(moment_tensor)

    theoretical = design @ components
    residual = displacement - theoretical
    degrees_of_freedom = len(displacement) - unknowns
    displacement_error = (
        np.sqrt(residual @ residual / degrees_of_freedom)
        if degrees_of_freedom > 0
        else np.nan
    )
    if quality == QualityType.POLARITY:
        quality_factor = 100 * np.mean(np.sign(theoretical) == np.sign(displacement))
    else:
        quality_factor = 100 * (
            1 - np.linalg.norm(residual) / np.linalg.norm(displacement)
        )

    if len(stations) > MAX_CHANNELS:
        logger.warning(
            f"Storing displacement fits for the first {MAX_CHANNELS} of {len(stations)} channels."
        )

    return FaultSolution(
        moment_tensor=moment_tensor,
        scalar_moment=scalar_moment,
        total_moment=moment.total_moment(moment_tensor),
        error=np.sqrt(np.max(np.diag(covariance))),
        magnitude=(
            moment.moment_to_magnitude(scalar_moment) if scalar_moment > 0 else np.nan
        ),
        quality=quality_factor,
        displacement_error=displacement_error,
        explosion=standard.explosion,
        clvd=standard.clvd,
        double_couple=standard.double_couple,
        explosion_vavrycuk=vavrycuk.explosion,
        clvd_vavrycuk=vavrycuk.clvd,
        double_couple_vavrycuk=vavrycuk.double_couple,
        plane_a=nodal_plane(normal, slip),
        plane_b=nodal_plane(slip, normal),
        p_axis=p_axis,
        t_axis=t_axis,
        b_axis=b_axis,
        eigenvalues=eigenvalues[::-1],
        fault_type=max(plunges, key=plunges.get),
        covariance=covariance,
        stations=stations[:MAX_CHANNELS],
        measured_displacement=displacement[:MAX_CHANNELS],
        theoretical_displacement=theoretical[:MAX_CHANNELS],
    )


def double_couple_part(moment_tensor: np.ndarray) -> np.ndarray:
    """Find the best double-couple approximation of a moment tensor.

    Parameters
    ----------
    moment_tensor : np.ndarray
        The 3x3 moment tensor.

    Returns
    -------
    np.ndarray
        The double couple with the same principal axes and eigenvalues
        (-l, 0, l), where l is half the difference between the largest
        and smallest eigenvalues.
    """
    eigenvalues, eigenvectors = np.linalg.eigh(moment_tensor)
    half_range = (eigenvalues[2] - eigenvalues[0]) / 2
    return eigenvectors @ np.diag([-half_range, 0.0, half_range]) @ eigenvectors.T


class FirstPulseInversion:
    """Invert first P-wave pulse moments for full, trace-null and double-couple tensors.

    The full solution fits all six tensor components. The trace-null
    solution constrains M11 + M22 + M33 = 0. The double-couple solution
    is the best double couple of the trace-null solution, and shares its
    covariance.
    """

    def invert(
        self,
        norm: NormType,
        quality: QualityType,
        dataset: InputDataset,
        channel: int,
        run_type: RunType,
    ) -> FaultSolutions:
        """Invert a dataset for a moment tensor.

        Parameters
        ----------
        norm : NormType
            The misfit norm to minimise.
        quality : QualityType
            The quality factor measure.
        dataset : InputDataset
            The station picks to invert.
        channel : int
            The channel tag recorded on the result.
        run_type : RunType
            The run type recorded on the result.

        Returns
        -------
        FaultSolutions
            The full, trace-null and double-couple solutions. Each variant
            is degenerate if no station is usable.
        """
        active = dataset.picks["pick_active"].to_numpy(dtype=bool) & dataset.picks[
            "channel_active"
        ].to_numpy(dtype=bool)
        picks = dataset.picks.loc[active]
        design = greens_matrix(picks)
        displacement = picks["displacement"].to_numpy(dtype=float)
        usable = np.all(np.isfinite(design), axis=1) & np.isfinite(displacement)
        design = design[usable]
        displacement = displacement[usable]
        stations = picks["name"].to_numpy()[usable].tolist()

        if len(displacement) == 0 or not np.any(design):
            logger.debug(
                f"No usable stations for {run_type.value} run {channel} of {dataset.event_id}."
            )
            return FaultSolutions(
                FaultSolution.degenerate_solution(),
                FaultSolution.degenerate_solution(),
                FaultSolution.degenerate_solution(),
                run_type,
                channel,
            )

        full_components, full_covariance = _solve(design, displacement, norm)
        trace_null_parameters, trace_null_parameter_covariance = _solve(
            design @ TRACE_NULL_BASIS, displacement, norm
        )
        trace_null_components = TRACE_NULL_BASIS @ trace_null_parameters
        trace_null_covariance = (
            TRACE_NULL_BASIS @ trace_null_parameter_covariance @ TRACE_NULL_BASIS.T
        )
        if np.all(np.isfinite(trace_null_components)):
            double_couple_components = tensor_to_vector(
                double_couple_part(vector_to_tensor(trace_null_components))
            )
        else:
            double_couple_components = trace_null_components

        return FaultSolutions(
            full=_describe(
                full_components,
                full_covariance,
                design,
                displacement,
                stations,
                quality,
                6,
            ),
            trace_null=_describe(
                trace_null_components,
                trace_null_covariance,
                design,
                displacement,
                stations,
                quality,
                5,
            ),
            double_couple=_describe(
                double_couple_components,
                trace_null_covariance,
                design,
                displacement,
                stations,
                quality,
                4,
            ),
            run_type=run_type,
            channel=channel,
        )
