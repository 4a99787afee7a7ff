"""Utility functions for working with seismic moment and moment tensors.

Moment tensors are 3x3 symmetric numpy arrays in Nm with axes
(1, 2, 3) = (North, East, Down).
"""

from typing import NamedTuple

import numpy as np
import numpy.typing as npt


class Decomposition(NamedTuple):
    """Percentages of the isotropic, CLVD and double-couple components."""

    explosion: float
    """Isotropic (explosive) component (%), negative for implosions."""
    clvd: float
    """Compensated linear vector dipole component (%)."""
    double_couple: float
    """Double-couple component (%)."""


def moment_to_magnitude(moment: float) -> float:
    """Convert moment to magnitude.

    Parameters
    ----------
    moment : float
        The scalar moment in Nm.

    Returns
    -------
    float
        Moment magnitude.
    """
    return 2 / 3 * np.log10(moment) - 6.03333


def _deviatoric_eigenvalues(moment_tensor: npt.ArrayLike) -> tuple[float, np.ndarray]:
    """Split a moment tensor into its isotropic part and deviatoric eigenvalues.

    The deviatoric eigenvalues are returned sorted by absolute value
    (smallest first).
    """
    eigenvalues = np.linalg.eigvalsh(np.asarray(moment_tensor, dtype=float))
    isotropic = eigenvalues.sum() / 3
    deviatoric = eigenvalues - isotropic
    return isotropic, deviatoric[np.argsort(np.abs(deviatoric))]


def scalar_moment(moment_tensor: npt.ArrayLike) -> float:
    """Compute the scalar (double-couple) moment of a moment tensor.

    Parameters
    ----------
    moment_tensor : array like
        The 3x3 moment tensor (Nm).

    Returns
    -------
    float
        Mean of the absolute largest and smallest deviatoric eigenvalues
        (Nm).
    """
    _, deviatoric = _deviatoric_eigenvalues(moment_tensor)
    return (np.abs(deviatoric[-1]) + np.abs(deviatoric[0])) / 2


def total_moment(moment_tensor: npt.ArrayLike) -> float:
    """Compute the total moment of a moment tensor.

    The total moment is the sum of the absolute isotropic moment and
    the absolute largest deviatoric eigenvalue.

    Parameters
    ----------
    moment_tensor : array like
        The 3x3 moment tensor (Nm).

    Returns
    -------
    float
        The total moment (Nm).
    """
    isotropic, deviatoric = _deviatoric_eigenvalues(moment_tensor)
    return np.abs(isotropic) + np.abs(deviatoric[-1])


def standard_decomposition(moment_tensor: npt.ArrayLike) -> Decomposition:
    """Decompose a moment tensor into isotropic, CLVD and double-couple parts.

    Uses the convention of Jost and Herrmann (1989) as extended for
    the isotropic part:

    EXPL = 100 * M_iso / (|M_iso| + |e_max|)
    CLVD = 2 * eps * (100 - |EXPL|)
    DBCP = 100 - |EXPL| - |CLVD|

    where e_max is the deviatoric eigenvalue of largest absolute value
    and eps = -e_min / |e_max|.

    Parameters
    ----------
    moment_tensor : array like
        The 3x3 moment tensor (Nm).

    Returns
    -------
    Decomposition
        The component percentages. All NaN for a zero tensor.
    """
    isotropic, deviatoric = _deviatoric_eigenvalues(moment_tensor)
    total = np.abs(isotropic) + np.abs(deviatoric[-1])
    if total == 0:
        return Decomposition(np.nan, np.nan, np.nan)
    explosion = 100 * isotropic / total
    if deviatoric[-1] == 0:
        return Decomposition(explosion, 0.0, 0.0)
    epsilon = np.clip(-deviatoric[0] / np.abs(deviatoric[-1]), -0.5, 0.5)
    clvd = 2 * epsilon * (100 - np.abs(explosion))
    double_couple = 100 - np.abs(explosion) - np.abs(clvd)
    return Decomposition(explosion, clvd, double_couple)


def vavrycuk_decomposition(moment_tensor: npt.ArrayLike) -> Decomposition:
    """Decompose a moment tensor following Vavryčuk (2015).

    With eigenvalues e1 >= e2 >= e3:

    M_iso = (e1 + e2 + e3) / 3
    M_clvd = 2 / 3 * (e1 + e3 - 2 * e2)
    M_dc = (e1 - e3 - |e1 + e3 - 2 * e2|) / 2

    and each percentage is normalised by |M_iso| + |M_clvd| + M_dc.

    Parameters
    ----------
    moment_tensor : array like
        The 3x3 moment tensor (Nm).

    Returns
    -------
    Decomposition
        The component percentages. All NaN for a zero tensor.

    References
    ----------
    Vavryčuk, V. (2015). Moment tensor decompositions revisited.
    Journal of Seismology, 19(1), 231-252.
    """
    e3, e2, e1 = np.linalg.eigvalsh(np.asarray(moment_tensor, dtype=float))
    isotropic = (e1 + e2 + e3) / 3
    clvd = 2 / 3 * (e1 + e3 - 2 * e2)
    double_couple = (e1 - e3 - np.abs(e1 + e3 - 2 * e2)) / 2
    norm = np.abs(isotropic) + np.abs(clvd) + double_couple
    if norm == 0:
        return Decomposition(np.nan, np.nan, np.nan)
    return Decomposition(
        100 * isotropic / norm, 100 * clvd / norm, 100 * double_couple / norm
    )
