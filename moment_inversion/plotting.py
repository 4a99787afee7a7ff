"""Focal sphere plots of moment tensor solutions.

Solutions are drawn on a lower hemisphere equal-area (Schmidt)
projection. The nodal planes of every resampled run are drawn in grey
beneath the nodal planes of the nominal run, so the spread of the grey
lines shows the uncertainty of the mechanism.
"""

from pathlib import Path
from typing import Optional

import numpy as np
from matplotlib import pyplot as plt

from moment_inversion.picks import InputDataset
from moment_inversion.solution import (
    NodalPlane,
    SolutionCollection,
    SolutionVariant,
)

PLOT_FORMATS = ["PNG", "SVG", "PS", "PDF"]


def project(trend: np.ndarray, plunge: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Project downward directions onto the unit equal-area stereonet.

    Parameters
    ----------
    trend : np.ndarray
        Direction trends (degrees, clockwise from North).
    plunge : np.ndarray
        Direction plunges (degrees, positive downwards).

    Returns
    -------
    np.ndarray
        The x (East) coordinates.
    np.ndarray
        The y (North) coordinates.
    """
    radius = np.sqrt(2) * np.sin(np.radians(90 - np.asarray(plunge)) / 2)
    trend_rad = np.radians(trend)
    return radius * np.sin(trend_rad), radius * np.cos(trend_rad)


def nodal_plane_curve(
    plane: NodalPlane, points: int = 181
) -> tuple[np.ndarray, np.ndarray]:
    """Trace the intersection of a nodal plane with the lower hemisphere.

    Parameters
    ----------
    plane : NodalPlane
        The plane to trace.
    points : int
        The number of points on the curve.

    Returns
    -------
    np.ndarray
        The x (East) coordinates of the curve.
    np.ndarray
        The y (North) coordinates of the curve.
    """
    strike = np.radians(plane.strike)
    dip = np.radians(plane.dip)
    angle = np.linspace(0, np.pi, points)
    strike_direction = np.array([np.cos(strike), np.sin(strike), 0.0])
    dip_direction = np.array(
        [
            np.cos(dip) * np.cos(strike + np.pi / 2),
            np.cos(dip) * np.sin(strike + np.pi / 2),
            np.sin(dip),
        ]
    )
    directions = np.outer(np.cos(angle), strike_direction) + np.outer(
        np.sin(angle), dip_direction
    )
    trend = np.degrees(np.arctan2(directions[:, 1], directions[:, 0]))
    plunge = np.degrees(np.arcsin(np.clip(directions[:, 2], -1, 1)))
    return project(trend, plunge)


def station_positions(dataset: InputDataset) -> tuple[np.ndarray, np.ndarray]:
    """Project the ray directions of every station onto the stereonet.

    Upgoing rays are drawn at their antipodes.

    Parameters
    ----------
    dataset : InputDataset
        The station picks.

    Returns
    -------
    np.ndarray
        The x (East) coordinates of the stations.
    np.ndarray
        The y (North) coordinates of the stations.
    """
    takeoff = dataset.picks["takeoff"].to_numpy(dtype=float)
    azimuth = dataset.picks["azimuth"].to_numpy(dtype=float)
    upgoing = takeoff > 90
    trend = np.where(upgoing, azimuth + 180, azimuth)
    plunge = np.where(upgoing, takeoff - 90, 90 - takeoff)
    return project(trend, plunge)


def plot_filepath(
    event_id: str,
    variant: SolutionVariant,
    plot_format: str,
    output_base: Optional[Path] = None,
) -> Path:
    """Get the filepath of a focal sphere plot.

    Parameters
    ----------
    event_id : str
        The identifier of the event.
    variant : SolutionVariant
        The plotted solution variant.
    plot_format : str
        One of `PLOT_FORMATS`.
    output_base : Path, optional
        The common output base name. If it has a directory component
        the plot is written to that directory, otherwise the base name
        prefixes the file name.

    Returns
    -------
    Path
        The plot filepath.
    """
    filename = f"{event_id}-{variant.suffix}.{plot_format.lower()}"
    if output_base is None:
        return Path(filename)
    if output_base.parent == Path("."):
        return Path(f"{output_base}-{filename}")
    return output_base.parent / filename


def plot_focal_sphere(
    collection: SolutionCollection,
    dataset: InputDataset,
    variant: SolutionVariant,
    output_ffp: Path,
    size: int = 500,
) -> None:
    """Plot a collection of solutions on the focal sphere.

    Parameters
    ----------
    collection : SolutionCollection
        The solutions to plot. The first (nominal) run is highlighted.
    dataset : InputDataset
        The nominal station picks. Compressional first motions are
        drawn as filled circles and dilatational first motions as open
        circles.
    variant : SolutionVariant
        The solution variant to plot.
    output_ffp : Path
        The output image path. The format is inferred from the suffix.
    size : int
        The image size in pixels.
    """
    dpi = 100
    fig, ax = plt.subplots(figsize=(size / dpi, size / dpi), dpi=dpi)
    try:
        ax.add_patch(plt.Circle((0, 0), 1, fill=False, color="black", linewidth=1.5))

        for solutions in collection[1:]:
            solution = solutions.variant(variant)
            for plane in (solution.plane_a, solution.plane_b):
                ax.plot(*nodal_plane_curve(plane), color="grey", linewidth=0.3, alpha=0.5)

        nominal = collection.nominal.variant(variant)
        for plane in (nominal.plane_a, nominal.plane_b):
            ax.plot(*nodal_plane_curve(plane), color="black", linewidth=1.5)

        for axis, label in ((nominal.p_axis, "P"), (nominal.t_axis, "T")):
            if nominal.degenerate:
                break
            x, y = project(axis.trend, axis.plunge)
            ax.text(x, y, label, ha="center", va="center", fontweight="bold")

        x, y = station_positions(dataset)
        compression = dataset.picks["displacement"].to_numpy(dtype=float) > 0
        ax.scatter(x[compression], y[compression], color="black", s=20, zorder=3)
        ax.scatter(
            x[~compression],
            y[~compression],
            facecolors="white",
            edgecolors="black",
            s=20,
            zorder=3,
        )

        ax.set_xlim(-1.05, 1.05)
        ax.set_ylim(-1.05, 1.05)
        ax.set_aspect("equal")
        ax.axis("off")
        ax.set_title(f"{collection.event_id} ({variant.suffix})")
        fig.savefig(output_ffp)
    finally:
        plt.close(fig)
