"""Station geometry from a 1D layered velocity model.

When station geometry is not measured directly, the takeoff angle,
angle of incidence and ray length of every station are computed from
the event and station coordinates by a travel-time engine.

Velocity model files contain the number of layers n, followed by the n
layer top depths (km) and then the n layer P-wave velocities (km/s),
separated by whitespace:

    3
    0.0 2.0 10.0
    4.5 5.8 6.5

Classes
-------
- VelocityModel: A 1D layered velocity model.
- RayPath: The ray between a source and a station.
- TravelTimeEngine: Protocol for computing ray paths.
- StraightRayTravelTime: Straight rays through the source layer.
"""

import dataclasses
from pathlib import Path
from typing import NamedTuple, Protocol, Self

import numpy as np

from moment_inversion import parse_utils


@dataclasses.dataclass
class VelocityModel:
    """A 1D layered velocity model.

    Attributes
    ----------
    tops : np.ndarray
        Depth of the top of each layer (km), increasing.
    velocities : np.ndarray
        P-wave velocity of each layer (km/s).
    """

    tops: np.ndarray
    velocities: np.ndarray

    def __post_init__(self):
        self.tops = np.asarray(self.tops, dtype=float)
        self.velocities = np.asarray(self.velocities, dtype=float)
        if len(self.tops) == 0 or self.tops.shape != self.velocities.shape:
            raise ValueError(
                "A velocity model needs one velocity for each of at least one layer top."
            )
        if np.any(np.diff(self.tops) < 0):
            raise ValueError("Velocity model layer tops must be increasing.")

    @classmethod
    def read(cls, velocity_model_ffp: Path) -> Self:
        """Read a velocity model file.

        Parameters
        ----------
        velocity_model_ffp : Path
            The velocity model filepath.

        Returns
        -------
        VelocityModel
            The velocity model.

        Raises
        ------
        ParseError
            If the file does not contain a layer count followed by that
            many layer tops and velocities.
        """
        with open(velocity_model_ffp, mode="r", encoding="utf-8") as velocity_model_file:
            fields = velocity_model_file.read().split()
        if not fields:
            raise parse_utils.ParseError("Empty velocity model file.")
        layer_count = parse_utils.read_int(fields[0], "layer count")
        if len(fields) != 1 + 2 * layer_count:
            raise parse_utils.ParseError(
                f"Expecting {2 * layer_count} layer values, got {len(fields) - 1}."
            )
        values = [parse_utils.read_float(value, "layer value") for value in fields[1:]]
        return cls(values[:layer_count], values[layer_count:])

    def layer_velocity(self, depth: float) -> float:
        """Get the velocity of the layer containing a depth.

        Parameters
        ----------
        depth : float
            The depth (km).

        Returns
        -------
        float
            The velocity of the deepest layer whose top is at or above
            `depth` (km/s). Depths above the first layer top use the
            first layer.
        """
        layer = np.searchsorted(self.tops, depth, side="right") - 1
        return float(self.velocities[max(layer, 0)])


class RayPath(NamedTuple):
    """The ray between a source and a station."""

    travel_time: float
    """Travel time of the ray (s)."""
    takeoff: float
    """Takeoff angle at the source, measured from the downward vertical (degrees)."""
    direct: bool
    """True if the ray is the direct phase."""
    incidence: float
    """Angle of incidence at the station, measured from the vertical (degrees)."""
    segment_count: int
    """The number of straight segments in the ray."""
    distance: float
    """Length of the ray (km)."""


class TravelTimeEngine(Protocol):
    """A travel-time engine used to derive station geometry."""

    def compute(
        self,
        station_elevation: float,
        source_depth: float,
        epicentral_distance: float,
        velocity_model: VelocityModel,
    ) -> RayPath:
        """Compute the first arriving ray from a source to a station.

        Parameters
        ----------
        station_elevation : float
            Elevation of the station (km).
        source_depth : float
            Depth of the source (km).
        epicentral_distance : float
            Horizontal source to station distance (km).
        velocity_model : VelocityModel
            The velocity model.

        Returns
        -------
        RayPath
            The ray path.
        """
        ...


class StraightRayTravelTime:
    """Straight rays at the velocity of the layer containing the source.

    Ignores refraction at layer boundaries, so it is only appropriate
    when stations are close to the source compared to the layer
    thicknesses.
    """

    def compute(
        self,
        station_elevation: float,
        source_depth: float,
        epicentral_distance: float,
        velocity_model: VelocityModel,
    ) -> RayPath:
        """Compute the straight ray from a source to a station.

        Parameters
        ----------
        station_elevation : float
            Elevation of the station (km).
        source_depth : float
            Depth of the source (km).
        epicentral_distance : float
            Horizontal source to station distance (km).
        velocity_model : VelocityModel
            The velocity model.

        Returns
        -------
        RayPath
            The ray path.
        """
        height = source_depth + station_elevation
        distance = np.hypot(epicentral_distance, height)
        # Angle of the upgoing ray from the upward vertical.
        incidence = np.degrees(np.arctan2(epicentral_distance, height))
        return RayPath(
            travel_time=distance / velocity_model.layer_velocity(source_depth),
            takeoff=180.0 - incidence,
            direct=True,
            incidence=incidence,
            segment_count=1,
            distance=distance,
        )
