"""Module for reading and representing station picks for a seismic event.

An input file contains one or more events. Each event begins with a
header line

    <event-id> <station-count>

followed by one line per station

    name component phase displacement azimuth incidence takeoff velocity distance density

where displacement is the area below the first P-wave pulse, angles
are in degrees, velocity is in m/s, distance is in m and density is in
kg/m^3.

Alternatively, station geometry can be derived from a velocity model.
Each event then begins with the header

    <event-id> <station-count> <northing> <easting> <z> <density>

followed by one line per station

    name component phase displacement northing easting z

where coordinates are in m and z is positive downwards for the event
and upwards for stations.

Classes
-------
- InputDataset: The picks for a single event.

Functions
---------
- read_events: Read every well-formed event from an input file.
- read_velocity_model_events: Read every well-formed event, deriving
  station geometry from a velocity model.

Example
-------
>>> with open('events.txt') as handle:
...     for dataset in picks.read_events(handle):
...         working = dataset.clone()
...         working.remove(0) # the nominal dataset is unaffected
"""

import dataclasses
import functools
import logging
from collections.abc import Callable, Generator, Iterable, Iterator
from pathlib import Path
from typing import Any, Optional, Self, TextIO

import numpy as np
import pandas as pd

from moment_inversion import parse_utils
from moment_inversion.travel_time import (
    StraightRayTravelTime,
    TravelTimeEngine,
    VelocityModel,
)

logger = logging.getLogger(__name__)

PICK_DTYPES = {
    "name": str,
    "id": int,
    "component": str,
    "phase": str,
    "displacement": float,
    "incidence": float,
    "azimuth": float,
    "takeoff": float,
    "distance": float,
    "density": float,
    "velocity": float,
    "pick_active": bool,
    "channel_active": bool,
}

PICK_COLUMNS = list(PICK_DTYPES)


@dataclasses.dataclass
class InputDataset:
    """The ordered station picks for one seismic event.

    Attributes
    ----------
    event_id : str
        The identifier of the event.
    picks : pd.DataFrame
        The station picks, one row per station in the order they were
        read. The columns are:

        - name: station name.
        - id: 1-based station id, assigned in file order at load time.
        - component: recording component, e.g. ZZ.
        - phase: phase marker type.
        - displacement: first P-wave pulse moment, corrected for incidence (m s).
        - incidence: angle of incidence (degrees).
        - azimuth: source to station azimuth (degrees).
        - takeoff: takeoff angle measured from the downward vertical (degrees).
        - distance: source to station distance (m).
        - density: density at the source (kg/m^3).
        - velocity: P-wave velocity at the source (m/s).
        - pick_active: whether the pick is used.
        - channel_active: whether the channel is used.

    Notes
    -----
    The dataset read from a file is the nominal dataset and is never
    modified. Resampling operates on `clone()`s, which own their picks
    and can be freely modified with `remove` and `set_value`.
    """

    event_id: str
    picks: pd.DataFrame

    @classmethod
    def from_records(cls, event_id: str, records: Iterable[dict[str, Any]]) -> Self:
        """Build a dataset from station records, assigning station ids.

        Parameters
        ----------
        event_id : str
            The identifier of the event.
        records : Iterable[dict[str, Any]]
            Station records containing every column of `PICK_COLUMNS`
            except for id, pick_active and channel_active.

        Returns
        -------
        InputDataset
            The dataset, with ids 1..N in record order and all picks active.
        """
        picks = pd.DataFrame(
            [
                {
                    **record,
                    "id": i + 1,
                    "pick_active": True,
                    "channel_active": True,
                }
                for i, record in enumerate(records)
            ],
            columns=PICK_COLUMNS,
        )
        return cls(event_id, picks.astype(PICK_DTYPES))

    def __len__(self) -> int:
        """
        Returns
        -------
        int
            The number of stations in the dataset.
        """
        return len(self.picks)

    @property
    def ids(self) -> np.ndarray:  # numpydoc ignore=RT01
        """np.ndarray: The station ids, in dataset order."""
        return self.picks["id"].to_numpy()

    def clone(self) -> Self:
        """Create an independently owned copy of the dataset.

        Returns
        -------
        InputDataset
            A copy sharing no state with this dataset.
        """
        return dataclasses.replace(self, picks=self.picks.copy(deep=True))

    def get_value(self, index: int, column: str) -> Any:
        """Get the value of a column for the station at a position.

        Parameters
        ----------
        index : int
            The position of the station in the dataset.
        column : str
            The column to read.

        Returns
        -------
        Any
            The value of the column.
        """
        return self.picks[column].iat[index]

    def set_value(self, index: int, column: str, value: Any) -> None:
        """Set the value of a column for the station at a position.

        Parameters
        ----------
        index : int
            The position of the station in the dataset.
        column : str
            The column to write.
        value : Any
            The new value.
        """
        self.picks.iat[index, self.picks.columns.get_loc(column)] = value

    def remove(self, index: int) -> None:
        """Remove the station at a position.

        Stations after `index` move up one position. Station ids are
        not renumbered.

        Parameters
        ----------
        index : int
            The position of the station to remove.
        """
        self.picks = self.picks.drop(self.picks.index[index]).reset_index(drop=True)



HEADER_FIELD_COUNT = 2
STATION_FIELD_COUNT = 10
VELOCITY_MODEL_HEADER_FIELD_COUNT = 6
VELOCITY_MODEL_STATION_FIELD_COUNT = 7

EventHeader = tuple[str, int, Callable[[str], dict[str, Any]]]
"""The event id, station count and station line reader of an event."""


def _read_station_count(value: str) -> int:
    station_count = parse_utils.read_int(value, "station count")
    if station_count < 0:
        raise parse_utils.ParseError(
            f"Expected non-negative station count, received: {station_count}."
        )
    return station_count


def _vertical_displacement(displacement: str, incidence: float) -> float:
    # The pulse is recorded on a vertical sensor.
    return parse_utils.read_float(displacement, "displacement") / np.cos(
        np.radians(incidence)
    )


def _read_station(line: str) -> dict[str, Any]:
    """Read a single station line.

    Parameters
    ----------
    line : str
        The station line.

    Returns
    -------
    dict[str, Any]
        The station record.
    """
    (
        name,
        component,
        phase,
        displacement,
        azimuth,
        incidence,
        takeoff,
        velocity,
        distance,
        density,
    ) = parse_utils.split_fields(line, STATION_FIELD_COUNT, "station line")
    incidence_deg = parse_utils.read_float(incidence, "incidence")
    return {
        "name": name,
        "component": component,
        "phase": phase,
        "displacement": _vertical_displacement(displacement, incidence_deg),
        "incidence": incidence_deg,
        "azimuth": parse_utils.read_float(azimuth, "azimuth"),
        "takeoff": parse_utils.read_float(takeoff, "takeoff"),
        "distance": parse_utils.read_float(distance, "distance"),
        "density": parse_utils.read_float(density, "density"),
        "velocity": parse_utils.read_float(velocity, "velocity"),
    }


def _read_header(line: str) -> EventHeader:
    event_id, station_count = parse_utils.split_fields(
        line, HEADER_FIELD_COUNT, "event header"
    )
    return event_id, _read_station_count(station_count), _read_station


def _read_velocity_model_station(
    line: str,
    source_northing: float,
    source_easting: float,
    source_z: float,
    density: float,
    velocity_model: VelocityModel,
    travel_time_engine: TravelTimeEngine,
) -> dict[str, Any]:
    """Read a single station line, deriving its geometry from a velocity model.

    Parameters
    ----------
    line : str
        The station line.
    source_northing : float
        Northing of the event (m).
    source_easting : float
        Easting of the event (m).
    source_z : float
        Depth of the event (m).
    density : float
        Density at the event (kg/m^3).
    velocity_model : VelocityModel
        The velocity model.
    travel_time_engine : TravelTimeEngine
        The engine computing the ray to the station.

    Returns
    -------
    dict[str, Any]
        The station record.
    """
    (
        name,
        component,
        phase,
        displacement,
        northing,
        easting,
        z,
    ) = parse_utils.split_fields(line, VELOCITY_MODEL_STATION_FIELD_COUNT, "station line")
    delta_northing = parse_utils.read_float(northing, "northing") - source_northing
    delta_easting = parse_utils.read_float(easting, "easting") - source_easting
    source_depth = abs(source_z) / 1000
    ray = travel_time_engine.compute(
        parse_utils.read_float(z, "z") / 1000,
        source_depth,
        np.hypot(delta_northing, delta_easting) / 1000,
        velocity_model,
    )
    return {
        "name": name,
        "component": component,
        "phase": phase,
        "displacement": _vertical_displacement(displacement, ray.incidence),
        "incidence": ray.incidence,
        "azimuth": np.degrees(np.arctan2(delta_easting, delta_northing)) % 360,
        "takeoff": ray.takeoff,
        "distance": ray.distance * 1000,
        "density": density,
        "velocity": velocity_model.layer_velocity(source_depth) * 1000,
    }


def _read_velocity_model_header(
    line: str, velocity_model: VelocityModel, travel_time_engine: TravelTimeEngine
) -> EventHeader:
    event_id, station_count, northing, easting, z, density = parse_utils.split_fields(
        line, VELOCITY_MODEL_HEADER_FIELD_COUNT, "event header"
    )
    read_station = functools.partial(
        _read_velocity_model_station,
        source_northing=parse_utils.read_float(northing, "northing"),
        source_easting=parse_utils.read_float(easting, "easting"),
        source_z=parse_utils.read_float(z, "z"),
        density=parse_utils.read_float(density, "density"),
        velocity_model=velocity_model,
        travel_time_engine=travel_time_engine,
    )
    return event_id, _read_station_count(station_count), read_station


def _read_events(
    lines: Iterator[str],
    header_field_count: int,
    read_header: Callable[[str], EventHeader],
) -> Generator[InputDataset, None, None]:
    """Read every well-formed event from non-blank input lines.

    A line with as many fields as a header, found where a station line
    is expected, ends the current event early and starts the next one.
    """
    pending = next(lines, None)
    while pending is not None:
        header, pending = pending, None
        try:
            event_id, station_count, read_station = read_header(header)
        except parse_utils.ParseError as e:
            logger.warning(f"Skipping malformed event header: {e}")
            pending = next(lines, None)
            continue

        station_lines: list[str] = []
        while len(station_lines) < station_count:
            line = next(lines, None)
            if line is None or len(line.split()) == header_field_count:
                pending = line
                break
            station_lines.append(line)

        if len(station_lines) < station_count:
            logger.warning(
                f"Skipping event {event_id}: expected {station_count} stations, found {len(station_lines)}."
            )
            continue

        try:
            dataset = InputDataset.from_records(
                event_id, [read_station(line) for line in station_lines]
            )
        except parse_utils.ParseError as e:
            logger.warning(f"Skipping event {event_id}: {e}")
        else:
            yield dataset
        pending = next(lines, None)


def read_events(handle: TextIO) -> Generator[InputDataset, None, None]:
    """Read every well-formed event from an input file.

    Malformed events are skipped entirely and reading continues with
    the next event. An event with fewer station lines than its header
    states is skipped.

    Parameters
    ----------
    handle : TextIO
        The file to read from.

    Yields
    ------
    InputDataset
        The nominal dataset of each event, in file order.
    """
    lines = (line for line in handle if line.strip())
    yield from _read_events(lines, HEADER_FIELD_COUNT, _read_header)


def read_velocity_model_events(
    handle: TextIO,
    velocity_model: VelocityModel,
    travel_time_engine: Optional[TravelTimeEngine] = None,
) -> Generator[InputDataset, None, None]:
    """Read every well-formed event from a velocity model input file.

    The azimuth of each station is computed from the event and station
    coordinates. The takeoff angle, angle of incidence and ray length
    come from the travel-time engine, and the velocity is that of the
    layer containing the event.

    Parameters
    ----------
    handle : TextIO
        The file to read from.
    velocity_model : VelocityModel
        The velocity model.
    travel_time_engine : TravelTimeEngine, optional
        The engine computing station rays. Defaults to straight rays.

    Yields
    ------
    InputDataset
        The nominal dataset of each event, in file order.
    """
    read_header = functools.partial(
        _read_velocity_model_header,
        velocity_model=velocity_model,
        travel_time_engine=travel_time_engine or StraightRayTravelTime(),
    )
    lines = (line for line in handle if line.strip())
    yield from _read_events(lines, VELOCITY_MODEL_HEADER_FIELD_COUNT, read_header)


def read_events_file(
    input_ffp: Path,
    velocity_model: Optional[VelocityModel] = None,
    travel_time_engine: Optional[TravelTimeEngine] = None,
) -> list[InputDataset]:
    """Read every well-formed event from an input filepath.

    Parameters
    ----------
    input_ffp : Path
        The filepath of the input file.
    velocity_model : VelocityModel, optional
        If given, the input file is read in the velocity model format.
    travel_time_engine : TravelTimeEngine, optional
        The engine computing station rays in the velocity model format.

    Returns
    -------
    list[InputDataset]
        The nominal dataset of each event, in file order.
    """
    with open(input_ffp, mode="r", encoding="utf-8") as input_file_handle:
        if velocity_model is not None:
            return list(
                read_velocity_model_events(
                    input_file_handle, velocity_model, travel_time_engine
                )
            )
        return list(read_events(input_file_handle))
