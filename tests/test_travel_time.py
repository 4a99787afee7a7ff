import io
from pathlib import Path

import numpy as np
import pytest

from moment_inversion import parse_utils, picks
from moment_inversion.travel_time import RayPath, StraightRayTravelTime, VelocityModel

VELOCITY_MODEL_EVENT_FILE = """\
evt001 2 1000.0 2000.0 5000.0 2700.0
ST01 ZZ P  1.0e-6 1000.0 5000.0 0.0
ST02 ZZ P -2.0e-6 4000.0 2000.0 500.0
"""


class FixedRayEngine:
    """Returns the same ray for every station and records each request."""

    def __init__(self, ray: RayPath):
        self.ray = ray
        self.calls = []

    def compute(
        self,
        station_elevation: float,
        source_depth: float,
        epicentral_distance: float,
        velocity_model: VelocityModel,
    ) -> RayPath:
        self.calls.append(
            (station_elevation, source_depth, epicentral_distance, velocity_model)
        )
        return self.ray


@pytest.fixture
def velocity_model() -> VelocityModel:
    return VelocityModel([0.0, 2.0, 10.0], [4.5, 5.8, 6.5])


@pytest.fixture
def engine() -> FixedRayEngine:
    return FixedRayEngine(
        RayPath(
            travel_time=1.2,
            takeoff=120.0,
            direct=True,
            incidence=60.0,
            segment_count=2,
            distance=6.5,
        )
    )


def test_read_velocity_model(tmp_path: Path):
    velocity_model_ffp = tmp_path / "model.txt"
    velocity_model_ffp.write_text("3\n0.0 2.0 10.0\n4.5 5.8 6.5\n")
    velocity_model = VelocityModel.read(velocity_model_ffp)
    assert velocity_model.tops.tolist() == [0.0, 2.0, 10.0]
    assert velocity_model.velocities.tolist() == [4.5, 5.8, 6.5]


@pytest.mark.parametrize(
    "contents",
    ["", "3\n0.0 2.0 10.0\n4.5 5.8\n", "x\n0.0\n4.5\n", "1\n0.0\nfast\n"],
)
def test_read_velocity_model_malformed(tmp_path: Path, contents: str):
    velocity_model_ffp = tmp_path / "model.txt"
    velocity_model_ffp.write_text(contents)
    with pytest.raises(parse_utils.ParseError):
        VelocityModel.read(velocity_model_ffp)


@pytest.mark.parametrize(
    "tops, velocities",
    [([], []), ([0.0, 2.0], [4.5]), ([2.0, 0.0], [4.5, 5.8])],
)
def test_invalid_velocity_model(tops: list[float], velocities: list[float]):
    with pytest.raises(ValueError):
        VelocityModel(tops, velocities)


@pytest.mark.parametrize(
    "depth, expected",
    [(-1.0, 4.5), (0.0, 4.5), (1.9, 4.5), (2.0, 5.8), (5.0, 5.8), (50.0, 6.5)],
)
def test_layer_velocity(velocity_model: VelocityModel, depth: float, expected: float):
    assert velocity_model.layer_velocity(depth) == expected


def test_straight_ray_vertical(velocity_model: VelocityModel):
    ray = StraightRayTravelTime().compute(0.5, 4.5, 0.0, velocity_model)
    assert ray.incidence == pytest.approx(0.0)
    assert ray.takeoff == pytest.approx(180.0)
    assert ray.distance == pytest.approx(5.0)
    assert ray.travel_time == pytest.approx(5.0 / 5.8)
    assert ray.direct
    assert ray.segment_count == 1


def test_straight_ray_oblique(velocity_model: VelocityModel):
    ray = StraightRayTravelTime().compute(0.0, 3.0, 4.0, velocity_model)
    assert ray.distance == pytest.approx(5.0)
    assert ray.incidence == pytest.approx(np.degrees(np.arctan2(4.0, 3.0)))
    assert ray.takeoff + ray.incidence == pytest.approx(180.0)


def test_read_velocity_model_events(
    velocity_model: VelocityModel, engine: FixedRayEngine
):
    (dataset,) = picks.read_velocity_model_events(
        io.StringIO(VELOCITY_MODEL_EVENT_FILE), velocity_model, engine
    )
    assert dataset.event_id == "evt001"
    assert list(dataset.ids) == [1, 2]
    assert list(dataset.picks["name"]) == ["ST01", "ST02"]
    assert list(dataset.picks.columns) == picks.PICK_COLUMNS
    # ST01 is due east of the event and ST02 due north.
    assert dataset.picks["azimuth"].tolist() == pytest.approx([90.0, 0.0])
    assert dataset.picks["takeoff"].tolist() == [120.0, 120.0]
    assert dataset.picks["incidence"].tolist() == [60.0, 60.0]
    assert dataset.picks["distance"].tolist() == pytest.approx([6500.0, 6500.0])
    assert dataset.picks["velocity"].tolist() == pytest.approx([5800.0, 5800.0])
    assert dataset.picks["density"].tolist() == [2700.0, 2700.0]
    # Displacements are divided by cos(60) = 0.5.
    assert dataset.picks["displacement"].tolist() == pytest.approx([2.0e-6, -4.0e-6])


def test_read_velocity_model_events_engine_requests(
    velocity_model: VelocityModel, engine: FixedRayEngine
):
    list(
        picks.read_velocity_model_events(
            io.StringIO(VELOCITY_MODEL_EVENT_FILE), velocity_model, engine
        )
    )
    assert len(engine.calls) == 2
    for (elevation, depth, distance, model), expected in zip(
        engine.calls, [(0.0, 5.0, 3.0), (0.5, 5.0, 3.0)]
    ):
        assert (elevation, depth, distance) == pytest.approx(expected)
        assert model is velocity_model


def test_read_velocity_model_events_southwest_azimuth(
    velocity_model: VelocityModel, engine: FixedRayEngine
):
    event_file = """\
evt001 1 0.0 0.0 -3000.0 2500.0
ST01 ZZ P 1.0e-6 -1000.0 -1000.0 0.0
"""
    (dataset,) = picks.read_velocity_model_events(
        io.StringIO(event_file), velocity_model, engine
    )
    assert dataset.get_value(0, "azimuth") == pytest.approx(225.0)
    # The event depth is taken as the absolute value of z.
    assert engine.calls[0][1] == pytest.approx(3.0)
    assert dataset.get_value(0, "velocity") == pytest.approx(5800.0)


def test_read_velocity_model_events_default_engine(velocity_model: VelocityModel):
    event_file = """\
evt001 1 0.0 0.0 4000.0 2700.0
ST01 ZZ P 1.0e-6 0.0 3000.0 0.0
"""
    (dataset,) = picks.read_velocity_model_events(io.StringIO(event_file), velocity_model)
    assert dataset.get_value(0, "distance") == pytest.approx(5000.0)
    assert dataset.get_value(0, "incidence") == pytest.approx(
        np.degrees(np.arctan2(3.0, 4.0))
    )
    assert dataset.get_value(0, "displacement") == pytest.approx(1.0e-6 / 0.8)


def test_read_velocity_model_events_skips_short_event(
    velocity_model: VelocityModel, engine: FixedRayEngine
):
    event_file = """\
evt001 2 0.0 0.0 4000.0 2700.0
ST01 ZZ P 1.0e-6 0.0 3000.0 0.0
evt002 1 0.0 0.0 4000.0 2700.0
ST01 ZZ P 1.0e-6 0.0 3000.0 0.0
"""
    datasets = list(
        picks.read_velocity_model_events(io.StringIO(event_file), velocity_model, engine)
    )
    assert [dataset.event_id for dataset in datasets] == ["evt002"]


def test_read_events_file_with_velocity_model(
    tmp_path: Path, velocity_model: VelocityModel, engine: FixedRayEngine
):
    input_ffp = tmp_path / "events.txt"
    input_ffp.write_text(VELOCITY_MODEL_EVENT_FILE)
    datasets = picks.read_events_file(input_ffp, velocity_model, engine)
    assert [len(dataset) for dataset in datasets] == [2]
    assert len(engine.calls) == 2
