import warnings
from pathlib import Path

import numpy as np
import pytest

from moment_inversion import output
from moment_inversion.inversion import FirstPulseInversion, NormType, QualityType
from moment_inversion.picks import InputDataset
from moment_inversion.resampling import JackknifeTest, RandomSource, ResamplingOrchestrator
from moment_inversion.solution import (
    FaultSolution,
    FaultSolutions,
    FaultType,
    NodalPlane,
    PrincipalAxis,
    RunType,
    SolutionCollection,
    SolutionVariant,
)


@pytest.fixture
def solution() -> FaultSolution:
    return FaultSolution(
        moment_tensor=np.array(
            [[1.5e12, -2.0e11, 3.0e10], [-2.0e11, -1.0e12, 4.0e11], [3.0e10, 4.0e11, -5.0e11]]
        ),
        scalar_moment=1.4e12,
        total_moment=1.6e12,
        error=2.0e10,
        magnitude=2.07,
        quality=87.5,
        displacement_error=1.2e-7,
        explosion=0.0,
        clvd=-12.3,
        double_couple=87.7,
        explosion_vavrycuk=0.0,
        clvd_vavrycuk=-10.1,
        double_couple_vavrycuk=89.9,
        plane_a=NodalPlane(123.4, 56.7, -89.0),
        plane_b=NodalPlane(301.2, 33.4, -91.5),
        p_axis=PrincipalAxis(210.0, 78.0, -1.4e12),
        t_axis=PrincipalAxis(32.0, 12.0, 1.5e12),
        b_axis=PrincipalAxis(302.0, 0.5, -1.0e11),
        eigenvalues=[1.5e12, -1.0e11, -1.4e12],
        fault_type=FaultType.NORMAL,
        covariance=np.diag([1.0, 2.0, 3.0, 4.0, 5.0, 6.0]) * 1e20,
        stations=["ST01", "ST02"],
        measured_displacement=[1.0e-6, -2.0e-6],
        theoretical_displacement=[0.9e-6, -2.1e-6],
    )


@pytest.fixture
def solutions(solution: FaultSolution) -> FaultSolutions:
    return FaultSolutions(solution, solution.copy(), solution.copy())


def three_station_dataset() -> InputDataset:
    return InputDataset.from_records(
        "evt001",
        [
            {
                "name": name,
                "component": "ZZ",
                "phase": "P",
                "displacement": displacement,
                "incidence": 0.0,
                "azimuth": azimuth,
                "takeoff": takeoff,
                "distance": 10000.0,
                "density": 2700.0,
                "velocity": 5000.0,
            }
            for name, displacement, azimuth, takeoff in [
                ("ST01", 1.0e-6, 10.0, 30.0),
                ("ST02", -2.0e-6, 130.0, 60.0),
                ("ST03", 1.5e-6, 250.0, 100.0),
            ]
        ],
    )


@pytest.mark.parametrize("code", list(output.FIELD_GROUPS))
def test_uppercase_and_lowercase_agree(solutions: FaultSolutions, code: str):
    upper, _ = output.encode_row(solutions, SolutionVariant.FULL, code)
    lower, _ = output.encode_row(solutions, SolutionVariant.FULL, code.lower())

    upper_values = [float(value) for value in upper.strip().split(output.SEP)[2:]]
    lower_values = [float(value) for value in lower.split()[2:]]
    group = output.FIELD_GROUPS[code]
    assert len(upper_values) == len(group.formats)
    assert lower_values == pytest.approx(upper_values, rel=1e-2, abs=0.1)


@pytest.mark.parametrize("code", ["M", "C", "D", "A", "F", "W", "V"])
def test_mixed_case_row_agrees(solutions: FaultSolutions, code: str):
    row, _ = output.encode_row(
        solutions, SolutionVariant.DOUBLE_COUPLE, code + code.lower()
    )
    prefix = "N     0"
    assert row.startswith(prefix)
    upper_field, *lower_fields = row[len(prefix) :].split()
    upper_values = [float(value) for value in upper_field.split(output.SEP)[1:]]
    lower_values = [float(value) for value in lower_fields]
    assert len(upper_values) == len(lower_values)
    assert lower_values == pytest.approx(upper_values, rel=1e-2, abs=0.1)


def test_row_prefix(solutions: FaultSolutions):
    row, displacement_row = output.encode_row(solutions, SolutionVariant.FULL, "Q")
    assert row == "N,0,8.750000e+01\n"
    assert displacement_row is None

    jackknife = FaultSolutions(
        solutions.full, solutions.trace_null, solutions.double_couple, RunType.JACKKNIFE, 12
    )
    row, _ = output.encode_row(jackknife, SolutionVariant.FULL, "q")
    assert row == "J    12  87.5\n"


def test_moment_tensor_fields(solutions: FaultSolutions):
    row, _ = output.encode_row(solutions, SolutionVariant.FULL, "M")
    assert row.strip().split(output.SEP)[2:] == [
        "1.500000e+12",
        "-2.000000e+11",
        "3.000000e+10",
        "-1.000000e+12",
        "4.000000e+11",
        "-5.000000e+11",
    ]


def test_cmt_fields(solutions: FaultSolutions):
    row, _ = output.encode_row(solutions, SolutionVariant.FULL, "C")
    values = [float(value) for value in row.strip().split(output.SEP)[2:]]
    # Mrr Mtt Mpp Mrt Mrp Mtp
    assert values == pytest.approx([-5.0e11, 1.5e12, -1.0e12, 3.0e10, -4.0e11, 2.0e11])


def test_fault_type_fields(solutions: FaultSolutions):
    row, _ = output.encode_row(solutions, SolutionVariant.FULL, "T")
    assert row == "N,0,Normal fault\n"

    degenerate = FaultSolution.degenerate_solution()
    row, _ = output.encode_row(
        FaultSolutions(degenerate, degenerate, degenerate), SolutionVariant.DOUBLE_COUPLE, "Tt"
    )
    assert row == "N     0,Undetermined Undetermined\n"


def test_line_break_and_unknown_codes(solutions: FaultSolutions):
    row, _ = output.encode_row(solutions, SolutionVariant.FULL, "Q*XQ")
    assert row == "N,0,8.750000e+01\n,8.750000e+01\n"


def test_displacement_row(solutions: FaultSolutions):
    row, displacement_row = output.encode_row(solutions, SolutionVariant.FULL, "QU")
    assert row == "N,0,8.750000e+01\n"
    assert displacement_row == (
        "N,0,2\n"
        "ST01,1.000000e-06,9.000000e-07\n"
        "ST02,-2.000000e-06,-2.100000e-06\n"
    )


def test_dump_order_flags():
    assert output.is_formatted("MDq")
    assert not output.is_formatted("MDQ*")
    assert output.exports_displacements("Mu")
    assert not output.exports_displacements("MDQ")


def test_parse_variants():
    assert output.parse_variants("FTD") == [
        SolutionVariant.FULL,
        SolutionVariant.TRACE_NULL,
        SolutionVariant.DOUBLE_COUPLE,
    ]
    with pytest.raises(ValueError):
        output.parse_variants("FX")


def test_output_filepaths():
    assert output.output_filepaths("evt001", SolutionVariant.FULL) == (
        Path("evt001-full.asc"),
        Path("evt001-full-u.asc"),
    )
    assert output.output_filepaths(
        "evt001", SolutionVariant.TRACE_NULL, Path("out/run")
    ) == (Path("out/run-deviatoric.asc"), Path("out/run-deviatoric-u.asc"))


def test_write_nominal_collection(tmp_path: Path):
    dataset = three_station_dataset()
    collection = ResamplingOrchestrator(
        FirstPulseInversion(), NormType.L2, QualityType.POLARITY, RandomSource(1)
    ).run(dataset)
    output_base = tmp_path / "result"
    output.write_collection(collection, "D", "MDQ*", output_base)

    output_ffp = tmp_path / "result-dc.asc"
    assert output_ffp.exists()
    assert not (tmp_path / "result-full.asc").exists()
    assert not (tmp_path / "result-dc-u.asc").exists()

    lines = output_ffp.read_text().split("\n")
    assert lines[0] == "evt001,1"
    fields = lines[1].split(output.SEP)
    assert fields[:2] == ["N", "0"]
    assert len(fields) == 2 + 6 + 3 + 1
    assert lines[2] == ""
    assert lines[3] == ""
    assert len(lines) == 4


def test_write_collection_appends(tmp_path: Path, solutions: FaultSolutions):
    collection = SolutionCollection("evt001")
    collection.append(solutions)
    output_base = tmp_path / "result"
    output.write_collection(collection, "FT", "Q", output_base)
    output.write_collection(collection, "FT", "Q", output_base)

    for suffix in ("full", "deviatoric"):
        assert (tmp_path / f"result-{suffix}.asc").read_text() == (
            "evt001,1\nN,0,8.750000e+01\n" * 2
        )


def test_write_jackknife_collection(tmp_path: Path):
    dataset = three_station_dataset()
    collection = ResamplingOrchestrator(
        FirstPulseInversion(), rng=RandomSource(1)
    ).run(dataset, JackknifeTest())
    output_base = tmp_path / "result"
    output.write_collection(
        collection, [SolutionVariant.FULL, SolutionVariant.DOUBLE_COUPLE], "WU", output_base
    )

    for suffix in ("full", "dc"):
        lines = (tmp_path / f"result-{suffix}.asc").read_text().splitlines()
        assert lines[0] == "evt001,4"
        assert [line.split(output.SEP)[:2] for line in lines[1:]] == [
            ["N", "0"],
            ["J", "1"],
            ["J", "2"],
            ["J", "3"],
        ]
        displacement_lines = (
            (tmp_path / f"result-{suffix}-u.asc").read_text().splitlines()
        )
        assert displacement_lines[0] == "evt001,4"
        assert displacement_lines[1] == "N,0,3"
        # Header, then each run's prefix line and one line per station.
        assert len(displacement_lines) == 1 + (1 + 3) + 3 * (1 + 2)


def test_write_collection_to_missing_directory(tmp_path: Path, solutions: FaultSolutions):
    collection = SolutionCollection("evt001")
    collection.append(solutions)
    with pytest.raises(OSError):
        output.write_collection(collection, "D", "Q", tmp_path / "missing" / "result")


def test_module_compiles_without_warnings():
    source_ffp = Path(output.__file__)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(source_ffp.read_text(encoding="utf-8"), str(source_ffp), "exec")
    assert "\\*" in output.__doc__
