r"""Text output of moment tensor solutions.

Each solution variant of each run in a collection is written as one
row, appended to a variant specific file. The fields of a row are
controlled by a dump order string, where each character selects a
field group:

===  ==========================================================
M    Moment tensor M11 M12 M13 M22 M23 M33.
C    Moment tensor in CMT convention Mrr Mtt Mpp Mrt Mrp Mtp.
D    Decomposition EXPL CLVD DBCP.
Y    Vavryčuk decomposition EXPL CLVD DBCP.
G    Eigenvalues, largest first.
A    P, T and B axis trends and plunges.
F    Strike, dip and rake of both nodal planes.
W    Scalar moment, total moment, moment error and magnitude.
Q    Quality factor.
T    Fault type.
U    Measured and theoretical displacements (separate file).
E    Standard error of the displacement fit.
V    Diagonal of the covariance matrix.
\*   Line break.
===  ==========================================================

Uppercase characters write comma separated values in scientific
notation. Lowercase characters write the same values as space
separated fixed-width columns for reading by humans. Unrecognised
characters are ignored.

Every row starts with the run type and channel. The first row of every
file for an event is preceded by a line with the event id and the
number of runs in the collection.

Example
-------
>>> output.write_collection(collection, "FD", "MDQ*")
# writes <event-id>-full.asc and <event-id>-dc.asc
"""

import contextlib
import functools
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import NamedTuple, Optional, TextIO

from moment_inversion.solution import (
    FaultSolution,
    FaultSolutions,
    SolutionCollection,
    SolutionVariant,
)

SEP = ","
"""Separator for uppercase (machine readable) fields."""
SEP2 = " "
"""Separator for lowercase (human readable) fields."""
NEWLINE = "\n"
LINE_BREAK = "*"
UNDETERMINED_FAULT_TYPE = "Undetermined"


class FieldGroup(NamedTuple):
    """A group of values written together for one dump order character."""

    values: Callable[[FaultSolution], list[float]]
    """Extracts the values of the group from a solution."""
    formats: list[str]
    """Fixed-width format specifiers for each value (lowercase output)."""


def _moment_tensor(solution: FaultSolution) -> list[float]:
    return [
        solution.m(1, 1),
        solution.m(1, 2),
        solution.m(1, 3),
        solution.m(2, 2),
        solution.m(2, 3),
        solution.m(3, 3),
    ]


def _cmt_moment_tensor(solution: FaultSolution) -> list[float]:
    # (r, t, p) = (Down, North, East) with signs flipped for Up and South.
    return [
        solution.m(3, 3),
        solution.m(1, 1),
        solution.m(2, 2),
        solution.m(1, 3),
        -solution.m(2, 3),
        -solution.m(1, 2),
    ]


def _axes(solution: FaultSolution) -> list[float]:
    return [
        solution.p_axis.trend,
        solution.p_axis.plunge,
        solution.t_axis.trend,
        solution.t_axis.plunge,
        solution.b_axis.trend,
        solution.b_axis.plunge,
    ]


FIELD_GROUPS: dict[str, FieldGroup] = {
    "M": FieldGroup(_moment_tensor, ["13.5e"] * 6),
    "C": FieldGroup(_cmt_moment_tensor, ["13.5e"] * 6),
    "D": FieldGroup(
        lambda solution: [solution.explosion, solution.clvd, solution.double_couple],
        ["+7.1f"] * 3,
    ),
    "Y": FieldGroup(
        lambda solution: [
            solution.explosion_vavrycuk,
            solution.clvd_vavrycuk,
            solution.double_couple_vavrycuk,
        ],
        ["+7.1f"] * 3,
    ),
    "G": FieldGroup(lambda solution: list(solution.eigenvalues), ["13.5e"] * 3),
    "A": FieldGroup(_axes, ["5.1f", "4.1f"] * 3),
    "F": FieldGroup(
        lambda solution: [*solution.plane_a, *solution.plane_b],
        ["5.1f", "4.1f", "6.1f"] * 2,
    ),
    "W": FieldGroup(
        lambda solution: [
            solution.scalar_moment,
            solution.total_moment,
            solution.error,
            solution.magnitude,
        ],
        ["11.3e"] * 3 + ["6.2f"],
    ),
    "Q": FieldGroup(lambda solution: [solution.quality], ["5.1f"]),
    "E": FieldGroup(lambda solution: [solution.displacement_error], ["11.3e"]),
    "V": FieldGroup(lambda solution: list(solution.covariance_diagonal), ["11.3e"] * 6),
}


def _encode_scientific(group: FieldGroup, solution: FaultSolution) -> str:
    return "".join(f"{SEP}{value:.6e}" for value in group.values(solution))


def _encode_fixed(group: FieldGroup, solution: FaultSolution) -> str:
    return "".join(
        f"{SEP2}{value:{value_format}}"
        for value, value_format in zip(group.values(solution), group.formats)
    )


def _encode_fault_type(separator: str, solution: FaultSolution) -> str:
    fault_type = solution.fault_type or UNDETERMINED_FAULT_TYPE
    return f"{separator}{fault_type}"


def _encode_line_break(solution: FaultSolution) -> str:
    return NEWLINE


FIELD_ENCODERS: dict[str, Callable[[FaultSolution], str]] = {
    **{
        code: functools.partial(_encode_scientific, group)
        for code, group in FIELD_GROUPS.items()
    },
    **{
        code.lower(): functools.partial(_encode_fixed, group)
        for code, group in FIELD_GROUPS.items()
    },
    "T": functools.partial(_encode_fault_type, SEP),
    "t": functools.partial(_encode_fault_type, SEP2),
    LINE_BREAK: _encode_line_break,
}
"""Encoders for the main output file, keyed by dump order character."""


def _encode_displacements_scientific(solution: FaultSolution) -> str:
    return f"{SEP}{solution.channel_count}{NEWLINE}" + "".join(
        f"{station}{SEP}{measured:.6e}{SEP}{theoretical:.6e}{NEWLINE}"
        for station, measured, theoretical in zip(
            solution.stations,
            solution.measured_displacement,
            solution.theoretical_displacement,
        )
    )


def _encode_displacements_fixed(solution: FaultSolution) -> str:
    return f"{SEP2}{solution.channel_count}{NEWLINE}" + "".join(
        f"{station:>5s}{SEP2}{measured:13.5e}{SEP2}{theoretical:13.5e}{NEWLINE}"
        for station, measured, theoretical in zip(
            solution.stations,
            solution.measured_displacement,
            solution.theoretical_displacement,
        )
    )


DISPLACEMENT_ENCODERS: dict[str, Callable[[FaultSolution], str]] = {
    "U": _encode_displacements_scientific,
    "u": _encode_displacements_fixed,
}
"""Encoders for the displacement output file, keyed by dump order character."""


def is_formatted(dump_order: str) -> bool:
    """Check if a dump order requests human readable output.

    Parameters
    ----------
    dump_order : str
        The dump order string.

    Returns
    -------
    bool
        True if the dump order contains any lowercase letter.
    """
    return any("a" <= code <= "z" for code in dump_order)


def exports_displacements(dump_order: str) -> bool:
    """Check if a dump order requests the displacement file.

    Parameters
    ----------
    dump_order : str
        The dump order string.

    Returns
    -------
    bool
        True if the dump order contains U or u.
    """
    return any(code in DISPLACEMENT_ENCODERS for code in dump_order)


def encode_row(
    solutions: FaultSolutions, variant: SolutionVariant, dump_order: str
) -> tuple[str, Optional[str]]:
    """Encode one solution variant of an inversion run.

    Parameters
    ----------
    solutions : FaultSolutions
        The inversion run.
    variant : SolutionVariant
        The solution variant to encode.
    dump_order : str
        The dump order string selecting the field groups.

    Returns
    -------
    str
        The row for the main output file, ending with a newline.
    str or None
        The row for the displacement file, or None if the dump order
        does not request displacements.
    """
    solution = solutions.variant(variant)
    if is_formatted(dump_order):
        prefix = f"{solutions.run_type}{SEP2}{solutions.channel:5d}"
    else:
        prefix = f"{solutions.run_type}{SEP}{solutions.channel}"

    row = prefix
    displacement_row = prefix if exports_displacements(dump_order) else None
    for code in dump_order:
        if code in FIELD_ENCODERS:
            row += FIELD_ENCODERS[code](solution)
        elif displacement_row is not None and code in DISPLACEMENT_ENCODERS:
            displacement_row += DISPLACEMENT_ENCODERS[code](solution)

    return row + NEWLINE, displacement_row


def encode_header(collection: SolutionCollection) -> str:
    """Encode the header line written before the first row of an event.

    Parameters
    ----------
    collection : SolutionCollection
        The solutions of the event.

    Returns
    -------
    str
        The event id and number of runs, ending with a newline.
    """
    return f"{collection.event_id}{SEP}{len(collection)}{NEWLINE}"


def parse_variants(solution_types: str) -> list[SolutionVariant]:
    """Parse a string of solution variant codes.

    Parameters
    ----------
    solution_types : str
        Variant codes, e.g. "FTD".

    Returns
    -------
    list[SolutionVariant]
        The variants in the order given.

    Raises
    ------
    ValueError
        If any code is not F, T or D.
    """
    return [SolutionVariant.from_code(code) for code in solution_types]


def output_filepaths(
    event_id: str, variant: SolutionVariant, output_base: Optional[Path] = None
) -> tuple[Path, Path]:
    """Get the output filepaths for an event and solution variant.

    Parameters
    ----------
    event_id : str
        The identifier of the event.
    variant : SolutionVariant
        The solution variant.
    output_base : Path, optional
        A common base name for the output files. If None, the event id
        is used.

    Returns
    -------
    Path
        The main output filepath, <base>-<suffix>.asc.
    Path
        The displacement output filepath, <base>-<suffix>-u.asc.
    """
    base = f"{output_base if output_base else event_id}-{variant.suffix}"
    return Path(f"{base}.asc"), Path(f"{base}-u.asc")


def write_collection(
    collection: SolutionCollection,
    variants: str | Sequence[SolutionVariant],
    dump_order: str,
    output_base: Optional[Path] = None,
) -> None:
    """Append the solutions of an event to the output files.

    Parameters
    ----------
    collection : SolutionCollection
        The solutions of the event.
    variants : str or Sequence[SolutionVariant]
        The solution variants to write, as variant codes or variants.
    dump_order : str
        The dump order string selecting the field groups.
    output_base : Path, optional
        A common base name for the output files. If None, the event id
        is used.
    """
    if isinstance(variants, str):
        variants = parse_variants(variants)
    export_displacements = exports_displacements(dump_order)

    with contextlib.ExitStack() as stack:
        handles: dict[Path, TextIO] = {}

        def handle_for(filepath: Path) -> TextIO:
            if filepath not in handles:
                handles[filepath] = stack.enter_context(
                    open(filepath, mode="a", encoding="utf-8")
                )
            return handles[filepath]

        for index, solutions in enumerate(collection):
            for variant in variants:
                output_ffp, displacement_ffp = output_filepaths(
                    collection.event_id, variant, output_base
                )
                output_file = handle_for(output_ffp)
                displacement_file = (
                    handle_for(displacement_ffp) if export_displacements else None
                )
                if index == 0:
                    output_file.write(encode_header(collection))
                    if displacement_file:
                        displacement_file.write(encode_header(collection))

                row, displacement_row = encode_row(solutions, variant, dump_order)
                output_file.write(row)
                if displacement_file and displacement_row:
                    displacement_file.write(displacement_row)
