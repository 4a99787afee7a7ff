"""Invert station picks for moment tensors and estimate their uncertainty."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer

from moment_inversion import output, picks, plotting
from moment_inversion.inversion import FirstPulseInversion, NormType, QualityType
from moment_inversion.resampling import (
    BootstrapTest,
    JackknifeTest,
    NoiseTest,
    RandomSource,
    ResamplingMode,
    ResamplingOrchestrator,
)
from moment_inversion.travel_time import VelocityModel

logger = logging.getLogger(__name__)

GENERIC_FAILURE_EXIT_CODE = 1
PLOT_FAILURE_EXIT_CODE = 3


def parse_noise_option(noise: str) -> NoiseTest:
    """Parse a noise test option of the form AMP or AMP/COUNT.

    Parameters
    ----------
    noise : str
        The option value.

    Returns
    -------
    NoiseTest
        The noise test, with 100 iterations if COUNT is not given.
    """
    try:
        if "/" in noise:
            amplitude_factor, count = noise.split("/", 1)
            return NoiseTest(count=int(count), amplitude_factor=float(amplitude_factor))
        return NoiseTest(amplitude_factor=float(noise))
    except ValueError as e:
        raise typer.BadParameter(f"Expected AMP or AMP/COUNT, got {noise!r}: {e}")


def parse_resampling_option(value: str) -> tuple[int, float]:
    """Parse a bootstrap option of the form N/VALUE.

    Parameters
    ----------
    value : str
        The option value.

    Returns
    -------
    int
        The number of samples (rounded to the nearest integer).
    float
        The perturbation parameter.
    """
    try:
        samples, parameter = value.split("/", 1)
        return int(float(samples) + 0.5), float(parameter)
    except ValueError as e:
        raise typer.BadParameter(f"Expected N/VALUE, got {value!r}: {e}")


def select_mode(
    jackknife: bool,
    noise: Optional[str],
    resample_takeoff: Optional[str],
    resample_polarity: Optional[str],
    resample_reject: Optional[str],
    resample_amplitude: Optional[str],
) -> Optional[ResamplingMode]:
    """Select the resampling analysis from the command line options.

    A noise test takes precedence over a jackknife test, which takes
    precedence over a bootstrap test. The bootstrap sample count is the
    largest N of the bootstrap options.

    Returns
    -------
    ResamplingMode or None
        The selected analysis, or None for the nominal inversion only.
    """
    bootstrap_options = {
        "takeoff_sigma": resample_takeoff,
        "reverse_fraction": resample_polarity,
        "reject_fraction": resample_reject,
        "amplitude_sigma": resample_amplitude,
    }
    bootstrap_parameters = {
        name: parse_resampling_option(value)
        for name, value in bootstrap_options.items()
        if value is not None
    }
    requested = [
        name
        for name, selected in (
            ("noise", noise is not None),
            ("jackknife", jackknife),
            ("bootstrap", bool(bootstrap_parameters)),
        )
        if selected
    ]
    if len(requested) > 1:
        logger.warning(
            f"Multiple resampling analyses requested ({', '.join(requested)}), running {requested[0]} only."
        )

    if noise is not None:
        return parse_noise_option(noise)
    if jackknife:
        return JackknifeTest()
    if bootstrap_parameters:
        return BootstrapTest(
            samples=max(samples for samples, _ in bootstrap_parameters.values()),
            **{name: parameter for name, (_, parameter) in bootstrap_parameters.items()},
        )
    return None


def invert_moment_tensor(
    input_ffp: Annotated[
        Path,
        typer.Argument(
            help="Input file of station picks.", exists=True, readable=True, dir_okay=False
        ),
    ],
    output_base: Annotated[
        Optional[Path],
        typer.Option(
            "--output",
            help="Common base name for output files. Defaults to the event id.",
        ),
    ] = None,
    velocity_model: Annotated[
        Optional[Path],
        typer.Option(
            help="Layered velocity model file. When given, station geometry is computed from event and station coordinates.",
            exists=True,
            readable=True,
            dir_okay=False,
        ),
    ] = None,
    solution_types: Annotated[
        str,
        typer.Option(
            help="Solution variants to output: F (full), T (trace-null), D (double-couple)."
        ),
    ] = "D",
    norm: Annotated[NormType, typer.Option(help="Misfit norm.")] = NormType.L2,
    quality: Annotated[
        QualityType, typer.Option(help="Quality factor measure.")
    ] = QualityType.POLARITY,
    dump_order: Annotated[
        str,
        typer.Option(
            help="Field groups of the text output (e.g. MDQ*). Empty for no text output."
        ),
    ] = "",
    jackknife: Annotated[
        bool, typer.Option(help="Run a jackknife test.")
    ] = False,
    noise: Annotated[
        Optional[str],
        typer.Option(help="Run a noise test, given as AMP or AMP/COUNT."),
    ] = None,
    resample_takeoff: Annotated[
        Optional[str],
        typer.Option(help="Bootstrap takeoff angle perturbation, given as N/SIGMA."),
    ] = None,
    resample_polarity: Annotated[
        Optional[str],
        typer.Option(help="Bootstrap polarity reversal, given as N/PROBABILITY."),
    ] = None,
    resample_reject: Annotated[
        Optional[str],
        typer.Option(help="Bootstrap station rejection, given as N/PROBABILITY."),
    ] = None,
    resample_amplitude: Annotated[
        Optional[str],
        typer.Option(help="Bootstrap amplitude perturbation, given as N/SIGMA."),
    ] = None,
    plot_formats: Annotated[
        str,
        typer.Option(help="Comma separated focal sphere plot formats (PNG, SVG, PS, PDF) or NONE."),
    ] = "NONE",
    size: Annotated[int, typer.Option(help="Plot size (pixels).", min=1)] = 500,
    seed: Annotated[
        Optional[int],
        typer.Option(help="Random seed. Defaults to a seed derived from the time."),
    ] = None,
    verbose: Annotated[bool, typer.Option(help="Log every resampling iteration.")] = False,
):
    """Invert station picks for moment tensors and estimate their uncertainty."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)
    try:
        mode = select_mode(
            jackknife,
            noise,
            resample_takeoff,
            resample_polarity,
            resample_reject,
            resample_amplitude,
        )
        variants = output.parse_variants(solution_types)
        formats = [
            plot_format.strip().upper()
            for plot_format in plot_formats.split(",")
            if plot_format.strip().upper() in plotting.PLOT_FORMATS
        ]
        rng = RandomSource(seed)
        logger.info(f"Random seed: {rng.seed}")
        orchestrator = ResamplingOrchestrator(FirstPulseInversion(), norm, quality, rng)

        model = VelocityModel.read(velocity_model) if velocity_model else None
        for dataset in picks.read_events_file(input_ffp, model):
            collection = orchestrator.run(dataset, mode)
            for variant in variants:
                for plot_format in formats:
                    plot_ffp = plotting.plot_filepath(
                        dataset.event_id, variant, plot_format, output_base
                    )
                    try:
                        plotting.plot_focal_sphere(
                            collection, dataset, variant, plot_ffp, size
                        )
                    except Exception:
                        logger.exception(f"Failed to plot {plot_ffp}.")
                        raise typer.Exit(code=PLOT_FAILURE_EXIT_CODE)
            if dump_order:
                output.write_collection(collection, variants, dump_order, output_base)
    except (typer.Exit, typer.BadParameter):
        raise
    except Exception:
        logger.exception("Moment tensor inversion failed.")
        raise typer.Exit(code=GENERIC_FAILURE_EXIT_CODE)


def main():
    typer.run(invert_moment_tensor)


if __name__ == "__main__":
    main()
