"""Resampling analyses of moment tensor inversions.

The uncertainty of a moment tensor solution is estimated by repeatedly
inverting modified copies of the nominal dataset. Exactly one analysis
is run per event:

- a noise test, which perturbs every station amplitude with Gaussian noise,
- a jackknife test, which removes each station in turn, or
- a bootstrap test, which randomly perturbs takeoff angles and
  amplitudes, reverses polarities and rejects stations.

The nominal inversion is always run first. Every inversion run is
appended to a `SolutionCollection` in the order it is computed.

Reproducibility
---------------
All random draws come from one `RandomSource`, consumed strictly in
iteration and station order. Two runs with the same seed, dataset and
analysis produce identical collections.
"""

import dataclasses
import logging
import time
from collections.abc import Generator
from typing import Optional, TypeAlias

import numpy as np

from moment_inversion.inversion import InversionEngine, NormType, QualityType
from moment_inversion.picks import InputDataset
from moment_inversion.solution import FaultSolutions, RunType, SolutionCollection

logger = logging.getLogger(__name__)

RAND_MAX = 2**31 - 1
"""The largest integer returned by `RandomSource.draw`."""


class RandomSource:
    """A seedable stream of random draws.

    Parameters
    ----------
    seed : int, optional
        The seed of the stream. If None, a seed is derived from the
        current time.

    Attributes
    ----------
    seed : int
        The seed used for the stream.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        self.seed = seed if seed is not None else time.time_ns()
        self._generator = np.random.default_rng(self.seed)

    def draw(self) -> int:
        """Draw a uniformly distributed integer in [0, RAND_MAX].

        Returns
        -------
        int
            The random integer.
        """
        return int(self._generator.integers(0, RAND_MAX, endpoint=True))

    def uniform(self) -> float:
        """Draw a uniformly distributed float in (0, 1].

        Returns
        -------
        float
            (draw + 1) / (RAND_MAX + 1).
        """
        return (self.draw() + 1) / (RAND_MAX + 1)

    def normal(self, mean: float = 0.0, sigma: float = 1.0) -> float:
        r"""Draw a normally distributed float with the Box-Muller transform.

        Consumes two uniform draws u1 and u2 (in that order), and returns

        mean + sigma * \sqrt{-2 \ln u_1} \cos(2 \pi u_2).

        Parameters
        ----------
        mean : float
            The mean of the distribution.
        sigma : float
            The standard deviation of the distribution.

        Returns
        -------
        float
            The random float.
        """
        u1 = self.uniform()
        u2 = self.uniform()
        return mean + sigma * np.sqrt(-2.0 * np.log(u1)) * np.cos(2 * np.pi * u2)

    def chance(self, probability: float) -> bool:
        """Return True with a given probability, to a resolution of 0.01%.

        Parameters
        ----------
        probability : float
            The probability of returning True, between 0 and 1.

        Returns
        -------
        bool
            True if draw % 10000 < probability * 10000.
        """
        return self.draw() % 10000 < probability * 10000


@dataclasses.dataclass(frozen=True)
class NoiseTest:
    """Invert noisy copies of the dataset.

    Every station displacement u is replaced by u + z / 3 * u *
    amplitude_factor, where z is drawn from a standard normal
    distribution.
    """

    count: int = 100
    """The number of noisy datasets to invert."""
    amplitude_factor: float = 1.0
    """Scaling of the noise relative to the station displacement."""

    def __post_init__(self):
        if self.count < 0:
            raise ValueError(f"Noise test count must be non-negative, got {self.count}.")


@dataclasses.dataclass(frozen=True)
class JackknifeTest:
    """Invert the dataset once with each station removed."""


@dataclasses.dataclass(frozen=True)
class BootstrapTest:
    """Invert randomly resampled copies of the dataset.

    Each perturbation is only applied when its parameter is positive.
    """

    samples: int
    """The number of resampled datasets to invert."""
    takeoff_sigma: float = 0.0
    """Standard deviation of the takeoff angle perturbation, before division by 3 (degrees)."""
    reverse_fraction: float = 0.0
    """The probability that a station polarity is reversed."""
    reject_fraction: float = 0.0
    """The probability that a station is rejected."""
    amplitude_sigma: float = 0.0
    """Standard deviation of the relative amplitude perturbation, before division by 3."""

    def __post_init__(self):
        if self.samples < 0:
            raise ValueError(
                f"Bootstrap sample count must be non-negative, got {self.samples}."
            )
        if self.takeoff_sigma < 0 or self.amplitude_sigma < 0:
            raise ValueError("Bootstrap standard deviations must be non-negative.")
        for name in ("reverse_fraction", "reject_fraction"):
            if not 0 <= getattr(self, name) <= 1:
                raise ValueError(
                    f"Bootstrap {name} must be between 0 and 1, got {getattr(self, name)}."
                )


ResamplingMode: TypeAlias = NoiseTest | JackknifeTest | BootstrapTest


class ResamplingOrchestrator:
    """Run the nominal inversion and a resampling analysis for an event.

    Parameters
    ----------
    engine : InversionEngine
        The engine used for every inversion.
    norm : NormType
        The misfit norm passed to the engine.
    quality : QualityType
        The quality factor measure passed to the engine.
    rng : RandomSource, optional
        The source of random draws. If None, a time-seeded source is created.

    Examples
    --------
    >>> orchestrator = ResamplingOrchestrator(FirstPulseInversion(), rng=RandomSource(1))
    >>> collection = orchestrator.run(dataset, JackknifeTest())
    >>> len(collection) == len(dataset) + 1
    True
    """

    def __init__(
        self,
        engine: InversionEngine,
        norm: NormType = NormType.L2,
        quality: QualityType = QualityType.POLARITY,
        rng: Optional[RandomSource] = None,
    ) -> None:
        self.engine = engine
        self.norm = norm
        self.quality = quality
        self.rng = rng or RandomSource()

    def _invert(
        self, dataset: InputDataset, channel: int, run_type: RunType
    ) -> FaultSolutions:
        return self.engine.invert(self.norm, self.quality, dataset, channel, run_type)

    def run(
        self, dataset: InputDataset, mode: Optional[ResamplingMode] = None
    ) -> SolutionCollection:
        """Invert the nominal dataset and, optionally, resampled copies of it.

        Parameters
        ----------
        dataset : InputDataset
            The nominal dataset. It is never modified.
        mode : ResamplingMode, optional
            The resampling analysis to run. If None, only the nominal
            inversion is run.

        Returns
        -------
        SolutionCollection
            The nominal run followed by every resampled run, in the
            order they were computed.
        """
        collection = SolutionCollection(dataset.event_id)
        collection.append(self._invert(dataset, 0, RunType.NOMINAL))

        match mode:
            case None:
                runs = iter(())
            case NoiseTest():
                runs = self.noise_test(dataset, mode)
            case JackknifeTest():
                runs = self.jackknife_test(dataset)
            case BootstrapTest():
                runs = self.bootstrap_test(dataset, mode)
            case _:
                raise TypeError(f"Unsupported resampling mode: {mode!r}")

        for solutions in runs:
            collection.append(solutions)

        logger.info(
            f"Event {dataset.event_id}: {len(collection)} solutions ({type(mode).__name__ if mode else 'nominal only'})."
        )
        return collection

    def noise_test(
        self, dataset: InputDataset, mode: NoiseTest
    ) -> Generator[FaultSolutions, None, None]:
        """Invert copies of the dataset with noisy station amplitudes.

        Parameters
        ----------
        dataset : InputDataset
            The nominal dataset.
        mode : NoiseTest
            The noise test parameters.

        Yields
        ------
        FaultSolutions
            One noise run (channel 0) per iteration.
        """
        for _ in range(mode.count):
            working = dataset.clone()
            for j in range(len(working)):
                z = self.rng.normal()
                displacement = working.get_value(j, "displacement")
                working.set_value(
                    j,
                    "displacement",
                    displacement + z / 3.0 * displacement * mode.amplitude_factor,
                )
            yield self._invert(working, 0, RunType.NOISE)

    def jackknife_test(
        self, dataset: InputDataset
    ) -> Generator[FaultSolutions, None, None]:
        """Invert copies of the dataset with one station removed.

        Parameters
        ----------
        dataset : InputDataset
            The nominal dataset.

        Yields
        ------
        FaultSolutions
            One jackknife run per station, in dataset order, tagged with
            the id of the removed station.
        """
        for index in range(len(dataset)):
            working = dataset.clone()
            station_id = int(working.get_value(index, "id"))
            working.remove(index)
            yield self._invert(working, station_id, RunType.JACKKNIFE)

    def bootstrap_test(
        self, dataset: InputDataset, mode: BootstrapTest
    ) -> Generator[FaultSolutions, None, None]:
        """Invert randomly resampled copies of the dataset.

        For every station position of the working copy the takeoff
        perturbation, polarity reversal, amplitude perturbation and
        rejection are applied in that order. A rejected station is
        removed immediately and the next station moves into its
        position, so the station following a rejected one is not
        visited in that iteration.

        Parameters
        ----------
        dataset : InputDataset
            The nominal dataset.
        mode : BootstrapTest
            The bootstrap parameters.

        Yields
        ------
        FaultSolutions
            One bootstrap run per sample, tagged with the sample number
            (starting at 1). Samples that lose every station are still
            inverted.
        """
        for sample in range(1, mode.samples + 1):
            working = dataset.clone()
            reversed_count = 0
            rejected_count = 0
            j = 0
            while j < len(working):
                if mode.takeoff_sigma > 0.0:
                    v = self.rng.normal(0.0, mode.takeoff_sigma)
                    working.set_value(
                        j, "takeoff", working.get_value(j, "takeoff") + v / 3.0
                    )

                if mode.reverse_fraction > 0.0 and self.rng.chance(
                    mode.reverse_fraction
                ):
                    working.set_value(
                        j, "displacement", -working.get_value(j, "displacement")
                    )
                    reversed_count += 1

                if mode.amplitude_sigma > 0.0:
                    v = self.rng.normal(0.0, mode.amplitude_sigma)
                    displacement = working.get_value(j, "displacement")
                    working.set_value(
                        j, "displacement", displacement + v * displacement / 3.0
                    )

                if mode.reject_fraction > 0.0 and self.rng.chance(
                    mode.reject_fraction
                ):
                    working.remove(j)
                    rejected_count += 1

                j += 1

            logger.debug(
                f"Bootstrap sample {sample}: {reversed_count} reversed, {rejected_count} rejected, {len(working)} stations remain."
            )
            yield self._invert(working, sample, RunType.BOOTSTRAP)
