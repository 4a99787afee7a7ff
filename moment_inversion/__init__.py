"""Moment Inversion

The moment inversion package inverts first P-wave pulse amplitudes
recorded at a set of stations for the seismic moment tensor of an
event, and estimates the uncertainty of the solution by resampling.

Station Picks
-------------

Input files contain one or more events, each a header line followed by
one line per station. The `moment_inversion.picks` module reads them
into `InputDataset`s, which hold the picks of a single event in a
dataframe.

Station geometry is either given directly for each station or derived
from event and station coordinates through a layered velocity model
and a travel-time engine (`moment_inversion.travel_time`).

Inversion
---------

Every inversion run produces three solution variants
(`moment_inversion.solution.FaultSolutions`):

- The full moment tensor,
- The trace-null (deviatoric) moment tensor,
- The best double couple.

The `moment_inversion.inversion` module contains the inversion engine,
and `moment_inversion.moment` contains the scalar moment, magnitude
and decomposition functions the engine uses.

Resampling
----------

The `moment_inversion.resampling` module runs the nominal inversion
followed by one of a noise test, a jackknife test or a bootstrap test,
collecting every run in a `SolutionCollection`.

Output
------

- Text output of selected solution fields (`moment_inversion.output`).
- Focal sphere plots (`moment_inversion.plotting`).
"""
