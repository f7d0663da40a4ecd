"""
MSD Analysis - mean square displacement analysis of particle trajectories

Computes MSD statistics from 2D trajectories exported by the MosaicSuite
particle tracker and derives per-trajectory diffusion parameters, following
the trajectory analysis of:

Sbalzarini & Koumoutsakos (2005) "Feature point tracking and trajectory
analysis for video imaging in cell biology" J. Struct. Biol. 151(2):182-195

Main Features:
- Conversion of tracker output to physical units
- Ensemble MSD (squared displacement from the start point)
- Time-averaged MSD per lag (MSD_tau)
- Diffusion coefficient D and anomalous exponent alpha (log-log fit)
- Alternative D from a fit through the origin on the first lags
- Intensity binning as a proxy for particle size
- Per-condition mean, SD and SEM of D, alt_D and alpha

Example Usage:
-------------
>>> from msd_analysis import MSDAnalysis, AnalysisParameters
>>>
>>> params = AnalysisParameters(
...     time_resolution=1.0,        # seconds per frame
...     pixel_size_x=0.081218,      # µm per pixel
...     pixel_size_y=0.081218,
...     min_trajectory_length=15    # shorter tracks are not analyzed
... )
>>>
>>> analysis = MSDAnalysis(params)
>>> analysis.load_condition("DMSO", "input/dmso")
>>> analysis.load_condition("LatA", "input/lata")
>>> analysis.analyze(verbose=True)
>>>
>>> print(analysis.summary())
>>> df = analysis.get_statistics_dataframe(by=("condition", "intensity_bin"))
"""

__version__ = "0.1.0"

# Main classes
from .pipeline import MSDAnalysis, AnalysisParameters

# Trajectories
from .trajectory import (
    RawTrajectory,
    PhysicalTrajectory,
    MSDAnalysisError,
    EmptyTrajectoryError,
    TrajectoryTooShortError,
    InsufficientDataError,
    DegenerateFitError,
    extract_trajectory,
    trajectories_from_records,
    filter_min_length
)

# Analysis
from .analysis import (
    MSDTauCurve,
    LogLogFit,
    OriginFit,
    FitResult,
    TrajectoryAnalysis,
    SkippedTrajectory,
    compute_ensemble_msd,
    compute_msd_tau,
    fit_log_log,
    fit_through_origin,
    estimate_diffusion,
    analyze_trajectory,
    analyze_trajectories
)

# Intensity binning
from .binning import (
    INTENSITY_BINS,
    intensity_statistics,
    classify,
    assign_intensity_bins
)

# Aggregation
from .aggregation import (
    ParameterStatistics,
    GroupStatistics,
    ConditionComparison,
    group_fit_results,
    summarize_parameter,
    aggregate_fit_results,
    statistics_dataframe,
    mean_msd_tau_curves,
    mean_ensemble_msd,
    compare_conditions
)

# I/O
from .io import (
    load_mosaic_table,
    load_condition_directory,
    load_conditions,
    results_dataframe,
    save_analysis_results,
    save_group_statistics
)

__all__ = [
    # Main
    'MSDAnalysis',
    'AnalysisParameters',

    # Data structures
    'RawTrajectory',
    'PhysicalTrajectory',
    'MSDTauCurve',
    'LogLogFit',
    'OriginFit',
    'FitResult',
    'TrajectoryAnalysis',
    'SkippedTrajectory',
    'ParameterStatistics',
    'GroupStatistics',
    'ConditionComparison',

    # Errors
    'MSDAnalysisError',
    'EmptyTrajectoryError',
    'TrajectoryTooShortError',
    'InsufficientDataError',
    'DegenerateFitError',

    # Trajectories
    'extract_trajectory',
    'trajectories_from_records',
    'filter_min_length',

    # Analysis
    'compute_ensemble_msd',
    'compute_msd_tau',
    'fit_log_log',
    'fit_through_origin',
    'estimate_diffusion',
    'analyze_trajectory',
    'analyze_trajectories',

    # Intensity binning
    'INTENSITY_BINS',
    'intensity_statistics',
    'classify',
    'assign_intensity_bins',

    # Aggregation
    'group_fit_results',
    'summarize_parameter',
    'aggregate_fit_results',
    'statistics_dataframe',
    'mean_msd_tau_curves',
    'mean_ensemble_msd',
    'compare_conditions',

    # I/O
    'load_mosaic_table',
    'load_condition_directory',
    'load_conditions',
    'results_dataframe',
    'save_analysis_results',
    'save_group_statistics',
]
