"""
Main MSD Analysis Class

High-level interface: load conditions, analyze trajectories, aggregate.
"""

import numpy as np
from typing import Dict, List, Optional, Sequence, Union
from dataclasses import dataclass
from pathlib import Path

from .trajectory import (
    RawTrajectory,
    PhysicalTrajectory,
    trajectories_from_records,
    filter_min_length
)
from .analysis import (
    TrajectoryAnalysis,
    SkippedTrajectory,
    analyze_trajectories
)
from .binning import assign_intensity_bins
from .aggregation import (
    GroupStatistics,
    ConditionComparison,
    aggregate_fit_results,
    statistics_dataframe,
    mean_msd_tau_curves,
    mean_ensemble_msd,
    compare_conditions
)


@dataclass
class AnalysisParameters:
    """
    Parameters for MSD analysis.

    Physical Parameters:
    - time_resolution: Time between frames (seconds)
    - pixel_size_x, pixel_size_y: Physical size per pixel (µm/pixel).
      Defaults match a 100x objective on an iXon camera (0.081218 µm).

    Analysis Parameters:
    - min_trajectory_length: Shorter trajectories are not analyzed
    - alt_fit_points: Leading MSD_tau rows (lag 0 included) for the fit
      through the origin
    - weighted_intensity_bins: Weight the condition mean intensity by
      trajectory length when binning
    - max_workers: Thread pool size for trajectory analysis (None = sequential)
    """
    time_resolution: float = 1.0
    pixel_size_x: float = 0.081218
    pixel_size_y: float = 0.081218
    min_trajectory_length: int = 15
    alt_fit_points: int = 4
    weighted_intensity_bins: bool = True
    max_workers: Optional[int] = None

    def __post_init__(self):
        if not self.time_resolution > 0:
            raise ValueError(f"time_resolution must be positive, got {self.time_resolution}")
        if not (self.pixel_size_x > 0 and self.pixel_size_y > 0):
            raise ValueError("Pixel sizes must be positive")
        if self.min_trajectory_length < 1:
            raise ValueError("min_trajectory_length must be at least 1")
        if self.alt_fit_points < 2:
            raise ValueError("alt_fit_points must be at least 2")


class MSDAnalysis:
    """
    MSD analysis of several experimental conditions.

    Parameters
    ----------
    params : AnalysisParameters, optional
        Analysis parameters. If None, defaults are used.

    Examples
    --------
    >>> analysis = MSDAnalysis(AnalysisParameters(time_resolution=0.1))
    >>> analysis.load_condition("DMSO", "input/dmso")
    >>> analysis.load_condition("LatA", "input/lata")
    >>> analysis.analyze()
    >>> stats = analysis.group_statistics()
    """

    def __init__(self, params: Optional[AnalysisParameters] = None):
        self.params = params or AnalysisParameters()
        self._trajectories: List[RawTrajectory] = []
        self._conditions: List[str] = []
        self._intensity_bins: Optional[Dict[tuple, Optional[str]]] = None
        self._analyses: Optional[List[TrajectoryAnalysis]] = None
        self._skipped: List[SkippedTrajectory] = []

    @property
    def conditions(self) -> List[str]:
        """Loaded condition labels in loading order."""
        return list(self._conditions)

    @property
    def trajectories(self) -> List[RawTrajectory]:
        """All loaded trajectories."""
        return list(self._trajectories)

    @property
    def analyses(self) -> Optional[List[TrajectoryAnalysis]]:
        """Per-trajectory results."""
        return self._analyses

    @property
    def skipped(self) -> List[SkippedTrajectory]:
        """Trajectories that could not be analyzed."""
        return list(self._skipped)

    @property
    def n_trajectories(self) -> int:
        """Number of loaded trajectories."""
        return len(self._trajectories)

    def add_records(self, records, condition: Optional[str] = None) -> 'MSDAnalysis':
        """
        Add frame records of one or more conditions.

        Parameters
        ----------
        records : pandas.DataFrame
            Columns id, trajectory_id, frame, x, y, intensity [, condition]
        condition : str, optional
            Condition label for all rows

        Returns
        -------
        self : MSDAnalysis
            For method chaining
        """
        new = trajectories_from_records(records, condition=condition)
        for traj in new:
            if traj.condition not in self._conditions:
                self._conditions.append(traj.condition)
        self._trajectories.extend(new)

        # Reset derived data
        self._intensity_bins = None
        self._analyses = None
        self._skipped = []

        return self

    def load_condition(self, condition: str,
                       directory: Union[str, Path],
                       pattern: str = "*.txt",
                       verbose: bool = False) -> 'MSDAnalysis':
        """
        Load MosaicSuite result tables of one condition from a directory.

        Returns
        -------
        self : MSDAnalysis
            For method chaining
        """
        from .io import load_condition_directory

        records = load_condition_directory(directory, condition, pattern, verbose)
        return self.add_records(records, condition=condition)

    def filtered_trajectories(self, min_length: Optional[int] = None) -> List[RawTrajectory]:
        """Trajectories with at least min_length frames."""
        m = min_length if min_length is not None else self.params.min_trajectory_length
        return filter_min_length(self._trajectories, m)

    def bin_intensities(self, min_length: Optional[int] = None,
                        weighted: Optional[bool] = None) -> Dict[tuple, Optional[str]]:
        """
        Assign an intensity bin to each trajectory passing the length filter.

        Returns
        -------
        bins : dict
            Trajectory key -> 'small', 'medium', 'big' or None
        """
        if not self._trajectories:
            raise ValueError("No trajectories loaded. Call load_condition() first.")

        w = weighted if weighted is not None else self.params.weighted_intensity_bins
        self._intensity_bins = assign_intensity_bins(
            self.filtered_trajectories(min_length), weighted=w
        )
        return self._intensity_bins

    def analyze(self, min_length: Optional[int] = None,
                max_workers: Optional[int] = None,
                verbose: bool = False) -> List[TrajectoryAnalysis]:
        """
        Analyze all trajectories passing the length filter.

        Parameters
        ----------
        min_length : int, optional
            Minimum trajectory length (override)
        max_workers : int, optional
            Thread pool size (override)
        verbose : bool
            Print progress

        Returns
        -------
        analyses : list of TrajectoryAnalysis
        """
        if not self._trajectories:
            raise ValueError("No trajectories loaded. Call load_condition() first.")

        trajectories = self.filtered_trajectories(min_length)
        if verbose:
            print(f"{len(trajectories)} of {self.n_trajectories} trajectories "
                  f"have at least "
                  f"{min_length or self.params.min_trajectory_length} frames")

        bins = self.bin_intensities(min_length)
        workers = max_workers if max_workers is not None else self.params.max_workers

        self._analyses, self._skipped = analyze_trajectories(
            trajectories,
            time_resolution=self.params.time_resolution,
            pixel_size_x=self.params.pixel_size_x,
            pixel_size_y=self.params.pixel_size_y,
            alt_fit_points=self.params.alt_fit_points,
            intensity_bins=bins,
            max_workers=workers,
            verbose=verbose
        )

        return self._analyses

    def _require_analyses(self) -> List[TrajectoryAnalysis]:
        if self._analyses is None:
            self.analyze()
        return self._analyses

    def group_statistics(self, by: Sequence[str] = ('condition',)) -> Dict[tuple, GroupStatistics]:
        """Statistics of D, alt_D and alpha per group."""
        return aggregate_fit_results(self._require_analyses(), by)

    def get_statistics_dataframe(self, by: Sequence[str] = ('condition',)):
        """Group statistics as pandas DataFrame."""
        return statistics_dataframe(self.group_statistics(by), by)

    def mean_msd_tau(self, by: Sequence[str] = ('condition',)):
        """Mean MSD_tau curve per group as pandas DataFrame."""
        return mean_msd_tau_curves(self._require_analyses(), by)

    def mean_ensemble_msd(self, by: Sequence[str] = ('condition', 'intensity_bin')):
        """Mean ensemble MSD per group as pandas DataFrame."""
        return mean_ensemble_msd(self._require_analyses(), by)

    def compare(self, condition_a: str, condition_b: str,
                parameter: str = 'd', equal_var: bool = False) -> ConditionComparison:
        """Compare a parameter between two conditions."""
        return compare_conditions(
            self._require_analyses(), condition_a, condition_b, parameter, equal_var
        )

    def get_analysis(self, condition: str, file_id: int, trajectory_id: int) -> TrajectoryAnalysis:
        """
        Get the analysis of a trajectory.

        Raises
        ------
        ValueError
            If the trajectory was not analyzed
        """
        key = (condition, file_id, trajectory_id)
        for a in self._require_analyses():
            if a.key == key:
                return a
        raise ValueError(f"Trajectory {key} not found")

    def sample_tracks(self, intensity_bin: Optional[str] = "medium",
                      seed: Optional[int] = None) -> Dict[str, PhysicalTrajectory]:
        """
        Pick one random trajectory per condition, translated to start at (0, 0).

        Parameters
        ----------
        intensity_bin : str, optional
            Only sample from this bin (None = any bin)
        seed : int, optional
            Random seed

        Returns
        -------
        samples : dict
            Condition -> PhysicalTrajectory
        """
        rng = np.random.default_rng(seed)
        analyses = self._require_analyses()

        samples = {}
        for condition in self._conditions:
            pool = [a for a in analyses if a.condition == condition and
                    (intensity_bin is None or a.intensity_bin == intensity_bin)]
            if pool:
                samples[condition] = pool[rng.integers(len(pool))].trajectory.centered()
        return samples

    def get_summary_dataframe(self):
        """
        Export per-trajectory results as pandas DataFrame.

        Returns
        -------
        df : pandas.DataFrame
            One row per analyzed trajectory
        """
        from .io import results_dataframe

        return results_dataframe(self._require_analyses())

    def run(self, verbose: bool = False) -> 'MSDAnalysis':
        """
        Run the complete analysis on the loaded trajectories.

        Returns
        -------
        self : MSDAnalysis
            For method chaining
        """
        self.analyze(verbose=verbose)
        return self

    def summary(self) -> str:
        """
        Get summary string.

        Returns
        -------
        summary : str
            Summary of analysis results
        """
        lines = ["MSD Analysis Summary", "=" * 40]
        lines.append(f"Conditions: {', '.join(str(c) for c in self._conditions)}")
        lines.append(f"Trajectories: {self.n_trajectories}")

        if self._trajectories:
            lengths = [t.length for t in self._trajectories]
            lines.append(f"  Mean length: {np.mean(lengths):.1f} frames")

        if self._analyses is not None:
            lines.append(f"Analyzed: {len(self._analyses)} (skipped {len(self._skipped)})")
            for key, group in aggregate_fit_results(self._analyses).items():
                d = group.d
                alpha = group.alpha
                lines.append(f"{key[0]}: D = {d.mean:.4g} ± {d.sem:.2g} "
                             f"(n={d.n}, excluded {d.n_excluded}), "
                             f"alpha = {alpha.mean:.3f} ± {alpha.sem:.2g}")

        return "\n".join(lines)

    def __repr__(self):
        n_analyzed = len(self._analyses) if self._analyses is not None else 0
        return (f"MSDAnalysis(n_conditions={len(self._conditions)}, "
                f"n_trajectories={self.n_trajectories}, "
                f"n_analyzed={n_analyzed})")
