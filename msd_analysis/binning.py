"""
Intensity Binning Module

Mean trajectory intensity (m0) is used as a proxy for particle size.
Bins are derived from the intensity distribution of each condition in
two passes: global statistics first, then one label per trajectory.
"""

import numpy as np
from typing import Dict, Iterable, List, Optional, Tuple

INTENSITY_BINS = ("small", "medium", "big")


def intensity_statistics(mean_intensities: Iterable[float],
                         weights: Optional[Iterable[float]] = None) -> Tuple[float, float, float]:
    """
    Global intensity statistics of a set of trajectories.

    Parameters
    ----------
    mean_intensities : iterable of float
        Mean intensity per trajectory
    weights : iterable of float, optional
        Weight per trajectory for the mean (e.g. trajectory length, which
        gives the mean over all frames)

    Returns
    -------
    mean_all, min_all, max_all : float
    """
    values = np.asarray(list(mean_intensities), dtype=float)
    if values.size == 0:
        raise ValueError("No intensities to summarize")

    if weights is None:
        mean_all = float(np.mean(values))
    else:
        mean_all = float(np.average(values, weights=np.asarray(list(weights), dtype=float)))

    return mean_all, float(np.min(values)), float(np.max(values))


def classify(intensity: float, mean_all: float, max_all: float) -> Optional[str]:
    """
    Intensity bin of one trajectory.

    Bins are closed on the left:
    small  = [0, mean/3)
    medium = [mean/3, 4*mean/3)
    big    = [4*mean/3, max]

    Returns None for intensities outside [0, max] or NaN.
    """
    if not np.isfinite(intensity) or intensity < 0 or intensity > max_all:
        return None

    lower = mean_all - 2.0 / 3.0 * mean_all
    upper = mean_all + mean_all / 3.0

    if intensity < lower:
        return "small"
    elif intensity < upper:
        return "medium"
    return "big"


def assign_intensity_bins(trajectories: List, weighted: bool = True) -> Dict[tuple, Optional[str]]:
    """
    Intensity bin for every trajectory, computed per condition.

    Parameters
    ----------
    trajectories : list of RawTrajectory or PhysicalTrajectory
        Trajectories of one or more conditions
    weighted : bool
        Weight the condition mean by trajectory length

    Returns
    -------
    bins : dict
        Trajectory key -> bin label
    """
    by_condition: Dict[object, list] = {}
    for traj in trajectories:
        by_condition.setdefault(traj.condition, []).append(traj)

    bins = {}
    for condition, group in by_condition.items():
        intensities = [t.mean_intensity for t in group]
        finite = [(i, t.length) for i, t in zip(intensities, group) if np.isfinite(i)]
        if not finite:
            bins.update({t.key: None for t in group})
            continue

        values, lengths = zip(*finite)
        mean_all, _, max_all = intensity_statistics(
            values, weights=lengths if weighted else None
        )
        for intensity, traj in zip(intensities, group):
            bins[traj.key] = classify(intensity, mean_all, max_all)

    return bins
