"""
Aggregation Module

Per-group statistics of the diffusion parameters (mean, SD, SEM), mean
MSD curves per group and two-condition comparisons.

Groups are keyed by a tuple of TrajectoryAnalysis attributes, e.g.
('condition',) or ('condition', 'intensity_bin').
"""

import numpy as np
from dataclasses import dataclass
from typing import Dict, List, Sequence
from scipy import stats

from .analysis import TrajectoryAnalysis, FIT_OK

PARAMETERS = ('d', 'alt_d', 'alpha')


@dataclass(frozen=True)
class ParameterStatistics:
    """Summary of one parameter over the successful fits of a group."""
    mean: float
    sd: float  # sample SD, NaN for n < 2
    sem: float  # sd / sqrt(n), NaN for n < 2
    n: int
    n_excluded: int  # members whose fit failed

    @property
    def sd_defined(self) -> bool:
        return self.n >= 2


@dataclass(frozen=True)
class GroupStatistics:
    """Statistics of D, alt_D and alpha within one group."""
    key: tuple
    n_trajectories: int
    d: ParameterStatistics
    alt_d: ParameterStatistics
    alpha: ParameterStatistics

    def __getitem__(self, parameter: str) -> ParameterStatistics:
        if parameter not in PARAMETERS:
            raise KeyError(parameter)
        return getattr(self, parameter)


@dataclass(frozen=True)
class ConditionComparison:
    """Two-sample comparison of one parameter between two conditions."""
    parameter: str
    condition_a: str
    condition_b: str
    n_a: int
    n_b: int
    mean_a: float
    mean_b: float
    t_statistic: float
    t_pvalue: float
    f_statistic: float  # var(a) / var(b)
    f_pvalue: float  # two-sided F-test for equal variances
    equal_var: bool


def _group_key(analysis: TrajectoryAnalysis, by: Sequence[str]) -> tuple:
    return tuple(getattr(analysis, name) for name in by)


def group_fit_results(analyses: List[TrajectoryAnalysis],
                      by: Sequence[str] = ('condition',)) -> Dict[tuple, List[TrajectoryAnalysis]]:
    """Map each group key to the analyses that share it."""
    groups: Dict[tuple, List[TrajectoryAnalysis]] = {}
    for analysis in analyses:
        groups.setdefault(_group_key(analysis, by), []).append(analysis)
    return groups


def summarize_parameter(values: Sequence[float], n_excluded: int = 0) -> ParameterStatistics:
    """
    Mean, sample SD and SEM of a set of values.

    Values are sorted before summation so the result does not depend on
    the order in which trajectories were processed.
    """
    values = np.sort(np.asarray(values, dtype=float))
    n = len(values)
    nan = float('nan')

    mean = float(np.mean(values)) if n > 0 else nan
    if n >= 2:
        sd = float(np.std(values, ddof=1))
        sem = sd / np.sqrt(n)
    else:
        sd = sem = nan

    return ParameterStatistics(mean=mean, sd=sd, sem=sem, n=n, n_excluded=n_excluded)


def aggregate_fit_results(analyses: List[TrajectoryAnalysis],
                          by: Sequence[str] = ('condition',)) -> Dict[tuple, GroupStatistics]:
    """
    Compute group statistics of D, alt_D and alpha.

    Failed fits are left out of the parameter they affect and counted in
    its n_excluded. Groups without members do not appear.

    Parameters
    ----------
    analyses : list of TrajectoryAnalysis
        Analyzed trajectories
    by : sequence of str
        Attributes forming the group key

    Returns
    -------
    statistics : dict
        Group key -> GroupStatistics
    """
    result = {}
    for key, members in group_fit_results(analyses, by).items():
        per_parameter = {}
        for parameter in PARAMETERS:
            ok = [getattr(a, parameter) for a in members
                  if a.fit.status_of(parameter) == FIT_OK]
            per_parameter[parameter] = summarize_parameter(ok, len(members) - len(ok))

        result[key] = GroupStatistics(
            key=key,
            n_trajectories=len(members),
            **per_parameter
        )

    return result


def statistics_dataframe(statistics: Dict[tuple, GroupStatistics],
                         by: Sequence[str] = ('condition',)):
    """
    Group statistics as a pandas DataFrame.

    Columns: group key columns, n_trajectories, and for each parameter
    mean_<p>, sd_<p>, sem_<p>, n_<p>, n_excluded_<p>.
    """
    import pandas as pd

    rows = []
    for key, group in statistics.items():
        row = dict(zip(by, key))
        row['n_trajectories'] = group.n_trajectories
        for parameter in PARAMETERS:
            s = group[parameter]
            row[f'mean_{parameter}'] = s.mean
            row[f'sd_{parameter}'] = s.sd
            row[f'sem_{parameter}'] = s.sem
            row[f'n_{parameter}'] = s.n
            row[f'n_excluded_{parameter}'] = s.n_excluded
        rows.append(row)

    return pd.DataFrame(rows)


def mean_msd_tau_curves(analyses: List[TrajectoryAnalysis],
                        by: Sequence[str] = ('condition',)):
    """
    Mean MSD_tau and log MSD_tau at each timeshift per group.

    Returns
    -------
    df : pandas.DataFrame
        Columns: group key columns, timeshift, log_timeshift, msd_tau,
        log_msd_tau, n_trajectories
    """
    import pandas as pd

    by = list(by)
    frames = []
    for analysis in analyses:
        df = analysis.msd_tau.to_dataframe()
        for name in by:
            df[name] = getattr(analysis, name)
        frames.append(df)

    if not frames:
        return pd.DataFrame(columns=by + ['timeshift', 'log_timeshift', 'msd_tau',
                                          'log_msd_tau', 'n_trajectories'])

    curves = pd.concat(frames, ignore_index=True)
    return curves.groupby(by + ['timeshift'], sort=True, dropna=False).agg(
        log_timeshift=('log_timeshift', 'first'),
        msd_tau=('msd_tau', 'mean'),
        log_msd_tau=('log_msd_tau', 'mean'),
        n_trajectories=('msd_tau', 'size')
    ).reset_index()


def mean_ensemble_msd(analyses: List[TrajectoryAnalysis],
                      by: Sequence[str] = ('condition', 'intensity_bin')):
    """
    Mean ensemble MSD at each time point per group.

    Returns
    -------
    df : pandas.DataFrame
        Columns: group key columns, time, ensemble_msd, n_trajectories
    """
    import pandas as pd

    by = list(by)
    frames = []
    for analysis in analyses:
        df = pd.DataFrame({
            'time': analysis.trajectory.time,
            'ensemble_msd': analysis.ensemble_msd
        })
        for name in by:
            df[name] = getattr(analysis, name)
        frames.append(df)

    if not frames:
        return pd.DataFrame(columns=by + ['time', 'ensemble_msd', 'n_trajectories'])

    msd = pd.concat(frames, ignore_index=True)
    return msd.groupby(by + ['time'], sort=True, dropna=False).agg(
        ensemble_msd=('ensemble_msd', 'mean'),
        n_trajectories=('ensemble_msd', 'size')
    ).reset_index()


def _successful_values(analyses: List[TrajectoryAnalysis],
                       condition: str, parameter: str) -> np.ndarray:
    return np.array([
        getattr(a, parameter) for a in analyses
        if a.condition == condition and a.fit.status_of(parameter) == FIT_OK
    ], dtype=float)


def compare_conditions(analyses: List[TrajectoryAnalysis],
                       condition_a: str,
                       condition_b: str,
                       parameter: str = 'd',
                       equal_var: bool = False) -> ConditionComparison:
    """
    Compare a parameter between two conditions.

    Runs a two-sample t-test (Welch's unless equal_var) and a two-sided
    F-test for equality of variances.

    Parameters
    ----------
    analyses : list of TrajectoryAnalysis
        Analyzed trajectories of both conditions
    condition_a, condition_b : str
        Condition labels
    parameter : str
        'd', 'alt_d' or 'alpha'
    equal_var : bool
        Assume equal variances in the t-test

    Returns
    -------
    comparison : ConditionComparison
    """
    if parameter not in PARAMETERS:
        raise ValueError(f"Unknown parameter: {parameter}")

    a = _successful_values(analyses, condition_a, parameter)
    b = _successful_values(analyses, condition_b, parameter)
    if len(a) < 2 or len(b) < 2:
        raise ValueError(
            f"Need at least 2 fitted trajectories per condition, "
            f"got {len(a)} ({condition_a}) and {len(b)} ({condition_b})"
        )

    t_result = stats.ttest_ind(a, b, equal_var=equal_var)

    var_a = np.var(a, ddof=1)
    var_b = np.var(b, ddof=1)
    dfn, dfd = len(a) - 1, len(b) - 1
    if var_b > 0:
        f_statistic = float(var_a / var_b)
        f_pvalue = float(min(1.0, 2 * min(stats.f.cdf(f_statistic, dfn, dfd),
                                          stats.f.sf(f_statistic, dfn, dfd))))
    else:
        f_statistic = f_pvalue = float('nan')

    return ConditionComparison(
        parameter=parameter,
        condition_a=condition_a,
        condition_b=condition_b,
        n_a=len(a),
        n_b=len(b),
        mean_a=float(np.mean(a)),
        mean_b=float(np.mean(b)),
        t_statistic=float(t_result.statistic),
        t_pvalue=float(t_result.pvalue),
        f_statistic=f_statistic,
        f_pvalue=f_pvalue,
        equal_var=equal_var
    )
