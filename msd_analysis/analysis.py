"""
Trajectory Analysis Module

MSD analysis of single particle trajectories following:
Sbalzarini & Koumoutsakos (2005) "Feature point tracking and trajectory
analysis for video imaging in cell biology" J. Struct. Biol. 151(2):182-195

Includes:
- Ensemble MSD (squared displacement from the first position)
- Time-averaged MSD per lag (MSD_tau)
- Diffusion coefficient D and scaling exponent alpha from the log-log fit
- Alternative D from a fit through the origin on the first lags
"""

import numpy as np
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union
from scipy import stats

from .trajectory import (
    RawTrajectory,
    PhysicalTrajectory,
    MSDAnalysisError,
    EmptyTrajectoryError,
    TrajectoryTooShortError,
    InsufficientDataError,
    DegenerateFitError,
    extract_trajectory
)


FIT_OK = "ok"


@dataclass(frozen=True)
class MSDTauCurve:
    """Time-averaged MSD as a function of lag time."""
    lag_index: np.ndarray  # 0 .. floor(L/3)
    timeshift: np.ndarray  # lag_index * time_resolution
    msd_tau: np.ndarray  # MSD at each lag, 0 at lag 0
    log_timeshift: np.ndarray  # NaN at lag 0
    log_msd_tau: np.ndarray  # NaN at lag 0 and where msd_tau <= 0

    @classmethod
    def from_msd(cls, msd_tau: np.ndarray, time_resolution: float = 1.0) -> 'MSDTauCurve':
        """Build a curve from MSD values; msd_tau[0] must be the lag-0 entry."""
        msd_tau = np.asarray(msd_tau, dtype=float)
        lag_index = np.arange(len(msd_tau))
        timeshift = lag_index * float(time_resolution)

        with np.errstate(divide='ignore', invalid='ignore'):
            log_timeshift = np.where(timeshift > 0, np.log(timeshift), np.nan)
            log_msd_tau = np.where(msd_tau > 0, np.log(msd_tau), np.nan)
        log_timeshift[0] = np.nan
        log_msd_tau[0] = np.nan

        return cls(
            lag_index=lag_index,
            timeshift=timeshift,
            msd_tau=msd_tau,
            log_timeshift=log_timeshift,
            log_msd_tau=log_msd_tau
        )

    def __len__(self):
        return len(self.lag_index)

    @property
    def n_lags(self) -> int:
        """Number of lags besides the synthetic lag 0."""
        return len(self.lag_index) - 1

    def to_dataframe(self):
        """Curve as a pandas DataFrame, one row per lag."""
        import pandas as pd

        return pd.DataFrame({
            'lag_index': self.lag_index,
            'timeshift': self.timeshift,
            'msd_tau': self.msd_tau,
            'log_timeshift': self.log_timeshift,
            'log_msd_tau': self.log_msd_tau
        })


@dataclass(frozen=True)
class LogLogFit:
    """Least-squares line through (log timeshift, log MSD_tau)."""
    alpha: float  # slope
    intercept: float  # ln(4D)
    diffusion_coeff: float  # exp(intercept) / 4
    r_squared: float
    log_timeshift: np.ndarray  # points entering the fit
    log_msd_tau: np.ndarray


@dataclass(frozen=True)
class OriginFit:
    """Least-squares line through the origin of MSD_tau against 4 * timeshift."""
    diffusion_coeff: float
    n_points: int
    degraded: bool  # fewer rows than requested were available


@dataclass(frozen=True)
class FitResult:
    """Diffusion parameters of one trajectory.

    Undefined parameters are NaN and their status names the reason
    ('too_short', 'insufficient_data' or 'degenerate').
    """
    d: float
    alt_d: float
    alpha: float
    intercept: float
    r_squared: float
    log_timeshift: np.ndarray
    log_msd_tau: np.ndarray
    d_status: str = FIT_OK
    alt_d_status: str = FIT_OK
    alt_d_degraded: bool = False
    alt_fit_points: int = 0

    @property
    def d_ok(self) -> bool:
        return self.d_status == FIT_OK

    @property
    def alt_d_ok(self) -> bool:
        return self.alt_d_status == FIT_OK

    @property
    def motion_type(self) -> str:
        """Classify motion by alpha (0.8 and 1.2 separate the regimes)."""
        if not self.d_ok:
            return "undefined"
        if self.alpha < 0.8:
            return "subdiffusive"
        elif self.alpha <= 1.2:
            return "diffusive"
        else:
            return "active"

    def status_of(self, parameter: str) -> str:
        """Fit status backing 'd', 'alt_d' or 'alpha'."""
        if parameter in ('d', 'alpha'):
            return self.d_status
        if parameter == 'alt_d':
            return self.alt_d_status
        raise ValueError(f"Unknown parameter: {parameter}")


@dataclass(frozen=True)
class TrajectoryAnalysis:
    """All per-trajectory results."""
    trajectory: PhysicalTrajectory
    ensemble_msd: np.ndarray
    msd_tau: MSDTauCurve
    fit: FitResult
    intensity_bin: Optional[str] = None

    @property
    def key(self) -> tuple:
        return self.trajectory.key

    @property
    def condition(self) -> Optional[str]:
        return self.trajectory.condition

    @property
    def id(self) -> int:
        return self.trajectory.id

    @property
    def trajectory_id(self) -> int:
        return self.trajectory.trajectory_id

    @property
    def length(self) -> int:
        return self.trajectory.length

    @property
    def mean_intensity(self) -> float:
        return self.trajectory.mean_intensity

    @property
    def d(self) -> float:
        return self.fit.d

    @property
    def alt_d(self) -> float:
        return self.fit.alt_d

    @property
    def alpha(self) -> float:
        return self.fit.alpha

    @property
    def motion_type(self) -> str:
        return self.fit.motion_type


@dataclass(frozen=True)
class SkippedTrajectory:
    """A trajectory that could not be analyzed at all."""
    key: tuple
    reason: str
    message: str


def compute_ensemble_msd(trajectory: PhysicalTrajectory) -> np.ndarray:
    """
    Squared displacement from the first position at every frame.

    msd[i] = (x[i] - x[0])^2 + (y[i] - y[0])^2

    Parameters
    ----------
    trajectory : PhysicalTrajectory
        Input trajectory (at least one frame)

    Returns
    -------
    msd : ndarray
        Array of length L, msd[0] == 0
    """
    if trajectory.length == 0:
        raise EmptyTrajectoryError(
            f"Trajectory {trajectory.trajectory_id} has no frames"
        )
    dx = trajectory.x - trajectory.x[0]
    dy = trajectory.y - trajectory.y[0]
    return dx**2 + dy**2


def compute_msd_tau(trajectory: PhysicalTrajectory) -> MSDTauCurve:
    """
    Compute the time-averaged MSD for lags 1 .. floor(L/3).

    With 1-based frame indices n:

        MSD_tau(dn) = mean over n = 1 .. L-dn-1 of |r(n + dn) - r(n)|^2

    The last frame pair of every lag is left out (upper bound L-dn-1
    rather than L-dn). Results are kept comparable with previously
    published values computed this way.

    A lag-0 row (timeshift 0, MSD 0) is prepended. Trajectories with
    L < 3 produce only that row.

    Parameters
    ----------
    trajectory : PhysicalTrajectory
        Input trajectory in physical units. Timeshifts are lag multiples
        of its time_resolution.

    Returns
    -------
    curve : MSDTauCurve
        floor(L/3) + 1 rows
    """
    x = trajectory.x
    y = trajectory.y
    n_points = trajectory.length
    max_lag = n_points // 3

    msd_values = [0.0]
    for dn in range(1, max_lag + 1):
        # 0-based pairs (n, n + dn) for n = 0 .. L-dn-2
        stop = n_points - dn - 1
        dx = x[dn:dn + stop] - x[:stop]
        dy = y[dn:dn + stop] - y[:stop]
        msd_values.append(np.mean(dx**2 + dy**2))

    return MSDTauCurve.from_msd(np.array(msd_values), trajectory.time_resolution)


def fit_log_log(curve: MSDTauCurve) -> LogLogFit:
    """
    Fit log(MSD_tau) = alpha * log(timeshift) + log(4D).

    For 2D diffusion MSD = 4 D t^alpha, so the slope is alpha and
    D = exp(intercept) / 4. Lag 0 and lags with undefined logarithms
    are left out.

    Raises
    ------
    TrajectoryTooShortError
        Curve has no lag besides lag 0
    InsufficientDataError
        Fewer than 2 finite points
    DegenerateFitError
        All log timeshifts equal
    """
    if curve.n_lags < 1:
        raise TrajectoryTooShortError("No lags available for the log-log fit")

    log_t = curve.log_timeshift[1:]
    log_msd = curve.log_msd_tau[1:]
    valid = np.isfinite(log_t) & np.isfinite(log_msd)
    if np.sum(valid) < 2:
        raise InsufficientDataError(
            f"Log-log fit needs 2 points, got {int(np.sum(valid))}"
        )

    log_t = log_t[valid]
    log_msd = log_msd[valid]
    if np.ptp(log_t) == 0:
        raise DegenerateFitError("All log timeshifts are identical")

    result = stats.linregress(log_t, log_msd)

    return LogLogFit(
        alpha=float(result.slope),
        intercept=float(result.intercept),
        diffusion_coeff=float(np.exp(result.intercept) / 4.0),
        r_squared=float(result.rvalue**2),
        log_timeshift=log_t,
        log_msd_tau=log_msd
    )


def fit_through_origin(curve: MSDTauCurve, n_points: int = 4) -> OriginFit:
    """
    Fit MSD_tau = alt_D * (4 * timeshift) with no intercept.

    Uses the first n_points rows of the curve, lag 0 included. Shorter
    curves use every row and the result is flagged as degraded.

    Raises
    ------
    TrajectoryTooShortError
        Curve has no lag besides lag 0
    DegenerateFitError
        Every predictor value is zero
    """
    if curve.n_lags < 1:
        raise TrajectoryTooShortError("No lags available for the origin fit")

    rows = min(n_points, len(curve))
    x = 4 * curve.timeshift[:rows]
    y = curve.msd_tau[:rows]
    if not np.any(x != 0):
        raise DegenerateFitError("All origin-fit predictor values are zero")

    coef, _, _, _ = np.linalg.lstsq(x[:, np.newaxis], y, rcond=None)

    return OriginFit(
        diffusion_coeff=float(coef[0]),
        n_points=rows,
        degraded=rows < n_points
    )


def estimate_diffusion(curve: MSDTauCurve, alt_fit_points: int = 4) -> FitResult:
    """
    Run both fits on a MSD_tau curve.

    The fits are independent: when one fails its parameters are NaN and
    its status names the failure, the other is still reported.

    Parameters
    ----------
    curve : MSDTauCurve
        Time-averaged MSD of one trajectory
    alt_fit_points : int
        Number of leading rows for the fit through the origin

    Returns
    -------
    result : FitResult
    """
    nan = float('nan')
    empty = np.array([])

    try:
        log_fit = fit_log_log(curve)
        d, alpha = log_fit.diffusion_coeff, log_fit.alpha
        intercept, r_squared = log_fit.intercept, log_fit.r_squared
        log_t, log_msd = log_fit.log_timeshift, log_fit.log_msd_tau
        d_status = FIT_OK
    except MSDAnalysisError as e:
        d = alpha = intercept = r_squared = nan
        log_t, log_msd = empty, empty
        d_status = e.status

    try:
        origin_fit = fit_through_origin(curve, alt_fit_points)
        alt_d = origin_fit.diffusion_coeff
        alt_d_degraded = origin_fit.degraded
        alt_rows = origin_fit.n_points
        alt_d_status = FIT_OK
    except MSDAnalysisError as e:
        alt_d = nan
        alt_d_degraded = False
        alt_rows = 0
        alt_d_status = e.status

    return FitResult(
        d=d,
        alt_d=alt_d,
        alpha=alpha,
        intercept=intercept,
        r_squared=r_squared,
        log_timeshift=log_t,
        log_msd_tau=log_msd,
        d_status=d_status,
        alt_d_status=alt_d_status,
        alt_d_degraded=alt_d_degraded,
        alt_fit_points=alt_rows
    )


def analyze_trajectory(trajectory: Union[RawTrajectory, PhysicalTrajectory],
                       time_resolution: float = 1.0,
                       pixel_size_x: float = 1.0,
                       pixel_size_y: float = 1.0,
                       alt_fit_points: int = 4,
                       intensity_bin: Optional[str] = None) -> TrajectoryAnalysis:
    """
    Full analysis of one trajectory.

    Parameters
    ----------
    trajectory : RawTrajectory or PhysicalTrajectory
        Raw trajectories are converted with the given time resolution
        and pixel sizes first. Physical trajectories keep their own
        time resolution.
    time_resolution : float
        Time between frames (seconds), raw input only
    pixel_size_x, pixel_size_y : float
        Physical size per pixel (µm), raw input only
    alt_fit_points : int
        Rows used by the fit through the origin
    intensity_bin : str, optional
        Intensity bin label to attach

    Returns
    -------
    analysis : TrajectoryAnalysis

    Raises
    ------
    EmptyTrajectoryError
        If the trajectory has no frames
    """
    if isinstance(trajectory, RawTrajectory):
        trajectory = extract_trajectory(
            trajectory, time_resolution, pixel_size_x, pixel_size_y
        )
    elif trajectory.length == 0:
        raise EmptyTrajectoryError(
            f"Trajectory {trajectory.trajectory_id} has no frames"
        )

    ensemble_msd = compute_ensemble_msd(trajectory)
    curve = compute_msd_tau(trajectory)
    fit = estimate_diffusion(curve, alt_fit_points)

    return TrajectoryAnalysis(
        trajectory=trajectory,
        ensemble_msd=ensemble_msd,
        msd_tau=curve,
        fit=fit,
        intensity_bin=intensity_bin
    )


def analyze_trajectories(trajectories: List[Union[RawTrajectory, PhysicalTrajectory]],
                         time_resolution: float = 1.0,
                         pixel_size_x: float = 1.0,
                         pixel_size_y: float = 1.0,
                         alt_fit_points: int = 4,
                         intensity_bins: Optional[Dict[tuple, str]] = None,
                         max_workers: Optional[int] = None,
                         verbose: bool = False) -> Tuple[List[TrajectoryAnalysis], List[SkippedTrajectory]]:
    """
    Analyze all trajectories.

    Trajectories are independent, so with max_workers > 1 they are
    processed in a thread pool. Results keep the input order either way.

    Parameters
    ----------
    trajectories : list of RawTrajectory or PhysicalTrajectory
        Input trajectories
    time_resolution : float
        Time between frames
    pixel_size_x, pixel_size_y : float
        Physical size per pixel
    alt_fit_points : int
        Rows used by the fit through the origin
    intensity_bins : dict, optional
        Intensity bin label per trajectory key
    max_workers : int, optional
        Thread pool size; None or 1 runs sequentially
    verbose : bool
        Print progress

    Returns
    -------
    analyses : list of TrajectoryAnalysis
        One entry per analyzable trajectory
    skipped : list of SkippedTrajectory
        Trajectories without frames
    """
    intensity_bins = intensity_bins or {}
    n_total = len(trajectories)

    def run(traj):
        try:
            return analyze_trajectory(
                traj,
                time_resolution=time_resolution,
                pixel_size_x=pixel_size_x,
                pixel_size_y=pixel_size_y,
                alt_fit_points=alt_fit_points,
                intensity_bin=intensity_bins.get(traj.key)
            )
        except EmptyTrajectoryError as e:
            return SkippedTrajectory(key=traj.key, reason=e.status, message=str(e))

    if max_workers is not None and max_workers > 1:
        if verbose:
            print(f"Analyzing {n_total} trajectories with {max_workers} threads")
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(executor.map(run, trajectories))
    else:
        outcomes = []
        for i, traj in enumerate(trajectories):
            if verbose and (i % 100 == 0 or i == n_total - 1):
                print(f"Analyzing trajectory {i+1}/{n_total}")
            outcomes.append(run(traj))

    analyses = [o for o in outcomes if isinstance(o, TrajectoryAnalysis)]
    skipped = [o for o in outcomes if isinstance(o, SkippedTrajectory)]

    if verbose:
        n_fitted = sum(1 for a in analyses if a.fit.d_ok)
        print(f"Analyzed {len(analyses)} trajectories "
              f"({n_fitted} with log-log fit), skipped {len(skipped)}")

    return analyses, skipped
