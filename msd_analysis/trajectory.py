"""
Trajectory Data Module

Trajectory containers and the extraction step that converts raw tracker
output (pixels, frame indices) into physical units.

Input records follow the MosaicSuite particle tracker "all trajectories
to table" export: one row per detected particle with its trajectory
number, frame index, sub-pixel position and zeroth order intensity
moment m0.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional, Union


class MSDAnalysisError(ValueError):
    """Base class for per-trajectory analysis failures."""
    status = "error"


class EmptyTrajectoryError(MSDAnalysisError):
    """Trajectory has no frames."""
    status = "empty"


class TrajectoryTooShortError(MSDAnalysisError):
    """Trajectory has no lag to fit (length < 3)."""
    status = "too_short"


class InsufficientDataError(MSDAnalysisError):
    """Fewer usable points than the fit needs."""
    status = "insufficient_data"


class DegenerateFitError(MSDAnalysisError):
    """Regression predictor has zero variance."""
    status = "degenerate"


RECORD_COLUMNS = ['id', 'trajectory_id', 'frame', 'x', 'y', 'intensity']


@dataclass
class RawTrajectory:
    """A tracked particle as read from the tracker, in pixel units."""
    trajectory_id: int
    frames: np.ndarray
    x: np.ndarray
    y: np.ndarray
    intensity: np.ndarray
    id: int = 1  # source file index within the condition
    condition: Optional[str] = None

    def __post_init__(self):
        self.frames = np.asarray(self.frames, dtype=float)
        self.x = np.asarray(self.x, dtype=float)
        self.y = np.asarray(self.y, dtype=float)
        self.intensity = np.asarray(self.intensity, dtype=float)
        n = len(self.frames)
        if not (len(self.x) == len(self.y) == len(self.intensity) == n):
            raise ValueError(
                f"Trajectory {self.trajectory_id}: frames, x, y and intensity "
                f"must have equal length"
            )

    @property
    def length(self) -> int:
        """Number of frames in trajectory."""
        return len(self.frames)

    @property
    def mean_intensity(self) -> float:
        """Arithmetic mean of per-frame intensity."""
        if self.length == 0:
            return float('nan')
        return float(np.mean(self.intensity))

    @property
    def key(self) -> tuple:
        """Identity of the trajectory across the dataset."""
        return (self.condition, self.id, self.trajectory_id)

    def __repr__(self):
        return (f"RawTrajectory(condition={self.condition!r}, id={self.id}, "
                f"trajectory_id={self.trajectory_id}, length={self.length})")


@dataclass(frozen=True)
class PhysicalTrajectory:
    """Trajectory in physical units (time in s, positions in µm).

    time_resolution is the frame interval the time column was built with;
    lag timeshifts are multiples of it.
    """
    trajectory_id: int
    time: np.ndarray
    x: np.ndarray
    y: np.ndarray
    intensity: np.ndarray
    mean_intensity: float
    condition: Optional[str] = None
    time_resolution: float = 1.0
    id: int = 1
    frames: np.ndarray = field(default=None, repr=False)

    @property
    def length(self) -> int:
        """Number of frames in trajectory."""
        return len(self.time)

    @property
    def start_frame(self) -> int:
        """First frame of trajectory."""
        return int(self.frames[0]) if self.length else -1

    @property
    def end_frame(self) -> int:
        """Last frame of trajectory."""
        return int(self.frames[-1]) if self.length else -1

    @property
    def positions(self) -> np.ndarray:
        """Get (x, y) positions as array of shape (n, 2)."""
        return np.column_stack([self.x, self.y])

    @property
    def key(self) -> tuple:
        """Identity of the trajectory across the dataset."""
        return (self.condition, self.id, self.trajectory_id)

    def centered(self) -> 'PhysicalTrajectory':
        """Copy of the trajectory translated so that it starts at (0, 0)."""
        return PhysicalTrajectory(
            trajectory_id=self.trajectory_id,
            time=self.time,
            x=self.x - self.x[0],
            y=self.y - self.y[0],
            intensity=self.intensity,
            mean_intensity=self.mean_intensity,
            id=self.id,
            condition=self.condition,
            time_resolution=self.time_resolution,
            frames=self.frames
        )


def _freeze(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, dtype=float)
    arr.setflags(write=False)
    return arr


def extract_trajectory(raw: RawTrajectory,
                       time_resolution: float = 1.0,
                       pixel_size_x: float = 1.0,
                       pixel_size_y: float = 1.0) -> PhysicalTrajectory:
    """
    Convert a raw trajectory to physical units.

    time = frame * time_resolution, x = x_px * pixel_size_x,
    y = y_px * pixel_size_y.

    Frames are kept in input order. Lag computations downstream pair
    the n-th and (n+dn)-th rows of this ordering, so unsorted input is
    analyzed as given rather than resorted.

    Parameters
    ----------
    raw : RawTrajectory
        Trajectory in pixel units
    time_resolution : float
        Time between frames (seconds)
    pixel_size_x, pixel_size_y : float
        Physical size per pixel along each axis (µm/pixel)

    Returns
    -------
    trajectory : PhysicalTrajectory

    Raises
    ------
    EmptyTrajectoryError
        If the trajectory has no frames
    """
    if raw.length == 0:
        raise EmptyTrajectoryError(
            f"Trajectory {raw.trajectory_id} (file {raw.id}) has no frames"
        )

    return PhysicalTrajectory(
        trajectory_id=raw.trajectory_id,
        time=_freeze(raw.frames * time_resolution),
        x=_freeze(raw.x * pixel_size_x),
        y=_freeze(raw.y * pixel_size_y),
        intensity=_freeze(raw.intensity),
        mean_intensity=raw.mean_intensity,
        id=raw.id,
        condition=raw.condition,
        time_resolution=float(time_resolution),
        frames=_freeze(raw.frames)
    )


def trajectories_from_records(records,
                              condition: Optional[str] = None) -> List[RawTrajectory]:
    """
    Split a table of frame records into trajectories.

    Expected columns: id, trajectory_id, frame, x, y, intensity
    [, condition]. Rows are grouped by (condition, id, trajectory_id);
    row order inside each group is kept as given.

    Parameters
    ----------
    records : pandas.DataFrame
        Frame records
    condition : str, optional
        Condition label for all rows. Overrides a condition column.

    Returns
    -------
    trajectories : list of RawTrajectory
    """
    import pandas as pd

    df = pd.DataFrame(records)
    missing = [c for c in ['trajectory_id', 'frame', 'x', 'y'] if c not in df.columns]
    if missing:
        raise ValueError(f"Trajectory records missing required columns: {missing}")

    df = df.copy()
    if 'id' not in df.columns:
        df['id'] = 1
    if 'intensity' not in df.columns:
        df['intensity'] = np.nan
    if condition is not None:
        df['condition'] = condition
    elif 'condition' not in df.columns:
        df['condition'] = None

    keys = ['condition', 'id', 'trajectory_id']
    trajectories = []
    for (cond, file_id, traj_id), group in df.groupby(keys, sort=False, dropna=False):
        trajectories.append(RawTrajectory(
            trajectory_id=int(traj_id),
            frames=group['frame'].to_numpy(),
            x=group['x'].to_numpy(),
            y=group['y'].to_numpy(),
            intensity=group['intensity'].to_numpy(),
            id=int(file_id),
            condition=None if pd.isna(cond) else cond
        ))

    return trajectories


def filter_min_length(trajectories: List[Union[RawTrajectory, PhysicalTrajectory]],
                      min_length: int) -> list:
    """Keep trajectories with at least min_length frames."""
    return [traj for traj in trajectories if traj.length >= min_length]
