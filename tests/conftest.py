import numpy as np
import pandas as pd
import pytest

from msd_analysis import RawTrajectory, extract_trajectory


@pytest.fixture
def make_trajectory():
    """Factory for physical trajectories from pixel positions."""
    def _make(x, y=None, frames=None, intensity=None, time_resolution=1.0,
              pixel_size=1.0, trajectory_id=1, file_id=1, condition=None):
        x = np.asarray(x, dtype=float)
        y = np.zeros_like(x) if y is None else np.asarray(y, dtype=float)
        frames = np.arange(len(x)) if frames is None else frames
        intensity = np.ones_like(x) if intensity is None else intensity
        raw = RawTrajectory(
            trajectory_id=trajectory_id,
            frames=frames,
            x=x,
            y=y,
            intensity=intensity,
            id=file_id,
            condition=condition
        )
        return extract_trajectory(raw, time_resolution, pixel_size, pixel_size)
    return _make


def _random_walk_records(condition, n_tracks, length, step_sigma, seed,
                         intensity=100.0, file_id=1):
    rng = np.random.default_rng(seed)
    rows = []
    for traj_id in range(1, n_tracks + 1):
        steps = rng.normal(0.0, step_sigma, size=(length, 2))
        steps[0] = 0.0
        pos = np.cumsum(steps, axis=0) + 50.0
        m0 = rng.normal(intensity, intensity * 0.1)
        for frame in range(length):
            rows.append({
                'condition': condition,
                'id': file_id,
                'trajectory_id': traj_id,
                'frame': frame,
                'x': pos[frame, 0],
                'y': pos[frame, 1],
                'intensity': m0
            })
    return pd.DataFrame(rows)


@pytest.fixture
def random_walk_records():
    """Factory for Brownian frame records of one condition."""
    return _random_walk_records
