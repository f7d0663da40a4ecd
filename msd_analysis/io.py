"""
I/O Utilities Module

Loading of MosaicSuite particle tracker result tables and CSV export of
analysis results.
"""

import numpy as np
import pandas as pd
from pathlib import Path
from typing import Dict, List, Union
import warnings

from .trajectory import RECORD_COLUMNS

# MosaicSuite "all trajectories to table" column -> record column
MOSAIC_COLUMNS = {
    'Trajectory': 'trajectory_id',
    'Frame': 'frame',
    'x': 'x',
    'y': 'y',
    'm0': 'intensity'
}


def load_mosaic_table(path: Union[str, Path], file_id: int = 1) -> pd.DataFrame:
    """
    Load one MosaicSuite result table.

    The tracker plugin in Fiji exports all trajectories as a tab-delimited
    text file with columns Trajectory, Frame, x, y, z, m0, m1, m2, m3,
    m4, NPscore (plus an unnamed row index).

    Parameters
    ----------
    path : str or Path
        Path to the .txt file
    file_id : int
        Value of the id column for all rows

    Returns
    -------
    records : pandas.DataFrame
        Columns: id, trajectory_id, frame, x, y, intensity
    """
    path = Path(path)
    if not path.is_file():
        raise ValueError(f"Path does not exist: {path}")

    try:
        df = pd.read_csv(path, sep='\t')
    except pd.errors.EmptyDataError:
        warnings.warn(f"{path.name}: empty file")
        return pd.DataFrame({
            c: np.array([], dtype=int if c in ('id', 'trajectory_id', 'frame') else float)
            for c in RECORD_COLUMNS
        })

    df.columns = [str(c).strip() for c in df.columns]

    missing = [c for c in ['Trajectory', 'Frame', 'x', 'y'] if c not in df.columns]
    if missing:
        raise ValueError(f"{path.name}: missing MosaicSuite columns {missing}")

    if 'm0' not in df.columns:
        warnings.warn(f"{path.name}: no m0 column, intensities set to NaN")
        df['m0'] = np.nan

    records = df[list(MOSAIC_COLUMNS)].rename(columns=MOSAIC_COLUMNS)
    records.insert(0, 'id', file_id)

    if records.empty:
        warnings.warn(f"{path.name}: no trajectories")

    return records[RECORD_COLUMNS]


def load_condition_directory(directory: Union[str, Path],
                             condition: str,
                             pattern: str = "*.txt",
                             verbose: bool = False) -> pd.DataFrame:
    """
    Load all result tables of one condition.

    Files are read in sorted order and numbered id = 1, 2, ... so
    trajectory numbers from different files stay distinct.

    Parameters
    ----------
    directory : str or Path
        Directory containing MosaicSuite result tables
    condition : str
        Condition label written to the condition column
    pattern : str
        Glob pattern for result files
    verbose : bool
        Print progress

    Returns
    -------
    records : pandas.DataFrame
        Columns: condition, id, trajectory_id, frame, x, y, intensity
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise ValueError(f"Path does not exist: {directory}")

    files = sorted(directory.glob(pattern))
    if not files:
        raise ValueError(f"No files matching {pattern} found in {directory}")

    tables = []
    for i, f in enumerate(files, 1):
        if verbose:
            print(f"Loading {condition} file {i}/{len(files)}: {f.name}")
        tables.append(load_mosaic_table(f, file_id=i))

    # empty files keep their id but contribute no rows
    non_empty = [t for t in tables if not t.empty]
    records = pd.concat(non_empty or tables[:1], ignore_index=True)
    records.insert(0, 'condition', condition)
    return records


def load_conditions(directories: Dict[str, Union[str, Path]],
                    pattern: str = "*.txt",
                    verbose: bool = False) -> pd.DataFrame:
    """Load several conditions given as {condition: directory}."""
    tables = [
        load_condition_directory(d, condition, pattern, verbose)
        for condition, d in directories.items()
    ]
    return pd.concat(tables, ignore_index=True)


def results_dataframe(analyses: List) -> pd.DataFrame:
    """
    Per-trajectory results as pandas DataFrame, one row per analysis.

    Parameters
    ----------
    analyses : list of TrajectoryAnalysis
        Results from analyze_trajectories

    Returns
    -------
    df : pandas.DataFrame
        Identity, length, intensity and bin, fitted parameters, R²,
        fit statuses and motion type
    """
    data = []
    for a in analyses:
        data.append({
            'condition': a.condition,
            'id': a.id,
            'trajectory_id': a.trajectory_id,
            'length': a.length,
            'mean_intensity': a.mean_intensity,
            'intensity_bin': a.intensity_bin,
            'd': a.d,
            'alt_d': a.alt_d,
            'alpha': a.alpha,
            'r_squared': a.fit.r_squared,
            'd_status': a.fit.d_status,
            'alt_d_status': a.fit.alt_d_status,
            'alt_d_degraded': a.fit.alt_d_degraded,
            'motion_type': a.motion_type
        })

    return pd.DataFrame(data)


def save_analysis_results(analyses: List,
                          path: Union[str, Path]) -> None:
    """
    Save per-trajectory results to CSV file.

    Parameters
    ----------
    analyses : list of TrajectoryAnalysis
        Results from analyze_trajectories
    path : str or Path
        Output path
    """
    results_dataframe(analyses).to_csv(path, index=False)


def save_group_statistics(statistics, path: Union[str, Path],
                          by=('condition',)) -> None:
    """
    Save group statistics to CSV file.

    Parameters
    ----------
    statistics : dict
        Result of aggregate_fit_results
    path : str or Path
        Output path
    by : sequence of str
        Names of the group key columns
    """
    from .aggregation import statistics_dataframe

    statistics_dataframe(statistics, by).to_csv(path, index=False)
