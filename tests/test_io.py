import numpy as np
import pandas as pd
import pytest

from msd_analysis import (
    load_mosaic_table,
    load_condition_directory,
    load_conditions,
    results_dataframe,
    save_analysis_results,
    save_group_statistics,
    analyze_trajectories,
    aggregate_fit_results,
    trajectories_from_records,
)

MOSAIC_HEADER = " \tTrajectory\tFrame\tx\ty\tz\tm0\tm1\tm2\tm3\tm4\tNPscore\n"


def _write_mosaic_table(path, tracks):
    """tracks: {trajectory: [(frame, x, y, m0), ...]}"""
    lines = [MOSAIC_HEADER]
    row = 1
    for traj_id, points in tracks.items():
        for frame, x, y, m0 in points:
            lines.append(f"{row}\t{traj_id}\t{frame}\t{x}\t{y}\t0.0\t{m0}\t1.0\t2.0\t3.0\t4.0\t0.0\n")
            row += 1
    path.write_text("".join(lines))


def test_load_mosaic_table(tmp_path):
    path = tmp_path / "cell1.txt"
    _write_mosaic_table(path, {
        1: [(0, 10.5, 20.0, 150.0), (1, 11.0, 20.5, 160.0)],
        2: [(3, 5.0, 5.0, 90.0)],
    })
    records = load_mosaic_table(path, file_id=4)

    assert list(records.columns) == ['id', 'trajectory_id', 'frame', 'x', 'y', 'intensity']
    assert len(records) == 3
    assert (records['id'] == 4).all()
    assert list(records['trajectory_id']) == [1, 1, 2]
    assert records['x'].iloc[0] == pytest.approx(10.5)
    assert records['intensity'].iloc[1] == pytest.approx(160.0)


def test_load_mosaic_table_errors(tmp_path):
    with pytest.raises(ValueError):
        load_mosaic_table(tmp_path / "missing.txt")

    bad = tmp_path / "bad.txt"
    bad.write_text("a\tb\n1\t2\n")
    with pytest.raises(ValueError):
        load_mosaic_table(bad)

    no_m0 = tmp_path / "no_m0.txt"
    no_m0.write_text("Trajectory\tFrame\tx\ty\n1\t0\t1.0\t2.0\n")
    with pytest.warns(UserWarning):
        records = load_mosaic_table(no_m0)
    assert np.isnan(records['intensity'].iloc[0])


def test_load_condition_directory_numbers_files(tmp_path):
    _write_mosaic_table(tmp_path / "b.txt", {1: [(0, 1.0, 1.0, 10.0)]})
    _write_mosaic_table(tmp_path / "a.txt", {1: [(0, 2.0, 2.0, 20.0)]})
    (tmp_path / "notes.csv").write_text("ignored")

    records = load_condition_directory(tmp_path, "DMSO")
    assert list(records['condition']) == ["DMSO", "DMSO"]
    assert list(records['id']) == [1, 2]
    # a.txt sorts first
    assert list(records['x']) == [2.0, 1.0]

    trajectories = trajectories_from_records(records)
    assert [t.key for t in trajectories] == [("DMSO", 1, 1), ("DMSO", 2, 1)]


def test_empty_files_warn(tmp_path):
    header_only = tmp_path / "header.txt"
    header_only.write_text(MOSAIC_HEADER)
    with pytest.warns(UserWarning, match="no trajectories"):
        records = load_mosaic_table(header_only)
    assert records.empty

    zero_bytes = tmp_path / "zero.txt"
    zero_bytes.write_text("")
    with pytest.warns(UserWarning, match="empty file"):
        records = load_mosaic_table(zero_bytes)
    assert records.empty
    assert list(records.columns) == ['id', 'trajectory_id', 'frame', 'x', 'y', 'intensity']


def test_directory_with_empty_file_still_loads(tmp_path):
    _write_mosaic_table(tmp_path / "a.txt", {1: [(0, 1.0, 1.0, 10.0), (1, 2.0, 1.0, 10.0)]})
    (tmp_path / "b.txt").write_text("")
    _write_mosaic_table(tmp_path / "c.txt", {1: [(0, 5.0, 5.0, 30.0)]})

    with pytest.warns(UserWarning, match="b.txt"):
        records = load_condition_directory(tmp_path, "DMSO")

    assert len(records) == 3
    # the empty file still takes id 2
    assert list(records['id']) == [1, 1, 3]
    assert records['x'].dtype == float


def test_load_conditions(tmp_path):
    for name in ("ctrl", "drug"):
        d = tmp_path / name
        d.mkdir()
        _write_mosaic_table(d / "cell.txt", {1: [(0, 1.0, 1.0, 10.0), (1, 2.0, 1.0, 10.0)]})

    records = load_conditions({"ctrl": tmp_path / "ctrl", "drug": tmp_path / "drug"})
    assert set(records['condition']) == {"ctrl", "drug"}
    assert len(records) == 4

    with pytest.raises(ValueError):
        load_condition_directory(tmp_path / "ctrl", "ctrl", pattern="*.tsv")


def test_save_results(tmp_path, random_walk_records):
    records = random_walk_records("ctrl", n_tracks=5, length=20, step_sigma=1.0, seed=0)
    analyses, _ = analyze_trajectories(trajectories_from_records(records))

    path = tmp_path / "results.csv"
    save_analysis_results(analyses, path)
    saved = pd.read_csv(path)
    assert len(saved) == 5
    assert {'d', 'alt_d', 'alpha', 'd_status', 'alt_d_status'} <= set(saved.columns)
    np.testing.assert_allclose(saved['d'], [a.d for a in analyses])
    assert list(saved.columns) == list(results_dataframe(analyses).columns)

    stats_path = tmp_path / "stats.csv"
    save_group_statistics(aggregate_fit_results(analyses), stats_path)
    stats = pd.read_csv(stats_path)
    assert list(stats['condition']) == ["ctrl"]
    assert stats['n_trajectories'].iloc[0] == 5
