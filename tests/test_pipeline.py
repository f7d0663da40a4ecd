import numpy as np
import pandas as pd
import pytest

from msd_analysis import MSDAnalysis, AnalysisParameters


@pytest.fixture
def records(random_walk_records):
    short = random_walk_records("ctrl", n_tracks=3, length=8, step_sigma=1.0,
                                seed=30, file_id=2)
    return pd.concat([
        random_walk_records("ctrl", n_tracks=12, length=40, step_sigma=1.0, seed=10),
        short,
        random_walk_records("drug", n_tracks=12, length=40, step_sigma=0.3, seed=20),
    ], ignore_index=True)


@pytest.mark.parametrize("kwargs", [
    {"time_resolution": 0.0},
    {"time_resolution": float("nan")},
    {"pixel_size_x": -1.0},
    {"pixel_size_y": float("nan")},
    {"min_trajectory_length": 0},
    {"alt_fit_points": 1},
])
def test_parameters_are_validated(kwargs):
    with pytest.raises(ValueError):
        AnalysisParameters(**kwargs)


def test_analyze_requires_data():
    with pytest.raises(ValueError):
        MSDAnalysis().analyze()


def test_full_analysis(records):
    params = AnalysisParameters(time_resolution=0.1, pixel_size_x=0.1,
                                pixel_size_y=0.1, min_trajectory_length=15)
    analysis = MSDAnalysis(params).add_records(records)

    assert analysis.conditions == ["ctrl", "drug"]
    assert analysis.n_trajectories == 27

    analyses = analysis.analyze()
    # the three 8-frame tracks are filtered out
    assert len(analyses) == 24
    assert analysis.skipped == []
    assert all(a.fit.d_ok and a.fit.alt_d_ok for a in analyses)
    assert all(a.intensity_bin in ("small", "medium", "big") for a in analyses)

    stats = analysis.group_statistics()
    assert stats[("ctrl",)].n_trajectories == 12
    assert stats[("ctrl",)].d.mean > stats[("drug",)].d.mean

    df = analysis.get_statistics_dataframe(by=("condition", "intensity_bin"))
    assert df["n_trajectories"].sum() == 24

    summary = analysis.get_summary_dataframe()
    assert len(summary) == 24
    assert set(summary["condition"]) == {"ctrl", "drug"}
    assert {"r_squared", "alt_d_degraded"} <= set(summary.columns)

    curves = analysis.mean_msd_tau()
    assert set(curves["condition"]) == {"ctrl", "drug"}
    assert len(curves) == 2 * (40 // 3 + 1)

    ensemble = analysis.mean_ensemble_msd()
    assert (ensemble[ensemble["time"] == 0.0]["ensemble_msd"] == 0.0).all()

    comparison = analysis.compare("ctrl", "drug")
    assert comparison.n_a == comparison.n_b == 12

    text = analysis.summary()
    assert "ctrl" in text and "drug" in text
    assert "Analyzed: 24" in text


def test_overrides_and_threads(records):
    params = AnalysisParameters(time_resolution=0.1, min_trajectory_length=15)
    analysis = MSDAnalysis(params).add_records(records)

    all_tracks = analysis.analyze(min_length=1)
    assert len(all_tracks) == 27
    short = [a for a in all_tracks if a.length == 8]
    # 8 frames -> two lags, enough for both fits
    assert all(a.fit.d_ok for a in short)
    assert all(a.fit.alt_d_degraded for a in short)

    threaded = analysis.analyze(max_workers=3)
    assert len(threaded) == 24


def test_get_analysis_and_samples(records):
    analysis = MSDAnalysis(AnalysisParameters(min_trajectory_length=15))
    analysis.add_records(records).run()

    a = analysis.get_analysis("drug", 1, 5)
    assert a.key == ("drug", 1, 5)
    with pytest.raises(ValueError):
        analysis.get_analysis("drug", 1, 99)

    samples = analysis.sample_tracks(intensity_bin=None, seed=0)
    assert set(samples) == {"ctrl", "drug"}
    for traj in samples.values():
        assert traj.x[0] == 0.0 and traj.y[0] == 0.0


def test_add_records_resets_results(records):
    analysis = MSDAnalysis(AnalysisParameters(min_trajectory_length=15))
    analysis.add_records(records[records["condition"] == "ctrl"]).analyze()
    assert analysis.analyses is not None

    analysis.add_records(records[records["condition"] == "drug"])
    assert analysis.analyses is None
    assert len(analysis.analyze()) == 24
