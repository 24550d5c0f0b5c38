"""End-to-end tests for PointPatternAnalyzer and analyze()."""

import json

import geopandas as gpd
import pytest
from shapely.geometry import Point

from pointpattern import AnalysisConfig, PointPatternAnalyzer, analyze
from pointpattern.density import default_sigma


STEPS = ["pattern", "density", "g_envelope", "l_envelope", "clark_evans", "quadrat_counts"]


def _config(**kwargs):
    params = dict(crs="EPSG:32617", g_nsim=9, l_nsim=5, dimyx=32,
                  g_radii=(0.0, None, 12), l_radii=(0.0, None, 8))
    params.update(kwargs)
    return AnalysisConfig(**params)


def test_full_report(tmp_path, geo_files):
    points_path, boundary_path = geo_files
    out = tmp_path / "out"
    analyzer = PointPatternAnalyzer(points_path, boundary_path, config=_config(output_dir=str(out)))

    summary_df, report = analyzer.generate_report(output_path=tmp_path / "report.json")

    assert report["computed_steps"] == STEPS
    assert report["skipped_steps"] == []
    assert list(summary_df.columns) == ["step", "key_measure", "value"]
    assert set(summary_df["step"]) == set(STEPS)

    pattern = report["metrics"]["pattern"]
    assert pattern["n_points"] == 120
    assert pattern["n_rejected"] == 2

    g = report["metrics"]["g_envelope"]
    assert g["nsim"] == 9
    assert g["alpha"] == pytest.approx(0.2)
    assert len(g["table"]["r"]) == 12

    for name in ["g_envelope.csv", "l_envelope.csv", "density.tif", "pattern.png",
                 "density.png", "g_envelope.png", "l_envelope.png", "map.html"]:
        assert (out / name).exists(), name
    assert set(report["outputs"]) >= {"g_envelope_csv", "l_envelope_csv", "density_tif", "map"}

    saved = json.loads((tmp_path / "report.json").read_text())
    assert saved["metadata"]["config"]["crs"] == "EPSG:32617"
    assert saved["metadata"]["config"]["output_dir"] == str(out)
    assert (tmp_path / "report.csv").exists()


def test_report_without_plots(tmp_path, geo_files):
    points_path, boundary_path = geo_files
    out = tmp_path / "tables"
    analyzer = PointPatternAnalyzer(points_path, boundary_path, config=_config(output_dir=str(out)))
    _, report = analyzer.generate_report(make_plots=False)

    assert (out / "g_envelope.csv").exists()
    assert not (out / "map.html").exists()


def test_missing_input_raises(tmp_path, geo_files):
    _, boundary_path = geo_files
    with pytest.raises(FileNotFoundError, match="points file"):
        PointPatternAnalyzer(tmp_path / "missing.gpkg", boundary_path)


def test_county_filter(geo_files):
    points_path, boundary_path = geo_files
    analyzer = PointPatternAnalyzer(points_path, boundary_path, config=_config(county="alachua"))
    pattern = analyzer.build_pattern()

    assert 0 < pattern.n < 120
    assert set(pattern.marks) == {"Alachua"}


def test_results_are_cached(geo_files):
    points_path, boundary_path = geo_files
    analyzer = PointPatternAnalyzer(points_path, boundary_path, config=_config())
    assert analyzer.build_pattern() is analyzer.build_pattern()
    assert analyzer.calculate_density() is analyzer.calculate_density()


def test_default_bandwidth_replaces_cached_surface(geo_files):
    points_path, boundary_path = geo_files
    analyzer = PointPatternAnalyzer(points_path, boundary_path, config=_config())
    default = default_sigma(analyzer.build_pattern())

    custom = analyzer.calculate_density(sigma=500.0)
    assert custom.sigma == pytest.approx(500.0)
    assert analyzer.calculate_density().sigma == pytest.approx(default)


def test_seed_makes_envelopes_reproducible(geo_files):
    points_path, boundary_path = geo_files
    a = PointPatternAnalyzer(points_path, boundary_path, config=_config()).calculate_g_envelope()
    b = PointPatternAnalyzer(points_path, boundary_path, config=_config()).calculate_g_envelope()
    assert a["hi"].tolist() == b["hi"].tolist()


def test_single_point_skips_envelopes(tmp_path, geo_files, capsys):
    _, boundary_path = geo_files
    points_path = tmp_path / "one.gpkg"
    gpd.GeoDataFrame(
        {"county": ["Alachua"]}, geometry=[Point(-82.4, 29.7)], crs="EPSG:4326"
    ).to_file(points_path, driver="GPKG")

    analyzer = PointPatternAnalyzer(points_path, boundary_path, config=_config())
    _, report = analyzer.generate_report()

    skipped = {step["name"] for step in report["skipped_steps"]}
    assert {"g_envelope", "l_envelope"} <= skipped
    assert "pattern" in report["computed_steps"]
    assert "outputs" not in report
    out = capsys.readouterr().out
    assert "[ERROR] g_envelope" in out
    assert "[ERROR] l_envelope" in out


def test_analyze(tmp_path, geo_files):
    points_path, boundary_path = geo_files
    summary_df, report = analyze(
        points_path,
        boundary_path,
        output_path=tmp_path / "analysis.json",
        crs="EPSG:32617",
        g_nsim=5,
        l_nsim=5,
        dimyx=16,
    )
    assert report["metadata"]["config"]["g_nsim"] == 5
    assert "clark_evans" in report["computed_steps"]
    assert (tmp_path / "analysis.json").exists()
