import sys

import pandas as pd
import pytest

import src.run_pipeline as run_pipeline


def _write_inputs(tmp_path, sample_school_data, sample_county_data):
    school_path = tmp_path / "schools.csv"
    county_path = tmp_path / "counties.csv"
    sample_school_data.to_csv(school_path, index=False)
    sample_county_data.to_csv(county_path, index=False)
    return str(school_path), str(county_path)


def test_run_processing_and_aggregation(sample_school_data, sample_county_data):
    merged, counties, cutoffs = run_pipeline.run_processing(sample_school_data, sample_county_data)

    assert len(merged) == 9
    assert set(cutoffs["year"]) == {2016, 2017}
    assert "pov_cat" in counties.columns

    tables = run_pipeline.run_aggregation(merged, counties, reference_year=2016)

    assert "County summary (all years)" in tables
    assert "Mean z-scores by poverty tier" in tables
    assert tables["County-years without poverty data"].empty
    assert any(title.endswith("(2016)") for title in tables)


def test_run_pipeline_end_to_end(tmp_path, monkeypatch, sample_school_data, sample_county_data):
    school_path, county_path = _write_inputs(tmp_path, sample_school_data, sample_county_data)
    export_dir = tmp_path / "exports"

    import src.export.report as report

    monkeypatch.setattr(report.settings, "EXPORT_DIR", str(export_dir), raising=False)
    monkeypatch.setattr(
        sys,
        "argv",
        ["prog", "--school-data", school_path, "--county-data", county_path, "--latest-only"],
    )

    with pytest.raises(SystemExit) as exc:
        run_pipeline.main()

    assert exc.value.code == 0
    assert (export_dir / "report_latest.md").exists()
    assert (export_dir / "figures").is_dir()


def test_run_pipeline_no_export(tmp_path, monkeypatch, sample_school_data, sample_county_data):
    school_path, county_path = _write_inputs(tmp_path, sample_school_data, sample_county_data)
    calls = {"export": 0}

    monkeypatch.setattr(
        run_pipeline,
        "run_report_export",
        lambda *args, **kwargs: calls.__setitem__("export", calls["export"] + 1),
    )
    monkeypatch.setattr(
        sys,
        "argv",
        ["prog", "--school-data", school_path, "--county-data", county_path, "--no-export"],
    )

    with pytest.raises(SystemExit) as exc:
        run_pipeline.main()

    assert exc.value.code == 0
    assert calls["export"] == 0


def test_run_pipeline_missing_input_fails(tmp_path, monkeypatch):
    monkeypatch.setattr(
        sys,
        "argv",
        ["prog", "--school-data", str(tmp_path / "missing.csv"), "--county-data", str(tmp_path / "c.csv")],
    )

    with pytest.raises(SystemExit) as exc:
        run_pipeline.main()

    assert exc.value.code == 1


def test_run_pipeline_duplicate_county_keys_fail(tmp_path, monkeypatch, sample_school_data, sample_county_data):
    duplicated = pd.concat([sample_county_data, sample_county_data.iloc[[0]]], ignore_index=True)
    school_path, county_path = _write_inputs(tmp_path, sample_school_data, duplicated)

    monkeypatch.setattr(
        sys,
        "argv",
        ["prog", "--school-data", school_path, "--county-data", county_path, "--no-export"],
    )

    with pytest.raises(SystemExit) as exc:
        run_pipeline.main()

    assert exc.value.code == 1


def test_run_pipeline_interrupted(monkeypatch):
    def interrupt(*args, **kwargs):
        raise KeyboardInterrupt

    monkeypatch.setattr(run_pipeline, "run_ingestion", interrupt)
    monkeypatch.setattr(sys, "argv", ["prog"])

    with pytest.raises(SystemExit) as exc:
        run_pipeline.main()

    assert exc.value.code == 130


def test_run_aggregation_defaults_to_latest_matched_year(monkeypatch, sample_school_data, sample_county_data):
    import src.processing.aggregation as aggregation

    monkeypatch.setattr(aggregation.settings, "REFERENCE_YEAR", None, raising=False)
    next_year = sample_county_data[sample_county_data["year"] == 2017].assign(year=2018)
    counties = pd.concat([sample_county_data, next_year], ignore_index=True)

    merged, enriched, _ = run_pipeline.run_processing(sample_school_data, counties)
    tables = run_pipeline.run_aggregation(merged, enriched)

    extremes = {title: table for title, table in tables.items() if "poverty counties" in title}
    assert all(title.endswith("(2017)") for title in extremes)
    assert all(not table.empty for table in extremes.values())


def test_report_lists_county_years_without_poverty_data(
    tmp_path, monkeypatch, sample_school_data, sample_county_data
):
    counties = sample_county_data[
        ~((sample_county_data["county_name"] == "Erie") & (sample_county_data["year"] == 2017))
    ]
    school_path, county_path = _write_inputs(tmp_path, sample_school_data, counties)
    export_dir = tmp_path / "exports"

    import src.export.report as report

    monkeypatch.setattr(report.settings, "EXPORT_DIR", str(export_dir), raising=False)
    monkeypatch.setattr(
        sys,
        "argv",
        ["prog", "--school-data", school_path, "--county-data", county_path, "--latest-only"],
    )

    with pytest.raises(SystemExit) as exc:
        run_pipeline.main()

    assert exc.value.code == 0
    text = (export_dir / "report_latest.md").read_text(encoding="utf-8")
    section = text.split("## County-years without poverty data", 1)[1].split("\n## ", 1)[0]
    assert "Erie" in section
    assert "2017" in section
