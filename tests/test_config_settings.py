from config.settings import (
    COUNTY_COLUMNS,
    POVERTY_CATEGORIES,
    SCHOOL_COLUMNS,
    SCHOOL_METRIC_COLUMNS,
    Settings,
    get_settings,
)


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    settings = Settings(_env_file=None)

    assert settings.MISSING_SENTINEL == -99
    assert settings.POVERTY_LOW_QUANTILE == 0.25
    assert settings.POVERTY_HIGH_QUANTILE == 0.75
    assert settings.EXTREME_COUNTY_COUNT == 5
    assert settings.REFERENCE_YEAR is None
    assert (tmp_path / "exports").is_dir()
    assert (tmp_path / "logs").is_dir()


def test_environment_override(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("REFERENCE_YEAR", "2016")
    monkeypatch.setenv("EXPORT_DIR", "out")

    settings = Settings(_env_file=None)

    assert settings.REFERENCE_YEAR == 2016
    assert (tmp_path / "out").is_dir()


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_column_constants():
    assert set(COUNTY_COLUMNS) == {"county_name", "year", "county_per_poverty"}
    assert set(SCHOOL_METRIC_COLUMNS) <= set(SCHOOL_COLUMNS)
    assert "county_name" not in SCHOOL_METRIC_COLUMNS
    assert POVERTY_CATEGORIES == ("low", "medium", "high")
