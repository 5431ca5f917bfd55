import pandas as pd
import pytest

from src.processing.cleaning import clean_school_data
from src.processing.merge import find_unmatched_schools, merge_school_county
from src.processing.poverty_categories import categorize_counties


def test_merge_keeps_every_school_row_once(sample_school_data, sample_county_data):
    schools = clean_school_data(sample_school_data, sentinel=-99)
    counties = categorize_counties(sample_county_data)

    merged = merge_school_county(schools, counties)

    assert len(merged) == len(schools)
    assert merged[["school_id", "year"]].equals(schools[["school_id", "year"]])
    assert {"county_per_poverty", "pov_cat"} <= set(merged.columns)


def test_merge_unmatched_schools_get_null_county_fields(sample_county_data):
    schools = pd.DataFrame({
        "school_id": ["x", "y"],
        "county_name": ["Albany", "Nowhere"],
        "year": [2016, 2016],
    })
    counties = categorize_counties(sample_county_data)

    merged = merge_school_county(schools, counties)

    assert len(merged) == 2
    assert merged.loc[0, "county_per_poverty"] == pytest.approx(0.05)
    assert merged.loc[0, "pov_cat"] == "low"
    assert pd.isna(merged.loc[1, "county_per_poverty"])
    assert pd.isna(merged.loc[1, "pov_cat"])


def test_merge_matches_on_year_as_well_as_county(sample_county_data):
    schools = pd.DataFrame({"school_id": ["x", "x"], "county_name": ["Bronx", "Bronx"], "year": [2016, 2017]})

    merged = merge_school_county(schools, sample_county_data)

    assert merged["county_per_poverty"].tolist() == pytest.approx([0.10, 0.30])


def test_merge_rejects_duplicate_county_keys(sample_county_data):
    duplicated = pd.concat([sample_county_data, sample_county_data.iloc[[0]]], ignore_index=True)
    schools = pd.DataFrame({"school_id": ["x"], "county_name": ["Albany"], "year": [2016]})

    with pytest.raises(ValueError, match="duplicate"):
        merge_school_county(schools, duplicated)


def test_find_unmatched_schools_counts_missing_county_years():
    merged = pd.DataFrame({
        "school_id": ["a", "b", "c"],
        "county_name": ["Nowhere", "Nowhere", "Albany"],
        "year": [2016, 2016, 2016],
        "county_per_poverty": [None, None, 0.05],
    })

    result = find_unmatched_schools(merged)

    assert result.to_dict("records") == [{"county_name": "Nowhere", "year": 2016, "n_schools": 2}]


def test_find_unmatched_schools_empty_when_all_match():
    merged = pd.DataFrame({"county_name": ["Albany"], "year": [2016], "county_per_poverty": [0.05]})
    assert find_unmatched_schools(merged).empty


def test_find_unmatched_schools_keeps_rows_with_missing_year(caplog):
    merged = pd.DataFrame({
        "school_id": ["a", "b"],
        "county_name": ["Albany", "Albany"],
        "year": [None, 2016],
        "county_per_poverty": [None, 0.05],
    })

    with caplog.at_level("WARNING"):
        result = find_unmatched_schools(merged)

    assert len(result) == 1
    assert result.loc[0, "county_name"] == "Albany"
    assert pd.isna(result.loc[0, "year"])
    assert result.loc[0, "n_schools"] == 1
    assert "1 county-years" in caplog.text
