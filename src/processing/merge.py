"""
School Poverty Analysis - School/County Join
Left-joins cleaned school records to categorized county records on (county_name, year)
"""

from typing import List

import pandas as pd

from src.utils.logging import get_logger

logger = get_logger(__name__)

JOIN_KEYS = ["county_name", "year"]


def _duplicate_keys(county_df: pd.DataFrame) -> List[tuple]:
    dupes = county_df[county_df.duplicated(subset=JOIN_KEYS, keep=False)]
    return sorted(set(map(tuple, dupes[JOIN_KEYS].itertuples(index=False, name=None))))


def merge_school_county(school_df: pd.DataFrame, county_df: pd.DataFrame) -> pd.DataFrame:
    """
    Attach county poverty fields to each school record.

    Schools without a matching county-year keep NaN for county fields. County
    data must hold at most one row per (county_name, year); duplicates would
    multiply school rows, so they are rejected.

    Args:
        school_df: Cleaned school records
        county_df: County records (typically with pov_cat)

    Returns:
        One row per input school row, in input order

    Raises:
        ValueError: If county_df has duplicate (county_name, year) keys
    """
    duplicates = _duplicate_keys(county_df)
    if duplicates:
        raise ValueError(f"County data has duplicate (county_name, year) keys: {duplicates}")

    county_fields = county_df.drop(
        columns=[c for c in county_df.columns if c in school_df.columns and c not in JOIN_KEYS]
    )

    merged = school_df.merge(county_fields, on=JOIN_KEYS, how="left", validate="many_to_one")

    unmatched = merged["county_per_poverty"].isna().sum() if "county_per_poverty" in merged else 0
    logger.info(
        f"Merged {len(school_df)} school records with {len(county_df)} county records "
        f"({unmatched} without county poverty data)"
    )

    return merged


def find_unmatched_schools(merged: pd.DataFrame) -> pd.DataFrame:
    """
    List county-years in school data that lack county poverty data.

    Args:
        merged: Output of merge_school_county

    Returns:
        DataFrame with county_name, year, n_schools
    """
    missing = merged[merged["county_per_poverty"].isna()]

    if missing.empty:
        return pd.DataFrame(columns=JOIN_KEYS + ["n_schools"])

    summary = missing.groupby(JOIN_KEYS, dropna=False).size().rename("n_schools").reset_index()
    logger.warning(f"{len(summary)} county-years in school data have no county record")
    return summary
