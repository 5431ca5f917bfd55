"""
School Poverty Analysis - Summary Tables
Grouped reductions over the merged school/county records

Tables:
- County summary: enrollment, lunch participation, mean poverty (all years pooled)
- Poverty tier comparison: mean z-scores by pov_cat
- Highest/lowest poverty counties for a reference year, with mean test scores
- Year summary: enrollment and lunch participation trend

Missing values are excluded from every sum and mean; an all-missing group
yields NaN, never 0.
"""

from typing import List, Optional

import numpy as np
import pandas as pd

from config.settings import POVERTY_CATEGORIES, get_settings
from src.processing.cleaning import combine_lunch_shares
from src.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


def _lunch_fractions(grouped: pd.DataFrame) -> pd.DataFrame:
    """Turn summed counts and reporting enrollment back into shares."""
    grouped["per_free_lunch"] = grouped["num_free_lunch"] / grouped["free_lunch_enroll"]
    grouped["per_reduced_lunch"] = grouped["num_reduced_lunch"] / grouped["reduced_lunch_enroll"]
    grouped["per_free_reduced_lunch"] = combine_lunch_shares(
        grouped["per_free_lunch"], grouped["per_reduced_lunch"]
    )
    return grouped.drop(columns=["free_lunch_enroll", "reduced_lunch_enroll"])


def _aggregate_enrollment(df: pd.DataFrame, by: str, include_scores: bool = False) -> pd.DataFrame:
    work = df.copy()
    # Denominator only counts schools that report the matching lunch count
    work["free_lunch_enroll"] = work["total_enroll"].where(work["num_free_lunch"].notna())
    work["reduced_lunch_enroll"] = work["total_enroll"].where(work["num_reduced_lunch"].notna())

    agg = {
        "total_enroll": ("total_enroll", lambda s: s.sum(min_count=1)),
        "num_free_lunch": ("num_free_lunch", lambda s: s.sum(min_count=1)),
        "num_reduced_lunch": ("num_reduced_lunch", lambda s: s.sum(min_count=1)),
        "free_lunch_enroll": ("free_lunch_enroll", lambda s: s.sum(min_count=1)),
        "reduced_lunch_enroll": ("reduced_lunch_enroll", lambda s: s.sum(min_count=1)),
        "n_schools": ("school_id", "nunique"),
    }
    if "county_per_poverty" in work.columns:
        agg["county_per_poverty"] = ("county_per_poverty", "mean")
    if include_scores:
        agg["mean_ela_score"] = ("mean_ela_score", "mean")
        agg["mean_math_score"] = ("mean_math_score", "mean")

    grouped = work.groupby(by, sort=True).agg(**agg).reset_index()
    return _lunch_fractions(grouped)


def summarize_by_county(merged: pd.DataFrame, include_scores: bool = False) -> pd.DataFrame:
    """
    Pool all years per county.

    Args:
        merged: Merged school/county records
        include_scores: Add mean ELA and math scores

    Returns:
        One row per county
    """
    summary = _aggregate_enrollment(merged, "county_name", include_scores=include_scores)
    logger.info(f"County summary: {len(summary)} counties")
    return summary


def summarize_by_year(merged: pd.DataFrame) -> pd.DataFrame:
    """
    Pool all counties per year.

    Args:
        merged: Merged school/county records

    Returns:
        One row per year
    """
    return _aggregate_enrollment(merged, "year")


def compare_poverty_tiers(merged: pd.DataFrame) -> pd.DataFrame:
    """
    Mean standardized scores by poverty tier.

    Args:
        merged: Merged records with pov_cat and z-score columns

    Returns:
        Rows ordered low, medium, high; tiers without schools are omitted
    """
    tiers = merged.dropna(subset=["pov_cat"])

    table = (
        tiers.groupby("pov_cat")
        .agg(
            z_mean_ela_score=("z_mean_ela_score", "mean"),
            z_mean_math_score=("z_mean_math_score", "mean"),
            n_records=("school_id", "size"),
        )
        .reindex([c for c in POVERTY_CATEGORIES if c in set(tiers["pov_cat"])])
    )
    table.index.name = "pov_cat"

    logger.info(f"Poverty tier comparison:\n{table.round(3).to_string()}")
    return table.reset_index()


def select_extreme_poverty_counties(
    county_df: pd.DataFrame,
    year: int,
    n: Optional[int] = None,
    highest: bool = True,
) -> List[str]:
    """
    Pick the counties with the highest (or lowest) poverty rate in a year.

    Args:
        county_df: County records
        year: Reference year
        n: Number of counties (default: settings.EXTREME_COUNTY_COUNT)
        highest: True for highest poverty, False for lowest

    Returns:
        County names ordered from most to least extreme
    """
    n = settings.EXTREME_COUNTY_COUNT if n is None else n

    year_df = county_df[county_df["year"] == year].dropna(subset=["county_per_poverty"])
    if year_df.empty:
        raise ValueError(f"No county poverty data for year {year}")

    ranked = year_df.sort_values(
        ["county_per_poverty", "county_name"], ascending=[not highest, True], kind="mergesort"
    )
    return ranked["county_name"].head(n).tolist()


def summarize_extreme_counties(
    merged: pd.DataFrame,
    county_df: pd.DataFrame,
    year: int,
    n: Optional[int] = None,
    highest: bool = True,
) -> pd.DataFrame:
    """
    County summary (with mean scores) restricted to the extreme-poverty counties of a year.

    Args:
        merged: Merged school/county records
        county_df: County records used for ranking
        year: Reference year
        n: Number of counties (default: settings.EXTREME_COUNTY_COUNT)
        highest: True for highest poverty, False for lowest

    Returns:
        One row per selected county, ordered by poverty rate
    """
    counties = select_extreme_poverty_counties(county_df, year, n=n, highest=highest)
    subset = merged[(merged["year"] == year) & (merged["county_name"].isin(counties))]

    if subset.empty:
        logger.warning(f"No school records for {year} in counties {counties}")

    summary = summarize_by_county(subset, include_scores=True)
    rank = {name: i for i, name in enumerate(counties)}
    summary = summary.sort_values("county_name", key=lambda s: s.map(rank)).reset_index(drop=True)

    label = "highest" if highest else "lowest"
    logger.info(f"{label.capitalize()} poverty counties in {year}: {counties}")
    return summary


def resolve_reference_year(
    county_df: pd.DataFrame, year: Optional[int] = None, merged: Optional[pd.DataFrame] = None
) -> int:
    """
    Pick the year for the highest/lowest poverty county tables.

    Order: the requested year, settings.REFERENCE_YEAR, the latest year with
    school records matched to county poverty data (when merged is given),
    else the latest county year.

    Args:
        county_df: County records
        year: Explicit year
        merged: Merged school/county records

    Returns:
        Reference year
    """
    if year is not None:
        return int(year)
    if settings.REFERENCE_YEAR is not None:
        return int(settings.REFERENCE_YEAR)

    if merged is not None:
        matched = merged.loc[merged["county_per_poverty"].notna(), "year"].dropna()
        if not matched.empty:
            return int(np.max(matched))
        logger.warning("No school records matched county poverty data; using latest county year")

    years = county_df["year"].dropna()
    if years.empty:
        raise ValueError("County data has no years")
    return int(np.max(years))


def resolve_cross_section_year(merged: pd.DataFrame, year: Optional[int] = None) -> int:
    """Return the requested year, else settings.CROSS_SECTION_YEAR, else the latest school year."""
    if year is not None:
        return int(year)
    if settings.CROSS_SECTION_YEAR is not None:
        return int(settings.CROSS_SECTION_YEAR)

    years = merged["year"].dropna()
    if years.empty:
        raise ValueError("School data has no years")
    return int(np.max(years))
