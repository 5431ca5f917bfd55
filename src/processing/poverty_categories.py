"""
School Poverty Analysis - County Poverty Tiers
Buckets counties into low / medium / high poverty within each year

Cutoffs (computed independently per year, linear-interpolation quantiles):
- low:    county_per_poverty < 25th percentile
- high:   county_per_poverty > 75th percentile
- medium: everything else, including values exactly on a cutoff
"""

from typing import Optional

import pandas as pd

from config.settings import get_settings
from src.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


def compute_poverty_cutoffs(
    county_df: pd.DataFrame,
    low_q: Optional[float] = None,
    high_q: Optional[float] = None,
) -> pd.DataFrame:
    """
    Compute per-year poverty quantile cutoffs.

    Args:
        county_df: County records (county_name, year, county_per_poverty)
        low_q: Lower quantile (default: settings.POVERTY_LOW_QUANTILE)
        high_q: Upper quantile (default: settings.POVERTY_HIGH_QUANTILE)

    Returns:
        DataFrame with year, cutoff_low, cutoff_high (one row per year)
    """
    low_q = settings.POVERTY_LOW_QUANTILE if low_q is None else low_q
    high_q = settings.POVERTY_HIGH_QUANTILE if high_q is None else high_q

    if not 0 <= low_q <= high_q <= 1:
        raise ValueError(f"Invalid quantile bounds: low={low_q}, high={high_q}")

    poverty = pd.to_numeric(county_df["county_per_poverty"], errors="coerce")
    grouped = poverty.groupby(county_df["year"])

    cutoffs = pd.DataFrame(
        {
            "cutoff_low": grouped.quantile(low_q, interpolation="linear"),
            "cutoff_high": grouped.quantile(high_q, interpolation="linear"),
        }
    )
    cutoffs.index.name = "year"
    cutoffs = cutoffs.reset_index()

    for row in cutoffs.itertuples(index=False):
        logger.info(
            f"Poverty cutoffs {row.year}: low<{row.cutoff_low:.4f}, high>{row.cutoff_high:.4f}"
        )

    return cutoffs


def assign_poverty_category(value: float, cutoff_low: float, cutoff_high: float) -> Optional[str]:
    """
    Classify a single poverty value against its year's cutoffs.

    Args:
        value: County poverty fraction
        cutoff_low: Lower cutoff for the year
        cutoff_high: Upper cutoff for the year

    Returns:
        'low', 'medium', 'high', or None when the value or a cutoff is missing
    """
    if pd.isna(value) or pd.isna(cutoff_low) or pd.isna(cutoff_high):
        return None

    if value < cutoff_low:
        return "low"
    elif value > cutoff_high:
        return "high"
    else:
        return "medium"


def categorize_counties(
    county_df: pd.DataFrame, cutoffs: Optional[pd.DataFrame] = None
) -> pd.DataFrame:
    """
    Add a pov_cat column to the county table.

    Args:
        county_df: County records
        cutoffs: Precomputed cutoffs (default: computed from county_df)

    Returns:
        County records with pov_cat
    """
    if cutoffs is None:
        cutoffs = compute_poverty_cutoffs(county_df)

    result = county_df.copy()
    bounds = result[["year"]].merge(cutoffs, on="year", how="left")

    poverty = pd.to_numeric(result["county_per_poverty"], errors="coerce")

    result["pov_cat"] = [
        assign_poverty_category(value, low, high)
        for value, low, high in zip(poverty, bounds["cutoff_low"], bounds["cutoff_high"])
    ]

    counts = result["pov_cat"].value_counts().to_dict()
    logger.info(f"Categorized {len(result)} county-years: {counts}")

    return result
