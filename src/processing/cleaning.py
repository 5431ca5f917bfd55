"""
School Poverty Analysis - School Data Cleaning
Repairs the raw school table and derives comparison-ready fields

Rules (applied in order):
- Drop rows without a usable county key (sentinel "-99")
- Recode the -99 sentinel to missing in numeric metric columns
- Lunch percentages entered as 0-100 are rescaled to 0-1; unrecoverable values become missing
- Negative enrollment and per_lep outside 0-1 become missing
- Test scores are standardized within each year (difficulty changes yearly)
- Lunch participation counts and combined free/reduced share are derived

Every function returns a new DataFrame; inputs are never modified.
"""

from typing import List, Optional

import numpy as np
import pandas as pd

from config.settings import LUNCH_COLUMNS, SCHOOL_METRIC_COLUMNS, SCORE_COLUMNS, get_settings
from src.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


def drop_missing_counties(df: pd.DataFrame, sentinel: Optional[int] = None) -> pd.DataFrame:
    """
    Drop rows whose county_name is the missing sentinel, blank, or null.

    Args:
        df: School records
        sentinel: Missing-value code (default: settings.MISSING_SENTINEL)

    Returns:
        Records with a usable county key
    """
    sentinel = settings.MISSING_SENTINEL if sentinel is None else sentinel

    names = df["county_name"].astype("string").str.strip()
    unusable = (names.isna() | (names == str(sentinel)) | (names == "")).fillna(True).astype(bool)

    if unusable.any():
        logger.info(f"Dropping {int(unusable.sum())} rows without a county")

    return df.loc[~unusable].copy()


def recode_missing_sentinels(
    df: pd.DataFrame, columns: List[str], sentinel: Optional[int] = None
) -> pd.DataFrame:
    """
    Replace the sentinel value with NaN in the given numeric columns.

    Args:
        df: School records
        columns: Columns to recode (absent columns are skipped)
        sentinel: Missing-value code (default: settings.MISSING_SENTINEL)

    Returns:
        Records with sentinels recoded
    """
    sentinel = settings.MISSING_SENTINEL if sentinel is None else sentinel
    result = df.copy()

    for col in columns:
        if col not in result.columns:
            continue
        values = pd.to_numeric(result[col], errors="coerce")
        is_sentinel = values == sentinel
        if is_sentinel.any():
            logger.debug(f"Recoded {int(is_sentinel.sum())} sentinel values in {col}")
        result[col] = values.mask(is_sentinel)

    return result


def repair_lunch_percentages(df: pd.DataFrame) -> pd.DataFrame:
    """
    Bring free and reduced lunch shares onto the 0-1 scale.

    Values above 1 are assumed to be percentages and divided by 100. Anything
    still above 1, or below 0, is set to missing.

    Args:
        df: School records with sentinels already recoded

    Returns:
        Records with lunch shares in [0, 1] or missing
    """
    result = df.copy()

    for col in LUNCH_COLUMNS:
        values = pd.to_numeric(result[col], errors="coerce")

        rescale = values > 1
        values = values.where(~rescale, values / 100)

        invalid = (values > 1) | (values < 0)
        values = values.mask(invalid)

        if rescale.any() or invalid.any():
            logger.info(
                f"{col}: rescaled {int(rescale.sum())} percentage values, "
                f"discarded {int(invalid.sum())} out-of-range values"
            )

        result[col] = values

    return result


def discard_out_of_range(df: pd.DataFrame) -> pd.DataFrame:
    """
    Set impossible enrollment and English-learner values to missing.

    Negative total_enroll and per_lep outside [0, 1] cannot be repaired.

    Args:
        df: School records with sentinels already recoded

    Returns:
        Records with total_enroll >= 0 and per_lep in [0, 1], or missing
    """
    result = df.copy()

    enroll = pd.to_numeric(result["total_enroll"], errors="coerce")
    lep = pd.to_numeric(result["per_lep"], errors="coerce")

    bad_enroll = enroll < 0
    bad_lep = (lep < 0) | (lep > 1)

    if bad_enroll.any() or bad_lep.any():
        logger.info(
            f"Discarded {int(bad_enroll.sum())} negative enrollments and "
            f"{int(bad_lep.sum())} out-of-range per_lep values"
        )

    result["total_enroll"] = enroll.mask(bad_enroll)
    result["per_lep"] = lep.mask(bad_lep)

    return result


def _standardize(values: pd.Series) -> pd.Series:
    std = values.std()
    if pd.isna(std) or std == 0:
        return pd.Series(np.nan, index=values.index)
    return (values - values.mean()) / std


def add_yearly_zscores(df: pd.DataFrame, columns: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Add z_<col> columns standardized within each year's cohort.

    Scores are only comparable inside a single year, so each year is centered
    on its own mean and scaled by its own sample standard deviation.

    Args:
        df: School records
        columns: Score columns (default: ELA and math means)

    Returns:
        Records with z-score columns added
    """
    columns = columns or SCORE_COLUMNS
    result = df.copy()

    for col in columns:
        values = pd.to_numeric(result[col], errors="coerce")
        result[f"z_{col}"] = values.groupby(result["year"]).transform(_standardize)

        degenerate = [
            year for year, group in values.groupby(result["year"])
            if not (group.std() > 0)
        ]
        if degenerate:
            logger.warning(f"No variation in {col} for years {degenerate}; z-scores left missing")

    return result


def derive_lunch_counts(df: pd.DataFrame) -> pd.DataFrame:
    """
    Convert lunch shares to student counts using total enrollment.

    Args:
        df: School records

    Returns:
        Records with num_free_lunch and num_reduced_lunch added
    """
    result = df.copy()
    enroll = pd.to_numeric(result["total_enroll"], errors="coerce")

    result["num_free_lunch"] = (enroll * result["per_free_lunch"]).round()
    result["num_reduced_lunch"] = (enroll * result["per_reduced_lunch"]).round()

    return result


def combine_lunch_shares(free: pd.Series, reduced: pd.Series) -> pd.Series:
    """
    Sum free and reduced shares, falling back to the free share when the sum
    exceeds 1 (reduced-lunch students double-counted inside free lunch).
    """
    combined = free + reduced
    return combined.where(~(combined > 1), free)


def derive_free_reduced_lunch(df: pd.DataFrame) -> pd.DataFrame:
    """
    Add per_free_reduced_lunch.

    Args:
        df: School records with repaired lunch shares

    Returns:
        Records with the combined share added
    """
    result = df.copy()
    result["per_free_reduced_lunch"] = combine_lunch_shares(
        result["per_free_lunch"], result["per_reduced_lunch"]
    )

    overlapping = (result["per_free_lunch"] + result["per_reduced_lunch"]) > 1
    if overlapping.any():
        logger.info(f"{int(overlapping.sum())} schools report overlapping free/reduced shares")

    return result


def clean_school_data(df: pd.DataFrame, sentinel: Optional[int] = None) -> pd.DataFrame:
    """
    Run every cleaning rule over the raw school table.

    Args:
        df: Raw school records
        sentinel: Missing-value code (default: settings.MISSING_SENTINEL)

    Returns:
        Cleaned and enriched school records
    """
    logger.info(f"Cleaning {len(df)} school records")

    cleaned = drop_missing_counties(df, sentinel=sentinel)
    cleaned = recode_missing_sentinels(cleaned, SCHOOL_METRIC_COLUMNS, sentinel=sentinel)
    cleaned = repair_lunch_percentages(cleaned)
    cleaned = discard_out_of_range(cleaned)
    cleaned = add_yearly_zscores(cleaned)
    cleaned = derive_lunch_counts(cleaned)
    cleaned = derive_free_reduced_lunch(cleaned)

    missing = cleaned[SCHOOL_METRIC_COLUMNS + ["per_free_reduced_lunch"]].isna().sum()
    logger.info(
        f"Cleaned school data: {len(cleaned)} rows kept, "
        f"missing values: {missing[missing > 0].to_dict()}"
    )

    return cleaned.reset_index(drop=True)
