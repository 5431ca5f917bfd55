"""
School Poverty Analysis - Data Loader
Reads the school-level and county-level input tables from delimited text.

Inputs:
- School file: one row per school per year (scores, enrollment, lunch program)
- County file: one row per county per year (poverty rate)

Only column presence is checked. Malformed values pass through unchanged and
surface in later stages.
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from config.settings import COUNTY_COLUMNS, SCHOOL_COLUMNS, get_settings
from src.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

# Identifier columns kept as text so "-99" and leading zeros survive parsing
SCHOOL_DTYPES = {"school_id": str, "school_name": str, "county_name": str}
COUNTY_DTYPES = {"county_name": str}


def read_table(
    path: Union[str, Path],
    required_columns: List[str],
    delimiter: str = ",",
    dtype: Optional[Dict[str, type]] = None,
) -> pd.DataFrame:
    """
    Read a delimited file and verify that the required columns are present.

    Args:
        path: File location
        required_columns: Columns that must exist in the header
        delimiter: Field separator
        dtype: Optional column -> dtype overrides passed to pandas

    Returns:
        DataFrame with the file contents

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If any required column is absent
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")

    df = pd.read_csv(path, sep=delimiter, dtype=dtype)

    missing = [col for col in required_columns if col not in df.columns]
    if missing:
        raise ValueError(f"{path.name} is missing required columns: {', '.join(missing)}")

    logger.info(f"Read {len(df)} rows x {len(df.columns)} columns from {path}")
    return df


def _strip_county_names(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df["county_name"] = df["county_name"].str.strip()
    return df


def load_school_data(path: Optional[Union[str, Path]] = None) -> pd.DataFrame:
    """
    Load the school-level table.

    Args:
        path: File location (default: settings.SCHOOL_DATA_PATH)

    Returns:
        Raw school records
    """
    path = path or settings.SCHOOL_DATA_PATH
    df = read_table(path, SCHOOL_COLUMNS, delimiter=settings.CSV_DELIMITER, dtype=SCHOOL_DTYPES)
    df = _strip_county_names(df)

    logger.info(
        f"Loaded {len(df)} school records "
        f"({df['school_id'].nunique()} schools, years {sorted(df['year'].dropna().unique().tolist())})"
    )
    return df


def load_county_data(path: Optional[Union[str, Path]] = None) -> pd.DataFrame:
    """
    Load the county-level poverty table.

    Args:
        path: File location (default: settings.COUNTY_DATA_PATH)

    Returns:
        Raw county records
    """
    path = path or settings.COUNTY_DATA_PATH
    df = read_table(path, COUNTY_COLUMNS, delimiter=settings.CSV_DELIMITER, dtype=COUNTY_DTYPES)
    df = _strip_county_names(df)

    logger.info(f"Loaded {len(df)} county records ({df['county_name'].nunique()} counties)")
    return df
