"""
School Poverty Analysis - Application Settings
Manages environment variables and configuration using Pydantic
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional
import os


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Nothing is required; every value has a default suitable for a local run
    against the two CSV files under data/.
    """

    # Input files
    SCHOOL_DATA_PATH: str = "data/school_data.csv"
    COUNTY_DATA_PATH: str = "data/county_data.csv"
    CSV_DELIMITER: str = ","

    # Application
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # File storage
    EXPORT_DIR: str = "exports"
    LOG_DIR: str = "logs"

    # Cleaning
    MISSING_SENTINEL: int = -99

    # Poverty tiers (quantile cutoffs per year)
    POVERTY_LOW_QUANTILE: float = 0.25
    POVERTY_HIGH_QUANTILE: float = 0.75

    # Aggregation
    REFERENCE_YEAR: Optional[int] = None  # Default: latest county year
    EXTREME_COUNTY_COUNT: int = 5

    # Modeling
    CROSS_SECTION_YEAR: Optional[int] = None  # Default: latest school year
    LOW_ENROLLMENT_THRESHOLD: int = 10000  # Total students per county

    # Report
    FIGURE_DPI: int = 150

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Create directories if they don't exist
        os.makedirs(self.EXPORT_DIR, exist_ok=True)
        if self.LOG_DIR:
            os.makedirs(self.LOG_DIR, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    """
    Returns cached settings instance.
    Uses lru_cache to avoid re-reading .env on every call.
    """
    return Settings()


# Required input columns
SCHOOL_COLUMNS = [
    "school_id",
    "school_name",
    "county_name",
    "year",
    "total_enroll",
    "per_free_lunch",
    "per_reduced_lunch",
    "per_lep",
    "mean_ela_score",
    "mean_math_score",
]

COUNTY_COLUMNS = ["county_name", "year", "county_per_poverty"]

# Numeric school columns where the missing sentinel is recoded
SCHOOL_METRIC_COLUMNS = [
    "total_enroll",
    "per_free_lunch",
    "per_reduced_lunch",
    "per_lep",
    "mean_ela_score",
    "mean_math_score",
]

LUNCH_COLUMNS = ["per_free_lunch", "per_reduced_lunch"]

SCORE_COLUMNS = ["mean_ela_score", "mean_math_score"]

# Ordered low -> high
POVERTY_CATEGORIES = ("low", "medium", "high")
