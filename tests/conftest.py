"""
Pytest configuration and shared fixtures for School Poverty Analysis tests.
"""

import numpy as np
import pandas as pd
import pytest


SAMPLE_COUNTIES = ["Albany", "Bronx", "Cayuga", "Delaware", "Erie"]


@pytest.fixture
def sample_school_data() -> pd.DataFrame:
    """Raw school records covering sentinels, percentages and two years."""
    return pd.DataFrame({
        "school_id": ["s1", "s2", "s3", "s4", "s5", "s1", "s2", "s3", "s4", "s5"],
        "school_name": ["A", "B", "C", "D", "E", "A", "B", "C", "D", "E"],
        "county_name": ["Albany", "Bronx", "Cayuga", "-99", "Erie",
                        "Albany", "Bronx", "Cayuga", "Delaware", "Erie"],
        "year": [2016] * 5 + [2017] * 5,
        "total_enroll": [500, 800, -99, 300, 1000, 520, 780, 410, 310, 990],
        "per_free_lunch": [0.40, 65.0, 0.20, 0.50, -99, 0.42, 0.70, 150, 0.55, 0.30],
        "per_reduced_lunch": [0.10, 0.10, 0.05, 0.60, 0.05, 0.12, 0.40, 0.05, 0.05, 0.06],
        "per_lep": [0.05, 0.20, -99, 0.01, 0.02, 0.06, 0.21, 0.00, 0.01, 0.03],
        "mean_ela_score": [300.0, 280.0, 310.0, 295.0, -99, 305.0, 285.0, 312.0, 298.0, 320.0],
        "mean_math_score": [305.0, 275.0, 315.0, 290.0, 330.0, 307.0, 279.0, 316.0, 292.0, 333.0],
    })


@pytest.fixture
def sample_county_data() -> pd.DataFrame:
    """County poverty rates for two years."""
    return pd.DataFrame({
        "county_name": SAMPLE_COUNTIES * 2,
        "year": [2016] * 5 + [2017] * 5,
        "county_per_poverty": [0.05, 0.10, 0.15, 0.20, 0.90,
                               0.06, 0.30, 0.12, 0.18, 0.09],
    })


@pytest.fixture
def linear_frame() -> pd.DataFrame:
    """Perfect negative linear relationship: score = 350 - 80 * lunch."""
    lunch = np.linspace(0.05, 0.95, 10)
    return pd.DataFrame({"per_free_reduced_lunch": lunch, "mean_ela_score": 350 - 80 * lunch})
