"""
School Poverty Analysis - Simple Linear Models
Ordinary least squares fits (one predictor, one response) for exploratory inference

Models:
- Test score vs. free/reduced lunch share (single-year cross-section)
- Year-over-year change in z-score vs. change in lunch share (same-school lag)
- Test score vs. county poverty rate (optionally low-enrollment counties only)
- County poverty rate vs. county lunch share

No multi-variable models, regularization or cross-validation.
"""

from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from scipy import stats

from config.settings import get_settings
from src.processing.aggregation import resolve_cross_section_year
from src.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

MIN_OBSERVATIONS = 3


@dataclass
class RegressionResult:
    """Fitted OLS line with standard errors and goodness of fit"""

    name: str
    predictor: str
    response: str
    slope: float
    intercept: float
    slope_stderr: float
    intercept_stderr: float
    r_squared: float
    p_value: float
    n_obs: int

    def predict(self, x):
        return self.intercept + self.slope * np.asarray(x, dtype=float)

    def to_dict(self) -> Dict:
        return asdict(self)


def fit_ols(
    df: pd.DataFrame, predictor: str, response: str, name: Optional[str] = None
) -> RegressionResult:
    """
    Fit response = intercept + slope * predictor by least squares.

    Rows missing either variable are dropped before fitting.

    Args:
        df: Data containing both columns
        predictor: Explanatory column
        response: Outcome column
        name: Label for the model (default: "<response>_vs_<predictor>")

    Returns:
        RegressionResult

    Raises:
        ValueError: Fewer than 3 complete observations, or a constant predictor
    """
    name = name or f"{response}_vs_{predictor}"

    data = df[[predictor, response]].apply(pd.to_numeric, errors="coerce").dropna()
    if len(data) < MIN_OBSERVATIONS:
        raise ValueError(
            f"{name}: need at least {MIN_OBSERVATIONS} complete observations, got {len(data)}"
        )

    x = data[predictor].to_numpy(dtype=float)
    y = data[response].to_numpy(dtype=float)

    if np.ptp(x) == 0:
        raise ValueError(f"{name}: predictor {predictor} has no variation")

    fit = stats.linregress(x, y)

    result = RegressionResult(
        name=name,
        predictor=predictor,
        response=response,
        slope=float(fit.slope),
        intercept=float(fit.intercept),
        slope_stderr=float(fit.stderr),
        intercept_stderr=float(fit.intercept_stderr),
        r_squared=float(fit.rvalue ** 2),
        p_value=float(fit.pvalue),
        n_obs=int(len(data)),
    )

    logger.info(
        f"{name}: slope={result.slope:.4f} (se={result.slope_stderr:.4f}), "
        f"intercept={result.intercept:.4f}, R2={result.r_squared:.3f}, n={result.n_obs}"
    )
    return result


def add_year_over_year_changes(df: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    """
    Add <col>_diff = value minus the same school's previous observation.

    Rows are ordered by (school_id, year); each school's first row gets NaN.

    Args:
        df: School records
        columns: Columns to difference

    Returns:
        Sorted copy with difference columns added
    """
    result = df.sort_values(["school_id", "year"], kind="mergesort").reset_index(drop=True)
    by_school = result.groupby("school_id", sort=False)

    for col in columns:
        result[f"{col}_diff"] = by_school[col].diff()

    return result


def fit_score_vs_lunch(
    merged: pd.DataFrame,
    year: int,
    score: str = "mean_ela_score",
    lunch: str = "per_free_reduced_lunch",
) -> RegressionResult:
    """Cross-sectional fit of a raw test score on lunch share within one year."""
    cross_section = merged[merged["year"] == year]
    return fit_ols(cross_section, lunch, score, name=f"{score}_vs_{lunch}_{year}")


def fit_score_change_vs_lunch_change(
    merged: pd.DataFrame,
    score: str = "z_mean_ela_score",
    lunch: str = "per_free_reduced_lunch",
) -> RegressionResult:
    """Fit the same-school change in standardized score on the change in lunch share."""
    changes = add_year_over_year_changes(merged, [score, lunch])
    return fit_ols(
        changes, f"{lunch}_diff", f"{score}_diff", name=f"{score}_change_vs_{lunch}_change"
    )


def low_enrollment_counties(merged: pd.DataFrame, max_enrollment: float) -> List[str]:
    """
    Counties whose average yearly enrollment is at or below max_enrollment.

    Args:
        merged: Merged school/county records
        max_enrollment: Enrollment ceiling (students per year)

    Returns:
        Sorted county names
    """
    yearly = merged.groupby(["county_name", "year"])["total_enroll"].sum(min_count=1)
    average = yearly.groupby(level="county_name").mean()
    return sorted(average[average <= max_enrollment].index.tolist())


def fit_score_vs_poverty(
    merged: pd.DataFrame,
    score: str = "z_mean_ela_score",
    max_county_enrollment: Optional[float] = None,
) -> RegressionResult:
    """
    Fit a test score on county poverty rate.

    Args:
        merged: Merged school/county records
        score: Response column
        max_county_enrollment: If set, only use counties at or below this
            average yearly enrollment

    Returns:
        RegressionResult
    """
    data = merged
    name = f"{score}_vs_county_per_poverty"

    if max_county_enrollment is not None:
        counties = low_enrollment_counties(merged, max_county_enrollment)
        data = merged[merged["county_name"].isin(counties)]
        name = f"{name}_low_enrollment"
        logger.info(f"{len(counties)} counties at or below {max_county_enrollment:,.0f} students")

    return fit_ols(data, "county_per_poverty", score, name=name)


def fit_poverty_vs_lunch(
    county_summary: pd.DataFrame, lunch: str = "per_free_reduced_lunch"
) -> RegressionResult:
    """Fit county poverty rate on the county's aggregate lunch share."""
    return fit_ols(
        county_summary, lunch, "county_per_poverty", name=f"county_per_poverty_vs_{lunch}"
    )


def run_regressions(
    merged: pd.DataFrame,
    county_summary: pd.DataFrame,
    year: Optional[int] = None,
    max_county_enrollment: Optional[float] = None,
) -> Dict[str, RegressionResult]:
    """
    Fit the standard model set.

    A model that cannot be fit (too few observations, constant predictor) is
    logged and left out; the remaining models still run.

    Args:
        merged: Merged school/county records
        county_summary: Output of summarize_by_county
        year: Cross-section year (default: settings.CROSS_SECTION_YEAR, else latest)
        max_county_enrollment: Low-enrollment ceiling (default: settings.LOW_ENROLLMENT_THRESHOLD)

    Returns:
        Ordered mapping of model name -> RegressionResult
    """
    year = resolve_cross_section_year(merged, year)
    if max_county_enrollment is None:
        max_county_enrollment = settings.LOW_ENROLLMENT_THRESHOLD

    logger.info(f"Fitting regressions (cross-section year={year})")

    models = [
        lambda: fit_score_vs_lunch(merged, year, score="mean_ela_score"),
        lambda: fit_score_vs_lunch(merged, year, score="mean_math_score"),
        lambda: fit_score_change_vs_lunch_change(merged, score="z_mean_ela_score"),
        lambda: fit_score_change_vs_lunch_change(merged, score="z_mean_math_score"),
        lambda: fit_score_vs_poverty(merged, score="z_mean_ela_score"),
        lambda: fit_score_vs_poverty(merged, score="z_mean_math_score"),
        lambda: fit_score_vs_poverty(
            merged, score="z_mean_ela_score", max_county_enrollment=max_county_enrollment
        ),
        lambda: fit_poverty_vs_lunch(county_summary),
    ]

    results = OrderedDict()
    for model in models:
        try:
            result = model()
        except ValueError as e:
            logger.warning(f"Skipping regression: {e}")
            continue
        results[result.name] = result

    logger.info(f"Fitted {len(results)}/{len(models)} regressions")
    return results


def regression_table(results: Dict[str, RegressionResult]) -> pd.DataFrame:
    """
    Tabulate regression results.

    Args:
        results: Mapping of model name -> RegressionResult

    Returns:
        One row per model
    """
    columns = list(RegressionResult.__dataclass_fields__)
    if not results:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame([r.to_dict() for r in results.values()], columns=columns)
