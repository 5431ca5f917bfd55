"""
School Poverty Analysis - Main Pipeline Orchestration

Runs the complete analysis from the two input files through the rendered report.

Pipeline stages:
1. Ingestion (school and county tables)
2. Processing (clean, categorize poverty tiers, join)
3. Aggregation (summary tables)
4. Modeling (simple OLS fits)
5. Report export (Markdown + scatter plots)

Usage:
    python -m src.run_pipeline
    python -m src.run_pipeline --school-data data/schools.csv --county-data data/counties.csv
    python -m src.run_pipeline --reference-year 2016 --no-export
"""

import argparse
import sys
from datetime import datetime
from typing import Dict, Optional, Tuple

import pandas as pd

from config.settings import get_settings
from src.export.report import build_scatter_plots, run_report_export
from src.ingest.loader import load_county_data, load_school_data
from src.processing.aggregation import (
    compare_poverty_tiers,
    resolve_cross_section_year,
    resolve_reference_year,
    summarize_by_county,
    summarize_by_year,
    summarize_extreme_counties,
)
from src.processing.cleaning import clean_school_data
from src.processing.merge import find_unmatched_schools, merge_school_county
from src.processing.poverty_categories import categorize_counties, compute_poverty_cutoffs
from src.processing.regression import RegressionResult, run_regressions
from src.utils.logging import setup_logging

logger = setup_logging("pipeline")
settings = get_settings()


def _banner(title: str):
    logger.info("=" * 60)
    logger.info(title)
    logger.info("=" * 60)


def run_ingestion(
    school_path: Optional[str] = None, county_path: Optional[str] = None
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Load both input tables.

    Args:
        school_path: School file (default: settings.SCHOOL_DATA_PATH)
        county_path: County file (default: settings.COUNTY_DATA_PATH)

    Returns:
        (raw school records, raw county records)
    """
    schools = load_school_data(school_path)
    counties = load_county_data(county_path)
    return schools, counties


def run_processing(
    schools: pd.DataFrame, counties: pd.DataFrame
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """
    Clean schools, categorize counties and join them.

    Returns:
        (merged records, categorized counties, per-year poverty cutoffs)
    """
    cleaned = clean_school_data(schools)

    cutoffs = compute_poverty_cutoffs(counties)
    enriched_counties = categorize_counties(counties, cutoffs)

    merged = merge_school_county(cleaned, enriched_counties)

    return merged, enriched_counties, cutoffs


def run_aggregation(
    merged: pd.DataFrame,
    counties: pd.DataFrame,
    reference_year: Optional[int] = None,
) -> Dict[str, pd.DataFrame]:
    """
    Build every summary table.

    Args:
        merged: Merged school/county records
        counties: Categorized county records
        reference_year: Year for the highest/lowest poverty subsets

    Returns:
        Ordered mapping of table title -> DataFrame
    """
    year = resolve_reference_year(counties, reference_year, merged=merged)
    n = settings.EXTREME_COUNTY_COUNT

    return {
        "County summary (all years)": summarize_by_county(merged),
        "Yearly summary": summarize_by_year(merged),
        "Mean z-scores by poverty tier": compare_poverty_tiers(merged),
        f"{n} highest-poverty counties ({year})": summarize_extreme_counties(
            merged, counties, year, n=n, highest=True
        ),
        f"{n} lowest-poverty counties ({year})": summarize_extreme_counties(
            merged, counties, year, n=n, highest=False
        ),
        "County-years without poverty data": find_unmatched_schools(merged),
    }


def run_modeling(
    merged: pd.DataFrame, county_summary: pd.DataFrame, year: Optional[int] = None
) -> Dict[str, RegressionResult]:
    """Fit the standard regression set."""
    return run_regressions(merged, county_summary, year=year)


def main():
    """Main pipeline orchestration"""

    parser = argparse.ArgumentParser(
        description="School Poverty Analysis - Pipeline Orchestration"
    )

    parser.add_argument(
        "--school-data",
        type=str,
        help=f"School-level CSV (default: {settings.SCHOOL_DATA_PATH})"
    )

    parser.add_argument(
        "--county-data",
        type=str,
        help=f"County-level CSV (default: {settings.COUNTY_DATA_PATH})"
    )

    parser.add_argument(
        "--reference-year",
        type=int,
        help="Year for highest/lowest poverty county tables (default: latest)"
    )

    parser.add_argument(
        "--cross-section-year",
        type=int,
        help="Year for single-year score/lunch regressions (default: latest)"
    )

    parser.add_argument(
        "--no-export",
        action="store_true",
        help="Skip writing the report"
    )

    parser.add_argument(
        "--latest-only",
        action="store_true",
        help="Only update report_latest.md (no dated snapshot)"
    )

    args = parser.parse_args()

    start_time = datetime.now()
    _banner("School Poverty Analysis - Pipeline Start")
    logger.info(f"Time: {start_time.isoformat()}")
    logger.info(f"Arguments: {vars(args)}")

    try:
        _banner("STAGE 1: INGESTION")
        schools, counties = run_ingestion(args.school_data, args.county_data)

        _banner("STAGE 2: PROCESSING (Clean, Categorize, Join)")
        merged, enriched_counties, _ = run_processing(schools, counties)

        _banner("STAGE 3: AGGREGATION")
        tables = run_aggregation(merged, enriched_counties, args.reference_year)
        county_summary = tables["County summary (all years)"]

        _banner("STAGE 4: MODELING")
        cross_section_year = resolve_cross_section_year(merged, args.cross_section_year)
        regressions = run_modeling(merged, county_summary, cross_section_year)

        if not args.no_export:
            _banner("STAGE 5: REPORT EXPORT")
            plots = build_scatter_plots(merged, county_summary, regressions, cross_section_year)
            result = run_report_export(
                tables, regressions, plots, versioned=not args.latest_only
            )
            logger.info(f"Report: {result['latest_path']} ({result['figure_count']} figures)")

        duration = (datetime.now() - start_time).total_seconds()
        _banner("PIPELINE COMPLETE")
        logger.info(f"Duration: {duration:.1f} seconds")

        sys.exit(0)

    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user")
        sys.exit(130)

    except Exception as e:
        logger.error(f"Pipeline failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
