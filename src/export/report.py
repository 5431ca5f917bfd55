"""
School Poverty Analysis - Report Export
Renders summary tables, regression results and scatter plots to a Markdown report

Outputs:
- exports/report_latest.md (always current)
- exports/report_{YYYYMMDD}.md (versioned snapshots)
- exports/figures/*.png
"""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402

from config.settings import get_settings  # noqa: E402
from src.processing.regression import (  # noqa: E402
    RegressionResult,
    add_year_over_year_changes,
    low_enrollment_counties,
    regression_table,
)
from src.utils.logging import get_logger  # noqa: E402

logger = get_logger(__name__)
settings = get_settings()

FIGURE_SUBDIR = "figures"


@dataclass
class ScatterPlot:
    """One scatter figure and the fitted line to overlay, if any"""

    filename: str
    data: pd.DataFrame
    x: str
    y: str
    title: str
    fit: Optional[RegressionResult] = None


def plot_scatter(
    df: pd.DataFrame,
    x: str,
    y: str,
    output_path: str,
    fit: Optional[RegressionResult] = None,
    title: Optional[str] = None,
) -> str:
    """
    Draw a scatter plot of y against x and save it as PNG.

    Args:
        df: Data with both columns
        x: Horizontal-axis column
        y: Vertical-axis column
        output_path: PNG destination
        fit: Regression line to overlay
        title: Figure title (default: "<y> vs <x>")

    Returns:
        output_path
    """
    data = df[[x, y]].apply(pd.to_numeric, errors="coerce").dropna()

    fig, ax = plt.subplots(figsize=(8, 6))
    ax.scatter(data[x], data[y], alpha=0.6, s=30, c="steelblue", edgecolors="black", linewidth=0.3)

    if fit is not None and not data.empty:
        x_line = np.linspace(data[x].min(), data[x].max(), 100)
        ax.plot(
            x_line,
            fit.predict(x_line),
            "r--",
            linewidth=2,
            label=f"OLS: slope={fit.slope:.3f}, R²={fit.r_squared:.3f}",
        )
        ax.legend()

    ax.set_xlabel(x)
    ax.set_ylabel(y)
    ax.set_title(title or f"{y} vs {x}", fontweight="bold")
    ax.grid(alpha=0.3)

    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    fig.tight_layout()
    fig.savefig(output_path, dpi=settings.FIGURE_DPI)
    plt.close(fig)

    logger.debug(f"Saved figure {output_path} ({len(data)} points)")
    return output_path


def build_scatter_plots(
    merged: pd.DataFrame,
    county_summary: pd.DataFrame,
    regressions: Dict[str, RegressionResult],
    year: int,
    max_county_enrollment: Optional[float] = None,
) -> List[ScatterPlot]:
    """
    Pair each standard model with the data it was fit on.

    Args:
        merged: Merged school/county records
        county_summary: Output of summarize_by_county
        regressions: Output of run_regressions
        year: Cross-section year used for the score/lunch models
        max_county_enrollment: Low-enrollment ceiling (default: settings.LOW_ENROLLMENT_THRESHOLD)

    Returns:
        Plots to render
    """
    if max_county_enrollment is None:
        max_county_enrollment = settings.LOW_ENROLLMENT_THRESHOLD

    lunch = "per_free_reduced_lunch"
    cross_section = merged[merged["year"] == year]
    changes = add_year_over_year_changes(merged, ["z_mean_ela_score", "z_mean_math_score", lunch])

    plots = []
    for score, label in [("mean_ela_score", "ELA"), ("mean_math_score", "Math")]:
        plots.append(
            ScatterPlot(
                filename=f"{score}_vs_lunch_{year}.png",
                data=cross_section,
                x=lunch,
                y=score,
                title=f"{label} score vs free/reduced lunch ({year})",
                fit=regressions.get(f"{score}_vs_{lunch}_{year}"),
            )
        )
        plots.append(
            ScatterPlot(
                filename=f"z_{score}_change_vs_lunch_change.png",
                data=changes,
                x=f"{lunch}_diff",
                y=f"z_{score}_diff",
                title=f"Change in {label} z-score vs change in lunch share",
                fit=regressions.get(f"z_{score}_change_vs_{lunch}_change"),
            )
        )
        plots.append(
            ScatterPlot(
                filename=f"z_{score}_vs_poverty.png",
                data=merged,
                x="county_per_poverty",
                y=f"z_{score}",
                title=f"{label} z-score vs county poverty",
                fit=regressions.get(f"z_{score}_vs_county_per_poverty"),
            )
        )

    small_counties = low_enrollment_counties(merged, max_county_enrollment)
    plots.append(
        ScatterPlot(
            filename="z_mean_ela_score_vs_poverty_low_enrollment.png",
            data=merged[merged["county_name"].isin(small_counties)],
            x="county_per_poverty",
            y="z_mean_ela_score",
            title=f"ELA z-score vs county poverty (counties <= {max_county_enrollment:,.0f} students)",
            fit=regressions.get("z_mean_ela_score_vs_county_per_poverty_low_enrollment"),
        )
    )

    plots.append(
        ScatterPlot(
            filename="county_poverty_vs_lunch.png",
            data=county_summary,
            x=lunch,
            y="county_per_poverty",
            title="County poverty vs free/reduced lunch share",
            fit=regressions.get(f"county_per_poverty_vs_{lunch}"),
        )
    )
    return plots


def _format_table(df: pd.DataFrame) -> str:
    if df.empty:
        return "_No rows._"
    return "```\n" + df.to_string(index=False, float_format=lambda v: f"{v:.4f}") + "\n```"


def render_markdown_report(
    tables: Dict[str, pd.DataFrame],
    regressions: Dict[str, RegressionResult],
    figures: Optional[Dict[str, str]] = None,
) -> str:
    """
    Build the Markdown report body.

    Args:
        tables: Section title -> summary table
        regressions: Model name -> RegressionResult
        figures: Figure title -> path relative to the report

    Returns:
        Markdown text
    """
    lines = [
        "# School Poverty & Test Score Analysis",
        "",
        f"Generated {datetime.now().strftime('%Y-%m-%d %H:%M')}",
        "",
    ]

    for title, table in tables.items():
        lines += [f"## {title}", "", _format_table(table), ""]

    lines += ["## Regressions", "", _format_table(regression_table(regressions)), ""]

    if figures:
        lines += ["## Figures", ""]
        for title, path in figures.items():
            lines += [f"### {title}", "", f"![{title}]({path})", ""]

    return "\n".join(lines)


def run_report_export(
    tables: Dict[str, pd.DataFrame],
    regressions: Dict[str, RegressionResult],
    plots: Optional[List[ScatterPlot]] = None,
    versioned: bool = True,
    export_dir: Optional[str] = None,
) -> dict:
    """
    Write figures and the Markdown report.

    Args:
        tables: Section title -> summary table
        regressions: Model name -> RegressionResult
        plots: Scatter plots to render
        versioned: If True, create dated snapshot in addition to 'latest'
        export_dir: Output directory (default: settings.EXPORT_DIR)

    Returns:
        Dict with export metadata
    """
    export_dir = export_dir or settings.EXPORT_DIR
    logger.info(f"Starting report export (dir={export_dir}, versioned={versioned})")

    figures = {}
    for plot in plots or []:
        relative = os.path.join(FIGURE_SUBDIR, plot.filename)
        plot_scatter(
            plot.data,
            plot.x,
            plot.y,
            os.path.join(export_dir, relative),
            fit=plot.fit,
            title=plot.title,
        )
        figures[plot.title] = relative

    report = render_markdown_report(tables, regressions, figures)

    os.makedirs(export_dir, exist_ok=True)
    latest_path = os.path.join(export_dir, "report_latest.md")
    with open(latest_path, "w", encoding="utf-8") as f:
        f.write(report)

    versioned_path = None
    if versioned:
        version = datetime.now().strftime("%Y%m%d")
        versioned_path = os.path.join(export_dir, f"report_{version}.md")
        with open(versioned_path, "w", encoding="utf-8") as f:
            f.write(report)

    logger.info(f"Report written to {latest_path} ({len(tables)} tables, {len(figures)} figures)")

    return {
        "table_count": len(tables),
        "regression_count": len(regressions),
        "figure_count": len(figures),
        "latest_path": latest_path,
        "versioned_path": versioned_path,
        "figure_paths": [os.path.join(export_dir, p) for p in figures.values()],
    }
