"""Fixed-column residual report.

Comment lines start with '#'. The data line is printed only when the summed
residual is nonzero, so a run with no overlapping data (or with residuals
that cancel exactly) prints the header alone.
"""
from __future__ import annotations

import sys
from typing import Optional, TextIO, Union

from .stats import ResidualSummary, RunningStats

COLUMN_HEADER = (
    "#       RMS       MEAN DIFF          STD             STD%    NEG%   POS%"
    "      MAX RESID    MEAN DEPTH    # POINTS"
)

DATA_LINE = " %10.3f   %10.3f      %10.3f      %10.4f    %03d    %03d   %10.3f    %10.3f  %12d"


def format_data_line(summary: ResidualSummary) -> str:
    return DATA_LINE % (
        summary.rms,
        summary.mean_diff,
        summary.stddev,
        summary.relative_stddev_percent,
        summary.neg_percent_rounded,
        summary.pos_percent_rounded,
        summary.max_abs_diff,
        summary.mean_depth,
        summary.count,
    )


def format_report(stats: Union[RunningStats, ResidualSummary], first_name: str, second_name: str) -> str:
    """Render the report for a finished scan."""
    summary = stats.summarize() if isinstance(stats, RunningStats) else stats

    lines = [
        f"#FIRST BAG file  : {first_name}",
        f"#SECOND BAG file : {second_name}",
        "#",
        COLUMN_HEADER,
        "#",
    ]
    if summary.has_bias:
        lines.append(format_data_line(summary))
    return "\n".join(lines) + "\n\n\n\n"


def print_report(
    stats: Union[RunningStats, ResidualSummary],
    first_name: str,
    second_name: str,
    file: Optional[TextIO] = None,
) -> None:
    file = sys.stdout if file is None else file
    file.write(format_report(stats, first_name, second_name))
    file.flush()
