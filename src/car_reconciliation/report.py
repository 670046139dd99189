"""
Run report formatting and export.

Renders a RunSummary for the terminal and writes it as JSON for later
inspection or for monitoring jobs that poll the last run.
"""

import json
from pathlib import Path
from typing import Any

from .models import RunSummary


def summary_status(summary: RunSummary) -> str:
    """PASS for a committed run, FAIL otherwise."""
    return "PASS" if summary.committed else "FAIL"


def build_report(summary: RunSummary) -> dict[str, Any]:
    """
    Build the report dictionary for a run

    Args:
        summary: Summary returned by (or left on) the reconciler

    Returns:
        Report with a status field plus every summary field
    """
    return {"status": summary_status(summary), **summary.to_dict()}


def export_summary_json(summary: RunSummary, output_path: str) -> None:
    """
    Export a run report to a JSON file, creating parent directories

    Args:
        summary: Run summary
        output_path: Path to output file
    """
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(build_report(summary), f, indent=2)


def format_summary_console(summary: RunSummary) -> str:
    """
    Format a run summary for console output

    Args:
        summary: Run summary

    Returns:
        Formatted string for console display
    """
    lines = []

    lines.append("=" * 80)
    lines.append("CAR RECONCILIATION REPORT")
    lines.append("=" * 80)
    lines.append(f"Status: {summary_status(summary)} ({summary.state.value})")
    lines.append(f"Timestamp: {summary.timestamp or 'n/a'}")
    lines.append(f"Duration: {summary.duration_seconds:.2f}s")
    lines.append(f"Workers: {summary.workers}")
    lines.append("")

    lines.append("SUMMARY")
    lines.append("-" * 80)
    lines.append(f"Unmatched file ranges: {summary.expected_records:,}")
    lines.append(
        f"CARs scanned: {summary.completed_archives:,}/{summary.total_archives:,}"
    )
    lines.append(f"Matches found: {summary.matches:,}")
    lines.append(f"Associations inserted: {summary.associations_inserted:,}")
    lines.append("")

    if summary.error or summary.failed_archives:
        lines.append("ERRORS")
        lines.append("-" * 80)
        if summary.error:
            lines.append(summary.error)
        for storage_path in summary.failed_archives:
            lines.append(f"  Failed CAR: {storage_path}")
        if not summary.committed:
            lines.append("The transaction was rolled back; no associations were saved.")
        lines.append("")

    lines.append("=" * 80)

    return "\n".join(lines)
