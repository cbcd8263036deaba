"""Text tables for the diagnostics pipeline."""

from __future__ import annotations

import math
from typing import Iterable

from tabulate import tabulate

from .conflicts import ConflictReport
from .overlap import BehavioralOverlapResult
from .reachability import ReachabilityReport
from .stats import WilsonInterval


def fmt(value: float | None, digits: int = 3) -> str:
    """Format a metric; NaN and None render as ``n/a``."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "n/a"
    if isinstance(value, float) and math.isinf(value):
        return "-inf" if value < 0 else "inf"
    return f"{value:.{digits}f}"


def fmt_interval(interval: WilsonInterval | None) -> str:
    if interval is None:
        return "n/a"
    return f"[{interval.lower:.3f}, {interval.upper:.3f}]"


def summarize_reachability(report: ReachabilityReport) -> str:
    rows = []
    for r in report.results:
        rows.append(
            (
                r.branch_id,
                r.prototype_id,
                f"{'<' if r.direction == 'low' else '>='} {r.threshold:.2f}",
                fmt(r.max_possible, 2),
                fmt(r.min_possible, 2),
                fmt(r.gap, 2),
                r.status,
                len(r.knife_edges),
            )
        )
    table = tabulate(
        rows,
        headers=[
            "Branch", "Prototype", "Threshold", "Max possible", "Min possible", "Gap", "Status", "Knife-edges",
        ],
        tablefmt="github",
    )
    lines = [table, f"Overall status: {report.overall_status}"]
    for branch_id, conflicts in report.conflicts.items():
        for conflict in conflicts:
            lines.append(f"{branch_id}: {conflict.message}")
    seen = set()
    for edge in report.all_knife_edges:
        key = (edge.axis, edge.min, edge.max)
        if key in seen:
            continue
        seen.add(key)
        lines.append(edge.to_message())
    if report.truncated_branch_count:
        lines.append(f"{report.truncated_branch_count} branch(es) skipped over the branch limit")
    return "\n".join(lines)


def summarize_conflicts(report: ConflictReport) -> str:
    if report.is_empty():
        return "No structural conflicts detected."
    rows = []
    for item in report.high_axis_loadings:
        rows.append(
            (
                item.prototype_id,
                item.flag_reason,
                item.active_axis_count,
                f"{item.sign_balance:.2f}",
                ", ".join(item.strong_axes),
            )
        )
    for item in report.conflicts:
        rows.append(
            (
                item.prototype_id,
                item.flag_reason,
                item.active_axis_count,
                f"{item.sign_balance:.2f}",
                f"+{len(item.positive_axes)} / -{len(item.negative_axes)}",
            )
        )
    for item in report.sign_tensions:
        rows.append(
            (
                item.prototype_id,
                item.flag_reason,
                item.high_axis_count,
                f"{item.sign_balance:.2f}",
                "+" + ", ".join(item.high_magnitude_positive) + " / -" + ", ".join(item.high_magnitude_negative),
            )
        )
    return tabulate(
        rows,
        headers=["Prototype", "Flag", "Axes", "Sign balance", "Detail"],
        tablefmt="github",
    )


def summarize_overlap(results: Iterable[BehavioralOverlapResult]) -> str:
    rows = []
    for r in results:
        rows.append(
            (
                f"{r.prototype_a_id} / {r.prototype_b_id}",
                r.sample_count,
                fmt(r.gate_overlap.on_both_rate),
                fmt(r.activation_jaccard),
                fmt(r.intensity.pearson_correlation),
                fmt(r.intensity.mean_abs_diff),
                fmt(r.intensity.global_mean_abs_diff),
                f"{fmt(r.pass_rates.p_a_given_b)} {fmt_interval(r.pass_rates.p_a_given_b_interval)}",
                f"{fmt(r.pass_rates.p_b_given_a)} {fmt_interval(r.pass_rates.p_b_given_a_interval)}",
                r.gate_implication.relation if r.gate_implication else "n/a",
            )
        )
    return tabulate(
        rows,
        headers=[
            "Pair",
            "N",
            "On both",
            "Jaccard",
            "Pearson",
            "MAE (co-pass)",
            "MAE (global)",
            "P(A|B)",
            "P(B|A)",
            "Gates",
        ],
        tablefmt="github",
    )


def summarize_high_coactivation(result: BehavioralOverlapResult) -> str:
    rows = [
        (
            f"{entry.t:.2f}",
            fmt(entry.p_high_a),
            fmt(entry.p_high_b),
            fmt(entry.p_high_both),
            fmt(entry.high_jaccard),
            fmt(entry.high_agreement),
        )
        for entry in result.high_coactivation
    ]
    return tabulate(
        rows,
        headers=["t", "P(high A)", "P(high B)", "P(both high)", "High Jaccard", "Agreement"],
        tablefmt="github",
    )
