"""Diagnostics for gated linear behavioral prototypes.

A prototype scores a character state as a weighted sum over state axes and
only activates when all of its gates (``axis OP value`` thresholds) hold. This
package answers three questions about a prototype catalog without running the
host application:

- Can a prototype reach its threshold at all, given the gates in force?
  (interval arithmetic, knife-edge detection)
- Is a prototype's weight structure unusual for the catalog?
  (Tukey-fence outliers, balanced multi-axis conflicts, sign tension)
- How alike do two prototypes behave over sampled states?
  (Monte Carlo gate overlap, intensity agreement, Wilson-bracketed
  conditional probabilities)

Main Components:
    - GateConstraint / AxisInterval: parsed gates and the intervals they narrow
    - Prototype: catalog entry with weights and gates
    - ReachabilityAnalyzer: branch reachability and knife-edges
    - MultiAxisConflictDetector: structural outliers
    - BehavioralOverlapEvaluator / AgreementMetricsCalculator: sampled overlap
    - wilson_interval: binomial confidence intervals

Quick Start:
    >>> from protodiag import ReachabilityAnalyzer
    >>> from protodiag.synthetic import load_synthetic_catalog
    >>>
    >>> catalog = load_synthetic_catalog()
    >>> analyzer = ReachabilityAnalyzer(catalog)
    >>> print(analyzer.analyze_prototype("flow", 0.5).to_summary())

Run ``python -m protodiag --help`` for the command-line pipeline.
"""

from .agreement import AgreementMetrics, AgreementMetricsCalculator, PrototypeOutputVector
from .config import DiagnosticsConfig
from .conflicts import ConflictReport, MultiAxisConflictDetector
from .gates import GateConstraint, GateConstraintExtractor, GateParseError
from .intervals import AxisInterval
from .overlap import BehavioralOverlapEvaluator, BehavioralOverlapResult
from .prototype import Prototype
from .reachability import (
    Branch,
    BranchReachability,
    KnifeEdge,
    ReachabilityAnalyzer,
    ReachabilityReport,
    ThresholdRequirement,
)
from .stats import WilsonInterval, wilson_interval

__all__ = [
    "AgreementMetrics",
    "AgreementMetricsCalculator",
    "AxisInterval",
    "BehavioralOverlapEvaluator",
    "BehavioralOverlapResult",
    "Branch",
    "BranchReachability",
    "ConflictReport",
    "DiagnosticsConfig",
    "GateConstraint",
    "GateConstraintExtractor",
    "GateParseError",
    "KnifeEdge",
    "MultiAxisConflictDetector",
    "Prototype",
    "PrototypeOutputVector",
    "ReachabilityAnalyzer",
    "ReachabilityReport",
    "ThresholdRequirement",
    "WilsonInterval",
    "wilson_interval",
]
