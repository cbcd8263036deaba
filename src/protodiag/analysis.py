"""Pipeline orchestrating reachability, conflict and overlap diagnostics."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
from tqdm import tqdm

from .candidates import CandidatePair, rank_candidate_pairs
from .conflicts import ConflictReport, MultiAxisConflictDetector, quartiles
from .config import DiagnosticsConfig, get_verbosity
from .data_io import save_overlap_csv, save_reachability
from .overlap import BehavioralOverlapEvaluator, BehavioralOverlapResult
from .prototype import Prototype
from .reachability import Branch, ReachabilityAnalyzer, ReachabilityReport, ThresholdRequirement
from .reporting import (
    summarize_conflicts,
    summarize_high_coactivation,
    summarize_overlap,
    summarize_reachability,
)
from .synthetic import (
    ContextGateChecker,
    FlatContextBuilder,
    LinearIntensityCalculator,
    UniformStateGenerator,
    load_synthetic_branches,
    load_synthetic_catalog,
)


@dataclass(slots=True)
class DiagnosticArtifacts:
    config: DiagnosticsConfig
    catalog: Dict[str, Prototype]
    reachability: ReachabilityReport
    conflicts: ConflictReport
    overlaps: List[BehavioralOverlapResult]
    pairs: List[Tuple[str, str]]
    tables: Dict[str, str]
    output_dir: Path
    plots: List[Path]


class DiagnosticsPipeline:
    def __init__(self, config: DiagnosticsConfig | None = None) -> None:
        self.config = config or DiagnosticsConfig()

    def _plot_axis_loading(self, catalog: Dict[str, Prototype], out_path: Path) -> None:
        ids = list(catalog)
        counts = np.array(
            [len(catalog[i].active_axes(self.config.active_axis_epsilon)) for i in ids], dtype=float
        )
        stats = quartiles(counts)
        fence = stats.q3 + self.config.high_axis_loading_threshold * max(stats.iqr, self.config.min_iqr_floor)
        colors = ["tab:red" if c > fence else "tab:blue" for c in counts]

        plt.figure(figsize=(max(6.0, 0.6 * len(ids)), 4.5))
        plt.bar(range(len(ids)), counts, color=colors)
        plt.axhline(fence, color="black", linestyle="--", linewidth=1.5, label=f"Tukey fence ({fence:.2f})")
        plt.xticks(range(len(ids)), ids, rotation=45, ha="right")
        plt.ylabel("Active axes")
        plt.title("Active-axis count per prototype")
        plt.grid(True, axis="y", alpha=0.3)
        plt.legend()
        plt.tight_layout()
        plt.savefig(out_path)
        plt.close()

    def _plot_high_coactivation(self, result: BehavioralOverlapResult, out_path: Path) -> None:
        t = [entry.t for entry in result.high_coactivation]
        plt.figure(figsize=(7.5, 5.0))
        plt.plot(t, [e.p_high_a for e in result.high_coactivation], "o-", label=f"P(high {result.prototype_a_id})")
        plt.plot(t, [e.p_high_b for e in result.high_coactivation], "s-", label=f"P(high {result.prototype_b_id})")
        plt.plot(t, [e.high_jaccard for e in result.high_coactivation], "^-", label="High Jaccard")
        plt.plot(t, [e.high_agreement for e in result.high_coactivation], "d--", label="Agreement")
        plt.ylim(-0.02, 1.02)
        plt.xlabel("Intensity threshold t")
        plt.ylabel("Rate over samples where either passes")
        plt.title(f"High co-activation: {result.prototype_a_id} vs {result.prototype_b_id}")
        plt.grid(True, alpha=0.3)
        plt.legend()
        plt.tight_layout()
        plt.savefig(out_path)
        plt.close()

    def build_branches(
        self,
        catalog: Dict[str, Prototype],
        threshold: float,
        extra: Iterable[Branch] = (),
    ) -> List[Branch]:
        """One single-prototype branch per prototype, followed by ``extra``."""
        branches = [
            Branch(
                branch_id=proto_id,
                description=proto.description or f"{proto_id} gates",
                prototype_ids=[proto_id],
                requirements=[ThresholdRequirement(proto_id, threshold)],
            )
            for proto_id, proto in catalog.items()
        ]
        branches.extend(extra)
        return branches

    def build_evaluator(self, catalog: Dict[str, Prototype]) -> BehavioralOverlapEvaluator:
        return BehavioralOverlapEvaluator(
            state_generator=UniformStateGenerator.for_prototypes(catalog.values(), seed=self.config.random_seed),
            context_builder=FlatContextBuilder(),
            gate_checker=ContextGateChecker(),
            intensity_calculator=LinearIntensityCalculator(),
            config=self.config,
        )

    def run(
        self,
        catalog: Dict[str, Prototype] | None = None,
        threshold: float = 0.5,
        pairs: Optional[Sequence[Tuple[str, str]]] = None,
        max_pairs: int = 3,
        sample_count: Optional[int] = None,
        branches: Optional[Iterable[Branch]] = None,
        output_dir: str | Path | None = None,
    ) -> DiagnosticArtifacts:
        synthetic = catalog is None
        catalog = dict(catalog) if catalog is not None else load_synthetic_catalog()
        if branches is None:
            branches = load_synthetic_branches(threshold) if synthetic else ()

        verbosity = get_verbosity()
        disable_pbar = verbosity == 0

        if verbosity >= 1:
            print(f"Analyzing reachability of {len(catalog)} prototypes...")

        analyzer = ReachabilityAnalyzer(catalog, self.config)
        reachability = analyzer.analyze(self.build_branches(catalog, threshold, branches))
        if reachability.truncated_branch_count and verbosity >= 1:
            print(f"  Skipped {reachability.truncated_branch_count} branch(es) over max_branches={self.config.max_branches}")

        if verbosity >= 1:
            print("Detecting structural conflicts...")

        conflicts = MultiAxisConflictDetector(self.config).detect(catalog.values())

        if pairs is None:
            ranked: List[CandidatePair] = rank_candidate_pairs(catalog.values(), self.config, limit=max_pairs)
            pair_list = [(p.prototype_a_id, p.prototype_b_id) for p in ranked]
        else:
            pair_list = [tuple(p) for p in pairs]
        for a, b in pair_list:
            for proto_id in (a, b):
                if proto_id not in catalog:
                    raise ValueError(
                        f"Unknown prototype {proto_id!r} in pair ({a}, {b}).\n"
                        f"Available: {', '.join(sorted(catalog))}"
                    )

        if verbosity >= 1:
            print(f"Sampling behavioral overlap for {len(pair_list)} pair(s)...")

        evaluator = self.build_evaluator(catalog)
        overlaps = []
        pair_iter = tqdm(pair_list, desc="Evaluating pairs", disable=disable_pbar, leave=False)
        for a, b in pair_iter:
            overlaps.append(evaluator.evaluate(catalog[a], catalog[b], sample_count))

        tables = {
            "reachability": summarize_reachability(reachability),
            "conflicts": summarize_conflicts(conflicts),
            "overlap": summarize_overlap(overlaps),
        }

        artifact_dir = Path(output_dir) if output_dir else Path("artifacts")
        artifact_dir.mkdir(parents=True, exist_ok=True)

        if verbosity >= 1:
            print(f"Writing reports and plots (saving to {artifact_dir})...")

        (artifact_dir / "reachability.txt").write_text(tables["reachability"] + "\n" + reachability.to_summary())
        (artifact_dir / "conflicts.txt").write_text(tables["conflicts"])
        overlap_sections = [tables["overlap"]]
        for result in overlaps:
            overlap_sections.append(f"\n{result.prototype_a_id} vs {result.prototype_b_id}")
            overlap_sections.append(summarize_high_coactivation(result))
            for example in result.divergence_examples:
                overlap_sections.append(
                    f"  sample {example.sample_index}: |dA-B|={example.abs_diff:.3f} ({example.context_summary})"
                )
        (artifact_dir / "overlap.txt").write_text("\n".join(overlap_sections))
        save_reachability(reachability.results, artifact_dir / "reachability.json")
        save_overlap_csv(overlaps, artifact_dir / "overlap.csv")

        plots = [artifact_dir / "axis_loading.png"]
        self._plot_axis_loading(catalog, plots[0])
        for result in overlaps:
            path = artifact_dir / f"high_coactivation_{result.prototype_a_id}__{result.prototype_b_id}.png"
            self._plot_high_coactivation(result, path)
            plots.append(path)

        return DiagnosticArtifacts(
            config=self.config,
            catalog=catalog,
            reachability=reachability,
            conflicts=conflicts,
            overlaps=overlaps,
            pairs=[(a, b) for a, b in pair_list],
            tables=tables,
            output_dir=artifact_dir,
            plots=plots,
        )


def run_synthetic_pipeline(output_dir: str | Path | None = None, **kwargs) -> DiagnosticArtifacts:
    return DiagnosticsPipeline().run(output_dir=output_dir, **kwargs)
