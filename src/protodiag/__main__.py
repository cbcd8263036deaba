"""Command-line entry point for running prototype diagnostics."""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path

from .analysis import DiagnosticArtifacts, DiagnosticsPipeline
from .config import DiagnosticsConfig
from .data_io import load_catalog


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {seconds % 60:.1f}s"


def print_header(text: str, width: int = 70) -> None:
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width)


def print_summary(artifacts: DiagnosticArtifacts, elapsed: float, verbose: bool) -> None:
    print_header("Diagnostics Summary")

    print(f"\nRuntime: {format_duration(elapsed)}")
    print(f"Output Directory: {artifacts.output_dir.resolve()}")

    reach = artifacts.reachability
    print("\n--- Reachability ---")
    print(f"  Overall status:             {reach.overall_status}")
    print(f"  Branches analyzed:          {len(reach.branches)}")
    print(f"  Fully reachable branches:   {len(reach.fully_reachable_branch_ids)}")
    print(f"  Unreachable results:        {len(reach.unreachable())}")
    print(f"  Knife-edges:                {len(reach.all_knife_edges)}")

    conflicts = artifacts.conflicts
    print("\n--- Structural Conflicts ---")
    print(f"  High axis loadings:         {len(conflicts.high_axis_loadings)}")
    print(f"  Multi-axis conflicts:       {len(conflicts.conflicts)}")
    print(f"  Sign tensions:              {len(conflicts.sign_tensions)}")

    print("\n--- Behavioral Overlap ---")
    print(f"  Pairs sampled:              {len(artifacts.overlaps)}")

    if verbose:
        print("\n--- Reachability Detail ---")
        print(artifacts.reachability.to_summary())
        print("\n--- Conflicts ---")
        print(artifacts.tables["conflicts"])

    print("\n" + artifacts.tables["overlap"])


def validate_output_dir(output_dir: Path) -> None:
    if output_dir.exists() and not output_dir.is_dir():
        print(
            f"Error: Output path exists but is not a directory: {output_dir}\n"
            f"Please specify a different path or remove the existing file.",
            file=sys.stderr,
        )
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="protodiag",
        description="Diagnose reachability, structural conflicts and behavioral overlap of gated prototypes.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                   # Synthetic catalog, default settings
  %(prog)s catalog.json --threshold 0.6      # Your own catalog
  %(prog)s --pair joy contentment --samples 2000
  %(prog)s --quiet                           # Overall status only
        """,
    )
    parser.add_argument(
        "catalog",
        nargs="?",
        type=Path,
        help="Prototype catalog JSON (default: built-in synthetic catalog).",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=0.5,
        help="Activation threshold each prototype must reach (default: 0.5).",
    )
    parser.add_argument(
        "--pair",
        nargs=2,
        action="append",
        metavar=("A", "B"),
        help="Prototype pair to sample; repeatable. Defaults to the most similar pairs.",
    )
    parser.add_argument(
        "--max-pairs",
        type=int,
        default=3,
        help="Number of ranked candidate pairs to sample when --pair is absent (default: 3).",
    )
    parser.add_argument("--samples", type=int, default=None, help="Monte Carlo trials per pair.")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for state sampling.")
    parser.add_argument(
        "--lenient",
        action="store_true",
        help="Keep malformed gate text as unparsed instead of failing.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("artifacts"),
        help="Directory where reports and plots will be written (default: artifacts).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output.")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress all output except errors and the final status.")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    validate_output_dir(args.output_dir)

    if args.quiet:
        os.environ["PROTODIAG_VERBOSITY"] = "0"
    elif args.verbose:
        os.environ["PROTODIAG_VERBOSITY"] = "2"
    else:
        os.environ["PROTODIAG_VERBOSITY"] = "1"

    if not args.quiet:
        print_header("Prototype Diagnostics")
        print(f"\nCatalog: {args.catalog or 'synthetic'}")
        print(f"Output directory: {args.output_dir.resolve()}")

    start_time = time.time()

    try:
        overrides = {}
        if args.seed is not None:
            overrides["random_seed"] = args.seed
        config = DiagnosticsConfig(**overrides)
        catalog = load_catalog(args.catalog, strict=not args.lenient) if args.catalog else None

        artifacts = DiagnosticsPipeline(config).run(
            catalog=catalog,
            threshold=args.threshold,
            pairs=args.pair,
            max_pairs=args.max_pairs,
            sample_count=args.samples,
            output_dir=args.output_dir,
        )
        elapsed = time.time() - start_time

        if args.quiet:
            print(artifacts.reachability.overall_status)
        else:
            print_summary(artifacts, elapsed, args.verbose)
            print_header("Diagnostics Complete")
            print(f"Results written to: {args.output_dir.resolve()}\n")

    except FileNotFoundError as e:
        elapsed = time.time() - start_time
        print(
            f"\nError after {format_duration(elapsed)}:\n"
            f"File not found: {e}",
            file=sys.stderr,
        )
        sys.exit(1)
    except ValueError as e:
        elapsed = time.time() - start_time
        print(
            f"\nError after {format_duration(elapsed)}:\n"
            f"Invalid input: {e}",
            file=sys.stderr,
        )
        sys.exit(1)
    except Exception as e:
        elapsed = time.time() - start_time
        print(
            f"\nError after {format_duration(elapsed)}: {e}\n"
            f"For help, run: python -m protodiag --help",
            file=sys.stderr,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
