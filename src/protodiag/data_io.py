"""Loading prototype catalogs and persisting diagnostic results."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from pathlib import Path

import pandas as pd

from .gates import GateParseError
from .overlap import BehavioralOverlapResult
from .prototype import Prototype
from .reachability import BranchReachability


def _check_file(path: Path, what: str) -> None:
    if not path.exists():
        raise FileNotFoundError(
            f"{what} not found at: {path}\n"
            f"Pass the path of a JSON file, or omit it to use the synthetic catalog."
        )
    if not path.is_file():
        raise ValueError(f"{what} path is not a file: {path}")
    if path.stat().st_size == 0:
        raise ValueError(f"{what} file is empty: {path}")


def _read_json(path: Path, what: str) -> object:
    _check_file(path, what)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(
            f"Failed to parse {what} from {path}.\n"
            f"Error: {e}\n"
            f"The file may be corrupted or not valid JSON."
        ) from e


def load_catalog(path: Path | str, strict: bool = True) -> dict[str, Prototype]:
    """Load prototypes from JSON.

    Accepted layouts: a list of entries, ``{"prototypes": [...]}`` or an
    ``{id: entry}`` mapping. Entries are validated as they load; with
    ``strict=False`` malformed gate text is kept as unparsed instead of raising.
    """
    path = Path(path)
    data = _read_json(path, "Prototype catalog")

    entries: list[tuple[str | None, Mapping]] = []
    if isinstance(data, Mapping) and isinstance(data.get("prototypes"), list):
        data = data["prototypes"]
    if isinstance(data, list):
        entries = [(None, entry) for entry in data]
    elif isinstance(data, Mapping):
        entries = [(str(key), entry) for key, entry in data.items()]
    else:
        raise ValueError(f"Prototype catalog must be a JSON list or object, got {type(data).__name__}.")

    catalog: dict[str, Prototype] = {}
    for index, (key, entry) in enumerate(entries):
        if not isinstance(entry, Mapping):
            raise ValueError(f"Catalog entry #{index} in {path} is not an object.")
        try:
            proto = Prototype.from_dict(entry, strict=strict, id=key if "id" not in entry else None)
        except (GateParseError, ValueError, TypeError) as e:
            raise ValueError(f"Invalid prototype entry #{index} in {path}:\n{e}") from e
        if proto.id in catalog:
            raise ValueError(f"Duplicate prototype id {proto.id!r} in {path}.")
        catalog[proto.id] = proto

    if not catalog:
        raise ValueError(f"Prototype catalog loaded but contains no prototypes: {path}")
    return catalog


def save_reachability(results: Iterable[BranchReachability], path: Path | str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = [result.to_dict() for result in results]
    path.write_text(json.dumps(payload, indent=2, allow_nan=False), encoding="utf-8")
    return path


def load_reachability(path: Path | str) -> list[BranchReachability]:
    """Load saved results; reachability, gap and status are recomputed, not read."""
    path = Path(path)
    data = _read_json(path, "Reachability results")
    if not isinstance(data, list):
        raise ValueError(f"Reachability results must be a JSON list, got {type(data).__name__}.")
    return [BranchReachability.from_dict(item) for item in data]


def overlap_frame(results: Iterable[BehavioralOverlapResult]) -> pd.DataFrame:
    """One row per evaluated pair with the headline overlap metrics."""
    rows = []
    for r in results:
        rows.append(
            {
                "prototype_a": r.prototype_a_id,
                "prototype_b": r.prototype_b_id,
                "samples": r.sample_count,
                "on_either_rate": r.gate_overlap.on_either_rate,
                "on_both_rate": r.gate_overlap.on_both_rate,
                "activation_jaccard": r.activation_jaccard,
                "pearson": r.intensity.pearson_correlation,
                "mean_abs_diff": r.intensity.mean_abs_diff,
                "global_mean_abs_diff": r.intensity.global_mean_abs_diff,
                "dominance_p": r.intensity.dominance_p,
                "dominance_q": r.intensity.dominance_q,
                "p_a_given_b": r.pass_rates.p_a_given_b,
                "p_b_given_a": r.pass_rates.p_b_given_a,
                "implication": r.gate_implication.relation if r.gate_implication else None,
            }
        )
    columns = [
        "prototype_a",
        "prototype_b",
        "samples",
        "on_either_rate",
        "on_both_rate",
        "activation_jaccard",
        "pearson",
        "mean_abs_diff",
        "global_mean_abs_diff",
        "dominance_p",
        "dominance_q",
        "p_a_given_b",
        "p_b_given_a",
        "implication",
    ]
    return pd.DataFrame(rows, columns=columns)


def save_overlap_csv(results: Iterable[BehavioralOverlapResult], path: Path | str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    overlap_frame(results).to_csv(path, index=False, na_rep="NaN")
    return path

