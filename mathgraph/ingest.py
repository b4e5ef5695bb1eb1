"""
Ingestion pipeline and CLI for math concept records.

Usage::

    python -m mathgraph.ingest \\
        --input data/raw/algebra.csv data/raw/calculus.json \\
        --out ./data/graph.json

Reads CSV rows or JSON objects, normalises each into a validated
``ConceptNode``, derives typed edges from the relation lists, and writes
a graph snapshot plus ``ingest_summary.json`` next to it.  A bad record is
logged and counted; it never aborts the batch.  Exit code 0 on success.
"""

import argparse
import csv
import json
import logging
import os
import sys
from typing import Any, Dict, Iterable, List, Optional, Tuple

from mathgraph.graph import MathGraph
from mathgraph.models import ConceptNode, DependencyEdge, IngestSummary
from mathgraph.utils import setup_logging, slugify, timed

logger = logging.getLogger(__name__)

_LIST_FIELDS = ("domains", "tags", "requires", "generalizes", "special_cases", "used_in")
DEFAULT_COMPLEXITY = 5.0


class IngestError(ValueError):
    """A record that cannot become a valid ``ConceptNode``."""


# ---------------------------------------------------------------------------
# Record normalisation
# ---------------------------------------------------------------------------


def _split_list(value: Any) -> List[str]:
    """CSV cells hold ``a;b;c``; JSON already holds lists."""
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(";") if v.strip()]
    return [str(v).strip() for v in value if str(v).strip()]


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def node_from_record(record: Dict[str, Any]) -> ConceptNode:
    """Build a ``ConceptNode`` from a CSV row or a JSON object.

    Missing IDs are derived from the title; missing type defaults to
    ``"concept"`` and missing complexity to 5.

    Raises:
        IngestError: if the record has no usable title or ID, or a
            complexity outside ``[0, 10]``.
        pydantic.ValidationError: on malformed field values.
    """
    title = "" if _blank(record.get("title")) else str(record["title"]).strip()
    node_id = record.get("id")
    if _blank(node_id):
        node_id = slugify(title or "unknown")

    complexity = record.get("complexity")
    if _blank(complexity):
        complexity = DEFAULT_COMPLEXITY
    try:
        complexity = float(complexity)
    except (TypeError, ValueError) as exc:
        raise IngestError(f"Invalid complexity: {complexity!r}") from exc

    data: Dict[str, Any] = {
        "id": str(node_id).strip(),
        "type": record.get("type") or "concept",
        "title": title,
        "latex": None if _blank(record.get("latex")) else record["latex"],
        "description": record.get("description") or "",
        "complexity": complexity,
        "appears_in": record.get("appears_in") or [],
    }
    for field in _LIST_FIELDS:
        data[field] = _split_list(record.get(field))
    for stamp in ("created_at", "updated_at"):
        if not _blank(record.get(stamp)):
            data[stamp] = record[stamp]

    node = ConceptNode.model_validate(data)
    validate_node(node)
    return node


def validate_node(node: ConceptNode) -> None:
    """Ingestion-boundary checks: non-empty ID and title, complexity in [0, 10]."""
    if not node.id.strip():
        raise IngestError("Node ID is required")
    if not node.title.strip():
        raise IngestError(f"Node {node.id}: title is required")
    if not 0 <= node.complexity <= 10:
        raise IngestError(f"Node {node.id}: invalid complexity {node.complexity}")


# ---------------------------------------------------------------------------
# Batch processing
# ---------------------------------------------------------------------------


def _ingest_records(
    records: Iterable[Dict[str, Any]],
    source: str,
    summary: IngestSummary,
    nodes: List[ConceptNode],
) -> None:
    """Process records one by one, updating *summary* in place.

    Never raises for a bad record: the error is logged and counted.
    """
    for idx, record in enumerate(records, 1):
        summary.total += 1
        try:
            if not isinstance(record, dict):
                raise IngestError(f"Expected an object, got {type(record).__name__}")
            node = node_from_record(record)
        except (ValueError, TypeError) as exc:
            summary.failed += 1
            message = f"{source}#{idx}: {exc}"
            summary.errors.append(message)
            logger.error("  ✗ %s", message)
            continue

        nodes.append(node)
        summary.succeeded += 1
        summary.by_type[node.type] = summary.by_type.get(node.type, 0) + 1


def ingest_csv(
    path: str, summary: IngestSummary, nodes: List[ConceptNode]
) -> None:
    """Ingest a CSV file with a header row; list cells are ``;``-separated."""
    logger.info("▶ Ingesting CSV: %s", path)
    with open(path, "r", encoding="utf-8", newline="") as fh:
        reader = csv.DictReader(fh)
        rows = (
            {k.strip(): (v or "").strip() for k, v in row.items() if k}
            for row in reader
            if any((v or "").strip() for v in row.values() if isinstance(v, str))
        )
        _ingest_records(rows, os.path.basename(path), summary, nodes)


def ingest_json(
    path: str, summary: IngestSummary, nodes: List[ConceptNode]
) -> None:
    """Ingest a JSON file holding one node object or an array of them."""
    logger.info("▶ Ingesting JSON: %s", path)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        summary.total += 1
        summary.failed += 1
        message = f"{os.path.basename(path)}: bad JSON ({exc})"
        summary.errors.append(message)
        logger.error("  ✗ %s", message)
        return

    records = data if isinstance(data, list) else [data]
    _ingest_records(records, os.path.basename(path), summary, nodes)


def ingest_paths(paths: Iterable[str]) -> Tuple[List[ConceptNode], IngestSummary]:
    """Ingest every ``.csv`` / ``.json`` file in *paths* (directories are walked)."""
    summary = IngestSummary()
    nodes: List[ConceptNode] = []

    for path in _expand(paths):
        ext = os.path.splitext(path)[1].lower()
        if not os.path.isfile(path):
            logger.error("File not found: %s", path)
            continue
        if ext == ".csv":
            ingest_csv(path, summary, nodes)
        elif ext == ".json":
            ingest_json(path, summary, nodes)
        else:
            logger.warning("Unsupported file format %s, skipping %s", ext, path)

    return nodes, summary


def _expand(paths: Iterable[str]) -> List[str]:
    out: List[str] = []
    for path in paths:
        if os.path.isdir(path):
            out.extend(
                os.path.join(path, name) for name in sorted(os.listdir(path))
            )
        else:
            out.append(path)
    return out


# ---------------------------------------------------------------------------
# Graph building
# ---------------------------------------------------------------------------


def derive_edges(node: ConceptNode) -> List[DependencyEdge]:
    """Typed edges implied by a node's relation lists.

    * ``requires``      → ``REQUIRES``        prerequisite → node
    * ``generalizes``   → ``GENERALIZES``     node → other
    * ``special_cases`` → ``SPECIAL_CASE_OF`` case → node
    * ``used_in``       → ``USED_IN``         node → other
    """
    edges = [
        DependencyEdge(source=p, target=node.id, type="REQUIRES") for p in node.requires
    ]
    edges += [
        DependencyEdge(source=node.id, target=g, type="GENERALIZES")
        for g in node.generalizes
    ]
    edges += [
        DependencyEdge(source=s, target=node.id, type="SPECIAL_CASE_OF")
        for s in node.special_cases
    ]
    edges += [
        DependencyEdge(source=node.id, target=u, type="USED_IN") for u in node.used_in
    ]
    return edges


def build_graph(nodes: Iterable[ConceptNode]) -> MathGraph:
    """Add every node, then every derived edge."""
    graph = MathGraph()
    for node in nodes:
        graph.add_node(node)
    n_edges = 0
    for node in graph.nodes():
        for edge in derive_edges(node):
            graph.add_edge(edge)
            n_edges += 1
    logger.info("Built graph: %d nodes, %d edges.", len(graph), n_edges)
    return graph


# ---------------------------------------------------------------------------
# CLI entry-point
# ---------------------------------------------------------------------------


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m mathgraph.ingest",
        description="Ingest CSV/JSON concept records into a graph snapshot.",
    )
    parser.add_argument(
        "--input",
        nargs="+",
        required=True,
        help="CSV/JSON files or directories containing them.",
    )
    parser.add_argument(
        "--out",
        default="./data/graph.json",
        help="Snapshot output path (default: ./data/graph.json).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """CLI main entry-point."""
    from mathgraph import storage

    setup_logging()
    args = _parse_args(argv)

    with timed("Ingestion"):
        nodes, summary = ingest_paths(args.input)

    with timed("Graph build"):
        graph = build_graph(nodes)
    storage.save_graph(graph, args.out)

    summary_path = os.path.join(
        os.path.dirname(os.path.abspath(args.out)), "ingest_summary.json"
    )
    with open(summary_path, "w", encoding="utf-8") as fh:
        fh.write(summary.model_dump_json(indent=2))
    logger.info("📄 Summary written to %s", summary_path)

    logger.info(
        "✅ Ingestion complete — total=%d succeeded=%d failed=%d by_type=%s",
        summary.total,
        summary.succeeded,
        summary.failed,
        {t: n for t, n in summary.by_type.items() if n},
    )
    sys.exit(0)


if __name__ == "__main__":
    main()
