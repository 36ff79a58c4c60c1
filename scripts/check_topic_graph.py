"""Offline checker for exported topic graphs: cycles, ordering and legacy text fields."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from env_validation import configure_logging, get_env_bool
from multilingual import repair_stored
from schemas import TopicGraphExport, parse_json_safe
from topic_graph import TopicGraph

FAIL_ON_LEGACY_ENV_VAR = "TOPIC_GRAPH_FAIL_ON_LEGACY"
TEXT_FIELDS = ("name", "description", "keypoints")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "export",
        type=str,
        help="Path to the topic graph export (JSON with 'topics' and 'edges')",
    )
    parser.add_argument(
        "--repair-output",
        type=str,
        default=None,
        help="Optional path to write the export with legacy text fields repaired",
    )
    parser.add_argument(
        "--fail-on-legacy",
        action="store_true",
        default=None,
        help=f"Exit non-zero when legacy text is found (env: {FAIL_ON_LEGACY_ENV_VAR})",
    )
    return parser


def _scan_legacy_fields(topics: Sequence[Dict[str, Any]]) -> tuple[list[dict], list[str]]:
    repaired: list[dict] = []
    findings: list[str] = []
    for row in topics:
        fixed = dict(row)
        for field_name in TEXT_FIELDS:
            serialized, changed = repair_stored(row.get(field_name))
            if changed:
                fixed[field_name] = json.loads(serialized)
                findings.append(f"{row.get('slug') or row.get('id')}.{field_name}")
        repaired.append(fixed)
    return repaired, findings


def build_report(export: TopicGraphExport) -> Dict[str, Any]:
    graph = TopicGraph.from_dict(export.model_dump())
    cycle = graph.find_cycle()
    order: List[str] | None = None
    if cycle is None:
        order = [
            graph.get_topic(topic_id).slug
            for topic_id in graph.topological_order(topic.id for topic in graph.topics())
        ]
    _, legacy = _scan_legacy_fields(export.topics)
    return {
        "topics": len(graph),
        "edges": len(graph.edges()),
        "cycle": cycle,
        "order": order,
        "legacy_fields": legacy,
    }


def main(argv: Sequence[str] | None = None) -> int:
    configure_logging()
    args = _build_parser().parse_args(argv)
    text = Path(args.export).read_text(encoding="utf-8")
    export = parse_json_safe(text, TopicGraphExport)

    report = build_report(export)
    print(json.dumps(report, indent=2, ensure_ascii=False))

    if args.repair_output:
        repaired, _ = _scan_legacy_fields(export.topics)
        payload = {**export.model_dump(), "topics": repaired}
        Path(args.repair_output).write_text(
            json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )

    fail_on_legacy = args.fail_on_legacy
    if fail_on_legacy is None:
        fail_on_legacy = get_env_bool(FAIL_ON_LEGACY_ENV_VAR)

    exit_code = 0
    if report["cycle"]:
        print(f"Prerequisite cycle detected: {' -> '.join(report['cycle'])}", file=sys.stderr)
        exit_code = 1
    if report["legacy_fields"] and fail_on_legacy:
        print(f"{len(report['legacy_fields'])} legacy text field(s) need repair", file=sys.stderr)
        exit_code = 1
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
