"""CLI entry point for building an event knowledge graph from a CSV log.

Usage::

    python -m ekg.cli --input log.csv --config pipeline.yaml --output out/ [--format csv]

Reads the log, runs the construction pipeline, writes the graph as JSON or
CSV node/edge lists and prints a human-readable summary to stdout.
"""

from __future__ import annotations

import argparse
import csv
import logging
import sys
from pathlib import Path

from ekg.core.config import get_settings
from ekg.core.pipeline_config import ConfigurationError, load_bundled_config, load_pipeline_config
from ekg.export.writer import to_csv, to_json
from ekg.pipeline import BuildResult, GraphBuilder
from ekg.store.event_store import IngestionError, read_csv_records

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="ekg",
        description="Build a multi-perspective event knowledge graph from an event log.",
    )
    parser.add_argument("--input", required=True, help="Path to the CSV event log.")
    parser.add_argument(
        "--config",
        default=settings.pipeline_config_path,
        help="Pipeline configuration YAML (default: bundled bpic17 config).",
    )
    parser.add_argument(
        "--output",
        default=settings.export_dir,
        help=f"Output directory (default: {settings.export_dir}).",
    )
    parser.add_argument(
        "--format",
        choices=["json", "csv"],
        default=settings.export_format,
        help="Export layout (default: %(default)s).",
    )
    parser.add_argument("--workers", type=int, default=settings.workers, help="Worker threads per stage.")
    parser.add_argument("--log-id", default=settings.log_id, help="Identifier of the Log node.")
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level.",
    )
    return parser.parse_args(argv)


def _print_summary(result: BuildResult, output: Path) -> None:
    """Print a human-readable build summary to stdout."""
    report = result.report
    stats = result.graph.stats()
    print(f"\nGraph summary for log: {result.graph.log_id}")
    print("-" * 60)
    print(f"  Rows read:                {report.ingest.total_rows}")
    print(f"  Events ingested:          {report.ingest.accepted}")
    print(f"  Rows skipped (malformed): {report.ingest.skipped}")
    print(f"  Rows filtered:            {report.ingest.filtered}")
    for label, count in stats.entities_by_type.items():
        print(f"  Entities {label + ':':<16} {count}")
    for entity_type, count in stats.df_by_entity_type.items():
        print(f"  DF {entity_type + ':':<22} {count}")
    print(f"  DF_C edges:               {len(result.graph.dfc)}")
    for stage in report.stages:
        print(f"  {stage.name + ' (s):':<26}{stage.duration:.3f}")
    if report.ingest.skip_reasons:
        print("\n  Skip reasons:")
        for reason, count in report.ingest.skip_reasons.items():
            print(f"    - {reason}: {count}")
    print(f"\n  Written to: {output}\n")


def run(args: argparse.Namespace) -> int:
    """Build and export the graph; return the process exit code."""
    try:
        config = load_pipeline_config(args.config) if args.config else load_bundled_config("bpic17")
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 2

    try:
        builder = GraphBuilder(config, workers=args.workers, log_id=args.log_id)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    try:
        result = builder.build(read_csv_records(args.input))
    except (IngestionError, OSError, UnicodeDecodeError, csv.Error) as exc:
        logger.error("Graph construction failed: %s", exc)
        return 1

    output = Path(args.output)
    if args.format == "csv":
        to_csv(result.graph, output)
    else:
        output = to_json(result.graph, output / f"{args.log_id}.json", extra={"report": result.report.to_dict()})

    _print_summary(result, output)
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = _parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    sys.exit(run(args))


if __name__ == "__main__":
    main()
