from __future__ import annotations

import _bootstrap  # noqa: F401

import argparse
import logging
import sys
from pathlib import Path

from overturegraph.graph.permissions import STRATEGIES, resolver_from_config
from overturegraph.ingestion.errors import classify_conversion_error
from overturegraph.ingestion.overture_reader import ROW_POLICIES
from overturegraph.logging_config import configure_logging
from overturegraph.pipeline import convert_overture_to_valhalla
from overturegraph.settings import get_config, load_config

logger = logging.getLogger("convert_to_valhalla")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Convert Overture segment/connector GeoParquet into Valhalla ways.bin and way_nodes.bin."
    )
    parser.add_argument(
        "--input-dir",
        default=None,
        help="Directory with segment.parquet and connector.parquet (default: config paths.input_dir).",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for ways.bin and way_nodes.bin (default: config paths.output_dir).",
    )
    parser.add_argument("--config", default=None, help="Path to a YAML config file.")
    parser.add_argument(
        "--permissions",
        choices=list(STRATEGIES),
        default=None,
        help="Permission strategy (default: config permissions.strategy).",
    )
    parser.add_argument(
        "--on-invalid-row",
        choices=list(ROW_POLICIES),
        default=None,
        help="Abort on the first invalid input row, or skip and count it (default: config).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=None,
        help="Verbosity (-v = info, -vv = debug).",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    configure_logging(verbosity=args.verbose)

    config = load_config(args.config) if args.config else get_config()
    if args.on_invalid_row:
        config = config.model_copy(
            update={"ingestion": config.ingestion.model_copy(update={"on_invalid_row": args.on_invalid_row})}
        )

    try:
        result = convert_overture_to_valhalla(
            Path(args.input_dir) if args.input_dir else None,
            Path(args.output_dir) if args.output_dir else None,
            config=config,
            permission_resolver=resolver_from_config(config, strategy=args.permissions),
        )
    except Exception as exc:
        info = classify_conversion_error(exc)
        logger.error("Conversion failed [%s/%s]: %s", info.kind, info.code, info.message)
        return 1

    print(f"Saved ways: {result.output.ways_path}")
    print(f"Saved way nodes: {result.output.way_nodes_path}")
    if result.output.names_path is not None:
        print(f"Saved way names: {result.output.names_path}")
    print(f"Connectors: {result.connectors:,}")
    print(f"Segments read: {result.segments_read:,} (skipped invalid: {result.segments_skipped:,})")
    print(f"Segments converted: {result.segments_converted:,}")
    print(f"Segments dropped (no pedestrian/auto access): {result.segments_dropped_no_access:,}")
    print(f"Segments dropped (degenerate): {result.segments_degenerate:,}")
    print(f"Ways: {result.edges_written:,}")
    print(f"Way nodes: {result.way_nodes_written:,}")
    print(f"Unresolved connector references: {result.unresolved_connector_refs:,}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
