#!/usr/bin/env python3
"""
Run COPAC on a numeric CSV file.

Usage:
    copac data.csv
    copac data.csv --k 10 --threshold 0.9 --algorithm kmeans --param n_clusters=3
    copac data.csv --output result.json --log-level DEBUG

Unset options fall back to the COPAC_* environment variables (see
``copac.config``).
"""

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

import numpy as np

from .config import config, build_copac
from .database import Dataset
from .errors import COPACError, ParameterError
from .utils.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def _coerce(value: str) -> Any:
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            pass
    return value


def parse_params(items: Optional[List[str]]) -> Dict[str, Any]:
    """
    Parse ``key=value`` strings into a dict with int/float/bool coercion.

    Raises:
        ParameterError: If an item has no ``=``
    """
    params: Dict[str, Any] = {}
    for item in items or []:
        if "=" not in item:
            raise ParameterError(f"Expected key=value, got {item!r}")
        key, value = item.split("=", 1)
        params[key.strip()] = _coerce(value.strip())
    return params


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="copac",
        description="Partition a dataset by local correlation dimension and cluster each partition",
    )
    parser.add_argument("input", help="CSV file with one object per row")
    parser.add_argument("--delimiter", default=",", help="Column delimiter (default: ',')")
    parser.add_argument("--skiprows", type=int, default=0, help="Header rows to skip")
    parser.add_argument("--k", type=int, default=None, help="Neighborhood size for local PCA")
    parser.add_argument("--filter", dest="filter_name", default=None, help="Eigenpair filter name")
    parser.add_argument("--threshold", type=float, default=None, help="Percentage filter threshold (0, 1]")
    parser.add_argument("--filter-param", action="append", metavar="KEY=VALUE",
                        help="Extra eigenpair filter parameter (repeatable)")
    parser.add_argument("--big", type=float, default=None, help="Clamp value for strong eigenvalues")
    parser.add_argument("--small", type=float, default=None, help="Clamp value for weak eigenvalues")
    parser.add_argument("--algorithm", default=None, help="Clustering algorithm per partition")
    parser.add_argument("--param", action="append", metavar="KEY=VALUE",
                        help="Partition algorithm parameter (repeatable)")
    parser.add_argument("--workers", type=int, default=None, help="Threads for local PCA")
    parser.add_argument("--output", default=None, help="Write the result as JSON to this path")
    parser.add_argument("--log-level", default=None, help="Logging level (default: COPAC_LOG_LEVEL or INFO)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level or config.log_level)

    try:
        pca_overrides = {
            key: value
            for key, value in (
                ("filter_name", args.filter_name),
                ("filter_threshold", args.threshold),
                ("big", args.big),
                ("small", args.small),
            )
            if value is not None
        }
        pca_overrides["filter_params"] = parse_params(args.filter_param)
        copac_overrides = {
            key: value
            for key, value in (
                ("k", args.k),
                ("partition_algorithm", args.algorithm),
                ("max_workers", args.workers),
            )
            if value is not None
        }
        copac_overrides["partition_params"] = parse_params(args.param)

        copac_config = config.get_copac_config(
            pca=config.get_pca_config(**pca_overrides), **copac_overrides
        )
    except ParameterError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    try:
        X = np.loadtxt(args.input, delimiter=args.delimiter, skiprows=args.skiprows, ndmin=2)
    except (OSError, ValueError) as e:
        print(f"ERROR: Could not read {args.input}: {e}", file=sys.stderr)
        return 1

    dataset = Dataset(X)
    logger.info("loaded %d objects of dimensionality %d", len(dataset), dataset.dimensionality)

    try:
        result = build_copac(copac_config).run(dataset)
    except COPACError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    for pid, partition in result.results.items():
        print(
            f"partition {pid}: {len(partition.ids)} objects, "
            f"{partition.n_clusters} clusters, {partition.n_noise} noise"
        )

    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            json.dump(result.to_dict(), fh, indent=2)
        print(f"Wrote {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
