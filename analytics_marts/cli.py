#!/usr/bin/env python
"""
Analytics Marts Command Line

Usage:
    analytics-marts generate --output-dir ./data/raw
    analytics-marts run --select +funnel_metrics --vars session_timeout_minutes=45
    analytics-marts test --select tag:staging
    analytics-marts ls --select tag:analytics
    analytics-marts report funnel_shape

Logs go to stderr; listings and reports are printed to stdout.
"""

import argparse
import sys
from typing import Any, Dict, List, Optional

import polars as pl
import structlog

from analytics_marts.config import get_settings
from analytics_marts.config.logging import configure_logging

logger = structlog.get_logger(__name__)


def _parse_vars(pairs: Optional[List[str]]) -> Dict[str, Any]:
    """key=value pairs; integer-looking values become ints"""
    parsed: Dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected key=value, got '{pair}'")
        parsed[key.strip()] = int(value) if value.strip().lstrip("-").isdigit() else value
    return parsed


def _runner(args: argparse.Namespace, **kwargs):
    from analytics_marts.orchestration import ProjectRunner, SourceCatalog

    return ProjectRunner(
        sources=SourceCatalog(raw_path=args.raw_path) if args.raw_path else None,
        target_path=args.target_path,
        **kwargs,
    )


def cmd_generate(args: argparse.Namespace) -> int:
    from analytics_marts.data import DataGenerator, summarize

    config = get_settings().generator.model_copy()
    for field_name in ("seed", "n_users", "n_products", "n_events", "n_sales"):
        value = getattr(args, field_name)
        if value is not None:
            setattr(config, field_name, value)

    data = DataGenerator(config=config, output_dir=args.raw_path).generate_all(save=True)
    print(summarize(data))
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    runner = _runner(args, vars=_parse_vars(args.vars), fail_fast=args.fail_fast or None)
    result = runner.run(select=args.select, exclude=args.exclude, full_refresh=args.full_refresh)

    print(pl.DataFrame(
        [
            {
                "model": r.name,
                "materialized": r.materialized.value,
                "status": r.status.value,
                "rows": r.rows,
                "seconds": round(r.duration_seconds, 3),
                "error": r.error,
            }
            for r in result.results
        ],
        schema={
            "model": pl.String,
            "materialized": pl.String,
            "status": pl.String,
            "rows": pl.Int64,
            "seconds": pl.Float64,
            "error": pl.String,
        },
    ))
    return 0 if result.success else 1


def cmd_test(args: argparse.Namespace) -> int:
    from analytics_marts.quality import ValidationStatus

    results = _runner(args).test(select=args.select, exclude=args.exclude)

    failed = False
    for name, result in results.items():
        print(f"{name}: {result.status.value} ({result.passed_checks}/{result.total_checks} checks passed)")
        for check in result.failures:
            print(f"  [{check.severity.value}] {check.name}: {check.message}")
        failed = failed or result.status == ValidationStatus.FAILED

    return 1 if failed else 0


def cmd_ls(args: argparse.Namespace) -> int:
    from analytics_marts.orchestration import load_project

    registry = load_project()
    for name in registry.select(args.select, args.exclude):
        node = registry.get(name)
        print(f"{name}\t{node.materialized.value}\t{','.join(node.tags)}\t{node.description}")
    return 0


def cmd_report(args: argparse.Namespace) -> int:
    from analytics_marts.reports import REPORTS, list_reports, run_report

    if args.name is None:
        for name in list_reports():
            print(f"{name}\t{REPORTS[name].description}")
        return 0

    runner = _runner(args)
    df = run_report(args.name, lambda relation: runner.ref(relation).collect())
    with pl.Config(tbl_rows=args.limit, tbl_cols=-1):
        print(df)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="analytics-marts", description="Analytics mart models")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    parser.add_argument("--log-format", choices=["json", "text"], default=None, help="Override LOG_FORMAT")
    parser.add_argument("--raw-path", default=None, help="Raw source tables directory")
    parser.add_argument("--target-path", default=None, help="Materialized tables directory")

    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate synthetic raw tables")
    gen.add_argument("--seed", type=int, default=None)
    gen.add_argument("--users", dest="n_users", type=int, default=None)
    gen.add_argument("--products", dest="n_products", type=int, default=None)
    gen.add_argument("--events", dest="n_events", type=int, default=None)
    gen.add_argument("--sales", dest="n_sales", type=int, default=None)
    gen.set_defaults(func=cmd_generate)

    def add_selection(p: argparse.ArgumentParser) -> None:
        p.add_argument("-s", "--select", nargs="+", default=None, help="name, tag:<tag>, +name, name+")
        p.add_argument("--exclude", nargs="+", default=None, help="Selectors to leave out")

    run = sub.add_parser("run", help="Build selected models")
    add_selection(run)
    run.add_argument("--full-refresh", action="store_true", help="Drop selected tables before building")
    run.add_argument("--fail-fast", action="store_true", help="Stop at the first model error")
    run.add_argument("--vars", nargs="+", default=None, metavar="KEY=VALUE", help="Project variables")
    run.set_defaults(func=cmd_run)

    test = sub.add_parser("test", help="Run data tests on selected models")
    add_selection(test)
    test.set_defaults(func=cmd_test)

    ls = sub.add_parser("ls", help="List selected models in build order")
    add_selection(ls)
    ls.set_defaults(func=cmd_ls)

    report = sub.add_parser("report", help="Print a named report, or list reports")
    report.add_argument("name", nargs="?", default=None)
    report.add_argument("--limit", type=int, default=50, help="Rows to print")
    report.set_defaults(func=cmd_report)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    try:
        return args.func(args)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    except (KeyError, ValueError, FileNotFoundError) as e:
        logger.error("Command failed", command=args.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
