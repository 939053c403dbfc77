"""
stormrep Command Line Interface (CLI)
=====================================

Runs the whole pipeline once:

    python -m stormrep.cli --out report.docx

1) Fetch (or reuse the cached copy of) the storm-data CSV
2) Parse, date-filter and normalize the records
3) Print the top event types for both questions
4) Write the DOCX report (and optionally the summary table)

The CLI never modifies the dataset file.
"""

from __future__ import annotations
from datetime import date, datetime
from typing import List, Optional
import argparse
import logging
import os
import sys

from .aggregate import check_export_path, run_analysis
from .loader import CUTOFF_DATE, DATA_URL, StormDataError
from .logger import close_logger, setup_logger
from .normalize import DEFAULT_STRATEGY, STRATEGIES

logger = logging.getLogger(__name__)


def _parse_date(s: str) -> date:
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM-DD date: {s!r}") from None


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="stormrep",
        description="Health and economic impact of storm event types (NOAA storm data).",
    )
    ap.add_argument("--csv", default=DATA_URL, help="Path or URL of the (bz2) storm-data CSV")
    ap.add_argument("--out", default="storm_report.docx", help="Output DOCX path")
    ap.add_argument("--strategy", choices=sorted(STRATEGIES), default=DEFAULT_STRATEGY,
                    help="Event type canonicalization strategy")
    ap.add_argument("--cutoff", type=_parse_date, default=CUTOFF_DATE,
                    help="Keep events starting on or after this date (YYYY-MM-DD)")
    ap.add_argument("--top-n", type=int, default=10, help="Categories shown in tables and charts")
    ap.add_argument("--export", help="Also write the per-event-type summary (.csv/.json/.xlsx)")
    ap.add_argument("--cache-dir", help="Download cache directory (default: $STORMREP_CACHE_DIR or ./data)")
    ap.add_argument("--log-dir", default="logs", help="Directory for the run log")
    ap.add_argument("--quiet", action="store_true", help="Do not echo log messages to the console")
    return ap


def _print_top(title: str, frame, columns: List[str]) -> None:
    print(title)
    for r in frame.itertuples():
        values = " | ".join(f"{c}={getattr(r, c):,.0f}" for c in columns)
        print(f"  {r.event_category:<28} {values}")


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the stormrep CLI. Returns the process exit status."""
    args = build_parser().parse_args(argv)
    if args.export:
        try:
            check_export_path(args.export)
        except StormDataError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    log, log_path = setup_logger(args.log_dir, verbose=not args.quiet)
    try:
        return _run(args, log_path)
    finally:
        close_logger(log)


def _run(args: argparse.Namespace, log_path: str) -> int:
    from .report import DatasetCitation, ReportConfig, generate_docx_report

    print("Loading dataset...")
    try:
        analysis = run_analysis(args.csv, strategy=args.strategy, cutoff=args.cutoff, cache_dir=args.cache_dir)
    except StormDataError as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Loaded {len(analysis.records)} events since {args.cutoff.isoformat()} "
          f"({len(analysis.load.issues)} malformed rows skipped).")
    if not analysis.records:
        print("Error: no events left after filtering; nothing to report.", file=sys.stderr)
        return 1

    _print_top(f"Top {args.top_n} event types by fatalities + injuries:",
               analysis.top("health_total", args.top_n), ["fatalities", "injuries"])
    _print_top(f"Top {args.top_n} event types by total damage (US$):",
               analysis.top("total_damage", args.top_n), ["property_damage", "crop_damage"])

    n_unknown = len(analysis.unknown_multipliers())
    if n_unknown:
        print(f"{n_unknown} damage value(s) had an unknown exponent code and are not in the totals.")

    if args.export:
        analysis.export_summary(args.export)
        print(f"Summary written to {args.export}")

    cfg = ReportConfig(
        top_n=args.top_n,
        citation=DatasetCitation(
            source_url=args.csv,
            file_name=os.path.basename(analysis.load.source) if analysis.load.source else None,
        ),
    )
    generate_docx_report(analysis, args.out, config=cfg)
    print(f"Report written to {args.out} (log: {log_path})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
