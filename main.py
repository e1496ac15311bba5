"""
Chani — End-to-end analytics pipeline.

Fetches the transcriptions table, builds the call table, and prints
dashboard-ready outputs and smoke-test checks.

Usage:
    python main.py [--start 2026-09-01] [--end 2026-09-30] [--demo]
                   [--search TEXT] [--sort FIELD] [--descending] [--watch]

Without SUPABASE_URL / SUPABASE_KEY (or with --demo) the simulated store
is used.
"""

import argparse
import asyncio
import logging
import math
import sys
from pathlib import Path

import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from chani_dashboard.calls_table import SortConfig, SortDirection, SortField, get_calls_view
from chani_dashboard.config import get_settings
from chani_dashboard.dashboard import (
    format_calls_for_display,
    format_percent,
    get_dashboard_overview,
    get_metric_cards,
)
from chani_dashboard.loaders import TranscriptionSource, connect_store
from chani_dashboard.simulator import InMemoryTranscriptionStore
from chani_dashboard.sync import RecordState, TranscriptionSync

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chani call analytics pipeline")
    parser.add_argument("--start", help="first day to include (YYYY-MM-DD)")
    parser.add_argument("--end", help="last day to include (YYYY-MM-DD)")
    parser.add_argument("--demo", action="store_true", help="use simulated transcriptions")
    parser.add_argument("--search", default="", help="free-text filter for the calls table")
    parser.add_argument(
        "--sort",
        choices=[field.value for field in SortField],
        default=SortField.CREATED_AT.value,
        help="calls table sort column",
    )
    parser.add_argument("--descending", action="store_true", help="sort the calls table descending")
    parser.add_argument("--watch", action="store_true", help="reprint the summary after every change")
    return parser.parse_args(argv)


async def open_source(demo: bool) -> tuple[TranscriptionSource, str]:
    settings = get_settings()
    if demo or not settings.has_backend:
        if not demo:
            logger.warning("SUPABASE_URL / SUPABASE_KEY not set; using simulated transcriptions")
        return InMemoryTranscriptionStore(), "simulated"
    return await connect_store(settings), "supabase"


def print_summary(overview: dict) -> None:
    for card in get_metric_cards(overview["summary"]):
        print(f"  {card['label']:28s} | {card['value']}")


def print_series(overview: dict) -> None:
    cost = overview["cost_by_date"]
    print(f"\nCost by date: {len(cost)} days")
    if not cost.empty:
        print(cost.to_string(index=False, float_format=lambda x: f"{x:.2f}"))

    by_date = overview["success_by_date"]
    print(f"\nSuccess rate by date: {len(by_date)} days")
    if not by_date.empty:
        print(by_date.to_string(index=False, formatters={"success_rate": format_percent}))

    by_script = overview["success_by_script"]
    print(f"\nSuccess rate by script: {len(by_script)} scripts")
    if not by_script.empty:
        print(by_script.to_string(index=False, formatters={"success_rate": format_percent}))


def run_checks(calls: pd.DataFrame, overview: dict) -> bool:
    """Print PASS/FAIL lines for the internal consistency checks."""
    summary = overview["summary"]
    checks = []

    expected_avg = summary["total_cost"] / summary["total_calls"] if summary["total_calls"] else 0.0
    checks.append((
        summary["average_cost_per_call"] == expected_avg,
        f"Average cost per call = {summary['average_cost_per_call']:.4f} (expect {expected_avg:.4f})",
    ))

    daily_total = float(overview["cost_by_date"]["cost"].sum())
    checks.append((
        math.isclose(daily_total, summary["total_cost"], rel_tol=1e-9, abs_tol=1e-9),
        f"Daily costs sum to {daily_total:.2f} (total {summary['total_cost']:.2f})",
    ))

    dates = overview["cost_by_date"]["date"].tolist()
    checks.append((
        all(a < b for a, b in zip(dates, dates[1:])),
        f"Cost series strictly ascending over {len(dates)} days",
    ))

    rates = overview["success_by_script"]["success_rate"]
    checks.append((
        bool(((rates >= 0) & (rates <= 100)).all()),
        f"Script success rates within 0-100% ({len(rates)} scripts)",
    ))

    checks.append((
        get_dashboard_overview(calls)["summary"] == summary,
        "Summary is deterministic for identical input",
    ))

    for passed, message in checks:
        print(f"  [{'PASS' if passed else 'FAIL'}] {message}")
    return all(passed for passed, _ in checks)


async def run(args: argparse.Namespace) -> int:
    print("=" * 70)
    print("  CHANI — Call Analytics Dashboard")
    print("  Analytics Pipeline Smoke Test")
    print("=" * 70)
    print()

    source, label = await open_source(args.demo)
    sync = TranscriptionSync(source, args.start, args.end)
    # Subscribe before the first fetch so no change slips between the two
    events = await source.changes() if args.watch else None

    try:
        # ------------------------------------------------------------------
        # 1. Fetch records
        # ------------------------------------------------------------------
        print(f"[ 1 ] FETCHING TRANSCRIPTIONS ({label})")
        print("-" * 40)
        state = await sync.refresh()
        if state.last_error:
            print(f"\nFetch failed: {state.last_error}")
            return 1
        calls = state.records
        print(f"\n{len(calls)} calls loaded (start={state.start_date}, end={state.end_date})")

        # ------------------------------------------------------------------
        # 2. Dashboard outputs
        # ------------------------------------------------------------------
        print("\n")
        print("[ 2 ] DASHBOARD OUTPUTS")
        print("-" * 40)
        overview = get_dashboard_overview(calls)
        print_summary(overview)
        print_series(overview)

        # ------------------------------------------------------------------
        # 3. Calls table
        # ------------------------------------------------------------------
        print("\n")
        print("[ 3 ] CALLS TABLE")
        print("-" * 40)
        direction = SortDirection.DESCENDING if args.descending else SortDirection.ASCENDING
        sort = SortConfig(SortField(args.sort), direction)
        view = get_calls_view(calls, sort, args.search)
        print(f"\n{len(view)} of {len(calls)} calls (sort={sort.key.value} {sort.direction.value}, search={args.search!r})")
        if view.empty:
            print("No calls found.")
        else:
            display = format_calls_for_display(view.head(20), get_settings().display_timezone)
            print(display.drop(columns=["Link"]).to_string(index=False))

        # ------------------------------------------------------------------
        # 4. Acceptance criteria verification
        # ------------------------------------------------------------------
        print("\n")
        print("[ 4 ] ACCEPTANCE CRITERIA CHECKS")
        print("-" * 40)
        ok = run_checks(calls, overview)

        if args.watch:
            print("\nWatching for changes (Ctrl+C to stop)...")

            def on_update(new_state: RecordState) -> None:
                print(f"\nRevision {new_state.revision}: {len(new_state.records)} calls")
                print_summary(get_dashboard_overview(new_state.records))

            sync.add_listener(on_update)
            await sync.watch(events)
    finally:
        if events is not None:
            await events.aclose()
        await source.close()

    print("\n" + "=" * 70)
    print("  Pipeline complete.")
    print("=" * 70)
    return 0 if ok else 1


def main(argv: list[str] | None = None) -> int:
    """Run the analytics pipeline and print smoke-test outputs."""
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
