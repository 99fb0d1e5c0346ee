"""Offer Scout - casino and promotion discovery

Simple CLI for importing reference data and running research in-process.
"""

import argparse
import asyncio
import sys
import time

from app.models.schemas import RunStatus
from app.services import database as db
from app.services import reference_import, run_manager


async def run_research(poll_interval: float, timeout: float | None) -> int:
    """Start a run and poll it, printing new progress lines until it ends."""
    try:
        await db.init_schema()
        await db.apply_run_guard()
        run_id = await run_manager.start_run()
    except (run_manager.RunAlreadyActiveError, db.PersistenceError) as e:
        print(f"[!] {e}")
        await db.close_pool()
        return 1
    print(f"Research run: {run_id}")
    print("-" * 50)

    printed = 0
    deadline = time.monotonic() + timeout if timeout else None
    try:
        while True:
            await asyncio.sleep(poll_interval)
            run = await run_manager.get_run(run_id)
            if run is None:
                print("[!] Run record disappeared")
                return 1

            log = run.get("progress_log") or []
            for line in log[printed:]:
                print(line)
            printed = len(log)

            status = RunStatus(run["status"])
            if status.is_terminal:
                summary = run.get("summary") or {}
                print(f"\n{'=' * 50}")
                print(f"Status: {status.value}")
                print(f"   Missing casinos: {summary.get('total_missing_casinos', 0)}")
                print(f"   New offers: {summary.get('total_new_offers', 0)}")
                print(f"   States: {', '.join(summary.get('states_processed', []))}")
                return 0 if status == RunStatus.COMPLETED else 1

            if deadline is not None and time.monotonic() > deadline:
                print(f"\n[!] Gave up waiting after {timeout:.0f}s; run {run_id} is still {status.value}")
                return 2
    finally:
        await db.close_pool()


async def import_reference() -> int:
    try:
        await db.init_schema()
        result = await reference_import.import_reference_data()
    except (reference_import.ReferenceImportError, db.PersistenceError) as e:
        print(f"[!] Import failed: {e}")
        return 1
    finally:
        await db.close_pool()
    print(f"[+] {result.message}")
    return 0


async def list_runs(limit: int) -> int:
    try:
        await db.init_schema()
        runs = await run_manager.list_runs(limit)
    except db.PersistenceError as e:
        print(f"[!] Could not list runs: {e}")
        return 1
    finally:
        await db.close_pool()
    for run in runs:
        summary = run.get("summary") or {}
        print(
            f"{run['id']}  {run['status']:<12} started {run['started_at']:%Y-%m-%d %H:%M}  "
            f"missing={summary.get('total_missing_casinos', '-')} "
            f"new_offers={summary.get('total_new_offers', '-')}"
        )
    return 0


def main():
    parser = argparse.ArgumentParser(description="Offer Scout research runner")
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Start a research run and follow its progress")
    run_parser.add_argument("--poll", type=float, default=2.0, help="Seconds between progress polls")
    run_parser.add_argument("--timeout", type=float, default=None, help="Stop following after N seconds")

    sub.add_parser("import", help="Import the reference casino/offer dataset")

    runs_parser = sub.add_parser("runs", help="List recent research runs")
    runs_parser.add_argument("--limit", "-n", type=int, default=20)

    args = parser.parse_args()

    if args.command == "run":
        code = asyncio.run(run_research(args.poll, args.timeout))
    elif args.command == "import":
        code = asyncio.run(import_reference())
    else:
        code = asyncio.run(list_runs(args.limit))
    sys.exit(code)


if __name__ == "__main__":
    main()
