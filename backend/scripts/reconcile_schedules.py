"""CLI script to repair assignment timers or run one business immediately."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from uuid import UUID

BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Reconcile rq-scheduler assignment timers with stored configuration.",
    )
    parser.add_argument(
        "--business-id",
        type=str,
        default=None,
        help="Only reconcile this Business UUID (default: every business)",
    )
    parser.add_argument(
        "--run-now",
        action="store_true",
        help="Also run the batch matcher once for --business-id",
    )
    return parser.parse_args()


async def _run() -> int:
    from autoassign.core.logging import configure_logging
    from autoassign.db.session import async_session_maker
    from autoassign.services.execution_history import JOB_MANUAL
    from autoassign.services.scheduling.jobs import execute_business_run
    from autoassign.services.scheduling.scheduler import (
        reconcile_all_schedules,
        reconcile_business_schedule,
    )

    configure_logging()
    args = _parse_args()
    if args.run_now and not args.business_id:
        message = "--run-now requires --business-id"
        raise SystemExit(message)

    if args.business_id is None:
        async with async_session_maker() as session:
            summary = await reconcile_all_schedules(session)
        sys.stdout.write(f"scheduled={summary['scheduled']} removed={summary['removed']}\n")
        return 0

    business_id = UUID(args.business_id)
    async with async_session_maker() as session:
        frequency = await reconcile_business_schedule(session, business_id)
    sys.stdout.write(f"business_id={business_id} frequency_minutes={frequency}\n")

    if args.run_now:
        record, result = await execute_business_run(business_id, job_name=JOB_MANUAL)
        sys.stdout.write(f"execution_id={record.id} status={record.status}\n")
        if result is None:
            sys.stdout.write(f"error={record.error}\n")
            return 1
        sys.stdout.write(
            f"total_tasks={result.total_tasks} "
            f"assigned={result.assigned_count} "
            f"failed={result.failed_count}\n",
        )
    return 0


def main() -> None:
    """Run the async CLI workflow and exit with its return code."""
    raise SystemExit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
