"""
Periodic maintenance: liveness sweep and command expiry.

Both steps are conditional bulk updates, so runs may overlap, repeat, or be
skipped; the next run converges the table to the same state. The scheduler
runs inside the API process; ``serra-maintenance`` runs one pass for cron.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from .database import SessionLocal, utcnow
from .services import command_service, liveness_service

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaintenanceReport:
    marked_offline: int
    marked_failed: int
    expired_commands: int

    def as_dict(self) -> dict:
        return {
            "marked_offline": self.marked_offline,
            "marked_failed": self.marked_failed,
            "expired_commands": self.expired_commands,
        }


def run_maintenance(db: Session, *, now: Optional[datetime] = None) -> MaintenanceReport:
    """One sweep pass committed as a single transaction."""
    now = now or utcnow()
    try:
        liveness = liveness_service.sweep(db, now=now, commit=False)
        expired = command_service.expire_stale(db, now=now, commit=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return MaintenanceReport(
        marked_offline=liveness.marked_offline,
        marked_failed=liveness.marked_failed,
        expired_commands=expired,
    )


def run_maintenance_once(session_factory: Callable[[], Session] = SessionLocal) -> MaintenanceReport:
    db = session_factory()
    try:
        return run_maintenance(db)
    finally:
        db.close()


class MaintenanceScheduler:
    """Runs maintenance on an interval as an asyncio task.

    Each pass runs in a worker thread with its own session. A failing pass is
    logged and the loop keeps going.
    """

    def __init__(
        self,
        interval_seconds: float,
        session_factory: Callable[[], Session] = SessionLocal,
    ) -> None:
        self.interval_seconds = interval_seconds
        self._session_factory = session_factory
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.interval_seconds <= 0:
            LOGGER.info("Maintenance scheduler disabled")
            return
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        LOGGER.info("Maintenance scheduler started (every %.0fs)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        LOGGER.info("Maintenance scheduler stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                report = await asyncio.to_thread(run_maintenance_once, self._session_factory)
            except Exception:  # noqa: BLE001 - next pass corrects a failed one
                LOGGER.exception("Maintenance pass failed")
                continue
            LOGGER.debug("Maintenance pass: %s", report.as_dict())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run one liveness sweep and command expiry pass")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )
    report = run_maintenance_once()
    LOGGER.info(
        "Maintenance complete: %d offline, %d connection_failed, %d commands expired",
        report.marked_offline,
        report.marked_failed,
        report.expired_commands,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
