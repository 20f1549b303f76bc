"""Periodic order sweeps.

- Expiry: cancel PENDING orders whose payment window has passed
  (returns their stock).
- Completion: complete DELIVERED orders past the grace period.

Each matched order is transitioned in its own transaction through the
regular transition function, so a sweep overlapping another sweep or a
customer action can never apply a transition twice. Per-order failures
are counted and never abort the sweep.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog

from storefront.application.order_service import OrderService, UpdateOrderResult
from storefront.domain.exceptions import ErrorKind
from storefront.infrastructure.config import Settings
from storefront.infrastructure.database import Database
from storefront.infrastructure.repositories import OrderRepository

logger = structlog.get_logger()


@dataclass
class SweepResult:
    """Aggregate outcome of one sweep run.

    Attributes:
        sweep: Sweep name.
        matched: Orders selected by the sweep query.
        succeeded: Orders transitioned by this run.
        skipped: Orders another trigger moved first.
        failed: Orders whose transition failed.
        errors: Order number to error message for failures.
    """

    sweep: str
    matched: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)


class OrderSweeper:
    """Runs the expiry and completion sweeps."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        orders: OrderService,
    ) -> None:
        self.settings = settings
        self.database = database
        self.orders = orders

    async def cancel_expired_orders(self, now: datetime | None = None) -> SweepResult:
        """Cancel unpaid orders older than the payment timeout.

        Args:
            now: Reference time (defaults to the current time).

        Returns:
            SweepResult; ``succeeded`` counts cancelled orders.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=self.settings.payment_timeout_hours)

        async with self.database.unit_of_work() as session:
            order_numbers = await OrderRepository(session).find_numbers_pending_since(cutoff)

        return await self._run(
            "expiry",
            order_numbers,
            lambda number: self.orders.expire_order(
                number,
                cutoff,
                reason=f"Payment not received within {self.settings.payment_timeout_hours} hours",
                actor="system",
            ),
        )

    async def complete_delivered_orders(self, now: datetime | None = None) -> SweepResult:
        """Complete orders delivered longer ago than the grace period.

        Args:
            now: Reference time (defaults to the current time).

        Returns:
            SweepResult; ``succeeded`` counts completed orders.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self.settings.auto_complete_days)

        async with self.database.unit_of_work() as session:
            order_numbers = await OrderRepository(session).find_numbers_delivered_since(cutoff)

        return await self._run(
            "completion",
            order_numbers,
            lambda number: self.orders.mark_completed(
                number,
                actor="system",
                reason=f"Auto-completed {self.settings.auto_complete_days} days after delivery",
            ),
        )

    async def _run(
        self,
        sweep: str,
        order_numbers: list[str],
        action: Callable[[str], Awaitable[UpdateOrderResult]],
    ) -> SweepResult:
        result = SweepResult(sweep=sweep, matched=len(order_numbers))
        if not order_numbers:
            logger.info("Sweep found no orders", sweep=sweep)
            return result

        semaphore = asyncio.Semaphore(max(1, self.settings.sweep_concurrency))

        async def process(order_number: str) -> None:
            async with semaphore:
                try:
                    outcome = await action(order_number)
                except Exception as e:
                    logger.error(
                        "Sweep failed for order",
                        sweep=sweep,
                        order_number=order_number,
                        error=str(e),
                    )
                    result.failed += 1
                    result.errors[order_number] = str(e)
                    return

            if outcome.success:
                result.succeeded += 1
            elif outcome.error_kind == ErrorKind.CONFLICT:
                result.skipped += 1
            else:
                result.failed += 1
                result.errors[order_number] = outcome.error or "unknown error"

        await asyncio.gather(*(process(number) for number in order_numbers))

        logger.info(
            "Sweep finished",
            sweep=sweep,
            matched=result.matched,
            succeeded=result.succeeded,
            skipped=result.skipped,
            failed=result.failed,
        )
        return result


class SweepScheduler:
    """Runs both sweeps on fixed intervals inside the service process."""

    def __init__(
        self,
        sweeper: OrderSweeper,
        expiry_interval_seconds: float,
        completion_interval_seconds: float,
    ) -> None:
        self.sweeper = sweeper
        self.expiry_interval_seconds = expiry_interval_seconds
        self.completion_interval_seconds = completion_interval_seconds
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        """Start the periodic loops."""
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(
                self._loop("expiry", self.expiry_interval_seconds, self.sweeper.cancel_expired_orders)
            ),
            asyncio.create_task(
                self._loop(
                    "completion",
                    self.completion_interval_seconds,
                    self.sweeper.complete_delivered_orders,
                )
            ),
        ]
        logger.info(
            "Sweep scheduler started",
            expiry_interval_seconds=self.expiry_interval_seconds,
            completion_interval_seconds=self.completion_interval_seconds,
        )

    async def stop(self) -> None:
        """Cancel the loops and wait for them to finish."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Sweep scheduler stopped")

    async def _loop(
        self,
        sweep: str,
        interval: float,
        run: Callable[[], Awaitable[SweepResult]],
    ) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await run()
            except Exception as e:
                logger.error("Scheduled sweep crashed", sweep=sweep, error=str(e))
