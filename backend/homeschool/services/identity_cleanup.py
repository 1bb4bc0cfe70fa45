"""Periodic cleanup of expired identity state.

Runs as an asyncio task started from the FastAPI lifespan. Each pass:
- deletes password signups whose verification link expired unused
- clears expired password-reset token pairs
- drops expired sessions from stores without native expiry
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from homeschool.core.sessions import SessionStore
from homeschool.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

# Default interval: 6 hours
DEFAULT_INTERVAL_SECONDS = 6 * 60 * 60


@dataclass(frozen=True)
class CleanupResult:
    """Counts from one cleanup pass.

    Attributes:
        unverified_users_deleted: Expired unverified signups removed.
        reset_tokens_cleared: Expired reset pairs cleared.
        sessions_expired: Expired sessions dropped.
        finished_at: When the pass completed.
    """

    unverified_users_deleted: int
    reset_tokens_cleared: int
    sessions_expired: int
    finished_at: datetime


async def run_cleanup_pass(
    db: AsyncSession,
    session_store: SessionStore,
    *,
    now: datetime | None = None,
) -> CleanupResult:
    """Run every cleanup step once and commit.

    Args:
        db: Async database session.
        session_store: Session registry to sweep.
        now: Reference time. Defaults to the current UTC time.

    Returns:
        CleanupResult with the counts.
    """
    now = now or datetime.now(UTC)
    deleted = await UserRepository.delete_expired_unverified(db, now)
    cleared = await UserRepository.clear_expired_reset_tokens(db, now)
    await db.commit()
    expired_sessions = await session_store.cleanup_expired()
    return CleanupResult(
        unverified_users_deleted=deleted,
        reset_tokens_cleared=cleared,
        sessions_expired=expired_sessions,
        finished_at=datetime.now(UTC),
    )


class IdentityCleanupWorker:
    """Background worker that periodically runs the cleanup pass.

    Lifecycle:
    - start() creates an asyncio task that runs the cleanup loop.
    - stop() cancels the task and waits for it to finish.
    - run_once() executes a single pass (for testing).

    Args:
        session_factory: Async session factory for DB access.
        session_store: Session registry to sweep.
        interval_seconds: Seconds between passes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        session_store: SessionStore,
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self._session_store = session_store
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._last_result: CleanupResult | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the background task is currently active."""
        return self._running and self._task is not None and not self._task.done()

    @property
    def last_result(self) -> CleanupResult | None:
        """Result of the most recent completed pass."""
        return self._last_result

    def start(self) -> None:
        """Start the background cleanup loop.

        No-op if already running. Must be called with a running event loop.
        """
        if self.is_running:
            logger.warning("Identity cleanup worker already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Identity cleanup worker started (interval=%ds)", self._interval_seconds
        )

    async def stop(self) -> None:
        """Stop the loop and wait for the task to finish."""
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("Identity cleanup worker stopped")

    async def run_once(self) -> CleanupResult:
        """Execute a single cleanup pass."""
        async with self._session_factory() as db:
            result = await run_cleanup_pass(db, self._session_store)
        self._last_result = result
        return result

    async def _run_loop(self) -> None:
        """Background loop: run_once → sleep → repeat."""
        try:
            while self._running:
                try:
                    result = await self.run_once()
                    logger.info(
                        "Identity cleanup pass: %d users deleted, "
                        "%d reset tokens cleared, %d sessions expired",
                        result.unverified_users_deleted,
                        result.reset_tokens_cleared,
                        result.sessions_expired,
                    )
                except Exception:  # noqa: BLE001
                    logger.exception("Error in identity cleanup pass")
                await asyncio.sleep(self._interval_seconds)
        except asyncio.CancelledError:
            logger.debug("Identity cleanup loop cancelled")
            raise
