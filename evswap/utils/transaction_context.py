"""
One unit of work on an AsyncSession.

    async with TransactionContext(session, label="momo-callback") as tx:
        sub = await subscription_service.create_subscription_after_payment(tx.session, package_id, driver_id)
        tx.after_commit(lambda: notify(sub))

The block commits when it exits cleanly and rolls back when it raises or was
marked with mark_for_rollback(). Exceptions always propagate. Callbacks
registered with after_commit() run only once the commit succeeded; their
failures are logged, the transaction stays committed.
"""

import logging
from typing import Awaitable, Callable, List

from sqlalchemy.ext.asyncio import AsyncSession

OUTCOME_OPEN = "open"
OUTCOME_COMMITTED = "committed"
OUTCOME_ROLLED_BACK = "rolled_back"


class TransactionContext:

    def __init__(self, session: AsyncSession, label: str = "transaction"):
        self.session = session
        self.label = label
        self.outcome = OUTCOME_OPEN
        self._rollback_requested = False
        self._post_commit: List[Callable[[], Awaitable[None]]] = []

    def mark_for_rollback(self):
        self._rollback_requested = True

    def after_commit(self, callback: Callable[[], Awaitable[None]]):
        self._post_commit.append(callback)

    @property
    def committed(self) -> bool:
        return self.outcome == OUTCOME_COMMITTED

    async def __aenter__(self) -> "TransactionContext":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None or self._rollback_requested:
            reason = exc_type.__name__ if exc_type is not None else "requested"
            logging.info(f"Transaction[{self.label}]: rolling back ({reason})")
            await self._rollback(reraise=exc_type is None)
            return False

        try:
            await self.session.commit()
        except Exception as e:
            logging.error(f"Transaction[{self.label}]: commit failed: {e}", exc_info=True)
            await self._rollback(reraise=False)
            raise

        self.outcome = OUTCOME_COMMITTED
        await self._run_post_commit()
        return False

    async def _rollback(self, reraise: bool):
        self.outcome = OUTCOME_ROLLED_BACK
        self._post_commit.clear()
        try:
            await self.session.rollback()
        except Exception as rollback_error:
            logging.critical(f"Transaction[{self.label}]: rollback failed: {rollback_error}", exc_info=True)
            if reraise:
                raise

    async def _run_post_commit(self):
        callbacks, self._post_commit = self._post_commit, []
        for callback in callbacks:
            try:
                await callback()
            except Exception as e:
                logging.error(
                    f"Transaction[{self.label}]: post-commit callback "
                    f"{getattr(callback, '__name__', callback)!r} failed: {e}",
                    exc_info=True,
                )

