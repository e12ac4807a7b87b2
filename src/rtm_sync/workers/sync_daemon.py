"""Block ingestion loop.

Fetches blocks from the node strictly in height order and routes their
transactions. Each block is processed inside one unit of work, so a block is
either fully committed (block row, derived asset state and, every
``SYNC_CHECKPOINT_INTERVAL`` heights, the watermark) or not at all.

Failure handling is layered:
1. A failing block is retried ``SYNC_RETRY_ATTEMPTS`` times with an
   attempt-scaled delay
2. If it still fails, the iteration fails and the supervisor in ``run`` waits
   ``SYNC_RETRY_DELAY_SECONDS`` and restarts, up to ``SYNC_MAX_RESTARTS``
   consecutive times
3. When that budget is exhausted the daemon halts with status ``error``
"""

import asyncio
import time
from collections import deque
from typing import Any, Awaitable, Callable

import structlog

from rtm_sync.core.config import Settings
from rtm_sync.core.timezone import from_block_time, utcnow
from rtm_sync.models.block import Block
from rtm_sync.models.sync_state import SyncStatus
from rtm_sync.services.chain.future_checker import FutureChecker
from rtm_sync.services.chain.router import TransactionRouter
from rtm_sync.services.chain.tx_types import BlockContext, output_recipient
from rtm_sync.services.exceptions import BlockFetchError, SyncError, SyncHaltedError
from rtm_sync.services.rpc.client import RaptoreumRPCClient
from rtm_sync.uow import UnitOfWork, UnitOfWorkFactory

logger = structlog.get_logger(__name__)

SYNC_SERVICE = "blocks"
BLOCK_TIME_WINDOW = 100  # blocks in the rolling average
PROGRESS_LOG_EVERY = 10  # heights


class SyncDaemon:
    """Single-writer ingestion loop for one node and one database."""

    def __init__(
        self,
        settings: Settings,
        uow_factory: UnitOfWorkFactory,
        rpc: RaptoreumRPCClient,
        router: TransactionRouter,
        future_checker: FutureChecker,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize daemon.

        Args:
            settings: Batch size, retry budgets, checkpoint interval and delays
            uow_factory: Factory producing one unit of work per block
            rpc: Node JSON-RPC client
            router: Per-transaction dispatcher
            future_checker: Maturity scan run after each batch
            sleep: Awaitable delay (tests inject a recorder)
        """
        self.settings = settings
        self.uow_factory = uow_factory
        self.rpc = rpc
        self.router = router
        self.future_checker = future_checker
        self._sleep = sleep

        self._stop_event = asyncio.Event()
        self._running = asyncio.Event()
        self._running.set()
        self._block_times: deque[float] = deque(maxlen=BLOCK_TIME_WINDOW)
        self._consecutive_failures = 0

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    @property
    def is_paused(self) -> bool:
        return not self._running.is_set()

    @property
    def average_block_time(self) -> float:
        """Rolling average processing time per block, in milliseconds."""
        if not self._block_times:
            return 0.0
        return sum(self._block_times) / len(self._block_times)

    async def _wait(self, seconds: float) -> None:
        """Sleep, returning early when a stop is requested."""
        if seconds <= 0 or self._stop_event.is_set():
            return

        sleeper = asyncio.ensure_future(self._sleep(seconds))
        stopper = asyncio.ensure_future(self._stop_event.wait())
        _, pending = await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    async def initialize(self) -> int:
        """Check the node and load the persisted progress record.

        A record left ``paused`` by a previous shutdown is resumed; the
        watermark is kept.

        Returns:
            Current watermark height

        Raises:
            SyncError: If the node is not reachable
        """
        health = await self.rpc.check_health()
        if not health.is_connected:
            raise SyncError(f"Node health check failed: {health.message}")

        async with await self.uow_factory() as uow:
            state = await uow.sync_state.load(SYNC_SERVICE, self.settings.sync_start_height)
            state.resume()
            await uow.sync_state.save(state)
            current = state.current_block

        logger.info(
            "sync.initialized",
            current_block=current,
            node_blocks=health.blocks,
            chain=health.chain,
            batch_size=self.settings.sync_batch_size,
            checkpoint_interval=self.settings.sync_checkpoint_interval,
        )
        return current

    async def run(self) -> None:
        """Supervise the ingestion loop until stopped or halted.

        Raises:
            SyncHaltedError: When consecutive failures exceed SYNC_MAX_RESTARTS
        """
        if not self.settings.sync_enabled:
            logger.warning("sync.disabled", hint="Set SYNC_ENABLED=true to start block ingestion")
            return

        logger.info("sync.started", max_restarts=self.settings.sync_max_restarts)
        self._consecutive_failures = 0

        while not self._stop_event.is_set():
            try:
                await self.initialize()
                await self._run_until_stopped()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._consecutive_failures += 1
                logger.error(
                    "sync.iteration_failed",
                    failures=self._consecutive_failures,
                    max_restarts=self.settings.sync_max_restarts,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                await self._update_state_best_effort(status=SyncStatus.ERROR, last_error=str(e))

                if self._consecutive_failures > self.settings.sync_max_restarts:
                    logger.critical(
                        "sync.halted",
                        failures=self._consecutive_failures,
                        error=str(e),
                    )
                    raise SyncHaltedError(
                        f"Sync halted after {self._consecutive_failures} consecutive failures: {e}"
                    ) from e

                logger.info(
                    "sync.restart_scheduled",
                    retry_in_seconds=self.settings.sync_retry_delay_seconds,
                    restarts_remaining=self.settings.sync_max_restarts
                    - self._consecutive_failures,
                )
                await self._wait(self.settings.sync_retry_delay_seconds)

        await self._update_state_best_effort(status=SyncStatus.PAUSED)
        logger.info("sync.stopped")

    async def _run_until_stopped(self) -> None:
        while not self._stop_event.is_set():
            if self.is_paused:
                await self._hold_while_paused()
                continue

            caught_up = await self.sync_once()
            self._consecutive_failures = 0

            if not caught_up:
                await self._wait(self.settings.sync_batch_pause_seconds)

    async def _hold_while_paused(self) -> None:
        await self._update_state_best_effort(status=SyncStatus.PAUSED)
        logger.info("sync.paused")

        while self.is_paused and not self._stop_event.is_set():
            await self._wait(self.settings.sync_pause_poll_seconds)

        if not self._stop_event.is_set():
            async with await self.uow_factory() as uow:
                state = await uow.sync_state.load(SYNC_SERVICE, self.settings.sync_start_height)
                state.resume()
                await uow.sync_state.save(state)
            logger.info("sync.resumed")

    async def sync_once(self) -> bool:
        """Run one iteration: compare with the node tip and process one batch.

        Returns:
            True when already caught up (after the heartbeat wait), False when
            a batch was processed
        """
        if self._stop_event.is_set():
            return True

        info = await self.rpc.get_blockchain_info()
        target = int(info["blocks"])

        async with await self.uow_factory() as uow:
            state = await uow.sync_state.load(SYNC_SERVICE, self.settings.sync_start_height)
            current = state.current_block
            state.target_block = target
            caught_up = current >= target

            if caught_up:
                if state.status != SyncStatus.SYNCED:
                    state.mark_synced()
                    logger.info("sync.synced", current_block=current, target_block=target)
            else:
                state.mark_syncing()
            await uow.sync_state.save(state)

        if caught_up:
            logger.debug("sync.heartbeat", current_block=current)
            await self._wait(self.settings.sync_heartbeat_seconds)
            return True

        batch_end = min(current + self.settings.sync_batch_size, target)
        logger.info(
            "sync.batch_started",
            from_height=current + 1,
            to_height=batch_end,
            target_block=target,
            behind=target - current,
        )
        await self.sync_blocks(current + 1, batch_end)
        return False

    async def sync_blocks(self, start_height: int, end_height: int) -> int | None:
        """Process heights in order, then checkpoint and run the maturity scan.

        A stop request is honoured between blocks; the block in progress is
        always finished.

        Returns:
            Last height processed, or None if none was
        """
        last_height = None

        for height in range(start_height, end_height + 1):
            if self._stop_event.is_set():
                logger.info("sync.stop_between_blocks", next_height=height)
                break

            started = time.perf_counter()
            await self.sync_block(height)
            elapsed_ms = (time.perf_counter() - started) * 1000
            self._block_times.append(elapsed_ms)
            last_height = height

            if height % PROGRESS_LOG_EVERY == 0:
                logger.info(
                    "sync.block.processed",
                    height=height,
                    duration_ms=round(elapsed_ms),
                    average_ms=round(self.average_block_time),
                )

        if last_height is None:
            return None

        async with await self.uow_factory() as uow:
            state = await uow.sync_state.load(SYNC_SERVICE, self.settings.sync_start_height)
            state.record_checkpoint(last_height, self.average_block_time)
            await uow.sync_state.save(state)

        async with await self.uow_factory() as uow:
            await self.future_checker.check_and_unlock_mature_futures(uow, last_height, utcnow())

        logger.info("sync.batch_committed", height=last_height)
        return last_height

    async def sync_block(self, height: int) -> bool:
        """Fetch and process one height, retrying on failure.

        Returns:
            True when the block was processed, False when it was already stored

        Raises:
            Exception: The last failure once retries are exhausted
        """
        retries = self.settings.sync_retry_attempts
        attempt = 0

        while True:
            try:
                processed = await self._sync_block_once(height)
                break
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "sync.block.failed",
                    height=height,
                    attempt=attempt,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if attempt >= retries:
                    raise

            attempt += 1
            delay = self.settings.sync_block_retry_delay_seconds * attempt
            logger.info(
                "sync.block.retry", height=height, attempt=attempt, retries=retries, delay=delay
            )
            await self._sleep(delay)

        if attempt:
            logger.info("sync.block.recovered", height=height, attempt=attempt)
        return processed

    async def _sync_block_once(self, height: int) -> bool:
        async with await self.uow_factory() as uow:
            if await uow.blocks.exists(height):
                logger.debug("sync.block.already_stored", height=height)
                return False

        block_hash = await self.rpc.get_block_hash(height)
        block = await self.rpc.get_block(block_hash, 2)
        if not block:
            raise BlockFetchError(f"Node returned no block for height {height}")

        async with await self.uow_factory() as uow:
            await self.process_block(uow, block)

            if height % self.settings.sync_checkpoint_interval == 0:
                state = await uow.sync_state.load(SYNC_SERVICE, self.settings.sync_start_height)
                state.record_checkpoint(height, self.average_block_time)
                await uow.sync_state.save(state)
                logger.info("sync.checkpoint", height=height)

        return True

    async def process_block(self, uow: UnitOfWork, block: dict[str, Any]) -> int:
        """Store the block row and route every verbose transaction it contains.

        Returns:
            Number of transactions routed
        """
        txs = block.get("tx") or []
        coinbase_vout = (txs[0].get("vout") or [{}])[0] if txs and isinstance(txs[0], dict) else {}
        context = BlockContext(
            height=int(block["height"]),
            hash=block["hash"],
            time=from_block_time(block["time"]),
        )

        await uow.blocks.add(
            Block(
                height=context.height,
                hash=context.hash,
                previous_hash=block.get("previousblockhash") or "",
                merkle_root=block.get("merkleroot") or "",
                timestamp=context.time,
                difficulty=float(block.get("difficulty") or 0),
                nonce=int(block.get("nonce") or 0),
                size=int(block.get("size") or 0),
                transaction_count=len(txs),
                transactions=[tx if isinstance(tx, str) else tx["txid"] for tx in txs],
                miner=output_recipient(coinbase_vout) if coinbase_vout else None,
                reward=float(coinbase_vout.get("value") or 0) if coinbase_vout else 0.0,
            )
        )

        routed = 0
        for tx in txs:
            if not isinstance(tx, dict):
                continue
            await self.router.route(uow, tx, context)
            routed += 1

        logger.debug("sync.block.stored", height=context.height, transactions=routed)
        return routed

    def request_stop(self) -> None:
        """Ask the loop to exit after the block in progress."""
        if not self._stop_event.is_set():
            logger.info("sync.stop_requested")
        self._stop_event.set()

    async def stop(self) -> None:
        """Request stop and persist ``paused``."""
        self.request_stop()
        await self._update_state_best_effort(status=SyncStatus.PAUSED)

    def pause(self) -> None:
        """Hold the loop between batches without exiting."""
        self._running.clear()

    def resume(self) -> None:
        self._running.set()

    async def _update_state_best_effort(self, **fields: Any) -> None:
        """Persist state fields; failures are logged, never raised.

        Used on error and shutdown paths where raising would mask the
        original failure.
        """
        try:
            async with await self.uow_factory() as uow:
                await uow.sync_state.update(SYNC_SERVICE, **fields)
        except Exception as e:
            logger.error("sync.state_update_failed", fields=list(fields), error=str(e))
