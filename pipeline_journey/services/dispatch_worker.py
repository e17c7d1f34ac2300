"""
Dispatch worker - claims due journey messages and delivers them.

A tick runs in three steps:
1. Claim a batch of due rows (pending and due, or claimed with an expired
   claim) with compare-and-set updates, then commit.
2. Deliver each claimed row serially, ordered by lead, with bounded
   exponential backoff between attempts. No transaction is open while the
   webhook call is in flight.
3. Record every attempt in the history log and finish the row as sent or
   failed. Each write is guarded by the claim token, and the claim is
   renewed before every request. A row whose claim was taken over by
   another worker is abandoned without being sent again.
"""
import asyncio
import logging
import os
import socket
import zlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from pipeline_journey.config import Settings, settings as default_settings
from pipeline_journey.core.clock import isoformat_z, utcnow
from pipeline_journey.core.exceptions import WebhookDeliveryError
from pipeline_journey.core.security import generate_secure_token
from pipeline_journey.models.enums import DispatchErrorClass, MessageType, ScheduleStatus
from pipeline_journey.models.journey import ScheduledMessage
from pipeline_journey.repositories.schedule_repo import ScheduledMessageRepository
from pipeline_journey.services.history_service import DispatchOutcome, HistoryService
from pipeline_journey.services.integrations.base import WebhookDispatcher
from pipeline_journey.services.integrations.webhook import HttpWebhookDispatcher
from pipeline_journey.services.journey_scheduler import is_usable_webhook_url

logger = logging.getLogger(__name__)


@dataclass
class DispatchRunSummary:
    worker_id: str
    claimed: int = 0
    sent: int = 0
    failed: int = 0
    abandoned: int = 0


def default_worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{generate_secure_token(4)}"


def lead_partition(lead_id, partition_count: int) -> int:
    """Stable partition of a lead, identical across processes."""
    return zlib.crc32(str(lead_id).encode("utf-8")) % partition_count


def build_payload(message: ScheduledMessage, now: datetime) -> Dict[str, Any]:
    """Webhook body sent to the messaging system."""
    return {
        "scheduleId": str(message.id),
        "leadId": str(message.lead_id),
        "leadName": message.lead_name,
        "leadPhone": message.lead_phone,
        "leadEmail": message.lead_email,
        "message": {
            "title": message.message_title,
            "content": message.message_content,
            "type": MessageType(message.message_type).value,
            "mediaUrl": message.media_url,
        },
        "stage": message.stage_id,
        "scheduledFor": isoformat_z(message.scheduled_for),
        "timestamp": isoformat_z(now),
    }


class DispatchWorker:
    """
    Polling dispatcher. Several instances may run against the same database;
    the claim is the only shared write and at most one of them wins it.
    """

    def __init__(
        self,
        session_factory=None,
        dispatcher: Optional[WebhookDispatcher] = None,
        config: Optional[Settings] = None,
        worker_id: Optional[str] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow
    ):
        if session_factory is None:
            from pipeline_journey.database import async_session_maker
            session_factory = async_session_maker

        self.session_factory = session_factory
        self.config = config or default_settings
        self.dispatcher = dispatcher or HttpWebhookDispatcher(
            timeout=self.config.WEBHOOK_TIMEOUT_SECONDS,
            secret=self.config.JOURNEY_WEBHOOK_SECRET
        )
        self.worker_id = worker_id or default_worker_id()
        self.sleep = sleep
        self.clock = clock
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._stopped: Optional[asyncio.Event] = None

    def _log_extra(self, message: ScheduledMessage, **fields) -> dict:
        extra = {
            "worker_id": self.worker_id,
            "schedule_id": str(message.id),
            "lead_id": str(message.lead_id),
            "stage_id": message.stage_id,
        }
        extra.update(fields)
        return extra

    def _owns(self, message: ScheduledMessage) -> bool:
        count = self.config.WORKER_PARTITION_COUNT
        if count <= 1:
            return True
        return lead_partition(message.lead_id, count) == self.config.WORKER_PARTITION_INDEX

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    async def run_once(self) -> DispatchRunSummary:
        """Claim and deliver one batch of due messages."""
        summary = DispatchRunSummary(worker_id=self.worker_id)

        claims = await self.claim_batch()
        summary.claimed = len(claims)

        # Per-lead ordering holds within this worker
        claims.sort(key=lambda claim: (
            str(claim[0].lead_id), claim[0].scheduled_for, claim[0].template_order
        ))

        for message, claim_token in claims:
            try:
                status = await self.deliver(message, claim_token)
            except Exception:
                # The claim expires and another tick picks the row up again
                logger.exception(
                    f"Dispatch of message {message.id} crashed",
                    extra=self._log_extra(message)
                )
                status = None

            if status == ScheduleStatus.SENT:
                summary.sent += 1
            elif status == ScheduleStatus.FAILED:
                summary.failed += 1
            else:
                summary.abandoned += 1

        if summary.claimed:
            logger.info(
                f"Dispatch tick: claimed={summary.claimed} sent={summary.sent} "
                f"failed={summary.failed} abandoned={summary.abandoned}",
                extra={"worker_id": self.worker_id}
            )
        return summary

    async def claim_batch(self) -> List[Tuple[ScheduledMessage, str]]:
        """Claim up to DISPATCH_BATCH_SIZE rows. Returns (message, claim_token) pairs."""
        now = self.clock()
        batch_size = self.config.DISPATCH_BATCH_SIZE
        expires_at = now + timedelta(seconds=self.config.CLAIM_TTL_SECONDS)
        # Over-fetch so other partitions' rows do not starve this one
        fetch_limit = batch_size * max(self.config.WORKER_PARTITION_COUNT, 1)

        claims = []
        async with self.session_factory() as session:
            repo = ScheduledMessageRepository(session)
            try:
                candidates = await repo.find_claimable(now, fetch_limit)
                for message in candidates:
                    if len(claims) >= batch_size:
                        break
                    if not self._owns(message):
                        continue

                    reclaim = message.status == ScheduleStatus.CLAIMED
                    claim_token = generate_secure_token(16)
                    won = await repo.try_claim(message, claim_token, self.worker_id, now, expires_at)
                    if not won:
                        logger.debug(
                            f"Lost claim race for message {message.id}",
                            extra=self._log_extra(message)
                        )
                        continue

                    if reclaim:
                        logger.warning(
                            f"Reclaimed message {message.id} after claim by {message.claimed_by} expired",
                            extra=self._log_extra(message)
                        )
                    claims.append((message, claim_token))

                await session.commit()
            except Exception:
                await session.rollback()
                raise

        return claims

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    async def deliver(self, message: ScheduledMessage, claim_token: str) -> Optional[ScheduleStatus]:
        """
        Deliver one claimed message.
        Returns the terminal status, or None if the claim was lost.
        """
        max_attempts = self.config.MAX_DISPATCH_ATTEMPTS

        if not is_usable_webhook_url(message.webhook_url):
            outcome = DispatchOutcome(
                attempt=message.attempts + 1,
                success=False,
                error_class=DispatchErrorClass.NO_WEBHOOK_CONFIGURED.value,
                error_message="No journey webhook URL was configured when the message was scheduled",
                is_final=True,
                sent_at=self.clock()
            )
            logger.warning(
                f"Message {message.id} has no webhook URL, marking failed",
                extra=self._log_extra(message)
            )
            if not await self._record(message, claim_token, outcome):
                return None
            return ScheduleStatus.FAILED

        if message.attempts >= max_attempts:
            # A previous holder used up the attempts but never finished the row
            return await self._finish_exhausted(message, claim_token)

        url = message.webhook_url.strip()
        payload = build_payload(message, self.clock())
        attempt = message.attempts

        while True:
            attempt += 1
            if not await self._renew_claim(message, claim_token):
                return None
            try:
                result = await self.dispatcher.dispatch(url, payload, idempotency_key=str(message.id))
                outcome = DispatchOutcome(
                    attempt=attempt,
                    success=True,
                    status_code=result.status_code,
                    is_final=True
                )
            except WebhookDeliveryError as e:
                outcome = DispatchOutcome(
                    attempt=attempt,
                    success=False,
                    status_code=e.status_code,
                    error_class=e.error_class,
                    error_message=e.message,
                    is_final=attempt >= max_attempts
                )
            outcome.sent_at = self.clock()

            log_extra = self._log_extra(message, attempt=attempt, status_code=outcome.status_code)
            if outcome.success:
                logger.info(f"Delivered message {message.id} on attempt {attempt}", extra=log_extra)
            else:
                logger.warning(
                    f"Attempt {attempt}/{max_attempts} for message {message.id} failed: "
                    f"{outcome.error_class} {outcome.error_message}",
                    extra=log_extra
                )

            if not await self._record(message, claim_token, outcome):
                return None
            if outcome.success:
                return ScheduleStatus.SENT
            if outcome.is_final:
                logger.error(
                    f"Giving up on message {message.id} after {attempt} attempts",
                    extra=log_extra
                )
                return ScheduleStatus.FAILED

            await self.sleep(self.config.retry_delay(attempt))

    async def _renew_claim(self, message: ScheduledMessage, claim_token: str) -> bool:
        """
        Extend the claim to cover the next attempt. Rows later in a batch wait
        behind earlier rows' retries, so the claim taken at the start of the
        tick may have lapsed by now.
        """
        now = self.clock()
        expires_at = now + timedelta(seconds=self.config.CLAIM_TTL_SECONDS)

        async with self.session_factory() as session:
            repo = ScheduledMessageRepository(session)
            try:
                renewed = await repo.renew_claim(message.id, claim_token, now, expires_at)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        if not renewed:
            logger.warning(
                f"Claim on message {message.id} was taken over before sending, abandoning",
                extra=self._log_extra(message)
            )
        return renewed

    async def _record(self, message: ScheduledMessage, claim_token: str, outcome: DispatchOutcome) -> bool:
        """
        Persist one attempt, its history entry and, when final, the terminal
        status in a single transaction. False means the claim was lost.
        """
        now = self.clock()
        last_error = None
        if not outcome.success:
            last_error = f"{outcome.error_class}: {outcome.error_message}"

        async with self.session_factory() as session:
            repo = ScheduledMessageRepository(session)
            try:
                kept = await repo.record_attempt(message.id, claim_token, outcome.attempt, last_error, now)
                if not kept:
                    await session.rollback()
                    logger.warning(
                        f"Claim on message {message.id} was lost, abandoning",
                        extra=self._log_extra(message, attempt=outcome.attempt)
                    )
                    return False

                await HistoryService(session).record(message, outcome)

                if outcome.success:
                    await repo.complete(message.id, claim_token, ScheduleStatus.SENT, now)
                elif outcome.is_final:
                    await repo.complete(message.id, claim_token, ScheduleStatus.FAILED, now, last_error)

                await session.commit()
            except Exception:
                await session.rollback()
                raise

        return True

    async def _finish_exhausted(self, message: ScheduledMessage, claim_token: str) -> Optional[ScheduleStatus]:
        now = self.clock()
        last_error = message.last_error or "Maximum dispatch attempts reached"

        async with self.session_factory() as session:
            repo = ScheduledMessageRepository(session)
            try:
                done = await repo.complete(message.id, claim_token, ScheduleStatus.FAILED, now, last_error)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        if not done:
            return None
        logger.error(
            f"Message {message.id} already used {message.attempts} attempts, marked failed",
            extra=self._log_extra(message)
        )
        return ScheduleStatus.FAILED

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    async def _tick(self):
        try:
            await self.run_once()
        except Exception:
            logger.exception("Dispatch tick failed", extra={"worker_id": self.worker_id})

    def start(self, scheduler: Optional[AsyncIOScheduler] = None) -> AsyncIOScheduler:
        """Register the tick as an interval job on a running event loop."""
        scheduler = scheduler or AsyncIOScheduler()
        scheduler.add_job(
            self._tick,
            "interval",
            seconds=self.config.DISPATCH_INTERVAL_SECONDS,
            id=f"journey-dispatch-{self.worker_id}",
            max_instances=1,
            coalesce=True
        )
        if not scheduler.running:
            scheduler.start()
        self._scheduler = scheduler

        logger.info(
            f"Dispatch worker {self.worker_id} polling every {self.config.DISPATCH_INTERVAL_SECONDS}s",
            extra={"worker_id": self.worker_id}
        )
        return scheduler

    async def run_forever(self):
        """Run ticks until stop() is called."""
        self._stopped = asyncio.Event()
        await self._tick()  # Run once on startup
        self.start()
        try:
            await self._stopped.wait()
        finally:
            await self.shutdown()

    def stop(self):
        if self._stopped is not None:
            self._stopped.set()

    async def shutdown(self):
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        if isinstance(self.dispatcher, HttpWebhookDispatcher):
            await self.dispatcher.aclose()
