"""Webhook reconciler: turns verified, deduplicated payment events into booking transitions.

Delivery is at-least-once and unordered. Every event id is written to the
processed-event log in the same transaction as the transition it drives, so a
redelivered (or concurrently delivered) event can never replay side effects.
Once an event is recorded the gateway gets a success acknowledgment, even when
its side effects failed: those events are stored as ``failed`` for replay
rather than bounced back to the gateway for redelivery.
"""

import enum
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from staybook.database import utcnow
from staybook.errors import ReconciliationAnomaly
from staybook.models.webhook_event import EventStatus, ProcessedWebhookEvent
from staybook.payments.gateway import GatewayEvent, StripePaymentGateway
from staybook.services.booking_state import (
    TransitionSource,
    cancel_booking,
    confirm_booking,
    find_booking_id_by_ref,
)

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
PAYMENT_CANCELED = "payment_intent.canceled"

CANCELLING_EVENTS = frozenset({PAYMENT_FAILED, PAYMENT_CANCELED})
HANDLED_EVENTS = CANCELLING_EVENTS | {PAYMENT_SUCCEEDED}

_MAX_ERROR_LENGTH = 2000


class Outcome(str, enum.Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    ANOMALY = "anomaly"
    FAILED = "failed"


class _DuplicateEvent(Exception):
    """The event id is already in the processed-event log."""


class WebhookReconciler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: StripePaymentGateway,
    ) -> None:
        self._session_factory = session_factory
        self._gateway = gateway

    async def ingest(self, payload: bytes, sig_header: str) -> Outcome:
        """Verify, deduplicate and apply one webhook delivery.

        Raises:
            AuthenticationFailure: the signature does not verify.
            ValidationError: the payload is not a usable event.
        """
        event = self._gateway.verify_event(payload, sig_header)
        return await self.process(event)

    async def process(self, event: GatewayEvent) -> Outcome:
        """Apply an already-verified event."""
        logger.info("Processing webhook event: %s (id=%s)", event.type, event.id)
        async with self._session_factory() as db:
            try:
                outcome = await self._record_and_dispatch(db, event)
                await db.commit()
                return outcome
            except _DuplicateEvent:
                await db.rollback()
                logger.info("Duplicate webhook event %s acknowledged without replay", event.id)
                return Outcome.DUPLICATE
            except ReconciliationAnomaly as e:
                await db.rollback()
                logger.error("Reconciliation anomaly on event %s (%s): %s", event.id, event.type, e.detail)
                return await self._record_unapplied(event, EventStatus.ANOMALY, e.detail, e.booking_id)
            except Exception as e:
                await db.rollback()
                logger.exception("Webhook event %s could not be applied; queued for replay", event.id)
                return await self._record_unapplied(event, EventStatus.FAILED, repr(e))

    async def replay_failed(self, limit: int = 100) -> dict[str, Outcome]:
        """Re-run events whose side effects previously failed."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(ProcessedWebhookEvent.event_id)
                .where(ProcessedWebhookEvent.status == EventStatus.FAILED)
                .order_by(ProcessedWebhookEvent.received_at)
                .limit(limit)
            )
            event_ids = list(result.scalars().all())

        outcomes: dict[str, Outcome] = {}
        for event_id in event_ids:
            outcomes[event_id] = await self._replay_one(event_id)
        return outcomes

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _record_and_dispatch(self, db: AsyncSession, event: GatewayEvent) -> Outcome:
        if await db.get(ProcessedWebhookEvent, event.id) is not None:
            raise _DuplicateEvent(event.id)

        record = ProcessedWebhookEvent(
            event_id=event.id,
            event_type=event.type,
            payment_ref=event.payment_ref,
            status=EventStatus.PROCESSED,
        )
        db.add(record)
        try:
            await db.flush()
        except IntegrityError as e:
            logger.info("Webhook event %s was recorded by a concurrent delivery", event.id)
            raise _DuplicateEvent(event.id) from e

        return await self._dispatch(db, event, record)

    async def _dispatch(self, db: AsyncSession, event: GatewayEvent, record: ProcessedWebhookEvent) -> Outcome:
        record.processed_at = utcnow()

        if event.type not in HANDLED_EVENTS:
            logger.debug("Unhandled webhook event type: %s", event.type)
            record.status = EventStatus.IGNORED
            return Outcome.IGNORED

        booking_id = await find_booking_id_by_ref(db, event.payment_ref)
        if booking_id is None:
            logger.warning("No booking found for payment %s (event %s)", event.payment_ref, event.id)
            record.status = EventStatus.IGNORED
            return Outcome.IGNORED

        record.booking_id = booking_id
        if event.type == PAYMENT_SUCCEEDED:
            result = await confirm_booking(db, booking_id)
        else:
            result = await cancel_booking(
                db,
                booking_id,
                TransitionSource.GATEWAY,
                reason=f"Gateway reported {event.type}",
            )

        record.status = EventStatus.PROCESSED
        logger.info("Event %s applied to booking %s: %s", event.id, booking_id, result.value)
        return Outcome.PROCESSED

    async def _record_unapplied(
        self,
        event: GatewayEvent,
        status: EventStatus,
        error: str,
        booking_id: uuid.UUID | None = None,
    ) -> Outcome:
        """Log an event whose transition was rolled back, in its own transaction."""
        async with self._session_factory() as db:
            db.add(
                ProcessedWebhookEvent(
                    event_id=event.id,
                    event_type=event.type,
                    payment_ref=event.payment_ref,
                    booking_id=booking_id,
                    status=status,
                    error=error[:_MAX_ERROR_LENGTH],
                    processed_at=utcnow(),
                )
            )
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                return Outcome.DUPLICATE
        return Outcome.ANOMALY if status is EventStatus.ANOMALY else Outcome.FAILED

    async def _replay_one(self, event_id: str) -> Outcome:
        async with self._session_factory() as db:
            try:
                result = await db.execute(
                    select(ProcessedWebhookEvent)
                    .where(
                        ProcessedWebhookEvent.event_id == event_id,
                        ProcessedWebhookEvent.status == EventStatus.FAILED,
                    )
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
                record = result.scalar_one_or_none()
                if record is None:
                    return Outcome.DUPLICATE

                record.attempts += 1
                record.error = None
                event = GatewayEvent(id=record.event_id, type=record.event_type, payment_ref=record.payment_ref)
                outcome = await self._dispatch(db, event, record)
                await db.commit()
                logger.info("Replayed webhook event %s: %s", event_id, outcome.value)
                return outcome
            except ReconciliationAnomaly as e:
                await db.rollback()
                logger.error("Reconciliation anomaly replaying event %s: %s", event_id, e.detail)
                await self._mark_unapplied(event_id, EventStatus.ANOMALY, e.detail)
                return Outcome.ANOMALY
            except Exception as e:
                await db.rollback()
                logger.exception("Replay of webhook event %s failed again", event_id)
                await self._mark_unapplied(event_id, EventStatus.FAILED, repr(e))
                return Outcome.FAILED

    async def _mark_unapplied(self, event_id: str, status: EventStatus, error: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(ProcessedWebhookEvent)
                .where(ProcessedWebhookEvent.event_id == event_id)
                .values(
                    status=status,
                    error=error[:_MAX_ERROR_LENGTH],
                    attempts=ProcessedWebhookEvent.attempts + 1,
                    processed_at=utcnow(),
                )
            )
            await db.commit()
