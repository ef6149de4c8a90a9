"""
Campaign job base classes.

A run selects its recipients once, then pushes each one through
guard -> render -> claim -> send -> outcome with bounded concurrency. One
recipient's failure is recorded and never aborts the batch. The whole loop
runs under a deadline; on expiry the partial counts are returned and every
outcome already written stays valid.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, ClassVar

from structlog.contextvars import bound_contextvars

from engagement.config import settings
from engagement.errors import SkippedRecipient, StorageUnavailable
from engagement.features.campaigns.domain import (
    AudienceExclusion,
    DeliveryOutcome,
    Experiment,
    Recipient,
    UserRecord,
)
from engagement.features.campaigns.repository import (
    ActivityRepository,
    DeliveryRepository,
    ExperimentRepository,
    PreferenceRepository,
    RecipientRepository,
)
from engagement.features.campaigns.services.experiments import assign_variant, subject_for
from engagement.features.campaigns.services.guard import FrequencyGuard, policy_for
from engagement.features.campaigns.services.renderer import CampaignRenderer
from engagement.features.campaigns.services.unsubscribe import issue_token
from engagement.infrastructure.observability.logging import get_logger
from engagement.services.email_transport import EmailMessage, EmailTransport, get_transport

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class CampaignResult:
    campaign: str
    sent: int = 0
    skipped: int = 0
    errors: int = 0
    timed_out: bool = False
    duration_s: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaign": self.campaign,
            "sent": self.sent,
            "skipped": self.skipped,
            "errors": self.errors,
            "timed_out": self.timed_out,
            "duration_s": round(self.duration_s, 3),
            **self.details,
        }


class CampaignMetrics:
    """Counters for one run."""

    def __init__(self, campaign: str):
        self.campaign = campaign
        self.started = time.monotonic()
        self.sent = 0
        self.skipped = 0
        self.errors = 0
        self.timed_out = False
        self.skip_reasons: Counter[str] = Counter()
        self.details: dict[str, Any] = {}

    def record_sent(self, user_id: str) -> None:
        self.sent += 1
        logger.debug("Campaign email sent", user_id=user_id)

    def record_skipped(self, user_id: str | None, reason: str, count: int = 1) -> None:
        self.skipped += count
        self.skip_reasons[reason] += count
        logger.debug("Campaign recipient skipped", user_id=user_id, reason=reason)

    def record_error(self, user_id: str | None, error: str) -> None:
        self.errors += 1
        logger.warning("Campaign recipient failed", user_id=user_id, error=error)

    def finalize(self) -> CampaignResult:
        return CampaignResult(
            campaign=self.campaign,
            sent=self.sent,
            skipped=self.skipped,
            errors=self.errors,
            timed_out=self.timed_out,
            duration_s=time.monotonic() - self.started,
            details=dict(self.details),
        )


class CampaignJob(ABC):
    """Anything the scheduler can trigger by name."""

    name: ClassVar[str]

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        max_run_s: float | None = None,
    ):
        self._clock = clock or _utcnow
        self.max_run_s = max_run_s or settings.CAMPAIGN_MAX_RUN_SECONDS

    @abstractmethod
    async def execute(self, now: datetime, metrics: CampaignMetrics) -> None:
        """Do the run's work, updating ``metrics`` as it goes."""

    async def run(self) -> CampaignResult:
        """
        Execute one run under the run deadline.

        Raises:
            StorageUnavailable: Selection could not be read; nothing was sent
        """
        metrics = CampaignMetrics(self.name)
        now = self._clock()
        with bound_contextvars(campaign=self.name):
            logger.info("Campaign run started", now=now.isoformat())
            try:
                async with asyncio.timeout(self.max_run_s):
                    await self.execute(now, metrics)
            except TimeoutError:
                metrics.timed_out = True
                logger.warning("Campaign run hit its deadline", max_run_s=self.max_run_s)

            result = metrics.finalize()
            logger.info(
                "Campaign run completed",
                sent=result.sent,
                skipped=result.skipped,
                errors=result.errors,
                timed_out=result.timed_out,
                duration_s=round(result.duration_s, 3),
                skip_reasons=dict(metrics.skip_reasons),
            )
        return result


class SendCampaignJob(CampaignJob):
    """A campaign that emails a selected audience."""

    def __init__(
        self,
        *,
        recipients=RecipientRepository,
        activity=ActivityRepository,
        deliveries=DeliveryRepository,
        experiments=ExperimentRepository,
        preferences=PreferenceRepository,
        guard: FrequencyGuard | None = None,
        renderer: CampaignRenderer | None = None,
        transport: EmailTransport | None = None,
        clock: Callable[[], datetime] | None = None,
        max_run_s: float | None = None,
        max_concurrency: int | None = None,
        tz: str | None = None,
    ):
        super().__init__(clock=clock, max_run_s=max_run_s)
        self.recipients = recipients
        self.activity = activity
        self.deliveries = deliveries
        self.experiments = experiments
        self.guard = guard or FrequencyGuard(deliveries=deliveries, preferences=preferences, tz=tz)
        self.renderer = renderer or CampaignRenderer()
        self._transport = transport
        self.max_concurrency = max_concurrency or settings.CAMPAIGN_MAX_CONCURRENCY
        self.tz = tz

    @property
    def transport(self) -> EmailTransport:
        if self._transport is None:
            self._transport = get_transport()
        return self._transport

    def in_window(self, now: datetime) -> bool:
        """Only seasonal campaigns restrict the calendar window."""
        return True

    @abstractmethod
    async def select(self, now: datetime) -> list[Recipient]:
        """Materialize the audience for this run."""

    async def personalize(self, recipient: Recipient, now: datetime) -> None:
        """
        Fill per-recipient context that is too costly to gather at selection.

        Raise ``SkippedRecipient`` when there turns out to be nothing worth sending.
        """

    async def after_send(self, recipient: Recipient, now: datetime) -> None:
        """Hook for per-recipient bookkeeping after a successful send."""

    def exclusion(self, category: str, now: datetime) -> AudienceExclusion:
        """What the selection for ``category`` can leave out before the batch limit applies."""
        policy = policy_for(category)
        return AudienceExclusion(
            category=category,
            window_key=policy.window_key(now, self.tz),
            since=policy.window_start(now, self.tz),
            preference=policy.preference,
            marketing=policy.marketing,
        )

    def make_recipient(
        self,
        user: UserRecord,
        now: datetime,
        *,
        category: str,
        template: str,
        subject: str,
        email: str | None = None,
        **context: Any,
    ) -> Recipient:
        # Only the member's own inbox gets a link into their preferences
        if email is None:
            context.setdefault("unsubscribe_token", issue_token(user.id, now))
        return Recipient(
            user_id=user.id,
            email=email or user.email,
            category=category,
            window_key=policy_for(category).window_key(now, self.tz),
            template=template,
            subject=subject,
            context={"first_name": user.first_name, **context},
        )

    async def execute(self, now: datetime, metrics: CampaignMetrics) -> None:
        recipients = await self.select(now)
        logger.info("Campaign audience selected", recipients=len(recipients))

        if not self.in_window(now):
            metrics.record_skipped(None, "outside_window", count=len(recipients))
            return
        if not recipients:
            return

        experiments = await self._running_experiments({r.category for r in recipients})
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def guarded(recipient: Recipient) -> None:
            async with semaphore:
                try:
                    await self.deliver(recipient, now, metrics, experiments.get(recipient.category))
                except SkippedRecipient as e:
                    metrics.record_skipped(recipient.user_id, e.reason)
                except StorageUnavailable as e:
                    metrics.record_error(recipient.user_id, str(e))
                except Exception as e:
                    logger.exception("Unexpected campaign recipient error", user_id=recipient.user_id)
                    metrics.record_error(recipient.user_id, f"{type(e).__name__}: {e}")

        await asyncio.gather(*(guarded(r) for r in recipients))

    async def _running_experiments(self, categories: set[str]) -> dict[str, Experiment]:
        running: dict[str, Experiment] = {}
        for category in categories:
            try:
                experiment = await self.experiments.running_for_category(category)
            except StorageUnavailable as e:
                logger.warning("Experiment lookup failed, sending control", category=category, error=str(e))
                continue
            if experiment:
                running[category] = experiment
        return running

    async def deliver(
        self,
        recipient: Recipient,
        now: datetime,
        metrics: CampaignMetrics,
        experiment: Experiment | None = None,
    ) -> None:
        """Push one recipient through guard, render, claim, send and record."""
        if not recipient.email:
            raise SkippedRecipient("no_email", user_id=recipient.user_id)

        try:
            decision = await self.guard.may_contact(
                recipient.user_id, recipient.category, now, email=recipient.email
            )
        except StorageUnavailable as e:
            metrics.record_error(recipient.user_id, f"guard: {e}")
            return
        if not decision.allowed:
            metrics.record_skipped(recipient.user_id, decision.reason or "denied")
            return

        await self.personalize(recipient, now)

        variant = None
        subject = recipient.subject
        if experiment:
            variant = assign_variant(recipient.user_id, experiment.traffic_split_percent)
            subject = subject_for(experiment, variant)

        rendered = self.renderer.render(
            recipient.template, subject, recipient.context, user_id=recipient.user_id
        )

        try:
            claimed = await self.deliveries.claim(
                recipient.user_id, recipient.category, recipient.window_key
            )
        except StorageUnavailable as e:
            metrics.record_error(recipient.user_id, f"claim: {e}")
            return
        if not claimed:
            metrics.record_skipped(recipient.user_id, "already_claimed")
            return

        result = await self.transport.send(
            EmailMessage(
                to=recipient.email,
                subject=rendered.subject,
                html=rendered.html,
                text=rendered.text,
                tags={"campaign": self.name, "category": recipient.category.replace(":", "_")},
            )
        )

        outcome = DeliveryOutcome(
            user_id=recipient.user_id,
            category=recipient.category,
            campaign=self.name,
            recipient_email=recipient.email,
            success=result.success,
            created_at=now,
            counts_toward_caps=policy_for(recipient.category).counts_toward_caps,
            external_id=result.external_id,
            error=result.error,
            subject=rendered.subject,
            variant=variant,
        )
        await self._record(outcome)

        if not result.success:
            await self._release(recipient)
            metrics.record_error(recipient.user_id, result.error or "send failed")
            return

        metrics.record_sent(recipient.user_id)
        try:
            await self.after_send(recipient, now)
        except StorageUnavailable as e:
            logger.warning("Post-send bookkeeping failed", user_id=recipient.user_id, error=str(e))

    async def _record(self, outcome: DeliveryOutcome) -> None:
        try:
            await self.deliveries.record_outcome(outcome)
        except StorageUnavailable as e:
            logger.error(
                "Could not record delivery outcome",
                user_id=outcome.user_id,
                category=outcome.category,
                success=outcome.success,
                error=str(e),
            )

    async def _release(self, recipient: Recipient) -> None:
        try:
            await self.deliveries.release_claim(
                recipient.user_id, recipient.category, recipient.window_key
            )
        except StorageUnavailable as e:
            logger.error("Could not release delivery claim", user_id=recipient.user_id, error=str(e))
