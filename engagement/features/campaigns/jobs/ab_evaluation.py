from collections.abc import Callable
from datetime import datetime

from engagement.errors import StorageUnavailable
from engagement.features.campaigns.jobs.base import CampaignJob, CampaignMetrics
from engagement.features.campaigns.repository import ExperimentRepository
from engagement.features.campaigns.services.experiments import evaluate
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ABEvaluationCampaign(CampaignJob):
    """
    Scores every running subject-line experiment and ends the ones with a
    significant winner. Sends nothing.
    """

    name = "ab_evaluation"

    def __init__(
        self,
        *,
        experiments=ExperimentRepository,
        clock: Callable[[], datetime] | None = None,
        max_run_s: float | None = None,
    ):
        super().__init__(clock=clock, max_run_s=max_run_s)
        self.experiments = experiments

    async def execute(self, now: datetime, metrics: CampaignMetrics) -> None:
        running = await self.experiments.list_running()
        evaluated = ended = 0
        for experiment in running:
            try:
                stats = await self.experiments.variant_stats(experiment)
                verdict = evaluate(stats)
                evaluated += 1
                logger.info(
                    "Experiment evaluated",
                    experiment_id=experiment.id,
                    sent_a=stats["A"].sent,
                    sent_b=stats["B"].sent,
                    confidence=round(verdict.confidence, 4),
                    winner=verdict.winner,
                )
                if verdict.conclusive:
                    await self.experiments.end(experiment.id, verdict.winner, verdict.confidence, now)
                    ended += 1
            except StorageUnavailable as e:
                metrics.record_error(None, f"experiment {experiment.id}: {e}")

        metrics.details.update(evaluated=evaluated, ended=ended, running=len(running) - ended)
