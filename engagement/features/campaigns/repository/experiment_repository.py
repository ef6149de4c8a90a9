"""
Subject-line experiments and the provider events that score them.
"""

from datetime import UTC, datetime
from typing import Any

from psycopg.types.json import Jsonb

from engagement.db.helpers import execute_query, fetch_all
from engagement.features.campaigns.domain import Experiment, VariantStats
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CONVERSION_EVENT = "opened"


class ExperimentRepository:
    EXPERIMENT_COLUMNS = """
        id, name, category, variant_a_subject, variant_b_subject,
        traffic_split_percent, started_at
    """

    @classmethod
    def _row_to_experiment(cls, row: dict) -> Experiment:
        return Experiment(
            id=str(row["id"]),
            name=row["name"],
            category=row["category"],
            variant_a_subject=row["variant_a_subject"],
            variant_b_subject=row["variant_b_subject"],
            traffic_split_percent=int(row["traffic_split_percent"]),
            started_at=row.get("started_at"),
        )

    @classmethod
    async def list_running(cls) -> list[Experiment]:
        rows = await fetch_all(
            f"""
            SELECT {cls.EXPERIMENT_COLUMNS}
            FROM email_experiments
            WHERE status = 'running'
            ORDER BY started_at
            """
        )
        return [cls._row_to_experiment(row) for row in rows]

    @classmethod
    async def running_for_category(cls, category: str) -> Experiment | None:
        rows = await fetch_all(
            f"""
            SELECT {cls.EXPERIMENT_COLUMNS}
            FROM email_experiments
            WHERE status = 'running' AND category = %s
            LIMIT 1
            """,
            (category,),
        )
        return cls._row_to_experiment(rows[0]) if rows else None

    @classmethod
    async def variant_stats(cls, experiment: Experiment) -> dict[str, VariantStats]:
        """Sends and conversions per variant since the experiment started."""
        rows = await fetch_all(
            """
            SELECT o.variant,
                   COUNT(*) AS sent,
                   COUNT(*) FILTER (
                       WHERE EXISTS (
                           SELECT 1 FROM email_events e
                           WHERE e.external_id = o.external_id AND e.event_type = %s
                       )
                   ) AS conversions
            FROM delivery_outcomes o
            WHERE o.category = %s
              AND o.success
              AND o.variant IS NOT NULL
              AND o.created_at >= %s
            GROUP BY o.variant
            """,
            (CONVERSION_EVENT, experiment.category, experiment.started_at or datetime.min.replace(tzinfo=UTC)),
        )
        stats = {"A": VariantStats(sent=0, conversions=0), "B": VariantStats(sent=0, conversions=0)}
        for row in rows:
            if row["variant"] in stats:
                stats[row["variant"]] = VariantStats(
                    sent=int(row["sent"]), conversions=int(row["conversions"])
                )
        return stats

    @classmethod
    async def end(cls, experiment_id: str, winner: str, confidence: float, ended_at: datetime) -> None:
        await execute_query(
            """
            UPDATE email_experiments
            SET status = 'completed', winner = %s, confidence = %s, ended_at = %s
            WHERE id = %s AND status = 'running'
            """,
            (winner, confidence, ended_at, experiment_id),
        )
        logger.info("Experiment ended", experiment_id=experiment_id, winner=winner, confidence=confidence)


class EmailEventRepository:
    @classmethod
    async def record(
        cls,
        external_id: str,
        event_type: str,
        recipient_email: str | None,
        payload: dict[str, Any],
    ) -> None:
        await execute_query(
            """
            INSERT INTO email_events (external_id, event_type, recipient_email, payload)
            VALUES (%s, %s, %s, %s)
            """,
            (external_id, event_type, recipient_email, Jsonb(payload)),
        )
