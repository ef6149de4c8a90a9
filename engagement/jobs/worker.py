"""
Background campaign runner.

Reads the campaign name from CLI args or the WORKER_JOB environment variable
and runs it once with the same job objects and guard the HTTP trigger uses.

    python -m engagement.jobs.worker win_back
"""

import asyncio
import json
import os
import sys

from engagement.config import settings
from engagement.db.pool import db_pool
from engagement.errors import NotFound
from engagement.features.campaigns.jobs import registry
from engagement.features.campaigns.jobs.base import CampaignResult
from engagement.infrastructure.observability.logging import get_logger, setup_logging
from engagement.services.email_transport import close_transport
from engagement.services.redis_client import fast_redis

logger = get_logger(__name__)


def _resolve_job_name() -> str:
    """Pick the target campaign from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "").strip().lower()


async def run_worker(job_name: str | None = None) -> CampaignResult:
    """
    Run one campaign to completion.

    Raises:
        NotFound: Unknown campaign name
    """
    name = registry.resolve_campaign(job_name or _resolve_job_name())

    logger.info("Starting campaign worker", campaign=name.value)
    await db_pool.initialize()
    try:
        return await registry.run_campaign(name)
    finally:
        await close_transport()
        await fast_redis.close()
        await db_pool.close()


def main() -> int:
    """CLI entrypoint; exit status is non-zero when the run failed."""
    setup_logging(log_level=settings.LOG_LEVEL)
    try:
        result = asyncio.run(run_worker(_resolve_job_name()))
    except NotFound as e:
        available = ", ".join(sorted(n.value for n in registry.CampaignName))
        logger.error("Unknown campaign", error=str(e), available=available)
        return 2
    except Exception as e:
        logger.exception("Campaign worker failed", error=str(e))
        return 1

    print(json.dumps({"success": True, **result.to_dict()}))
    return 1 if result.errors and not result.sent else 0


if __name__ == "__main__":
    sys.exit(main())
