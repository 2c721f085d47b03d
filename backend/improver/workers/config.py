"""ARQ worker configuration."""
from urllib.parse import urlparse

from arq.connections import RedisSettings
from arq.cron import cron

from improver.config import settings
from improver.services.remote_client import RemoteRecordingClient
from improver.utils.logger import logger
from improver.workers.tasks import import_remote_recording, sync_remote_recordings


def parse_redis_url(url: str) -> RedisSettings:
    """Parse Redis URL into RedisSettings."""
    parsed = urlparse(url)
    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        password=parsed.password,
        database=int(parsed.path[1:]) if parsed.path and len(parsed.path) > 1 else 0,
    )


def sync_minutes(interval: int) -> set:
    """Minutes of the hour on which the remote sync cron fires."""
    interval = max(1, min(interval, 60))
    return set(range(0, 60, interval))


redis_settings = parse_redis_url(settings.redis_url)


async def startup(ctx):
    """Worker startup hook: install the remote client factory jobs build clients from."""
    ctx["remote_client_factory"] = RemoteRecordingClient.from_settings
    if not settings.remote_project_id or not settings.remote_api_key:
        logger.warning("Remote recording storage is not configured; import and sync jobs will fail")
    logger.info(f"Remote import worker started against {settings.remote_api_url}")


async def shutdown(ctx):
    """Worker shutdown hook."""
    logger.info("Remote import worker shutting down")


class WorkerSettings:
    """ARQ worker settings."""

    functions = [
        import_remote_recording,
        sync_remote_recordings,
    ]

    cron_jobs = [
        cron(sync_remote_recordings, minute=sync_minutes(settings.remote_sync_interval_minutes)),
    ]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = redis_settings

    max_jobs = 5  # Each job already fans out to several chunk requests
    job_timeout = 300  # Large recordings need many chunk requests
    keep_result = 3600
    retry_jobs = True
    max_tries = 3
