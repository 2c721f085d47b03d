"""Remote recording import queue utilities."""
from arq import create_pool
from improver.workers.config import redis_settings
from improver.utils.logger import logger


async def queue_remote_import(recording_id: str) -> bool:
    """
    Queue an import job for a remote recording.

    Args:
        recording_id: The remote recording ID to import

    Returns:
        True if job was queued successfully, False otherwise
    """
    try:
        redis = await create_pool(redis_settings)
        await redis.enqueue_job("import_remote_recording", recording_id)
        await redis.close()
        return True
    except Exception as e:
        logger.error(f"Failed to queue import for recording {recording_id}: {e}", exc_info=True)
        return False
