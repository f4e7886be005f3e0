from src.app_celery.celery_app import celery_app
import logging
from src.core.config import settings
from src.core.database_sync import mongodb_sync

logger = logging.getLogger(__name__)


@celery_app.task(name="record_view")
def record_view(video_id: str):
    """
    Count one playback of a video.

    ``viewsCount`` is only ever changed here; uploads create it at 0.
    """
    mongodb_sync.connect()

    result = mongodb_sync.db[settings.VIDEOS_COLLECTION].update_one(
        {"_id": video_id},
        {"$inc": {"viewsCount": 1}},
    )

    if result.matched_count == 0:
        logger.warning(f"No video found for id={video_id}")
        return {"video_id": video_id, "status": "missing"}

    logger.info(f"View recorded | video_id={video_id}")
    return {"video_id": video_id, "status": "counted"}
