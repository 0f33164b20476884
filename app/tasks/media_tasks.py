"""Celery tasks for hosted media."""

import asyncio
import logging
from typing import Any

from app.celery_app import celery_app
from app.exceptions.media import MediaHostError
from app.services.media_host import MediaHostClient

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.media_tasks.purge_media_task", bind=True)
def purge_media_task(self, assets: list[dict[str, str]]) -> dict[str, Any]:
    """Delete media host files left behind by a deleted chat.

    Args:
        assets: ``{"public_id", "resource_type"}`` entries

    Returns:
        Dictionary with deletion counts
    """
    logger.info(f"🧹 Purging {len(assets)} hosted media file(s) (Task ID: {self.request.id})")
    result = asyncio.run(purge_media(assets))
    logger.info(f"✅ Media purge finished: {result}")
    return result


async def purge_media(
    assets: list[dict[str, str]], client: MediaHostClient | None = None
) -> dict[str, Any]:
    """Delete each asset; failures are counted, not raised."""
    client = client or MediaHostClient()
    stats = {"deleted": 0, "missing": 0, "failed": 0}
    if not client.is_configured:
        logger.warning("Media host is not configured, skipping purge")
        stats["failed"] = len(assets)
        return stats

    for asset in assets:
        try:
            deleted = await client.destroy(
                asset["public_id"], resource_type=asset.get("resource_type", "image")
            )
        except MediaHostError as e:
            logger.error(f"Could not delete {asset.get('public_id')}: {e.message}")
            stats["failed"] += 1
            continue
        stats["deleted" if deleted else "missing"] += 1
    return stats
