"""CDN asset discovery for property pages.

Assets are uploaded out of band under per-project prefixes
(``properties/<project>/``, ``floorPlan/<project>/``, ``brochure/<project>``,
``propertyLogo/<project>``); this module only lists them and turns keys into
CDN URLs.
"""

import asyncio
import logging
import re
from typing import Dict, List

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from errors import UpstreamError
from settings import Settings

logger = logging.getLogger(__name__)

MAX_KEYS = 10


def project_key(name: str) -> str:
    return re.sub(r"\s+", "", name).lower()


class NullMediaLibrary:
    """Used when no object storage is configured; every listing is empty."""

    async def list_urls(self, prefix: str, suffix: str) -> List[str]:
        logger.debug("Object storage not configured, skipping %s*%s", prefix, suffix)
        return []

    async def collect(self, name: str, floor_plans: List[dict]) -> Dict[str, list]:
        return await collect_assets(self, name, floor_plans)


class SpacesMediaLibrary:
    def __init__(self, settings: Settings):
        self.bucket = settings.spaces_bucket
        self.cdn_endpoint = settings.cdn_endpoint.rstrip("/")
        self.client = boto3.client(
            "s3",
            region_name=settings.spaces_region,
            endpoint_url=settings.spaces_endpoint,
            aws_access_key_id=settings.spaces_key,
            aws_secret_access_key=settings.spaces_secret,
        )

    def _list_keys(self, prefix: str) -> List[str]:
        response = self.client.list_objects_v2(Bucket=self.bucket, Prefix=prefix, MaxKeys=MAX_KEYS)
        return [item["Key"] for item in response.get("Contents", [])]

    async def list_urls(self, prefix: str, suffix: str) -> List[str]:
        try:
            keys = await asyncio.to_thread(self._list_keys, prefix)
        except (BotoCoreError, ClientError) as e:
            logger.error("Listing %s failed: %s", prefix, e)
            raise UpstreamError("Could not list property media") from e
        return [f"{self.cdn_endpoint}/{key}" for key in keys if key.endswith(suffix)]

    async def collect(self, name: str, floor_plans: List[dict]) -> Dict[str, list]:
        return await collect_assets(self, name, floor_plans)


async def collect_assets(library, name: str, floor_plans: List[dict]) -> Dict[str, list]:
    """Gallery, floor plan images, brochures and logos for a project name."""
    key = project_key(name)
    gallery = await library.list_urls(f"properties/{key}/", ".avif")
    plan_urls = await library.list_urls(f"floorPlan/{key}/", ".avif")
    brochures = await library.list_urls(f"brochure/{key}", ".pdf")
    logos = await library.list_urls(f"propertyLogo/{key}", ".avif")

    plans = []
    for plan in floor_plans:
        plan = dict(plan)
        config_file = project_key(plan.get("configuration") or "") + ".avif"
        matching = [url for url in plan_urls if url.endswith("/" + config_file)]
        plan["floor_img"] = matching[0] if matching else plan.get("floor_img") or ""
        plans.append(plan)

    return {
        "image_gallery": [{"url": url, "title": name} for url in gallery],
        "floor_plan": plans,
        "brochure": brochures,
        "property_logo": logos,
    }


def build_media_library(settings: Settings):
    if settings.storage_enabled:
        return SpacesMediaLibrary(settings)
    logger.info("Object storage not configured; property media will be left empty")
    return NullMediaLibrary()
