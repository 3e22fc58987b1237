import logging
import os
import uuid
from typing import Dict, Optional, Tuple

import boto3
import httpx

logger = logging.getLogger(__name__)


def _extension(content_type: str, default: str) -> str:
    parts = content_type.split(";")[0].strip().split("/")
    return parts[1] if len(parts) == 2 and parts[1] else default


class MediaStorage:
    """
    Durable storage for generated media. Objects land in an S3 bucket and are
    addressed by public URL; processors only ever hand those URLs back.
    """

    def __init__(
        self,
        bucket: Optional[str] = None,
        region_name: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        self.region_name = region_name or os.environ.get("AWS_REGION", "us-east-1")
        self.bucket = bucket or os.environ.get("MEDIA_BUCKET", "mediajobs-media-prod")
        self.base_url = base_url or os.environ.get("MEDIA_BASE_URL")
        self.s3 = boto3.client("s3", region_name=self.region_name)

    def url_for(self, key: str) -> str:
        if self.base_url:
            return f"{self.base_url.rstrip('/')}/{key}"
        return f"https://{self.bucket}.s3.{self.region_name}.amazonaws.com/{key}"

    def put(self, key: str, data: bytes, content_type: str) -> str:
        self.s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        url = self.url_for(key)
        logger.info("Uploaded %s (%d bytes) to %s", key, len(data), url)
        return url

    def upload_image(self, image: bytes, content_type: str = "image/png") -> Dict[str, str]:
        media_id = str(uuid.uuid4())
        key = f"generated/{media_id}.{_extension(content_type, 'png')}"
        return {"id": media_id, "url": self.put(key, image, content_type)}

    def upload_video(
        self,
        video: bytes,
        thumbnail: bytes,
        video_content_type: str = "video/mp4",
        thumbnail_content_type: str = "image/jpeg",
    ) -> Dict[str, str]:
        media_id = str(uuid.uuid4())
        video_key = f"generated/videos/{media_id}.{_extension(video_content_type, 'mp4')}"
        thumb_key = f"generated/videos/{media_id}-thumb.{_extension(thumbnail_content_type, 'jpg')}"
        return {
            "id": media_id,
            "video_url": self.put(video_key, video, video_content_type),
            "thumbnail_url": self.put(thumb_key, thumbnail, thumbnail_content_type),
        }


def fetch_media(url: str, timeout: float = 30.0) -> Tuple[bytes, str]:
    """
    Downloads a reference image/video given by URL. Returns (bytes, content type).
    """
    response = httpx.get(str(url), timeout=timeout, follow_redirects=True)
    if response.status_code >= 400:
        raise RuntimeError(f"Failed to fetch media from {url}: HTTP {response.status_code}")
    content_type = response.headers.get("content-type") or "image/png"
    return response.content, content_type.split(";")[0].strip()
