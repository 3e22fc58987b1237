import logging
from typing import Any, Dict, Optional

from openai import OpenAI

from mediajobs.models import JobKind, VideoResult
from mediajobs.processors.base import (
    Failed,
    JobProcessor,
    PollResult,
    Processing,
    StartResult,
    Succeeded,
    describe_error,
)
from mediajobs.processors.openai_image import build_openai_client
from mediajobs.services import MediaStorage, fetch_media

logger = logging.getLogger(__name__)

# Sora reports no useful progress while queued; in_progress falls back to a midpoint
QUEUED_PROGRESS = 10
IN_PROGRESS_PLACEHOLDER = 50


class SoraVideoProcessor(JobProcessor):
    """
    Sora 2 video generation. start() creates the remote video job and hands
    back its id; poll() checks it and, once completed, downloads the video and
    its thumbnail and moves both into media storage.
    """

    kind = JobKind.SORA_VIDEO

    def __init__(self, client: Optional[OpenAI] = None, storage: Optional[MediaStorage] = None):
        self._client = client
        self._storage = storage

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = build_openai_client()
        return self._client

    @property
    def storage(self) -> MediaStorage:
        if self._storage is None:
            self._storage = MediaStorage()
        return self._storage

    def start(self, input: Dict[str, Any]) -> StartResult:
        params: Dict[str, Any] = {"model": input.get("model") or "sora-2", "prompt": input["prompt"]}
        if input.get("seconds"):
            params["seconds"] = input["seconds"]
        if input.get("size"):
            params["size"] = input["size"]

        try:
            if input.get("input_reference"):
                data, content_type = fetch_media(input["input_reference"])
                params["input_reference"] = ("reference.png", data, content_type)
            video = self.client.videos.create(**params)
        except Exception as e:
            logger.warning("Sora video creation failed: %s", e)
            return StartResult.failed(describe_error(e))

        logger.info("Sora video job created: %s", video.id)
        return StartResult.remote(video.id)

    def poll(self, handle: str) -> PollResult:
        try:
            video = self.client.videos.retrieve(handle)

            if video.status == "failed":
                message = video.error.message if video.error else None
                return Failed(error=message or "Video generation failed")

            if video.status == "queued":
                return Processing(progress=QUEUED_PROGRESS)

            if video.status != "completed":
                progress = getattr(video, "progress", None)
                return Processing(progress=progress if progress else IN_PROGRESS_PLACEHOLDER)

            video_bytes = self.client.videos.download_content(handle).read()
            thumbnail_bytes = self.client.videos.download_content(handle, variant="thumbnail").read()
            uploaded = self.storage.upload_video(video_bytes, thumbnail_bytes)
            result = VideoResult(video_url=uploaded["video_url"], thumbnail_url=uploaded["thumbnail_url"])
            return Succeeded(data=result.model_dump())
        except Exception as e:
            logger.warning("Sora poll for %s failed: %s", handle, e)
            return Failed(error=describe_error(e))
