import base64
import logging
import os
from typing import Any, Dict, Optional

from openai import OpenAI

from mediajobs.models import ImageResult, JobKind
from mediajobs.processors.base import JobProcessor, StartResult, describe_error
from mediajobs.services import MediaStorage, fetch_media

logger = logging.getLogger(__name__)

GPT_IMAGE_MODEL = "gpt-image-1"

_SHARED_OPTIONS = ("size", "quality", "background", "output_format", "output_compression")


def build_openai_client() -> OpenAI:
    return OpenAI(
        api_key=os.environ.get("OPENAI_API_KEY"),
        base_url=os.environ.get("OPENAI_BASE_URL") or None,
    )


def extract_image(response) -> bytes:
    if not response.data:
        raise RuntimeError("No image data returned from OpenAI")
    b64_json = response.data[0].b64_json
    if not b64_json:
        raise RuntimeError("No b64_json in OpenAI response")
    return base64.b64decode(b64_json)


class _OpenAIImageProcessor(JobProcessor):
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

    def _options(self, input: Dict[str, Any], *names: str) -> Dict[str, Any]:
        # Unset options are left out so the API applies its own defaults
        return {name: input[name] for name in names if input.get(name) is not None}

    def _generate(self, input: Dict[str, Any]) -> bytes:
        raise NotImplementedError

    def start(self, input: Dict[str, Any]) -> StartResult:
        try:
            image = self._generate(input)
            content_type = f"image/{input.get('output_format') or 'png'}"
            uploaded = self.storage.upload_image(image, content_type)
            return StartResult.completed(ImageResult(image_url=uploaded["url"]).model_dump())
        except Exception as e:
            logger.warning("%s failed: %s", self.kind.value, e)
            return StartResult.failed(describe_error(e))


class GptImageGenerateProcessor(_OpenAIImageProcessor):
    kind = JobKind.GPT_IMAGE_GENERATE

    def _generate(self, input: Dict[str, Any]) -> bytes:
        options = self._options(input, *_SHARED_OPTIONS)
        response = self.client.images.generate(
            model=GPT_IMAGE_MODEL,
            prompt=input["prompt"],
            moderation=input.get("moderation") or "low",
            **options,
        )
        return extract_image(response)


class GptImageEditProcessor(_OpenAIImageProcessor):
    kind = JobKind.GPT_IMAGE_EDIT

    def _generate(self, input: Dict[str, Any]) -> bytes:
        images = []
        for index, url in enumerate(input["images"]):
            data, content_type = fetch_media(url)
            images.append((f"image-{index}.png", data, content_type))

        # moderation is only accepted by the generate endpoint
        options = self._options(input, *_SHARED_OPTIONS, "input_fidelity")
        response = self.client.images.edit(
            model=GPT_IMAGE_MODEL,
            image=images,
            prompt=input["prompt"],
            **options,
        )
        return extract_image(response)
