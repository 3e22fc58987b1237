import logging
import os
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from mediajobs.models import ImageResult, JobKind
from mediajobs.processors.base import JobProcessor, StartResult, describe_error
from mediajobs.services import MediaStorage, fetch_media

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image"


def build_gemini_client() -> genai.Client:
    base_url = os.environ.get("GEMINI_BASE_URL")
    http_options = types.HttpOptions(base_url=base_url) if base_url else None
    return genai.Client(api_key=os.environ.get("GEMINI_API_KEY"), http_options=http_options)


def extract_image(response) -> bytes:
    """Returns the first inline image part of a generate_content response."""
    candidates = response.candidates or []
    if not candidates or not candidates[0].content or not candidates[0].content.parts:
        raise RuntimeError("No response from Google AI")

    for part in candidates[0].content.parts:
        if part.inline_data is not None and part.inline_data.data:
            return part.inline_data.data

    raise RuntimeError("No image data returned from Google AI")


class _NanoBananaProcessor(JobProcessor):
    def __init__(
        self,
        client: Optional[genai.Client] = None,
        storage: Optional[MediaStorage] = None,
        model: Optional[str] = None,
    ):
        self._client = client
        self._storage = storage
        self.model = model or os.environ.get("GEMINI_IMAGE_MODEL", DEFAULT_IMAGE_MODEL)

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = build_gemini_client()
        return self._client

    @property
    def storage(self) -> MediaStorage:
        if self._storage is None:
            self._storage = MediaStorage()
        return self._storage

    def _contents(self, input: Dict[str, Any]) -> List[Any]:
        return [input["prompt"]]

    def _config(self, input: Dict[str, Any]) -> types.GenerateContentConfig:
        image_options = {"aspect_ratio": input.get("aspect_ratio") or "1:1"}
        image_size = input.get("image_size")
        if image_size and image_size != "1K":
            image_options["image_size"] = image_size
        return types.GenerateContentConfig(
            response_modalities=["IMAGE"],
            image_config=types.ImageConfig(**image_options),
        )

    def start(self, input: Dict[str, Any]) -> StartResult:
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=self._contents(input),
                config=self._config(input),
            )
            uploaded = self.storage.upload_image(extract_image(response), "image/png")
            return StartResult.completed(ImageResult(image_url=uploaded["url"]).model_dump())
        except Exception as e:
            logger.warning("%s failed: %s", self.kind.value, e)
            return StartResult.failed(describe_error(e))


class NanoBananaGenerateProcessor(_NanoBananaProcessor):
    kind = JobKind.NANO_BANANA_GENERATE


class NanoBananaEditProcessor(_NanoBananaProcessor):
    kind = JobKind.NANO_BANANA_EDIT

    def _contents(self, input: Dict[str, Any]) -> List[Any]:
        contents: List[Any] = [input["prompt"]]
        for url in input["images"]:
            data, content_type = fetch_media(url)
            contents.append(types.Part.from_bytes(data=data, mime_type=content_type))
        return contents
