from types import MappingProxyType
from typing import Mapping, Optional

from mediajobs.errors import RegistryError
from mediajobs.models import JobKind
from mediajobs.processors.base import JobProcessor
from mediajobs.processors.gemini_image import NanoBananaEditProcessor, NanoBananaGenerateProcessor
from mediajobs.processors.openai_image import GptImageEditProcessor, GptImageGenerateProcessor
from mediajobs.processors.sora_video import SoraVideoProcessor
from mediajobs.services import MediaStorage

ProcessorRegistry = Mapping[JobKind, JobProcessor]


def validate_registry(processors: Mapping[JobKind, JobProcessor]) -> ProcessorRegistry:
    """
    Checks that every job kind maps to a processor built for that kind and
    returns a read-only copy.
    """
    missing = [kind.value for kind in JobKind if kind not in processors]
    if missing:
        raise RegistryError(f"No processor registered for: {', '.join(missing)}")

    for kind, processor in processors.items():
        if getattr(processor, "kind", None) != kind:
            raise RegistryError(
                f"Processor {processor.__class__.__name__} registered for {JobKind(kind).value} "
                f"handles {getattr(processor, 'kind', None)}"
            )
    return MappingProxyType(dict(processors))


def build_registry(
    openai_client=None,
    gemini_client=None,
    storage: Optional[MediaStorage] = None,
) -> ProcessorRegistry:
    return validate_registry({
        JobKind.GPT_IMAGE_GENERATE: GptImageGenerateProcessor(openai_client, storage),
        JobKind.GPT_IMAGE_EDIT: GptImageEditProcessor(openai_client, storage),
        JobKind.NANO_BANANA_GENERATE: NanoBananaGenerateProcessor(gemini_client, storage),
        JobKind.NANO_BANANA_EDIT: NanoBananaEditProcessor(gemini_client, storage),
        JobKind.SORA_VIDEO: SoraVideoProcessor(openai_client, storage),
    })
