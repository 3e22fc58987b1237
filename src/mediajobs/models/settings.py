from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field, HttpUrl, TypeAdapter


class _GptImageBase(BaseModel):
    model: Literal["gpt-image-1"] = "gpt-image-1"
    prompt: str = Field(..., min_length=1)
    size: Optional[Literal["1024x1024", "1536x1024", "1024x1536", "auto"]] = None
    quality: Optional[Literal["low", "medium", "high", "auto"]] = "auto"
    background: Optional[Literal["transparent", "opaque", "auto"]] = "auto"
    output_format: Optional[Literal["png", "jpeg", "webp"]] = "png"
    output_compression: Optional[int] = Field(None, ge=0, le=100)
    moderation: Optional[Literal["low", "auto"]] = "low"


class GptImageGenerateSettings(_GptImageBase):
    type: Literal["gpt-image-1-generate"] = "gpt-image-1-generate"


class GptImageEditSettings(_GptImageBase):
    type: Literal["gpt-image-1-edit"] = "gpt-image-1-edit"
    input_fidelity: Optional[Literal["high", "low"]] = "high"
    images: List[HttpUrl] = Field(..., min_length=1)


class _NanoBananaBase(BaseModel):
    model: Literal["nano-banana"] = "nano-banana"
    prompt: str = Field(..., min_length=1)
    aspect_ratio: Optional[Literal["1:1", "2:3", "3:2", "3:4", "4:3", "9:16", "16:9", "21:9"]] = "1:1"
    image_size: Optional[Literal["1K", "2K", "4K"]] = "1K"


class NanoBananaGenerateSettings(_NanoBananaBase):
    type: Literal["nano-banana-generate"] = "nano-banana-generate"


class NanoBananaEditSettings(_NanoBananaBase):
    type: Literal["nano-banana-edit"] = "nano-banana-edit"
    images: List[HttpUrl] = Field(..., min_length=1)


class SoraVideoSettings(BaseModel):
    type: Literal["sora-2-video"] = "sora-2-video"
    model: Literal["sora-2"] = "sora-2"
    prompt: str = Field(..., min_length=1)
    seconds: Optional[Literal["4", "6", "10"]] = "4"
    size: Optional[Literal["720x1280", "1280x720", "1024x1024"]] = None
    input_reference: Optional[HttpUrl] = None


JobSettings = Annotated[
    Union[
        GptImageGenerateSettings,
        GptImageEditSettings,
        NanoBananaGenerateSettings,
        NanoBananaEditSettings,
        SoraVideoSettings,
    ],
    Field(discriminator="type"),
]

_job_settings_adapter = TypeAdapter(JobSettings)


def parse_job_settings(data: dict) -> BaseModel:
    """
    Validates a submission body against the settings model of its `type`.
    Raises pydantic.ValidationError on bad input.
    """
    return _job_settings_adapter.validate_python(data)


class ImageResult(BaseModel):
    image_url: str


class VideoResult(BaseModel):
    video_url: str
    thumbnail_url: str
