from .job import Job, JobStatus, JobKind, ACTIVE_STATUSES, utcnow
from .settings import (
    GptImageGenerateSettings,
    GptImageEditSettings,
    NanoBananaGenerateSettings,
    NanoBananaEditSettings,
    SoraVideoSettings,
    ImageResult,
    VideoResult,
    parse_job_settings,
)

__all__ = [
    "Job", "JobStatus", "JobKind", "ACTIVE_STATUSES", "utcnow",
    "GptImageGenerateSettings", "GptImageEditSettings",
    "NanoBananaGenerateSettings", "NanoBananaEditSettings", "SoraVideoSettings",
    "ImageResult", "VideoResult", "parse_job_settings",
]
