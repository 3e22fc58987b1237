from .base import (
    SYNC_HANDLE,
    Failed,
    JobProcessor,
    PollResult,
    Processing,
    StartResult,
    Succeeded,
)
from .registry import ProcessorRegistry, build_registry, validate_registry

__all__ = [
    "SYNC_HANDLE", "Failed", "JobProcessor", "PollResult", "Processing", "StartResult", "Succeeded",
    "ProcessorRegistry", "build_registry", "validate_registry",
]
