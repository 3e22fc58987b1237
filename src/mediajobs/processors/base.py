from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union
from pydantic import BaseModel, Field

from mediajobs.models import JobKind

# Handle returned by start() when the work already finished in that call
SYNC_HANDLE = "sync"


class Processing(BaseModel):
    progress: Optional[int] = Field(None, ge=0, le=100)


class Succeeded(BaseModel):
    data: Dict[str, Any]


class Failed(BaseModel):
    error: str


PollResult = Union[Processing, Succeeded, Failed]


class StartResult(BaseModel):
    handle: str
    result: Optional[Union[Succeeded, Failed]] = None

    @classmethod
    def completed(cls, data: Dict[str, Any]) -> "StartResult":
        return cls(handle=SYNC_HANDLE, result=Succeeded(data=data))

    @classmethod
    def failed(cls, error: str) -> "StartResult":
        return cls(handle=SYNC_HANDLE, result=Failed(error=error))

    @classmethod
    def remote(cls, handle: str) -> "StartResult":
        if handle == SYNC_HANDLE:
            raise ValueError(f"Remote handle may not be {SYNC_HANDLE!r}")
        return cls(handle=handle)

    @property
    def is_sync(self) -> bool:
        return self.handle == SYNC_HANDLE


def describe_error(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__ or "Unknown error"


class JobProcessor(ABC):
    """
    Runs one provider operation for one job kind.

    Synchronous processors do all the work in start() and return
    StartResult.completed()/failed(). Asynchronous ones return
    StartResult.remote(handle) and must implement poll(). Neither knows about
    job records or scheduling.
    """

    kind: JobKind

    @abstractmethod
    def start(self, input: Dict[str, Any]) -> StartResult:
        ...

    def poll(self, handle: str) -> PollResult:
        raise NotImplementedError(f"{self.__class__.__name__} does not support polling")
