from .media import MediaStorage, fetch_media
from .queue import JobQueue

__all__ = ["MediaStorage", "fetch_media", "JobQueue"]
