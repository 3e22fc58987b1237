class MediaJobsError(Exception):
    """Base class for errors raised by mediajobs."""


class JobNotFoundError(MediaJobsError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class UnauthorizedError(MediaJobsError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class JobAlreadyTerminalError(MediaJobsError):
    """Raised when a write targets a job that already completed or failed."""

    def __init__(self, job_id: str, status: str):
        super().__init__(f"Job {job_id} is already {status}")
        self.job_id = job_id
        self.status = status


class RegistryError(MediaJobsError):
    """A job kind has no processor registered. This is a deployment bug, not a job failure."""
