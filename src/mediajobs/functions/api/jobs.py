import json
import logging
import os
from typing import Optional

from pydantic import ValidationError

from mediajobs.errors import JobNotFoundError, UnauthorizedError
from mediajobs.models import JobKind, JobStatus, parse_job_settings
from mediajobs.services import JobQueue
from mediajobs.worker import JobRunner

logger = logging.getLogger(__name__)

_runner: Optional[JobRunner] = None


def get_runner() -> JobRunner:
    # Lambda freezes once the response is sent, so with a queue configured the
    # worker process (mediajobs.worker.main) runs the jobs instead
    global _runner
    if _runner is None:
        queue = JobQueue() if os.environ.get("JOBS_QUEUE_URL") else None
        _runner = JobRunner(queue=queue)
    return _runner


def _response(status_code: int, body) -> dict:
    return {"statusCode": status_code, "body": json.dumps(body)}


class JobAPI:
    def __init__(self, runner: Optional[JobRunner] = None):
        self.runner = runner or get_runner()

    def submit_job(self, user_id: str, data: dict):
        settings = parse_job_settings(data)
        job_id = self.runner.submit(
            JobKind(settings.type),
            settings.model_dump(mode="json", exclude_none=True),
            user_id,
        )
        return {"job_id": job_id}

    def get_job(self, user_id: str, job_id: str):
        return self.runner.get_status(job_id, user_id)

    def list_jobs(self, user_id: str, params: dict):
        limit = params.get("limit")
        status = params.get("status")
        kind = params.get("kind")
        return self.runner.list_jobs(
            user_id,
            limit=int(limit) if limit else None,
            status=JobStatus(status) if status else None,
            kind=JobKind(kind) if kind else None,
        )


def handler(event, context, runner: Optional[JobRunner] = None):
    http_method = event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method")
    # The authorizer puts the caller's identity in its context
    user_id = ((event.get("requestContext") or {}).get("authorizer") or {}).get("user_id")
    path_params = event.get("pathParameters") or {}
    job_id = path_params.get("id")

    if not user_id:
        headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}
        user_id = headers.get("x-user-id")
    if not user_id:
        return _response(401, {"error": "Unauthorized"})

    api = JobAPI(runner)

    try:
        if http_method == "POST":
            body = json.loads(event.get("body") or "{}")
            result = api.submit_job(user_id, body)
            return _response(201, result)

        elif http_method == "GET":
            if job_id:
                return _response(200, api.get_job(user_id, job_id))
            params = event.get("queryStringParameters") or {}
            return _response(200, api.list_jobs(user_id, params))

        return _response(405, {"error": "Method not allowed"})

    except ValidationError as e:
        return _response(400, {"error": "Invalid job settings", "details": e.errors(include_url=False, include_context=False)})
    except (json.JSONDecodeError, ValueError) as e:
        return _response(400, {"error": str(e)})
    except JobNotFoundError:
        return _response(404, {"error": "Not found"})
    except UnauthorizedError:
        return _response(403, {"error": "Unauthorized"})
    except Exception as e:
        logger.exception("Job API error")
        return _response(500, {"error": str(e)})
