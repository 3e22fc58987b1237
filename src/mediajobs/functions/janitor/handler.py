import hmac
import json
import logging
import os
from typing import Optional

from mediajobs.worker import Janitor

logger = logging.getLogger(__name__)


def _is_scheduled_event(event: dict) -> bool:
    return event.get("source") == "aws.events" and event.get("detail-type") == "Scheduled Event"


def _bearer_token(event: dict) -> Optional[str]:
    headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}
    auth_header = headers.get("authorization")
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return auth_header


def is_authorized(event: dict) -> bool:
    """
    EventBridge schedules are trusted; HTTP callers need the shared janitor
    secret as a bearer token.
    """
    if _is_scheduled_event(event):
        return True
    secret = os.environ.get("JANITOR_SECRET")
    token = _bearer_token(event)
    if not secret or not token:
        return False
    return hmac.compare_digest(token, secret)


def handler(event, context, janitor: Optional[Janitor] = None):
    if not is_authorized(event):
        return {"statusCode": 401, "body": json.dumps({"error": "Unauthorized"})}

    params = event.get("queryStringParameters") or {}
    threshold = params.get("threshold_minutes")
    if threshold is not None:
        try:
            threshold = int(threshold)
        except ValueError:
            threshold = 0
        if threshold < 1:
            return {"statusCode": 400, "body": json.dumps({"error": "threshold_minutes must be a positive integer"})}

    try:
        janitor = janitor or Janitor()
        report = janitor.sweep(threshold)
        return {
            "statusCode": 200,
            "body": json.dumps({
                "success": True,
                "timed_out_count": report["count"],
                "jobs": report["jobs"],
            }),
        }
    except Exception as e:
        logger.exception("[Janitor] Error")
        return {
            "statusCode": 500,
            "body": json.dumps({"error": "Internal server error", "message": str(e)}),
        }
