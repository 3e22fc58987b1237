import json
import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

import boto3
import ulid
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from mediajobs.errors import JobAlreadyTerminalError, JobNotFoundError
from mediajobs.models import Job, JobKind, JobStatus, utcnow

logger = logging.getLogger(__name__)

USER_INDEX = "user_id-created_at-index"


def _timestamp(value: datetime) -> str:
    # Fixed-width ISO strings sort lexically in time order
    return value.isoformat(timespec="microseconds")


def _to_item(job: Job) -> Dict[str, Any]:
    item = {
        "job_id": job.job_id,
        "user_id": job.user_id,
        "kind": job.kind.value,
        "input": json.dumps(job.input),
        "status": job.status.value,
        "progress": job.progress,
        "created_at": _timestamp(job.created_at),
        "updated_at": _timestamp(job.updated_at),
    }
    if job.result is not None:
        item["result"] = json.dumps(job.result)
    if job.error is not None:
        item["error"] = job.error
    return item


def _from_item(item: Dict[str, Any]) -> Job:
    return Job(
        job_id=item["job_id"],
        user_id=item["user_id"],
        kind=JobKind(item["kind"]),
        input=json.loads(item.get("input") or "{}"),
        status=JobStatus(item["status"]),
        # DynamoDB hands numbers back as Decimal
        progress=int(item.get("progress", 0)),
        result=json.loads(item["result"]) if item.get("result") else None,
        error=item.get("error"),
        created_at=datetime.fromisoformat(item["created_at"]),
        updated_at=datetime.fromisoformat(item["updated_at"]),
    )


class JobStore:
    """
    Job records in a DynamoDB table keyed by job_id, with a user_id/created_at
    index for listing. Every mutation is a single conditional update_item, so a
    job that reached a terminal status can't be written again.
    """

    def __init__(
        self,
        table_name: Optional[str] = None,
        region_name: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        region_name = region_name or os.environ.get("AWS_REGION", "us-east-1")
        self.dynamodb = boto3.resource("dynamodb", region_name=region_name)
        self.table_name = table_name or os.environ.get("JOBS_TABLE", "mediajobs-jobs-prod")
        self.table = self.dynamodb.Table(self.table_name)
        self.clock = clock

    def create(self, user_id: str, kind: JobKind, input: Dict[str, Any]) -> Job:
        now = self.clock()
        job = Job(
            job_id=str(ulid.new()),
            user_id=user_id,
            kind=JobKind(kind),
            input=input,
            status=JobStatus.PENDING,
            progress=0,
            created_at=now,
            updated_at=now,
        )
        self.table.put_item(Item=_to_item(job))
        return job

    def get(self, job_id: str) -> Optional[Job]:
        response = self.table.get_item(Key={"job_id": job_id})
        item = response.get("Item")
        if not item:
            return None
        return _from_item(item)

    def update(
        self,
        job_id: str,
        status: Optional[JobStatus] = None,
        progress: Optional[int] = None,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> Job:
        """
        Applies the given fields and bumps updated_at in one write.

        Raises JobNotFoundError if the job doesn't exist and
        JobAlreadyTerminalError if it is already complete or failed.
        """
        update_expr = "SET #u = :u"
        expr_attr_names = {"#u": "updated_at", "#s": "status"}
        expr_attr_values = {
            ":u": _timestamp(self.clock()),
            ":pending": JobStatus.PENDING.value,
            ":loading": JobStatus.LOADING.value,
        }

        if status is not None:
            update_expr += ", #s = :s"
            expr_attr_values[":s"] = JobStatus(status).value
        if progress is not None:
            update_expr += ", #p = :p"
            expr_attr_names["#p"] = "progress"
            expr_attr_values[":p"] = int(progress)
        if result is not None:
            update_expr += ", #r = :r"
            expr_attr_names["#r"] = "result"
            expr_attr_values[":r"] = json.dumps(result)
        if error is not None:
            update_expr += ", #e = :e"
            expr_attr_names["#e"] = "error"
            expr_attr_values[":e"] = error

        try:
            response = self.table.update_item(
                Key={"job_id": job_id},
                UpdateExpression=update_expr,
                ConditionExpression="attribute_exists(job_id) AND (#s = :pending OR #s = :loading)",
                ExpressionAttributeNames=expr_attr_names,
                ExpressionAttributeValues=expr_attr_values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if e.response["Error"]["Code"] != "ConditionalCheckFailedException":
                raise
            current = self.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id) from e
            raise JobAlreadyTerminalError(job_id, current.status.value) from e

        return _from_item(response["Attributes"])

    def find_stale(self, statuses: Iterable[JobStatus], older_than: datetime) -> List[Job]:
        filter_expr = Attr("status").is_in([JobStatus(s).value for s in statuses]) & Attr(
            "updated_at"
        ).lt(_timestamp(older_than))

        jobs = []
        scan_kwargs = {"FilterExpression": filter_expr}
        while True:
            response = self.table.scan(**scan_kwargs)
            jobs.extend(_from_item(item) for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            scan_kwargs["ExclusiveStartKey"] = last_key
        return jobs

    def find_many(
        self,
        user_id: str,
        status: Optional[JobStatus] = None,
        kind: Optional[JobKind] = None,
        limit: int = 50,
    ) -> List[Job]:
        """
        Returns the user's jobs newest first. Filters are applied after the
        index read, so pages are followed until `limit` matches are found.
        """
        query_kwargs: Dict[str, Any] = {
            "IndexName": USER_INDEX,
            "KeyConditionExpression": Key("user_id").eq(user_id),
            "ScanIndexForward": False,
        }
        filter_expr = None
        if status is not None:
            filter_expr = Attr("status").eq(JobStatus(status).value)
        if kind is not None:
            kind_expr = Attr("kind").eq(JobKind(kind).value)
            filter_expr = kind_expr if filter_expr is None else filter_expr & kind_expr
        if filter_expr is not None:
            query_kwargs["FilterExpression"] = filter_expr
        else:
            query_kwargs["Limit"] = limit

        jobs: List[Job] = []
        while len(jobs) < limit:
            response = self.table.query(**query_kwargs)
            jobs.extend(_from_item(item) for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            query_kwargs["ExclusiveStartKey"] = last_key
        return jobs[:limit]
