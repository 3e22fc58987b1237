"""Shared setup for the unit tests: table creation, fake processors, fake clocks."""
from datetime import datetime, timedelta, timezone

import boto3

from mediajobs.models import JobKind
from mediajobs.processors import JobProcessor, Processing, StartResult
from mediajobs.store import USER_INDEX, JobStore

REGION = "us-east-1"
JOBS_TABLE = "mediajobs-jobs-test"


def create_jobs_table(region=REGION, table_name=JOBS_TABLE):
    dynamodb = boto3.resource("dynamodb", region_name=region)
    return dynamodb.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "job_id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "job_id", "AttributeType": "S"},
            {"AttributeName": "user_id", "AttributeType": "S"},
            {"AttributeName": "created_at", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": USER_INDEX,
                "KeySchema": [
                    {"AttributeName": "user_id", "KeyType": "HASH"},
                    {"AttributeName": "created_at", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            }
        ],
        BillingMode="PAY_PER_REQUEST",
    )


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)

    @property
    def total(self):
        return sum(self.calls)


class RecordingJobStore(JobStore):
    """JobStore that remembers every update it applied, in order."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.updates = []

    def update(self, job_id, status=None, progress=None, result=None, error=None):
        job = super().update(job_id, status=status, progress=progress, result=result, error=error)
        self.updates.append({
            "job_id": job_id,
            "status": status.value if status is not None else None,
            "progress": progress,
            "result": result,
            "error": error,
        })
        return job


class SyncProcessor(JobProcessor):
    def __init__(self, kind, data=None, error=None, raises=None, on_start=None):
        self.kind = kind
        self.data = data if data is not None else {"image_url": "https://media.test/generated/1.png"}
        self.error = error
        self.raises = raises
        self.on_start = on_start
        self.inputs = []

    def start(self, input):
        self.inputs.append(input)
        if self.on_start:
            self.on_start()
        if self.raises:
            raise self.raises
        if self.error:
            return StartResult.failed(self.error)
        return StartResult.completed(self.data)


class ScriptedProcessor(JobProcessor):
    """
    Async processor whose poll() walks through `script`, repeating the last
    entry once it runs out. Entries may be exceptions to raise.
    """

    def __init__(self, kind, script, handle="abc", on_poll=None):
        self.kind = kind
        self.script = list(script) or [Processing()]
        self.handle = handle
        self.on_poll = on_poll
        self.polled = []

    def start(self, input):
        return StartResult.remote(self.handle)

    def poll(self, handle):
        self.polled.append(handle)
        if self.on_poll:
            self.on_poll(len(self.polled))
        index = min(len(self.polled), len(self.script)) - 1
        outcome = self.script[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class StartOnlyAsyncProcessor(JobProcessor):
    def __init__(self, kind):
        self.kind = kind

    def start(self, input):
        return StartResult.remote("remote-1")


def fake_registry(*processors):
    """Every kind mapped to a succeeding SyncProcessor, except the kinds of `processors`."""
    registry = {kind: SyncProcessor(kind) for kind in JobKind}
    for processor in processors:
        registry[processor.kind] = processor
    return registry
