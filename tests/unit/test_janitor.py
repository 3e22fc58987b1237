import json
import os
import unittest
from unittest import mock
from botocore.exceptions import ClientError
from moto import mock_aws

from mediajobs.functions.janitor.handler import handler
from mediajobs.models import JobKind, JobStatus
from mediajobs.store import JobStore
from mediajobs.worker import Janitor
from jobs_fixtures import JOBS_TABLE, REGION, FakeClock, create_jobs_table


@mock_aws
class TestJanitor(unittest.TestCase):
    def setUp(self):
        os.environ["JOBS_TABLE"] = JOBS_TABLE
        create_jobs_table()
        self.clock = FakeClock()
        self.store = JobStore(region_name=REGION, clock=self.clock)
        self.janitor = Janitor(store=self.store, threshold_minutes=20, clock=self.clock)

    def loading_job(self, kind=JobKind.SORA_VIDEO):
        job = self.store.create("usr_123", kind, {"prompt": "x"})
        self.store.update(job.job_id, status=JobStatus.LOADING, progress=50)
        return job

    def test_sweeps_stale_loading_job(self):
        job = self.loading_job()
        self.clock.advance(minutes=25)

        report = self.janitor.sweep(20)

        self.assertEqual(report["count"], 1)
        self.assertEqual(report["jobs"][0]["id"], job.job_id)
        self.assertEqual(report["jobs"][0]["kind"], "sora-2-video")

        swept = self.store.get(job.job_id)
        self.assertEqual(swept.status, JobStatus.FAILED)
        self.assertEqual(swept.error, "Timed out after 20 minutes")
        self.assertEqual(swept.updated_at, self.clock.now)
        self.assertEqual(swept.progress, 50)

    def test_sweeps_stale_pending_job(self):
        job = self.store.create("usr_123", JobKind.GPT_IMAGE_GENERATE, {"prompt": "x"})
        self.clock.advance(minutes=21)

        report = self.janitor.sweep()

        self.assertEqual(report["count"], 1)
        self.assertEqual(self.store.get(job.job_id).status, JobStatus.FAILED)

    def test_leaves_fresh_and_terminal_jobs(self):
        done = self.store.create("usr_123", JobKind.GPT_IMAGE_GENERATE, {"prompt": "x"})
        self.store.update(done.job_id, status=JobStatus.COMPLETE, progress=100, result={"image_url": "u"})
        self.clock.advance(minutes=25)
        fresh = self.loading_job()

        report = self.janitor.sweep(20)

        self.assertEqual(report, {"count": 0, "jobs": []})
        self.assertEqual(self.store.get(done.job_id).status, JobStatus.COMPLETE)
        self.assertEqual(self.store.get(fresh.job_id).status, JobStatus.LOADING)

    def test_second_sweep_is_a_no_op(self):
        self.loading_job()
        self.loading_job(JobKind.NANO_BANANA_EDIT)
        self.clock.advance(minutes=30)

        self.assertEqual(self.janitor.sweep(20)["count"], 2)
        self.assertEqual(self.janitor.sweep(20)["count"], 0)

    def test_store_error_is_retried_next_run(self):
        job = self.loading_job()
        self.clock.advance(minutes=25)
        error = ClientError(
            {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
            "UpdateItem",
        )

        with mock.patch.object(self.store, "update", side_effect=error):
            report = self.janitor.sweep(20)
        self.assertEqual(report["count"], 0)
        self.assertEqual(self.store.get(job.job_id).status, JobStatus.LOADING)

        report = self.janitor.sweep(20)
        self.assertEqual(report["count"], 1)
        self.assertEqual(self.store.get(job.job_id).status, JobStatus.FAILED)


@mock_aws
class TestJanitorHandler(unittest.TestCase):
    def setUp(self):
        os.environ["JOBS_TABLE"] = JOBS_TABLE
        os.environ["JANITOR_SECRET"] = "s3cret"
        create_jobs_table()
        self.clock = FakeClock()
        self.store = JobStore(region_name=REGION, clock=self.clock)
        self.janitor = Janitor(store=self.store, clock=self.clock)

    def tearDown(self):
        os.environ.pop("JANITOR_SECRET", None)

    def test_rejects_missing_or_wrong_secret(self):
        response = handler({"headers": {}}, None, janitor=self.janitor)
        self.assertEqual(response["statusCode"], 401)

        event = {"headers": {"Authorization": "Bearer wrong"}}
        response = handler(event, None, janitor=self.janitor)
        self.assertEqual(response["statusCode"], 401)

    def test_sweeps_with_secret(self):
        job = self.store.create("usr_123", JobKind.SORA_VIDEO, {"prompt": "x"})
        self.clock.advance(minutes=25)

        event = {"headers": {"Authorization": "Bearer s3cret"}}
        response = handler(event, None, janitor=self.janitor)

        self.assertEqual(response["statusCode"], 200)
        body = json.loads(response["body"])
        self.assertTrue(body["success"])
        self.assertEqual(body["timed_out_count"], 1)
        self.assertEqual(body["jobs"][0]["id"], job.job_id)
        self.assertEqual(body["jobs"][0]["kind"], "sora-2-video")

    def test_scheduled_event_is_trusted(self):
        event = {"source": "aws.events", "detail-type": "Scheduled Event", "detail": {}}
        response = handler(event, None, janitor=self.janitor)
        self.assertEqual(response["statusCode"], 200)
        self.assertEqual(json.loads(response["body"])["timed_out_count"], 0)

    def test_threshold_from_query(self):
        self.store.create("usr_123", JobKind.SORA_VIDEO, {"prompt": "x"})
        self.clock.advance(minutes=10)

        event = {
            "headers": {"authorization": "Bearer s3cret"},
            "queryStringParameters": {"threshold_minutes": "5"},
        }
        response = handler(event, None, janitor=self.janitor)
        self.assertEqual(json.loads(response["body"])["timed_out_count"], 1)

    def test_rejects_non_positive_threshold(self):
        job = self.store.create("usr_123", JobKind.SORA_VIDEO, {"prompt": "x"})
        self.clock.advance(minutes=1)

        for value in ("0", "-5", "soon"):
            event = {
                "headers": {"Authorization": "Bearer s3cret"},
                "queryStringParameters": {"threshold_minutes": value},
            }
            response = handler(event, None, janitor=self.janitor)
            self.assertEqual(response["statusCode"], 400)

        self.assertEqual(self.store.get(job.job_id).status, JobStatus.PENDING)

    def test_store_failure_returns_500(self):
        broken = mock.Mock()
        broken.sweep.side_effect = RuntimeError("table unavailable")

        event = {"headers": {"Authorization": "Bearer s3cret"}}
        response = handler(event, None, janitor=broken)

        self.assertEqual(response["statusCode"], 500)
        self.assertEqual(json.loads(response["body"])["error"], "Internal server error")


if __name__ == "__main__":
    unittest.main()
