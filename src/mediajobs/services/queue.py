import json
import logging
import os
from typing import Dict, List, Optional

import boto3

logger = logging.getLogger(__name__)


class JobQueue:
    """
    SQS hand-off between the API (which only creates job records) and the
    long-running worker that drives them. Messages carry job ids only; the
    job record stays the source of truth.
    """

    def __init__(self, queue_url: Optional[str] = None, region_name: Optional[str] = None):
        self.region_name = region_name or os.environ.get("AWS_REGION", "us-east-1")
        self.queue_url = queue_url or os.environ.get("JOBS_QUEUE_URL")
        if not self.queue_url:
            raise ValueError("JOBS_QUEUE_URL is not set")
        self.sqs = boto3.client("sqs", region_name=self.region_name)

    def send(self, job_id: str, kind: str):
        self.sqs.send_message(
            QueueUrl=self.queue_url,
            MessageBody=json.dumps({"job_id": job_id, "kind": kind}),
            MessageAttributes={
                "JobID": {"DataType": "String", "StringValue": job_id},
                "Kind": {"DataType": "String", "StringValue": kind},
            },
        )
        logger.info("Queued job %s (%s)", job_id, kind)

    def receive(self, max_messages: int = 10, wait_seconds: int = 20) -> List[Dict[str, Optional[str]]]:
        """
        Long-polls the queue. Returns [{"job_id", "receipt_handle"}, ...];
        job_id is None for a message whose body cannot be read.
        """
        response = self.sqs.receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=max_messages,
            WaitTimeSeconds=wait_seconds,
        )
        messages = []
        for message in response.get("Messages", []):
            try:
                job_id = json.loads(message["Body"]).get("job_id")
            except (ValueError, AttributeError):
                logger.warning("Unreadable queue message %s", message.get("MessageId"))
                job_id = None
            messages.append({"job_id": job_id, "receipt_handle": message["ReceiptHandle"]})
        return messages

    def delete(self, receipt_handle: str):
        self.sqs.delete_message(QueueUrl=self.queue_url, ReceiptHandle=receipt_handle)
