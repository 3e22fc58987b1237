import logging
import signal
import time
from typing import Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from mediajobs.services import JobQueue
from mediajobs.worker.runner import JobRunner

logger = logging.getLogger(__name__)


class JobPoller:
    """
    Long-running worker process. Receives job ids queued by the API and
    dispatches them on its runner, which keeps polling providers after the
    API request that created the job has returned.
    """

    def __init__(
        self,
        queue: Optional[JobQueue] = None,
        runner: Optional[JobRunner] = None,
        wait_seconds: int = 20,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.queue = queue or JobQueue()
        self.runner = runner or JobRunner()
        self.wait_seconds = wait_seconds
        self.sleep = sleep
        self.running = True

    def stop(self, *args):
        logger.info("Stopping worker...")
        self.running = False

    def start(self):
        logger.info("Starting worker, polling %s", self.queue.queue_url)
        while self.running:
            try:
                self.poll_once()
            except (BotoCoreError, ClientError):
                logger.exception("Error polling SQS")
                self.sleep(5)
        # In-flight jobs left behind are timed out by the janitor
        self.runner.shutdown(wait=False)

    def poll_once(self) -> int:
        messages = self.queue.receive(wait_seconds=self.wait_seconds)
        for message in messages:
            self.process_message(message)
        return len(messages)

    def process_message(self, message: dict):
        job_id = message["job_id"]
        if job_id:
            logger.info("Dispatching job %s", job_id)
            self.runner.dispatch(job_id)
        # Deleted once dispatched; a crash mid-job is recovered by the janitor
        self.queue.delete(message["receipt_handle"])


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    poller = JobPoller()
    signal.signal(signal.SIGTERM, poller.stop)
    signal.signal(signal.SIGINT, poller.stop)
    poller.start()


if __name__ == "__main__":
    main()
