"""RQ worker process entrypoint for transcription and content idea jobs."""

import logging

from rq.worker_pool import WorkerPool

from config import settings, validate_credit_settings
from services.job_queue import WORKER_QUEUE_NAMES, get_redis_connection


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    validate_credit_settings()
    redis_conn = get_redis_connection()
    pool = WorkerPool(
        WORKER_QUEUE_NAMES,
        connection=redis_conn,
        num_workers=max(int(settings.WORKER_CONCURRENCY), 1),
    )
    pool.start()


if __name__ == "__main__":
    main()
