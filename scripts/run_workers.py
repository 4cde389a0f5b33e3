#!/usr/bin/env python3
"""
Background worker launcher.

Runs RQ workers (with the RQ scheduler, which delayed resumes and the
periodic sweep depend on) over the studio queues.

Usage:
    python scripts/run_workers.py                 # one worker, every queue
    python scripts/run_workers.py -q jobs -w 3    # three workers on the jobs queue
    python scripts/run_workers.py --sweep         # also seed the stale-job sweep
    python scripts/run_workers.py --check         # Redis + queue status, then exit
"""

import argparse
import logging
import signal
import sys
from multiprocessing import Process
from typing import List, Optional

from rq import Queue, Worker

from studio.core.redis import Queues, get_redis, redis_health_check
from studio.workers.queue import get_queue_manager

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("studio.run_workers")


def run_worker(queue_names: List[str], name: Optional[str] = None, burst: bool = False):
    connection = get_redis()
    worker = Worker(
        [Queue(queue_name, connection=connection) for queue_name in queue_names],
        connection=connection,
        name=name,
        job_monitoring_interval=5,
    )
    logger.info(f"{name or 'worker'} listening on {', '.join(queue_names)}")
    worker.work(with_scheduler=True, burst=burst)


def _child(queue_names: List[str], index: int, burst: bool):
    name = f"studio-worker-{index}"
    signal.signal(signal.SIGTERM, lambda *_: sys.exit(0))
    run_worker(queue_names, name, burst)


def run_pool(queue_names: List[str], count: int, burst: bool):
    children = [
        Process(target=_child, args=(queue_names, i, burst), name=f"studio-worker-{i}")
        for i in range(1, count + 1)
    ]

    def stop(signum, frame):
        logger.info("Stopping workers...")
        for child in children:
            if child.is_alive():
                child.terminate()
        sys.exit(0)

    signal.signal(signal.SIGTERM, stop)
    signal.signal(signal.SIGINT, stop)

    for child in children:
        child.start()
        logger.info(f"Started {child.name} (pid {child.pid})")
    for child in children:
        child.join()


def main():
    parser = argparse.ArgumentParser(description="Run Subject Studio background workers")
    parser.add_argument("--queues", "-q", nargs="+", default=list(Queues.ALL),
                        help="Queues to consume (default: all)")
    parser.add_argument("--workers", "-w", type=int, default=1,
                        help="Worker processes to start")
    parser.add_argument("--burst", "-b", action="store_true",
                        help="Exit once the queues are drained")
    parser.add_argument("--sweep", action="store_true",
                        help="Enqueue the self-rescheduling sweep of stale jobs")
    parser.add_argument("--check", action="store_true",
                        help="Print Redis and queue status and exit")
    args = parser.parse_args()

    health = redis_health_check()
    if not health["connected"]:
        logger.error(f"Redis unavailable at {health['url']}: {health.get('error')}")
        sys.exit(1)
    logger.info(f"Redis {health['redis_version']} at {health['url']}")

    if args.check:
        for queue_name, stats in get_queue_manager().get_queue_stats().items():
            print(f"{queue_name:12} {stats}")
        return

    if args.sweep:
        get_queue_manager().enqueue_sweep()

    if args.workers <= 1:
        run_worker(args.queues, "studio-worker", args.burst)
    else:
        run_pool(args.queues, args.workers, args.burst)


if __name__ == "__main__":
    main()
