"""Background work queue and its historical page-job consumer."""

from feetracker.jobs.job_queue import InMemoryJobQueue, Job, JobQueue

__all__ = ["InMemoryJobQueue", "Job", "JobQueue"]
