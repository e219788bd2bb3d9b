"""Small helpers shared by the test modules."""

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from lumio.core.jobs import create_job_scheduler


class FakeNow:
    """Mutable "now" for Clock(now_fn=...)."""

    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def set(self, moment: datetime) -> None:
        self.moment = moment

    def advance(self, **kwargs) -> datetime:
        self.moment = self.moment + timedelta(**kwargs)
        return self.moment


def utc(year, month, day, hour=0, minute=0, second=0) -> datetime:
    return datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)


def fail_on_call(fn, call_number, exc):
    """Wrap `fn` so that only its `call_number`-th call raises `exc`."""
    calls = {"n": 0}

    def wrapper(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == call_number:
            raise exc
        return fn(*args, **kwargs)

    return wrapper


@contextmanager
def paused_jobs():
    """A started but paused job scheduler: jobs are stored and never fire.

    Use inside an async test; shutdown is posted to the running loop.
    """
    jobs = create_job_scheduler(timezone.utc)
    jobs.start(paused=True)
    try:
        yield jobs
    finally:
        jobs.shutdown(wait=False)
