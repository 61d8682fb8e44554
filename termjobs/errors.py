"""
Exception types raised by termjobs.

Only caller-contract violations surface as exceptions. Rendering, diagnostics
and terminal output problems are contained inside the engine and never reach
the code that drives the jobs.
"""


class TermJobsError(Exception):
    """Base class for all termjobs errors."""


class JobNotFoundError(TermJobsError, KeyError):
    """
    Raised when an operation names a job id that is not in the tree.

    Subclasses KeyError so callers treating the tree as a mapping can keep
    catching the builtin.
    """

    def __init__(self, job_id: int) -> None:
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"job {self.job_id} is not registered"
