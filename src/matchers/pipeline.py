"""Assertions over launched jobs and their results."""

from launcher.base import JobResult, LaunchInfo


class LaunchInfoSubject:
    def __init__(self, info: LaunchInfo):
        self.info = info

    def is_running(self) -> "LaunchInfoSubject":
        """Assert the job was accepted and is pending, queued or running."""
        if not self.info.state.is_active():
            raise AssertionError(
                f"Expected job {self.info.job_id} ({self.info.job_name}) to be running, "
                f"but it is {self.info.state.value}"
            )
        return self


class ResultSubject:
    def __init__(self, result: JobResult):
        self.result = result

    def _expect(self, expected: JobResult) -> "ResultSubject":
        if self.result != expected:
            raise AssertionError(
                f"Expected job result {expected.value}, got {self.result.value}"
            )
        return self

    def is_launch_finished(self) -> "ResultSubject":
        return self._expect(JobResult.SUCCEEDED)

    def has_failed(self) -> "ResultSubject":
        return self._expect(JobResult.FAILED)

    def was_cancelled(self) -> "ResultSubject":
        return self._expect(JobResult.CANCELLED)


def assert_that_pipeline(info: LaunchInfo) -> LaunchInfoSubject:
    return LaunchInfoSubject(info)


def assert_that_result(result: JobResult) -> ResultSubject:
    return ResultSubject(result)
