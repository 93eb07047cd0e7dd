import pytest

from subrewrite.errors import AuthorizationFailure, ServiceError, TransientServiceError
from subrewrite.rewrite.retry import call_with_retry


class Flaky:
    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def test_retries_rate_limit_with_exponential_backoff():
    delays = []
    fn = Flaky([TransientServiceError("429"), TransientServiceError("429")])

    result = call_with_retry(fn, sleep=delays.append, jitter=lambda: 0.5)

    assert result == "ok"
    assert fn.calls == 3
    assert delays == [2.5, 4.5]


def test_exhausting_attempts_raises_last_error():
    delays = []
    errors = [TransientServiceError(f"429 #{i}") for i in range(5)]
    fn = Flaky(errors)

    with pytest.raises(TransientServiceError, match="#4"):
        call_with_retry(fn, max_attempts=5, sleep=delays.append, jitter=lambda: 0.0)

    assert fn.calls == 5
    assert delays == [2.0, 4.0, 8.0, 16.0]


def test_authorization_failure_is_not_retried():
    delays = []
    fn = Flaky([AuthorizationFailure("Requested entity was not found")])

    with pytest.raises(AuthorizationFailure):
        call_with_retry(fn, sleep=delays.append)

    assert fn.calls == 1
    assert delays == []


def test_other_errors_propagate_immediately():
    fn = Flaky([ServiceError("HTTP 500")])

    with pytest.raises(ServiceError):
        call_with_retry(fn, sleep=lambda _: None)

    assert fn.calls == 1


def test_invalid_attempt_budget():
    with pytest.raises(ValueError):
        call_with_retry(lambda: None, max_attempts=0)
