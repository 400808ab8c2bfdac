"""Unit tests for the retry/backoff policy."""

from __future__ import annotations

from datetime import timedelta

import pytest

from picket.core.defaults import MAX_ERROR_MESSAGE_LENGTH
from picket.core.errors import ConfigurationError, ErrorCode, PayloadValidationError
from picket.core.models.retry import RetryConfig
from picket.core.types.status import JobStatus
from picket.core.worker.retry import RetryPolicy, backoff_ms, error_message
from tests.helpers import T0, FakeClock, make_job


@pytest.mark.unit
class TestBackoffMs:
    """min(base * 2^(attempts-1), max)."""

    def test_default_sequence_doubles_then_caps(self) -> None:
        delays = [backoff_ms(n, 5000, 60_000) for n in range(1, 7)]
        assert delays == [5000, 10_000, 20_000, 40_000, 60_000, 60_000]

    def test_attempts_below_one_count_as_one(self) -> None:
        assert backoff_ms(0, 5000, 60_000) == 5000
        assert backoff_ms(-3, 5000, 60_000) == 5000

    def test_huge_attempt_count_stays_capped(self) -> None:
        assert backoff_ms(10_000, 5000, 60_000) == 60_000

    def test_max_equal_to_base_is_constant(self) -> None:
        assert {backoff_ms(n, 1000, 1000) for n in range(1, 10)} == {1000}


@pytest.mark.unit
class TestDecideOutcome:
    def test_requeues_while_attempts_remain(self) -> None:
        policy = RetryPolicy(RetryConfig(base_delay_ms=5000, max_delay_ms=60_000))
        job = make_job(attempts=1, max_attempts=3, status=JobStatus.RUNNING)

        outcome = policy.decide_outcome(job, RuntimeError('rate limited'), now=T0)

        assert outcome.next_status == JobStatus.QUEUED
        assert outcome.will_retry is True
        assert outcome.run_at == T0 + timedelta(milliseconds=5000)
        assert outcome.last_error == 'rate limited'

    def test_second_attempt_waits_twice_as_long(self) -> None:
        policy = RetryPolicy(RetryConfig(base_delay_ms=5000, max_delay_ms=60_000))
        job = make_job(attempts=2, max_attempts=3, status=JobStatus.RUNNING)

        outcome = policy.decide_outcome(job, RuntimeError('x'), now=T0)

        assert outcome.run_at == T0 + timedelta(milliseconds=10_000)

    def test_fails_on_last_attempt(self) -> None:
        policy = RetryPolicy()
        job = make_job(attempts=3, max_attempts=3, status=JobStatus.RUNNING)

        outcome = policy.decide_outcome(job, RuntimeError('still broken'), now=T0)

        assert outcome.next_status == JobStatus.FAILED
        assert outcome.will_retry is False
        assert outcome.run_at is None
        assert outcome.last_error == 'still broken'

    def test_single_attempt_job_never_retries(self) -> None:
        job = make_job(attempts=1, max_attempts=1, status=JobStatus.RUNNING)
        outcome = RetryPolicy().decide_outcome(job, ValueError('bad'), now=T0)
        assert outcome.next_status == JobStatus.FAILED

    def test_uses_policy_clock_when_now_omitted(self) -> None:
        clock = FakeClock()
        clock.advance(minutes=7)
        policy = RetryPolicy(RetryConfig(base_delay_ms=1000, max_delay_ms=1000), clock)
        job = make_job(attempts=1, max_attempts=2, status=JobStatus.RUNNING)

        outcome = policy.decide_outcome(job, RuntimeError('x'))

        assert outcome.run_at == clock.now + timedelta(seconds=1)


@pytest.mark.unit
class TestErrorMessage:
    def test_uses_exception_text(self) -> None:
        assert error_message(RuntimeError('navigation timeout')) == 'navigation timeout'

    def test_falls_back_to_class_name(self) -> None:
        assert error_message(TimeoutError()) == 'TimeoutError'

    def test_picket_error_uses_short_message(self) -> None:
        exc = PayloadValidationError(
            message='invalid fwc_lookup payload: employerIds',
            code=ErrorCode.PAYLOAD_INVALID,
            notes=['Input should be a valid list'],
        )
        assert error_message(exc) == 'invalid fwc_lookup payload: employerIds'

    def test_truncates_long_messages(self) -> None:
        message = error_message(RuntimeError('x' * 10_000))
        assert len(message) == MAX_ERROR_MESSAGE_LENGTH
        assert message.endswith('...')


@pytest.mark.unit
class TestRetryConfig:
    def test_defaults(self) -> None:
        cfg = RetryConfig()
        assert cfg.base_delay_ms == 5000
        assert cfg.max_delay_ms == 60_000

    def test_max_below_base_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            RetryConfig(base_delay_ms=10_000, max_delay_ms=5000)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_RETRY
