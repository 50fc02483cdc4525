import asyncio

import pytest

import mock_data
from client.errors import NetworkFailure, ServerRejection
from client.parser import parse_result, parse_start
from conftest import FakeClient
from runner.attempt_runner import AttemptRunner, RunnerState, format_time


def _runner(fake_client, fake_clock, start=mock_data.START_READY):
    fake_client.start_info = parse_start(start)
    return AttemptRunner(fake_client, mock_data.QUIZ_ID, clock=fake_clock,
                         sleep=fake_clock.sleep, tick=1.0)


def _result(can_retry=True):
    data = dict(mock_data.SUBMIT_RESULT, canRetry=can_retry)
    return parse_result(data)


def test_format_time():
    assert format_time(600) == "10:00"
    assert format_time(65.7) == "1:05"
    assert format_time(-3) == "0:00"
    assert format_time(None) == ""


def test_load_ready(fake_client, fake_clock):
    runner = _runner(fake_client, fake_clock)

    assert asyncio.run(runner.load()) is RunnerState.READY
    assert runner.time_limit_seconds == 60
    assert len(runner.quiz.questions) == 5
    assert runner.quiz.description == "Read the manual first."


def test_load_ineligible_keeps_server_reason(fake_client, fake_clock):
    runner = _runner(fake_client, fake_clock, start=mock_data.START_BLOCKED)

    assert asyncio.run(runner.load()) is RunnerState.INELIGIBLE
    assert runner.error == "No attempts remaining"
    with pytest.raises(RuntimeError):
        runner.begin()


def test_load_failure_is_error_state(fake_client, fake_clock):
    runner = _runner(fake_client, fake_clock)
    fake_client.start_error = ServerRejection("Quiz not found", status=404)

    assert asyncio.run(runner.load()) is RunnerState.ERROR
    assert runner.error == "Quiz not found"


def test_expiry_submits_partial_answers_once(fake_client, fake_clock):
    runner = _runner(fake_client, fake_clock)
    fake_client.submit_results = [_result()]

    async def scenario():
        await runner.load()
        runner.begin()
        runner.answer(0, "A")
        runner.answer(3, "B")
        await runner.join()

    asyncio.run(scenario())

    assert runner.state is RunnerState.RESULT
    assert runner.submit_count == 1
    assert fake_client.submissions == [
        (mock_data.QUIZ_ID, ["A", None, None, "B", None], 60)]
    assert all(s <= 1.0 for s in fake_clock.sleeps)


def test_failed_auto_submit_is_not_repeated(fake_client, fake_clock):
    runner = _runner(fake_client, fake_clock)
    fake_client.submit_results = [NetworkFailure(), _result()]

    async def scenario():
        await runner.load()
        runner.begin()
        await runner.join()
        assert runner.state is RunnerState.IN_PROGRESS
        assert not await runner.expire_if_due()
        return await runner.submit()

    result = asyncio.run(scenario())

    assert result.score_percent == 40
    assert runner.state is RunnerState.RESULT
    assert len(fake_client.submissions) == 2


def test_manual_submit_cancels_countdown(fake_client, fake_clock):
    runner = _runner(fake_client, fake_clock)
    fake_client.submit_results = [_result()]

    async def scenario():
        await runner.load()
        runner.begin()
        timer = runner._timer
        fake_clock.now += 12.9
        await runner.submit()
        await asyncio.gather(timer, return_exceptions=True)
        return timer

    timer = asyncio.run(scenario())

    assert timer.cancelled()
    assert runner.submit_count == 1
    assert fake_client.submissions[0][2] == 12


def test_submit_failure_rolls_back_to_in_progress(fake_client, fake_clock):
    runner = _runner(fake_client, fake_clock)
    fake_client.submit_results = [ServerRejection("Quiz is closed", status=400), _result()]

    async def scenario():
        await runner.load()
        runner.begin(run_timer=False)
        runner.answer(1, "B")
        fake_clock.now += 20
        first = await runner.submit()
        assert first is None
        assert runner.state is RunnerState.IN_PROGRESS
        assert runner.error == "Quiz is closed"
        assert runner.answers[1] == "B"
        fake_clock.now += 5
        return await runner.submit()

    result = asyncio.run(scenario())

    assert result is not None
    assert runner.error is None
    assert [s[2] for s in fake_client.submissions] == [20, 25]


def test_caller_driven_expiry(fake_client, fake_clock):
    runner = _runner(fake_client, fake_clock)
    fake_client.submit_results = [_result()]

    async def scenario():
        await runner.load()
        runner.begin(run_timer=False)
        assert runner._timer is None
        fake_clock.now += 30
        assert not await runner.expire_if_due()
        fake_clock.now += 31
        assert await runner.expire_if_due()
        assert not await runner.expire_if_due()

    asyncio.run(scenario())

    assert runner.submit_count == 1
    assert runner.time_remaining() == 0.0


def test_quiz_without_time_limit_has_no_countdown(fake_client, fake_clock):
    start = dict(mock_data.START_READY, quiz=dict(mock_data.START_READY["quiz"], timeLimit=None))
    runner = _runner(fake_client, fake_clock, start=start)

    async def scenario():
        await runner.load()
        runner.begin()
        fake_clock.now += 10_000
        return await runner.expire_if_due()

    assert asyncio.run(scenario()) is False
    assert runner._timer is None
    assert runner.time_remaining() is None
    assert runner.state is RunnerState.IN_PROGRESS


def test_retry_starts_fresh_attempt(fake_client, fake_clock):
    runner = _runner(fake_client, fake_clock)
    fake_client.submit_results = [_result(can_retry=True)]

    async def scenario():
        await runner.load()
        runner.begin(run_timer=False)
        runner.answer(0, "A")
        await runner.submit()
        runner.retry(run_timer=False)

    asyncio.run(scenario())

    assert runner.state is RunnerState.IN_PROGRESS
    assert runner.answers == [None] * 5
    assert runner.result is None


def test_retry_refused_when_server_says_no(fake_client, fake_clock):
    runner = _runner(fake_client, fake_clock)
    fake_client.submit_results = [_result(can_retry=False)]

    async def scenario():
        await runner.load()
        runner.begin(run_timer=False)
        await runner.submit()

    asyncio.run(scenario())

    with pytest.raises(RuntimeError):
        runner.retry()


class SlowSubmitClient(FakeClient):
    """Holds every submit until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.release = None

    async def submit_quiz(self, quiz_id, answers, time_taken):
        self.submissions.append((quiz_id, list(answers), time_taken))
        await self.release.wait()
        return _result()


def test_manual_submit_during_auto_submit_is_ignored(fake_clock):
    client = SlowSubmitClient()
    runner = _runner(client, fake_clock)

    async def scenario():
        client.release = asyncio.Event()
        await runner.load()
        runner.begin()
        timer = runner._timer
        fake_clock.now += 61
        while runner.state is not RunnerState.SUBMITTING:
            await asyncio.sleep(0)
        manual = await runner.submit()
        client.release.set()
        await asyncio.gather(timer)
        return manual, timer

    manual, timer = asyncio.run(scenario())

    assert manual is None
    assert not timer.cancelled()
    assert runner.state is RunnerState.RESULT
    assert runner.submit_count == 1
    assert len(client.submissions) == 1


def test_cancelled_submit_returns_to_in_progress(fake_clock):
    client = SlowSubmitClient()
    runner = _runner(client, fake_clock)

    async def scenario():
        client.release = asyncio.Event()
        await runner.load()
        runner.begin(run_timer=False)
        task = asyncio.create_task(runner.submit())
        while runner.state is not RunnerState.SUBMITTING:
            await asyncio.sleep(0)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    asyncio.run(scenario())

    assert runner.state is RunnerState.IN_PROGRESS
