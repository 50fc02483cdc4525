"""
AttemptRunner
=============

Client-side state machine for taking one quiz:

    loading -> (ineligible | ready) -> in_progress -> submitting -> (result | error)

The countdown runs only when the quiz has a time limit, and expiry submits
whatever has been answered. ``time_taken`` is measured on a monotonic clock
from the moment the attempt entered ``in_progress``. A failed submit goes back
to ``in_progress`` and the countdown resumes if time is left.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, List, Optional

from client.errors import LmsError
from models.quiz_models import AttemptResult, Quiz

logger = logging.getLogger(__name__)


class RunnerState(Enum):
    LOADING = "loading"
    INELIGIBLE = "ineligible"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    RESULT = "result"
    ERROR = "error"


def format_time(seconds: Optional[float]) -> str:
    if seconds is None:
        return ""
    seconds = max(int(seconds), 0)
    mins, secs = divmod(seconds, 60)
    return f"{mins}:{secs:02}"


class AttemptRunner:
    def __init__(self, client, quiz_id: str, clock: Callable[[], float] = time.monotonic,
                 sleep=asyncio.sleep, tick: float = 1.0):
        self.client = client
        self.quiz_id = quiz_id
        self.state = RunnerState.LOADING
        self.quiz: Optional[Quiz] = None
        self.answers: List[Optional[str]] = []
        self.result: Optional[AttemptResult] = None
        self.error: Optional[str] = None
        self.submit_count = 0
        self._clock = clock
        self._sleep = sleep
        self._tick = tick
        self._started_at: Optional[float] = None
        self._timer: Optional[asyncio.Task] = None
        self._run_timer_task = True
        self._auto_submitted = False

    # Loading

    async def load(self) -> RunnerState:
        self.state = RunnerState.LOADING
        try:
            info = await self.client.start_quiz(self.quiz_id)
        except LmsError as e:
            logger.error("Failed to load quiz %s: %s", self.quiz_id, e.message)
            self.error = e.message or "Failed to load quiz"
            self.state = RunnerState.ERROR
            return self.state

        self.quiz = info.quiz
        if not info.can_attempt:
            self.error = info.reason or "Cannot attempt this quiz"
            self.state = RunnerState.INELIGIBLE
        else:
            self.error = None
            self.state = RunnerState.READY
        return self.state

    # Taking the quiz

    @property
    def time_limit_seconds(self) -> Optional[int]:
        if self.quiz is None or not self.quiz.time_limit:
            return None
        return self.quiz.time_limit * 60

    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at

    def time_remaining(self) -> Optional[float]:
        limit = self.time_limit_seconds
        if limit is None:
            return None
        return max(limit - self.elapsed(), 0.0)

    @property
    def answered_count(self) -> int:
        return sum(1 for a in self.answers if a is not None)

    def begin(self, run_timer: bool = True) -> None:
        """
        Enters ``in_progress``. With ``run_timer=False`` no background task is
        started and the caller drives expiry through ``expire_if_due``.
        """
        if self.state is not RunnerState.READY:
            raise RuntimeError(f"Cannot begin an attempt from state {self.state.value}")
        self.answers = [None] * len(self.quiz.questions)
        self.result = None
        self.error = None
        self._auto_submitted = False
        self._run_timer_task = run_timer
        self._started_at = self._clock()
        self.state = RunnerState.IN_PROGRESS
        if run_timer and self.time_limit_seconds is not None:
            self._start_timer()

    def answer(self, question_index: int, option_text: Optional[str]) -> None:
        if self.state is not RunnerState.IN_PROGRESS:
            return
        self.answers[question_index] = option_text

    # Timer

    def _start_timer(self) -> None:
        self._timer = asyncio.create_task(self._run_timer())

    def _stop_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None and timer is not asyncio.current_task() and not timer.done():
            timer.cancel()

    async def expire_if_due(self) -> bool:
        """Submits once when the time limit has run out; True if it fired."""
        remaining = self.time_remaining()
        if (self.state is not RunnerState.IN_PROGRESS or remaining is None or remaining > 0
                or self._auto_submitted):
            return False
        logger.info("Time is up for quiz %s, submitting", self.quiz_id)
        self._auto_submitted = True
        await self._submit()
        return True

    async def _run_timer(self) -> None:
        while self.state is RunnerState.IN_PROGRESS:
            if await self.expire_if_due():
                return
            remaining = self.time_remaining()
            if remaining is None or remaining <= 0:
                return
            await self._sleep(min(self._tick, remaining))

    async def join(self) -> None:
        """Waits for the running countdown, if any, to finish."""
        timer = self._timer
        if timer is not None:
            try:
                await timer
            except asyncio.CancelledError:
                pass

    # Submitting

    async def submit(self) -> Optional[AttemptResult]:
        """
        Manual submit; shares the auto-submit path. Ignored while another
        submit is in flight, so an auto-submit is never cancelled.
        """
        if self.state is not RunnerState.IN_PROGRESS:
            return None
        self._stop_timer()
        return await self._submit()

    async def _submit(self) -> Optional[AttemptResult]:
        if self.state is not RunnerState.IN_PROGRESS:
            return None

        self.state = RunnerState.SUBMITTING
        self.submit_count += 1
        time_taken = int(self.elapsed())
        answers = list(self.answers)

        try:
            result = await self.client.submit_quiz(self.quiz_id, answers, time_taken)
        except asyncio.CancelledError:
            self.state = RunnerState.IN_PROGRESS
            raise
        except LmsError as e:
            logger.error("Failed to submit quiz %s: %s", self.quiz_id, e.message)
            self.error = e.message or "Failed to submit quiz"
            self.state = RunnerState.IN_PROGRESS
            remaining = self.time_remaining()
            if self._run_timer_task and remaining is not None and remaining > 0:
                self._start_timer()
            return None

        self._timer = None
        self.result = result
        self.error = None
        self.state = RunnerState.RESULT
        return result

    def retry(self, run_timer: bool = True) -> None:
        """Starts a fresh attempt after a result the server allows to retry."""
        if self.state is not RunnerState.RESULT or not (self.result and self.result.can_retry):
            raise RuntimeError("No retry available for this quiz")
        self.state = RunnerState.READY
        self.begin(run_timer=run_timer)
