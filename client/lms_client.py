"""
LmsClient Module (Async)
========================

Asynchronous access to the LMS REST API using httpx.AsyncClient. Every response
is wrapped by the server in a ``{success, data, message}`` envelope; the client
unwraps ``data`` and converts failures into ``LmsError`` subclasses.
"""

import asyncio
import logging
from typing import Dict, List, Optional

import httpx

from client.errors import AuthExpiry, LmsError, NetworkFailure, ServerRejection
from client.events import ATTEMPT_EXTENSION_UPDATED, EventBus, ExtensionUpdate
from client.parser import (group_attempts, parse_extra_request, parse_module, parse_module_access,
                           parse_notification, parse_progress, parse_quiz, parse_result,
                           parse_server_status, parse_start)
from client.validation import quiz_payload, validate_quiz
from models.progress_models import Module, ModuleAccess, StudentProgress, TimelineNotification
from models.quiz_models import (AttemptResult, ExtraAttemptRequest, Quiz, QuizAttempt,
                                QuizServerStatus, StartInfo)

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if message:
            return str(message)
    return f"Server error: {response.status_code}"


class LmsClient:
    def __init__(self, base_url="http://localhost:3000", timeout=60.0, token=None, events=None,
                 transport=None):
        self.base_url = base_url.rstrip("/")
        self.events = events if events is not None else EventBus()
        self.token = token
        self.user = None
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            follow_redirects=True,
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, url: str, json=None, params=None):
        logger.debug("%s %s", method, url)
        try:
            resp = await self.client.request(method, url, json=json, params=params)
        except httpx.TransportError as e:
            logger.warning("Network error on %s %s: %s", method, url, e)
            raise NetworkFailure() from e

        if resp.status_code == 401:
            raise AuthExpiry(_error_message(resp), data=self._body(resp))
        if resp.is_error:
            raise ServerRejection(_error_message(resp), status=resp.status_code,
                                  data=self._body(resp))

        body = self._body(resp)
        if isinstance(body, dict) and "data" in body:
            if body.get("success") is False:
                raise ServerRejection(body.get("message") or "Request failed",
                                      status=resp.status_code, data=body)
            return body["data"]
        return body

    async def _request_object(self, method: str, url: str, json=None, params=None) -> dict:
        """Like ``_request`` but the unwrapped ``data`` must be a JSON object."""
        data = await self._request(method, url, json=json, params=params)
        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.warning("Unexpected %s payload from %s %s", type(data).__name__, method, url)
            raise ServerRejection(f"Unexpected response from {url}", status=502, data=data)
        return data

    @staticmethod
    def _parse(parser, key, data):
        """Runs a parser for one item; a malformed payload fails that item only."""
        try:
            return parser(key, data)
        except (AttributeError, TypeError, ValueError, OverflowError) as e:
            logger.warning("Malformed payload for %s: %s", key, e)
            raise ServerRejection(f"Malformed response for {key}", status=502, data=data) from e

    @staticmethod
    def _body(resp: httpx.Response):
        try:
            return resp.json()
        except ValueError:
            return None

    async def login(self, email: str, password: str) -> bool:
        """
        Authenticates. The server answers with an ``accessToken`` cookie; the
        token is also kept on the client so a later client can reuse it.
        """
        try:
            data = await self._request("POST", "/api/auth/login",
                                       json={"email": email, "password": password})
        except LmsError as e:
            logger.error("Login failed: %s", e.message)
            return False

        if isinstance(data, dict):
            self.user = data.get("user")
        token = self.client.cookies.get("accessToken")
        if token:
            self.token = token
            self.client.headers["Authorization"] = f"Bearer {token}"
        return True

    # Attempts

    async def get_my_attempts(self) -> Dict[str, List[QuizAttempt]]:
        data = await self._request("GET", "/api/attempts/my")
        return group_attempts(data or [])

    async def get_quiz_status(self, quiz_id: str) -> QuizServerStatus:
        data = await self._request_object("GET", f"/api/attempts/status/{quiz_id}")
        return self._parse(parse_server_status, quiz_id, data)

    async def get_quiz_statuses(self, quiz_ids: List[str]) -> Dict[str, object]:
        """
        Fetches the status of every quiz in parallel. Each value is either a
        QuizServerStatus or the LmsError raised for that quiz alone.
        """
        results = await asyncio.gather(*(self.get_quiz_status(q) for q in quiz_ids),
                                       return_exceptions=True)
        statuses = {}
        for quiz_id, result in zip(quiz_ids, results):
            if isinstance(result, BaseException) and not isinstance(result, LmsError):
                raise result
            statuses[quiz_id] = result
        return statuses

    async def start_quiz(self, quiz_id: str) -> StartInfo:
        data = await self._request_object("GET", f"/api/attempts/start/{quiz_id}")
        return parse_start(data)

    async def submit_quiz(self, quiz_id: str, answers: List[Optional[str]],
                          time_taken: int) -> AttemptResult:
        payload = {
            "quizId": quiz_id,
            "answers": [{"text": a} if a is not None else None for a in answers],
            "timeTaken": time_taken,
        }
        data = await self._request_object("POST", "/api/attempts/submit", json=payload)
        return parse_result(data)

    # Extra attempts

    async def request_extra_attempt(self, quiz_id: str, reason: str = "") -> ExtraAttemptRequest:
        data = await self._request_object("POST", "/api/attempts/extra-requests",
                                          json={"quizId": quiz_id, "reason": reason})
        request = parse_extra_request(data)
        if not request.quiz_id:
            request.quiz_id = quiz_id
        return request

    async def list_extra_requests(self, status: str = "PENDING") -> List[ExtraAttemptRequest]:
        data = await self._request("GET", "/api/attempts/extra-requests",
                                   params={"status": status})
        return [parse_extra_request(raw) for raw in data or []]

    async def approve_extra_attempt(self, request: ExtraAttemptRequest,
                                    extra_attempts: int = 1) -> None:
        await self._request("PATCH", f"/api/attempts/extra-requests/{request.id}/approve",
                            json={"extraAttempts": extra_attempts})
        await self.events.publish(ATTEMPT_EXTENSION_UPDATED,
                                  ExtensionUpdate(quiz_id=request.quiz_id, status="APPROVED"))

    async def reject_extra_attempt(self, request: ExtraAttemptRequest) -> None:
        await self._request("PATCH", f"/api/attempts/extra-requests/{request.id}/reject")
        await self.events.publish(ATTEMPT_EXTENSION_UPDATED,
                                  ExtensionUpdate(quiz_id=request.quiz_id, status="REJECTED"))

    # Quizzes

    async def get_modules(self, course_id: str) -> List[Module]:
        data = await self._request("GET", f"/api/modules/course/{course_id}")
        return [parse_module(raw, i) for i, raw in enumerate(data or [])]

    async def get_quizzes(self, course_id: Optional[str] = None) -> List[Quiz]:
        params = {"limit": 100}
        if course_id:
            params["courseId"] = course_id
        data = await self._request("GET", "/api/quizzes", params=params)
        if isinstance(data, dict):
            data = data.get("quizzes", [])
        return [parse_quiz(raw) for raw in data or []]

    async def create_quiz(self, quiz: Quiz, course_id: str) -> Quiz:
        validate_quiz(quiz)
        data = await self._request_object("POST", "/api/quizzes",
                                          json=quiz_payload(quiz, course_id))
        return parse_quiz(data)

    # Progress

    async def get_timeline_access(self, course_id: str, module_id: str) -> ModuleAccess:
        data = await self._request_object("GET",
                                          f"/api/progress/timeline-access/{course_id}/{module_id}")
        return self._parse(parse_module_access, module_id, data)

    async def get_student_progress(self, student_id: str,
                                   course_id: Optional[str] = None) -> Optional[StudentProgress]:
        data = await self._request("GET", f"/api/progress/student/{student_id}")
        return parse_progress(data, course_id)

    async def set_student_level(self, student_id: str, course_id: str,
                                level: Optional[str] = None, lock: Optional[bool] = None) -> None:
        payload = {"studentId": student_id, "courseId": course_id, "level": level}
        if lock is not None:
            payload["lock"] = lock
        await self._request("PATCH", "/api/progress/admin/set-level", json=payload)

    # Timeline notifications

    async def get_timeline_notifications(self, course_id: str) -> List[TimelineNotification]:
        data = await self._request("GET", f"/api/module-timelines/notifications/{course_id}")
        return [parse_notification(raw) for raw in data or []]

    async def mark_notification_read(self, course_id: str, notification_id: str) -> None:
        await self._request(
            "PATCH", f"/api/module-timelines/notifications/{course_id}/{notification_id}/read")

    async def close(self):
        """Closes the async client session."""
        await self.client.aclose()
