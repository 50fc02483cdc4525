"""
Settings
========

Connection and polling settings, read from the environment.
"""

import os
from dataclasses import dataclass

DEFAULT_BASE_URL = "http://localhost:3000"


@dataclass
class Settings:
    base_url: str = DEFAULT_BASE_URL
    email: str = ""
    password: str = ""
    course_id: str = ""
    student_id: str = ""
    poll_interval: float = 10.0
    timeout: float = 60.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        return cls(
            base_url=os.getenv("LMS_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            email=os.getenv("LMS_EMAIL", ""),
            password=os.getenv("LMS_PASSWORD", ""),
            course_id=os.getenv("LMS_COURSE_ID", ""),
            student_id=os.getenv("LMS_STUDENT_ID", ""),
            poll_interval=float(os.getenv("LMS_POLL_INTERVAL", "10")),
            timeout=float(os.getenv("LMS_TIMEOUT", "60")),
            log_level=os.getenv("LMS_LOG_LEVEL", "INFO").upper(),
        )
