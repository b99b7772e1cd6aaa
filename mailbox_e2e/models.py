import base64
import os
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field, model_validator


class Image(BaseModel):
    url: str
    base64: Optional[str] = None
    caption: Optional[str] = None
    is_error: bool = False

    def save(self, root: str):
        if not self.base64:
            return
        bytes_ = base64.b64decode(self.base64.encode("UTF-8"))
        filename = os.path.join(root, self.url)
        dirname = os.path.dirname(filename)
        os.makedirs(dirname, exist_ok=True)
        with open(filename, "wb") as f:
            f.write(bytes_)


class Outcome(Enum):
    success = "success"
    failure = "failure"
    conditional_pass = "conditional pass"
    never_started = "never started"

    @property
    def passed(self) -> bool:
        return self in (Outcome.success, Outcome.conditional_pass)


class ScenarioResult(BaseModel):
    """What a scenario reports back once it has run to completion."""

    name: str
    outcome: Outcome = Outcome.success
    note: Optional[str] = None


class Timed(BaseModel):
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None

    def __enter__(self):
        self.start_time = datetime.now()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = datetime.now()

    def stop_timer(self):
        self.end_time = datetime.now()

    @computed_field
    @property
    def duration(self) -> str:
        """
        Creates a human-readable minutes/seconds slug
        detailing how long the test took.

        If the duration was 129.5 seconds,
        the output would be '2m 9s'
        """
        end_time = self.end_time or datetime.now()
        minutes = 0
        seconds = (end_time - self.start_time).seconds
        if seconds >= 60:
            minutes = int(seconds / 60)
            seconds = round(seconds % 60)
        if minutes:
            return f"{minutes}m {seconds}s"
        return f"{seconds}s"

    @model_validator(mode="before")
    @classmethod
    def drop_duration(cls, data: Any) -> Any:
        # duration is derived; it is written to report.json but never read back.
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if k != "duration"}
        return data


class TestResult(Timed):
    __test__ = False  # not a pytest test class

    test_name: str
    test_id: Optional[str] = None  # Will be set from test_name
    pngs: List[Image] = []
    console_errors: List[str] = []
    traceback: Optional[str] = None
    test_description: Optional[str] = None
    note: Optional[str] = None
    outcome: Outcome = Outcome.never_started

    @model_validator(mode="after")
    def populate_test_id(self):
        test_id = re.sub(r"[^\w]", "-", self.test_name)
        if test_id.endswith("-"):
            test_id = test_id[:-1]
        self.test_id = re.sub(r"--", "-", test_id)
        return self


class Report(Timed):
    outcome: Outcome = Outcome.never_started
    results: List[TestResult] = []
    arguments: Optional[str] = None
    title: str

    @property
    def failures(self) -> List[TestResult]:
        filter_ = filter(lambda result: not result.outcome.passed, self.results)
        return list(filter_)

    @property
    def num_failures(self) -> int:
        return len(self.failures)

    @property
    def outcome_counts(self) -> Dict[str, int]:
        counts = {}
        for result in self.results:
            counts[result.outcome.value] = counts.get(result.outcome.value, 0) + 1
        return counts


class ReportResult:
    """
    A test result for passing to the report_test fixture.
    report -- a pytest test outcome
    excinfo -- exception info if there is any
    doc -- the docstring for the test if there is any
    """

    def __init__(self, report, excinfo, doc):
        self.report = report
        self.excinfo = excinfo
        self.doc = doc
