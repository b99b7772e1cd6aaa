import logging
import os
import sys
from typing import Callable, Dict, Optional, Type

import pytest
from pydantic import field_validator
from pydantic_settings import BaseSettings
from selenium import webdriver
from selenium.webdriver.chrome.service import Service
from webdriver_manager.chrome import ChromeDriverManager

from .browser import DEFAULT_WAIT, BrowserError, Chrome, MailboxBrowser, Remote, browser_session, launch_browser
from .browser import chrome_options as default_chrome_options
from .models import Outcome, Report, ReportResult, ScenarioResult, TestResult, Timed
from .report_exporter import ReportExporter
from .scenarios import BASE_URL, LOGIN_URL

_here = os.path.abspath(os.path.dirname(__file__))
logger = logging.getLogger(__name__)


class EnvSettings(BaseSettings):
    """
    Automatically derives from environment variables; these supply
    the defaults for the command-line options in 'pytest_addoption()'.
    Empty strings are treated as unset.
    """

    remote_selenium: Optional[str] = None
    report_dir: Optional[str] = None
    mailbox_url: Optional[str] = None
    mailbox_login_url: Optional[str] = None
    mailbox_wait_timeout: Optional[float] = None

    @field_validator("*", mode="before")
    @classmethod
    def handle_empty_string(cls, v):
        if v == "":
            return None
        return v


def pytest_addoption(parser):
    settings = EnvSettings()
    group = parser.getgroup("mailbox_e2e")
    group.addoption(
        "--selenium-server",
        action="store",
        dest="selenium_server",
        default=settings.remote_selenium,
        help="Remote selenium webdriver to connect to (eg localhost:4444)",
    )
    group.addoption(
        "--install-driver",
        action="store_true",
        dest="install_driver",
        default=False,
        help="Download a matching chromedriver with webdriver-manager instead of relying on Selenium Manager.",
    )
    group.addoption(
        "--mailbox-url",
        action="store",
        dest="mailbox_url",
        default=settings.mailbox_url or BASE_URL,
        help="The Anytime Mailbox landing page that hosts the location lookup.",
    )
    group.addoption(
        "--mailbox-login-url",
        action="store",
        dest="mailbox_login_url",
        default=settings.mailbox_login_url or LOGIN_URL,
        help="The Anytime Mailbox login page.",
    )
    group.addoption(
        "--wait-timeout",
        action="store",
        type=float,
        dest="wait_timeout",
        default=DEFAULT_WAIT if settings.mailbox_wait_timeout is None else settings.mailbox_wait_timeout,
        help="How many seconds an explicit wait polls before giving up.",
    )
    group.addoption(
        "--report-dir",
        action="store",
        dest="report_dir",
        default=settings.report_dir or os.path.join(os.getcwd(), "mailbox-report"),
        help="The path to the directory where artifacts should be stored.",
    )
    group.addoption(
        "--jinja-template",
        action="store",
        dest="report_template",
        default=os.path.join(_here, "templates", "report.html"),
    )
    group.addoption(
        "--report-title",
        action="store",
        dest="report_title",
        default="Anytime Mailbox E2E Summary",
        help="An optional title for your report; if not provided, a default will be used. "
        "You may also provide a constant default by overriding the report_title fixture.",
    )


@pytest.fixture(scope="session", autouse=True)
def clean_screenshots(report_dir):
    screenshots_dir = os.path.join(report_dir, "screenshots")
    if os.path.exists(screenshots_dir):
        old_screenshots = os.listdir(screenshots_dir)
        for png in old_screenshots:
            os.remove(os.path.join(screenshots_dir, png))


@pytest.fixture(scope="session", autouse=True)
def test_report(report_title) -> Report:
    args = []
    if len(sys.argv) > 1:
        args.extend(sys.argv[1:])

    return Report(
        arguments=" ".join(args),
        outcome=Outcome.never_started,
        title=report_title,
    )


@pytest.fixture(scope="session")
def selenium_server(request) -> Optional[str]:
    """Returns a non-empty string or None"""
    value = request.config.getoption("selenium_server")
    if value:
        return value.strip()
    return None


@pytest.fixture(scope="session")
def mailbox_url(request) -> str:
    return request.config.getoption("mailbox_url")


@pytest.fixture(scope="session")
def mailbox_login_url(request) -> str:
    return request.config.getoption("mailbox_login_url")


@pytest.fixture(scope="session")
def wait_timeout(request) -> float:
    return request.config.getoption("wait_timeout")


@pytest.fixture(scope="session")
def chrome_options() -> webdriver.ChromeOptions:
    """
    The ChromeOptions every session is launched with; see browser.chrome_options.

    You can extend this:
        @pytest.fixture(scope='session')
        def chrome_options(chrome_options) -> ChromeOptions:
            chrome_options.add_argument("--option-name")
            return chrome_options

    or override it entirely:
        @pytest.fixture(scope='session')
        def chrome_options() -> ChromeOptions:
            return ChromeOptions()
    """
    return default_chrome_options()


@pytest.fixture(scope="session")
def browser_args(request, selenium_server, chrome_options, wait_timeout) -> Dict[str, object]:
    args = {"options": chrome_options, "default_wait": wait_timeout}
    if selenium_server:
        args["command_executor"] = f"http://{selenium_server}/wd/hub"
    elif request.config.getoption("install_driver"):
        args["service"] = Service(ChromeDriverManager().install())
    return args


@pytest.fixture(scope="session")
def browser_class(browser_args) -> Type[MailboxBrowser]:
    if browser_args.get("command_executor"):
        return Remote
    return Chrome


@pytest.fixture(scope="session")
def build_browser(browser_args, browser_class) -> Callable[..., MailboxBrowser]:
    logger.info(
        "Browser generator will build instances using the following settings:\n"
        f"   Browser class: {browser_class.__name__}\n"
        f"   Browser args: {dict(browser_args)}"
    )

    def inner() -> MailboxBrowser:
        return launch_browser(browser_class, **browser_args)

    return inner


@pytest.fixture
def browser(build_browser) -> MailboxBrowser:
    """A fresh browser session for the requesting test, quit when the test is done."""
    with browser_session(build_browser) as browser:
        yield browser


@pytest.fixture
def report_scenario(request) -> Callable[[ScenarioResult], ScenarioResult]:
    """
    Records a scenario's result against the running test so that conditional passes
    (and any note the scenario left) make it into the report.

        def test_failed_login(browser, report_scenario):
            report_scenario(attempt_invalid_login(browser))
    """

    def inner(result: ScenarioResult) -> ScenarioResult:
        request.node.scenario_result = result
        if result.note:
            logger.info(f"{result.name}: {result.outcome.value} ({result.note})")
        return result

    return inner


@pytest.fixture(scope="session")
def report_dir(request):
    dir_ = request.config.getoption("report_dir")
    os.makedirs(dir_, exist_ok=True)
    return dir_


@pytest.fixture(scope="session")
def report_exporter(request) -> ReportExporter:
    template = request.config.getoption("report_template")
    return ReportExporter(template_dir=os.path.dirname(template), root_template=os.path.basename(template))


@pytest.fixture(scope="session", autouse=True)
def report_generator(report_dir, test_report, report_exporter):
    yield
    test_report.stop_timer()
    test_report.outcome = Outcome.success
    report_exporter.export_all(test_report, report_dir)


@pytest.fixture(autouse=True)
def report_test(report_generator, request, test_report):
    """
    Print the results to report_file after a test run. Without this, the results of the test will not be saved.
    """
    tb = None
    note = None
    console_logs = []
    timer: Timed
    with Timed() as timer:
        yield

    call_summary = getattr(request.node, "report_result", None)

    if call_summary:
        doc = call_summary.doc
        test_name = call_summary.report.nodeid
        outcome = Outcome.failure if call_summary.report.failed else Outcome.success
        scenario_result: Optional[ScenarioResult] = getattr(request.node, "scenario_result", None)
        if outcome == Outcome.success and scenario_result:
            outcome = scenario_result.outcome
            note = scenario_result.note
        if call_summary.excinfo:
            outcome = Outcome.failure
            exception: BaseException = call_summary.excinfo.value
            exception_msg = f"{exception.__class__.__name__}: {str(exception)}"
            if isinstance(exception, BrowserError):
                if exception.orig:
                    tb = f"{exception_msg}\n{exception.orig=}"
                console_logs = [log.get("message", "") for log in exception.logs]
            if not tb:
                tb = f"{exception_msg}\n(No traceback is available)"

    else:
        logging.error(
            f"Test {request.node} reported no outcomes; "
            f"this usually indicates a fixture caused an error when setting up the test."
        )
        doc = None
        test_name = f"{request.node.name}"
        outcome = Outcome.never_started

    result = TestResult(
        pngs=MailboxBrowser.pngs,
        test_name=test_name,
        test_description=doc,
        outcome=outcome,
        note=note,
        start_time=timer.start_time,
        end_time=timer.end_time,
        traceback=tb,
        console_errors=console_logs,
    )
    MailboxBrowser.pngs = []

    test_report.results.append(result)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """
    This gives us hooks from which to report status post test-run.
    """
    outcome = yield

    report = outcome.get_result()
    if report.when == "call":
        doc = getattr(getattr(item, "function", None), "__doc__", None)
        item.report_result = ReportResult(report=report, excinfo=call.excinfo, doc=doc)
        scenario_result = getattr(item, "scenario_result", None)
        if report.passed and scenario_result and scenario_result.outcome == Outcome.conditional_pass:
            report.conditional_note = scenario_result.note
            report.sections.append(("Conditional pass", scenario_result.note or ""))


def pytest_report_teststatus(report, config):
    if report.when == "call" and getattr(report, "conditional_note", None):
        return "passed", "c", ("CONDITIONAL PASS", {"yellow": True})


@pytest.fixture(scope="session")
def report_title(request) -> str:
    return request.config.getoption("report_title")
