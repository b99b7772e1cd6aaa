import os
import shutil
from pathlib import Path
from unittest import mock

import pytest

from mailbox_e2e.models import Outcome, Report
from mailbox_e2e.plugin import EnvSettings

pytest_plugins = ["pytester"]


@pytest.fixture
def report_subdir(tmp_path):
    subdir = tmp_path / "report"
    subdir.mkdir()
    return str(subdir)


@pytest.fixture
def run_pytest(pytester, report_subdir):
    def inner(*args):
        args = list(args)
        if "--report-dir" not in args:
            args.extend(["--report-dir", report_subdir])
        return pytester.runpytest(*args)

    return inner


@pytest.fixture
def load_report(report_subdir):
    def inner() -> Report:
        return Report.model_validate_json(Path(report_subdir, "report.json").read_text())

    return inner


FAKE_BUILD_BROWSER = """
    import pytest
    from unittest import mock

    QUITS = []

    @pytest.fixture
    def build_browser():
        def inner():
            browser = mock.MagicMock()
            browser.quit.side_effect = lambda: QUITS.append(browser)
            return browser
        return inner
"""


def test_browser_quit_after_failure(pytester, run_pytest, load_report):
    """The per-test session is quit exactly once, even when the test body fails."""
    pytester.makepyfile(
        FAKE_BUILD_BROWSER
        + """
    def test_fails(browser):
        browser.get("https://www.anytimemailbox.com")
        assert False, "the scenario failed"

    def test_fresh_session(browser):
        assert len(QUITS) == 1
        assert browser is not QUITS[0]
    """
    )
    result = run_pytest()
    result.assert_outcomes(failed=1, passed=1)
    report = load_report()
    assert report.outcome == Outcome.failure
    assert "AssertionError" in report.results[0].traceback


def test_conditional_pass(pytester, run_pytest, load_report):
    pytester.makepyfile(
        FAKE_BUILD_BROWSER
        + """
    from mailbox_e2e.models import Outcome, ScenarioResult

    def test_failed_login(browser, report_scenario):
        '''Logging in with unknown credentials is refused.'''
        report_scenario(
            ScenarioResult(name="failed login", outcome=Outcome.conditional_pass, note="CAPTCHA protection detected")
        )
    """
    )
    result = run_pytest("-v")
    result.assert_outcomes(passed=1)
    result.stdout.fnmatch_lines(["*test_failed_login CONDITIONAL PASS*"])
    report = load_report()
    assert report.outcome == Outcome.success
    assert report.results[0].outcome == Outcome.conditional_pass
    assert report.results[0].note == "CAPTCHA protection detected"
    assert report.results[0].test_description == "Logging in with unknown credentials is refused."


def test_conditional_pass_that_then_fails(pytester, run_pytest, load_report):
    pytester.makepyfile(
        """
    from mailbox_e2e.models import Outcome, ScenarioResult

    def test_a_thing(report_scenario):
        report_scenario(ScenarioResult(name="a thing", outcome=Outcome.conditional_pass, note="maybe"))
        raise RuntimeError("????")
    """
    )
    result = run_pytest()
    result.assert_outcomes(failed=1)
    report = load_report()
    assert report.results[0].outcome == Outcome.failure
    assert "RuntimeError" in report.results[0].traceback


def test_browser_error_failure_reporting(pytester, run_pytest, load_report):
    pytester.makepyfile(
        """
    from unittest import mock
    from mailbox_e2e.browser import BrowserError

    def test_force_failure():
        browser = mock.MagicMock()
        browser.current_url = "https://www.anytimemailbox.com"
        browser.log_types = ["browser"]
        browser.get_log.return_value = [{"message": "Uncaught TypeError"}]
        err = BrowserError(browser, "Timed out waiting for the lookup")
        err.orig = ValueError("boom")
        raise err
    """
    )
    result = run_pytest()
    result.assert_outcomes(failed=1)
    report = load_report()
    assert "BrowserError" in report.results[0].traceback
    assert "boom" in report.results[0].traceback
    assert report.results[0].console_errors == ["Uncaught TypeError"]


def test_no_outcomes(pytester, run_pytest, load_report):
    pytester.makepyfile(
        """
    import pytest

    @pytest.fixture
    def bad_fixture():
        raise RuntimeError

    def test_a_thing(bad_fixture):
        pass
    """
    )
    run_pytest()
    report = load_report()
    assert report.results[0].outcome == Outcome.never_started
    assert report.outcome == Outcome.failure
    assert report.results[0].test_name == "test_a_thing"


def test_report_generator(pytester, run_pytest, report_subdir):
    pytester.makepyfile(
        """
    def test_a_thing():
        pass
    """
    )
    run_pytest()
    assert os.path.exists(os.path.join(report_subdir, "index.html"))
    assert os.path.exists(os.path.join(report_subdir, "report.json"))


def test_clean_screenshots_on_startup(pytester, run_pytest, report_subdir):
    screenshot = Path(report_subdir, "screenshots", "foo.png")
    screenshot.parent.mkdir()
    screenshot.touch()
    pytester.makepyfile(
        """
    def test_a_thing():
        pass
    """
    )
    run_pytest()
    assert not screenshot.exists()


def test_options(pytester, run_pytest):
    pytester.makepyfile(
        """
    def test_urls(mailbox_url, mailbox_login_url):
        assert mailbox_url == "http://localhost:8000"
        assert mailbox_login_url == "http://localhost:8000/login"

    def test_wait_timeout(wait_timeout, browser_args):
        assert wait_timeout == 2.5
        assert browser_args["default_wait"] == 2.5
    """
    )
    result = run_pytest(
        "--mailbox-url",
        "http://localhost:8000",
        "--mailbox-login-url",
        "http://localhost:8000/login",
        "--wait-timeout",
        "2.5",
    )
    result.assert_outcomes(passed=2)


def test_default_options(pytester, run_pytest):
    pytester.makepyfile(
        """
    def test_defaults(mailbox_url, mailbox_login_url, browser_class, browser_args):
        assert mailbox_url == "https://www.anytimemailbox.com"
        assert mailbox_login_url == "https://signup.anytimemailbox.com/login"
        assert browser_class.__name__ == "Chrome"
        assert "command_executor" not in browser_args
        assert "--headless" in browser_args["options"].arguments
    """
    )
    result = run_pytest()
    result.assert_outcomes(passed=1)


def test_remote_context(pytester, run_pytest):
    pytester.makepyfile(
        """
    def test_selenium_server(selenium_server):
        assert selenium_server == 'foo'

    def test_browser_class(browser_class):
        assert browser_class.__name__ == "Remote"

    def test_browser_args(browser_args):
        assert browser_args['command_executor'] == "http://foo/wd/hub"
    """
    )
    result = run_pytest("--selenium-server", "foo")
    result.assert_outcomes(passed=3)


@pytest.mark.parametrize("env_value, expected", [("", None), ("localhost:4444", "localhost:4444")])
def test_env_settings(env_value, expected):
    with mock.patch.dict(os.environ, clear=True) as environ:
        environ["REMOTE_SELENIUM"] = env_value
        assert EnvSettings().remote_selenium == expected


def test_env_settings_timeout():
    with mock.patch.dict(os.environ, {"MAILBOX_WAIT_TIMEOUT": "4"}, clear=True):
        assert EnvSettings().mailbox_wait_timeout == 4.0


def test_zero_wait_timeout_from_env(pytester, run_pytest, monkeypatch):
    monkeypatch.setenv("MAILBOX_WAIT_TIMEOUT", "0")
    pytester.makepyfile(
        """
    def test_wait_timeout(wait_timeout, browser_args):
        assert wait_timeout == 0
        assert browser_args["default_wait"] == 0
    """
    )
    result = run_pytest()
    result.assert_outcomes(passed=1)


def test_default_wait_timeout(pytester, run_pytest, monkeypatch):
    monkeypatch.delenv("MAILBOX_WAIT_TIMEOUT", raising=False)
    pytester.makepyfile(
        """
    def test_wait_timeout(wait_timeout):
        assert wait_timeout == 10
    """
    )
    result = run_pytest()
    result.assert_outcomes(passed=1)
