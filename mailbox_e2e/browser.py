import json
import pprint
import time
from contextlib import contextmanager
from enum import Enum
from hashlib import sha256
from logging import getLogger
from typing import Any, Callable, Iterator, List, Optional, Tuple, Type, Union

import selenium.webdriver.remote.webdriver
from pydantic import BaseModel
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.common.by import By as By_
from selenium.webdriver.remote.webelement import WebElement
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from mailbox_e2e.models import Image

logger = getLogger(__name__)

__all__ = [
    "MailboxBrowser",
    "Waiter",
    "Probe",
    "BrowserError",
    "WaitTimeout",
    "LaunchError",
    "Chrome",
    "Remote",
    "Locator",
    "By",
    "USER_AGENT",
    "chrome_options",
    "launch_browser",
    "browser_session",
]

DEFAULT_WAIT = 10
POLL_FREQUENCY = 0.25

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36"
)


class By(Enum):
    """
    An Enum based on selenium's By object, so that values can be explicitly declared.
    """

    ID = By_.ID
    XPATH = By_.XPATH
    LINK_TEXT = By_.LINK_TEXT
    PARTIAL_LINK_TEXT = By_.PARTIAL_LINK_TEXT
    NAME = By_.NAME
    TAG_NAME = By_.TAG_NAME
    CLASS_NAME = By_.CLASS_NAME
    CSS_SELECTOR = By_.CSS_SELECTOR


class Locator(BaseModel):
    """
    A selenium search locator: a search method plus the value to search for.
    It unpacks straight into selenium's find_element/find_elements calls and into the
    expected_conditions helpers, and knows how to describe itself for error messages.

    Usage:

        danger_locator = Locator(search_method=By.CSS_SELECTOR, search_value='div.alert.alert-danger')
        browser.find_element(*danger_locator.payload)
    """

    search_method: By
    search_value: Optional[str] = None

    @property
    def payload(self) -> Tuple[str, str]:
        return self.search_method.value, self.search_value or ""

    @property
    def description(self) -> str:
        desc = f"{self.search_method.value}"
        if self.search_value:
            desc = f'{desc} whose value is "{self.search_value}"'
        return desc


class Probe:
    """
    The outcome of a wait that is allowed to come up empty.
    found -- whether the condition was satisfied in time
    value -- whatever the condition returned, if it was satisfied
    description -- what was waited for
    """

    def __init__(self, found: bool, description: str, value: Any = None):
        self.found = found
        self.description = description
        self.value = value

    def __bool__(self):
        return self.found

    def __repr__(self):
        state = "found" if self.found else "timed out"
        return f"Probe({self.description!r}, {state})"


class MailboxBrowser(selenium.webdriver.remote.webdriver.WebDriver):
    """
    A selenium webdriver with an explicit-wait toolkit and
    automatic screenshot capturing.
    """

    pngs: List[Image] = []  # screenshots for the running test; the plugin resets this after each test

    def __init__(self, *args, default_wait: float = DEFAULT_WAIT, poll_frequency: float = POLL_FREQUENCY, **kwargs):
        super().__init__(*args, **kwargs)
        try:
            self.maximize_window()
        except WebDriverException:
            # The session is already running; don't leave it behind.
            self.quit()
            raise
        self.autocapture = True  # automatically capture screenshots
        self.default_wait = default_wait
        self.poll_frequency = poll_frequency

    @contextmanager
    def autocapture_off(self):
        """Context manager temporarily disabling automatic screenshot generation."""
        previous_autocapture = self.autocapture  # for nesting
        self.autocapture = False
        try:
            yield
        finally:
            self.autocapture = previous_autocapture

    def _resolve_timeout(self, timeout_in: Optional[float]):
        if timeout_in is None:
            return self.default_wait
        return timeout_in

    def find_element(self, by: Union[By, str] = By_.ID, value: Optional[Any] = None) -> WebElement:
        """Overrides the base find_element method to support the 'By' enum"""
        if isinstance(by, By):
            by = by.value
        return super().find_element(by, value)

    def find_elements(self, by: Union[By, str] = By_.ID, value: Optional[Any] = None) -> List[WebElement]:
        """Overrides the base find_elements method to support the 'By' enum"""
        if isinstance(by, By):
            by = by.value
        return super().find_elements(by, value)

    def wait_until(
        self,
        condition: Callable[[Any], Any],
        description: str,
        timeout: Optional[float] = None,
        capture_delay: float = 0,
        **kwargs,
    ) -> Any:
        """
        Poll `condition(driver)` until it returns something truthy, and return that.
        Raises WaitTimeout naming `description` if `timeout` seconds pass first.
        """
        timeout = self._resolve_timeout(timeout)
        if "caption" not in kwargs:
            kwargs["caption"] = f"Wait for {description}"
        with self.wrap_exception(description):
            wait = Waiter(self, timeout, poll_frequency=self.poll_frequency)
            return wait.until(condition, description=description, capture_delay=capture_delay, **kwargs)

    def wait_for(self, locator: Locator, **kwargs) -> WebElement:
        """Wait for the located element to be displayed."""
        return self.wait_until(
            EC.visibility_of_element_located(locator.payload), f"{locator.description} to be visible", **kwargs
        )

    def wait_for_present(self, locator: Locator, **kwargs) -> WebElement:
        """Wait for the located element to exist in the DOM, displayed or not."""
        return self.wait_until(
            EC.presence_of_element_located(locator.payload), f"{locator.description} to be present", **kwargs
        )

    def wait_for_clickable(self, locator: Locator, **kwargs) -> WebElement:
        return self.wait_until(
            EC.element_to_be_clickable(locator.payload), f"{locator.description} to be clickable", **kwargs
        )

    def wait_for_any(self, locator: Locator, **kwargs) -> List[WebElement]:
        """Wait until at least one element matches; returns every match."""
        return self.wait_until(
            lambda driver: driver.find_elements(*locator.payload),
            f"at least one {locator.description}",
            **kwargs,
        )

    def probe(
        self,
        condition: Callable[[Any], Any],
        description: str,
        timeout: Optional[float] = None,
        caption: Optional[str] = None,
    ) -> Probe:
        """
        Like wait_until, but a timeout is an answer rather than an error, and its
        screenshot is not flagged as one. Anything other than a timeout still raises.
        """
        wait = Waiter(self, self._resolve_timeout(timeout), poll_frequency=self.poll_frequency)
        try:
            value = wait.until(
                condition,
                description=description,
                caption=caption or f"Check for {description}",
                timeout_is_error=False,
            )
        except WaitTimeout:
            logger.info(f"Probe for {description} timed out")
            return Probe(found=False, description=description)
        return Probe(found=True, description=description, value=value)

    def click(self, locator: Locator, **kwargs) -> WebElement:
        if "caption" not in kwargs:
            kwargs["caption"] = f"Click on {locator.description}"

        element = self.wait_for_clickable(locator, **kwargs)
        element.click()
        return element

    def fill(self, element: WebElement, value: str):
        """Replace the contents of an input element."""
        element.clear()
        element.send_keys(value)

    @contextmanager
    def _resize_for_screenshot(self):
        original_size = self.get_window_size()
        required_width = self.execute_script("return document.body.parentNode.scrollWidth")
        required_height = self.execute_script("return document.body.parentNode.scrollHeight")
        self.set_window_size(required_width, required_height)
        try:
            yield
        finally:
            self.set_window_size(original_size["width"], original_size["height"])

    def get(self, url: str, snap: bool = False, caption: Optional[str] = None):
        logger.info(f"Navigating to {url}")
        super().get(url)
        if self.autocapture and snap:
            if not caption:
                caption = f"Render {url}"
            self.snap(caption=caption)

    def snap(self, caption: Optional[str] = None, is_error: bool = False):
        """
        Store the screenshot as a base64 png in memory.
        Resize the window ahead of time so the full page shows in the shot.
        """
        with self._resize_for_screenshot():
            b64_image = self.find_element(By_.TAG_NAME, "body").screenshot_as_base64
        # The digest doubles as the filename, so identical screens are only written once.
        b64_sha = sha256(b64_image.encode("UTF-8")).hexdigest()
        self.pngs.append(
            Image(
                url=f"screenshots/{b64_sha}.png",
                base64=b64_image,
                caption=caption,
                is_error=is_error,
            )
        )

    @contextmanager
    def wrap_exception(self, message):
        """Wrap any exceptions caught in a BrowserError with message."""
        try:
            yield
        except Exception as e:
            if not isinstance(e, BrowserError):
                err = BrowserError(self, message)
                err.orig = e
            else:
                err = e

            # Only capture this screenshot if the error occurred
            # in a context that didn't automatically log the error.
            if not self.pngs or not self.pngs[-1].is_error:
                try:
                    self.snap(caption=f"Python error: {type(e).__name__}", is_error=True)
                except WebDriverException:  # pragma: no cover
                    logger.warning(f"Could not take screenshot after encountering error {e=}.")

            raise err from None


class Waiter(WebDriverWait):
    """WebDriverWait that grabs a screenshot after every wait and names what it was waiting for."""

    def __init__(self, driver, timeout, *args, **kwargs):
        super().__init__(driver, timeout, *args, **kwargs)
        self.__driver = driver

    def until(
        self,
        method: Callable[[Any], Any],
        description: str = "condition",
        capture_delay: float = 0,
        caption: Optional[str] = None,
        timeout_is_error: bool = True,
        **kwargs,
    ) -> Any:
        """
        Every time we wait, take a screenshot of the outcome.
        capture_delay - when we're done waiting, wait just a little longer
          for whatever animations to take effect.
        timeout_is_error - whether a timeout's screenshot is flagged as an error.
        """
        caption = caption or ""
        err = None
        try:
            value = super().until(method, **kwargs)
        except TimeoutException as e:
            err = WaitTimeout(self.__driver, f"Timed out after {self._timeout}s waiting for {description}")
            err.orig = e
            raise err from None
        except Exception as e:
            err = BrowserError(self.__driver, str(e))
            err.orig = e
            raise err from None
        finally:
            is_error = err is not None and (timeout_is_error or not isinstance(err, WaitTimeout))
            if self.__driver.autocapture or is_error:
                if capture_delay:
                    time.sleep(capture_delay)
                try:
                    self.__driver.snap(caption=caption, is_error=is_error)
                except WebDriverException:  # pragma: no cover
                    logger.warning(f"Could not capture screenshot for '{caption}'")
        return value


class BrowserError(Exception):
    """Error to raise for a meaningful browser error report."""

    def __init__(self, browser: MailboxBrowser, message, *args):
        self.message = message
        self.url = browser.current_url
        self.logs = browser.get_log("browser")
        self.log_last_http(browser)
        self.orig = None
        super().__init__(message, self.url, self.logs, *args)

    def __str__(self):
        return f"{self.message} (at {self.url})"

    @staticmethod
    def log_last_http(browser):
        """Log the last http transaction as an error."""

        if "har" not in browser.log_types:
            return
        logs = browser.get_log("har")
        if not logs:
            return
        last_message = json.loads(logs[-1].get("message", {}))
        entries = last_message.get("log", {}).get("entries", [])
        if not entries:
            return
        message = pprint.pformat(entries[-1])
        logger.error(f"Last HTTP transaction: {message}")


class WaitTimeout(BrowserError):
    """A wait condition was not satisfied before its timeout."""


class LaunchError(Exception):
    """The browser session could not be created."""


class Chrome(MailboxBrowser, webdriver.Chrome):
    pass


class Remote(MailboxBrowser, webdriver.Remote):
    pass


def chrome_options(user_agent: str = USER_AGENT) -> webdriver.ChromeOptions:
    """
    The ChromeOptions every session is launched with: headless, maximized,
    without the automation markers, and with the sandboxing, shared memory,
    web security and compositor features that trip up containers turned off.
    """
    options = webdriver.ChromeOptions()
    options.add_argument("--headless")
    options.add_argument("--start-maximized")
    options.add_argument("--disable-blink-features=AutomationControlled")
    options.add_argument(f"--user-agent={user_agent}")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--disable-web-security")
    options.add_argument("--disable-features=VizDisplayCompositor")
    return options


def launch_browser(browser_class: Type[MailboxBrowser], **browser_args) -> MailboxBrowser:
    """Start a browser session, raising LaunchError if the browser cannot be started."""
    try:
        browser = browser_class(**browser_args)
    except WebDriverException as e:
        raise LaunchError(f"Could not launch {browser_class.__name__}: {e.msg}") from e
    logger.info(f"Launched {browser_class.__name__} session {browser.session_id}")
    return browser


@contextmanager
def browser_session(build_browser: Callable[[], MailboxBrowser]) -> Iterator[MailboxBrowser]:
    """
    Open a browser session for the duration of the block; the session is quit exactly
    once on the way out, whether or not the block raised.

        with browser_session(lambda: launch_browser(Chrome, options=chrome_options())) as browser:
            browser.get('https://www.anytimemailbox.com')
    """
    browser = build_browser()
    try:
        yield browser
    finally:
        logger.info(f"Closing browser session {browser.session_id}")
        browser.quit()
