"""
The Anytime Mailbox scenarios. Each one drives a MailboxBrowser through a single
user journey and either returns a ScenarioResult or raises: WaitTimeout when the
page never reached the expected state, AssertionError when it did but showed the
wrong thing.
"""
from logging import getLogger

from selenium.webdriver.common.keys import Keys
from selenium.webdriver.support import expected_conditions as EC

from mailbox_e2e.browser import By, Locator, MailboxBrowser
from mailbox_e2e.models import Outcome, ScenarioResult

logger = getLogger(__name__)

BASE_URL = "https://www.anytimemailbox.com"
LOGIN_URL = "https://signup.anytimemailbox.com/login"

FOUND_PLACE = "Manila"
MISSING_PLACE = "Atlantisnothere"
INVALID_EMAIL = "invalid@test.com"
INVALID_PASSWORD = "invalidpassword123"

LOOKUP_ERROR_TEXT = "We are unable to locate the place you entered"
LOGIN_ERROR_TEXT = "Invalid credentials, please try again."
CAPTCHA_NOTE = "CAPTCHA protection detected"


class Locators:
    lookup = Locator(search_method=By.ID, search_value="lookup")
    active_suggestion = Locator(search_method=By.CSS_SELECTOR, search_value="li.active a[role='option']")
    location_count = Locator(search_method=By.CSS_SELECTOR, search_value=".location-count-display")
    result_cards = Locator(
        search_method=By.CSS_SELECTOR,
        search_value="[class*='location'], [class*='mailbox'], [class*='address']",
    )
    lookup_error = Locator(search_method=By.ID, search_value="alterr")
    email = Locator(search_method=By.NAME, search_value="f_uid")
    password = Locator(search_method=By.NAME, search_value="f_pwd")
    login_button = Locator(search_method=By.CSS_SELECTOR, search_value="button[type='button']")
    captcha = Locator(
        search_method=By.CSS_SELECTOR,
        search_value="[class*='captcha'], [id*='captcha'], [class*='recaptcha'], iframe[src*='recaptcha']",
    )
    danger_alert = Locator(search_method=By.CSS_SELECTOR, search_value="div.alert.alert-danger")


def _type_lookup(browser: MailboxBrowser, base_url: str, place: str):
    browser.get(base_url, snap=True)
    lookup = browser.wait_for_present(Locators.lookup)
    browser.fill(lookup, place)
    return lookup


def search_location(browser: MailboxBrowser, base_url: str = BASE_URL, place: str = FOUND_PLACE) -> ScenarioResult:
    """Search for a place the site knows about and pick it from the autocomplete list."""
    _type_lookup(browser, base_url, place)

    browser.click(Locators.active_suggestion)

    count_display = browser.wait_for(Locators.location_count)
    assert count_display.is_displayed(), "Location count display should be visible"
    count_text = count_display.text
    assert (
        "locations found" in count_text or "location found" in count_text
    ), f'Expected "locations found" or "location found" in the location count, got "{count_text}"'

    results = browser.wait_for_any(Locators.result_cards)
    assert len(results) > 0, f"Expected location results for {place}, found none"
    logger.info(f"{place}: {count_text} ({len(results)} matching elements)")

    return ScenarioResult(name="successful location search")


def search_missing_location(
    browser: MailboxBrowser, base_url: str = BASE_URL, place: str = MISSING_PLACE
) -> ScenarioResult:
    """Search for a place that does not exist; the site should say so instead of listing results."""
    lookup = _type_lookup(browser, base_url, place)
    lookup.send_keys(Keys.ENTER)

    error = browser.wait_for(Locators.lookup_error)
    error_text = error.text
    assert LOOKUP_ERROR_TEXT in error_text, f'Expected "{LOOKUP_ERROR_TEXT}" in the lookup error, got "{error_text}"'
    assert error.is_displayed(), "Lookup error message should be visible"

    return ScenarioResult(name="unsuccessful location search")


def attempt_invalid_login(
    browser: MailboxBrowser,
    login_url: str = LOGIN_URL,
    email: str = INVALID_EMAIL,
    password: str = INVALID_PASSWORD,
) -> ScenarioResult:
    """
    Log in with credentials that do not exist. The site should refuse them, either with a
    danger alert or, failing that, by leaving us on the login page.

    If the page carries a CAPTCHA nothing is submitted and the result is a conditional pass.
    """
    name = "failed login"
    browser.get(login_url, snap=True)

    email_field = browser.wait_for_present(Locators.email)
    password_field = browser.wait_for_present(Locators.password)
    login_button = browser.wait_for_present(Locators.login_button)
    assert email_field is not None, "Email field should be present"
    assert password_field is not None, "Password field should be present"
    assert login_button is not None, "Login button should be present"

    if browser.find_elements(*Locators.captcha.payload):
        logger.warning(f"{CAPTCHA_NOTE} on {login_url}; not submitting credentials")
        return ScenarioResult(name=name, outcome=Outcome.conditional_pass, note=CAPTCHA_NOTE)

    browser.fill(email_field, email)
    browser.fill(password_field, password)
    browser.click(Locators.login_button)

    alert = browser.probe(
        EC.presence_of_element_located(Locators.danger_alert.payload),
        f"{Locators.danger_alert.description} to be present",
    )
    if alert.found:
        alert_text = alert.value.text
        assert LOGIN_ERROR_TEXT in alert_text, f'Expected "{LOGIN_ERROR_TEXT}" in the login alert, got "{alert_text}"'
        return ScenarioResult(name=name)

    current_url = browser.current_url
    logger.warning(f"No login error alert appeared; checking that {current_url} is still the login page")
    assert "login" in current_url, f'Expected to remain on the login page, but the URL is "{current_url}"'
    return ScenarioResult(name=name, note="No error alert shown; remained on the login page")
