import pytest

from mailbox_e2e.browser import MailboxBrowser

from .fakes import FakeBrowser, FakeMailboxSite


@pytest.fixture
def site() -> FakeMailboxSite:
    return FakeMailboxSite()


@pytest.fixture
def fake_browser(site) -> FakeBrowser:
    browser = FakeBrowser(site=site)
    try:
        yield browser
    finally:
        MailboxBrowser.pngs = []
