"""
Browser ID Resolver
===================

Last-resort post ID resolution through a real (headless) Chrome session.
Share links such as /share/p/<token> only redirect to the numeric post
after client-side scripts run, which plain HTTP never sees.

Disabled unless FACEBOOK_BROWSER_FALLBACK is set.
"""

import logging
import time
from typing import Optional

from selenium import webdriver
from selenium.webdriver.chrome.service import Service as ChromeService
from selenium.common.exceptions import WebDriverException

try:
    from webdriver_manager.chrome import ChromeDriverManager
except ImportError:
    ChromeDriverManager = None

from ..config import get_settings
from .patterns import match_high_success

logger = logging.getLogger(__name__)


class BrowserIdResolver:
    """Resolve a post ID by loading the URL in Chrome with session cookies."""

    def __init__(self, headless: Optional[bool] = None):
        settings = get_settings()
        self._settings = settings.browser
        self._user_agent = settings.facebook.desktop_user_agent
        self._headless = self._settings.headless if headless is None else headless

    def _create_driver(self) -> webdriver.Chrome:
        """Create Chrome driver."""
        options = webdriver.ChromeOptions()
        if self._headless:
            options.add_argument("--headless=new")
        options.add_argument("--disable-gpu")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument("--window-size=1920,1080")
        options.add_argument(f"user-agent={self._user_agent}")

        if ChromeDriverManager:
            service = ChromeService(ChromeDriverManager().install())
            driver = webdriver.Chrome(service=service, options=options)
        else:
            driver = webdriver.Chrome(options=options)

        driver.set_page_load_timeout(self._settings.page_load_timeout)
        return driver

    def resolve(self, url: str, c_user_cookie: Optional[str] = None, xs_cookie: Optional[str] = None) -> str:
        """Return the resolved post ID, or "" if the page gave nothing usable."""
        driver = None
        try:
            driver = self._create_driver()

            if c_user_cookie and xs_cookie:
                # Cookies can only be set for the domain currently loaded
                driver.get("https://www.facebook.com/")
                driver.add_cookie({"name": "c_user", "value": c_user_cookie, "domain": ".facebook.com", "path": "/"})
                driver.add_cookie({"name": "xs", "value": xs_cookie, "domain": ".facebook.com", "path": "/"})

            driver.get(url)
            # Let client-side redirects settle
            time.sleep(3)

            found = match_high_success(driver.current_url, c_user_cookie, limit=5)
            if found:
                return found

            return match_high_success(driver.page_source, c_user_cookie)

        except WebDriverException as e:
            logger.error(f"Browser extraction failed: {e.msg if hasattr(e, 'msg') else e}")
            return ""
        finally:
            if driver is not None:
                try:
                    driver.quit()
                except WebDriverException:
                    pass
