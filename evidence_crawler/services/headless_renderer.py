"""
Headless Render Service - Playwright Chromium rendering for JS-heavy pages

render(url) returns the rendered document HTML. Failures (timeouts, browser
crashes, navigation errors) surface as SoftFetchFailure so the fetch resolver
can fall through to its next stage.
"""
import asyncio
import logging
import time
from typing import Optional

from playwright.async_api import async_playwright, TimeoutError as PlaywrightTimeoutError

from ..exceptions import SoftFetchFailure

logger = logging.getLogger(__name__)

MOBILE_USER_AGENT = (
    'Mozilla/5.0 (iPhone; CPU iPhone OS 15_0 like Mac OS X) AppleWebKit/605.1.15 '
    '(KHTML, like Gecko) Version/15.0 Mobile/15E148 Safari/604.1'
)

CHROMIUM_ARGS = ['--no-sandbox', '--disable-dev-shm-usage', '--disable-blink-features=AutomationControlled']

STEALTH_SCRIPT = """
    Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
    Object.defineProperty(navigator, 'plugins', {get: () => [1, 2, 3, 4, 5]});
"""


class PlaywrightRenderer:
    """
    Browser-based rendering via Playwright

    Uses iPhone device emulation with a mobile user agent; many sites serve
    lighter, less-guarded markup to mobile clients.
    """

    DEVICE_NAME = 'iPhone 13 Pro'
    FALLBACK_DEVICE = 'iPhone 12 Pro'

    def __init__(self, timeout_ms: int = 30000, headless: bool = True,
                 network_idle_ms: int = 5000, settle_seconds: float = 2.0):
        self.timeout_ms = timeout_ms
        self.headless = headless
        self.network_idle_ms = network_idle_ms
        self.settle_seconds = settle_seconds

    async def render(self, url: str, timeout_ms: Optional[int] = None) -> str:
        """
        Render a URL and return the final document HTML.

        Raises:
            SoftFetchFailure: on timeout or any browser error
        """
        timeout_ms = timeout_ms or self.timeout_ms
        start_time = time.time()

        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(
                    headless=self.headless,
                    args=CHROMIUM_ARGS,
                )
                try:
                    device = p.devices.get(self.DEVICE_NAME, p.devices[self.FALLBACK_DEVICE])
                    # Device presets carry their own user_agent; ours replaces it
                    context = await browser.new_context(**{**device, 'user_agent': MOBILE_USER_AGENT})
                    page = await context.new_page()
                    await page.add_init_script(STEALTH_SCRIPT)

                    await page.goto(url, timeout=timeout_ms, wait_until='domcontentloaded')

                    try:
                        await page.wait_for_load_state('networkidle', timeout=self.network_idle_ms)
                    except PlaywrightTimeoutError:
                        pass  # long-polling pages never go idle

                    # Wait for late JS execution
                    await asyncio.sleep(self.settle_seconds)

                    html = await page.content()
                finally:
                    await browser.close()

        except PlaywrightTimeoutError as e:
            logger.warning(f"⏱️ Playwright timeout for {url}")
            raise SoftFetchFailure(f"Render timeout: {url}") from e
        except Exception as e:
            logger.warning(f"❌ Playwright render failed for {url}: {e}")
            raise SoftFetchFailure(f"Render failed: {e}") from e

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(f"🎭 Rendered {url} ({len(html)} chars, {elapsed_ms:.0f}ms)")
        return html
