"""Driver de navegador sobre Playwright (async_api).

Um único navegador Chromium por PlaywrightBrowserFactory (lançado sob
demanda); cada driver possui seu próprio context + page. Erros de
página propagam para o ActionExecutor, que os converte em resultado.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from karen_ai.config.settings import Settings
from karen_ai.domain.protocols.browser import (
    BrowserDriver,
    BrowserLaunchError,
    NoActiveSessionError,
)
from karen_ai.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)

LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
)

# title/description/link de cada resultado (usado pelos adapters)
_QUERY_ALL_SCRIPT = """
elements => elements.map(el => ({
    title: el.querySelector('h3')?.textContent?.trim() || '',
    description: el.querySelector('p')?.textContent?.trim() || '',
    link: el.querySelector('a')?.href || ''
}))
"""


def screenshot_filename(name: str, now: datetime | None = None) -> str:
    """`<name>_<timestamp ISO com : e . trocados por ->.png`."""
    moment = now or datetime.now(tz=UTC)
    stamp = moment.strftime("%Y-%m-%dT%H-%M-%S-") + f"{moment.microsecond // 1000:03d}Z"
    return f"{name}_{stamp}.png"


class PlaywrightBrowserFactory:
    """Dono do processo Playwright e do navegador compartilhado."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()
        self.screenshot_dir = Path(settings.screenshot_dir)

    @property
    def is_initialized(self) -> bool:
        return self._browser is not None

    async def get_browser(self) -> Browser:
        """Lança o navegador na primeira chamada.

        Raises:
            BrowserLaunchError: falha ao iniciar o engine (propaga)
        """
        async with self._lock:
            if self._browser is not None:
                return self._browser

            logger.info("browser_launching", extra={"headless": self._settings.browser_headless})
            try:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self._settings.browser_headless,
                    args=list(LAUNCH_ARGS),
                )
            except PlaywrightError as e:
                logger.error("browser_launch_failed", extra={"error": str(e)})
                if self._playwright is not None:
                    await self._playwright.stop()
                    self._playwright = None
                raise BrowserLaunchError(f"Browser launch failed: {e}") from e

            self.screenshot_dir.mkdir(parents=True, exist_ok=True)
            logger.info("browser_launched")
            return self._browser

    def create_driver(self, session_id: str) -> PlaywrightBrowserDriver:
        return PlaywrightBrowserDriver(self, session_id, self._settings)

    async def get_browser_statistics(self) -> dict[str, Any]:
        """Status, versão, contexts, páginas abertas e total de screenshots."""
        if self._browser is None:
            return {"status": "not_initialized"}
        try:
            contexts = self._browser.contexts
            pages: list[dict[str, str]] = []
            for context in contexts:
                for page in context.pages:
                    try:
                        title = await page.title()
                    except PlaywrightError:
                        title = "Unknown"
                    pages.append({"url": page.url, "title": title})
            screenshot_count = (
                len(list(self.screenshot_dir.iterdir())) if self.screenshot_dir.exists() else 0
            )
            return {
                "status": "active",
                "browserVersion": self._browser.version,
                "contexts": len(contexts),
                "pages": pages,
                "screenshotCount": screenshot_count,
            }
        except PlaywrightError as e:
            logger.error("browser_statistics_failed", extra={"error": str(e)})
            return {"status": "error", "message": str(e)}

    async def shutdown(self) -> None:
        """Fecha o navegador e o Playwright (idempotente)."""
        async with self._lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
                logger.info("browser_shutdown")
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None


class PlaywrightBrowserDriver(BrowserDriver):
    """Sessão (context + page) sobre o navegador compartilhado."""

    def __init__(
        self, factory: PlaywrightBrowserFactory, session_id: str, settings: Settings
    ) -> None:
        self._factory = factory
        self._session_id = session_id
        self._settings = settings
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def is_open(self) -> bool:
        return self._page is not None

    def _require_page(self) -> Page:
        if self._page is None:
            raise NoActiveSessionError()
        return self._page

    async def open(self) -> None:
        if self._page is not None:
            return
        browser = await self._factory.get_browser()
        self._context = await browser.new_context(
            user_agent=self._settings.browser_user_agent,
            viewport={
                "width": self._settings.browser_viewport_width,
                "height": self._settings.browser_viewport_height,
            },
            device_scale_factor=1,
        )
        self._page = await self._context.new_page()
        logger.info("browser_session_created", extra={"session_id": short_id(self._session_id)})

    async def close(self) -> None:
        context, self._context, self._page = self._context, None, None
        if context is None:
            return
        try:
            await context.close()
        except PlaywrightError as e:
            logger.warning(
                "browser_session_close_failed",
                extra={"session_id": short_id(self._session_id), "error": str(e)},
            )
            return
        logger.info("browser_session_closed", extra={"session_id": short_id(self._session_id)})

    async def current_url(self) -> str | None:
        return self._page.url if self._page is not None else None

    async def navigate(self, url: str, timeout_ms: int) -> None:
        page = self._require_page()
        try:
            await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
        except PlaywrightError as e:
            raise RuntimeError(f"Navigation failed: {e}") from e

    async def fill(self, selector: str, value: str, timeout_ms: int) -> None:
        page = self._require_page()
        await page.wait_for_selector(selector, timeout=timeout_ms)
        await page.fill(selector, value)

    async def click(self, selector: str, timeout_ms: int) -> None:
        page = self._require_page()
        await page.wait_for_selector(selector, timeout=timeout_ms)
        await page.click(selector)

    async def extract_text(self, selector: str, timeout_ms: int) -> str | None:
        page = self._require_page()
        await page.wait_for_selector(selector, timeout=timeout_ms)
        return await page.text_content(selector)

    async def screenshot(self, name: str) -> str:
        page = self._require_page()
        directory = self._factory.screenshot_dir
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / screenshot_filename(name)
        await page.screenshot(path=str(path), full_page=True)
        logger.info("screenshot_taken", extra={"screenshot_name": name})
        return str(path)

    async def wait(self, ms: int) -> None:
        page = self._require_page()
        await page.wait_for_timeout(ms)

    async def query(self, selector: str) -> bool:
        page = self._require_page()
        return await page.query_selector(selector) is not None

    async def query_all(self, selector: str) -> list[dict[str, Any]]:
        page = self._require_page()
        try:
            return await page.eval_on_selector_all(selector, _QUERY_ALL_SCRIPT)
        except PlaywrightError:
            return []

    async def wait_for(self, selector: str, timeout_ms: int) -> bool:
        page = self._require_page()
        try:
            await page.wait_for_selector(selector, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return False
        return True
