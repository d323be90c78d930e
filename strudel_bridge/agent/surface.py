"""
Editor surfaces.

An EditorSurface is the agent's handle on the live editing page. Strategies
only ever talk to the page through `evaluate` (run a script in the page) and
`press` (native keystrokes), so any page driver can back it.

PlaywrightSurface drives a real Chromium page with Playwright.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Most specific editor integration first
EDITOR_SELECTORS: List[str] = [
    ".cm-editor",
    ".CodeMirror",
    '[data-language="javascript"]',
    '[contenteditable="true"]',
    'textarea[data-mode="javascript"]',
    ".monaco-editor",
    "textarea",
]

LOCATE_EDITOR_SCRIPT = """
(selectors) => {
    for (const selector of selectors) {
        const element = document.querySelector(selector);
        if (element) {
            return { selector, className: String(element.className || element.tagName) };
        }
    }
    return null;
}
"""

PRIME_AUDIO_SCRIPT = """
async () => {
    try {
        if (document.body) {
            document.body.click();
            document.body.focus();
        }
        let ctx = window.audioContext || window.strudelAudioContext;
        if (!ctx) {
            const Ctor = window.AudioContext || window.webkitAudioContext;
            if (!Ctor) return false;
            ctx = new Ctor();
        }
        if (ctx.state === 'suspended') {
            await ctx.resume();
        }
        return ctx.state === 'running';
    } catch (e) {
        return false;
    }
}
"""

DESCRIBE_SCRIPT = """
() => ({ url: window.location.href, userAgent: navigator.userAgent, title: document.title })
"""


class EditorSurface(ABC):
    """Abstract handle on the target editing page."""

    def __init__(self) -> None:
        self.editor_selector: Optional[str] = None
        self.editor_type: str = "none"
        self.audio_ready: bool = False

    @abstractmethod
    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a script in the page and return its result."""
        pass

    @abstractmethod
    async def press(self, keys: str) -> None:
        """Send a native key chord, e.g. "Control+Enter"."""
        pass

    async def close(self) -> None:
        pass

    @property
    def editor_found(self) -> bool:
        return self.editor_selector is not None

    async def locate_editor(self) -> bool:
        """Find the editor element and remember its selector."""
        try:
            found = await self.evaluate(LOCATE_EDITOR_SCRIPT, EDITOR_SELECTORS)
        except Exception as e:
            logger.debug(f"Editor lookup failed: {e}")
            found = None

        if not found:
            if self.editor_selector is not None:
                logger.warning("Editor element disappeared")
            self.editor_selector = None
            self.editor_type = "none"
            return False

        if found.get("selector") != self.editor_selector:
            logger.info(f"Editor found: {found.get('selector')} ({found.get('className')})")
        self.editor_selector = found.get("selector")
        self.editor_type = found.get("className") or "unknown"
        return True

    async def prime_audio(self) -> bool:
        """Best-effort unlock of the page's audio context."""
        try:
            self.audio_ready = bool(await self.evaluate(PRIME_AUDIO_SCRIPT))
        except Exception as e:
            logger.warning(f"Audio initialization failed: {e}")
            self.audio_ready = False
        return self.audio_ready

    async def describe(self) -> Dict[str, Any]:
        try:
            info = await self.evaluate(DESCRIBE_SCRIPT) or {}
        except Exception as e:
            logger.debug(f"Page description failed: {e}")
            info = {}
        return {
            "url": info.get("url"),
            "user_agent": info.get("userAgent"),
            "title": info.get("title"),
            "editor_found": self.editor_found,
            "editor_type": self.editor_type,
            "audio_ready": self.audio_ready,
        }

    async def wait_until_ready(self, timeout: float = 30.0, interval: float = 1.0) -> bool:
        """Poll for the editor until it appears or the timeout passes."""
        deadline = time.monotonic() + timeout
        while True:
            if await self.locate_editor():
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(interval)


class PlaywrightSurface(EditorSurface):
    """
    EditorSurface backed by a Playwright page.

    Usage:
        surface = await PlaywrightSurface.launch("https://strudel.cc", headless=False)
        try:
            await surface.wait_until_ready()
            ...
        finally:
            await surface.close()
    """

    def __init__(self, page: Any, owner: Optional[Any] = None, browser: Optional[Any] = None):
        super().__init__()
        self.page = page
        self._owner = owner
        self._browser = browser

    @classmethod
    async def launch(cls, url: str, headless: bool = False) -> "PlaywrightSurface":
        try:
            from playwright.async_api import async_playwright
        except ImportError:
            raise ImportError(
                "Playwright required. Install with: "
                "pip install playwright && playwright install chromium"
            )

        owner = await async_playwright().start()
        browser = await owner.chromium.launch(
            headless=headless,
            # Scripted evaluation is not a user gesture
            args=["--autoplay-policy=no-user-gesture-required"],
        )
        context = await browser.new_context(viewport={"width": 1280, "height": 800})
        page = await context.new_page()
        await page.goto(url, wait_until="domcontentloaded")
        logger.info(f"Opened {url} (headless={headless})")
        return cls(page, owner=owner, browser=browser)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self.page.evaluate(script, arg)

    async def press(self, keys: str) -> None:
        await self.page.keyboard.press(keys)

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._owner is not None:
            await self._owner.stop()
            self._owner = None
