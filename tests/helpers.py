"""Test helpers: an in-memory stand-in for a Playwright page."""

from typing import Dict, List, Optional

from playwright.async_api import Error as PWError


class FakeLocator:
    def __init__(self, texts: List[Optional[str]]):
        self._texts = texts

    async def count(self) -> int:
        return len(self._texts)

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(self._texts[:1])

    async def text_content(self, timeout=None) -> Optional[str]:
        return self._texts[0] if self._texts else None


class FakePage:
    """Serves canned anchors for the list page and canned selector text per
    detail URL. URLs in `fail_urls` raise like a navigation timeout."""

    def __init__(
        self,
        links: Optional[List[Dict[str, str]]] = None,
        details: Optional[Dict[str, Dict[str, List[Optional[str]]]]] = None,
        scroll_height: int = 1200,
        fail_urls=(),
    ):
        self.links = links or []
        self.details = details or {}
        self.scroll_height = scroll_height
        self.fail_urls = set(fail_urls)
        self.url = "about:blank"
        self.visited: List[str] = []
        self.goto_calls: List[dict] = []
        self.scroll_steps: List[int] = []
        self.link_selector: Optional[str] = None

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        self.goto_calls.append({"url": url, "wait_until": wait_until, "timeout": timeout})
        if url in self.fail_urls:
            raise PWError(f"Timeout {timeout}ms exceeded navigating to {url}")
        self.url = url

    async def evaluate(self, expression, arg=None):
        if "scrollBy" in expression:
            self.scroll_steps.append(arg)
            return None
        if "scrollHeight" in expression:
            return self.scroll_height
        raise AssertionError(f"unexpected evaluate: {expression}")

    async def eval_on_selector_all(self, selector, expression):
        self.link_selector = selector
        return self.links

    def locator(self, selector) -> FakeLocator:
        return FakeLocator(self.details.get(self.url, {}).get(selector, []))
