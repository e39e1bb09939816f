"""Browse tool - fetch a web page and return its readable text."""
from __future__ import annotations

import re

import httpx
from bs4 import BeautifulSoup

from deduce_agent.logging import get_logger
from deduce_agent.steps import ExecutionResult
from deduce_agent.tools.http import open_client
from deduce_agent.tools.registry import Tool

logger = get_logger("tools.browse")

# Page chrome that never carries article text
_NOISE_TAGS = ["script", "style", "noscript", "nav", "footer", "header", "aside", "form"]

_BLANK_LINES = re.compile(r"\n{3,}")


def extract_readable(html: str) -> tuple[str, str]:
    """Return ``(title, text)`` of the main content of an HTML page."""
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""

    for tag in soup(_NOISE_TAGS):
        tag.decompose()

    root = soup.find("article") or soup.find("main") or soup.body or soup
    text = root.get_text("\n", strip=True)
    return title, _BLANK_LINES.sub("\n\n", text).strip()


class BrowseTool(Tool):
    """Read the content of a URL."""

    def __init__(
        self,
        max_chars: int = 3000,
        timeout: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.max_chars = max_chars
        self.timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return "browse"

    @property
    def display_name(self) -> str:
        return "Browse"

    @property
    def description_for_model(self) -> str:
        return "Read content of URL from Internet. Input is the URL of the web page."

    async def execute(self, input: str) -> ExecutionResult:
        url = input.strip()
        if not url.startswith(("http://", "https://")):
            raise ValueError("Invalid URL.")

        async with open_client(self._client, self.timeout) as client:
            response = await client.get(url)
            response.raise_for_status()

        title, text = extract_readable(response.text)
        logger.debug("Fetched %s (%d chars of text)", url, len(text))
        return ExecutionResult(
            result_for_model=text[: self.max_chars] if text else "(no content)",
            result_for_human=title or "(no title)",
        )
