"""Search tool - query the web and return result titles and URLs."""
from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import parse_qs, urlparse

import httpx
from bs4 import BeautifulSoup

from deduce_agent.logging import get_logger
from deduce_agent.steps import ExecutionResult
from deduce_agent.tools.http import open_client
from deduce_agent.tools.registry import Tool

logger = get_logger("tools.search")

SEARCH_URL = "https://html.duckduckgo.com/html/"


@dataclass
class SearchHit:
    title: str
    url: str


def _resolve_link(href: str) -> str:
    """Unwrap DuckDuckGo's ``/l/?uddg=<target>`` redirect links."""
    if href.startswith("//"):
        href = "https:" + href
    parsed = urlparse(href)
    if parsed.path.startswith("/l/"):
        target = parse_qs(parsed.query).get("uddg")
        if target:
            return target[0]
    return href


def parse_results(html: str, limit: int) -> list[SearchHit]:
    """Extract result links from a DuckDuckGo HTML results page."""
    soup = BeautifulSoup(html, "html.parser")
    hits: list[SearchHit] = []
    for anchor in soup.select("a.result__a"):
        href = anchor.get("href")
        title = anchor.get_text(" ", strip=True)
        if not href or not title:
            continue
        hits.append(SearchHit(title=title, url=_resolve_link(str(href))))
        if len(hits) >= limit:
            break
    return hits


class SearchTool(Tool):
    """Query a search engine for pages matching the input text."""

    def __init__(
        self,
        max_results: int = 10,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.max_results = max_results
        self.timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return "search"

    @property
    def display_name(self) -> str:
        return "Search"

    @property
    def description_for_model(self) -> str:
        return (
            "A search engine to query information from internet. Input is any "
            "text search query. Output are urls and their titles."
        )

    async def execute(self, input: str) -> ExecutionResult:
        query = input.strip()
        if not query:
            raise ValueError("search query is empty")

        async with open_client(self._client, self.timeout) as client:
            response = await client.post(SEARCH_URL, data={"q": query})
            response.raise_for_status()

        hits = parse_results(response.text, self.max_results)
        logger.debug("Search %r returned %d results", query, len(hits))
        return ExecutionResult(
            result_for_model="\n".join(f"{hit.title}\n{hit.url}\n" for hit in hits),
            result_for_human=f"{len(hits)} results",
        )
