from __future__ import annotations

from typing import Dict, List

import pytest

import image_crawler
from image_crawler import NavigationError, RenderedPage


class FakeSession:
    """Stands in for BrowserSession; pages missing from the map fail to load."""

    def __init__(self, pages: Dict[str, RenderedPage]) -> None:
        self.pages = pages
        self.rendered: List[str] = []

    def render(self, url: str) -> RenderedPage:
        self.rendered.append(url)
        page = self.pages.get(url)
        if page is None:
            raise NavigationError(url, "net::ERR_NAME_NOT_RESOLVED")
        return page


class FakeResponse:
    def __init__(self, headers: Dict[str, str]) -> None:
        self.headers = headers
        self.status_code = 200


def make_page(url: str, links=(), images=()) -> RenderedPage:
    anchors = "".join(f'<a href="{href}">x</a>' for href in links)
    return RenderedPage(
        requested_url=url,
        final_url=url,
        status_code=200,
        html=f"<html><body>{anchors}</body></html>",
        images=tuple(images),
    )


def img(src: str = "", width: int = 100, height: int = 200, data_src: str = "") -> dict:
    return {"src": src, "data_src": data_src, "natural_width": width, "natural_height": height}


@pytest.fixture
def head_with_length(monkeypatch):
    """Patch every HEAD request to answer with the given Content-Length."""

    calls: List[str] = []

    def install(length):
        headers = {} if length is None else {"Content-Length": str(length)}

        def fake_head(url, **kwargs):
            calls.append(url)
            return FakeResponse(headers)

        def fake_session_head(self, url, **kwargs):
            return fake_head(url, **kwargs)

        monkeypatch.setattr(image_crawler.requests.Session, "head", fake_session_head)
        monkeypatch.setattr(image_crawler.requests, "head", fake_head)
        return calls

    return install
