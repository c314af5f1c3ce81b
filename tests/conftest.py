"""Shared fixtures and browser fakes for the test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from affiliation_crawler.config import (
    ConfigLocator,
    ConfigRepository,
    GlobalConfig,
    PacingConfig,
)
from affiliation_crawler.infra import KeyValueStore, SQLiteManager
from affiliation_crawler.records import Record


@pytest.fixture
def sample_global_config(tmp_path: Path) -> GlobalConfig:
    return GlobalConfig(
        pacing=PacingConfig(
            settle_delay=0.0,
            advance_delay_range=(0.0, 0.0),
            typing_delay_range=(0.0, 0.0),
            click_delay_range=(0.0, 0.0),
            poll_interval=0.01,
            wait_timeout=0.05,
        ),
        store_path=tmp_path / "store.db",
        outputs_dir=tmp_path / "outputs",
    )


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("AFFILIATION_CRAWLER_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    yield repository


@pytest.fixture
def kv_store(tmp_path: Path) -> Iterable[KeyValueStore]:
    manager = SQLiteManager()
    store = KeyValueStore(manager, tmp_path / "store.db")
    yield store
    manager.close_all()


@pytest.fixture
def make_records() -> Callable[..., list[Record]]:
    def _builder(*rows: tuple[str, str, str | None]) -> list[Record]:
        return [Record(author=a, title=t, affiliation=aff) for a, t, aff in rows]

    return _builder


class FakeElement:
    """Minimal stand-in for a Playwright element locator."""

    def __init__(
        self,
        text: str = "",
        href: str | None = None,
        *,
        in_form: bool = True,
        on_click: Callable[[], None] | None = None,
        on_submit: Callable[[], None] | None = None,
        html: str | None = None,
    ) -> None:
        self.text = text
        self.html = html
        self.href = href
        self.in_form = in_form
        self.on_click = on_click
        self.on_submit = on_submit
        self.typed: list[str] = []
        self.filled: list[str] = []
        self.focused = False
        self.clicked = False
        self.submitted = False

    async def fill(self, value: str) -> None:
        self.filled.append(value)
        self.text = value

    async def focus(self) -> None:
        self.focused = True

    async def press_sequentially(self, text: str) -> None:
        self.typed.append(text)
        self.text += text

    async def evaluate(self, expression: str) -> Any:
        if "closest('form')" in expression:
            self.submitted = self.in_form
            if self.in_form and self.on_submit is not None:
                self.on_submit()
            return self.in_form
        if "outerHTML" in expression:
            return self.html if self.html is not None else f"<div>{self.text}</div>"
        return None

    async def text_content(self) -> str:
        return self.text

    async def get_attribute(self, name: str) -> str | None:
        return self.href if name == "href" else None

    async def click(self) -> None:
        self.clicked = True
        if self.on_click is not None:
            self.on_click()


class FakeLocator:
    def __init__(self, elements: list[FakeElement]) -> None:
        self._elements = elements

    async def count(self) -> int:
        return len(self._elements)

    @property
    def first(self) -> FakeElement:
        return self._elements[0]

    def nth(self, index: int) -> FakeElement:
        return self._elements[index]


class FakePage:
    """Page fake mapping CSS selectors to lists of fake elements."""

    def __init__(
        self,
        url: str = "https://scholar.google.com/scholar?hl=en",
        elements: dict[str, list[FakeElement]] | None = None,
        html: str = "<html><body></body></html>",
    ) -> None:
        self.url = url
        self.elements: dict[str, list[FakeElement]] = elements or {}
        self.html = html
        self.handlers: dict[str, list[Callable[..., Any]]] = {}

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self.elements.get(selector, []))

    async def content(self) -> str:
        return self.html

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers.setdefault(event, []).append(handler)


@pytest.fixture
def fake_page() -> Callable[..., FakePage]:
    return FakePage


@pytest.fixture
def fake_element() -> Callable[..., FakeElement]:
    return FakeElement
