"""Page-side handlers executed inside the browsing surface.

A :class:`PageAgent` is created for every dispatched instruction and holds no
state between instructions; the orchestrator re-instantiates it after each
navigation. Outcomes are reported through the ``emit`` callback.
"""

from __future__ import annotations

from typing import Any, Callable

import structlog
from playwright.async_api import Error as PlaywrightError
from selectolax.parser import HTMLParser

from ..config import PacingConfig, SiteConfig
from ..errors import CrawlerError, MissingElement
from ..messages import (
    AffiliationFound,
    AgentMessage,
    ContinueSearch,
    DiagnosticNote,
    ExtractAffiliation,
    Instruction,
    MoveToNextEntry,
    StartSearch,
)
from .pacing import pause_between
from .waiting import wait_for_element

Emit = Callable[[AgentMessage], None]

_OUTER_HTML_JS = "el => el.outerHTML"

_SUBMIT_FORM_JS = """
el => {
    const form = el.closest('form');
    if (!form) {
        return false;
    }
    form.submit();
    return true;
}
"""

_FAILURE_LABELS = {
    StartSearch.name: "Error during search",
    ContinueSearch.name: "Error during continued search",
    ExtractAffiliation.name: "Error extracting affiliation",
}


def last_name(author: str) -> str:
    parts = author.split()
    return parts[-1] if parts else ""


def name_matches(candidate: str, author: str, *, require_first_initial: bool = False) -> bool:
    """Case-insensitive last-name containment, optionally checking the first initial."""

    parts = author.split()
    if not parts:
        return False
    if parts[-1].lower() not in candidate.lower():
        return False
    if require_first_initial and len(parts) > 1:
        candidate_parts = candidate.split()
        if not candidate_parts:
            return False
        return candidate_parts[0][:1].lower() == parts[0][:1].lower()
    return True


def institution_candidates(
    html: str, keywords: list[str], limit: int = 5
) -> list[tuple[str, str]]:
    """Return ``(class, text)`` for elements whose own text names an institution."""

    tree = HTMLParser(html)
    found: list[tuple[str, str]] = []
    for node in tree.css("body *"):
        if node.tag in ("script", "style", "noscript"):
            continue
        own_text = (node.text(deep=False) or "").strip()
        if not own_text:
            continue
        if any(keyword in own_text for keyword in keywords):
            found.append((node.attributes.get("class") or "", own_text))
            if len(found) >= limit:
                break
    return found


class PageAgent:
    """Perform DOM queries and interactions for a single instruction."""

    def __init__(
        self,
        page: Any,
        site: SiteConfig,
        pacing: PacingConfig,
        emit: Emit,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.page = page
        self.site = site
        self.pacing = pacing
        self._emit = emit
        self.logger = logger or structlog.get_logger("affiliation_crawler.agent")

    async def handle(self, instruction: Instruction) -> None:
        try:
            if isinstance(instruction, StartSearch):
                await self.start_search(instruction.author, instruction.title)
            elif isinstance(instruction, ContinueSearch):
                await self.continue_search(instruction.author, instruction.title)
            elif isinstance(instruction, ExtractAffiliation):
                await self.extract_affiliation()
            else:
                raise TypeError(f"Unsupported instruction: {instruction!r}")
        except (CrawlerError, PlaywrightError) as exc:
            label = _FAILURE_LABELS[instruction.name]
            self._fail(f"{label}: {exc}", instruction=instruction.name)

    # ------------------------------------------------------------------
    async def start_search(self, author: str, title: str) -> None:
        selectors = self.site.selectors
        inputs = self.page.locator(selectors.search_input)
        if await inputs.count() == 0:
            raise MissingElement(selectors.search_input, "Search input not found on page")
        field = inputs.first
        await field.fill("")
        await field.focus()
        query = f"{author} {title}"
        await self._type_like_human(field, query)
        self._note(f"Submitting search form for: {query}")
        submitted = await field.evaluate(_SUBMIT_FORM_JS)
        if not submitted:
            raise MissingElement("form", "Search form not found around the query input")
        # 表单提交后页面跳转，后续步骤由导航完成事件驱动

    async def continue_search(self, author: str, title: str) -> None:
        selectors = self.site.selectors
        await wait_for_element(self.page, selectors.results_list, self.pacing)
        await self._note_attribution_block()
        links = self.page.locator(f"{selectors.author_attribution} a")
        count = await links.count()
        self.logger.debug("author_links_scanned", author=author, title=title, count=count)
        for position in range(count):
            link = links.nth(position)
            text = ((await link.text_content()) or "").strip()
            if not name_matches(
                text, author, require_first_initial=self.site.require_first_initial
            ):
                continue
            href = await link.get_attribute("href")
            await pause_between(self.pacing.click_delay_range)
            self._note(f"Clicking author link: {href}")
            await link.click()
            return
        raise MissingElement(
            selectors.author_attribution, f"Author link for {last_name(author)} not found"
        )

    async def extract_affiliation(self) -> None:
        selectors = self.site.selectors
        await wait_for_element(self.page, selectors.profile_marker, self.pacing)
        await pause_between(self.pacing.click_delay_range)
        self._note(f"Extracting affiliation from: {self.page.url}")
        marker = self.page.locator(selectors.affiliation)
        if await marker.count() > 0:
            affiliation = ((await marker.first.text_content()) or "").strip()
            if affiliation:
                html = await marker.first.evaluate(_OUTER_HTML_JS)
                self._note(f"Found affiliation element:\nText: {affiliation}\nHTML: {html}")
                self._emit(AffiliationFound(affiliation=affiliation))
                return
        candidates = institution_candidates(
            await self.page.content(), self.site.institution_keywords
        )
        lines = [f"Affiliation element ({selectors.affiliation}) not found."]
        if candidates:
            lines.append("Possible affiliation elements found:")
            for position, (css_class, text) in enumerate(candidates, start=1):
                lines.append(f"{position}. Class: {css_class}, Text: {text}")
        else:
            lines.append("No possible affiliation elements found.")
        raise MissingElement(selectors.affiliation, "\n".join(lines))

    # ------------------------------------------------------------------
    async def _note_attribution_block(self) -> None:
        selector = self.site.selectors.author_attribution
        blocks = self.page.locator(selector)
        if await blocks.count() == 0:
            self._note(f"No {selector.lstrip('.')} element found")
            return
        self._note(await blocks.first.evaluate(_OUTER_HTML_JS))

    async def _type_like_human(self, field: Any, text: str) -> None:
        for char in text:
            await field.press_sequentially(char)
            await pause_between(self.pacing.typing_delay_range)

    def _note(self, content: str) -> None:
        self._emit(DiagnosticNote(content=content))

    def _fail(self, content: str, **context: Any) -> None:
        self.logger.info("agent_failure", reason=content, url=self.page.url, **context)
        self._note(content)
        self._emit(MoveToNextEntry())


__all__ = [
    "Emit",
    "PageAgent",
    "institution_candidates",
    "last_name",
    "name_matches",
]
