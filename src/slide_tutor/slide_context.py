"""
Slide Context Module
------------------
In-memory lookup of per-page slide context (title, content, explanation, keywords).
"""

import json
import logging
from dataclasses import dataclass, field, asdict, replace
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_DECK = "/sample.pdf"
BUNDLED_CONTEXTS = Path(__file__).parent / "data" / "sample_contexts.json"

# Upper bound for content derived from raw PDF text
MAX_DERIVED_CONTENT = 1200
MAX_TITLE_LENGTH = 120


class SlideContextNotFound(LookupError):
    """Raised when a page has no context entry."""


@dataclass
class SlideContext:
    """Context describing a single slide."""

    title: str = ""
    content: str = ""
    explanation: str = ""
    keywords: List[str] = field(default_factory=list)
    current_page: Optional[int] = None
    total_pages: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "SlideContext":
        """Build a context from a JSON mapping, accepting camelCase page keys."""
        keywords = data.get("keywords") or []
        if isinstance(keywords, str):
            keywords = [keywords]
        return cls(
            title=data.get("title") or "",
            content=data.get("content") or "",
            explanation=data.get("explanation") or "",
            keywords=[str(k) for k in keywords],
            current_page=data.get("current_page", data.get("currentPage")),
            total_pages=data.get("total_pages", data.get("totalPages")),
        )

    def to_dict(self, camel_case: bool = False) -> Dict:
        data = asdict(self)
        if camel_case:
            data["currentPage"] = data.pop("current_page")
            data["totalPages"] = data.pop("total_pages")
        return data

    def with_page_info(self, current_page: int, total_pages: int) -> "SlideContext":
        """Return a copy carrying the page position within the deck."""
        return replace(self, current_page=current_page, total_pages=total_pages)


def context_from_text(page: int, text: str) -> Optional[SlideContext]:
    """
    Derive a best-effort context from the extracted text of a PDF page.

    Parameters
    ----------
    page : int
        1-based page number, used for the fallback title.
    text : str
        Raw text extracted from the page.

    Returns
    -------
    Optional[SlideContext]
        The derived context, or None if the page has no text.
    """
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    if not lines:
        return None

    # A heading line is short; otherwise the whole page is body text
    if len(lines[0]) <= MAX_TITLE_LENGTH:
        title, body_lines = lines[0], lines[1:]
    else:
        title, body_lines = f"Slide {page}", lines

    body = " ".join(body_lines)
    if len(body) > MAX_DERIVED_CONTENT:
        body = body[:MAX_DERIVED_CONTENT].rstrip() + "..."

    return SlideContext(
        title=title,
        content=body,
        explanation="",
        keywords=[],
    )


class ContextStore:
    """Maps a deck url and a page number to its slide context."""

    def __init__(
        self,
        contexts: Optional[Dict[str, Dict[int, SlideContext]]] = None,
        default_deck: str = DEFAULT_DECK
    ):
        """
        Initialize the store.

        Parameters
        ----------
        contexts : Optional[Dict[str, Dict[int, SlideContext]]]
            Initial contexts keyed by deck url, then page number.
        default_deck : str
            Deck used when a requested deck url is unknown.
        """
        self.contexts: Dict[str, Dict[int, SlideContext]] = contexts or {}
        self.default_deck = default_deck

    @classmethod
    def from_json(cls, path: Union[str, Path] = BUNDLED_CONTEXTS) -> "ContextStore":
        """
        Load contexts from a JSON file shaped ``{deck: {page: context}}``.

        Raises
        ------
        ValueError
            If the file is not valid JSON or has the wrong shape.
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid slide context file {path}: {e}")

        if not isinstance(raw, dict):
            raise ValueError(f"Invalid slide context file {path}: expected an object")

        store = cls()
        for deck, pages in raw.items():
            if not isinstance(pages, dict):
                raise ValueError(f"Invalid pages for deck {deck!r} in {path}")
            for page, data in pages.items():
                store.register(deck, int(page), SlideContext.from_dict(data))

        logger.info(f"Loaded slide contexts for {len(store.contexts)} deck(s) from {path}")
        return store

    def register(self, pdf_url: str, page: int, context: SlideContext) -> None:
        """Add or replace the context of one page."""
        self.contexts.setdefault(pdf_url, {})[page] = context

    def add_deck(self, pdf_url: str, contexts: Dict[int, SlideContext]) -> None:
        """Register a deck, even one without any context, so it never falls back to the default deck."""
        self.contexts[pdf_url] = dict(contexts)
        logger.info(f"Registered deck {pdf_url} with context for {len(contexts)} page(s)")

    def has_deck(self, pdf_url: str) -> bool:
        return pdf_url in self.contexts

    def copy(self) -> "ContextStore":
        """Shallow copy whose deck registrations do not affect this store."""
        return ContextStore(
            {deck: dict(pages) for deck, pages in self.contexts.items()},
            default_deck=self.default_deck
        )

    def lookup(self, pdf_url: Optional[str], page: Union[int, str, None]) -> SlideContext:
        """
        Look up the context of a page.

        Parameters
        ----------
        pdf_url : Optional[str]
            Url (or name) of the deck. Unknown decks fall back to the default deck.
        page : Union[int, str, None]
            1-based page number, as an int or a decimal string.

        Returns
        -------
        SlideContext
            The stored context.

        Raises
        ------
        ValueError
            If a parameter is missing or the page number is invalid.
        SlideContextNotFound
            If the page has no context.
        """
        if not pdf_url or page is None or page == "":
            raise ValueError("missing required parameters")

        page_number = self._parse_page(page)

        deck = self.contexts.get(pdf_url)
        if deck is None:
            deck = self.contexts.get(self.default_deck, {})

        context = deck.get(page_number)
        if context is None:
            raise SlideContextNotFound(f"no context data for page {page_number} of {pdf_url}")
        return context

    @staticmethod
    def _parse_page(page: Union[int, str]) -> int:
        if isinstance(page, bool):
            raise ValueError("invalid page number")
        if isinstance(page, float) and not page.is_integer():
            raise ValueError("invalid page number")
        try:
            page_number = int(page)
        except (TypeError, ValueError):
            raise ValueError("invalid page number")
        if page_number < 1:
            raise ValueError("invalid page number")
        return page_number
