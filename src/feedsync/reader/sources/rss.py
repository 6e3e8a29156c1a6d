"""RSS 2.0 / Atom feed source.

Only the fields the reader stores are read: channel title and icon, and per
item the id, title, link, publish date, summary and content.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from urllib.parse import urljoin, urlparse
from xml.etree.ElementTree import Element

from defusedxml import ElementTree

from feedsync.errors import FeedFetchError
from feedsync.http.fetcher import HttpFetcher
from feedsync.reader.models import Feed, SourceArticle

logger = logging.getLogger(__name__)

UNKNOWN_PUBLISHED_AT = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(slots=True)
class FeedDocument:
    """Channel-level fields plus the items of one downloaded feed."""

    url: str
    title: str
    icon: str | None = None
    articles: list[SourceArticle] = field(default_factory=list)


class RssFeedSource:
    """Downloads feeds over HTTP and reads their RSS 2.0 or Atom items."""

    def __init__(self, fetcher: HttpFetcher) -> None:
        self._fetcher = fetcher

    def fetch(self, feed: Feed) -> list[SourceArticle]:
        return self.fetch_document(feed.url).articles

    def fetch_document(self, url: str) -> FeedDocument:
        document = parse_feed(self._fetcher.fetch_text(url), url)
        logger.debug("Read %d items from %s", len(document.articles), url)
        return document


def parse_feed(raw_xml: str, feed_url: str) -> FeedDocument:
    """Parse an RSS or Atom document; anything else raises `FeedFetchError`."""

    try:
        root = ElementTree.fromstring(raw_xml)
    except ElementTree.ParseError as error:
        raise FeedFetchError(
            f"Invalid RSS/Atom XML from {feed_url}",
            code="invalid_feed_xml",
            feed_url=feed_url,
        ) from error

    kind = _tag(root)
    if kind != "feed" and (kind == "rss" or any(_descendants(root, "item"))):
        return _read_rss(root, feed_url)
    if kind == "feed" or any(_descendants(root, "entry")):
        return _read_atom(root, feed_url)
    raise FeedFetchError(
        f"Unsupported feed format from {feed_url}",
        code="unsupported_feed_format",
        feed_url=feed_url,
    )


def _read_rss(root: Element, feed_url: str) -> FeedDocument:
    container = _first(root, "channel")
    channel = _Fields(container if container is not None else root)
    image = _first(channel.element, "image")
    articles = []
    for item in map(_Fields, _descendants(root, "item")):
        articles.append(
            _article(
                item,
                feed_url=feed_url,
                source_id=item.text("guid"),
                link=item.text("link"),
                raw_date=item.text("pubdate", "date"),
                summary_tag="description",
                content_tag="encoded",
            ),
        )
    return FeedDocument(
        url=feed_url,
        title=channel.text("title") or _host(feed_url),
        icon=_Fields(image).text("url") if image is not None else None,
        articles=articles,
    )


def _read_atom(root: Element, feed_url: str) -> FeedDocument:
    head = _Fields(root)
    articles = [
        _article(
            entry,
            feed_url=feed_url,
            source_id=entry.text("id"),
            link=_entry_link(entry.element),
            raw_date=entry.text("published", "updated"),
            summary_tag="summary",
            content_tag="content",
        )
        for entry in map(_Fields, _descendants(root, "entry"))
    ]
    icon = head.text("icon", "logo")
    return FeedDocument(
        url=feed_url,
        title=head.text("title") or _host(feed_url),
        icon=urljoin(feed_url, icon) if icon else None,
        articles=articles,
    )


def _article(
    item: _Fields,
    *,
    feed_url: str,
    source_id: str | None,
    link: str | None,
    raw_date: str | None,
    summary_tag: str,
    content_tag: str,
) -> SourceArticle:
    title = item.text("title") or "Untitled"
    return SourceArticle(
        external_id=build_external_id(source_id, link, title, raw_date, feed_url=feed_url),
        title=title,
        link=link or feed_url,
        published_at=parse_published_at(raw_date),
        summary=item.text(summary_tag),
        content=item.text(content_tag),
    )


def build_external_id(
    guid: str | None,
    link: str | None,
    title: str,
    raw_published_at: str | None,
    *,
    feed_url: str = "",
) -> str:
    """Source-provided id of an item: its guid, else its link, else a content hash.

    The hash covers the feed url, title and raw date, so items without guid or
    link still get distinct ids within a feed.
    """

    for candidate in (guid, link):
        if candidate and candidate.strip():
            return candidate.strip()
    fingerprint = "\n".join((feed_url, title, (raw_published_at or "").strip())).encode()
    return "generated:" + hashlib.sha1(fingerprint, usedforsecurity=False).hexdigest()


def parse_published_at(raw_value: str | None) -> datetime:
    """RFC 822 or ISO 8601 timestamp as aware UTC; unparseable dates map to the epoch."""

    if not raw_value:
        return UNKNOWN_PUBLISHED_AT
    parsers: tuple[Callable[[str], datetime], ...] = (
        parsedate_to_datetime,
        datetime.fromisoformat,
    )
    for parser in parsers:
        try:
            parsed = parser(raw_value)
        except (TypeError, ValueError):
            continue
        return parsed.replace(tzinfo=UTC) if parsed.tzinfo is None else parsed.astimezone(UTC)
    return UNKNOWN_PUBLISHED_AT


class _Fields:
    """Direct children of an element indexed by namespace-free lowercase tag."""

    def __init__(self, element: Element) -> None:
        self.element = element
        self._children: dict[str, list[Element]] = {}
        for child in element:
            self._children.setdefault(_tag(child), []).append(child)

    def text(self, *tags: str) -> str | None:
        """Stripped text of the first non-empty child among `tags`, in order."""

        for tag in tags:
            for child in self._children.get(tag, ()):
                value = "".join(child.itertext()).strip()
                if value:
                    return value
        return None


def _entry_link(entry: Element) -> str | None:
    # Atom entries may carry several links; prefer rel="alternate" (the default).
    others: list[str] = []
    for link in _children(entry, "link"):
        href = link.attrib.get("href", "").strip()
        if not href:
            continue
        if link.attrib.get("rel", "alternate").strip().lower() in ("", "alternate"):
            return href
        others.append(href)
    return others[0] if others else None


def _tag(element: Element) -> str:
    return element.tag.rpartition("}")[2].lower()


def _children(element: Element, tag: str) -> Iterator[Element]:
    return (child for child in element if _tag(child) == tag)


def _descendants(element: Element, tag: str) -> Iterator[Element]:
    return (node for node in element.iter() if _tag(node) == tag)


def _first(element: Element, tag: str) -> Element | None:
    return next(_children(element, tag), None)


def _host(url: str) -> str:
    return urlparse(url).netloc.lower() or "unknown"
