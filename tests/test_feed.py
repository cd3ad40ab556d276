from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from shared.feed import FeedCache, build_rss


def _post(**overrides):
    post = {
        "slug": "hello-world",
        "title": "Hello & welcome",
        "text": "Body text",
        "summary": "Short summary",
        "link": None,
        "pub_date": datetime(2026, 5, 4, 10, 0, tzinfo=timezone.utc),
        "updated_at": None,
    }
    post.update(overrides)
    return post


def _items(xml):
    return ET.fromstring(xml.encode("utf-8")).findall("./channel/item")


def test_build_rss_renders_items():
    xml = build_rss([_post()], base_url="https://example.com/", title="Feed")

    channel = ET.fromstring(xml.encode("utf-8")).find("channel")
    assert channel.findtext("title") == "Feed"
    (item,) = _items(xml)
    assert item.findtext("title") == "Hello & welcome"
    assert item.findtext("link") == "https://example.com/posts/hello-world"
    assert item.findtext("description") == "Short summary"
    assert item.find("guid").text == "hello-world"
    assert item.find("guid").get("isPermaLink") == "false"
    assert parsedate_to_datetime(item.findtext("pubDate")) == datetime(2026, 5, 4, 10, 0, tzinfo=timezone.utc)


def test_build_rss_keeps_given_order():
    posts = [
        _post(slug="newest", pub_date=datetime(2026, 5, 5, tzinfo=timezone.utc)),
        _post(slug="older", pub_date=datetime(2026, 5, 1, tzinfo=timezone.utc)),
    ]

    xml = build_rss(posts, base_url="https://example.com", title="Feed")

    assert [item.find("guid").text for item in _items(xml)] == ["newest", "older"]


def test_build_rss_title_falls_back_to_text_and_naive_dates_are_utc():
    post = _post(title=None, text="Untitled   post\nbody", pub_date=datetime(2026, 1, 2, 3, 4))

    (item,) = _items(build_rss([post], base_url="https://example.com", title="Feed"))

    assert item.findtext("title") == "Untitled post body"
    assert parsedate_to_datetime(item.findtext("pubDate")) == datetime(2026, 1, 2, 3, 4, tzinfo=timezone.utc)


def test_build_rss_uses_explicit_link():
    (item,) = _items(build_rss([_post(link="https://source.example.org/a")], base_url="https://example.com", title="Feed"))

    assert item.findtext("link") == "https://source.example.org/a"


def test_build_rss_empty_feed():
    xml = build_rss([], base_url="https://example.com", title="Feed")

    assert _items(xml) == []


def test_feed_cache_rebuilds_only_after_invalidate():
    builds = []

    def builder():
        builds.append(1)
        return f"<rss>{len(builds)}</rss>"

    cache = FeedCache(builder)
    first = cache.get()
    assert cache.get() is first
    assert len(builds) == 1

    cache.invalidate()
    second = cache.get()

    assert len(builds) == 2
    assert second.etag != first.etag
    assert second.etag.startswith('W/"')
    assert second.last_modified.tzinfo is not None
    assert second.last_modified.microsecond == 0


def test_invalidate_during_build_is_not_lost():
    documents = ["<rss>old</rss>", "<rss>new</rss>"]
    cache = None

    def builder():
        xml = documents.pop(0)
        if xml == "<rss>old</rss>":
            # A publish lands while the stale document is being rendered.
            cache.invalidate()
        return xml

    cache = FeedCache(builder)

    assert cache.get().xml == "<rss>old</rss>"
    assert cache.get().xml == "<rss>new</rss>"
    assert cache.get().xml == "<rss>new</rss>"
