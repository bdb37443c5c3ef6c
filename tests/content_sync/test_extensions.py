"""Tests for the extension registry and the built-in extensions."""

from datetime import datetime, timezone

import pytest

from CmsToIndex.ContentSync.extensions import (
    AttributeExtension,
    UrlResolverExtension,
    get_extension,
    get_registry,
    register_extension,
    unregister_extension,
)
from CmsToIndex.ContentSync.mapping.models import SourceAttr, TargetAttr
from CmsToIndex.ContentSync.node import Environment, EnvironmentNode, parse_node

from fake_repository import page

GRID = "wcm/foundation/components/responsivegrid"


def _node(raw, environment=Environment.AUTHORING, path="/content/site/en/home"):
    return EnvironmentNode(parse_node(path, raw), environment)


def _extract(key, node, source, source_attr=None):
    return get_extension(key).extract(TargetAttr(name="x"), source_attr, node, source)


class TestRegistry:
    def test_builtins_are_registered(self):
        registry = get_registry()
        for key in (
            "content-url",
            "content-id",
            "type-name",
            "creation-date",
            "modification-date",
            "publication-date",
            "delta-date",
            "html2text",
            "page-components",
            "content-tags",
        ):
            assert key in registry

    def test_unknown_key_is_none(self):
        assert get_extension("does-not-exist") is None
        assert get_extension("") is None
        assert get_extension(None) is None

    def test_instances_are_shared(self):
        assert get_extension("content-id") is get_extension("content-id")

    def test_register_and_unregister(self):
        @register_extension("test-constant")
        class Constant:
            def extract(self, target, source_attr, node, source):
                return ["constant"]

        try:
            assert isinstance(get_extension("test-constant"), AttributeExtension)
        finally:
            unregister_extension("test-constant")
        assert get_extension("test-constant") is None


class TestContentUrl:
    def test_url_uses_environment_prefix(self, source):
        author = _extract("content-url", _node(page()), source)
        publish = _extract("content-url", _node(page(), Environment.PUBLISHING), source)
        assert author == ["http://author.test/content/site/en/home.html"]
        assert publish == ["https://www.example.test/content/site/en/home.html"]

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://www.example.test/content/site/en/home.html", "/content/site/en/home"),
            ("https://www.example.test/content/site.v2/en/home", "/content/site.v2/en/home"),
            ("https://www.example.test", "/"),
        ],
    )
    def test_id_from_url(self, source, url, expected):
        resolver = get_extension("content-url")
        assert isinstance(resolver, UrlResolverExtension)
        assert resolver.id_from_url(url, source) == expected


class TestIdentityAndDates:
    def test_id_and_type(self, source):
        node = _node(page())
        assert _extract("content-id", node, source) == ["/content/site/en/home"]
        assert _extract("type-name", node, source) == ["cq:Page"]

    def test_dates_are_iso_utc(self, source):
        node = _node(page())
        assert _extract("creation-date", node, source) == ["2024-01-01T09:00:00Z"]
        assert _extract("modification-date", node, source) == ["2024-01-02T10:00:00Z"]

    def test_modification_falls_back_to_creation(self, source):
        assert _extract("modification-date", _node(page(modified=None)), source) == [
            "2024-01-01T09:00:00Z"
        ]

    def test_publication_date(self, source):
        raw = page(content={"cq:lastReplicated_publish": "Wed Jan 03 2024 08:00:00 GMT+0000"})
        assert _extract("publication-date", _node(raw), source) == ["2024-01-03T08:00:00Z"]


class TestDefaultDeltaDate:
    """Modification, then creation, then now."""

    def test_prefers_modification(self, source):
        delta = get_extension("delta-date").delta_date(_node(page()), source)
        assert delta == datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc)

    def test_then_creation(self, source):
        delta = get_extension("delta-date").delta_date(_node(page(modified=None)), source)
        assert delta == datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

    def test_then_now(self, source):
        raw = page(modified="garbage")
        raw["jcr:created"] = "garbage"
        before = datetime.now(timezone.utc)
        delta = get_extension("delta-date").delta_date(_node(raw), source)
        assert before <= delta <= datetime.now(timezone.utc)


class TestText:
    def test_html2text_reads_property(self, source):
        node = _node(page(content={"description": "<p>Rich <i>text</i></p>"}))
        values = _extract("html2text", node, source, SourceAttr(name="description"))
        assert values == ["Rich text"]

    def test_html2text_missing_property(self, source):
        values = _extract("html2text", _node(page()), source, SourceAttr(name="description"))
        assert values == []

    def test_page_components(self, source):
        root = {
            "main": {
                "sling:resourceType": GRID,
                "text1": {"text": "<p>First</p>"},
                "inner": {"nested": {"text": "<p>Second</p>"}},
            },
            "aside": {"sling:resourceType": GRID, "text": "<p>Third</p>"},
            "header": {"sling:resourceType": "site/components/header", "text": "Skip"},
        }
        node = _node(page(content={"root": root}))
        assert _extract("page-components", node, source) == ["First Second\nThird"]

    def test_page_without_root(self, source):
        assert _extract("page-components", _node(page()), source) == []


class TestContentTags:
    def test_reads_tags_endpoint(self, repository, fetcher, source):
        repository.put_json(
            "/content/site/en/home/jcr:content.tags.json",
            {"tags": [{"tagID": "category:news"}, {"tagID": "topic:ai"}, {"title": "x"}]},
        )
        assert _extract("content-tags", _node(page()), source) == ["category:news", "topic:ai"]

    def test_missing_endpoint(self, repository, fetcher, source):
        assert _extract("content-tags", _node(page()), source) == []
