"""Tests for node parsing, dependency extraction and data-path projection."""

from datetime import datetime, timezone

import pytest

from CmsToIndex.ContentSync.node import (
    Environment,
    EnvironmentNode,
    IndexEvent,
    parse_node,
    parse_repository_date,
    to_iso_utc,
)
from CmsToIndex.ContentSync.tree import find_references, render_scalar, render_values

from fake_repository import page

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestDependencies:
    """Dependency scan over arbitrary JSON."""

    def test_collects_nested_content_references(self):
        raw = {
            "jcr:content": {
                "fileReference": "/content/dam/logo.png",
                "links": ["/content/site/en/about", "https://example.test", 7],
                "deep": {"items": [{"target": "/content/site/en/about"}]},
            },
            "other": "/etc/designs/site",
        }
        assert find_references(raw, "/content") == frozenset(
            {"/content/dam/logo.png", "/content/site/en/about"}
        )

    def test_parse_node_records_dependencies_without_content(self):
        node = parse_node("/content/site/folder", {"ref": "/content/dam/a.pdf"})
        assert node.dependencies == frozenset({"/content/dam/a.pdf"})
        assert not node.has_content


class TestDates:
    def test_parse_repository_date(self):
        parsed = parse_repository_date("Tue Jan 02 2024 10:00:00 GMT+0000")
        assert parsed == datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc)

    def test_unparseable_date_is_none(self):
        assert parse_repository_date("2024-01-02") is None
        assert parse_repository_date(12345) is None

    @pytest.mark.parametrize("number, month", list(enumerate(MONTHS, start=1)))
    def test_english_month_names(self, number, month):
        parsed = parse_repository_date(f"Mon {month} 01 2024 00:00:00 GMT+0000")
        assert parsed == datetime(2024, number, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "value",
        [
            "Lun Jan 01 2024 10:00:00 GMT+0000",
            "Mon Mär 01 2024 10:00:00 GMT+0000",
            "Mon Jan 32 2024 10:00:00 GMT+0000",
            "Mon Jan 01 2024 10:00:00 UTC",
        ],
    )
    def test_names_outside_english_tables_are_rejected(self, value):
        assert parse_repository_date(value) is None

    def test_to_iso_utc_converts_offsets(self):
        parsed = parse_repository_date("Tue Jan 02 2024 12:00:00 GMT+0200")
        assert to_iso_utc(parsed) == "2024-01-02T10:00:00Z"


class TestParseNode:
    """Field extraction from the content object."""

    def test_page_fields(self):
        node = parse_node("/content/site/en/home", page("Home"), now=NOW)
        assert node.type == "cq:Page"
        assert node.title == "Home"
        assert node.delivered is True
        assert node.created_at == datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
        assert node.last_modified_at == datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc)
        assert node.url == "/content/site/en/home.html"

    def test_path_cannot_be_reassigned(self):
        node = parse_node("/content/site/en/home", page("Home"), now=NOW)
        with pytest.raises(AttributeError):
            node.path = "/content/site/en/other"
        node.title = "Renamed"
        assert node.path == "/content/site/en/home"

    def test_publication_falls_back_to_now(self):
        node = parse_node("/content/site/en/home", page(), now=NOW)
        assert node.publication_at == NOW

    def test_publication_from_replication_date(self):
        raw = page(content={"cq:lastReplicated": "Wed Jan 03 2024 08:00:00 GMT+0000"})
        node = parse_node("/content/site/en/home", raw, now=NOW)
        assert node.publication_at == datetime(2024, 1, 3, 8, 0, tzinfo=timezone.utc)

    def test_not_delivered_unless_both_actions_activate(self):
        raw = page()
        raw["jcr:content"]["cq:lastReplicationAction_publish"] = "Deactivate"
        assert parse_node("/content/site/en/home", raw).delivered is False

    def test_events_force_delivery_state(self):
        published = parse_node("/p", page(activated=False), IndexEvent.PUBLISHING)
        unpublished = parse_node("/p", page(activated=True), IndexEvent.UNPUBLISHING)
        assert published.delivered is True
        assert unpublished.delivered is False

    def test_bad_dates_are_absent(self):
        raw = page(modified="yesterday")
        raw["jcr:created"] = "not a date"
        node = parse_node("/content/site/en/home", raw, now=NOW)
        assert node.created_at is None
        assert node.last_modified_at is None

    def test_content_fragment_flags(self):
        raw = {
            "jcr:primaryType": "dam:Asset",
            "jcr:content": {
                "contentFragment": True,
                "data": {"cq:model": "/conf/site/models/article"},
            },
        }
        node = parse_node("/content/dam/site/article", raw)
        assert node.is_content_fragment is True
        assert node.model == "/conf/site/models/article"


class TestDataPath:
    def _fragment(self):
        raw = {
            "jcr:primaryType": "dam:Asset",
            "jcr:content": {
                "data": {
                    "master": {
                        "headline": "Hello",
                        "headline@LastModified": 123,
                        "published": "Tue Jan 02 2024 10:00:00 GMT+0000",
                    }
                }
            },
        }
        return parse_node("/content/dam/site/article", raw)

    def test_projects_attributes_and_normalises_dates(self):
        node = self._fragment()
        assert node.set_data_path("data/master") is True
        assert node.attributes == {"headline": "Hello", "published": "2024-01-02T10:00:00Z"}

    def test_missing_segment_keeps_previous_attributes(self):
        node = self._fragment()
        node.set_data_path("data/master")
        assert node.set_data_path("data/variation") is False
        assert node.attributes["headline"] == "Hello"

    def test_scalar_segment_aborts(self):
        node = self._fragment()
        assert node.set_data_path("data/master/headline") is False
        assert node.attributes == {}


class TestRendering:
    def test_scalars(self):
        assert render_scalar(True) == "true"
        assert render_scalar(3) == "3"
        assert render_scalar({"a": 1}) is None

    def test_arrays_render_element_wise(self):
        assert render_values(["a", 2, False]) == ["a", "2", "false"]


class TestEnvironmentNode:
    def test_prefix_and_site_follow_environment(self, source):
        node = parse_node("/content/site/en/home", page())
        author = EnvironmentNode(node, Environment.AUTHORING)
        publish = EnvironmentNode(node, Environment.PUBLISHING)
        assert author.url_prefix(source) == "http://author.test"
        assert publish.site(source) == "corporate-publish"
