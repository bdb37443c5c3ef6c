"""Tests for delta fingerprints and job construction."""

from datetime import datetime, timezone

import pytest

from CmsToIndex.ContentSync.config.models import ContentSyncConfig
from CmsToIndex.ContentSync.extensions import register_extension, unregister_extension
from CmsToIndex.ContentSync.jobs import JobAction, JobBuilder, epoch_millis, flatten_attributes
from CmsToIndex.ContentSync.mapping.models import (
    ContentMapping,
    MappingModel,
    SourceAttr,
    TargetAttr,
)
from CmsToIndex.ContentSync.mapping.values import TargetAttrValueMap
from CmsToIndex.ContentSync.node import Environment, EnvironmentNode, IndexEvent, parse_node
from CmsToIndex.ContentSync.session import build_session
from CmsToIndex.ContentSync.state import IndexRecord

from fake_repository import page

HOME = "/content/site/en/home"
MODIFIED_MILLIS = str(epoch_millis(datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc)))


class TestEpochMillis:
    def test_aware_and_naive(self):
        aware = datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)
        assert epoch_millis(aware) == 1000
        assert epoch_millis(datetime(1970, 1, 1, 0, 0, 1)) == 1000

    def test_known_instant(self):
        assert MODIFIED_MILLIS == "1704189600000"


class TestFlattenAttributes:
    def test_scalars_then_lists(self):
        values = TargetAttrValueMap()
        values.add("title", ["Home"])
        values.add("tags", ["a", "b", "c"])
        values.add("empty", ["", "  "])
        assert flatten_attributes(values, "Corporate") == {
            "site": "Corporate",
            "title": "Home",
            "tags": ["a", "b", "c"],
        }

    def test_blank_site_is_not_injected(self):
        assert flatten_attributes(TargetAttrValueMap(), "  ") == {}
        assert flatten_attributes(TargetAttrValueMap(), None) == {}


class TestDeltaDate:
    """Custom delta extension first, default fingerprint otherwise."""

    @pytest.fixture
    def delta_session(self, config, source):
        def _make(key):
            mapping = config.mappings[source.name].model_copy(update={"delta_extension": key})
            updated = config.model_copy(update={"mappings": {source.name: mapping}})
            return build_session(updated, source)

        return _make

    def test_default_uses_modification(self, builder, session):
        node = EnvironmentNode(parse_node(HOME, page()), Environment.AUTHORING)
        assert builder.delta_date(session, node) == datetime(2024, 1, 2, 10, tzinfo=timezone.utc)

    def test_custom_extension_wins(self, builder, delta_session):
        @register_extension("test-fixed-delta")
        class Fixed:
            def delta_date(self, node, source):
                return datetime(2030, 1, 1, tzinfo=timezone.utc)

        try:
            node = EnvironmentNode(parse_node(HOME, page()), Environment.AUTHORING)
            delta = builder.delta_date(delta_session("test-fixed-delta"), node)
            assert delta == datetime(2030, 1, 1, tzinfo=timezone.utc)
        finally:
            unregister_extension("test-fixed-delta")

    def test_failing_extension_falls_back(self, builder, delta_session):
        @register_extension("test-broken-delta")
        class Broken:
            def delta_date(self, node, source):
                raise RuntimeError("boom")

        try:
            node = EnvironmentNode(parse_node(HOME, page()), Environment.AUTHORING)
            delta = builder.delta_date(delta_session("test-broken-delta"), node)
            assert delta == datetime(2024, 1, 2, 10, tzinfo=timezone.utc)
        finally:
            unregister_extension("test-broken-delta")

    def test_unknown_extension_falls_back(self, builder, delta_session):
        node = EnvironmentNode(parse_node(HOME, page()), Environment.AUTHORING)
        delta = builder.delta_date(delta_session("no-such-delta"), node)
        assert delta == datetime(2024, 1, 2, 10, tzinfo=timezone.utc)


class TestIndexNode:
    """Environment fan-out of :meth:`JobBuilder.index_node`."""

    def test_one_create_per_environment(self, builder, session, sink):
        jobs = builder.index_node(session, parse_node(HOME, page("Home")))

        assert [job.action for job in jobs] == [JobAction.CREATE, JobAction.CREATE]
        assert [job.environment for job in jobs] == [
            Environment.AUTHORING,
            Environment.PUBLISHING,
        ]
        assert [job.sites for job in jobs] == [("corporate-author",), ("corporate-publish",)]
        assert sink.jobs == jobs

    def test_create_job_contents(self, builder, session):
        author, publish = builder.index_node(session, parse_node(HOME, page("Home")))

        assert author.object_id == HOME
        assert author.locale == "en_US"
        assert author.checksum == MODIFIED_MILLIS
        assert author.attributes["url"] == "http://author.test/content/site/en/home.html"
        assert publish.attributes["url"] == "https://www.example.test/content/site/en/home.html"
        assert author.attributes["title"] == "Home"
        assert [spec.name for spec in author.specs] == ["id", "url", "title"]
        assert author.source == "corporate"
        assert author.provider == "AEM"

    def test_checksum_is_stable(self, builder, session):
        first = builder.index_node(session, parse_node(HOME, page()))
        second = builder.index_node(session, parse_node(HOME, page()))
        assert [job.checksum for job in first] == [job.checksum for job in second]

    def test_site_name_is_injected(self, builder, config, source):
        session = build_session(config, source, site_name="Corporate")
        author, _ = builder.index_node(session, parse_node(HOME, page()))
        assert author.attributes["site"] == "Corporate"

    def test_locale_follows_path(self, builder, session):
        jobs = builder.index_node(session, parse_node("/content/site/pt/inicio", page()))
        assert {job.locale for job in jobs} == {"pt_BR"}

    def test_undelivered_in_full_run_skips_publish(self, builder, session):
        jobs = builder.index_node(session, parse_node(HOME, page(activated=False)))
        assert [job.environment for job in jobs] == [Environment.AUTHORING]

    def test_undelivered_standalone_forces_delete(self, builder, config, source, sink):
        session = build_session(config, source, standalone=True)
        raw = page(activated=False, content={"ref": "/content/dam/logo.png"})

        jobs = builder.index_node(session, parse_node(HOME, raw))

        assert [job.action for job in jobs] == [JobAction.CREATE, JobAction.DELETE]
        delete = jobs[1]
        assert delete.environment is Environment.PUBLISHING
        assert delete.sites == ("corporate-publish",)
        assert delete.dependencies == frozenset({"/content/dam/logo.png"})
        assert dict(delete.attributes) == {}
        assert len(sink) == 2

    def test_unpublishing_event_forces_delete(self, builder, config, source):
        session = build_session(config, source, standalone=True)
        node = parse_node(HOME, page(activated=True), IndexEvent.UNPUBLISHING)
        actions = [job.action for job in builder.index_node(session, node)]
        assert actions == [JobAction.CREATE, JobAction.DELETE]

    def test_author_only_source(self, builder, config, source):
        author_only = source.model_copy(update={"publish": False})
        session = build_session(config, author_only)
        jobs = builder.index_node(session, parse_node(HOME, page()))
        assert [job.environment for job in jobs] == [Environment.AUTHORING]

    def test_outside_root_is_ignored(self, builder, session, sink):
        assert builder.index_node(session, parse_node("/content/other/home", page())) == []
        assert len(sink) == 0

    def test_missing_content_type_is_ignored(self, builder, config, source):
        session = build_session(config, source.model_copy(update={"content_type": None}))
        assert builder.index_node(session, parse_node(HOME, page())) == []


class TestAssets:
    """Asset sources index only static files and content fragments."""

    @pytest.fixture
    def asset_config(self, source):
        mapping = ContentMapping(
            models=[
                MappingModel(
                    type="dam:Asset",
                    target_attrs=[
                        TargetAttr(name="title", source_attrs=[SourceAttr(name="dc:title")])
                    ],
                )
            ]
        )
        return ContentSyncConfig(sources=[source], mappings={source.name: mapping})

    def _asset_source(self, source, sub_type):
        return source.model_copy(
            update={
                "root_path": "/content/dam/site",
                "content_type": "dam:Asset",
                "sub_type": sub_type,
                "publish": False,
            }
        )

    def test_static_file_projects_metadata(self, builder, asset_config, source):
        session = build_session(asset_config, self._asset_source(source, "static-file"))
        raw = {
            "jcr:primaryType": "dam:Asset",
            "jcr:content": {"metadata": {"dc:title": "Logo"}},
        }

        jobs = builder.index_node(session, parse_node("/content/dam/site/logo.png", raw))

        assert len(jobs) == 1
        assert jobs[0].attributes["title"] == "Logo"

    def test_content_fragment_projects_master(self, builder, asset_config, source):
        session = build_session(asset_config, self._asset_source(source, "content-fragment"))
        raw = {
            "jcr:primaryType": "dam:Asset",
            "jcr:content": {
                "contentFragment": True,
                "data": {"master": {"dc:title": "Article"}},
            },
        }

        jobs = builder.index_node(session, parse_node("/content/dam/site/article", raw))

        assert jobs[0].attributes["title"] == "Article"

    def test_plain_asset_is_not_eligible(self, builder, asset_config, source):
        session = build_session(asset_config, self._asset_source(source, None))
        raw = {"jcr:primaryType": "dam:Asset", "jcr:content": {"metadata": {}}}
        assert builder.index_node(session, parse_node("/content/dam/site/a.pdf", raw)) == []


class TestDeleteMissing:
    def test_one_delete_per_record(self, builder, session, store, sink):
        records = (("authoring", "corporate-author"), ("publishing", "corporate-publish"))
        for environment, site in records:
            store.add(
                IndexRecord(
                    object_id="/content/site/en/removed",
                    source="corporate",
                    environment=environment,
                    locale="en_US",
                    sites=(site,),
                )
            )

        jobs = builder.delete_missing(session, "/content/site/en/removed")

        assert [job.action for job in jobs] == [JobAction.DELETE, JobAction.DELETE]
        assert {job.sites for job in jobs} == {("corporate-author",), ("corporate-publish",)}
        assert {job.environment for job in jobs} == set(Environment)
        assert len(sink) == 2

    def test_no_records_no_jobs(self, builder, session):
        assert builder.delete_missing(session, "/content/site/en/never") == []

    def test_without_context(self, engine, sink, session):
        assert JobBuilder(engine, sink).delete_missing(session, HOME) == []


class TestJobItem:
    def test_to_dict_is_json_ready(self, builder, session):
        author, _ = builder.index_node(session, parse_node(HOME, page()))
        data = author.to_dict()
        assert data["action"] == "create"
        assert data["environment"] == "authoring"
        assert data["sites"] == ["corporate-author"]
        assert data["specs"][0]["name"] == "id"

    def test_multi_values_are_frozen(self, builder, session):
        node = EnvironmentNode(parse_node(HOME, page()), Environment.AUTHORING)
        attributes = {"title": "Home", "tags": ["news", "events"]}

        job = builder.build_create_job(session, node, "en_US", attributes)
        attributes["tags"].append("late")

        assert job.attributes["tags"] == ("news", "events")
        with pytest.raises(TypeError):
            job.attributes["title"] = "Changed"
        assert job.to_dict()["attributes"]["tags"] == ["news", "events"]
