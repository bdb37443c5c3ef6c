"""Shared fixtures for ContentSync tests.

The remote repository is faked by :class:`FakeRepository`, a path → body map
served through ``httpx.MockTransport``; no test touches the network.
"""

from __future__ import annotations

import httpx
import pytest

from CmsToIndex.ContentSync.config.models import (
    ContentSyncConfig,
    LocalePath,
    RetryPolicy,
    SourceConfig,
)
from CmsToIndex.ContentSync.fetch import (
    RepositoryFetcher,
    ResponseCache,
    reset_fetcher,
    set_fetcher,
)
from CmsToIndex.ContentSync.http_session import reset_http_session
from CmsToIndex.ContentSync.jobs import JobBuilder
from CmsToIndex.ContentSync.mapping.engine import AttributeMappingEngine
from CmsToIndex.ContentSync.mapping.models import (
    AttributeSpec,
    ContentMapping,
    MappingModel,
    SourceAttr,
    TargetAttr,
)
from CmsToIndex.ContentSync.session import build_session
from CmsToIndex.ContentSync.sinks import InMemoryJobSink
from CmsToIndex.ContentSync.state import SqliteIndexStateStore

from fake_repository import BASE_URL, FakeRepository


@pytest.fixture(autouse=True)
def _reset_shared_state():
    yield
    reset_fetcher()
    reset_http_session()


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def http_client(repository: FakeRepository):
    client = httpx.Client(transport=httpx.MockTransport(repository.handler))
    yield client
    client.close()


@pytest.fixture
def fetcher(http_client: httpx.Client) -> RepositoryFetcher:
    instance = RepositoryFetcher(
        client=http_client, cache=ResponseCache(), retry=RetryPolicy(max_attempts=1)
    )
    set_fetcher(instance)
    return instance


@pytest.fixture
def source() -> SourceConfig:
    return SourceConfig(
        name="corporate",
        id="corp-1",
        url=BASE_URL,
        username="admin",
        password="admin",
        root_path="/content/site",
        content_type="cq:Page",
        author=True,
        publish=True,
        author_site="corporate-author",
        publish_site="corporate-publish",
        author_url_prefix="http://author.test",
        publish_url_prefix="https://www.example.test",
        default_locale="en_US",
        locale_paths=[LocalePath(locale="pt_BR", path="/content/site/pt")],
    )


@pytest.fixture
def mapping() -> ContentMapping:
    return ContentMapping(
        target_attr_definitions=[
            AttributeSpec(name="id", mandatory=True, extension="content-id"),
            AttributeSpec(name="url", mandatory=True, extension="content-url"),
            AttributeSpec(name="title", description="Title"),
        ],
        models=[
            MappingModel(
                type="cq:Page",
                target_attrs=[
                    TargetAttr(name="title", source_attrs=[SourceAttr(name="jcr:title")]),
                    TargetAttr(name="kind", text_value="page"),
                    TargetAttr(name="modified", extension="modification-date"),
                ],
            )
        ],
    )


@pytest.fixture
def config(source: SourceConfig, mapping: ContentMapping) -> ContentSyncConfig:
    return ContentSyncConfig(
        retry=RetryPolicy(max_attempts=1),
        sources=[source],
        mappings={source.name: mapping},
    )


@pytest.fixture
def sink() -> InMemoryJobSink:
    return InMemoryJobSink()


@pytest.fixture
def store():
    instance = SqliteIndexStateStore(":memory:")
    yield instance
    instance.close()


@pytest.fixture
def engine(fetcher: RepositoryFetcher) -> AttributeMappingEngine:
    return AttributeMappingEngine(fetcher)


@pytest.fixture
def builder(engine, sink, store) -> JobBuilder:
    return JobBuilder(engine, sink, store)


@pytest.fixture
def session(config: ContentSyncConfig, source: SourceConfig):
    return build_session(config, source)
