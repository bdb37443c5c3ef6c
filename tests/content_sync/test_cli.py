"""Tests for the ContentSync Typer CLI."""

import json
import logging

import httpx
import pytest
import yaml
from typer.testing import CliRunner

from CmsToIndex.ContentSync import cli
from CmsToIndex.ContentSync.logging_config import ROOT_LOGGER_NAME
from CmsToIndex.ContentSync.state import SqliteIndexStateStore

from fake_repository import BASE_URL, page

runner = CliRunner()

CONFIG = {
    "retry": {"max_attempts": 1},
    "sources": [
        {
            "name": "corporate",
            "id": "corp-1",
            "url": BASE_URL,
            "username": "admin",
            "password": "admin",
            "root_path": "/content/site",
            "content_type": "cq:Page",
            "author_site": "corporate-author",
            "author_url_prefix": "http://author.test",
            "site_name": "Corporate",
        },
        {
            "name": "archive",
            "enabled": False,
            "url": BASE_URL,
            "root_path": "/content/archive",
        },
    ],
    "mappings": {
        "corporate": {
            "target_attr_definitions": [{"name": "url", "extension": "content-url"}],
            "models": [
                {
                    "type": "cq:Page",
                    "target_attrs": [
                        {"name": "title", "source_attrs": [{"name": "jcr:title"}]},
                        {"name": "url", "extension": "content-url"},
                    ],
                }
            ],
        }
    },
}


@pytest.fixture(autouse=True)
def _drop_log_handlers():
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_contentsync_managed", False):
            logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "contentsync.yaml"
    path.write_text(yaml.safe_dump(CONFIG), encoding="utf-8")
    return str(path)


@pytest.fixture
def remote(repository, monkeypatch):
    """Route the CLI's HTTP client to the in-memory repository."""
    home = page("Home")
    repository.put_node("/content/site", page("Site", children={"home": home}))
    repository.put_node("/content/site/home", home)
    client = httpx.Client(transport=httpx.MockTransport(repository.handler))
    monkeypatch.setattr(cli, "build_http_client", lambda config: client)
    yield repository
    client.close()


def _jobs(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


class TestIndexAll:
    def test_writes_jobs(self, config_path, remote, tmp_path):
        output = tmp_path / "jobs.jsonl"

        args = ["index-all", "corporate", "-c", config_path, "-o", str(output)]
        result = runner.invoke(cli.app, args)

        assert result.exit_code == 0, result.output
        assert "Run finished" in result.output
        jobs = _jobs(output)
        assert [job["object_id"] for job in jobs] == ["/content/site", "/content/site/home"]
        assert jobs[1]["attributes"]["url"] == "http://author.test/content/site/home.html"
        assert jobs[1]["attributes"]["site"] == "Corporate"

    def test_by_id(self, config_path, remote, tmp_path):
        output = tmp_path / "jobs.jsonl"
        result = runner.invoke(
            cli.app, ["index-all", "corp-1", "--by-id", "-c", config_path, "-o", str(output)]
        )
        assert result.exit_code == 0, result.output
        assert len(_jobs(output)) == 2

    def test_disabled_source_exits_non_zero(self, config_path, remote):
        result = runner.invoke(cli.app, ["index-all", "archive", "-c", config_path])
        assert result.exit_code == 1
        assert "skipped" in result.output

    def test_bad_config(self, tmp_path):
        result = runner.invoke(
            cli.app, ["index-all", "corporate", "-c", str(tmp_path / "absent.yaml")]
        )
        assert result.exit_code == 1
        assert "Error" in result.output


class TestIndexPaths:
    def test_records_state(self, config_path, remote, tmp_path):
        state = tmp_path / "state.sqlite"

        result = runner.invoke(
            cli.app,
            [
                "index-paths",
                "corporate",
                "/content/site/home",
                "-c",
                config_path,
                "--no-recursive",
                "--state",
                str(state),
            ],
        )

        assert result.exit_code == 0, result.output
        store = SqliteIndexStateStore(state)
        try:
            (record,) = store.all_records()
            assert record.object_id == "/content/site/home"
            assert record.sites == ("corporate-author",)
        finally:
            store.close()

    def test_by_url(self, config_path, remote, tmp_path):
        output = tmp_path / "jobs.jsonl"
        result = runner.invoke(
            cli.app,
            [
                "index-paths",
                "corporate",
                "http://author.test/content/site/home.html",
                "--by-url",
                "-c",
                config_path,
                "-o",
                str(output),
            ],
        )
        assert result.exit_code == 0, result.output
        assert [job["object_id"] for job in _jobs(output)] == ["/content/site/home"]

    def test_deindexing_event(self, config_path, remote, tmp_path):
        state = tmp_path / "state.sqlite"
        args = ["index-paths", "corporate", "/content/site/home", "-c", config_path]
        runner.invoke(cli.app, args + ["--state", str(state)])

        output = tmp_path / "jobs.jsonl"
        result = runner.invoke(
            cli.app, args + ["--event", "deindexing", "--state", str(state), "-o", str(output)]
        )

        assert result.exit_code == 0, result.output
        assert [job["action"] for job in _jobs(output)] == ["delete"]

    def test_unknown_source(self, config_path, remote):
        result = runner.invoke(cli.app, ["index-paths", "missing", "/content/x", "-c", config_path])
        assert result.exit_code == 1
        assert "No paths processed" in result.output


class TestListSources:
    def test_table(self, config_path):
        result = runner.invoke(cli.app, ["list-sources", "-c", config_path])
        assert result.exit_code == 0, result.output
        assert "corporate" in result.output
        assert "archive" in result.output
        assert "/content/site" in result.output

    def test_config_from_environment(self, config_path, monkeypatch):
        monkeypatch.setenv(cli.CONFIG_ENVVAR, config_path)
        result = runner.invoke(cli.app, ["list-sources"])
        assert result.exit_code == 0, result.output
        assert "corporate" in result.output


class TestValidateConfig:
    def test_valid(self, config_path):
        result = runner.invoke(cli.app, ["validate-config", config_path])
        assert result.exit_code == 0
        assert "Config valid" in result.output

    def test_invalid(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"sources": [{"name": "x"}]}), encoding="utf-8")
        result = runner.invoke(cli.app, ["validate-config", str(path)])
        assert result.exit_code == 1
        assert "Invalid" in result.output


class TestConfigSchema:
    def test_stdout(self):
        result = runner.invoke(cli.app, ["config-schema"])
        assert result.exit_code == 0
        assert "sources" in json.loads(result.output)["properties"]

    def test_file(self, tmp_path):
        output = tmp_path / "schema.json"
        result = runner.invoke(cli.app, ["config-schema", "-o", str(output)])
        assert result.exit_code == 0
        assert json.loads(output.read_text())["title"] == "ContentSyncConfig"
