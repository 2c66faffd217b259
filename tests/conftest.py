from __future__ import annotations

from importlib import resources
from pathlib import Path

import pytest
from typer.testing import CliRunner

from content_loaders.cli.main import app

RSS_DOCUMENT = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example Feed</title>
    <link>https://example.org/</link>
    <description>Example description</description>
    <language>en</language>
    <item>
      <guid>https://example.org/posts/2</guid>
      <title>Second post</title>
      <link>https://example.org/posts/2</link>
      <description>&lt;p&gt;Second body&lt;/p&gt;</description>
      <author>alice@example.org (Alice)</author>
      <category domain="https://example.org/tags">python</category>
      <pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate>
      <enclosure url="https://example.org/audio.mp3" type="audio/mpeg" length="1024" />
    </item>
    <item>
      <guid>https://example.org/posts/1</guid>
      <title>First post</title>
      <link>https://example.org/posts/1</link>
      <description>First body</description>
      <category>release</category>
      <pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""

REGISTRY_DOCUMENT = """
sources:
  - id: example-feed
    type: feed
    name: Example Feed
    options:
      url: https://example.org/feed.xml
    tags: [news]
  - id: example-bluesky
    type: bluesky
    name: Example Bluesky
    status: paused
    options:
      identifier: alice.example.org
  - id: example-csv
    type: csv
    name: Example CSV
    options:
      file_name: catalogue.csv
"""


@pytest.fixture(scope="session")
def default_registry_file() -> Path:
    sources_pkg = "content_loaders.resources.sources"
    with resources.as_file(resources.files(sources_pkg) / "default.yaml") as ref:
        return Path(ref)


@pytest.fixture()
def registry_file(tmp_path: Path) -> Path:
    path = tmp_path / "sources.yaml"
    path.write_text(REGISTRY_DOCUMENT, encoding="utf-8")
    return path


@pytest.fixture()
def rss_document() -> str:
    return RSS_DOCUMENT


@pytest.fixture(autouse=True)
def isolated_secrets(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("CONTENT_LOADERS_SECRETS_PATH", str(tmp_path / "missing-secret.toml"))
    monkeypatch.delenv("YOUTUBE_API_KEY", raising=False)
    monkeypatch.delenv("AIRTABLE_TOKEN", raising=False)


@pytest.fixture()
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def cli_app():
    return app
