import json

import pytest
from typer.testing import CliRunner

from packt import Cache, async_api, config
from packt.cli import app
from packt.models import Catalog, Chapter, Course, Playlist, Video

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (config.ENV_EMAIL, config.ENV_PASSWORD, config.ENV_PLAYLIST_IDS, config.ENV_OUTPUT_DIRECTORY):
        monkeypatch.delenv(name, raising=False)


def test_download_without_settings_exits():
    result = runner.invoke(app, ["download"])
    assert result.exit_code == 1


def test_fetch_catalog_file(tmp_path):
    video = Video(title="Gone", order=1, page_url="https://x/v1").fail("no media source found")
    course = Course(title="Course", source_url="https://x/c", chapters=[Chapter(title="A", order=1, videos=[video])])
    catalog = Catalog(playlists=[Playlist(id="1", title="P", url="https://x/p", courses=[course])])
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(catalog.model_dump(mode="json")), encoding="utf-8")

    result = runner.invoke(app, ["fetch", str(path), "-d", str(tmp_path / "out")])

    assert result.exit_code == 0, result.output
    assert "Errors:" in result.output
    assert (tmp_path / "out" / "Course" / "Course Info.html").exists()


def test_fetch_rejects_invalid_catalog(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text('{"playlists": "nope"}', encoding="utf-8")

    result = runner.invoke(app, ["fetch", str(path)])
    assert result.exit_code == 1


def test_clear_cache(tmp_path, monkeypatch):
    monkeypatch.setattr(Cache, "directory", tmp_path / "cache")
    (tmp_path / "cache").mkdir()
    (tmp_path / "cache" / "1.json").write_text("{}", encoding="utf-8")

    result = runner.invoke(app, ["clear-cache"])

    assert result.exit_code == 0
    assert not (tmp_path / "cache").exists()


def test_logout(tmp_path, monkeypatch):
    session = tmp_path / "state.json"
    session.write_text("[]", encoding="utf-8")
    monkeypatch.setattr(async_api, "SESSION_FILE", session)

    result = runner.invoke(app, ["logout"])

    assert result.exit_code == 0
    assert not session.exists()
