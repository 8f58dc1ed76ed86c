from argparse import Namespace

import tomllib

from jdbt.config import ProcessConfiguration, TweakSettings, cli_overrides_from_args


def test_defaults_enable_every_feature(tmp_path):
    cfg = TweakSettings.load(config_path=tmp_path / "missing.toml")
    assert cfg.process_configuration() == ProcessConfiguration()
    assert cfg.image_name == "cover"
    assert cfg.db_path is None


def test_toml_then_env_then_overrides(tmp_path, monkeypatch):
    path = tmp_path / "config.toml"
    path.write_text(
        'db_path = "/srv/jellyfin/library.db"\nimage_name = "folder"\nprocess_albums = false\nlog_level = "DEBUG"\n',
        encoding="utf-8",
    )
    monkeypatch.setenv("JDBT_IMAGE_NAME", "front")

    cfg = TweakSettings.load(config_path=path, overrides={"log_level": "WARNING", "process_tracks_numbers": None})

    assert cfg.db_path == "/srv/jellyfin/library.db"
    assert cfg.image_name == "front"
    assert cfg.log_level == "WARNING"
    assert cfg.process_albums is False
    # None overrides leave the loaded value alone
    assert cfg.process_tracks_numbers is True
    assert cfg.config_path == path


def test_process_configuration_gating():
    cfg = ProcessConfiguration(process_playlist_images=False, process_tracks_artists=False)
    assert not cfg.playlist_metadata_enabled
    assert not cfg.albums_enabled
    assert ProcessConfiguration(process_playlist_images=False).albums_enabled


def test_write_round_trips_without_nulls(tmp_path):
    target = tmp_path / "nested" / "config.toml"
    cfg = TweakSettings.load(config_path=tmp_path / "missing.toml", overrides={"process_albums": False})

    written = cfg.write(target)

    assert written == target
    data = tomllib.loads(target.read_text(encoding="utf-8"))
    assert data["process_albums"] is False
    assert "db_path" not in data
    assert "config_path" not in data
    assert TweakSettings.load(config_path=target).process_albums is False


def test_cli_overrides_from_args():
    args = Namespace(db_path="/x.db", process_albums=False, image_name=None, cmd="process")
    assert cli_overrides_from_args(args) == {"db_path": "/x.db", "process_albums": False, "image_name": None}
