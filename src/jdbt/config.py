from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - Python <3.11 not supported per pyproject
    tomllib = None  # type: ignore

from tomlkit import dumps as toml_dumps


DEFAULT_CONFIG_PATH = Path("~/.config/jellyfin-db-tweaker/config.toml").expanduser()
ENV_PREFIX = "JDBT_"


@dataclass(frozen=True)
class ProcessConfiguration:
    """Feature toggles for one processing run. Never mutated while a run is active."""
    process_playlist_images: bool = True
    process_playlist_tracklist: bool = True
    process_tracks_artists: bool = True
    process_tracks_numbers: bool = True
    process_albums: bool = True
    image_name: str = "cover"

    @property
    def playlist_metadata_enabled(self) -> bool:
        # The playlist phase writes images and/or artists, whichever is enabled.
        return self.process_playlist_images or self.process_tracks_artists

    @property
    def albums_enabled(self) -> bool:
        return self.process_albums and self.playlist_metadata_enabled


class TweakSettings(BaseSettings):
    """Global settings for jellyfin-db-tweaker.

    Priority (lowest -> highest):
    - Class defaults below
    - TOML file at `config_path` (default: ~/.config/jellyfin-db-tweaker/config.toml)
    - Environment variables with prefix JDBT_
    - CLI overrides passed to `load_settings(overrides=...)`
    """

    # Logging
    log_level: str = Field(default="INFO", description="Console log level")
    log_json: Optional[str] = Field(default=None, description="Path for structured JSON log file")

    # Database
    db_path: Optional[str] = Field(default=None, description="Path to Jellyfin's library.db")

    # Features
    process_playlist_images: bool = Field(default=True, description="Fill playlist and album image blurhashes")
    process_playlist_tracklist: bool = Field(default=True, description="Rebuild track lists of empty playlists")
    process_tracks_artists: bool = Field(default=True, description="Fill artists and album names from folder names")
    process_tracks_numbers: bool = Field(default=True, description="Fill missing track numbers from file names")
    process_albums: bool = Field(default=True, description="Fill album rows metadata")
    image_name: str = Field(default="cover", description="Substring of the cover image filename in each folder")

    # Config source/path (not persisted as part of effective config when writing)
    config_path: Path = Field(default=DEFAULT_CONFIG_PATH, exclude=True)

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    @classmethod
    def _toml_file_source(cls, config_path: Path) -> Dict[str, Any]:
        """Read settings from a TOML file if it exists; return dict values.

        Unknown keys are ignored by pydantic via extra="ignore".
        """
        if not config_path or not config_path.exists():
            return {}
        if tomllib is None:
            return {}
        with config_path.open("rb") as f:
            data = tomllib.load(f)
        if not isinstance(data, dict):
            return {}
        return data  # type: ignore[return-value]

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "TweakSettings":
        """Load settings from defaults + TOML + env + CLI overrides.

        - config_path: path to TOML config; defaults to ~/.config/jellyfin-db-tweaker/config.toml
        - overrides: dict of CLI values (None values are ignored)
        """
        cp = config_path or DEFAULT_CONFIG_PATH
        file_values = cls._toml_file_source(cp)
        # Init kwargs outrank env in pydantic-settings, so env values are layered over the file by hand
        env_values = cls().model_dump(exclude_unset=True)
        if overrides:
            non_none = {k: v for k, v in overrides.items() if v is not None}
        else:
            non_none = {}
        merged = dict(file_values)
        merged.update(env_values)
        merged.update(non_none)
        settings = cls(**merged)
        settings.config_path = cp
        return settings

    def process_configuration(self) -> ProcessConfiguration:
        """Snapshot the feature toggles for a run."""
        return ProcessConfiguration(
            process_playlist_images=self.process_playlist_images,
            process_playlist_tracklist=self.process_playlist_tracklist,
            process_tracks_artists=self.process_tracks_artists,
            process_tracks_numbers=self.process_tracks_numbers,
            process_albums=self.process_albums,
            image_name=self.image_name,
        )

    def to_toml(self) -> str:
        """Serialize effective settings (excluding ephemeral fields) to TOML string."""
        # TOML has no null; unset optional paths are left out
        data = {k: v for k, v in self.model_dump(exclude={"config_path"}).items() if v is not None}
        return toml_dumps(data)

    def write(self, path: Optional[Path] = None) -> Path:
        """Write effective config to TOML at `path` (or default path). Creates parent dirs.

        Returns the path written.
        """
        target = path or self.config_path or DEFAULT_CONFIG_PATH
        target.parent.mkdir(parents=True, exist_ok=True)
        content = self.to_toml()
        target.write_text(content, encoding="utf-8")
        return target


def cli_overrides_from_args(args: Any) -> Dict[str, Any]:
    """Extract known settings keys from argparse Namespace into an overrides dict.

    Unknown keys are ignored; None values are preserved for filtering by `load()`.
    """
    keys = {
        "log_level",
        "log_json",
        "db_path",
        "process_playlist_images",
        "process_playlist_tracklist",
        "process_tracks_artists",
        "process_tracks_numbers",
        "process_albums",
        "image_name",
    }
    result: Dict[str, Any] = {}
    for k in keys:
        if hasattr(args, k):
            result[k] = getattr(args, k)
    return result
