"""JDBT (Jellyfin Database Tweaker)

Core package for filling in metadata that Jellyfin leaves empty in its
library database: playlist/album artwork blurhashes, artists and albums,
track numbers and playlist track lists.
"""

__all__ = [
    "__version__",
]

# Keep in sync with pyproject.toml
__version__ = "1.0.1"
