"""Persistent storage for the refresh token.

The saved login is a single file, ``<cache_dir>/login_data``, holding the
refresh token as plain text on its first line. Its absence means "no saved
login" and deleting it is how a rejected refresh token is revoked locally.

Writes go through :func:`~chartlink.config.atomic_write` with ``0o600``
permissions so the token is never world-readable, even momentarily.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from chartlink.config import atomic_write

LOGIN_DATA_FILENAME = "login_data"


class TokenStore:
    """Read/write the saved refresh token in a cache directory.

    The directory is created when the store is constructed.

    Args:
        cache_dir: Directory that holds ``login_data``.

    Example::

        store = TokenStore(Path("~/.cache/chartlink").expanduser())
        store.save("refresh-token")
        assert store.load() == "refresh-token"
    """

    def __init__(self, cache_dir: Path) -> None:
        self._cache_dir = Path(cache_dir)
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        self._path = self._cache_dir / LOGIN_DATA_FILENAME

    @property
    def path(self) -> Path:
        """The filesystem path of the saved login."""
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> Optional[str]:
        """Return the saved refresh token, or ``None`` if there is none.

        Only the first line is read; an empty first line counts as no token.
        Undecodable bytes are replaced rather than raised, so a damaged file
        surfaces as a rejected token on the next refresh.
        """
        if not self._path.is_file():
            return None
        with open(self._path, encoding="utf-8", errors="replace") as f:
            token = f.readline().rstrip("\r\n")
        return token or None

    def save(self, refresh_token: str) -> None:
        """Persist *refresh_token* atomically, replacing any previous one."""
        atomic_write(self._path, refresh_token, mode=0o600)

    def clear(self) -> None:
        """Delete the saved login. A no-op when it is already gone."""
        self._path.unlink(missing_ok=True)
