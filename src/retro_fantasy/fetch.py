"""retro_fantasy.fetch

Raw-data retrieval collaborators.

The orchestrator asks a ``SourceFetcher`` for a local path to a named
source file (``playing-2023.csv``).  Two implementations:

  - HttpFetcher: downloads from a base URL (retrosplits daybyday by
    default) into a local data directory, reusing an existing copy unless
    forced.
  - LocalFileFetcher: returns files already placed in a directory (used
    for offline runs and tests).

Any failure to obtain the file raises SourceUnavailableError; a missing
season (HTTP 404) is reported as such.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import requests

log = logging.getLogger(__name__)

DEFAULT_RETROSPLITS_BASE_URL = (
    "https://raw.githubusercontent.com/chadwickbureau/retrosplits/master/daybyday"
)
DEFAULT_REGISTER_BASE_URL = (
    "https://raw.githubusercontent.com/chadwickbureau/register/master/data"
)

_CHUNK_SIZE = 64 * 1024


def playing_file_name(year: int) -> str:
    """Canonical unified source file name for a season."""
    return f"playing-{year}.csv"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SourceUnavailableError(Exception):
    """Raised when a source file cannot be obtained."""


# ---------------------------------------------------------------------------
# Fetchers
# ---------------------------------------------------------------------------

class SourceFetcher(Protocol):
    def fetch(self, name: str, force: bool = False) -> Path:
        ...


@dataclass
class HttpFetcher:
    """Download ``{base_url}/{name}`` into ``data_dir``."""

    base_url: str
    data_dir: Path
    timeout: float = 60.0
    session: requests.Session = field(default_factory=requests.Session, repr=False)

    def url_for(self, name: str) -> str:
        return f"{self.base_url.rstrip('/')}/{name}"

    def fetch(self, name: str, force: bool = False) -> Path:
        dest = self.data_dir / name
        if dest.exists() and not force:
            log.info("Using cached %s", dest)
            return dest

        url = self.url_for(name)
        log.info("Downloading %s", url)
        try:
            resp = self.session.get(url, timeout=self.timeout, stream=True)
        except requests.RequestException as exc:
            raise SourceUnavailableError(f"Failed to download {name}: {exc}") from exc

        try:
            if resp.status_code == 404:
                raise SourceUnavailableError(
                    f"Data not available for {name} (404 Not Found)"
                )
            if resp.status_code != 200:
                raise SourceUnavailableError(
                    f"Failed to download {name}: HTTP {resp.status_code} {resp.reason}"
                )
            self.data_dir.mkdir(parents=True, exist_ok=True)
            tmp = dest.with_name(dest.name + ".part")
            try:
                with open(tmp, "wb") as fh:
                    for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
                        if chunk:
                            fh.write(chunk)
            except requests.RequestException as exc:
                tmp.unlink(missing_ok=True)
                raise SourceUnavailableError(f"Failed to download {name}: {exc}") from exc
            tmp.replace(dest)
        finally:
            resp.close()
        return dest


@dataclass
class LocalFileFetcher:
    """Serve pre-placed files from a directory; never touches the network."""

    data_dir: Path

    def fetch(self, name: str, force: bool = False) -> Path:
        path = self.data_dir / name
        if not path.is_file():
            raise SourceUnavailableError(f"Local source file not found: {path}")
        return path
