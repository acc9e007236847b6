import hashlib
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import requests

from brewery.cache import MetadataCache
from brewery.config import HEADERS, REQUEST_TIMEOUT, RETRY_ATTEMPTS, RETRY_DELAY
from brewery.errors import MetadataError

FORMULA_API = "https://formulae.brew.sh/api/formula/{name}.json"
CASK_API = "https://formulae.brew.sh/api/cask/{token}.json"
GHCR_TOKEN = "https://ghcr.io/token?service=ghcr.io&scope=repository:homebrew/core/{repo}:pull"
GHCR_ROOT = "https://ghcr.io/v2/homebrew/core/{repo}"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"


def ghcr_repo(name: str) -> str:
    # GHCR stores versioned formulae such as openssl@3 as openssl/3
    return name.replace("@", "/")


def file_sha256(file_path: Path) -> str:
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for byte_block in iter(lambda: f.read(65536), b""):
            sha256_hash.update(byte_block)
    return sha256_hash.hexdigest()


class BrewApi:
    """Read-only client for the formulae.brew.sh JSON API and the GHCR bottle registry."""

    def __init__(self, cache: MetadataCache, log: Callable[[str], None] = lambda _msg: None,
                 session: Optional[requests.Session] = None) -> None:
        self.cache = cache
        self.log = log
        self._session = session
        self._local = threading.local()
        self._tokens: Dict[str, str] = {}

    @property
    def session(self) -> requests.Session:
        """The injected session, or one ``requests.Session`` per thread."""
        if self._session is not None:
            return self._session
        if not hasattr(self._local, "session"):
            self._local.session = requests.Session()
        return self._local.session

    def _get_json(self, url: str, what: str, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """GET a JSON document, retrying timeouts and transport errors."""
        for attempt in range(RETRY_ATTEMPTS):
            try:
                self.log(f"Fetching {what} (attempt {attempt + 1}/{RETRY_ATTEMPTS})")
                resp = self.session.get(url, headers={**HEADERS, **(headers or {})}, timeout=REQUEST_TIMEOUT)

                if resp.status_code == 200:
                    return resp.json()
                elif resp.status_code == 404:
                    raise MetadataError(f"No available {what}")
                else:
                    self.log(f"HTTP {resp.status_code} for {what}")

            except requests.Timeout:
                self.log(f"Timeout fetching {what}")
            except requests.RequestException as e:
                self.log(f"API Error for {what}: {e}")

            if attempt < RETRY_ATTEMPTS - 1:
                time.sleep(RETRY_DELAY)

        raise MetadataError(f"Could not fetch {what} after {RETRY_ATTEMPTS} attempts")

    def _cached(self, key: str, url: str, what: str, force_refresh: bool = False,
                headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        if not force_refresh:
            cached = self.cache.get(key)
            if cached:
                self.log(f"Cache hit for {key}")
                return cached

        data = self._get_json(url, what, headers)
        self.cache.set(key, data)
        return data

    def formula(self, name: str, force_refresh: bool = False) -> Dict[str, Any]:
        return self._cached(f"formula/{name}", FORMULA_API.format(name=name),
                            f"formula with the name \"{name}\"", force_refresh)

    def cask(self, token: str, force_refresh: bool = False) -> Dict[str, Any]:
        return self._cached(f"cask/{token}", CASK_API.format(token=token),
                            f"cask with the name \"{token}\"", force_refresh)

    def ghcr_token(self, name: str) -> str:
        if name not in self._tokens:
            data = self._get_json(GHCR_TOKEN.format(repo=ghcr_repo(name)), f"registry token for {name}")
            self._tokens[name] = data.get("token", "")
        return self._tokens[name]

    def bottle_manifest(self, name: str, tag: str) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.ghcr_token(name)}", "Accept": OCI_INDEX}
        url = f"{GHCR_ROOT.format(repo=ghcr_repo(name))}/manifests/{tag}"
        return self._cached(f"manifest/{name}/{tag}", url, f"bottle manifest for {name} {tag}", headers=headers)

    def download(self, url: str, dest: Path, headers: Optional[Dict[str, str]] = None,
                 on_progress: Optional[Callable[[int, int], None]] = None) -> Path:
        """Stream ``url`` into ``dest``; ``on_progress(advance, total)`` is called per chunk."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        for attempt in range(RETRY_ATTEMPTS):
            try:
                with self.session.get(url, headers={**HEADERS, **(headers or {})}, stream=True,
                                      timeout=REQUEST_TIMEOUT) as r:
                    r.raise_for_status()
                    total_size = int(r.headers.get("content-length", 0))
                    with open(dest, "wb") as f:
                        for chunk in r.iter_content(chunk_size=8192):
                            f.write(chunk)
                            if on_progress:
                                on_progress(len(chunk), total_size)
                return dest
            except requests.RequestException as e:
                self.log(f"Download of {url} failed: {e}")
                if attempt < RETRY_ATTEMPTS - 1:
                    time.sleep(RETRY_DELAY)

        raise MetadataError(f"Could not download {url} after {RETRY_ATTEMPTS} attempts")
