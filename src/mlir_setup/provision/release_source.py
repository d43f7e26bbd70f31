from __future__ import annotations

import logging
import re
from typing import Any, Iterator

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from mlir_setup import __version__ as MLIR_SETUP_VERSION
from mlir_setup.common.config import RuntimeConfig
from mlir_setup.common.errors import InvalidReleaseTag, ReleaseNotFound, SourceUnavailable
from mlir_setup.common.types import Release, ReleaseAsset


log = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"

_RELEASE_TAG_RE = re.compile(r"^\d{4}\.\d{2}\.\d{2}$")


def single_attempt_session() -> requests.Session:
    session = requests.Session()
    # No retries: a failed call fails fast and the caller decides.
    retry = Retry(total=0, connect=0, read=0, status=0, raise_on_status=False)
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def validate_release_tag(tag: str) -> str:
    text = str(tag or "").strip()
    if not _RELEASE_TAG_RE.match(text):
        raise InvalidReleaseTag(f"Invalid release tag: {tag!r}. Expected format: YYYY.MM.DD.")
    return text


def _parse_release(data: Any) -> Release:
    if not isinstance(data, dict) or "tag_name" not in data:
        raise SourceUnavailable("Malformed release object in API response.")
    assets = []
    for item in data.get("assets") or ():
        name = str(item.get("name", "")).strip()
        url = str(item.get("browser_download_url", "")).strip()
        if name and url:
            assets.append(ReleaseAsset(name=name, download_url=url))
    return Release(
        tag=str(data["tag_name"]),
        html_url=str(data.get("html_url") or ""),
        published_at=str(data.get("published_at") or data.get("created_at") or ""),
        assets=tuple(assets),
    )


class GitHubReleaseSource:
    """Read-only view of a repository's releases through the GitHub REST API.

    Every call is a single attempt. Transport errors, error statuses and bodies
    that are not the expected JSON all surface as ``SourceUnavailable``.
    """

    def __init__(self, runtime: RuntimeConfig, session: requests.Session | None = None):
        self.runtime = runtime
        self.session = session or single_attempt_session()
        self.session.headers.update(self._headers())

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": f"mlir-setup/{MLIR_SETUP_VERSION}",
        }
        if self.runtime.token:
            headers["Authorization"] = f"Bearer {self.runtime.token}"
        return headers

    @property
    def _repo_url(self) -> str:
        return f"{self.runtime.api_url}/repos/{self.runtime.repo_owner}/{self.runtime.repo_name}"

    def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        try:
            resp = self.session.get(url, params=params, timeout=self.runtime.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.HTTPError as exc:
            if exc.response is not None and exc.response.status_code == 404:
                raise ReleaseNotFound(f"GitHub API returned 404 for {url}") from exc
            raise SourceUnavailable(f"GitHub API request failed for {url}: {exc}") from exc
        except requests.RequestException as exc:
            raise SourceUnavailable(f"GitHub API request failed for {url}: {exc}") from exc
        except ValueError as exc:
            raise SourceUnavailable(f"GitHub API returned malformed JSON for {url}") from exc

    def list_releases(self) -> Iterator[Release]:
        """Yield every release, fetching one page at a time."""
        per_page = self.runtime.per_page
        page = 1
        while True:
            log.debug("Fetching releases page %d of %s", page, self.runtime.repository)
            data = self._get_json(f"{self._repo_url}/releases", params={"per_page": per_page, "page": page})
            if not isinstance(data, list):
                raise SourceUnavailable("Release list response is not a JSON array.")
            for item in data:
                yield _parse_release(item)
            if len(data) < per_page:
                return
            page += 1

    def get_release_by_tag(self, tag: str) -> Release:
        tag = validate_release_tag(tag)
        return _parse_release(self._get_json(f"{self._repo_url}/releases/tags/{tag}"))

    def get_latest_release(self) -> Release:
        return _parse_release(self._get_json(f"{self._repo_url}/releases/latest"))
