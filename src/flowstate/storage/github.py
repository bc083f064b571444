"""GitHub contents API client for the remote-repository save source."""

import base64
import os
from typing import Any
from urllib.parse import quote

import requests
from loguru import logger

from flowstate.config import GITHUB_TOKEN_FILES

DEFAULT_DOMAIN = "github.com"


def api_base_url(domain: str) -> str:
    """``api.github.com`` for github.com, ``https://{domain}/api/v3`` for enterprise hosts."""
    if domain == DEFAULT_DOMAIN:
        return "https://api.github.com"
    return f"https://{domain}/api/v3"


def read_token() -> str:
    """Return GITHUB_TOKEN, else the first token file found.

    Raises:
        RuntimeError: No token configured.
    """
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token.strip()
    for token_path in GITHUB_TOKEN_FILES:
        try:
            return token_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            pass
    msg = f"Cannot find GitHub token, set GITHUB_TOKEN or create one of {GITHUB_TOKEN_FILES!r}"
    raise RuntimeError(msg)


class GitHubClient:
    """Read and commit single files through the GitHub contents API."""

    def __init__(self, *, domain: str = DEFAULT_DOMAIN, token: str | None = None) -> None:
        self.domain = domain
        self.base_url = api_base_url(domain)
        self.sess = requests.Session()
        self.sess.headers.update(
            {
                "Authorization": f"Bearer {token or read_token()}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )

    def _contents_url(self, owner: str, repo: str, path: str) -> str:
        return f"{self.base_url}/repos/{quote(owner)}/{quote(repo)}/contents/{quote(path)}"

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        logger.debug("GitHub {} {}", method, url)
        r = self.sess.request(method, url, timeout=30, **kwargs)
        if r.status_code >= 400:
            try:
                detail = r.json().get("message", r.text)
            except ValueError:
                detail = r.text
            msg = f"GitHub API call failed: {method} {url} -> {r.status_code} {detail}"
            raise RuntimeError(msg)
        rv: dict[str, Any] = r.json()
        return rv

    def get_file(self, owner: str, repo: str, path: str, *, ref: str | None = None) -> dict[str, Any]:
        """Return ``{"content": str, "sha": str}`` with the content decoded from base64."""
        params = {"ref": ref} if ref else None
        rv = self._request("GET", self._contents_url(owner, repo, path), params=params)
        content = base64.b64decode(rv["content"].replace("\n", "")).decode("utf-8")
        return {"content": content, "sha": rv["sha"]}

    def put_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        *,
        message: str,
        branch: str,
        sha: str | None = None,
    ) -> dict[str, Any]:
        """Create or update a file; ``sha`` is required when the file already exists."""
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha
        rv = self._request("PUT", self._contents_url(owner, repo, path), json=body)
        return {"sha": rv["content"]["sha"], "commit_sha": rv["commit"]["sha"]}
