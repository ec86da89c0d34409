"""GitHub Contents API client.

Responsibilities:
- read one file (base64 content + blob sha), falling back to the Git Blobs API
  for files above the Contents API inline limit
- create / update a file with optimistic concurrency on the blob sha
- delete a file at a known sha
- walk the managed .markmuse/ tree and report every file with its sha
- repository checks (default branch, permissions, remote data present)

Status codes are mapped onto the exceptions in muse_sync.errors. The client
never retries; recovery decisions belong to the sync engine.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from muse_core.models import RemoteFileRecord, SyncConfig
from muse_core.paths import remote_root, remote_to_logical

from muse_sync.errors import (
    AuthenticationError,
    ExistsNeedsShaError,
    IntegrityError,
    PermissionDeniedError,
    RemoteConflictError,
    RemoteError,
    RemoteNotFoundError,
)

logger = logging.getLogger(__name__)

API_URL = "https://api.github.com"
USER_AGENT = "markmuse-sync/0.1"
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class RemoteFile:
    content: bytes
    sha: str


@dataclass(frozen=True)
class RepositoryInfo:
    full_name: str
    default_branch: str
    can_pull: bool
    can_push: bool
    private: bool = False


class GitHubContentsClient:
    """Thin synchronous wrapper over the Contents API for one repository/branch."""

    def __init__(
        self,
        cfg: SyncConfig,
        *,
        base_url: str = API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        if not cfg.owner or not cfg.repo:
            raise ValueError(f"Invalid GitHub config: owner={cfg.owner!r}, repo={cfg.repo!r}")
        self.cfg = cfg
        self._http = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {cfg.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": USER_AGENT,
            },
        )

    # ---- lifecycle ---------------------------------------------------------
    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> GitHubContentsClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---- helpers -----------------------------------------------------------
    @property
    def _repo_url(self) -> str:
        return f"/repos/{quote(self.cfg.owner, safe='')}/{quote(self.cfg.repo, safe='')}"

    def _contents_url(self, repo_path: str) -> str:
        # Encode each segment (non-ASCII names, spaces) but keep the separators.
        return f"{self._repo_url}/contents/{quote(repo_path.strip('/'), safe='/')}"

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteError(f"Network error during {method} {url}: {e}") from e

    @staticmethod
    def _message(resp: httpx.Response) -> str:
        try:
            data = resp.json()
        except ValueError:
            return resp.text.strip() or resp.reason_phrase
        if not isinstance(data, dict):
            return resp.reason_phrase
        message = data.get("message") or resp.reason_phrase
        details = [
            e.get("message", "") if isinstance(e, dict) else str(e)
            for e in data.get("errors") or []
        ]
        details = [d for d in details if d]
        return f"{message}: {'; '.join(details)}" if details else message

    def _raise_for_status(self, resp: httpx.Response, method: str, path: str) -> None:
        """Map common failures; callers handle the statuses that carry meaning for them."""
        if resp.is_success:
            return
        status = resp.status_code
        message = self._message(resp)
        if status == 401:
            raise AuthenticationError(
                f"GitHub rejected the token (invalid or expired): {message}", status, path
            )
        if status == 403:
            if "branch" in message.lower() or "protected" in message.lower():
                raise PermissionDeniedError(
                    f"Branch '{self.cfg.branch}' may be protected or the token cannot write to it: "
                    f"{message}",
                    status,
                    path,
                )
            raise PermissionDeniedError(
                "Token lacks permission for this repository. Check that it grants Contents "
                f"read/write, that a fine-grained token includes {self.cfg.owner}/{self.cfg.repo}, "
                f"and that branch '{self.cfg.branch}' is accessible ({method} {path}: {message})",
                status,
                path,
            )
        if status == 404:
            raise RemoteNotFoundError(
                f"Not found: {path}. Check that repository {self.cfg.owner}/{self.cfg.repo} and "
                f"branch '{self.cfg.branch}' exist ({message})",
                status,
                path,
            )
        raise RemoteError(f"GitHub API error {status} on {method} {path}: {message}", status, path)

    # ---- files -------------------------------------------------------------
    def get_file(self, repo_path: str) -> RemoteFile | None:
        """Fetch a file; None when it does not exist (or the path is a directory)."""
        resp = self._send("GET", self._contents_url(repo_path), params={"ref": self.cfg.branch})
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, "GET", repo_path)
        data = resp.json()
        if isinstance(data, list) or data.get("type") != "file":
            return None
        sha = data.get("sha") or ""
        raw = data.get("content") or ""
        if data.get("encoding") == "base64":
            content = base64.b64decode("".join(raw.split()))
        elif data.get("size", 0) and sha:
            # Above the inline limit: content comes back empty with encoding "none".
            content = self._get_blob(sha)
        else:
            content = b""
        return RemoteFile(content=content, sha=sha)

    def _get_blob(self, sha: str) -> bytes:
        resp = self._send("GET", f"{self._repo_url}/git/blobs/{sha}")
        self._raise_for_status(resp, "GET", f"blob {sha}")
        data = resp.json()
        return base64.b64decode("".join((data.get("content") or "").split()))

    def put_file(
        self,
        repo_path: str,
        content: bytes,
        sha: str | None = None,
        message: str | None = None,
    ) -> str:
        """
        Create (sha=None) or update (sha=current blob sha) a file.

        Returns the blob sha the server reports for the written content.
        """
        body: dict[str, Any] = {
            "message": message or f"{'Update' if sha else 'Create'} {repo_path}",
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.cfg.branch,
        }
        if sha:
            body["sha"] = sha
        resp = self._send("PUT", self._contents_url(repo_path), json=body)
        if resp.status_code in (409, 422):
            text = self._message(resp)
            if not sha and (resp.status_code == 409 or "sha" in text.lower()):
                raise ExistsNeedsShaError(
                    f"{repo_path} already exists; an update needs its sha ({text})",
                    resp.status_code,
                    repo_path,
                )
            if sha:
                raise RemoteConflictError(
                    f"{repo_path} changed remotely since sha {sha[:7]} ({text})",
                    resp.status_code,
                    repo_path,
                )
        self._raise_for_status(resp, "PUT", repo_path)
        new_sha = ((resp.json() or {}).get("content") or {}).get("sha")
        if not new_sha:
            raise IntegrityError(f"GitHub did not report the new sha for {repo_path}")
        return new_sha

    def delete_file(self, repo_path: str, sha: str, message: str | None = None) -> None:
        body = {"message": message or f"Delete {repo_path}", "sha": sha, "branch": self.cfg.branch}
        resp = self._send("DELETE", self._contents_url(repo_path), json=body)
        if resp.status_code in (409, 422):
            raise RemoteConflictError(
                f"{repo_path} changed remotely since sha {sha[:7]} ({self._message(resp)})",
                resp.status_code,
                repo_path,
            )
        self._raise_for_status(resp, "DELETE", repo_path)

    def list_under_prefix(self, prefix: str | None = None) -> list[RemoteFileRecord]:
        """
        Recursively list files under `prefix` (default: the managed .markmuse/ root).

        A missing prefix is an empty listing. Files outside the managed layout
        (e.g. a stray README in .markmuse/) are skipped.
        """
        root = prefix if prefix is not None else remote_root(self.cfg)
        out: list[RemoteFileRecord] = []
        pending = [root]
        while pending:
            dir_path = pending.pop()
            resp = self._send("GET", self._contents_url(dir_path), params={"ref": self.cfg.branch})
            if resp.status_code == 404:
                continue
            self._raise_for_status(resp, "GET", dir_path)
            data = resp.json()
            items = data if isinstance(data, list) else [data]
            for item in items:
                kind = item.get("type")
                if kind == "dir":
                    pending.append(item["path"])
                elif kind == "file":
                    logical = remote_to_logical(item["path"], self.cfg)
                    if logical is None:
                        logger.debug(f"Ignoring unmanaged remote file: {item['path']}")
                        continue
                    out.append(
                        RemoteFileRecord(
                            repo_path=item["path"], sha=item["sha"], logical_path=logical
                        )
                    )
        out.sort(key=lambda r: r.repo_path)
        return out

    # ---- repository ----------------------------------------------------------
    def get_repository(self) -> RepositoryInfo:
        """Repository metadata, including the default branch and token permissions."""
        resp = self._send("GET", self._repo_url)
        if resp.status_code == 404:
            raise RemoteNotFoundError(
                f"Repository {self.cfg.owner}/{self.cfg.repo} does not exist or the token "
                "cannot see it",
                404,
            )
        self._raise_for_status(resp, "GET", self._repo_url)
        data = resp.json()
        perms = data.get("permissions") or {}
        return RepositoryInfo(
            full_name=data.get("full_name") or f"{self.cfg.owner}/{self.cfg.repo}",
            default_branch=data.get("default_branch") or "main",
            can_pull=bool(perms.get("pull")),
            can_push=bool(perms.get("push")),
            private=bool(data.get("private")),
        )

    def verify_access(self) -> RepositoryInfo:
        """Ensure the token can read and write; return repository info."""
        info = self.get_repository()
        if not info.can_pull:
            raise PermissionDeniedError(
                "Token has no read access; grant Contents: Read to this repository", 403
            )
        if not info.can_push:
            raise PermissionDeniedError(
                "Token has no write access; grant Contents: Read and write (fine-grained tokens "
                "must include this repository)",
                403,
            )
        return info

    def remote_has_data(self) -> bool:
        """True when the managed .markmuse/ folder exists on the branch."""
        root = remote_root(self.cfg)
        resp = self._send("GET", self._contents_url(root), params={"ref": self.cfg.branch})
        if resp.status_code == 404:
            return False
        self._raise_for_status(resp, "GET", root)
        return True
