"""Sync engine: baseline-driven push/pull decisions between the local store and GitHub."""

from __future__ import annotations

import json
import logging
import os
import threading
import weakref
from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from muse_core.baseline import BaselineStore
from muse_core.digest import git_blob_sha1
from muse_core.localstore import LocalStore
from muse_core.models import RemoteFileRecord, SyncConfig, SyncResult
from muse_core.paths import (
    MANAGED_ROOTS,
    is_managed_physical,
    is_syncable,
    to_logical,
    to_physical,
    to_remote,
)

from muse_sync.errors import (
    ExistsNeedsShaError,
    IntegrityError,
    RemoteError,
    RemoteNotFoundError,
    SyncInProgressError,
)
from muse_sync.github import GitHubContentsClient, RemoteFile

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4

# One in-flight run per remote (owner, repo, branch, base path) in this process.
# Entries live only while some run holds a reference to the lock.
_RUN_LOCKS: weakref.WeakValueDictionary[tuple[str, str, str, str], threading.Lock] = (
    weakref.WeakValueDictionary()
)
_RUN_LOCKS_GUARD = threading.Lock()


def _run_lock(identity: tuple[str, str, str, str]) -> threading.Lock:
    with _RUN_LOCKS_GUARD:
        lock = _RUN_LOCKS.get(identity)
        if lock is None:
            lock = threading.Lock()
            _RUN_LOCKS[identity] = lock
        return lock


class SyncDecision(Enum):
    """Sync decision for one logical path."""

    SKIP = "skip"
    PUSH = "push"
    PULL = "pull"


@dataclass
class SyncPlan:
    """Plan for syncing a single logical path."""

    logical_path: str
    physical_path: str
    repo_path: str
    decision: SyncDecision
    local_sha: str | None
    remote_sha: str | None
    baseline_sha: str | None
    local_content: bytes | None = field(default=None, repr=False)


def decide_sync(
    local_sha: str | None, remote_sha: str | None, baseline_sha: str | None
) -> SyncDecision:
    """
    Decide what to do with one path. First matching rule wins:

      1. local == remote (both present)                       -> SKIP
      2. baseline, local == baseline, remote != baseline      -> PULL (remote moved on)
      3. local present, baseline absent or local != baseline  -> PUSH (local wins)
      4. no baseline, no local, remote present                -> PULL (adopt remote file)
      5. anything else                                        -> SKIP

    Deletions are never inferred: a file missing on one side with a baseline
    in place falls through to rule 5.
    """
    if local_sha is not None and local_sha == remote_sha:
        return SyncDecision.SKIP
    if (
        baseline_sha is not None
        and local_sha == baseline_sha
        and remote_sha is not None
        and remote_sha != baseline_sha
    ):
        return SyncDecision.PULL
    if local_sha is not None and (baseline_sha is None or local_sha != baseline_sha):
        return SyncDecision.PUSH
    if baseline_sha is None and local_sha is None and remote_sha is not None:
        return SyncDecision.PULL
    return SyncDecision.SKIP


class SyncEngine:
    """Incremental and forced sync between a LocalStore and one GitHub folder."""

    def __init__(
        self,
        config: SyncConfig,
        local_store: LocalStore,
        baseline: BaselineStore,
        client: GitHubContentsClient | None = None,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        event_log: Path | None = None,
    ):
        self.config = config
        self.local = local_store
        self.baseline = baseline
        self._owns_client = client is None
        self.client = client or GitHubContentsClient(config)
        self.max_workers = max(1, max_workers)
        self.event_log = event_log
        self.last_plans: list[SyncPlan] = []

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> SyncEngine:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---- Logging / helpers -------------------------------------------------
    def _log_event(self, event: str, **payload) -> None:
        """Append a structured sync event to the event log as JSONL."""
        if self.event_log is None:
            return
        try:
            self.event_log.parent.mkdir(parents=True, exist_ok=True)
            payload = {"ts": datetime.now().strftime("%Y-%m-%d %H:%M"), "event": event, **payload}
            with open(self.event_log, "a", encoding="utf-8") as f:
                f.write(json.dumps(payload, ensure_ascii=False) + os.linesep)
        except Exception as e:
            logger.debug(f"Failed to write sync event log: {e}")

    @contextmanager
    def _run(self, name: str) -> Iterator[None]:
        """Single-flight guard; also makes sure the baseline is open for the run."""
        lock = _run_lock(self.config.identity)
        if not lock.acquire(blocking=False):
            raise SyncInProgressError(
                f"A sync for {self.config.owner}/{self.config.repo}@{self.config.branch} "
                "is already running"
            )
        opened_here = not self.baseline.is_open
        try:
            if opened_here:
                self.baseline.open()
            logger.info(f"Starting {name}")
            yield
        finally:
            if opened_here:
                self.baseline.close()
            lock.release()

    def _scan_local(self) -> dict[str, str]:
        """Syncable local files as {logical: physical}."""
        out: dict[str, str] = {}
        for rec in self.local.list_all():
            if rec.is_directory or not is_managed_physical(rec.path):
                continue
            try:
                logical = to_logical(rec.path)
            except ValueError as e:
                logger.warning(f"Skipping {rec.path}: {e}")
                continue
            if is_syncable(logical):
                out[logical] = rec.path
        return out

    def _list_remote(self) -> dict[str, RemoteFileRecord]:
        """The run's single bulk listing, as {logical: record}."""
        records = self.client.list_under_prefix()
        logger.info(f"Remote listing: {len(records)} files")
        return {r.logical_path: r for r in records if is_syncable(r.logical_path)}

    def _fetch_all(
        self, records: Iterable[RemoteFileRecord]
    ) -> Iterator[tuple[str, RemoteFile | None | Exception]]:
        """Fetch remote files with a bounded pool; yields (logical, file-or-error) as each lands."""
        records = list(records)
        if not records:
            return
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {pool.submit(self.client.get_file, r.repo_path): r for r in records}
            for fut in as_completed(futures):
                rec = futures[fut]
                try:
                    yield rec.logical_path, fut.result()
                except Exception as e:
                    yield rec.logical_path, e

    def _put_with_recovery(
        self, repo_path: str, content: bytes, sha: str | None, message: str
    ) -> str:
        """PUT once; if a create hits an existing file, refetch its sha and update instead."""
        try:
            return self.client.put_file(repo_path, content, sha, message)
        except ExistsNeedsShaError:
            current = self.client.get_file(repo_path)
            if current is None or not current.sha:
                raise RemoteError(f"Cannot obtain the current sha of {repo_path}") from None
            logger.info(f"{repo_path} already exists remotely; retrying as update")
            return self.client.put_file(repo_path, content, current.sha, message)

    def _push(
        self, logical: str, content: bytes, local_sha: str, remote_sha: str | None, message: str
    ) -> None:
        repo_path = to_remote(logical, self.config)
        new_sha = self._put_with_recovery(repo_path, content, remote_sha, message)
        if new_sha.lower() != local_sha:
            raise IntegrityError(
                f"GitHub reported sha {new_sha[:7]} for {logical}, expected {local_sha[:7]}"
            )
        self.baseline.set(logical, local_sha)

    def _land(self, logical: str, fetched: RemoteFile | None | Exception) -> str:
        """Write a fetched remote file locally and record its baseline; returns the sha."""
        if isinstance(fetched, Exception):
            raise fetched
        if fetched is None:
            raise RemoteNotFoundError(f"{logical} disappeared from the remote during sync")
        self.local.write(to_physical(logical), fetched.content)
        sha = git_blob_sha1(fetched.content)
        if fetched.sha and fetched.sha != sha:
            logger.warning(f"{logical}: remote sha {fetched.sha[:7]} != content hash {sha[:7]}")
        self.baseline.set(logical, sha)
        return sha

    # ---- planning ----------------------------------------------------------
    def _build_plans(
        self,
        local_paths: dict[str, str],
        remote: dict[str, RemoteFileRecord],
        result: SyncResult | None,
    ) -> list[SyncPlan]:
        plans: list[SyncPlan] = []
        for logical in sorted(set(local_paths) | set(remote)):
            physical = local_paths.get(logical) or to_physical(logical)
            try:
                content = self.local.read(physical) if logical in local_paths else None
            except OSError as e:
                if result is None:
                    raise
                logger.error(f"Cannot read {physical}: {e}")
                result.fail(logical, e)
                continue
            rec = remote.get(logical)
            local_sha = git_blob_sha1(content) if content is not None else None
            remote_sha = rec.sha if rec else None
            baseline_sha = self.baseline.get(logical)
            plans.append(
                SyncPlan(
                    logical_path=logical,
                    physical_path=physical,
                    repo_path=rec.repo_path if rec else to_remote(logical, self.config),
                    decision=decide_sync(local_sha, remote_sha, baseline_sha),
                    local_sha=local_sha,
                    remote_sha=remote_sha,
                    baseline_sha=baseline_sha,
                    local_content=content,
                )
            )
        return plans

    def plan(self) -> list[SyncPlan]:
        """Decisions an incremental sync would take right now (no side effects)."""
        with self._run("plan"):
            plans = self._build_plans(self._scan_local(), self._list_remote(), None)
        self.last_plans = plans
        return plans

    # ---- operations --------------------------------------------------------
    def incremental_sync(self) -> SyncResult:
        """
        Push local changes and pull remote changes according to decide_sync.

        Never deletes anything. Per-file failures land in `errors` and leave
        that path's baseline untouched, so the next run retries it.
        """
        with self._run("incremental sync"):
            result = SyncResult()
            remote = self._list_remote()
            plans = self._build_plans(self._scan_local(), remote, result)
            self.last_plans = plans

            fetched = dict(
                self._fetch_all(
                    remote[p.logical_path] for p in plans if p.decision == SyncDecision.PULL
                )
            )

            for plan in plans:
                logical = plan.logical_path
                try:
                    if plan.decision == SyncDecision.SKIP:
                        # Identical content: make sure the baseline agrees.
                        if plan.local_sha is not None and plan.local_sha == plan.remote_sha:
                            if plan.baseline_sha != plan.local_sha:
                                self.baseline.set(logical, plan.local_sha)
                        result.record("skip", logical)

                    elif plan.decision == SyncDecision.PUSH:
                        verb = "Update" if plan.remote_sha else "Create"
                        self._push(
                            logical,
                            plan.local_content or b"",
                            plan.local_sha or "",
                            plan.remote_sha,
                            f"{verb} {logical}",
                        )
                        result.record("push", logical, "local -> remote")
                        self._log_event("push", path=logical, sha=plan.local_sha)
                        logger.info(f"Pushed {logical}")

                    elif plan.decision == SyncDecision.PULL:
                        sha = self._land(logical, fetched.get(logical))
                        result.record("pull", logical, "remote -> local")
                        self._log_event("pull", path=logical, sha=sha)
                        logger.info(f"Pulled {logical}")

                except Exception as e:
                    logger.error(f"Error syncing {logical}: {e}")
                    result.fail(logical, e)

            logger.info(
                f"Incremental sync done: pushed {result.pushed}, pulled {result.pulled}, "
                f"skipped {result.skipped}, errors {len(result.errors)}"
            )
            return result

    def force_pull_all(self) -> SyncResult:
        """
        Replace the local store with the remote: delete every local file under
        files/ and .themes/, clear the baseline, download everything.

        Unpushed local edits are lost; callers must confirm first.
        """
        with self._run("force pull"):
            result = SyncResult()
            remote = self._list_remote()

            failed_deletes = False
            for rec in self.local.list_all():
                if rec.is_directory or not is_managed_physical(rec.path):
                    continue
                try:
                    self.local.delete(rec.path)
                    result.record("delete", rec.path, "local")
                except Exception as e:
                    failed_deletes = True
                    logger.error(f"Cannot delete local {rec.path}: {e}")
                    result.fail(rec.path, e)
            if not failed_deletes:
                # Leftover empty folders
                for root in MANAGED_ROOTS:
                    try:
                        self.local.delete_recursive(root)
                    except Exception as e:
                        logger.error(f"Cannot remove local folder {root}: {e}")
                        result.fail(root, e)

            self.baseline.clear()
            self._log_event("force_pull_cleared", deleted=result.deleted)

            for logical, fetched in self._fetch_all(remote.values()):
                try:
                    sha = self._land(logical, fetched)
                    result.record("pull", logical, "remote -> local (forced)")
                    self._log_event("pull", path=logical, sha=sha, forced=True)
                except Exception as e:
                    logger.error(f"Error pulling {logical}: {e}")
                    result.fail(logical, e)

            logger.info(
                f"Force pull done: deleted {result.deleted}, pulled {result.pulled}, "
                f"errors {len(result.errors)}"
            )
            return result

    def force_push_all(self) -> SyncResult:
        """
        Replace the remote with the local store: delete every remote file, then
        create every local one.

        Deletes may not have propagated when the creates arrive; a create that
        finds the file still present is retried as an update.
        """
        with self._run("force push"):
            result = SyncResult()
            remote = self._list_remote()

            for logical, rec in sorted(remote.items()):
                try:
                    self.client.delete_file(rec.repo_path, rec.sha, f"Force push: delete {logical}")
                    self.baseline.delete(logical)
                    result.record("delete", logical, "remote")
                    self._log_event("delete_remote", path=logical, sha=rec.sha, forced=True)
                except Exception as e:
                    logger.error(f"Cannot delete remote {rec.repo_path}: {e}")
                    result.fail(logical, e)

            for logical, physical in sorted(self._scan_local().items()):
                try:
                    content = self.local.read(physical)
                    if content is None:
                        raise FileNotFoundError(f"{physical} vanished before upload")
                    local_sha = git_blob_sha1(content)
                    self._push(logical, content, local_sha, None, f"Force push: {logical}")
                    result.record("push", logical, "local -> remote (forced)")
                    self._log_event("push", path=logical, sha=local_sha, forced=True)
                except Exception as e:
                    logger.error(f"Error pushing {logical}: {e}")
                    result.fail(logical, e)

            logger.info(
                f"Force push done: deleted {result.deleted}, pushed {result.pushed}, "
                f"errors {len(result.errors)}"
            )
            return result

    def find_remote_orphans(self) -> list[RemoteFileRecord]:
        """
        Remote files that were synced before and have since been deleted locally.

        Remote files without a baseline entry were never seen here (e.g. pushed
        from another device) and are left for the next sync to pull.
        """
        with self._run("orphan scan"):
            local_paths = self._scan_local()
            remote = self._list_remote()
            return [
                rec
                for logical, rec in sorted(remote.items())
                if logical not in local_paths and self.baseline.get(logical) is not None
            ]

    def delete_remote(self, records: Iterable[RemoteFileRecord]) -> SyncResult:
        """Delete the given remote files (after the caller confirmed) and drop their baselines."""
        with self._run("remote cleanup"):
            result = SyncResult()
            for rec in records:
                try:
                    self.client.delete_file(rec.repo_path, rec.sha, f"Delete {rec.logical_path}")
                    self.baseline.delete(rec.logical_path)
                    result.record("delete", rec.logical_path, "remote")
                    self._log_event("delete_remote", path=rec.logical_path, sha=rec.sha)
                except Exception as e:
                    logger.error(f"Cannot delete remote {rec.repo_path}: {e}")
                    result.fail(rec.logical_path, e)
            return result
