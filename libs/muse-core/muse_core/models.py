"""Core data models for MarkMuse Sync."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SyncConfig(BaseModel):
    """Connection settings for one sync run (immutable for the run)."""

    # Accept both alias keys (e.g., "basePath") and field names ("base_path")
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    token: str = Field(repr=False, description="GitHub token with Contents read/write")
    owner: str
    repo: str
    branch: str = Field(description="Branch to read from and commit to")
    base_path: str = Field(default="", alias="basePath", description="Folder inside the repo")

    @property
    def identity(self) -> tuple[str, str, str, str]:
        """Key used to serialize runs against the same remote."""
        return (self.owner, self.repo, self.branch, self.base_path.strip("/"))


class WorkspaceConfig(BaseModel):
    """Workspace settings (in .markmuse/config.yaml)."""

    model_config = ConfigDict(populate_by_name=True)

    config_version: int = Field(default=1, alias="config-version")
    repo: str = Field(description="owner/repo")
    branch: str = Field(default="main")
    base_path: str = Field(default="", alias="base-path")
    token_env: str = Field(
        default="MARKMUSE_GITHUB_TOKEN",
        alias="token-env",
        description="Environment variable holding the token",
    )


class FileRecord(BaseModel):
    """Local store listing entry (physical path)."""

    path: str
    is_directory: bool = False


class RemoteFileRecord(BaseModel):
    """A file seen in the remote listing."""

    repo_path: str = Field(description="Full path inside the repository")
    sha: str = Field(description="Blob SHA reported by the host")
    logical_path: str


class SyncItem(BaseModel):
    """One reported per-file outcome."""

    action: Literal["push", "pull", "skip", "delete", "error"]
    path: str
    detail: str = ""


class SyncResult(BaseModel):
    """Counters accumulated over one run."""

    pushed: int = 0
    pulled: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
    items: list[SyncItem] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def record(self, action: str, path: str, detail: str = "") -> None:
        """Count a successful outcome."""
        if action == "push":
            self.pushed += 1
        elif action == "pull":
            self.pulled += 1
        elif action == "delete":
            self.deleted += 1
        elif action == "skip":
            self.skipped += 1
        else:
            raise ValueError(f"Unknown sync action: {action}")
        self.items.append(SyncItem(action=action, path=path, detail=detail))

    def fail(self, path: str, error: Exception | str) -> None:
        """Append one per-file error."""
        message = str(error) or type(error).__name__
        self.errors.append(f"{path}: {message}")
        self.items.append(SyncItem(action="error", path=path, detail=message))
