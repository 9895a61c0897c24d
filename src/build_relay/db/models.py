"""Data models for the build relay.

Records are persisted and served with camelCase keys; attributes stay
snake_case. ``to_dict``/``from_dict`` convert between the two.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

PROJECT_TYPES = ("single", "multiple")
BUILD_STATUSES = ("triggered", "running", "success", "failed")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_dt(val: str | None) -> datetime | None:
    """Parse an ISO 8601 string; naive values are taken as UTC."""
    if not val:
        return None
    if val.endswith("Z"):
        val = val[:-1] + "+00:00"
    dt = datetime.fromisoformat(val)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_dt(val: datetime | None) -> str | None:
    return val.isoformat() if val else None


def check_branches(value) -> list[str]:
    """Validate a branch list; None means no branches."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(b, str) for b in value):
        raise ValueError("branches must be a list of strings")
    return list(value)


def check_flag(value, name: str, default: bool = False) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValueError(f"{name} must be true or false")
    return value


@dataclass
class Repo:
    id: str
    url: str
    branches: list[str] = field(default_factory=list)
    is_private: bool = False
    has_token: bool = False
    # Only set on input; the registry moves it into the secret store.
    token: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "branches": list(self.branches),
            "isPrivate": self.is_private,
            "hasToken": self.has_token,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Repo":
        return cls(
            id=data.get("id") or "",
            url=data.get("url") or "",
            branches=check_branches(data.get("branches")),
            is_private=check_flag(data.get("isPrivate"), "isPrivate"),
            has_token=bool(data.get("hasToken", False)),
            token=data.get("token") or None,
        )


@dataclass
class Project:
    id: str
    name: str
    type: str = "single"
    repos: list[Repo] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def find_repo(self, repo_id: str) -> Repo | None:
        return next((r for r in self.repos if r.id == repo_id), None)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "repos": [r.to_dict() for r in self.repos],
            "createdAt": format_dt(self.created_at),
            "updatedAt": format_dt(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            type=data.get("type", "single"),
            repos=[Repo.from_dict(r) for r in data.get("repos") or []],
            created_at=parse_dt(data.get("createdAt")),
            updated_at=parse_dt(data.get("updatedAt")),
        )


@dataclass
class Webhook:
    id: str
    name: str
    display_name: str
    endpoint: str
    project_id: str | None = None
    repo_id: str | None = None
    branches: list[str] = field(default_factory=list)
    is_active: bool = True
    expiry_date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_triggered: datetime | None = None
    triggers: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "displayName": self.display_name,
            "endpoint": self.endpoint,
            "projectId": self.project_id,
            "repoId": self.repo_id,
            "branches": list(self.branches),
            "isActive": self.is_active,
            "expiryDate": format_dt(self.expiry_date),
            "createdAt": format_dt(self.created_at),
            "updatedAt": format_dt(self.updated_at),
            "lastTriggered": format_dt(self.last_triggered),
            "triggers": self.triggers,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Webhook":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            display_name=data.get("displayName") or data.get("name", ""),
            endpoint=data.get("endpoint", ""),
            project_id=data.get("projectId") or None,
            repo_id=data.get("repoId") or None,
            branches=list(data.get("branches") or []),
            is_active=bool(data.get("isActive", True)),
            expiry_date=parse_dt(data.get("expiryDate")),
            created_at=parse_dt(data.get("createdAt")),
            updated_at=parse_dt(data.get("updatedAt")),
            last_triggered=parse_dt(data.get("lastTriggered")),
            triggers=int(data.get("triggers") or 0),
        )


@dataclass
class BuildLog:
    repo: str
    branch: str
    commit: str
    author: str
    message: str
    build_id: str
    status: str = "triggered"
    timestamp: datetime | None = None
    jenkins_url: str = ""
    duration: float | None = None
    project_id: str | None = None
    project_name: str | None = None

    def to_dict(self) -> dict:
        return {
            "repo": self.repo,
            "branch": self.branch,
            "commit": self.commit,
            "author": self.author,
            "message": self.message,
            "buildId": self.build_id,
            "status": self.status,
            "timestamp": format_dt(self.timestamp),
            "jenkinsUrl": self.jenkins_url,
            "duration": self.duration,
            "projectId": self.project_id,
            "projectName": self.project_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BuildLog":
        return cls(
            repo=data.get("repo", ""),
            branch=data.get("branch", ""),
            commit=data.get("commit", ""),
            author=data.get("author", ""),
            message=data.get("message", ""),
            build_id=str(data.get("buildId", "")),
            status=data.get("status", "triggered"),
            timestamp=parse_dt(data.get("timestamp")),
            jenkins_url=data.get("jenkinsUrl") or "",
            duration=data.get("duration"),
            project_id=data.get("projectId") or None,
            project_name=data.get("projectName") or None,
        )
