"""Project registry: projects grouping repositories and monitored branches."""

import copy
import re
import uuid

from build_relay.core.secrets import SecretStore, repo_token_id
from build_relay.db.collection import CollectionStore
from build_relay.db.models import PROJECT_TYPES, Project, Repo, check_branches, check_flag, utcnow


def _new_id(prefix: str) -> str:
    millis = int(utcnow().timestamp() * 1000)
    return f"{prefix}_{millis}_{uuid.uuid4().hex[:9]}"


def extract_repo_name(url: str) -> str:
    """Last path segment of a repository URL, without ``.git``."""
    match = re.search(r"/([^/]+?)(\.git)?$", url or "")
    return match.group(1) if match else "unknown"


def parse_github_url(url: str) -> dict | None:
    """Split a GitHub HTTPS or SSH URL into owner and repo."""
    match = re.search(r"github\.com[/:]([\w-]+)/([\w.-]+?)(?:\.git)?$", url or "")
    if not match:
        return None
    return {"owner": match.group(1), "repo": match.group(2)}


def normalize_git_url(url: str) -> str:
    return re.sub(r"\.git$", "", (url or "").strip()).lower()


class ProjectRegistry(CollectionStore):
    """CRUD store for projects, persisted as the ``projects`` collection.

    Repository tokens are moved into the secret store on every write; the
    persisted project only records whether a token exists.
    """

    collection = "projects"

    def __init__(self, backend, secrets: SecretStore):
        super().__init__(backend)
        self.secrets = secrets

    def _decode(self, raw) -> list[Project]:
        return [Project.from_dict(p) for p in raw]

    def _encode(self, items: list[Project]) -> list[dict]:
        return [p.to_dict() for p in items]

    # ── Queries ──────────────────────────────────────────────────────────────

    def list_projects(self) -> list[Project]:
        """List all projects, newest first."""
        return copy.deepcopy(self._load())

    def get_project(self, project_id: str) -> Project | None:
        project = next((p for p in self._load() if p.id == project_id), None)
        return copy.deepcopy(project)

    def find_by_repo_url(self, repo_url: str) -> tuple[Project, Repo] | None:
        """Find the first project holding a repo whose URL matches ``repo_url``."""
        wanted = normalize_git_url(repo_url)
        if not wanted:
            return None
        for project in self._load():
            for repo in project.repos:
                if normalize_git_url(repo.url) == wanted:
                    return copy.deepcopy(project), copy.deepcopy(repo)
        return None

    def get_repo_token(self, repo_id: str) -> str | None:
        return self.secrets.get(repo_token_id(repo_id))

    # ── Mutations ────────────────────────────────────────────────────────────

    def create_project(
        self,
        name: str,
        type: str = "single",
        repos: list | None = None,
    ) -> Project:
        """Create a new project."""
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Project name is required")
        _check_type(type)

        now = utcnow()
        project = Project(
            id=_new_id("proj"),
            name=name.strip(),
            type=type,
            repos=[self._store_token(_coerce_repo(r)) for r in repos or []],
            created_at=now,
            updated_at=now,
        )

        self._mutate(lambda items: items.insert(0, project))
        return copy.deepcopy(project)

    def update_project(self, project_id: str, **kwargs) -> Project | None:
        """Update project fields (name, type, repos)."""
        allowed = {"name", "type", "repos"}
        updates = {k: v for k, v in kwargs.items() if k in allowed and v is not None}
        if "type" in updates:
            _check_type(updates["type"])
        if "name" in updates and not str(updates["name"]).strip():
            raise ValueError("Project name cannot be empty")
        if "repos" in updates:
            updates["repos"] = [self._store_token(_coerce_repo(r)) for r in updates["repos"]]

        def apply(items):
            project = _find(items, project_id)
            if not project:
                return None
            for key, value in updates.items():
                setattr(project, key, value)
            project.updated_at = utcnow()
            return project

        if not self.get_project(project_id):
            return None
        return copy.deepcopy(self._mutate(apply))

    def delete_project(self, project_id: str) -> bool:
        """Delete a project and the tokens of its repos."""
        project = self.get_project(project_id)
        if not project:
            return False

        self._mutate(lambda items: items.remove(_find(items, project_id)))
        for repo in project.repos:
            self.secrets.delete(repo_token_id(repo.id))
        return True

    def add_repo(self, project_id: str, repo) -> Project | None:
        """Append a repo to a project."""
        if not self.get_project(project_id):
            return None
        new_repo = self._store_token(_coerce_repo(repo))

        def apply(items):
            project = _find(items, project_id)
            project.repos.append(new_repo)
            project.updated_at = utcnow()
            return project

        return copy.deepcopy(self._mutate(apply))

    def remove_repo(self, project_id: str, repo_id: str) -> Project | None:
        """Remove a repo from a project. Unknown repo ids are ignored."""
        if not self.get_project(project_id):
            return None

        def apply(items):
            project = _find(items, project_id)
            project.repos = [r for r in project.repos if r.id != repo_id]
            project.updated_at = utcnow()
            return project

        result = self._mutate(apply)
        self.secrets.delete(repo_token_id(repo_id))
        return copy.deepcopy(result)

    def update_repo(self, project_id: str, repo_id: str, **kwargs) -> Project | None:
        """Update a repo's url, branches, privacy flag or token.

        An empty-string token removes the stored token.
        """
        project = self.get_project(project_id)
        if not project or not project.find_repo(repo_id):
            return None

        token = kwargs.pop("token", None)
        allowed = {"url", "branches", "is_private"}
        updates = {k: v for k, v in kwargs.items() if k in allowed and v is not None}
        if "branches" in updates:
            updates["branches"] = check_branches(updates["branches"])
        if "is_private" in updates:
            updates["is_private"] = check_flag(updates["is_private"], "isPrivate")
        if "url" in updates and not (isinstance(updates["url"], str) and updates["url"].strip()):
            raise ValueError("Repo url is required")

        has_token = project.find_repo(repo_id).has_token
        if token:
            self.secrets.set(repo_token_id(repo_id), token)
            has_token = True
        elif token == "":
            self.secrets.delete(repo_token_id(repo_id))
            has_token = False

        def apply(items):
            target = _find(items, project_id)
            repo = target.find_repo(repo_id)
            for key, value in updates.items():
                setattr(repo, key, value)
            repo.has_token = has_token
            target.updated_at = utcnow()
            return target

        return copy.deepcopy(self._mutate(apply))

    def _store_token(self, repo: Repo) -> Repo:
        if repo.token:
            self.secrets.set(repo_token_id(repo.id), repo.token)
        repo.has_token = self.get_repo_token(repo.id) is not None
        repo.token = None
        return repo


def _coerce_repo(repo) -> Repo:
    """Accept a ``Repo`` or an API-style dict; fill in a missing id."""
    if isinstance(repo, dict):
        repo = Repo.from_dict(repo)
    elif not isinstance(repo, Repo):
        raise ValueError(f"Invalid repo: {repo!r}")
    else:
        repo = copy.deepcopy(repo)
    if not isinstance(repo.url, str) or not repo.url.strip():
        raise ValueError("Repo url is required")
    if not repo.id:
        repo.id = _new_id("repo")
    return repo


def _check_type(project_type: str):
    if project_type not in PROJECT_TYPES:
        raise ValueError(
            f"Invalid project type: {project_type} (expected one of {', '.join(PROJECT_TYPES)})"
        )


def _find(items: list[Project], project_id: str) -> Project | None:
    return next((p for p in items if p.id == project_id), None)
