"""Build log store: the most recent builds, newest first."""

import copy
from datetime import timedelta

from build_relay.db.collection import CollectionStore
from build_relay.db.models import BUILD_STATUSES, BuildLog, utcnow

MAX_BUILD_LOGS = 100


class BuildLogStore(CollectionStore):
    """Append-only build log capped at ``MAX_BUILD_LOGS`` entries.

    Entries are kept in insertion order, newest first. When the cap is
    exceeded the oldest inserted entries are dropped, regardless of their
    timestamps.
    """

    collection = "builds"

    def __init__(self, backend, limit: int = MAX_BUILD_LOGS):
        super().__init__(backend)
        self.limit = limit

    def _decode(self, raw) -> list[BuildLog]:
        return [BuildLog.from_dict(b) for b in raw]

    def _encode(self, items: list[BuildLog]) -> list[dict]:
        return [b.to_dict() for b in items]

    def append(self, build: BuildLog) -> BuildLog:
        if build.timestamp is None:
            build.timestamp = utcnow()

        def apply(items):
            items.insert(0, copy.deepcopy(build))
            del items[self.limit:]

        self._mutate(apply)
        return build

    def filter_builds(
        self,
        repo: str | None = None,
        branch: str | None = None,
        project_id: str | None = None,
    ) -> list[BuildLog]:
        """List builds, optionally filtered by repo, branch and project."""
        builds = self._load()
        if repo:
            builds = [b for b in builds if b.repo == repo]
        if branch:
            builds = [b for b in builds if b.branch == branch]
        if project_id:
            builds = [b for b in builds if b.project_id == project_id]
        return copy.deepcopy(builds)

    def aggregate_stats(self) -> dict:
        builds = self._load()
        return {
            "totalBuilds": len(builds),
            "successCount": sum(1 for b in builds if b.status == "success"),
            "failedCount": sum(1 for b in builds if b.status == "failed"),
            "repos": list(dict.fromkeys(b.repo for b in builds)),
            "branches": list(dict.fromkeys(b.branch for b in builds)),
        }

    def update_build_status(
        self,
        build_id: str,
        status: str,
        duration: float | None = None,
    ) -> bool:
        """Patch the status (and duration) of the newest build with ``build_id``.

        Returns False when no build has that id.
        """
        if status not in BUILD_STATUSES:
            raise ValueError(f"Invalid build status: {status}")
        if not any(b.build_id == build_id for b in self._load()):
            return False

        def apply(items):
            build = next(b for b in items if b.build_id == build_id)
            build.status = status
            if duration is not None:
                build.duration = duration

        self._mutate(apply)
        return True

    def clear_old_builds(self, days: int = 30) -> int:
        """Drop builds older than ``days``. Returns how many were removed."""
        cutoff = utcnow() - timedelta(days=days)

        def apply(items):
            before = len(items)
            items[:] = [b for b in items if b.timestamp and b.timestamp > cutoff]
            return before - len(items)

        return self._mutate(apply)
