"""Secret storage for repository access tokens."""

from typing import Protocol

from build_relay.db.collection import CollectionStore


class SecretStore(Protocol):
    def get(self, secret_id: str) -> str | None: ...

    def set(self, secret_id: str, value: str) -> None: ...

    def delete(self, secret_id: str) -> bool: ...


class BackendSecretStore(CollectionStore):
    """Secrets kept in a ``secrets`` collection of the persistence backend.

    Values are stored in plaintext; swapping in a vault-backed store only
    requires implementing the three ``SecretStore`` methods.
    """

    collection = "secrets"

    def _decode(self, raw) -> list:
        return [dict(r) for r in raw if "id" in r]

    def _encode(self, items: list) -> list:
        return items

    def get(self, secret_id: str) -> str | None:
        record = next((r for r in self._load() if r["id"] == secret_id), None)
        return record["value"] if record else None

    def set(self, secret_id: str, value: str) -> None:
        def apply(items):
            items[:] = [r for r in items if r["id"] != secret_id]
            items.append({"id": secret_id, "value": value})

        self._mutate(apply)

    def delete(self, secret_id: str) -> bool:
        if self.get(secret_id) is None:
            return False

        def apply(items):
            items[:] = [r for r in items if r["id"] != secret_id]

        self._mutate(apply)
        return True


def repo_token_id(repo_id: str) -> str:
    return f"repo-token:{repo_id}"
