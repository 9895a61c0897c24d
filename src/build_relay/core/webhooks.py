"""Webhook registry: named inbound endpoints with scoping and expiry."""

import copy
import re
from datetime import datetime

from build_relay.db.collection import CollectionStore
from build_relay.db.models import Webhook, check_branches, check_flag, parse_dt, utcnow


def sanitize_name(name: str) -> str:
    return re.sub(r"-+", "-", re.sub(r"[^a-z0-9]", "-", name.lower()))


def is_expired(webhook: Webhook, now: datetime | None = None) -> bool:
    """True when the webhook has an expiry date strictly before ``now``."""
    if not webhook.expiry_date:
        return False
    return webhook.expiry_date < (now or utcnow())


def _coerce_dt(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return parse_dt(value.isoformat())
    return parse_dt(str(value))


class WebhookRegistry(CollectionStore):
    """CRUD store for webhooks, persisted as the ``webhooks`` collection."""

    collection = "webhooks"

    def _decode(self, raw) -> list[Webhook]:
        return [Webhook.from_dict(w) for w in raw]

    def _encode(self, items: list[Webhook]) -> list[dict]:
        return [w.to_dict() for w in items]

    def list_webhooks(self) -> list[Webhook]:
        return copy.deepcopy(self._load())

    def get_webhook(self, webhook_id: str) -> Webhook | None:
        return copy.deepcopy(_find(self._load(), webhook_id))

    def list_active(self, now: datetime | None = None) -> list[Webhook]:
        """Webhooks that are active and not expired."""
        return [w for w in self.list_webhooks() if w.is_active and not is_expired(w, now)]

    def create_webhook(
        self,
        name: str,
        project_id: str | None = None,
        repo_id: str | None = None,
        expiry_date=None,
        branches: list[str] | None = None,
    ) -> Webhook:
        """Create a webhook; its id is the sanitized name plus a millisecond timestamp."""
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Webhook name is required")

        branches = check_branches(branches)
        now = utcnow()
        webhook_id = f"{sanitize_name(name)}-{int(now.timestamp() * 1000)}"
        webhook = Webhook(
            id=webhook_id,
            name=name,
            display_name=name,
            endpoint=f"/webhooks/{webhook_id}",
            project_id=project_id or None,
            repo_id=repo_id or None,
            branches=branches,
            is_active=True,
            expiry_date=_coerce_dt(expiry_date),
            created_at=now,
            updated_at=now,
            triggers=0,
        )

        self._mutate(lambda items: items.append(webhook))
        return copy.deepcopy(webhook)

    def update_webhook(self, webhook_id: str, **kwargs) -> Webhook | None:
        """Update webhook fields. ``expiry_date=""`` clears the expiry."""
        allowed = {
            "name", "display_name", "project_id", "repo_id",
            "branches", "is_active", "expiry_date",
        }
        updates = {k: v for k, v in kwargs.items() if k in allowed and v is not None}
        if "branches" in updates:
            updates["branches"] = check_branches(updates["branches"])
        if "is_active" in updates:
            updates["is_active"] = check_flag(updates["is_active"], "isActive")
        if "expiry_date" in updates:
            updates["expiry_date"] = _coerce_dt(updates["expiry_date"])
        for key in ("project_id", "repo_id"):
            if key in updates:
                updates[key] = updates[key] or None

        if not self.get_webhook(webhook_id):
            return None

        def apply(items):
            webhook = _find(items, webhook_id)
            for key, value in updates.items():
                setattr(webhook, key, value)
            webhook.updated_at = utcnow()
            return webhook

        return copy.deepcopy(self._mutate(apply))

    def increment_trigger(self, webhook_id: str, now: datetime | None = None) -> Webhook | None:
        """Record one dispatch: bump ``triggers`` and set ``last_triggered``."""
        if not self.get_webhook(webhook_id):
            return None
        now = now or utcnow()

        def apply(items):
            webhook = _find(items, webhook_id)
            webhook.triggers += 1
            webhook.last_triggered = now
            webhook.updated_at = now
            return webhook

        return copy.deepcopy(self._mutate(apply))

    def delete_webhook(self, webhook_id: str) -> bool:
        if not self.get_webhook(webhook_id):
            return False
        self._mutate(lambda items: items.remove(_find(items, webhook_id)))
        return True


def _find(items: list[Webhook], webhook_id: str) -> Webhook | None:
    return next((w for w in items if w.id == webhook_id), None)
