"""Webhook dispatch: turn an inbound webhook call into a Jenkins build and a log entry.

Two inbound shapes share one pipeline. A payload adapter normalizes the body
into a ``PushEvent``; a job-name policy picks the Jenkins job; the result is
recorded in the build log.

- Registry-scoped calls (``/webhooks/{id}``) accept a generic push-like body
  and are gated by the webhook's ``is_active`` flag and expiry date.
- GitHub-native calls (``/webhooks/github``) are authenticated with the
  ``X-Hub-Signature-256`` HMAC and only ``push`` events are dispatched.
"""

import hashlib
import hmac
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from build_relay.core.builds import BuildLogStore
from build_relay.core.projects import ProjectRegistry
from build_relay.core.webhooks import WebhookRegistry, is_expired
from build_relay.db.models import BuildLog, Project, Repo, utcnow
from build_relay.integrations.jenkins import BuildParameters, JenkinsClient, TriggerResult

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


class DispatchError(Exception):
    """Raised when a webhook call is rejected before dispatch."""

    status_code = 500


class WebhookNotFound(DispatchError):
    status_code = 404


class WebhookForbidden(DispatchError):
    status_code = 403


class InvalidSignature(DispatchError):
    status_code = 401


class MalformedPayload(DispatchError):
    status_code = 500


@dataclass
class PushEvent:
    repo: str
    repo_url: str
    branch: str
    commit: str
    author: str
    message: str


@dataclass
class DispatchOutcome:
    event: PushEvent
    job_name: str
    result: TriggerResult
    build: BuildLog


# ── Payload adapters ──────────────────────────────────────────────────────────


def _dig(data, *keys):
    """Nested dict lookup that yields None on any missing or non-dict level."""
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _dig_str(data, *keys) -> str | None:
    """Like ``_dig`` but only yields non-empty strings."""
    value = _dig(data, *keys)
    return value if isinstance(value, str) and value else None


def branch_from_ref(ref) -> str | None:
    if not isinstance(ref, str) or not ref:
        return None
    return ref.removeprefix("refs/heads/") or None


def parse_generic_payload(payload, bound_repo: str | None = None) -> PushEvent:
    """Normalize a generic push or pull-request body.

    Missing fields fall back to ``bound_repo``, ``"main"`` or ``"unknown"``.
    """
    repo = _dig_str(payload, "repository", "full_name") or bound_repo or "unknown"
    return PushEvent(
        repo=repo,
        repo_url=repo,
        branch=(
            branch_from_ref(_dig(payload, "ref"))
            or _dig_str(payload, "pull_request", "head", "ref")
            or "main"
        ),
        commit=(
            _dig_str(payload, "head_commit", "id")
            or _dig_str(payload, "pull_request", "head", "sha")
            or "unknown"
        ),
        author=(
            _dig_str(payload, "pusher", "name")
            or _dig_str(payload, "pull_request", "user", "login")
            or "unknown"
        ),
        message=(
            _dig_str(payload, "head_commit", "message")
            or _dig_str(payload, "pull_request", "title")
            or "Webhook triggered"
        ),
    )


def parse_github_payload(payload) -> PushEvent:
    """Normalize a GitHub ``push`` event body."""
    repo = _dig_str(payload, "repository", "name") or "unknown"
    return PushEvent(
        repo=repo,
        repo_url=(
            _dig_str(payload, "repository", "html_url")
            or _dig_str(payload, "repository", "clone_url")
            or repo
        ),
        branch=branch_from_ref(_dig(payload, "ref")) or "main",
        commit=_dig_str(payload, "head_commit", "id") or "unknown",
        author=_dig_str(payload, "pusher", "name") or "Unknown",
        message=_dig_str(payload, "head_commit", "message") or "No message",
    )


# ── Job-name policies ─────────────────────────────────────────────────────────


def generic_job_name(event: PushEvent, override: str | None = None) -> str:
    return override or f"{event.repo.replace('/', '-')}-{event.branch}"


def github_job_name(event: PushEvent) -> str:
    return re.sub(r"[^a-zA-Z0-9-]", "-", f"{event.repo}-{event.branch}").lower()


# ── Signature ─────────────────────────────────────────────────────────────────


def sign_payload(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Constant-time check of an ``X-Hub-Signature-256`` header.

    With no secret configured every request passes.
    """
    if not secret:
        logger.warning("GITHUB_WEBHOOK_SECRET not set - webhook verification skipped")
        return True
    if not signature:
        return False
    return hmac.compare_digest(signature.encode(), sign_payload(secret, body).encode())


# ── Pipeline ──────────────────────────────────────────────────────────────────


class Dispatcher:
    def __init__(
        self,
        webhooks: WebhookRegistry,
        projects: ProjectRegistry,
        builds: BuildLogStore,
        jenkins: JenkinsClient,
        job_override: str | None = None,
        github_secret: str = "",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.webhooks = webhooks
        self.projects = projects
        self.builds = builds
        self.jenkins = jenkins
        self.job_override = job_override
        self.github_secret = github_secret
        self.clock = clock

    def dispatch_registered(self, webhook_id: str, body) -> tuple[DispatchOutcome, str]:
        """Dispatch a call to a registered webhook.

        ``body`` is the raw request body, or an already decoded payload.
        It is only decoded once the webhook passed its checks.

        Returns the outcome and the webhook's display name. The trigger
        counter is bumped before Jenkins is contacted, so it counts accepted
        calls whether or not the build could be queued.
        """
        webhook = self.webhooks.get_webhook(webhook_id)
        if not webhook:
            raise WebhookNotFound("Webhook not found")
        if not webhook.is_active:
            raise WebhookForbidden("Webhook is inactive")
        now = self.clock()
        if is_expired(webhook, now):
            raise WebhookForbidden("Webhook has expired")

        payload = _decode_body(body) if isinstance(body, (bytes, str)) else body
        event = parse_generic_payload(payload, bound_repo=webhook.repo_id)
        self.webhooks.increment_trigger(webhook_id, now)

        project, repo = self._bound_project(webhook.project_id, webhook.repo_id)
        job_name = generic_job_name(event, self.job_override)
        result = self.jenkins.trigger_build(
            job_name, _build_params(event), token=self._repo_token(repo)
        )

        build = self.builds.append(BuildLog(
            repo=event.repo,
            branch=event.branch,
            commit=event.commit,
            author=event.author,
            message=event.message,
            build_id=f"build-{int(now.timestamp() * 1000)}",
            status="triggered" if result.success else "failed",
            timestamp=now,
            jenkins_url=self.jenkins.job_url(job_name),
            project_id=webhook.project_id,
            project_name=project.name if project else webhook.display_name,
        ))
        logger.info(
            "Webhook %s dispatched %s:%s -> %s (%s)",
            webhook_id, event.repo, event.branch, job_name, build.status,
        )
        return DispatchOutcome(event, job_name, result, build), webhook.display_name

    def dispatch_github(
        self,
        body: bytes,
        signature: str | None,
        event_type: str | None,
    ) -> DispatchOutcome | None:
        """Dispatch a GitHub delivery. Returns None for ignored (non-push) events."""
        if not verify_signature(self.github_secret, body, signature):
            raise InvalidSignature("Invalid webhook signature")

        payload = _decode_body(body)

        if event_type != "push":
            logger.info("Ignoring GitHub %s event", event_type)
            return None

        event = parse_github_payload(payload)
        logger.info("[GitHub Webhook] Push to %s:%s by %s", event.repo, event.branch, event.author)

        project, repo = self._project_for_push(payload)
        job_name = github_job_name(event)
        result = self.jenkins.trigger_build(
            job_name, _build_params(event), token=self._repo_token(repo)
        )

        build = self.builds.append(BuildLog(
            repo=event.repo,
            branch=event.branch,
            commit=event.commit,
            author=event.author,
            message=event.message,
            build_id=str(result.build_number) if result.build_number is not None else "pending",
            status="triggered" if result.success else "failed",
            timestamp=self.clock(),
            jenkins_url=result.queue_url or "",
            project_id=project.id if project else None,
            project_name=project.name if project else None,
        ))
        return DispatchOutcome(event, job_name, result, build)

    def _bound_project(
        self, project_id: str | None, repo_id: str | None
    ) -> tuple[Project | None, Repo | None]:
        if not project_id:
            return None, None
        project = self.projects.get_project(project_id)
        if not project:
            return None, None
        return project, project.find_repo(repo_id) if repo_id else None

    def _project_for_push(self, payload) -> tuple[Project | None, Repo | None]:
        for key in ("html_url", "clone_url", "ssh_url"):
            url = _dig_str(payload, "repository", key)
            if url and (match := self.projects.find_by_repo_url(url)):
                return match
        return None, None

    def _repo_token(self, repo: Repo | None) -> str | None:
        if repo is None or not repo.is_private:
            return None
        return self.projects.get_repo_token(repo.id)


def _decode_body(body: bytes | str):
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedPayload(f"Invalid JSON body: {e}") from e


def _build_params(event: PushEvent) -> BuildParameters:
    return BuildParameters(
        repo_url=event.repo_url,
        branch=event.branch,
        commit=event.commit,
        message=event.message,
    )
