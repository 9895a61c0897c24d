"""Tests for the webhook dispatch pipeline."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from build_relay.core.builds import BuildLogStore
from build_relay.core.dispatch import (
    Dispatcher,
    InvalidSignature,
    MalformedPayload,
    WebhookForbidden,
    WebhookNotFound,
    branch_from_ref,
    github_job_name,
    parse_generic_payload,
    parse_github_payload,
    sign_payload,
    verify_signature,
)
from build_relay.core.projects import ProjectRegistry
from build_relay.core.webhooks import WebhookRegistry

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
SECRET = "s3cret"

PUSH = {
    "ref": "refs/heads/feature/x",
    "repository": {
        "name": "app",
        "full_name": "org/app",
        "html_url": "https://github.com/org/app",
        "clone_url": "https://github.com/org/app.git",
    },
    "head_commit": {"id": "abc123", "message": "Fix the thing"},
    "pusher": {"name": "dev"},
}


@pytest.fixture
def stores(backend, secrets):
    return (
        WebhookRegistry(backend),
        ProjectRegistry(backend, secrets),
        BuildLogStore(backend),
    )


@pytest.fixture
def dispatcher(stores, jenkins):
    webhooks, projects, builds = stores
    return Dispatcher(webhooks, projects, builds, jenkins, github_secret=SECRET, clock=lambda: NOW)


def _body(payload=PUSH) -> bytes:
    return json.dumps(payload).encode()


class TestPayloadParsing:
    def test_branch_from_ref(self):
        assert branch_from_ref("refs/heads/feature/x") == "feature/x"
        assert branch_from_ref("refs/heads/main") == "main"
        assert branch_from_ref(None) is None

    def test_pull_request_branch(self):
        event = parse_generic_payload({"pull_request": {"head": {"ref": "pr-branch", "sha": "def456"}, "title": "PR"}})
        assert event.branch == "pr-branch"
        assert event.commit == "def456"
        assert event.message == "PR"

    def test_defaults(self):
        event = parse_generic_payload({}, bound_repo="r1")
        assert event.branch == "main"
        assert event.repo == "r1"
        assert event.commit == "unknown"
        assert event.author == "unknown"
        assert event.message == "Webhook triggered"

    def test_non_string_fields_fall_back(self):
        payload = {
            "ref": 7,
            "repository": {"full_name": 42, "name": ["app"], "html_url": 1},
            "pull_request": {"head": {"ref": {"x": 1}, "sha": 3}},
            "pusher": {"name": False},
            "head_commit": {"message": None},
        }
        event = parse_generic_payload(payload)
        assert event.repo == "unknown"
        assert event.branch == "main"
        assert event.commit == "unknown"
        assert event.author == "unknown"
        assert event.message == "Webhook triggered"

        event = parse_github_payload(payload)
        assert event.repo == "unknown"
        assert event.repo_url == "unknown"
        assert event.author == "Unknown"

    def test_generic_push(self):
        event = parse_generic_payload(PUSH)
        assert event.repo == "org/app"
        assert event.branch == "feature/x"
        assert event.author == "dev"

    def test_github_push(self):
        event = parse_github_payload(PUSH)
        assert event.repo == "app"
        assert event.repo_url == "https://github.com/org/app"
        assert event.branch == "feature/x"

    def test_github_defaults(self):
        event = parse_github_payload({"repository": {"name": "app"}})
        assert event.repo_url == "app"
        assert event.author == "Unknown"
        assert event.message == "No message"


class TestJobNames:
    def test_github_job_name_sanitized(self):
        event = parse_github_payload({"ref": "refs/heads/Feature/X", "repository": {"name": "Org/Repo Name"}})
        assert github_job_name(event) == "org-repo-name-feature-x"


class TestSignature:
    def test_valid_signature(self):
        body = _body()
        assert verify_signature(SECRET, body, sign_payload(SECRET, body)) is True

    def test_mutated_header_rejected(self):
        body = _body()
        signature = sign_payload(SECRET, body)
        for i in range(len("sha256="), len(signature)):
            flipped = "0" if signature[i] != "0" else "1"
            mutated = signature[:i] + flipped + signature[i + 1:]
            assert verify_signature(SECRET, body, mutated) is False

    def test_mutated_body_rejected(self):
        body = _body()
        signature = sign_payload(SECRET, body)
        for i in range(0, len(body), 7):
            mutated = body[:i] + bytes([body[i] ^ 0x01]) + body[i + 1:]
            assert verify_signature(SECRET, mutated, signature) is False

    def test_missing_signature_rejected(self):
        assert verify_signature(SECRET, b"{}", None) is False

    def test_no_secret_skips_check(self):
        assert verify_signature("", b"{}", None) is True


class TestRegisteredDispatch:
    def test_not_found(self, dispatcher, stores):
        with pytest.raises(WebhookNotFound):
            dispatcher.dispatch_registered("nope", b"not json")
        assert stores[2].filter_builds() == []

    def test_inactive(self, dispatcher, stores, fake_jenkins):
        webhooks, _, builds = stores
        webhook = webhooks.create_webhook("Hook")
        webhooks.update_webhook(webhook.id, is_active=False)

        with pytest.raises(WebhookForbidden):
            dispatcher.dispatch_registered(webhook.id, _body())
        assert builds.filter_builds() == []
        assert fake_jenkins.requests == []
        assert webhooks.get_webhook(webhook.id).triggers == 0

    def test_expired_even_if_active(self, dispatcher, stores):
        webhooks, _, builds = stores
        webhook = webhooks.create_webhook("Hook", expiry_date=NOW - timedelta(seconds=1))

        with pytest.raises(WebhookForbidden):
            dispatcher.dispatch_registered(webhook.id, _body())
        assert builds.filter_builds() == []

    def test_malformed_body(self, dispatcher, stores):
        webhook = stores[0].create_webhook("Hook")
        with pytest.raises(MalformedPayload):
            dispatcher.dispatch_registered(webhook.id, b"{broken")

    def test_malformed_fields_still_logged(self, dispatcher, stores, fake_jenkins):
        webhooks, _, builds = stores
        webhook = webhooks.create_webhook("Hook")

        outcome, _ = dispatcher.dispatch_registered(webhook.id, b'{"repository": {"full_name": 42}}')

        assert outcome.job_name == "unknown-main"
        assert webhooks.get_webhook(webhook.id).triggers == 1
        [build] = builds.filter_builds()
        assert build.repo == "unknown"
        assert build.branch == "main"

    def test_success(self, dispatcher, stores, fake_jenkins):
        webhooks, _, builds = stores
        webhook = webhooks.create_webhook("Deploy Hook")

        outcome, display_name = dispatcher.dispatch_registered(webhook.id, _body())

        assert display_name == "Deploy Hook"
        assert outcome.result.success is True
        assert outcome.job_name == "org-app-feature/x"
        assert len(fake_jenkins.triggers) == 1

        updated = webhooks.get_webhook(webhook.id)
        assert updated.triggers == 1
        assert updated.last_triggered == NOW

        [build] = builds.filter_builds()
        assert build.status == "triggered"
        assert build.build_id == f"build-{int(NOW.timestamp() * 1000)}"
        assert build.project_name == "Deploy Hook"
        assert build.timestamp == NOW

    def test_each_dispatch_increments_once(self, dispatcher, stores):
        webhooks = stores[0]
        webhook = webhooks.create_webhook("Hook")
        for _ in range(3):
            dispatcher.dispatch_registered(webhook.id, PUSH)
        assert webhooks.get_webhook(webhook.id).triggers == 3

    def test_jenkins_failure_recorded(self, dispatcher, stores, fake_jenkins):
        webhooks, _, builds = stores
        fake_jenkins.trigger_status = 500
        webhook = webhooks.create_webhook("Hook")

        outcome, _ = dispatcher.dispatch_registered(webhook.id, _body())

        assert outcome.result.success is False
        assert builds.filter_builds()[0].status == "failed"
        assert webhooks.get_webhook(webhook.id).triggers == 1

    def test_job_override(self, stores, jenkins, fake_jenkins):
        webhooks, projects, builds = stores
        dispatcher = Dispatcher(webhooks, projects, builds, jenkins, job_override="monorepo-build")
        webhook = webhooks.create_webhook("Hook")
        dispatcher.dispatch_registered(webhook.id, _body())
        assert fake_jenkins.triggers[0].url.path == "/job/monorepo-build/buildWithParameters"

    def test_bound_private_repo_sends_token(self, dispatcher, stores, fake_jenkins):
        webhooks, projects, builds = stores
        project = projects.create_project("Platform", repos=[
            {"id": "r1", "url": "https://github.com/org/app", "isPrivate": True, "token": "ghp_secret"},
        ])
        webhook = webhooks.create_webhook("Hook", project_id=project.id, repo_id="r1")

        dispatcher.dispatch_registered(webhook.id, _body())

        assert fake_jenkins.triggers[0].url.params["GIT_TOKEN"] == "ghp_secret"
        build = builds.filter_builds()[0]
        assert build.project_id == project.id
        assert build.project_name == "Platform"


class TestGitHubDispatch:
    def test_push(self, dispatcher, stores, fake_jenkins):
        body = _body()
        outcome = dispatcher.dispatch_github(body, sign_payload(SECRET, body), "push")

        assert outcome.result.success is True
        assert outcome.job_name == "app-feature-x"
        [build] = stores[2].filter_builds()
        assert build.build_id == "42"
        assert build.status == "triggered"
        assert build.jenkins_url == "http://jenkins.test/queue/item/42/"
        assert build.project_id is None

    def test_non_push_ignored(self, dispatcher, stores, fake_jenkins):
        body = _body({"zen": "Keep it logically awesome."})
        assert dispatcher.dispatch_github(body, sign_payload(SECRET, body), "ping") is None
        assert fake_jenkins.requests == []
        assert stores[2].filter_builds() == []

    def test_invalid_signature(self, dispatcher, stores, fake_jenkins):
        with pytest.raises(InvalidSignature):
            dispatcher.dispatch_github(_body(), "sha256=deadbeef", "push")
        assert fake_jenkins.requests == []
        assert stores[2].filter_builds() == []

    def test_non_string_repository_urls(self, dispatcher, stores):
        body = _body({**PUSH, "repository": {"name": "app", "html_url": 5, "ssh_url": ["x"]}})
        outcome = dispatcher.dispatch_github(body, sign_payload(SECRET, body), "push")
        assert outcome.event.repo_url == "app"
        assert stores[2].filter_builds()[0].project_id is None

    def test_malformed_body(self, dispatcher):
        body = b"not json"
        with pytest.raises(MalformedPayload):
            dispatcher.dispatch_github(body, sign_payload(SECRET, body), "push")

    def test_jenkins_failure_recorded(self, dispatcher, stores, fake_jenkins):
        fake_jenkins.trigger_status = 403
        body = _body()
        outcome = dispatcher.dispatch_github(body, sign_payload(SECRET, body), "push")

        assert outcome.result.success is False
        build = stores[2].filter_builds()[0]
        assert build.status == "failed"
        assert build.build_id == "pending"

    def test_matched_project_enriches_log(self, dispatcher, stores, fake_jenkins):
        _, projects, builds = stores
        project = projects.create_project("Platform", repos=[
            {"id": "r1", "url": "https://github.com/org/app.git", "isPrivate": True, "token": "ghp_secret"},
        ])
        body = _body()
        dispatcher.dispatch_github(body, sign_payload(SECRET, body), "push")

        assert fake_jenkins.triggers[0].url.params["GIT_TOKEN"] == "ghp_secret"
        build = builds.filter_builds()[0]
        assert build.project_id == project.id
        assert build.project_name == "Platform"
        assert "ghp_secret" not in json.dumps(build.to_dict())
