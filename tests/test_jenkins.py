"""Tests for the Jenkins client against a mocked transport."""

import httpx

from build_relay.config import Config
from build_relay.integrations.jenkins import (
    BuildParameters,
    JenkinsClient,
    extract_build_number,
)

JENKINS_URL = "http://jenkins.test"

PARAMS = BuildParameters(
    repo_url="https://github.com/org/app",
    branch="feature/x",
    commit="abc123",
    message="Fix the thing",
)


class TestConfiguration:
    def test_unconfigured_makes_no_requests(self, fake_jenkins):
        client = JenkinsClient(JENKINS_URL, "", "", transport=httpx.MockTransport(fake_jenkins))
        result = client.trigger_build("app-main", PARAMS)
        assert result.success is False
        assert "not configured" in result.message
        assert fake_jenkins.requests == []

    def test_unconfigured_status_is_unknown(self, fake_jenkins):
        client = JenkinsClient(JENKINS_URL, "admin", "", transport=httpx.MockTransport(fake_jenkins))
        assert client.get_build_status("app-main", 7) == {"status": "unknown"}
        assert fake_jenkins.requests == []

    def test_from_config(self):
        config = Config(jenkins_url="http://ci.local:8080", jenkins_user="u", jenkins_token="t", jenkins_timeout=3.0)
        client = JenkinsClient.from_config(config)
        assert client.is_configured
        assert client.timeout == 3.0
        assert client.job_url("my job") == "http://ci.local:8080/job/my%20job"


class TestTriggerBuild:
    def test_success(self, jenkins, fake_jenkins):
        result = jenkins.trigger_build("app-main", PARAMS)

        assert result.success is True
        assert result.build_number == 42
        assert result.queue_url == f"{JENKINS_URL}/queue/item/42/"
        assert "triggered successfully" in result.message

        trigger = fake_jenkins.triggers[0]
        assert trigger.method == "POST"
        assert trigger.url.path == "/job/app-main/buildWithParameters"
        assert trigger.url.params["GIT_BRANCH"] == "feature/x"
        assert trigger.url.params["GIT_COMMIT"] == "abc123"
        assert trigger.url.params["GIT_URL"] == "https://github.com/org/app"
        assert trigger.url.params["COMMIT_MSG"] == "Fix the thing"
        assert "GIT_TOKEN" not in trigger.url.params
        assert trigger.headers["Jenkins-Crumb"] == "abc123"
        assert trigger.headers["Authorization"].startswith("Basic ")

    def test_crumb_requested_first(self, jenkins, fake_jenkins):
        jenkins.trigger_build("app-main", PARAMS)
        assert fake_jenkins.requests[0].url.path == "/crumbIssuer/api/xml"
        assert "xpath" in fake_jenkins.requests[0].url.params

    def test_token_forwarded(self, jenkins, fake_jenkins):
        jenkins.trigger_build("app-main", PARAMS, token="ghp_secret")
        assert fake_jenkins.triggers[0].url.params["GIT_TOKEN"] == "ghp_secret"

    def test_missing_location_still_succeeds(self, jenkins, fake_jenkins):
        fake_jenkins.location = None
        result = jenkins.trigger_build("app-main", PARAMS)
        assert result.success is True
        assert result.build_number is None

    def test_non_2xx_fails(self, jenkins, fake_jenkins):
        fake_jenkins.trigger_status = 500
        result = jenkins.trigger_build("app-main", PARAMS)
        assert result.success is False
        assert "500" in result.message

    def test_crumb_failure_still_posts(self, jenkins, fake_jenkins):
        fake_jenkins.crumb_status = 404
        result = jenkins.trigger_build("app-main", PARAMS)
        assert result.success is True
        assert len(fake_jenkins.triggers) == 1

    def test_unreachable(self, jenkins, fake_jenkins):
        fake_jenkins.unreachable = True
        result = jenkins.trigger_build("app-main", PARAMS)
        assert result.success is False
        assert "Jenkins trigger failed" in result.message

    def test_malformed_base_url(self, fake_jenkins):
        client = JenkinsClient(
            "http://jenkins:80a80", "admin", "api-token", transport=httpx.MockTransport(fake_jenkins)
        )
        result = client.trigger_build("app-main", PARAMS)
        assert result.success is False
        assert "Jenkins trigger failed" in result.message
        assert fake_jenkins.requests == []
        assert client.get_build_status("app-main", 7) == {"status": "unknown"}


class TestBuildStatus:
    def test_returns_payload(self, jenkins):
        status = jenkins.get_build_status("app-main", 7)
        assert status["result"] == "SUCCESS"
        assert status["number"] == 7

    def test_unreachable_is_unknown(self, jenkins, fake_jenkins):
        fake_jenkins.unreachable = True
        assert jenkins.get_build_status("app-main", 7) == {"status": "unknown"}


def test_extract_build_number():
    assert extract_build_number("http://ci/queue/item/1234/") == 1234
    assert extract_build_number("http://ci/job/x/") is None
    assert extract_build_number(None) is None
