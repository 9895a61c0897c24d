"""Shared fixtures: a temp storage backend and a fake Jenkins server."""

import tempfile
from pathlib import Path

import httpx
import pytest

from build_relay.core.secrets import BackendSecretStore
from build_relay.db.engine import JsonFileBackend
from build_relay.integrations.jenkins import JenkinsClient

JENKINS_URL = "http://jenkins.test"


class FakeJenkins:
    """Records every request and answers the way Jenkins does."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.crumb_status = 200
        self.trigger_status = 201
        self.location: str | None = f"{JENKINS_URL}/queue/item/42/"
        self.unreachable = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unreachable:
            raise httpx.ConnectError("Connection refused", request=request)

        path = request.url.path
        if path.startswith("/crumbIssuer"):
            return httpx.Response(self.crumb_status, text="Jenkins-Crumb:abc123")
        if path.endswith("/buildWithParameters"):
            headers = {"Location": self.location} if self.location else {}
            return httpx.Response(self.trigger_status, headers=headers)
        if path.endswith("/api/json"):
            return httpx.Response(200, json={"result": "SUCCESS", "building": False, "number": 7})
        return httpx.Response(404)

    @property
    def triggers(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/buildWithParameters")]


@pytest.fixture
def fake_jenkins():
    return FakeJenkins()


@pytest.fixture
def jenkins(fake_jenkins):
    return JenkinsClient(
        JENKINS_URL, "admin", "api-token", transport=httpx.MockTransport(fake_jenkins)
    )


@pytest.fixture
def data_dir():
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


@pytest.fixture
def backend(data_dir):
    return JsonFileBackend(data_dir)


@pytest.fixture
def secrets(backend):
    return BackendSecretStore(backend)
