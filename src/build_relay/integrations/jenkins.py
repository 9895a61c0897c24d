"""Jenkins HTTP client for parameterized builds."""

import logging
import re
from dataclasses import dataclass
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

CRUMB_XPATH = 'concat(//crumbRequestField,":",//crumb)'
DEFAULT_CRUMB_FIELD = "Jenkins-Crumb"
QUEUE_ITEM_RE = re.compile(r"/queue/item/(\d+)/")


@dataclass
class BuildParameters:
    repo_url: str
    branch: str
    commit: str
    message: str


@dataclass
class TriggerResult:
    success: bool
    build_number: int | None = None
    queue_url: str | None = None
    message: str = ""


def extract_build_number(queue_url: str | None) -> int | None:
    """Pull the queue item number out of a Jenkins ``Location`` header."""
    match = QUEUE_ITEM_RE.search(queue_url or "")
    return int(match.group(1)) if match else None


class JenkinsClient:
    """Triggers ``buildWithParameters`` jobs and reads build status.

    Failures never propagate: an unconfigured client or an unreachable
    server yields ``TriggerResult(success=False)``.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        api_token: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.username = username or ""
        self.api_token = api_token or ""
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_config(cls, config, transport: httpx.BaseTransport | None = None) -> "JenkinsClient":
        return cls(
            config.jenkins_url,
            config.jenkins_user,
            config.jenkins_token,
            timeout=config.jenkins_timeout,
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.username and self.api_token)

    def job_url(self, job_name: str) -> str:
        return f"{self.base_url}/job/{quote(job_name)}"

    def _client(self) -> httpx.Client:
        return httpx.Client(
            auth=(self.username, self.api_token),
            timeout=self.timeout,
            transport=self.transport,
        )

    def _get_crumb(self, client: httpx.Client) -> tuple[str, str]:
        """Fetch the CSRF crumb as ``(header_name, value)``; empty value on failure."""
        try:
            response = client.get(
                f"{self.base_url}/crumbIssuer/api/xml",
                params={"xpath": CRUMB_XPATH},
            )
            response.raise_for_status()
            field, _, crumb = response.text.strip().partition(":")
            return (field or DEFAULT_CRUMB_FIELD), crumb
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Could not fetch Jenkins crumb: %s", e)
            return DEFAULT_CRUMB_FIELD, ""

    def trigger_build(
        self,
        job_name: str,
        params: BuildParameters,
        token: str | None = None,
    ) -> TriggerResult:
        """Queue a parameterized build of ``job_name``.

        ``token`` is forwarded as ``GIT_TOKEN`` so the job can clone a
        private repository.
        """
        if not self.is_configured:
            logger.warning("Jenkins credentials not configured - build not triggered")
            return TriggerResult(
                success=False,
                message="Jenkins credentials not configured (set JENKINS_URL, JENKINS_USER and JENKINS_TOKEN)",
            )

        query = {
            "GIT_BRANCH": params.branch,
            "GIT_COMMIT": params.commit,
            "GIT_URL": params.repo_url,
            "COMMIT_MSG": params.message,
        }
        if token:
            query["GIT_TOKEN"] = token

        try:
            with self._client() as client:
                crumb_field, crumb = self._get_crumb(client)
                response = client.post(
                    f"{self.job_url(job_name)}/buildWithParameters",
                    params=query,
                    headers={crumb_field: crumb},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Jenkins rejected build of %s: HTTP %s", job_name, e.response.status_code)
            return TriggerResult(
                success=False,
                message=f"Jenkins returned status {e.response.status_code} for job '{job_name}'",
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error("Jenkins trigger error for %s: %s", job_name, e)
            return TriggerResult(success=False, message=f"Jenkins trigger failed: {e}")

        queue_url = response.headers.get("location")
        build_number = extract_build_number(queue_url)
        logger.info("Jenkins build triggered: %s #%s", job_name, build_number)
        return TriggerResult(
            success=True,
            build_number=build_number,
            queue_url=queue_url,
            message=f"Jenkins job '{job_name}' triggered successfully",
        )

    def get_build_status(self, job_name: str, build_number: int) -> dict:
        """Return the raw ``api/json`` payload of a build, or ``{"status": "unknown"}``."""
        if not self.is_configured:
            return {"status": "unknown"}

        try:
            with self._client() as client:
                response = client.get(f"{self.job_url(job_name)}/{build_number}/api/json")
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.error("Failed to fetch build status for %s #%s: %s", job_name, build_number, e)
            return {"status": "unknown"}
