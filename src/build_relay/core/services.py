"""Wiring of stores, the Jenkins client and the dispatcher from a Config."""

from dataclasses import dataclass

from build_relay.config import Config
from build_relay.core.builds import BuildLogStore
from build_relay.core.dispatch import Dispatcher
from build_relay.core.projects import ProjectRegistry
from build_relay.core.secrets import BackendSecretStore
from build_relay.core.webhooks import WebhookRegistry
from build_relay.db.engine import open_backend
from build_relay.integrations.jenkins import JenkinsClient


@dataclass
class Services:
    config: Config
    projects: ProjectRegistry
    webhooks: WebhookRegistry
    builds: BuildLogStore
    jenkins: JenkinsClient
    dispatcher: Dispatcher


def build_services(config: Config, jenkins: JenkinsClient | None = None) -> Services:
    """Create every store on one backend. Nothing is read until first use."""
    backend = open_backend(config.data_dir, config.storage)
    secrets = BackendSecretStore(backend)
    projects = ProjectRegistry(backend, secrets)
    webhooks = WebhookRegistry(backend)
    builds = BuildLogStore(backend)
    jenkins = jenkins or JenkinsClient.from_config(config)

    dispatcher = Dispatcher(
        webhooks,
        projects,
        builds,
        jenkins,
        job_override=config.jenkins_job,
        github_secret=config.github_webhook_secret,
    )
    return Services(
        config=config,
        projects=projects,
        webhooks=webhooks,
        builds=builds,
        jenkins=jenkins,
        dispatcher=dispatcher,
    )
