"""CLI entry point for the build relay."""

import json
import logging
import sys

import click

from build_relay.config import get_config
from build_relay.core.projects import extract_repo_name, parse_github_url
from build_relay.core.services import build_services
from build_relay.core.webhooks import is_expired
from build_relay.db.engine import StorageError
from build_relay.integrations.jenkins import BuildParameters


def _get_services():
    return build_services(get_config())


def _repo_label(url: str) -> str:
    """``owner/repo`` for GitHub URLs, else the last path segment."""
    if parsed := parse_github_url(url):
        return f"{parsed['owner']}/{parsed['repo']}"
    return extract_repo_name(url)


@click.group()
def main():
    """relay - Build Relay CLI"""
    pass


# ── Server Command ────────────────────────────────────────────────────────────


@main.command("serve")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8787, type=int, help="Port to listen on")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
)
def serve(host, port, log_level):
    """Run the webhook receiver and dashboard."""
    from build_relay.web.app import run_server

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    config = get_config()
    if not config.github_webhook_secret:
        click.echo("Warning: GITHUB_WEBHOOK_SECRET is not set, signatures will not be checked", err=True)

    click.echo(f"Starting build relay at http://{host}:{port}")
    run_server(host=host, port=port, log_level=log_level)


# ── Project Commands ──────────────────────────────────────────────────────────


@main.group("project")
def project_group():
    """Manage projects and their repositories."""
    pass


@project_group.command("list")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def project_list(json_output):
    """List projects."""
    projects = _get_services().projects.list_projects()

    if json_output:
        click.echo(json.dumps([p.to_dict() for p in projects], indent=2))
        return

    if not projects:
        click.echo("No projects found.")
        return

    for project in projects:
        click.echo(f"  {project.id}: {project.name} ({project.type}, {len(project.repos)} repos)")


@project_group.command("show")
@click.argument("project_id")
def project_show(project_id):
    """Show project details."""
    project = _get_services().projects.get_project(project_id)
    if not project:
        click.echo(f"Project not found: {project_id}", err=True)
        sys.exit(1)

    click.echo(f"Project: {project.id}")
    click.echo(f"  Name: {project.name}")
    click.echo(f"  Type: {project.type}")
    if project.created_at:
        click.echo(f"  Created: {project.created_at}")
    for repo in project.repos:
        flags = " [private]" if repo.is_private else ""
        flags += " [token]" if repo.has_token else ""
        click.echo(f"  Repo {repo.id}: {_repo_label(repo.url)} ({repo.url}){flags}")
        if repo.branches:
            click.echo(f"    Branches: {', '.join(repo.branches)}")


@project_group.command("create")
@click.argument("name")
@click.option("--type", "project_type", default="single", type=click.Choice(["single", "multiple"]))
@click.option("--repo", "repo_urls", multiple=True, help="Repository URL (repeatable)")
@click.option("--branch", "branches", multiple=True, help="Branch to monitor (repeatable)")
def project_create(name, project_type, repo_urls, branches):
    """Create a project."""
    repos = [{"url": url, "branches": list(branches)} for url in repo_urls]
    try:
        project = _get_services().projects.create_project(name, project_type, repos)
    except (ValueError, StorageError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Project created: {project.id} ({project.name})")
    for repo in project.repos:
        click.echo(f"  Repo {repo.id}: {repo.url}")


@project_group.command("delete")
@click.argument("project_id")
def project_delete(project_id):
    """Delete a project."""
    if not _get_services().projects.delete_project(project_id):
        click.echo(f"Project not found: {project_id}", err=True)
        sys.exit(1)
    click.echo(f"Deleted project: {project_id}")


@project_group.command("add-repo")
@click.argument("project_id")
@click.argument("url")
@click.option("--branch", "branches", multiple=True, help="Branch to monitor (repeatable)")
@click.option("--private", "is_private", is_flag=True, help="Repository is private")
@click.option("--token", default=None, help="Personal access token for a private repository")
def project_add_repo(project_id, url, branches, is_private, token):
    """Add a repository to a project."""
    repo = {"url": url, "branches": list(branches), "isPrivate": is_private, "token": token}
    try:
        project = _get_services().projects.add_repo(project_id, repo)
    except (ValueError, StorageError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if not project:
        click.echo(f"Project not found: {project_id}", err=True)
        sys.exit(1)
    added = project.repos[-1]
    click.echo(f"Added repo {added.id} to {project.id}")


@project_group.command("remove-repo")
@click.argument("project_id")
@click.argument("repo_id")
def project_remove_repo(project_id, repo_id):
    """Remove a repository from a project."""
    project = _get_services().projects.remove_repo(project_id, repo_id)
    if not project:
        click.echo(f"Project not found: {project_id}", err=True)
        sys.exit(1)
    click.echo(f"Removed repo {repo_id} from {project.id}")


# ── Webhook Commands ──────────────────────────────────────────────────────────


@main.group("webhook")
def webhook_group():
    """Manage webhook registrations."""
    pass


@webhook_group.command("list")
def webhook_list():
    """List webhooks."""
    webhooks = _get_services().webhooks.list_webhooks()
    if not webhooks:
        click.echo("No webhooks found.")
        return
    for w in webhooks:
        if is_expired(w):
            state = "expired"
        else:
            state = "active" if w.is_active else "inactive"
        click.echo(f"  [{state}] {w.id}: {w.endpoint} ({w.triggers} triggers)")


@webhook_group.command("create")
@click.argument("name")
@click.option("--project", "project_id", default=None, help="Project ID to bind to")
@click.option("--repo", "repo_id", default=None, help="Repo ID (or owner/name) to bind to")
@click.option("--branch", "branches", multiple=True, help="Branch scope (repeatable)")
@click.option("--expires", default=None, help="Expiry date (ISO 8601)")
def webhook_create(name, project_id, repo_id, branches, expires):
    """Register a webhook endpoint."""
    try:
        webhook = _get_services().webhooks.create_webhook(
            name, project_id, repo_id, expiry_date=expires, branches=list(branches)
        )
    except (ValueError, StorageError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Webhook created: {webhook.id}")
    click.echo(f"  Endpoint: {webhook.endpoint}")
    if webhook.expiry_date:
        click.echo(f"  Expires: {webhook.expiry_date}")


def _set_active(webhook_id: str, active: bool):
    webhook = _get_services().webhooks.update_webhook(webhook_id, is_active=active)
    if not webhook:
        click.echo(f"Webhook not found: {webhook_id}", err=True)
        sys.exit(1)
    click.echo(f"Webhook {webhook.id} {'enabled' if active else 'disabled'}")


@webhook_group.command("enable")
@click.argument("webhook_id")
def webhook_enable(webhook_id):
    """Enable a webhook."""
    _set_active(webhook_id, True)


@webhook_group.command("disable")
@click.argument("webhook_id")
def webhook_disable(webhook_id):
    """Disable a webhook."""
    _set_active(webhook_id, False)


@webhook_group.command("delete")
@click.argument("webhook_id")
def webhook_delete(webhook_id):
    """Delete a webhook."""
    if not _get_services().webhooks.delete_webhook(webhook_id):
        click.echo(f"Webhook not found: {webhook_id}", err=True)
        sys.exit(1)
    click.echo(f"Deleted webhook: {webhook_id}")


# ── Build Commands ────────────────────────────────────────────────────────────


@main.group("builds")
def builds_group():
    """Inspect the build log."""
    pass


@builds_group.command("list")
@click.option("--repo", default=None, help="Filter by repository")
@click.option("--branch", default=None, help="Filter by branch")
@click.option("--project", default=None, help="Filter by project ID")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def builds_list(repo, branch, project, json_output):
    """List recorded builds, newest first."""
    builds = _get_services().builds.filter_builds(repo=repo, branch=branch, project_id=project)

    if json_output:
        click.echo(json.dumps([b.to_dict() for b in builds], indent=2))
        return

    if not builds:
        click.echo("No builds found.")
        return

    for b in builds:
        click.echo(f"  [{b.status}] {b.repo}:{b.branch} {b.commit[:8]} #{b.build_id} by {b.author}")


@builds_group.command("stats")
def builds_stats():
    """Show build statistics."""
    stats = _get_services().builds.aggregate_stats()
    click.echo(f"Total builds: {stats['totalBuilds']}")
    click.echo(f"  Succeeded: {stats['successCount']}")
    click.echo(f"  Failed: {stats['failedCount']}")
    if stats["repos"]:
        click.echo(f"  Repos: {', '.join(stats['repos'])}")
    if stats["branches"]:
        click.echo(f"  Branches: {', '.join(stats['branches'])}")


# ── Jenkins Commands ──────────────────────────────────────────────────────────


@main.group("jenkins")
def jenkins_group():
    """Talk to the Jenkins server directly."""
    pass


@jenkins_group.command("trigger")
@click.argument("job_name")
@click.option("--repo-url", required=True, help="Repository URL passed as GIT_URL")
@click.option("--branch", default="main", help="Branch passed as GIT_BRANCH")
@click.option("--commit", default="HEAD", help="Commit passed as GIT_COMMIT")
@click.option("--message", default="Manual trigger", help="Message passed as COMMIT_MSG")
def jenkins_trigger(job_name, repo_url, branch, commit, message):
    """Trigger a parameterized build."""
    jenkins = _get_services().jenkins
    result = jenkins.trigger_build(
        job_name, BuildParameters(repo_url=repo_url, branch=branch, commit=commit, message=message)
    )
    if not result.success:
        click.echo(f"Error: {result.message}", err=True)
        sys.exit(1)
    click.echo(result.message)
    if result.build_number is not None:
        click.echo(f"  Queue item: {result.build_number}")


@jenkins_group.command("status")
@click.argument("job_name")
@click.argument("build_number", type=int)
def jenkins_status(job_name, build_number):
    """Show the status of a build."""
    status = _get_services().jenkins.get_build_status(job_name, build_number)
    click.echo(json.dumps(status, indent=2))


if __name__ == "__main__":
    main()
