"""
Static site (Pages) deployment.

The site directory is copied to a temporary location so the worker URL can
be written into index.html without touching the codebase.
"""
import json
import re
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from ..exceptions import CommandExecutionError, DeployError, StaticSiteDeploymentError
from ..models.command import ErrorCategory
from ..models.deployment import StepOutcome
from ..utils.logging import get_logger
from .base import ReconcileContext, url_from_template
from .compute import find_url

logger = get_logger(__name__)

WORKER_URL_PATTERN = re.compile(r"""const WORKER_URL = ['"](.*?)['"]""")


def inject_worker_url(site_dir: Path, worker_url: str) -> bool:
    """Rewrite `const WORKER_URL = '...'` in index.html; returns True if it was present."""
    index = site_dir / "index.html"
    if not worker_url or not index.is_file():
        return False

    html = index.read_text(encoding="utf-8")
    if not WORKER_URL_PATTERN.search(html):
        return False

    index.write_text(
        WORKER_URL_PATTERN.sub(lambda _: f"const WORKER_URL = '{worker_url}'", html, count=1),
        encoding="utf-8",
    )
    return True


def parse_latest_deployment_url(output: str, suffix: str) -> Optional[str]:
    """URL of the newest deployment in `wrangler pages deployment list --json` output."""
    try:
        start = output.index("[")
        deployments = json.loads(output[start:])
    except ValueError:
        return find_url(output, suffix)

    for item in deployments:
        if not isinstance(item, dict):
            continue
        for key in ("Deployment", "url", "URL"):
            value = item.get(key)
            if isinstance(value, str) and value.startswith("https://"):
                return value.rstrip("/")
    return None


async def deploy_static_site(
    ctx: ReconcileContext,
    project_name: str,
    worker_url: str = "",
) -> StepOutcome:
    """
    Deploy the static site directory to the Pages project.

    Raises:
        StaticSiteDeploymentError: If the site directory is missing
        CommandExecutionError: If project creation or the deploy fails
    """
    site_dir = Path(ctx.cwd) / ctx.settings.static_site_dir
    template_url = url_from_template(project_name, ctx.settings.static_url_suffix)

    if not site_dir.is_dir():
        raise StaticSiteDeploymentError(
            f"Static site directory not found: {site_dir}",
            context={"directory": str(site_dir), "url": template_url}
        )

    try:
        await ctx.mutate("pages_project_create", project=project_name)
    except CommandExecutionError as e:
        if e.category is not ErrorCategory.ALREADY_EXISTS:
            raise

    staging = Path(tempfile.mkdtemp(prefix="static-site-"))
    try:
        staged_site = staging / site_dir.name
        shutil.copytree(site_dir, staged_site)
        if inject_worker_url(staged_site, worker_url):
            logger.info("worker_url_injected", project=project_name, worker_url=worker_url)
        await ctx.deploy("pages_deploy", directory=str(staged_site), project=project_name)
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    url = await discover_static_url(ctx, project_name)
    return StepOutcome(details=f"Static site deployed: {url}", url=url)


async def discover_static_url(ctx: ReconcileContext, project_name: str) -> str:
    """
    Public URL of the Pages project.

    Reads the newest production deployment from the listing and falls back
    to the deterministic template. Never raises.
    """
    suffix = ctx.settings.static_url_suffix
    template_url = url_from_template(project_name, suffix)

    try:
        listing = await ctx.query("pages_deployments", project=project_name)
        latest = parse_latest_deployment_url(listing.stdout, suffix)
        if latest:
            return latest
    except DeployError as e:
        logger.warning("static_url_discovery_failed", project=project_name, error=str(e))

    return template_url
