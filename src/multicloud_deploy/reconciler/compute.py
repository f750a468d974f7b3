"""
Worker deployment and public URL discovery.

The worker is deployed from a wrangler config generated for the run: the
codebase's own wrangler.json (when present) with the worker name, account
and the bucket/database bindings of this deployment written over it.
"""
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config.settings import Settings
from ..exceptions import CommandExecutionError, ComputeDeploymentError, DeployError
from ..models.deployment import StepOutcome
from ..utils.logging import get_logger
from .base import ReconcileContext, base_domain, url_from_template

logger = get_logger(__name__)


def find_url(text: str, suffix: str) -> Optional[str]:
    """First https URL in text whose host ends with the suffix's base domain."""
    domain = re.escape(base_domain(suffix))
    match = re.search(rf"https://[A-Za-z0-9.\-]+\.{domain}\b/?", text)
    return match.group(0).rstrip("/") if match else None


async def discover_worker_url(ctx: ReconcileContext, worker_name: str, deploy_output: str = "") -> str:
    """
    Find the worker's public URL.

    Looks in the deploy output first, then in the deployments listing, and
    falls back to the deterministic template. Never raises.
    """
    suffix = ctx.settings.compute_url_suffix

    url = find_url(deploy_output, suffix)
    if url:
        return url

    try:
        listing = await ctx.query("worker_deployments", worker=worker_name)
        url = find_url(listing.stdout, suffix)
    except DeployError as e:
        logger.warning("worker_url_discovery_failed", worker=worker_name, error=str(e))

    return url or url_from_template(worker_name, suffix)


def _replace_binding(entries: List[Dict[str, Any]], binding: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [entry for entry in entries if entry.get("binding") != binding["binding"]] + [binding]


def build_worker_config(
    settings: Settings,
    worker_name: str,
    base: Optional[Dict[str, Any]] = None,
    account_id: Optional[str] = None,
    bucket_name: Optional[str] = None,
    database_name: Optional[str] = None,
    database_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Wrangler config for one deployment.

    Bindings default to the resource names; a binding already declared in
    the base config under the same name is replaced.

    Args:
        settings: Settings (entry point, compatibility date, binding names)
        worker_name: Worker to deploy
        base: Parsed wrangler.json from the codebase, if any
        account_id: Cloudflare account id
        bucket_name: R2 bucket to bind
        database_name: D1 database to bind; only bound when database_id is known
        database_id: D1 database id from the database step
    """
    config = dict(base or {})
    config.setdefault("main", settings.worker_main)
    config.setdefault("compatibility_date", settings.worker_compatibility_date)
    config["name"] = worker_name
    if account_id:
        config["account_id"] = account_id

    if bucket_name:
        config["r2_buckets"] = _replace_binding(
            list(config.get("r2_buckets") or []),
            {"binding": settings.bucket_binding or bucket_name, "bucket_name": bucket_name},
        )

    if database_name and database_id:
        config["d1_databases"] = _replace_binding(
            list(config.get("d1_databases") or []),
            {
                "binding": settings.database_binding or database_name,
                "database_name": database_name,
                "database_id": database_id,
            },
        )

    return config


def read_base_config(codebase: Path, filename: str) -> Optional[Dict[str, Any]]:
    """
    The codebase's own wrangler JSON config, if there is one.

    Raises:
        ComputeDeploymentError: If the file exists but is not a JSON object
    """
    path = codebase / filename
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text())
    except ValueError as e:
        raise ComputeDeploymentError(
            f"Invalid wrangler config {filename}: {e}",
            context={"path": str(path)}
        )
    if not isinstance(data, dict):
        raise ComputeDeploymentError(
            f"Wrangler config {filename} must be a JSON object",
            context={"path": str(path)}
        )
    return data


async def deploy_worker(
    ctx: ReconcileContext,
    worker_name: str,
    *,
    account_id: Optional[str] = None,
    bucket_name: Optional[str] = None,
    database_name: Optional[str] = None,
    database_id: Optional[str] = None,
) -> StepOutcome:
    """
    Deploy the worker from the codebase directory with a generated config.

    The config file sits in the codebase directory so relative paths in it
    resolve as they do for the codebase's own config; it is removed on every
    exit path.

    Raises:
        ComputeDeploymentError: If the base config is invalid or the deploy command fails
    """
    warnings = []
    if database_name and not database_id:
        warnings.append(f"Database {database_name} id unknown; worker deployed without its D1 binding")

    codebase = Path(ctx.cwd)
    config = build_worker_config(
        ctx.settings,
        worker_name,
        base=read_base_config(codebase, ctx.settings.worker_config_file),
        account_id=account_id,
        bucket_name=bucket_name,
        database_name=database_name,
        database_id=database_id,
    )

    fd, config_path = tempfile.mkstemp(prefix=".wrangler-deploy-", suffix=".json", dir=codebase)
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(config, f, indent=2)
        result = await ctx.deploy("worker_deploy", worker=worker_name, config=config_path)
    except CommandExecutionError as e:
        raise ComputeDeploymentError(
            str(e),
            context={"worker": worker_name, "category": e.category.value}
        ) from e
    finally:
        Path(config_path).unlink(missing_ok=True)

    url = await discover_worker_url(ctx, worker_name, result.combined_output)
    return StepOutcome(details=f"Worker deployed: {url}", url=url, warnings=warnings)
