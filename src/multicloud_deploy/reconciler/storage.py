"""
Object storage (R2) reconciliation: bucket existence, public URL and CORS.
"""
import json
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from ..exceptions import DeployError
from ..models.deployment import StepOutcome
from ..providers.cloudflare_api import CloudflareApiClient
from ..utils.logging import get_logger
from .base import ReconcileContext, ensure_resource

logger = get_logger(__name__)


def parse_bucket_names(output: str) -> List[str]:
    """Extract bucket names from `wrangler r2 bucket list` output (`name: <bucket>` lines)."""
    names = []
    for line in output.splitlines():
        key, sep, value = line.strip().partition(":")
        if sep and key.strip().lower() == "name" and value.strip():
            names.append(value.strip())
    return names


async def ensure_bucket(
    ctx: ReconcileContext,
    bucket_name: str,
    account_id: Optional[str] = None,
    api: Optional[CloudflareApiClient] = None,
) -> StepOutcome:
    """
    Ensure the bucket exists and look up its public URL when possible.

    The public URL lookup needs an API token and account ID; when it fails
    the step still succeeds and the URL is left empty.
    """
    async def is_present() -> bool:
        listing = await ctx.query("bucket_list")
        return bucket_name in parse_bucket_names(listing.stdout)

    created = await ensure_resource(
        ctx, "bucket", bucket_name, is_present, "bucket_create", bucket=bucket_name
    )

    public_url = ""
    if api is not None and account_id:
        try:
            public_url = await api.get_bucket_public_domain(account_id, bucket_name) or ""
        except DeployError as e:
            logger.warning("bucket_public_url_lookup_failed", bucket=bucket_name, error=str(e))

    details = f"Created bucket {bucket_name}" if created else f"Bucket {bucket_name} already exists"
    return StepOutcome(details=details, url=public_url)


def build_cors_rules(allowed_origins: List[str]) -> dict:
    """Default CORS rules: browser uploads and downloads from the given origins."""
    return {
        "rules": [
            {
                "allowed": {
                    "origins": list(allowed_origins),
                    "methods": ["GET", "PUT", "POST", "DELETE", "HEAD"],
                    "headers": ["*"],
                },
                "exposeHeaders": ["ETag"],
                "maxAgeSeconds": 3600,
            }
        ]
    }


async def configure_cors(ctx: ReconcileContext, bucket_name: str) -> StepOutcome:
    """
    Apply CORS rules to the bucket.

    Uses the codebase's CORS file when present, otherwise writes generated
    rules to a temporary file that is removed afterwards.
    """
    cors_file = Path(ctx.cwd) / ctx.settings.cors_file
    if cors_file.is_file():
        await ctx.mutate("bucket_cors_set", bucket=bucket_name, file=str(cors_file))
        return StepOutcome(details=f"CORS configured from {ctx.settings.cors_file}")

    fd, temp_path = tempfile.mkstemp(prefix="cors-", suffix=".json")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(build_cors_rules(ctx.settings.cors_allowed_origins), f, indent=2)
        await ctx.mutate("bucket_cors_set", bucket=bucket_name, file=temp_path)
    finally:
        Path(temp_path).unlink(missing_ok=True)

    return StepOutcome(details=f"CORS configured for {bucket_name} (generated rules)")
