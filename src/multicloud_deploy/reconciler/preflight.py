"""
Prerequisite and authentication checks run before any provisioning.
"""
from ..exceptions import AuthenticationError, PrerequisiteError
from ..models.deployment import StepOutcome
from ..utils.command_runner import gather_queries
from ..utils.logging import get_logger
from .base import ReconcileContext

logger = get_logger(__name__)


def _first_line(text: str) -> str:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return lines[0] if lines else ""


async def check_prerequisites(ctx: ReconcileContext) -> StepOutcome:
    """
    Verify both provider CLIs are installed.

    Raises:
        PrerequisiteError: If wrangler or gcloud is missing
    """
    wrangler, gcloud = await gather_queries(
        ctx.check("cloudflare_version"),
        ctx.check("gcp_version"),
    )

    status = {"wrangler": wrangler.success, "gcloud": gcloud.success}
    missing = [tool for tool, ok in status.items() if not ok]
    if missing:
        raise PrerequisiteError(
            f"Missing prerequisites: {', '.join(missing)}",
            context=status
        )

    details = f"wrangler {_first_line(wrangler.stdout)}; gcloud {_first_line(gcloud.stdout)}"
    logger.info("prerequisites_ok", wrangler=_first_line(wrangler.stdout), gcloud=_first_line(gcloud.stdout))
    return StepOutcome(details=f"Prerequisites OK ({details})")


async def check_authentication(ctx: ReconcileContext) -> StepOutcome:
    """
    Verify both providers have an authenticated identity.

    Raises:
        AuthenticationError: With needs_login=True if either provider is logged out
    """
    cloudflare, gcp = await gather_queries(
        ctx.check("cloudflare_whoami"),
        ctx.check("gcp_active_account"),
    )

    cloudflare_ok = cloudflare.success
    gcp_account = _first_line(gcp.stdout) if gcp.success else ""
    gcp_ok = bool(gcp_account)

    if not (cloudflare_ok and gcp_ok):
        raise AuthenticationError(
            f"Authentication failed: Cloudflare={cloudflare_ok}, GCP={gcp_ok}. "
            "Run 'wrangler login' and/or 'gcloud auth login'",
            needs_login=True,
            context={"cloudflare": cloudflare_ok, "gcp": gcp_ok}
        )

    return StepOutcome(details=f"Authentication OK (GCP account {gcp_account})")
