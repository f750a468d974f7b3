"""
Google Cloud project setup: make sure the APIs the worker calls are enabled.
"""
from typing import List

from ..exceptions import CommandExecutionError
from ..models.command import ErrorCategory
from ..models.deployment import StepOutcome
from ..utils.logging import get_logger
from .base import ReconcileContext

logger = get_logger(__name__)


async def ensure_gcp_apis(ctx: ReconcileContext, project_id: str, apis: List[str]) -> StepOutcome:
    """
    Enable every required API that is not enabled yet.

    A single API that cannot be enabled is a warning; failing to list the
    enabled services raises and fails the step.
    """
    listing = await ctx.query("gcp_enabled_services", project=project_id)
    enabled = {line.strip() for line in listing.stdout.splitlines() if line.strip()}

    newly_enabled = []
    warnings = []

    for api in apis:
        if api in enabled:
            continue
        try:
            await ctx.mutate("gcp_enable_service", service=api, project=project_id)
            newly_enabled.append(api)
            logger.info("gcp_api_enabled", api=api, project_id=project_id)
        except CommandExecutionError as e:
            if e.category is ErrorCategory.ALREADY_EXISTS:
                continue
            logger.warning("gcp_api_enable_failed", api=api, project_id=project_id, error=str(e))
            warnings.append(f"Failed to enable {api}: {e}")

    if newly_enabled:
        details = f"Enabled {', '.join(newly_enabled)} on {project_id}"
    else:
        details = f"Required APIs already enabled on {project_id}"
    return StepOutcome(details=details, warnings=warnings)
