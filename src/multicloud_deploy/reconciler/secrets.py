"""
Worker secrets deployment.

All secrets go out in one bulk command from a temporary JSON payload; the
payload holds plaintext values and is removed whether the command succeeds
or not.
"""
import json
import os
import tempfile
from pathlib import Path
from typing import Dict

from ..exceptions import SecretsDeploymentError
from ..models.deployment import StepOutcome
from ..utils.logging import get_logger
from .base import ReconcileContext

logger = get_logger(__name__)


async def deploy_secrets(ctx: ReconcileContext, worker_name: str, secrets: Dict[str, str]) -> StepOutcome:
    """
    Push secrets to the worker with a single bulk command.

    Raises:
        SecretsDeploymentError: If there are no secrets to deploy
        CommandExecutionError: If the bulk command fails
    """
    if not secrets:
        raise SecretsDeploymentError(
            "No secrets to deploy",
            context={"worker": worker_name}
        )

    fd, temp_path = tempfile.mkstemp(prefix="secrets-", suffix=".json")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(secrets, f)
        await ctx.mutate("secrets_bulk", file=temp_path, worker=worker_name)
    finally:
        Path(temp_path).unlink(missing_ok=True)

    # Names only; values never reach the log
    logger.info("secrets_deployed", worker=worker_name, keys=sorted(secrets))
    return StepOutcome(details=f"Deployed {len(secrets)} secrets to {worker_name}")
