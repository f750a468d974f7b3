# Este archivo implementa la herramienta MCP para consultar el historial de deployments.

"""
MCP tools for deployment history.
"""
from typing import Optional  # Type hints para valores opcionales

from mcp.server.fastmcp import FastMCP  # Framework FastMCP para registro de herramientas

from ..config.settings import get_settings  # Singleton de configuración
from ..utils.history_store import DeploymentHistoryStore  # Historial de deployments
from ..utils.logging import get_logger  # Logger estructurado

logger = get_logger(__name__)
settings = get_settings()


def register_history_tools(mcp: FastMCP) -> None:
    """
    Register history MCP tools.

    Args:
        mcp: FastMCP server instance
    """

    @mcp.tool()
    async def get_deployment_history(deployment_id: Optional[str] = None, limit: int = 10) -> dict:
        """
        Return recent runs of a deployment, newest first.

        Args:
            deployment_id: Deployment ID (default: the DEPLOY_ENV environment name)
            limit: Maximum number of runs to return (default: 10)

        Returns:
            Dictionary containing:
                - deploymentId: Deployment queried
                - count: Number of runs returned
                - history: Run records with URLs, errors and step logs
                - knownDeployments: All deployment IDs with stored history
        """
        deployment_id = deployment_id or settings.deploy_env
        store = DeploymentHistoryStore(settings.history_dir, settings.history_limit)
        entries = store.list(deployment_id, limit=max(limit, 1))

        logger.info("deployment_history_read", deployment_id=deployment_id, count=len(entries))

        return {
            "deploymentId": deployment_id,
            "count": len(entries),
            "history": [
                entry.model_dump(mode='json', by_alias=True, exclude_none=True) for entry in entries
            ],
            "knownDeployments": store.deployment_ids(),
        }
