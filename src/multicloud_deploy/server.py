# Este es el servidor principal MCP que inicializa la configuración, logging,
# registra las 4 herramientas de despliegue y ejecuta el servidor FastMCP.

"""
Multi-cloud deploy MCP server.

Exposes the deployment engine over the Model Context Protocol.
"""
from mcp.server.fastmcp import FastMCP  # Framework FastMCP para crear servidor MCP

from .config.settings import get_settings  # Singleton de configuración
from .utils.logging import configure_logging, get_logger  # Sistema de logging estructurado

from .tools.deploy_tools import register_deploy_tools  # deploy_environment, deployment_status, validate_deployment_config
from .tools.history_tools import register_history_tools  # get_deployment_history

settings = get_settings()
settings.ensure_directories()

configure_logging(settings)

logger = get_logger(__name__)

mcp = FastMCP(
    name=settings.server_name,
    json_response=True
)

logger.info(
    "mcp_server_initializing",
    server_name=settings.server_name,
    transport=settings.transport,
    log_level=settings.log_level
)

register_deploy_tools(mcp)
logger.info("deploy_tools_registered", tools=["deploy_environment", "deployment_status", "validate_deployment_config"])

register_history_tools(mcp)
logger.info("history_tools_registered", tools=["get_deployment_history"])


def main():
    """
    Main entry point for running the MCP server.

    Can be invoked via:
    - multicloud-deploy-mcp
    - python -m multicloud_deploy
    """
    logger.info("starting_mcp_server", transport=settings.transport)

    try:
        mcp.run(transport=settings.transport)
    except KeyboardInterrupt:
        logger.info("mcp_server_shutdown", reason="keyboard_interrupt")
    except Exception as e:
        logger.error("mcp_server_error", error=str(e))
        raise


if __name__ == "__main__":
    main()
