# Este archivo implementa las herramientas MCP de despliegue multi-cloud:
# ejecutar el pipeline completo, consultar su estado y validar la configuración.

"""
MCP tools for running deployments.

Implements deploy_environment, deployment_status and validate_deployment_config.
"""
from typing import Optional  # Type hints para valores opcionales

from mcp.server.fastmcp import Context, FastMCP  # Framework FastMCP para registro de herramientas

from ..config.loader import apply_overrides, load_deployment_spec  # Carga del archivo de deployments
from ..config.settings import get_settings  # Singleton de configuración
from ..engine.orchestrator import DeploymentEngine, deploy_and_record  # Motor de orquestación
from ..exceptions import DeployError  # Excepción base del proyecto
from ..utils.command_runner import CommandExecutor  # Ejecutor de comandos con retry
from ..utils.history_store import DeploymentHistoryStore  # Historial de deployments
from ..utils.logging import get_logger  # Logger estructurado

logger = get_logger(__name__)
settings = get_settings()

_engine: Optional[DeploymentEngine] = None


def get_engine() -> DeploymentEngine:
    """Process-wide engine, so single-flight holds across tool calls."""
    global _engine
    if _engine is None:
        _engine = DeploymentEngine(CommandExecutor.from_settings(settings), settings=settings)
    return _engine


def context_sink(ctx: Context):
    """Progress sink that forwards step updates as MCP log notifications."""
    async def sink(step: str, status: str, details: str, log_line: Optional[str] = None) -> None:
        if log_line is not None:
            await ctx.debug(f"[{step}] {log_line}")
        else:
            await ctx.info(f"[{step}] {status}: {details}")
    return sink


def register_deploy_tools(mcp: FastMCP) -> None:
    """
    Register deployment MCP tools.

    Args:
        mcp: FastMCP server instance
    """

    @mcp.tool()
    async def deploy_environment(
        ctx: Context,
        environment: Optional[str] = None,
        deploy_static_site: Optional[bool] = None,
    ) -> dict:
        """
        Deploy one environment end to end.

        Runs the full pipeline: prerequisite and account checks, Google Cloud
        API setup, R2 bucket, D1 database and schema, bucket CORS, worker
        secrets, worker deploy and the static site. Step progress is streamed
        as log notifications. Only one deployment runs at a time.

        Args:
            environment: Environment name from the deployments file (default: DEPLOY_ENV)
            deploy_static_site: Override whether the static site is deployed

        Returns:
            Dictionary containing:
                - success: False if a hard step failed or a run was already in progress
                - computeUrl / staticUrl / bucketPublicUrl: Deployed endpoints
                - error: Fatal error message (if any)
                - errors: Step errors and warnings (if any)
                - history: Run record with the ordered step log
        """
        spec = apply_overrides(load_deployment_spec(environment, settings=settings), settings)
        if deploy_static_site is not None:
            spec = spec.model_copy(update={"deploy_static_site": deploy_static_site})

        logger.info("deploy_environment_called", deployment_id=spec.id, environment=environment)

        store = DeploymentHistoryStore(settings.history_dir, settings.history_limit)
        result = await deploy_and_record(get_engine(), spec, store, context_sink(ctx))
        return result.model_dump(mode='json', by_alias=True, exclude_none=True)

    @mcp.tool()
    async def deployment_status() -> dict:
        """
        Report whether a deployment is running and the current step log.

        Returns:
            Dictionary containing:
                - running: Whether a deployment is in progress
                - state: idle, running, succeeded or failed
                - deploymentId: Deployment of the current or last run (if any)
                - steps: Step records of the current or last run
        """
        engine = get_engine()
        status = {"running": engine.is_running, "state": engine.state.value, "steps": []}

        run = engine.current_run
        if run is not None:
            status["deploymentId"] = run.spec.id
            status["steps"] = [
                record.model_dump(mode='json', by_alias=True) for record in run.log.records
            ]
        return status

    @mcp.tool()
    async def validate_deployment_config(environment: Optional[str] = None) -> dict:
        """
        Validate the deployments file for an environment without deploying.

        Args:
            environment: Environment name (default: DEPLOY_ENV)

        Returns:
            Dictionary containing:
                - valid: Whether the config loads and validates
                - deploymentId, resources, secretKeys: When valid
                - error, context: When invalid
        """
        try:
            spec = apply_overrides(load_deployment_spec(environment, settings=settings), settings)
        except DeployError as e:
            logger.warning("deployment_config_invalid", environment=environment, error=str(e))
            return {"valid": False, "error": str(e), "context": e.context}

        return {
            "valid": True,
            "deploymentId": spec.id,
            "resources": {
                "worker": spec.compute_name,
                "staticSite": spec.static_site_name,
                "database": spec.database_name,
                "bucket": spec.bucket_name,
            },
            "deployStaticSite": spec.deploy_static_site,
            "secretKeys": sorted(spec.secrets),
        }
