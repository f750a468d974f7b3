"""
Shared plumbing for the idempotent provisioning routines.

ReconcileContext bundles what every routine needs (executor, command
templates, settings, working directory, live log forwarding) and picks the
right timeout class for each kind of call.
"""
from dataclasses import dataclass  # Crear clases de datos simples
from pathlib import Path  # Manejo moderno de rutas de archivos
from typing import Awaitable, Callable, Optional  # Type hints

from ..config.settings import Settings
from ..exceptions import CommandExecutionError
from ..models.command import CommandResult, ErrorCategory
from ..providers.commands import CommandTemplates
from ..utils.command_runner import CommandExecutor, LineCallback
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ReconcileContext:
    """Execution context handed to every reconciler routine."""
    executor: CommandExecutor
    commands: CommandTemplates
    settings: Settings
    cwd: Path
    on_line: Optional[LineCallback] = None

    async def check(self, name: str, **values) -> CommandResult:
        """Read-only check that never raises and never retries."""
        return await self.executor.execute(
            self.commands.render(name, **values),
            cwd=str(self.cwd),
            timeout=self.settings.query_timeout,
            max_retries=0,
        )

    async def query(self, name: str, **values) -> CommandResult:
        """Read-only query; raises CommandExecutionError on failure."""
        return await self.executor.execute(
            self.commands.render(name, **values),
            cwd=str(self.cwd),
            timeout=self.settings.query_timeout,
            throw_on_error=True,
        )

    async def mutate(self, name: str, **values) -> CommandResult:
        """Short mutating command (create, enable, set); output is streamed to the step log."""
        return await self.executor.execute_interactive(
            self.commands.render(name, **values),
            self.on_line,
            cwd=str(self.cwd),
            timeout=self.settings.mutation_timeout,
            throw_on_error=True,
        )

    async def deploy(self, name: str, **values) -> CommandResult:
        """Long-running deploy command; output is streamed to the step log."""
        return await self.executor.execute_interactive(
            self.commands.render(name, **values),
            self.on_line,
            cwd=str(self.cwd),
            timeout=self.settings.deploy_timeout,
            throw_on_error=True,
        )


async def ensure_resource(
    ctx: ReconcileContext,
    kind: str,
    name: str,
    is_present: Callable[[], Awaitable[bool]],
    create_template: str,
    **values,
) -> bool:
    """
    List-then-create a provider resource.

    Args:
        ctx: Reconcile context
        kind: Resource kind for logging (bucket, database)
        name: Resource name
        is_present: Coroutine function that lists and reports presence
        create_template: Command template used to create the resource
        **values: Template values for the create command

    Returns:
        True if the resource was created, False if it already existed

    Raises:
        CommandExecutionError: If listing or creation fails for any reason
            other than "not found" / "already exists"
    """
    try:
        present = await is_present()
    except CommandExecutionError as e:
        if e.category is not ErrorCategory.NOT_FOUND:
            raise
        present = False

    if present:
        logger.info("resource_exists", kind=kind, name=name)
        return False

    try:
        await ctx.mutate(create_template, **values)
    except CommandExecutionError as e:
        if e.category is ErrorCategory.ALREADY_EXISTS:
            logger.info("resource_already_exists_on_create", kind=kind, name=name)
            return False
        raise

    logger.info("resource_created", kind=kind, name=name)
    return True


def url_from_template(name: str, suffix: str) -> str:
    """Deterministic public URL for a named resource: https://{name}.{suffix}."""
    return f"https://{name}.{suffix.strip('.')}"


def base_domain(suffix: str) -> str:
    """Registrable part of a URL suffix, e.g. acme.workers.dev -> workers.dev."""
    labels = [label for label in suffix.strip(".").split(".") if label]
    return ".".join(labels[-2:])
