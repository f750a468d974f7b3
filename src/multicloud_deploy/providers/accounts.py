"""
Account and project context switching for the two providers.

The engine depends only on the AccountSwitcher protocol. CliAccountSwitcher is
the default implementation backed by gcloud and wrangler.
"""
import re  # Expresiones regulares para extraer el account ID
from typing import Optional, Protocol  # Type hints

from pydantic import BaseModel

from ..config.settings import Settings
from ..models.command import ErrorCategory
from ..models.deployment import CloudflareContext
from ..utils.command_runner import CommandExecutor
from ..utils.logging import get_logger
from .commands import CommandTemplates

logger = get_logger(__name__)

_ACCOUNT_ID_PATTERN = re.compile(r"\b([a-f0-9]{32})\b", re.IGNORECASE)


class SwitchResult(BaseModel):
    """Outcome of a context switch or verification."""
    success: bool
    error: Optional[str] = None
    current_context: Optional[str] = None
    needs_login: bool = False


class AccountSwitcher(Protocol):
    """Capabilities the engine needs before orchestration begins."""

    async def switch_project_context(self, project_id: str) -> SwitchResult:
        ...

    async def switch_identity(self, account_email: str) -> SwitchResult:
        ...

    async def verify_cloudflare_context(self, context: CloudflareContext) -> SwitchResult:
        ...


class CliAccountSwitcher:
    """AccountSwitcher backed by gcloud config and wrangler whoami."""

    def __init__(
        self,
        executor: CommandExecutor,
        commands: CommandTemplates | None = None,
        settings: Settings | None = None,
    ):
        self.executor = executor
        self.commands = commands or CommandTemplates()
        self.timeout = settings.query_timeout if settings else 15.0

    async def _query(self, name: str, **values):
        return await self.executor.execute(
            self.commands.render(name, **values),
            timeout=self.timeout,
            max_retries=1,
        )

    async def switch_project_context(self, project_id: str) -> SwitchResult:
        """Select the gcloud project; a no-op when it is already selected."""
        current = await self._query("gcp_get_project")
        current_project = current.stdout.strip() if current.success else ""

        if current_project == project_id:
            logger.debug("gcp_project_already_selected", project_id=project_id)
            return SwitchResult(success=True, current_context=current_project)

        result = await self._query("gcp_set_project", project=project_id)
        if not result.success:
            needs_login = result.category is ErrorCategory.AUTHENTICATION
            return SwitchResult(
                success=False,
                error=(
                    "GCP authentication expired. Run: gcloud auth login"
                    if needs_login else result.error
                ),
                current_context=current_project or None,
                needs_login=needs_login,
            )

        verify = await self._query("gcp_get_project")
        selected = verify.stdout.strip() if verify.success else ""
        if selected != project_id:
            return SwitchResult(
                success=False,
                error=f"Failed to switch project. Current project: {selected or 'unknown'}",
                current_context=selected or None,
            )

        logger.info("gcp_project_switched", project_id=project_id, previous=current_project or None)
        return SwitchResult(success=True, current_context=selected)

    async def switch_identity(self, account_email: str) -> SwitchResult:
        """Activate a credentialed gcloud account."""
        listing = await self._query("gcp_credentialed_accounts")
        if not listing.success:
            return SwitchResult(
                success=False,
                error=listing.error,
                needs_login=listing.category is ErrorCategory.AUTHENTICATION,
            )

        accounts = [line.strip() for line in listing.stdout.splitlines() if line.strip()]
        if account_email not in accounts:
            return SwitchResult(
                success=False,
                error=f"Account {account_email} is not authenticated. Run: gcloud auth login {account_email}",
                needs_login=True,
            )

        result = await self._query("gcp_set_account", account=account_email)
        if not result.success:
            return SwitchResult(success=False, error=result.error)

        active = await self._query("gcp_active_account")
        current = active.stdout.strip().splitlines()[0] if active.success and active.stdout.strip() else ""
        if current != account_email:
            return SwitchResult(
                success=False,
                error=f"Failed to switch account. Current account: {current or 'unknown'}",
                current_context=current or None,
            )

        logger.info("gcp_account_switched", account=account_email)
        return SwitchResult(success=True, current_context=current)

    async def verify_cloudflare_context(self, context: CloudflareContext) -> SwitchResult:
        """
        Check the wrangler login against the expected account.

        Read-only: wrangler picks its account from the project config, so a
        mismatch is reported, never fixed here.
        """
        whoami = await self._query("cloudflare_whoami")
        if not whoami.success:
            return SwitchResult(
                success=False,
                error=whoami.error,
                needs_login=whoami.category is ErrorCategory.AUTHENTICATION,
            )

        account_ids = [m.lower() for m in _ACCOUNT_ID_PATTERN.findall(whoami.stdout)]
        current = account_ids[0] if account_ids else None

        if context.account_id and account_ids and context.account_id.lower() not in account_ids:
            return SwitchResult(
                success=False,
                error=f"Account mismatch. Current: {current}, Expected: {context.account_id}",
                current_context=current,
            )

        return SwitchResult(success=True, current_context=context.account_id or current)
