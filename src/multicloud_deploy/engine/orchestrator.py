"""
Deployment orchestration engine.

Runs the fixed provisioning pipeline for one DeploymentSpec: hard steps
abort the run, soft steps are recorded and the run continues. Only one
deployment runs per engine at a time.
"""
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from ..config.settings import Settings, get_settings
from ..exceptions import AuthenticationError, DeployError, DeploymentInProgressError, HistoryStoreError
from ..models.deployment import (
    Criticality,
    DeploymentHistoryEntry,
    DeploymentResult,
    DeploymentSpec,
    DeploymentUrls,
    RunState,
    StepError,
    StepOutcome,
    StepStatus,
)
from ..providers.accounts import AccountSwitcher, CliAccountSwitcher
from ..providers.cloudflare_api import CloudflareApiClient
from ..providers.commands import CommandTemplates
from ..reconciler.base import ReconcileContext, url_from_template
from ..reconciler.compute import deploy_worker
from ..reconciler.database import ensure_database
from ..reconciler.gcp_setup import ensure_gcp_apis
from ..reconciler.preflight import check_authentication, check_prerequisites
from ..reconciler.secrets import deploy_secrets
from ..reconciler.static_site import deploy_static_site
from ..reconciler.storage import configure_cors, ensure_bucket
from ..utils.command_runner import CommandExecutor
from ..utils.history_store import DeploymentHistoryStore
from ..utils.logging import deployment_log_context, get_logger
from .pipeline import PipelineStep
from .progress import ProgressSink, StepLog

logger = get_logger(__name__)

IN_PROGRESS_MESSAGE = "deployment already in progress"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DeploymentRun:
    """Mutable state of one pipeline execution."""
    spec: DeploymentSpec
    ctx: ReconcileContext
    log: StepLog
    started_at: datetime = field(default_factory=_now)
    urls: DeploymentUrls = field(default_factory=DeploymentUrls)
    errors: List[StepError] = field(default_factory=list)
    database_id: str = ""


class DeploymentEngine:
    """Orchestrates one multi-cloud deployment at a time."""

    def __init__(
        self,
        executor: CommandExecutor,
        account_switcher: Optional[AccountSwitcher] = None,
        settings: Optional[Settings] = None,
        commands: Optional[CommandTemplates] = None,
        cloudflare_api: Optional[CloudflareApiClient] = None,
    ):
        """
        Args:
            executor: Command executor for all provider CLI calls
            account_switcher: Context switcher (default: gcloud/wrangler backed)
            settings: Settings (default: get_settings())
            commands: Command templates (default: CommandTemplates())
            cloudflare_api: Optional API client for the bucket public URL lookup
        """
        self.settings = settings or get_settings()
        self.executor = executor
        self.commands = commands or CommandTemplates()
        self.account_switcher = account_switcher or CliAccountSwitcher(executor, self.commands, self.settings)
        self.cloudflare_api = cloudflare_api or CloudflareApiClient.from_settings(self.settings)
        self.pipeline = self.build_pipeline()

        self._in_progress = False
        self._state = RunState.IDLE
        self.current_run: Optional[DeploymentRun] = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._in_progress

    @contextmanager
    def _single_flight(self) -> Iterator[None]:
        """
        Guard a run. Check-and-set happens synchronously, so no second
        caller can slip in between; the flag is cleared on every exit path.

        Raises:
            DeploymentInProgressError: If a run is already in progress
        """
        if self._in_progress:
            raise DeploymentInProgressError(IN_PROGRESS_MESSAGE)

        self._in_progress = True
        self._state = RunState.RUNNING
        try:
            yield
        finally:
            self._in_progress = False
            if self._state is RunState.RUNNING:
                self._state = RunState.FAILED

    def build_pipeline(self) -> List[PipelineStep]:
        """The ordered provisioning pipeline."""
        hard, soft = Criticality.HARD, Criticality.SOFT
        return [
            PipelineStep("check-prerequisites", hard, "Checking wrangler and gcloud", self._check_prerequisites),
            PipelineStep("switch-accounts", hard, "Switching provider accounts", self._switch_accounts),
            PipelineStep("check-auth", hard, "Checking authentication", self._check_auth),
            PipelineStep("setup-gcp", soft, "Enabling Google Cloud APIs", self._setup_gcp),
            PipelineStep("ensure-bucket", soft, "Ensuring R2 bucket", self._ensure_bucket),
            PipelineStep("ensure-database", soft, "Ensuring D1 database and schema", self._ensure_database),
            PipelineStep("configure-cors", soft, "Configuring bucket CORS", self._configure_cors),
            PipelineStep("deploy-secrets", hard, "Deploying worker secrets", self._deploy_secrets),
            PipelineStep("deploy-worker", hard, "Deploying worker", self._deploy_worker),
            PipelineStep("deploy-static-site", soft, "Deploying static site", self._deploy_static_site),
        ]

    async def deploy(
        self,
        spec: DeploymentSpec,
        progress_sink: Optional[ProgressSink] = None,
    ) -> DeploymentResult:
        """
        Run the full pipeline for a deployment.

        Never raises for step failures: fatal failures come back as
        success=False with the partial step log in history. A call made
        while another run is in progress is rejected immediately.

        Args:
            spec: Deployment to run
            progress_sink: Optional sink(step, status, details, log_line=None)

        Returns:
            DeploymentResult
        """
        try:
            with self._single_flight():
                return await self._run(spec, progress_sink)
        except DeploymentInProgressError as e:
            logger.warning("deployment_rejected", deployment_id=spec.id, reason=str(e))
            return DeploymentResult(success=False, error=str(e))

    async def _run(self, spec: DeploymentSpec, progress_sink: Optional[ProgressSink]) -> DeploymentResult:
        run = DeploymentRun(
            spec=spec,
            ctx=ReconcileContext(
                executor=self.executor,
                commands=self.commands,
                settings=self.settings,
                cwd=self.settings.codebase_path,
            ),
            log=StepLog(progress_sink),
        )
        self.current_run = run

        with deployment_log_context(spec.id, deployment_name=spec.name):
            logger.info("deployment_started", steps=len(self.pipeline))

            fatal = None
            for step in self.pipeline:
                fatal = await self._execute_step(run, step)
                if fatal is not None:
                    break

            success = fatal is None
            self._state = RunState.SUCCEEDED if success else RunState.FAILED

            history = DeploymentHistoryEntry(
                timestamp=run.started_at,
                end_time=_now(),
                status="success" if success else "failed",
                results=run.urls.model_copy(),
                errors=list(run.errors) or None,
                steps=run.log.records,
            )

            logger.info(
                "deployment_finished",
                success=success,
                compute_url=run.urls.compute_url,
                static_url=run.urls.static_url,
                errors=len(run.errors),
            )

        return DeploymentResult(
            success=success,
            compute_url=run.urls.compute_url,
            static_url=run.urls.static_url,
            bucket_public_url=run.urls.bucket_public_url,
            error=fatal,
            errors=list(run.errors) or None,
            history=history,
        )

    async def _execute_step(self, run: DeploymentRun, step: PipelineStep) -> Optional[str]:
        """
        Run one step with uniform reporting.

        Returns:
            The error message if a hard step failed, else None
        """
        run.ctx.on_line = run.log.line_forwarder(step.key)
        await run.log.report(step.key, StepStatus.RUNNING, step.description)

        try:
            outcome = await step.action(run)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            run.errors.append(StepError(step=step.key, error=message))
            context = getattr(e, "context", {})

            if step.is_hard:
                logger.error("pipeline_step_failed", step=step.key, error=message, context=context)
                await run.log.report(step.key, StepStatus.FAILED, message)
                return message

            logger.warning("pipeline_step_soft_failed", step=step.key, error=message, context=context)
            await run.log.report(step.key, StepStatus.WARNING, message)
            return None
        finally:
            run.ctx.on_line = None

        for warning in outcome.warnings:
            run.errors.append(StepError(step=step.key, error=warning))

        status = StepStatus.WARNING if outcome.warnings else StepStatus.COMPLETED
        await run.log.report(step.key, status, outcome.details)
        logger.info("pipeline_step_completed", step=step.key, status=status.value)
        return None

    # ── Step actions ──

    async def _check_prerequisites(self, run: DeploymentRun) -> StepOutcome:
        return await check_prerequisites(run.ctx)

    async def _switch_accounts(self, run: DeploymentRun) -> StepOutcome:
        """Identity and project switches are hard; Cloudflare verification only warns."""
        gcp = run.spec.gcp
        cloudflare = run.spec.cloudflare
        details = []
        warnings = []

        if gcp and gcp.account_email:
            result = await self.account_switcher.switch_identity(gcp.account_email)
            if not result.success:
                raise AuthenticationError(
                    result.error or f"Could not switch to GCP account {gcp.account_email}",
                    needs_login=result.needs_login,
                    context={"account": gcp.account_email}
                )
            details.append(f"GCP account {gcp.account_email}")

        if gcp and gcp.project_id:
            result = await self.account_switcher.switch_project_context(gcp.project_id)
            if not result.success:
                raise AuthenticationError(
                    result.error or f"Could not switch to GCP project {gcp.project_id}",
                    needs_login=result.needs_login,
                    context={"project_id": gcp.project_id}
                )
            details.append(f"GCP project {result.current_context or gcp.project_id}")

        if cloudflare and cloudflare.account_id:
            try:
                result = await self.account_switcher.verify_cloudflare_context(cloudflare)
                if result.success:
                    details.append(f"Cloudflare account {cloudflare.account_id}")
                else:
                    warnings.append(f"Cloudflare account verification failed: {result.error}")
            except DeployError as e:
                warnings.append(f"Cloudflare account verification failed: {e}")

        if not details and not warnings:
            return StepOutcome(details="No account context configured, skipped")
        return StepOutcome(details="; ".join(details) or "Account context unchanged", warnings=warnings)

    async def _check_auth(self, run: DeploymentRun) -> StepOutcome:
        return await check_authentication(run.ctx)

    async def _setup_gcp(self, run: DeploymentRun) -> StepOutcome:
        gcp = run.spec.gcp
        if not (gcp and gcp.project_id):
            return StepOutcome(details="No GCP project configured, skipped")
        return await ensure_gcp_apis(run.ctx, gcp.project_id, self.settings.required_gcp_apis)

    async def _ensure_bucket(self, run: DeploymentRun) -> StepOutcome:
        account_id = run.spec.cloudflare.account_id if run.spec.cloudflare else None
        outcome = await ensure_bucket(run.ctx, run.spec.bucket_name, account_id, self.cloudflare_api)
        run.urls.bucket_public_url = outcome.url
        return outcome

    async def _ensure_database(self, run: DeploymentRun) -> StepOutcome:
        outcome = await ensure_database(run.ctx, run.spec.database_name)
        run.database_id = outcome.resource_id
        return outcome

    async def _configure_cors(self, run: DeploymentRun) -> StepOutcome:
        return await configure_cors(run.ctx, run.spec.bucket_name)

    async def _deploy_secrets(self, run: DeploymentRun) -> StepOutcome:
        return await deploy_secrets(run.ctx, run.spec.compute_name, run.spec.secrets)

    async def _deploy_worker(self, run: DeploymentRun) -> StepOutcome:
        outcome = await deploy_worker(
            run.ctx,
            run.spec.compute_name,
            account_id=run.spec.cloudflare.account_id if run.spec.cloudflare else None,
            bucket_name=run.spec.bucket_name,
            database_name=run.spec.database_name,
            database_id=run.database_id,
        )
        run.urls.compute_url = outcome.url
        return outcome

    async def _deploy_static_site(self, run: DeploymentRun) -> StepOutcome:
        if not run.spec.deploy_static_site:
            return StepOutcome(details="Static site deployment disabled, skipped")

        # Reported even if the deploy below fails
        run.urls.static_url = url_from_template(run.spec.static_site_name, self.settings.static_url_suffix)
        outcome = await deploy_static_site(run.ctx, run.spec.static_site_name, run.urls.compute_url)
        run.urls.static_url = outcome.url or run.urls.static_url
        return outcome


async def deploy_and_record(
    engine: DeploymentEngine,
    spec: DeploymentSpec,
    store: DeploymentHistoryStore,
    progress_sink: Optional[ProgressSink] = None,
) -> DeploymentResult:
    """
    Run a deployment and persist its history entry.

    A rejected (already in progress) call has no history and stores nothing.
    A history write failure is logged; the deployment result is still returned.
    """
    result = await engine.deploy(spec, progress_sink)
    if result.history is None:
        return result

    try:
        store.append(spec.id, result.history)
    except HistoryStoreError as e:
        logger.error("deployment_history_save_failed", deployment_id=spec.id, error=str(e), context=e.context)
    return result
