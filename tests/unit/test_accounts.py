"""
Unit tests for providers/accounts.py and providers/commands.py
"""
import shlex

import pytest

from multicloud_deploy.exceptions import ConfigurationError
from multicloud_deploy.models.deployment import CloudflareContext
from multicloud_deploy.providers.accounts import CliAccountSwitcher
from multicloud_deploy.providers.commands import CommandTemplates


@pytest.fixture
def gcloud_config(cloud):
    """gcloud config state behind get-value / set commands."""
    state = {"project": "old-project", "account": "dev@example.com"}
    executor = cloud.executor
    executor.on("gcloud config get-value project", handler=lambda c: state["project"])
    executor.on("gcloud config set project", handler=lambda c: state.update(project=shlex.split(c)[-1]))
    executor.on("gcloud config set account", handler=lambda c: state.update(account=shlex.split(c)[-1]))
    executor.on("gcloud auth list --filter", handler=lambda c: state["account"])
    executor.on("gcloud auth list --format", "dev@example.com\nops@example.com")
    return state


@pytest.fixture
def switcher(cloud, settings):
    return CliAccountSwitcher(cloud.executor, settings=settings)


# ── CommandTemplates ────────────────────────────────────────────────────────

class TestCommandTemplates:
    def test_render_quotes_values(self):
        command = CommandTemplates().render("bucket_create", bucket="a b; rm -rf /")
        assert command == "wrangler r2 bucket create 'a b; rm -rf /'"

    def test_unknown_template(self):
        with pytest.raises(ConfigurationError):
            CommandTemplates().render("nope")

    def test_missing_value(self):
        with pytest.raises(ConfigurationError) as exc_info:
            CommandTemplates().render("bucket_create")
        assert exc_info.value.context["template"] == "bucket_create"

    def test_override(self):
        commands = CommandTemplates(worker_deploy="npx wrangler deploy --name {worker}")
        assert commands.render("worker_deploy", worker="w") == "npx wrangler deploy --name w"


# ── switch_project_context ──────────────────────────────────────────────────

class TestSwitchProject:
    @pytest.mark.asyncio
    async def test_already_selected_is_noop(self, switcher, gcloud_config, cloud):
        gcloud_config["project"] = "demo-project"
        result = await switcher.switch_project_context("demo-project")
        assert result.success
        assert result.current_context == "demo-project"
        assert cloud.executor.count("gcloud config set project") == 0

    @pytest.mark.asyncio
    async def test_switch_and_verify(self, switcher, gcloud_config, cloud):
        result = await switcher.switch_project_context("demo-project")
        assert result.success
        assert result.current_context == "demo-project"
        assert gcloud_config["project"] == "demo-project"
        assert cloud.executor.count("gcloud config get-value project") == 2

    @pytest.mark.asyncio
    async def test_expired_login(self, switcher, gcloud_config, cloud):
        cloud.executor.on(
            "gcloud config set project",
            fail="ERROR: (gcloud.config.set) There was a problem refreshing your current auth tokens",
        )
        result = await switcher.switch_project_context("demo-project")
        assert not result.success
        assert result.needs_login
        assert "gcloud auth login" in result.error
        assert result.current_context == "old-project"

    @pytest.mark.asyncio
    async def test_verification_mismatch(self, switcher, gcloud_config, cloud):
        cloud.executor.on("gcloud config set project", "Updated property [core/project].")
        result = await switcher.switch_project_context("demo-project")
        assert not result.success
        assert result.error == "Failed to switch project. Current project: old-project"


# ── switch_identity ─────────────────────────────────────────────────────────

class TestSwitchIdentity:
    @pytest.mark.asyncio
    async def test_switch(self, switcher, gcloud_config):
        result = await switcher.switch_identity("ops@example.com")
        assert result.success
        assert result.current_context == "ops@example.com"
        assert gcloud_config["account"] == "ops@example.com"

    @pytest.mark.asyncio
    async def test_account_not_credentialed(self, switcher, gcloud_config, cloud):
        result = await switcher.switch_identity("stranger@example.com")
        assert not result.success
        assert result.needs_login
        assert "gcloud auth login stranger@example.com" in result.error
        assert cloud.executor.count("gcloud config set account") == 0

    @pytest.mark.asyncio
    async def test_active_account_unchanged(self, switcher, gcloud_config, cloud):
        cloud.executor.on("gcloud config set account", "Updated property [core/account].")
        result = await switcher.switch_identity("ops@example.com")
        assert not result.success
        assert result.current_context == "dev@example.com"


# ── verify_cloudflare_context ───────────────────────────────────────────────

class TestVerifyCloudflare:
    @pytest.mark.asyncio
    async def test_matching_account(self, switcher, cloud):
        result = await switcher.verify_cloudflare_context(CloudflareContext(account_id=cloud.account_id.upper()))
        assert result.success

    @pytest.mark.asyncio
    async def test_mismatch(self, switcher, cloud):
        other = "f" * 32
        result = await switcher.verify_cloudflare_context(CloudflareContext(account_id=other))
        assert not result.success
        assert result.error == f"Account mismatch. Current: {cloud.account_id}, Expected: {other}"
        assert result.current_context == cloud.account_id

    @pytest.mark.asyncio
    async def test_logged_out(self, switcher, cloud):
        cloud.executor.on("wrangler whoami", fail="You are not authenticated. Please run `wrangler login`. not logged in")
        result = await switcher.verify_cloudflare_context(CloudflareContext(account_id=cloud.account_id))
        assert not result.success
        assert result.needs_login

    @pytest.mark.asyncio
    async def test_no_expected_account(self, switcher, cloud):
        result = await switcher.verify_cloudflare_context(CloudflareContext())
        assert result.success
        assert result.current_context == cloud.account_id
