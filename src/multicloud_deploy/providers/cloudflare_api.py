"""
Minimal Cloudflare REST API client.

Only used for lookups wrangler does not expose in a parseable form.
"""
from typing import Optional

import httpx  # Cliente HTTP async

from ..exceptions import BucketError
from ..utils.logging import get_logger

logger = get_logger(__name__)


class CloudflareApiClient:
    """Async client for the Cloudflare v4 API."""

    def __init__(
        self,
        api_token: str,
        base_url: str = "https://api.cloudflare.com/client/v4",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_token: Bearer token with R2 read permission
            base_url: API base URL
            timeout: Request timeout in seconds
            transport: Optional transport override (tests use httpx.MockTransport)
        """
        self._token = api_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings) -> Optional["CloudflareApiClient"]:
        if settings.cloudflare_api_token is None:
            return None
        return cls(
            api_token=settings.cloudflare_api_token.get_secret_value(),
            base_url=settings.cloudflare_api_base,
        )

    async def get_bucket_public_domain(self, account_id: str, bucket_name: str) -> Optional[str]:
        """
        Return the bucket's managed r2.dev URL, or None when it is disabled.

        Raises:
            BucketError: If the API call fails or returns an error payload
        """
        path = f"/accounts/{account_id}/r2/buckets/{bucket_name}/domains/managed"

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self._token}"},
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(path)
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise BucketError(
                f"Cloudflare API request failed: {e}",
                context={"bucket": bucket_name, "path": path}
            )

        if not payload.get("success"):
            errors = payload.get("errors") or [{}]
            raise BucketError(
                f"Cloudflare API error: {errors[0].get('message', 'unknown error')}",
                context={"bucket": bucket_name, "status_code": response.status_code}
            )

        result = payload.get("result") or {}
        if not result.get("enabled") or not result.get("domain"):
            return None

        domain = result["domain"]
        url = domain if domain.startswith("http") else f"https://{domain}"
        logger.debug("bucket_public_domain_found", bucket=bucket_name, url=url)
        return url
