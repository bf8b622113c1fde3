# ABOUTME: Dependency container holding the HTTP clients used by the provider fetchers.
# ABOUTME: Builds httpx clients with a tenacity retry transport for rate-limited providers.

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic_ai.retries import AsyncTenacityTransport, RetryConfig, wait_retry_after
from tenacity import retry_if_exception, stop_after_attempt


class ProviderDeps(BaseModel):
    """HTTP clients injected into the analysis service.

    The historical and seasonal providers share a retrying client; current conditions
    are fetched once with no retries.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    http_client: httpx.AsyncClient
    current_client: httpx.AsyncClient

    async def aclose(self) -> None:
        await self.http_client.aclose()
        if self.current_client is not self.http_client:
            await self.current_client.aclose()


def is_transient(exc: BaseException) -> bool:
    """Connection problems, read timeouts, 429 and 5xx are worth another attempt."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, (httpx.ConnectError, httpx.ReadTimeout))


def create_http_client(retries: bool = True) -> httpx.AsyncClient:
    """Create an httpx client, optionally with tenacity retry on transient HTTP errors.

    Retries use exponential backoff that honours Retry-After, up to three attempts.
    Client errors such as 422 fail immediately.
    """
    if not retries:
        return httpx.AsyncClient()
    transport = AsyncTenacityTransport(
        RetryConfig(
            retry=retry_if_exception(is_transient),
            wait=wait_retry_after(max_wait=30),
            stop=stop_after_attempt(3),
            reraise=True,
        ),
        validate_response=lambda r: r.raise_for_status(),
    )
    return httpx.AsyncClient(transport=transport)


def create_deps() -> ProviderDeps:
    return ProviderDeps(http_client=create_http_client(), current_client=create_http_client(retries=False))
