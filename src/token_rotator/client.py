import logging
from pathlib import Path
from typing import Dict, Mapping, Optional, Type, Union

import httpx

from .executor import TokenRotationExecutor
from .provider_config import ProviderPolicy, load_environment
from .providers import PROVIDER_PLUGINS, ProviderInterface
from .timeout_config import TimeoutConfig
from .token_store import (
    InMemoryTokenStatusBackend,
    JsonFileTokenStatusBackend,
    TokenStats,
    TokenStatusBackend,
    TokenStore,
)
from .types import GeneratedImage

lib_logger = logging.getLogger("token_rotator")
lib_logger.propagate = False
if not lib_logger.handlers:
    lib_logger.addHandler(logging.NullHandler())


class ImageGenClient:
    """
    Image generation and prompt optimization across several hosted providers,
    rotating each provider's tokens as they run out of quota.

    Usage:
        async with ImageGenClient() as client:
            image = await client.generate_image("gitee", "a red fox", "16:9")
    """

    def __init__(
        self,
        backend: Optional[TokenStatusBackend] = None,
        persist: bool = True,
        data_file: Optional[Union[str, Path]] = None,
        policies: Optional[Mapping[str, ProviderPolicy]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        provider_plugins: Optional[Mapping[str, Type[ProviderInterface]]] = None,
        executor: Optional[TokenRotationExecutor] = None,
    ):
        """
        Args:
            backend: Storage for exhaustion records. Defaults to the JSON file
                backend, or an in-memory one when `persist` is False.
            persist: Keep exhaustion records across restarts.
            data_file: JSON file for the default file backend.
            policies: Provider policies; defaults to the built-in ones.
            http_client: Shared httpx client. Created (and owned) if omitted.
            provider_plugins: Provider key -> adapter class.
            executor: Pre-built executor; overrides backend/policies.
        """
        load_environment()

        if executor is None:
            if backend is None:
                backend = (
                    JsonFileTokenStatusBackend(data_file)
                    if persist
                    else InMemoryTokenStatusBackend()
                )
            executor = TokenRotationExecutor(
                store=TokenStore(backend=backend, policies=policies),
                policies=policies,
            )
        self.executor = executor

        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=TimeoutConfig.httpx_timeout()
        )
        self._provider_plugins = dict(provider_plugins or PROVIDER_PLUGINS)
        self._provider_instances: Dict[str, ProviderInterface] = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client and not self.http_client.is_closed:
            await self.http_client.aclose()

    @property
    def providers(self):
        return sorted(self._provider_plugins)

    def get_provider(self, provider: str) -> ProviderInterface:
        """Return (and cache) the adapter instance for a provider key."""
        if provider not in self._provider_instances:
            plugin_class = self._provider_plugins.get(provider)
            if plugin_class is None:
                raise ValueError(f"Unknown provider: {provider}")
            self._provider_instances[provider] = plugin_class(
                self.executor, self.http_client
            )
        return self._provider_instances[provider]

    async def generate_image(
        self,
        provider: str,
        prompt: str,
        aspect_ratio: str = "1:1",
        model: Optional[str] = None,
        seed: Optional[int] = None,
        steps: Optional[int] = None,
        enable_hd: bool = False,
    ) -> GeneratedImage:
        return await self.get_provider(provider).generate_image(
            prompt,
            aspect_ratio=aspect_ratio,
            model=model,
            seed=seed,
            steps=steps,
            enable_hd=enable_hd,
        )

    async def optimize_prompt(self, provider: str, prompt: str, lang: str = "en") -> str:
        return await self.get_provider(provider).optimize_prompt(prompt, lang)

    async def upscale(self, url: str, provider: str = "huggingface") -> Dict[str, str]:
        return await self.get_provider(provider).upscale(url)

    async def token_stats(self, provider: str, raw: Optional[str] = None) -> TokenStats:
        """Total / exhausted / active token counts for display."""
        return await self.executor.stats(provider, raw)
