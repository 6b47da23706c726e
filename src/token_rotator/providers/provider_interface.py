from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from ..error_handler import InvalidResponseError, ProviderHTTPError
from ..executor import TokenRotationExecutor
from ..types import GeneratedImage


class ProviderInterface(ABC):
    """
    An interface for image providers.

    Each provider builds its own requests and parses its own responses; every
    remote call goes through the shared TokenRotationExecutor under the
    provider's key, so credential rotation is identical for all of them.
    """

    # Key used for policy lookup and token storage (e.g. "gitee")
    provider_name: str = ""

    # Model used when the caller does not pick one
    default_model: str = ""

    # Steps used when the caller does not pick a value
    default_steps: int = 9

    def __init__(self, executor: TokenRotationExecutor, client: httpx.AsyncClient):
        self.executor = executor
        self.client = client

    @property
    def quota_keywords(self):
        return self.executor.policy(self.provider_name).quota_keywords

    @abstractmethod
    async def generate_image(
        self,
        prompt: str,
        aspect_ratio: str = "1:1",
        model: Optional[str] = None,
        seed: Optional[int] = None,
        steps: Optional[int] = None,
        enable_hd: bool = False,
    ) -> GeneratedImage:
        """Generate one image."""
        pass

    @abstractmethod
    async def optimize_prompt(self, prompt: str, lang: str = "en") -> str:
        """Rewrite a prompt for better image generation results."""
        pass

    async def upscale(self, url: str) -> Dict[str, str]:
        """Upscale an image. Only some providers support it."""
        raise NotImplementedError(f"{self.provider_name} does not support upscaling")

    @staticmethod
    def _error_message(response: httpx.Response, fallback: str) -> str:
        try:
            body = response.json()
        except ValueError:
            return fallback
        if isinstance(body, dict):
            message = body.get("message")
            if not message and isinstance(body.get("error"), dict):
                message = body["error"].get("message")
            if message:
                return str(message)
        return fallback

    def _raise_for_status(self, response: httpx.Response, label: str) -> None:
        """Raise ProviderHTTPError carrying the provider's own message."""
        if response.is_success:
            return
        raise ProviderHTTPError(
            response.status_code,
            self._error_message(response, f"{label} API Error: {response.status_code}"),
        )

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            raise InvalidResponseError("error_invalid_response")
