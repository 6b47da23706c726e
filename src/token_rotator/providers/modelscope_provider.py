import asyncio
import logging
from typing import Any, Dict, Optional

from ..error_handler import InvalidResponseError, ProviderHTTPError, TaskTimeoutError
from ..timeout_config import TimeoutConfig
from ..types import GeneratedImage, random_seed
from .dimensions import get_dimensions
from .prompt_optimizer import optimize_with_litellm
from .provider_interface import ProviderInterface

lib_logger = logging.getLogger("token_rotator")

MS_API_BASE = "https://api-inference.modelscope.cn/v1"
MS_GENERATE_API_URL = f"{MS_API_BASE}/images/generations"
MS_TASK_API_URL = f"{MS_API_BASE}/tasks"
MS_CHAT_MODEL = "deepseek-ai/DeepSeek-V3.2"


class ModelScopeProvider(ProviderInterface):
    """
    ModelScope API-Inference image generation.

    Generation is asynchronous: the job is submitted, then its task status is
    polled every `poll_interval` seconds, at most `max_polls` times. Running
    out of polls is a hard failure and does not rotate tokens.

    Requires at least one token. Quotas reset at Beijing midnight (UTC+8);
    "quota", "credit", "Arrearage" and "Bill" in an error mean exhaustion.
    """

    provider_name = "modelscope"
    default_model = "Tongyi-MAI/Z-Image-Turbo"
    default_steps = 9

    def __init__(
        self,
        executor,
        client,
        poll_interval: Optional[float] = None,
        max_polls: Optional[int] = None,
    ):
        super().__init__(executor, client)
        self.poll_interval = (
            TimeoutConfig.poll_interval() if poll_interval is None else poll_interval
        )
        self.max_polls = TimeoutConfig.poll_max_attempts() if max_polls is None else max_polls

    async def _check_task_status(self, task_id: str, token: str) -> Dict[str, Any]:
        response = await self.client.get(
            f"{MS_TASK_API_URL}/{task_id}",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {token}",
                "X-ModelScope-Task-Type": "image_generation",
            },
        )
        if not response.is_success:
            raise ProviderHTTPError(
                response.status_code,
                f"Model Scope Task Check Error: {response.status_code}",
            )
        return self._json(response)

    async def _wait_for_task(self, task_id: str, token: str) -> str:
        for _ in range(self.max_polls):
            await asyncio.sleep(self.poll_interval)

            status = await self._check_task_status(task_id, token)
            task_status = status.get("task_status")

            if task_status == "SUCCEED":
                images = status.get("output_images") or []
                if not images:
                    raise InvalidResponseError("error_invalid_response")
                return images[0]
            if task_status in ("FAILED", "CANCELED"):
                raise InvalidResponseError("error_invalid_response")
            # PENDING / RUNNING: keep polling

        raise TaskTimeoutError(task_id, self.max_polls)

    async def generate_image(
        self,
        prompt: str,
        aspect_ratio: str = "1:1",
        model: Optional[str] = None,
        seed: Optional[int] = None,
        steps: Optional[int] = None,
        enable_hd: bool = False,
    ) -> GeneratedImage:
        model = model or self.default_model
        width, height = get_dimensions(aspect_ratio, enable_hd)
        seed = random_seed() if seed is None else seed
        steps = self.default_steps if steps is None else steps

        async def operation(token: Optional[str]) -> GeneratedImage:
            response = await self.client.post(
                MS_GENERATE_API_URL,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {token}",
                    "X-ModelScope-Async-Mode": "true",
                },
                json={
                    "prompt": prompt,
                    "model": model,
                    "size": f"{width}x{height}",
                    "seed": seed,
                    "steps": steps,
                },
            )
            self._raise_for_status(response, "Model Scope")

            data = self._json(response)
            task_id = data.get("task_id") if isinstance(data, dict) else None
            if not task_id:
                raise InvalidResponseError("error_invalid_response")
            lib_logger.debug(f"ModelScope task {task_id} submitted")

            image_url = await self._wait_for_task(task_id, token)
            return GeneratedImage(
                url=image_url,
                model=model,
                prompt=prompt,
                aspect_ratio=aspect_ratio,
                seed=seed,
                steps=steps,
                provider=self.provider_name,
            )

        try:
            return await self.executor.execute(self.provider_name, operation)
        except Exception as e:
            lib_logger.error(f"Model Scope image generation error: {e}")
            raise

    async def optimize_prompt(self, prompt: str, lang: str = "en") -> str:
        async def operation(token: Optional[str]) -> str:
            return await optimize_with_litellm(
                MS_CHAT_MODEL,
                MS_API_BASE,
                token,
                prompt,
                lang,
                quota_keywords=self.quota_keywords,
            )

        return await self.executor.execute(self.provider_name, operation)
