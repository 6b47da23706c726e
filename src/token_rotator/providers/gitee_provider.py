import logging
from typing import Optional

from ..error_handler import InvalidResponseError
from ..types import GeneratedImage, random_seed
from .dimensions import get_dimensions
from .prompt_optimizer import optimize_with_litellm
from .provider_interface import ProviderInterface

lib_logger = logging.getLogger("token_rotator")

GITEE_API_BASE = "https://ai.gitee.com/v1"
GITEE_GENERATE_API_URL = f"{GITEE_API_BASE}/images/generations"
GITEE_CHAT_MODEL = "Qwen3-235B-A22B-Instruct-2507"


class GiteeProvider(ProviderInterface):
    """
    Gitee AI serverless image generation.

    Requires at least one token. Quotas reset at Beijing midnight (UTC+8);
    errors mentioning "quota" or "credit" are treated as exhaustion.
    """

    provider_name = "gitee"
    default_model = "z-image-turbo"
    default_steps = 9

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
                GITEE_GENERATE_API_URL,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {token}",
                },
                json={
                    "prompt": prompt,
                    "model": model,
                    "width": width,
                    "height": height,
                    "seed": seed,
                    "num_inference_steps": steps,
                },
            )
            self._raise_for_status(response, "Gitee AI")

            data = self._json(response)
            try:
                image = data["data"][0]
                b64_image = image["b64_json"]
            except (KeyError, IndexError, TypeError):
                raise InvalidResponseError("error_invalid_response")
            if not b64_image:
                raise InvalidResponseError("error_invalid_response")

            mime_type = image.get("type") or "image/png"
            return GeneratedImage(
                url=f"data:{mime_type};base64,{b64_image}",
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
            lib_logger.error(f"Gitee AI image generation error: {e}")
            raise

    async def optimize_prompt(self, prompt: str, lang: str = "en") -> str:
        async def operation(token: Optional[str]) -> str:
            return await optimize_with_litellm(
                GITEE_CHAT_MODEL,
                GITEE_API_BASE,
                token,
                prompt,
                lang,
                quota_keywords=self.quota_keywords,
            )

        return await self.executor.execute(self.provider_name, operation)
