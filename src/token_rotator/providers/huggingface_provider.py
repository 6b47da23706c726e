import logging
import re
from typing import Any, Dict, Optional

from ..error_handler import UpscaleError, is_quota_failure
from ..types import GeneratedImage, random_seed
from .dimensions import get_dimensions
from .gradio_utils import call_gradio, first_output_url
from .prompt_optimizer import optimize_with_pollinations
from .provider_interface import ProviderInterface

lib_logger = logging.getLogger("token_rotator")

ZIMAGE_BASE_API_URL = "https://luca115-z-image-turbo.hf.space"
QWEN_IMAGE_BASE_API_URL = "https://mcp-tools-qwen-image-fast.hf.space"
OVIS_IMAGE_BASE_API_URL = "https://aidc-ai-ovis-image-7b.hf.space"
UPSCALER_BASE_API_URL = "https://tuan2308-upscaler.hf.space"

_SEED_PATTERN = re.compile(r"(-?\d+)")


class HuggingFaceProvider(ProviderInterface):
    """
    Image generation on public Hugging Face Spaces.

    Spaces work without a token on the shared public quota; configured tokens
    raise the quota and are rotated when a Space answers with an error event.
    Tokens roll over at UTC midnight.

    Models:
    - z-image-turbo (default, 9 steps)
    - qwen-image-fast (8 steps, seed chosen by the Space when not given)
    - ovis-image (24 steps)
    """

    provider_name = "huggingface"
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
        if model == "qwen-image-fast":
            return await self._generate_qwen(prompt, aspect_ratio, seed, steps)
        if model == "ovis-image":
            return await self._generate_ovis(prompt, aspect_ratio, seed, steps, enable_hd)
        return await self._generate_zimage(prompt, aspect_ratio, seed, steps, enable_hd)

    async def _generate_zimage(
        self,
        prompt: str,
        aspect_ratio: str,
        seed: Optional[int],
        steps: Optional[int],
        enable_hd: bool,
    ) -> GeneratedImage:
        width, height = get_dimensions(aspect_ratio, enable_hd)
        seed = random_seed() if seed is None else seed
        steps = steps or 9

        async def operation(credential: Optional[str]) -> GeneratedImage:
            result = await call_gradio(
                self.client,
                ZIMAGE_BASE_API_URL,
                "generate_image",
                [prompt, height, width, steps, seed, False],
                credential,
            )
            return GeneratedImage(
                url=first_output_url(result),
                model="z-image-turbo",
                prompt=prompt,
                aspect_ratio=aspect_ratio,
                seed=seed,
                steps=steps,
                provider=self.provider_name,
            )

        return await self._run(operation, "Z-Image Turbo")

    async def _generate_qwen(
        self,
        prompt: str,
        aspect_ratio: str,
        seed: Optional[int],
        steps: Optional[int],
    ) -> GeneratedImage:
        steps = steps or 8

        async def operation(credential: Optional[str]) -> GeneratedImage:
            result = await call_gradio(
                self.client,
                QWEN_IMAGE_BASE_API_URL,
                "generate_image",
                [prompt, 42 if seed is None else seed, seed is None, aspect_ratio, 3, steps],
                credential,
            )
            return GeneratedImage(
                url=first_output_url(result),
                model="qwen-image-fast",
                prompt=prompt,
                aspect_ratio=aspect_ratio,
                seed=self._seed_used(result, seed),
                steps=steps,
                provider=self.provider_name,
            )

        return await self._run(operation, "Qwen Image Fast")

    async def _generate_ovis(
        self,
        prompt: str,
        aspect_ratio: str,
        seed: Optional[int],
        steps: Optional[int],
        enable_hd: bool,
    ) -> GeneratedImage:
        width, height = get_dimensions(aspect_ratio, enable_hd)
        seed = random_seed() if seed is None else seed
        steps = steps or 24

        async def operation(credential: Optional[str]) -> GeneratedImage:
            result = await call_gradio(
                self.client,
                OVIS_IMAGE_BASE_API_URL,
                "generate",
                [prompt, height, width, seed, steps, 4],
                credential,
            )
            return GeneratedImage(
                url=first_output_url(result),
                model="ovis-image",
                prompt=prompt,
                aspect_ratio=aspect_ratio,
                seed=seed,
                steps=steps,
                provider=self.provider_name,
            )

        return await self._run(operation, "Ovis Image")

    async def _run(self, operation, label: str) -> Any:
        try:
            return await self.executor.execute(self.provider_name, operation)
        except Exception as e:
            lib_logger.error(f"{label} generation error: {e}")
            raise

    @staticmethod
    def _seed_used(result: Any, requested: Optional[int]) -> Optional[int]:
        """Parse "Seed used for generation: N" from the Space's second output."""
        try:
            match = _SEED_PATTERN.search(str(result[1]))
        except (IndexError, TypeError):
            match = None
        return int(match.group(1)) if match else requested

    async def upscale(self, url: str) -> Dict[str, str]:
        """4x upscale with Real-ESRGAN. Returns {"url": ...}."""

        async def operation(credential: Optional[str]) -> Dict[str, str]:
            try:
                result = await call_gradio(
                    self.client,
                    UPSCALER_BASE_API_URL,
                    "realesrgan",
                    [
                        {"path": url, "meta": {"_type": "gradio.FileData"}},
                        "RealESRGAN_x4plus",
                        0.5,
                        False,
                        4,
                    ],
                    credential,
                )
                return {"url": first_output_url(result)}
            except Exception as e:
                if is_quota_failure(e, self.quota_keywords):
                    raise
                lib_logger.error(f"Upscaler error: {e}")
                raise UpscaleError("error_upscale_failed") from e

        return await self.executor.execute(self.provider_name, operation)

    async def optimize_prompt(self, prompt: str, lang: str = "en") -> str:
        # Public endpoint, no credential and no rotation
        return await optimize_with_pollinations(self.client, prompt, lang)
