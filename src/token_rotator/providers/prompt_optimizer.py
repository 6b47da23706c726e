"""
Prompt optimization through OpenAI-compatible chat completion endpoints.

Credentialed providers are called with litellm so their rate-limit errors come
back as litellm exceptions carrying a status code. The public Pollinations
endpoint takes no credential and is called directly with httpx.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx
import litellm

from ..error_handler import PromptOptimizationError, is_quota_failure

lib_logger = logging.getLogger("token_rotator")

POLLINATIONS_API_URL = "https://text.pollinations.ai/openai"
POLLINATIONS_MODEL = "openai-fast"


def build_system_prompt(lang: str) -> str:
    language = "Chinese" if lang == "zh" else "English"
    return (
        "I am a master AI image prompt engineering advisor, specializing in crafting "
        "prompts that yield cinematic, hyper-realistic, and deeply evocative visual "
        "narratives, optimized for advanced generative models.\n"
        "My core purpose is to meticulously rewrite, expand, and enhance user's image prompts.\n"
        "I transform prompts to create visually stunning images by rigorously optimizing "
        "elements such as dramatic lighting, intricate textures, compelling composition, "
        "and a distinctive artistic style.\n"
        "My generated prompt output will be strictly under 300 words. Prior to outputting, "
        "I will internally validate that the refined prompt strictly adheres to the word "
        "count limit and effectively incorporates the intended stylistic and technical "
        "enhancements.\n"
        "My output will consist exclusively of the refined image prompt text. It will "
        "commence immediately, with no leading whitespace.\n"
        "The text will strictly avoid markdown, quotation marks, conversational preambles, "
        "explanations, or concluding remarks.\n"
        f"I will ensure the output text is in {language}."
    )


def build_messages(prompt: str, lang: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": build_system_prompt(lang)},
        {"role": "user", "content": prompt},
    ]


def _message_content(response: Any) -> Optional[str]:
    try:
        return response.choices[0].message.content
    except (AttributeError, IndexError, KeyError, TypeError):
        return None


async def optimize_with_litellm(
    model: str,
    api_base: str,
    credential: str,
    prompt: str,
    lang: str,
    quota_keywords: Iterable[str] = (),
    timeout: Optional[float] = None,
) -> str:
    """
    Rewrite `prompt` with an OpenAI-compatible chat model.

    Quota failures are re-raised as-is so the caller's executor can rotate;
    every other failure becomes PromptOptimizationError.

    Returns:
        The optimized prompt, or the original prompt if the model answered
        with empty content
    """
    try:
        response = await litellm.acompletion(
            model=f"openai/{model}",
            api_base=api_base,
            api_key=credential,
            messages=build_messages(prompt, lang),
            stream=False,
            timeout=timeout,
        )
    except Exception as e:
        if is_quota_failure(e, quota_keywords):
            raise
        lib_logger.error(f"Prompt optimization with {model} failed: {e}")
        raise PromptOptimizationError("error_prompt_optimization_failed") from e

    return _message_content(response) or prompt


async def optimize_with_pollinations(
    client: httpx.AsyncClient, prompt: str, lang: str
) -> str:
    """Anonymous prompt optimization. Any failure becomes PromptOptimizationError."""
    try:
        response = await client.post(
            POLLINATIONS_API_URL,
            headers={"Content-Type": "application/json"},
            json={
                "model": POLLINATIONS_MODEL,
                "messages": build_messages(prompt, lang),
                "stream": False,
            },
        )
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        lib_logger.error(f"Prompt optimization via Pollinations failed: {e}")
        raise PromptOptimizationError("error_prompt_optimization_failed") from e

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    return content or prompt
