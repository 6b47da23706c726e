from typing import Dict, Type

from .provider_interface import ProviderInterface
from .gitee_provider import GiteeProvider
from .huggingface_provider import HuggingFaceProvider
from .modelscope_provider import ModelScopeProvider

PROVIDER_PLUGINS: Dict[str, Type[ProviderInterface]] = {
    HuggingFaceProvider.provider_name: HuggingFaceProvider,
    GiteeProvider.provider_name: GiteeProvider,
    ModelScopeProvider.provider_name: ModelScopeProvider,
}

__all__ = [
    "PROVIDER_PLUGINS",
    "ProviderInterface",
    "HuggingFaceProvider",
    "GiteeProvider",
    "ModelScopeProvider",
]
