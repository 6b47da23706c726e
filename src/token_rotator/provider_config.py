"""
Per-provider rotation policy and credential configuration.

Each provider is described by a small ProviderPolicy: where its raw credential
list lives, where its exhaustion record is stored, which fixed UTC offset
defines its rotation day, which words in an error message mean "quota used
up", and whether it can be called anonymously.

Raw credentials are a comma-separated string read from the environment on
every call, so edits to the environment take effect on the next request.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional, Union

from dotenv import load_dotenv

from .utils.paths import get_default_root

lib_logger = logging.getLogger("token_rotator")

_env_loaded = False


@dataclass(frozen=True)
class ProviderPolicy:
    """
    Rotation settings for one provider.

    Attributes:
        key: Provider key used by callers (e.g. "gitee")
        env_var: Environment variable holding the comma-separated credentials
        storage_key: Namespaced key of the persisted exhaustion record
        utc_offset_hours: Fixed offset from UTC that defines the rotation day
        quota_keywords: Case-insensitive substrings that mark a quota failure
        requires_credential: False if the provider accepts anonymous calls
    """

    key: str
    env_var: str
    storage_key: str
    utc_offset_hours: int = 0
    quota_keywords: FrozenSet[str] = field(default_factory=frozenset)
    requires_credential: bool = True


PROVIDER_POLICIES: Dict[str, ProviderPolicy] = {
    "huggingface": ProviderPolicy(
        key="huggingface",
        env_var="HUGGINGFACE_TOKENS",
        storage_key="hf_token_status",
        utc_offset_hours=0,
        requires_credential=False,
    ),
    "gitee": ProviderPolicy(
        key="gitee",
        env_var="GITEE_TOKENS",
        storage_key="gitee_token_status",
        utc_offset_hours=8,
        quota_keywords=frozenset({"quota", "credit"}),
    ),
    "modelscope": ProviderPolicy(
        key="modelscope",
        env_var="MODELSCOPE_TOKENS",
        storage_key="ms_token_status",
        utc_offset_hours=8,
        quota_keywords=frozenset({"quota", "credit", "arrearage", "bill"}),
    ),
}


def get_policy(
    provider: str, policies: Optional[Mapping[str, ProviderPolicy]] = None
) -> ProviderPolicy:
    """
    Look up the policy for a provider key.

    Unknown providers get a conservative default: UTC day, no quota keywords,
    credential required.
    """
    registry = PROVIDER_POLICIES if policies is None else policies
    policy = registry.get(provider)
    if policy is not None:
        return policy
    return ProviderPolicy(
        key=provider,
        env_var=f"{provider.upper()}_TOKENS",
        storage_key=f"{provider}_token_status",
    )


def load_environment(root: Optional[Union[Path, str]] = None) -> bool:
    """
    Load `<root>/.env` into os.environ once, without overriding existing values.

    Returns:
        True if a .env file was found and loaded on this call
    """
    global _env_loaded
    if _env_loaded:
        return False
    _env_loaded = True

    env_file = Path(root or get_default_root()) / ".env"
    if not env_file.is_file():
        return False
    load_dotenv(env_file, override=False)
    lib_logger.debug(f"Loaded environment from {env_file}")
    return True


def get_raw_tokens(
    provider: str,
    env: Optional[Mapping[str, str]] = None,
    policies: Optional[Mapping[str, ProviderPolicy]] = None,
) -> Optional[str]:
    """Return the raw comma-separated credential string for a provider."""
    source = os.environ if env is None else env
    return source.get(get_policy(provider, policies).env_var)
