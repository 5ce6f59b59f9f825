"""OpenAI API key resolution.

Precedence, evaluated over an explicit settings value:
  1. Account opted out of AI        -> FeatureDisabled
  2. Per-user key (user_settings)   -> used
  3. Process-wide default key       -> used
  4. Nothing usable                 -> NoApiKeyConfigured
"""

from dataclasses import dataclass
from typing import Literal

from strategist_memory.core.errors import FeatureDisabled, NoApiKeyConfigured


@dataclass(frozen=True)
class UserAISettings:
    """AI preferences stored per user in ``user_settings``."""

    openai_api_key: str | None = None
    # None means the row is missing; only an explicit False disables AI
    ai_enabled: bool | None = None

    @classmethod
    def from_row(cls, row: dict | None) -> "UserAISettings":
        if not row:
            return cls()
        return cls(
            openai_api_key=row.get("openai_api_key"),
            ai_enabled=row.get("ai_enabled"),
        )


@dataclass(frozen=True)
class ResolvedApiKey:
    key: str
    source: Literal["user", "default"]


def resolve_api_key(user_settings: UserAISettings, default_key: str | None) -> ResolvedApiKey:
    """
    Pick the key a model call should use.

    Args:
        user_settings: The caller's stored AI settings
        default_key: Process-wide fallback key (Settings.OPENAI_API_KEY)

    Returns:
        ResolvedApiKey with the trimmed key and where it came from

    Raises:
        FeatureDisabled: If the account explicitly disabled AI features
        NoApiKeyConfigured: If no non-blank key is available
    """
    if user_settings.ai_enabled is False:
        raise FeatureDisabled()

    user_key = (user_settings.openai_api_key or "").strip()
    if user_key:
        return ResolvedApiKey(key=user_key, source="user")

    env_key = (default_key or "").strip()
    if env_key:
        return ResolvedApiKey(key=env_key, source="default")

    raise NoApiKeyConfigured()
