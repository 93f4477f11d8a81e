"""Credential provider table and the authorization gate for custom steps."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable
from uuid import UUID

from ..schemas.actions import ActionStepBase
from ..schemas.executions import OAuthRequirement
from .stores import CredentialStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CredentialProvider:
    """Describes an external provider whose token a step may need."""

    key: str
    env_var: str
    display_name: str
    pattern: re.Pattern[str]
    default_scopes: tuple[str, ...] = ()


OAUTH_PROVIDERS: tuple[CredentialProvider, ...] = (
    CredentialProvider(
        "x",
        "X_ACCESS_TOKEN",
        "X (Twitter)",
        re.compile(r"\b(twitter|tweet|x post|post to x|publish to x|x\.com)\b", re.IGNORECASE),
        ("tweet.read", "tweet.write", "users.read", "offline.access"),
    ),
    CredentialProvider(
        "facebook",
        "FACEBOOK_ACCESS_TOKEN",
        "Facebook",
        re.compile(r"\b(facebook|fb post|post to facebook|facebook\.com)\b", re.IGNORECASE),
        ("email", "public_profile"),
    ),
    CredentialProvider(
        "instagram",
        "INSTAGRAM_ACCESS_TOKEN",
        "Instagram",
        re.compile(r"\b(instagram|ig post|post to instagram|instagram\.com)\b", re.IGNORECASE),
        ("instagram_basic", "instagram_content_publish"),
    ),
    CredentialProvider(
        "threads",
        "THREADS_ACCESS_TOKEN",
        "Threads",
        re.compile(r"\b(threads|post to threads|threads\.net)\b", re.IGNORECASE),
        ("threads_basic", "threads_content_publish"),
    ),
)

_BY_KEY = {provider.key: provider for provider in OAUTH_PROVIDERS}
_BY_ENV_VAR = {provider.env_var: provider for provider in OAUTH_PROVIDERS}


def get_provider(key: str) -> CredentialProvider | None:
    return _BY_KEY.get(key.lower())


def get_provider_for_env_var(env_var: str) -> CredentialProvider | None:
    return _BY_ENV_VAR.get(env_var.upper())


def detect_required_credentials(text: str | None) -> list[str]:
    """Return provider keys whose detection pattern matches ``text``."""

    if not text:
        return []
    return [provider.key for provider in OAUTH_PROVIDERS if provider.pattern.search(text)]


def required_credentials(step: ActionStepBase) -> list[str]:
    """Credentials a custom step needs, detected from its text or declared as env vars.

    Declared env vars that are not OAuth tokens are required under their own
    name, so any secret a step declares must be stored before it can run.
    """

    text = " ".join(part for part in (step.name, step.config.description) if part)
    required = detect_required_credentials(text)
    for env_var in step.config.env_vars:
        provider = get_provider_for_env_var(env_var)
        required.append(provider.key if provider is not None else env_var)
    return list(dict.fromkeys(required))


def build_requirement(key: str, *, output_field: str | None = None) -> OAuthRequirement:
    provider = get_provider(key)
    scopes = list(provider.default_scopes) if provider is not None else []
    return OAuthRequirement(provider=key, scopes=scopes, output_field=output_field)


async def find_missing_credential(
    agent_id: UUID,
    keys: Iterable[str],
    credentials: CredentialStore,
) -> OAuthRequirement | None:
    """Return the requirement for the first credential the agent lacks."""

    for key in keys:
        if not await credentials.has_credential(agent_id, key):
            logger.info(
                "Step is missing a credential",
                extra={"agent_id": str(agent_id), "provider": key},
            )
            return build_requirement(key)
    return None


def display_name(key: str) -> str:
    provider = get_provider(key)
    return provider.display_name if provider is not None else key


__all__ = [
    "CredentialProvider",
    "OAUTH_PROVIDERS",
    "build_requirement",
    "detect_required_credentials",
    "display_name",
    "find_missing_credential",
    "get_provider",
    "get_provider_for_env_var",
    "required_credentials",
]
