"""Dependency injection entry points for Skland connector interfaces."""

from __future__ import annotations

from dataclasses import dataclass

from .client import SklandApiClient, TokenExchangeChain
from .config import SklandConfig
from .interfaces import HttpClient
from .signing import RequestSigner
from .transport import HttpxTransport


@dataclass(frozen=True)
class SklandDependencies:
    """Container exposing the connector objects shared by one session engine."""

    chain: TokenExchangeChain
    api: SklandApiClient
    transport: HttpClient


def build_skland_dependencies(
    config: SklandConfig | None = None,
    *,
    transport: HttpClient | None = None,
    signer: RequestSigner | None = None,
) -> SklandDependencies:
    """Build the default dependency graph for Skland integrations."""

    resolved_config = config or SklandConfig.from_env()
    resolved_signer = signer or RequestSigner(
        platform=resolved_config.platform,
        version_name=resolved_config.version_name,
    )
    resolved_transport = transport or HttpxTransport()
    chain = TokenExchangeChain(config=resolved_config, transport=resolved_transport, signer=resolved_signer)
    api = SklandApiClient(config=resolved_config, transport=resolved_transport, signer=resolved_signer)
    return SklandDependencies(chain=chain, api=api, transport=resolved_transport)
