"""
Chain Registry - the set of adapters the coordinators may dispatch to.

Chains are loaded from a YAML topology file:

    version: "1.0"
    chains:
      - name: ethereum
        family: evm
        base_url: https://indexer.example.com/ethereum
        api_key_env: ETHEREUM_INDEXER_KEY
        timeout: 15
"""

import os
from pathlib import Path
from typing import Any, Iterable, Literal

import yaml
from loguru import logger
from pydantic import BaseModel, Field

from chainscope.datasource.base import ChainAdapter

ChainFamily = Literal["evm", "sui", "solana", "generic"]


class ChainConfig(BaseModel):
    """Single chain configuration"""

    name: str
    family: ChainFamily = "generic"
    base_url: str = ""
    api_key: str | None = None
    api_key_env: str | None = None
    enabled: bool = True
    timeout: float = Field(default=15.0, gt=0)
    description: str = ""

    def resolved_api_key(self) -> str | None:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.getenv(self.api_key_env)
        return None


class ChainsConfig(BaseModel):
    """Chain topology file"""

    version: str = "1.0"
    chains: list[ChainConfig] = Field(default_factory=list)


def load_chains_config(path: str | Path) -> ChainsConfig:
    """
    Load chain topology from YAML.

    A missing file yields an empty config; a malformed one raises.
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.warning(f"Chain config not found: {config_path}, no chains loaded")
        return ChainsConfig()

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    config = ChainsConfig(**data)
    logger.info(f"Loaded {len(config.chains)} chain(s) from {config_path}")
    return config


class ChainRegistry:
    """
    Explicitly constructed chain -> adapter mapping.

    Usage:
        registry = ChainRegistry([EthereumAdapter(), SuiAdapter()])
        chains, unsupported = registry.resolve(("ethereum", "aptos"))

        # or from a topology file
        registry = ChainRegistry.from_config("chains.yaml")
    """

    def __init__(self, adapters: Iterable[ChainAdapter] = ()):
        self._adapters: dict[str, ChainAdapter] = {}
        self._families: dict[str, str] = {}
        for adapter in adapters:
            self.register(adapter)

    @classmethod
    def from_config(
        cls,
        path: str | Path,
        http_client: Any = None,
    ) -> "ChainRegistry":
        """Build one IndexerChainAdapter per enabled chain in the YAML file."""
        from chainscope.datasource.indexer import IndexerChainAdapter

        registry = cls()
        for chain_config in load_chains_config(path).chains:
            if not chain_config.enabled:
                logger.debug(f"Chain '{chain_config.name}' disabled, skipping")
                continue
            registry.register(
                IndexerChainAdapter(chain_config, http_client=http_client),
                family=chain_config.family,
            )
        return registry

    def register(self, adapter: ChainAdapter, family: str | None = None) -> None:
        """
        Register (or replace) the adapter for its chain.

        ``family`` selects the error phrase table (evm, sui, solana); leave
        it unset to keep the classifier default for the chain name.
        """
        chain = adapter.chain
        if chain in self._adapters:
            logger.warning(f"Replacing adapter for chain '{chain}'")
        self._adapters[chain] = adapter
        if family is not None:
            self._families[chain] = family
        else:
            self._families.pop(chain, None)
        logger.debug(f"Registered chain adapter: {chain} ({family or 'default'})")

    def unregister(self, chain: str) -> bool:
        self._families.pop(chain, None)
        return self._adapters.pop(chain, None) is not None

    def get(self, chain: str) -> ChainAdapter | None:
        return self._adapters.get(chain)

    def __contains__(self, chain: object) -> bool:
        return chain in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)

    @property
    def chains(self) -> list[str]:
        """All registered chain names, in registration order."""
        return list(self._adapters)

    @property
    def families(self) -> dict[str, str]:
        return dict(self._families)

    def configured_chains(self) -> list[str]:
        """Registered chains whose adapter reports it can serve requests."""
        return [
            chain
            for chain, adapter in self._adapters.items()
            if adapter.is_configured()
        ]

    def resolve(self, requested: Iterable[str]) -> tuple[list[str], list[str]]:
        """
        Split requested chains into (dispatchable, unsupported).

        An empty request means every configured chain. Registered but
        unconfigured chains are dropped from both lists; chains that were
        never registered are reported as unsupported.
        """
        requested = list(dict.fromkeys(requested))
        if not requested:
            return self.configured_chains(), []

        dispatchable: list[str] = []
        unsupported: list[str] = []
        for chain in requested:
            adapter = self._adapters.get(chain)
            if adapter is None:
                unsupported.append(chain)
            elif adapter.is_configured():
                dispatchable.append(chain)
            else:
                logger.debug(f"Chain '{chain}' not configured, skipping")
        return dispatchable, unsupported

    def get_status(self) -> dict[str, Any]:
        return {
            "total_chains": len(self._adapters),
            "configured_chains": self.configured_chains(),
            "families": self.families,
        }

    async def close(self) -> None:
        """Close adapters that hold resources."""
        for adapter in self._adapters.values():
            close = getattr(adapter, "close", None)
            if close is not None:
                await close()
