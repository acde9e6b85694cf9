"""
Metadata normalization between chain-native formats and AssetMetadata.

Supported formats:
- evm: ERC-721 / ERC-1155 JSON metadata
- sui: Sui Display standard (optionally nested under "display")
- solana: Metaplex token metadata
"""

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from loguru import logger

from chainscope.search.types import AssetAttribute, AssetMetadata


@dataclass
class MetadataValidation:
    """Completeness report for normalized metadata."""

    is_valid: bool
    issues: list[str] = field(default_factory=list)
    score: int = 100  # 0-100 quality score


class MetadataNormalizer:
    """Converts chain-native metadata payloads into AssetMetadata."""

    def normalize(
        self,
        raw: dict[str, Any],
        family: str,
        creator: str | None = None,
    ) -> AssetMetadata:
        """
        Convert chain-specific metadata to the unified format.

        Unknown families are read as ERC-721-shaped JSON, which most
        indexers return regardless of the chain behind them.
        """
        if family == "sui":
            return self._from_sui_display(raw, creator)
        if family == "solana":
            return self._from_metaplex(raw, creator)
        if family != "evm":
            logger.debug(f"No metadata format for family '{family}', using ERC-721")
        return self._from_erc721(raw, creator)

    def _from_erc721(self, raw: dict[str, Any], creator: str | None) -> AssetMetadata:
        return AssetMetadata(
            name=raw.get("name") or "Unnamed Asset",
            description=raw.get("description") or "",
            image=raw.get("image") or "",
            attributes=tuple(self._attributes(raw.get("attributes"))),
            external_url=raw.get("external_url"),
            animation_url=raw.get("animation_url"),
            background_color=raw.get("background_color"),
            creator=creator,
            original_format=raw,
        )

    def _from_sui_display(
        self, raw: dict[str, Any], creator: str | None
    ) -> AssetMetadata:
        display = raw.get("display") or {}

        # Sui keeps traits as a flat properties map
        attributes = [
            AssetAttribute(trait_type=key, value=value)
            for key, value in (raw.get("properties") or {}).items()
            if isinstance(value, (str, int, float)) and not isinstance(value, bool)
        ]

        return AssetMetadata(
            name=display.get("name") or raw.get("name") or "Unnamed Asset",
            description=display.get("description") or raw.get("description") or "",
            image=(
                display.get("image_url")
                or raw.get("image_url")
                or raw.get("url")
                or ""
            ),
            attributes=tuple(attributes),
            external_url=display.get("project_url") or raw.get("project_url"),
            creator=display.get("creator") or raw.get("creator") or creator,
            original_format=raw,
        )

    def _from_metaplex(self, raw: dict[str, Any], creator: str | None) -> AssetMetadata:
        creators = (raw.get("properties") or {}).get("creators") or []
        first_creator = creators[0].get("address") if creators else None

        return AssetMetadata(
            name=raw.get("name") or "Unnamed Asset",
            description=raw.get("description") or "",
            image=raw.get("image") or "",
            attributes=tuple(self._attributes(raw.get("attributes"))),
            external_url=raw.get("external_url"),
            animation_url=raw.get("animation_url"),
            creator=first_creator or creator,
            original_format=raw,
        )

    @staticmethod
    def _attributes(raw_attributes: Any) -> list[AssetAttribute]:
        if not isinstance(raw_attributes, list):
            return []
        attributes = []
        for attr in raw_attributes:
            if not isinstance(attr, dict) or "trait_type" not in attr:
                continue
            value = attr.get("value")
            if not isinstance(value, (str, int, float)) or isinstance(value, bool):
                value = str(value)
            attributes.append(
                AssetAttribute(
                    trait_type=str(attr["trait_type"]),
                    value=value,
                    display_type=attr.get("display_type"),
                )
            )
        return attributes

    def validate(self, metadata: AssetMetadata) -> MetadataValidation:
        """Score metadata completeness and quality."""
        issues: list[str] = []
        score = 100

        if not metadata.name.strip():
            issues.append("Missing or empty name")
            score -= 25
        if not metadata.description.strip():
            issues.append("Missing or empty description")
            score -= 15
        if not metadata.image.strip():
            issues.append("Missing or empty image URL")
            score -= 30

        if metadata.name and len(metadata.name) < 3:
            issues.append("Name too short (recommended: 3+ characters)")
            score -= 10
        if metadata.description and len(metadata.description) < 10:
            issues.append("Description too short (recommended: 10+ characters)")
            score -= 10
        if not metadata.attributes:
            issues.append("No attributes provided (recommended for discoverability)")
            score -= 10

        if metadata.image and not _is_valid_url(metadata.image):
            issues.append("Invalid image URL format")
            score -= 20
        if metadata.external_url and not _is_valid_url(metadata.external_url):
            issues.append("Invalid external URL format")
            score -= 5

        return MetadataValidation(
            is_valid=not issues, issues=issues, score=max(0, score)
        )


def _is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return bool(parsed.scheme and parsed.netloc)
