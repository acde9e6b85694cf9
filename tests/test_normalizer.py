import pytest

from chainscope.datasource.normalizer import MetadataNormalizer
from chainscope.search.types import AssetMetadata


@pytest.fixture
def normalizer():
    return MetadataNormalizer()


class TestNormalize:
    def test_erc721(self, normalizer):
        raw = {
            "name": "Ape #1",
            "description": "A bored ape",
            "image": "ipfs://QmApe/1.png",
            "attributes": [
                {"trait_type": "Fur", "value": "Gold"},
                {"trait_type": "Level", "value": 7, "display_type": "number"},
                {"value": "no trait type"},
            ],
        }
        metadata = normalizer.normalize(raw, "evm", creator="0xcreator")

        assert metadata.name == "Ape #1"
        assert [a.trait_type for a in metadata.attributes] == ["Fur", "Level"]
        assert metadata.attributes[1].display_type == "number"
        assert metadata.creator == "0xcreator"
        assert metadata.original_format == raw

    def test_sui_display(self, normalizer):
        raw = {
            "display": {"name": "Fish", "image_url": "https://sui.example/fish.png"},
            "description": "Swims",
            "properties": {"color": "blue", "size": 3, "nested": {"x": 1}},
        }
        metadata = normalizer.normalize(raw, "sui")

        assert metadata.name == "Fish"
        assert metadata.description == "Swims"
        assert metadata.image == "https://sui.example/fish.png"
        assert {a.trait_type: a.value for a in metadata.attributes} == {
            "color": "blue",
            "size": 3,
        }

    def test_sui_falls_back_to_url(self, normalizer):
        metadata = normalizer.normalize({"name": "Obj", "url": "https://x.io/a"}, "sui")
        assert metadata.image == "https://x.io/a"

    def test_metaplex_creator(self, normalizer):
        raw = {
            "name": "Cat",
            "image": "https://arweave.net/cat",
            "properties": {"creators": [{"address": "So1Creator", "share": 100}]},
        }
        metadata = normalizer.normalize(raw, "solana", creator="fallback")
        assert metadata.creator == "So1Creator"

    def test_unknown_family_reads_erc721(self, normalizer):
        metadata = normalizer.normalize({"name": "Thing"}, "generic")
        assert metadata.name == "Thing"

    def test_missing_name(self, normalizer):
        assert normalizer.normalize({}, "evm").name == "Unnamed Asset"


class TestValidate:
    def test_complete_metadata_is_valid(self, normalizer):
        metadata = normalizer.normalize(
            {
                "name": "Ape #1",
                "description": "A thoroughly bored ape",
                "image": "https://img.example/1.png",
                "attributes": [{"trait_type": "Fur", "value": "Gold"}],
            },
            "evm",
        )
        report = normalizer.validate(metadata)

        assert report.is_valid
        assert report.score == 100

    def test_penalties(self, normalizer):
        report = normalizer.validate(
            AssetMetadata(name="Ab", description="", image="not a url")
        )

        assert not report.is_valid
        # short name 10, no description 15, no attributes 10, bad image 20
        assert report.score == 45
        assert "Invalid image URL format" in report.issues

    def test_everything_missing(self, normalizer):
        report = normalizer.validate(
            AssetMetadata(name="", description="", image="", external_url="bad")
        )
        assert report.score == 15
        assert len(report.issues) == 5
