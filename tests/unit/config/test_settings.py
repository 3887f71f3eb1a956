"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from nftmirror.config.settings import Settings
from tests.factories import MARKETPLACE, NFT_CONTRACT


def _settings(**overrides) -> Settings:
    values = {
        "nft_contract_address": NFT_CONTRACT,
        "marketplace_address": MARKETPLACE,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestSettings:
    """Tests for Settings validation."""

    def test_defaults(self) -> None:
        settings = _settings()

        assert settings.store_backend in ("supabase", "memory")
        assert settings.confirmations >= 0
        assert settings.projector_max_attempts >= 1

    def test_contract_addresses_are_lowercased(self) -> None:
        settings = _settings(nft_contract_address="0x" + "AB" * 20)

        assert settings.nft_contract_address == "0x" + "ab" * 20

    def test_invalid_contract_address(self) -> None:
        with pytest.raises(ValidationError, match="Invalid contract address"):
            _settings(marketplace_address="0x1234")

    def test_urls_are_normalised(self) -> None:
        settings = _settings(ipfs_gateway="https://gw.example/", rpc_url="http://node:8545/")

        assert settings.ipfs_gateway == "https://gw.example"
        assert settings.rpc_url == "http://node:8545"

    def test_invalid_url(self) -> None:
        with pytest.raises(ValidationError, match="URL must start with"):
            _settings(rpc_url="ws://node:8546")

    @pytest.mark.parametrize(
        "overrides",
        [
            {"block_batch_size": 0},
            {"projector_max_attempts": 0},
            {"metadata_timeout_seconds": 0},
            {"store_backend": "mongo"},
        ],
    )
    def test_out_of_range(self, overrides) -> None:
        with pytest.raises(ValidationError):
            _settings(**overrides)

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORE_BACKEND", "memory")
        monkeypatch.setenv("PROJECTOR_CONCURRENCY", "16")

        settings = _settings()

        assert settings.store_backend == "memory"
        assert settings.projector_concurrency == 16
