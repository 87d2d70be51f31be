"""Tests for certvault.config and certvault.crypto.context."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from certvault.config import VaultConfig, load_config
from certvault.crypto.context import CryptoContext


class TestVaultConfig:
    def test_defaults(self) -> None:
        config = VaultConfig()
        assert config.pbe_iterations == 2048
        assert config.challenge_size == 2048
        assert config.archive_compression == "deflated"

    def test_rejects_non_positive_iterations(self) -> None:
        with pytest.raises(ValidationError):
            VaultConfig(pbe_iterations=0)

    def test_rejects_unknown_compression(self) -> None:
        with pytest.raises(ValidationError):
            VaultConfig(archive_compression="lzma")  # type: ignore[arg-type]

    def test_load_none_returns_defaults(self) -> None:
        assert load_config(None) == VaultConfig()

    def test_load_partial_file(self, tmp_path: Path) -> None:
        path = tmp_path / "certvault.json"
        path.write_text(json.dumps({"pbe_iterations": 10000, "log_level": "DEBUG"}))
        config = load_config(path)
        assert config.pbe_iterations == 10000
        assert config.log_level == "DEBUG"
        assert config.mac_iterations == 2048

    def test_load_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "certvault.json"
        path.write_text("{")
        with pytest.raises(ValueError, match="Invalid configuration"):
            load_config(path)

    def test_load_invalid_value(self, tmp_path: Path) -> None:
        path = tmp_path / "certvault.json"
        path.write_text(json.dumps({"salt_size": 2}))
        with pytest.raises(ValueError):
            load_config(path)


class TestCryptoContext:
    def test_from_config(self) -> None:
        context = CryptoContext.from_config(VaultConfig(pbe_iterations=99, default_alias="ca"))
        assert context.pbe_iterations == 99
        assert context.default_alias == "ca"

    def test_new_salt_length(self) -> None:
        assert len(CryptoContext(salt_size=24).new_salt()) == 24

    def test_custom_random_source(self) -> None:
        context = CryptoContext(random_source=lambda size: b"\x01" * size)
        assert context.random_bytes(3) == b"\x01\x01\x01"
