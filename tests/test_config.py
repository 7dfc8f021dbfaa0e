"""
Tests for BackupConfig and AssistantSettings.
"""

import json

import pytest
import yaml
from pydantic import ValidationError

from backup_assistant.core.exceptions import ConfigurationError
from backup_assistant.models.config import (
    ENCRYPTION_KEY_ENV,
    STORAGE_PATH_ENV,
    AssistantSettings,
    BackupConfig,
    CaptureType,
    CompressionMethod,
    load_settings,
)
from backup_assistant.security.encryption import encode_key, generate_key


class TestBackupConfig:

    def test_defaults(self):
        config = BackupConfig(database="shop")
        assert config.capture_type == CaptureType.FULL
        assert config.compress is False
        assert config.encrypt is False
        assert config.streaming is False
        assert config.chunk_size == 1000
        assert config.verify_after_backup is True

    @pytest.mark.parametrize("chunk_size", [0, -5])
    def test_chunk_size_must_be_positive(self, chunk_size):
        with pytest.raises(ConfigurationError, match="chunk_size"):
            BackupConfig(database="shop", streaming=True, chunk_size=chunk_size)

    def test_empty_database_rejected(self):
        with pytest.raises(ConfigurationError):
            BackupConfig(database="  ")

    def test_unknown_field_rejected(self):
        with pytest.raises(ConfigurationError):
            BackupConfig(database="shop", compresion=True)

    def test_encrypt_requires_key(self):
        with pytest.raises(ConfigurationError, match="encryption_key"):
            BackupConfig(database="shop", encrypt=True)

    @pytest.mark.parametrize("cipher,length", [
        ("aes-128-cbc", 16),
        ("aes-192-cbc", 24),
        ("aes-256-cbc", 32),
    ])
    def test_key_length_must_match_cipher(self, cipher, length):
        BackupConfig(database="shop", encrypt=True, cipher=cipher, encryption_key=b"k" * length)

        with pytest.raises(ConfigurationError, match="Invalid key length"):
            BackupConfig(database="shop", encrypt=True, cipher=cipher, encryption_key=b"k" * (length + 1))

    def test_unsupported_cipher(self):
        with pytest.raises(ConfigurationError, match="Unsupported cipher"):
            BackupConfig(database="shop", encrypt=True, cipher="des-cbc", encryption_key=b"k" * 8)

    def test_text_key_is_base64_decoded(self):
        key = generate_key("aes-256-cbc")
        config = BackupConfig(database="shop", encrypt=True, encryption_key=encode_key(key))
        assert config.encryption_key == key

    def test_invalid_text_key(self):
        with pytest.raises(ConfigurationError):
            BackupConfig(database="shop", encrypt=True, encryption_key="not base64!!")

    def test_config_is_immutable(self):
        config = BackupConfig(database="shop")
        with pytest.raises(ValidationError):
            config.chunk_size = 10

    def test_with_overrides_revalidates(self):
        config = BackupConfig(database="shop", streaming=True, chunk_size=500)
        assert config.with_overrides(chunk_size=50).chunk_size == 50
        with pytest.raises(ConfigurationError):
            config.with_overrides(chunk_size=0)

    def test_with_overrides_keeps_key(self):
        key = generate_key()
        config = BackupConfig(database="shop", encrypt=True, encryption_key=key)
        assert config.with_overrides(name="other").encryption_key == key

    def test_table_selection(self):
        config = BackupConfig(
            database="shop",
            include_tables={"users", "orders", "logs"},
            exclude_tables={"logs"},
        )
        assert config.selects("users")
        assert not config.selects("logs")
        assert not config.selects("sessions")

        assert BackupConfig(database="shop", exclude_tables={"logs"}).selects("sessions")

    def test_to_dict_masks_key(self):
        config = BackupConfig(database="shop", encrypt=True, encryption_key=generate_key())
        data = config.to_dict()
        assert data["encryption_key"] == "***MASKED***"
        assert data["capture_type"] == "full"
        json.dumps(data)

    def test_from_dict_splits_comma_lists(self):
        config = BackupConfig.from_dict({
            "database": "shop",
            "include_tables": "users, orders",
            "tags": "nightly,prod",
        })
        assert config.include_tables == frozenset({"users", "orders"})
        assert config.tags == ("nightly", "prod")

    def test_from_dict_reads_key_from_environment(self, monkeypatch):
        key = generate_key()
        monkeypatch.setenv(ENCRYPTION_KEY_ENV, encode_key(key))
        config = BackupConfig.from_dict({"database": "shop", "encrypt": True})
        assert config.encryption_key == key

    def test_from_file_yaml(self, temp_dir):
        path = temp_dir / "backup.yaml"
        path.write_text(yaml.safe_dump({
            "backup": {
                "name": "nightly",
                "database": "shop",
                "compress": True,
                "compression_method": "bzip2",
                "streaming": True,
                "chunk_size": 250,
                "exclude_tables": ["sessions"],
            }
        }))

        config = BackupConfig.from_file(path)
        assert config.name == "nightly"
        assert config.compression_method == CompressionMethod.BZIP2
        assert config.chunk_size == 250
        assert config.exclude_tables == frozenset({"sessions"})

    def test_from_file_missing(self, temp_dir):
        with pytest.raises(ConfigurationError):
            BackupConfig.from_file(temp_dir / "missing.yaml")

    def test_from_file_invalid_yaml(self, temp_dir):
        path = temp_dir / "backup.yaml"
        path.write_text("backup: {name: [nightly\n")
        with pytest.raises(ConfigurationError, match="Cannot load backup configuration"):
            BackupConfig.from_file(path)

    def test_read_file_unwraps_backup_section(self, temp_dir):
        path = temp_dir / "backup.json"
        path.write_text('{"backup": {"name": "nightly", "chunk_size": 10}}')
        assert BackupConfig.read_file(path) == {"name": "nightly", "chunk_size": 10}

    def test_read_file_rejects_scalar_backup_section(self, temp_dir):
        path = temp_dir / "backup.yaml"
        path.write_text("backup: nightly\n")
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            BackupConfig.read_file(path)


class TestAssistantSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv(STORAGE_PATH_ENV, raising=False)
        settings = load_settings()
        assert settings.storage_path == "./backups"
        assert settings.database_retry.max_retries == 3
        assert settings.storage_retry.failure_threshold == 3

    def test_load_from_json_with_environment_override(self, temp_dir, monkeypatch):
        path = temp_dir / "settings.json"
        path.write_text(json.dumps({
            "settings": {
                "storage_path": "/srv/backups",
                "log_level": "debug",
                "database_retry": {"max_retries": 5, "cooldown": 10},
            }
        }))
        monkeypatch.setenv(STORAGE_PATH_ENV, str(temp_dir / "override"))

        settings = load_settings(path)
        assert settings.storage_path == str(temp_dir / "override")
        assert settings.log_level == "DEBUG"
        retry = settings.database_retry.to_retry_config()
        assert retry.max_retries == 5
        assert retry.cooldown == 10

    def test_invalid_settings(self):
        with pytest.raises(ConfigurationError):
            AssistantSettings(log_level="LOUD")
