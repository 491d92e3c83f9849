from __future__ import annotations

import pytest
import yaml

from backdrop.config import (
    OPENAI_PLACEHOLDER,
    REMOVE_BG_PLACEHOLDER,
    CredentialState,
    ProviderCredential,
    Settings,
)


@pytest.mark.parametrize("raw", [None, "", "   ", REMOVE_BG_PLACEHOLDER])
def test_unusable_values_are_absent(raw) -> None:
    credential = ProviderCredential.from_raw(raw, REMOVE_BG_PLACEHOLDER)
    assert credential.state is CredentialState.ABSENT
    assert credential.usable is False
    assert credential.value is None


def test_real_key_is_usable_and_hidden_from_repr() -> None:
    credential = ProviderCredential.from_raw(" sk-live-123 ", OPENAI_PLACEHOLDER)
    assert credential.usable
    assert credential.value == "sk-live-123"
    assert "sk-live-123" not in repr(credential)


def test_credentials_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REMOVE_BG_API_KEY", REMOVE_BG_PLACEHOLDER)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    settings = Settings(_env_file=None)
    assert settings.credentials.remove_bg.usable is False
    assert settings.credentials.openai.usable is True
    assert settings.credentials.stability.usable is False


def test_defaults(make_settings) -> None:
    settings = make_settings()
    assert settings.port == 3000
    assert settings.environment == "development"
    assert settings.max_upload_bytes == 10 * 1024 * 1024
    assert settings.providers == {}


def test_providers_yaml_is_loaded(tmp_path, make_settings) -> None:
    path = tmp_path / "providers.yaml"
    path.write_text(yaml.safe_dump({"generation": {"openai": {"model": "dall-e-2"}}}), encoding="utf-8")
    settings = make_settings(providers_config=path)
    assert settings.providers["generation"]["openai"]["model"] == "dall-e-2"


def test_missing_providers_yaml_raises(tmp_path, make_settings) -> None:
    settings = make_settings(providers_config=tmp_path / "missing.yaml")
    with pytest.raises(FileNotFoundError):
        _ = settings.providers
