from __future__ import annotations

import pytest

from src.songforge.config import PollingPolicy, load_config


def test_next_delay_grows_and_caps() -> None:
    policy = PollingPolicy(initial_delay_seconds=5, backoff_factor=1.2, max_delay_seconds=15)

    assert policy.next_delay(5) == pytest.approx(6.0)
    assert policy.next_delay(2) == pytest.approx(6.0)
    assert policy.next_delay(14) == 15


def test_load_config_reads_environment(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("MEDIA_ROOT", str(tmp_path / "media"))
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'config.db'}")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://songs.example/")
    monkeypatch.setenv("POLL_MAX_ATTEMPTS", "12")
    monkeypatch.setenv("ENABLE_PROVIDER_FALLBACK", "off")

    config = load_config()

    assert config.polling.max_attempts == 12
    assert config.enable_provider_fallback is False
    assert config.callback_url == "https://songs.example/api/callbacks/suno"
    assert config.media_base_url == "https://songs.example/media"
    assert config.media_paths.audio.is_dir()
    config.engine.dispose()
