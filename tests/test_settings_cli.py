"""Tests for configs.settings and the cli entry point."""

import json

import pytest

from cli.main import build_parser, main
from configs.settings import Settings


def test_defaults(monkeypatch):
    for name in ("DID_BASE_URL", "DID_VOICE_ID", "LLM_MODEL", "MAX_MESSAGES_PER_SESSION", "CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings()
    assert settings.did_base_url == "https://api.d-id.com"
    assert settings.did_voice_id == "en-US-JennyNeural"
    assert settings.max_messages_per_session == 100
    assert "http://localhost:3000" in settings.cors_origins


def test_missing_did_key(monkeypatch):
    monkeypatch.delenv("DID_API_KEY", raising=False)
    settings = Settings()
    assert settings.did_configured is False
    with pytest.raises(RuntimeError, match="DID_API_KEY"):
        settings.did_api_key


def test_secret_indirection(monkeypatch):
    monkeypatch.setenv("MY_DID_KEY", "real-secret")
    monkeypatch.setenv("DID_API_KEY", "MY_DID_KEY")
    assert Settings().did_api_key == "real-secret"


def test_invalid_integer(monkeypatch):
    monkeypatch.setenv("MAX_MESSAGES_PER_SESSION", "lots")
    with pytest.raises(RuntimeError, match="MAX_MESSAGES_PER_SESSION"):
        Settings()


def test_describe_masks_secrets(monkeypatch):
    monkeypatch.setenv("DID_API_KEY", "did-secret")
    described = Settings().describe()
    assert described["did_api_key"] == "<set>"
    assert "did-secret" not in json.dumps(described)


def test_cli_show_config(capsys):
    main(["show-config"])
    out = capsys.readouterr().out
    assert json.loads(out)["did_base_url"]


def test_cli_cleanup_audio(tmp_path, capsys):
    main(["cleanup-audio", "--max-age-hours", "1", "--storage-dir", str(tmp_path)])
    assert "0 file(s) deleted" in capsys.readouterr().out


def test_cli_rejects_negative_age(tmp_path):
    with pytest.raises(SystemExit):
        main(["cleanup-audio", "--max-age-hours", "-1", "--storage-dir", str(tmp_path)])


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
