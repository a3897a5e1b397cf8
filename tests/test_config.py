import json
from pathlib import Path

from turntalker.config.loader import AppConfig, resolve_config_dir


def test_defaults_without_config_dir() -> None:
    cfg = AppConfig.load(None)
    assert cfg.turn.match_threshold == 0.5
    assert cfg.turn.min_turn_chars == 3
    assert cfg.catalog.url.startswith("https://")


def test_json_overrides_keep_default_types(tmp_path) -> None:
    (tmp_path / "turn.json").write_text(json.dumps({"silence_ms": "900", "barge_in": "false", "bogus": 1}))
    (tmp_path / "catalog.json").write_text(json.dumps({"file": "replies.json", "timeout_s": 3}))
    (tmp_path / "phrases.json").write_text(json.dumps({"not_understood": "Pardon?"}))
    cfg = AppConfig.load(tmp_path)
    assert cfg.turn.silence_ms == 900
    assert cfg.turn.barge_in is False
    assert not hasattr(cfg.turn, "bogus")
    assert cfg.catalog.file == Path("replies.json")
    assert cfg.catalog.timeout_s == 3.0
    assert cfg.phrases.not_understood == "Pardon?"


def test_unreadable_file_is_ignored(tmp_path) -> None:
    (tmp_path / "tts.json").write_text("{not json")
    cfg = AppConfig.load(tmp_path)
    assert cfg.tts.rate_wpm == AppConfig().tts.rate_wpm


def test_resolve_config_dir(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TURNTALKER_CONFIG_DIR", str(tmp_path))
    assert resolve_config_dir() == tmp_path
    monkeypatch.setenv("TURNTALKER_CONFIG_DIR", str(tmp_path / "missing"))
    assert resolve_config_dir() is None
