from __future__ import annotations

from pathlib import Path

import pytest

from hrassessment.config import ConfigManager


def test_load_app_config(tmp_path: Path):
    (tmp_path / "assessment.yaml").write_text(
        "gate:\n  default_resume_threshold: 80\nsession:\n  max_violations: 4\nseed: 11\n",
        encoding="utf-8",
    )

    config = ConfigManager(tmp_path).load_app_config()

    assert config.gate.default_resume_threshold == 80
    assert config.to_settings() == {
        "gate": {"default_resume_threshold": 80},
        "session": {"max_violations": 4},
        "seed": 11,
    }


def test_empty_file_gives_defaults(tmp_path: Path):
    (tmp_path / "empty.yaml").write_text("", encoding="utf-8")

    assert ConfigManager(tmp_path).load("empty") == {}
    assert ConfigManager(tmp_path).load_app_config("empty").to_settings() == {}


def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        ConfigManager(tmp_path).load("absent")
