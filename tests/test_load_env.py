import os
from pathlib import Path

import run


def test_load_env_is_optional_and_does_not_override_env(tmp_path: Path, monkeypatch):
    env_path = tmp_path / ".env"
    env_path.write_text("TOUR_API_KEY=from-dotenv\nTOUR_MOBILE_APP=FromFile\n", encoding="utf-8")

    monkeypatch.setenv("TOUR_API_KEY", "from-env")
    # Registered with monkeypatch so the value dotenv writes is undone afterwards.
    monkeypatch.setenv("TOUR_MOBILE_APP", "placeholder")
    monkeypatch.delenv("TOUR_MOBILE_APP")

    run.load_env(root_dir=tmp_path)

    assert os.environ.get("TOUR_API_KEY") == "from-env"
    assert os.environ.get("TOUR_MOBILE_APP") == "FromFile"


def test_load_env_missing_file_is_a_no_op(tmp_path: Path, monkeypatch):
    called = {}

    def fake_load_dotenv(*, dotenv_path, override=False):
        called["path"] = dotenv_path
        return True

    monkeypatch.setattr(run, "_load_dotenv", fake_load_dotenv)

    run.load_env(root_dir=tmp_path)

    assert called == {}
