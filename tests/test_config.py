import pytest
from pydantic import ValidationError

from chatbridge.config import load_config


def test_load_config_interpolates_env_and_data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("CHATBRIDGE_TEST_SECRET", "from-env")
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "data_dir: /var/lib/chatbridge\n"
        "auth:\n"
        "  jwt_secret: ${CHATBRIDGE_TEST_SECRET}\n"
        "storage:\n"
        "  db_path: ${data_dir}/relay.db\n"
        "relay:\n"
        "  history_limit: 20\n",
        encoding="utf-8",
    )

    config = load_config(config_file, tmp_path / "missing.env")

    assert config.auth.jwt_secret == "from-env"
    assert config.storage.db_path == "/var/lib/chatbridge/relay.db"
    assert config.relay.history_limit == 20
    assert config.server.port == 8000
    assert config.telegram.drop_pending_updates is True


def test_load_config_reads_dotenv(tmp_path, monkeypatch):
    monkeypatch.delenv("CHATBRIDGE_DOTENV_SECRET", raising=False)
    (tmp_path / ".env").write_text("CHATBRIDGE_DOTENV_SECRET=dotenv-secret\n", encoding="utf-8")
    config_file = tmp_path / "config.yaml"
    config_file.write_text("auth:\n  jwt_secret: ${CHATBRIDGE_DOTENV_SECRET}\n", encoding="utf-8")

    config = load_config(config_file, tmp_path / ".env")

    assert config.auth.jwt_secret == "dotenv-secret"
    monkeypatch.delenv("CHATBRIDGE_DOTENV_SECRET", raising=False)


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml", tmp_path / ".env")


def test_auth_section_is_required(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("log_level: DEBUG\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(config_file, tmp_path / ".env")
