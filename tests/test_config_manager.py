import json

from webprint.config_manager import ConfigManager


def test_defaults_created_on_first_run(tmp_path):
    path = tmp_path / "config.json"
    manager = ConfigManager(str(path))

    config = manager.get_config()
    assert path.exists()
    assert config["port"] == 5000
    assert config["api_prefix"] == "/api"
    assert config["poll_interval"] == 5
    assert config["claim_window_seconds"] == 60
    assert config["report_print_errors"] is False
    assert (tmp_path / "uploads" / "previews").is_dir()
    assert (tmp_path / "downloads").is_dir()


def test_missing_keys_are_backfilled(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"port": 8080}))

    config = ConfigManager(str(path)).get_config()

    assert config["port"] == 8080
    assert config["history_limit"] == 100
    assert "history_limit" in json.loads(path.read_text())


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")

    assert ConfigManager(str(path)).get_config()["port"] == 5000


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("WEBPRINT_SERVER_URL", "http://print.example:5000")
    monkeypatch.setenv("WEBPRINT_AGENT_ID", "lab-pc")

    agent = ConfigManager(str(tmp_path / "config.json")).get_agent_config()

    assert agent["server_url"] == "http://print.example:5000"
    assert agent["agent_id"] == "lab-pc"
    assert agent["print_timeout_seconds"] == 60


def test_update_config_persists(tmp_path):
    path = tmp_path / "config.json"
    manager = ConfigManager(str(path))

    manager.update_config({"poll_interval": 2})

    assert json.loads(path.read_text())["poll_interval"] == 2
    assert ConfigManager(str(path)).get_config()["poll_interval"] == 2


def test_server_config_has_directories_and_tool_timeouts(tmp_path):
    server = ConfigManager(str(tmp_path / "config.json")).get_server_config()
    assert server["upload_directory"].startswith(str(tmp_path))
    assert server["office_timeout_seconds"] == 120
    assert "server_url" not in server
