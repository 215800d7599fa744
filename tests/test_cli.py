import pytest

from webprint import cli


def test_server_command_uses_overrides(monkeypatch, tmp_path):
    called = {}

    def fake_run_server(config_manager, host, port):
        called["args"] = (host, port)
        return 0

    monkeypatch.setattr(cli, "setup_logging", lambda *a, **k: None)
    monkeypatch.setattr(cli, "run_server", fake_run_server)

    assert cli.main(["--config", str(tmp_path / "c.json"), "server", "--port", "6000"]) == 0
    assert called["args"] == (None, 6000)


def test_agent_command_applies_server_url(monkeypatch, tmp_path):
    called = {}

    def fake_run_agent(config_manager, once=False):
        called["url"] = config_manager.get_agent_config()["server_url"]
        called["once"] = once
        return 0

    monkeypatch.setattr(cli, "setup_logging", lambda *a, **k: None)
    monkeypatch.setattr(cli, "run_agent", fake_run_agent)

    cli.main(["--config", str(tmp_path / "c.json"), "agent", "--server-url", "http://queue:5000", "--once"])

    assert called == {"url": "http://queue:5000", "once": True}


def test_command_is_required(tmp_path):
    with pytest.raises(SystemExit):
        cli.main(["--config", str(tmp_path / "c.json")])


def test_fatal_errors_return_one(monkeypatch, tmp_path):
    def boom(*args, **kwargs):
        raise OSError("Port 5000 is not available")

    monkeypatch.setattr(cli, "setup_logging", lambda *a, **k: None)
    monkeypatch.setattr(cli, "run_server", boom)

    assert cli.main(["--config", str(tmp_path / "c.json"), "server"]) == 1
