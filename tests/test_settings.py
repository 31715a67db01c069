from pathlib import Path

from execbox.core.settings import load_settings


def test_yaml_file_and_env(tmp_path, monkeypatch):
    conf = tmp_path / "execbox.yaml"
    conf.write_text("scratch_dir: /srv/scratch\nstatus_ttl_s: 120\nsyntax_heuristics: false\n")
    monkeypatch.setenv("EXECBOX_CONF", str(conf))
    monkeypatch.setenv("EXECBOX_STATUS_TTL_S", "60")
    s = load_settings()
    assert s.scratch_dir == Path("/srv/scratch")
    assert s.syntax_heuristics is False
    # env wins over the file
    assert s.status_ttl_s == 60


def test_missing_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("EXECBOX_CONF", str(tmp_path / "absent.yaml"))
    s = load_settings()
    assert s.status_ttl_s == 3600
    assert s.max_code_chars == 10_000


def test_overrides_win(tmp_path, monkeypatch):
    monkeypatch.setenv("EXECBOX_CONF", str(tmp_path / "absent.yaml"))
    s = load_settings(sync_timeout_s=5, runtimes={"node": "/opt/node"})
    assert s.sync_timeout_s == 5
    assert s.runtimes == {"node": "/opt/node"}
