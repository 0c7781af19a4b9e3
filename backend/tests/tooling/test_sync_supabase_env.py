import types

import pytest


def _fake_completed(stdout_text: str) -> object:
    # Minimal stub mimicking subprocess.CompletedProcess for our script
    obj = types.SimpleNamespace()
    obj.stdout = stdout_text
    obj.stderr = ""
    obj.returncode = 0
    return obj


def _patch_status(monkeypatch, json_payload: str, banner: str = "some banner...") -> None:
    import subprocess as _subprocess

    def _run(cmd, check, capture_output, text):  # noqa: D401
        assert cmd == ["supabase", "status", "-o", "json"]
        return _fake_completed(f"{banner}\n{json_payload}\n")

    monkeypatch.setattr(_subprocess, "run", _run)


def _module():
    import importlib

    return importlib.import_module("scripts.sync_supabase_env")


def test_parse_status_and_extract_fields(monkeypatch):
    _patch_status(
        monkeypatch,
        '{"SERVICE_ROLE_KEY":"s3cr3t","ANON_KEY":"an0n","API_URL":"http://127.0.0.1:54321",'
        '"services":{"rest":{"status":"running"},"auth":{"status":"running"}}}',
    )
    mod = _module()
    data = mod._load_supabase_status()
    assert isinstance(data, dict)

    fields = mod._extract_core_fields(data)
    assert fields.api_url == "http://127.0.0.1:54321"
    assert fields.anon_key == "an0n"
    assert fields.service_role_key == "s3cr3t"
    assert fields.services_ok is True


def test_extract_accepts_lowercase_keys_and_nested_api_section():
    mod = _module()
    fields = mod._extract_core_fields(
        {"api": {"url": "http://localhost:54321"}, "anon_key": "a", "service_role_key": "s"}
    )
    assert fields.api_url == "http://localhost:54321"
    assert fields.anon_key == "a"
    assert fields.service_role_key == "s"
    assert fields.services_ok is True


def test_update_env_updates_or_appends(tmp_path):
    envfile = tmp_path / ".env"
    envfile.write_text("SUPABASE_URL=http://127.0.0.1:54321\nSUPABASE_SERVICE_ROLE_KEY=DUMMY_DO_NOT_USE\n")

    mod = _module()
    mod._update_env(envfile, "SUPABASE_URL", "http://127.0.0.1:12345")
    mod._update_env(envfile, "SUPABASE_SERVICE_ROLE_KEY", "real_key")
    mod._update_env(envfile, "SUPABASE_ANON_KEY", "anon_key")

    text = envfile.read_text()
    assert "SUPABASE_URL=http://127.0.0.1:12345" in text
    assert "SUPABASE_SERVICE_ROLE_KEY=real_key" in text
    assert "SUPABASE_ANON_KEY=anon_key" in text
    assert (tmp_path / ".env.bak").exists()


def test_main_writes_all_three_values(monkeypatch, tmp_path):
    envfile = tmp_path / ".env"
    envfile.write_text("SUPABASE_URL=http://old\n")
    monkeypatch.chdir(tmp_path)
    _patch_status(
        monkeypatch,
        '{"SERVICE_ROLE_KEY":"s3cr3t","ANON_KEY":"an0n","API_URL":"http://127.0.0.1:54321"}',
    )

    _module().main()

    text = envfile.read_text()
    assert "SUPABASE_URL=http://127.0.0.1:54321" in text
    assert "SUPABASE_ANON_KEY=an0n" in text
    assert "SUPABASE_SERVICE_ROLE_KEY=s3cr3t" in text
    assert "SUPABASE_URL=http://old" not in text


def test_main_exits_when_auth_not_running(monkeypatch, tmp_path):
    envfile = tmp_path / ".env"
    envfile.write_text("SUPABASE_URL=http://127.0.0.1:54321\n")
    monkeypatch.chdir(tmp_path)
    _patch_status(
        monkeypatch,
        '{"SERVICE_ROLE_KEY":"s3cr3t","ANON_KEY":"an0n","API_URL":"http://127.0.0.1:54321",'
        '"services":{"rest":{"status":"running"},"auth":{"status":"stopped"}}}',
        banner="status...",
    )

    with pytest.raises(SystemExit):
        _module().main()
    assert envfile.read_text() == "SUPABASE_URL=http://127.0.0.1:54321\n"


def test_main_exits_when_anon_key_missing(monkeypatch, tmp_path):
    (tmp_path / ".env").write_text("")
    monkeypatch.chdir(tmp_path)
    _patch_status(monkeypatch, '{"SERVICE_ROLE_KEY":"s3cr3t","API_URL":"http://127.0.0.1:54321"}')

    with pytest.raises(SystemExit):
        _module().main()
