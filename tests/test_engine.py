import subprocess
from pathlib import Path

import pytest

from xlsx_normalizer import engine as engine_module
from xlsx_normalizer.engine import LibreOfficeEngine
from xlsx_normalizer.errors import ExternalEngineFailed, ExternalEngineUnavailable


def test_missing_binary_is_unavailable():
    engine = LibreOfficeEngine("definitely-not-an-office-suite")
    assert engine.is_available() is False
    with pytest.raises(ExternalEngineUnavailable):
        engine.render_csv(b"PK", timeout=1)


def _fake_binary(monkeypatch):
    monkeypatch.setattr(engine_module.shutil, "which", lambda name: "/usr/bin/soffice")


def test_timeout_raises_and_cleans_up(monkeypatch):
    _fake_binary(monkeypatch)
    seen = {}

    def fake_run(cmd, **kwargs):
        seen["workdir"] = Path(cmd[cmd.index("--outdir") + 1])
        assert (seen["workdir"] / "sheet.xlsx").read_bytes() == b"PK"
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    monkeypatch.setattr(engine_module.subprocess, "run", fake_run)
    with pytest.raises(ExternalEngineFailed):
        LibreOfficeEngine().render_csv(b"PK", timeout=0.5)
    assert not seen["workdir"].exists()


def test_non_zero_exit_raises(monkeypatch):
    _fake_binary(monkeypatch)
    monkeypatch.setattr(
        engine_module.subprocess,
        "run",
        lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 1, "", "boom"),
    )
    with pytest.raises(ExternalEngineFailed) as info:
        LibreOfficeEngine().render_csv(b"PK", timeout=5)
    assert info.value.details["stderr"] == "boom"


def test_reads_converted_output(monkeypatch):
    _fake_binary(monkeypatch)

    def fake_run(cmd, **kwargs):
        outdir = Path(cmd[cmd.index("--outdir") + 1])
        (outdir / "sheet.csv").write_text("a,b\n1,2\n", encoding="utf-8")
        return subprocess.CompletedProcess(cmd, 0, "", "")

    monkeypatch.setattr(engine_module.subprocess, "run", fake_run)
    assert LibreOfficeEngine().render_csv(b"PK", timeout=5) == "a,b\n1,2\n"


def test_missing_output_is_no_result(monkeypatch):
    _fake_binary(monkeypatch)
    monkeypatch.setattr(
        engine_module.subprocess,
        "run",
        lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 0, "", ""),
    )
    assert LibreOfficeEngine().render_csv(b"PK", timeout=5) is None


def test_probe_uses_version_flag(monkeypatch):
    _fake_binary(monkeypatch)
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 0, b"LibreOffice 7.6", b"")

    monkeypatch.setattr(engine_module.subprocess, "run", fake_run)
    assert LibreOfficeEngine().is_available() is True
    assert calls[0][-1] == "--version"


def test_scratch_directory_errors_become_engine_failures(monkeypatch):
    _fake_binary(monkeypatch)

    def no_space(*args, **kwargs):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(engine_module.tempfile, "TemporaryDirectory", no_space)
    with pytest.raises(ExternalEngineFailed):
        LibreOfficeEngine().render_csv(b"PK", timeout=5)
