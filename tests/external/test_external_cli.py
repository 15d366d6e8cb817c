from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

pytestmark = pytest.mark.skipif(
    sys.platform == "win32", reason="fake compiler wrapper is a POSIX shell script"
)


def _tool_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _fixture_toc() -> Path:
    return _tool_root() / "tests" / "fixtures" / "shaders.xml"


@pytest.fixture
def fake_dxc(tmp_path: Path) -> Path:
    script = _tool_root() / "tests" / "fixtures" / "fake_dxc.py"
    wrapper = tmp_path / "bin" / "dxc"
    wrapper.parent.mkdir()
    wrapper.write_text(
        f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n', encoding="utf-8"
    )
    wrapper.chmod(0o755)
    return wrapper


def _run(
    args: list[str], tmp_path: Path, extra_env: dict[str, str] | None = None
) -> tuple[subprocess.CompletedProcess[str], list[dict[str, object]]]:
    log = tmp_path / "dxc.log"
    env = {**os.environ, "FAKE_DXC_LOG": str(log), **(extra_env or {})}
    result = subprocess.run(
        [sys.executable, "shadertoc.py", *args],
        cwd=_tool_root(),
        capture_output=True,
        text=True,
        check=False,
        env=env,
    )
    calls = []
    if log.exists():
        calls = [json.loads(line) for line in log.read_text(encoding="utf-8").splitlines()]
    return result, calls


def _build_args(fake_dxc: Path, output_dir: Path, config: str, *extra: str) -> list[str]:
    return [
        "--dxc-path",
        str(fake_dxc),
        "--config",
        config,
        "--input",
        str(_fixture_toc()),
        "--out-dir",
        str(output_dir),
        *extra,
    ]


def test_t_01_debug_build_writes_every_output(fake_dxc: Path, tmp_path: Path) -> None:
    output_dir = tmp_path / "out"
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()

    result, calls = _run(
        _build_args(fake_dxc, output_dir, "Debug", "--temp-dir", str(temp_dir)),
        tmp_path,
    )

    assert result.returncode == 0, result.stderr
    assert "Debug shaders built:" in result.stdout
    assert {p.name for p in output_dir.iterdir()} == {
        "Opaque.rso",
        "Opaque.vso",
        "Opaque.pso",
        "Transparent.rso",
        "Transparent.vso",
        "Transparent.pso",
        "Downsample.rso",
        "Downsample.cso",
    }
    assert len(calls) == 7
    assert all(Path(c["cwd"]) == output_dir.resolve() for c in calls)
    assert all("-Qembed_debug" in c["argv"] for c in calls)
    assert list(temp_dir.iterdir()) == []


def test_t_02_release_pixel_shader_command_line(fake_dxc: Path, tmp_path: Path) -> None:
    result, calls = _run(_build_args(fake_dxc, tmp_path / "out", "Release"), tmp_path)

    assert result.returncode == 0, result.stderr
    pixel = next(c["argv"] for c in calls if "Opaque.pso" in c["argv"])
    assert pixel[pixel.index("-T") + 1] == "ps_6_4"
    assert pixel[pixel.index("-E") + 1] == "PSMain"
    assert pixel[pixel.index("-Fo") + 1] == "Opaque.pso"
    assert "-Od" not in pixel


def test_t_03_compiler_failure_exits_1_and_cleans_placeholders(
    fake_dxc: Path, tmp_path: Path
) -> None:
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()

    result, _calls = _run(
        _build_args(fake_dxc, tmp_path / "out", "Release", "--temp-dir", str(temp_dir)),
        tmp_path,
        {"FAKE_DXC_FAIL_ENTRY": "PSTransparent"},
    )

    assert result.returncode == 1
    assert "Error: Transparent.pso: compiler exited with status 1" in result.stderr
    assert "entry point 'PSTransparent' not found" in result.stderr
    assert list(temp_dir.iterdir()) == []


def test_t_04_retain_artifacts_keeps_placeholders(fake_dxc: Path, tmp_path: Path) -> None:
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()

    result, _calls = _run(
        _build_args(
            fake_dxc,
            tmp_path / "out",
            "Trace",
            "--temp-dir",
            str(temp_dir),
            "--retain-artifacts",
        ),
        tmp_path,
    )

    assert result.returncode == 0, result.stderr
    assert len(list(temp_dir.iterdir())) == 2


def test_t_05_dry_run_prints_commands_without_compiling(
    fake_dxc: Path, tmp_path: Path
) -> None:
    output_dir = tmp_path / "out"

    result, calls = _run(
        _build_args(fake_dxc, output_dir, "Release", "--dry-run"), tmp_path
    )

    assert result.returncode == 0, result.stderr
    assert calls == []
    assert not output_dir.exists()
    assert "Release shaders planned:" in result.stdout
    assert "-Fo Downsample.cso" in result.stdout


def test_t_06_missing_input_is_config_error(fake_dxc: Path, tmp_path: Path) -> None:
    result, calls = _run(
        [
            "--dxc-path",
            str(fake_dxc),
            "--config",
            "Debug",
            "--input",
            str(tmp_path / "missing.xml"),
        ],
        tmp_path,
    )

    assert result.returncode == 1
    assert "Config error [PATH_NOT_FOUND]" in result.stderr
    assert calls == []
