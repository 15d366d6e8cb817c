import argparse
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

TOOL_DIR = Path(__file__).resolve().parent.parent
if str(TOOL_DIR) not in sys.path:
    sys.path.insert(0, str(TOOL_DIR))

import shadertoc  # noqa: E402

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def existing_paths(tmp_path: Path) -> dict[str, Path]:
    compiler = tmp_path / "bin" / "dxc"
    compiler.parent.mkdir()
    compiler.write_text("", encoding="utf-8")

    toc = tmp_path / "shaders.xml"
    toc.write_text("<PipelineStates />\n", encoding="utf-8")

    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()

    return {
        "compiler": compiler,
        "toc": toc,
        "temp_dir": temp_dir,
        "output_dir": tmp_path / "out",
    }


@pytest.fixture
def missing_path(tmp_path: Path) -> Path:
    return tmp_path / "missing"


@pytest.fixture
def make_args(existing_paths: dict[str, Path]) -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "dxc_path": existing_paths["compiler"],
            "config": "Debug",
            "input": existing_paths["toc"],
            "out_dir": existing_paths["output_dir"],
            "temp_dir": None,
            "shader_model": shadertoc.DEFAULT_SHADER_MODEL,
            "timeout": shadertoc.DEFAULT_TIMEOUT_SECONDS,
            "retain_artifacts": False,
            "verify_root_signature": False,
            "dry_run": False,
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[[str, str], Path]:
    def _write_file(relative: str, content: str) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write_file


@pytest.fixture
def write_toc(
    write_file: Callable[[str, str], Path],
) -> Callable[..., Path]:
    """Write a TOC wrapping inner_xml in <PipelineStates>."""

    def _write_toc(inner_xml: str, relative: str = "shaders.xml") -> Path:
        return write_file(relative, f"<PipelineStates>{inner_xml}</PipelineStates>\n")

    return _write_toc


@pytest.fixture
def cache(tmp_path: Path):
    temp_dir = tmp_path / "placeholders"
    temp_dir.mkdir()
    with shadertoc.RootSignatureCache(temp_dir=temp_dir) as rs_cache:
        yield rs_cache


@pytest.fixture
def make_build_config(
    existing_paths: dict[str, Path],
) -> Callable[..., shadertoc.BuildConfig]:
    def _make_build_config(**overrides: object) -> shadertoc.BuildConfig:
        base: dict[str, object] = {
            "compiler_path": existing_paths["compiler"],
            "configuration": shadertoc.BuildConfiguration.RELEASE,
            "toc_path": existing_paths["toc"],
            "output_dir": existing_paths["output_dir"],
        }
        base.update(overrides)
        return shadertoc.BuildConfig(**base)

    return _make_build_config
