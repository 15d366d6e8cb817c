"""Pipeline-state shader build driver.

Reads a shaders TOC (XML) describing pipeline states, resolves every stage
to a source file and entry point, and drives an external DXC-style compiler
once per stage for the selected build configuration.

Usage:
    python shadertoc.py --dxc-path dxc --config Debug --input data/shaders.xml --out-dir out
"""

import argparse
import os
import re
import shutil
import subprocess
import sys
import tempfile
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

DEFAULT_SHADER_MODEL = "6_4"
DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_OUTPUT_DIR = Path("shaders_out")


# ===--- Error taxonomy ---=== #


class ShaderTocError(Exception):
    """Base class for every fatal build error."""


class ManifestError(ShaderTocError):
    pass


class SchemaError(ShaderTocError):
    pass


class MissingResourceError(ShaderTocError):
    def __init__(self, path: Path, what: str = "file"):
        super().__init__(f"Missing {what}: {path}")
        self.path = path


class UnsupportedStageError(ShaderTocError):
    pass


class CompilerInvocationError(ShaderTocError):
    def __init__(
        self, message: str, command: tuple[str, ...] = (), stderr: str = ""
    ):
        super().__init__(message)
        self.command = command
        self.stderr = stderr


class CompilerTimeoutError(CompilerInvocationError):
    pass


# ===--- Data model ---=== #


class StageKind(Enum):
    ROOT_SIGNATURE = "RootSignature"
    VERTEX_SHADER = "VertexShader"
    PIXEL_SHADER = "PixelShader"
    COMPUTE_SHADER = "ComputeShader"

    @property
    def suffix(self) -> str:
        return _STAGE_SUFFIXES[self]

    @property
    def profile_prefix(self) -> str:
        return _STAGE_PROFILE_PREFIXES[self]


_STAGE_SUFFIXES: dict[StageKind, str] = {
    StageKind.ROOT_SIGNATURE: "rso",
    StageKind.VERTEX_SHADER: "vso",
    StageKind.PIXEL_SHADER: "pso",
    StageKind.COMPUTE_SHADER: "cso",
}

# The root signature placeholder is a compute unit.
_STAGE_PROFILE_PREFIXES: dict[StageKind, str] = {
    StageKind.ROOT_SIGNATURE: "cs",
    StageKind.VERTEX_SHADER: "vs",
    StageKind.PIXEL_SHADER: "ps",
    StageKind.COMPUTE_SHADER: "cs",
}

SHADER_STAGES: tuple[StageKind, ...] = (
    StageKind.VERTEX_SHADER,
    StageKind.PIXEL_SHADER,
    StageKind.COMPUTE_SHADER,
)


class BuildConfiguration(Enum):
    DEBUG = "Debug"
    RELEASE = "Release"
    TRACE = "Trace"


@dataclass(frozen=True)
class ShaderComponent:
    """One compilable unit.

    Attributes:
        stage: Role of the unit in its pipeline state.
        source_path: Absolute path of the shader source, or of the synthesized
            placeholder for a root signature.
        entry_point: Entry function name. None for root signatures, which are
            compiled from the placeholder's fixed ``main`` entry.
    """

    stage: StageKind
    source_path: Path
    entry_point: str | None = None


@dataclass(frozen=True)
class PipelineState:
    """Named bundle of one root signature plus optional shader stages.

    One slot per stage kind, so a pipeline state can never hold two
    components of the same kind.
    """

    name: str
    root_signature: ShaderComponent
    vertex_shader: ShaderComponent | None = None
    pixel_shader: ShaderComponent | None = None
    compute_shader: ShaderComponent | None = None

    def component(self, stage: StageKind) -> ShaderComponent | None:
        return getattr(self, _STAGE_SLOTS[stage])

    def components(self) -> Iterator[ShaderComponent]:
        """Yield present components in compile order: RS, VS, PS, CS."""
        for stage in StageKind:
            component = self.component(stage)
            if component is not None:
                yield component


_STAGE_SLOTS: dict[StageKind, str] = {
    StageKind.ROOT_SIGNATURE: "root_signature",
    StageKind.VERTEX_SHADER: "vertex_shader",
    StageKind.PIXEL_SHADER: "pixel_shader",
    StageKind.COMPUTE_SHADER: "compute_shader",
}


def output_name(pipeline_name: str, stage: StageKind) -> str:
    return f"{pipeline_name}.{stage.suffix}"


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class BuildConfig:
    compiler_path: Path
    configuration: BuildConfiguration
    toc_path: Path
    output_dir: Path
    temp_dir: Path | None = None
    shader_model: str = DEFAULT_SHADER_MODEL
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    retain_artifacts: bool = False
    verify_root_signature: bool = False
    dry_run: bool = False


VALID_ERROR_CODES = {
    "INVALID_CONFIGURATION",
    "INVALID_SHADER_MODEL",
    "INVALID_TIMEOUT",
    "PATH_NOT_FOUND",
}
_SHADER_MODEL_RE = re.compile(r"^6_[0-9]$")


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def parse_configuration(raw: str) -> BuildConfiguration:
    for configuration in BuildConfiguration:
        if configuration.value.lower() == raw.lower():
            return configuration
    choices = ", ".join(c.value for c in BuildConfiguration)
    raise ConfigError(
        "INVALID_CONFIGURATION",
        f"Unsupported build configuration: {raw}",
        f"Use one of: {choices}.",
    )


def validate_shader_model(raw: str) -> str:
    if _SHADER_MODEL_RE.match(raw):
        return raw
    raise ConfigError(
        "INVALID_SHADER_MODEL",
        f"Invalid shader model: {raw}",
        "Shader models are written as 6_<minor> (for example 6_4).",
    )


def validate_timeout(raw: float) -> float:
    if raw > 0:
        return raw
    raise ConfigError(
        "INVALID_TIMEOUT",
        f"Timeout must be positive, got {raw}",
        "Pass --timeout with a number of seconds greater than zero.",
    )


def validate_path_exists(
    path: Path | None, flag: str, suggestion: str | None = None
) -> Path:
    if path is None:
        raise ConfigError(
            "PATH_NOT_FOUND",
            f"{flag} is required: no path provided.",
            suggestion or f"Pass the path explicitly: {flag} /path/to/resource",
        )
    if path.exists():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Path for {flag} does not exist: {path}",
        suggestion or "Provide an existing path for this flag.",
    )


def resolve_compiler_path(
    path: Path | None, flag: str, suggestion: str | None = None
) -> Path:
    """Accept an existing path, or a bare executable name found on PATH."""
    if path is not None and not path.exists():
        found = shutil.which(str(path))
        if found is not None:
            return Path(found).resolve()
    # Compiles run with the output directory as cwd.
    return validate_path_exists(path, flag, suggestion).resolve()


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compile the pipeline states listed in a shaders TOC"
    )

    parser.add_argument("-d", "--dxc-path", type=Path, default=None)
    parser.add_argument("-c", "--config", type=str, default=None)
    parser.add_argument("-i", "--input", type=Path, default=None)
    parser.add_argument("-o", "--out-dir", type=Path, default=DEFAULT_OUTPUT_DIR)

    parser.add_argument("--temp-dir", type=Path, default=None)
    parser.add_argument("--shader-model", type=str, default=DEFAULT_SHADER_MODEL)
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_SECONDS)
    parser.add_argument("--retain-artifacts", action="store_true", default=False)
    parser.add_argument(
        "--verify-root-signature", action="store_true", default=False
    )
    parser.add_argument("--dry-run", action="store_true", default=False)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def validate_config(args: argparse.Namespace) -> BuildConfig:
    if args.config is None:
        raise ConfigError(
            "INVALID_CONFIGURATION",
            "--config is required.",
            "Pass --config with one of: Debug, Release, Trace.",
        )
    configuration = parse_configuration(args.config)
    shader_model = validate_shader_model(args.shader_model)
    timeout = validate_timeout(args.timeout)

    compiler_path = resolve_compiler_path(
        args.dxc_path,
        "--dxc-path",
        "Install the DirectX Shader Compiler and pass the dxc executable:\n"
        "  --dxc-path /path/to/dxc",
    )
    toc_path = validate_path_exists(args.input, "--input")
    temp_dir = (
        validate_path_exists(args.temp_dir, "--temp-dir")
        if args.temp_dir is not None
        else None
    )

    # Gaps in the flag table surface here rather than mid-build.
    validate_flag_table(build_flag_table(shader_model))

    return BuildConfig(
        compiler_path=compiler_path,
        configuration=configuration,
        toc_path=toc_path,
        output_dir=args.out_dir,
        temp_dir=temp_dir,
        shader_model=shader_model,
        timeout=timeout,
        retain_artifacts=bool(args.retain_artifacts),
        verify_root_signature=bool(args.verify_root_signature),
        dry_run=bool(args.dry_run),
    )


def build_config(argv: list[str] | None = None) -> BuildConfig:
    return validate_config(parse_args(argv))


# ===--- Root-signature placeholder ---=== #

ROOT_SIGNATURE_DEFINE = "RS"
PLACEHOLDER_ENTRY_POINT = "main"

_PLACEHOLDER_BODY = f"""
[RootSignature({ROOT_SIGNATURE_DEFINE})]
[numthreads(1, 1, 1)]
void {PLACEHOLDER_ENTRY_POINT}(uint3 DTI : SV_DispatchThreadID)
{{
}}
"""


def synthesize_root_signature_source(lines: list[str]) -> str:
    """Wrap root signature macro lines into a minimal compute unit.

    Blank lines are dropped. Every remaining line but the last gets a
    trailing line continuation so the whole signature becomes the body of
    one ``#define RS`` directive.

    Args:
        lines: Raw lines of the signature source, without line terminators.

    Returns:
        Placeholder HLSL source text. Identical input lines always produce
        identical text.

    Raises:
        SchemaError: No non-blank lines remain.
    """
    cleaned = [line for line in lines if line.strip()]
    if not cleaned:
        raise SchemaError("Root signature source contains no definition lines")

    formatted = [f"{line} \\" for line in cleaned[:-1]]
    formatted.append(cleaned[-1])

    header = f"#define {ROOT_SIGNATURE_DEFINE} "
    return header + "\n".join(formatted) + "\n" + _PLACEHOLDER_BODY


def write_root_signature_placeholder(
    signature_path: Path, temp_dir: Path | None = None
) -> Path:
    """Synthesize the placeholder for signature_path into a fresh temp file.

    Args:
        signature_path: Root signature macro source to wrap.
        temp_dir: Directory for the placeholder. System temp dir when None.

    Returns:
        Absolute path of the newly written placeholder file.

    Raises:
        SchemaError: Signature source has no definition lines or is not
            UTF-8 text.
        OSError: Reading the signature or writing the placeholder failed.
    """
    try:
        lines = signature_path.read_text(encoding="utf-8-sig").splitlines()
    except UnicodeDecodeError as err:
        raise SchemaError(
            f"Root signature {signature_path} is not UTF-8 text: {err}"
        ) from err
    source = synthesize_root_signature_source(lines)

    fd, name = tempfile.mkstemp(
        prefix="rootsig_", suffix=".hlsl", dir=None if temp_dir is None else str(temp_dir)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(source)
    except OSError:
        Path(name).unlink(missing_ok=True)
        raise
    return Path(name).resolve()


# ===--- Root-signature registry ---=== #


class RootSignatureCache:
    """Session cache of synthesized root signature components.

    Keyed by the canonical path of the signature source, so every pipeline
    state naming the same file shares one placeholder and one
    ShaderComponent. Used as a context manager: on exit every placeholder
    the cache created is deleted unless retain_artifacts is set.

    Not safe for concurrent population.
    """

    def __init__(self, temp_dir: Path | None = None, retain_artifacts: bool = False):
        self.temp_dir = temp_dir
        self.retain_artifacts = retain_artifacts
        self._entries: dict[Path, ShaderComponent] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, canonical_path: object) -> bool:
        return canonical_path in self._entries

    def __enter__(self) -> "RootSignatureCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_or_create(
        self,
        canonical_path: Path,
        factory: Callable[[Path], ShaderComponent],
    ) -> ShaderComponent:
        component = self._entries.get(canonical_path)
        if component is None:
            component = factory(canonical_path)
            self._entries[canonical_path] = component
        return component

    def placeholder_paths(self) -> list[Path]:
        return [c.source_path for c in self._entries.values()]

    def close(self) -> None:
        if self.retain_artifacts:
            return
        for path in self.placeholder_paths():
            try:
                path.unlink()
            except FileNotFoundError:
                pass


# ===--- TOC parsing ---=== #


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, local_name: str) -> list[ET.Element]:
    return [child for child in element if _local_name(child.tag) == local_name]


def _required_attribute(element: ET.Element, attribute: str, context: str) -> str:
    value = (element.get(attribute) or "").strip()
    if not value:
        raise SchemaError(
            f"{context}: <{_local_name(element.tag)}> requires a non-empty '{attribute}' attribute"
        )
    return value


def load_toc(toc_path: Path) -> ET.Element:
    try:
        return ET.parse(toc_path).getroot()
    except ET.ParseError as err:
        raise ManifestError(f"Malformed TOC {toc_path}: {err}") from err
    except OSError as err:
        raise ManifestError(f"Cannot read TOC {toc_path}: {err}") from err


def _single_child(
    element: ET.Element, stage: StageKind, context: str
) -> ET.Element | None:
    matches = _children(element, stage.value)
    if len(matches) > 1:
        raise SchemaError(f"{context}: more than one <{stage.value}> element")
    return matches[0] if matches else None


def resolve_root_signature(
    element: ET.Element | None,
    base_dir: Path,
    cache: RootSignatureCache,
    context: str,
) -> ShaderComponent:
    if element is None:
        raise SchemaError(f"{context}: RootSignature must be specified")

    relative = _required_attribute(element, "path", context)
    canonical = (base_dir / relative).resolve()

    def _synthesize(path: Path) -> ShaderComponent:
        if not path.is_file():
            raise MissingResourceError(path, "root signature")
        placeholder = write_root_signature_placeholder(path, cache.temp_dir)
        return ShaderComponent(stage=StageKind.ROOT_SIGNATURE, source_path=placeholder)

    return cache.get_or_create(canonical, _synthesize)


def resolve_shader_stage(
    element: ET.Element, stage: StageKind, base_dir: Path, context: str
) -> ShaderComponent:
    relative = _required_attribute(element, "path", context)
    source_path = (base_dir / relative).resolve()
    if not source_path.is_file():
        raise MissingResourceError(source_path, "shader source")

    entry = _required_attribute(element, "entry", context)
    return ShaderComponent(stage=stage, source_path=source_path, entry_point=entry)


def parse_pipeline_state(
    element: ET.Element, base_dir: Path, cache: RootSignatureCache
) -> PipelineState:
    name = _required_attribute(element, "name", "PipelineState")
    context = f"PipelineState '{name}'"

    root_signature = resolve_root_signature(
        _single_child(element, StageKind.ROOT_SIGNATURE, context),
        base_dir,
        cache,
        context,
    )

    stages: dict[str, ShaderComponent] = {}
    for stage in SHADER_STAGES:
        child = _single_child(element, stage, context)
        if child is not None:
            stages[_STAGE_SLOTS[stage]] = resolve_shader_stage(
                child, stage, base_dir, context
            )

    return PipelineState(name=name, root_signature=root_signature, **stages)


def parse_toc(toc_path: Path, cache: RootSignatureCache) -> list[PipelineState]:
    """Parse a shaders TOC into pipeline states in document order.

    Paths inside the TOC are relative to the TOC's own directory. Root
    signatures are resolved through cache, so each distinct signature file
    gets exactly one placeholder.

    Raises:
        ManifestError: TOC unreadable or not well-formed XML.
        SchemaError: Missing name/path/entry/RootSignature, duplicate stage
            element or duplicate pipeline state name.
        MissingResourceError: A referenced file does not exist.
    """
    root = load_toc(toc_path)
    base_dir = Path(toc_path).resolve().parent

    result: list[PipelineState] = []
    seen: set[str] = set()
    for element in root.iter():
        if element is root or _local_name(element.tag) != "PipelineState":
            continue
        state = parse_pipeline_state(element, base_dir, cache)
        if state.name in seen:
            raise SchemaError(f"Duplicate PipelineState name: {state.name}")
        seen.add(state.name)
        result.append(state)

    return result


# ===--- Compiler flag table ---=== #

FlagTable = dict[tuple[StageKind, BuildConfiguration], tuple[str, ...]]

_CONFIGURATION_FLAGS: dict[BuildConfiguration, tuple[str, ...]] = {
    BuildConfiguration.DEBUG: ("-Od", "-Zi", "-Qembed_debug"),
    BuildConfiguration.RELEASE: (),
    BuildConfiguration.TRACE: ("-D", "TRACE"),
}

_STAGE_FLAGS: dict[StageKind, tuple[str, ...]] = {
    StageKind.ROOT_SIGNATURE: (
        "-rootsig-define",
        ROOT_SIGNATURE_DEFINE,
        "-extractrootsignature",
    ),
    StageKind.VERTEX_SHADER: (),
    StageKind.PIXEL_SHADER: (),
    StageKind.COMPUTE_SHADER: (),
}


def profile_for(stage: StageKind, shader_model: str) -> str:
    return f"{stage.profile_prefix}_{shader_model}"


def build_flag_table(shader_model: str = DEFAULT_SHADER_MODEL) -> FlagTable:
    table: FlagTable = {}
    for stage in StageKind:
        for configuration in BuildConfiguration:
            table[(stage, configuration)] = (
                "-T",
                profile_for(stage, shader_model),
                "-D",
                "HLSL",
                *_CONFIGURATION_FLAGS[configuration],
                *_STAGE_FLAGS[stage],
            )
    return table


def validate_flag_table(table: FlagTable) -> FlagTable:
    missing = [
        f"{stage.value}/{configuration.value}"
        for stage in StageKind
        for configuration in BuildConfiguration
        if (stage, configuration) not in table
    ]
    if missing:
        raise UnsupportedStageError(
            f"No compiler flags for: {', '.join(missing)}"
        )
    return table


# ===--- Command construction ---=== #


@dataclass(frozen=True)
class CompileCommand:
    """One compiler invocation.

    Attributes:
        pipeline_name: Owning pipeline state name.
        stage: Stage kind being compiled.
        args: Arguments after the compiler executable.
        output_name: Output filename, relative to the working directory.
    """

    pipeline_name: str
    stage: StageKind
    args: tuple[str, ...]
    output_name: str


def build_command(
    pipeline_name: str,
    component: ShaderComponent,
    configuration: BuildConfiguration,
    table: FlagTable,
) -> CompileCommand:
    flags = table.get((component.stage, configuration))
    if flags is None:
        raise UnsupportedStageError(
            f"Unsupported stage {component.stage} for {configuration.value}"
        )

    out = output_name(pipeline_name, component.stage)
    args = list(flags)
    if component.stage is not StageKind.ROOT_SIGNATURE:
        if not component.entry_point:
            raise SchemaError(
                f"PipelineState '{pipeline_name}': {component.stage.value} has no entry point"
            )
        args += ["-E", component.entry_point]
    args += [str(component.source_path), "-Fo", out]

    return CompileCommand(
        pipeline_name=pipeline_name,
        stage=component.stage,
        args=tuple(args),
        output_name=out,
    )


def build_verify_command(
    pipeline_name: str, stage: StageKind, shader_model: str
) -> CompileCommand:
    rs_output = output_name(pipeline_name, StageKind.ROOT_SIGNATURE)
    stage_output = output_name(pipeline_name, stage)
    return CompileCommand(
        pipeline_name=pipeline_name,
        stage=stage,
        args=(
            "-T",
            profile_for(stage, shader_model),
            "-verifyrootsignature",
            rs_output,
            stage_output,
        ),
        output_name=stage_output,
    )


def format_command_line(compiler_path: Path, command: CompileCommand) -> str:
    return subprocess.list2cmdline([str(compiler_path), *command.args])


# ===--- Compiler invocation ---=== #


def run_compiler(
    compiler_path: Path,
    command: CompileCommand,
    working_dir: Path,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> subprocess.CompletedProcess[str]:
    """Run one compiler invocation to completion.

    Raises:
        CompilerTimeoutError: Process did not exit within timeout.
        CompilerInvocationError: Process could not start or exited non-zero.
    """
    argv = [str(compiler_path), *command.args]
    try:
        result = subprocess.run(
            argv,
            cwd=working_dir,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as err:
        raise CompilerTimeoutError(
            f"{command.output_name}: compiler timed out after {timeout:g}s",
            command.args,
        ) from err
    except OSError as err:
        raise CompilerInvocationError(
            f"{command.output_name}: cannot start {compiler_path}: {err}",
            command.args,
        ) from err

    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        message = f"{command.output_name}: compiler exited with status {result.returncode}"
        if detail:
            message += f"\n{detail}"
        raise CompilerInvocationError(message, command.args, result.stderr or "")
    return result


@dataclass(frozen=True)
class CompileResult:
    """Outcome of producing one output artifact.

    Attributes:
        pipeline_name: Owning pipeline state name.
        stage: Stage kind of the artifact.
        output_name: Filename inside the output directory.
        byte_count: Size of the artifact, 0 for dry runs.
        reused: True when the artifact was copied from an earlier compile of
            the same shared root signature.
    """

    pipeline_name: str
    stage: StageKind
    output_name: str
    byte_count: int
    reused: bool = False


def _checked_output(output_dir: Path, command: CompileCommand) -> Path:
    path = output_dir / command.output_name
    if not path.is_file():
        raise CompilerInvocationError(
            f"{command.output_name}: compiler reported success but wrote no output",
            command.args,
        )
    return path


def compile_pipeline_states(
    states: list[PipelineState], config: BuildConfig
) -> list[CompileResult]:
    """Compile every component of every pipeline state, in order.

    A root signature shared by several pipeline states is compiled once;
    later states get a copy of the first blob under their own name.

    Args:
        states: Parsed pipeline states, in TOC order.
        config: Validated build configuration.

    Returns:
        One CompileResult per output artifact, in production order.

    Raises:
        CompilerInvocationError: Any invocation failed or wrote no output.
        CompilerTimeoutError: Any invocation timed out.
        UnsupportedStageError: Stage/configuration pair has no flags.
    """
    table = validate_flag_table(build_flag_table(config.shader_model))
    output_dir = Path(config.output_dir)
    if not config.dry_run:
        output_dir.mkdir(parents=True, exist_ok=True)

    compiled_signatures: dict[Path, Path] = {}
    results: list[CompileResult] = []

    for state in states:
        print(f"  {state.name}")
        for component in state.components():
            command = build_command(
                state.name, component, config.configuration, table
            )

            if config.dry_run:
                print(f"    {format_command_line(config.compiler_path, command)}")
                results.append(
                    CompileResult(state.name, component.stage, command.output_name, 0)
                )
                continue

            shared = compiled_signatures.get(component.source_path)
            if component.stage is StageKind.ROOT_SIGNATURE and shared is not None:
                target = output_dir / command.output_name
                shutil.copyfile(shared, target)
                print(f"    {command.output_name} (shared with {shared.name})")
                results.append(
                    CompileResult(
                        state.name,
                        component.stage,
                        command.output_name,
                        target.stat().st_size,
                        reused=True,
                    )
                )
                continue

            print(f"    {command.output_name}")
            run_compiler(config.compiler_path, command, output_dir, config.timeout)
            produced = _checked_output(output_dir, command)
            if component.stage is StageKind.ROOT_SIGNATURE:
                compiled_signatures[component.source_path] = produced
            results.append(
                CompileResult(
                    state.name,
                    component.stage,
                    command.output_name,
                    produced.stat().st_size,
                )
            )

            if config.verify_root_signature and component.stage in SHADER_STAGES:
                verify = build_verify_command(
                    state.name, component.stage, config.shader_model
                )
                run_compiler(config.compiler_path, verify, output_dir, config.timeout)

    return results


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class BuildSummary:
    configuration: BuildConfiguration
    toc_path: str
    output_dir: str
    pipeline_count: int
    root_signature_count: int
    results: tuple[CompileResult, ...]
    dry_run: bool = False

    @property
    def compiled_count(self) -> int:
        return sum(1 for r in self.results if not r.reused)

    @property
    def total_bytes(self) -> int:
        return sum(r.byte_count for r in self.results)


def format_build_summary(summary: BuildSummary) -> str:
    """Render a BuildSummary as console text ending in exactly one newline."""
    heading = f"{summary.configuration.value} shaders "
    heading += "planned:" if summary.dry_run else "built:"

    lines: list[str] = [heading, ""]
    lines.append(f"  TOC:             {summary.toc_path}")
    lines.append(f"  Output:          {summary.output_dir}")
    lines.append(f"  Pipeline states: {summary.pipeline_count}")
    lines.append(f"  Root signatures: {summary.root_signature_count} distinct")
    lines.append("")

    if summary.results:
        lines.append("  Outputs:")
        for result in summary.results:
            note = "  (shared)" if result.reused else ""
            lines.append(
                f"    {result.output_name:<28} {result.byte_count:>9,} bytes{note}"
            )
        lines.append("")

    lines.append(
        f"  Total: {len(summary.results)} outputs, {summary.compiled_count} "
        f"compiler runs, {summary.total_bytes:,} bytes"
    )
    lines.append("")
    return "\n".join(lines)


def print_build_summary(summary: BuildSummary) -> None:
    print(format_build_summary(summary), end="")


# ===--- Build pipeline ---=== #


def run_build(config: BuildConfig) -> BuildSummary:
    """Parse the TOC and compile every pipeline state it lists.

    Placeholders are removed when the build ends, successful or not,
    unless config.retain_artifacts is set.

    Raises:
        ShaderTocError: Any manifest, schema, resource or compiler failure.
        OSError: Filesystem failure outside the compiler.
    """
    print(f"Parsing: {config.toc_path}")
    with RootSignatureCache(config.temp_dir, config.retain_artifacts) as cache:
        states = parse_toc(config.toc_path, cache)
        print(f"  Pipeline states: {len(states)}, root signatures: {len(cache)}")

        print(f"Compiling ({config.configuration.value}) into {config.output_dir}")
        results = compile_pipeline_states(states, config)

        if config.retain_artifacts:
            for path in cache.placeholder_paths():
                print(f"  Retained: {path}")

        summary = BuildSummary(
            configuration=config.configuration,
            toc_path=str(config.toc_path),
            output_dir=str(config.output_dir),
            pipeline_count=len(states),
            root_signature_count=len(cache),
            results=tuple(results),
            dry_run=config.dry_run,
        )

    print_build_summary(summary)
    return summary


# ===--- Main ---=== #


def main(argv: list[str] | None = None):
    try:
        config = build_config(argv)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}", file=sys.stderr)
        if err.suggestion:
            print(f"Hint: {err.suggestion}", file=sys.stderr)
        raise SystemExit(1) from err

    try:
        run_build(config)
    except (ShaderTocError, OSError) as err:
        print(f"Error: {err}", file=sys.stderr)
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
