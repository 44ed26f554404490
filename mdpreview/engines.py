"""Diagram rendering back ends and the registry that loads them on demand."""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from mdpreview.config import PreviewSettings
from mdpreview.models import Theme

logger = logging.getLogger(__name__)


class DiagramRenderError(Exception):
    """Raised by an engine when a diagram cannot be turned into SVG."""


class DiagramEngine(Protocol):
    async def render(self, source_text: str, theme: Theme) -> str: ...


def extract_plantuml_error_details(stderr_text: str) -> str:
    """Parse PlantUML stderr into a readable, more detailed message."""
    raw = (stderr_text or "").replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.strip() for line in raw.split("\n") if line.strip()]
    if not lines:
        return "unknown error"

    # Common PlantUML stderr shape:
    # ERROR
    # <line-number>
    # <message>
    if len(lines) >= 3 and lines[0].upper() == "ERROR" and lines[1].isdigit():
        return f"line {lines[1]}: {lines[2]}"

    # Fallback: keep the first few lines for context.
    return "\n".join(lines[:8])


def prepare_plantuml_source(code: str) -> str:
    """Normalize PlantUML fence content for local jar rendering."""
    normalized = code.replace("\r\n", "\n").strip("\n")
    if not normalized:
        return "@startuml\n@enduml\n"

    has_start_directive = any(
        line.strip().casefold().startswith("@start") for line in normalized.splitlines() if line.strip()
    )
    if has_start_directive:
        return normalized + "\n"

    # Support shorthand fenced blocks that omit @startuml/@enduml.
    return f"@startuml\n{normalized}\n@enduml\n"


def prepare_mermaid_source(code: str) -> str:
    return code.replace("\r\n", "\n").strip("\n") + "\n"


async def _run_tool(command: list[str], stdin_text: str | None, timeout: float) -> tuple[int, str, str]:
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE if stdin_text is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise DiagramRenderError(f"could not start {command[0]}: {exc}") from exc

    payload = stdin_text.encode("utf-8") if stdin_text is not None else None
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(payload), timeout=timeout)
    except asyncio.TimeoutError as exc:
        process.kill()
        await process.wait()
        raise DiagramRenderError(f"{Path(command[0]).name} timed out after {timeout:g}s") from exc
    return (
        process.returncode if process.returncode is not None else -1,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )


def _require_svg(svg_text: str, tool: str) -> str:
    svg_text = svg_text.strip()
    if "<svg" not in svg_text.lower():
        raise DiagramRenderError(f"{tool} did not return SVG output")
    return svg_text


def resolve_mermaid_cli(configured: str | None = None) -> Path | None:
    """Locate the Mermaid CLI (`mmdc`) from config, PATH, or a local node_modules."""
    candidates: list[Path] = []
    if configured:
        candidates.append(Path(configured).expanduser())
    found = shutil.which("mmdc")
    if found:
        candidates.append(Path(found))
    candidates.append(Path.cwd() / "node_modules" / ".bin" / "mmdc")

    for candidate in candidates:
        try:
            if candidate.is_file():
                return candidate.resolve()
        except OSError:
            continue
    return None


def resolve_plantuml_jar(configured: str | None = None) -> Path | None:
    """Locate plantuml.jar from config, vendor directory, or current directory."""
    candidates: list[Path] = []
    if configured:
        candidates.append(Path(configured).expanduser())
    candidates.append(Path.cwd() / "vendor" / "plantuml" / "plantuml.jar")
    candidates.append(Path.cwd() / "plantuml.jar")

    for candidate in candidates:
        try:
            if candidate.is_file():
                return candidate.resolve()
        except OSError:
            continue
    return None


class MermaidCliEngine:
    """Renders Mermaid source with the mermaid-cli `mmdc` executable."""

    def __init__(self, executable: Path | None, timeout: float) -> None:
        self.executable = executable
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: PreviewSettings) -> MermaidCliEngine:
        return cls(resolve_mermaid_cli(settings.mermaid_cli), settings.render_timeout_seconds)

    async def render(self, source_text: str, theme: Theme) -> str:
        if self.executable is None:
            raise DiagramRenderError("mmdc not found (install @mermaid-js/mermaid-cli or set MDPREVIEW_MMDC)")

        with tempfile.TemporaryDirectory(prefix="mdpreview-") as tmp:
            input_path = Path(tmp) / "diagram.mmd"
            output_path = Path(tmp) / "diagram.svg"
            input_path.write_text(prepare_mermaid_source(source_text), encoding="utf-8")
            command = [
                str(self.executable),
                "-i",
                str(input_path),
                "-o",
                str(output_path),
                "-t",
                theme.mermaid_theme,
                "-b",
                "transparent",
                "-q",
            ]
            returncode, _stdout, stderr = await _run_tool(command, None, self.timeout)
            if returncode != 0:
                details = "\n".join(line for line in stderr.strip().splitlines()[:8]) or "unknown error"
                raise DiagramRenderError(f"Mermaid render failed: {details}")
            try:
                svg_text = output_path.read_text(encoding="utf-8")
            except OSError as exc:
                raise DiagramRenderError(f"Mermaid produced no output: {exc}") from exc
        return _require_svg(svg_text, "mmdc")


class PlantUmlEngine:
    """Renders PlantUML source through a local `plantuml.jar`."""

    def __init__(self, jar_path: Path | None, timeout: float) -> None:
        self.jar_path = jar_path
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: PreviewSettings) -> PlantUmlEngine:
        return cls(resolve_plantuml_jar(settings.plantuml_jar), settings.render_timeout_seconds)

    def setup_error(self) -> str | None:
        """Return setup error text when local PlantUML execution is unavailable."""
        if self.jar_path is None:
            return "plantuml.jar not found (set PLANTUML_JAR or place jar at vendor/plantuml/plantuml.jar)"
        if shutil.which("java") is None:
            return "Java runtime not found in PATH; install Java to render PlantUML diagrams"
        return None

    async def render(self, source_text: str, theme: Theme) -> str:
        issue = self.setup_error()
        if issue is not None:
            raise DiagramRenderError(issue)

        command = [
            "java",
            "-Djava.awt.headless=true",
            "-jar",
            str(self.jar_path),
            "-pipe",
            "-tsvg",
            "-charset",
            "UTF-8",
        ]
        if theme is Theme.DARK:
            command.append("-darkmode")
        returncode, stdout, stderr = await _run_tool(command, prepare_plantuml_source(source_text), self.timeout)
        if returncode != 0:
            raise DiagramRenderError(f"PlantUML render failed: {extract_plantuml_error_details(stderr)}")
        return _require_svg(stdout, "PlantUML")


EngineFactory = Callable[[PreviewSettings], DiagramEngine]

DEFAULT_ENGINE_FACTORIES: dict[str, EngineFactory] = {
    "mermaid": MermaidCliEngine.from_settings,
    "plantuml": PlantUmlEngine.from_settings,
}


class DiagramEngines:
    """Builds each diagram engine on first use and keeps it for later renders.

    Tool discovery touches the filesystem and PATH, so nothing happens until
    a document actually contains a diagram of that language.
    """

    def __init__(
        self,
        settings: PreviewSettings | None = None,
        factories: dict[str, EngineFactory] | None = None,
    ) -> None:
        self.settings = settings or PreviewSettings()
        self._factories = dict(DEFAULT_ENGINE_FACTORIES if factories is None else factories)
        self._engines: dict[str, DiagramEngine] = {}

    @classmethod
    def with_engines(cls, engines: dict[str, DiagramEngine], settings: PreviewSettings | None = None) -> DiagramEngines:
        """Registry preloaded with ready engine instances (used by embedders and tests)."""
        registry = cls(settings, factories={})
        registry._engines.update(engines)
        return registry

    def languages(self) -> set[str]:
        return set(self._factories) | set(self._engines)

    def acquire(self, language: str) -> DiagramEngine:
        engine = self._engines.get(language)
        if engine is not None:
            return engine
        factory = self._factories.get(language)
        if factory is None:
            raise DiagramRenderError(f"no renderer available for {language!r} diagrams")
        logger.debug("Loading %s diagram engine", language)
        engine = factory(self.settings)
        self._engines[language] = engine
        return engine

    def loaded(self, language: str) -> bool:
        return language in self._engines

