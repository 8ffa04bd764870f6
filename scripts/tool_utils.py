import importlib.metadata
import importlib.util
import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

LOGGER = logging.getLogger(__name__)

# Return code used when the program could not be launched at all (shell convention)
NOT_FOUND_RC = 127


@dataclass
class ToolResult:
    """Outcome of one external process: command, exit status and captured output."""

    cmd: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def program(self) -> str:
        return Path(self.cmd[0]).name if self.cmd else ""

    def tail(self, n_lines: int = 20) -> str:
        """Last lines of stderr (or stdout when stderr is empty) for error messages."""
        text = (self.stderr or "").strip() or (self.stdout or "").strip()
        return "\n".join(text.splitlines()[-n_lines:])


def run_tool(cmd: list[str]) -> ToolResult:
    """Run an external command to completion and capture its output. Never raises on failure."""
    cmd = [str(c) for c in cmd]
    LOGGER.debug("Running: %s", " ".join(cmd))
    try:
        p = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except OSError as e:
        return ToolResult(cmd, NOT_FOUND_RC, "", str(e))

    result = ToolResult(cmd, p.returncode, p.stdout or "", p.stderr or "")
    if result.stdout.strip():
        LOGGER.debug("%s stdout:\n%s", result.program, result.stdout.rstrip())
    if result.stderr.strip():
        LOGGER.debug("%s stderr:\n%s", result.program, result.stderr.rstrip())
    return result


@dataclass(frozen=True)
class Dependency:
    name: str
    display_name: str
    kind: str  # "module" or "executable"
    candidates: tuple[str, ...]
    install_hint: str
    version_args: tuple[str, ...] = ()


@dataclass
class DependencyStatus:
    dependency: Dependency
    available: bool
    location: str | None = None
    version: str | None = None
    detail: str = ""

    @property
    def name(self) -> str:
        return self.dependency.name

    @property
    def display_name(self) -> str:
        return self.dependency.display_name

    @property
    def install_hint(self) -> str:
        return self.dependency.install_hint

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "available": self.available,
            "location": self.location,
            "version": self.version,
            "detail": self.detail,
        }


PDBFIXER = Dependency(
    name="pdbfixer",
    display_name="PDBFixer",
    kind="module",
    candidates=("pdbfixer",),
    install_hint="Install it using pip: pip install pdbfixer",
)
PDB2PQR = Dependency(
    name="pdb2pqr",
    display_name="pdb2pqr",
    kind="executable",
    candidates=("pdb2pqr", "pdb2pqr30"),
    install_hint="Install it via conda or your package manager.",
    version_args=("--version",),
)
OBABEL = Dependency(
    name="obabel",
    display_name="Open Babel",
    kind="executable",
    candidates=("obabel", "babel"),
    install_hint="Install it via conda or your package manager.",
    version_args=("-V",),
)

DEPENDENCIES = (PDBFIXER, PDB2PQR, OBABEL)


def check_module(dep: Dependency) -> DependencyStatus:
    """Check that a Python module is importable, without importing it."""
    for module in dep.candidates:
        try:
            spec = importlib.util.find_spec(module)
        except (ImportError, ValueError) as e:
            LOGGER.debug("find_spec(%s) failed: %s", module, e)
            continue
        if spec is None:
            continue
        try:
            version = importlib.metadata.version(module)
        except importlib.metadata.PackageNotFoundError:
            version = None  # conda builds do not always ship dist metadata
        return DependencyStatus(dep, True, location=spec.origin, version=version)
    return DependencyStatus(dep, False, detail=f"module {dep.candidates[0]!r} not importable")


def check_executable(dep: Dependency, runner=run_tool, which=shutil.which) -> DependencyStatus:
    """Check that one of the candidate executables is on PATH and ask it for its version."""
    for exe in dep.candidates:
        path = which(exe)
        if not path:
            continue
        version = None
        if dep.version_args:
            res = runner([path, *dep.version_args])
            if res.ok:
                lines = [ln.strip() for ln in (res.stdout + "\n" + res.stderr).splitlines() if ln.strip()]
                version = lines[0] if lines else None
        return DependencyStatus(dep, True, location=path, version=version)
    return DependencyStatus(dep, False, detail=f"none of {', '.join(dep.candidates)} found on PATH")


def check_dependency(dep: Dependency, runner=run_tool, which=shutil.which) -> DependencyStatus:
    if dep.kind == "module":
        return check_module(dep)
    return check_executable(dep, runner=runner, which=which)


def check_dependencies(deps=DEPENDENCIES, runner=run_tool, which=shutil.which) -> list[DependencyStatus]:
    """Check every runtime dependency and return one status per dependency."""
    statuses = [check_dependency(d, runner=runner, which=which) for d in deps]
    for s in statuses:
        if s.available:
            LOGGER.debug("Found %s at %s (version: %s)", s.display_name, s.location, s.version or "unknown")
        else:
            LOGGER.debug("Missing %s: %s", s.display_name, s.detail)
    return statuses


def resolve_executable(statuses: list[DependencyStatus], name: str) -> str:
    """Path of an executable found by check_dependencies, falling back to its first candidate name."""
    for s in statuses:
        if s.name == name:
            return s.location or s.dependency.candidates[0]
    raise KeyError(name)
