"""Three-stage preparation of a PDB file for docking.

    INPUT_PDB -> [PDBFixer] -> <workdir>/fixed.pdb -> [pdb2pqr] -> OUTPUT_PQR -> [obabel] -> *_converted.pdb

Each stage runs as an external process and its exit status alone decides
whether the next one starts. A nonzero exit status stops the run with the
stage's error. Nothing written by an earlier stage is removed.
"""

import logging
import sys
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from prep_errors import (
    ConversionError,
    DependencyMissingError,
    MissingInputError,
    PrepError,
    ProtonationAssignmentError,
    StructureRepairError,
)
from tool_utils import DependencyStatus, ToolResult, check_dependencies, resolve_executable, run_tool

LOGGER = logging.getLogger(__name__)

DEFAULT_PH = 7.0
DEFAULT_FORCE_FIELD = "AMBER"
DEFAULT_OUTPUT_PQR = "prepared.pqr"

FIXED_PDB_NAME = "fixed.pdb"
PQR_SUFFIX = ".pqr"
CONVERTED_SUFFIX = "_converted.pdb"
WORKDIR_PREFIX = "prepare_pdb_"

FIX_SCRIPT = Path(__file__).resolve().with_name("fix_structure.py")


class Stage(Enum):
    VALIDATING = "validating"
    REPAIRING = "repairing"
    PROTONATING = "protonating"
    CONVERTING = "converting"
    DONE = "done"
    FAILED = "failed"


def converted_path(output_pqr) -> Path:
    """result.pqr -> result_converted.pdb (a name without .pqr keeps its full name)."""
    name = str(output_pqr)
    if name.endswith(PQR_SUFFIX):
        name = name[: -len(PQR_SUFFIX)]
    return Path(name + CONVERTED_SUFFIX)


@dataclass
class PipelineConfig:
    input_pdb: Path
    ph: float = DEFAULT_PH
    force_field: str = DEFAULT_FORCE_FIELD
    output_pqr: Path = Path(DEFAULT_OUTPUT_PQR)
    workdir: Path | None = None
    add_hydrogens: bool = False
    report: Path | None = None
    charge_plot: Path | None = None

    def __post_init__(self):
        self.input_pdb = Path(self.input_pdb)
        self.output_pqr = Path(self.output_pqr)
        if self.workdir is not None:
            self.workdir = Path(self.workdir)

    @property
    def output_pdb(self) -> Path:
        return converted_path(self.output_pqr)


def _warn_if_empty(path: Path, program: str) -> None:
    # the exit status alone gates the next stage
    if not path.exists() or path.stat().st_size == 0:
        LOGGER.warning("%s exited 0 but %s is missing or empty", program, path)


class PrepPipeline:
    """Runs validation and the three stages in order, recording each tool result."""

    def __init__(self, config: PipelineConfig, runner=run_tool, dependency_checker=check_dependencies,
                 python: str = sys.executable):
        self.config = config
        self.runner = runner
        self.dependency_checker = dependency_checker
        self.python = python
        self.stage = Stage.VALIDATING
        self.dependencies: list[DependencyStatus] = []
        self.results: dict[Stage, ToolResult] = {}
        self.workdir: Path | None = None
        self.failed_stage: Stage | None = None

    @property
    def fixed_pdb(self) -> Path | None:
        return self.workdir / FIXED_PDB_NAME if self.workdir else None

    def _enter(self, stage: Stage) -> None:
        LOGGER.debug("Stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    def validate(self) -> list[DependencyStatus]:
        """Check the input file and all three dependencies. Writes nothing."""
        self._enter(Stage.VALIDATING)
        if not self.config.input_pdb.is_file():
            raise MissingInputError(f"Input PDB file not found: {self.config.input_pdb}")

        self.dependencies = self.dependency_checker()
        missing = [s for s in self.dependencies if not s.available]
        if missing:
            raise DependencyMissingError(missing)
        return self.dependencies

    def _make_workdir(self) -> Path:
        try:
            if self.config.workdir is None:
                workdir = Path(tempfile.mkdtemp(prefix=WORKDIR_PREFIX))
            else:
                workdir = self.config.workdir
                workdir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StructureRepairError(f"Could not create working directory: {e}") from e
        LOGGER.info("Working directory: %s", workdir)
        return workdir

    def repair(self) -> Path:
        self._enter(Stage.REPAIRING)
        LOGGER.info("Step 1: Fixing missing residues and atoms with PDBFixer...")
        self.workdir = self._make_workdir()
        fixed = self.fixed_pdb

        cmd = [self.python, str(FIX_SCRIPT), "--in", str(self.config.input_pdb), "--out", str(fixed)]
        if self.config.add_hydrogens:
            cmd += ["--add-hydrogens", "--ph", str(self.config.ph)]
        res = self.runner(cmd)
        self.results[Stage.REPAIRING] = res

        if not res.ok:
            raise StructureRepairError("PDBFixer failed to process the file. Check the input structure.", res)
        _warn_if_empty(fixed, "PDBFixer")
        LOGGER.info("Missing residues and atoms filled successfully. Output saved as %s.", fixed)
        return fixed

    def protonate(self) -> Path:
        self._enter(Stage.PROTONATING)
        LOGGER.info("Step 2: Assigning protonation states with pdb2pqr (pH %s, force field %s)...",
                    self.config.ph, self.config.force_field)
        out = self.config.output_pqr
        try:
            out.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ProtonationAssignmentError(f"Could not create output directory for {out}: {e}") from e

        pdb2pqr = resolve_executable(self.dependencies, "pdb2pqr") if self.dependencies else "pdb2pqr"
        cmd = [
            pdb2pqr,
            f"--ff={self.config.force_field}",
            "--clean",
            f"--with-ph={self.config.ph}",
            str(self.fixed_pdb),
            str(out),
        ]
        res = self.runner(cmd)
        self.results[Stage.PROTONATING] = res

        if not res.ok:
            raise ProtonationAssignmentError("Error during PDB preparation. Check pdb2pqr logs for details.", res)
        _warn_if_empty(out, "pdb2pqr")
        LOGGER.info("PDB preparation successful. Output saved to %s", out)
        return out

    def convert(self) -> Path:
        self._enter(Stage.CONVERTING)
        LOGGER.info("Step 3: Converting PQR back to PDB using Open Babel...")
        out = self.config.output_pdb
        try:
            out.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConversionError(f"Could not create output directory for {out}: {e}") from e

        obabel = resolve_executable(self.dependencies, "obabel") if self.dependencies else "obabel"
        res = self.runner([obabel, str(self.config.output_pqr), "-O", str(out)])
        self.results[Stage.CONVERTING] = res

        if not res.ok:
            raise ConversionError("Error during conversion with Open Babel. Check the PQR file format.", res)
        _warn_if_empty(out, "Open Babel")
        LOGGER.info("Conversion successful. PDB file saved as %s", out)
        return out

    def run(self) -> "PrepPipeline":
        try:
            self.validate()
            self.repair()
            self.protonate()
            self.convert()
        except PrepError:
            LOGGER.debug("Pipeline failed during stage: %s", self.stage.value)
            self.failed_stage = self.stage
            self.stage = Stage.FAILED
            raise
        self._enter(Stage.DONE)
        return self


def run_pipeline(config: PipelineConfig, runner=run_tool, dependency_checker=check_dependencies) -> PrepPipeline:
    """Validate, repair, protonate and convert; raises a PrepError subclass on the first failure."""
    return PrepPipeline(config, runner=runner, dependency_checker=dependency_checker).run()
