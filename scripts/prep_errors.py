"""Errors raised while preparing a PDB file for docking.

Every error is fatal: the CLI reports it and exits with status 1.
"""


class PrepError(Exception):
    """Base class for all pipeline failures."""

    exit_code = 1


class MissingInputError(PrepError):
    stage = "validation"


class InvalidArgumentError(PrepError):
    stage = "validation"


class DependencyMissingError(PrepError):
    """One or more of PDBFixer, pdb2pqr, Open Babel could not be found."""

    stage = "dependency check"

    def __init__(self, missing):
        self.missing = list(missing)
        lines = [f"Error: {dep.display_name} is not installed. {dep.install_hint}" for dep in self.missing]
        super().__init__("\n".join(lines))


class StageError(PrepError):
    """A wrapped tool exited nonzero, or the stage could not set up its output location."""

    def __init__(self, message: str, result=None):
        self.result = result
        if result is not None and result.tail():
            message = f"{message}\n--- {result.program} output (tail) ---\n{result.tail()}"
        super().__init__(message)


class StructureRepairError(StageError):
    stage = "structure repair"


class ProtonationAssignmentError(StageError):
    stage = "protonation assignment"


class ConversionError(StageError):
    stage = "format conversion"
