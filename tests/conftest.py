from pathlib import Path

import pytest

from tool_utils import DEPENDENCIES, DependencyStatus, ToolResult

# (name, resname, chain, resseq, x, y, z, element, charge, radius)
ATOMS = [
    ("N", "ALA", "A", 1, 0.000, 0.000, 0.000, "N", -0.4157, 1.8240),
    ("CA", "ALA", "A", 1, 1.458, 0.000, 0.000, "C", 0.4157, 1.9080),
    ("N", "LYS", "A", 2, 3.300, 1.200, 0.000, "N", 0.5000, 1.8240),
    ("NZ", "LYS", "A", 2, 6.800, 2.100, 0.300, "N", 0.5000, 1.8240),
    ("OD1", "ASP", "A", 3, 9.100, 0.500, 1.100, "O", -0.5000, 1.6612),
    ("OD2", "ASP", "A", 3, 10.400, 1.300, 2.000, "O", -0.5000, 1.6612),
]


def _atom_prefix(serial, name, resname, chain, resseq, x, y, z) -> str:
    padded = f" {name:<3}" if len(name) < 4 else name
    return f"ATOM  {serial:5d} {padded:<4} {resname:>3} {chain:1}{resseq:4d}    {x:8.3f}{y:8.3f}{z:8.3f}"


def pdb_text(atoms=ATOMS) -> str:
    lines = []
    for serial, (name, resname, chain, resseq, x, y, z, element, _, _) in enumerate(atoms, start=1):
        prefix = _atom_prefix(serial, name, resname, chain, resseq, x, y, z)
        lines.append(f"{prefix}{1.0:6.2f}{0.0:6.2f}          {element:>2}")
    return "\n".join(lines + ["END"]) + "\n"


def pqr_text(atoms=ATOMS) -> str:
    lines = []
    for serial, (name, resname, chain, resseq, x, y, z, _, charge, radius) in enumerate(atoms, start=1):
        prefix = _atom_prefix(serial, name, resname, chain, resseq, x, y, z)
        lines.append(f"{prefix}{charge:8.4f}{radius:7.4f}")
    return "\n".join(lines + ["END"]) + "\n"


class FakeRunner:
    """Stands in for run_tool: records every command and writes the file the real tool would write."""

    def __init__(self, fail=None, skip_output=None, outputs=None):
        self.fail = fail or {}  # stage -> returncode
        self.skip_output = set(skip_output or ())
        self.outputs = {"repair": pdb_text(), "protonate": pqr_text(), "convert": pdb_text()}
        self.outputs.update(outputs or {})
        self.calls = []
        self.written = []

    @staticmethod
    def stage_of(cmd) -> str:
        if any(str(c).endswith("fix_structure.py") for c in cmd):
            return "repair"
        if "pdb2pqr" in Path(cmd[0]).name:
            return "protonate"
        if "babel" in Path(cmd[0]).name:
            return "convert"
        return "other"

    @staticmethod
    def output_of(stage, cmd) -> Path:
        if stage == "repair":
            return Path(cmd[cmd.index("--out") + 1])
        if stage == "protonate":
            return Path(cmd[-1])
        return Path(cmd[cmd.index("-O") + 1])

    def stages(self):
        return [self.stage_of(c) for c in self.calls]

    def __call__(self, cmd):
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)
        stage = self.stage_of(cmd)
        if stage in self.fail:
            return ToolResult(cmd, self.fail[stage], "", f"{stage} blew up\nfatal: bad input")
        if stage != "other" and stage not in self.skip_output:
            out = self.output_of(stage, cmd)
            out.write_text(self.outputs[stage])
            self.written.append(out)
        return ToolResult(cmd, 0, f"{stage} ok\n", "")


def make_statuses(missing=()):
    statuses = []
    for dep in DEPENDENCIES:
        if dep.name in missing:
            statuses.append(DependencyStatus(dep, False, detail="not found"))
        else:
            location = f"/opt/conda/bin/{dep.candidates[0]}" if dep.kind == "executable" else "/site/pdbfixer"
            statuses.append(DependencyStatus(dep, True, location=location, version="1.0"))
    return statuses


class RecordingChecker:
    def __init__(self, missing=()):
        self.missing = missing
        self.called = 0

    def __call__(self):
        self.called += 1
        return make_statuses(self.missing)


@pytest.fixture
def sample_pdb(tmp_path):
    p = tmp_path / "sample.pdb"
    p.write_text(pdb_text())
    return p


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def checker():
    return RecordingChecker()
