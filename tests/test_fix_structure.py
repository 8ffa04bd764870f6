import pytest

pytest.importorskip("pdbfixer")
pytest.importorskip("openmm")

import fix_structure  # noqa: E402


class FakeFixer:
    instances = []

    def __init__(self, filename):
        self.filename = filename
        self.calls = []
        self.topology = "topology"
        self.positions = "positions"
        FakeFixer.instances.append(self)

    def findMissingResidues(self):
        self.calls.append("findMissingResidues")

    def findMissingAtoms(self):
        self.calls.append("findMissingAtoms")

    def addMissingAtoms(self):
        self.calls.append("addMissingAtoms")

    def addMissingHydrogens(self, pH=7.0):
        self.calls.append(("addMissingHydrogens", pH))


class FakePDBFile:
    @staticmethod
    def writeFile(topology, positions, f):
        f.write(f"REMARK {topology} {positions}\nEND\n")


@pytest.fixture(autouse=True)
def fake_pdbfixer(monkeypatch):
    FakeFixer.instances = []
    monkeypatch.setattr(fix_structure, "PDBFixer", FakeFixer)
    monkeypatch.setattr(fix_structure, "PDBFile", FakePDBFile)


def test_repairs_without_hydrogens_by_default(tmp_path, sample_pdb):
    out = fix_structure.fix_structure(sample_pdb, tmp_path / "fixed.pdb")

    fixer = FakeFixer.instances[0]
    assert fixer.filename == str(sample_pdb)
    assert fixer.calls == ["findMissingResidues", "findMissingAtoms", "addMissingAtoms"]
    assert out.read_text().startswith("REMARK topology positions")


def test_hydrogens_at_requested_ph(tmp_path, sample_pdb):
    fix_structure.fix_structure(sample_pdb, tmp_path / "fixed.pdb", add_hydrogens=True, ph=6.5)

    assert FakeFixer.instances[0].calls[-1] == ("addMissingHydrogens", 6.5)


def test_main_writes_output(tmp_path, capsys, sample_pdb):
    out = tmp_path / "sub" / "fixed.pdb"

    rc = fix_structure.main(["--in", str(sample_pdb), "--out", str(out)])

    assert rc == 0
    assert out.exists()
    assert "Saved as" in capsys.readouterr().out
    assert all(not isinstance(c, tuple) for c in FakeFixer.instances[0].calls)


def test_main_missing_input(tmp_path):
    with pytest.raises(FileNotFoundError):
        fix_structure.main(["--in", str(tmp_path / "absent.pdb"), "--out", str(tmp_path / "fixed.pdb")])

    assert FakeFixer.instances == []
