import argparse
import json
import logging
from pathlib import Path

# headless-safe
import matplotlib  # type: ignore
matplotlib.use("Agg")
import matplotlib.pyplot as plt  # type: ignore

from Bio.PDB import PDBParser  # type: ignore
from Bio.PDB.PDBExceptions import PDBConstructionException  # type: ignore
from rdkit import Chem  # type: ignore

LOGGER = logging.getLogger(__name__)


def _first_model(path, is_pqr: bool = False):
    parser = PDBParser(QUIET=True, is_pqr=is_pqr)
    try:
        structure = parser.get_structure("prot", str(path))
    except PDBConstructionException as e:
        raise ValueError(f"Could not parse {path}: {e}") from e
    models = list(structure)
    if not models:
        raise ValueError(f"No ATOM/HETATM records found in {path}")
    return models[0]


def atom_count_structure(path, is_pqr: bool = False) -> int:
    """Count atoms of the first model with Bio.PDB (PDB, or PQR with is_pqr=True)."""
    return sum(1 for _ in _first_model(path, is_pqr=is_pqr).get_atoms())


def atom_count_pdb(path) -> int:
    """Count atoms with RDKit, without sanitizing (protonated residues need not be valid molecules)."""
    mol = Chem.MolFromPDBFile(str(path), removeHs=False, sanitize=False)
    if mol is None:
        raise ValueError(f"Could not read PDB: {path}")
    return mol.GetNumAtoms()


def residue_charges(pqr_path) -> list[dict]:
    """Net charge of every residue in a PQR file, in file order."""
    rows = []
    for chain in _first_model(pqr_path, is_pqr=True):
        for res in chain:
            charges = [a.get_charge() for a in res if a.get_charge() is not None]
            _, resseq, icode = res.get_id()
            rows.append({
                "chain": chain.id,
                "resname": res.get_resname(),
                "resseq": resseq,
                "icode": icode.strip(),
                "charge": round(sum(charges), 4),
            })
    return rows


def plot_residue_charges(rows: list[dict], out_png) -> Path:
    """Bar plot of per-residue net charge to eyeball the assigned protonation states."""
    if not rows:
        raise ValueError("No residues to plot")

    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    charges = [r["charge"] for r in rows]
    colors = ["tab:blue" if q > 0 else "tab:red" if q < 0 else "tab:gray" for q in charges]

    fig = plt.figure(figsize=(10, 4), dpi=160)
    ax = fig.add_subplot(111)
    ax.bar(range(len(charges)), charges, color=colors, width=1.0)
    ax.axhline(0, color="black", linewidth=0.5)
    ax.set_xlabel("Residue (file order)")
    ax.set_ylabel("Net charge (e)")
    ax.set_title(f"Per-residue charge, total {sum(charges):+.2f} e")
    ax.grid(True, axis="y", linewidth=0.3, alpha=0.4)

    fig.tight_layout()
    fig.savefig(out_png)
    plt.close(fig)
    return out_png


def summarize_outputs(input_pdb, output_pqr, output_pdb) -> dict:
    """Atom counts of input/PQR/converted files plus PQR charge totals."""
    rows = residue_charges(output_pqr)
    summary = {
        "input_atoms": atom_count_structure(input_pdb),
        "pqr_atoms": atom_count_structure(output_pqr, is_pqr=True),
        "converted_atoms": atom_count_pdb(output_pdb),
        "residues": len(rows),
        "net_charge": round(sum(r["charge"] for r in rows), 4),
        "charged_residues": sum(1 for r in rows if abs(r["charge"]) >= 0.5),
    }
    summary["atom_counts_match"] = summary["pqr_atoms"] == summary["converted_atoms"]
    if not summary["atom_counts_match"]:
        LOGGER.warning(
            "Atom count mismatch between %s (%d) and %s (%d)",
            output_pqr, summary["pqr_atoms"], output_pdb, summary["converted_atoms"],
        )
    return summary


def write_report(out_json, report: dict) -> Path:
    out_json = Path(out_json)
    out_json.parent.mkdir(parents=True, exist_ok=True)
    out_json.write_text(json.dumps(report, indent=2) + "\n")
    return out_json


def main(argv=None) -> int:
    """Sanity-check the outputs of prepare_pdb.py: atom counts, charges and an optional charge plot."""
    ap = argparse.ArgumentParser()
    ap.add_argument("--input", required=True, help="Original input PDB")
    ap.add_argument("--pqr", required=True, help="PQR written by pdb2pqr")
    ap.add_argument("--pdb", required=True, help="PDB converted from the PQR by Open Babel")
    ap.add_argument("--report", default=None, help="Optional JSON output path")
    ap.add_argument("--charge-plot", default=None, help="Optional PNG output path")
    args = ap.parse_args(argv)

    for p in (args.input, args.pqr, args.pdb):
        if not Path(p).exists():
            raise FileNotFoundError(p)

    summary = summarize_outputs(args.input, args.pqr, args.pdb)
    if args.report:
        write_report(args.report, summary)
    if args.charge_plot:
        plot_residue_charges(residue_charges(args.pqr), args.charge_plot)

    for key, value in summary.items():
        print(f"{key}: {value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
