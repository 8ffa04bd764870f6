#!/usr/bin/env python3
"""
Fill missing residues and heavy atoms of a PDB structure using PDBFixer.

Hydrogens are left out unless --add-hydrogens is given; protonation is
assigned afterwards by pdb2pqr.

Usage:
  python fix_structure.py --in input.pdb --out fixed.pdb
"""

import argparse
from pathlib import Path

from openmm.app import PDBFile  # type: ignore
from pdbfixer import PDBFixer  # type: ignore


def fix_structure(input_pdb, output_pdb, add_hydrogens: bool = False, ph: float = 7.0) -> Path:
    """Find and add missing residues/atoms and write the repaired structure."""
    fixer = PDBFixer(filename=str(input_pdb))

    fixer.findMissingResidues()
    fixer.findMissingAtoms()
    fixer.addMissingAtoms()  # builds the missing residues found above as well

    if add_hydrogens:
        fixer.addMissingHydrogens(pH=ph)

    output_pdb = Path(output_pdb)
    output_pdb.parent.mkdir(parents=True, exist_ok=True)
    with output_pdb.open("w") as f:
        PDBFile.writeFile(fixer.topology, fixer.positions, f)
    return output_pdb


def main(argv=None) -> int:
    """Repair a single structure; stage 1 of prepare_pdb.py."""
    ap = argparse.ArgumentParser()
    ap.add_argument("--in", dest="inp", required=True, help="Input PDB")
    ap.add_argument("--out", dest="out", required=True, help="Output (fixed) PDB")
    ap.add_argument("--add-hydrogens", action="store_true",
                    help="Also add hydrogens at --ph (off by default, pdb2pqr protonates later)")
    ap.add_argument("--ph", type=float, default=7.0, help="pH used with --add-hydrogens")
    args = ap.parse_args(argv)

    if not Path(args.inp).exists():
        raise FileNotFoundError(f"Input PDB not found: {args.inp}")

    out = fix_structure(args.inp, args.out, add_hydrogens=args.add_hydrogens, ph=args.ph)
    print(f"PDBFixer: Missing residues and atoms fixed. Saved as {out}.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
