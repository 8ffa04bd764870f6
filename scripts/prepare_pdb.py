#!/usr/bin/env python3
"""
Prepare a PDB file for docking:
  - fill missing residues and atoms with PDBFixer,
  - assign protonation states at the given pH with pdb2pqr (PQR with charges and radii),
  - convert the PQR back to PDB with Open Babel.

Usage:
  python prepare_pdb.py -i input.pdb -p 7.4 -f AMBER -o prepared.pqr
"""

import argparse
import logging
import sys

from pqr_checks import plot_residue_charges, residue_charges, summarize_outputs, write_report
from prep_errors import InvalidArgumentError, MissingInputError, PrepError
from prep_pipeline import (
    DEFAULT_FORCE_FIELD,
    DEFAULT_OUTPUT_PQR,
    DEFAULT_PH,
    PipelineConfig,
    PrepPipeline,
    run_pipeline,
)
from tool_utils import check_dependencies, run_tool

LOGGER = logging.getLogger("prepare_pdb")

USAGE = ("%(prog)s -i INPUT_PDB [-p PH] [-f FORCE_FIELD] [-o OUTPUT_PQR] "
         "[-w WORKDIR] [--report JSON] [--charge-plot PNG] [-v] [-h]")

EPILOG = """\
Description:
  This script prepares a PDB file for docking by:
    - Filling missing residues and atoms using PDBFixer.
    - Assigning protonation states using pdb2pqr based on the specified pH.
    - Generating a PQR file with charges and radii.
    - Converting the PQR file back to PDB format (<OUTPUT_PQR stem>_converted.pdb).

Dependencies:
  - PDBFixer (install via pip).
  - pdb2pqr (install via conda or your package manager).
  - Open Babel (install via conda or your package manager).
"""


class PrepArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting with status 2."""

    def error(self, message):
        if message.startswith("argument -i:"):
            raise MissingInputError("Input PDB file is required.")
        raise InvalidArgumentError(message)


def build_parser() -> PrepArgumentParser:
    ap = PrepArgumentParser(
        prog="prepare-pdb",
        usage=USAGE,
        description="Prepare a PDB file for docking (PDBFixer -> pdb2pqr -> Open Babel).",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    ap.add_argument("-i", dest="input_pdb", default=None, metavar="INPUT_PDB", help="Input PDB file (required)")
    ap.add_argument("-p", dest="ph", type=float, default=DEFAULT_PH, metavar="PH",
                    help=f"pH value for protonation state (default: {DEFAULT_PH})")
    ap.add_argument("-f", dest="force_field", default=DEFAULT_FORCE_FIELD, metavar="FORCE_FIELD",
                    help=f"Force field to use (default: {DEFAULT_FORCE_FIELD})")
    ap.add_argument("-o", dest="output_pqr", default=DEFAULT_OUTPUT_PQR, metavar="OUTPUT_PQR",
                    help=f"Output PQR file (default: {DEFAULT_OUTPUT_PQR})")
    ap.add_argument("-w", "--workdir", default=None, metavar="WORKDIR",
                    help="Directory for intermediate files (default: a new temporary directory per run)")
    ap.add_argument("--report", default=None, metavar="JSON", help="Optional JSON run report")
    ap.add_argument("--charge-plot", default=None, metavar="PNG", help="Optional per-residue charge plot")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log tool commands and output")
    return ap


def parse_config(argv=None, parser: PrepArgumentParser | None = None) -> tuple[PipelineConfig, bool]:
    """Parse command-line flags into a PipelineConfig; raises MissingInputError/InvalidArgumentError."""
    parser = parser or build_parser()
    args = parser.parse_args(argv)
    if not args.input_pdb:
        raise MissingInputError("Input PDB file is required.")

    config = PipelineConfig(
        input_pdb=args.input_pdb,
        ph=args.ph,
        force_field=args.force_field,
        output_pqr=args.output_pqr,
        workdir=args.workdir,
        report=args.report,
        charge_plot=args.charge_plot,
    )
    return config, args.verbose


def build_report(pipeline: PrepPipeline, checks: dict | None) -> dict:
    config = pipeline.config
    return {
        "input_pdb": str(config.input_pdb),
        "ph": config.ph,
        "force_field": config.force_field,
        "workdir": str(pipeline.workdir),
        "fixed_pdb": str(pipeline.fixed_pdb),
        "output_pqr": str(config.output_pqr),
        "output_pdb": str(config.output_pdb),
        "dependencies": [s.as_dict() for s in pipeline.dependencies],
        "stages": {
            stage.value: {"cmd": res.cmd, "returncode": res.returncode}
            for stage, res in pipeline.results.items()
        },
        "checks": checks,
    }


def write_output_checks(pipeline: PrepPipeline) -> None:
    """Write the optional JSON report and charge plot. Problems here are warnings only."""
    config = pipeline.config
    checks = None
    try:
        checks = summarize_outputs(config.input_pdb, config.output_pqr, config.output_pdb)
        if config.charge_plot:
            plot_residue_charges(residue_charges(config.output_pqr), config.charge_plot)
            print(f"Charge plot: {config.charge_plot}")
    except (ValueError, OSError) as e:
        LOGGER.warning("Output checks failed: %s", e)

    if config.report:
        try:
            write_report(config.report, build_report(pipeline, checks))
        except OSError as e:
            LOGGER.warning("Could not write report %s: %s", config.report, e)
            return
        print(f"Report:      {config.report}")


def main(argv=None, runner=run_tool, dependency_checker=check_dependencies) -> int:
    """Run the PDBFixer -> pdb2pqr -> Open Babel preparation."""
    parser = build_parser()
    try:
        config, verbose = parse_config(argv, parser)
    except (MissingInputError, InvalidArgumentError) as e:
        print(f"Error: {e}", file=sys.stderr)
        parser.print_help(sys.stderr)
        return e.exit_code

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        pipeline = run_pipeline(config, runner=runner, dependency_checker=dependency_checker)
    except PrepError as e:
        LOGGER.error("%s failed:\n%s", e.stage.capitalize(), e)
        return e.exit_code

    print(f"Fixed PDB:   {pipeline.fixed_pdb}")
    print(f"PQR:         {config.output_pqr}")
    print(f"PDB:         {config.output_pdb}")

    if config.report or config.charge_plot:
        write_output_checks(pipeline)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
