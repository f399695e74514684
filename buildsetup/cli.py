"""Command line interface for the build-setup CI declaration."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from . import __version__
from .config import ConfigurationError, load_config, resolve_config_path
from .declaration import declare_build_setup
from .engine import CdkDeployer, ProvisioningError
from .graph import DeclarationError, apply_waves, topological_order
from .identity import IdentityResolutionError, resolve_caller_identity
from .schemas.resource import ResourceGraph
from .utils import fileio

DEFAULT_OUT_DIR = Path("cdk.out")
TEMPLATE_FILENAME = "template.json"


def _env_default(name: str, fallback: Optional[str]) -> Optional[str]:
    return os.environ.get(name, fallback)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=None,
        help="JSON config file with secrets and overrides (default: BUILD_SETUP_CONFIG or config/build-setup.json).",
    )
    common.add_argument(
        "--account-id",
        default=_env_default("CDK_DEFAULT_ACCOUNT", None),
        help="AWS account id to scope ARNs to (default: CDK_DEFAULT_ACCOUNT, else STS lookup).",
    )
    common.add_argument(
        "--partition",
        default=_env_default("BUILD_SETUP_PARTITION", None),
        help="AWS partition for ARNs (default: derived from caller identity, else aws).",
    )
    common.add_argument("--verbose", action="store_true", help="Increase logging verbosity for debugging.")

    parser = argparse.ArgumentParser(
        prog="build-setup",
        description="Declare and deploy a CodeBuild CI project triggered by GitHub pushes.",
    )
    parser.add_argument("--version", action="version", version=f"build-setup {__version__}")
    commands = parser.add_subparsers(dest="command", required=True)

    plan = commands.add_parser("plan", parents=[common], help="Print the resource graph without touching AWS.")
    plan.add_argument(
        "--format",
        choices=["json", "table"],
        default="table",
        help="Output format for the graph (default: %(default)s).",
    )

    synth = commands.add_parser("synth", parents=[common], help="Synthesize the CloudFormation template.")
    synth.add_argument("--out", default=str(DEFAULT_OUT_DIR), help="Cloud assembly directory (default: %(default)s).")

    deploy = commands.add_parser("deploy", parents=[common], help="Synthesize and deploy with the AWS CDK toolkit.")
    deploy.add_argument("--out", default=None, help="Cloud assembly directory (default: a temporary directory).")
    deploy.add_argument("--cdk", default="cdk", help="AWS CDK CLI executable (default: %(default)s).")
    return parser


def render_table(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> str:
    columns = len(headers)
    widths = [len(headers[i]) for i in range(columns)]
    for row in rows:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(str(cell)))

    def _line(sep: str = "-", junction: str = "+") -> str:
        parts = [junction]
        for width in widths:
            parts.append(sep * (width + 2))
            parts.append(junction)
        return "".join(parts)

    result_lines = [_line()]
    header_cells = "|".join(f" {headers[i].ljust(widths[i])} " for i in range(columns))
    result_lines.append(f"|{header_cells}|")
    result_lines.append(_line("="))
    for row in rows:
        line = "|".join(f" {str(row[i]).ljust(widths[i])} " for i in range(columns))
        result_lines.append(f"|{line}|")
    result_lines.append(_line())
    return "\n".join(result_lines)


def plan_rows(graph: ResourceGraph) -> List[List[object]]:
    wave_of: Dict[str, int] = {}
    for index, wave in enumerate(apply_waves(graph), start=1):
        for name in wave:
            wave_of[name] = index
    rows: List[List[object]] = []
    for name in topological_order(graph):
        node = graph.node(name)
        rows.append([wave_of[name], name, node.kind.value, ", ".join(graph.dependencies_of(name)) or "-"])
    return rows


def evaluate(args: argparse.Namespace) -> ResourceGraph:
    config = load_config(resolve_config_path(args.config))
    identity = resolve_caller_identity(account_id=args.account_id, partition=args.partition)
    return declare_build_setup(config, identity)


def run_plan(graph: ResourceGraph, output_format: str) -> int:
    if output_format == "json":
        print(json.dumps(graph.to_dict(), indent=2, sort_keys=True))
    else:
        print(render_table(["Wave", "Resource", "Type", "Depends on"], plan_rows(graph)))
    logging.info("%s resources, %s dependency edges.", len(graph.nodes), len(graph.edges))
    return 0


def run_synth(graph: ResourceGraph, out_dir: Path) -> int:
    from pipeline.cdk.app import synthesize

    template = synthesize(graph, out_dir)
    fileio.write_json(out_dir / TEMPLATE_FILENAME, template)
    logging.info("Template written to %s", out_dir / TEMPLATE_FILENAME)
    return 0


def run_deploy(graph: ResourceGraph, out_dir: Optional[Path], executable: str) -> int:
    from pipeline.cdk.app import stack_name, synthesize
    from pipeline.cdk.pipeline_stack import deploy_parameters

    def _deploy(assembly_dir: Path) -> Tuple[str, str]:
        synthesize(graph, assembly_dir)
        return CdkDeployer(executable=executable).deploy(
            assembly_dir=assembly_dir,
            stack_name=stack_name(graph),
            parameters=deploy_parameters(graph),
        )

    if out_dir is not None:
        stdout, stderr = _deploy(out_dir)
    else:
        with tempfile.TemporaryDirectory(prefix="build-setup-") as workdir:
            stdout, stderr = _deploy(Path(workdir))
    if stdout:
        sys.stdout.write(stdout)
    if stderr:
        sys.stderr.write(stderr)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        graph = evaluate(args)
    except ConfigurationError as exc:
        logging.error("Configuration error: %s", exc)
        return 1
    except IdentityResolutionError as exc:
        logging.error("Identity error: %s", exc)
        return 1
    except DeclarationError as exc:
        logging.error("Declaration error: %s", exc)
        return 1

    if args.command == "plan":
        return run_plan(graph, args.format)
    if args.command == "synth":
        return run_synth(graph, Path(args.out).resolve())

    try:
        return run_deploy(graph, Path(args.out).resolve() if args.out else None, args.cdk)
    except ProvisioningError as exc:
        logging.error("Provisioning failed: %s", exc)
        if exc.stdout:
            sys.stdout.write(exc.stdout)
        if exc.stderr:
            sys.stderr.write(exc.stderr)
        # Signals surface as negative return codes.
        if exc.returncode is None or exc.returncode <= 0:
            return 2
        return exc.returncode
