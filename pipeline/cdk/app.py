"""CDK application entry point for the build-setup CI stack."""
#!/usr/bin/env python3
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import aws_cdk as cdk

from buildsetup.config import load_config
from buildsetup.declaration import declare_build_setup
from buildsetup.identity import resolve_caller_identity
from buildsetup.schemas.resource import ResourceGraph, ResourceKind

from .pipeline_stack import BuildSetupStack

LOGGER = logging.getLogger(__name__)


def stack_name(graph: ResourceGraph) -> str:
    return graph.by_kind(ResourceKind.STACK)[0].name


def build_app(graph: ResourceGraph, *, outdir: Optional[Path] = None) -> Tuple[cdk.App, BuildSetupStack]:
    root = graph.by_kind(ResourceKind.STACK)[0]
    app = cdk.App(outdir=str(outdir) if outdir else None)
    stack = BuildSetupStack(
        app,
        root.name,
        graph=graph,
        env=cdk.Environment(account=root.properties.get("account")),
    )
    return app, stack


def synthesize(graph: ResourceGraph, outdir: Path) -> Dict[str, Any]:
    """Synthesize the cloud assembly into ``outdir`` and return the stack template."""
    app, stack = build_app(graph, outdir=outdir)
    assembly = app.synth()
    template = assembly.get_stack_by_name(stack.stack_name).template
    LOGGER.info("Synthesized %s into %s", stack.stack_name, assembly.directory)
    return template


def main() -> None:
    config = load_config()
    identity = resolve_caller_identity(
        account_id=os.environ.get("CDK_DEFAULT_ACCOUNT"),
        partition=os.environ.get("BUILD_SETUP_PARTITION"),
    )
    graph = declare_build_setup(config, identity)
    app, _ = build_app(graph)
    app.synth()


if __name__ == "__main__":
    main()
