"""Hand-off to the AWS CDK toolkit, which owns diffing and apply."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Mapping, Tuple

from .utils import shell
from .utils.shell import ShellCommandError

LOGGER = logging.getLogger(__name__)


class ProvisioningError(RuntimeError):
    """The provisioning engine rejected or failed the deployment.

    ``stdout``/``stderr`` hold the engine's output exactly as it produced it.
    """

    def __init__(self, message: str, *, returncode: int | None, stdout: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class CdkDeployer:
    """Run ``cdk deploy`` against a synthesized cloud assembly."""

    def __init__(self, *, executable: str = "cdk") -> None:
        self.executable = executable
        self._tool_version: str | None = None

    def build_command(self, *, assembly_dir: Path, stack_name: str, parameters: Mapping[str, str]) -> List[str]:
        command = [
            self.executable,
            "deploy",
            "--app",
            str(assembly_dir),
            "--require-approval",
            "never",
        ]
        for key in sorted(parameters):
            command.extend(["--parameters", f"{stack_name}:{key}={parameters[key]}"])
        command.append(stack_name)
        return command

    def deploy(self, *, assembly_dir: Path, stack_name: str, parameters: Mapping[str, str]) -> Tuple[str, str]:
        """Return the engine's (stdout, stderr); the CDK CLI reports progress on stderr."""
        version = self._ensure_tool_version()
        LOGGER.info("Deploying %s with cdk %s", stack_name, version)

        command = self.build_command(assembly_dir=assembly_dir, stack_name=stack_name, parameters=parameters)
        secrets = list(parameters.values())
        try:
            rc, stdout, stderr = shell.run(command, secrets=secrets)
        except ShellCommandError as exc:
            raise ProvisioningError(str(exc), returncode=exc.returncode, stdout=exc.stdout, stderr=exc.stderr) from exc

        if rc != 0:
            raise ProvisioningError(
                f"cdk deploy exited with status {rc}.",
                returncode=rc,
                stdout=stdout,
                stderr=stderr,
            )
        LOGGER.info("Deployment of %s completed.", stack_name)
        return stdout, stderr

    def _ensure_tool_version(self) -> str:
        if self._tool_version is not None:
            return self._tool_version

        command = [self.executable, "--version"]
        try:
            rc, stdout, stderr = shell.run(command, timeout=120)
        except ShellCommandError as exc:
            raise ProvisioningError(str(exc), returncode=exc.returncode) from exc
        if rc != 0:
            raise ProvisioningError(
                f"Unable to determine cdk version (exit code {rc}). {stderr.strip() or stdout.strip() or 'Install the AWS CDK CLI and retry.'}",
                returncode=rc,
                stdout=stdout,
                stderr=stderr,
            )
        version = (stdout or stderr).strip().splitlines()[0] if (stdout or stderr) else "unknown"
        self._tool_version = version
        return version


__all__ = ["CdkDeployer", "ProvisioningError"]
