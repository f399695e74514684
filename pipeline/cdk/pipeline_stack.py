"""CDK stack rendering a build-setup resource graph as CloudFormation."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import aws_cdk as cdk
from aws_cdk import aws_codebuild as codebuild
from aws_cdk import aws_iam as iam
from aws_cdk import aws_ssm as ssm
from constructs import Construct

from buildsetup.graph import topological_order
from buildsetup.schemas.resource import OutputRef, ResourceGraph, ResourceKind, ResourceNode, thaw
from buildsetup.schemas.secret import SecretRef

LOGGER = logging.getLogger(__name__)


def logical_name(name: str) -> str:
    """``build-setup-role`` -> ``BuildSetupRole``."""
    return "".join(part[:1].upper() + part[1:] for part in name.replace("_", "-").split("-") if part)


def secret_parameter_name(key: str) -> str:
    return f"{logical_name(key)}Secret"


def deploy_parameters(graph: ResourceGraph) -> Dict[str, str]:
    """CloudFormation parameter values for every secret the graph references."""
    return {secret_parameter_name(key): secret.reveal() for key, secret in graph.secrets.items()}


class BuildSetupStack(cdk.Stack):
    """Provision the IAM role, CodeBuild project, webhook and secrets for CI."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        graph: ResourceGraph,
        env: Optional[cdk.Environment] = None,
    ) -> None:
        super().__init__(scope, construct_id, env=env, description="CodeBuild CI triggered by GitHub pushes")
        self.graph = graph
        self.cfn_resources: Dict[str, cdk.CfnResource] = {}
        self.secret_parameters: Dict[str, cdk.CfnParameter] = {}

        renderers: Dict[ResourceKind, Callable[[ResourceNode], Optional[cdk.CfnResource]]] = {
            ResourceKind.STACK: lambda node: None,
            ResourceKind.ROLE: self._render_role,
            ResourceKind.POLICY_ATTACHMENT: self._render_policy_attachment,
            ResourceKind.SOURCE_CREDENTIAL: self._render_source_credential,
            ResourceKind.PARAMETER: self._render_parameter,
            ResourceKind.PROJECT: self._render_project,
            ResourceKind.WEBHOOK: self._render_webhook,
        }
        for name in topological_order(graph):
            node = graph.node(name)
            rendered = renderers[node.kind](node)
            if rendered is not None:
                self.cfn_resources[name] = rendered
            LOGGER.debug("Rendered %s (%s)", name, node.kind.value)

        for node in graph.by_kind(ResourceKind.PROJECT):
            cdk.CfnOutput(self, f"{logical_name(node.name)}Name", value=self.cfn_resources[node.name].ref)

    def _value(self, value: Any) -> Any:
        if isinstance(value, OutputRef):
            target = self.cfn_resources[value.resource]
            if value.attribute == "name":
                return target.ref
            if value.attribute == "arn":
                return cdk.Token.as_string(target.get_att("Arn"))
            raise ValueError(f"Unsupported output attribute '{value.attribute}' on {value.resource}")
        if isinstance(value, SecretRef):
            return self._secret_parameter(value.key).value_as_string
        return value

    def _secret_parameter(self, key: str) -> cdk.CfnParameter:
        parameter = self.secret_parameters.get(key)
        if parameter is None:
            parameter = cdk.CfnParameter(
                self,
                secret_parameter_name(key),
                type="String",
                no_echo=True,
                description=f"Secret configuration value '{key}'",
            )
            self.secret_parameters[key] = parameter
        return parameter

    def _render_role(self, node: ResourceNode) -> cdk.CfnResource:
        return iam.CfnRole(
            self,
            logical_name(node.name),
            assume_role_policy_document=thaw(node.properties["assumeRolePolicy"]),
        )

    def _render_policy_attachment(self, node: ResourceNode) -> None:
        # CloudFormation has no standalone attachment; the ARN joins the role's list.
        role_ref: OutputRef = node.properties["role"]
        role = self.cfn_resources[role_ref.resource]
        existing = list(role.managed_policy_arns or [])  # type: ignore[attr-defined]
        role.managed_policy_arns = existing + [node.properties["policyArn"]]  # type: ignore[attr-defined]
        return None

    def _render_source_credential(self, node: ResourceNode) -> cdk.CfnResource:
        props = node.properties
        return codebuild.CfnSourceCredential(
            self,
            logical_name(node.name),
            auth_type=props["authType"],
            server_type=props["serverType"],
            token=self._value(props["token"]),
        )

    def _render_parameter(self, node: ResourceNode) -> cdk.CfnResource:
        props = node.properties
        return ssm.CfnParameter(
            self,
            logical_name(node.name),
            type=props["type"],
            value=self._value(props["value"]),
        )

    def _render_project(self, node: ResourceNode) -> cdk.CfnResource:
        props = node.properties
        environment = props["environment"]
        return codebuild.CfnProject(
            self,
            logical_name(node.name),
            service_role=self._value(props["serviceRole"]),
            source=codebuild.CfnProject.SourceProperty(
                type=props["source"]["type"],
                location=props["source"]["location"],
            ),
            environment=codebuild.CfnProject.EnvironmentProperty(
                type=environment["type"],
                compute_type=environment["computeType"],
                image=environment["image"],
                environment_variables=[
                    codebuild.CfnProject.EnvironmentVariableProperty(
                        name=variable["name"],
                        value=self._value(variable["value"]),
                        type=variable["type"],
                    )
                    for variable in environment["environmentVariables"]
                ],
            ),
            artifacts=codebuild.CfnProject.ArtifactsProperty(type=props["artifacts"]["type"]),
        )

    def _render_webhook(self, node: ResourceNode) -> None:
        # CodeBuild webhooks are declared as the project's Triggers.
        project_ref: OutputRef = node.properties["projectName"]
        project = self.cfn_resources[project_ref.resource]
        project.triggers = codebuild.CfnProject.ProjectTriggersProperty(  # type: ignore[attr-defined]
            webhook=True,
            filter_groups=[
                [
                    codebuild.CfnProject.WebhookFilterProperty(type=item["type"], pattern=item["pattern"])
                    for item in group["filters"]
                ]
                for group in node.properties["filterGroups"]
            ],
        )
        return None


__all__ = ["BuildSetupStack", "deploy_parameters", "logical_name", "secret_parameter_name"]
