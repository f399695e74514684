"""Declare the CodeBuild CI resources as a dependency graph.

Each ``declare_*`` function adds one resource to a :class:`GraphBuilder` and
returns the node. Dependencies are expressed only by passing ``OutputRef``
values, so the edge list falls out of what each resource consumes.
"""
from __future__ import annotations

import logging
from typing import Optional

from .config import GITHUB_TOKEN_KEY, PULUMI_ACCESS_TOKEN_KEY, BuildSetupConfig, BuildSetupOptions
from .graph import GraphBuilder
from .identity import CallerIdentity
from .schemas.resource import OutputRef, ResourceGraph, ResourceKind, ResourceNode
from .schemas.secret import SecretRef

LOGGER = logging.getLogger(__name__)

ROLE_NAME = "build-setup-role"
POLICY_ATTACHMENT_NAME = "build-setup-policy"
SOURCE_CREDENTIAL_NAME = "github-token"
PARAMETER_NAME = "pulumi-access-token"
PROJECT_NAME = "build-setup"
WEBHOOK_NAME = "build-setup-webhook"

ADMINISTRATOR_POLICY = "AdministratorAccess"
BUILD_SERVICE_PRINCIPAL = "codebuild.amazonaws.com"
PARAMETER_ENV_VAR = "PULUMI_ACCESS_TOKEN"


def assume_role_policy(service: str = BUILD_SERVICE_PRINCIPAL) -> dict:
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": service},
                "Action": "sts:AssumeRole",
            }
        ],
    }


def declare_role(builder: GraphBuilder, *, parent: Optional[str] = None) -> ResourceNode:
    return builder.declare(
        ROLE_NAME,
        ResourceKind.ROLE,
        {"assumeRolePolicy": assume_role_policy()},
        parent=parent,
    )


def declare_policy_attachment(
    builder: GraphBuilder,
    role: ResourceNode,
    identity: CallerIdentity,
    *,
    parent: Optional[str] = None,
) -> ResourceNode:
    """Attach the administrator policy to ``role``.

    The scope is intentionally left at AdministratorAccess; narrowing it changes
    what the build can provision.
    """
    return builder.declare(
        POLICY_ATTACHMENT_NAME,
        ResourceKind.POLICY_ATTACHMENT,
        {
            "role": OutputRef(role.name, "name"),
            "policyArn": identity.policy_arn(ADMINISTRATOR_POLICY),
        },
        parent=parent,
    )


def declare_source_credential(builder: GraphBuilder, *, parent: Optional[str] = None) -> ResourceNode:
    return builder.declare(
        SOURCE_CREDENTIAL_NAME,
        ResourceKind.SOURCE_CREDENTIAL,
        {
            "authType": "PERSONAL_ACCESS_TOKEN",
            "serverType": "GITHUB",
            "token": SecretRef(GITHUB_TOKEN_KEY),
        },
        parent=parent,
    )


def declare_parameter(builder: GraphBuilder, *, parent: Optional[str] = None) -> ResourceNode:
    return builder.declare(
        PARAMETER_NAME,
        ResourceKind.PARAMETER,
        {"type": "String", "value": SecretRef(PULUMI_ACCESS_TOKEN_KEY)},
        parent=parent,
    )


def declare_project(
    builder: GraphBuilder,
    role: ResourceNode,
    parameter: ResourceNode,
    options: BuildSetupOptions,
    *,
    parent: Optional[str] = None,
) -> ResourceNode:
    return builder.declare(
        PROJECT_NAME,
        ResourceKind.PROJECT,
        {
            "serviceRole": OutputRef(role.name, "arn"),
            "source": {"type": "GITHUB", "location": options.repository_url},
            "environment": {
                "type": "LINUX_CONTAINER",
                "computeType": options.compute_type,
                "image": options.build_image,
                "environmentVariables": [
                    {
                        "type": "PARAMETER_STORE",
                        "name": PARAMETER_ENV_VAR,
                        "value": OutputRef(parameter.name, "name"),
                    }
                ],
            },
            "artifacts": {"type": "NO_ARTIFACTS"},
        },
        parent=parent,
    )


def declare_webhook(
    builder: GraphBuilder,
    project: ResourceNode,
    options: BuildSetupOptions,
    *,
    parent: Optional[str] = None,
) -> ResourceNode:
    # Filters inside one group are ANDed.
    return builder.declare(
        WEBHOOK_NAME,
        ResourceKind.WEBHOOK,
        {
            "projectName": OutputRef(project.name, "name"),
            "filterGroups": [
                {
                    "filters": [
                        {"type": "EVENT", "pattern": options.webhook_event},
                        {"type": "HEAD_REF", "pattern": options.head_ref},
                    ]
                }
            ],
        },
        parent=parent,
    )


def declare_build_setup(
    config: BuildSetupConfig,
    identity: CallerIdentity,
    options: Optional[BuildSetupOptions] = None,
) -> ResourceGraph:
    """Evaluate the full declaration once and return the resulting graph."""
    options = options or config.options
    github_token = config.require_secret(GITHUB_TOKEN_KEY)
    pulumi_access_token = config.require_secret(PULUMI_ACCESS_TOKEN_KEY)

    builder = GraphBuilder()
    builder.add_secret(GITHUB_TOKEN_KEY, github_token)
    builder.add_secret(PULUMI_ACCESS_TOKEN_KEY, pulumi_access_token)

    stack = builder.declare(options.stack_name, ResourceKind.STACK, {"account": identity.account_id})
    role = declare_role(builder, parent=stack.name)
    declare_policy_attachment(builder, role, identity, parent=stack.name)
    declare_source_credential(builder, parent=stack.name)
    parameter = declare_parameter(builder, parent=stack.name)
    project = declare_project(builder, role, parameter, options, parent=stack.name)
    declare_webhook(builder, project, options, parent=stack.name)

    graph = builder.build()
    LOGGER.info("Declared %s resources with %s dependency edges.", len(graph.nodes), len(graph.edges))
    return graph


__all__ = [
    "PARAMETER_ENV_VAR",
    "assume_role_policy",
    "declare_build_setup",
    "declare_parameter",
    "declare_policy_attachment",
    "declare_project",
    "declare_role",
    "declare_source_credential",
    "declare_webhook",
]
