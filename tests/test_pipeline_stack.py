from __future__ import annotations

import json
from pathlib import Path

import aws_cdk as cdk
import pytest
from aws_cdk.assertions import Template

from buildsetup.config import BuildSetupConfig
from buildsetup.declaration import declare_build_setup
from buildsetup.identity import CallerIdentity
from pipeline.cdk.app import build_app, stack_name, synthesize
from pipeline.cdk.pipeline_stack import BuildSetupStack, deploy_parameters, logical_name

GITHUB_TOKEN = "ghp_stack_test_token"
PULUMI_TOKEN = "pul-stack-test-token"


@pytest.fixture()
def graph():
    config = BuildSetupConfig.from_mapping(
        {"github-token": GITHUB_TOKEN, "pulumi-access-token": PULUMI_TOKEN},
        environ={},
    )
    return declare_build_setup(config, CallerIdentity(account_id="123456789012"))


@pytest.fixture()
def stack(graph) -> BuildSetupStack:
    _, built = build_app(graph)
    return built


def _logical_id(stack: BuildSetupStack, name: str) -> str:
    return stack.get_logical_id(stack.cfn_resources[name])


def test_logical_names() -> None:
    assert logical_name("build-setup-role") == "BuildSetupRole"
    assert logical_name("github-token") == "GithubToken"


def test_resource_counts(stack: BuildSetupStack) -> None:
    template = Template.from_stack(stack)
    template.resource_count_is("AWS::IAM::Role", 1)
    template.resource_count_is("AWS::CodeBuild::SourceCredential", 1)
    template.resource_count_is("AWS::SSM::Parameter", 1)
    template.resource_count_is("AWS::CodeBuild::Project", 1)


def test_role_trust_policy_and_admin_attachment(stack: BuildSetupStack) -> None:
    Template.from_stack(stack).has_resource_properties(
        "AWS::IAM::Role",
        {
            "AssumeRolePolicyDocument": {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Principal": {"Service": "codebuild.amazonaws.com"},
                        "Action": "sts:AssumeRole",
                    }
                ],
            },
            "ManagedPolicyArns": ["arn:aws:iam::123456789012:policy/AdministratorAccess"],
        },
    )


def test_project_wiring(stack: BuildSetupStack) -> None:
    role_id = _logical_id(stack, "build-setup-role")
    parameter_id = _logical_id(stack, "pulumi-access-token")

    Template.from_stack(stack).has_resource_properties(
        "AWS::CodeBuild::Project",
        {
            "ServiceRole": {"Fn::GetAtt": [role_id, "Arn"]},
            "Source": {
                "Type": "GITHUB",
                "Location": "https://github.com/danielrbradley/build-setup-example.git",
            },
            "Environment": {
                "Type": "LINUX_CONTAINER",
                "ComputeType": "BUILD_GENERAL1_SMALL",
                "Image": "aws/codebuild/standard:3.0",
                "EnvironmentVariables": [
                    {
                        "Name": "PULUMI_ACCESS_TOKEN",
                        "Type": "PARAMETER_STORE",
                        "Value": {"Ref": parameter_id},
                    }
                ],
            },
            "Artifacts": {"Type": "NO_ARTIFACTS"},
            "Triggers": {
                "Webhook": True,
                "FilterGroups": [
                    [
                        {"Type": "EVENT", "Pattern": "PUSH"},
                        {"Type": "HEAD_REF", "Pattern": "refs/heads/master"},
                    ]
                ],
            },
        },
    )


def test_source_credential_and_parameter(stack: BuildSetupStack) -> None:
    template = Template.from_stack(stack)
    template.has_resource_properties(
        "AWS::CodeBuild::SourceCredential",
        {
            "AuthType": "PERSONAL_ACCESS_TOKEN",
            "ServerType": "GITHUB",
            "Token": {"Ref": "GithubTokenSecret"},
        },
    )
    template.has_resource_properties(
        "AWS::SSM::Parameter",
        {"Type": "String", "Value": {"Ref": "PulumiAccessTokenSecret"}},
    )


def test_secrets_are_noecho_parameters(stack: BuildSetupStack, graph) -> None:
    rendered = Template.from_stack(stack).to_json()

    for name in ("GithubTokenSecret", "PulumiAccessTokenSecret"):
        assert rendered["Parameters"][name]["NoEcho"] is True
        assert "Default" not in rendered["Parameters"][name]

    serialized = json.dumps(rendered)
    assert GITHUB_TOKEN not in serialized
    assert PULUMI_TOKEN not in serialized
    assert deploy_parameters(graph) == {
        "GithubTokenSecret": GITHUB_TOKEN,
        "PulumiAccessTokenSecret": PULUMI_TOKEN,
    }


def test_stack_takes_root_node_name(graph, stack: BuildSetupStack) -> None:
    assert stack.stack_name == stack_name(graph) == "build-setup-ci"
    assert stack.account == "123456789012"
    assert isinstance(stack, cdk.Stack)


def test_synthesize_writes_cloud_assembly(graph, tmp_path: Path) -> None:
    template = synthesize(graph, tmp_path)

    assert (tmp_path / "manifest.json").exists()
    assert (tmp_path / f"{stack_name(graph)}.template.json").exists()
    for name in ("GithubTokenSecret", "PulumiAccessTokenSecret"):
        assert template["Parameters"][name]["NoEcho"] is True
    resource_types = {resource["Type"] for resource in template["Resources"].values()}
    assert {
        "AWS::IAM::Role",
        "AWS::CodeBuild::SourceCredential",
        "AWS::SSM::Parameter",
        "AWS::CodeBuild::Project",
    } <= resource_types

    on_disk = "".join(path.read_text(encoding="utf-8") for path in tmp_path.glob("*.json"))
    for secret in (GITHUB_TOKEN, PULUMI_TOKEN):
        assert secret not in json.dumps(template)
        assert secret not in on_disk


def test_build_app_matches_synthesized_stack(graph, tmp_path: Path) -> None:
    app, built = build_app(graph, outdir=tmp_path)
    assembly = app.synth()

    assert built.stack_name == stack_name(graph)
    artifact = assembly.get_stack_by_name(stack_name(graph))
    assert artifact.template["Description"] == "CodeBuild CI triggered by GitHub pushes"
    assert {"GithubTokenSecret", "PulumiAccessTokenSecret"} <= set(artifact.template["Parameters"])
    assert artifact.template["Outputs"]["BuildSetupName"]["Value"] == {"Ref": built.get_logical_id(built.cfn_resources["build-setup"])}
