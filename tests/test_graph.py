from __future__ import annotations

import pytest

from buildsetup.config import BuildSetupConfig
from buildsetup.declaration import declare_build_setup
from buildsetup.graph import DeclarationError, GraphBuilder, GraphCycleError, apply_waves, diff, topological_order
from buildsetup.identity import CallerIdentity
from buildsetup.schemas.resource import Edge, OutputRef, ResourceGraph, ResourceKind, ResourceNode, thaw
from buildsetup.schemas.secret import Secret, SecretRef


def _graph(github_token: str = "token-a") -> ResourceGraph:
    config = BuildSetupConfig.from_mapping(
        {"github-token": github_token, "pulumi-access-token": "token-b"},
        environ={},
    )
    return declare_build_setup(config, CallerIdentity(account_id="123456789012"))


def test_topological_order_respects_edges() -> None:
    graph = _graph()
    order = topological_order(graph)

    assert sorted(order) == sorted(graph.names)
    for edge in graph.edges:
        assert order.index(edge.source) < order.index(edge.target)


def test_independent_branches_share_a_wave() -> None:
    waves = apply_waves(_graph())

    assert waves == [
        ["build-setup-ci", "build-setup-role", "github-token", "pulumi-access-token"],
        ["build-setup-policy", "build-setup"],
        ["build-setup-webhook"],
    ]


def test_cycle_is_rejected() -> None:
    graph = ResourceGraph(
        nodes=(
            ResourceNode("a", ResourceKind.ROLE, {"peer": OutputRef("b", "arn")}),
            ResourceNode("b", ResourceKind.ROLE, {"peer": OutputRef("a", "arn")}),
            ResourceNode("c", ResourceKind.PARAMETER),
        ),
        edges=(Edge("b", "a"), Edge("a", "b")),
    )
    with pytest.raises(GraphCycleError) as excinfo:
        topological_order(graph)
    assert excinfo.value.remaining == ["a", "b"]


def test_builder_rejects_duplicate_names() -> None:
    builder = GraphBuilder()
    builder.declare("role", ResourceKind.ROLE)
    with pytest.raises(DeclarationError, match="already declared"):
        builder.declare("role", ResourceKind.ROLE)


def test_builder_rejects_forward_references() -> None:
    builder = GraphBuilder()
    with pytest.raises(DeclarationError, match="undeclared resource 'role'"):
        builder.declare("attachment", ResourceKind.POLICY_ATTACHMENT, {"role": OutputRef("role", "name")})


def test_builder_rejects_unknown_secrets() -> None:
    builder = GraphBuilder()
    with pytest.raises(DeclarationError, match="unknown secret"):
        builder.declare("param", ResourceKind.PARAMETER, {"value": SecretRef("missing")})


def test_builder_copies_properties() -> None:
    builder = GraphBuilder()
    properties = {"filters": [{"type": "EVENT"}]}
    node = builder.declare("hook", ResourceKind.WEBHOOK, properties)
    properties["filters"].append({"type": "HEAD_REF"})
    assert thaw(node.properties) == {"filters": [{"type": "EVENT"}]}


def test_edges_deduplicate_repeated_references() -> None:
    builder = GraphBuilder()
    builder.declare("role", ResourceKind.ROLE)
    builder.declare(
        "project",
        ResourceKind.PROJECT,
        {"serviceRole": OutputRef("role", "arn"), "roleName": OutputRef("role", "name")},
    )
    assert builder.build().edges == (Edge("role", "project"),)


def test_secret_rotation_diffs_only_its_consumer() -> None:
    assert diff(_graph("token-a"), _graph("token-rotated")) == ["github-token"]


def test_diff_reports_removed_nodes() -> None:
    before = _graph()
    after = ResourceGraph(nodes=before.nodes[:-1], edges=before.edges[:-1], secrets=before.secrets)
    assert diff(before, after) == ["build-setup-webhook"]


def test_secret_masks_itself() -> None:
    secret = Secret("hunter2")
    assert "hunter2" not in repr(secret)
    assert str(secret) == "********"
    assert secret.reveal() == "hunter2"


def test_declared_nodes_cannot_be_changed() -> None:
    graph = _graph()
    webhook = graph.node("build-setup-webhook")

    with pytest.raises(TypeError):
        webhook.properties["extra"] = OutputRef("github-token", "arn")  # type: ignore[index]
    with pytest.raises(TypeError):
        graph.node("build-setup-policy").properties["policyArn"] = "arn:aws:iam::999999999999:policy/Other"  # type: ignore[index]
    with pytest.raises(AttributeError):
        webhook.properties["filterGroups"][0]["filters"].append({"type": "FILE_PATH"})
    with pytest.raises(TypeError):
        graph.secrets["github-token"] = Secret("swapped")  # type: ignore[index]

    assert webhook.dependencies == ("build-setup",)
    assert graph.dependencies_of("build-setup-webhook") == ["build-setup"]


def test_nodes_hash_consistently_with_equality() -> None:
    first, second = _graph(), _graph()

    assert hash(first.node("build-setup")) == hash(second.node("build-setup"))
    assert len({node for node in first.nodes} | {node for node in second.nodes}) == 7
    reordered = ResourceNode("n", ResourceKind.ROLE, {"b": 1, "a": [2]})
    assert hash(reordered) == hash(ResourceNode("n", ResourceKind.ROLE, {"a": (2,), "b": 1}))
