import pytest

from eks_platform.errors import UnresolvedValueError
from eks_platform.naming import FALLBACK_NAME, build_graph_node_id, build_runtime_name, sanitize
from eks_platform.values import Deferred, Ref


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("monitoring-*", "monitoring-wildcard"),
        ("data_processing", "data-processing"),
        ("a..b//c", "a-b-c"),
        ("--edge--", "edge"),
        ("Mixed-Case-1", "Mixed-Case-1"),
        ("", FALLBACK_NAME),
        (None, FALLBACK_NAME),
        ("!!!", FALLBACK_NAME),
    ],
)
def test_sanitize(raw, expected):
    assert sanitize(raw) == expected


def test_sanitize_is_idempotent():
    once = sanitize("team/app_*")
    assert sanitize(once) == once


def test_sanitize_defers_late_bound_input():
    name = sanitize(Ref("cluster", "name"))

    assert isinstance(name, Deferred)
    assert name.resolve(["my_cluster-*"]) == "my-cluster-wildcard"


def test_runtime_name_joins_sanitized_parts():
    assert build_runtime_name(["demo", "monitoring", "event_exporter", "role"]) == "demo-monitoring-event-exporter-role"


def test_runtime_name_with_late_bound_part():
    name = build_runtime_name(["demo", Ref("identity", "account_id"), "role"])

    assert isinstance(name, Deferred)
    assert name.sources == (Ref("identity", "account_id"),)
    assert name.resolve(["1234"]) == "demo-1234-role"


def test_graph_node_id_appends_suffix():
    assert build_graph_node_id(["app-iam", "data-processing-*", "spark"], "role") == "app-iam-data-processing-wildcard-spark-role"


def test_graph_node_id_rejects_late_bound_part():
    with pytest.raises(UnresolvedValueError, match="part 1"):
        build_graph_node_id(["app", Ref("cluster", "name")])


def test_graph_node_id_rejects_late_bound_suffix():
    with pytest.raises(UnresolvedValueError, match="suffix"):
        build_graph_node_id(["app"], Ref("cluster", "name"))
