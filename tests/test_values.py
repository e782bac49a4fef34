import json

from eks_platform.values import Deferred, Ref, collect_refs, is_known, json_dumps, resolve_value


def test_ref_path_converts_list_indexes():
    ref = Ref("cluster", "identities.0.oidcs.0.issuer")
    assert ref.path == ["identities", 0, "oidcs", 0, "issuer"]


def test_refs_compare_by_target():
    assert Ref("a", "id") == Ref("a", "id")
    assert len({Ref("a", "id"), Ref("a", "id"), Ref("a", "arn")}) == 2


def test_apply_chains_functions():
    value = Ref("cluster", "endpoint").apply(str.upper).apply(lambda s: s + "!")
    assert value.resolve(["https://x"]) == "HTTPS://X!"


def test_all_mixes_concrete_and_deferred_items():
    combined = Deferred.all("a", Ref("n1", "id"), 3, Ref("n2", "arn").apply(len))

    assert combined.sources == (Ref("n1", "id"), Ref("n2", "arn"))
    assert combined.resolve(["x", "arn:1"]) == ["a", "x", 3, 5]


def test_collect_refs_walks_nested_values_in_order():
    value = {"a": [Ref("n2", "id"), {"b": Ref("n1", "id")}], Ref("n3", "key"): Ref("n2", "id")}

    assert collect_refs(value) == [Ref("n2", "id"), Ref("n1", "id"), Ref("n3", "key")]
    assert not is_known(value)
    assert is_known({"a": [1, "b"]})


def test_json_dumps_is_plain_when_known():
    assert json_dumps({"a": 1}) == '{"a": 1}'


def test_json_dumps_defers_until_refs_resolve():
    rendered = json_dumps({"Principal": Ref("oidc", "arn"), Ref("host", "name"): "x"})

    assert isinstance(rendered, Deferred)
    lookup = {Ref("oidc", "arn"): "arn:1", Ref("host", "name"): "h"}
    assert json.loads(rendered.resolve(lookup[ref] for ref in rendered.sources)) == {"Principal": "arn:1", "h": "x"}


def test_resolve_value_replaces_refs_everywhere(lookup):
    value = {"k": (Ref("a", "id"), "plain"), Ref("b", "name"): Ref("a", "id").apply(len)}

    assert resolve_value(value, lookup) == {
        "k": ["<a.id>", "plain"],
        "<b.name>": len("<a.id>"),
    }
