import pytest

from spicedbop.metadata import (
    COMPONENT_LABEL_KEY,
    MANAGED_DEPENDENT_SELECTOR,
    NOT_PAUSED_SELECTOR,
    OPERATOR_MANAGED_LABEL_KEY,
    OPERATOR_MANAGED_LABEL_VALUE,
    OWNER_ANNOTATION_KEY_PREFIX,
    OWNER_LABEL_KEY,
    PAUSED_CONTROLLER_SELECTOR_KEY,
    GroupVersionResource,
    Requirement,
    Selector,
    SelectorError,
    cluster_keys_from_meta,
    gvr_meta_namespace_key,
    labels_for_component,
    meta_namespace_key,
    owner_keys_from_annotations,
    parse_resource_arg,
    parse_selector,
    selector_for_component,
    selector_from_labels,
    split_gvr_meta_namespace_key,
)


def test_managed_dependent_selector_string():
    parsed = parse_selector("authzed.com/managed-by=operator")
    assert parsed == MANAGED_DEPENDENT_SELECTOR
    assert str(parsed) == "authzed.com/managed-by=operator"
    assert MANAGED_DEPENDENT_SELECTOR.matches({OPERATOR_MANAGED_LABEL_KEY: OPERATOR_MANAGED_LABEL_VALUE})
    assert not MANAGED_DEPENDENT_SELECTOR.matches({})


def test_not_paused_selector():
    assert NOT_PAUSED_SELECTOR.matches({})
    assert NOT_PAUSED_SELECTOR.matches({"other": "x"})
    assert not NOT_PAUSED_SELECTOR.matches({PAUSED_CONTROLLER_SELECTOR_KEY: ""})


def test_labels_for_component():
    labels = labels_for_component("mycluster", "spicedb")
    assert labels[OWNER_LABEL_KEY] == "mycluster"
    assert labels[COMPONENT_LABEL_KEY] == "spicedb"
    assert labels[OPERATOR_MANAGED_LABEL_KEY] == OPERATOR_MANAGED_LABEL_VALUE


def test_selector_for_component_matches_its_labels():
    selector = selector_for_component("c1", "spicedb")
    assert selector.matches(labels_for_component("c1", "spicedb"))
    assert not selector.matches(labels_for_component("c2", "spicedb"))
    assert not selector.matches(labels_for_component("c1", "migration-job"))


@pytest.mark.parametrize(
    "text",
    ["a=b", "a==b", "a!=b", "!a", "a", "a in (x,y)", "a notin (x)", "b=c,a in (y,x),!d"],
)
def test_parse_selector_round_trip(text):
    selector = parse_selector(text)
    assert parse_selector(str(selector)) == selector


def test_selector_requirements_sorted_by_key():
    selector = parse_selector("z=1,a=2")
    assert [r.key for r in selector.requirements] == ["a", "z"]


def test_selector_matching():
    selector = parse_selector("env in (prod,dev),tier!=db,!legacy,team")
    assert selector.matches({"env": "prod", "tier": "web", "team": "x"})
    assert not selector.matches({"env": "qa", "tier": "web", "team": "x"})
    assert not selector.matches({"env": "dev", "tier": "db", "team": "x"})
    assert not selector.matches({"env": "dev", "team": "x", "legacy": "y"})
    assert not selector.matches({"env": "dev"})


def test_empty_selector_matches_everything():
    assert parse_selector("").matches({"a": "b"})
    assert Selector().matches(None)


def test_selector_from_labels_equals_parsed():
    assert selector_from_labels({"b": "2", "a": "1"}) == parse_selector("a=1,b=2")


@pytest.mark.parametrize("text", ["a=b,,c", "a in ()", "a in (b", "=b", "-bad=x", "a=b c"])
def test_parse_selector_errors(text):
    with pytest.raises(SelectorError):
        parse_selector(text)


def test_requirement_arity_error():
    with pytest.raises(SelectorError):
        Requirement("a", Requirement.__dataclass_fields__["operator"].type and "=", ())


def test_parse_resource_arg():
    assert parse_resource_arg("deployments.v1.apps") == GroupVersionResource("apps", "v1", "deployments")
    assert parse_resource_arg("deployments") is None


def test_gvr_key_round_trip():
    gvr = GroupVersionResource(group="", version="v1", resource="secrets")
    key = gvr_meta_namespace_key(gvr, meta_namespace_key("ns", "name"))
    assert split_gvr_meta_namespace_key(key) == (gvr, "ns", "name")


def test_gvr_key_round_trip_without_namespace():
    gvr = GroupVersionResource(group="apps", version="v1", resource="deployments")
    key = gvr_meta_namespace_key(gvr, meta_namespace_key("", "name"))
    assert split_gvr_meta_namespace_key(key) == (gvr, "", "name")


@pytest.mark.parametrize("key", ["no-separator", "secrets::ns/name", "a.b.c::x/y/z"])
def test_split_key_errors(key):
    with pytest.raises(ValueError):
        split_gvr_meta_namespace_key(key)


def test_owner_keys_from_annotations():
    annotations = {OWNER_ANNOTATION_KEY_PREFIX + "c1": "owned", "other": "x"}
    assert owner_keys_from_annotations("ns", annotations) == ["ns/c1"]
    assert owner_keys_from_annotations("ns", None) == []


def test_cluster_keys_from_meta_combines_sources():
    keys = cluster_keys_from_meta(
        "ns",
        {OWNER_LABEL_KEY: "c2"},
        {OWNER_ANNOTATION_KEY_PREFIX + "c1": "owned"},
    )
    assert keys == ["ns/c1", "ns/c2"]
    assert cluster_keys_from_meta("ns", {}, {}) == []