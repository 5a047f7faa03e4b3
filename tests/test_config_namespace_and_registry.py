import pytest

from taskwire import ConfigNamespace, NamedRegistry


def test_config_namespace_get_bool_is_strict():
    ns = ConfigNamespace({"fail_on_violation": "false"}, path="formatting")
    with pytest.raises(TypeError, match=r"must be a boolean"):
        ns.get_bool("fail_on_violation")


def test_config_namespace_get_int_is_strict_and_validates_constraints():
    ns = ConfigNamespace({"max_workers": 2.0}, path="build")
    with pytest.raises(TypeError, match=r"must be an int"):
        ns.get_int("max_workers")

    ns2 = ConfigNamespace({"max_workers": 0}, path="build")
    with pytest.raises(ValueError, match=r"build\.max_workers must be >= 1"):
        ns2.get_int("max_workers", min_value=1)


def test_config_namespace_reads_numeric_versions_as_strings():
    ns = ConfigNamespace({"version": 1.0, "language_version": 21}, path="")
    assert ns.get_str("version") == "1.0"
    assert ns.get_str("language_version") == "21"


def test_config_namespace_choices_and_missing_keys():
    ns = ConfigNamespace({"repositories_mode": "anything_goes"}, path="dependency_resolution")
    with pytest.raises(ValueError, match=r"must be one of: fail_on_project_repos, prefer_settings"):
        ns.get_str("repositories_mode", choices=("fail_on_project_repos", "prefer_settings"))
    with pytest.raises(ValueError, match=r"Missing required config key: dependency_resolution\.repositories"):
        ns.get_list_mapping("repositories")


def test_config_namespace_unknown_key_enforcement_includes_path_and_consumed_keys():
    ns = ConfigNamespace({"conventions": ["root"], "conventons": ["common"]}, path="lib/build.yaml")
    assert ns.get_list_str("conventions") == ["root"]
    with pytest.raises(ValueError, match=r"Unknown config keys under lib/build\.yaml: conventons \(known: conventions\)"):
        ns.assert_consumed()


def test_config_namespace_nested_namespaces_are_checked_too():
    ns = ConfigNamespace({"testing": {"test": {"implementaton": ["libs.guava"]}}}, path="lib/build.yaml")
    suite = ns.namespace("testing").namespace("test")
    assert suite.get_list_str("implementation", default=[], allow_empty=True) == []
    with pytest.raises(ValueError, match=r"Unknown config keys under lib/build\.yaml\.testing\.test: implementaton"):
        ns.assert_consumed()


def test_named_registry_rejects_duplicates_and_suggests_close_matches():
    registry = NamedRegistry.from_items([("common", 1), ("root", 2)], kind="convention bundle")

    with pytest.raises(ValueError, match=r"Duplicate convention bundle name: root"):
        registry.register("root", 3)

    with pytest.raises(KeyError, match=r"Unknown convention bundle: comon .*did you mean: common"):
        registry.get("comon")

    assert registry.available() == ("common", "root")
    assert registry.describe(lambda value: {"value": value}) == (
        {"name": "common", "value": 1},
        {"name": "root", "value": 2},
    )
