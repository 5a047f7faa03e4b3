import pytest

from taskwire import Edge, TaskGraph, TaskSpec, split_task_path, task_path


def _spec(path, **kwargs):
    return TaskSpec(path=path, action=lambda ctx: None, **kwargs)


def test_task_path_round_trips_module_and_root_paths():
    assert task_path("lib", "jar") == ":lib:jar"
    assert task_path(None, "formatCheck") == ":formatCheck"
    assert split_task_path(":lib:jar") == ("lib", "jar")
    assert split_task_path(":formatCheck") == (None, "formatCheck")
    with pytest.raises(ValueError, match=r"must start with"):
        split_task_path("lib:jar")
    with pytest.raises(ValueError, match=r"Malformed task path"):
        split_task_path(":a:b:c")


def test_task_spec_rejects_self_reference_and_string_edges():
    with pytest.raises(ValueError, match=r"lists itself in depends_on"):
        TaskSpec(path=":a:x", depends_on=(":a:x",))
    with pytest.raises(TypeError, match=r"not a string"):
        TaskSpec(path=":a:x", depends_on=":a:y")


def test_graph_is_the_closure_over_hard_edges_and_finalizers():
    specs = [
        _spec(":a:compileJava"),
        _spec(":a:test", depends_on=(":a:compileJava",), finalized_by=(":a:testCoverageReport",)),
        _spec(":a:testCoverageReport", depends_on=(":a:test",)),
        _spec(":a:javadoc", depends_on=(":a:compileJava",)),
    ]

    graph = TaskGraph.build(specs, [":a:test"])

    assert set(graph.order()) == {":a:compileJava", ":a:test", ":a:testCoverageReport"}
    assert graph.order() == (":a:compileJava", ":a:test", ":a:testCoverageReport")
    assert Edge("finalized_by", ":a:test", ":a:testCoverageReport") in graph.edges


def test_soft_edges_only_apply_between_scheduled_tasks():
    specs = [
        _spec(":a:test"),
        _spec(":a:integrationTest", should_run_after=(":a:test",)),
    ]

    alone = TaskGraph.build(specs, [":a:integrationTest"])
    assert alone.order() == (":a:integrationTest",)
    assert alone.soft_predecessors(":a:integrationTest") == ()

    both = TaskGraph.build(specs, [":a:integrationTest", ":a:test"])
    assert both.order() == (":a:test", ":a:integrationTest")
    assert both.soft_predecessors(":a:integrationTest") == (":a:test",)
    assert both.hard_predecessors(":a:integrationTest") == ()


def test_soft_edge_never_overrides_a_hard_edge_in_the_other_direction():
    specs = [
        _spec(":a:first", depends_on=(":a:second",)),
        _spec(":a:second", should_run_after=(":a:first",)),
    ]

    graph = TaskGraph.build(specs, [":a:first"])

    assert graph.order() == (":a:second", ":a:first")
    assert all(edge.kind != "should_run_after" for edge in graph.edges)


def test_order_breaks_ties_by_path_and_is_stable_across_builds():
    specs = [_spec(":z:jar"), _spec(":a:jar"), _spec(":m:jar"), _spec(":b:build", depends_on=(":z:jar", ":a:jar", ":m:jar"))]

    first = TaskGraph.build(specs, [":b:build"])
    second = TaskGraph.build(list(reversed(specs)), [":b:build"])

    assert first.order() == (":a:jar", ":m:jar", ":z:jar", ":b:build")
    assert first.order() == second.order()
    assert first.edges == second.edges


def test_cycles_and_unknown_references_raise_value_error():
    cyclic = [_spec(":a:x", depends_on=(":a:y",)), _spec(":a:y", depends_on=(":a:x",))]
    with pytest.raises(ValueError, match=r"Task dependency cycle"):
        TaskGraph.build(cyclic, [":a:x"])

    dangling = [_spec(":a:x", depends_on=(":a:missing",))]
    with pytest.raises(ValueError, match=r"Unknown task :a:missing \(referenced by :a:x\)"):
        TaskGraph.build(dangling, [":a:x"])

    with pytest.raises(ValueError, match=r"Duplicate task path"):
        TaskGraph.build([_spec(":a:x"), _spec(":a:x")], [":a:x"])

    with pytest.raises(ValueError, match=r"No tasks requested"):
        TaskGraph.build([_spec(":a:x")], [])


def test_describe_lists_tasks_in_order_with_their_edges():
    specs = [
        TaskSpec(path=":a:compileJava", group="build", description="Compiles."),
        TaskSpec(path=":a:jar", depends_on=(":a:compileJava",)),
    ]

    rows = TaskGraph.build(specs, [":a:jar"]).describe()

    assert [row["path"] for row in rows] == [":a:compileJava", ":a:jar"]
    assert rows[0]["group"] == "build"
