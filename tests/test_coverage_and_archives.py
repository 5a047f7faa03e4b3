import zipfile

import pytest

from rdkbuild.errors import MissingExecutionDataError
from rdkbuild.framework.archives import AUTOMATIC_MODULE_NAME, MANIFEST_PATH, read_manifest, write_jar
from rdkbuild.framework.coverage import ClassExecution, ExecutionData, generate_report


def _compiled(classes_dir, name):
    path = classes_dir / (name.replace(".", "/") + ".class")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\xca\xfe\xba\xbe")


def test_missing_execution_data_is_an_error_and_keeps_old_reports(tmp_path):
    output_dir = tmp_path / "report"
    output_dir.mkdir()
    (output_dir / "index.html").write_text("previous", encoding="utf-8")

    with pytest.raises(MissingExecutionDataError, match=r"No execution data for core integration suite") as excinfo:
        generate_report("integration", tmp_path / "missing.exec", [], [], output_dir=output_dir, module="core")

    assert excinfo.value.module == "core"
    assert (output_dir / "index.html").read_text(encoding="utf-8") == "previous"


def test_report_counts_only_classes_compiled_in_the_module(tmp_path):
    classes_dir = tmp_path / "classes"
    sources_dir = tmp_path / "src"
    _compiled(classes_dir, "a.b.Kept")
    (sources_dir / "a" / "b").mkdir(parents=True)
    (sources_dir / "a" / "b" / "Kept.java").write_text("l1\nl2\nl3\n", encoding="utf-8")
    exec_file = tmp_path / "unit.exec"
    ExecutionData(
        classes=(
            ClassExecution(name="a.b.Kept", source="a/b/Kept.java", lines={1: 2, 2: 0, 3: 1}),
            ClassExecution(name="x.y.Foreign", source="x/y/Foreign.java", lines={1: 5}),
        )
    ).write(exec_file)

    report = generate_report("unit", exec_file, [classes_dir], [sources_dir], output_dir=tmp_path / "out", module="core")

    assert [(c.name, c.package, c.covered, c.missed) for c in report.classes] == [("a.b.Kept", "a.b", 2, 1)]
    assert report.ratio == pytest.approx(2 / 3)
    index = report.index_html.read_text(encoding="utf-8")
    assert "a.b.Kept" in index
    assert "Foreign" not in index
    page = (report.output_dir / "sources" / "a.b.Kept.java.html").read_text(encoding="utf-8")
    assert "class='hit'" in page
    assert "class='miss'" in page


def test_empty_execution_data_renders_an_empty_report(tmp_path):
    exec_file = tmp_path / "it.exec"
    ExecutionData().write(exec_file)

    report = generate_report("integration", exec_file, [], [], output_dir=tmp_path / "out", module="core")

    assert report.classes == ()
    assert report.ratio is None
    assert "No execution data recorded" in report.index_html.read_text(encoding="utf-8")


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ([], r"must be a JSON object"),
        ({"version": 2, "classes": []}, r"Unsupported execution data version"),
        ({"version": 1, "classes": [{"name": "a.B"}]}, r"classes\[0\] needs name and source"),
    ],
)
def test_execution_data_rejects_malformed_documents(payload, message):
    with pytest.raises(ValueError, match=message):
        ExecutionData.from_dict(payload)


def test_execution_data_file_round_trips_line_numbers_as_ints(tmp_path):
    path = tmp_path / "x.exec"
    data = ExecutionData(classes=(ClassExecution(name="a.B", source="a/B.java", lines={10: 0, 2: 3}),))

    data.write(path)

    assert ExecutionData.load(path) == data
    (path.parent / "bad.exec").write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match=r"Invalid execution data"):
        ExecutionData.load(path.parent / "bad.exec")


def test_jars_carry_the_manifest_and_are_byte_identical_across_runs(tmp_path):
    classes = tmp_path / "classes"
    (classes / "org" / "example").mkdir(parents=True)
    (classes / "org" / "example" / "B.class").write_bytes(b"b")
    (classes / "org" / "example" / "A.class").write_bytes(b"a")
    manifest = {AUTOMATIC_MODULE_NAME: "org.example.core"}

    first = write_jar(tmp_path / "one.jar", [classes, tmp_path / "absent"], manifest=manifest)
    second = write_jar(tmp_path / "two.jar", [classes], manifest=manifest)

    assert first.read_bytes() == second.read_bytes()
    assert read_manifest(first)[AUTOMATIC_MODULE_NAME] == "org.example.core"
    with zipfile.ZipFile(first) as jar:
        assert jar.namelist() == [MANIFEST_PATH, "org/example/A.class", "org/example/B.class"]
    assert not list(tmp_path.glob(".*.tmp"))


def test_first_root_wins_when_entries_clash(tmp_path):
    first_root = tmp_path / "a"
    second_root = tmp_path / "b"
    for root, payload in ((first_root, b"first"), (second_root, b"second")):
        root.mkdir()
        (root / "x.txt").write_bytes(payload)

    jar = write_jar(tmp_path / "out.jar", [first_root, second_root])

    with zipfile.ZipFile(jar) as archive:
        assert archive.read("x.txt") == b"first"
