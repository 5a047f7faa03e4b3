"""Task actions shared by the java-library conventions: compile, archive, document.

Each factory returns an action taking a `TaskRuntime`. Compilation is never
incremental: a compile task clears its classes directory and recompiles the
whole source set.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable

from rdkbuild.framework.archives import AUTOMATIC_MODULE_NAME, write_jar
from rdkbuild.framework.model import MAIN, ModuleContext, configuration_name
from rdkbuild.framework.runtime import TaskRuntime
from rdkbuild.framework.toolchain import CompileRequest

Action = Callable[[TaskRuntime], object]


def source_files(directory: Path) -> tuple[Path, ...]:
    if not directory.is_dir():
        return ()
    return tuple(sorted(directory.rglob("*.java")))


def compile_task_name(source_set: str) -> str:
    if source_set == MAIN:
        return "compileJava"
    return f"compile{source_set[0].upper()}{source_set[1:]}Java"


def annotation_processor_configuration(source_set: str) -> str:
    return configuration_name(source_set, "annotationProcessor")


def release_of(ctx: ModuleContext) -> int:
    return ctx.java_release or ctx.settings.toolchain.language_version


def encoding_of(ctx: ModuleContext) -> str:
    return ctx.encoding or ctx.settings.toolchain.encoding


def compile_source_set(
    source_set: str,
    *,
    classpath: str,
    include_outputs: tuple[str, ...] = (),
) -> Action:
    """Compile `src/<source_set>/java` against the resolved `classpath` configuration.

    `include_outputs` names sibling source sets of the same module whose classes
    directories go on the classpath ahead of resolved files. When the module
    declares the source set's annotation processor configuration, its files
    become the processor path.
    """

    def _compile(runtime: TaskRuntime) -> Path:
        ctx = runtime.module
        layout = ctx.layout
        output_dir = layout.classes_dir(source_set)
        if output_dir.exists():
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True)

        sources = source_files(layout.java_dir(source_set))
        if not sources:
            runtime.logger.debug("%s: no %s sources", runtime.execution.path, source_set)
            return output_dir

        resolved = runtime.services.resolve(ctx, classpath)
        processors = annotation_processor_configuration(source_set)
        processor_path = runtime.services.resolve(ctx, processors) if processors in ctx.configurations else ()
        request = CompileRequest(
            sources=sources,
            classpath=(*(layout.classes_dir(name) for name in include_outputs), *resolved),
            output_dir=output_dir,
            release=release_of(ctx),
            encoding=encoding_of(ctx),
            processor_path=processor_path,
        )
        runtime.services.toolchain.compile(request)
        runtime.logger.debug(
            "%s: compiled %d source file(s) for release %s", runtime.execution.path, len(sources), request.release
        )
        return output_dir

    return _compile


def main_jar(runtime: TaskRuntime) -> Path:
    ctx = runtime.module
    layout = ctx.layout
    manifest: dict[str, str] = {}
    if ctx.module.automatic_module_name:
        manifest[AUTOMATIC_MODULE_NAME] = ctx.module.automatic_module_name
    return write_jar(
        layout.archive(ctx.name, ctx.settings.version),
        [layout.classes_dir(MAIN), layout.resources_dir(MAIN)],
        manifest=manifest,
    )


def sources_jar(runtime: TaskRuntime) -> Path:
    ctx = runtime.module
    layout = ctx.layout
    return write_jar(
        layout.archive(ctx.name, ctx.settings.version, "sources"),
        [layout.java_dir(MAIN), layout.resources_dir(MAIN)],
    )


def javadoc(runtime: TaskRuntime) -> Path:
    ctx = runtime.module
    layout = ctx.layout
    output_dir = layout.javadoc_dir()
    if output_dir.exists():
        shutil.rmtree(output_dir)
    output_dir.mkdir(parents=True)
    sources = source_files(layout.java_dir(MAIN))
    if sources:
        runtime.services.toolchain.javadoc(
            CompileRequest(
                sources=sources,
                classpath=(layout.classes_dir(MAIN), *runtime.services.resolve(ctx, "compileClasspath")),
                output_dir=output_dir,
                release=release_of(ctx),
                encoding=encoding_of(ctx),
            )
        )
    return output_dir


def javadoc_jar(runtime: TaskRuntime) -> Path:
    ctx = runtime.module
    return write_jar(
        ctx.layout.archive(ctx.name, ctx.settings.version, "javadoc"),
        [ctx.layout.javadoc_dir()],
    )


def source_set_jar(source_set: str, classifier: str) -> Action:
    def _jar(runtime: TaskRuntime) -> Path:
        ctx = runtime.module
        layout = ctx.layout
        return write_jar(
            layout.archive(ctx.name, ctx.settings.version, classifier),
            [layout.classes_dir(source_set), layout.resources_dir(source_set)],
        )

    return _jar
