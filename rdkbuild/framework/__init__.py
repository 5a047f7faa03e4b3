"""Build-layer machinery shared by every convention bundle.

This package holds the configuration-time model (modules, configurations,
task definitions, module contexts), the build definition parsers, dependency
resolution, and the task actions' collaborators (toolchain, agent injector,
coverage aggregator, formatter gate, publisher). It never imports
`rdkbuild.conventions`; bundles are built on top of it.

Common entrypoints:

- `rdkbuild.framework.module_graph`: modules and their edges from the build files
- `rdkbuild.framework.wiring`: task definitions materialized into a task graph
- `rdkbuild.framework.suites`: unit and integration suites per module

For app-agnostic task graph and executor primitives, use `taskwire`.
"""
