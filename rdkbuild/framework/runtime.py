from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from rdkbuild.framework.agent import AgentArgumentProvider, AgentDescriptor, AgentInjector
from rdkbuild.framework.model import ModuleContext
from rdkbuild.framework.resolution import RepositoryResolver
from rdkbuild.framework.settings import BuildSettings
from rdkbuild.framework.toolchain import Toolchain
from taskwire import ExecutionContext


@dataclass
class BuildServices:
    """Per-invocation collaborators shared by every task action."""

    settings: BuildSettings
    toolchain: Toolchain
    resolver: RepositoryResolver
    logger: logging.Logger
    agents: AgentInjector = field(default_factory=AgentInjector)
    show_test_output: bool = False
    modules: Mapping[str, ModuleContext] = field(default_factory=dict)

    def resolve(self, module: ModuleContext, configuration: str) -> tuple[Path, ...]:
        return self.resolver.resolve_configuration(module, configuration, modules=self.modules)

    def agent_provider(self, module: ModuleContext, descriptor: AgentDescriptor) -> AgentArgumentProvider:
        return self.agents.provider(descriptor, lambda: self.resolve(module, descriptor.configuration))


@dataclass(frozen=True)
class TaskRuntime:
    """What a task action sees: the executor's context, its final module and the services."""

    execution: ExecutionContext
    module: ModuleContext
    services: BuildServices

    @property
    def logger(self) -> logging.Logger:
        return self.services.logger

    def task_path(self, name: str) -> str:
        return self.module.module.task_path(name)
