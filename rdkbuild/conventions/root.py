"""The `root` convention: formatting of build-definition and misc text files.

Registers `formatCheck` and `formatApply`. Both read the rule sets of the final
module context at run time, so rule sets added by later bundles are covered.
"""

from __future__ import annotations

import json
from pathlib import Path

from rdkbuild.errors import TaskFailedError
from rdkbuild.framework import formatter
from rdkbuild.framework.formatter import FormatRuleSet, Violation, step
from rdkbuild.framework.model import ModuleContext, TaskDef
from rdkbuild.framework.runtime import TaskRuntime

NAME = "root"
FORMATTING_GROUP = "formatting"
FORMAT_CHECK = "formatCheck"
FORMAT_APPLY = "formatApply"


def build_file_rules() -> FormatRuleSet:
    return FormatRuleSet(
        name="buildFiles",
        targets=("*.yaml",),
        steps=(
            step("leadingTabsToSpaces", formatter.leading_tabs_to_spaces()),
            step("trimTrailingWhitespace", formatter.trim_trailing_whitespace),
            step("endWithNewline", formatter.end_with_newline),
        ),
    )


def misc_rules() -> FormatRuleSet:
    return FormatRuleSet(
        name="misc",
        targets=(".gitattributes", ".gitignore"),
        steps=(
            step("trimTrailingWhitespace", formatter.trim_trailing_whitespace),
            step("leadingTabsToSpaces", formatter.leading_tabs_to_spaces()),
            step("endWithNewline", formatter.end_with_newline),
        ),
        toggle_off_on=False,
    )


def _rule_sets(ctx: ModuleContext) -> list[FormatRuleSet]:
    return [ctx.format_rules[name] for name in sorted(ctx.format_rules)]


def format_check(runtime: TaskRuntime) -> list[Violation]:
    ctx = runtime.module
    base_dir = ctx.layout.directory
    violations: list[Violation] = []
    for rules in _rule_sets(ctx):
        violations.extend(formatter.check(formatter.collect_files(base_dir, rules), rules, base_dir=base_dir))

    report = ctx.layout.format_report()
    report.parent.mkdir(parents=True, exist_ok=True)
    report.write_text(
        json.dumps({"module": ctx.name, "violations": [v.as_dict() for v in violations]}, indent=2) + "\n",
        encoding="utf-8",
    )

    for violation in violations:
        runtime.logger.warning(
            "%s:%s: %s (%s/%s)",
            violation.path,
            violation.line,
            violation.message,
            violation.rule_set,
            violation.step,
        )
    if violations and ctx.settings.fail_on_violation:
        raise TaskFailedError(
            f"{len(violations)} formatting violation(s) in {ctx.name}; run formatApply (report: {report})"
        )
    return violations


def format_apply(runtime: TaskRuntime) -> list[Path]:
    ctx = runtime.module
    changed: list[Path] = []
    for rules in _rule_sets(ctx):
        changed.extend(formatter.apply(formatter.collect_files(ctx.layout.directory, rules), rules))
    runtime.logger.info("%s: reformatted %d file(s)", runtime.execution.path, len(changed))
    return changed


def apply_root(ctx: ModuleContext) -> ModuleContext:
    ctx = ctx.with_format_rules(build_file_rules()).with_format_rules(misc_rules())
    ctx = ctx.with_task(
        TaskDef(
            name=FORMAT_CHECK,
            action=format_check,
            outputs=(ctx.layout.format_report(),),
            group=FORMATTING_GROUP,
            description="Checks formatting of this module's files without changing them.",
        )
    )
    return ctx.with_task(
        TaskDef(
            name=FORMAT_APPLY,
            action=format_apply,
            outputs=(ctx.layout.directory,),
            group=FORMATTING_GROUP,
            description="Rewrites this module's files to satisfy the formatting rules.",
        )
    )
