"""AssetFlow CLI entry point with lazy command registration."""

from __future__ import annotations

import click

from assetflow.logging_config import configure_logging

_COMMANDS_REGISTERED = False


def _register_commands_once() -> None:
    global _COMMANDS_REGISTERED
    if _COMMANDS_REGISTERED:
        return

    from .commands import lineage, workflows

    cli.add_command(lineage.audit_lineage_command, name="audit-lineage")
    cli.add_command(workflows.workflow_status_command, name="workflow-status")
    cli.add_command(workflows.recompute_workflow_command, name="recompute-workflow")

    _COMMANDS_REGISTERED = True


class _LazyCLIGroup(click.Group):
    def list_commands(self, ctx):
        _register_commands_once()
        return super().list_commands(ctx)

    def get_command(self, ctx, cmd_name):
        _register_commands_once()
        return super().get_command(ctx, cmd_name)


@click.group(cls=_LazyCLIGroup)
def cli():
    """AssetFlow CLI for lineage audits and workflow maintenance."""
    configure_logging()


def main():
    cli()
