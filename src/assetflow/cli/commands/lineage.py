"""Lineage audit command."""

from __future__ import annotations

from typing import Optional

import click

from assetflow.cli.base import CliCommand


@click.command(name="audit-lineage")
@click.option("--user-id", default=None, help="Limit the audit to one owner's assets")
def audit_lineage_command(user_id: Optional[str]):
    """Report lineage cycles in the live edge set; exits 1 when any exist."""
    cmd = AuditLineageCommand(user_id=user_id)
    cycles = cmd.execute()
    if cycles:
        raise SystemExit(1)


class AuditLineageCommand(CliCommand):
    """Post-hoc acyclicity audit over relationship edges."""

    def __init__(self, *, user_id: Optional[str]):
        super().__init__()
        self.user_id = user_id

    def run(self) -> list[list[str]]:
        user_id = self.parse_user_id(self.user_id) if self.user_id else None
        cycles = self.facade.audit_lineage(user_id)
        if not cycles:
            click.echo("No lineage cycles found")
            return cycles
        click.echo(f"Found {len(cycles)} lineage cycle(s):")
        for cycle in cycles:
            click.echo("  " + " -> ".join(cycle))
        return cycles
