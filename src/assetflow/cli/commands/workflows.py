"""Workflow inspection and maintenance commands."""

from __future__ import annotations

import json

import click

from assetflow.cli.base import CliCommand
from assetflow.serializers import serialize_workflow


@click.command(name="workflow-status")
@click.argument("workflow_id")
@click.option("--user-id", required=True, help="Owner of the workflow")
def workflow_status_command(workflow_id: str, user_id: str):
    """Print workflow progress and tasks as JSON."""
    WorkflowStatusCommand(workflow_id=workflow_id, user_id=user_id).execute()


@click.command(name="recompute-workflow")
@click.argument("workflow_id")
@click.option("--user-id", required=True, help="Owner of the workflow")
def recompute_workflow_command(workflow_id: str, user_id: str):
    """Derive and store workflow status from its task states."""
    RecomputeWorkflowCommand(workflow_id=workflow_id, user_id=user_id).execute()


class WorkflowStatusCommand(CliCommand):
    def __init__(self, *, workflow_id: str, user_id: str):
        super().__init__()
        self.workflow_id = workflow_id
        self.user_id = user_id

    def run(self) -> dict:
        status = self.facade.get_workflow_status(self.parse_user_id(self.user_id), self.workflow_id)
        click.echo(json.dumps(status, indent=2, default=str))
        return status


class RecomputeWorkflowCommand(CliCommand):
    def __init__(self, *, workflow_id: str, user_id: str):
        super().__init__()
        self.workflow_id = workflow_id
        self.user_id = user_id

    def run(self) -> bool:
        workflow, changed = self.facade.recompute_workflow_status(
            self.parse_user_id(self.user_id),
            self.workflow_id,
        )
        summary = serialize_workflow(workflow)
        if changed:
            click.echo(f"Workflow {summary['id']} status is now {summary['status']}")
        else:
            click.echo(f"Workflow {summary['id']} unchanged ({summary['status']})")
        return changed
