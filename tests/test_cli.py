"""Tests for the assetflow command line."""

import json
import uuid

import pytest
from click.testing import CliRunner

from assetflow import database
from assetflow.cli import cli
from assetflow.metadata import AssetRelationship


@pytest.fixture
def runner(monkeypatch, session_factory):
    monkeypatch.setattr(database, "SessionLocal", session_factory)
    return CliRunner()


def test_lists_commands(runner):
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    for name in ("audit-lineage", "workflow-status", "recompute-workflow"):
        assert name in result.output


def test_audit_lineage_clean(runner, facade, make_asset, user_id):
    a, b = make_asset(user_id), make_asset(user_id)
    facade.create_relationship(user_id, a.id, b.id, "input")

    result = runner.invoke(cli, ["audit-lineage", "--user-id", str(user_id)])

    assert result.exit_code == 0
    assert "No lineage cycles found" in result.output


def test_audit_lineage_reports_cycle(runner, test_db, make_asset, user_id):
    a, b = make_asset(user_id), make_asset(user_id)
    test_db.add_all([
        AssetRelationship(parent_asset_id=a.id, child_asset_id=b.id, relationship_type="input"),
        AssetRelationship(parent_asset_id=b.id, child_asset_id=a.id, relationship_type="input"),
    ])
    test_db.commit()

    result = runner.invoke(cli, ["audit-lineage"])

    assert result.exit_code == 1
    assert "Found 1 lineage cycle(s)" in result.output


def test_workflow_status_prints_json(runner, facade, user_id):
    workflow = facade.submit_workflow(
        user_id,
        title="Teaser",
        request_data={},
        tasks=[{"title": "Render", "task_type": "generate_video"}],
    )
    workflow_id = str(workflow.id)

    result = runner.invoke(cli, ["workflow-status", workflow_id, "--user-id", str(user_id)])

    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["workflow"]["id"] == workflow_id
    assert payload["progress"]["total_tasks"] == 1


def test_workflow_status_not_found(runner, user_id):
    result = runner.invoke(cli, ["workflow-status", str(uuid.uuid4()), "--user-id", str(user_id)])

    assert result.exit_code == 1
    assert "NOT_FOUND" in result.output


def test_recompute_workflow(runner, facade, user_id):
    workflow = facade.submit_workflow(
        user_id,
        title="Teaser",
        request_data={},
        tasks=[{"title": "Render", "task_type": "generate_video"}],
    )
    workflow_id = str(workflow.id)
    task_id = facade.get_workflow_status(user_id, workflow_id)["tasks"][0]["id"]
    facade.start_task(user_id, task_id)
    facade.complete_task(user_id, task_id)

    result = runner.invoke(cli, ["recompute-workflow", workflow_id, "--user-id", str(user_id)])

    assert result.exit_code == 0
    assert "status is now completed" in result.output


def test_rejects_bad_user_id(runner):
    result = runner.invoke(cli, ["workflow-status", str(uuid.uuid4()), "--user-id", "me"])

    assert result.exit_code == 2
