"""End-to-end tests for the identity-scoped orchestration facade."""

import threading
import time
import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from assetflow.errors import (
    AlreadyTerminalError,
    CycleDetectedError,
    DuplicateRelationshipError,
    NotFoundError,
    ValidationError,
)
from assetflow.locking import KeyedLock
from assetflow.metadata import Asset, AssetVersion, Base, WorkflowTask
from assetflow.orchestration import OrchestrationFacade


def _submit(facade: OrchestrationFacade, owner_id, task_count: int = 4):
    return facade.submit_workflow(
        owner_id,
        title="Product launch teaser",
        request_data={"brief": "15s teaser"},
        tasks=[
            {"title": f"Shot {index}", "task_type": "generate_video"}
            for index in range(task_count)
        ],
    )


def _task_ids(facade: OrchestrationFacade, owner_id, workflow_id) -> list[str]:
    status = facade.get_workflow_status(owner_id, workflow_id)
    return [task["id"] for task in status["tasks"]]


class TestLineage:

    def test_reverse_edge_is_a_cycle(self, facade, make_asset, user_id):
        a, b = make_asset(user_id), make_asset(user_id)
        facade.create_relationship(user_id, str(a.id), str(b.id), "input")

        with pytest.raises(CycleDetectedError):
            facade.create_relationship(user_id, str(b.id), str(a.id), "input")

    def test_duplicate_edge(self, facade, make_asset, user_id):
        a, b = make_asset(user_id), make_asset(user_id)
        facade.create_relationship(user_id, a.id, b.id, "input")

        with pytest.raises(DuplicateRelationshipError):
            facade.create_relationship(user_id, a.id, b.id, "variation")

    def test_other_users_assets_look_missing(self, facade, make_asset, user_id, other_user_id):
        a, b = make_asset(other_user_id), make_asset(other_user_id)

        with pytest.raises(NotFoundError):
            facade.create_relationship(user_id, a.id, b.id, "input")
        with pytest.raises(NotFoundError):
            facade.get_asset(user_id, a.id)

    def test_get_asset_lists_relations_and_versions(self, facade, make_asset, user_id):
        parent, child = make_asset(user_id, name="parent"), make_asset(user_id, name="child")
        facade.create_relationship(user_id, parent.id, child.id, "enhancement")

        payload = facade.get_asset(user_id, str(child.id))

        assert [row["id"] for row in payload["parent_assets"]] == [str(parent.id)]
        assert payload["parent_assets"][0]["relationship_type"] == "enhancement"
        assert payload["child_assets"] == []
        assert [row["version_number"] for row in payload["versions"]] == [1]

    def test_delete_relationship(self, facade, make_asset, user_id):
        a, b = make_asset(user_id), make_asset(user_id)
        facade.create_relationship(user_id, a.id, b.id, "input")

        result = facade.delete_relationship(user_id, str(a.id), str(b.id))

        assert result == {"parent_asset_id": str(a.id), "child_asset_id": str(b.id), "action": "deleted"}
        with pytest.raises(NotFoundError):
            facade.delete_relationship(user_id, a.id, b.id)

    def test_soft_delete_hides_asset_from_lineage(self, facade, make_asset, user_id):
        a, b, c = make_asset(user_id), make_asset(user_id), make_asset(user_id)
        facade.create_relationship(user_id, a.id, b.id, "input")
        facade.create_relationship(user_id, b.id, c.id, "input")

        facade.update_asset_status(user_id, b.id, "deleted")

        lineage = facade.get_lineage(user_id, c.id)
        assert lineage["ancestors"] == []
        with pytest.raises(NotFoundError):
            facade.get_asset(user_id, b.id)

    def test_lineage_depth(self, facade, make_asset, user_id):
        a, b, c = make_asset(user_id), make_asset(user_id), make_asset(user_id)
        facade.create_relationship(user_id, a.id, b.id, "input")
        facade.create_relationship(user_id, b.id, c.id, "input")

        lineage = facade.get_lineage(user_id, c.id, max_depth=1)

        assert [row["id"] for row in lineage["ancestors"]] == [str(b.id)]
        with pytest.raises(ValidationError):
            facade.get_lineage(user_id, c.id, max_depth=0)

    def test_invalid_asset_status(self, facade, make_asset, user_id):
        asset = make_asset(user_id)

        with pytest.raises(ValidationError):
            facade.update_asset_status(user_id, asset.id, "hidden")

    def test_create_version_increments(self, facade, make_asset, user_id):
        asset = make_asset(user_id)

        version = facade.create_version(
            user_id,
            str(asset.id),
            {"file_url": "https://cdn.example.com/v2.png", "generation_params": {"steps": 30}},
        )

        assert version.version_number == 2
        assert [row.version_number for row in facade.list_versions(user_id, asset.id)] == [2, 1]

    def test_audit_lineage_clean(self, facade, make_asset, user_id):
        a, b = make_asset(user_id), make_asset(user_id)
        facade.create_relationship(user_id, a.id, b.id, "input")

        assert facade.audit_lineage(user_id) == []
        assert facade.audit_lineage() == []


class TestWorkflows:

    def test_progress_two_completed_one_failed_one_pending(self, facade, user_id):
        workflow = _submit(facade, user_id)
        task_ids = _task_ids(facade, user_id, workflow.id)
        for task_id in task_ids[:3]:
            facade.start_task(user_id, task_id)
        facade.complete_task(user_id, task_ids[0])
        facade.complete_task(user_id, task_ids[1])
        facade.fail_task(user_id, task_ids[2], "out of credits")

        status = facade.get_workflow_status(user_id, str(workflow.id))

        assert status["progress"] == {
            "percentage": 50,
            "total_tasks": 4,
            "completed": 2,
            "in_progress": 0,
            "failed": 1,
            "pending": 1,
        }
        assert status["workflow"]["status"] == "in_progress"

    def test_status_reads_workflow_and_tasks_together(self, facade, session_factory, user_id):
        workflow = _submit(facade, user_id, task_count=2)
        task_ids = _task_ids(facade, user_id, workflow.id)

        other = session_factory()
        other.query(WorkflowTask).filter(WorkflowTask.id == uuid.UUID(task_ids[0])).update({"status": "completed"})
        other.commit()
        other.close()

        status = facade.get_workflow_status(user_id, workflow.id)

        assert [task["status"] for task in status["tasks"]] == ["completed", "pending"]
        assert status["progress"]["completed"] == 1
        assert status["progress"]["percentage"] == 50

    def test_status_of_other_users_workflow(self, facade, user_id, other_user_id):
        workflow = _submit(facade, user_id)

        with pytest.raises(NotFoundError):
            facade.get_workflow_status(other_user_id, workflow.id)
        with pytest.raises(NotFoundError):
            facade.start_task(other_user_id, _task_ids(facade, user_id, workflow.id)[0])

    def test_invalid_workflow_id(self, facade, user_id):
        with pytest.raises(ValidationError):
            facade.get_workflow_status(user_id, "workflow-1")

    def test_complete_task_records_derived_asset(self, facade, make_asset, test_db: Session, user_id):
        source = make_asset(user_id)
        workflow = _submit(facade, user_id, task_count=1)
        task_id = _task_ids(facade, user_id, workflow.id)[0]
        facade.start_task(user_id, task_id)

        task, asset, edges = facade.complete_task(
            user_id,
            task_id,
            output_data={"duration": 15},
            derived_asset={
                "parent_asset_ids": [str(source.id)],
                "relationship_type": "variation",
                "asset": {"asset_type": "video", "file_url": "https://cdn.example.com/teaser.mp4"},
            },
        )

        assert task.status == "completed"
        assert task.output_data == {"duration": 15, "asset_id": str(asset.id)}
        assert [(edge.parent_asset_id, edge.child_asset_id) for edge in edges] == [(source.id, asset.id)]
        version = test_db.query(AssetVersion).filter(AssetVersion.asset_id == asset.id).one()
        assert version.task_id == task.id

    def test_failed_artifact_leaves_task_running(self, facade, make_asset, test_db: Session, user_id):
        make_asset(user_id)
        workflow = _submit(facade, user_id, task_count=1)
        task_id = _task_ids(facade, user_id, workflow.id)[0]
        facade.start_task(user_id, task_id)

        with pytest.raises(NotFoundError):
            facade.complete_task(
                user_id,
                task_id,
                derived_asset={"parent_asset_ids": [str(uuid.uuid4())], "asset": {}},
            )

        assert test_db.query(Asset).count() == 1
        task = test_db.get(WorkflowTask, uuid.UUID(task_id))
        assert task.status == "in_progress"
        assert task.completed_at is None

    def test_recompute_and_terminal_guard(self, facade, user_id):
        workflow = _submit(facade, user_id, task_count=2)
        for task_id in _task_ids(facade, user_id, workflow.id):
            facade.start_task(user_id, task_id)
            facade.complete_task(user_id, task_id)

        updated, changed = facade.recompute_workflow_status(user_id, workflow.id)

        assert changed is True
        assert updated.status == "completed"
        with pytest.raises(AlreadyTerminalError):
            facade.recompute_workflow_status(user_id, workflow.id)
        with pytest.raises(AlreadyTerminalError):
            facade.transition_workflow(user_id, workflow.id, "cancelled")

    def test_fail_task_and_transition(self, facade, user_id):
        workflow = _submit(facade, user_id, task_count=1)
        task_id = _task_ids(facade, user_id, workflow.id)[0]
        facade.start_task(user_id, task_id)

        task = facade.fail_task(user_id, task_id, "render timed out")
        updated = facade.transition_workflow(user_id, workflow.id, "failed", error_message="render timed out")

        assert task.error_message == "render timed out"
        assert updated.status == "failed"
        assert updated.error_message == "render timed out"

    def test_list_workflows_filters_by_status(self, facade, user_id, other_user_id):
        first = _submit(facade, user_id, task_count=0)
        _submit(facade, user_id, task_count=0)
        _submit(facade, other_user_id, task_count=0)
        facade.transition_workflow(user_id, first.id, "cancelled")

        total, rows = facade.list_workflows(user_id)
        cancelled_total, cancelled = facade.list_workflows(user_id, status="cancelled")

        assert total == 2
        assert len(rows) == 2
        assert cancelled_total == 1
        assert [row.id for row in cancelled] == [first.id]
        with pytest.raises(ValidationError):
            facade.list_workflows(user_id, status="paused")

    def test_add_task_to_open_workflow(self, facade, user_id):
        workflow = _submit(facade, user_id, task_count=1)

        task = facade.add_task(user_id, workflow.id, {"title": "QA pass", "task_type": "review", "assigned_to": "human"})

        assert task.execution_order == 1
        assert task.assigned_to == "human"

    def test_delete_workflow_keeps_produced_assets(self, facade, test_db: Session, user_id):
        workflow = _submit(facade, user_id, task_count=1)
        task_id = _task_ids(facade, user_id, workflow.id)[0]
        facade.start_task(user_id, task_id)
        _, asset, _ = facade.complete_task(user_id, task_id, derived_asset={"asset": {"asset_type": "image"}})
        asset_id = asset.id
        workflow_id = workflow.id

        result = facade.delete_workflow(user_id, workflow_id)

        assert result == {"deleted": True, "workflow_id": str(workflow_id)}
        assert test_db.query(WorkflowTask).count() == 0
        version = test_db.query(AssetVersion).filter(AssetVersion.asset_id == asset_id).one()
        assert version.task_id is None
        with pytest.raises(NotFoundError):
            facade.get_workflow_status(user_id, workflow_id)


def test_concurrent_versions_are_gapless(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'versions.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine)
    locks = KeyedLock()
    owner_id = uuid.uuid4()

    setup_session = factory()
    asset_id = OrchestrationFacade(setup_session, locks=locks).create_asset(owner_id, {}).id
    setup_session.close()

    errors = []

    def add_version(index):
        session = factory()
        try:
            OrchestrationFacade(session, locks=locks).create_version(
                owner_id,
                asset_id,
                {"file_url": f"https://cdn.example.com/{index}.png", "generation_params": {"seed": index}},
            )
        except Exception as exc:
            errors.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=add_version, args=(index,)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    check = factory()
    numbers = sorted(
        row.version_number
        for row in check.query(AssetVersion).filter(AssetVersion.asset_id == asset_id).all()
    )
    check.close()
    engine.dispose()

    assert errors == []
    assert numbers == list(range(1, 10))


def _file_engine(path):
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    return engine


def _race(factory, calls):
    """Run each call on its own thread, session and lock registry."""
    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)

    def run(index, call):
        session = factory()
        try:
            barrier.wait()
            results[index] = call(OrchestrationFacade(session, locks=KeyedLock()))
        except Exception as exc:
            results[index] = exc
        finally:
            session.close()

    threads = [threading.Thread(target=run, args=(index, call)) for index, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results


@pytest.fixture
def slow_cycle_check(monkeypatch):
    """Widen the window between reading the graph and inserting the edge."""
    from assetflow.lineage.store import LineageStore

    original = LineageStore.is_reachable

    def is_reachable(self, source, target, edges):
        edges = list(edges)
        time.sleep(0.2)
        return original(self, source, target, edges)

    monkeypatch.setattr(LineageStore, "is_reachable", is_reachable)


def test_concurrent_edges_from_separate_workers_cannot_close_a_cycle(tmp_path, slow_cycle_check):
    engine = _file_engine(tmp_path / "lineage.db")
    factory = sessionmaker(bind=engine)
    owner_id = uuid.uuid4()

    setup_session = factory()
    setup = OrchestrationFacade(setup_session, locks=KeyedLock())
    a, b, c, d = (setup.create_asset(owner_id, {}).id for _ in range(4))
    setup.create_relationship(owner_id, a, b, "input")
    setup.create_relationship(owner_id, c, d, "input")
    setup_session.close()

    results = _race(
        factory,
        [
            lambda facade: facade.create_relationship(owner_id, b, c, "input"),
            lambda facade: facade.create_relationship(owner_id, d, a, "input"),
        ],
    )

    failures = [result for result in results if isinstance(result, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], CycleDetectedError)
    assert failures[0].code == "CYCLE_DETECTED"

    check = factory()
    assert OrchestrationFacade(check, locks=KeyedLock()).audit_lineage(owner_id) == []
    check.close()
    engine.dispose()


def test_concurrent_duplicate_edges_from_separate_workers(tmp_path, slow_cycle_check):
    engine = _file_engine(tmp_path / "duplicates.db")
    factory = sessionmaker(bind=engine)
    owner_id = uuid.uuid4()

    setup_session = factory()
    setup = OrchestrationFacade(setup_session, locks=KeyedLock())
    a, b = (setup.create_asset(owner_id, {}).id for _ in range(2))
    setup_session.close()

    results = _race(
        factory,
        [lambda facade: facade.create_relationship(owner_id, a, b, "input")] * 2,
    )

    failures = [result for result in results if isinstance(result, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], DuplicateRelationshipError)
    assert failures[0].code == "DUPLICATE_RELATIONSHIP"
    engine.dispose()
