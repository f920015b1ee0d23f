import json
from datetime import datetime, timedelta, timezone

import pytest

from stepflow.contracts import WorkflowState
from stepflow.persistence import StatePersistence, state_key
from stepflow.registry import StepRegistry


@pytest.fixture
def registry(project_config) -> StepRegistry:
    return StepRegistry(project_config.steps)


def _state(**fields) -> WorkflowState:
    fields.setdefault("workflow_id", "project-creation")
    fields.setdefault("current_step", "skill-assessment")
    return WorkflowState(**fields)


@pytest.mark.asyncio
async def test_save_and_load_round_trip(store, registry):
    persistence = StatePersistence(store)
    state = _state(
        current_step="technology-selection",
        completed_steps=["skill-assessment"],
        step_data={"skill-assessment": {"experience_level": "beginner"}},
    )
    state.last_saved = datetime.now(timezone.utc) - timedelta(hours=1)
    before = state.last_saved

    assert await persistence.save(state) is True
    assert state.last_saved > before

    loaded = await persistence.load("project-creation", registry)
    assert loaded is not None
    assert loaded.current_step == "technology-selection"
    assert loaded.completed_steps == ["skill-assessment"]
    assert loaded.step_data == {"skill-assessment": {"experience_level": "beginner"}}
    assert loaded.last_saved == state.last_saved


@pytest.mark.asyncio
async def test_load_missing_record(store, registry):
    persistence = StatePersistence(store)
    assert await persistence.load("project-creation", registry) is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "record",
    [
        "not json",
        json.dumps(["a", "list"]),
        json.dumps({"workflow_id": "project-creation", "version": "9.9.9"}),
        json.dumps(
            {
                "workflow_id": "other-workflow",
                "current_step": "skill-assessment",
                "step_data": {},
                "completed_steps": [],
                "version": "2.0.0",
            }
        ),
        json.dumps(
            {
                "workflow_id": "project-creation",
                "current_step": "skill-assessment",
                "step_data": {},
                "completed_steps": ["deleted-step"],
                "version": "2.0.0",
            }
        ),
        json.dumps(
            {
                "workflow_id": "project-creation",
                "current_step": "preview",
                "step_data": {},
                "completed_steps": ["preview"],
                "skipped_steps": ["preview"],
                "version": "2.0.0",
            }
        ),
        json.dumps({"workflow_id": "project-creation", "version": "2.0.0"}),
        json.dumps(
            {
                "workflow_id": "project-creation",
                "current_step": "skill-assessment",
                "step_data": "oops",
                "completed_steps": [],
                "version": "2.0.0",
            }
        ),
        json.dumps(
            {
                "workflow_id": "project-creation",
                "current_step": "technology-selection",
                "step_data": {},
                "completed_steps": [{"id": "skill-assessment"}],
                "version": "2.0.0",
            }
        ),
        json.dumps(
            {
                "workflow_id": "project-creation",
                "current_step": "technology-selection",
                "step_data": {},
                "completed_steps": [],
                "skipped_steps": [["preview"]],
                "version": "2.0.0",
            }
        ),
        json.dumps({"workflow_id": "project-creation", "version": ["2.0.0"]}),
    ],
)
async def test_invalid_records_are_discarded(store, registry, record):
    persistence = StatePersistence(store)
    await store.set(state_key("project-creation"), record)

    assert await persistence.load("project-creation", registry) is None
    assert await store.get(state_key("project-creation")) is None


@pytest.mark.asyncio
async def test_legacy_record_is_migrated(store, registry):
    persistence = StatePersistence(store)
    await store.set(
        state_key("project-creation"),
        json.dumps(
            {
                "workflowId": "project-creation",
                "currentStep": "repository-selection",
                "stepData": {"technology-selection": {"technologies": ["rust"]}},
                "completedSteps": ["skill-assessment", "technology-selection"],
                "skippedSteps": [],
                "lastSaved": "2024-05-01T10:00:00+00:00",
                "version": "1.0.0",
            }
        ),
    )

    loaded = await persistence.load("project-creation", registry)

    assert loaded is not None
    assert loaded.current_step == "repository-selection"
    assert loaded.completed_steps == ["skill-assessment", "technology-selection"]
    assert loaded.step_data["technology-selection"] == {"technologies": ["rust"]}
    assert loaded.version == "2.0.0"


@pytest.mark.asyncio
async def test_failed_write_is_retried(flaky_store):
    store = flaky_store(failures=2)
    persistence = StatePersistence(store, max_retries=3, retry_delay=0)
    state = _state()

    assert await persistence.save(state) is False
    await persistence.flush()

    assert store.write_attempts == 3
    assert await store.get(state_key("project-creation")) is not None
    assert persistence.pending_retries == 0


@pytest.mark.asyncio
async def test_retries_give_up_after_max_retries(flaky_store):
    store = flaky_store(failures=10)
    persistence = StatePersistence(store, max_retries=2, retry_delay=0)

    assert await persistence.save(_state()) is False
    await persistence.flush()

    # one initial write plus two retries
    assert store.write_attempts == 3
    assert await store.get(state_key("project-creation")) is None


@pytest.mark.asyncio
async def test_stale_retry_does_not_overwrite_newer_write(flaky_store):
    store = flaky_store(failures=1)
    persistence = StatePersistence(store, max_retries=3, retry_delay=0)

    assert await persistence.save(_state(current_step="skill-assessment")) is False
    assert await persistence.save(_state(current_step="preview")) is True
    await persistence.flush()

    record = json.loads(await store.get(state_key("project-creation")))
    assert record["current_step"] == "preview"
    assert store.write_attempts == 2


@pytest.mark.asyncio
async def test_clear_cancels_pending_retry(flaky_store):
    store = flaky_store(failures=1)
    persistence = StatePersistence(store, max_retries=3, retry_delay=0)

    await persistence.save(_state())
    await persistence.clear("project-creation")
    await persistence.flush()

    assert await store.get(state_key("project-creation")) is None


@pytest.mark.asyncio
async def test_cancel_pending_drops_retries(flaky_store):
    store = flaky_store(failures=1)
    persistence = StatePersistence(store, max_retries=3, retry_delay=10)

    assert await persistence.save(_state()) is False
    assert persistence.pending_retries == 1

    persistence.cancel_pending()
    await persistence.flush()

    assert persistence.pending_retries == 0
    assert store.write_attempts == 1
    assert await store.get(state_key("project-creation")) is None


@pytest.mark.asyncio
async def test_clear_never_raises():
    class BrokenStore:
        async def delete(self, key):
            raise ConnectionError("store offline")

    persistence = StatePersistence(BrokenStore())
    await persistence.clear("project-creation")


@pytest.mark.asyncio
async def test_list_workflow_ids(store):
    persistence = StatePersistence(store)
    await persistence.save(_state())
    await persistence.save(
        WorkflowState(workflow_id="onboarding", current_step="welcome")
    )
    await store.set("unrelated", "{}")

    assert await persistence.list_workflow_ids() == ["onboarding", "project-creation"]
