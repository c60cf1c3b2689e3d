import json

import pytest

from ai_jobs.domain.errors import AuthError, StoreError, TransportError
from ai_jobs.domain.payloads import SelectedItem
from ai_jobs.domain.states import JobKind, JobStatus
from ai_jobs.services import submitters
from ai_jobs.services.orchestrator import JobOrchestrator


@pytest.mark.asyncio
async def test_create_and_trigger(orchestrator, store, executor):
    outcome = await orchestrator.create_and_trigger_job("user-1", JobKind.AUTO_TAG, {"wardrobe_item_id": "item-1"})

    assert outcome.ok
    assert outcome.data.trigger_error is None
    job = await store.get_job(outcome.data.job_id)
    assert job.status == JobStatus.QUEUED
    assert job.kind == JobKind.AUTO_TAG
    assert json.loads(executor.calls[0].content) == {"job_id": outcome.data.job_id}


@pytest.mark.asyncio
async def test_trigger_failure_keeps_created_job(orchestrator, store, executor):
    executor.status_code = 503
    executor.body = "executor overloaded"

    outcome = await orchestrator.create_and_trigger_job("user-1", JobKind.PRODUCT_SHOT, {"image_id": "img-1"})

    assert outcome.ok
    assert isinstance(outcome.data.trigger_error, TransportError)
    job = await store.get_job(outcome.data.job_id)
    assert job is not None
    assert job.status == JobStatus.QUEUED


@pytest.mark.asyncio
async def test_missing_session_reported_with_job(orchestrator, session_provider, executor):
    session_provider.sign_out()

    outcome = await orchestrator.create_and_trigger_job("user-1", JobKind.OUTFIT_SUGGEST, {})

    assert outcome.data.job_id
    assert isinstance(outcome.data.trigger_error, AuthError)
    assert executor.calls == []


@pytest.mark.asyncio
async def test_store_failure_skips_trigger(store, trigger, settings, executor):
    class BrokenStore(type(store)):
        async def create_job(self, owner_id, kind, input_data):
            raise StoreError("insert failed")

    orchestrator = JobOrchestrator(BrokenStore(store._session_factory), trigger, settings=settings)

    outcome = await orchestrator.create_and_trigger_job("user-1", JobKind.AUTO_TAG, {})

    assert isinstance(outcome.error, StoreError)
    assert outcome.data is None
    assert executor.calls == []


@pytest.mark.asyncio
async def test_get_job_wraps_result(orchestrator, store):
    job = await store.create_job("user-1", JobKind.BATCH, {})

    assert (await orchestrator.get_job(job.id)).data.id == job.id
    missing = await orchestrator.get_job("missing")
    assert missing.ok and missing.data is None


@pytest.mark.asyncio
async def test_orchestrators_do_not_share_guard(orchestrator, store, trigger, settings):
    other = JobOrchestrator(store, trigger, settings=settings)
    orchestrator.guard.record_failure("job-1")

    assert orchestrator.guard.failure_count("job-1") == 1
    assert other.guard.failure_count("job-1") == 0


@pytest.mark.asyncio
async def test_submit_batch_stores_aliased_image_id(orchestrator, store):
    outcome = await submitters.submit_batch(orchestrator, "user-1", "img-1", "item-1", ["img-1", "img-2"])

    job = await store.get_job(outcome.data.job_id)
    assert job.kind == JobKind.BATCH
    assert job.input == {
        "imageId": "img-1",
        "wardrobe_item_id": "item-1",
        "image_ids": ["img-1", "img-2"],
        "tasks": ["product_shot", "auto_tag"],
    }


@pytest.mark.asyncio
async def test_submit_auto_tag_drops_empty_hints(orchestrator, store):
    outcome = await submitters.submit_auto_tag(orchestrator, "user-1", "item-1", ["img-1"], category="", subcategory=None)

    job = await store.get_job(outcome.data.job_id)
    assert job.input == {"wardrobe_item_id": "item-1", "image_ids": ["img-1"]}


@pytest.mark.asyncio
async def test_outfit_render_lookup_by_outfit(orchestrator, store, set_job_state):
    selected = [SelectedItem(wardrobe_item_id="item-1", category="top")]
    first = await submitters.submit_outfit_render(orchestrator, "user-1", "outfit-1", selected)
    await submitters.submit_outfit_render(orchestrator, "user-1", "outfit-2", selected)

    active = await submitters.get_active_outfit_render_job(orchestrator, "user-1", "outfit-1")
    assert active.data.id == first.data.job_id
    assert active.data.input["user_id"] == "user-1"

    await set_job_state(first.data.job_id, JobStatus.SUCCEEDED, result={"image_id": "render-1"})
    recent = await submitters.get_recent_outfit_render_job(orchestrator, "user-1", "outfit-1")
    assert recent.data.id == first.data.job_id
    assert (await submitters.get_active_outfit_render_job(orchestrator, "user-1", "outfit-1")).data is None


@pytest.mark.asyncio
async def test_active_wardrobe_item_job_prefers_generate(orchestrator):
    render = await submitters.submit_wardrobe_item_render(orchestrator, "user-1", "item-1", "img-1")

    found = await submitters.get_active_wardrobe_item_job(orchestrator, "user-1", "item-1")
    assert found.data.id == render.data.job_id

    generate = await submitters.submit_wardrobe_item_generate(orchestrator, "user-1", "item-1", "img-1")
    found = await submitters.get_active_wardrobe_item_job(orchestrator, "user-1", "item-1")
    assert found.data.id == generate.data.job_id


@pytest.mark.asyncio
async def test_item_lookup_matches_either_key(orchestrator):
    tag = await submitters.submit_product_shot(orchestrator, "user-1", "img-1", "item-7")

    found = await submitters.get_active_item_job(orchestrator, "user-1", JobKind.PRODUCT_SHOT, "item-7")

    assert found.data.id == tag.data.job_id


@pytest.mark.asyncio
async def test_item_lookup_rejects_unscoped_kind(orchestrator):
    with pytest.raises(ValueError):
        await submitters.get_active_item_job(orchestrator, "user-1", JobKind.LOOKBOOK_GENERATE, "item-1")


@pytest.mark.asyncio
async def test_feedback_lookup_falls_back_to_render(orchestrator, set_job_state):
    render = await submitters.submit_wardrobe_item_render(orchestrator, "user-1", "item-1", "img-1")
    await set_job_state(render.data.job_id, JobStatus.SUCCEEDED, result={"image_id": "out-1"})

    found = await submitters.get_recent_item_job_for_feedback(orchestrator, "user-1", "item-1")

    assert found.data.id == render.data.job_id


@pytest.mark.asyncio
async def test_job_for_image_matches_result(orchestrator, set_job_state):
    submitted = await submitters.submit_headshot_generate(orchestrator, "user-1", "selfie-1", hair_style="bob")
    await set_job_state(submitted.data.job_id, JobStatus.SUCCEEDED, result={"generated_image_id": "head-1"})

    found = await submitters.get_recent_job_for_image(orchestrator, "user-1", JobKind.HEADSHOT_GENERATE, "head-1")
    assert found.data.id == submitted.data.job_id

    other = await submitters.get_recent_job_for_image(orchestrator, "user-1", JobKind.HEADSHOT_GENERATE, "head-2")
    assert other.data is None


@pytest.mark.parametrize(
    "preference, limit",
    [("gemini-3-pro", 7), ("ULTRA", 7), ("flash", 2), (None, 2)],
)
def test_outfit_render_item_limit(preference, limit):
    assert submitters.outfit_render_item_limit(preference) == limit
