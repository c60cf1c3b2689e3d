"""
Per-kind helpers: shape a typed input, submit it, and find related jobs.

These carry no orchestration logic of their own; everything goes through
JobOrchestrator.create_and_trigger_job and the finder.
"""

from typing import Optional

from ai_jobs.domain.errors import StoreError
from ai_jobs.domain.models import AIJob, Outcome, SubmittedJob
from ai_jobs.domain.payloads import (
    AutoTagInput,
    BatchInput,
    BodyShotGenerateInput,
    HeadshotGenerateInput,
    JobInput,
    OutfitMannequinInput,
    OutfitRenderInput,
    ProductShotInput,
    SelectedItem,
    WardrobeItemSourceInput,
    WardrobeItemTagInput,
    dump_input,
)
from ai_jobs.domain.states import JobKind
from ai_jobs.services.finder import InputMatch, first_field_equals
from ai_jobs.services.orchestrator import JobOrchestrator

ITEM_ID_KEYS = ("item_id", "wardrobe_item_id")
RESULT_IMAGE_ID_KEYS = ("image_id", "generated_image_id", "output_image_id")

# Kinds whose input points at a single wardrobe item
ITEM_KINDS = (
    JobKind.PRODUCT_SHOT,
    JobKind.BATCH,
    JobKind.AUTO_TAG,
    JobKind.WARDROBE_ITEM_RENDER,
    JobKind.WARDROBE_ITEM_TAG,
    JobKind.WARDROBE_ITEM_GENERATE,
)


async def _submit(
    orchestrator: JobOrchestrator,
    owner_id: str,
    kind: JobKind,
    payload: JobInput,
    access_token: Optional[str]
) -> Outcome[SubmittedJob]:
    return await orchestrator.create_and_trigger_job(owner_id, kind, dump_input(kind, payload), access_token)


async def submit_auto_tag(
    orchestrator: JobOrchestrator,
    owner_id: str,
    wardrobe_item_id: str,
    image_ids: list[str],
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    access_token: Optional[str] = None,
) -> Outcome[SubmittedJob]:
    payload = AutoTagInput(
        wardrobe_item_id=wardrobe_item_id,
        image_ids=image_ids,
        category=category or None,
        subcategory=subcategory or None,
    )
    return await _submit(orchestrator, owner_id, JobKind.AUTO_TAG, payload, access_token)


async def submit_product_shot(
    orchestrator: JobOrchestrator,
    owner_id: str,
    image_id: str,
    wardrobe_item_id: str,
    access_token: Optional[str] = None,
) -> Outcome[SubmittedJob]:
    payload = ProductShotInput(image_id=image_id, wardrobe_item_id=wardrobe_item_id)
    return await _submit(orchestrator, owner_id, JobKind.PRODUCT_SHOT, payload, access_token)


async def submit_headshot_generate(
    orchestrator: JobOrchestrator,
    owner_id: str,
    selfie_image_id: str,
    hair_style: Optional[str] = None,
    makeup_style: Optional[str] = None,
    prompt_text: Optional[str] = None,
    output_folder: Optional[str] = None,
    skip_user_settings_update: Optional[bool] = None,
    access_token: Optional[str] = None,
) -> Outcome[SubmittedJob]:
    payload = HeadshotGenerateInput(
        selfie_image_id=selfie_image_id,
        hair_style=hair_style,
        makeup_style=makeup_style,
        prompt_text=prompt_text,
        output_folder=output_folder,
        skip_user_settings_update=skip_user_settings_update,
    )
    return await _submit(orchestrator, owner_id, JobKind.HEADSHOT_GENERATE, payload, access_token)


async def submit_body_shot_generate(
    orchestrator: JobOrchestrator,
    owner_id: str,
    body_photo_image_id: str,
    headshot_image_id: Optional[str] = None,
    access_token: Optional[str] = None,
) -> Outcome[SubmittedJob]:
    # Without a headshot the executor falls back to the user's active one
    payload = BodyShotGenerateInput(body_photo_image_id=body_photo_image_id, headshot_image_id=headshot_image_id)
    return await _submit(orchestrator, owner_id, JobKind.BODY_SHOT_GENERATE, payload, access_token)


async def submit_batch(
    orchestrator: JobOrchestrator,
    owner_id: str,
    image_id: str,
    wardrobe_item_id: str,
    image_ids: list[str],
    access_token: Optional[str] = None,
) -> Outcome[SubmittedJob]:
    """Product shot and auto tag in one job, sharing a single image download."""
    payload = BatchInput(image_id=image_id, wardrobe_item_id=wardrobe_item_id, image_ids=image_ids)
    return await _submit(orchestrator, owner_id, JobKind.BATCH, payload, access_token)


async def submit_outfit_mannequin(
    orchestrator: JobOrchestrator,
    owner_id: str,
    outfit_id: str,
    selected: list[SelectedItem],
    access_token: Optional[str] = None,
) -> Outcome[SubmittedJob]:
    payload = OutfitMannequinInput(user_id=owner_id, outfit_id=outfit_id, selected=selected)
    return await _submit(orchestrator, owner_id, JobKind.OUTFIT_MANNEQUIN, payload, access_token)


async def submit_outfit_render(
    orchestrator: JobOrchestrator,
    owner_id: str,
    outfit_id: str,
    selected: list[SelectedItem],
    mannequin_image_id: Optional[str] = None,
    access_token: Optional[str] = None,
) -> Outcome[SubmittedJob]:
    payload = OutfitRenderInput(
        user_id=owner_id,
        outfit_id=outfit_id,
        selected=selected,
        mannequin_image_id=mannequin_image_id,
    )
    return await _submit(orchestrator, owner_id, JobKind.OUTFIT_RENDER, payload, access_token)


async def submit_wardrobe_item_render(
    orchestrator: JobOrchestrator,
    owner_id: str,
    item_id: str,
    source_image_id: str,
    access_token: Optional[str] = None,
) -> Outcome[SubmittedJob]:
    payload = WardrobeItemSourceInput(item_id=item_id, source_image_id=source_image_id)
    return await _submit(orchestrator, owner_id, JobKind.WARDROBE_ITEM_RENDER, payload, access_token)


async def submit_wardrobe_item_tag(
    orchestrator: JobOrchestrator,
    owner_id: str,
    item_id: str,
    image_ids: list[str],
    access_token: Optional[str] = None,
) -> Outcome[SubmittedJob]:
    payload = WardrobeItemTagInput(item_id=item_id, image_ids=image_ids)
    return await _submit(orchestrator, owner_id, JobKind.WARDROBE_ITEM_TAG, payload, access_token)


async def submit_wardrobe_item_generate(
    orchestrator: JobOrchestrator,
    owner_id: str,
    item_id: str,
    source_image_id: str,
    access_token: Optional[str] = None,
) -> Outcome[SubmittedJob]:
    payload = WardrobeItemSourceInput(item_id=item_id, source_image_id=source_image_id)
    return await _submit(orchestrator, owner_id, JobKind.WARDROBE_ITEM_GENERATE, payload, access_token)


async def get_active_item_job(
    orchestrator: JobOrchestrator,
    owner_id: str,
    kind: JobKind,
    item_id: str,
) -> Outcome[AIJob]:
    if kind not in ITEM_KINDS:
        raise ValueError(f"{kind} jobs are not scoped to a wardrobe item")
    return await orchestrator.get_active_job(owner_id, kind, first_field_equals(ITEM_ID_KEYS, item_id))


async def get_recent_item_job(
    orchestrator: JobOrchestrator,
    owner_id: str,
    kind: JobKind,
    item_id: str,
) -> Outcome[AIJob]:
    if kind not in ITEM_KINDS:
        raise ValueError(f"{kind} jobs are not scoped to a wardrobe item")
    return await orchestrator.get_recent_job(owner_id, kind, first_field_equals(ITEM_ID_KEYS, item_id))


async def get_active_wardrobe_item_job(
    orchestrator: JobOrchestrator,
    owner_id: str,
    item_id: str,
) -> Outcome[AIJob]:
    """Prefers an in-flight unified generate job over a render-only one."""
    generate = await get_active_item_job(orchestrator, owner_id, JobKind.WARDROBE_ITEM_GENERATE, item_id)
    if generate.error is not None or generate.data is not None:
        return generate
    return await get_active_item_job(orchestrator, owner_id, JobKind.WARDROBE_ITEM_RENDER, item_id)


async def get_active_outfit_render_job(
    orchestrator: JobOrchestrator,
    owner_id: str,
    outfit_id: str,
) -> Outcome[AIJob]:
    return await orchestrator.get_active_job(owner_id, JobKind.OUTFIT_RENDER, InputMatch(outfit_id=outfit_id))


async def get_recent_outfit_render_job(
    orchestrator: JobOrchestrator,
    owner_id: str,
    outfit_id: str,
) -> Outcome[AIJob]:
    return await orchestrator.get_recent_job(owner_id, JobKind.OUTFIT_RENDER, InputMatch(outfit_id=outfit_id))


async def get_recent_item_job_for_feedback(
    orchestrator: JobOrchestrator,
    owner_id: str,
    item_id: str,
) -> Outcome[AIJob]:
    """Latest succeeded generate (then render) job for an item within the feedback window."""
    try:
        job = await orchestrator.finder.find_latest_succeeded(
            owner_id,
            (JobKind.WARDROBE_ITEM_GENERATE, JobKind.WARDROBE_ITEM_RENDER),
            first_field_equals(ITEM_ID_KEYS, item_id),
        )
    except StoreError as e:
        return Outcome.failure(e)
    return Outcome.success(job)


async def get_recent_job_for_image(
    orchestrator: JobOrchestrator,
    owner_id: str,
    kind: JobKind,
    image_id: str,
) -> Outcome[AIJob]:
    """Succeeded headshot/body shot job whose result produced `image_id`."""
    if kind not in (JobKind.HEADSHOT_GENERATE, JobKind.BODY_SHOT_GENERATE):
        raise ValueError(f"{kind} jobs do not produce profile images")
    try:
        job = await orchestrator.finder.find_latest_succeeded(
            owner_id,
            kind,
            first_field_equals(RESULT_IMAGE_ID_KEYS, image_id),
            limit=orchestrator.settings.FEEDBACK_IMAGE_LOOKUP_LIMIT,
            match_on="result",
        )
    except StoreError as e:
        return Outcome.failure(e)
    return Outcome.success(job)


def outfit_render_item_limit(model_preference: Optional[str]) -> int:
    """How many items one render call can take; larger outfits need a mannequin pass first."""
    normalized = (model_preference or "").lower()
    if "pro" in normalized or "ultra" in normalized:
        return 7
    return 2
