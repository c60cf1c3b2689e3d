"""
Typed job inputs, one model per JobKind.

Jobs keep their input as a plain dict (the orchestrator never looks inside),
these models only shape what the submitters write and let callers validate
what they read back.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ai_jobs.domain.states import JobKind


class JobInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AutoTagInput(JobInput):
    wardrobe_item_id: str
    image_ids: list[str] = Field(default_factory=list)
    category: Optional[str] = None
    subcategory: Optional[str] = None


class ProductShotInput(JobInput):
    image_id: str
    wardrobe_item_id: str


class HeadshotGenerateInput(JobInput):
    selfie_image_id: str
    hair_style: Optional[str] = None
    makeup_style: Optional[str] = None
    # Preset variations send a complete prompt instead of style hints
    prompt_text: Optional[str] = None
    output_folder: Optional[str] = None
    skip_user_settings_update: Optional[bool] = None


class BodyShotGenerateInput(JobInput):
    body_photo_image_id: str
    headshot_image_id: Optional[str] = None


class BatchInput(JobInput):
    image_id: str = Field(alias="imageId")
    wardrobe_item_id: str
    image_ids: list[str] = Field(default_factory=list)
    tasks: list[str] = Field(default_factory=lambda: [JobKind.PRODUCT_SHOT.value, JobKind.AUTO_TAG.value])


class SelectedItem(JobInput):
    wardrobe_item_id: str
    category: str = ""


class OutfitMannequinInput(JobInput):
    user_id: str
    outfit_id: str
    selected: list[SelectedItem] = Field(default_factory=list)


class OutfitRenderInput(OutfitMannequinInput):
    mannequin_image_id: Optional[str] = None


class WardrobeItemSourceInput(JobInput):
    item_id: str
    source_image_id: str


class WardrobeItemTagInput(JobInput):
    item_id: str
    image_ids: list[str] = Field(default_factory=list)


class FreeformInput(JobInput):
    # Kinds whose executor side has no fixed contract yet
    model_config = ConfigDict(extra="allow")


INPUT_MODELS: dict[JobKind, type[JobInput]] = {
    JobKind.AUTO_TAG: AutoTagInput,
    JobKind.PRODUCT_SHOT: ProductShotInput,
    JobKind.HEADSHOT_GENERATE: HeadshotGenerateInput,
    JobKind.BODY_SHOT_GENERATE: BodyShotGenerateInput,
    JobKind.OUTFIT_SUGGEST: FreeformInput,
    JobKind.REFERENCE_MATCH: FreeformInput,
    JobKind.OUTFIT_RENDER: OutfitRenderInput,
    JobKind.OUTFIT_MANNEQUIN: OutfitMannequinInput,
    JobKind.LOOKBOOK_GENERATE: FreeformInput,
    JobKind.BATCH: BatchInput,
    JobKind.WARDROBE_ITEM_RENDER: WardrobeItemSourceInput,
    JobKind.WARDROBE_ITEM_TAG: WardrobeItemTagInput,
    JobKind.WARDROBE_ITEM_GENERATE: WardrobeItemSourceInput,
}


def parse_input(kind: JobKind, raw: dict[str, Any]) -> JobInput:
    """Validates a stored input dict against the model registered for `kind`."""
    return INPUT_MODELS[JobKind(kind)].model_validate(raw)


def dump_input(kind: JobKind, payload: Union[JobInput, dict[str, Any]]) -> dict[str, Any]:
    """
    Produces the JSON stored in `ai_jobs.input`.

    Dicts are validated first so a malformed submission fails before the row
    is created. Unset optional fields are dropped, aliases are kept.
    """
    model_cls = INPUT_MODELS[JobKind(kind)]
    if isinstance(payload, dict):
        payload = model_cls.model_validate(payload)
    elif not isinstance(payload, model_cls):
        raise TypeError(f"{type(payload).__name__} is not a valid input for {kind}")
    return payload.model_dump(mode="json", by_alias=True, exclude_none=True)
