"""Per-category declarations: where records come from and how they are ordered."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..index import ModelFolder
from . import defaults
from .records import (
    DEFAULT_RECORD,
    NONE_RECORD,
    RecordKind,
    ResourceCategory,
    ResourceRecord,
    by_kind,
    by_name,
    by_position,
)


class MergePolicy(str, Enum):
    """How a remote listing is applied to the category's Remote source."""
    DIFF = "diff"          # contents become exactly the listing
    ADDITIVE = "additive"  # listing is added; nothing is removed


class SortOrder(str, Enum):
    NAME = "name"
    KIND = "kind"
    POSITION = "position"


SORT_KEYS = {
    SortOrder.NAME: by_name,
    SortOrder.KIND: by_kind,
    SortOrder.POSITION: by_position,
}


@dataclass(frozen=True)
class RemoteListing:
    """One option-listing call.

    ``required=False`` means the node may be absent from the backend (an
    extension that is not installed); absence then yields an empty list.
    """
    node_type: str
    param_name: str
    operation: str
    required: bool = True


@dataclass(frozen=True)
class CategoryDefinition:
    category: ResourceCategory
    label: str
    record_kind: RecordKind = RecordKind.FILE
    local_folders: Tuple[ModelFolder, ...] = ()
    # Local records named by file name rather than relative path
    local_by_file_name: bool = False
    # First listing is the base; later ones are variants appended to it
    remote: Tuple[RemoteListing, ...] = ()
    merge: MergePolicy = MergePolicy.DIFF
    placeholder: Optional[ResourceRecord] = None
    builtin: Tuple[str, ...] = ()
    downloadable: Tuple[defaults.Downloadable, ...] = field(default_factory=tuple)
    order: SortOrder = SortOrder.NAME

    @property
    def sort_key(self):
        return SORT_KEYS[self.order]

    @property
    def is_remote_backed(self) -> bool:
        return bool(self.remote)


# Declaration order is sync order.
CATEGORY_DEFINITIONS: List[CategoryDefinition] = [
    CategoryDefinition(
        ResourceCategory.CHECKPOINT,
        "Models",
        local_folders=(ModelFolder.STABLE_DIFFUSION,),
        remote=(RemoteListing("CheckpointLoaderSimple", "ckpt_name", "GetModelNames"),),
    ),
    CategoryDefinition(
        ResourceCategory.CONTROLNET,
        "ControlNet models",
        local_folders=(ModelFolder.CONTROLNET,),
        remote=(RemoteListing("ControlNetLoader", "control_net_name", "GetControlNetModelNames"),),
        downloadable=tuple(defaults.CONTROLNET_MODELS),
        order=SortOrder.KIND,
    ),
    CategoryDefinition(
        ResourceCategory.LORA,
        "LoRA models",
        local_folders=(ModelFolder.LORA, ModelFolder.LYCORIS),
        remote=(RemoteListing("LoraLoader", "lora_name", "GetLoraModelNames"),),
        order=SortOrder.KIND,
    ),
    CategoryDefinition(
        ResourceCategory.VAE,
        "VAE models",
        local_folders=(ModelFolder.VAE,),
        remote=(RemoteListing("VAELoader", "vae_name", "GetVaeModelNames"),),
        placeholder=DEFAULT_RECORD,
        order=SortOrder.KIND,
    ),
    CategoryDefinition(
        ResourceCategory.ULTRALYTICS,
        "Ultralytics models",
        local_folders=(ModelFolder.ULTRALYTICS,),
        remote=(
            RemoteListing(
                "UltralyticsDetectorProvider", "model_name", "GetUltralyticsModelNames", required=False
            ),
        ),
        placeholder=NONE_RECORD,
        downloadable=tuple(defaults.ULTRALYTICS_MODELS),
        order=SortOrder.KIND,
    ),
    CategoryDefinition(
        ResourceCategory.SAM,
        "SAM models",
        local_folders=(ModelFolder.SAMS,),
        remote=(RemoteListing("SAMLoader", "model_name", "GetSamModelNames", required=False),),
        placeholder=NONE_RECORD,
        downloadable=tuple(defaults.SAM_MODELS),
        order=SortOrder.KIND,
    ),
    CategoryDefinition(
        ResourceCategory.PROMPT_EXPANSION,
        "Prompt expansion models",
        local_folders=(ModelFolder.PROMPT_EXPANSION,),
        downloadable=tuple(defaults.PROMPT_EXPANSION_MODELS),
        order=SortOrder.KIND,
    ),
    CategoryDefinition(
        ResourceCategory.SAMPLER,
        "Samplers",
        record_kind=RecordKind.OPTION,
        remote=(RemoteListing("KSampler", "sampler_name", "GetSamplerNames"),),
        builtin=tuple(defaults.SAMPLERS),
        order=SortOrder.POSITION,
    ),
    CategoryDefinition(
        ResourceCategory.UPSCALER_LATENT,
        "Latent upscale methods",
        record_kind=RecordKind.OPTION,
        remote=(RemoteListing("LatentUpscale", "upscale_method", "GetLatentUpscaleMethods"),),
        builtin=tuple(defaults.LATENT_UPSCALE_METHODS),
    ),
    CategoryDefinition(
        ResourceCategory.UPSCALER_MODEL,
        "Upscale models",
        local_folders=(ModelFolder.ESRGAN, ModelFolder.REAL_ESRGAN, ModelFolder.SWINIR),
        local_by_file_name=True,
        remote=(RemoteListing("UpscaleModelLoader", "model_name", "GetUpscalerModelNames"),),
        downloadable=tuple(defaults.UPSCALER_MODELS),
        order=SortOrder.KIND,
    ),
    CategoryDefinition(
        ResourceCategory.SCHEDULER,
        "Schedulers",
        record_kind=RecordKind.OPTION,
        remote=(RemoteListing("KSampler", "scheduler", "GetSchedulerNames"),),
        merge=MergePolicy.ADDITIVE,
        builtin=tuple(defaults.SCHEDULERS),
        order=SortOrder.POSITION,
    ),
    CategoryDefinition(
        ResourceCategory.PREPROCESSOR,
        "Preprocessors",
        record_kind=RecordKind.OPTION,
        remote=(
            RemoteListing(
                "Inference_Core_AIO_Preprocessor", "preprocessor", "GetPreprocessorNames", required=False
            ),
        ),
        builtin=tuple(defaults.PREPROCESSORS),
        order=SortOrder.POSITION,
    ),
    CategoryDefinition(
        ResourceCategory.UNET,
        "UNet models",
        local_folders=(ModelFolder.DIFFUSION_MODELS,),
        remote=(
            RemoteListing("UNETLoader", "unet_name", "GetUnetModelNames"),
            RemoteListing("UnetLoaderGGUF", "unet_name", "GetUnetGGUFModelNames", required=False),
        ),
        merge=MergePolicy.ADDITIVE,
    ),
    CategoryDefinition(
        ResourceCategory.CLIP,
        "CLIP models",
        local_folders=(ModelFolder.TEXT_ENCODERS,),
        remote=(
            RemoteListing("DualCLIPLoader", "clip_name1", "GetClipModelNames"),
            RemoteListing("DualCLIPLoaderGGUF", "clip_name1", "GetClipGGUFModelNames", required=False),
        ),
        placeholder=NONE_RECORD,
        downloadable=tuple(defaults.CLIP_MODELS),
    ),
    CategoryDefinition(
        ResourceCategory.CLIP_VISION,
        "CLIP vision models",
        local_folders=(ModelFolder.CLIP_VISION,),
        remote=(RemoteListing("CLIPVisionLoader", "clip_name", "GetClipVisionModelNames"),),
        placeholder=NONE_RECORD,
        downloadable=tuple(defaults.CLIP_VISION_MODELS),
    ),
]

DEFINITIONS_BY_CATEGORY: Dict[ResourceCategory, CategoryDefinition] = {
    d.category: d for d in CATEGORY_DEFINITIONS
}

SYNC_ORDER: List[ResourceCategory] = [d.category for d in CATEGORY_DEFINITIONS if d.is_remote_backed]


def get_definition(category: ResourceCategory) -> CategoryDefinition:
    return DEFINITIONS_BY_CATEGORY[ResourceCategory(category)]
