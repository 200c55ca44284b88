"""Built-in option lists and the downloadable-defaults catalog.

The option lists are what a stock ComfyUI install offers, so the views are
usable before a backend is connected. Downloadable entries are models the user
does not have yet but can fetch; each carries its download URL.
"""

from __future__ import annotations

from typing import List, Tuple

HF_BASE = "https://huggingface.co"


def huggingface_url(repo: str, path: str) -> str:
    return f"{HF_BASE}/{repo}/resolve/main/{path}"


SAMPLERS: List[str] = [
    "euler",
    "euler_ancestral",
    "heun",
    "heunpp2",
    "dpm_2",
    "dpm_2_ancestral",
    "lms",
    "dpm_fast",
    "dpm_adaptive",
    "dpmpp_2s_ancestral",
    "dpmpp_sde",
    "dpmpp_sde_gpu",
    "dpmpp_2m",
    "dpmpp_2m_sde",
    "dpmpp_2m_sde_gpu",
    "dpmpp_3m_sde",
    "dpmpp_3m_sde_gpu",
    "ddpm",
    "lcm",
    "ddim",
    "uni_pc",
    "uni_pc_bh2",
]

SCHEDULERS: List[str] = [
    "normal",
    "karras",
    "exponential",
    "sgm_uniform",
    "simple",
    "ddim_uniform",
    "beta",
]

LATENT_UPSCALE_METHODS: List[str] = [
    "nearest-exact",
    "bilinear",
    "area",
    "bicubic",
    "bislerp",
]

# Preprocessors of the Inference_Core_AIO_Preprocessor node.
PREPROCESSORS: List[str] = [
    "none",
    "CannyEdgePreprocessor",
    "DepthAnythingPreprocessor",
    "MiDaS-DepthMapPreprocessor",
    "Zoe-DepthMapPreprocessor",
    "LineArtPreprocessor",
    "AnimeLineArtPreprocessor",
    "HEDPreprocessor",
    "PiDiNetPreprocessor",
    "ScribblePreprocessor",
    "M-LSDPreprocessor",
    "OpenposePreprocessor",
    "DWPreprocessor",
    "BAE-NormalMapPreprocessor",
    "OneFormer-ADE20K-SemSegPreprocessor",
    "Tile",
]

# (relative path, download url)
Downloadable = Tuple[str, str]

_CONTROLNET_REPO = "comfyanonymous/ControlNet-v1-1_fp16_safetensors"

CONTROLNET_MODELS: List[Downloadable] = [
    (name, huggingface_url(_CONTROLNET_REPO, name))
    for name in (
        "control_v11p_sd15_canny_fp16.safetensors",
        "control_v11f1p_sd15_depth_fp16.safetensors",
        "control_v11p_sd15_lineart_fp16.safetensors",
        "control_v11p_sd15_openpose_fp16.safetensors",
        "control_v11p_sd15_scribble_fp16.safetensors",
        "control_v11p_sd15_softedge_fp16.safetensors",
        "control_v11u_sd15_tile_fp16.safetensors",
        "control_v11p_sd15_inpaint_fp16.safetensors",
    )
]

UPSCALER_MODELS: List[Downloadable] = [
    ("RealESRGAN_x4plus.pth", huggingface_url("lllyasviel/Annotators", "RealESRGAN_x4plus.pth")),
    (
        "RealESRGAN_x4plus_anime_6B.pth",
        huggingface_url("ai-forever/Real-ESRGAN", "RealESRGAN_x4plus_anime_6B.pth"),
    ),
    ("4x-UltraSharp.pth", huggingface_url("Kim2091/UltraSharp", "4x-UltraSharp.pth")),
]

ULTRALYTICS_MODELS: List[Downloadable] = [
    ("bbox/face_yolov8m.pt", huggingface_url("Bingsu/adetailer", "face_yolov8m.pt")),
    ("bbox/hand_yolov8s.pt", huggingface_url("Bingsu/adetailer", "hand_yolov8s.pt")),
    ("segm/person_yolov8m-seg.pt", huggingface_url("Bingsu/adetailer", "person_yolov8m-seg.pt")),
]

SAM_MODELS: List[Downloadable] = [
    ("sam_vit_b_01ec64.pth", "https://dl.fbaipublicfiles.com/segment_anything/sam_vit_b_01ec64.pth"),
    ("sam_vit_l_0b3195.pth", "https://dl.fbaipublicfiles.com/segment_anything/sam_vit_l_0b3195.pth"),
    ("sam_vit_h_4b8939.pth", "https://dl.fbaipublicfiles.com/segment_anything/sam_vit_h_4b8939.pth"),
]

CLIP_MODELS: List[Downloadable] = [
    ("clip_l.safetensors", huggingface_url("comfyanonymous/flux_text_encoders", "clip_l.safetensors")),
    ("t5xxl_fp16.safetensors", huggingface_url("comfyanonymous/flux_text_encoders", "t5xxl_fp16.safetensors")),
    (
        "t5xxl_fp8_e4m3fn.safetensors",
        huggingface_url("comfyanonymous/flux_text_encoders", "t5xxl_fp8_e4m3fn.safetensors"),
    ),
]

CLIP_VISION_MODELS: List[Downloadable] = [
    ("clip_vision_g.safetensors", huggingface_url("comfyanonymous/clip_vision_g", "clip_vision_g.safetensors")),
    (
        "sigclip_vision_patch14_384.safetensors",
        huggingface_url("Comfy-Org/sigclip_vision_384", "sigclip_vision_patch14_384.safetensors"),
    ),
]

PROMPT_EXPANSION_MODELS: List[Downloadable] = [
    (
        "fooocus_expansion/pytorch_model.bin",
        huggingface_url("lllyasviel/misc", "fooocus_expansion/pytorch_model.bin"),
    ),
]
