"""Local model index.

Scans ``models_dir/<Folder>/**`` for model files and announces changes on an
injected :class:`IndexEvents` channel.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

MODEL_EXTENSIONS = {
    ".safetensors", ".ckpt", ".pt", ".pth", ".bin", ".gguf", ".sft", ".onnx",
}


class ModelFolder(str, Enum):
    """Shared model folders, by directory name."""
    STABLE_DIFFUSION = "StableDiffusion"
    CONTROLNET = "ControlNet"
    LORA = "Lora"
    LYCORIS = "LyCORIS"
    VAE = "VAE"
    ESRGAN = "ESRGAN"
    REAL_ESRGAN = "RealESRGAN"
    SWINIR = "SwinIR"
    ULTRALYTICS = "Ultralytics"
    SAMS = "Sams"
    DIFFUSION_MODELS = "DiffusionModels"
    TEXT_ENCODERS = "TextEncoders"
    CLIP_VISION = "ClipVision"
    PROMPT_EXPANSION = "PromptExpansion"


@dataclass(frozen=True)
class LocalModelFile:
    """A model file, by path relative to its shared folder."""
    relative_path: str
    folder: ModelFolder

    @property
    def file_name(self) -> str:
        return PurePosixPath(self.relative_path).name


class IndexEvents:
    """Channel for "local index changed" notifications.

    Held by whoever needs it, passed at construction.
    """

    def __init__(self) -> None:
        self._listeners: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Index change listener failed")


class LocalIndex:
    """Source of locally available model files."""

    def find_by_folders(self, folders: Iterable[ModelFolder]) -> List[LocalModelFile]:
        raise NotImplementedError


class StaticIndex(LocalIndex):
    """Index over a fixed mapping, for callers that already know their files."""

    def __init__(self, files: Optional[Dict[ModelFolder, List[str]]] = None):
        self.files: Dict[ModelFolder, List[str]] = dict(files or {})

    def find_by_folders(self, folders: Iterable[ModelFolder]) -> List[LocalModelFile]:
        return [
            LocalModelFile(path, folder)
            for folder in folders
            for path in self.files.get(folder, [])
        ]


class DirectoryModelIndex(LocalIndex):
    """Filesystem index rooted at ``models_dir``."""

    def __init__(self, root: Path, events: Optional[IndexEvents] = None):
        self.root = Path(root).expanduser()
        self.events = events
        self._cache: Dict[ModelFolder, List[LocalModelFile]] = {}
        self._lock = threading.Lock()
        self._scanned = False

    def _scan_folder(self, folder: ModelFolder) -> List[LocalModelFile]:
        base = self.root / folder.value
        if not base.is_dir():
            return []

        results: List[LocalModelFile] = []
        for path in sorted(base.rglob("*")):
            if not path.is_file():
                continue
            rel_parts = path.relative_to(base).parts
            # Skip hidden files and hidden directories (.cache/ and the like)
            if any(part.startswith(".") for part in rel_parts):
                continue
            if path.suffix.lower() not in MODEL_EXTENSIONS:
                continue
            results.append(LocalModelFile("/".join(rel_parts), folder))
        return results

    def refresh(self) -> None:
        """Rescan every folder and notify subscribers."""
        cache = {folder: self._scan_folder(folder) for folder in ModelFolder}
        with self._lock:
            self._cache = cache
            self._scanned = True
        logger.debug(
            "Indexed %d model file(s) under %s",
            sum(len(v) for v in cache.values()),
            self.root,
        )
        if self.events is not None:
            self.events.emit()

    def find_by_folders(self, folders: Iterable[ModelFolder]) -> List[LocalModelFile]:
        with self._lock:
            scanned = self._scanned
        if not scanned:
            cache = {folder: self._scan_folder(folder) for folder in ModelFolder}
            with self._lock:
                self._cache = cache
                self._scanned = True

        with self._lock:
            return [f for folder in folders for f in self._cache.get(folder, [])]
