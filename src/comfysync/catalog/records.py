"""Resource records and the categories they belong to."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Callable, Optional


class ResourceCategory(str, Enum):
    """Independent kinds of resources a backend can offer."""
    CHECKPOINT = "checkpoint"
    CONTROLNET = "controlnet"
    LORA = "lora"
    VAE = "vae"
    SAMPLER = "sampler"
    SCHEDULER = "scheduler"
    UPSCALER_LATENT = "upscaler-latent"
    UPSCALER_MODEL = "upscaler-model"
    PREPROCESSOR = "preprocessor"
    ULTRALYTICS = "ultralytics"
    SAM = "sam"
    UNET = "unet"
    CLIP = "clip"
    CLIP_VISION = "clip-vision"
    PROMPT_EXPANSION = "prompt-expansion"


class Origin(str, Enum):
    """Where a record came from. Declaration order is precedence order."""
    LOCAL = "local"
    REMOTE = "remote"
    DOWNLOADABLE = "downloadable"


ORIGIN_PRECEDENCE = (Origin.LOCAL, Origin.REMOTE, Origin.DOWNLOADABLE)


class RecordKind(str, Enum):
    """What a record names."""
    NONE = "none"            # "no selection" placeholder
    DEFAULT = "default"      # "use the model's own" placeholder
    FILE = "file"            # model file, by path relative to its folder
    OPTION = "option"        # plain option value (sampler, scheduler, ...)


def record_id(kind: RecordKind, name: str) -> str:
    """Stable id, derived from kind and name. Independent of origin."""
    return f"{kind.value}:{name}"


@dataclass(frozen=True)
class ResourceRecord:
    """One selectable resource."""
    id: str
    name: str                  # value sent to the backend
    display_name: str
    sort_key: str
    origin: Origin
    kind: RecordKind = RecordKind.FILE
    download_url: Optional[str] = None

    @classmethod
    def file(
        cls,
        relative_path: str,
        origin: Origin,
        download_url: Optional[str] = None,
    ) -> "ResourceRecord":
        path = relative_path.replace("\\", "/")
        return cls(
            id=record_id(RecordKind.FILE, path),
            name=path,
            display_name=PurePosixPath(path).name,
            sort_key=path.lower(),
            origin=origin,
            kind=RecordKind.FILE,
            download_url=download_url,
        )

    @classmethod
    def from_local(cls, relative_path: str) -> "ResourceRecord":
        return cls.file(relative_path, Origin.LOCAL)

    @classmethod
    def from_remote(cls, name: str) -> "ResourceRecord":
        return cls.file(name, Origin.REMOTE)

    @classmethod
    def downloadable(cls, relative_path: str, url: str) -> "ResourceRecord":
        return cls.file(relative_path, Origin.DOWNLOADABLE, download_url=url)

    @classmethod
    def option(
        cls,
        name: str,
        origin: Origin,
        position: int = 0,
        display_name: Optional[str] = None,
    ) -> "ResourceRecord":
        return cls(
            id=record_id(RecordKind.OPTION, name),
            name=name,
            display_name=display_name or name,
            sort_key=f"{position:06d}",
            origin=origin,
            kind=RecordKind.OPTION,
        )

    @property
    def is_placeholder(self) -> bool:
        return self.kind in (RecordKind.NONE, RecordKind.DEFAULT)


NONE_RECORD = ResourceRecord(
    id=record_id(RecordKind.NONE, ""),
    name="",
    display_name="None",
    sort_key="",
    origin=Origin.LOCAL,
    kind=RecordKind.NONE,
)

DEFAULT_RECORD = ResourceRecord(
    id=record_id(RecordKind.DEFAULT, ""),
    name="",
    display_name="Default",
    sort_key="",
    origin=Origin.LOCAL,
    kind=RecordKind.DEFAULT,
)


# --- Equality policies ---

EqualityPolicy = Callable[[ResourceRecord, ResourceRecord], bool]


def records_equal(a: ResourceRecord, b: ResourceRecord) -> bool:
    """Exact equality, origin included."""
    return a == b


def remote_local_equal(a: ResourceRecord, b: ResourceRecord) -> bool:
    """Equality that ignores origin.

    A file reported by the backend and the same file found locally are the
    same resource; treating them as equal keeps a re-sync from churning.
    """
    return (
        a.id == b.id
        and a.name == b.name
        and a.display_name == b.display_name
        and a.kind == b.kind
    )


# --- Sort keys ---

_KIND_RANK = {RecordKind.NONE: 0, RecordKind.DEFAULT: 0}


def kind_rank(record: ResourceRecord) -> int:
    """Placeholders first, available resources next, downloadables last."""
    if record.kind in _KIND_RANK:
        return _KIND_RANK[record.kind]
    return 2 if record.origin == Origin.DOWNLOADABLE else 1


def by_name(record: ResourceRecord) -> tuple:
    return (0 if record.is_placeholder else 1, record.display_name.lower())


def by_kind(record: ResourceRecord) -> tuple:
    return (kind_rank(record), record.display_name.lower())


def by_position(record: ResourceRecord) -> tuple:
    return (kind_rank(record),)
