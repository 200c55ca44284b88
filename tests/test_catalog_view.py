"""Tests for MergedCatalogView and CatalogManager."""

import threading

from comfysync.catalog import (
    NONE_RECORD,
    CatalogManager,
    CatalogSource,
    CategoryDefinition,
    MergedCatalogView,
    MergePolicy,
    Origin,
    RemoteListing,
    ResourceCategory,
    ResourceRecord,
    SortOrder,
    UpdateChannel,
    merge_records,
)
from comfysync.catalog.defaults import SAMPLERS
from comfysync.catalog.records import by_kind, by_position
from comfysync.index import ModelFolder, StaticIndex


def sources_for(category):
    return [CatalogSource(category, origin) for origin in (Origin.LOCAL, Origin.REMOTE, Origin.DOWNLOADABLE)]


class TestMergedCatalogView:
    """Tests for MergedCatalogView."""

    def test_no_duplicate_ids(self):
        """Test Local m1 wins over a downloadable m1, and m2 is kept."""
        local, remote, downloadable = sources_for(ResourceCategory.CONTROLNET)
        view = MergedCatalogView(ResourceCategory.CONTROLNET, [local, remote, downloadable], key=by_kind)

        local.diff_apply([ResourceRecord.from_local("m1")])
        downloadable.diff_apply([
            ResourceRecord.downloadable("m1", "https://x/m1"),
            ResourceRecord.downloadable("m2", "https://x/m2"),
        ])

        items = view.items
        assert [r.name for r in items] == ["m1", "m2"]
        assert [r.origin for r in items] == [Origin.LOCAL, Origin.DOWNLOADABLE]

    def test_recomputes_on_change(self):
        """Test the view follows its sources."""
        local, remote, downloadable = sources_for(ResourceCategory.CHECKPOINT)
        view = MergedCatalogView(ResourceCategory.CHECKPOINT, [local, remote, downloadable])
        notified = []
        view.subscribe(lambda v: notified.append(len(v)))

        remote.diff_apply([ResourceRecord.from_remote("b.safetensors")])
        local.diff_apply([ResourceRecord.from_local("a.safetensors")])
        remote.clear()

        assert view.names() == ["a.safetensors"]
        assert notified == [1, 2, 1]

    def test_deterministic_ordering(self):
        """Test equal primary keys fall back to sort key, then id."""
        local, remote, downloadable = sources_for(ResourceCategory.CHECKPOINT)
        remote.diff_apply([
            ResourceRecord.from_remote("z/model.safetensors"),
            ResourceRecord.from_remote("a/model.safetensors"),
            ResourceRecord.from_remote("Beta.ckpt"),
        ])
        first = merge_records([local, remote, downloadable])
        second = merge_records([downloadable, remote, local])

        assert [r.name for r in first] == ["Beta.ckpt", "a/model.safetensors", "z/model.safetensors"]
        assert [r.id for r in first] == [r.id for r in second]

    def test_position_order(self):
        """Test option categories keep their declared order."""
        local, remote, downloadable = sources_for(ResourceCategory.SAMPLER)
        view = MergedCatalogView(ResourceCategory.SAMPLER, [local, remote, downloadable], key=by_position)
        remote.diff_apply([
            ResourceRecord.option(name, Origin.REMOTE, i)
            for i, name in enumerate(["euler", "dpmpp_2m", "ddim"])
        ])
        assert view.names() == ["euler", "dpmpp_2m", "ddim"]

    def test_placeholder_first(self):
        """Test placeholders sort ahead of models."""
        local, remote, downloadable = sources_for(ResourceCategory.SAM)
        view = MergedCatalogView(ResourceCategory.SAM, [local, remote, downloadable], key=by_kind)
        remote.diff_apply([ResourceRecord.from_remote("sam_vit_b.pth")])
        local.diff_apply([NONE_RECORD])
        assert view.names() == ["None", "sam_vit_b.pth"]


class TestCatalogManager:
    """Tests for CatalogManager."""

    def test_local_only_checkpoints(self):
        """Test local checkpoints with no connection, ascending by name."""
        manager = CatalogManager()
        index = StaticIndex({ModelFolder.STABLE_DIFFUSION: ["b.safetensors", "a.safetensors"]})
        manager.reset_local(index)

        assert manager.view(ResourceCategory.CHECKPOINT).names() == ["a.safetensors", "b.safetensors"]

    def test_remote_plus_downloadable(self):
        """Test remote control nets followed by a downloadable one."""
        definition = CategoryDefinition(
            ResourceCategory.CONTROLNET,
            "ControlNet models",
            local_folders=(ModelFolder.CONTROLNET,),
            remote=(RemoteListing("ControlNetLoader", "control_net_name", "GetControlNetModelNames"),),
            downloadable=(("openpose", "https://example.com/openpose"),),
            order=SortOrder.KIND,
        )
        manager = CatalogManager(definitions=[definition])
        manager.reset_local(StaticIndex())
        manager.apply_remote(ResourceCategory.CONTROLNET, ["canny", "depth"])

        assert manager.view(ResourceCategory.CONTROLNET).names() == ["canny", "depth", "openpose"]

    def test_downloadable_excludes_available(self):
        """Test a downloadable default disappears once the file is present."""
        manager = CatalogManager()
        manager.reset_local(StaticIndex())
        sam_downloads = manager.source(ResourceCategory.SAM, Origin.DOWNLOADABLE)
        assert "file:sam_vit_b_01ec64.pth" in sam_downloads

        manager.apply_remote(ResourceCategory.SAM, ["sam_vit_b_01ec64.pth"])
        assert "file:sam_vit_b_01ec64.pth" not in sam_downloads

        manager.clear_remote()
        assert "file:sam_vit_b_01ec64.pth" in sam_downloads

    def test_builtin_defaults_and_placeholders(self):
        """Test the views are usable without a backend."""
        manager = CatalogManager()
        manager.reset_local()

        assert manager.view(ResourceCategory.SAMPLER).names()[0] == "euler"
        assert manager.view(ResourceCategory.VAE).names()[0] == "Default"
        assert manager.view(ResourceCategory.CLIP).names()[0] == "None"
        assert manager.view(ResourceCategory.CHECKPOINT).names() == []

    def test_upscaler_models_by_file_name(self):
        """Test upscaler models from several folders are named by file name."""
        manager = CatalogManager()
        index = StaticIndex({
            ModelFolder.ESRGAN: ["sub/4x-UltraSharp.pth"],
            ModelFolder.SWINIR: ["SwinIR_4x.pth"],
        })
        manager.reset_local(index)
        local = manager.source(ResourceCategory.UPSCALER_MODEL, Origin.LOCAL)
        assert local.ids() == {"file:4x-UltraSharp.pth", "file:SwinIR_4x.pth"}
        downloads = manager.source(ResourceCategory.UPSCALER_MODEL, Origin.DOWNLOADABLE)
        assert "file:4x-UltraSharp.pth" not in downloads

    def test_additive_policy(self):
        """Test an additive category keeps earlier remote records."""
        manager = CatalogManager()
        manager.apply_remote(ResourceCategory.UNET, ["flux1-dev.safetensors"])
        manager.apply_remote(ResourceCategory.UNET, ["flux1-dev-Q4_K_S.gguf"])
        remote = manager.source(ResourceCategory.UNET, Origin.REMOTE)
        assert len(remote) == 2

        manager.apply_remote(ResourceCategory.UNET, ["only.safetensors"], policy=MergePolicy.DIFF)
        assert remote.ids() == {"file:only.safetensors"}

    def test_remote_options_follow_builtins(self):
        """Test backend-only samplers come after the built-ins, in backend order."""
        manager = CatalogManager()
        manager.reset_local()
        manager.apply_remote(ResourceCategory.SAMPLER, ["zz_custom", "euler", "aa_custom"])

        names = manager.view(ResourceCategory.SAMPLER).names()
        assert names[: len(SAMPLERS)] == SAMPLERS
        assert names[len(SAMPLERS) :] == ["zz_custom", "aa_custom"]

    def test_snapshot(self):
        """Test snapshot covers every category."""
        manager = CatalogManager()
        snapshot = manager.snapshot()
        assert set(snapshot) == {c.value for c in ResourceCategory}

    def test_mutations_marshalled_to_consumer(self):
        """Test source updates run on the channel's consumer thread."""
        channel = UpdateChannel()
        channel.start()
        try:
            manager = CatalogManager(channel)
            seen = []
            manager.source(ResourceCategory.LORA, Origin.REMOTE).subscribe(
                lambda src, changes: seen.append(threading.current_thread().name)
            )
            manager.apply_remote(ResourceCategory.LORA, ["detail.safetensors"])
            assert seen == [channel.name]
        finally:
            channel.stop()
