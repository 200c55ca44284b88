"""Tests for the local model index."""

from comfysync.index import (
    DirectoryModelIndex,
    IndexEvents,
    LocalModelFile,
    ModelFolder,
    StaticIndex,
)


def touch(path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")


class TestDirectoryModelIndex:
    """Tests for DirectoryModelIndex."""

    def test_scans_model_files(self, tmp_path):
        """Test nested model files are found by relative path."""
        touch(tmp_path / "StableDiffusion" / "sdxl" / "juggernaut.safetensors")
        touch(tmp_path / "StableDiffusion" / "v1.ckpt")
        touch(tmp_path / "Lora" / "detail.safetensors")

        index = DirectoryModelIndex(tmp_path)
        files = index.find_by_folders([ModelFolder.STABLE_DIFFUSION])

        assert [f.relative_path for f in files] == ["sdxl/juggernaut.safetensors", "v1.ckpt"]
        assert files[0].file_name == "juggernaut.safetensors"
        assert files[0].folder == ModelFolder.STABLE_DIFFUSION

    def test_skips_hidden_and_other_files(self, tmp_path):
        """Test hidden entries and non-model files are ignored."""
        touch(tmp_path / "Lora" / ".hidden.safetensors")
        touch(tmp_path / "Lora" / ".cache" / "x.safetensors")
        touch(tmp_path / "Lora" / "preview.png")
        touch(tmp_path / "Lora" / "style.safetensors")

        files = DirectoryModelIndex(tmp_path).find_by_folders([ModelFolder.LORA])
        assert [f.relative_path for f in files] == ["style.safetensors"]

    def test_missing_root(self, tmp_path):
        """Test a missing models directory yields no files."""
        index = DirectoryModelIndex(tmp_path / "nope")
        assert index.find_by_folders(list(ModelFolder)) == []

    def test_refresh_emits(self, tmp_path):
        """Test refresh picks up new files and notifies subscribers."""
        events = IndexEvents()
        calls = []
        events.subscribe(lambda: calls.append(1))
        index = DirectoryModelIndex(tmp_path, events)
        assert index.find_by_folders([ModelFolder.VAE]) == []

        touch(tmp_path / "VAE" / "vae-ft-mse.safetensors")
        assert index.find_by_folders([ModelFolder.VAE]) == []

        index.refresh()
        assert [f.relative_path for f in index.find_by_folders([ModelFolder.VAE])] == [
            "vae-ft-mse.safetensors"
        ]
        assert calls == [1]


class TestIndexEvents:
    """Tests for IndexEvents."""

    def test_failing_listener_does_not_block_others(self):
        """Test one failing listener does not stop the rest."""
        events = IndexEvents()
        calls = []

        def broken():
            raise RuntimeError("listener bug")

        events.subscribe(broken)
        events.subscribe(lambda: calls.append("ok"))
        events.emit()
        assert calls == ["ok"]

    def test_unsubscribe(self):
        events = IndexEvents()
        calls = []
        unsubscribe = events.subscribe(lambda: calls.append(1))
        unsubscribe()
        events.emit()
        assert calls == []


class TestStaticIndex:
    """Tests for StaticIndex."""

    def test_find_by_folders(self):
        index = StaticIndex({
            ModelFolder.ESRGAN: ["4x.pth"],
            ModelFolder.SWINIR: ["swin.pth"],
        })
        assert index.find_by_folders([ModelFolder.SWINIR, ModelFolder.ESRGAN]) == [
            LocalModelFile("swin.pth", ModelFolder.SWINIR),
            LocalModelFile("4x.pth", ModelFolder.ESRGAN),
        ]
