"""comfysync: catalog sync client for ComfyUI inference backends."""

__version__ = "0.1.0"
