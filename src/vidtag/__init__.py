"""
vidtag - batch metadata editing for video files.
"""

__version__ = "0.3.0"
__description__ = "Batch-edit video metadata with Mutagen and external-tool fallback"

__all__ = ["__version__", "__description__"]
