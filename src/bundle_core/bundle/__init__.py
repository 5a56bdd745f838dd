"""
Image bundle container.

A bundle stores a sequence of validated images as an index file plus a
data file (``<path>.dat``). Bundles are append-only while open for
writing; ``append_bundle`` concatenates a whole bundle with a single
stream copy, which is what makes merging worker shards cheap.
"""

from bundle_core.bundle.bundle import (
    Bundle,
    BundleMode,
    StoredImage,
    delete_bundle,
    open_bundle,
)
from bundle_core.bundle.format import (
    DATA_SUFFIX,
    ImageType,
    IndexRecord,
    bundle_data_path,
)

__all__ = [
    "Bundle",
    "BundleMode",
    "StoredImage",
    "ImageType",
    "IndexRecord",
    "DATA_SUFFIX",
    "bundle_data_path",
    "delete_bundle",
    "open_bundle",
]
