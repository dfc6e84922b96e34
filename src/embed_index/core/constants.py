"""Central constants shared across the indexing/retrieval stack."""

from typing import Final

# Payload keys stored alongside every indexed vector.
K_RECORD_ID: Final[str] = "record_id"
K_LABEL: Final[str] = "label"
K_SOURCE: Final[str] = "source"
K_REPRESENTATIVE_PATH: Final[str] = "representative_path"
K_TEXT: Final[str] = "text"
K_IMAGE_PATHS: Final[str] = "image_paths"
K_METADATA: Final[str] = "metadata"

# Progress snapshot key.
K_DONE_IDS: Final[str] = "doneIds"

# At most this many inputs are embedded and averaged for one work item.
MAX_INPUTS_PER_ITEM: Final[int] = 5

IMAGE_EXTENSIONS: Final[frozenset[str]] = frozenset({".jpg", ".jpeg", ".png"})

# HNSW parameters applied when the ANN index is (re)built.
HNSW_M: Final[int] = 16
HNSW_EF_CONSTRUCT: Final[int] = 200
