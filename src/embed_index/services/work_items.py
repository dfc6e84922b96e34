"""Discovery of work items from a directory tree or a row set."""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

from embed_index.core.constants import IMAGE_EXTENSIONS
from embed_index.core.exceptions import DataIntegrityError
from embed_index.core.logging import get_logger
from embed_index.core.models import EmbeddingInput, ImageRef, TextRef, WorkItem

logger = get_logger(__name__)


def iter_image_files(root: Path) -> Iterator[Path]:
    """Yield image files under ``root`` in a stable (sorted) order."""
    for path in sorted(root.rglob("*")):
        if path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS:
            yield path


def _dedupe(items: Iterable[WorkItem]) -> list[WorkItem]:
    seen: set[str] = set()
    unique: list[WorkItem] = []
    for item in items:
        if item.id in seen:
            logger.warning(f"Duplicate work item id '{item.id}'; keeping the first occurrence")
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


def discover_images(root: Path | str, source: str) -> list[WorkItem]:
    """One work item per image; id is ``<source>-<basename>``, label the parent folder name."""
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(f"Image directory not found: {root}")

    items = (
        WorkItem(
            id=f"{source}-{path.name}",
            source=source,
            label=path.parent.name,
            inputs=(ImageRef(path=str(path)),),
        )
        for path in iter_image_files(root)
    )
    discovered = _dedupe(items)
    logger.info(f"Discovered {len(discovered)} images under {root} (source={source})")
    return discovered


def items_from_rows(
    rows: Iterable[Mapping[str, Any]],
    source: str,
    *,
    id_field: str = "id",
    label_field: str = "title",
    image_paths_field: str = "image_paths",
    text_field: str | None = None,
) -> list[WorkItem]:
    """Build work items from row mappings (e.g. recipes with several photos).

    Images listed under ``image_paths_field`` come first, then the optional text.
    Any other row fields are kept as the item's metadata.
    """
    consumed = {id_field, label_field, image_paths_field, text_field}
    items: list[WorkItem] = []
    for position, row in enumerate(rows):
        raw_id = row.get(id_field)
        if raw_id is None or str(raw_id) == "":
            logger.warning(f"Row {position} has no '{id_field}'; skipping")
            continue

        inputs: list[EmbeddingInput] = []
        image_paths = row.get(image_paths_field) or []
        if isinstance(image_paths, str):
            image_paths = [image_paths]
        for image_path in image_paths:
            if not image_path:
                continue
            if str(image_path).startswith(("http://", "https://", "gs://")):
                inputs.append(ImageRef(url=str(image_path)))
            else:
                inputs.append(ImageRef(path=str(image_path)))
        if text_field and row.get(text_field):
            inputs.append(TextRef(text=str(row[text_field])))

        items.append(
            WorkItem(
                id=f"{source}-{raw_id}",
                source=source,
                label=str(row.get(label_field) or ""),
                inputs=tuple(inputs),
                metadata={k: v for k, v in row.items() if k not in consumed},
            )
        )
    return _dedupe(items)


def load_rows(path: Path | str) -> list[dict[str, Any]]:
    """Read row objects from a JSON array file or a JSON Lines file."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in {".jsonl", ".ndjson"}:
            rows = [json.loads(line) for line in text.splitlines() if line.strip()]
        else:
            rows = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DataIntegrityError(f"Malformed rows file {path}: {exc}") from exc

    if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
        raise DataIntegrityError(f"Rows file {path} must contain a list of objects")
    return rows
