"""
Download naming for finished results.

Packaging (ZIP, browser download) happens elsewhere; this module only decides
what each exported file is called.
"""

import re
from pathlib import PurePath
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

DEFAULT_FILENAME_TEMPLATE = "{set_id}_{original_filename}_{timestamp}_{version_index}"


def sanitize_filename(name: str) -> str:
    """Whitespace becomes '-', anything outside [A-Za-z0-9-._] is dropped."""
    return re.sub(r'[^a-zA-Z0-9\-._]', '', re.sub(r'\s+', '-', name))


def _base_name(filename: str) -> str:
    stem = PurePath(filename).stem
    if stem.startswith("cropped_"):
        stem = stem[len("cropped_"):]
    return sanitize_filename(stem)


def build_download_filename(result, template: str, source_names: Sequence[str],
                            set_id: str = "", extension: Optional[str] = None,
                            short_ids: Optional[Sequence[str]] = None) -> str:
    """
    Fill a filename template for one result.

    Placeholders: {timestamp}, {set_id}, {original_filename}, {source_count},
    {version_index}, {short_id}.

    Args:
        result: GenerationResult (uses its key and kind)
        template: Filename template without extension
        source_names: Original filenames of the batch's source items
        set_id: Free-form set identifier
        extension: File extension; png for images and mp4 for videos by default
        short_ids: Optional short ids per source item
    """
    if extension is None:
        extension = "mp4" if getattr(result.kind, "value", result.kind) == "video" else "png"

    source_index = result.key.source_index
    if source_index >= len(source_names):
        return f"generated.{extension}"

    if len(source_names) == 1:
        source_reference = _base_name(source_names[0])
    else:
        source_reference = f"{len(source_names)}src"
    short_id = short_ids[source_index] if short_ids and source_index < len(short_ids) else ""

    filename = (template
                .replace("{timestamp}", str(result.key.batch_timestamp))
                .replace("{set_id}", set_id)
                .replace("{original_filename}", source_reference)
                .replace("{source_count}", str(len(source_names)))
                .replace("{version_index}", str(result.key.variant_index + 1))
                .replace("{short_id}", short_id))
    return f"{filename}.{extension}"


def build_manifest(results: Iterable, template: str, source_names: Sequence[str],
                   set_id: str = "", short_ids: Optional[Sequence[str]] = None) -> List[Tuple[str, str]]:
    """
    (filename, url) pairs for every successful result, with unique filenames.
    """
    manifest = []
    seen: Dict[str, int] = {}
    for result in results:
        if result.url is None:
            continue
        filename = build_download_filename(result, template, source_names, set_id, short_ids=short_ids)
        count = seen.get(filename, 0) + 1
        seen[filename] = count
        if count > 1:
            path = PurePath(filename)
            filename = f"{path.stem}_{count}{path.suffix}"
        manifest.append((filename, result.url))
    return manifest
