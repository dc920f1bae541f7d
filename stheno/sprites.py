"""SVG sprite sheet builder for Stheno.

Every icon in the sprite source directory becomes a ``<symbol>`` in one
hidden inline ``<svg>``. The sheet is injected into a Jekyll include so
layouts can reference icons with ``<use xlink:href="#name">``.

Key functions:
- build_sprite: Combine icon files into sprite markup.
- inject_sprite: Replace the marked region of the include file.
- sprite_task: Task action wiring both to the pipeline configuration.
"""

from __future__ import annotations

import os
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from pathlib import Path

from .graph import TaskError

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"

INJECT_START = "<!-- inject:svg -->"
INJECT_END = "<!-- endinject -->"

# Attributes carried from each icon's root onto its symbol.
SYMBOL_ATTRIBUTES = ("viewBox", "preserveAspectRatio")

ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)


class SpriteError(TaskError):
    """Raised when an icon cannot be turned into a symbol."""


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def load_icon(path: Path) -> ET.Element:
    """Parse an icon file and return its root ``<svg>`` element.

    Raises:
        SpriteError: If the file is not well-formed or not an SVG document.
    """
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise SpriteError(f"{path}: malformed SVG ({exc})") from exc
    if _local_name(root.tag) != "svg":
        raise SpriteError(f"{path}: root element is <{_local_name(root.tag)}>, not <svg>")
    return root


def build_sprite(paths: Iterable[Path]) -> str:
    """Combine icon files into a single inline sprite sheet.

    All files are parsed before any markup is produced, so one malformed
    icon fails the whole sheet.

    Args:
        paths: Icon files; each file stem becomes its symbol id.

    Returns:
        Serialized ``<svg>`` containing one ``<symbol>`` per icon.
    """
    icons = [(path.stem, load_icon(path)) for path in paths]

    sheet = ET.Element(f"{{{SVG_NS}}}svg", {"style": "display: none;"})
    defs = ET.Element(f"{{{SVG_NS}}}defs")
    seen: set[str] = set()
    for symbol_id, icon in icons:
        if symbol_id in seen:
            raise SpriteError(f"Duplicate icon name: {symbol_id}")
        seen.add(symbol_id)

        symbol = ET.SubElement(sheet, f"{{{SVG_NS}}}symbol", {"id": symbol_id})
        for attr in SYMBOL_ATTRIBUTES:
            if attr in icon.attrib:
                symbol.set(attr, icon.attrib[attr])
        for child in list(icon):
            if _local_name(child.tag) == "defs":
                defs.extend(list(child))
            else:
                symbol.append(child)

    if len(defs):
        sheet.insert(0, defs)
    return ET.tostring(sheet, encoding="unicode")


def inject_sprite(include_path: Path, sprite: str) -> None:
    """Write the sprite into the include file in place.

    Content between ``INJECT_START`` and ``INJECT_END`` is replaced; without
    both markers the whole file becomes the sprite. The file is swapped in
    atomically.
    """
    original = include_path.read_text(encoding="utf-8") if include_path.exists() else ""
    start = original.find(INJECT_START)
    end = original.find(INJECT_END, start + len(INJECT_START)) if start != -1 else -1
    if start != -1 and end != -1:
        head = original[: start + len(INJECT_START)]
        tail = original[end:]
        content = f"{head}\n{sprite}\n{tail}"
    else:
        content = sprite + "\n"

    include_path.parent.mkdir(parents=True, exist_ok=True)
    staging = include_path.with_name(include_path.name + ".tmp")
    staging.write_text(content, encoding="utf-8")
    os.replace(staging, include_path)


def sprite_task(context) -> Path:
    """Build the sprite from the configured icon folder and inject it."""
    sprites = context.config.sprites
    if not sprites.source_dir.is_dir():
        raise SpriteError(f"Icon directory not found: {sprites.source_dir}")
    icons = sorted(sprites.source_dir.glob("*.svg"))
    sprite = build_sprite(icons)
    inject_sprite(sprites.include, sprite)
    context.log(f"Injected {len(icons)} icons into {sprites.include.name}")
    return sprites.include
