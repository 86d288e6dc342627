#!/usr/bin/env python3
# Copyright (C) 2026  Lesco Design & Mfg. Co., Inc.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""
Icon Sprite Packer — Shelf Bin Packing + JSON/PNG Sprite Output
================================================================
Packs a set of SVG icons into a single atlas image ("sprite") for map
rendering clients, together with a JSON manifest of per-icon offsets.

Architecture
------------
  deduplicate()          Collapse byte-identical icons onto one representative
                           while remembering every id that pointed to it.
  rasterize_icons()      Rasterize every distinct icon concurrently
                           (CairoSVG), failing fast on the first error.
  ShelfBinPacker         Deterministic shelf (row) packing on a canvas that
                           grows on demand.
  assemble_*_layout()    Turn the packed sprite into a DataLayout (JSON
                           manifest) or an ImgLayout (ready to composite).
  generate_image()       Composite an ImgLayout into a PNG via Pillow.
  LayoutPreview          Render an ImgLayout as an annotated SVG (svgwrite).

Usage
-----
    python sprite_packer.py output/sprite icons/
    python sprite_packer.py output/sprite icons/ --retina --unique
    python sprite_packer.py output/sprite icons/ --ratio 3 --preview

Output Files
------------
    <prefix>.json   DataLayout manifest: id -> {width, height, x, y, pixelRatio}
    <prefix>.png    Composited sprite image
    <prefix>.svg    Optional layout preview (--preview)

    A pixel ratio other than 1 adds a suffix, e.g. sprite@2x.json.

Dependencies
------------
    Required : cairosvg, Pillow, svgwrite
"""

import argparse
import base64
import configparser
import io
import json
import math
import numbers
import os
import sys
from collections.abc import Mapping
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import svgwrite
from PIL import Image

# ============================================================================
# ERRORS
# ============================================================================

class SpriteError(Exception):
    """Base class for every failure raised while building a sprite."""


class InvalidInput(SpriteError, ValueError):
    """Malformed arguments, rejected before any work begins."""


class RasterizationFailure(SpriteError):
    """An icon could not be rasterized; the whole operation is aborted."""


class InvalidDimension(SpriteError, ValueError):
    """A rectangle handed to the packer has a non-positive width or height."""


class CompositionFailure(SpriteError):
    """The sprite image could not be composited from its layout."""


# ============================================================================
# CONFIGURATION
# ============================================================================

CONFIG_DEFAULTS = {
    'pixel_ratio': '1',
    'unique':      'false',
    'workers':     '8',
    'outline':     '#f44336',
    'label':       '#0000ff',
}

CONFIG_SECTIONS = ('sprite', 'render', 'preview')

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)),
                                   'sprite_packer.conf')


def load_config(path: Optional[str] = None) -> configparser.ConfigParser:
    """
    Load packer settings from an INI-style ``.conf`` file.

    Built-in defaults live in the ``DEFAULT`` section so every lookup
    succeeds even when the file is missing or incomplete.  The sections
    ``sprite``, ``render`` and ``preview`` are always present on the
    returned parser.

    Parameters
    ----------
    path : Config file to read.  ``None`` reads ``sprite_packer.conf`` next
           to this module and stays silent if it does not exist.

    Returns
    -------
    Populated ConfigParser.
    """
    cfg = configparser.ConfigParser(defaults=CONFIG_DEFAULTS)

    explicit = path is not None
    if path is None:
        path = DEFAULT_CONFIG_PATH

    if os.path.exists(path):
        cfg.read(path, encoding='utf-8')
        if explicit:
            print(f"  → Loaded config: {path}")
    elif explicit:
        print(f"  ⚠️  Warning: config file '{path}' not found, using defaults")

    for section in CONFIG_SECTIONS:
        if not cfg.has_section(section):
            cfg.add_section(section)
    return cfg


CFG = load_config()


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class Icon:
    """
    One input icon.

    Attributes
    ----------
    id      : Unique name of the icon (e.g. ``"aerialway-12"``).
    content : Raw SVG bytes.  The exact byte sequence is the dedup key.
    """

    id: str
    content: bytes


@dataclass(frozen=True)
class Bitmap:
    """Rasterizer output: measured size plus the encoded PNG pixels."""

    width: int
    height: int
    pixels: bytes


@dataclass
class SizedIcon:
    """
    An icon after rasterization.

    Attributes
    ----------
    id      : Icon id (the dedup representative when duplicates collapsed).
    content : Source SVG bytes.
    width   : Raster width in pixels.
    height  : Raster height in pixels.
    pixels  : PNG-encoded raster, opaque to the packer.
    """

    id: str
    content: bytes
    width: int
    height: int
    pixels: bytes = b''

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass
class Placement:
    """
    Position of a single icon inside the sprite.

    Attributes
    ----------
    icon : The rasterized icon being placed.
    x    : Left edge in pixels (sprite origin at top-left).
    y    : Top edge in pixels.
    """

    icon: SizedIcon
    x: int
    y: int

    @property
    def width(self) -> int:
        return self.icon.width

    @property
    def height(self) -> int:
        return self.icon.height

    @property
    def right(self) -> int:
        return self.x + self.icon.width

    @property
    def bottom(self) -> int:
        return self.y + self.icon.height

    def overlaps(self, other: "Placement") -> bool:
        """True if the two rectangles share any pixel."""
        return not (self.right <= other.x or other.right <= self.x or
                    self.bottom <= other.y or other.bottom <= self.y)


@dataclass
class Shelf:
    """
    One horizontal row of the bin.

    Attributes
    ----------
    y          : Top edge of the row.
    height     : Row height, fixed by the first icon that opened it.
    free_start : Next free X coordinate within the row.
    """

    y: int
    height: int
    free_start: int = 0

    def remaining(self, bin_width: int) -> int:
        """Free horizontal span left in this row for a bin of *bin_width*."""
        return bin_width - self.free_start


@dataclass
class Bin:
    """
    Growable packing canvas owned by a single ShelfBinPacker.pack() call.

    ``width`` and ``height`` are the current capacity; they only ever grow.
    """

    width: int = 1
    height: int = 1
    shelves: List[Shelf] = field(default_factory=list)

    @property
    def used_height(self) -> int:
        """Bottom edge of the lowest shelf (0 when no shelf exists yet)."""
        if not self.shelves:
            return 0
        last = self.shelves[-1]
        return last.y + last.height

    def grow(self, width: int, height: int) -> None:
        """
        Enlarge the capacity so that a *width* × *height* item can fit.

        Width doubles when the bin is not wider than it is tall or when the
        item is wider than the bin; height doubles when the bin is wider
        than it is tall or the item is taller than the bin.
        """
        new_width, new_height = self.width, self.height
        if self.width <= self.height or width > self.width:
            new_width = max(width, self.width) * 2
        if self.height < self.width or height > self.height:
            new_height = max(height, self.height) * 2
        self.width = new_width
        self.height = new_height


def _efficiency(used_area: int, width: int, height: int) -> float:
    total_area = width * height
    return (used_area / total_area * 100) if total_area > 0 else 0


@dataclass
class Sprite:
    """
    Result of one packing run.

    Attributes
    ----------
    width      : Tightest width containing every placement (1 when empty).
    height     : Tightest height containing every placement (1 when empty).
    placements : Placements in packing order.
    """

    width: int
    height: int
    placements: List[Placement] = field(default_factory=list)

    @property
    def efficiency(self) -> float:
        """Packed icon area as a percentage [0, 100] of the sprite area."""
        return _efficiency(sum(p.icon.area for p in self.placements),
                           self.width, self.height)


@dataclass
class DedupIndex:
    """
    Lookup tables linking collapsed icons back to every id that shared them.

    Attributes
    ----------
    representatives : Content bytes -> id of the first icon with that content.
    aliases         : Representative id -> all ids sharing its content, in
                      input order (the representative first).
    """

    representatives: Dict[bytes, str] = field(default_factory=dict)
    aliases: Dict[str, List[str]] = field(default_factory=dict)

    def ids_for(self, representative_id: str) -> List[str]:
        return list(self.aliases.get(representative_id, [representative_id]))


@dataclass
class PlacedIcon:
    """An ImgLayout item: the source icon fields plus its sprite position."""

    id: str
    content: bytes
    width: int
    height: int
    x: int
    y: int
    pixels: bytes


@dataclass
class ImgLayout:
    """
    Image-ready layout: sprite size and one item per distinct packed icon.

    Example
    -------
        ImgLayout(width=512, height=512, items=[
            PlacedIcon(id='airport-12', width=12, height=12, x=133, y=282, ...),
        ])
    """

    width: int
    height: int
    items: List[PlacedIcon] = field(default_factory=list)

    @property
    def efficiency(self) -> float:
        return _efficiency(sum(i.width * i.height for i in self.items),
                           self.width, self.height)


# id -> {"width", "height", "x", "y", "pixelRatio"}, ready for json.dump
DataLayout = Dict[str, Dict[str, Union[int, float]]]

Rasterizer = Callable[[bytes, float], Bitmap]
Compositor = Callable[[List[PlacedIcon], Tuple[int, int]], bytes]


# ============================================================================
# INPUT VALIDATION
# ============================================================================

def _check_pixel_ratio(pixel_ratio) -> None:
    if (isinstance(pixel_ratio, bool) or not isinstance(pixel_ratio, numbers.Real)
            or not math.isfinite(pixel_ratio) or pixel_ratio <= 0):
        raise InvalidInput(f"pixel_ratio must be a positive number, got {pixel_ratio!r}")


def _coerce_icons(icons) -> List[Icon]:
    """
    Normalise the caller's icon list into Icon objects.

    Accepts Icon instances or mappings with ``id`` and ``content`` (or the
    older ``svg`` key).  Ids must be non-empty strings and unique.
    """
    if not isinstance(icons, (list, tuple)):
        raise InvalidInput(f"icons must be a list, got {type(icons).__name__}")

    result: List[Icon] = []
    seen = set()
    for position, entry in enumerate(icons):
        if isinstance(entry, Icon):
            icon_id, content = entry.id, entry.content
        elif isinstance(entry, Mapping):
            icon_id = entry.get('id')
            content = entry.get('content', entry.get('svg'))
        else:
            raise InvalidInput(f"icon #{position} must be an Icon or a mapping, "
                               f"got {type(entry).__name__}")

        if not isinstance(icon_id, str) or not icon_id:
            raise InvalidInput(f"icon #{position} has no usable id: {icon_id!r}")
        if not isinstance(content, (bytes, bytearray, memoryview)):
            raise InvalidInput(f"icon {icon_id!r} content must be bytes, "
                               f"got {type(content).__name__}")
        if icon_id in seen:
            raise InvalidInput(f"duplicate icon id {icon_id!r}")

        seen.add(icon_id)
        result.append(Icon(icon_id, bytes(content)))
    return result


def _check_workers(workers) -> int:
    if workers is None:
        workers = CFG.getint('render', 'workers')
    if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
        raise InvalidInput(f"workers must be a positive integer, got {workers!r}")
    return workers


# ============================================================================
# DEDUPLICATOR
# ============================================================================

def deduplicate(icons: Sequence[Icon], unique: bool) -> Tuple[List[Icon], DedupIndex]:
    """
    Collapse icons with byte-identical content onto their first occurrence.

    Parameters
    ----------
    icons  : Input icons in caller order.
    unique : When False every icon is its own singleton group and the
             returned list equals the input.

    Returns
    -------
    (icons to rasterize in first-seen order, DedupIndex for the fan-out).
    """
    index = DedupIndex()
    kept: List[Icon] = []

    for icon in icons:
        if unique:
            representative = index.representatives.get(icon.content)
            if representative is not None:
                index.aliases[representative].append(icon.id)
                continue
            index.representatives[icon.content] = icon.id
        index.aliases[icon.id] = [icon.id]
        kept.append(icon)

    return kept, index


# ============================================================================
# RASTERIZATION
# ============================================================================

def rasterize_svg(content: bytes, scale: float) -> Bitmap:
    """
    Render SVG bytes to a PNG at *scale* and measure the result.

    Raises
    ------
    RasterizationFailure if CairoSVG cannot parse or render the document.
    """
    import cairosvg

    try:
        png = cairosvg.svg2png(bytestring=content, scale=scale)
        with Image.open(io.BytesIO(png)) as image:
            width, height = image.size
    except Exception as e:
        raise RasterizationFailure(f"could not rasterize SVG: {e}") from e
    return Bitmap(width, height, png)


def rasterize_icons(icons: Sequence[Icon], pixel_ratio: float,
                    rasterizer: Rasterizer, workers: int) -> List[SizedIcon]:
    """
    Rasterize every icon on a thread pool.

    Results are collected by input position, so the returned order never
    depends on which task finishes first.  The first failure (lowest input
    position among the failed tasks) is re-raised unchanged; tasks that have
    not started are cancelled and finished results are discarded.

    Parameters
    ----------
    icons       : Icons to rasterize (already deduplicated).
    pixel_ratio : Scale factor passed to the rasterizer.
    rasterizer  : ``rasterizer(content, scale) -> Bitmap``.
    workers     : Thread pool size.

    Returns
    -------
    SizedIcon list in the same order as *icons*.
    """
    if not icons:
        return []

    with ThreadPoolExecutor(max_workers=min(workers, len(icons))) as executor:
        futures = [executor.submit(rasterizer, icon.content, pixel_ratio)
                   for icon in icons]
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)

        failed = [f for f in futures if f in done and f.exception() is not None]
        if failed:
            for future in pending:
                future.cancel()
            failed[0].result()

        bitmaps = [future.result() for future in futures]

    return [SizedIcon(icon.id, icon.content, bitmap.width, bitmap.height, bitmap.pixels)
            for icon, bitmap in zip(icons, bitmaps)]


# ============================================================================
# SHELF BIN PACKER
# ============================================================================

def sort_for_packing(icons: Sequence[SizedIcon]) -> List[SizedIcon]:
    """Order icons by height (tallest first), ties by ascending id."""
    return sorted(icons, key=lambda icon: (-icon.height, icon.id))


class ShelfBinPacker:
    """
    Shelf (row) heuristic for packing icons into one growable sprite.

    Algorithm overview
    ------------------
    1. Reject the whole batch if any icon has a non-positive size.
    2. Sort icons by height (tallest first), ties by ascending id.  This
       order is what makes sprite layouts reproducible across runs.
    3. For each icon, scan the shelves top-to-bottom and take the first one
       that is tall enough and still has room on the right.
    4. Otherwise open a new shelf under the last one.  When the canvas
       capacity is exhausted, grow it (doubling) and try again.
    5. Report the tightest box around all placements as the sprite size.

    The canvas never shrinks and no maximum size is enforced, so every
    valid icon is placed.
    """

    def pack(self, icons: Sequence[SizedIcon]) -> Sprite:
        """
        Place every icon and return the resulting sprite.

        Parameters
        ----------
        icons : Rasterized icons, in any order.

        Returns
        -------
        Sprite with one Placement per icon in packing order.  An empty input
        yields a 1×1 sprite with no placements.

        Raises
        ------
        InvalidDimension before anything is placed if any icon has a
        non-positive (or non-integer) width or height.
        """
        self._check_dimensions(icons)

        canvas = Bin()
        placements: List[Placement] = []

        for icon in sort_for_packing(icons):
            placement = self._place(canvas, icon)
            while placement is None:
                canvas.grow(icon.width, icon.height)
                placement = self._place(canvas, icon)
            placements.append(placement)

        if not placements:
            return Sprite(width=1, height=1, placements=[])

        return Sprite(width=max(p.right for p in placements),
                      height=max(p.bottom for p in placements),
                      placements=placements)

    @staticmethod
    def _check_dimensions(icons: Sequence[SizedIcon]) -> None:
        for icon in icons:
            for size in (icon.width, icon.height):
                if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
                    raise InvalidDimension(
                        f"icon {icon.id!r} has invalid size {icon.width!r}x{icon.height!r}")

    def _place(self, canvas: Bin, icon: SizedIcon) -> Optional[Placement]:
        """
        Try to place *icon* without growing the canvas.

        Returns
        -------
        Placement on success, None if the canvas must grow first.
        """
        for shelf in canvas.shelves:
            if shelf.height >= icon.height and shelf.remaining(canvas.width) >= icon.width:
                return self._alloc(shelf, icon)

        y = canvas.used_height
        if icon.height <= canvas.height - y and icon.width <= canvas.width:
            shelf = Shelf(y=y, height=icon.height)
            canvas.shelves.append(shelf)
            return self._alloc(shelf, icon)

        return None

    @staticmethod
    def _alloc(shelf: Shelf, icon: SizedIcon) -> Placement:
        placement = Placement(icon, shelf.free_start, shelf.y)
        shelf.free_start += icon.width
        return placement


# ============================================================================
# LAYOUT ASSEMBLER
# ============================================================================

def assemble_data_layout(sprite: Sprite, index: Optional[DedupIndex],
                         pixel_ratio: float) -> DataLayout:
    """
    Build the JSON manifest for a packed sprite.

    Every id that collapsed onto a representative gets a copy of the
    representative's placement.  *pixel_ratio* is copied verbatim into each
    entry; coordinates are raster pixels and are not scaled.
    """
    layout: DataLayout = {}
    for placement in sprite.placements:
        ids = index.ids_for(placement.icon.id) if index else [placement.icon.id]
        for icon_id in ids:
            layout[icon_id] = {
                'width':      placement.width,
                'height':     placement.height,
                'x':          placement.x,
                'y':          placement.y,
                'pixelRatio': pixel_ratio,
            }
    return layout


def assemble_img_layout(sprite: Sprite) -> ImgLayout:
    """One item per distinct packed icon, in packing order."""
    items = [PlacedIcon(id=p.icon.id, content=p.icon.content,
                        width=p.width, height=p.height,
                        x=p.x, y=p.y, pixels=p.icon.pixels)
             for p in sprite.placements]
    return ImgLayout(width=sprite.width, height=sprite.height, items=items)


# ============================================================================
# PUBLIC LAYOUT API
# ============================================================================

def pack_icons(icons, pixel_ratio, unique: bool = False, *,
               rasterizer: Optional[Rasterizer] = None,
               workers: Optional[int] = None) -> Tuple[Sprite, DedupIndex]:
    """
    Validate, deduplicate, rasterize and pack *icons*.

    Parameters
    ----------
    icons       : List of Icon objects or ``{"id": str, "content": bytes}``
                  mappings.
    pixel_ratio : Ratio of a 72dpi screen pixel to the destination pixel
                  density; used as the rasterization scale.
    unique      : Collapse byte-identical icons onto one packed instance.
    rasterizer  : ``rasterizer(content, scale) -> Bitmap``; defaults to
                  rasterize_svg().
    workers     : Thread pool size; defaults to the ``[render] workers``
                  config value.

    Returns
    -------
    (Sprite, DedupIndex).
    """
    _check_pixel_ratio(pixel_ratio)
    icons = _coerce_icons(icons)
    if rasterizer is None:
        rasterizer = rasterize_svg
    elif not callable(rasterizer):
        raise InvalidInput("rasterizer must be callable")
    workers = _check_workers(workers)

    distinct, index = deduplicate(icons, unique)
    sized = rasterize_icons(distinct, pixel_ratio, rasterizer, workers)
    sprite = ShelfBinPacker().pack(sized)
    return sprite, index


def _generate_layout(icons, pixel_ratio, format, unique, rasterizer, workers):
    sprite, index = pack_icons(icons, pixel_ratio, unique,
                               rasterizer=rasterizer, workers=workers)
    if format:
        return assemble_data_layout(sprite, index, pixel_ratio)
    return assemble_img_layout(sprite)


def generate_layout(icons, pixel_ratio, format: bool, *,
                    rasterizer: Optional[Rasterizer] = None,
                    workers: Optional[int] = None) -> Union[DataLayout, ImgLayout]:
    """
    Pack a list of icons into a sprite layout.

    Parameters
    ----------
    icons       : List of Icon objects or ``{"id", "content"}`` mappings.
    pixel_ratio : Ratio of a 72dpi screen pixel to the destination pixel
                  density.
    format      : True → DataLayout (JSON manifest); False → ImgLayout.

    Returns
    -------
    DataLayout or ImgLayout.
    """
    return _generate_layout(icons, pixel_ratio, format, False, rasterizer, workers)


def generate_layout_unique(icons, pixel_ratio, format: bool, *,
                           rasterizer: Optional[Rasterizer] = None,
                           workers: Optional[int] = None) -> Union[DataLayout, ImgLayout]:
    """
    Same as generate_layout() but byte-identical icons are packed once.

    If ``A.svg`` and ``B.svg`` are identical, a single icon is placed in the
    sprite image and both A and B reference it in the DataLayout.
    """
    return _generate_layout(icons, pixel_ratio, format, True, rasterizer, workers)


# ============================================================================
# IMAGE COMPOSITING
# ============================================================================

def _encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    return buffer.getvalue()


EMPTY_PNG = _encode_png(Image.new('RGBA', (1, 1), (0, 0, 0, 0)))


def composite_png(items: List[PlacedIcon], canvas: Tuple[int, int]) -> bytes:
    """
    Paint every item's PNG at its position on a transparent canvas.

    Raises
    ------
    CompositionFailure if an item's pixels cannot be decoded or the canvas
    cannot be encoded.
    """
    width, height = canvas
    try:
        sprite = Image.new('RGBA', (width, height), (0, 0, 0, 0))
        for item in items:
            with Image.open(io.BytesIO(item.pixels)) as icon:
                sprite.paste(icon.convert('RGBA'), (item.x, item.y))
        return _encode_png(sprite)
    except (OSError, ValueError) as e:
        raise CompositionFailure(f"could not composite sprite: {e}") from e


def generate_image(layout: ImgLayout, *, compositor: Optional[Compositor] = None) -> bytes:
    """
    Generate a PNG image with the layout's icons painted at their positions.

    A layout with no items returns EMPTY_PNG (1×1, transparent) without
    calling the compositor.  Compositor errors propagate unchanged.

    Parameters
    ----------
    layout     : ImgLayout produced with ``format=False``.
    compositor : ``compositor(items, (width, height)) -> bytes``; defaults
                 to composite_png().
    """
    if not isinstance(layout, ImgLayout):
        raise InvalidInput(f"generate_image expects an ImgLayout, "
                           f"got {type(layout).__name__}")
    if compositor is None:
        compositor = composite_png
    elif not callable(compositor):
        raise InvalidInput("compositor must be callable")

    if not layout.items:
        return EMPTY_PNG
    return compositor(layout.items, (layout.width, layout.height))


# ============================================================================
# LAYOUT PREVIEW
# ============================================================================

class LayoutPreview:
    """
    Render an ImgLayout as an SVG for eyeballing a sprite.

    Groups, in draw order (back to front):

    ========  =====================================================
    Group id  Content
    ========  =====================================================
    icons     Each item's PNG embedded as a data URI.
    outlines  Thin rectangle around each item.
    labels    Item id at the top-left corner of each item.
    ========  =====================================================
    """

    def __init__(self, layout: ImgLayout, outline: Optional[str] = None,
                 label: Optional[str] = None) -> None:
        self.layout = layout
        self.color_outline = outline or CFG.get('preview', 'outline')
        self.color_label = label or CFG.get('preview', 'label')

    def generate(self) -> str:
        """Return the preview as an SVG document string."""
        layout = self.layout
        dwg = svgwrite.Drawing(size=(f"{layout.width}px", f"{layout.height}px"),
                               viewBox=f"0 0 {layout.width} {layout.height}")

        dwg.defs.add(dwg.style(f"""
            .outline {{ fill: none; stroke: {self.color_outline}; stroke-width: 0.5; }}
            .label {{ fill: {self.color_label}; font-family: sans-serif; font-size: 4px; }}
        """))

        icons_group = dwg.g(id='icons')
        outlines_group = dwg.g(id='outlines')
        labels_group = dwg.g(id='labels')

        for item in layout.items:
            if item.pixels:
                data = base64.b64encode(item.pixels).decode('ascii')
                icons_group.add(dwg.image(href=f"data:image/png;base64,{data}",
                                          insert=(item.x, item.y),
                                          size=(item.width, item.height)))
            outlines_group.add(dwg.rect(insert=(item.x, item.y),
                                        size=(item.width, item.height),
                                        class_='outline'))
            labels_group.add(dwg.text(item.id, insert=(item.x + 0.5, item.y + 4),
                                      class_='label'))

        dwg.add(icons_group)
        dwg.add(outlines_group)
        dwg.add(labels_group)

        svg_string = dwg.tostring()

        metadata_comment = f"""
<!-- Icon Sprite Packer -->
<!-- Size: {layout.width}x{layout.height} -->
<!-- Icons: {len(layout.items)} -->
<!-- Efficiency: {layout.efficiency:.1f}% -->
"""
        if svg_string.startswith('<?xml'):
            xml_decl_end = svg_string.find('?>') + 2
            svg_string = svg_string[:xml_decl_end] + metadata_comment + svg_string[xml_decl_end:]
        else:
            svg_string = metadata_comment + svg_string

        return svg_string


# ============================================================================
# ICON LOADING
# ============================================================================

def load_icons(directory: str) -> List[Icon]:
    """
    Read every ``*.svg`` file in *directory* as an Icon.

    The icon id is the file name without its extension.  Files are read in
    sorted name order; other files are ignored.

    Raises
    ------
    FileNotFoundError if *directory* does not exist.
    """
    icons = []
    for name in sorted(os.listdir(directory)):
        stem, ext = os.path.splitext(name)
        path = os.path.join(directory, name)
        if ext.lower() != '.svg' or not os.path.isfile(path):
            continue
        with open(path, 'rb') as f:
            icons.append(Icon(stem, f.read()))
    return icons


# ============================================================================
# MAIN FUNCTION
# ============================================================================

def _ratio_suffix(pixel_ratio: float) -> str:
    return '' if pixel_ratio == 1 else f"@{pixel_ratio:g}x"


def generate_sprite_files(icons_dir: str, output_prefix: str = "output/sprite",
                          pixel_ratio: float = 1, unique: bool = False,
                          preview: bool = False,
                          workers: Optional[int] = None,
                          rasterizer: Optional[Rasterizer] = None) -> List[str]:
    """
    Full pipeline: load SVGs → pack → write JSON manifest and PNG sprite.

    Parameters
    ----------
    icons_dir : str
        Directory containing the ``*.svg`` icons.
    output_prefix : str, optional
        Path prefix for the output files (default ``"output/sprite"``).
    pixel_ratio : float, optional
        Rasterization scale; a value other than 1 adds ``@<ratio>x`` to the
        file names.
    unique : bool, optional
        Pack byte-identical icons only once.
    preview : bool, optional
        Also write an SVG preview of the layout.
    workers : int, optional
        Rasterization thread pool size.
    rasterizer : callable, optional
        Replacement for rasterize_svg().

    Returns
    -------
    List[str]
        Paths of the files written.
    """

    print("=" * 70)
    print("ICON SPRITE PACKER")
    print("=" * 70)
    print(f"\nReading icons from: {icons_dir}")
    print(f"Pixel ratio: {pixel_ratio}")
    print()

    icons = load_icons(icons_dir)

    if not icons:
        print("\n❌ Error: No SVG icons found")
        return []

    print(f"✅ Found {len(icons)} icon(s)")

    print(f"\n{'─' * 70}")
    print("PACKING SPRITE")
    print(f"{'─' * 70}")

    sprite, index = pack_icons(icons, pixel_ratio, unique,
                               rasterizer=rasterizer, workers=workers)

    if unique:
        print(f"  → {len(icons) - len(sprite.placements)} duplicate icon(s) collapsed")
    print(f"✅ Sprite size: {sprite.width} x {sprite.height} px")
    print(f"✅ Packing efficiency: {sprite.efficiency:.1f}%")

    data_layout = assemble_data_layout(sprite, index, pixel_ratio)
    img_layout = assemble_img_layout(sprite)

    print(f"\n{'─' * 70}")
    print("WRITING OUTPUT")
    print(f"{'─' * 70}")

    base = output_prefix + _ratio_suffix(pixel_ratio)
    out_dir = os.path.dirname(base)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)

    output_files = []

    json_path = base + '.json'
    with open(json_path, 'w', encoding='utf-8') as f:
        json.dump(data_layout, f, indent=2, sort_keys=True)
    output_files.append(json_path)

    png_path = base + '.png'
    with open(png_path, 'wb') as f:
        f.write(generate_image(img_layout))
    output_files.append(png_path)

    if preview:
        svg_path = base + '.svg'
        with open(svg_path, 'w', encoding='utf-8') as f:
            f.write(LayoutPreview(img_layout).generate())
        output_files.append(svg_path)

    for path in output_files:
        print(f"📄 {path}")

    print(f"\n{'═' * 70}")
    print(f"✅ SUCCESS: Generated {len(output_files)} file(s)")
    print(f"{'═' * 70}")
    print()

    return output_files


# ============================================================================
# CLI INTERFACE
# ============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Pack SVG icons into a sprite image and JSON manifest",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python sprite_packer.py output/sprite icons/
  python sprite_packer.py output/sprite icons/ --retina        # sprite@2x.*
  python sprite_packer.py output/sprite icons/ --unique        # dedupe identical SVGs
  python sprite_packer.py output/sprite icons/ --preview       # also write sprite.svg

Defaults are read from sprite_packer.conf ([sprite], [render], [preview]).
        """
    )

    parser.add_argument("output", help="Output path prefix, e.g. output/sprite")
    parser.add_argument("icons_dir", help="Directory containing *.svg icons")
    ratio_group = parser.add_mutually_exclusive_group()
    ratio_group.add_argument("--ratio", type=float,
                             default=CFG.getfloat('sprite', 'pixel_ratio'),
                             help="Pixel ratio / rasterization scale (default: %(default)s)")
    ratio_group.add_argument("--retina", action="store_true",
                             help="Shortcut for --ratio 2")
    parser.add_argument("--unique", action="store_true",
                        default=CFG.getboolean('sprite', 'unique'),
                        help="Pack identical SVGs once and point every id at them")
    parser.add_argument("--workers", type=int,
                        default=CFG.getint('render', 'workers'),
                        help="Rasterization threads (default: %(default)s)")
    parser.add_argument("--preview", action="store_true",
                        help="Also write an SVG preview of the layout")

    args = parser.parse_args(argv)

    pixel_ratio = 2 if args.retina else args.ratio
    if float(pixel_ratio).is_integer():
        pixel_ratio = int(pixel_ratio)

    try:
        files = generate_sprite_files(args.icons_dir, args.output,
                                      pixel_ratio=pixel_ratio,
                                      unique=args.unique,
                                      preview=args.preview,
                                      workers=args.workers)
    except FileNotFoundError:
        print(f"\n❌ Error: Directory '{args.icons_dir}' not found")
        return 1
    except SpriteError as e:
        print(f"\n❌ Error: {e}")
        return 1
    except Exception as e:
        print(f"\n❌ Error: {e}")
        import traceback
        traceback.print_exc()
        return 1

    return 0 if files else 1


if __name__ == "__main__":
    sys.exit(main())
