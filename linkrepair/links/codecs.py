"""
Field Codec Registry.

Maps a field's declared type name to the codec that understands how that
field type encodes item references in its raw value:
- Lookup fields (single ID)
- List fields (pipe-separated IDs)
- General link / media fields (XML element with an ID attribute)
- Rich text (dynamic link and media URLs embedded in HTML)

Field types without a codec cannot carry structured references and are
skipped by the repair engine.
"""

import re
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from collections.abc import Sequence

import defusedxml.ElementTree as DefusedET
import structlog
from defusedxml import DefusedXmlException

from linkrepair.content.ids import is_id, normalize_id, same_id, short_id
from linkrepair.exceptions import ReferenceNotFound, UnsupportedFieldType
from linkrepair.links.schema import DecodedReference, LinkTarget

logger = structlog.get_logger(__name__)


class FieldCodec(ABC):
    """Decodes and rewrites the references held in one field type's raw value."""

    type_names: tuple[str, ...] = ()

    @abstractmethod
    def decode(self, raw: str) -> list[DecodedReference]:
        """References in encoding order."""

    @abstractmethod
    def encode(self, targets: Sequence[LinkTarget]) -> str:
        """Build a raw value referencing the given targets."""

    @abstractmethod
    def rewrite(self, raw: str, old_target_id: str, new_target: LinkTarget) -> str:
        """
        Point the first reference to ``old_target_id`` at ``new_target``.

        Raises:
            ReferenceNotFound: if the value does not reference ``old_target_id``
        """

    @abstractmethod
    def remove(self, raw: str, target_id: str) -> str:
        """
        Drop the first reference to ``target_id``.

        Raises:
            ReferenceNotFound: if the value does not reference ``target_id``
        """

    def references(self, raw: str, target_id: str) -> bool:
        return any(same_id(ref.target_id, target_id) for ref in self.decode(raw))


class LookupFieldCodec(FieldCodec):
    """Single item ID (droplink, droptree, reference)."""

    type_names = ("droplink", "droptree", "reference", "grouped droplink", "lookup")

    def decode(self, raw: str) -> list[DecodedReference]:
        value = (raw or "").strip()
        if not is_id(value):
            return []
        return [DecodedReference(target_id=normalize_id(value), position=0)]

    def encode(self, targets: Sequence[LinkTarget]) -> str:
        if len(targets) > 1:
            raise ValueError("Lookup fields hold a single reference")
        return normalize_id(targets[0].item_id) if targets else ""

    def rewrite(self, raw: str, old_target_id: str, new_target: LinkTarget) -> str:
        if not same_id((raw or "").strip(), old_target_id):
            raise ReferenceNotFound(old_target_id)
        return normalize_id(new_target.item_id)

    def remove(self, raw: str, target_id: str) -> str:
        if not same_id((raw or "").strip(), target_id):
            raise ReferenceNotFound(target_id)
        return ""


class MultilistFieldCodec(FieldCodec):
    """Pipe-separated item IDs (multilist, treelist, checklist)."""

    type_names = (
        "multilist",
        "multilist with search",
        "treelist",
        "treelistex",
        "treelist with search",
        "checklist",
        "tags",
    )
    separator = "|"

    def _parts(self, raw: str) -> list[str]:
        return raw.split(self.separator) if raw else []

    def _find(self, parts: list[str], target_id: str) -> int:
        for index, part in enumerate(parts):
            if same_id(part.strip(), target_id):
                return index
        raise ReferenceNotFound(target_id)

    def decode(self, raw: str) -> list[DecodedReference]:
        return [
            DecodedReference(target_id=normalize_id(part), position=index)
            for index, part in enumerate(self._parts(raw))
            if is_id(part.strip())
        ]

    def encode(self, targets: Sequence[LinkTarget]) -> str:
        return self.separator.join(normalize_id(target.item_id) for target in targets)

    def rewrite(self, raw: str, old_target_id: str, new_target: LinkTarget) -> str:
        parts = self._parts(raw)
        parts[self._find(parts, old_target_id)] = normalize_id(new_target.item_id)
        return self.separator.join(parts)

    def remove(self, raw: str, target_id: str) -> str:
        parts = self._parts(raw)
        del parts[self._find(parts, target_id)]
        return self.separator.join(parts)


class XmlElementCodec(FieldCodec):
    """
    Single XML element carrying the referenced ID in one attribute.

    Removing the reference clears the whole value: the element describes
    nothing without its target.
    """

    tag = ""
    id_attribute = "id"

    def _parse(self, raw: str) -> ET.Element | None:
        if not raw or not raw.strip():
            return None
        try:
            return DefusedET.fromstring(raw)
        except (ET.ParseError, DefusedXmlException) as e:
            logger.debug("Unparseable field value", codec=type(self).__name__, error=str(e))
            return None

    def _holds_reference(self, element: ET.Element) -> bool:
        return is_id(element.get(self.id_attribute))

    def _locate(self, raw: str, target_id: str) -> ET.Element:
        element = self._parse(raw)
        if element is None or not self._holds_reference(element):
            raise ReferenceNotFound(target_id)
        if not same_id(element.get(self.id_attribute), target_id):
            raise ReferenceNotFound(target_id)
        return element

    def _apply_target(self, element: ET.Element, target: LinkTarget) -> None:
        element.set(self.id_attribute, normalize_id(target.item_id))

    def decode(self, raw: str) -> list[DecodedReference]:
        element = self._parse(raw)
        if element is None or not self._holds_reference(element):
            return []
        return [DecodedReference(target_id=normalize_id(element.get(self.id_attribute)), position=0)]

    def encode(self, targets: Sequence[LinkTarget]) -> str:
        if len(targets) > 1:
            raise ValueError(f"<{self.tag}> fields hold a single reference")
        if not targets:
            return ""
        element = ET.Element(self.tag)
        self._apply_target(element, targets[0])
        return ET.tostring(element, encoding="unicode")

    def rewrite(self, raw: str, old_target_id: str, new_target: LinkTarget) -> str:
        element = self._locate(raw, old_target_id)
        self._apply_target(element, new_target)
        return ET.tostring(element, encoding="unicode")

    def remove(self, raw: str, target_id: str) -> str:
        self._locate(raw, target_id)
        return ""


class GeneralLinkFieldCodec(XmlElementCodec):
    """``<link linktype="internal" id="{...}" url="/path" />``; external links hold no reference."""

    type_names = ("general link", "link")
    tag = "link"
    linked_types = ("internal", "media")

    def _holds_reference(self, element: ET.Element) -> bool:
        return element.get("linktype", "internal") in self.linked_types and super()._holds_reference(element)

    def _apply_target(self, element: ET.Element, target: LinkTarget) -> None:
        element.set("linktype", element.get("linktype", "internal"))
        super()._apply_target(element, target)
        if element.get("linktype") == "internal":
            element.set("url", target.path)


class MediaFieldCodec(XmlElementCodec):
    """``<image mediaid="{...}" />`` and ``<file mediaid="{...}" src="..." />``."""

    id_attribute = "mediaid"

    def __init__(self, tag: str) -> None:
        self.tag = tag
        self.type_names = (tag,)

    def _apply_target(self, element: ET.Element, target: LinkTarget) -> None:
        super()._apply_target(element, target)
        if element.get("src") is not None:
            element.set("src", f"-/media/{short_id(target.item_id)}.ashx")


class RichTextFieldCodec(FieldCodec):
    """
    HTML with dynamic links.

    Item links are written ``~/link.aspx?_id=<short id>``, media
    ``-/media/<short id>.ashx``. Removing a link unwraps its anchor and keeps
    the text; removing a media reference drops the image.
    """

    type_names = ("rich text", "html")

    REFERENCE = re.compile(r"(?:~/link\.aspx\?_id=|[-~]/media/)([0-9A-Fa-f]{32})", re.IGNORECASE)
    ANCHOR = re.compile(
        r"<a\b[^>]*?\bhref\s*=\s*([\"'])(?P<url>.*?)\1[^>]*>(?P<text>.*?)</a\s*>",
        re.IGNORECASE | re.DOTALL,
    )
    IMAGE = re.compile(
        r"<img\b[^>]*?\bsrc\s*=\s*([\"'])(?P<url>.*?)\1[^>]*?/?>",
        re.IGNORECASE | re.DOTALL,
    )

    def _first_match(self, raw: str, target_id: str) -> re.Match:
        for match in self.REFERENCE.finditer(raw or ""):
            if same_id(match.group(1), target_id):
                return match
        raise ReferenceNotFound(target_id)

    def decode(self, raw: str) -> list[DecodedReference]:
        return [
            DecodedReference(target_id=normalize_id(match.group(1)), position=index)
            for index, match in enumerate(self.REFERENCE.finditer(raw or ""))
        ]

    def encode(self, targets: Sequence[LinkTarget]) -> str:
        return "".join(
            f'<a href="~/link.aspx?_id={short_id(target.item_id)}&amp;_z=z">{target.path or short_id(target.item_id)}</a>'
            for target in targets
        )

    def rewrite(self, raw: str, old_target_id: str, new_target: LinkTarget) -> str:
        match = self._first_match(raw, old_target_id)
        start, end = match.span(1)
        return raw[:start] + short_id(new_target.item_id) + raw[end:]

    def remove(self, raw: str, target_id: str) -> str:
        reference = self._first_match(raw, target_id)
        start = reference.start()

        for pattern, keep_text in ((self.ANCHOR, True), (self.IMAGE, False)):
            for element in pattern.finditer(raw):
                url_start, url_end = element.span("url")
                if url_start <= start < url_end:
                    replacement = element.group("text") if keep_text else ""
                    return raw[: element.start()] + replacement + raw[element.end():]

        # Bare URL outside any element
        return raw[:start] + raw[reference.end():]


class FieldCodecRegistry:
    """
    Resolves codecs by field type name (case-insensitive).

    Usage:
        ```python
        registry = create_default_registry()
        codec = registry.resolve("Multilist")
        if codec is not None:
            refs = codec.decode(field.value)
        ```
    """

    def __init__(self, codecs: Sequence[FieldCodec] | None = None) -> None:
        self._codecs: dict[str, FieldCodec] = {}
        for codec in codecs or []:
            self.register(codec)

    @staticmethod
    def _key(type_name: str | None) -> str:
        return (type_name or "").strip().lower()

    def register(self, codec: FieldCodec, type_names: Sequence[str] | None = None) -> None:
        for type_name in type_names or codec.type_names:
            self._codecs[self._key(type_name)] = codec
            logger.debug("Codec registered", type_name=type_name, codec=type(codec).__name__)

    def resolve(self, type_name: str | None) -> FieldCodec | None:
        return self._codecs.get(self._key(type_name))

    def require(self, type_name: str | None) -> FieldCodec:
        codec = self.resolve(type_name)
        if codec is None:
            raise UnsupportedFieldType(type_name or "")
        return codec

    @property
    def type_names(self) -> list[str]:
        return sorted(self._codecs)

    def __contains__(self, type_name: str) -> bool:
        return self._key(type_name) in self._codecs


def create_default_registry() -> FieldCodecRegistry:
    """Registry with the built-in reference-carrying field types."""
    return FieldCodecRegistry(
        [
            LookupFieldCodec(),
            MultilistFieldCodec(),
            GeneralLinkFieldCodec(),
            MediaFieldCodec("image"),
            MediaFieldCodec("file"),
            RichTextFieldCodec(),
        ]
    )


_registry: FieldCodecRegistry | None = None


def get_codec_registry() -> FieldCodecRegistry:
    """Get the process-wide codec registry."""
    global _registry
    if _registry is None:
        _registry = create_default_registry()
    return _registry
