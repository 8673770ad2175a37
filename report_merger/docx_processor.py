"""Word template processing and merge field replacement module."""

import copy
import io
import logging
from collections import deque
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from docx import Document
from docx.enum.text import WD_COLOR_INDEX
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.oxml.ns import qn
from docx.shared import RGBColor
from docx.text.run import Run

from .image_embedder import ImageEmbedder
from .merge_values import (
    BulletListValue,
    ImageValue,
    MergeDiagnostics,
    MergeValues,
    PagedImageValue,
    TextValue,
    resolve_merge_values,
)
from .numbering import BulletNumbering
from .package_text_pass import replace_tokens_in_package
from .paragraph_expanders import (
    BulletListExpander,
    PagedImageExpander,
    insert_after,
    make_styled_paragraph,
)
from .pdf_renderer import PdfPageRenderer
from .run_text_index import RunTextIndex, set_text
from .utils.exceptions import (
    DocumentProcessingError,
    ReportMergerError,
    TemplateError,
)
from .utils.validation import (
    PlaceholderMatch,
    extract_placeholder_names,
    scan_placeholders,
)

logger = logging.getLogger(__name__)

DEFAULT_DOCX_SETTINGS = {
    "max_image_width_inches": 6.5,
    "image_dpi": 96,
    "figure_style": "Caption",
    "highlight_replaced_fields": False,
    "missing_value_color": "FF0000",
}


class MergeResult(NamedTuple):
    content: bytes
    diagnostics: MergeDiagnostics


def _own_text_elements(paragraph) -> List:
    """``w:t`` descendants of ``paragraph`` that are not inside a nested paragraph."""
    return [
        t
        for t in paragraph.iter(qn("w:t"))
        if next(t.iterancestors(qn("w:p")), None) is paragraph
    ]


def _paragraph_text(paragraph) -> str:
    return "".join(t.text or "" for t in _own_text_elements(paragraph))


PROPERTY_TAGS = (qn("w:pPr"), qn("w:rPr"))


def _has_content(element) -> bool:
    return any(child.tag not in PROPERTY_TAGS for child in element)


def _trim_paragraph(paragraph, start: int, end: int, keep_leading: bool) -> None:
    """Cut ``paragraph`` down to the content before ``start`` or after ``end``.

    Offsets are positions in the paragraph text. Elements that carry no text
    (field runs, tabs, drawings, bookmarks) are kept when they sit on the
    kept side of the span.
    """
    own = _own_text_elements(paragraph)
    own_set = set(own)
    containers = set()
    for t in own:
        for ancestor in t.iterancestors():
            if ancestor is paragraph:
                break
            containers.add(ancestor)

    boundary = start if keep_leading else end

    def trim(element, offset: int) -> int:
        for child in list(element):
            if child.tag in PROPERTY_TAGS:
                continue
            if child in own_set:
                text = child.text or ""
                cut = max(0, min(len(text), boundary - offset))
                kept = text[:cut] if keep_leading else text[cut:]
                if kept:
                    set_text(child, kept)
                else:
                    element.remove(child)
                offset += len(text)
            elif child in containers:
                offset = trim(child, offset)
                if not _has_content(child):
                    element.remove(child)
            else:
                on_kept_side = offset <= start if keep_leading else offset >= end
                if not on_kept_side:
                    element.remove(child)
        return offset

    trim(paragraph, 0)


class WordTemplateProcessor:
    """Processes Word templates and replaces merge fields with data."""

    def __init__(
        self,
        template_bytes: bytes,
        config: Optional[Dict[str, Any]] = None,
        pdf_renderer: Optional[PdfPageRenderer] = None,
    ) -> None:
        if not isinstance(template_bytes, (bytes, bytearray)) or not template_bytes:
            raise TemplateError("Template content must be non-empty bytes")

        self.template_bytes = bytes(template_bytes)
        self.config = config or {}

        global_settings = self.config.get("global_settings", {})
        self.docx_settings = {**DEFAULT_DOCX_SETTINGS, **global_settings.get("docx", {})}

        if pdf_renderer is None:
            pdf_settings = global_settings.get("pdf_rendering", {})
            pdf_renderer = PdfPageRenderer(
                dpi=pdf_settings.get("dpi", 300),
                max_width_px=pdf_settings.get("max_width_px", 2200),
                jpeg_quality=pdf_settings.get("jpeg_quality", 80),
            )
        self.pdf_renderer = pdf_renderer

        # Fail early on unreadable templates
        self._load_document()

    def _load_document(self):
        """Load a fresh in-memory copy of the template."""
        try:
            document = Document(io.BytesIO(self.template_bytes))
        except Exception as e:
            raise TemplateError(f"Invalid Word template format: {e}")

        if document.element.body is None:
            raise TemplateError("Word template has no document body")

        return document

    def _story_roots(self, document) -> List[Tuple[Any, Any]]:
        """Return ``(part, root element)`` for the body, then headers, then footers."""
        stories = [(document.part, document.element.body)]

        rels = [
            rel for rel in document.part.rels.values()
            if not rel.is_external and rel.reltype in (RT.HEADER, RT.FOOTER)
        ]
        for reltype in (RT.HEADER, RT.FOOTER):
            for rel in rels:
                if rel.reltype == reltype:
                    stories.append((rel.target_part, rel.target_part.element))

        return stories

    def get_merge_fields(self) -> List[str]:
        """Extract all merge fields from body, header and footer text."""
        document = self._load_document()
        texts = (
            _paragraph_text(paragraph)
            for _, root in self._story_roots(document)
            for paragraph in root.iter(qn("w:p"))
        )
        return extract_placeholder_names(texts)

    def validate_template(self) -> Dict[str, Any]:
        """Validate template and return information about merge fields and structure."""
        document = self._load_document()

        try:
            stories = self._story_roots(document)
            body_root = stories[0][1]
            has_numbering = any(
                rel.reltype == RT.NUMBERING for rel in document.part.rels.values()
            )

            return {
                "paragraph_count": len(list(body_root.iter(qn("w:p")))),
                "table_count": len(list(body_root.iter(qn("w:tbl")))),
                "header_count": sum(1 for part, _ in stories if part.partname.startswith("/word/header")),
                "footer_count": sum(1 for part, _ in stories if part.partname.startswith("/word/footer")),
                "section_count": len(document.sections),
                "has_numbering": has_numbering,
                "merge_fields": self.get_merge_fields(),
            }
        except Exception as e:
            raise TemplateError(f"Template validation failed: {e}")

    def preview_merge(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Preview what the merge would do without performing it."""
        merge_fields = self.get_merge_fields()
        diagnostics = MergeDiagnostics()
        resolved = resolve_merge_values(values, self.pdf_renderer, diagnostics)

        preview = {
            "merge_fields": merge_fields,
            "field_kinds": {},
            "missing_fields": [],
            "unused_values": [
                name for name in resolved
                if name.casefold() not in {field.casefold() for field in merge_fields}
            ],
            "resource_failures": dict(diagnostics.resource_failures),
        }

        for field_name in merge_fields:
            value = resolved.classify(field_name)
            if isinstance(value, BulletListValue):
                preview["field_kinds"][field_name] = "bullet_list"
            elif isinstance(value, PagedImageValue):
                preview["field_kinds"][field_name] = "paged_image"
            elif isinstance(value, ImageValue):
                preview["field_kinds"][field_name] = "image"
            else:
                preview["field_kinds"][field_name] = "text"
                if value.is_missing:
                    preview["missing_fields"].append(field_name)

        return preview

    def merge_data(self, values: Dict[str, Any]) -> MergeResult:
        """Merge ``values`` into a fresh copy of the template.

        Values are classified once up front. Body, header and footer
        paragraphs are then substituted, inline images placed, the document
        serialized and leftover scalar tokens replaced at package level.
        """
        document = self._load_document()
        diagnostics = MergeDiagnostics()

        try:
            merge_values = resolve_merge_values(values, self.pdf_renderer, diagnostics)
            stories = self._story_roots(document)

            embedder = ImageEmbedder(
                max_width_inches=self.docx_settings["max_image_width_inches"],
                dpi=self.docx_settings["image_dpi"],
            )
            list_expander = BulletListExpander(BulletNumbering(document))
            paged_expander = PagedImageExpander(embedder, self.docx_settings["figure_style"])

            last_paged_group = self._find_last_paged_group(stories, merge_values)

            for part, root in stories:
                for paragraph in list(root.iter(qn("w:p"))):
                    self._process_paragraph(
                        part,
                        paragraph,
                        merge_values,
                        diagnostics,
                        list_expander,
                        paged_expander,
                        paragraph is last_paged_group,
                    )

            self._place_inline_images(stories, merge_values, embedder, diagnostics)

            buffer = io.BytesIO()
            document.save(buffer)
            content = replace_tokens_in_package(
                buffer.getvalue(), merge_values.scalar_values()
            )
        except ReportMergerError:
            raise
        except Exception as e:
            raise DocumentProcessingError(f"Failed to merge data into template: {e}")

        if diagnostics.has_issues:
            logger.warning(f"⚠️ Merge completed with issues: {diagnostics.to_dict()}")
        else:
            logger.info("✅ Merge completed without issues")

        return MergeResult(content, diagnostics)

    def _structural_winner(
        self, matches: List[PlaceholderMatch], values: MergeValues
    ) -> Optional[PlaceholderMatch]:
        """Rightmost list or paged-image token, the one reached first last-to-first."""
        for match in reversed(matches):
            if values.is_structural(match.name):
                return match
        return None

    def _find_last_paged_group(self, stories, values: MergeValues):
        """Walk all stories before mutation and return the last paged-image paragraph."""
        last_group = None
        group_count = 0
        for _, root in stories:
            for paragraph in root.iter(qn("w:p")):
                matches = scan_placeholders(RunTextIndex.build(paragraph).text)
                winner = self._structural_winner(matches, values)
                if winner is not None and isinstance(values.classify(winner.name), PagedImageValue):
                    last_group = paragraph
                    group_count += 1

        if group_count:
            logger.debug(f"Found {group_count} paged-image groups")
        return last_group

    def _process_paragraph(
        self,
        part,
        paragraph,
        values: MergeValues,
        diagnostics: MergeDiagnostics,
        list_expander: BulletListExpander,
        paged_expander: PagedImageExpander,
        is_last_paged_group: bool,
    ) -> None:
        index = RunTextIndex.build(paragraph)
        matches = scan_placeholders(index.text)
        if not matches:
            return

        winner = self._structural_winner(matches, values)
        if winner is not None:
            discarded = [match.name for match in matches if match is not winner]
            if discarded:
                logger.warning(
                    f"Tokens {discarded} share a paragraph with '{winner.name}' and were dropped"
                )
                for name in discarded:
                    diagnostics.record_discarded(name)

            value = values.classify(winner.name)
            if isinstance(value, BulletListValue):
                list_expander.expand(paragraph, value.items, winner.name)
            else:
                paged_expander.expand(
                    part, paragraph, value.pages, winner.name, is_last_paged_group
                )
            return

        for match in reversed(matches):
            value = values.classify(match.name)
            if isinstance(value, ImageValue):
                continue
            self._substitute_scalar(index, match, value, diagnostics)

    def _substitute_scalar(
        self,
        index: RunTextIndex,
        match: PlaceholderMatch,
        value: TextValue,
        diagnostics: MergeDiagnostics,
    ) -> None:
        if value.is_missing:
            runs = index.splice(match.start, match.length, f"<<{match.name}>>")
            for run in runs:
                self._mark_missing(run)
            diagnostics.record_missing(match.name)
            logger.debug(f"Missing value for field '{match.name}'")
            return

        runs = index.splice(match.start, match.length, value.text)
        if self.docx_settings["highlight_replaced_fields"]:
            for run in runs:
                Run(run, None).font.highlight_color = WD_COLOR_INDEX.GRAY_25

    def _mark_missing(self, run_element) -> None:
        font = Run(run_element, None).font
        font.bold = True
        font.color.rgb = RGBColor.from_string(self.docx_settings["missing_value_color"])
        font.highlight_color = WD_COLOR_INDEX.YELLOW

    def _place_inline_images(
        self,
        stories,
        values: MergeValues,
        embedder: ImageEmbedder,
        diagnostics: MergeDiagnostics,
    ) -> None:
        """Move each inline image token into a figure paragraph of its own.

        Every image name is placed at its first occurrence in document order;
        later occurrences are left as text and reported.
        """
        images = {name.casefold(): (name, data) for name, data in values.image_values().items()}
        if not images:
            return

        placed = set()
        for part, root in stories:
            queue = deque(root.iter(qn("w:p")))
            while queue:
                paragraph = queue.popleft()
                follow_up = self._split_on_image(
                    part, paragraph, images, placed, embedder, diagnostics
                )
                if follow_up is not None:
                    queue.appendleft(follow_up)

        for key, (name, _) in images.items():
            if key not in placed:
                logger.info(f"Image '{name}' has no placeholder in the template")

    def _split_on_image(self, part, paragraph, images, placed, embedder, diagnostics):
        """Split ``paragraph`` around its first unplaced image token.

        Content before the token stays in ``paragraph``, a figure paragraph
        with the image follows, and content after the token moves into a new
        paragraph, which is returned so it can be scanned again. Text is cut
        at the token boundaries; fields, tabs, breaks and other elements
        without text stay on the side of the token they sit on.
        """
        full_text = _paragraph_text(paragraph)

        target = None
        for match in scan_placeholders(full_text):
            key = match.name.casefold()
            if key not in images:
                continue
            if key in placed:
                diagnostics.record_unplaced_image(images[key][0])
                logger.warning(f"Image '{match.name}' already placed, leaving duplicate token")
                continue
            target = match
            break

        if target is None:
            return None

        name, data = images[target.name.casefold()]

        trailing = copy.deepcopy(paragraph)
        _trim_paragraph(paragraph, target.start, target.end, keep_leading=True)
        _trim_paragraph(trailing, target.start, target.end, keep_leading=False)

        image_paragraph = make_styled_paragraph(self.docx_settings["figure_style"])
        embedder.embed(part, image_paragraph, name, data)
        nodes = [image_paragraph]

        after_paragraph = None
        if _has_content(trailing):
            after_paragraph = trailing
            nodes.append(after_paragraph)
            # The section now ends at the trailing paragraph
            p_pr = paragraph.find(qn("w:pPr"))
            sect_pr = p_pr.find(qn("w:sectPr")) if p_pr is not None else None
            if sect_pr is not None:
                p_pr.remove(sect_pr)

        insert_after(paragraph, nodes)
        placed.add(target.name.casefold())
        logger.info(f"🖼️ Placed image '{name}'")

        return after_paragraph


def replace_placeholders(
    template_bytes: bytes,
    values: Dict[str, Any],
    config: Optional[Dict[str, Any]] = None,
) -> bytes:
    """Merge ``values`` into a template and return the merged document bytes."""
    return WordTemplateProcessor(template_bytes, config).merge_data(values).content


def get_placeholders(template_bytes: bytes) -> List[str]:
    """Return distinct placeholder names found in body, header and footer text."""
    return WordTemplateProcessor(template_bytes).get_merge_fields()
