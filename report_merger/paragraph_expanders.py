"""Whole-paragraph expansion for paged images and bullet lists."""

import copy
import logging
from typing import List, Optional, Sequence

from docx.oxml import OxmlElement
from docx.oxml.ns import qn

from .image_embedder import ImageEmbedder
from .numbering import BulletNumbering
from .run_text_index import XML_SPACE

logger = logging.getLogger(__name__)


def make_styled_paragraph(style_id: Optional[str] = None):
    """Create an empty ``w:p``, optionally carrying a paragraph style."""
    paragraph = OxmlElement("w:p")
    if style_id:
        p_pr = OxmlElement("w:pPr")
        p_style = OxmlElement("w:pStyle")
        p_style.set(qn("w:val"), style_id)
        p_pr.append(p_style)
        paragraph.append(p_pr)
    return paragraph


def make_page_break_paragraph(style_id: Optional[str] = None):
    paragraph = make_styled_paragraph(style_id)
    run = OxmlElement("w:r")
    br = OxmlElement("w:br")
    br.set(qn("w:type"), "page")
    run.append(br)
    paragraph.append(run)
    return paragraph


def make_text_run(text: str, run_properties=None):
    """Create a ``w:r`` holding ``text``; ``run_properties`` is deep-copied."""
    run = OxmlElement("w:r")
    if run_properties is not None:
        run.append(copy.deepcopy(run_properties))
    t = OxmlElement("w:t")
    t.text = text
    t.set(XML_SPACE, "preserve")
    run.append(t)
    return run


def insert_after(reference, elements: Sequence) -> None:
    """Insert ``elements`` as following siblings of ``reference``, in order."""
    anchor = reference
    for element in elements:
        anchor.addnext(element)
        anchor = element


def remove_element(element) -> None:
    parent = element.getparent()
    if parent is not None:
        parent.remove(element)


class PagedImageExpander:
    """Replaces a placeholder paragraph with one figure paragraph per page."""

    def __init__(self, embedder: ImageEmbedder, figure_style: str = "Caption") -> None:
        self.embedder = embedder
        self.figure_style = figure_style

    def build(self, part, pages: Sequence[bytes], name: str, is_last_group: bool) -> List:
        """Build the generated sibling paragraphs without touching the document.

        Layout: break, page 1, break, page 2, ... page n, then a trailing break
        unless this is the last paged-image group in the document.
        """
        nodes = [make_page_break_paragraph(self.figure_style)]

        for index, page in enumerate(pages):
            if index > 0:
                nodes.append(make_page_break_paragraph(self.figure_style))
            image_paragraph = make_styled_paragraph(self.figure_style)
            self.embedder.embed(part, image_paragraph, f"{name}_page_{index + 1}", page)
            nodes.append(image_paragraph)

        if not is_last_group:
            nodes.append(make_page_break_paragraph(self.figure_style))

        return nodes

    def expand(self, part, paragraph, pages: Sequence[bytes], name: str, is_last_group: bool) -> List:
        nodes = self.build(part, pages, name, is_last_group)
        insert_after(paragraph, nodes)
        remove_element(paragraph)
        logger.info(
            f"Expanded '{name}' into {len(pages)} page images ({len(nodes)} paragraphs)"
        )
        return nodes


class BulletListExpander:
    """Replaces a placeholder paragraph with one list paragraph per item."""

    def __init__(self, numbering: BulletNumbering) -> None:
        self.numbering = numbering

    @staticmethod
    def _is_numbered(p_pr) -> bool:
        if p_pr is None:
            return False
        num_pr = p_pr.find(qn("w:numPr"))
        return num_pr is not None and num_pr.find(qn("w:numId")) is not None

    @staticmethod
    def _is_sole_cell_paragraph(paragraph) -> bool:
        parent = paragraph.getparent()
        if parent is None or parent.tag != qn("w:tc"):
            return False
        return len(parent.findall(qn("w:p"))) == 1

    @staticmethod
    def _clear_content(paragraph) -> None:
        for child in list(paragraph):
            if child.tag != qn("w:pPr"):
                paragraph.remove(child)

    def _bullet_properties(self, template_p_pr, num_id: int):
        p_pr = OxmlElement("w:pPr")
        if template_p_pr is not None:
            p_style = template_p_pr.find(qn("w:pStyle"))
            if p_style is not None:
                p_pr.append(copy.deepcopy(p_style))

        num_pr = OxmlElement("w:numPr")
        ilvl = OxmlElement("w:ilvl")
        ilvl.set(qn("w:val"), "0")
        num_id_element = OxmlElement("w:numId")
        num_id_element.set(qn("w:val"), str(num_id))
        num_pr.append(ilvl)
        num_pr.append(num_id_element)
        p_pr.append(num_pr)
        return p_pr

    def expand(self, paragraph, items: Sequence[str], name: str = "") -> List:
        if not items:
            if self._is_sole_cell_paragraph(paragraph):
                # a table cell must keep at least one paragraph
                self._clear_content(paragraph)
                logger.debug(f"Emptied list placeholder '{name}' in table cell")
            else:
                remove_element(paragraph)
                logger.debug(f"Removed empty list placeholder '{name}'")
            return []

        template_p_pr = paragraph.find(qn("w:pPr"))
        first_run = paragraph.find(qn("w:r"))
        run_properties = first_run.find(qn("w:rPr")) if first_run is not None else None

        numbered = self._is_numbered(template_p_pr)
        num_id = None if numbered else self.numbering.ensure_bullet_num_id()

        nodes = []
        for item in items:
            new_paragraph = OxmlElement("w:p")
            if numbered:
                new_paragraph.append(copy.deepcopy(template_p_pr))
            else:
                new_paragraph.append(self._bullet_properties(template_p_pr, num_id))
            new_paragraph.append(make_text_run(item, run_properties))
            nodes.append(new_paragraph)

        insert_after(paragraph, nodes)
        remove_element(paragraph)
        logger.info(f"Expanded list '{name}' into {len(nodes)} items")
        return nodes
