"""Bullet numbering definitions in ``word/numbering.xml``."""

import logging
from typing import Optional

from docx.opc.constants import CONTENT_TYPE as CT
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.opc.packuri import PackURI
from docx.oxml import parse_xml
from docx.oxml.ns import nsdecls, qn
from docx.parts.numbering import NumberingPart

from .utils.exceptions import NumberingError

logger = logging.getLogger(__name__)

BULLET_GLYPH = "•"

EMPTY_NUMBERING_XML = f"<w:numbering {nsdecls('w')}/>"

BULLET_ABSTRACT_NUM_XML = (
    "<w:abstractNum {nsdecls} w:abstractNumId=\"{abstract_id}\">"
    "<w:multiLevelType w:val=\"singleLevel\"/>"
    "<w:lvl w:ilvl=\"0\">"
    "<w:start w:val=\"1\"/>"
    "<w:numFmt w:val=\"bullet\"/>"
    "<w:lvlText w:val=\"{glyph}\"/>"
    "<w:lvlJc w:val=\"left\"/>"
    "<w:pPr><w:ind w:left=\"360\" w:hanging=\"180\"/></w:pPr>"
    "</w:lvl>"
    "</w:abstractNum>"
)

NUM_XML = (
    "<w:num {nsdecls} w:numId=\"{num_id}\">"
    "<w:abstractNumId w:val=\"{abstract_id}\"/>"
    "</w:num>"
)


def _int_attr(element, name: str) -> Optional[int]:
    value = element.get(qn(name))
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class BulletNumbering:
    """Finds or creates a level-0 bullet numbering instance for a document.

    Existing abstract definitions and instances are never modified; a new
    definition is only added when no bullet instance can be reused.
    """

    def __init__(self, document) -> None:
        self.document = document
        self._num_id: Optional[int] = None

    def _numbering_root(self, create: bool):
        document_part = self.document.part

        for rel in document_part.rels.values():
            if rel.reltype != RT.NUMBERING or rel.is_external:
                continue
            part = rel.target_part
            root = getattr(part, "element", None)
            if root is None or root.tag != qn("w:numbering"):
                raise NumberingError(
                    f"Numbering part {part.partname} is not a readable numbering document"
                )
            return root

        if not create:
            return None

        package = document_part.package
        partname = package.next_partname("/word/numbering%d.xml")
        if partname == "/word/numbering1.xml":
            partname = PackURI("/word/numbering.xml")
        part = NumberingPart(
            partname, CT.WML_NUMBERING, parse_xml(EMPTY_NUMBERING_XML), package
        )
        document_part.relate_to(part, RT.NUMBERING)
        logger.info("Created numbering part for bullet lists")
        return part.element

    def _find_bullet_num_id(self, root) -> Optional[int]:
        bullet_abstract_ids = set()
        for abstract in root.findall(qn("w:abstractNum")):
            for level in abstract.findall(qn("w:lvl")):
                if level.get(qn("w:ilvl")) != "0":
                    continue
                num_fmt = level.find(qn("w:numFmt"))
                if num_fmt is not None and num_fmt.get(qn("w:val")) == "bullet":
                    abstract_id = _int_attr(abstract, "w:abstractNumId")
                    if abstract_id is not None:
                        bullet_abstract_ids.add(abstract_id)

        for num in root.findall(qn("w:num")):
            abstract_ref = num.find(qn("w:abstractNumId"))
            if abstract_ref is None:
                continue
            if _int_attr(abstract_ref, "w:val") in bullet_abstract_ids:
                return _int_attr(num, "w:numId")

        return None

    def ensure_bullet_num_id(self) -> int:
        """Return a numbering id whose level 0 renders as a bullet."""
        if self._num_id is not None:
            return self._num_id

        root = self._numbering_root(create=True)

        existing = self._find_bullet_num_id(root)
        if existing is not None:
            logger.debug(f"Reusing bullet numbering id {existing}")
            self._num_id = existing
            return existing

        abstracts = root.findall(qn("w:abstractNum"))
        nums = root.findall(qn("w:num"))

        abstract_id = max(
            [_int_attr(a, "w:abstractNumId") or 0 for a in abstracts], default=0
        ) + 1
        num_id = max([_int_attr(n, "w:numId") or 0 for n in nums], default=0) + 1

        abstract = parse_xml(
            BULLET_ABSTRACT_NUM_XML.format(
                nsdecls=nsdecls("w"), abstract_id=abstract_id, glyph=BULLET_GLYPH
            )
        )
        num = parse_xml(
            NUM_XML.format(nsdecls=nsdecls("w"), num_id=num_id, abstract_id=abstract_id)
        )

        # abstractNum elements must precede every num element
        if abstracts:
            abstracts[-1].addnext(abstract)
        elif nums:
            nums[0].addprevious(abstract)
        else:
            root.append(abstract)

        if nums:
            nums[-1].addnext(num)
        else:
            abstract.addnext(num)

        logger.info(f"Added bullet numbering definition (abstractNumId={abstract_id}, numId={num_id})")
        self._num_id = num_id
        return num_id
