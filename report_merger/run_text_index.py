"""Mapping between a paragraph's logical text and the runs that hold it."""

import logging
from typing import List, NamedTuple

from docx.oxml.ns import qn

logger = logging.getLogger(__name__)

XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"


class RunSpan(NamedTuple):
    """A direct ``w:r`` child and the slice of paragraph text it produced."""

    run: object
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


class TextSpan(NamedTuple):
    """One ``w:t`` of a run and its slice of paragraph text."""

    run: object
    element: object
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


def get_run_text(run) -> str:
    return "".join(t.text or "" for t in run.findall(qn("w:t")))


def set_text(text_element, text: str) -> None:
    text_element.text = text
    text_element.set(XML_SPACE, "preserve")


class RunTextIndex:
    """Concatenated text of a paragraph with cumulative run and ``w:t`` offsets.

    Only direct run children are indexed. A run without any ``w:t`` occupies
    a zero-length slot and is never written to. Edits happen per ``w:t``, so
    breaks, tabs and other run content stay where they are. The index goes
    stale once :meth:`splice` has edited text that precedes a later offset,
    which is why callers work last-to-first.
    """

    def __init__(self, paragraph, spans: List[RunSpan], text_spans: List[TextSpan]) -> None:
        self.paragraph = paragraph
        self.spans = spans
        self.text_spans = text_spans
        self.text = "".join(span.element.text or "" for span in text_spans)

    @classmethod
    def build(cls, paragraph) -> "RunTextIndex":
        spans = []
        text_spans = []
        position = 0
        for run in paragraph.findall(qn("w:r")):
            run_start = position
            for t in run.findall(qn("w:t")):
                length = len(t.text or "")
                text_spans.append(TextSpan(run, t, position, length))
                position += length
            spans.append(RunSpan(run, run_start, position - run_start))
        return cls(paragraph, spans, text_spans)

    def affected_spans(self, start: int, length: int) -> List[RunSpan]:
        end = start + length
        return [
            span
            for span in self.spans
            if span.length > 0 and span.end > start and span.start < end
        ]

    def affected_text_spans(self, start: int, length: int) -> List[TextSpan]:
        end = start + length
        return [
            span
            for span in self.text_spans
            if span.length > 0 and span.end > start and span.start < end
        ]

    def splice(self, start: int, length: int, replacement: str) -> List[object]:
        """Replace ``[start, start + length)`` with ``replacement``.

        The first affected ``w:t`` receives the replacement together with its
        own text outside the range; later affected ``w:t`` elements lose only
        the part of their text inside the range. Returns the affected runs in
        order.
        """
        end = start + length
        affected = self.affected_text_spans(start, length)
        if not affected:
            logger.debug(f"No runs cover text range {start}-{end}")
            return []

        runs = []
        for position, span in enumerate(affected):
            original = span.element.text or ""
            local_start = max(0, start - span.start)
            local_end = min(span.length, end - span.start)
            inserted = replacement if position == 0 else ""
            set_text(span.element, original[:local_start] + inserted + original[local_end:])
            if not any(run is span.run for run in runs):
                runs.append(span.run)

        if len(runs) > 1:
            logger.debug(f"Spliced text range {start}-{end} across {len(runs)} runs")

        return runs
