"""Tests for run text index module."""

from docx import Document
from docx.oxml import OxmlElement
from docx.oxml.ns import qn

from docx_builders import append_hyperlink
from report_merger.run_text_index import XML_SPACE, RunTextIndex, get_run_text, set_text


def make_paragraph(*texts):
    paragraph = Document().add_paragraph()
    for text in texts:
        paragraph.add_run(text)
    return paragraph


def make_text(text):
    t = OxmlElement("w:t")
    t.text = text
    return t


class TestRunTextIndex:
    """Test cases for RunTextIndex."""

    def test_build_offsets(self):
        index = RunTextIndex.build(make_paragraph("ab", "cde", "f")._p)

        assert index.text == "abcdef"
        assert [(span.start, span.length) for span in index.spans] == [(0, 2), (2, 3), (5, 1)]

    def test_only_direct_runs_indexed(self):
        paragraph = make_paragraph("Visible ")
        append_hyperlink(paragraph, "{{hidden}}")

        index = RunTextIndex.build(paragraph._p)

        assert index.text == "Visible "
        assert len(index.spans) == 1

    def test_run_without_text_has_zero_length(self):
        paragraph = make_paragraph("ab")
        tab_run = OxmlElement("w:r")
        tab_run.append(OxmlElement("w:tab"))
        paragraph._p.append(tab_run)
        paragraph.add_run("cd")

        index = RunTextIndex.build(paragraph._p)

        assert index.text == "abcd"
        assert index.spans[1].length == 0
        assert [span.run for span in index.affected_spans(1, 2)] == [
            index.spans[0].run,
            index.spans[2].run,
        ]

    def test_splice_within_single_run(self):
        paragraph = make_paragraph("Hello {{name}}!")
        index = RunTextIndex.build(paragraph._p)

        runs = index.splice(6, 8, "World")

        assert len(runs) == 1
        assert paragraph.text == "Hello World!"

    def test_splice_across_runs(self):
        paragraph = make_paragraph("ab{{", "na", "me}}cd")
        index = RunTextIndex.build(paragraph._p)

        runs = index.splice(2, 8, "X")

        assert len(runs) == 3
        assert [run.text for run in paragraph.runs] == ["abX", "", "cd"]

    def test_splice_outside_runs(self):
        index = RunTextIndex.build(make_paragraph("abc")._p)

        assert index.splice(10, 2, "X") == []

    def test_splice_keeps_break_inside_run(self):
        paragraph = make_paragraph("{{x}}")
        run = paragraph.runs[0]._r
        run.append(OxmlElement("w:br"))
        run.append(make_text("second line"))
        index = RunTextIndex.build(paragraph._p)

        index.splice(0, 5, "V")

        assert paragraph.text == "V\nsecond line"

    def test_splice_keeps_tab_inside_run(self):
        paragraph = make_paragraph("Name:")
        run = paragraph.runs[0]._r
        run.append(OxmlElement("w:tab"))
        run.append(make_text("{{x}}"))
        index = RunTextIndex.build(paragraph._p)

        runs = index.splice(5, 5, "Acme")

        assert runs == [run]
        assert paragraph.text == "Name:\tAcme"

    def test_splice_across_text_elements_of_one_run(self):
        paragraph = make_paragraph("a{{")
        run = paragraph.runs[0]._r
        run.append(OxmlElement("w:br"))
        run.append(make_text("x}}b"))
        index = RunTextIndex.build(paragraph._p)

        runs = index.splice(1, 5, "V")

        assert runs == [run]
        assert paragraph.text == "aV\nb"


class TestRunTextHelpers:
    """Test cases for run text helpers."""

    def test_set_text_preserves_space(self):
        t = make_paragraph("x").runs[0]._r.find(qn("w:t"))

        set_text(t, " padded ")

        assert t.text == " padded "
        assert t.get(XML_SPACE) == "preserve"

    def test_get_run_text_joins_text_elements(self):
        run = make_paragraph("one").runs[0]._r
        run.append(OxmlElement("w:br"))
        run.append(make_text("two"))

        assert get_run_text(run) == "onetwo"
