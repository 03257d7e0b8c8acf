#!/usr/bin/env python3
"""
ABOUTME: Unit tests for run_parser.py byte-level run scanning
ABOUTME: Covers run/text spans, entities, nesting, parse errors and segmentation
"""

import pytest

from _docx_fill_helpers import document_xml, para_xml, run_xml

from docx_fill.errors import PartParseError  # noqa: E402
from docx_fill.run_parser import (  # noqa: E402
    RunParser,
    decode_text,
    is_joinable,
    iter_tags,
    split_text_segments,
)


def parse(xml) -> list:
    if isinstance(xml, str):
        xml = xml.encode('utf-8')
    return RunParser(xml).execute()


class TestRunSpans:
    """Tests for recorded run and text node offsets"""

    def test_single_run_spans(self):
        """Open tag, text content and close tag slice back to the source"""
        data = b'<w:p><w:r><w:t>Hello</w:t></w:r></w:p>'
        runs = RunParser(data).execute()
        assert len(runs) == 1
        run = runs[0]
        assert run.has_text
        assert run.open_tag.slice(data) == b'<w:r>'
        assert run.close_tag.slice(data) == b'</w:r>'
        assert run.text.open_tag.slice(data) == b'<w:t>'
        assert run.text.close_tag.slice(data) == b'</w:t>'
        assert run.get_raw_text(data) == b'Hello'
        assert run.text_start == data.index(b'Hello')

    def test_offsets_are_ordered(self):
        """Tag open end <= text open end <= text close start <= run close start"""
        data = b'<w:r w:rsidR="00A1"><w:rPr><w:b/></w:rPr><w:t xml:space="preserve"> x </w:t></w:r>'
        run = parse(data)[0]
        assert run.open_tag.end <= run.text.open_tag.end
        assert run.text.open_tag.end <= run.text.close_tag.start
        assert run.text.close_tag.start <= run.close_tag.start
        assert run.get_text(data) == ' x '

    def test_run_properties_not_mistaken_for_runs(self):
        """w:rPr, w:rFonts and w:tab are not runs or text nodes"""
        data = ('<w:r><w:rPr><w:rFonts w:ascii="Arial"/><w:rStyle w:val="a"/></w:rPr>'
                '<w:tab/><w:t>A</w:t></w:r>')
        runs = parse(data)
        assert len(runs) == 1
        assert runs[0].get_text(data.encode()) == 'A'

    def test_run_without_text(self):
        """A run with no text node has no text span"""
        runs = parse('<w:p><w:r><w:tab/></w:r></w:p>')
        assert len(runs) == 1
        assert not runs[0].has_text
        assert runs[0].text is None

    def test_self_closing_run(self):
        """<w:r/> is a run without text and without close tag"""
        runs = parse('<w:p><w:r/></w:p>')
        assert len(runs) == 1
        assert not runs[0].has_text
        assert runs[0].close_tag is None

    def test_self_closing_text_node(self):
        """<w:t/> is a valid empty text value"""
        data = b'<w:r><w:t/></w:r>'
        run = parse(data)[0]
        assert run.has_text
        assert run.text.self_closing
        assert run.get_text(data) == ''

    def test_multiple_text_nodes_in_one_run(self):
        """Each text node is reported as its own record sharing the run tags"""
        data = b'<w:r><w:t>a</w:t><w:tab/><w:t>b</w:t></w:r>'
        runs = parse(data)
        assert [r.get_text(data) for r in runs] == ['a', 'b']
        assert runs[0].open_tag == runs[1].open_tag
        assert runs[0].close_tag == runs[1].close_tag
        assert [r.id for r in runs] == [0, 1]

    def test_nested_runs_in_document_order(self):
        """Runs nested in a text box are attributed to the innermost run"""
        data = (b'<w:r><w:t>outer</w:t><w:pict><w:txbxContent><w:p>'
                b'<w:r><w:t>inner</w:t></w:r></w:p></w:txbxContent></w:pict></w:r>'
                b'<w:r><w:t>after</w:t></w:r>')
        runs = parse(data)
        assert [r.get_text(data) for r in runs] == ['outer', 'inner', 'after']

    def test_comments_are_skipped(self):
        """Markup inside comments is ignored"""
        data = b'<w:p><!-- <w:t> --><w:r><w:t>x</w:t></w:r></w:p>'
        runs = parse(data)
        assert len(runs) == 1

    def test_attribute_with_gt(self):
        """A '>' inside an attribute value does not end the tag"""
        data = b'<w:r w:x="a>b"><w:t>ok</w:t></w:r>'
        assert parse(data)[0].get_text(data) == 'ok'

    def test_part_without_runs(self):
        """A part without runs yields an empty list"""
        assert parse(document_xml()) == []


class TestTextDecoding:
    """Tests for decode_text character-to-byte mapping"""

    def test_plain_ascii(self):
        text, offsets = decode_text(b'abc')
        assert text == 'abc'
        assert offsets == [0, 1, 2, 3]

    def test_entities_map_to_entity_start(self):
        """Entities decode for matching; offsets still point at raw bytes"""
        text, offsets = decode_text('a&amp;é'.encode('utf-8'))
        assert text == 'a&é'
        assert offsets == [0, 1, 6, 8]

    def test_numeric_character_references(self):
        text, _ = decode_text(b'&#123;&#x7D;')
        assert text == '{}'

    def test_unknown_entity_kept_literally(self):
        text, offsets = decode_text(b'&bogus;')
        assert text == '&bogus;'
        assert offsets[-1] == 7

    def test_get_text_decodes(self):
        data = b'<w:r><w:t>A &amp; B &lt;C&gt;</w:t></w:r>'
        run = parse(data)[0]
        assert run.get_text(data) == 'A & B <C>'
        assert run.get_raw_text(data) == b'A &amp; B &lt;C&gt;'


class TestParseErrors:
    """Tests for malformed run/text nesting"""

    def test_text_close_before_open(self):
        with pytest.raises(PartParseError):
            parse('<w:r></w:t><w:t>x</w:t></w:r>')

    def test_unterminated_tag(self):
        with pytest.raises(PartParseError, match="unterminated"):
            parse('<w:r><w:t>abc</w:t')

    def test_unterminated_comment(self):
        with pytest.raises(PartParseError):
            parse('<w:r><!-- never closed <w:t>x</w:t></w:r>')

    def test_run_never_closed(self):
        with pytest.raises(PartParseError, match="never closed"):
            parse('<w:p><w:r><w:t>x</w:t></w:p>')

    def test_run_close_without_open(self):
        with pytest.raises(PartParseError):
            parse('<w:p></w:r></w:p>')

    def test_text_outside_run(self):
        with pytest.raises(PartParseError, match="outside"):
            parse('<w:p><w:t>x</w:t></w:p>')

    def test_run_closed_inside_text(self):
        with pytest.raises(PartParseError):
            parse('<w:r><w:t>x</w:r>')

    def test_error_carries_location(self):
        """The error reports part name and byte offset"""
        data = b'<w:p></w:t></w:p>'
        with pytest.raises(PartParseError) as exc_info:
            RunParser(data, 'word/document.xml').execute()
        assert exc_info.value.part_name == 'word/document.xml'
        assert exc_info.value.offset == data.index(b'</w:t>')
        assert 'word/document.xml' in str(exc_info.value)


class TestIterTags:
    """Tests for the tag scanner"""

    def test_kinds(self):
        data = b'<?xml version="1.0"?><a:b x="1"><c/></a:b>'
        kinds = [(t.kind, t.name) for t in iter_tags(data)]
        assert kinds == [('open', b'a:b'), ('empty', b'c'), ('close', b'a:b')]


class TestSegments:
    """Tests for joining consecutive text runs into one stream"""

    def _segments(self, xml: str):
        data = xml.encode('utf-8')
        runs = parse(data)
        return [[r.get_text(data) for r in seg] for seg in split_text_segments(runs, data)]

    def test_adjacent_runs_join(self):
        xml = para_xml(run_xml('{{.na'), run_xml('me}}'))
        assert self._segments(xml) == [['{{.na', 'me}}']]

    def test_run_properties_and_proofing_marks_between(self):
        """Self-contained markup between runs does not break the stream"""
        xml = ('<w:p><w:r><w:rPr><w:b/></w:rPr><w:t>a</w:t></w:r>'
               '<w:proofErr w:type="spellStart"/><w:bookmarkStart w:id="0" w:name="x"/>'
               '<w:r><w:rPr><w:i/></w:rPr><w:t>b</w:t></w:r></w:p>')
        assert self._segments(xml) == [['a', 'b']]

    def test_paragraph_boundary_splits(self):
        xml = para_xml(run_xml('a')) + para_xml(run_xml('b'))
        assert self._segments(xml) == [['a'], ['b']]

    def test_run_without_text_splits(self):
        xml = para_xml(run_xml('a'), '<w:r><w:tab/></w:r>', run_xml('b'))
        assert self._segments(xml) == [['a'], ['b']]

    def test_revision_wrapper_splits(self):
        """A w:ins boundary between runs is not a plain run boundary"""
        xml = para_xml(run_xml('a'), '<w:ins w:id="1">' + run_xml('b') + '</w:ins>')
        assert self._segments(xml) == [['a'], ['b']]

    def test_text_nodes_of_same_run_join(self):
        xml = '<w:p><w:r><w:t>a</w:t><w:lastRenderedPageBreak/><w:t>b</w:t></w:r></w:p>'
        assert self._segments(xml) == [['a', 'b']]

    @pytest.mark.parametrize('content', [
        '<w:tab/>', '<w:br/>', '<w:cr/>', '<w:sym w:font="Symbol" w:char="F0B7"/>',
        '<w:noBreakHyphen/>', '<w:softHyphen/>', '<w:fldChar w:fldCharType="begin"/>',
    ])
    def test_content_between_text_nodes_splits(self, content):
        """Tabs, breaks and symbols inside a run end the text stream"""
        xml = f'<w:p><w:r><w:t>a</w:t>{content}<w:t>b</w:t></w:r></w:p>'
        assert self._segments(xml) == [['a'], ['b']]

    def test_content_before_next_text_splits(self):
        """A tab at the start of the following run ends the text stream"""
        xml = para_xml(run_xml('a'), '<w:r><w:rPr><w:b/></w:rPr><w:tab/><w:t>b</w:t></w:r>')
        assert self._segments(xml) == [['a'], ['b']]

    def test_drawing_between_runs_splits(self):
        xml = para_xml(run_xml('a'), '<w:r><w:drawing><wp:inline/></w:drawing><w:t>b</w:t></w:r>')
        assert self._segments(xml) == [['a'], ['b']]

    def test_empty_text_node_joins(self):
        xml = '<w:p>' + run_xml('a') + '<w:r><w:t/></w:r>' + run_xml('b') + '</w:p>'
        assert self._segments(xml) == [['a', '', 'b']]

    def test_is_joinable_requires_text(self):
        data = b'<w:r><w:t>a</w:t></w:r><w:r/>'
        runs = parse(data)
        assert not is_joinable(data, runs[0], runs[1])
