"""Unit tests for the streaming markdown parser."""

import json

import pytest

from chatcore.markdown import (
    Blockquote,
    CodeBlock,
    Emphasis,
    Heading,
    InlineCode,
    Link,
    ListBlock,
    Paragraph,
    Strong,
    Table,
    Text,
    parse,
    parse_inlines,
    sanitize_href,
    to_dict,
)


class TestBlocks:
    def test_heading_and_paragraph(self):
        blocks = parse("# Title\n\nHello world")

        assert len(blocks) == 2
        assert isinstance(blocks[0], Heading)
        assert blocks[0].level == 1
        assert blocks[0].children == [Text("Title")]
        assert isinstance(blocks[1], Paragraph)
        assert blocks[1].children == [Text("Hello world")]

    @pytest.mark.parametrize("level", [1, 2, 3, 4, 5, 6])
    def test_heading_levels(self, level):
        blocks = parse("#" * level + " H")
        assert blocks[0].level == level

    def test_seven_hashes_is_a_paragraph(self):
        assert isinstance(parse("####### too deep")[0], Paragraph)

    def test_paragraph_joins_lines(self):
        blocks = parse("one\ntwo")
        assert blocks == [Paragraph(children=[Text("one\ntwo")])]

    def test_paragraph_stops_at_other_block_syntax(self):
        blocks = parse("intro\n# Heading\n- item\n> quote")

        assert [type(b) for b in blocks] == [Paragraph, Heading, ListBlock, Blockquote]

    def test_paragraph_stops_at_table(self):
        blocks = parse("intro\n| a | b |\n| --- | --- |\n| 1 | 2 |")
        assert [type(b) for b in blocks] == [Paragraph, Table]

    def test_fenced_code_with_language(self):
        blocks = parse("```ts\nconst x = 1;\n```")
        assert blocks == [CodeBlock(language="ts", content="const x = 1;")]

    def test_fenced_code_keeps_lines_verbatim(self):
        blocks = parse("```\n# not a heading\n\n- not a list\n```\nafter")

        assert blocks[0] == CodeBlock(language=None, content="# not a heading\n\n- not a list")
        assert blocks[1] == Paragraph(children=[Text("after")])

    def test_unterminated_fence_yields_code_block(self):
        blocks = parse("```ts\nconst x = 1;")
        assert blocks == [CodeBlock(language="ts", content="const x = 1;")]

    def test_bare_open_fence(self):
        assert parse("```") == [CodeBlock(language=None, content="")]

    def test_blockquote_is_parsed_recursively(self):
        blocks = parse("> # Quoted\n> second line")

        assert len(blocks) == 1
        quote = blocks[0]
        assert isinstance(quote, Blockquote)
        assert isinstance(quote.children[0], Heading)
        assert quote.children[1] == Paragraph(children=[Text("second line")])

    def test_deeply_nested_blockquote_is_bounded(self):
        blocks = parse(">" * 500 + " deep")

        depth = 0
        node = blocks[0]
        while isinstance(node, Blockquote):
            depth += 1
            node = node.children[0]
        assert isinstance(node, Paragraph)
        assert depth <= 20

    def test_table(self):
        blocks = parse("| Name | Value |\n| --- | :---: |\n| one | **1** |\n| two | 2 |")

        table = blocks[0]
        assert isinstance(table, Table)
        assert table.headers == [[Text("Name")], [Text("Value")]]
        assert table.rows[0] == [[Text("one")], [Strong(children=[Text("1")])]]
        assert len(table.rows) == 2

    def test_table_without_separator_is_paragraph(self):
        blocks = parse("a | b\nc | d")
        assert [type(b) for b in blocks] == [Paragraph]

    def test_table_header_only_while_streaming(self):
        blocks = parse("| a | b |\n| --- | --- |")
        assert blocks == [Table(headers=[[Text("a")], [Text("b")]], rows=[])]

    def test_crlf_input(self):
        assert parse("# A\r\n\r\nb") == parse("# A\n\nb")


class TestLists:
    def test_unordered_and_ordered(self):
        blocks = parse("- one\n- two\n\n1. alpha\n2. beta")

        assert blocks[0].ordered is False
        assert [item.children for item in blocks[0].items] == [[Text("one")], [Text("two")]]
        assert blocks[1].ordered is True
        assert [item.ordinal for item in blocks[1].items] == [1, 2]

    def test_ordinals_are_not_renumbered(self):
        blocks = parse("3. third\n4. fourth\n\n1. one\n3. three")

        assert len(blocks) == 2
        assert [item.ordinal for item in blocks[0].items] == [3, 4]
        assert [item.ordinal for item in blocks[1].items] == [1, 3]

    def test_unordered_items_have_no_ordinal(self):
        blocks = parse("* a\n+ b")
        assert [item.ordinal for item in blocks[0].items] == [None, None]

    def test_task_items(self):
        blocks = parse("- [x] done\n- [ ] pending\n- plain")

        assert [item.checked for item in blocks[0].items] == [True, False, None]
        assert blocks[0].items[0].children == [Text("done")]

    def test_ordered_task_items(self):
        blocks = parse("1. [X] shipped")
        assert blocks[0].items[0].checked is True
        assert blocks[0].items[0].ordinal == 1

    def test_list_kind_change_starts_new_list(self):
        blocks = parse("- a\n1. b")
        assert [b.ordered for b in blocks] == [False, True]

    def test_huge_ordinal_is_not_a_list(self):
        blocks = parse("1" * 5000 + ". x")
        assert isinstance(blocks[0], Paragraph)


class TestInlines:
    def test_nested_strong_and_emphasis(self):
        nodes = parse_inlines("Hello **bold and _italic_** text")

        assert nodes[0] == Text("Hello ")
        assert nodes[1] == Strong(children=[Text("bold and "), Emphasis(children=[Text("italic")])])
        assert nodes[-1] == Text(" text")

    def test_code_span_is_not_parsed(self):
        assert parse_inlines("`a *b*`") == [InlineCode(text="a *b*")]

    def test_underscore_emphasis(self):
        assert parse_inlines("_hi_") == [Emphasis(children=[Text("hi")])]

    def test_unclosed_markers_degrade_to_text(self):
        assert parse_inlines("a `b") == [Text("a `b")]
        assert parse_inlines("**open") == [Text("**open")]
        assert parse_inlines("[label](http://x") == [Text("[label](http://x")]

    def test_adjacent_text_is_coalesced(self):
        nodes = parse_inlines("plain [a] text")
        assert nodes == [Text("plain [a] text")]

    def test_safe_link(self):
        nodes = parse_inlines("see [docs](https://example.com/docs)")
        assert nodes == [
            Text("see "),
            Link(href="https://example.com/docs", children=[Text("docs")]),
        ]

    def test_relative_and_mailto_links(self):
        assert parse_inlines("[a](/settings)")[0] == Link(href="/settings", children=[Text("a")])
        assert parse_inlines("[m](mailto:ops@example.com)")[0].href == "mailto:ops@example.com"

    def test_unsafe_link_keeps_label_only(self):
        blocks = parse("[x](javascript:alert(1))")

        serialized = json.dumps(to_dict(blocks))
        assert "javascript" not in serialized
        assert "\"link\"" not in serialized
        paragraph = blocks[0]
        assert all(isinstance(node, Text) for node in paragraph.children)
        assert paragraph.children[0].text.startswith("x")

    def test_rejected_link_label_merges_with_surrounding_text(self):
        nodes = parse_inlines("a [b](data:text/html,hi) c")
        assert nodes == [Text("a b c")]


class TestSanitizeHref:
    @pytest.mark.parametrize("href", [
        "https://example.com",
        "http://example.com/a?b=c",
        "mailto:someone@example.com",
        "/relative/path",
        "docs/page",
        "  https://padded.example.com  ",
    ])
    def test_allowed(self, href):
        assert sanitize_href(href) == href.strip()

    @pytest.mark.parametrize("href", [
        "javascript:alert(1)",
        "JavaScript:alert(1)",
        "java\nscript:alert(1)",
        "data:text/html,<script>",
        "vbscript:msgbox",
        "",
        "   ",
    ])
    def test_rejected(self, href):
        assert sanitize_href(href) is None


def test_parse_is_idempotent():
    text = "# T\n\n- [x] a\n\n> q\n\n| a |\n| --- |\n| 1 |\n\n```py\nx"
    assert parse(text) == parse(text)
    assert to_dict(parse(text)) == to_dict(parse(text))


def test_every_prefix_parses():
    text = "# Title\n\nSome **bold** and `code` with [a link](https://x.io).\n\n```py\nprint(1)\n```\n- [ ] task"
    for end in range(len(text) + 1):
        parse(text[:end])


def test_to_dict_tags_node_types():
    data = to_dict(parse("# H"))
    assert data == [{"level": 1, "children": [{"text": "H", "type": "text"}], "type": "heading"}]
