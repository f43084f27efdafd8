from __future__ import annotations

import pytest

from createjs_build.bundle.comments import (
    CommentScanError,
    SourceComment,
    keep_minified_comment,
    keep_non_minified_comment,
    rewrite_comments,
    scan_comments,
)
from createjs_build.bundle.minify import minify, reformat

from conftest import ENTRY_SOURCE

BANNER = "/*!\n* EaselJS\n* Version 1.2.0\n*/"


def _comment(line: int, text: str, block: bool = True) -> SourceComment:
    return SourceComment(line=line, text=text, block=block, start=0, end=0)


def test_minified_rule_keeps_only_the_first_line() -> None:
    assert keep_minified_comment(_comment(1, " anything "))
    assert not keep_minified_comment(_comment(3, "! important"))
    assert not keep_minified_comment(_comment(3, " @license MIT "))


@pytest.mark.parametrize(
    ("comment", "kept"),
    [
        (_comment(1, "* docs "), True),
        (_comment(5, " @license MIT "), True),
        (_comment(5, " Copyright 2017 gskinner.com", block=False), True),
        (_comment(5, "! keep me "), True),
        (_comment(5, " @preserve "), True),
        (_comment(5, "* Documentation block "), False),
        (_comment(5, " plain note", block=False), False),
        (_comment(5, "! not a block", block=False), False),
    ],
)
def test_non_minified_rule(comment: SourceComment, kept: bool) -> None:
    assert keep_non_minified_comment(comment) is kept


def test_scan_comments_reports_lines_and_offsets() -> None:
    code = "/* one */\nvar a = 1; // two\n\n/**\n * three\n */\nvar b;\n"

    comments = scan_comments(code)

    assert [(item.line, item.block) for item in comments] == [(1, True), (2, False), (4, True)]
    assert comments[1].text == " two"
    assert code[comments[0].start:comments[0].end] == "/* one */"


def test_scan_comments_rejects_unparseable_input() -> None:
    with pytest.raises(CommentScanError):
        scan_comments("var a = 'unterminated;\n")


def test_removed_block_comment_keeps_tokens_apart() -> None:
    code = "var a/* gap */=1;"
    rewritten = rewrite_comments(code, scan_comments(code), lambda comment: False)
    assert rewritten == "var a =1;"


def test_bang_rewrite_turns_line_comments_into_blocks() -> None:
    assert _comment(2, " Copyright x */ y", block=False).as_bang_comment() == "/*! Copyright x * / y */"
    assert _comment(1, "! already ").as_bang_comment() == "/*! already */"


def test_minify_keeps_only_the_injected_header() -> None:
    code = f"{BANNER}\n{ENTRY_SOURCE}"

    result = minify(code)

    assert result.startswith("/*!")
    assert "Version 1.2.0" in result
    assert "Documentation block" not in result
    assert "third-party" not in result
    assert "Copyright 2017" not in result
    assert "plain note" not in result
    assert "var Stage$1=Stage" in result


def test_reformat_keeps_licensing_comments() -> None:
    code = f"{BANNER}\n{ENTRY_SOURCE}"

    result = reformat(code)

    assert "Version 1.2.0" in result
    assert "@license third-party MIT" in result
    assert "Copyright 2017 somebody" in result
    assert "Documentation block" not in result
    assert "plain note" not in result
    assert result.endswith("\n")


def test_reformat_compresses_before_printing() -> None:
    assert reformat("var a = 1;\n\n\n\nvar   b =  2 ;\n") == "var a = 1;\nvar b = 2;\n"
