"""Comment scanning and the comment-preservation rules used when minifying."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List

import esprima
from esprima.error_handler import Error as EsprimaError

_LICENSE_MARKER_RE = re.compile(r"license|copyright", re.IGNORECASE)
_PRESERVE_MARKER_RE = re.compile(r"@(preserve|uglify)\b", re.IGNORECASE)


@dataclass(frozen=True)
class SourceComment:
    """A comment found in bundled output.

    ``text`` excludes the ``/* */`` or ``//`` delimiters. ``start``/``end``
    are offsets into the scanned source and include the delimiters.
    """

    line: int
    text: str
    block: bool
    start: int
    end: int

    @property
    def has_license_marker(self) -> bool:
        return bool(_LICENSE_MARKER_RE.search(self.text))

    @property
    def has_preserve_marker(self) -> bool:
        if self.block and self.text.startswith("!"):
            return True
        return bool(_PRESERVE_MARKER_RE.search(self.text))

    def as_bang_comment(self) -> str:
        """Render in the ``/*! ... */`` form that compressors keep verbatim."""

        body = self.text if self.block else self.text.replace("*/", "* /") + " "
        if not body.startswith("!"):
            body = f"!{body}"
        return f"/*{body}*/"


CommentPredicate = Callable[[SourceComment], bool]


def keep_minified_comment(comment: SourceComment) -> bool:
    """Minified output keeps only the injected license header."""

    return comment.line == 1


def keep_non_minified_comment(comment: SourceComment) -> bool:
    """Readable output keeps the banner and licensing or explicitly preserved comments."""

    return comment.line == 1 or comment.has_license_marker or comment.has_preserve_marker


class CommentScanError(ValueError):
    """Raised when the source cannot be tokenized."""


def scan_comments(code: str) -> List[SourceComment]:
    try:
        tokens = esprima.tokenize(code, {"comment": True, "range": True})
    except EsprimaError as exc:
        raise CommentScanError(str(exc)) from exc

    comments: List[SourceComment] = []
    for token in tokens:
        if token.type not in ("BlockComment", "LineComment"):
            continue
        start, end = token.range[0], token.range[1]
        comments.append(
            SourceComment(
                line=code.count("\n", 0, start) + 1,
                text=token.value,
                block=token.type == "BlockComment",
                start=start,
                end=end,
            )
        )
    return comments


def rewrite_comments(
    code: str,
    comments: Iterable[SourceComment],
    keep: CommentPredicate,
    *,
    bang_kept: bool = False,
) -> str:
    """Drop every comment ``keep`` rejects.

    Removed block comments leave a single space (or newline, if they spanned
    lines) so neighbouring tokens never merge. With ``bang_kept`` the kept
    comments are rewritten as ``/*! */`` comments.
    """

    pieces: List[str] = []
    cursor = 0
    for comment in sorted(comments, key=lambda item: item.start):
        pieces.append(code[cursor:comment.start])
        original = code[comment.start:comment.end]
        if keep(comment):
            pieces.append(comment.as_bang_comment() if bang_kept else original)
        elif comment.block:
            pieces.append("\n" if "\n" in original else " ")
        cursor = comment.end
    pieces.append(code[cursor:])
    return "".join(pieces)
