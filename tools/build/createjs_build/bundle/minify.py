"""Post-bundle compression and reformatting."""

from __future__ import annotations

import logging
from typing import List, Optional

import jsbeautifier
import rjsmin

from ..schemas.settings import BeautifySettings
from .comments import (
    CommentPredicate,
    SourceComment,
    keep_minified_comment,
    keep_non_minified_comment,
    rewrite_comments,
    scan_comments,
)

logger = logging.getLogger(__name__)


def minify(code: str, *, keep: CommentPredicate = keep_minified_comment) -> str:
    """Compress ``code`` keeping only the comments ``keep`` accepts."""

    return _compress(code, scan_comments(code), keep)


def _compress(code: str, comments: List[SourceComment], keep: CommentPredicate) -> str:
    filtered = rewrite_comments(code, comments, keep, bang_kept=True)
    return rjsmin.jsmin(filtered, keep_bang_comments=True)


def reformat(
    code: str,
    settings: Optional[BeautifySettings] = None,
    *,
    keep: CommentPredicate = keep_non_minified_comment,
) -> str:
    """Mild minify-then-reformat pass for readable builds.

    Rejected comments are dropped and whitespace is compressed, then the
    result is pretty-printed. Kept comments survive as ``/*! */`` blocks.
    """

    comments = scan_comments(code)
    kept = sum(1 for comment in comments if keep(comment))
    logger.debug("Kept %d of %d comments while reformatting.", kept, len(comments))
    compressed = _compress(code, comments, keep)

    options = jsbeautifier.default_options()
    for key, value in (settings or BeautifySettings()).model_dump().items():
        setattr(options, key, value)
    return jsbeautifier.beautify(compressed, options)
