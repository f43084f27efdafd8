"""Source map v3 mappings and remapping across post-bundle rewrites.

The bundler's map describes its own output. Minifying, reformatting and the
version/dedupe substitutions move tokens around, so the map is carried over
token by token: both texts are tokenized and every token of the rewritten
code takes the original position of its counterpart in the bundler output.
"""

from __future__ import annotations

import bisect
import difflib
import json
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import esprima
from esprima.error_handler import Error as EsprimaError

_BASE64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_BASE64_VALUES = {char: index for index, char in enumerate(_BASE64)}

# (generated column, source index, source line, source column[, name index])
Segment = Tuple[int, ...]


class SourceMapError(ValueError):
    """Raised when a map or the code it describes cannot be read."""


def _decode_vlq(segment: str) -> List[int]:
    values: List[int] = []
    shift = 0
    value = 0
    for char in segment:
        try:
            digit = _BASE64_VALUES[char]
        except KeyError as exc:
            raise SourceMapError(f"invalid base64 character {char!r} in mappings") from exc
        value += (digit & 31) << shift
        if digit & 32:
            shift += 5
            continue
        values.append(-(value >> 1) if value & 1 else value >> 1)
        shift = 0
        value = 0
    if shift:
        raise SourceMapError("truncated VLQ segment in mappings")
    return values


def _encode_vlq(value: int) -> str:
    value = (-value << 1) | 1 if value < 0 else value << 1
    chars = []
    while True:
        digit = value & 31
        value >>= 5
        if value:
            digit |= 32
        chars.append(_BASE64[digit])
        if not value:
            return "".join(chars)


def decode_mappings(mappings: str) -> List[List[Segment]]:
    """Decode a ``mappings`` string into absolute segments per generated line."""

    lines: List[List[Segment]] = []
    source = source_line = source_column = name = 0
    for line_text in mappings.split(";"):
        column = 0
        segments: List[Segment] = []
        for raw in line_text.split(","):
            if not raw:
                continue
            fields = _decode_vlq(raw)
            column += fields[0]
            if len(fields) == 1:
                segments.append((column,))
                continue
            source += fields[1]
            source_line += fields[2]
            source_column += fields[3]
            if len(fields) >= 5:
                name += fields[4]
                segments.append((column, source, source_line, source_column, name))
            else:
                segments.append((column, source, source_line, source_column))
        lines.append(segments)
    return lines


def encode_mappings(lines: Sequence[Sequence[Segment]]) -> str:
    previous = [0, 0, 0, 0]
    encoded_lines: List[str] = []
    for segments in lines:
        column = 0
        encoded: List[str] = []
        for segment in segments:
            parts = [_encode_vlq(segment[0] - column)]
            column = segment[0]
            if len(segment) >= 4:
                for slot in range(3):
                    parts.append(_encode_vlq(segment[slot + 1] - previous[slot]))
                    previous[slot] = segment[slot + 1]
                if len(segment) >= 5:
                    parts.append(_encode_vlq(segment[4] - previous[3]))
                    previous[3] = segment[4]
            encoded.append("".join(parts))
        encoded_lines.append(",".join(encoded))
    return ";".join(encoded_lines)


def original_position(lines: Sequence[Sequence[Segment]], line: int, column: int) -> Optional[Segment]:
    """Return the segment covering ``(line, column)`` of the generated code, if any."""

    if line >= len(lines):
        return None
    covering = None
    for segment in lines[line]:
        if segment[0] > column:
            break
        covering = segment
    if covering is None or len(covering) < 4:
        return None
    return covering


@dataclass(frozen=True)
class _Token:
    line: int
    column: int
    key: Tuple[str, str]


def _code_tokens(code: str) -> List[_Token]:
    try:
        tokens = esprima.tokenize(code, {"range": True})
    except EsprimaError as exc:
        raise SourceMapError(str(exc)) from exc
    line_starts = [0]
    line_starts.extend(index + 1 for index, char in enumerate(code) if char == "\n")
    positioned: List[_Token] = []
    for token in tokens:
        start = token.range[0]
        line = bisect.bisect_right(line_starts, start) - 1
        positioned.append(_Token(line, start - line_starts[line], (token.type, token.value)))
    return positioned


def _align(before: List[_Token], after: List[_Token]) -> List[Tuple[_Token, _Token]]:
    if len(before) == len(after):
        return list(zip(before, after))
    matcher = difflib.SequenceMatcher(None, [token.key for token in before], [token.key for token in after], autojunk=False)
    pairs: List[Tuple[_Token, _Token]] = []
    for block in matcher.get_matching_blocks():
        for offset in range(block.size):
            pairs.append((before[block.a + offset], after[block.b + offset]))
    return pairs


def remap_source_map(source_map: str, before: str, after: str) -> str:
    """Rewrite ``source_map`` (describing ``before``) so it describes ``after``."""

    try:
        payload = json.loads(source_map)
    except json.JSONDecodeError as exc:
        raise SourceMapError(f"malformed source map: {exc}") from exc
    original = decode_mappings(payload.get("mappings", ""))
    remapped: List[List[Segment]] = [[] for _ in range(after.count("\n") + 1)]
    for old, new in _align(_code_tokens(before), _code_tokens(after)):
        segment = original_position(original, old.line, old.column)
        if segment is None:
            continue
        moved = (new.column, *segment[1:4])
        # names only hold where the token starts the original segment
        if len(segment) >= 5 and segment[0] == old.column:
            moved = (*moved, segment[4])
        if remapped[new.line] and remapped[new.line][-1][1:] == moved[1:]:
            continue
        remapped[new.line].append(moved)
    payload["mappings"] = encode_mappings(remapped)
    return json.dumps(payload)
