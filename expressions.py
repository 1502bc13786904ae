"""
Value grammar for stack definitions.

A scalar value is a literal unless it uses one of the forms below:

    ref:<name>[.<attr>]     whole-value reference (attr defaults to ``id``)
    "...${<name>.<attr>}..." interpolation inside a string
    secret:<key>            Pulumi config secret
    lookup:<key>            provider-native lookup (region, account_id, partition)
    archive:<path>          pulumi.FileArchive
    asset:<path>            pulumi.FileAsset
    {"$json": <value>}      value serialized to a JSON string

A literal "${" is written "$${", so IAM policy variables such as
"$${aws:username}" pass through untouched.
"""

import re
from dataclasses import dataclass
from typing import Any, Iterator, List, Union

REF_PREFIX = "ref:"
SECRET_PREFIX = "secret:"
LOOKUP_PREFIX = "lookup:"
ARCHIVE_PREFIX = "archive:"
ASSET_PREFIX = "asset:"
JSON_KEY = "$json"

LOOKUP_KEYS = {"region", "account_id", "partition"}

ESCAPE = "$${"
# an escape is matched first so "$${x}" never reads as an interpolation
TOKEN = re.compile(r"\$\$\{|\$\{([^}]*)\}")
REFERENCE_TOKEN = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class InvalidExpressionError(ValueError):
    pass


@dataclass(frozen=True)
class Reference:
    resource: str
    attribute: str = "id"

    def __str__(self) -> str:
        return f"{self.resource}.{self.attribute}"


def parse_reference(text: str) -> Reference:
    text = text.strip()
    if not REFERENCE_TOKEN.match(text):
        raise InvalidExpressionError(f"Invalid reference expression: '{text}'")
    if "." in text:
        resource, attribute = text.split(".", 1)
        return Reference(resource, attribute)
    return Reference(text)


def _interpolations(text: str) -> Iterator["re.Match"]:
    for match in TOKEN.finditer(text):
        if match.group(0) != ESCAPE:
            yield match


def unescape(text: str) -> str:
    return text.replace(ESCAPE, "${")


def interpolation_parts(text: str) -> List[Union[str, Reference]]:
    """Split ``text`` into literal strings and references, in order.

    Escaped ``$${`` sequences come back as a literal ``${``.
    """
    parts: List[Union[str, Reference]] = []
    literal = ""
    pos = 0
    for match in TOKEN.finditer(text):
        literal += text[pos:match.start()]
        pos = match.end()
        if match.group(0) == ESCAPE:
            literal += "${"
            continue
        if literal:
            parts.append(literal)
            literal = ""
        parts.append(parse_reference(match.group(1)))
    literal += text[pos:]
    if literal:
        parts.append(literal)
    return parts


def is_interpolated(value: Any) -> bool:
    return isinstance(value, str) and next(_interpolations(value), None) is not None


def _walk_strings(value: Any) -> Iterator[str]:
    if isinstance(value, dict):
        for v in value.values():
            yield from _walk_strings(v)
    elif isinstance(value, list):
        for item in value:
            yield from _walk_strings(item)
    elif isinstance(value, str):
        yield value


def find_references(value: Any) -> List[Reference]:
    """Collect every well-formed reference in ``value``; malformed ones are skipped."""
    refs: List[Reference] = []
    for text in _walk_strings(value):
        if text.startswith(REF_PREFIX):
            try:
                refs.append(parse_reference(text[len(REF_PREFIX):]))
            except InvalidExpressionError:
                continue
        else:
            for match in _interpolations(text):
                try:
                    refs.append(parse_reference(match.group(1)))
                except InvalidExpressionError:
                    continue
    return refs


def find_invalid_expressions(value: Any) -> List[str]:
    """Return a message for every expression that is not valid in the grammar."""
    problems: List[str] = []
    for text in _walk_strings(value):
        if text.startswith(REF_PREFIX):
            body = text[len(REF_PREFIX):]
            if not REFERENCE_TOKEN.match(body.strip()):
                problems.append(f"'{text}' is not a valid reference")
        elif text.startswith(LOOKUP_PREFIX):
            key = text[len(LOOKUP_PREFIX):]
            if key not in LOOKUP_KEYS:
                problems.append(f"'{text}' is not a known lookup (expected one of {sorted(LOOKUP_KEYS)})")
        elif text.startswith(SECRET_PREFIX):
            if not text[len(SECRET_PREFIX):]:
                problems.append(f"'{text}' names no secret")
        else:
            for match in _interpolations(text):
                body = match.group(1).strip()
                if not REFERENCE_TOKEN.match(body):
                    problems.append(
                        f"'{match.group(0)}' is not a static reference; "
                        "runtime calls and operators cannot be interpolated "
                        "(write $${ for a literal ${)"
                    )
            if "${" in TOKEN.sub("", text):
                problems.append(f"'{text}' has an unterminated interpolation")
    return problems
