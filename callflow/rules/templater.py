"""
Message templating and classification.

Messages and rule params may reference customer attributes as {{Key}} or
{{Nested.Key}}. Rendering replaces each reference with the resolved value;
classification decides how the contact flow should play the result.

Message types:
- none: empty message, nothing to play
- ssml: wrapped in <speak>...</speak>
- prompt: "prompt:<name>", played from a recorded prompt
- text: anything else, read out with text-to-speech
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Set, Tuple

from callflow.conditions.resolver import resolve_field
from callflow.conditions.values import ABSENT

logger = logging.getLogger(__name__)


# {{Name}} or {{Name.sub}} with optional inner whitespace
_TEMPLATE_PATTERN = re.compile(r'\{\{\s*([\w.]+)\s*\}\}')

# Params that carry their own templates, rendered later against a different context
IGNORED_TEMPLATE_FIELDS: FrozenSet[str] = frozenset({
    "confirmationMessage",
    "autoConfirmMessage",
    "setAttributes",
    "updateStates",
})

# Per-intent confirmations, rendered once the intent is known
IGNORED_TEMPLATE_PREFIXES: Tuple[str, ...] = ("intentConfirmationMessage_",)

MESSAGE_NONE = "none"
MESSAGE_SSML = "ssml"
MESSAGE_PROMPT = "prompt"
MESSAGE_TEXT = "text"

PROMPT_PREFIX = "prompt:"


def is_template(value: Any) -> bool:
    return isinstance(value, str) and _TEMPLATE_PATTERN.search(value) is not None


def _render_value(value: Any) -> str:
    if value is ABSENT or value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def template(
    text: Any,
    context: Mapping[str, Any],
    ignored_fields: Iterable[str] = IGNORED_TEMPLATE_FIELDS
) -> Any:
    """
    Replace every {{Key}} in text with its context value.

    Absent keys render as an empty string. References to ignored fields are
    left in place. Non-string input is returned unchanged.

    >>> template("Hi {{Name}}", {"Name": "Sam"})
    'Hi Sam'
    """
    if not isinstance(text, str):
        return text

    ignored = set(ignored_fields or ())

    def replace(match: "re.Match") -> str:
        name = match.group(1)
        if name in ignored:
            return match.group(0)
        return _render_value(resolve_field(context, name))

    return _TEMPLATE_PATTERN.sub(replace, text)


def is_ignored_param(key: str, ignored: Iterable[str] = IGNORED_TEMPLATE_FIELDS) -> bool:
    return key in ignored or key.startswith(IGNORED_TEMPLATE_PREFIXES)


def template_params(
    params: Mapping[str, Any],
    context: Mapping[str, Any],
    ignored_fields: Iterable[str] = IGNORED_TEMPLATE_FIELDS
) -> Dict[str, Any]:
    """Render every string param except the ignored ones. Returns a new dict."""
    ignored = set(ignored_fields or ())
    rendered: Dict[str, Any] = {}
    for key, value in params.items():
        if is_ignored_param(key, ignored) or not is_template(value):
            rendered[key] = value
        else:
            rendered[key] = template(value, context, ignored)
    return rendered


def referenced_fields(
    source: Any,
    ignored_fields: Iterable[str] = IGNORED_TEMPLATE_FIELDS
) -> Set[str]:
    """
    Attribute names a text or a params dict reads through templates.

    Ignored params are not inspected and ignored names are never reported.
    """
    ignored = set(ignored_fields or ())
    names: Set[str] = set()

    if isinstance(source, Mapping):
        for key, value in source.items():
            if not is_ignored_param(key, ignored):
                names |= referenced_fields(value, ignored)
    elif isinstance(source, str):
        names = {m.group(1) for m in _TEMPLATE_PATTERN.finditer(source)}
    elif isinstance(source, (list, tuple)):
        for item in source:
            names |= referenced_fields(item, ignored)

    return {name for name in names if name not in ignored}


@dataclass(frozen=True)
class MessageClassification:
    type: str
    prompt_arn: Optional[str] = None
    prompt_name: Optional[str] = None


def prompt_name(text: str) -> str:
    """Name from the first line of a "prompt:<name>" message."""
    first_line = text.strip().split("\n")[0].strip()
    return first_line[len(PROMPT_PREFIX):].strip()


def classify_message(text: Any, prompt_resolver=None) -> MessageClassification:
    """
    Decide how a rendered message is played.

    Only the first line of a prompt message names the prompt; following
    lines are free-form notes. A prompt that cannot be resolved is logged
    and classified as none.
    """
    if text is None or not isinstance(text, str) or not text.strip():
        return MessageClassification(MESSAGE_NONE)

    value = text.strip()

    if value.startswith("<speak>") and value.endswith("</speak>"):
        return MessageClassification(MESSAGE_SSML)

    if value.startswith(PROMPT_PREFIX):
        name = prompt_name(value)
        arn = prompt_resolver.lookup(name) if prompt_resolver is not None else None
        if arn is None:
            logger.error("Failed to resolve prompt '%s' for message: %.80s", name, value)
            return MessageClassification(MESSAGE_NONE, prompt_name=name)
        return MessageClassification(MESSAGE_PROMPT, prompt_arn=arn, prompt_name=name)

    return MessageClassification(MESSAGE_TEXT)


def write_message(context, key: str, text: Any, prompt_resolver=None) -> MessageClassification:
    """
    Write a message and its classification into the call context.

    Sets <key>, <key>Type and, for prompts, <key>PromptArn. A stale
    PromptArn from an earlier message is removed.
    """
    classification = classify_message(text, prompt_resolver)
    value = text.strip() if isinstance(text, str) else text
    context.set(key, value)
    context.set(f"{key}Type", classification.type)
    if classification.prompt_arn is not None:
        context.set(f"{key}PromptArn", classification.prompt_arn)
    else:
        context.set(f"{key}PromptArn", None)
    return classification
