"""
In-queue behaviour sequencing.

While a caller waits in queue the contact flow calls back on every loop.
Each call runs the behaviour under a persisted cursor:

- Message: render and classify the message, write QueueBehaviour_* fields,
  move the cursor to the next behaviour (wrapping to the start)
- Goto: move the cursor to the target index, write only the type

Behaviours may carry conditions; one whose score is below its activation
is skipped for this turn. Output fields from the previous turn are always
pruned first so a Goto turn never replays an old message.
"""

import json
from dataclasses import dataclass
from typing import List, Optional

from callflow.conditions.scorer import ConditionScorer
from callflow.conditions.values import to_int
from callflow.errors import ConfigurationError
from callflow.logger import logger
from callflow.rules.models import QUEUE_GOTO, QUEUE_MESSAGE, QueueBehavior
from callflow.rules.selector import score_conditions
from callflow.rules.templater import template, write_message
from callflow.state import CallContext

BEHAVIOURS_KEY = "CurrentRule_queueBehaviours"
CURSOR_KEY = "CurrentRule_queueBehaviourIndex"
OUTPUT_PREFIX = "QueueBehaviour_"

TYPE_NONE = "None"
TYPE_SKIPPED = "Skipped"


@dataclass
class QueueStep:
    """What one sequencer turn did."""
    type: str
    cursor: int
    next_cursor: int
    message: Optional[str] = None
    message_type: Optional[str] = None
    prompt_arn: Optional[str] = None


def read_behaviours(ctx: CallContext) -> List[QueueBehavior]:
    """
    Behaviour list from the exported rule; a list or its JSON form.

    Raises:
        ConfigurationError: If the value is not a list or an entry is invalid
    """
    raw = ctx.get(BEHAVIOURS_KEY)
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise ConfigurationError(f"Queue behaviours are not valid JSON: {e}", reference=BEHAVIOURS_KEY) from e
    if not isinstance(raw, list):
        raise ConfigurationError("Queue behaviours must be a list", reference=BEHAVIOURS_KEY)
    return [item if isinstance(item, QueueBehavior) else QueueBehavior.from_dict(item) for item in raw]


def read_cursor(ctx: CallContext) -> int:
    """Persisted cursor, 0 when missing or unparsable."""
    return to_int(ctx.get(CURSOR_KEY), 0)


def next_cursor(cursor: int, count: int) -> int:
    """Position after cursor, wrapping to 0 past the end."""
    if count <= 0:
        return cursor
    following = cursor + 1
    return following if following < count else 0


class QueueBehaviorSequencer:
    """
    Runs one queue behaviour per turn.

    Holds no per-call state: the cursor lives in the context, so the same
    context always produces the same step.
    """

    def __init__(self, prompt_resolver=None, scorer: Optional[ConditionScorer] = None):
        self.prompt_resolver = prompt_resolver
        self.scorer = scorer

    def step(self, ctx: CallContext) -> QueueStep:
        ctx.prune(OUTPUT_PREFIX)

        behaviours = read_behaviours(ctx)
        cursor = read_cursor(ctx)

        if not behaviours:
            logger.info("No queue behaviours configured")
            ctx.set(f"{OUTPUT_PREFIX}type", TYPE_NONE)
            result = QueueStep(type=TYPE_NONE, cursor=cursor, next_cursor=cursor)
            self._log(result)
            return result

        if not 0 <= cursor < len(behaviours):
            logger.warning("Queue behaviour cursor out of range, restarting", cursor=cursor, count=len(behaviours))
            cursor = 0

        behaviour = behaviours[cursor]

        if behaviour.conditions and score_conditions(behaviour.conditions, ctx, self.scorer) < behaviour.activation:
            ctx.set(f"{OUTPUT_PREFIX}type", TYPE_SKIPPED)
            result = QueueStep(type=TYPE_SKIPPED, cursor=cursor, next_cursor=next_cursor(cursor, len(behaviours)))
        elif behaviour.type == QUEUE_GOTO:
            ctx.set(f"{OUTPUT_PREFIX}type", QUEUE_GOTO)
            result = QueueStep(type=QUEUE_GOTO, cursor=cursor, next_cursor=behaviour.target_index)
        else:
            result = self._message(ctx, behaviour, cursor, len(behaviours))

        ctx.set(CURSOR_KEY, str(result.next_cursor))
        self._log(result)
        return result

    def _message(self, ctx: CallContext, behaviour: QueueBehavior, cursor: int, count: int) -> QueueStep:
        message = template(behaviour.message or "", ctx).strip()
        ctx.set(f"{OUTPUT_PREFIX}type", QUEUE_MESSAGE)
        classification = write_message(ctx, f"{OUTPUT_PREFIX}message", message, self.prompt_resolver)
        return QueueStep(
            type=QUEUE_MESSAGE,
            cursor=cursor,
            next_cursor=next_cursor(cursor, count),
            message=message,
            message_type=classification.type,
            prompt_arn=classification.prompt_arn,
        )

    def _log(self, result: QueueStep) -> None:
        logger.event(
            "QUEUE_BEHAVIOUR",
            behaviour_type=result.type,
            cursor=result.cursor,
            next_cursor=result.next_cursor,
            message_type=result.message_type,
        )


def sequence_queue(ctx: CallContext, prompt_resolver=None) -> QueueStep:
    """Run one queue turn with a fresh sequencer."""
    return QueueBehaviorSequencer(prompt_resolver).step(ctx)
