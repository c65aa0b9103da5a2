"""
Percentage-weighted routing for Distribution rules.

A Distribution rule exports optionCount, ruleSetName<i> and percentage<i>
for each option plus a defaultRuleSetName that receives whatever
percentage is left over.
"""

import random
from typing import List, Mapping, Optional, Tuple

from callflow.conditions.values import is_number, to_number
from callflow.errors import ConfigurationError
from callflow.logger import logger


def distribution_options(ctx: Mapping) -> List[Tuple[str, float]]:
    """
    Read the configured options as (ruleset name, probability) pairs.

    The default ruleset is appended with the remaining probability when
    the options add up to less than 100%.

    Raises:
        ConfigurationError: On a missing option count, a missing option,
            a total above 100% or a missing default ruleset
    """
    option_count = ctx.get("CurrentRule_optionCount")
    if not is_number(option_count):
        raise ConfigurationError(
            f"Invalid Distribution configuration, missing option count: {option_count!r}",
            reference="CurrentRule_optionCount",
        )

    options: List[Tuple[str, float]] = []
    total = 0.0
    for i in range(int(to_number(option_count))):
        name = ctx.get(f"CurrentRule_ruleSetName{i}")
        percentage = ctx.get(f"CurrentRule_percentage{i}")
        if not name or not is_number(percentage):
            raise ConfigurationError(
                f"Invalid Distribution configuration for option {i}",
                reference=f"CurrentRule_ruleSetName{i}",
            )
        probability = to_number(percentage) / 100.0
        options.append((name, probability))
        total += probability

    # Small tolerance for percentages like 33.3 + 33.3 + 33.4
    if total > 1.0 + 1e-9:
        raise ConfigurationError("Invalid Distribution configuration, total probability exceeds 100%")

    if total < 1.0 - 1e-9:
        default = ctx.get("CurrentRule_defaultRuleSetName")
        if not default:
            raise ConfigurationError(
                "Invalid Distribution configuration, no default rule set name provided",
                reference="CurrentRule_defaultRuleSetName",
            )
        options.append((default, 1.0 - total))

    return options


def solve_distribution(ctx: Mapping, rng: Optional[random.Random] = None) -> str:
    """Pick the next ruleset name by weighted random choice."""
    rng = rng or random.Random()
    options = distribution_options(ctx)
    names = [name for name, _ in options]
    weights = [probability for _, probability in options]

    choice = rng.choices(names, weights=weights, k=1)[0]
    logger.info("Distribution selected ruleset", rule_set=choice, options=len(options))
    return choice
