"""
Ruleset catalog.

Holds the rulesets a deployment routes between, indexed by name and by
end point (the dialled number or entry label that starts a call). Rulesets
are normally loaded from a YAML export:

    rule_sets:
      - name: Main menu
        end_points: [Inbound main]
        rules:
          - name: Business customers
            type: DTMFMenu
            priority: 1
            activation: 100
            params: {...}
            conditions:
              - {field: SN_SEGMENT, operation: equals, value: BUSINESS, weight: 100}
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

import yaml

from callflow.errors import ConfigurationError
from callflow.rules.models import RuleSet

logger = logging.getLogger(__name__)


class RuleSetCatalog:
    """Rulesets by name and end point. Disabled rulesets are left out."""

    def __init__(self, rule_sets: Iterable[RuleSet] = ()):
        self._by_name: Dict[str, RuleSet] = {}
        self._by_end_point: Dict[str, RuleSet] = {}
        for rule_set in rule_sets:
            self.add(rule_set)

    def add(self, rule_set: RuleSet) -> None:
        if not rule_set.enabled:
            logger.info("Skipping disabled ruleset %s", rule_set.name)
            return
        if rule_set.name in self._by_name:
            raise ConfigurationError(f"Duplicate ruleset '{rule_set.name}'", reference=rule_set.name)

        self._by_name[rule_set.name] = rule_set
        for end_point in rule_set.end_points:
            if end_point in self._by_end_point:
                raise ConfigurationError(
                    f"End point '{end_point}' is used by '{self._by_end_point[end_point].name}' "
                    f"and '{rule_set.name}'",
                    reference=end_point,
                )
            self._by_end_point[end_point] = rule_set

    @classmethod
    def from_dicts(cls, data: Iterable[Dict[str, Any]]) -> "RuleSetCatalog":
        return cls(RuleSet.from_dict(item) for item in data)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "RuleSetCatalog":
        """
        Load a catalog from a YAML file with a top-level `rule_sets` list.

        Raises:
            ConfigurationError: If the file is missing, unparsable or invalid
        """
        file_path = Path(path)
        if not file_path.exists():
            raise ConfigurationError(f"Ruleset file not found: {file_path}", reference=str(file_path))

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse {file_path}: {e}", reference=str(file_path)) from e

        catalog = cls.from_dicts(data.get("rule_sets", []))
        logger.info("Loaded %d rulesets from %s", len(catalog), file_path)
        return catalog

    def get(self, name: str) -> RuleSet:
        """
        Raises:
            ConfigurationError: If no enabled ruleset has that name
        """
        rule_set = self._by_name.get(name)
        if rule_set is None:
            raise ConfigurationError(f"Failed to find ruleset: {name}", reference=name)
        return rule_set

    def find_by_end_point(self, end_point: str) -> Optional[RuleSet]:
        return self._by_end_point.get(end_point)

    def names(self) -> List[str]:
        return list(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[RuleSet]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)
