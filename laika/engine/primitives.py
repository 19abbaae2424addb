"""LAIKA — Formula Primitive Registry.

The closed set of calls a metric operation may make. Formulas written for the
first generation of the fetcher use the legacy names, which resolve to the same
primitives.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

REGISTRY_VERSION = 1


class ParamKind(str, Enum):
    TEXT = "text"  # quoted string or bare word
    INTEGER = "integer"  # integer literal
    NUMBER = "number"  # numeric literal or nested call


@dataclass(frozen=True)
class Primitive:
    name: str
    params: Tuple[ParamKind, ...]
    required: int

    @property
    def arity(self) -> str:
        if self.required == len(self.params):
            return str(self.required)
        return f"{self.required}-{len(self.params)}"


FETCH_SCALAR = "fetchScalar"
FETCH_COUNTRY_VISITS = "fetchCountryVisits"
FETCH_GOAL_COMPLETIONS = "fetchGoalCompletions"
PERCENT_TO_FRACTION = "percentToFraction"
PRIOR_VALUE = "priorValue"

PRIMITIVES: Dict[str, Primitive] = {
    FETCH_SCALAR: Primitive(
        FETCH_SCALAR,
        (ParamKind.TEXT, ParamKind.TEXT, ParamKind.TEXT, ParamKind.TEXT),
        required=3,
    ),
    FETCH_COUNTRY_VISITS: Primitive(FETCH_COUNTRY_VISITS, (ParamKind.TEXT,), 1),
    FETCH_GOAL_COMPLETIONS: Primitive(FETCH_GOAL_COMPLETIONS, (), 0),
    PERCENT_TO_FRACTION: Primitive(PERCENT_TO_FRACTION, (ParamKind.NUMBER,), 1),
    PRIOR_VALUE: Primitive(PRIOR_VALUE, (ParamKind.INTEGER,), 1),
}

LEGACY_ALIASES: Dict[str, str] = {
    "fetchData": FETCH_SCALAR,
    "fetchDataCountryVisits": FETCH_COUNTRY_VISITS,
    "fetchGoalData": FETCH_GOAL_COMPLETIONS,
    "dePercent": PERCENT_TO_FRACTION,
    "getValue": PRIOR_VALUE,
}


def lookup(name: str) -> Primitive | None:
    """Resolve a primitive by its name or legacy alias."""
    return PRIMITIVES.get(LEGACY_ALIASES.get(name, name))
