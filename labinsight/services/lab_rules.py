"""Lab vocabulary, severity bands and reference-range helpers.

The tables live in ``config/lab_rules.yaml`` so they can be reviewed without
reading code.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern, Tuple

import yaml

CONFIG_DIR = Path(__file__).parent.parent / "config"
RULES_PATH = CONFIG_DIR / "lab_rules.yaml"

NUM = r"\d+(?:\.\d+)?"


@dataclass(frozen=True)
class Band:
    severity: str
    above: Optional[float] = None
    below: Optional[float] = None

    def matches(self, value: float) -> bool:
        if self.above is not None and value > self.above:
            return True
        if self.below is not None and value < self.below:
            return True
        return False


@dataclass(frozen=True)
class LabRule:
    key: str
    aliases: Tuple[str, ...] = ()
    patterns: Tuple[Pattern[str], ...] = ()
    normal_range: Optional[str] = None
    bands: Tuple[Band, ...] = ()

    @property
    def coded(self) -> bool:
        return bool(self.bands)

    def classify(self, value: float) -> Optional[str]:
        """Return the severity for ``value`` or None when it is inside the normal band."""
        for band in self.bands:
            if band.matches(value):
                return band.severity
        return None


@dataclass(frozen=True)
class LabRuleSet:
    rules: Tuple[LabRule, ...]
    default_normal_range: str = "Consult reference ranges"
    default_severity: str = "low"
    _alias_index: Dict[str, LabRule] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self):
        for rule in self.rules:
            for alias in rule.aliases:
                self._alias_index.setdefault(_normalize_name(alias), rule)

    def resolve(self, name: str) -> Optional[LabRule]:
        norm = _normalize_name(name)
        rule = self._alias_index.get(norm)
        if rule is not None:
            return rule
        for rule in self.rules:
            if any(p.fullmatch(norm) for p in rule.patterns):
                return rule
        return None

    def vocabulary_pattern(self) -> str:
        """Alternation of every alias (longest first) followed by the free patterns."""
        aliases = sorted(
            {a for r in self.rules for a in r.aliases},
            key=lambda a: (-len(a), a),
        )
        parts = [r"\s+".join(re.escape(w) for w in a.split()) for a in aliases]
        parts.extend(p.pattern for r in self.rules for p in r.patterns)
        return "|".join(parts)


def _normalize_name(name: str) -> str:
    return re.sub(r"\s+", " ", (name or "").strip().lower())


def _build_rule(key: str, entry: Dict[str, Any]) -> LabRule:
    bands = tuple(
        Band(
            severity=str(b["severity"]),
            above=float(b["above"]) if b.get("above") is not None else None,
            below=float(b["below"]) if b.get("below") is not None else None,
        )
        for b in (entry.get("bands") or [])
    )
    return LabRule(
        key=key,
        aliases=tuple(str(a).lower() for a in (entry.get("aliases") or [])),
        patterns=tuple(re.compile(p, re.IGNORECASE) for p in (entry.get("patterns") or [])),
        normal_range=entry.get("normal_range"),
        bands=bands,
    )



def load_rules(path: Path = RULES_PATH) -> LabRuleSet:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    params = data.get("parameters") or {}
    return LabRuleSet(
        rules=tuple(_build_rule(k, v or {}) for k, v in params.items()),
        default_normal_range=data.get("default_normal_range") or "Consult reference ranges",
        default_severity=data.get("default_severity") or "low",
    )


@lru_cache(maxsize=1)
def default_rules() -> LabRuleSet:
    return load_rules()


# ---------------- Printed reference ranges ----------------
def parse_reference_range(text: str) -> Optional[Dict[str, Any]]:
    """Parse a printed range such as ``70-100``, ``<200`` or ``>= 40 mg/dL``."""
    if not text:
        return None
    body = text.replace("–", "-").replace("—", "-").replace(" ", "")
    op_match = re.match(r"^(<=|<|>=|>)(" + NUM + r")", body)
    if op_match:
        op, val = op_match.groups()
        mapping = {"<=": "lte", "<": "lt", ">=": "gte", ">": "gt"}
        return {"kind": mapping[op], "v": float(val)}
    between_match = re.match(r"^(" + NUM + r")-(" + NUM + r")", body)
    if between_match:
        lo, hi = between_match.groups()
        return {"kind": "between", "lo": float(lo), "hi": float(hi)}
    return None


def compare_to_range(value: float, reference: Dict[str, Any]) -> Optional[str]:
    kind = reference.get("kind") if reference else None
    if not kind:
        return None
    if kind == "lte":
        return "high" if value > reference["v"] else "normal"
    if kind == "lt":
        return "high" if value >= reference["v"] else "normal"
    if kind == "gte":
        return "low" if value < reference["v"] else "normal"
    if kind == "gt":
        return "low" if value <= reference["v"] else "normal"
    if kind == "between":
        lo, hi = reference["lo"], reference["hi"]
        if value < lo:
            return "low"
        if value > hi:
            return "high"
        return "normal"
    return None


__all__ = [
    "Band",
    "LabRule",
    "LabRuleSet",
    "load_rules",
    "default_rules",
    "parse_reference_range",
    "compare_to_range",
]
