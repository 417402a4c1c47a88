"""
Synergy map builder.

A synergy root is a capitalized word shared by several attribute names,
e.g. "Gold" groups "Gold Cape" and "Golden Crown". Roots are derived with a
string-prefix heuristic, not a linguistic stemmer:

- a token is *derived* from an already accepted shorter root when the root is
  a case-sensitive prefix of it and the token is at most 3 characters longer
  ("Golden" -> "Gold"), otherwise it becomes a root of its own;
- comparison is on whole tokens, so "Old" is never a prefix of "Gold".

The heuristic has known false positives (an unrelated word up to three
characters longer than a root is folded into it). Saved maps are consumed by
other tooling, so the rule must not change silently; curated corrections go
to the exceptions file instead.

Pipeline::

    extract_roots -> build_map -> apply_exceptions -> synergy_state.json / .txt
"""

from __future__ import annotations

import copy
import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from synergy_backend.config.logger import app_logger, log_performance
from synergy_backend.config.settings import settings
from synergy_backend.services.attribute_catalog import load_catalog
from synergy_backend.utils.json_files import read_json, write_json


SynergyMap = Dict[str, List[str]]

MAX_DERIVED_LENGTH_DIFF = 3
MIN_TOKEN_LENGTH = 2
TEXT_SAMPLE_LINES = 10


@dataclass(frozen=True)
class SynergyExceptions:
    """Curated overrides: attributes to add to / remove from a root."""

    add: Dict[str, List[str]] = field(default_factory=dict)
    remove: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_source(cls, data: Any) -> "SynergyExceptions":
        """Missing or malformed ``add``/``remove`` sections count as empty."""
        if isinstance(data, SynergyExceptions):
            return data
        if not isinstance(data, Mapping):
            return cls()
        return cls(add=_clean_section(data.get("add")), remove=_clean_section(data.get("remove")))

    @property
    def is_empty(self) -> bool:
        return not self.add and not self.remove


def _clean_section(section: Any) -> Dict[str, List[str]]:
    if not isinstance(section, Mapping):
        return {}
    cleaned: Dict[str, List[str]] = {}
    for root, names in section.items():
        if isinstance(names, str):
            names = [names]
        if not isinstance(names, (list, tuple)):
            continue
        cleaned[str(root)] = [str(n) for n in names]
    return cleaned


def _is_capitalized(token: str) -> bool:
    return bool(token) and "A" <= token[0] <= "Z"


def extract_roots(attribute_names: Iterable[str]) -> List[str]:
    """Derive the sorted list of synergy roots from attribute names."""
    tokens = {
        token
        for name in attribute_names
        for token in name.split()
        if _is_capitalized(token)
    }

    accepted: List[str] = []
    for token in sorted(tokens, key=lambda t: (len(t), t)):
        derived = any(
            token != root
            and token.startswith(root)
            and len(token) - len(root) <= MAX_DERIVED_LENGTH_DIFF
            for root in accepted
        )
        if not derived:
            accepted.append(token)

    return sorted(accepted)


def build_map(roots: Iterable[str], attribute_names: Iterable[str]) -> SynergyMap:
    """Associate every attribute name with the roots its tokens start with.

    Every root appears as a key, possibly with an empty list; pruning happens
    in apply_exceptions.
    """
    synergy_map: SynergyMap = {}
    by_first_char: Dict[str, List[str]] = {}
    for root in roots:
        if root in synergy_map:
            continue
        synergy_map[root] = []
        by_first_char.setdefault(root[0], []).append(root)

    seen: Dict[str, set] = {root: set() for root in synergy_map}

    for name in attribute_names:
        for token in name.split():
            if len(token) < MIN_TOKEN_LENGTH:
                continue
            for root in by_first_char.get(token[0], ()):
                if token == root or (token.startswith(root) and len(token) > len(root)):
                    if name not in seen[root]:
                        seen[root].add(name)
                        synergy_map[root].append(name)

    return synergy_map


def apply_exceptions(
    synergy_map: Mapping[str, List[str]],
    exceptions: Union[SynergyExceptions, Mapping[str, Any], None],
) -> SynergyMap:
    """Apply curated additions/removals, drop single-attribute roots, sort."""
    exceptions = SynergyExceptions.from_source(exceptions)
    result: SynergyMap = copy.deepcopy(dict(synergy_map))

    for root, names in exceptions.add.items():
        bucket = result.setdefault(root, [])
        for name in names:
            if name not in bucket:
                bucket.append(name)

    for root, names in exceptions.remove.items():
        if root in result:
            to_remove = set(names)
            result[root] = [name for name in result[root] if name not in to_remove]

    return {
        root: sorted(names)
        for root, names in sorted(result.items())
        if len(names) > 1
    }


def render_text_map(synergy_map: Mapping[str, List[str]]) -> str:
    """Human-readable export: ``Root {Attr A, Attr B}`` per line."""
    lines = [
        f"{root} {{{', '.join(names)}}}\n"
        for root, names in sorted(synergy_map.items())
        if names
    ]
    return "".join(lines)


def map_stats(synergy_map: Mapping[str, List[str]], top: int = 10) -> Dict[str, Any]:
    """Size statistics of a synergy map."""
    sizes = [{"word": root, "count": len(names)} for root, names in synergy_map.items()]
    total_words = len(sizes)
    total_mentions = sum(item["count"] for item in sizes)
    unique_attributes = {name for names in synergy_map.values() for name in names}

    size_distribution: Dict[int, int] = {}
    for item in sizes:
        size_distribution[item["count"]] = size_distribution.get(item["count"], 0) + 1

    return {
        "total_words": total_words,
        "total_attribute_mentions": total_mentions,
        "unique_attributes": len(unique_attributes),
        "average_attributes_per_word": round(total_mentions / total_words, 2) if total_words else 0.0,
        "size_distribution": dict(sorted(size_distribution.items())),
        "top_words": sorted(sizes, key=lambda item: -item["count"])[:top],
        "bottom_words": sorted(sizes, key=lambda item: item["count"])[:top],
    }


@dataclass
class BuildDiagnostics:
    word_count: int
    base_word_count: int
    synergy_count: int
    json_file: str
    text_file: str
    sample: str
    exceptions_added: Dict[str, int] = field(default_factory=dict)
    exceptions_removed: Dict[str, int] = field(default_factory=dict)


@dataclass
class SynergyMapBuildResult:
    synergy_map: SynergyMap
    diagnostics: BuildDiagnostics


def derive_synergy_map(attribute_names: List[str], exceptions: Any = None) -> SynergyMap:
    """Pure end-to-end derivation used by the rebuild and by tests."""
    roots = extract_roots(attribute_names)
    return apply_exceptions(build_map(roots, attribute_names), exceptions)


def load_exceptions(path: Optional[Path] = None) -> SynergyExceptions:
    """Read the curated exceptions; absent or broken files mean no exceptions."""
    source = Path(path or settings.synergy_exceptions_path)
    try:
        data = read_json(source)
    except FileNotFoundError:
        app_logger.warning(f"Synergy exceptions file not found, using none: {source}")
        return SynergyExceptions()
    except json.JSONDecodeError as exc:
        app_logger.error(f"Synergy exceptions file is corrupt, ignoring it: {source}: {exc}")
        return SynergyExceptions()
    return SynergyExceptions.from_source(data)


def load_synergy_map(path: Optional[Path] = None) -> SynergyMap:
    """Read the persisted map; an absent or corrupt artifact yields ``{}``."""
    source = Path(path or settings.synergy_map_path)
    try:
        data = read_json(source)
    except FileNotFoundError:
        app_logger.warning(f"Synergy map not found: {source}. Rebuild it first.")
        return {}
    except json.JSONDecodeError as exc:
        app_logger.error(f"Synergy map is corrupt: {source}: {exc}")
        return {}

    if not isinstance(data, dict):
        app_logger.error(f"Synergy map is not a JSON object: {source}")
        return {}

    synergy_map = {
        str(root): [str(name) for name in names]
        for root, names in data.items()
        if isinstance(names, list)
    }
    app_logger.info(f"Loaded {len(synergy_map)} synergies from {source.name}")
    return synergy_map


def build_synergy_map(
    attributes_path: Optional[Path] = None,
    exceptions_path: Optional[Path] = None,
    output_path: Optional[Path] = None,
) -> SynergyMapBuildResult:
    """Rebuild the canonical synergy map artifact from the attribute catalog.

    Raises MissingSourceDataError when the attribute data is unavailable; an
    empty map is never written in that case.
    """
    start_time = time.time()
    output = Path(output_path or settings.synergy_map_path)
    text_output = output.with_suffix(".txt")

    catalog = load_catalog(attributes_path)
    exceptions = load_exceptions(exceptions_path)
    app_logger.info(
        f"Loaded exceptions: add={len(exceptions.add)}, remove={len(exceptions.remove)}"
    )

    attribute_names = catalog.attribute_names()
    roots = extract_roots(attribute_names)
    base_map = build_map(roots, attribute_names)
    final_map = apply_exceptions(base_map, exceptions)
    text_map = render_text_map(final_map)

    write_json(output, final_map)
    text_output.parent.mkdir(parents=True, exist_ok=True)
    text_output.write_text(text_map, encoding="utf-8")

    diagnostics = BuildDiagnostics(
        word_count=len(roots),
        base_word_count=len(base_map),
        synergy_count=len(final_map),
        json_file=str(output),
        text_file=str(text_output),
        sample="\n".join(text_map.split("\n")[:TEXT_SAMPLE_LINES]),
        exceptions_added={root: len(names) for root, names in exceptions.add.items()},
        exceptions_removed={root: len(names) for root, names in exceptions.remove.items()},
    )
    app_logger.info(
        f"Synergy map rebuilt: {diagnostics.word_count} roots, "
        f"{diagnostics.synergy_count} synergies with >1 attribute -> {output}"
    )
    log_performance("synergy_map_build", time.time() - start_time, synergies=diagnostics.synergy_count)
    return SynergyMapBuildResult(synergy_map=final_map, diagnostics=diagnostics)
