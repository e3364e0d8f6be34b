# Copyright (c) Syntropy Systems
"""Replicate group declarations and the replicate matcher."""
from __future__ import annotations

import csv
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Union, cast

import yaml
from typing_extensions import TypeAlias

from ampsweep.errors import ConfigurationError
from ampsweep.models.sweep import MatchResult

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from pathlib import Path

    from ampsweep.models.table import AbundanceTable

# Either a count threshold (called when count > threshold) or a callable
# returning the called sequences of one sample.
PresenceCaller: TypeAlias = Callable[[str, Mapping[str, int]], frozenset[str]]
Detection: TypeAlias = Union[int, PresenceCaller]

DEFAULT_SAMPLE_COLUMN = "sample"
DEFAULT_GROUP_COLUMN = "replicate_group"


class ReplicateGroups(Mapping[str, frozenset[str]]):
    """Read-only mapping of group name to the sample ids in that group.

    Every group needs at least two samples and a sample may only belong to
    one group. Both are checked on construction.
    """

    _groups: dict[str, frozenset[str]]

    def __init__(self, groups: Mapping[str, Iterable[str]]) -> None:
        owner: dict[str, str] = {}
        checked: dict[str, frozenset[str]] = {}
        for name in sorted(groups):
            members = frozenset(str(s) for s in groups[name])
            if len(members) < 2:  # noqa: PLR2004
                msg = (
                    f"Replicate group '{name}' has {len(members)} sample(s); "
                    "replicate group needs ≥ 2 samples"
                )
                raise ConfigurationError(msg)
            for sample in sorted(members):
                if sample in owner:
                    msg = (
                        f"Sample '{sample}' is declared in replicate groups "
                        f"'{owner[sample]}' and '{name}'"
                    )
                    raise ConfigurationError(msg)
                owner[sample] = name
            checked[str(name)] = members
        self._groups = checked

    def __getitem__(self, key: str) -> frozenset[str]:
        return self._groups[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)

    def __repr__(self) -> str:
        return f"ReplicateGroups({self._groups!r})"

    @property
    def samples(self) -> frozenset[str]:
        """All samples declared in any group."""
        return frozenset().union(*self._groups.values())

    def validate_against(self, samples: Iterable[str]) -> None:
        """Fail if a group references a sample missing from `samples`."""
        available = set(samples)
        for name, members in self._groups.items():
            missing = sorted(members - available)
            if missing:
                msg = (
                    f"Replicate group '{name}' references unknown sample(s): "
                    f"{', '.join(missing)}"
                )
                raise ConfigurationError(msg)

    @classmethod
    def from_yaml(cls, path: Path) -> ReplicateGroups:
        """Load groups from a YAML mapping of group name to sample list."""
        with path.open() as f:
            data = cast("object", yaml.safe_load(f))

        if not isinstance(data, dict):
            msg = f"Replicate file {path} must contain a mapping of group -> samples"
            raise ConfigurationError(msg)

        groups: dict[str, list[str]] = {}
        for name, members in cast("dict[object, object]", data).items():
            if not isinstance(members, list):
                msg = f"Replicate group '{name}' must list its samples"
                raise ConfigurationError(msg)
            groups[str(name)] = [str(m) for m in cast("list[object]", members)]
        return cls(groups)

    @classmethod
    def from_sheet(
        cls,
        path: Path,
        sample_column: str = DEFAULT_SAMPLE_COLUMN,
        group_column: str = DEFAULT_GROUP_COLUMN,
    ) -> ReplicateGroups:
        """Load groups from a sample sheet with one row per sample.

        Tab separated unless the file ends in ``.csv``. Rows with an empty
        group cell are samples without replicates and are left out.
        """
        delimiter = "," if path.suffix.lower() == ".csv" else "\t"
        groups: dict[str, list[str]] = {}
        with path.open(newline="") as f:
            reader = csv.DictReader(f, delimiter=delimiter)
            fields = reader.fieldnames or []
            for column in (sample_column, group_column):
                if column not in fields:
                    msg = f"Sample sheet {path} has no '{column}' column"
                    raise ConfigurationError(msg)
            for row in reader:
                sample = (row.get(sample_column) or "").strip()
                group = (row.get(group_column) or "").strip()
                if not sample or not group:
                    continue
                groups.setdefault(group, []).append(sample)
        return cls(groups)

    @classmethod
    def load(cls, path: Path) -> ReplicateGroups:
        """Load from YAML or a sample sheet, chosen by file extension."""
        if path.suffix.lower() in (".yaml", ".yml"):
            return cls.from_yaml(path)
        return cls.from_sheet(path)


def presence_set(
    table: AbundanceTable, sample: str, detection: Detection = 0
) -> frozenset[str]:
    """Sequences called in one sample under the given detection rule."""
    if isinstance(detection, int):
        return table.presence(sample, detection)
    return frozenset(detection(sample, table.sample_counts(sample)))


def match_group(
    table: AbundanceTable,
    name: str,
    members: Iterable[str],
    detection: Detection = 0,
) -> MatchResult:
    """Split the variants called within one group into matched and discordant."""
    presence = [presence_set(table, sample, detection) for sample in sorted(members)]
    matched = frozenset.intersection(*presence)
    called = frozenset.union(*presence)
    return MatchResult(group=name, matched=matched, discordant=called - matched)


def match_replicates(
    table: AbundanceTable,
    groups: ReplicateGroups,
    detection: Detection = 0,
) -> list[MatchResult]:
    """Match results for every replicate group, in group-name order."""
    groups.validate_against(table.samples)
    return [
        match_group(table, name, groups[name], detection) for name in sorted(groups)
    ]
