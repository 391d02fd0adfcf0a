"""Structural diff between two project configurations."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from packtools.audit.models import (
    ChangeType,
    ConfigurationDiff,
    PlatformDiff,
    ValueChange,
)
from packtools.models import PackagingProject, Platform


def compute_project_diff(
    baseline: PackagingProject, target: PackagingProject
) -> ConfigurationDiff:
    """Diff metadata, formats, and platform properties of two projects.

    Keys compare case-insensitively and values ordinally. Formats compare as
    case-insensitive sets. A platform present on one side only reports all
    of its formats as added or removed.

    Args:
        baseline: Earlier configuration.
        target: Later configuration.

    Returns:
        Configuration diff; empty when both sides are equivalent.
    """
    metadata_changes = diff_mapping(baseline.metadata, target.metadata)
    platform_diffs: list[PlatformDiff] = []
    for platform in Platform:
        before = baseline.platform_config(platform)
        after = target.platform_config(platform)
        if before is None and after is None:
            continue
        before_formats = before.formats if before is not None else frozenset()
        after_formats = after.formats if after is not None else frozenset()
        added = _format_difference(after_formats, before_formats)
        removed = _format_difference(before_formats, after_formats)
        property_changes = diff_mapping(
            before.properties if before is not None else {},
            after.properties if after is not None else {},
        )
        if added or removed or property_changes:
            platform_diffs.append(
                PlatformDiff(
                    platform=platform,
                    added_formats=added,
                    removed_formats=removed,
                    property_changes=property_changes,
                )
            )
    return ConfigurationDiff(
        metadata_changes=metadata_changes, platform_diffs=tuple(platform_diffs)
    )


def diff_mapping(
    baseline: Mapping[str, str], target: Mapping[str, str]
) -> tuple[ValueChange, ...]:
    """Diff two string maps as key sets.

    Args:
        baseline: Earlier mapping.
        target: Later mapping.

    Returns:
        Changes sorted case-insensitively by key.
    """
    before = _fold(baseline)
    after = _fold(target)
    changes: list[ValueChange] = []
    for folded, (key, value) in before.items():
        if folded not in after:
            changes.append(ValueChange(key=key, type=ChangeType.REMOVED, before=value))
    for folded, (key, value) in after.items():
        if folded not in before:
            changes.append(ValueChange(key=key, type=ChangeType.ADDED, after=value))
    for folded, (key, old_value) in before.items():
        if folded not in after:
            continue
        new_value = after[folded][1]
        if old_value != new_value:
            changes.append(
                ValueChange(
                    key=key, type=ChangeType.UPDATED, before=old_value, after=new_value
                )
            )
    changes.sort(key=lambda change: change.key.casefold())
    return tuple(changes)


def _fold(source: Mapping[str, str]) -> dict[str, tuple[str, str]]:
    folded: dict[str, tuple[str, str]] = {}
    for key, value in source.items():
        folded.setdefault(key.casefold(), (key, value))
    return folded


def _format_difference(
    left: Iterable[str], right: Iterable[str]
) -> tuple[str, ...]:
    """Formats in left missing from right, case-insensitive and sorted."""
    right_folded = {item.casefold() for item in right}
    seen: dict[str, str] = {}
    for item in left:
        folded = item.casefold()
        if folded not in right_folded:
            seen.setdefault(folded, item)
    return tuple(seen[key] for key in sorted(seen))
