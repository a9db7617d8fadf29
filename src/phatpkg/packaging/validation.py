"""Pairwise checks between the two resolved bundles."""

from ..exceptions import BundleIdMismatchError, VersionMismatchError
from ..models import ResolvedBundle


def validate_pair(first: ResolvedBundle, second: ResolvedBundle) -> None:
    if first.version != second.version:
        raise VersionMismatchError(
            f"App versions do not match. {first.slot.label}: {first.version}, "
            f"{second.slot.label}: {second.version}"
        )
    if first.identifier != second.identifier:
        raise BundleIdMismatchError(
            f"App bundle IDs do not match. {first.slot.label}: {first.identifier}, "
            f"{second.slot.label}: {second.identifier}"
        )
