"""Tag construction and matching."""

from collections.abc import Iterable

from collegemate.types import Tag


def make_tag(kind: str, id: object | None = None) -> Tag:
    """Build a tag; ids of any type are normalized to strings."""
    return Tag(kind, None if id is None else str(id))


def tag_matches(invalidated: Tag, provided: Tag) -> bool:
    """Check whether invalidating ``invalidated`` affects an entry tagged ``provided``.

    ``{kind}`` hits every entry of that kind. ``{kind, id}`` hits entries
    tagged with the same id and collection-level entries of the kind.
    """
    if invalidated.kind != provided.kind:
        return False
    if invalidated.id is None or provided.id is None:
        return True
    return invalidated.id == provided.id


def any_tag_matches(invalidated: Iterable[Tag], provided: Iterable[Tag]) -> bool:
    provided = tuple(provided)
    return any(tag_matches(inv, tag) for inv in invalidated for tag in provided)

