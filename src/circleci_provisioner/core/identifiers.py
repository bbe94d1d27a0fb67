"""Composite identifiers for CircleCI resources.

Project environment variables have no server-side id, so state identifies
them as ``ORGANIZATION.PROJECT.NAME``. Import paths use ``/`` instead
(``org/context`` or ``org/context/variable``). In both forms the first
segment is the organization and the last is the name; everything in between
belongs to the middle segment, which may itself contain the separator.
"""

from __future__ import annotations

ID_SEPARATOR = "."
PATH_SEPARATOR = "/"


class IdentifierError(ValueError):
    """Raised for malformed composite identifiers or import paths."""


def _split(value: str, sep: str, example: str) -> tuple[str, str, str]:
    parts = value.split(sep)
    if len(parts) < 3:
        raise IdentifierError(
            f"Invalid identifier {value!r}: expected the form {example}"
        )
    organization, middle, name = parts[0], sep.join(parts[1:-1]), parts[-1]
    if not organization or not middle or not name:
        raise IdentifierError(
            f"Invalid identifier {value!r}: expected the form {example}"
        )
    return organization, middle, name


def encode_id(organization: str, project: str, name: str) -> str:
    """Join organization, project and variable name with ``.``."""
    return ID_SEPARATOR.join((organization, project, name))


def decode_id(resource_id: str) -> tuple[str, str, str]:
    """Split an id produced by :func:`encode_id` back into its three parts."""
    return _split(resource_id, ID_SEPARATOR, "ORGANIZATION.PROJECT.NAME (e.g. acme.web.API_KEY)")


def encode_import_path(*parts: str) -> str:
    return PATH_SEPARATOR.join(parts)


def parse_import_path(path: str, *, parts: int) -> tuple[str, ...]:
    """Parse ``org/context`` (``parts=2``) or ``org/context/variable`` (``parts=3``)."""
    if parts == 2:
        organization, sep, rest = path.partition(PATH_SEPARATOR)
        if not sep or not organization or not rest:
            raise IdentifierError(
                f"Invalid import path {path!r}: expected $organization/$context"
            )
        return organization, rest
    if parts == 3:
        return _split(path, PATH_SEPARATOR, "$organization/$context/$variable")
    raise ValueError(f"Unsupported import path arity: {parts}")


def explode_project_slug(slug: str) -> tuple[str, str, str]:
    """Split ``vcs/org/project`` into its components."""
    pieces = slug.split(PATH_SEPARATOR)
    if len(pieces) != 3 or not all(pieces):
        raise IdentifierError(f"Extracting vcs, org, project from project-slug {slug!r} failed")
    vcs, organization, project = pieces
    return vcs, organization, project


def project_slug(vcs_type: str, organization: str, project: str) -> str:
    return PATH_SEPARATOR.join((vcs_type, organization, project))
