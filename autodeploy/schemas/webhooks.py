"""Pydantic models for the push webhook dialects we accept.

Only the fields used to route a deployment are modelled; everything else in
the upstream payload is ignored here (the full mapping is kept on the
canonical event for relaying).

Covers:
- GitHub/GitLab style pushes: ``ref`` + ``repository.name``
- Beanstalk classic: ``branch`` + ``repository.name``
- Bitbucket POST hooks: ``commits[].branch`` + ``repository.slug`` + ``canon_url``
- Bitbucket 2.0 pushes: ``push.changes[].new.name``
"""

from pydantic import BaseModel, ConfigDict


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Repository(_Lenient):
    """Repository block; providers disagree on which key holds the directory name."""

    slug: str | None = None
    name: str | None = None


class Commit(_Lenient):
    """A commit entry; only Bitbucket's POST hook labels commits with a branch."""

    branch: str | None = None


class ChangeTarget(_Lenient):
    """The ``new`` (or ``old``) side of a Bitbucket 2.0 change."""

    name: str | None = None


class Change(_Lenient):
    """One ref update in a Bitbucket 2.0 push; ``new`` is null for deletions."""

    new: ChangeTarget | None = None


class Push(_Lenient):
    """Bitbucket 2.0 ``push`` block."""

    changes: list[Change] | None = None


class PushWebhookPayload(_Lenient):
    """Union of the push payload dialects.

    ``autodeploy_relay`` is our own marker, added when a peer relays the event.
    """

    repository: Repository | None = None
    ref: str | None = None
    branch: str | None = None
    commits: list[Commit] | None = None
    push: Push | None = None
    canon_url: str | None = None
    autodeploy_relay: bool | int | str | None = None
