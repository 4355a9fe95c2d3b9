"""Pydantic base models."""

from pydantic import BaseModel, ConfigDict


class StrictBaseModel(BaseModel):
    """
    Immutable model for values the caller supplies.

    No coercion between types and no unknown fields: a typo in an option
    name is an error rather than a silently ignored setting.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        strict=True,
        validate_default=True,
    )


class NodeResponseModel(BaseModel):
    """
    Immutable model for payloads received from a node.

    Nodes add fields between releases, so unknown keys are ignored rather
    than rejected. Validation is lax because Beacon API JSON quotes integers.
    """

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
    )
