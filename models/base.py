"""Shared model building blocks: camelCase API models and email identities."""

from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base class for every API-facing model; serializes to camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


def normalize_identity(value: str) -> str:
    """Canonical form of an email identity: trimmed and lower-cased."""
    return value.strip().lower()


def _validate_identity(value: str) -> str:
    value = normalize_identity(value)
    local, sep, domain = value.partition("@")
    if not (local and sep and domain):
        raise ValueError("email must look like name@domain")
    return value


# Request fields holding an identity are normalized once, at the API boundary.
Identity = Annotated[str, AfterValidator(_validate_identity)]
