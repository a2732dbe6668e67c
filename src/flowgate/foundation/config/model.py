"""Base model for gate configuration objects."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, ValidationError

from flowgate.foundation.errors import ConfigurationError


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "config"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


class GateConfig(BaseModel):
    """Frozen pydantic model whose validation failures surface as ConfigurationError.

    Construction is the only place a gate's parameters are checked, so an
    invalid value fails loudly and synchronously, before any work is queued.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
        revalidate_instances="never",
    )

    def __init__(self, **data: object) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"{type(self).__name__}: {_describe(exc)}") from exc
