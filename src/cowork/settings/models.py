"""Configuration data model shared by the user and project documents."""

from enum import Enum

from pydantic import BaseModel, Field


class Multiplexer(str, Enum):
    TMUX = "tmux"
    ZELLIJ = "zellij"
    NONE = "none"


# File key -> model field for the scalars Cowork manages
SCALAR_KEYS = {
    "MULTIPLEXER_PREFERENCE": "multiplexer_preference",
    "DOCKERFILE_OVERRIDE": "dockerfile_override",
    "PROJECT_NAME": "project_name",
}
SESSIONS_KEY = "SESSIONS"
SESSION_METADATA_PREFIX = "SESSION_"


class CoworkConfig(BaseModel):
    """One configuration document, or the merge of several."""

    multiplexer_preference: Multiplexer | None = None
    dockerfile_override: str | None = None
    project_name: str | None = None
    sessions: list[str] = Field(default_factory=list)
    # SESSION_* keys, kept verbatim
    session_metadata: dict[str, str] = Field(default_factory=dict)
    # Assignments Cowork does not know about; round-tripped, never interpreted
    extra: dict[str, str] = Field(default_factory=dict)

    def with_sessions(self, names: list[str]) -> "CoworkConfig":
        return self.model_copy(update={"sessions": unique_names(names)})


def unique_names(names: list[str]) -> list[str]:
    """Drop later duplicates, keeping first-occurrence order."""
    return list(dict.fromkeys(names))


def merge(base: CoworkConfig, override: CoworkConfig) -> CoworkConfig:
    """Overlay *override* on *base*. The session list always comes from *override*."""
    update: dict = {
        field: getattr(override, field)
        for field in SCALAR_KEYS.values()
        if getattr(override, field) is not None
    }
    update["session_metadata"] = {**base.session_metadata, **override.session_metadata}
    update["extra"] = {**base.extra, **override.extra}
    update["sessions"] = list(override.sessions)
    return base.model_copy(update=update)
