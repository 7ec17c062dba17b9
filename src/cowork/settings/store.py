"""Read and write .cowork.conf documents.

The format is a restricted subset of shell assignments so that existing
files stay readable by hand::

    MULTIPLEXER_PREFERENCE="tmux"
    SESSIONS=(
        "backend"
        "frontend"
    )

Nothing is ever evaluated. Lines that are not comments, assignments or
the SESSIONS block are rejected.
"""

import os
import re
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import ValidationError

from cowork.errors import ConfigParseError, ConfigWriteFailed
from cowork.logger import logger
from cowork.settings.models import (
    SCALAR_KEYS,
    SESSION_METADATA_PREFIX,
    SESSIONS_KEY,
    CoworkConfig,
    merge,
)

_ASSIGN_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)=(.*)$")
_BARE_RE = re.compile(r"[A-Za-z0-9._/:@+,%~-]+")
_ESCAPABLE = '"\\$`'


class _Reject(Exception):
    """Internal: the current line is not acceptable."""


def _read_word(text: str, pos: int) -> tuple[str, int]:
    """Read one quoted or bare word starting at *pos*."""
    quote = text[pos]
    if quote == "'":
        end = text.find("'", pos + 1)
        if end == -1:
            raise _Reject("unterminated quote")
        return text[pos + 1 : end], end + 1
    if quote == '"':
        chars: list[str] = []
        i = pos + 1
        while i < len(text):
            ch = text[i]
            if ch == "\\" and i + 1 < len(text) and text[i + 1] in _ESCAPABLE:
                chars.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                return "".join(chars), i + 1
            if ch in "$`":
                raise _Reject("expansions are not allowed")
            chars.append(ch)
            i += 1
        raise _Reject("unterminated quote")
    match = _BARE_RE.match(text, pos)
    if not match:
        raise _Reject("unexpected character")
    return match.group(0), match.end()


def _split_words(text: str) -> list[str]:
    words: list[str] = []
    pos = 0
    while True:
        while pos < len(text) and text[pos] in " \t":
            pos += 1
        if pos >= len(text) or text[pos] == "#":
            return words
        word, pos = _read_word(text, pos)
        if pos < len(text) and text[pos] not in " \t":
            raise _Reject("unexpected character")
        words.append(word)


def _parse_value(raw: str) -> str:
    words = _split_words(raw)
    if len(words) > 1:
        raise _Reject("multiple values in assignment")
    return words[0] if words else ""


def parse_config(text: str, source: str = "<config>") -> CoworkConfig:
    """Parse one configuration document."""
    data: dict = {"session_metadata": {}, "extra": {}}
    key_lines: dict[str, int] = {}
    sessions: list[str] | None = None
    block_start: int | None = None

    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        try:
            if block_start is not None:
                if stripped.startswith(")"):
                    if stripped[1:].strip() and not stripped[1:].strip().startswith("#"):
                        raise _Reject("unexpected text after ')'")
                    block_start = None
                    continue
                sessions.extend(_split_words(stripped))  # type: ignore[union-attr]
                continue

            if not stripped or stripped.startswith("#"):
                continue

            match = _ASSIGN_RE.match(stripped)
            if not match:
                raise _Reject("not an assignment")
            key, raw = match.groups()

            if key == SESSIONS_KEY:
                if not raw.startswith("("):
                    raise _Reject("SESSIONS must be a ( ... ) list")
                body = raw[1:]
                close = body.rfind(")")
                sessions = []
                if close == -1:
                    sessions.extend(_split_words(body))
                    block_start = lineno
                else:
                    tail = body[close + 1 :].strip()
                    if tail and not tail.startswith("#"):
                        raise _Reject("unexpected text after ')'")
                    sessions.extend(_split_words(body[:close]))
                continue

            value = _parse_value(raw)
            key_lines[key] = lineno
            if key in SCALAR_KEYS:
                data[SCALAR_KEYS[key]] = value or None
            elif key.startswith(SESSION_METADATA_PREFIX):
                data["session_metadata"][key] = value
            else:
                data["extra"][key] = value
        except _Reject as exc:
            raise ConfigParseError(source, lineno, line, str(exc)) from None

    if block_start is not None:
        raise ConfigParseError(source, block_start, "SESSIONS=(", "unterminated SESSIONS block")

    if sessions is not None:
        data["sessions"] = sessions

    try:
        return CoworkConfig.model_validate(data)
    except ValidationError as exc:
        field = str(exc.errors()[0]["loc"][0])
        key = next((k for k, f in SCALAR_KEYS.items() if f == field), field)
        lineno = key_lines.get(key, 0)
        raise ConfigParseError(source, lineno, f"{key}=...", "invalid value") from exc


def read_config(path: Path) -> CoworkConfig:
    """Parse a file, treating a missing file as an empty document."""
    if not path.exists():
        return CoworkConfig()
    return parse_config(path.read_text(), source=str(path))


def load_config(paths: list[Path]) -> CoworkConfig:
    """Merge candidate files in order; later files win.

    The session list is project-scoped, so only the last candidate (the
    project-level document) may supply it.
    """
    merged = CoworkConfig()
    for index, path in enumerate(paths):
        doc = read_config(path)
        if index < len(paths) - 1 and doc.sessions:
            logger.warning("Ignoring SESSIONS outside project config", path=str(path))
            doc = doc.model_copy(update={"sessions": []})
        merged = merge(merged, doc)
    return merged


@dataclass
class ConfigLayers:
    """The user and project documents, kept apart so each saves on its own."""

    user_path: Path
    project_path: Path | None
    user: CoworkConfig
    project: CoworkConfig

    @property
    def merged(self) -> CoworkConfig:
        return merge(self.user, self.project)


def load_layers(user_path: Path, project_path: Path | None = None) -> ConfigLayers:
    user = read_config(user_path)
    if user.sessions:
        logger.warning("Ignoring SESSIONS in user config", path=str(user_path))
        user = user.model_copy(update={"sessions": []})
    project = read_config(project_path) if project_path else CoworkConfig()
    return ConfigLayers(user_path=user_path, project_path=project_path, user=user, project=project)


def _quote(value: str) -> str:
    escaped = "".join("\\" + ch if ch in _ESCAPABLE else ch for ch in value)
    return f'"{escaped}"'


def render_config(config: CoworkConfig, now: datetime | None = None) -> str:
    now = now or datetime.now()
    lines = [
        "# Cowork configuration",
        f"# Generated at {now.strftime('%a %b %d %H:%M:%S %Y')}",
        "",
    ]
    if config.sessions:
        lines.append(f"{SESSIONS_KEY}=(")
        lines.extend(f"    {_quote(name)}" for name in config.sessions)
        lines.append(")")
    for key, value in config.session_metadata.items():
        lines.append(f"{key}={_quote(value)}")
    for key, value in config.extra.items():
        lines.append(f"{key}={_quote(value)}")
    for key, field in SCALAR_KEYS.items():
        value = getattr(config, field)
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        lines.append(f"{key}={_quote(value)}")
    return "\n".join(lines) + "\n"


def save_config(path: Path | None, config: CoworkConfig) -> None:
    """Atomically write *config* to *path* (temp file in the same dir, then rename)."""
    if path is None:
        raise ConfigWriteFailed("No config file specified")

    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", dir=path.parent, prefix=f"{path.name}.", suffix=".tmp", delete=False
        ) as fh:
            tmp_name = fh.name
            fh.write(render_config(config))
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except OSError as exc:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise ConfigWriteFailed(f"Could not write {path}: {exc}") from exc
    logger.debug("Config saved", path=str(path), sessions=len(config.sessions))
