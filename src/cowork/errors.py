"""Error taxonomy. Every fatal condition carries an actionable hint."""

from __future__ import annotations


class CoworkError(Exception):
    """Base class for fatal, user-reportable errors."""

    hint: str = ""

    def __init__(self, message: str, hint: str | None = None) -> None:
        self.message = message
        if hint is not None:
            self.hint = hint
        super().__init__(message)


class NotARepository(CoworkError):
    hint = "Run cowork from inside a git project"


class NoRemote(CoworkError):
    hint = "Please set a git remote origin: git remote add origin <url>"


class MissingExternalTool(CoworkError):
    def __init__(self, tool: str, install_hint: str) -> None:
        self.tool = tool
        super().__init__(f"{tool} not found", install_hint)


class CredentialBootstrapFailed(CoworkError):
    hint = "Re-run 'cowork auth' and complete the login in your browser"


class UnsupportedArchitecture(CoworkError):
    hint = "Use --tmux or --none for this container"

    def __init__(self, arch: str) -> None:
        self.arch = arch
        super().__init__(f"Unsupported architecture: {arch}")


class NoPackageManager(CoworkError):
    hint = "Install the multiplexer in the image yourself, or connect with --none"


class MultiplexerInstallFailed(CoworkError):
    hint = "Check the container's network access, or connect with --none"


class MissingSpecification(CoworkError):
    hint = "Please create .devcontainer/devcontainer.json or let cowork create a default"


class ConfigParseError(CoworkError):
    hint = "Fix or remove the offending line; only KEY=\"value\" assignments and a SESSIONS=( ... ) block are allowed"

    def __init__(self, source: str, lineno: int, line: str, reason: str) -> None:
        self.source = source
        self.lineno = lineno
        self.line = line
        super().__init__(f"{source}:{lineno}: {reason}: {line.strip()!r}")


class ConfigWriteFailed(CoworkError):
    hint = "Check that the configuration directory is writable"


class SessionNotFound(CoworkError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Session '{name}' not found", f"Run 'cowork init {name}' first")


class InvalidSessionName(CoworkError):
    hint = "Use letters, digits, '.', '_' and '-', starting with a letter or digit"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Invalid session name: {name!r}")


class ContainerStartFailed(CoworkError):
    hint = "Check that docker is running and the devcontainer.json is valid"


class ContainerStopFailed(CoworkError):
    hint = "Check that docker is running, or stop the container with 'docker stop <id>'"
