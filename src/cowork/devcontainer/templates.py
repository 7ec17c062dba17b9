"""Built-in devcontainer descriptors."""

AUTH_MOUNT_SOURCE = "${localEnv:HOME}/.cowork/auth"
CONTAINER_AUTH_PATH = "/home/vscode/.claude"

# Marker used to decide whether a descriptor already shares credentials
AUTH_MOUNT_MARKER = ".cowork/auth"

AUTH_MOUNT = {
    "source": AUTH_MOUNT_SOURCE,
    "target": CONTAINER_AUTH_PATH,
    "type": "bind",
    "consistency": "cached",
}

CLI_INSTALL_COMMAND = "npm install -g @anthropic-ai/claude-code pnpm"


def _bind(source: str, target: str) -> dict:
    return {"source": source, "target": target, "type": "bind", "consistency": "cached"}


DEFAULT_DEVCONTAINER = {
    "name": "Cowork Development Container",
    "image": "mcr.microsoft.com/devcontainers/base:ubuntu",
    "features": {
        "ghcr.io/devcontainers/features/git:1": {"version": "latest", "ppa": False},
        "ghcr.io/devcontainers/features/github-cli:1": {},
        "ghcr.io/devcontainers/features/node:1": {"version": "lts"},
        "ghcr.io/devcontainers/features/python:1": {"version": "latest"},
        "ghcr.io/devcontainers/features/docker-in-docker:2": {"version": "latest", "moby": True},
        "ghcr.io/devcontainers/features/common-utils:2": {
            "installZsh": True,
            "configureZshAsDefaultShell": True,
            "installOhMyZsh": True,
            "username": "vscode",
            "userUid": "1000",
            "userGid": "1000",
        },
    },
    "customizations": {
        "vscode": {
            "extensions": [
                "ms-azuretools.vscode-docker",
                "ms-vscode.makefile-tools",
                "ms-python.python",
                "dbaeumer.vscode-eslint",
                "esbenp.prettier-vscode",
            ],
            "settings": {
                "terminal.integrated.defaultProfile.linux": "zsh",
                "editor.formatOnSave": True,
                "editor.defaultFormatter": "esbenp.prettier-vscode",
            },
        }
    },
    "postCreateCommand": f"{CLI_INSTALL_COMMAND} yarn && echo 'Container ready!'",
    "mounts": [
        AUTH_MOUNT,
        _bind("${localEnv:HOME}/.ssh", "/home/vscode/.ssh"),
        _bind("${localEnv:HOME}/.gitconfig", "/home/vscode/.gitconfig"),
    ],
    "remoteEnv": {
        "GIT_AUTHOR_NAME": "${localEnv:GIT_AUTHOR_NAME}",
        "GIT_AUTHOR_EMAIL": "${localEnv:GIT_AUTHOR_EMAIL}",
        "GIT_COMMITTER_NAME": "${localEnv:GIT_COMMITTER_NAME}",
        "GIT_COMMITTER_EMAIL": "${localEnv:GIT_COMMITTER_EMAIL}",
    },
    "forwardPorts": [],
    "portsAttributes": {"3000": {"label": "Application", "onAutoForward": "notify"}},
    "hostRequirements": {"cpus": 2, "memory": "4gb", "storage": "32gb"},
    "remoteUser": "vscode",
}

# Throwaway container that only exists to run the interactive login
AUTH_BOOTSTRAP_DEVCONTAINER = {
    "name": "Cowork Auth Setup",
    "image": "mcr.microsoft.com/devcontainers/base:ubuntu",
    "features": {"ghcr.io/devcontainers/features/node:1": {"version": "lts"}},
    "postCreateCommand": CLI_INSTALL_COMMAND,
    "remoteUser": "vscode",
}
