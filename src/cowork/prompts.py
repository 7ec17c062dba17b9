"""Interactive questions, asked through rich."""

from rich.console import Console
from rich.prompt import Confirm, Prompt

from cowork.devcontainer.reconciler import Resolution
from cowork.settings.models import Multiplexer

MULTIPLEXER_MENU = {
    "1": (Multiplexer.TMUX, "tmux (recommended - widely supported)"),
    "2": (Multiplexer.ZELLIJ, "zellij (modern alternative with better UX)"),
    "3": (Multiplexer.NONE, "none (direct shell connection)"),
}

RESOLUTION_MENU = {
    "1": (Resolution.MANUAL, "Show instructions for manual update"),
    "2": (Resolution.PATCH, "Attempt to update automatically (backup will be created)"),
    "3": (Resolution.SKIP_AUTH, "Continue without Claude CLI support"),
}


def _menu(console: Console, question: str, options: dict) -> str:
    console.print(question)
    for key, (_, label) in options.items():
        console.print(f"  {key}) {label}")
    return Prompt.ask("Enter your choice", choices=list(options), default="1", console=console)


def ask_multiplexer(console: Console) -> Multiplexer:
    console.print("Cowork can use terminal multiplexers for persistent sessions that survive disconnections.")
    choice = _menu(console, "Which terminal multiplexer would you prefer?", MULTIPLEXER_MENU)
    return MULTIPLEXER_MENU[choice][0]


def confirm_clean(console: Console) -> bool:
    """Only the literal word 'yes' confirms."""
    reply = Prompt.ask("Are you absolutely sure? Type 'yes' to confirm", default="", console=console)
    return reply == "yes"


class ConsolePrompter:
    """Answers the environment reconciler's questions on the terminal."""

    def __init__(self, console: Console) -> None:
        self.console = console

    def choose_resolution(self) -> Resolution:
        self.console.print("[yellow]Auth mount not found in devcontainer.json[/yellow]")
        choice = _menu(self.console, "Would you like me to:", RESOLUTION_MENU)
        return RESOLUTION_MENU[choice][0]

    def confirm_generate(self) -> bool:
        self.console.print("[yellow]No devcontainer.json found in this project[/yellow]")
        return Confirm.ask(
            "Would you like to create a default devcontainer configuration?",
            default=False,
            console=self.console,
        )

    def notify(self, message: str) -> None:
        self.console.print(message, markup=False, highlight=False)
