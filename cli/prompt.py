# TREESCOUT v2.0 - Operator prompt
import os
import sys
from abc import ABC, abstractmethod

from cli.ui import console
from utils.errors import InteractiveInputRequired

TTY_DEVICE = '/dev/tty'


def has_interactive_channel():
    '''True if stdin is a terminal or a controlling terminal can be opened'''
    try:
        if sys.stdin is not None and sys.stdin.isatty():
            return True
    except (AttributeError, ValueError):
        pass
    return os.path.exists(TTY_DEVICE) and os.access(TTY_DEVICE, os.R_OK | os.W_OK)


class PromptProvider(ABC):
    '''Blocking operator questions. Tests substitute a scripted fake.'''

    @abstractmethod
    def ask(self, message):
        '''Show message and return one line of input (without newline)'''

    def choose(self, message, choices):
        '''Numbered selection; invalid input re-prompts. Returns the chosen item.'''
        self.show_choices(message, choices)
        while True:
            selection = self.ask(f"Select [1-{len(choices)}]: ").strip()
            try:
                idx = int(selection)
                if 1 <= idx <= len(choices):
                    return choices[idx - 1]
            except ValueError:
                pass
            self.note(f"Please enter 1-{len(choices)}")

    def confirm(self, message, default=True):
        '''Yes/no question, empty answer returns default'''
        hint = "[Y/n]" if default else "[y/N]"
        answer = self.ask(f"{message} {hint} ").strip().lower()
        if not answer:
            return default
        return answer in ('y', 'yes')

    def show_choices(self, message, choices):
        pass

    def note(self, message):
        pass


class TerminalPrompt(PromptProvider):
    '''Reads from stdin when it is a TTY, otherwise from /dev/tty'''

    def _read_line(self, message):
        if sys.stdin is not None and sys.stdin.isatty():
            return input(message)

        if os.path.exists(TTY_DEVICE):
            try:
                with open(TTY_DEVICE, 'r+') as tty:
                    tty.write(message)
                    tty.flush()
                    line = tty.readline()
            except OSError:
                line = None
            if line is not None:
                if line == '':
                    raise EOFError
                return line.rstrip('\n')

        raise InteractiveInputRequired("Interactive input required but no TTY available.")

    def ask(self, message):
        console.print(f"  │", style="dim cyan", end="")
        try:
            return self._read_line(f"     {message}")
        except EOFError:
            raise InteractiveInputRequired("Input closed while waiting for an answer.")

    def show_choices(self, message, choices):
        console.print(f"  │", style="dim cyan")
        console.print(f"  │     [bold cyan]{message}:[/bold cyan]")
        for i, choice in enumerate(choices, 1):
            console.print(f"  │       {i}) {choice}", style="dim green")

    def note(self, message):
        console.print(f"  │     {message}", style="dim red")
