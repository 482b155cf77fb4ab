import io
import sys

import pytest

from cli import prompt as prompt_module
from cli.prompt import TerminalPrompt, has_interactive_channel
from utils.errors import InteractiveInputRequired


class FakeStdin(io.StringIO):
    def __init__(self, text='', tty=False):
        super().__init__(text)
        self.tty = tty

    def isatty(self):
        return self.tty


def test_confirm_defaults(scripted):
    assert scripted(['']).confirm("Go?", default=True) is True
    assert scripted(['']).confirm("Go?", default=False) is False
    assert scripted(['Y']).confirm("Go?", default=False) is True
    assert scripted(['nope']).confirm("Go?") is False


def test_choose_returns_item(scripted):
    assert scripted(['2']).choose("Pick", ['a', 'b', 'c']) == 'b'


def test_no_channel_raises(monkeypatch):
    monkeypatch.setattr(sys, 'stdin', FakeStdin())
    monkeypatch.setattr(prompt_module, 'TTY_DEVICE', '/nonexistent/tty')

    with pytest.raises(InteractiveInputRequired):
        TerminalPrompt().ask("Question? ")


def test_reads_stdin_when_tty(monkeypatch):
    monkeypatch.setattr(sys, 'stdin', FakeStdin('', tty=True))
    monkeypatch.setattr('builtins.input', lambda message: 'answer')
    assert TerminalPrompt().ask("Question? ") == 'answer'


def test_eof_is_reported_as_missing_input(monkeypatch):
    def closed(message):
        raise EOFError

    monkeypatch.setattr(sys, 'stdin', FakeStdin('', tty=True))
    monkeypatch.setattr('builtins.input', closed)
    with pytest.raises(InteractiveInputRequired):
        TerminalPrompt().ask("Question? ")


def test_has_interactive_channel(monkeypatch, tmp_path):
    monkeypatch.setattr(sys, 'stdin', FakeStdin(tty=True))
    assert has_interactive_channel()

    monkeypatch.setattr(sys, 'stdin', FakeStdin())
    monkeypatch.setattr(prompt_module, 'TTY_DEVICE', str(tmp_path / 'missing'))
    assert not has_interactive_channel()
