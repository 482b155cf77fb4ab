"""Shared fixtures: project root on sys.path, a scripted operator and a
recording command executor so no test touches Docker, git or a terminal."""

import shutil
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from cli.prompt import PromptProvider  # noqa: E402
from config.settings import DeployConfig  # noqa: E402
from utils.executor import CommandExecutor, CommandResult  # noqa: E402


class ScriptedPrompt(PromptProvider):
    '''Answers questions from a fixed list; running out is a test failure'''

    def __init__(self, answers=()):
        self.answers = list(answers)
        self.asked = []
        self.notes = []

    def ask(self, message):
        self.asked.append(message)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {message!r}")
        return self.answers.pop(0)

    def note(self, message):
        self.notes.append(message)


class Call:
    def __init__(self, args, cwd=None, env=None, input_text=None, message=None):
        self.args = [str(a) for a in args]
        self.cwd = cwd
        self.env = env
        self.input_text = input_text
        self.message = message

    @property
    def line(self):
        return ' '.join(self.args)

    def __repr__(self):
        return f"Call({self.line!r})"


class FakeExecutor(CommandExecutor):
    '''
    Records every command. Rules match when their words appear as a
    contiguous run inside the command; the first matching rule wins.
    Unmatched commands succeed with empty output.
    '''

    def __init__(self):
        self.calls = []
        self.rules = []

    def on(self, words, result=None, handler=None):
        self.rules.append((words.split(), result, handler))
        return self

    def fail(self, words, returncode=1, output='boom'):
        return self.on(words, result=CommandResult(returncode, output))

    @staticmethod
    def _contains(args, words):
        n = len(words)
        return any(args[i:i + n] == words for i in range(len(args) - n + 1))

    def run(self, args, cwd=None, env=None, input_text=None, message=None):
        call = Call(args, cwd, env, input_text, message)
        self.calls.append(call)
        for words, result, handler in self.rules:
            if self._contains(call.args, words):
                if handler is not None:
                    handled = handler(call)
                    if handled is not None:
                        return handled
                    continue
                return result
        return CommandResult(0, '')

    @property
    def lines(self):
        return [c.line for c in self.calls]

    def ran(self, fragment):
        return any(fragment in line for line in self.lines)

    def count(self, fragment):
        return sum(1 for line in self.lines if fragment in line)

    def index(self, fragment):
        for i, line in enumerate(self.lines):
            if fragment in line:
                return i
        raise AssertionError(f"{fragment!r} was never run")


def remove_tree(call):
    '''Handler that performs `rm -rf <path>` for real'''
    shutil.rmtree(call.args[-1], ignore_errors=True)
    return CommandResult(0, '')


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def scripted():
    return ScriptedPrompt


@pytest.fixture
def install_dir(tmp_path):
    path = tmp_path / 'freescout'
    path.mkdir()
    return path


@pytest.fixture
def existing_install(install_dir):
    '''A previous deployment: infrastructure .env, source checkout and app .env'''
    (install_dir / '.env').write_text(
        "DB_ROOT_PASSWORD=rootpw\n"
        "DB_DATABASE=freescout\n"
        "DB_USER=freescout\n"
        "DB_PASSWORD=dbpw\n"
    )
    (install_dir / 'docker-compose.yml').write_text("services: {}\n")
    src = install_dir / 'src'
    src.mkdir()
    (src / '.env').write_text(
        "APP_NAME=FreeScout\n"
        "ADMIN_EMAIL=admin@example.org\n"
        "ADMIN_PASSWORD=\"s3cret\"\n"
    )
    return install_dir


@pytest.fixture
def deploy_config(install_dir):
    return DeployConfig(
        install_dir=str(install_dir),
        domain_name='helpdesk.example.com',
        docker_subnet='192.168.220.0/24',
        modules=[],
        interactive=False,
    )
