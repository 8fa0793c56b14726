"""
src/secure_store/shell.py - Interactive Command Shell

A thin prompt over SecureFileService. It only parses input and prints
results; all checks happen in the service.
"""

import getpass
import shlex
import sys
from typing import Callable, Dict, List, Optional, TextIO

from .errors import OperationResult, StoreError
from .file_service import SecureFileService


HELP_TEXT = """Available commands:
  help                   show this help
  pwd                    print the current directory
  ls [dir]               list a directory
  cd <dir>               change directory ("/" for root, ".." for parent)
  mkdir <name>           create a directory
  create <name>          create an empty encrypted file
  read <name>            print a file's content
  update <name> <text>   replace a file's content
  delete <name>          delete a file
  verify <name>          check a file against its integrity ledger
  history <name>         show a file's integrity ledger
  register <user>        create an account
  login <user>           log in
  logout                 log out
  whoami                 show the current user
  exit                   quit"""


class SecureShell:
    """Read-eval-print loop for the secure file store."""

    def __init__(self, service: SecureFileService,
                 read_line: Callable[[str], str] = input,
                 read_password: Callable[[str], str] = getpass.getpass,
                 out: Optional[TextIO] = None):
        self.service = service
        self.read_line = read_line
        self.read_password = read_password
        self.out = out or sys.stdout
        self._commands: Dict[str, Callable[[List[str], str], Optional[str]]] = {
            'help': lambda args, rest: HELP_TEXT,
            'pwd': lambda args, rest: self.service.pwd(),
            'ls': self._ls,
            'cd': self._cd,
            'mkdir': self._with_name(self.service.create_directory),
            'create': self._with_name(self.service.create),
            'read': self._read,
            'update': self._update,
            'delete': self._with_name(self.service.delete),
            'verify': self._with_name(self.service.verify),
            'history': self._history,
            'register': self._register,
            'login': self._login,
            'logout': lambda args, rest: self.service.users.logout(),
            'whoami': lambda args, rest: self.service.users.current_user or "not logged in",
        }

    def _print(self, text: str) -> None:
        self.out.write(text + "\n")

    @property
    def prompt(self) -> str:
        user = self.service.users.current_user or "guest"
        return f"sfm:{user}:{self.service.pwd()}> "

    @staticmethod
    def _render(result: OperationResult) -> str:
        return result.message if result.message else result.outcome

    @staticmethod
    def _first(args: List[str], usage: str) -> str:
        if not args:
            raise ValueError(f"usage: {usage}")
        return args[0]

    def _with_name(self, method: Callable[[str], OperationResult]):
        def command(args: List[str], rest: str) -> str:
            return self._render(method(self._first(args, "<command> <name>")))
        return command

    def _ls(self, args: List[str], rest: str) -> str:
        result = self.service.list_directory(args[0] if args else "")
        if not result.ok:
            return self._render(result)
        lines = [result.message] + [f"  {entry}" for entry in result.value]
        return "\n".join(lines) if result.value else result.message + " (empty)"

    def _cd(self, args: List[str], rest: str) -> str:
        return self._render(self.service.change_directory(self._first(args, "cd <dir>")))

    def _read(self, args: List[str], rest: str) -> str:
        result = self.service.read(self._first(args, "read <name>"))
        return result.text if result.ok else self._render(result)

    def _update(self, args: List[str], rest: str) -> str:
        self._first(args, "update <name> <text>")
        # Lex the (possibly quoted) name alone; the rest is content verbatim
        lexer = shlex.shlex(rest, posix=True)
        lexer.whitespace_split = True
        name = lexer.get_token()
        content = lexer.instream.read().lstrip()
        return self._render(self.service.update(name, content))

    def _history(self, args: List[str], rest: str) -> str:
        result = self.service.history(self._first(args, "history <name>"))
        if not result.ok:
            return self._render(result)
        return "\n".join(
            f"  {i:>3}  {entry.timestamp}  {entry.fingerprint[:16]:<16}  {entry.size}B"
            for i, entry in enumerate(result.value, 1)
        )

    def _register(self, args: List[str], rest: str) -> str:
        username = self._first(args, "register <user>")
        password = self.read_password("Password: ")
        if password != self.read_password("Confirm password: "):
            return "Passwords do not match"
        return self.service.users.register(username, password)

    def _login(self, args: List[str], rest: str) -> str:
        username = self._first(args, "login <user>")
        return self.service.users.login(username, self.read_password("Password: "))

    def execute(self, line: str) -> Optional[str]:
        """
        Run one command line.

        Returns:
            Text to display, or None for "exit"
        """
        line = line.strip()
        if not line:
            return ""

        command, _, rest = line.partition(" ")
        command = command.lower()
        if command in ("exit", "quit"):
            return None

        handler = self._commands.get(command)
        if handler is None:
            return "Unknown command. Type 'help'."

        try:
            args = shlex.split(rest)
        except ValueError as e:
            return f"Cannot parse arguments: {e}"

        try:
            return handler(args, rest)
        except StoreError as e:
            return f"{e.kind.value}: {e.message}"
        except ValueError as e:
            return str(e)

    def run(self) -> None:
        self._print("=== Secure File Manager ===")
        self._print("Type 'help' to list the commands.")
        while True:
            try:
                line = self.read_line(self.prompt)
            except (EOFError, KeyboardInterrupt):
                self._print("")
                break

            output = self.execute(line)
            if output is None:
                break
            if output:
                self._print(output)

        self._print("Goodbye.")
