"""
CommandRegistry - Explicit command registration for the control system

Bounded Context: Command registration and validation
Responsibilities:
  - Register control commands with handlers
  - Reject unknown commands before anything runs
  - Introspection (available_commands, get_help)

Threading: Thread-safe (lock for writes, snapshot reads)
"""

from typing import Any, Callable, Dict, Optional, Set
import threading

CommandHandler = Callable[[Dict[str, Any]], None]


class CommandNotAvailableError(Exception):
    """Raised when attempting to execute an unregistered command"""
    pass


class CommandRegistry:
    """
    Registry of control commands.

    Handlers receive the full command payload (a dict, possibly empty).

    Example:
        registry = CommandRegistry()
        registry.register('provision', service.handle_provision, "Re-run panel provisioning")

        try:
            registry.execute('provision', {'command': 'provision'})
        except CommandNotAvailableError as e:
            print(f"Command not available: {e}")
    """

    def __init__(self):
        self._handlers: Dict[str, CommandHandler] = {}
        self._descriptions: Dict[str, str] = {}
        self._lock = threading.Lock()

    def register(self, command: str, handler: CommandHandler, description: str) -> None:
        """
        Register a command.

        Args:
            command: Command name (lowercase, underscores)
            handler: Callable receiving the command payload
            description: Help text

        Raises:
            ValueError: If the name is empty or already registered
        """
        name = command.strip().lower()
        if not name:
            raise ValueError("Command name cannot be empty")

        with self._lock:
            if name in self._handlers:
                raise ValueError(f"Command '{name}' already registered")
            self._handlers[name] = handler
            self._descriptions[name] = description

    def execute(self, command: str, command_data: Optional[Dict[str, Any]] = None) -> None:
        """
        Run a registered command.

        Raises:
            CommandNotAvailableError: If command not registered
        """
        name = command.strip().lower()
        with self._lock:
            handler = self._handlers.get(name)

        if handler is None:
            raise CommandNotAvailableError(
                f"Command '{name}' not available. "
                f"Available commands: {', '.join(sorted(self.available_commands))}"
            )

        handler(command_data or {})

    def is_available(self, command: str) -> bool:
        with self._lock:
            return command.strip().lower() in self._handlers

    @property
    def available_commands(self) -> Set[str]:
        with self._lock:
            return set(self._handlers)

    def get_help(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._descriptions)

    def count(self) -> int:
        with self._lock:
            return len(self._handlers)
