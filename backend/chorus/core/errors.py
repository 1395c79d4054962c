"""Errors raised while executing a command.

Everything here is caught at the dispatch boundary and turned into an
``Error: <message>`` chat reply; none of it reaches a platform connector.
"""


class CommandError(Exception):
    """Base class for errors that render as a chat reply."""

    @property
    def message(self) -> str:
        return str(self)


class MissingArgument(CommandError):
    def __init__(self, name: str):
        super().__init__(f"missing argument: {name}")
        self.name = name


class InvalidArgument(CommandError):
    def __init__(self, name: str):
        super().__init__(f"invalid argument: {name}")
        self.name = name


class NoPermissions(CommandError):
    def __init__(self):
        super().__init__("you don't have the permissions to use this command")


class DatabaseError(CommandError):
    pass


class TemplateRenderError(CommandError):
    pass


class ConfigurationError(CommandError):
    """A required environment/config value is missing."""

    def __init__(self, variable: str):
        super().__init__(f"configuration error: {variable}")
        self.variable = variable


class GenericError(CommandError):
    """Wrapped failure of an external API or local IO."""
