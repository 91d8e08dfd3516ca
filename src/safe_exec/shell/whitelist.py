"""Command whitelist.

The whitelist is the only authorization boundary of the gateway: commands
are spawned without a shell, so a name outside this set is the only thing
that has to be kept out.
"""

from __future__ import annotations

from dataclasses import dataclass

# Used when no whitelist is configured
DEFAULT_ALLOWED_COMMANDS: frozenset[str] = frozenset(
    {
        "git",
        "ls",
        "pwd",
        "cat",
        "node",
        "npm",
    }
)


def parse_command_list(value: str) -> frozenset[str]:
    """Parse a comma-separated list of command names.

    Entries are trimmed and empty entries are dropped, so
    ``" git, ls,,pwd "`` yields ``{"git", "ls", "pwd"}``.
    """
    return frozenset(name.strip() for name in value.split(",") if name.strip())


@dataclass(frozen=True)
class Whitelist:
    """Immutable set of command names permitted to execute."""

    commands: frozenset[str] = DEFAULT_ALLOWED_COMMANDS

    @classmethod
    def from_config(cls, value: str | None) -> Whitelist:
        """Build a whitelist from a comma-separated configuration value.

        Args:
            value: Configured command list, or None when unset.

        Returns:
            The parsed whitelist, or the default one when ``value`` is None.
        """
        if value is None:
            return cls()
        return cls(commands=parse_command_list(value))

    def is_allowed(self, command: str) -> bool:
        """Check whether ``command`` may be executed."""
        return command in self.commands

    def __contains__(self, command: object) -> bool:
        return command in self.commands

    def __len__(self) -> int:
        return len(self.commands)

    def sorted(self) -> list[str]:
        """Return the command names in sorted order."""
        return sorted(self.commands)
