"""
Idempotent edits of the persisted shell profile.

The profile is a line-oriented shell rc file. Two kinds of lines are managed:

    export KEY=VALUE              variable assignment
    export PATH="FRAGMENT:$PATH"  search path prepend

EnvironmentConfigurator is the only writer. Every mutation is a complete
read-modify-write under an exclusive file lock, written atomically, so that
unrelated lines survive a crash mid-write.

Example:
    >>> configurator = EnvironmentConfigurator(Path.home() / ".zshrc")
    >>> configurator.set_variable("JAVA_HOME", "/opt/jdk-11.0.2")
    <ProfileChange.ADDED: 'added'>
    >>> configurator.set_variable("JAVA_HOME", "/opt/jdk-11.0.2")
    <ProfileChange.UNCHANGED: 'unchanged'>
"""

import logging
import re
import shlex
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from provisionkit.core.exceptions import ProfileUnwritable
from provisionkit.core.filesystem import atomic_write
from provisionkit.core.locking import LockManager, LockTimeout

logger = logging.getLogger(__name__)

_ASSIGNMENT_RE = re.compile(r"^\s*export\s+([A-Za-z_][A-Za-z0-9_]*)=(.*)$")


class ProfileChange(Enum):
    """What a configurator call did to the profile."""

    ADDED = "added"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    UNAVAILABLE = "unavailable"


def parse_assignment(line: str) -> Optional[tuple]:
    """
    Parse an ``export KEY=VALUE`` line.

    Returns:
        (key, raw_value) or None if the line is not an export assignment
    """
    match = _ASSIGNMENT_RE.match(line)
    if not match:
        return None
    return match.group(1), match.group(2).strip()


def unquote(raw_value: str) -> str:
    """Undo shell quoting of a recorded value (best effort)."""
    try:
        parts = shlex.split(raw_value, comments=True)
    except ValueError:
        return raw_value
    return parts[0] if len(parts) == 1 else raw_value


def path_elements(raw_value: str) -> List[str]:
    """Split the value of an ``export PATH=`` line into its elements."""
    return [element for element in unquote(raw_value).split(":") if element]


def format_assignment(key: str, value: str) -> str:
    """Format ``export KEY=VALUE``, quoting the value only when needed."""
    return f"export {key}={shlex.quote(value)}"


def format_path_prepend(fragment: str) -> str:
    """Format a PATH prepend line."""
    return f'export PATH="{fragment}:$PATH"'


class EnvironmentConfigurator:
    """
    Owns the persisted shell profile.

    A missing or unwritable profile never aborts provisioning: the problem is
    logged as a warning and the call reports ``ProfileChange.UNAVAILABLE``.

    Attributes:
        profile_path: Shell profile being edited (None if unavailable)
    """

    def __init__(
        self,
        profile_path: Optional[Path],
        lock_manager: Optional[LockManager] = None,
        lock_timeout: int = 30,
    ):
        """
        Initialize configurator.

        Args:
            profile_path: Profile to edit; None means no profile is available
            lock_manager: Lock manager for the exclusive writer lock
            lock_timeout: Seconds to wait for the profile lock
        """
        self.profile_path = Path(profile_path).expanduser() if profile_path else None
        self.lock_manager = lock_manager
        self.lock_timeout = lock_timeout
        self._warned = False

    @property
    def available(self) -> bool:
        return self.profile_path is not None and self._target.parent.is_dir()

    @property
    def _target(self) -> Path:
        # Dotfile managers symlink the profile; edit the file it points at
        return self.profile_path.resolve()

    def read_variables(self) -> Dict[str, str]:
        """
        Variables recorded in the profile (last assignment wins, PATH excluded).

        Returns an empty mapping if the profile cannot be read.
        """
        try:
            lines = self._read_lines()
        except ProfileUnwritable as e:
            self._warn(e)
            return {}

        variables = {}
        for line in lines:
            parsed = parse_assignment(line)
            if parsed and parsed[0] != "PATH":
                variables[parsed[0]] = unquote(parsed[1])
        return variables

    def set_variable(self, key: str, value: str) -> ProfileChange:
        """
        Record ``export KEY=VALUE`` in the profile.

        Appends a new line if the key is absent. Otherwise the first
        assignment line is rewritten in place and any later duplicate
        assignments of the same key are dropped.

        Raises:
            ValueError: If key is PATH (use add_to_search_path)
        """
        if key == "PATH":
            raise ValueError("PATH is managed with add_to_search_path()")

        new_line = format_assignment(key, value)

        def mutate(lines: List[str]) -> Optional[ProfileChange]:
            indexes = []
            for i, line in enumerate(lines):
                parsed = parse_assignment(line)
                if parsed and parsed[0] == key:
                    indexes.append(i)

            if not indexes:
                lines.append(new_line)
                return ProfileChange.ADDED

            first = indexes[0]
            if lines[first] == new_line and len(indexes) == 1:
                return None

            lines[first] = new_line
            for index in reversed(indexes[1:]):
                del lines[index]
            return ProfileChange.UPDATED

        change = self._edit(mutate, f"{key}={value}")
        if change is ProfileChange.ADDED:
            logger.info(f"Added {key} environment variable to {self.profile_path}")
        elif change is ProfileChange.UPDATED:
            logger.info(f"Updated {key} environment variable in {self.profile_path}")
        return change

    def add_to_search_path(self, fragment: str) -> ProfileChange:
        """
        Prepend ``fragment`` to PATH in the profile unless already recorded.

        Only durable profile content is compared, never the live process
        PATH, so the result is the same for every future shell.
        """

        def mutate(lines: List[str]) -> Optional[ProfileChange]:
            for line in lines:
                parsed = parse_assignment(line)
                if parsed and parsed[0] == "PATH" and fragment in path_elements(parsed[1]):
                    return None
            lines.append(format_path_prepend(fragment))
            return ProfileChange.ADDED

        change = self._edit(mutate, f"PATH+={fragment}")
        if change is ProfileChange.ADDED:
            logger.info(f"Added {fragment} to PATH in {self.profile_path}")
        elif change is ProfileChange.UNCHANGED:
            logger.debug(f"{fragment} is already in PATH")
        return change

    def _edit(self, mutate, description: str) -> ProfileChange:
        """Run one locked read-modify-write cycle."""
        if not self.available:
            self._warn(
                ProfileUnwritable(
                    f"No shell profile available, not recording {description}"
                )
            )
            return ProfileChange.UNAVAILABLE

        try:
            if self.lock_manager is None:
                return self._apply(mutate)
            with self.lock_manager.profile_lock(self.profile_path, self.lock_timeout):
                return self._apply(mutate)
        except ProfileUnwritable as e:
            self._warn(e)
            return ProfileChange.UNAVAILABLE
        except (LockTimeout, TimeoutError) as e:
            self._warn(ProfileUnwritable(f"Profile lock timed out: {e}"))
            return ProfileChange.UNAVAILABLE

    def _apply(self, mutate) -> ProfileChange:
        lines = self._read_lines()
        change = mutate(lines)
        if change is None:
            return ProfileChange.UNCHANGED

        content = "\n".join(lines) + "\n" if lines else ""
        try:
            atomic_write(self._target, content)
        except OSError as e:
            raise ProfileUnwritable(f"Cannot write {self.profile_path}: {e}") from e
        return change

    def _read_lines(self) -> List[str]:
        if self.profile_path is None:
            raise ProfileUnwritable("No shell profile configured")
        target = self._target
        if not target.exists():
            return []
        try:
            return target.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise ProfileUnwritable(f"Cannot read {self.profile_path}: {e}") from e

    def _warn(self, error: ProfileUnwritable):
        # One warning per run; later failures are the same condition
        if not self._warned:
            logger.warning(f"{error}. Environment changes will not persist.")
            self._warned = True
        else:
            logger.debug(str(error))
