"""Group-wise indexing of manifest tasks."""

from __future__ import annotations

from typing import Optional

from engage.errors import NotFoundError
from engage.manifest import Manifest, Task


class TaskRegistry:
    """Indexes a manifest's tasks by group.

    Groups are kept in first-seen order and members in declaration order.
    Nothing is deduplicated: two tasks with the same name and group are two
    entries.
    """

    def __init__(self, manifest: Manifest):
        self.manifest = manifest
        self._groups: dict[str, list[Task]] = {}
        for task in manifest.tasks:
            self._groups.setdefault(task.group, []).append(task)

    def groups(self) -> list[str]:
        """Distinct group names in first-seen order."""
        return list(self._groups)

    def by_group(self) -> dict[str, list[Task]]:
        return {group: list(tasks) for group, tasks in self._groups.items()}

    def all_tasks(self) -> list[Task]:
        """Every task in declaration order."""
        return list(self.manifest.tasks)

    def has_group(self, group: str) -> bool:
        return group in self._groups

    def tasks_in_group(self, group: str) -> list[Task]:
        """Get the tasks of one group.

        Raises:
            NotFoundError: If no task declares this group
        """
        if group not in self._groups:
            raise NotFoundError(
                f"Group not found: {group} (available: {', '.join(self._groups) or 'none'})"
            )
        return list(self._groups[group])

    def find_tasks(self, name: str, group: Optional[str] = None) -> list[Task]:
        """Find every task with exactly this name.

        Args:
            name: Task name
            group: Restrict the search to this group

        Returns:
            Matching tasks in declaration order

        Raises:
            NotFoundError: If the group is unknown or no task matches
        """
        candidates = self.tasks_in_group(group) if group is not None else self.all_tasks()
        matches = [task for task in candidates if task.name == name]
        if not matches:
            if group is not None:
                raise NotFoundError(f"Task not found: {name} in group {group}")
            raise NotFoundError(f"Task not found: {name}")
        return matches
