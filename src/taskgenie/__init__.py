"""TaskGenie: personal task manager core (tasks, sync, import/export, AI pre-fill)."""

__version__ = "0.1.0"
