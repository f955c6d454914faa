"""Process-wide benchmark configuration."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Config:
    """Settings shared by the loader and the workers."""

    num_threads: int = 1
    num_warehouses: int = 1
    random_abort: bool = False
    fixed_warehouse_per_thread: bool = False

    def enable_random_abort(self) -> None:
        """Make workers abort transactions at random."""
        self.random_abort = True

    def enable_fixed_warehouse_per_thread(self) -> None:
        """Pin each worker thread to a single warehouse."""
        self.fixed_warehouse_per_thread = True


_CONFIG = Config()


def get_config() -> Config:
    """Return the shared configuration object."""
    return _CONFIG