from __future__ import annotations
import logging

from rich.console import Console
from rich.logging import RichHandler

from .runner import CatalogQueryRunner, RunnerConfig
from .storage import MongoStore


def main() -> int:
    console = Console()
    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    config = RunnerConfig()
    store = MongoStore(config.uri, config.database, config.collection)
    CatalogQueryRunner(store, config=config, console=console).run()
    # Store failures were already reported; only uncaught errors change the exit code
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
