#!/usr/bin/env python3
# Runs the full query sequence against the embedded store, seeded with the
# sample inventory, so no MongoDB server is needed.
# Against a real server: python -m bookstore_queries

import logging

from bookstore_queries import BookCatalog, CatalogQueryRunner, EmbeddedStore, seed_books


def progress_printer(evt):
    if evt.get("phase") in ("run.start", "run.done", "run.failed"):
        print(f"[progress] {evt['phase']} {evt['pct']}% - {evt.get('msg', '')}")


def main() -> None:
    logging.basicConfig(level=logging.INFO)

    store = EmbeddedStore()
    with store as books:
        seed_books(BookCatalog(books))

    report = CatalogQueryRunner(store, on_progress=progress_printer).run()
    print(f"completed {len(report.completed)} operations, ok={report.ok}")


if __name__ == "__main__":
    main()
