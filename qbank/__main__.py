"""
Module entry point for: python -m qbank

Allows running the importer directly as a module:
    python -m qbank parse <text_file> --kind mcq [options]
    python -m qbank dedup <records_json> [options]
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
