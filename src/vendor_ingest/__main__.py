"""Allow ``python -m vendor_ingest``."""

from vendor_ingest import cli

if __name__ == "__main__":
    cli.app()
