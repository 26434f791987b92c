"""Entry point for ``python -m gapverify``."""

from gapverify.cli import cli

if __name__ == "__main__":
    cli()
