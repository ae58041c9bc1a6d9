"""Entry point for `python -m cardbridge`."""

from cardbridge.cli import cli

if __name__ == "__main__":
    cli()
