"""Entry point for running kalito as a module."""

from kalito.cli.commands import app

if __name__ == "__main__":
    app()
