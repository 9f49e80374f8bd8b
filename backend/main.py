from cli.app import app
from logging_config import setup_logging


def cli() -> None:
    """Entry point for the ``todays-tasks`` command."""
    setup_logging()
    app()


if __name__ == "__main__":
    cli()
