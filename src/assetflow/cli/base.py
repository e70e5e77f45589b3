"""Base command class for shared CLI setup/teardown."""

import logging
from uuid import UUID

import click

from assetflow import database
from assetflow.errors import AssetFlowError
from assetflow.orchestration import OrchestrationFacade

logger = logging.getLogger(__name__)


class CliCommand:
    """Base class for all CLI commands with shared setup/teardown."""

    def __init__(self):
        self.db = None
        self.facade = None

    def setup_db(self):
        """Open a session and build the facade on top of it."""
        self.db = database.SessionLocal()
        self.facade = OrchestrationFacade(self.db)

    def cleanup_db(self):
        """Close database connection."""
        if self.db:
            self.db.close()

    @staticmethod
    def parse_user_id(raw_value: str) -> UUID:
        try:
            return UUID(str(raw_value))
        except (TypeError, ValueError):
            raise click.BadParameter(f"Not a UUID: {raw_value}", param_hint="--user-id")

    def execute(self):
        """Run the command, converting domain errors to click errors."""
        self.setup_db()
        try:
            return self.run()
        except AssetFlowError as exc:
            raise click.ClickException(f"{exc.code.value}: {exc.message}")
        except click.ClickException:
            raise
        except Exception:
            logger.exception("Command %s failed", self.__class__.__name__)
            raise
        finally:
            self.cleanup_db()

    def run(self):
        """Execute command - override in subclasses."""
        raise NotImplementedError

