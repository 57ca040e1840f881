"""Command-line plumbing shared by the atelier tools."""

import argparse
import logging
import sys
from typing import Callable, List, Optional

from atelier import config
from atelier.errors import UsageError, ValidationError

log = logging.getLogger(__name__)


class HelpOnErrorParser(argparse.ArgumentParser):
    """argparse exits 2 on bad flags; these tools print help and exit 1."""

    def error(self, message):
        self.print_help(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def run_main(parser: argparse.ArgumentParser, run: Callable[[argparse.Namespace], int],
             argv: Optional[List[str]] = None) -> int:
    """
    Parse argv and call `run`. Usage errors print help; usage and validation
    errors both end the process with exit code 1 before any item is touched.
    """
    config.configure_logging()
    args = parser.parse_args(argv)
    try:
        return run(args)
    except UsageError as e:
        log.error(str(e))
        parser.print_help(sys.stderr)
        return 1
    except ValidationError as e:
        log.error(str(e))
        return 1
