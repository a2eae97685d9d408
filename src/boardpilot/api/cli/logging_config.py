import logging

import structlog


def configure_logging(debug: bool = False) -> None:
    """Route structlog output through a level filter for CLI runs."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))
