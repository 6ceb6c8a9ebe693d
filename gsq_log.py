"""
    Logging setup for gsq.

    The dictConfig lives in YAML so it reads like the other config files.
"""
import logging
import logging.config

import yaml

LOG_CONFIG = """
version: 1
disable_existing_loggers: false
formatters:
  simple:
    format: "%(levelname)s %(name)s: %(message)s"
handlers:
  stderr:
    class: logging.StreamHandler
    formatter: simple
    stream: ext://sys.stderr
loggers:
  gsq:
    handlers: [stderr]
    propagate: false
"""


def setup(level="WARNING"):
    """(Re)configure the `gsq` logger tree, bound to the current sys.stderr."""
    d_config = yaml.safe_load(LOG_CONFIG)
    if isinstance(level, str):
        level = level.upper()
    d_config["loggers"]["gsq"]["level"] = level
    logging.config.dictConfig(d_config)
