import logging
import logging.config
import os
import sys

import yaml


_DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _basic_config(level, log_file):
    if log_file:
        logging.basicConfig(level=level, format=_DEFAULT_FORMAT, filename=log_file, force=True)
    else:
        # The terminal belongs to the TUI; keep stray records on stderr only.
        logging.basicConfig(level=level, format=_DEFAULT_FORMAT, stream=sys.stderr, force=True)


def _redirect_file_handlers(config, log_file):
    for handler in (config.get("handlers") or {}).values():
        if isinstance(handler, dict) and "filename" in handler:
            handler["filename"] = log_file


def setup_logging(
    default_path="logging.yaml", default_level=logging.INFO, env_key="FLEETWATCH_LOG_CFG", log_file=None
):
    """
    Setup logging configuration for the fleet console.

    A YAML file with a ``logging`` section is handed to dictConfig; anything
    else falls back to basicConfig with the default format.
    """
    if isinstance(default_level, str):
        default_level = logging.getLevelName(default_level.upper())
        if not isinstance(default_level, int):
            default_level = logging.INFO

    path = default_path
    value = os.getenv(env_key, None)
    if value:
        path = value
    if path and os.path.exists(path):
        with open(path, "rt", encoding="utf-8") as f:
            try:
                config = yaml.safe_load(f.read())
                if isinstance(config, dict) and "logging" in config:
                    if log_file:
                        _redirect_file_handlers(config["logging"], log_file)
                    logging.config.dictConfig(config["logging"])
                else:
                    _basic_config(default_level, log_file)
            except (yaml.YAMLError, ValueError, TypeError) as e:
                _basic_config(default_level, log_file)
                logging.getLogger(__name__).warning("Error in logging configuration %s: %s", path, e)
    else:
        _basic_config(default_level, log_file)
