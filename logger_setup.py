# logger_setup.py

import logging
import os
import json

LOGGER_NAME = "fluid_sim"


def _make_handlers(log_file, log_format, console):
    formatter = logging.Formatter(log_format)
    handlers = [logging.FileHandler(log_file)]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(config_path='config.json', log_root='runs', console=True):
    """
    Configures the simulation's dedicated logger from the run configuration.

    Each run writes to runs/<run_id>/simulation.log and, optionally, to the
    console. Only the "fluid_sim" logger is configured, so pygame and Numba
    keep their own (root) logging untouched.

    Data Contract:
    - Inputs:
        - config_path (str) - Path to the configuration file.
        - log_root (str) - Directory under which the run directory is created.
        - console (bool) - Whether to also log to stderr.
    - Outputs: The path of the log file.
    - Side Effects:
        - Replaces the handlers of the "fluid_sim" logger.
        - Creates the run directory.
    - Invariants: The config file holds 'run_id' and a 'logging' dictionary
      with 'level' and 'format'.
    """
    with open(config_path, 'r') as f:
        config = json.load(f)

    run_id = config['run_id']
    log_config = config['logging']

    log_dir = os.path.join(log_root, run_id)
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, 'simulation.log')

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_config['level'])
    logger.propagate = False

    # Re-running setup (e.g. a second run in one process) must not stack handlers.
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    for handler in _make_handlers(log_file, log_config['format'], console):
        logger.addHandler(handler)

    logger.info(f"Logging initialized. Run ID: {run_id}. Log file: {log_file}")
    return log_file
