import json
import logging
import os
from pathlib import Path

import pytest

import logger_setup
from fluid_simulation import FluidSimulation, load_config

CONFIG_PATH = Path(__file__).resolve().parent.parent / 'config.json'


@pytest.fixture
def app_logger():
    logger = logging.getLogger("fluid_sim")
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def test_shipped_config_builds_a_simulation(rng):
    config = load_config(CONFIG_PATH)
    assert {'run_id', 'master_seed', 'logging', 'simulation'} <= set(config)

    simulation = FluidSimulation(config=config['simulation'], rng=rng)
    assert simulation.max_particles == config['simulation']['max_particles']
    assert simulation.gravity == config['simulation']['gravity']
    assert simulation.emitters[0].period == config['simulation']['emitter']['period']


def test_missing_config_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / 'missing.json')


def test_setup_logging_writes_run_log(tmp_path, app_logger):
    config_path = tmp_path / 'config.json'
    config_path.write_text(json.dumps({
        'run_id': 'unit',
        'logging': {'level': 'DEBUG', 'format': '%(levelname)s %(message)s'},
    }))

    log_file = logger_setup.setup_logging(str(config_path), log_root=str(tmp_path / 'runs'))
    FluidSimulation(config={'default_scene': False})
    for handler in app_logger.handlers:
        handler.flush()

    assert log_file == os.path.join(str(tmp_path / 'runs'), 'unit', 'simulation.log')
    assert not app_logger.propagate
    assert app_logger.level == logging.DEBUG
    contents = Path(log_file).read_text()
    assert 'Logging initialized. Run ID: unit' in contents
    assert 'FluidSimulation created' in contents


def test_setup_logging_twice_does_not_duplicate_handlers(tmp_path, app_logger):
    config_path = tmp_path / 'config.json'
    config_path.write_text(json.dumps({
        'run_id': 'unit',
        'logging': {'level': 'INFO', 'format': '%(message)s'},
    }))
    logger_setup.setup_logging(str(config_path), log_root=str(tmp_path / 'runs'))
    logger_setup.setup_logging(str(config_path), log_root=str(tmp_path / 'runs'))
    assert len(app_logger.handlers) == 2
