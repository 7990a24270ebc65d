"""Tests for configuration loading and logging helpers."""

import dataclasses
import logging

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from fretdance.errors import MalformedInput
from fretdance.utils.config import (
    Config,
    STANDARD_TUNING,
    load_config,
    merge_configs,
    save_config,
)
from fretdance.utils.logging_utils import (
    ProgressLogger,
    TqdmLoggingHandler,
    get_logger,
    setup_logging,
)


CONFIG_PATH = Path(__file__).parent.parent / 'configs' / 'default.yaml'


class TestConfig:
    """Tests for Config loading and validation."""

    def test_default_file_matches_defaults(self):
        """The shipped YAML file holds the built-in defaults."""
        config = load_config(CONFIG_PATH)

        assert config == Config()
        assert config.instrument.tuning == STANDARD_TUNING

    def test_save_and_load(self, tmp_path):
        """Test saving a config and loading it back."""
        config = Config().with_overrides({
            'instrument': {'capo': 3, 'tuning': ['D4', 'A3', 'F3', 'C3', 'G2', 'C2']},
            'optimizer': {'beam_width': 20, 'weights': {'movement': 2.0}},
            'ingest': {'tracks': [0, 2]},
        })
        path = tmp_path / 'config.yaml'
        save_config(config, path)

        loaded = load_config(path)
        assert loaded == config
        assert loaded.instrument.tuning == (62, 57, 53, 48, 43, 36)
        assert loaded.optimizer.weights.movement == 2.0
        assert loaded.ingest.tracks == (0, 2)

    def test_missing_file(self, tmp_path):
        """Test loading a path that does not exist."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / 'missing.yaml')

    def test_unknown_key(self):
        """Unknown sections and weight names are rejected."""
        with pytest.raises(MalformedInput):
            Config.from_dict({'motion': {'frame_rate': 30}})
        with pytest.raises(MalformedInput):
            Config.from_dict({'optimizer': {'weights': {'comfort': 1.0}}})

    @pytest.mark.parametrize("overrides", [
        {'optimizer': {'beam_width': 0}},
        {'optimizer': {'fallback_policy': 'skip'}},
        {'motion': {'fps': 0}},
        {'motion': {'ease': 'bounce'}},
        {'motion': {'max_velocity': -1.0}},
        {'ingest': {'unplayable_policy': 'ignore'}},
        {'instrument': {'fretting_fingers': 5}},
        {'instrument': {'capo': 22}},
        {'instrument': {'skill_level': 'expert'}},
        {'recorder': {'pluck_duration': -0.1}},
    ])
    def test_invalid_values(self, overrides):
        """Test validation of out-of-range values."""
        with pytest.raises(MalformedInput):
            Config().with_overrides(overrides).validate()

    def test_with_overrides_returns_copy(self):
        """Overrides produce a new config and leave the original alone."""
        config = Config()
        changed = config.with_overrides({'motion': {'fps': 30}})

        assert changed.motion.fps == 30
        assert config.motion.fps == 60.0
        assert changed.optimizer == config.optimizer

    def test_frozen(self):
        """Config sections cannot be modified."""
        config = Config()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.motion.fps = 24

    def test_merge_configs(self):
        """Nested dictionaries merge without touching the base."""
        base = {'a': {'b': 1, 'c': 2}, 'd': 3}
        merged = merge_configs(base, {'a': {'c': 5}})

        assert merged == {'a': {'b': 1, 'c': 5}, 'd': 3}
        assert base['a']['c'] == 2


class TestLogging:
    """Tests for logging helpers."""

    def test_get_logger(self):
        """Test logger creation."""
        logger = get_logger('fretdance.test')
        assert isinstance(logger, logging.Logger)
        assert logger.name == 'fretdance.test'

    def test_progress_logger(self, caplog):
        """Progress lines are logged every interval and at the end."""
        progress = ProgressLogger('fretdance.test', total=4, log_interval=2)

        with caplog.at_level(logging.INFO, logger='fretdance.test'):
            progress.start()
            for _ in range(4):
                progress.update()
            progress.finish()

        assert progress.current == 4
        messages = [r.getMessage() for r in caplog.records]
        assert any('2/4 items' in m for m in messages)
        assert any('4/4 items' in m for m in messages)

    def test_setup_logging_with_tqdm(self, tmp_path):
        """Handlers go on the package logger and the root logger is untouched."""
        root_handlers = list(logging.getLogger().handlers)
        log_file = tmp_path / 'logs' / 'run.log'
        logger = setup_logging(logging.DEBUG, log_file=log_file, use_tqdm=True)

        try:
            assert logger.name == 'fretdance'
            assert isinstance(logger.handlers[0], TqdmLoggingHandler)
            assert logging.getLogger().handlers == root_handlers

            get_logger('fretdance.test').info('hello')
            for handler in logger.handlers:
                handler.flush()
            assert 'hello' in log_file.read_text()
        finally:
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
            logger.setLevel(logging.NOTSET)

    def test_setup_logging_replaces_handlers(self):
        """A second call swaps out the handlers of the first."""
        logger = setup_logging(logging.INFO)
        try:
            first = list(logger.handlers)
            setup_logging(logging.INFO)

            assert len(logger.handlers) == 1
            assert logger.handlers[0] not in first
        finally:
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
            logger.setLevel(logging.NOTSET)
