"""
Tests for configuration loading and validation
"""

import logging
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from config_manager import ConfigManager, ConfigurationError, get_config, configure_logging

PROJECT_CONFIG = Path(__file__).parent.parent / "config.yaml"


def write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding='utf-8')
    return str(path)


class TestLoading:
    """Tests for reading config.yaml"""

    def test_project_config_loads(self):
        config = ConfigManager(str(PROJECT_CONFIG))

        assert config.search.entry_tag == 'sdnEntry'
        assert config.search.encoding == 'utf-8'
        assert config.data.xml_name == 'sdn.xml'
        assert config.data.sdn_url.endswith('sdn_xml.zip')

    def test_missing_file_uses_defaults(self, tmp_path):
        config = ConfigManager(str(tmp_path / "absent.yaml"))

        assert config.search.entry_tag == 'sdnEntry'
        assert config.data.data_directory == '/tmp'
        assert config.input_validation.name_max_length == 200
        assert config.api.port == 8000

    def test_partial_sections_keep_defaults(self, tmp_path):
        config = ConfigManager(write_config(tmp_path, "data:\n  data_directory: /srv/sdn\n"))

        assert config.data.data_directory == '/srv/sdn'
        assert config.data.timeout_seconds == 120
        assert config.xml_path == Path('/srv/sdn/sdn.xml')

    def test_empty_file(self, tmp_path):
        config = ConfigManager(write_config(tmp_path, ""))
        assert config.logging.level == 'INFO'

    def test_log_level_is_uppercased(self, tmp_path):
        config = ConfigManager(write_config(tmp_path, "logging:\n  level: debug\n"))
        assert config.logging.level == 'DEBUG'

    def test_to_dict(self):
        data = ConfigManager(str(PROJECT_CONFIG)).to_dict()

        assert set(data) == {'search', 'data', 'input_validation', 'logging', 'api'}
        assert data['search']['entry_tag'] == 'sdnEntry'


class TestValidation:
    """Tests for rejected configuration"""

    @pytest.mark.parametrize("text,message", [
        ("search: [1, 2]\n", "must be a mapping"),
        ("- just\n- a list\n", "mapping at the top level"),
        ("search:\n  entry_tag: 'sdn Entry'\n", "entry_tag"),
        ("logging:\n  level: CHATTY\n", "logging.level"),
        ("data:\n  timeout_seconds: 0\n", "timeout_seconds"),
        ("data:\n  max_retry_attempts: many\n", "max_retry_attempts"),
        ("input_validation:\n  name_max_length: -1\n", "name_max_length"),
        ("api:\n  port: 70000\n", "api.port"),
    ])
    def test_invalid_values(self, tmp_path, text, message):
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager(write_config(tmp_path, text))

        assert message in str(exc_info.value)

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigManager(write_config(tmp_path, "search: [unclosed\n"))


class TestSingleton:
    """Tests for the shared instance"""

    def setup_method(self):
        ConfigManager.reset_instance()

    def teardown_method(self):
        ConfigManager.reset_instance()

    def test_get_config_returns_same_instance(self):
        assert get_config(str(PROJECT_CONFIG)) is get_config()

    def test_reset_instance(self):
        first = get_config(str(PROJECT_CONFIG))
        ConfigManager.reset_instance()
        assert get_config(str(PROJECT_CONFIG)) is not first


class TestConfigureLogging:
    """Tests for applying the logging section"""

    @pytest.fixture(autouse=True)
    def restore_logging(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "search.log"
        config = ConfigManager(write_config(
            tmp_path, f"logging:\n  level: WARNING\n  file: {log_file}\n"
        ))

        configure_logging(config)
        logging.getLogger("sdn.test").warning("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert logging.getLogger().level == logging.WARNING
        assert "written to file" in log_file.read_text(encoding='utf-8')
