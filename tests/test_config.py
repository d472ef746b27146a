# tests/test_config.py
import os
import sys
import tempfile
import unittest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from aviator_sim.infrastructure.config.loaders.yaml_loader import (
    YamlConfigLoader, ConfigError, FileNotFoundConfigError, YamlParseError, SchemaValidationError, deep_merge
)
from aviator_sim.infrastructure.config.validators.schema_validator import SchemaValidator
from aviator_sim.main import DEFAULT_CONFIG_PATH, GAME_SCHEMA_PATH


class TestYamlConfigLoader(unittest.TestCase):

    def setUp(self):
        self.loader = YamlConfigLoader(SchemaValidator())
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmp.cleanup()

    def _write(self, name, content):
        path = os.path.join(self.tmp.name, name)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    def test_default_config_is_valid(self):
        config = self.loader.load_file(DEFAULT_CONFIG_PATH, GAME_SCHEMA_PATH)
        self.assertEqual(config["session"]["starting_balance"], 1000)
        self.assertEqual(config["crash_timing"]["count"], 30)
        self.assertEqual(config["multiplier"]["crash_factor_range"], [0.9, 1.1])
        self.assertEqual(config["autoplay"]["restart_delay_ms"], 2000)
        self.assertEqual(config["leaderboard"]["limit"], 15)

    def test_schema_violation(self):
        path = self._write("bad.yaml", "rng:\n  strategy: dice\nsimulation:\n  bet: 0\n")
        with self.assertRaises(SchemaValidationError) as ctx:
            self.loader.load_file(path, GAME_SCHEMA_PATH)
        self.assertEqual(len(ctx.exception.errors), 2)

    def test_schema_violation_non_strict(self):
        path = self._write("bad.yaml", "storage:\n  backend: floppy\n")
        config = self.loader.set_strict_mode(False).load_file(path, GAME_SCHEMA_PATH)
        self.assertEqual(config["storage"]["backend"], "floppy")

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundConfigError):
            self.loader.load_file(os.path.join(self.tmp.name, "nope.yaml"))

    def test_missing_file_with_default(self):
        self.loader.set_strict_mode(False)
        config = self.loader.load_file(os.path.join(self.tmp.name, "nope.yaml"), default_config={"a": 1})
        self.assertEqual(config, {"a": 1})

    def test_parse_error(self):
        path = self._write("broken.yaml", "session: [unclosed\n")
        with self.assertRaises(YamlParseError):
            self.loader.load_file(path)

    def test_empty_file(self):
        path = self._write("empty.yaml", "")
        self.assertEqual(self.loader.load_file(path), {})

    def test_fallbacks(self):
        good = self._write("good.yaml", "session:\n  display_name: fallback\n")
        config = self.loader.load_with_fallbacks([os.path.join(self.tmp.name, "nope.yaml"), good])
        self.assertEqual(config["session"]["display_name"], "fallback")
        self.assertTrue(self.loader.strict_mode)

        with self.assertRaises(ConfigError):
            self.loader.load_with_fallbacks([os.path.join(self.tmp.name, "nope.yaml")])

    def test_layered_over_defaults(self):
        user = self._write("user.yaml", "simulation:\n  rounds: 7\nrng:\n  seed: 3\n")
        config = self.loader.load_layered([DEFAULT_CONFIG_PATH, user], GAME_SCHEMA_PATH)
        self.assertEqual(config["simulation"]["rounds"], 7)
        self.assertEqual(config["simulation"]["bet"], 50)
        self.assertEqual(config["rng"], {"strategy": "mersenne", "seed": 3})

    def test_layered_validates_merged_result(self):
        user = self._write("user.yaml", "autoplay:\n  restart_delay_ms: -5\n")
        with self.assertRaises(SchemaValidationError):
            self.loader.load_layered([DEFAULT_CONFIG_PATH, user], GAME_SCHEMA_PATH)

    def test_layered_rejects_non_mapping(self):
        user = self._write("list.yaml", "- 1\n- 2\n")
        with self.assertRaises(ConfigError):
            self.loader.load_layered([user])


class TestDeepMerge(unittest.TestCase):

    def test_nested_merge_leaves_inputs(self):
        base = {"a": {"x": 1, "y": 2}, "b": [1]}
        merged = deep_merge(base, {"a": {"y": 3}, "b": [2], "c": None})
        self.assertEqual(merged, {"a": {"x": 1, "y": 3}, "b": [2], "c": None})
        self.assertEqual(base, {"a": {"x": 1, "y": 2}, "b": [1]})


class TestSchemaValidator(unittest.TestCase):

    def setUp(self):
        self.validator = SchemaValidator()
        self.schema = {
            "type": "object",
            "properties": {
                "session": {
                    "type": "object",
                    "properties": {
                        "starting_balance": {"type": "integer", "default": 1000}
                    }
                },
                "name": {"type": "string", "default": "Anonymous"}
            }
        }

    def test_valid(self):
        self.assertEqual(self.validator.validate({"session": {"starting_balance": 5}}, self.schema), (True, []))

    def test_invalid_reports_path(self):
        valid, errors = self.validator.validate({"session": {"starting_balance": "lots"}}, self.schema)
        self.assertFalse(valid)
        self.assertTrue(errors[0].startswith("At session.starting_balance:"))

    def test_invalid_schema(self):
        valid, errors = self.validator.validate({}, {"type": "no-such-type"})
        self.assertFalse(valid)
        self.assertTrue(errors[0].startswith("Schema error"))

    def test_defaults_applied(self):
        valid, errors, config = self.validator.validate_with_defaults({}, self.schema)
        self.assertTrue(valid)
        self.assertEqual(config, {"session": {"starting_balance": 1000}, "name": "Anonymous"})


if __name__ == "__main__":
    unittest.main()
