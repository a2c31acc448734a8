"""Tests for CLI helpers."""

import unittest

import typer

from helpers.logging import RecordingLogger
from engage.cli import _parse_env_overlay, _resolve_settings, _selection
from engage.config import RunConfig
from engage.logging import LogLevel
from engage.process_runner import TaskOutputTypes
from engage.report import EXIT_ENGINE_ERROR
from engage.reporter import ReportFormat, ShowOutput
from engage.scheduler import Selection


class TestParseEnvOverlay(unittest.TestCase):
    def setUp(self):
        self.logger = RecordingLogger()

    def test_key_value_pairs(self):
        result = _parse_env_overlay(self.logger, ["CI=1", "RUSTFLAGS=-D warnings"])
        self.assertEqual(result, {"CI": "1", "RUSTFLAGS": "-D warnings"})

    def test_value_may_contain_equals(self):
        self.assertEqual(_parse_env_overlay(self.logger, ["A=b=c"]), {"A": "b=c"})

    def test_empty_value_allowed(self):
        self.assertEqual(_parse_env_overlay(self.logger, ["A="]), {"A": ""})

    def test_later_entry_wins(self):
        self.assertEqual(_parse_env_overlay(self.logger, ["A=1", "A=2"]), {"A": "2"})

    def test_missing_equals(self):
        with self.assertRaises(typer.Exit) as context:
            _parse_env_overlay(self.logger, ["CI"])
        self.assertEqual(context.exception.exit_code, EXIT_ENGINE_ERROR)
        self.assertIn("Invalid --env value 'CI'", self.logger.messages(LogLevel.FATAL)[0])

    def test_empty_key(self):
        with self.assertRaises(typer.Exit):
            _parse_env_overlay(self.logger, ["=value"])


class TestResolveSettings(unittest.TestCase):
    def _resolve(self, config=None, env=None, **flags):
        values = {
            "jobs": None,
            "fail_fast": None,
            "abort_in_flight": None,
            "timeout": None,
            "task_output": None,
            "show_output": None,
            "output_format": None,
        }
        values.update(flags)
        return _resolve_settings(config or RunConfig(), env or {}, **values)

    def test_defaults(self):
        settings = self._resolve()
        self.assertEqual(settings.jobs, 1)
        self.assertFalse(settings.fail_fast)
        self.assertFalse(settings.abort_in_flight)
        self.assertIsNone(settings.timeout)
        self.assertEqual(settings.env, {})
        self.assertEqual(settings.task_output, TaskOutputTypes.NONE)
        self.assertEqual(settings.show_output, ShowOutput.FAILED)
        self.assertEqual(settings.format, ReportFormat.TEXT)

    def test_config_applies(self):
        config = RunConfig(
            jobs=4, fail_fast=True, timeout=60.0, task_output="all", show_output="none", format="yaml"
        )
        settings = self._resolve(config)
        self.assertEqual(settings.jobs, 4)
        self.assertTrue(settings.fail_fast)
        self.assertEqual(settings.timeout, 60.0)
        self.assertEqual(settings.task_output, TaskOutputTypes.ALL)
        self.assertEqual(settings.show_output, ShowOutput.NONE)
        self.assertEqual(settings.format, ReportFormat.YAML)

    def test_flags_override_config(self):
        config = RunConfig(jobs=4, fail_fast=True, format="yaml")
        settings = self._resolve(
            config, jobs=2, fail_fast=False, output_format=ReportFormat.JSON
        )
        self.assertEqual(settings.jobs, 2)
        self.assertFalse(settings.fail_fast)
        self.assertEqual(settings.format, ReportFormat.JSON)

    def test_env_flag_overrides_config_per_key(self):
        config = RunConfig(env={"A": "config", "B": "config"})
        settings = self._resolve(config, env={"B": "flag"})
        self.assertEqual(settings.env, {"A": "config", "B": "flag"})


class TestSelection(unittest.TestCase):
    def test_nothing_selects_all(self):
        self.assertEqual(_selection(None, None, None), Selection.all())

    def test_group(self):
        self.assertEqual(_selection("lints", None, None), Selection.for_group("lints"))

    def test_group_and_task(self):
        self.assertEqual(
            _selection("security", "cargo-audit", None), Selection.for_task("cargo-audit", "security")
        )

    def test_task_option_alone(self):
        self.assertEqual(_selection(None, None, "cargo-audit"), Selection.for_task("cargo-audit"))

    def test_task_option_with_group(self):
        self.assertEqual(
            _selection("versions", None, "cargo-audit"), Selection.for_task("cargo-audit", "versions")
        )

    def test_same_task_both_ways_is_fine(self):
        self.assertEqual(
            _selection("lints", "cargo-fmt", "cargo-fmt"), Selection.for_task("cargo-fmt", "lints")
        )

    def test_conflicting_task_names(self):
        with self.assertRaises(typer.BadParameter):
            _selection("lints", "cargo-fmt", "cargo-doc")


if __name__ == "__main__":
    unittest.main()
