"""Tests for reporter module."""

import json
import unittest
from io import StringIO
from unittest.mock import patch

import yaml
from rich.console import Console

from engage.console_logger import ConsoleLogger
from engage.logging import LogLevel
from engage.process_runner import Outcome, TaskStatus
from engage.report import aggregate
from engage.reporter import (
    ShowOutput,
    render_json,
    render_text,
    render_yaml,
    report_to_dict,
    status_symbol,
)


def _report():
    return aggregate(
        [
            Outcome("rustc", "versions", TaskStatus.PASSED, 0, stdout="rustc 1.80.0\n", duration=0.1),
            Outcome(
                "cargo-audit",
                "security",
                TaskStatus.FAILED,
                1,
                stdout="Scanning Cargo.lock\n",
                stderr="error: 2 vulnerabilities found\n",
                duration=2.0,
                message="exited with code 1",
            ),
            Outcome("cargo-fmt", "lints", TaskStatus.SKIPPED, message="skipped after earlier failure"),
        ],
        duration=2.5,
    )


class TestStatusSymbol(unittest.TestCase):
    @patch("engage.reporter._supports_unicode", return_value=True)
    def test_unicode_symbols(self, _mock):
        self.assertEqual(status_symbol(TaskStatus.PASSED), "✓")
        self.assertEqual(status_symbol(TaskStatus.SKIPPED), "–")
        self.assertEqual(status_symbol(TaskStatus.FAILED), "✗")
        self.assertEqual(status_symbol(TaskStatus.TIMED_OUT), "✗")

    @patch("engage.reporter._supports_unicode", return_value=False)
    def test_ascii_fallback(self, _mock):
        self.assertEqual(status_symbol(TaskStatus.PASSED), "[ OK ]")
        self.assertEqual(status_symbol(TaskStatus.SKIPPED), "[SKIP]")
        self.assertEqual(status_symbol(TaskStatus.EXECUTION_ERROR), "[FAIL]")


@patch("engage.reporter._supports_unicode", return_value=False)
class TestRenderText(unittest.TestCase):
    def setUp(self):
        self.output = StringIO()
        console = Console(file=self.output, width=120, force_terminal=False, color_system=None)
        self.logger = ConsoleLogger(console)

    def test_lists_every_task_in_order(self, _mock):
        render_text(_report(), self.logger, ShowOutput.NONE)
        text = self.output.getvalue()

        positions = [text.index(name) for name in ("versions/rustc", "security/cargo-audit", "lints/cargo-fmt")]
        self.assertEqual(positions, sorted(positions))

    def test_summary_line(self, _mock):
        render_text(_report(), self.logger)
        text = self.output.getvalue()

        self.assertIn("3 tasks: 1 passed, 1 failed, 1 skipped", text)
        self.assertIn("[FAIL]", text)
        self.assertIn("skipped after earlier failure", text)

    def test_failed_output_shown_by_default(self, _mock):
        render_text(_report(), self.logger)
        text = self.output.getvalue()

        self.assertIn("--- security/cargo-audit ---", text)
        self.assertIn("error: 2 vulnerabilities found", text)
        self.assertNotIn("rustc 1.80.0", text)

    def test_show_all_output(self, _mock):
        render_text(_report(), self.logger, ShowOutput.ALL)
        self.assertIn("rustc 1.80.0", self.output.getvalue())

    def test_show_no_output(self, _mock):
        render_text(_report(), self.logger, ShowOutput.NONE)
        self.assertNotIn("vulnerabilities", self.output.getvalue())

    def test_captured_output_not_treated_as_markup(self, _mock):
        report = aggregate([Outcome("a", "g", TaskStatus.FAILED, 1, stdout="[bold]not markup[/bold]\n")])
        render_text(report, self.logger)
        self.assertIn("[bold]not markup[/bold]", self.output.getvalue())

    def test_passing_run(self, _mock):
        report = aggregate([Outcome("a", "g", TaskStatus.PASSED, 0)], duration=0.25)
        render_text(report, self.logger)
        text = self.output.getvalue()

        self.assertIn("[ OK ] 1 task: 1 passed in 0.25s", text)
        self.assertNotIn("---", text)

    def test_failing_summary_survives_error_level(self, _mock):
        logger = ConsoleLogger(
            Console(file=self.output, width=120, force_terminal=False, color_system=None),
            LogLevel.ERROR,
        )
        render_text(_report(), logger)
        text = self.output.getvalue()

        self.assertIn("1 failed", text)
        self.assertNotIn("versions/rustc", text)


class TestStructuredReports(unittest.TestCase):
    def test_report_to_dict(self):
        data = report_to_dict(_report())

        self.assertEqual(data["status"], "failed")
        self.assertEqual(data["exit_code"], 1)
        self.assertEqual(data["duration"], 2.5)
        self.assertEqual(data["totals"]["skipped"], 1)
        self.assertEqual(data["totals"]["timed_out"], 0)
        self.assertEqual(
            [(o["group"], o["name"], o["status"]) for o in data["outcomes"]],
            [
                ("versions", "rustc", "passed"),
                ("security", "cargo-audit", "failed"),
                ("lints", "cargo-fmt", "skipped"),
            ],
        )
        self.assertIsNone(data["outcomes"][2]["exit_code"])

    def test_render_json(self):
        data = json.loads(render_json(_report()))
        self.assertEqual(data, report_to_dict(_report()))

    def test_render_yaml(self):
        data = yaml.safe_load(render_yaml(_report()))
        self.assertEqual(data["outcomes"][1]["stderr"], "error: 2 vulnerabilities found\n")
        self.assertEqual(list(data), ["status", "exit_code", "duration", "totals", "outcomes"])


if __name__ == "__main__":
    unittest.main()
