#!/usr/bin/env python3

import os
import sys
import unittest
from unittest.mock import Mock, patch

sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from click.testing import CliRunner

from tunnelguard import cli


class TestCLI(unittest.TestCase):
    """Tests for main CLI integration"""

    def setUp(self):
        """Set up test fixtures"""
        self.runner = CliRunner()

    def test_cli_help(self) -> None:
        """Test that CLI help works."""
        result = self.runner.invoke(cli, ["--help"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("tunnelguard - OpenVPN supervisor with killswitch", result.output)

    def test_cli_version(self) -> None:
        """Test that CLI version works."""
        result = self.runner.invoke(cli, ["--version"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("0.1.0", result.output)

    @patch("tunnelguard.setup_logging")
    def test_verbose_flag(self, mock_setup_logging: Mock) -> None:
        """Test that --verbose widens logging to debug."""
        result = self.runner.invoke(cli, ["--verbose", "killswitch", "--help"], env={"DEBUG": "false"})

        self.assertEqual(result.exit_code, 0)
        self.assertTrue(mock_setup_logging.call_args.kwargs["debug"])

    @patch("tunnelguard.setup_logging")
    def test_debug_env(self, mock_setup_logging: Mock) -> None:
        """Test that DEBUG=true widens logging without --verbose."""
        result = self.runner.invoke(cli, ["healthcheck", "--help"], env={"DEBUG": "true", "LOG_LEVEL": "WARNING"})

        self.assertEqual(result.exit_code, 0)
        mock_setup_logging.assert_called_once_with("WARNING", debug=True)

    def test_run_command_registered(self) -> None:
        """Test that run command is registered."""
        result = self.runner.invoke(cli, ["run", "--help"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("Run the OpenVPN client under supervision", result.output)

    def test_killswitch_command_registered(self) -> None:
        """Test that killswitch command is registered."""
        result = self.runner.invoke(cli, ["killswitch", "--help"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("Install the killswitch firewall", result.output)

    def test_killswitch_clear_command_registered(self) -> None:
        """Test that killswitch-clear command is registered."""
        result = self.runner.invoke(cli, ["killswitch-clear", "--help"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("Remove the killswitch rules", result.output)

    def test_healthcheck_command_registered(self) -> None:
        """Test that healthcheck command is registered."""
        result = self.runner.invoke(cli, ["healthcheck", "--help"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("Check that the tunnel is up", result.output)


if __name__ == "__main__":
    unittest.main()
