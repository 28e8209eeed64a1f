"""
CLI Tests

Drives e2e_runner.cli.run() with argument lists and checks output and
exit codes. No adapters are contacted.
"""
import pytest

from e2e_runner.cli import build_parser, run
from e2e_runner.exit_codes import ExitCode
from e2e_runner.loader import load_yaml_test
from e2e_runner.templates import TEST_TEMPLATES

VALID_TEST = """
name: Create user
priority: P0
tags: [smoke]
execute:
  - adapter: http
    action: request
    method: POST
    url: /users
"""

INVALID_TEST = """
description: no name and no steps
"""


@pytest.fixture
def test_dir(tmp_path):
    directory = tmp_path / "tests"
    (directory / "users").mkdir(parents=True)
    (directory / "users" / "create.test.yaml").write_text(VALID_TEST, encoding="utf-8")
    return directory


class TestParser:
    """Test argument parsing."""

    def test_run_options(self):
        """Run options are parsed with their types."""
        args = build_parser().parse_args(
            ["run", "users/*", "-p", "4", "-t", "1000", "--bail", "--tag", "smoke", "--tag", "api", "--reporter", "json"]
        )
        assert args.command == "run"
        assert args.patterns == ["users/*"]
        assert args.parallel == 4
        assert args.timeout == 1000
        assert args.bail
        assert args.tag == ["smoke", "api"]
        assert args.reporter == ["json"]

    def test_unknown_reporter_rejected(self):
        """Reporter choices are limited to known types."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["run", "--reporter", "pdf"])

    def test_no_command(self, capsys):
        """No command prints help."""
        assert run([]) == ExitCode.VALIDATION_ERROR
        assert "usage: e2e" in capsys.readouterr().out


class TestInit:
    """Test the init command."""

    def test_creates_config_and_samples(self, tmp_path, capsys):
        """Config and both sample tests are written."""
        config = tmp_path / "e2e.config.yaml"
        test_dir = tmp_path / "tests" / "e2e"

        assert run(["init", "-c", str(config), "-d", str(test_dir), "--no-color"]) == ExitCode.SUCCESS
        assert config.exists()
        assert (test_dir / "examples" / "health.test.yaml").exists()
        assert (test_dir / "examples" / "health_check.test.py").exists()
        assert "Next steps:" in capsys.readouterr().out

    def test_existing_config(self, tmp_path, capsys):
        """A second init refuses to overwrite the config."""
        config = tmp_path / "e2e.config.yaml"
        args = ["init", "-c", str(config), "-d", str(tmp_path / "t")]
        run(args)
        capsys.readouterr()

        assert run(args) == ExitCode.CONFIG_ERROR
        err = capsys.readouterr().err
        assert "Configuration file already exists" in err
        assert "Hint:" in err


class TestValidate:
    """Test the validate command."""

    def test_valid_files(self, config_file, test_dir, capsys):
        """Valid config and tests return success."""
        code = run(["validate", "-c", str(config_file), "-d", str(test_dir), "--no-color"])
        out = capsys.readouterr().out

        assert code == ExitCode.SUCCESS
        assert "(Create user, 1 steps)" in out
        assert "1 file(s) checked, 0 problem(s)" in out

    def test_invalid_file(self, config_file, test_dir, capsys):
        """Invalid tests are reported and fail validation."""
        (test_dir / "broken.test.yaml").write_text(INVALID_TEST, encoding="utf-8")

        code = run(["validate", "-c", str(config_file), "-d", str(test_dir), "--no-color"])
        out = capsys.readouterr().out

        assert code == ExitCode.VALIDATION_ERROR
        assert "✗" in out
        assert "broken.test.yaml" in out
        assert "2 file(s) checked, 1 problem(s)" in out

    def test_unknown_environment(self, config_file, test_dir, capsys):
        """A bad environment counts as a problem."""
        code = run(["validate", "-c", str(config_file), "-e", "prod", "-d", str(test_dir)])
        assert code == ExitCode.VALIDATION_ERROR
        assert "Available environments: local, staging" in capsys.readouterr().out

    def test_init_samples_validate(self, tmp_path, capsys):
        """The samples written by init are valid."""
        config = tmp_path / "e2e.config.yaml"
        test_dir = tmp_path / "e2e"
        run(["init", "-c", str(config), "-d", str(test_dir)])
        capsys.readouterr()

        assert run(["validate", "-c", str(config), "-d", str(test_dir), "--no-color"]) == ExitCode.SUCCESS
        assert "2 file(s) checked, 0 problem(s)" in capsys.readouterr().out


class TestList:
    """Test the list command."""

    def test_table(self, config_file, test_dir, capsys):
        """Tests are listed with priority and type."""
        code = run(["list", "-c", str(config_file), "-d", str(test_dir), "--no-color"])
        out = capsys.readouterr().out

        assert code == ExitCode.SUCCESS
        assert "NAME" in out
        assert "Create user" in out
        assert "P0" in out
        assert "Total: 1 test(s)" in out

    def test_filters(self, config_file, test_dir, capsys):
        """Tag filters that match nothing list nothing."""
        assert run(["list", "-d", str(test_dir), "--tag", "nightly"]) == ExitCode.SUCCESS
        assert "No tests found" in capsys.readouterr().out


class TestRun:
    """Test the run command without touching adapters."""

    def test_dry_run(self, config_file, test_dir, capsys):
        """Dry run lists what would execute."""
        code = run(["run", "-c", str(config_file), "-d", str(test_dir), "--dry-run"])
        out = capsys.readouterr().out

        assert code == ExitCode.SUCCESS
        assert "1. Create user [P0]" in out
        assert "Phases: execute(1)" in out
        assert "Total: 1 test(s) would be executed" in out

    def test_no_tests(self, config_file, tmp_path, capsys):
        """An empty test directory is not an error."""
        empty = tmp_path / "empty"
        empty.mkdir()
        assert run(["run", "-c", str(config_file), "-d", str(empty)]) == ExitCode.SUCCESS
        assert "No tests found" in capsys.readouterr().out

    def test_missing_config(self, tmp_path, test_dir, capsys):
        """A missing config file is a configuration error."""
        code = run(["run", "-c", str(tmp_path / "missing.yaml"), "-d", str(test_dir)])
        assert code == ExitCode.CONFIG_ERROR
        assert "Error:" in capsys.readouterr().err


class TestHealth:
    """Test the health command."""

    def test_reports_each_adapter(self, tmp_path, capsys):
        """Each adapter gets a status line with its check time."""
        config = tmp_path / "e2e.config.yaml"
        config.write_text('version: "1.0"\nenvironments:\n  local: {}\n', encoding="utf-8")

        code = run(["health", "-c", str(config), "--no-color"])
        out = capsys.readouterr().out

        assert code == ExitCode.SUCCESS
        assert "=== ADAPTER HEALTH (local) ===" in out
        assert "✓ http" in out
        assert "healthy (" in out


class TestTestCommand:
    """Test creating tests from templates."""

    @pytest.mark.parametrize("template", sorted(TEST_TEMPLATES))
    def test_templates_load(self, template, tmp_path, capsys):
        """Every template produces a loadable test."""
        code = run(["test", "users-flow", "-t", template, "-d", str(tmp_path), "--no-color"])

        assert code == ExitCode.SUCCESS
        assert f"Created {template} test:" in capsys.readouterr().out
        test = load_yaml_test(str(tmp_path / "users-flow.test.yaml"))
        assert test.name == "users-flow"
        assert test.description == "E2E test for users-flow"
        assert test.priority.value == "P0"
        assert test.tags == ["e2e"]
        assert test.execute

    def test_header_options(self, tmp_path):
        """Description, priority and tags are written as given."""
        run([
            "test", "orders", "-t", "crud", "-d", str(tmp_path),
            "--description", 'Orders: "refund" flow', "--priority", "P2", "--tags", "orders, smoke",
        ])
        test = load_yaml_test(str(tmp_path / "orders.test.yaml"))
        assert test.description == 'Orders: "refund" flow'
        assert test.priority.value == "P2"
        assert test.tags == ["orders", "smoke"]
        assert test.verify[0].params["sql"].startswith("SELECT COUNT(*)")

    def test_created_tests_validate(self, tmp_path, capsys):
        """Created tests pass the validate command."""
        run(["test", "api-check", "-d", str(tmp_path)])
        run(["test", "events", "-t", "event-driven", "-d", str(tmp_path)])
        capsys.readouterr()

        code = run(["validate", "-c", str(tmp_path / "missing.yaml"), "-d", str(tmp_path), "--no-color"])
        assert code == ExitCode.SUCCESS
        assert "2 file(s) checked, 0 problem(s)" in capsys.readouterr().out

    def test_existing_file_kept(self, tmp_path, capsys):
        """An existing file is never overwritten."""
        target = tmp_path / "users.test.yaml"
        target.write_text("name: mine\n", encoding="utf-8")

        code = run(["test", "users", "-d", str(tmp_path)])

        assert code == ExitCode.VALIDATION_ERROR
        assert "Test file already exists" in capsys.readouterr().err
        assert target.read_text(encoding="utf-8") == "name: mine\n"

    def test_name_required(self, tmp_path, capsys):
        """Without a name nothing is written."""
        assert run(["test", "-d", str(tmp_path)]) == ExitCode.VALIDATION_ERROR
        assert "A test name is required" in capsys.readouterr().err
        assert not list(tmp_path.iterdir())

    def test_list_templates(self, capsys):
        """Templates are listed with a description."""
        assert run(["test", "--list-templates"]) == ExitCode.SUCCESS
        out = capsys.readouterr().out
        for template in TEST_TEMPLATES:
            assert template in out

    def test_unknown_template_rejected(self):
        """Template choices are limited to known types."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["test", "x", "--template", "graphql"])
