import pytest
from click.testing import CliRunner

import pteroprovision.cli as cli_module
from pteroprovision.models import ReservationPolicy, TlsPolicy

POSITIONAL = [
    "panel.example.com",
    "true",
    "admin@example.com",
    "admin",
    "Ada",
    "Lovelace",
    "correct-horse",
    "yes",
    "node.example.com",
]

FLAGS = [
    "--panel-domain",
    "panel.example.com",
    "--use-ssl",
    "true",
    "--admin-email",
    "admin@example.com",
    "--admin-user",
    "admin",
    "--first-name",
    "Ada",
    "--last-name",
    "Lovelace",
    "--admin-pass",
    "correct-horse",
    "--deploy-wings",
    "yes",
    "--node-domain",
    "node.example.com",
]


@pytest.fixture
def captured(monkeypatch, tmp_path):
    captured = {}

    class FakeProvisioner:
        def __init__(self, **kwargs):
            captured.update(kwargs)

        def run(self):
            return 0

    monkeypatch.setattr(cli_module, "PanelProvisioner", FakeProvisioner)
    monkeypatch.chdir(tmp_path)
    return captured


def test_positional_and_flag_syntax_build_equal_requests(captured):
    runner = CliRunner()

    positional = runner.invoke(cli_module.main, POSITIONAL)
    positional_request = captured["request"]
    flags = runner.invoke(cli_module.main, FLAGS)

    assert positional.exit_code == 0, positional.output
    assert flags.exit_code == 0, flags.output
    assert positional_request == captured["request"]
    assert captured["request"].wings is True
    assert captured["request"].node_domain == "node.example.com"


def test_short_flag_aliases_are_accepted(captured):
    result = CliRunner().invoke(
        cli_module.main,
        [
            "--domain",
            "panel.example.com",
            "--ssl",
            "no",
            "--email",
            "admin@example.com",
            "--admin",
            "admin",
            "--first",
            "Ada",
            "--last",
            "Lovelace",
            "--pass",
            "correct-horse",
            "--wings",
            "false",
        ],
    )

    assert result.exit_code == 0, result.output
    assert captured["request"].panel_url == "http://panel.example.com"
    assert captured["request"].node_domain is None


def test_eight_positional_arguments_are_enough(captured):
    result = CliRunner().invoke(cli_module.main, POSITIONAL[:8])

    assert result.exit_code == 0, result.output
    assert captured["request"].node_domain == "panel.example.com"


def test_mixing_positional_and_flags_is_a_usage_error(captured):
    result = CliRunner().invoke(cli_module.main, POSITIONAL + ["--timezone", "UTC", "--ssl", "true"])

    assert result.exit_code == 2
    assert "not both" in result.output
    assert captured == {}


def test_incomplete_positional_list_is_a_usage_error(captured):
    result = CliRunner().invoke(cli_module.main, POSITIONAL[:5])

    assert result.exit_code == 2
    assert "Expected 8 or 9 positional arguments" in result.output


def test_missing_flag_is_a_usage_error(captured):
    result = CliRunner().invoke(cli_module.main, FLAGS[:-4])

    assert result.exit_code == 2
    assert "wings" in result.output


def test_unknown_flag_is_a_usage_error(captured):
    result = CliRunner().invoke(cli_module.main, FLAGS + ["--frobnicate"])

    assert result.exit_code == 2


def test_invalid_boolean_is_a_usage_error(captured):
    args = list(POSITIONAL)
    args[1] = "maybe"

    result = CliRunner().invoke(cli_module.main, args)

    assert result.exit_code == 2
    assert "Invalid value 'maybe' for 'ssl'" in result.output


def test_settings_default_when_not_given(captured):
    result = CliRunner().invoke(cli_module.main, POSITIONAL)

    assert result.exit_code == 0, result.output
    settings = captured["settings"]
    assert settings.tls_policy == TlsPolicy.BEST_EFFORT
    assert settings.reservation_policy == ReservationPolicy()
    assert settings.summary_file == "/root/panel-details.txt"
    assert settings.dry_run is False


def test_cli_uses_config_and_allows_cli_override(captured, tmp_path):
    config_file = tmp_path / "install.yml"
    config_file.write_text(
        "domain: config.example.com\n"
        "ssl: false\n"
        "email: ops@example.com\n"
        "admin: ops\n"
        "first: Grace\n"
        "last: Hopper\n"
        "password: from-config-file\n"
        "wings: false\n"
        "tls_policy: strict\n"
        "reserve_percent: 30\n"
        "timezone: Europe/Berlin\n",
        encoding="utf-8",
    )

    result = CliRunner().invoke(
        cli_module.main,
        ["--config", str(config_file), "--domain", "cli.example.com", "--reserve-percent", "10", "--dry-run"],
    )

    assert result.exit_code == 0, result.output
    assert captured["request"].domain == "cli.example.com"
    assert captured["request"].username == "ops"
    assert captured["settings"].tls_policy == TlsPolicy.STRICT
    assert captured["settings"].reservation_policy.reserve_percent == 10
    assert captured["settings"].timezone == "Europe/Berlin"
    assert captured["settings"].dry_run is True


def test_cli_uses_default_config_file_when_present(captured, tmp_path):
    (tmp_path / ".pteroprovision.yml").write_text(
        "trusted_proxies:\n  - 10.0.0.0/8\nrotate_db_root_password: true\n", encoding="utf-8"
    )

    result = CliRunner().invoke(cli_module.main, POSITIONAL)

    assert result.exit_code == 0, result.output
    assert captured["settings"].trusted_proxies == ("10.0.0.0/8",)
    assert captured["settings"].rotate_db_root_password is True


def test_exit_code_comes_from_provisioner(monkeypatch, tmp_path):
    class FailingProvisioner:
        def __init__(self, **kwargs):
            pass

        def run(self):
            return 99

    monkeypatch.setattr(cli_module, "PanelProvisioner", FailingProvisioner)
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli_module.main, POSITIONAL)

    assert result.exit_code == 99


def test_scalar_trusted_proxy_in_config_is_one_network(captured, tmp_path):
    (tmp_path / ".pteroprovision.yml").write_text("trusted_proxies: 10.0.0.0/8\n", encoding="utf-8")

    result = CliRunner().invoke(cli_module.main, POSITIONAL)

    assert result.exit_code == 0, result.output
    assert captured["settings"].trusted_proxies == ("10.0.0.0/8",)


def test_invalid_trusted_proxy_is_a_usage_error(captured):
    result = CliRunner().invoke(cli_module.main, FLAGS + ["--trusted-proxy", "10.0.0.300/8"])

    assert result.exit_code == 2
    assert "Invalid trusted proxy" in result.output
    assert captured == {}


def test_usage_error_does_not_create_log_file(captured, tmp_path):
    log_file = tmp_path / "install.log"

    result = CliRunner().invoke(
        cli_module.main,
        ["--domain", "panel.example.com", "--ssl", "true", "--log-file", str(log_file)],
    )

    assert result.exit_code == 2
    assert not log_file.exists()
    assert captured == {}
