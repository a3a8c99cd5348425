import pytest
from rich.console import Console

from pteroprovision.errors import ProvisionError
from pteroprovision.models import ServiceUnit
from pteroprovision.services.filesystem import FileSystemService
from pteroprovision.services.supervisor import queue_worker_unit
from pteroprovision.services.templates import TemplateService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None


def build_service():
    return TemplateService(FileSystemService(logger=DummyLogger(), console=Console(record=True)))


def test_missing_key_raises_and_leaves_no_file(tmp_path):
    target = tmp_path / "sites-available" / "pterodactyl.conf"

    with pytest.raises(ProvisionError, match="panel-nginx.conf.j2"):
        build_service().render_to_file("panel-nginx.conf.j2", {"server_name": "panel.example.com"}, str(target))

    assert not target.exists()
    assert not target.parent.exists()


def test_queue_worker_unit_renders_restart_policy(tmp_path):
    content = build_service().render(
        "service.j2", {"unit": queue_worker_unit("/var/www/pterodactyl", "www-data")}
    )

    assert "Description=Pterodactyl Queue Worker" in content
    assert "User=www-data" in content
    assert "Group=www-data" in content
    assert "Restart=on-failure" in content
    assert "RestartSec=5s" in content
    assert "StartLimitIntervalSec=600" in content
    assert "StartLimitBurst=5" in content
    assert "ExecStart=/usr/bin/php /var/www/pterodactyl/artisan queue:work" in content


def test_root_unit_omits_group_and_renders_extra_keys():
    unit = ServiceUnit(
        name="wings",
        description="Pterodactyl Wings Daemon",
        exec_start="/usr/local/bin/wings",
        after="docker.service",
        extra={"LimitNOFILE": "4096"},
    )

    content = build_service().render("service.j2", {"unit": unit})

    assert "User=root" in content
    assert "Group=" not in content
    assert "After=docker.service" in content
    assert "LimitNOFILE=4096" in content
    assert "StartLimitBurst" not in content


def test_wings_vhost_without_tls_listens_plain():
    content = build_service().render(
        "wings-nginx.conf.j2",
        {
            "tls": False,
            "listen_port": 8080,
            "server_name": "node.example.com",
            "panel_url": "http://panel.example.com",
            "upstream_host": "127.0.0.1",
            "upstream_port": 8081,
        },
    )

    assert "listen 8080;" in content
    assert "ssl_certificate" not in content
    assert "proxy_pass http://127.0.0.1:8081;" in content
    assert "return 302 http://panel.example.com;" in content
