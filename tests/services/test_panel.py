import io
import subprocess
import tarfile

import pytest
from rich.console import Console

from pteroprovision.errors import ProvisionError
from pteroprovision.models import GeneratedSecrets, InstallRequest, ProvisionSettings
from pteroprovision.services.archive import ArchiveService
from pteroprovision.services.filesystem import FileSystemService
from pteroprovision.services.panel import PanelService, release_url


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None

    def error(self, *_args, **_kwargs):
        return None


class RecordingFileSystem(FileSystemService):
    def __init__(self):
        super().__init__(logger=DummyLogger(), console=Console(record=True))
        self.chowned = []

    def chown_tree(self, root, user):
        self.chowned.append((root, user))


class FakeDownloadService:
    def __init__(self, entries=None, error=None):
        self.entries = entries or {}
        self.error = error
        self.urls = []

    def download_file(self, url, dest_path, description="Downloading..."):
        self.urls.append(url)
        if self.error:
            raise self.error
        with tarfile.open(dest_path, "w:gz") as tar_file:
            for name, content in self.entries.items():
                data = content.encode("utf-8")
                info = tarfile.TarInfo(name)
                info.size = len(data)
                tar_file.addfile(info, io.BytesIO(data))


class FakeRunner:
    def __init__(self, fail_on=(), on_call=None):
        self.fail_on = [list(cmd) for cmd in fail_on]
        self.on_call = on_call
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((list(cmd), kwargs))
        if list(cmd) in self.fail_on:
            raise ProvisionError(f"Command failed (1): {' '.join(cmd)}")
        if self.on_call:
            self.on_call(list(cmd))
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def commands(self):
        return [cmd for cmd, _ in self.calls]


class FakeDatabaseService:
    db_host = "127.0.0.1"
    db_name = "panel"
    db_user = "pterodactyl"

    def __init__(self, admin_exists=False):
        self._admin_exists = admin_exists

    def admin_exists(self, email, username, run_cmd):
        return self._admin_exists


def build_service(tmp_path, download_service=None, filesystem=None):
    return PanelService(
        logger=DummyLogger(),
        console=Console(record=True),
        download_service=download_service or FakeDownloadService(),
        archive_service=ArchiveService(logger=DummyLogger()),
        filesystem_service=filesystem or RecordingFileSystem(),
        panel_dir=str(tmp_path / "www" / "pterodactyl"),
        service_user="www-data",
    )


def build_request():
    return InstallRequest.build(
        domain="panel.example.com",
        ssl="true",
        email="admin@example.com",
        username="admin",
        first_name="Ada",
        last_name="Lovelace",
        password="correct-horse",
        wings="false",
    )


def test_release_url_for_latest_and_tag():
    template = "https://github.com/pterodactyl/panel/releases/{path}/panel.tar.gz"

    assert release_url(template, "latest").endswith("/releases/latest/download/panel.tar.gz")
    assert release_url(template, "v1.11.7").endswith("/releases/download/v1.11.7/panel.tar.gz")


def test_fetch_flattens_wrapper_and_keeps_existing_env(tmp_path):
    panel_dir = tmp_path / "www" / "pterodactyl"
    panel_dir.mkdir(parents=True)
    (panel_dir / ".env").write_text("APP_KEY=base64:kept\n", encoding="utf-8")
    (panel_dir / "stale.php").write_text("old", encoding="utf-8")
    filesystem = RecordingFileSystem()
    download = FakeDownloadService(entries={"panel/artisan": "php", "panel/public/index.php": "<?php"})

    build_service(tmp_path, download, filesystem).fetch("latest")

    assert (panel_dir / "artisan").exists()
    assert (panel_dir / "public" / "index.php").exists()
    assert not (panel_dir / "stale.php").exists()
    assert (panel_dir / ".env").read_text(encoding="utf-8") == "APP_KEY=base64:kept\n"
    assert filesystem.chowned == [(str(panel_dir), "www-data")]


def test_failed_download_halts_before_touching_install_root(tmp_path):
    panel_dir = tmp_path / "www" / "pterodactyl"
    panel_dir.mkdir(parents=True)
    (panel_dir / "artisan").write_text("current release", encoding="utf-8")
    filesystem = RecordingFileSystem()
    download = FakeDownloadService(error=ProvisionError("Download failed for panel.tar.gz: 404"))

    with pytest.raises(ProvisionError, match="404"):
        build_service(tmp_path, download, filesystem).fetch("v0.0.0")

    assert (panel_dir / "artisan").read_text(encoding="utf-8") == "current release"
    assert filesystem.chowned == []
    assert [entry.name for entry in (tmp_path / "www").iterdir()] == ["pterodactyl"]


def test_fetch_rejects_archive_without_marker(tmp_path):
    download = FakeDownloadService(entries={"README.md": "nothing here"})

    with pytest.raises(ProvisionError, match="does not contain `artisan`"):
        build_service(tmp_path, download).fetch("latest")

    assert not (tmp_path / "www" / "pterodactyl").exists()


def test_build_falls_back_to_development_build(tmp_path):
    service = build_service(tmp_path)
    manifest = tmp_path / "www" / "pterodactyl" / "public" / "assets" / "manifest.json"

    def create_manifest(cmd):
        if cmd == ["yarn", "run", "build"]:
            manifest.parent.mkdir(parents=True, exist_ok=True)
            manifest.write_text("{}", encoding="utf-8")

    runner = FakeRunner(fail_on=[["yarn", "run", "build:production"]], on_call=create_manifest)
    (tmp_path / "www" / "pterodactyl").mkdir(parents=True)

    service.build(runner)

    assert runner.commands() == [
        ["composer", "install", "--no-dev", "--optimize-autoloader", "--no-interaction"],
        ["yarn", "install", "--frozen-lockfile", "--non-interactive"],
        ["yarn", "run", "build:production"],
        ["yarn", "run", "build"],
    ]
    assert all(kwargs["user"] == "www-data" for _, kwargs in runner.calls)


def test_missing_build_manifest_is_fatal_even_after_successful_build(tmp_path):
    (tmp_path / "www" / "pterodactyl").mkdir(parents=True)
    service = build_service(tmp_path)

    with pytest.raises(ProvisionError, match="manifest.json") as exc_info:
        service.build(FakeRunner())

    assert "Ownership:" in str(exc_info.value)


def test_composer_failure_reports_ownership(tmp_path):
    (tmp_path / "www" / "pterodactyl").mkdir(parents=True)
    service = build_service(tmp_path)
    composer = ["composer", "install", "--no-dev", "--optimize-autoloader", "--no-interaction"]

    with pytest.raises(ProvisionError, match="chown -R www-data:www-data") as exc_info:
        service.build(FakeRunner(fail_on=[composer]))

    assert "(missing)" in str(exc_info.value)


def prepare_panel_dir(tmp_path, env_content=None):
    panel_dir = tmp_path / "www" / "pterodactyl"
    panel_dir.mkdir(parents=True)
    (panel_dir / ".env.example").write_text("APP_KEY=\nAPP_URL=http://localhost\n", encoding="utf-8")
    if env_content is not None:
        (panel_dir / ".env").write_text(env_content, encoding="utf-8")
    return panel_dir


def test_configure_generates_key_and_creates_admin(tmp_path):
    panel_dir = prepare_panel_dir(tmp_path)
    runner = FakeRunner()
    secrets = GeneratedSecrets(db_password="DbPassDbPassDbPass12")

    build_service(tmp_path).configure(
        build_request(), ProvisionSettings(), secrets, FakeDatabaseService(), runner
    )

    artisan_calls = [cmd[2] for cmd in runner.commands()]
    assert artisan_calls == [
        "key:generate",
        "p:environment:setup",
        "p:environment:database",
        "migrate",
        "p:user:make",
    ]
    assert (panel_dir / ".env").exists()
    setup = runner.commands()[1]
    assert "--url=https://panel.example.com" in setup
    assert "--timezone=UTC" in setup
    database_cmd, database_kwargs = runner.calls[2]
    assert "--password=DbPassDbPassDbPass12" in database_cmd
    assert database_kwargs["sensitive"] == ["DbPassDbPassDbPass12"]
    user_cmd, user_kwargs = runner.calls[4]
    assert "--admin=1" in user_cmd
    assert user_kwargs["sensitive"] == ["correct-horse"]


def test_configure_skips_existing_admin_and_keeps_app_key(tmp_path):
    prepare_panel_dir(tmp_path, env_content="APP_KEY=base64:existing\n")
    runner = FakeRunner()

    build_service(tmp_path).configure(
        build_request(),
        ProvisionSettings(),
        GeneratedSecrets(db_password="DbPassDbPassDbPass12"),
        FakeDatabaseService(admin_exists=True),
        runner,
    )

    artisan_calls = [cmd[2] for cmd in runner.commands()]
    assert "key:generate" not in artisan_calls
    assert "p:user:make" not in artisan_calls
    assert artisan_calls[-1] == "migrate"
