"""Fixed paths, modes and remote endpoints used by pteroprovision."""

EXIT_SUCCESS = 0
EXIT_STAGE_FAILURE = 1
EXIT_USAGE = 2
EXIT_UNSUPPORTED_HOST = 99

SUPPORTED_DISTRIBUTION = "ubuntu"
SUPPORTED_VERSION = "22.04"
OS_RELEASE_PATH = "/etc/os-release"

FILE_MODE = 0o644
SCRIPT_MODE = 0o755
PRIVATE_FILE_MODE = 0o600

SERVICE_USER = "www-data"
PANEL_DIR = "/var/www/pterodactyl"
PANEL_MARKER_FILE = "artisan"
BUILD_MANIFEST_RELPATH = "public/assets/manifest.json"
SUMMARY_FILE = "/root/panel-details.txt"

PHP_VERSION = "8.3"
PHP_BINARY = "/usr/bin/php"
PHP_FPM_SOCKET = f"/run/php/php{PHP_VERSION}-fpm.sock"

DB_HOST = "127.0.0.1"
DB_PORT = 3306
DB_NAME = "panel"
DB_USER = "pterodactyl"
REDIS_HOST = "127.0.0.1"
REDIS_PORT = 6379

SECRET_MIN_LENGTH = 16
SECRET_MAX_LENGTH = 24
SECRET_DEFAULT_LENGTH = 20

PANEL_RELEASE_URL = "https://github.com/pterodactyl/panel/releases/{path}/panel.tar.gz"
WINGS_RELEASE_URL = "https://github.com/pterodactyl/wings/releases/{path}/wings_linux_{arch}"
COMPOSER_INSTALLER_URL = "https://getcomposer.org/installer"

SYSTEMD_DIR = "/etc/systemd/system"
NGINX_SITES_AVAILABLE = "/etc/nginx/sites-available"
NGINX_SITES_ENABLED = "/etc/nginx/sites-enabled"
LETSENCRYPT_LIVE_DIR = "/etc/letsencrypt/live"

WINGS_BINARY = "/usr/local/bin/wings"
WINGS_CONFIG_DIR = "/etc/pterodactyl"
WINGS_CONFIG_FILE = "/etc/pterodactyl/config.yml"
WINGS_ROOT_DIR = "/var/lib/pterodactyl"
WINGS_LOG_DIR = "/var/log/pterodactyl"
WINGS_TMP_DIR = "/tmp/pterodactyl"
WINGS_BIND_HOST = "127.0.0.1"
WINGS_API_PORT = 8080
WINGS_INTERNAL_PORT = 8081
WINGS_SFTP_PORT = 2022
WINGS_LOCATION_SHORT = "local"
WINGS_LOCATION_LONG = "Provisioned by pteroprovision"
WINGS_DOCKER_NETWORK = {
    "name": "pterodactyl_nw",
    "interface": "172.18.0.1",
    "subnet": "172.18.0.0/16",
    "gateway": "172.18.0.1",
}
WINGS_ARCHITECTURES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}

DEFAULT_TRUSTED_PROXIES = ("127.0.0.1/32", "::1/128")

PREREQUISITE_PACKAGES = [
    "software-properties-common",
    "curl",
    "apt-transport-https",
    "ca-certificates",
    "gnupg",
    "lsb-release",
]

PANEL_PACKAGES = [
    f"php{PHP_VERSION}",
    *[
        f"php{PHP_VERSION}-{ext}"
        for ext in (
            "common",
            "cli",
            "gd",
            "mysql",
            "mbstring",
            "bcmath",
            "xml",
            "fpm",
            "curl",
            "zip",
        )
    ],
    "mariadb-server",
    "redis-server",
    "nginx",
    "tar",
    "unzip",
    "git",
    "certbot",
    "python3-certbot-nginx",
    "nodejs",
]

NODE_PACKAGES = ["docker.io"]
