"""Actionable error catalog for pteroprovision."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "unsupported_host": {
        "what": "Only {distribution} {version} is supported. Detected {detected}.",
        "next": "Run the installer on a fresh {distribution} {version} host.",
    },
    "missing_privilege": {
        "what": "The installer must run as root (effective uid {euid}).",
        "next": "Re-run the command with `sudo` or from a root shell.",
    },
    "download_failed": {
        "what": "Download failed for {label}: {reason}",
        "next": "Check outbound connectivity to {host} and the requested release version.",
    },
    "build_manifest_missing": {
        "what": "Asset build finished but {path} does not exist.",
        "next": "Inspect the yarn output above and the ownership listing, then re-run the installer.",
    },
    "permission_mismatch": {
        "what": "{label} failed while running as `{user}`.",
        "next": "Fix ownership with `chown -R {user}:{user} {path}` and re-run the installer.",
    },
    "certificate_failed": {
        "what": "Could not obtain a TLS certificate for {domain}.",
        "next": (
            "Check that DNS for {domain} points to this host and port 80 is reachable, then run "
            "`certbot certonly --nginx -d {domain}` manually and re-run the installer."
        ),
    },
    "node_port_timeout": {
        "what": "Wings did not accept connections on {host}:{port} after {attempts} attempt(s).",
        "next": "Check `journalctl -u wings` and /etc/pterodactyl/config.yml.",
    },
    "health_check_failed": {
        "what": "Panel did not answer HTTP 200 at {url} after {attempts} attempt(s).",
        "next": "Open the URL in a browser and check nginx and php-fpm logs.",
    },
}


def actionable_error(code: str, **kwargs: object) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
