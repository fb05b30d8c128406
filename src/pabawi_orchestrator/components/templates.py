"""Templates for files managed by the built-in components.

Every renderer is a pure function of its parameters so that output can be
compared against golden files.
"""
import json
from typing import Any, Mapping

HEADER = "Managed by pabawi-orchestrator. Local changes will be overwritten."

# Characters that force an env value into double quotes
_QUOTE_TRIGGERS = set(" \t#\"'$\\=")


def format_env_value(value: Any) -> str:
    """Render one value for a KEY=value env file."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        value = ",".join(str(item) for item in value)
    text = str(value)
    if not text or any(c in _QUOTE_TRIGGERS for c in text):
        return json.dumps(text)
    return text


def render_env_file(values: Mapping[str, Any]) -> str:
    """
    Render an env file.

    Keys keep their insertion order; None values are left out.
    """
    lines = [f"# {HEADER}"]
    for key, value in values.items():
        if value is None:
            continue
        lines.append(f"{key}={format_env_value(value)}")
    return "\n".join(lines) + "\n"


def render_nginx_vhost(params: Mapping[str, Any]) -> str:
    """
    Render the reverse proxy virtual host.

    Args:
        params: server_name, http_port, listen_port, backend_port, ssl,
            cert_path and key_path
    """
    server_name = params["server_name"]
    lines = [f"# {HEADER}", ""]

    if params["ssl"]:
        lines.extend([
            "server {",
            f"    listen {params['http_port']};",
            f"    server_name {server_name};",
            "    return 301 https://$host$request_uri;",
            "}",
            "",
            "server {",
            f"    listen {params['listen_port']} ssl;",
            f"    server_name {server_name};",
            "",
            f"    ssl_certificate {params['cert_path']};",
            f"    ssl_certificate_key {params['key_path']};",
            "    ssl_protocols TLSv1.2 TLSv1.3;",
        ])
    else:
        lines.extend([
            "server {",
            f"    listen {params['http_port']};",
            f"    server_name {server_name};",
        ])

    lines.extend([
        "",
        "    location / {",
        f"        proxy_pass http://127.0.0.1:{params['backend_port']};",
        "        proxy_http_version 1.1;",
        "        proxy_set_header Host $host;",
        "        proxy_set_header X-Real-IP $remote_addr;",
        "        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;",
        "        proxy_set_header X-Forwarded-Proto $scheme;",
        "    }",
        "}",
    ])
    return "\n".join(lines) + "\n"


def render_systemd_unit(params: Mapping[str, Any]) -> str:
    """Render the systemd unit for a source install."""
    install_dir = params["install_dir"]
    lines = [
        f"# {HEADER}",
        "[Unit]",
        "Description=Pabawi infrastructure management web interface",
        "After=network.target",
        "",
        "[Service]",
        "Type=simple",
        f"User={params['user']}",
        f"Group={params['group']}",
        f"WorkingDirectory={install_dir}/backend",
        f"EnvironmentFile={install_dir}/backend/.env",
        f"ExecStart=/usr/bin/node {install_dir}/backend/dist/server.js",
        "Restart=on-failure",
        "RestartSec=5",
        "",
        "[Install]",
        "WantedBy=multi-user.target",
    ]
    return "\n".join(lines) + "\n"
