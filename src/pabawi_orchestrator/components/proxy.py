"""Reverse proxy components."""
from ..engine.schema import BuildOutput, ParamSpec, ResourceDecl, ResourceKind, resource_id
from ..errors import MissingDependentField
from .base import builtin, port_number, positive
from .templates import render_nginx_vhost

NGINX_PARAMS = {
    "ssl": ParamSpec(bool, True, description="Serve the interface over HTTPS"),
    "ssl_self_signed": ParamSpec(bool, True, description="Generate a self-signed certificate"),
    "ssl_cert_source": ParamSpec(str, description="Certificate source when not self-signed"),
    "ssl_key_source": ParamSpec(str, description="Private key source when not self-signed"),
    "ssl_dir": ParamSpec(str, "/etc/nginx/ssl"),
    "certificate_days": ParamSpec(int, 365, validator=positive),
    "server_name": ParamSpec(str, "localhost"),
    "http_port": ParamSpec(int, 80, validator=port_number),
    "listen_port": ParamSpec(int, 443, validator=port_number),
    "backend_port": ParamSpec(int, 3000, validator=port_number),
    "vhost_path": ParamSpec(str, "/etc/nginx/conf.d/pabawi.conf"),
    "manage_package": ParamSpec(bool, True),
}


@builtin("pabawi::proxy::nginx", params=NGINX_PARAMS)
def nginx(params):
    """Nginx reverse proxy in front of the application backend."""
    resources = []
    base_requires = ()
    if params["manage_package"]:
        resources.append(ResourceDecl(ResourceKind.PACKAGE, "nginx"))
        base_requires = (resource_id(ResourceKind.PACKAGE, "nginx"),)

    ssl_dir = params["ssl_dir"]
    cert_path = f"{ssl_dir}/pabawi.crt"
    key_path = f"{ssl_dir}/pabawi.key"
    ssl_material: tuple[str, ...] = ()

    if params["ssl"]:
        ssl_dir_decl = ResourceDecl(
            ResourceKind.DIRECTORY, ssl_dir,
            payload={"mode": "0755"},
            requires=base_requires,
        )
        resources.append(ssl_dir_decl)

        if params["ssl_self_signed"]:
            cert = ResourceDecl(
                ResourceKind.CERTIFICATE, "pabawi_proxy",
                payload={
                    "common_name": params["server_name"],
                    "cert_path": cert_path,
                    "key_path": key_path,
                    "valid_days": params["certificate_days"],
                },
                requires=(ssl_dir_decl.id,),
            )
            resources.append(cert)
            ssl_material = (cert.id,)
        else:
            for key in ("ssl_cert_source", "ssl_key_source"):
                if not params[key]:
                    raise MissingDependentField(f"proxy.{key}", "proxy.ssl_self_signed")
            cert = ResourceDecl(
                ResourceKind.FILE, cert_path,
                payload={"source": params["ssl_cert_source"], "mode": "0644"},
                requires=(ssl_dir_decl.id,),
            )
            key = ResourceDecl(
                ResourceKind.FILE, key_path,
                payload={"source": params["ssl_key_source"], "mode": "0600"},
                requires=(ssl_dir_decl.id,),
            )
            resources.extend([cert, key])
            ssl_material = (cert.id, key.id)

    vhost = ResourceDecl(
        ResourceKind.FILE, params["vhost_path"],
        payload={
            "content": render_nginx_vhost({
                "server_name": params["server_name"],
                "http_port": params["http_port"],
                "listen_port": params["listen_port"],
                "backend_port": params["backend_port"],
                "ssl": params["ssl"],
                "cert_path": cert_path,
                "key_path": key_path,
            }),
            "mode": "0644",
        },
        requires=base_requires,
    )
    resources.append(vhost)

    resources.append(ResourceDecl(
        ResourceKind.SERVICE, "nginx",
        payload={"running": True, "enabled": True},
        requires=base_requires,
        subscribe=(vhost.id,) + ssl_material,
    ))
    return BuildOutput(resources=resources)
