"""Integration components.

Each integration writes `{config_dir}/integrations/<name>.env`, which the
application reads at startup, and announces itself with a notification.
The shared directories come from pabawi::integrations::base.
"""
from typing import Any, Mapping

from ..engine.naming import INTEGRATIONS_NAMESPACE, integration_identifier
from ..engine.schema import BuildOutput, ComponentRef, ParamSpec, ResourceDecl, ResourceKind
from ..errors import MissingDependentField
from .base import CONFIG_TAG, DEFAULT_CONFIG_DIR, builtin, http_url, positive
from .templates import render_env_file

BASE_COMPONENT = f"{INTEGRATIONS_NAMESPACE}::base"

CONFIG_DIR_PARAM = {"config_dir": ParamSpec(str, DEFAULT_CONFIG_DIR)}

SSL_PARAMS = {
    "ssl": ParamSpec(bool, False),
    "ssl_ca_source": ParamSpec(str),
    "ssl_cert_source": ParamSpec(str),
    "ssl_key_source": ParamSpec(str),
}

# (source parameter, file suffix, mode, env suffix)
SSL_MATERIAL = (
    ("ssl_ca_source", "ca.pem", "0644", "SSL_CA"),
    ("ssl_cert_source", "cert.pem", "0644", "SSL_CERT"),
    ("ssl_key_source", "key.pem", "0600", "SSL_KEY"),
)


def integrations_dir(config_dir: str) -> str:
    return f"{config_dir}/integrations"


def ssl_dir(config_dir: str) -> str:
    return f"{config_dir}/ssl"


@builtin(BASE_COMPONENT, params=CONFIG_DIR_PARAM)
def base(params):
    """Configuration directories shared by every integration."""
    config_dir = params["config_dir"]
    root = ResourceDecl(ResourceKind.DIRECTORY, config_dir, payload={"mode": "0755"})
    return BuildOutput(resources=[
        root,
        ResourceDecl(
            ResourceKind.DIRECTORY, integrations_dir(config_dir),
            payload={"mode": "0755"},
            requires=(root.id,),
        ),
        ResourceDecl(
            ResourceKind.DIRECTORY, ssl_dir(config_dir),
            payload={"mode": "0750"},
            requires=(root.id,),
        ),
    ])


def integration_output(
    name: str,
    params: Mapping[str, Any],
    settings: Mapping[str, Any],
    packages: tuple[str, ...] = (),
) -> BuildOutput:
    """
    Resources common to every integration.

    Args:
        name: Integration short name (bolt, puppetdb, ...)
        params: Bound component parameters
        settings: Integration specific env values, without prefix
        packages: Packages the integration needs on the host

    Returns:
        BuildOutput with packages, SSL material, env file and notification,
        depending on pabawi::integrations::base
    """
    config_dir = params["config_dir"]
    prefix = name.upper()
    resources = [ResourceDecl(ResourceKind.PACKAGE, package) for package in packages]

    env: dict[str, Any] = {f"{prefix}_ENABLED": True}
    for key, value in settings.items():
        env[f"{prefix}_{key}"] = value

    material: list[str] = []
    if params.get("ssl"):
        env[f"{prefix}_SSL_ENABLED"] = True
        for source_param, suffix, mode, env_suffix in SSL_MATERIAL:
            source = params[source_param]
            if not source:
                if source_param == "ssl_ca_source":
                    continue
                raise MissingDependentField(
                    f"integrations.{name}.{source_param}", f"integrations.{name}.ssl"
                )
            path = f"{ssl_dir(config_dir)}/{name}-{suffix}"
            decl = ResourceDecl(
                ResourceKind.FILE, path,
                payload={"source": source, "mode": mode},
                requires=(f"directory:{ssl_dir(config_dir)}",),
                tags=(CONFIG_TAG,),
            )
            resources.append(decl)
            material.append(decl.id)
            env[f"{prefix}_{env_suffix}"] = path
    elif "ssl" in params:
        env[f"{prefix}_SSL_ENABLED"] = False

    env_file = ResourceDecl(
        ResourceKind.FILE, f"{integrations_dir(config_dir)}/{name}.env",
        payload={"content": render_env_file(env), "mode": "0644"},
        requires=(f"directory:{integrations_dir(config_dir)}",) + tuple(material),
        tags=(CONFIG_TAG,),
    )
    resources.append(env_file)

    identifier = integration_identifier(name)
    resources.append(ResourceDecl(
        ResourceKind.NOTIFY, f"pabawi_integration_{name}",
        payload={"message": f"Enabling integration: {identifier}", "loglevel": "notice"},
        requires=(env_file.id,),
    ))

    return BuildOutput(
        resources=resources,
        depends_on=[ComponentRef(BASE_COMPONENT, {"config_dir": config_dir})],
    )


@builtin(integration_identifier("bolt"), params={
    **CONFIG_DIR_PARAM,
    "project_path": ParamSpec(str, "/opt/bolt-project"),
    "execution_timeout": ParamSpec(int, 300000, validator=positive),
    "command_whitelist": ParamSpec(list, []),
    "command_whitelist_allow_all": ParamSpec(bool, False),
    "manage_package": ParamSpec(bool, False),
})
def bolt(params):
    """Puppet Bolt command and task execution."""
    return integration_output("bolt", params, {
        "PROJECT_PATH": params["project_path"],
        "EXECUTION_TIMEOUT": params["execution_timeout"],
        "COMMAND_WHITELIST": params["command_whitelist"],
        "COMMAND_WHITELIST_ALLOW_ALL": params["command_whitelist_allow_all"],
    }, packages=("puppet-bolt",) if params["manage_package"] else ())


@builtin(integration_identifier("puppetdb"), params={
    **CONFIG_DIR_PARAM,
    **SSL_PARAMS,
    "server_url": ParamSpec(str, "https://puppetdb:8081", validator=http_url),
    "timeout": ParamSpec(int, 30000, validator=positive),
})
def puppetdb(params):
    """PuppetDB inventory, facts and reports."""
    return integration_output("puppetdb", params, {
        "SERVER_URL": params["server_url"],
        "TIMEOUT": params["timeout"],
    })


@builtin(integration_identifier("puppetserver"), params={
    **CONFIG_DIR_PARAM,
    **SSL_PARAMS,
    "server_url": ParamSpec(str, "https://puppet:8140", validator=http_url),
    "timeout": ParamSpec(int, 30000, validator=positive),
})
def puppetserver(params):
    """Puppet Server node and catalog information."""
    return integration_output("puppetserver", params, {
        "SERVER_URL": params["server_url"],
        "TIMEOUT": params["timeout"],
    })


@builtin(integration_identifier("hiera"), params={
    **CONFIG_DIR_PARAM,
    "control_repo_path": ParamSpec(str, "/etc/puppetlabs/code"),
    "config_path": ParamSpec(str, "hiera.yaml"),
    "environments": ParamSpec(list, ["production"]),
})
def hiera(params):
    """Hiera data browsing from a control repository."""
    return integration_output("hiera", params, {
        "CONTROL_REPO_PATH": params["control_repo_path"],
        "CONFIG_PATH": params["config_path"],
        "ENVIRONMENTS": params["environments"],
    })


@builtin(integration_identifier("ansible"), params={
    **CONFIG_DIR_PARAM,
    "inventory_path": ParamSpec(str, "/etc/ansible/hosts"),
    "playbook_path": ParamSpec(str, "/etc/ansible/playbooks"),
    "execution_timeout": ParamSpec(int, 300000, validator=positive),
    "manage_package": ParamSpec(bool, False),
})
def ansible(params):
    """Ansible playbook execution."""
    return integration_output("ansible", params, {
        "INVENTORY_PATH": params["inventory_path"],
        "PLAYBOOK_PATH": params["playbook_path"],
        "EXECUTION_TIMEOUT": params["execution_timeout"],
    }, packages=("ansible",) if params["manage_package"] else ())
