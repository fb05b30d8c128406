"""Application installer components.

Both installers leave the configuration directory to
pabawi::integrations::base and restart the application whenever a file
tagged pabawi::config changes.
"""
from ..engine.schema import (
    TAG_PREFIX,
    BuildOutput,
    ParamSpec,
    ResourceDecl,
    ResourceKind,
)
from ..errors import MissingDependentField
from .base import CONFIG_TAG, DEFAULT_CONFIG_DIR, builtin, port_number
from .templates import render_env_file, render_systemd_unit

CONFIG_SUBSCRIPTION = f"{TAG_PREFIX}{CONFIG_TAG}"

# Parameters shared by every installer
COMMON_PARAMS = {
    "port": ParamSpec(int, 3000, validator=port_number),
    "log_level": ParamSpec(str, "info"),
    "auth_enabled": ParamSpec(bool, False),
    "jwt_secret": ParamSpec(str, description="Required when auth_enabled is true"),
    "config_dir": ParamSpec(str, DEFAULT_CONFIG_DIR),
    "env": ParamSpec(dict, {}, description="Extra environment variables"),
}

NPM_PARAMS = {
    **COMMON_PARAMS,
    "install_dir": ParamSpec(str, "/opt/pabawi"),
    "data_dir": ParamSpec(str, "/var/lib/pabawi"),
    "user": ParamSpec(str, "pabawi"),
    "group": ParamSpec(str, "pabawi"),
    "repo_url": ParamSpec(str, "https://github.com/example42/pabawi.git"),
    "revision": ParamSpec(str, "main"),
    "manage_nodejs": ParamSpec(bool, True),
    "nodejs_packages": ParamSpec(list, ["nodejs", "npm"]),
    "service_name": ParamSpec(str, "pabawi"),
}

DOCKER_PARAMS = {
    **COMMON_PARAMS,
    "image": ParamSpec(str, "example42/pabawi:latest"),
    "container_name": ParamSpec(str, "pabawi"),
    "data_dir": ParamSpec(str, "/opt/pabawi"),
    "manage_docker": ParamSpec(bool, True),
    "docker_package": ParamSpec(str, "docker.io"),
}


def application_env(params, data_dir: str) -> dict:
    """Environment shared by both installers."""
    if params["auth_enabled"] and not params["jwt_secret"]:
        raise MissingDependentField("install.jwt_secret", "install.auth_enabled")
    env = {
        "PORT": params["port"],
        "LOG_LEVEL": params["log_level"],
        "DATABASE_PATH": f"{data_dir}/pabawi.db",
        "CONFIG_DIR": params["config_dir"],
        "AUTH_ENABLED": params["auth_enabled"],
        "JWT_SECRET": params["jwt_secret"] if params["auth_enabled"] else None,
    }
    env.update(params["env"])
    return env


@builtin("pabawi::install::npm", params=NPM_PARAMS)
def npm(params):
    """Install the application from source and run it as a systemd service."""
    user = params["user"]
    group = params["group"]
    install_dir = params["install_dir"]
    service = params["service_name"]

    group_decl = ResourceDecl(ResourceKind.GROUP, group)
    user_decl = ResourceDecl(
        ResourceKind.USER, user,
        payload={"group": group, "home": install_dir},
        requires=(group_decl.id,),
    )
    resources = [group_decl, user_decl]

    runtime: tuple[str, ...] = ()
    if params["manage_nodejs"]:
        for package in params["nodejs_packages"]:
            decl = ResourceDecl(ResourceKind.PACKAGE, package)
            resources.append(decl)
            runtime += (decl.id,)

    ownership = {"owner": user, "group": group}
    app_dir = ResourceDecl(
        ResourceKind.DIRECTORY, install_dir,
        payload={"mode": "0755", **ownership},
        requires=(user_decl.id,),
    )
    data_dir = ResourceDecl(
        ResourceKind.DIRECTORY, params["data_dir"],
        payload={"mode": "0750", **ownership},
        requires=(user_decl.id,),
    )
    repo = ResourceDecl(
        ResourceKind.REPO, install_dir,
        payload={"url": params["repo_url"], "revision": params["revision"], "user": user},
        requires=(app_dir.id,),
        retries=3,
    )
    install_deps = ResourceDecl(
        ResourceKind.EXEC, "pabawi_npm_ci",
        payload={
            "command": "npm ci",
            "cwd": install_dir,
            "user": user,
            "creates": f"{install_dir}/node_modules",
        },
        requires=(repo.id,) + runtime,
        retries=3,
    )
    build = ResourceDecl(
        ResourceKind.EXEC, "pabawi_npm_build",
        payload={
            "command": "npm run build",
            "cwd": install_dir,
            "user": user,
            "creates": f"{install_dir}/backend/dist",
        },
        requires=(install_deps.id,),
        subscribe=(repo.id,),
    )
    env_file = ResourceDecl(
        ResourceKind.FILE, f"{install_dir}/backend/.env",
        payload={
            "content": render_env_file(application_env(params, params["data_dir"])),
            "mode": "0600",
            **ownership,
        },
        requires=(repo.id,),
        tags=(CONFIG_TAG,),
    )
    unit = ResourceDecl(
        ResourceKind.FILE, f"/etc/systemd/system/{service}.service",
        payload={
            "content": render_systemd_unit(
                {"install_dir": install_dir, "user": user, "group": group}
            ),
            "mode": "0644",
        },
    )
    reload = ResourceDecl(
        ResourceKind.EXEC, "pabawi_systemd_reload",
        payload={"command": "systemctl daemon-reload", "refreshonly": True},
        subscribe=(unit.id,),
    )
    resources.extend([app_dir, data_dir, repo, install_deps, build, env_file, unit, reload])

    resources.append(ResourceDecl(
        ResourceKind.SERVICE, service,
        payload={"running": True, "enabled": True},
        requires=(data_dir.id, reload.id),
        subscribe=(build.id, env_file.id, unit.id, CONFIG_SUBSCRIPTION),
    ))
    return BuildOutput(resources=resources)


@builtin("pabawi::install::docker", params=DOCKER_PARAMS)
def docker(params):
    """Run the application from its container image."""
    resources = []
    engine: tuple[str, ...] = ()
    if params["manage_docker"]:
        package = ResourceDecl(ResourceKind.PACKAGE, params["docker_package"])
        service = ResourceDecl(
            ResourceKind.SERVICE, "docker",
            payload={"running": True, "enabled": True},
            requires=(package.id,),
        )
        resources.extend([package, service])
        engine = (service.id,)

    data_dir = params["data_dir"]
    config_dir = params["config_dir"]
    directory = ResourceDecl(ResourceKind.DIRECTORY, data_dir, payload={"mode": "0750"})

    env = application_env(params, "/data")
    env_file = ResourceDecl(
        ResourceKind.FILE, f"{data_dir}/pabawi.env",
        payload={"content": render_env_file(env), "mode": "0600"},
        requires=(directory.id,),
        tags=(CONFIG_TAG,),
    )
    resources.extend([directory, env_file])

    resources.append(ResourceDecl(
        ResourceKind.CONTAINER, params["container_name"],
        payload={
            "image": params["image"],
            "env": {key: value for key, value in env.items() if value is not None},
            "volumes": [f"{data_dir}:/data", f"{config_dir}:{config_dir}:ro"],
            "ports": [f"127.0.0.1:{params['port']}:{params['port']}"],
            "restart_policy": "unless-stopped",
        },
        requires=(directory.id,) + engine,
        subscribe=(env_file.id, CONFIG_SUBSCRIPTION),
        retries=3,
    ))
    return BuildOutput(resources=resources)
