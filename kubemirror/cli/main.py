"""kubemirror command-line interface.

Commands:
    kubemirror list <gvr> [-n NS | -A] [-l SELECTOR]   List objects from a warmed cache.
    kubemirror get <gvr> <namespace/name>              Get one object from a warmed cache.
    kubemirror version                                 Print version and exit.

Every query starts the cache factory, waits (bounded) for the initial
sync and answers from the local mirror. Use ``-n -`` for cluster-scoped
resources, e.g. ``kubemirror list v1/nodes -n -``.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import click

from kubemirror import __version__
from kubemirror.app import KubeMirrorApp, _ComponentError
from kubemirror.cache.factory import CacheFactory
from kubemirror.cache.paths import namespaced
from kubemirror.cache.selector import Selector, SelectorError
from kubemirror.config import load_config
from kubemirror.errors import KubeMirrorError
from kubemirror.models.config import KubeMirrorConfig
from kubemirror.models.resources import ALL_NAMESPACES

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build_config(ctx: click.Context) -> KubeMirrorConfig:
    """Environment config with command-line overrides applied."""
    try:
        config = load_config()
    except ValueError as err:
        raise click.ClickException(str(err)) from err
    opts: dict[str, Any] = ctx.obj
    kube = config.kube.model_copy(
        update={
            k: v
            for k, v in (("config_file", opts.get("kubeconfig")), ("context", opts.get("context")))
            if v
        }
    )
    log = config.log.model_copy(update={"level": opts["log_level"]} if opts.get("log_level") else {})
    return config.model_copy(update={"kube": kube, "log": log})


def _run(config: KubeMirrorConfig, ns: str, query: Callable[[CacheFactory], Awaitable[Any]]) -> Any:
    """Start the app scoped to ``ns``, run ``query`` twice around the sync wait, stop."""

    async def _main() -> Any:
        scoped = config.model_copy(update={"cache": config.cache.model_copy(update={"namespace": ns})})
        app = KubeMirrorApp(scoped)
        try:
            await app.start()
            # First call checks access and builds the cache; the second reads it warm.
            await query(app.factory)
            if not await app.wait_ready():
                click.echo(click.style("Warning: cache sync timed out; results may be partial.", fg="yellow"), err=True)
            return await query(app.factory)
        finally:
            await app.stop()

    try:
        return asyncio.run(_main())
    except _ComponentError as err:
        raise click.ClickException(str(err)) from err
    except KubeMirrorError as err:
        raise click.ClickException(str(err)) from err


def _object_row(obj: dict[str, Any]) -> tuple[str, str, str]:
    metadata = obj.get("metadata", {}) if isinstance(obj.get("metadata"), dict) else {}
    return (
        str(metadata.get("namespace") or ""),
        str(metadata.get("name") or ""),
        str(metadata.get("creationTimestamp") or ""),
    )


def _print_table(objs: list[dict[str, Any]]) -> None:
    if not objs:
        click.echo(click.style("No resources found.", fg="yellow"))
        return
    rows = sorted(_object_row(o) for o in objs)
    width = max(len("NAMESPACE"), *(len(r[0]) for r in rows))
    name_width = max(len("NAME"), *(len(r[1]) for r in rows))
    click.echo(click.style(f"{'NAMESPACE':<{width}}  {'NAME':<{name_width}}  CREATED", bold=True))
    for ns, name, created in rows:
        click.echo(f"{ns:<{width}}  {click.style(name.ljust(name_width), fg='cyan')}  {created}")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option("--kubeconfig", default=None, metavar="PATH", help="Path to the kubeconfig file.")
@click.option("--context", default=None, metavar="NAME", help="Kubeconfig context to use.")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["debug", "info", "warning", "error", "critical"], case_sensitive=False),
    help="Override KUBEMIRROR_LOG_LEVEL.",
)
@click.pass_context
def cli(ctx: click.Context, kubeconfig: str | None, context: str | None, log_level: str | None) -> None:
    """kubemirror: watch-backed Kubernetes resource caches."""
    ctx.ensure_object(dict)
    ctx.obj["kubeconfig"] = kubeconfig
    ctx.obj["context"] = context
    ctx.obj["log_level"] = log_level.lower() if log_level else None


# ---------------------------------------------------------------------------
# kubemirror version
# ---------------------------------------------------------------------------


@cli.command("version")
def cmd_version() -> None:
    """Print the kubemirror version and exit."""
    click.echo(f"kubemirror {__version__}")


# ---------------------------------------------------------------------------
# kubemirror list
# ---------------------------------------------------------------------------


@cli.command("list")
@click.argument("gvr")
@click.option("--namespace", "-n", default=None, metavar="NS", help="Namespace, or '-' for cluster-scoped.")
@click.option("--all-namespaces", "-A", is_flag=True, default=False, help="List across all namespaces.")
@click.option("--selector", "-l", default=None, metavar="SELECTOR", help="Label selector, e.g. 'app=web'.")
@click.option("--json", "output_json", is_flag=True, default=False, help="Print raw JSON objects.")
@click.pass_context
def cmd_list(
    ctx: click.Context,
    gvr: str,
    namespace: str | None,
    all_namespaces: bool,
    selector: str | None,
    output_json: bool,
) -> None:
    """List cached objects of GVR (group/version/resource or version/resource).

    Example:

        kubemirror list apps/v1/deployments -n default -l app=web
    """
    config = _build_config(ctx)
    try:
        sel = Selector.parse(selector) if selector else None
    except SelectorError as err:
        raise click.BadParameter(str(err), param_hint="--selector") from err

    ns = ALL_NAMESPACES if all_namespaces else (namespace if namespace is not None else config.cache.namespace)
    objs: list[dict[str, Any]] = _run(config, ns, lambda factory: factory.list(gvr, ns, sel))

    if output_json:
        click.echo(json.dumps(objs, indent=2, default=str))
        return
    _print_table(objs)


# ---------------------------------------------------------------------------
# kubemirror get
# ---------------------------------------------------------------------------


@cli.command("get")
@click.argument("gvr")
@click.argument("path")
@click.pass_context
def cmd_get(ctx: click.Context, gvr: str, path: str) -> None:
    """Print the cached object at PATH (namespace/name, or name if cluster-scoped) as JSON.

    Example:

        kubemirror get v1/pods default/web-0
        kubemirror get v1/nodes -/node-1
    """
    config = _build_config(ctx)
    ns, _ = namespaced(path)
    obj = _run(config, ns, lambda factory: factory.get(gvr, path))
    if obj is None:
        raise click.ClickException(f"{gvr} {path!r} not found in cache")
    click.echo(json.dumps(obj, indent=2, default=str))


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cli()
