import dataclasses
import functools
from typing import Any, Callable, Optional

import click

from kuberelay._cogs.clients import errors
from kuberelay._cogs.configs import configuration
from kuberelay._cogs.helpers import versions
from kuberelay._cogs.structs import credentials
from kuberelay._core.actions import loggers
from kuberelay._core.intents import piggybacking
from kuberelay._core.relaying import relays, running


@dataclasses.dataclass()
class CLIControls:
    """ Relay controls, which are impossible to pass via CLI. """
    info: Optional[credentials.ClusterInfo] = None
    settings: Optional[configuration.RelaySettings] = None


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: Optional[bool] = False,
                log_refkey: Optional[str] = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


def cluster_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to resolve the cluster credentials in all commands the same way."""
    @click.option('--server', type=str, default=None)
    @click.option('--token', type=str, default=None)
    @click.option('--certificate-authority', 'ca_path', type=click.Path(exists=True, dir_okay=False))
    @click.option('--insecure', is_flag=True, default=None)
    @click.make_pass_decorator(CLIControls, ensure=True)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(__controls: CLIControls,
                server: Optional[str],
                token: Optional[str],
                ca_path: Optional[str],
                insecure: Optional[bool],
                *args: Any, **kwargs: Any) -> Any:
        info: credentials.ClusterInfo
        if __controls.info is not None:
            info = __controls.info
        elif server is not None:
            info = credentials.ConnectionInfo(server=server, token=token,
                                              ca_path=ca_path, insecure=insecure)
        else:
            try:
                info = piggybacking.login()
            except credentials.LoginError as e:
                raise click.ClickException(str(e))
        settings = __controls.settings if __controls.settings is not None else configuration.RelaySettings()
        return fn(*args, info=info, settings=settings, **kwargs)

    return wrapper


@click.version_option(prog_name='kuberelay', version=versions.version)
@click.group(name='kuberelay', context_settings=dict(
    auto_envvar_prefix='KUBERELAY',
))
def main() -> None:
    pass


@main.command()
@logging_options
@cluster_options
@click.option('-n', '--namespace', type=str, default=None)
@click.option('--tail', 'tail_lines', type=click.IntRange(min=0), default=None)
@click.argument('name')
def logs(
        info: credentials.ClusterInfo,
        settings: configuration.RelaySettings,
        namespace: Optional[str],
        tail_lines: Optional[int],
        name: str,
) -> None:
    """ Follow a pod's log and print it line by line. """
    namespace = namespace or info.default_namespace or 'default'
    try:
        running.run(
            relays.relay_logs,
            info=info,
            settings=settings,
            namespace=namespace,
            name=name,
            tail_lines=tail_lines,
        )
    except errors.RelayError as e:
        raise click.ClickException(str(e))


@main.command()
@logging_options
@cluster_options
@click.argument('kind')
def status(
        info: credentials.ClusterInfo,
        settings: configuration.RelaySettings,
        kind: str,
) -> None:
    """ Watch the workloads of a kind in all namespaces and print their updates. """
    try:
        running.run(
            relays.relay_resource_status,
            info=info,
            settings=settings,
            kind=kind,
        )
    except errors.RelayError as e:
        raise click.ClickException(str(e))
