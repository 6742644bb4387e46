import click
import sys
from .config import ConfigManager
from .daemon import QueueDaemon
from .exceptions import CmdQueueError
from .logging_utils import setup_logging, verbosity_level
from .version import __version__


class QueueUsageError(click.UsageError):
    exit_code = 1


class QueueCommand(click.Command):
    """Exit 1 on usage errors and -1 when called without arguments."""

    def parse_args(self, ctx, args):
        if not args:
            click.echo(ctx.get_help(), err=True)
            ctx.exit(-1)
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            e.exit_code = 1
            raise


@click.command(cls=QueueCommand, context_settings={"help_option_names": ["-h", "--help"]})
@click.option('-c', '--command', 'command', help='Command to be executed or to be put in queue.')
@click.option('-p', '--consumers', type=click.IntRange(min=1),
              help='Maximum number of simultaneous commands (default 3).')
@click.option('-v', '--verbose', is_flag=True, help='Displays information and debug messages.')
@click.option('-n', '--persistent', is_flag=True,
              help='Queue is alive and ready after finishing current commands.')
@click.version_option(version=__version__)
def cli(command, consumers, verbose, persistent):
    """Run a shell command, or queue it behind the commands already running.

    The first call becomes the queue owner and runs up to CONSUMERS commands
    at a time. Calls made while the owner is alive, from any terminal, send
    their command to the owner's queue and return immediately.

    Examples:
        cmdqueue -c 'make -C project1'
        cmdqueue -c './train.sh' -p 2
        cmdqueue -n -v
    """
    if not command and not persistent:
        raise QueueUsageError("Missing option '-c' / '--command'.")

    try:
        config_manager = ConfigManager()
        if consumers is not None:
            config_manager.set('consumers', str(consumers))
        config = config_manager.get_config()

        setup_logging(config.log_dir, level=verbosity_level(verbose))

        daemon = QueueDaemon(config)
        exit_code = daemon.run(command, persistent=persistent)
        if daemon.forwarded_to is not None:
            click.echo(f"Sent command \"{command}\" to running queue at [{daemon.forwarded_to}]", err=True)

    except CmdQueueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    sys.exit(exit_code)


def main():
    cli(prog_name='cmdqueue')


if __name__ == '__main__':
    main()
