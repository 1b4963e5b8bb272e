"""Main CLI entry point with command groups"""

import click

from assetpipe.__version__ import __version__
from assetpipe.cli.refresh import refresh_command
from assetpipe.cli.serve import serve_command


class DefaultCommandGroup(click.Group):
    """Custom Click Group that runs `refresh` when no command is given"""

    def parse_args(self, ctx, args):
        # During shell completion, don't redirect to default command
        if ctx.resilient_parsing:
            return super().parse_args(ctx, args)

        if args and args[0] in ('--help', '-h', '--version'):
            return super().parse_args(ctx, args)

        if args and args[0] in self.commands:
            return super().parse_args(ctx, args)

        # Otherwise, treat as refresh command (default)
        return super().parse_args(ctx, ['refresh'] + args)


@click.group(cls=DefaultCommandGroup, invoke_without_command=True)
@click.version_option(version=__version__, prog_name='assetpipe')
@click.pass_context
def cli(ctx):
    """
    assetpipe - compile CoffeeScript and LESS assets into the public tree.

    \b
    Commands:
      assetpipe [options]          Compile all assets once (default command)
      assetpipe refresh [options]  Same as above
      assetpipe serve              Start the web app (compiles on startup)

    \b
    Examples:
      assetpipe
      assetpipe refresh --base-path /srv/app --max-workers 8
      assetpipe refresh --fail-on-error --json
      assetpipe serve --port 9000
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


cli.add_command(refresh_command, name='refresh')
cli.add_command(serve_command, name='serve')


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == '__main__':
    main()
