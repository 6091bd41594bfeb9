import click

from datapipe import __version__
from datapipe.datapipe_commands import config, copy


class AliasedGroup(click.Group):
    def get_command(self, ctx, cmd_name):
        try:
            cmd_name = ALIASES[cmd_name].name
        except KeyError:
            pass
        return super().get_command(ctx, cmd_name)


@click.group(cls=AliasedGroup)
@click.version_option(__version__, prog_name="datapipe")
def cli():
    """Batched copy of query results between relational databases"""
    pass


cli.add_command(copy.copy)
cli.add_command(config.config)

ALIASES = {
    "cpy": copy.copy,
    "cfg": config.config,
}

if __name__ == '__main__':
    cli()
