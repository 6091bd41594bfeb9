import click

from datapipe.core.config import ENV_VARS, load_config
from datapipe.core.exceptions import DataPipeError
from datapipe.core.streaming import detect_database_type
from datapipe.datapipe_utils import variables


class AliasedGroup(click.Group):
    def get_command(self, ctx, cmd_name):
        try:
            cmd_name = ALIASES[cmd_name].name
        except KeyError:
            pass
        return super().get_command(ctx, cmd_name)


@click.group(cls=AliasedGroup)
def config():
    """Configuration management commands.

    Settings are read from the INI file (see 'datapipe config path'),
    then from environment variables, then from command line options.
    """
    pass


@config.command()
@click.option("-f", "--config-file", type=click.Path(dir_okay=False), default=None, help="INI file with a [datapipe] section")
@click.pass_context
def show(ctx, config_file):
    """Show the resolved copy configuration (passwords hidden)."""
    try:
        resolved = load_config(config_file)
    except DataPipeError as e:
        click.echo(f"Error: {e.message}", err=True)
        ctx.exit(1)
        return

    for key, value in resolved.to_dict().items():
        env_name = ENV_VARS.get(key, '')
        click.echo(f"{key} = {value if value != '' else '(not set)'}  [{env_name}]")

    if resolved.dst_db_uri:
        click.echo(f"destination type = {detect_database_type(resolved.dst_db_uri).value}")


@config.command()
def path():
    """Show where the default config file is read from."""
    click.echo(variables.CONFIG_FILE)


# Define command aliases
ALIASES = {
    "ls": show,
}
