import click

from datapipe.core import copy as core_copy
from datapipe.core.config import load_config
from datapipe.core.exceptions import DataPipeError
from datapipe.core.logger import setup_logging
from datapipe.core.utils import format_error


class AliasedGroup(click.Group):
    def get_command(self, ctx, cmd_name):
        try:
            cmd_name = ALIASES[cmd_name].name
        except KeyError:
            pass
        return super().get_command(ctx, cmd_name)


@click.group(cls=AliasedGroup)
def copy():
    """Data copy commands for database operations"""
    pass


@copy.command()
@click.option("-s", "--source", help="Source database URL [env: SRC_DB_URI]")
@click.option("-q", "--query", help="SQL query to extract data [env: SRC_DB_SELECT_SQL]")
@click.option("-t", "--target", help="Target database URL [env: DST_DB_URI]")
@click.option("-S", "--schema", help="Target schema [env: DST_DB_SCHEMA]")
@click.option("-T", "--table", help="Target table name [env: DST_DB_TABLE]")
@click.option("-b", "--batch-size", type=int, default=None, help="Rows per multi-row INSERT [env: MAX_ROW_BUF_SZ, default 100]")
@click.option("-c", "--commit-size", type=int, default=None, help="Rows per transaction [env: MAX_ROW_TX_COMMIT, default 500]")
@click.option("-n", "--native-copy", type=click.Choice(['auto', 'always', 'never'], case_sensitive=False), default=None,
              help="Use PostgreSQL COPY for the target [env: DST_DB_NATIVE_COPY, default auto]")
@click.option("--no-truncate", is_flag=True, default=False, help="Keep existing rows in the target table")
@click.option("-f", "--config-file", type=click.Path(dir_okay=False), default=None, help="INI file with a [datapipe] section")
@click.option("--show-stack-trace", is_flag=True, default=False, help="Print stack traces on error [env: SHOW_STACK_TRACE]")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Log every transaction and flush")
@click.pass_context
def db2db(ctx, source, query, target, schema, table, batch_size, commit_size, native_copy,
          no_truncate, config_file, show_stack_trace, verbose):
    """Copy the result of a query into a table of another database.

    Examples:

        Copy a table between two PostgreSQL databases:
          datapipe copy db2db -s postgresql://u:p@src/db -q "SELECT * FROM orders" -t postgresql+psycopg://u:p@dst/db -S public -T orders

        Take everything from the environment (SRC_DB_URI, DST_DB_TABLE, ...):
          datapipe copy d2d
    """
    show_trace = show_stack_trace
    try:
        config = load_config(
            config_file,
            src_db_uri=source,
            src_select_sql=query,
            dst_db_uri=target,
            dst_schema=schema,
            dst_table=table,
            max_row_buf_sz=batch_size,
            max_row_tx_commit=commit_size,
            native_copy=native_copy.lower() if native_copy else None,
            truncate=False if no_truncate else None,
            show_stack_trace=True if show_stack_trace else None,
        )
        show_trace = config.show_stack_trace
        setup_logging(verbose)

        total_rows = core_copy.run(config)
        click.echo(f"Copied {total_rows} rows to table {config.dst_table} successfully")
    except DataPipeError as e:
        click.echo(f"Error: {format_error(e, show_trace)}", err=True)
        ctx.exit(1)
    except Exception as e:
        click.echo(f"Error: Unexpected {type(e).__name__}: {format_error(e, show_trace)}", err=True)
        ctx.exit(1)


# Define command aliases
ALIASES = {
    "d2d": db2db,
}
