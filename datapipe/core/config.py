"""
datapipe Copy Configuration

Explicit configuration for one copy operation. Values come from keyword
arguments, an INI file section, or the environment variables the tool has
always read (MAX_ROW_BUF_SZ, SRC_DB_URI, ...); later sources override
earlier ones. The resulting object is passed by value into the copy engine.
"""

import configparser
import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from datapipe.core.exceptions import ConfigError, ValidationError
from datapipe.core.utils import (
    mask_url_password, normalize_boolean_param, normalize_db_url, validate_native_copy_mode
)
from datapipe.datapipe_utils import variables

DEFAULT_MAX_ROW_BUF_SZ = 100
DEFAULT_MAX_ROW_TX_COMMIT = 500
DEFAULT_PROGRESS_INTERVAL = 1000

# field name -> environment variable
ENV_VARS = {
    'max_row_buf_sz': 'MAX_ROW_BUF_SZ',
    'max_row_tx_commit': 'MAX_ROW_TX_COMMIT',
    'src_db_uri': 'SRC_DB_URI',
    'src_select_sql': 'SRC_DB_SELECT_SQL',
    'dst_db_uri': 'DST_DB_URI',
    'dst_schema': 'DST_DB_SCHEMA',
    'dst_table': 'DST_DB_TABLE',
    'truncate': 'DST_DB_TRUNCATE',
    'native_copy': 'DST_DB_NATIVE_COPY',
    'progress_interval': 'PROGRESS_INTERVAL',
    'show_stack_trace': 'SHOW_STACK_TRACE',
}

INT_FIELDS = ('max_row_buf_sz', 'max_row_tx_commit', 'progress_interval')
BOOL_FIELDS = ('truncate', 'show_stack_trace')
# set by any value other than an explicit false
PRESENCE_FLAGS = ('show_stack_trace',)
FALSE_VALUES = ('false', '0', 'no', 'off')
REQUIRED_FIELDS = ('src_db_uri', 'src_select_sql', 'dst_db_uri', 'dst_table')


@dataclass(frozen=True)
class CopyConfig:
    """Settings for one source-query to destination-table copy."""
    max_row_buf_sz: int = DEFAULT_MAX_ROW_BUF_SZ        # rows buffered per INSERT
    max_row_tx_commit: int = DEFAULT_MAX_ROW_TX_COMMIT  # rows per destination transaction
    src_db_uri: str = ""
    src_select_sql: str = ""
    dst_db_uri: str = ""
    dst_schema: str = ""
    dst_table: str = ""
    truncate: bool = True
    native_copy: str = "auto"
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL
    show_stack_trace: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, base: Optional['CopyConfig'] = None) -> 'CopyConfig':
        """Build a config from environment variables, on top of base."""
        environ = os.environ if environ is None else environ
        base = base or cls()

        values = {}
        for field_name, env_name in ENV_VARS.items():
            raw = environ.get(env_name)
            if raw is None or raw == "":
                continue
            values[field_name] = raw

        return base._merge(values, source="environment")

    @classmethod
    def from_ini(cls, path: str, section: str = variables.CONFIG_SECTION,
                 base: Optional['CopyConfig'] = None) -> 'CopyConfig':
        """Build a config from one section of an INI file, on top of base."""
        base = base or cls()
        parser = configparser.ConfigParser(interpolation=None)
        if not parser.read(path):
            raise ConfigError(f"Config file not found: {path}")
        if not parser.has_section(section):
            raise ConfigError(f"Section [{section}] not found in {path}")

        known = {f.name for f in dataclasses.fields(cls)}
        values = {}
        for key, raw in parser.items(section):
            if key not in known:
                raise ConfigError(f"Unknown setting '{key}' in {path}")
            values[key] = raw

        return base._merge(values, source=path)

    def _merge(self, values: Dict[str, Any], source: str) -> 'CopyConfig':
        parsed = {}
        for key, raw in values.items():
            if key in INT_FIELDS:
                try:
                    parsed[key] = int(raw)
                except (TypeError, ValueError):
                    # unparsable sizes keep their current value
                    continue
            elif key in PRESENCE_FLAGS and isinstance(raw, str):
                parsed[key] = raw.strip().lower() not in FALSE_VALUES
            elif key in BOOL_FIELDS:
                try:
                    parsed[key] = normalize_boolean_param(raw, key)
                except ValidationError as e:
                    raise ConfigError(e.message, f"from {source}")
            else:
                parsed[key] = raw
        return dataclasses.replace(self, **parsed)

    def validate(self, need_src_uri: bool = True, need_dst_uri: bool = True) -> 'CopyConfig':
        """Check required settings and sizes; returns the normalized config.

        The URIs are not required when the caller supplies open connections.
        """
        required = [
            name for name in REQUIRED_FIELDS
            if not (name == 'src_db_uri' and not need_src_uri)
            and not (name == 'dst_db_uri' and not need_dst_uri)
        ]
        missing = [ENV_VARS[name] for name in required if not getattr(self, name)]
        if missing:
            raise ConfigError(f"Missing required settings: {', '.join(missing)}")

        for name in INT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")

        try:
            mode = validate_native_copy_mode(self.native_copy)
        except ValidationError as e:
            raise ConfigError(e.message)

        return dataclasses.replace(
            self,
            src_db_uri=normalize_db_url(self.src_db_uri),
            dst_db_uri=normalize_db_url(self.dst_db_uri),
            native_copy=mode.value,
        )

    def to_dict(self, mask_passwords: bool = True) -> Dict[str, Any]:
        result = dataclasses.asdict(self)
        if mask_passwords:
            result['src_db_uri'] = mask_url_password(self.src_db_uri)
            result['dst_db_uri'] = mask_url_password(self.dst_db_uri)
        return result


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None,
                **overrides: Any) -> CopyConfig:
    """
    Resolve the copy configuration.

    Precedence, lowest first: defaults, INI file, environment, overrides.
    The default INI file is only read when it exists.

    Args:
        path: INI file path; defaults to the file in DATAPIPE_HOME
        environ: Environment mapping; defaults to os.environ
        **overrides: Field values that win over every other source (None is ignored)

    Returns:
        CopyConfig (not yet validated)
    """
    config = CopyConfig()

    if path:
        config = CopyConfig.from_ini(path, base=config)
    elif os.path.exists(variables.CONFIG_FILE):
        config = CopyConfig.from_ini(variables.CONFIG_FILE, base=config)

    config = CopyConfig.from_env(environ, base=config)

    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        config = dataclasses.replace(config, **overrides)
    return config
