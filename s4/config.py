import os
import re
import logging
import dataclasses
import typing

from .errors import ConfigError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
DEFAULT_CONFIG_DIR = "~/.s4"
ALIAS_FILE = "aliases"
DEFAULT_WATCH_INTERVAL = 2.0
WATCH_INTERVAL_ENV = "S4_SYNC_WATCH_INTERVAL_SEC"

_duration_re = re.compile(r"(\d+)([dhms])")
_port_re = re.compile(r"[0-9]{1,5}")
_duration_units = {"d": 86400, "h": 3600, "m": 60, "s": 1}
_rate_re = re.compile(r"^(\d+(?:\.\d+)?)\s*([bkmgt]?)(?:i?b)?(?:/s)?$",
    re.IGNORECASE)
_rate_units = {
    "": 1,
    "b": 1,
    "k": 1024,
    "m": 1024 ** 2,
    "g": 1024 ** 3,
    "t": 1024 ** 4,
}

@dataclasses.dataclass(frozen=True)
class Endpoint:
    scheme: str
    host: str
    base_path: str = ""

    @classmethod
    def parse(cls, raw):
        if raw.startswith("http://"):
            scheme, rest = "http", raw[len("http://"):]
        elif raw.startswith("https://"):
            scheme, rest = "https", raw[len("https://"):]
        else:
            raise ConfigError(
                f"endpoint must start with http:// or https://: {raw}")

        host, _, path = rest.partition("/")
        if not host:
            raise ConfigError(f"endpoint host is empty: {raw}")

        tail = host.rsplit("]", 1)[-1]
        if ":" in tail:
            port = tail.rsplit(":", 1)[1]
            if not _port_re.fullmatch(port) or not 0 < int(port) < 65536:
                raise ConfigError(f"endpoint port is invalid: {raw}")

        path = path.rstrip("/")
        base_path = f"/{path}" if path else ""
        return cls(scheme, host, base_path)

    @property
    def hostname(self):
        if self.host.startswith("["):
            return self.host[:self.host.index("]") + 1]
        return self.host.rsplit(":", 1)[0] if ":" in self.host else self.host

    @property
    def port(self):
        tail = self.host.rsplit("]", 1)[-1]
        if ":" in tail:
            return int(tail.rsplit(":", 1)[1])
        return 443 if self.scheme == "https" else 80

    def url(self, path):
        return f"{self.scheme}://{self.host}{path}"

@dataclasses.dataclass(frozen=True)
class Alias:
    name: str
    endpoint: str
    access_key: str
    secret_key: str
    region: str = DEFAULT_REGION
    path_style: bool = False

@dataclasses.dataclass(frozen=True)
class Credentials:
    endpoint: Endpoint
    access_key: str
    secret_key: str
    region: str = DEFAULT_REGION
    path_style: bool = True

    @classmethod
    def from_alias(cls, alias):
        if not alias.path_style:
            raise ConfigError(f"alias '{alias.name}' is not path-style; " +
                "only --path-style aliases are supported")
        return cls(Endpoint.parse(alias.endpoint), alias.access_key,
            alias.secret_key, alias.region or DEFAULT_REGION, True)

@dataclasses.dataclass(frozen=True)
class TransportConfig:
    verify_tls: bool = True
    resolve: typing.Tuple[typing.Tuple[str, str], ...] = ()
    upload_limit: typing.Optional[int] = None
    download_limit: typing.Optional[int] = None
    extra_headers: typing.Tuple[typing.Tuple[str, str], ...] = ()
    timeout: float = 60.0

    def resolve_address(self, hostname, port):
        target = f"{hostname}:{port}"
        for host_port, address in self.resolve:
            if host_port == target:
                return address
        return None

@dataclasses.dataclass(frozen=True)
class Locator:
    alias: str
    bucket: typing.Optional[str] = None
    key: typing.Optional[str] = None

    @classmethod
    def parse(cls, value):
        parts = value.split("/", 2)
        if not parts[0]:
            raise ValidationError(f"target alias is empty: '{value}'")
        bucket = parts[1] if len(parts) > 1 else None
        key = parts[2] if len(parts) > 2 else None
        return cls(parts[0], bucket, key)

    def require_bucket(self, command):
        if not self.bucket:
            raise ValidationError(f"{command} requires alias/bucket")
        return self.bucket

    def require_key(self, command):
        self.require_bucket(command)
        if not self.key:
            raise ValidationError(f"{command} requires alias/bucket/key")
        return self.key

    def __str__(self):
        return "/".join(x for x in (self.alias, self.bucket, self.key)
            if x is not None)

def resolve_config_dir(config_dir=None):
    return os.path.expanduser(config_dir or DEFAULT_CONFIG_DIR)

def alias_path(config_dir=None):
    return os.path.join(resolve_config_dir(config_dir), ALIAS_FILE)

def parse_aliases(text):
    aliases = {}
    for line_num, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split("\t")
        if len(parts) != 6:
            raise ConfigError(f"invalid alias store at line {line_num}")
        name, endpoint, access_key, secret_key, region, path_style = parts
        aliases[name] = Alias(name, endpoint, access_key, secret_key,
            region, path_style == "1")
    return aliases

def serialize_aliases(aliases):
    lines = []
    for name in sorted(aliases):
        alias = aliases[name]
        lines.append("\t".join([
            name,
            alias.endpoint,
            alias.access_key,
            alias.secret_key,
            alias.region,
            "1" if alias.path_style else "0",
        ]) + "\n")
    return "".join(lines)

def load_aliases(config_dir=None):
    path = alias_path(config_dir)
    logger.debug("config: %s", path)
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r") as f:
            return parse_aliases(f.read())
    except OSError as e:
        raise ConfigError(f"could not read alias store {path}: {e}") from e

def save_aliases(aliases, config_dir=None):
    path = alias_path(config_dir)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    try:
        with open(path, "w") as f:
            f.write(serialize_aliases(aliases))
        os.chmod(path, 0o600)
    except OSError as e:
        raise ConfigError(f"could not write alias store {path}: {e}") from e

def get_alias(aliases, name):
    alias = aliases.get(name)
    if alias is None:
        raise ConfigError(f"unknown alias: {name}")
    return alias

def parse_duration(value):
    """Parse `7d10h30m5s` style durations into seconds."""
    value = value.strip().lower()
    if not value:
        raise ValidationError("duration is empty")

    total = 0
    pos = 0
    for match in _duration_re.finditer(value):
        if match.start() != pos:
            break
        total += int(match.group(1)) * _duration_units[match.group(2)]
        pos = match.end()

    if pos != len(value):
        raise ValidationError(f"invalid duration '{value}': " +
            "expected units d, h, m or s (e.g. 7d10h30m5s)")
    return total

def parse_rate(value):
    match = _rate_re.match(value.strip())
    if not match:
        raise ValidationError(f"invalid rate limit: '{value}'")
    rate = int(float(match.group(1)) * _rate_units[match.group(2).lower()])
    if rate <= 0:
        raise ValidationError(f"rate limit must be positive: '{value}'")
    return rate

def parse_resolve(value):
    host_port, sep, address = value.partition("=")
    if not sep or not address or ":" not in host_port:
        raise ValidationError(
            f"--resolve expects HOST:PORT=ADDRESS, got '{value}'")
    return host_port, address

def parse_header(value):
    name, sep, header_value = value.partition(":")
    name = name.strip()
    if not sep or not name:
        raise ValidationError(
            f"--custom-header expects 'Name: value', got '{value}'")
    return name, header_value.strip()

def watch_interval():
    raw = os.environ.get(WATCH_INTERVAL_ENV)
    if not raw:
        return DEFAULT_WATCH_INTERVAL
    try:
        interval = float(raw)
    except ValueError:
        raise ConfigError(f"{WATCH_INTERVAL_ENV} must be a number: {raw}")
    if interval < 0:
        raise ConfigError(f"{WATCH_INTERVAL_ENV} must not be negative")
    return interval
