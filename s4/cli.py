import os
import sys
import json
import functools
import logging
import datetime
import dataclasses
import typing

from . import __version__, ops, sql
from .config import (Alias, Credentials, Endpoint, Locator, TransportConfig,
    DEFAULT_REGION, get_alias, load_aliases, parse_duration, parse_header,
    parse_rate, parse_resolve, save_aliases, watch_interval)
from .errors import S4Error, ValidationError
from .listing import list_buckets, list_object_keys, list_objects
from .sync import SyncPolicy, run_sync
from .transfer import copy_or_move
from .transport import Client
from .upload import upload_file, upload_stream

logger = logging.getLogger(__name__)

def print_help():
    program_name = os.path.basename(sys.argv[0]) or "s4"
    print(f"""{program_name} - client for S3-compatible object storage

Usage: {program_name} [FLAGS] COMMAND [ARGS]

COMMANDS
    alias set NAME URL ACCESS SECRET [--region R] [--path-style]
    alias ls | alias rm NAME
        Manage endpoint aliases in the local alias store.

    ls [-r] ALIAS[/BUCKET[/PREFIX]]    list buckets or objects
    mb [--with-lock] ALIAS/BUCKET      make bucket
    rb ALIAS/BUCKET                    remove bucket
    put FILE ALIAS/BUCKET/KEY          upload object (multipart when large)
    get ALIAS/BUCKET/KEY FILE          download object
    rm ALIAS/BUCKET/KEY                remove object
    stat ALIAS/BUCKET/KEY              object metadata (raw headers)
    cat ALIAS/BUCKET/KEY               print object content
    head ALIAS/BUCKET/KEY [N]          print the first N lines (default 10)
    pipe ALIAS/BUCKET/KEY              upload standard input
    find ALIAS/BUCKET[/PREFIX] [PATTERN]
    tree ALIAS/BUCKET[/PREFIX]
    cp SOURCE TARGET                   copy between local paths and S3
    mv SOURCE TARGET                   move between local paths and S3

    sync|mirror [--dry-run] [--remove] [--exclude GLOB]...
                [--newer-than DURATION] [--older-than DURATION] [--watch]
                SRC_ALIAS/BUCKET[/PREFIX] DST_ALIAS/BUCKET[/PREFIX]
        Copy every object under the source prefix to the destination.
        --remove deletes destination objects missing from the source,
        durations use d/h/m/s units (e.g. 7d10h30m5s) and --watch repeats
        every S4_SYNC_WATCH_INTERVAL_SEC seconds (default 2).

    cors set|get|remove ALIAS/BUCKET [FILE]
    encrypt set|info|clear ALIAS/BUCKET [FILE]
    event add|ls|rm ALIAS/BUCKET [FILE]
    legalhold set|clear|info ALIAS/BUCKET/KEY
    retention set|clear|info ALIAS/BUCKET/KEY [--mode M] [--retain-until T]
    sql --query EXPR [--csv-input OPTS | --json-input OPTS]
        [--compression NONE|GZIP|BZIP2] [--csv-output | --json-output]
        [--recursive] ALIAS/BUCKET/KEY
    ping ALIAS | ready ALIAS | version

FLAGS
    -C, --config-dir DIR        alias store directory (default: ~/.s4)
    --json                      print machine-readable output
    --debug                     log requests to standard error
    --insecure                  do not verify TLS certificates
    --resolve HOST:PORT=ADDR    connect to ADDR for HOST:PORT
    --limit-upload RATE         upload rate limit (e.g. 10M)
    --limit-download RATE       download rate limit (e.g. 1G)
    --custom-header "N: V"      add a header to every request
    -h, --help                  display this help message and exit
    -v, --version               print version

EXIT STATUS
    0   Success
    1   Error (invalid arguments, unknown alias, request failure)""")

@dataclasses.dataclass
class Options:
    config_dir: typing.Optional[str] = None
    json: bool = False
    debug: bool = False
    transport: TransportConfig = dataclasses.field(
        default_factory=TransportConfig)

def parse_globals(args):
    config_dir = None
    json_output = False
    debug = False
    verify_tls = True
    resolve = []
    headers = []
    upload_limit = None
    download_limit = None

    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ("-C", "--config-dir", "--resolve", "--limit-upload",
                "--limit-download", "--custom-header"):
            if i + 1 >= len(args):
                raise ValidationError(f"{arg} expects a value")
            value = args[i + 1]
            if arg in ("-C", "--config-dir"):
                config_dir = value
            elif arg == "--resolve":
                resolve.append(parse_resolve(value))
            elif arg == "--limit-upload":
                upload_limit = parse_rate(value)
            elif arg == "--limit-download":
                download_limit = parse_rate(value)
            else:
                headers.append(parse_header(value))
            i += 2
        elif arg == "--json":
            json_output = True
            i += 1
        elif arg == "--debug":
            debug = True
            i += 1
        elif arg == "--insecure":
            verify_tls = False
            i += 1
        elif arg in ("--help", "-h", "--version", "-v"):
            break
        elif arg.startswith("-"):
            raise ValidationError(f"unknown global flag: {arg}")
        else:
            break

    transport = TransportConfig(
        verify_tls=verify_tls,
        resolve=tuple(resolve),
        upload_limit=upload_limit,
        download_limit=download_limit,
        extra_headers=tuple(headers),
    )
    return Options(config_dir, json_output, debug, transport), args[i:]

def parse_flags(args, value_flags=(), bool_flags=(), multi_flags=()):
    values = {}
    positional = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in bool_flags:
            values[arg] = True
            i += 1
        elif arg in value_flags or arg in multi_flags:
            if i + 1 >= len(args):
                raise ValidationError(f"{arg} expects a value")
            if arg in multi_flags:
                values.setdefault(arg, []).append(args[i + 1])
            else:
                values[arg] = args[i + 1]
            i += 2
        elif arg.startswith("--"):
            raise ValidationError(f"unknown flag: {arg}")
        else:
            positional.append(arg)
            i += 1
    return values, positional

def configure_logging(debug):
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if debug else logging.WARNING,
        format="[%(levelname)s] %(message)s",
    )

def emit(opts, text, data):
    if opts.json:
        print(json.dumps(data))
    else:
        print(text)

def format_size(size):
    if size < 1024:
        return f"{size}B"
    elif size < 1024 * 1024:
        return f"{size / 1024:.1f}K"
    elif size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f}M"
    elif size < 1024 * 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024 * 1024):.1f}G"
    return f"{size / (1024 * 1024 * 1024 * 1024):.1f}T"

def format_modified(modified):
    if not modified:
        return "-"
    try:
        dt = datetime.datetime.fromisoformat(modified.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return modified[:19]

def read_document(path):
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise ValidationError(f"cannot read {path}: {e}") from e

def expect_args(args, count, usage):
    if len(args) < count:
        raise ValidationError(f"usage: s4 {usage}")

def make_client(aliases, locator, opts):
    alias = get_alias(aliases, locator.alias)
    return Client(Credentials.from_alias(alias), opts.transport)

def cmd_alias(args, aliases, opts):
    usage = "alias <set|ls|rm> ..."
    expect_args(args, 1, usage)
    action = args[0]

    if action == "set":
        values, positional = parse_flags(args[1:],
            value_flags=("--region",), bool_flags=("--path-style",))
        expect_args(positional, 4, "alias set <name> <endpoint> " +
            "<access> <secret> [--region r] [--path-style]")
        name, endpoint, access_key, secret_key = positional[:4]
        Endpoint.parse(endpoint)
        aliases[name] = Alias(name, endpoint, access_key, secret_key,
            values.get("--region", DEFAULT_REGION),
            values.get("--path-style", False))
        save_aliases(aliases, opts.config_dir)
        emit(opts, f"Alias '{name}' saved",
            {"status": "ok", "alias": name})

    elif action == "ls":
        if opts.json:
            print(json.dumps([{
                "name": alias.name,
                "endpoint": alias.endpoint,
                "region": alias.region,
                "path_style": alias.path_style,
            } for alias in (aliases[n] for n in sorted(aliases))]))
        else:
            for name in sorted(aliases):
                alias = aliases[name]
                print(f"{name}\t{alias.endpoint}\t{alias.region}\t" +
                    f"path_style={str(alias.path_style).lower()}")

    elif action == "rm":
        expect_args(args, 2, "alias rm <name>")
        name = args[1]
        existed = aliases.pop(name, None) is not None
        save_aliases(aliases, opts.config_dir)
        text = f"Alias '{name}' removed" if existed else \
            f"Alias '{name}' not found"
        emit(opts, text, {"status": "ok", "alias": name, "removed": existed})

    else:
        raise ValidationError(f"usage: s4 {usage}")

def cmd_ls(args, aliases, opts):
    values, positional = parse_flags(args,
        bool_flags=("-r", "--recursive"))
    expect_args(positional, 1, "ls [-r] <alias[/bucket[/prefix]]>")
    target = Locator.parse(positional[0])
    client = make_client(aliases, target, opts)

    if not target.bucket:
        buckets = list_buckets(client)
        if opts.json:
            print(json.dumps({"buckets": buckets}))
        else:
            for name in buckets:
                print(f"{name}/")
        return

    recursive = values.get("-r") or values.get("--recursive")
    items = list_objects(client, target.bucket, target.key or "",
        delimiter=None if recursive else "/")
    items.sort(key=lambda x: (not x.is_dir, x.key))

    if opts.json:
        print(json.dumps([item._asdict() for item in items]))
        return
    if not items:
        print("No objects found")
        return
    for item in items:
        if item.is_dir:
            print(f"{'-':19} {'-':>8} {item.key.rstrip('/')}/")
        else:
            print(f"{format_modified(item.modified):19} " +
                f"{format_size(item.size):>8} {item.key}")

def cmd_bucket(args, aliases, opts, command):
    values, positional = parse_flags(args, bool_flags=("--with-lock",))
    expect_args(positional, 1, f"{command} <alias/bucket>")
    target = Locator.parse(positional[0])
    bucket = target.require_bucket(command)
    client = make_client(aliases, target, opts)

    if command == "mb":
        ops.make_bucket(client, bucket, values.get("--with-lock", False))
        emit(opts, f"created: {bucket}", {"created": bucket})
    else:
        ops.remove_bucket(client, bucket)
        emit(opts, f"deleted: {bucket}", {"deleted": bucket})

def cmd_put(args, aliases, opts):
    expect_args(args, 2, "put <source_file> <alias/bucket/key>")
    source = args[0]
    target = Locator.parse(args[1])
    key = target.require_key("put")
    if not os.path.isfile(source):
        raise ValidationError(f"source file not found: {source}")

    upload_file(make_client(aliases, target, opts), source, target.bucket,
        key)
    emit(opts, f"Uploaded '{source}' to '{target.bucket}/{key}'",
        {"uploaded": {"bucket": target.bucket, "key": key}})

def cmd_get(args, aliases, opts):
    expect_args(args, 2, "get <alias/bucket/key> <destination_file>")
    target = Locator.parse(args[0])
    key = target.require_key("get")
    destination = args[1]

    ops.get_object(make_client(aliases, target, opts), target.bucket, key,
        sink=destination)
    emit(opts, f"Downloaded '{target.bucket}/{key}' to '{destination}'",
        {"downloaded": {"bucket": target.bucket, "key": key,
            "to": destination}})

def cmd_rm(args, aliases, opts):
    expect_args(args, 1, "rm <alias/bucket/key>")
    target = Locator.parse(args[0])
    key = target.require_key("rm")

    ops.remove_object(make_client(aliases, target, opts), target.bucket, key)
    emit(opts, f"Deleted '{target.bucket}/{key}'",
        {"deleted": {"bucket": target.bucket, "key": key}})

def cmd_stat(args, aliases, opts):
    expect_args(args, 1, "stat <alias/bucket/key>")
    target = Locator.parse(args[0])
    key = target.require_key("stat")

    response = ops.stat_object(make_client(aliases, target, opts),
        target.bucket, key)
    emit(opts, response.raw_headers(), {
        "bucket": target.bucket,
        "key": key,
        "status": response.status,
        "headers": dict(response.headers),
    })

def cmd_cat(args, aliases, opts):
    expect_args(args, 1, "cat <alias/bucket/key>")
    target = Locator.parse(args[0])
    key = target.require_key("cat")

    response = ops.get_object(make_client(aliases, target, opts),
        target.bucket, key)
    sys.stdout.buffer.write(response.body)
    sys.stdout.flush()

def cmd_head(args, aliases, opts):
    expect_args(args, 1, "head <alias/bucket/key> [lines]")
    target = Locator.parse(args[0])
    key = target.require_key("head")
    try:
        count = int(args[1]) if len(args) > 1 else 10
    except ValueError:
        raise ValidationError(f"invalid line count: {args[1]}")

    response = ops.get_object(make_client(aliases, target, opts),
        target.bucket, key)
    sys.stdout.buffer.write(ops.head_lines(response.body, count))
    sys.stdout.flush()

def cmd_pipe(args, aliases, opts):
    expect_args(args, 1, "pipe <alias/bucket/key>")
    target = Locator.parse(args[0])
    key = target.require_key("pipe")

    upload_stream(make_client(aliases, target, opts), sys.stdin.buffer,
        target.bucket, key)
    emit(opts, f"Uploaded stdin to '{target.bucket}/{key}'",
        {"uploaded": {"bucket": target.bucket, "key": key}})

def cmd_find(args, aliases, opts):
    expect_args(args, 1, "find <alias/bucket[/prefix]> [pattern]")
    target = Locator.parse(args[0])
    bucket = target.require_bucket("find")
    pattern = args[1] if len(args) > 1 else ""

    keys = ops.find_keys(make_client(aliases, target, opts), bucket,
        target.key or "", pattern)
    if opts.json:
        print(json.dumps({"bucket": bucket, "keys": keys}))
    else:
        for key in keys:
            print(f"{target.alias}/{bucket}/{key}")

def cmd_tree(args, aliases, opts):
    expect_args(args, 1, "tree <alias/bucket[/prefix]>")
    target = Locator.parse(args[0])
    bucket = target.require_bucket("tree")
    prefix = target.key or ""

    keys = sorted(list_object_keys(make_client(aliases, target, opts),
        bucket, prefix))
    if opts.json:
        print(json.dumps({"bucket": bucket, "keys": keys}))
    else:
        print("\n".join(ops.render_tree(keys, prefix)))

def cmd_cp_mv(args, aliases, opts, command):
    expect_args(args, 2, f"{command} <source> <target>")
    source, target = args[0], args[1]
    copy_or_move(aliases, opts.transport, source, target,
        move=command == "mv")
    emit(opts, f"{command}: {source} -> {target}", {
        "status": "ok",
        "command": command,
        "source": source,
        "target": target,
    })

def _print_sync_report(opts, source, destination, report):
    if opts.json:
        print(json.dumps({
            "status": "ok",
            "dry_run": report.dry_run,
            "copied": report.copied,
            "removed": report.removed,
            "planned": [{"source": s, "target": d}
                for s, d in report.planned_copies],
            "planned_removals": report.planned_removals,
            "src": f"{source.alias}/{source.bucket}",
            "dst": f"{destination.alias}/{destination.bucket}",
        }))
        return

    if report.dry_run:
        print("dry-run: true")
        for src_key, dest_key in report.planned_copies:
            print(f"copy: {source.bucket}/{src_key} -> " +
                f"{destination.bucket}/{dest_key}")
        for key in report.planned_removals:
            print(f"remove: {destination.bucket}/{key}")
        return

    print(f"Synced {report.copied} object(s) from " +
        f"{source.alias}/{source.bucket} to " +
        f"{destination.alias}/{destination.bucket}")
    if report.removed:
        print(f"Removed {report.removed} object(s) from " +
            f"{destination.alias}/{destination.bucket}")

def cmd_sync(args, aliases, opts, command):
    values, positional = parse_flags(args,
        value_flags=("--newer-than", "--older-than"),
        bool_flags=("--dry-run", "--remove", "--watch"),
        multi_flags=("--exclude",))
    expect_args(positional, 2, f"{command} [flags] " +
        "<src_alias/bucket[/prefix]> <dst_alias/bucket[/prefix]>")

    source = Locator.parse(positional[0])
    destination = Locator.parse(positional[1])
    source.require_bucket(command)
    destination.require_bucket(command)
    src_client = make_client(aliases, source, opts)
    dst_client = make_client(aliases, destination, opts)

    policy = SyncPolicy(
        dry_run=values.get("--dry-run", False),
        remove=values.get("--remove", False),
        excludes=values.get("--exclude", []),
        watch=values.get("--watch", False),
        interval=watch_interval(),
    )
    if "--newer-than" in values:
        policy.newer_than = parse_duration(values["--newer-than"])
    if "--older-than" in values:
        policy.older_than = parse_duration(values["--older-than"])

    def on_report(report):
        _print_sync_report(opts, source, destination, report)
        sys.stdout.flush()

    run_sync(src_client, source, dst_client, destination, policy,
        on_report=on_report)


bucket_documents = {
    "cors": ("set", "get", "remove",
        ops.set_cors, ops.get_cors, ops.remove_cors),
    "encrypt": ("set", "info", "clear",
        ops.set_encryption, ops.get_encryption, ops.clear_encryption),
    "event": ("add", "ls", "rm",
        ops.set_notification, ops.get_notification, ops.clear_notification),
}

def cmd_bucket_document(args, aliases, opts, command):
    set_name, get_name, clear_name, setter, getter, clearer = \
        bucket_documents[command]
    usage = f"{command} <{set_name}|{get_name}|{clear_name}> " + \
        "<alias/bucket> [file]"
    values, positional = parse_flags(args, bool_flags=("--force",))
    expect_args(positional, 2, usage)
    action = positional[0]
    target = Locator.parse(positional[1])
    bucket = target.require_bucket(command)

    if action == set_name:
        expect_args(positional, 3, usage)
        document = read_document(positional[2])
        setter(make_client(aliases, target, opts), bucket, document)
        emit(opts, f"{command} {action}: {bucket}",
            {"status": "ok", "command": command, "action": action,
                "bucket": bucket})
    elif action == get_name:
        document = getter(make_client(aliases, target, opts), bucket)
        emit(opts, document, {"bucket": bucket, "xml": document})
    elif action == clear_name:
        if command == "event" and not values.get("--force"):
            raise ValidationError("event rm removes every notification " +
                "rule; pass --force to confirm")
        clearer(make_client(aliases, target, opts), bucket)
        emit(opts, f"{command} {action}: {bucket}",
            {"status": "ok", "command": command, "action": action,
                "bucket": bucket})
    else:
        raise ValidationError(f"usage: s4 {usage}")

def cmd_legalhold(args, aliases, opts):
    usage = "legalhold <set|clear|info> <alias/bucket/key>"
    expect_args(args, 2, usage)
    action = args[0]
    target = Locator.parse(args[1])
    key = target.require_key("legalhold")
    client = make_client(aliases, target, opts)

    if action in ("set", "clear"):
        ops.set_legal_hold(client, target.bucket, key, action == "set")
        status = "ON" if action == "set" else "OFF"
        emit(opts, f"legal hold {status}: {target.bucket}/{key}",
            {"bucket": target.bucket, "key": key, "legal_hold": status})
    elif action == "info":
        document = ops.get_legal_hold(client, target.bucket, key)
        emit(opts, document, {"bucket": target.bucket, "key": key,
            "xml": document})
    else:
        raise ValidationError(f"usage: s4 {usage}")

def cmd_retention(args, aliases, opts):
    usage = "retention <set|clear|info> <alias/bucket/key> " + \
        "[--mode GOVERNANCE|COMPLIANCE] [--retain-until DATE]"
    values, positional = parse_flags(args,
        value_flags=("--mode", "--retain-until"))
    expect_args(positional, 2, usage)
    action = positional[0]
    target = Locator.parse(positional[1])
    key = target.require_key("retention")
    client = make_client(aliases, target, opts)

    if action == "set":
        ops.set_retention(client, target.bucket, key,
            values.get("--mode", "GOVERNANCE"), values.get("--retain-until"))
        emit(opts, f"retention set: {target.bucket}/{key}",
            {"status": "ok", "bucket": target.bucket, "key": key})
    elif action == "clear":
        ops.clear_retention(client, target.bucket, key)
        emit(opts, f"retention cleared: {target.bucket}/{key}",
            {"status": "ok", "bucket": target.bucket, "key": key})
    elif action == "info":
        document = ops.get_retention(client, target.bucket, key)
        emit(opts, document, {"bucket": target.bucket, "key": key,
            "xml": document})
    else:
        raise ValidationError(f"usage: s4 {usage}")

def cmd_sql(args, aliases, opts):
    values, positional = parse_flags(args,
        value_flags=("--query", "--csv-input", "--json-input",
            "--compression"),
        bool_flags=("--csv-output", "--json-output", "--recursive"))
    expect_args(positional, 1, "sql --query <expr> [--csv-input opts] " +
        "[--json-input opts] [--recursive] <alias/bucket/key>")
    if not values.get("--query"):
        raise ValidationError("sql requires --query")
    if "--csv-input" in values and "--json-input" in values:
        raise ValidationError("--csv-input and --json-input are exclusive")

    input_format = "JSON" if "--json-input" in values else "CSV"
    input_options = sql.parse_options(values.get("--json-input",
        values.get("--csv-input", "")))
    output_format = "JSON" if values.get("--json-output") else "CSV"
    request_body = sql.build_select_request(values["--query"],
        input_format, input_options, values.get("--compression", "NONE"),
        output_format)

    target = Locator.parse(positional[0])
    bucket = target.require_bucket("sql")
    client = make_client(aliases, target, opts)
    if values.get("--recursive"):
        keys = list_object_keys(client, bucket, target.key or "")
    else:
        keys = [target.require_key("sql")]

    for key in keys:
        sys.stdout.buffer.write(sql.select_object(client, bucket, key,
            request_body))
    sys.stdout.flush()

def cmd_ping(args, aliases, opts):
    expect_args(args, 1, "ping <alias>")
    target = Locator.parse(args[0])
    latency = ops.ping(make_client(aliases, target, opts))
    emit(opts, f"{target.alias}: alive latency_ms={latency:.1f}",
        {"alias": target.alias, "alive": True,
            "latency_ms": round(latency, 1)})

def cmd_ready(args, aliases, opts):
    expect_args(args, 1, "ready <alias>")
    target = Locator.parse(args[0])
    ops.ready(make_client(aliases, target, opts))
    emit(opts, f"{target.alias}: ready",
        {"alias": target.alias, "ready": True})

commands = {
    "ls": cmd_ls,
    "mb": functools.partial(cmd_bucket, command="mb"),
    "rb": functools.partial(cmd_bucket, command="rb"),
    "put": cmd_put,
    "get": cmd_get,
    "rm": cmd_rm,
    "stat": cmd_stat,
    "cat": cmd_cat,
    "head": cmd_head,
    "pipe": cmd_pipe,
    "find": cmd_find,
    "tree": cmd_tree,
    "cp": functools.partial(cmd_cp_mv, command="cp"),
    "mv": functools.partial(cmd_cp_mv, command="mv"),
    "sync": functools.partial(cmd_sync, command="sync"),
    "mirror": functools.partial(cmd_sync, command="mirror"),
    "cors": functools.partial(cmd_bucket_document, command="cors"),
    "encrypt": functools.partial(cmd_bucket_document, command="encrypt"),
    "event": functools.partial(cmd_bucket_document, command="event"),
    "legalhold": cmd_legalhold,
    "retention": cmd_retention,
    "sql": cmd_sql,
    "ping": cmd_ping,
    "ready": cmd_ready,
    "alias": cmd_alias,
}

def run(argv):
    opts, rest = parse_globals(argv)
    configure_logging(opts.debug)

    if not rest or rest[0] in ("--help", "-h"):
        print_help()
        return 0
    if rest[0] in ("--version", "-v", "version"):
        print(f"s4 {__version__}")
        return 0
    if opts.transport.verify_tls is False:
        logger.warning("TLS certificate verification is disabled")

    command = commands.get(rest[0])
    if command is None:
        raise ValidationError(f"unknown command: {rest[0]}")

    aliases = load_aliases(opts.config_dir)
    command(rest[1:], aliases, opts)
    return 0

def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    try:
        return run(argv)
    except KeyboardInterrupt:
        print("\nStopping", file=sys.stderr)
        return 0
    except S4Error as e:
        print(f"Error: {e}", file=sys.stderr)
        abort_error = getattr(e, "abort_error", None)
        if abort_error is not None:
            print(f"Error: abort also failed: {abort_error}",
                file=sys.stderr)
        return 1

if __name__ == "__main__":
    sys.exit(main())
