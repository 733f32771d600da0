import os
import re
import time
import typing
import logging
import tempfile
import dataclasses
import email.utils

from .config import DEFAULT_WATCH_INTERVAL
from .errors import RequestError
from .listing import list_object_keys
from .signer import get_utc_now
from .upload import upload_file

logger = logging.getLogger(__name__)

@dataclasses.dataclass
class SyncPolicy:
    dry_run: bool = False
    remove: bool = False
    excludes: typing.List[str] = dataclasses.field(default_factory=list)
    newer_than: typing.Optional[int] = None
    older_than: typing.Optional[int] = None
    watch: bool = False
    interval: float = DEFAULT_WATCH_INTERVAL

@dataclasses.dataclass
class SyncReport:
    copied: int = 0
    removed: int = 0
    planned_copies: typing.List[typing.Tuple[str, str]] = \
        dataclasses.field(default_factory=list)
    planned_removals: typing.List[str] = \
        dataclasses.field(default_factory=list)
    dry_run: bool = False

def _glob_to_regex(pattern: str) -> str:
    out = []
    for c in pattern:
        if c == "*":
            out.append(".*")
        elif c == "?":
            out.append(".")
        else:
            out.append(re.escape(c))
    return "".join(out)

def glob_match(pattern: str, text: str) -> bool:
    return re.fullmatch(_glob_to_regex(pattern), text, re.DOTALL) is not None

def is_excluded(key: str, excludes: typing.List[str]) -> bool:
    for pattern in excludes:
        if glob_match(pattern, key):
            return True
    return False

def destination_key(source_key: str, src_prefix: str, dst_prefix: str) -> str:
    normalized_src = src_prefix.strip("/")
    relative = source_key

    if normalized_src:
        if source_key == normalized_src:
            relative = ""
        elif source_key.startswith(normalized_src + "/"):
            relative = source_key[len(normalized_src) + 1:]

    normalized_dst = dst_prefix.strip("/")
    if not normalized_dst:
        return relative
    if not relative:
        return normalized_dst
    return f"{normalized_dst}/{relative}"

def plan_removals(destination_keys: typing.List[str],
        expected_keys: typing.Iterable[str]) -> typing.List[str]:
    expected = set(expected_keys)
    return [key for key in destination_keys if key not in expected]

def object_age(client, bucket, key, now):
    try:
        response = client.request("HEAD", bucket, key)
    except RequestError as e:
        if e.status == 404:
            return None
        raise

    last_modified = response.header("Last-Modified")
    if not last_modified:
        return None
    try:
        modified = email.utils.parsedate_to_datetime(last_modified)
    except (TypeError, ValueError):
        return None
    if modified.tzinfo is None:
        return None
    return (now - modified).total_seconds()

def filter_by_age(client, bucket, keys, policy, now):
    if policy.newer_than is None and policy.older_than is None:
        return keys

    kept = []
    for key in keys:
        age = object_age(client, bucket, key, now)
        if age is None:
            logger.debug("skip %s: age unknown", key)
            continue
        if policy.newer_than is not None and age > policy.newer_than:
            continue
        if policy.older_than is not None and age < policy.older_than:
            continue
        kept.append(key)
    return kept

def sync_once(src_client, source, dst_client, destination, policy,
        now=None):
    src_bucket = source.require_bucket("sync")
    dst_bucket = destination.require_bucket("sync")
    src_prefix = source.key or ""
    dst_prefix = destination.key or ""
    now = now or get_utc_now()

    keys = list_object_keys(src_client, src_bucket, src_prefix)
    keys = [key for key in keys if not is_excluded(key, policy.excludes)]
    keys = filter_by_age(src_client, src_bucket, keys, policy, now)

    report = SyncReport(dry_run=policy.dry_run)
    report.planned_copies = [
        (key, destination_key(key, src_prefix, dst_prefix)) for key in keys]

    if not policy.dry_run and report.planned_copies:
        with tempfile.TemporaryDirectory(
                prefix=f"s4-sync-{os.getpid()}-") as staging_dir:
            for index, (key, dest_key) in enumerate(report.planned_copies):
                staged_path = os.path.join(staging_dir, f"obj-{index}")
                logger.debug("copy %s/%s -> %s/%s", src_bucket, key,
                    dst_bucket, dest_key)
                try:
                    response = src_client.request("GET", src_bucket, key,
                        sink=staged_path)
                    headers = {}
                    content_type = response.header("Content-Type")
                    if content_type:
                        headers["Content-Type"] = content_type
                    upload_file(dst_client, staged_path, dst_bucket,
                        dest_key, headers=headers)
                finally:
                    if os.path.exists(staged_path):
                        os.remove(staged_path)
                report.copied += 1

    if policy.remove:
        expected = [dest_key for _, dest_key in report.planned_copies]
        dst_keys = list_object_keys(dst_client, dst_bucket, dst_prefix)
        report.planned_removals = plan_removals(dst_keys, expected)

        if not policy.dry_run:
            for key in report.planned_removals:
                logger.debug("remove %s/%s", dst_bucket, key)
                dst_client.request("DELETE", dst_bucket, key)
                report.removed += 1

    return report

def run_sync(src_client, source, dst_client, destination, policy,
        sleep=time.sleep, stop=None, on_report=None):
    """Run one sync iteration, or poll forever when `policy.watch` is set.

    Every tick recomputes the plan from fresh listings. `stop` is an optional
    threading.Event checked between ticks. Errors end the loop.
    """
    while True:
        report = sync_once(src_client, source, dst_client, destination,
            policy)
        if on_report is not None:
            on_report(report)
        if not policy.watch:
            return report
        if stop is not None:
            if stop.wait(policy.interval):
                return report
        else:
            sleep(policy.interval)
