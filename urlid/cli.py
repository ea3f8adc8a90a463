#!/usr/bin/env python3
"""
URL Identity CLI

Usage:
    urlid assign <url>              # find or create, print url_id
    urlid resolve <url>             # get url_id without creating
    urlid get <url_id>              # full record
    urlid locate <url_id>           # canonical URL
    urlid normalize <url>           # show normalized form (no database)
    urlid bucket <url>              # records sharing the URL's hash bucket
    urlid delete <url_id>           # administrative removal
    urlid list [--host H]           # list URLs
    urlid stats                     # storage stats

Global options:
    --db PATH          database (default: $URLID_DB or ~/.urlid/urls.db)
    --max-retry N      lost-race retries for assign (default: $URLID_MAX_RETRY or 3)
    -v, --verbose      log to stderr
"""

import argparse
import sys

from urlid.errors import IntegrityFault, URLIdentityError
from urlid.identity import URLIdentity
from urlid.logging import configure_logging
from urlid.normalize import normalize
from urlid.storage import SQLiteStorage


def _identity(args) -> URLIdentity:
    return URLIdentity(storage=SQLiteStorage(args.db), max_retry=args.max_retry)


def cmd_assign(args):
    with _identity(args) as ui:
        record = ui.assign(args.url)
    print(record.id)


def cmd_resolve(args):
    with _identity(args) as ui:
        record = ui.lookup(args.url)
    if record:
        print(record.id)
    else:
        print(f"URL not tracked: {args.url}", file=sys.stderr)
        sys.exit(1)


def cmd_get(args):
    with _identity(args) as ui:
        r = ui.require(args.url_id)

    print(f"url_id:      {r.id}")
    print(f"canonical:   {r.render()}")
    print(f"scheme:      {r.scheme}")
    print(f"host:        {r.host}")
    print(f"port:        {r.port or 'default'}")
    print(f"path:        {r.path}")
    print(f"query:       {'(none)' if r.query is None else r.query}")
    print(f"fragment:    {'(none)' if r.fragment is None else r.fragment}")
    print(f"fingerprint: {r.fingerprint}")
    print(f"slot:        {r.slot}")
    print(f"created_at:  {r.created_at}")


def cmd_locate(args):
    with _identity(args) as ui:
        url = ui.locate(args.url_id)
    if url:
        print(url)
    else:
        print(f"url_id not found: {args.url_id}", file=sys.stderr)
        sys.exit(1)


def cmd_normalize(args):
    url = normalize(args.url)
    print(url.render())
    if args.fingerprint:
        print(url.fingerprint)


def cmd_bucket(args):
    with _identity(args) as ui:
        records = ui.same_bucket(args.url)
    if not records:
        print("Bucket is empty")
        return

    for r in records:
        print(f"{r.slot:>4}  {r.id:>8}  {r.render()[:100]}")
    print(f"\n{len(records)} URL(s) in bucket {records[0].fingerprint}")


def cmd_delete(args):
    with _identity(args) as ui:
        ui.delete(args.url_id)
    print(f"deleted {args.url_id}")


def cmd_list(args):
    with _identity(args) as ui:
        if args.host:
            records = ui.list_by_host(args.host, limit=args.limit)
        else:
            records = ui.list_recent(limit=args.limit)

    if not records:
        print("No URLs tracked")
        return

    for r in records:
        slot = f"+{r.slot}" if r.slot else ""
        print(f"{r.id:>8}  {slot:>4}  {r.render()[:100]}")

    print(f"\n{len(records)} URL(s)")


def cmd_stats(args):
    with _identity(args) as ui:
        s = ui.stats()

    print(f"URLs:      {s['url_count']:,}")
    print(f"Hosts:     {s['hosts']:,}")
    print(f"Collided:  {s['collided_buckets']:,} bucket(s)")
    print(f"Max slot:  {s['max_slot']}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="urlid", description="URL Identity System")
    parser.add_argument("--db", help="SQLite database path")
    parser.add_argument("--max-retry", type=int, default=None,
                        help="Retries after a lost insert race")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log to stderr")
    subs = parser.add_subparsers(dest="cmd", required=True)

    # assign
    p = subs.add_parser("assign", help="Find or create, return url_id")
    p.add_argument("url")
    p.set_defaults(func=cmd_assign)

    # resolve
    p = subs.add_parser("resolve", help="Get url_id without creating")
    p.add_argument("url")
    p.set_defaults(func=cmd_resolve)

    # get
    p = subs.add_parser("get", help="Full record")
    p.add_argument("url_id", type=int)
    p.set_defaults(func=cmd_get)

    # locate
    p = subs.add_parser("locate", help="Get canonical URL for url_id")
    p.add_argument("url_id", type=int)
    p.set_defaults(func=cmd_locate)

    # normalize
    p = subs.add_parser("normalize", help="Show normalized form of URL")
    p.add_argument("url")
    p.add_argument("-f", "--fingerprint", action="store_true", help="Also print the fingerprint")
    p.set_defaults(func=cmd_normalize)

    # bucket
    p = subs.add_parser("bucket", help="Records sharing the URL's bucket")
    p.add_argument("url")
    p.set_defaults(func=cmd_bucket)

    # delete
    p = subs.add_parser("delete", help="Remove a record")
    p.add_argument("url_id", type=int)
    p.set_defaults(func=cmd_delete)

    # list
    p = subs.add_parser("list", help="List tracked URLs")
    p.add_argument("-H", "--host", help="Filter by host")
    p.add_argument("-n", "--limit", type=int, default=50)
    p.set_defaults(func=cmd_list)

    # stats
    p = subs.add_parser("stats", help="Storage statistics")
    p.set_defaults(func=cmd_stats)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(level="INFO" if args.verbose else None)

    try:
        args.func(args)
    except IntegrityFault as exc:
        print(f"integrity fault: {exc}", file=sys.stderr)
        sys.exit(2)
    except URLIdentityError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
