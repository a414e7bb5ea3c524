"""
In-memory Redis-like store for testing and local development.

This module provides a backing store that needs no Redis server:
- Unit and integration tests
- Running the REST server with --redis-addr memory

It implements a subset of Redis commands on strings and hashes, key
expiry, and enough of AUTH/ACL to exercise per-user credentials. Error
replies use the same text as Redis 7, so clients see the same kinds.

Invariants:
    - All data is lost on process exit
    - Commands run without awaiting, so each one is atomic on the event loop
    - Each connection has its own authenticated user

How to change safely:
    - This is test-only code, changes don't affect a real Redis backend
    - Keep error texts identical to Redis, tests match on them
"""

from __future__ import annotations

import fnmatch
import logging
import re
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from .base import BackendConnectionError, ReplyError, normalize_arg

logger = logging.getLogger(__name__)

WRONGTYPE = "WRONGTYPE Operation against a key holding the wrong kind of value"
NOT_INTEGER = "ERR value is not an integer or out of range"
SYNTAX = "ERR syntax error"
WRONGPASS = "WRONGPASS invalid username-password pair or user is disabled."
NOPERM = "NOPERM No permissions to access a key"
NOAUTH = "NOAUTH Authentication required."

_INT_RE = re.compile(r"^-?(0|[1-9][0-9]*)$")
_INT64_MIN, _INT64_MAX = -(2**63), 2**63 - 1


@dataclass
class MemoryUser:
    """An ACL user of the memory store."""

    name: str
    passwords: set[str] = field(default_factory=set)
    nopass: bool = False
    enabled: bool = True
    key_patterns: list[str] = field(default_factory=list)

    def check_password(self, password: str) -> bool:
        if not self.enabled:
            return False
        return self.nopass or password in self.passwords

    def can_access(self, key: str) -> bool:
        return any(fnmatch.fnmatchcase(key, p) for p in self.key_patterns)


@dataclass
class _Entry:
    value: str | dict[str, str]
    expires_at: float | None = None


@dataclass(frozen=True)
class _CommandInfo:
    """Command table entry.

    Attributes:
        handler: Method name on MemoryStore
        arity: Exact argument count including the name, or -N for at least N
        first_key: Index of the first key argument, 0 if none
        last_key: Index of the last key argument, -1 for the last argument
        step: Distance between key arguments
    """

    handler: str
    arity: int
    first_key: int = 0
    last_key: int = 0
    step: int = 1


_COMMANDS: dict[str, _CommandInfo] = {
    "PING": _CommandInfo("_ping", -1),
    "ECHO": _CommandInfo("_echo", 2),
    "AUTH": _CommandInfo("_auth", -2),
    "ACL": _CommandInfo("_acl", -2),
    "SET": _CommandInfo("_set", -3, 1, 1),
    "GET": _CommandInfo("_get", 2, 1, 1),
    "GETSET": _CommandInfo("_getset", 3, 1, 1),
    "DEL": _CommandInfo("_del", -2, 1, -1),
    "EXISTS": _CommandInfo("_exists", -2, 1, -1),
    "INCR": _CommandInfo("_incr", 2, 1, 1),
    "INCRBY": _CommandInfo("_incrby", 3, 1, 1),
    "DECR": _CommandInfo("_decr", 2, 1, 1),
    "DECRBY": _CommandInfo("_decrby", 3, 1, 1),
    "APPEND": _CommandInfo("_append", 3, 1, 1),
    "STRLEN": _CommandInfo("_strlen", 2, 1, 1),
    "MGET": _CommandInfo("_mget", -2, 1, -1),
    "MSET": _CommandInfo("_mset", -3, 1, -1, 2),
    "EXPIRE": _CommandInfo("_expire", 3, 1, 1),
    "PEXPIRE": _CommandInfo("_pexpire", 3, 1, 1),
    "TTL": _CommandInfo("_ttl", 2, 1, 1),
    "PTTL": _CommandInfo("_pttl", 2, 1, 1),
    "PERSIST": _CommandInfo("_persist", 2, 1, 1),
    "TYPE": _CommandInfo("_type", 2, 1, 1),
    "KEYS": _CommandInfo("_keys", 2),
    "DBSIZE": _CommandInfo("_dbsize", 1),
    "FLUSHALL": _CommandInfo("_flushall", -1),
    "FLUSHDB": _CommandInfo("_flushall", -1),
    "HSET": _CommandInfo("_hset", -4, 1, 1),
    "HGET": _CommandInfo("_hget", 3, 1, 1),
    "HDEL": _CommandInfo("_hdel", -3, 1, 1),
    "HGETALL": _CommandInfo("_hgetall", 2, 1, 1),
    "HEXISTS": _CommandInfo("_hexists", 3, 1, 1),
    "HLEN": _CommandInfo("_hlen", 2, 1, 1),
    "HKEYS": _CommandInfo("_hkeys", 2, 1, 1),
    "HVALS": _CommandInfo("_hvals", 2, 1, 1),
    "HINCRBY": _CommandInfo("_hincrby", 4, 1, 1),
}


def _parse_int(value: str) -> int:
    if not _INT_RE.match(value):
        raise ReplyError(NOT_INTEGER)
    n = int(value)
    if not _INT64_MIN <= n <= _INT64_MAX:
        raise ReplyError(NOT_INTEGER)
    return n


class MemoryStore:
    """In-memory Redis-like store.

    The store is shared by all its connections; each connection tracks
    the user it authenticated as.

    Example:
        >>> store = MemoryStore()
        >>> store.add_user("user", "pwd", key_patterns=["user:*"])
        >>> conn = await store.connect()
        >>> await conn.execute("AUTH", "user", "pwd")
        'OK'
    """

    def __init__(self) -> None:
        self._data: dict[str, _Entry] = {}
        self._users: dict[str, MemoryUser] = {
            "default": MemoryUser("default", nopass=True, key_patterns=["*"]),
        }

    async def connect(self) -> MemoryConnection:
        """Open a connection. Usable directly as a ConnectionFactory."""
        return MemoryConnection(self)

    # --- Testing helpers ---

    def add_user(
        self,
        name: str,
        password: str,
        key_patterns: list[str] | tuple[str, ...] = ("*",),
    ) -> MemoryUser:
        """Create or replace an enabled user with a single password."""
        user = MemoryUser(name, passwords={password}, key_patterns=list(key_patterns))
        self._users[name] = user
        return user

    def remove_user(self, name: str) -> None:
        self._users.pop(name, None)

    def get(self, key: str) -> str | dict[str, str] | None:
        """Return the raw value stored at key, or None."""
        entry = self._lookup(key)
        return entry.value if entry else None

    def ttl(self, key: str) -> float | None:
        """Return the remaining time to live in seconds, or None."""
        entry = self._lookup(key)
        if entry is None or entry.expires_at is None:
            return None
        return entry.expires_at - time.monotonic()

    # --- Execution ---

    def run(self, conn: MemoryConnection, command: str, args: list[str]) -> Any:
        """Execute one command for a connection.

        Raises:
            ReplyError: With the Redis error text
        """
        name = command.upper()
        info = _COMMANDS.get(name)
        if info is None:
            quoted = "".join(f"'{a}' " for a in args)
            raise ReplyError(
                f"ERR unknown command '{command}', with args beginning with: {quoted}"
            )

        argc = len(args) + 1
        if (info.arity > 0 and argc != info.arity) or (info.arity < 0 and argc < -info.arity):
            raise ReplyError(f"ERR wrong number of arguments for '{command.lower()}' command")

        if name != "AUTH":
            user = self._users.get(conn.username)
            if user is None or not user.enabled or not conn.authenticated:
                raise ReplyError(NOAUTH)
            if info.first_key:
                last = len(args) if info.last_key < 0 else info.last_key
                for key in args[info.first_key - 1 : last : info.step]:
                    if not user.can_access(key):
                        raise ReplyError(NOPERM)

        handler: Callable[..., Any] = getattr(self, info.handler)
        return handler(conn, args)

    def _lookup(self, key: str) -> _Entry | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= time.monotonic():
            del self._data[key]
            return None
        return entry

    def _string(self, key: str) -> str | None:
        entry = self._lookup(key)
        if entry is None:
            return None
        if not isinstance(entry.value, str):
            raise ReplyError(WRONGTYPE)
        return entry.value

    def _hash(self, key: str) -> dict[str, str] | None:
        entry = self._lookup(key)
        if entry is None:
            return None
        if not isinstance(entry.value, dict):
            raise ReplyError(WRONGTYPE)
        return entry.value

    def _hash_for_write(self, key: str) -> dict[str, str]:
        """Return the hash at key, creating an empty one if missing."""
        h = self._hash(key)
        if h is None:
            h = {}
            self._data[key] = _Entry(h)
        return h

    # --- Connection commands ---

    def _ping(self, conn: MemoryConnection, args: list[str]) -> str:
        if len(args) > 1:
            raise ReplyError("ERR wrong number of arguments for 'ping' command")
        return args[0] if args else "PONG"

    def _echo(self, conn: MemoryConnection, args: list[str]) -> str:
        return args[0]

    def _auth(self, conn: MemoryConnection, args: list[str]) -> str:
        if len(args) > 2:
            raise ReplyError(SYNTAX)
        if len(args) == 1:
            default = self._users["default"]
            if default.nopass:
                raise ReplyError(
                    "ERR AUTH <password> called without any password configured for "
                    "the default user. Are you sure your configuration is correct?"
                )
            username, password = "default", args[0]
        else:
            username, password = args

        user = self._users.get(username)
        if user is None or not user.check_password(password):
            raise ReplyError(WRONGPASS)
        conn.username = username
        conn.authenticated = True
        return "OK"

    def _acl(self, conn: MemoryConnection, args: list[str]) -> Any:
        sub, rest = args[0].upper(), args[1:]
        if sub == "GENPASS":
            bits = _parse_int(rest[0]) if rest else 256
            if bits <= 0 or bits > 4096:
                raise ReplyError(
                    "ERR ACL GENPASS argument must be the number of bits for the "
                    "output password, a positive number up to 4096"
                )
            return secrets.token_hex((bits + 7) // 8)[: (bits + 3) // 4]
        if sub == "WHOAMI":
            return conn.username
        if sub == "USERS":
            return sorted(self._users)
        if sub == "SETUSER":
            if not rest:
                raise ReplyError("ERR wrong number of arguments for 'acl|setuser' command")
            return self._acl_setuser(rest[0], rest[1:])
        if sub == "DELUSER":
            if not rest:
                raise ReplyError("ERR wrong number of arguments for 'acl|deluser' command")
            deleted = 0
            for name in rest:
                if name != "default" and self._users.pop(name, None) is not None:
                    deleted += 1
            return deleted
        raise ReplyError(f"ERR unknown subcommand '{args[0]}'. Try ACL HELP.")

    def _acl_setuser(self, name: str, rules: list[str]) -> str:
        user = self._users.get(name) or MemoryUser(name, enabled=False)
        for rule in rules:
            lowered = rule.lower()
            if lowered == "on":
                user.enabled = True
            elif lowered == "off":
                user.enabled = False
            elif lowered == "reset":
                user = MemoryUser(name, enabled=False)
            elif lowered == "nopass":
                user.nopass = True
                user.passwords.clear()
            elif lowered == "resetpass":
                user.nopass = False
                user.passwords.clear()
            elif lowered in ("allkeys", "~*"):
                user.key_patterns = ["*"]
            elif lowered == "resetkeys":
                user.key_patterns = []
            elif rule.startswith(">"):
                user.passwords.add(rule[1:])
                user.nopass = False
            elif rule.startswith("<"):
                user.passwords.discard(rule[1:])
            elif rule.startswith("~"):
                user.key_patterns.append(rule[1:])
            elif rule[:1] in ("+", "-") or lowered in ("allcommands", "nocommands"):
                # Command permissions are accepted but not enforced
                continue
            else:
                raise ReplyError(f"ERR Error in ACL SETUSER modifier '{rule}': Syntax error")
        self._users[name] = user
        logger.debug("Updated memory store user %s", name)
        return "OK"

    # --- String commands ---

    def _set(self, conn: MemoryConnection, args: list[str]) -> str | None:
        key, value = args[0], args[1]
        nx = xx = get = keepttl = False
        expires_at: float | None = None
        opts = args[2:]
        i = 0
        while i < len(opts):
            opt = opts[i].upper()
            if opt == "NX" and not xx:
                nx = True
            elif opt == "XX" and not nx:
                xx = True
            elif opt == "GET":
                get = True
            elif opt == "KEEPTTL" and expires_at is None:
                keepttl = True
            elif opt in ("EX", "PX") and expires_at is None and not keepttl and i + 1 < len(opts):
                amount = _parse_int(opts[i + 1])
                if amount <= 0:
                    raise ReplyError("ERR invalid expire time in 'set' command")
                seconds = amount if opt == "EX" else amount / 1000
                expires_at = time.monotonic() + seconds
                i += 1
            else:
                raise ReplyError(SYNTAX)
            i += 1

        entry = self._lookup(key)
        old: str | None = None
        if get and entry is not None:
            if not isinstance(entry.value, str):
                raise ReplyError(WRONGTYPE)
            old = entry.value
        if (nx and entry is not None) or (xx and entry is None):
            return old if get else None

        if keepttl and entry is not None:
            expires_at = entry.expires_at
        self._data[key] = _Entry(value, expires_at)
        return old if get else "OK"

    def _get(self, conn: MemoryConnection, args: list[str]) -> str | None:
        return self._string(args[0])

    def _getset(self, conn: MemoryConnection, args: list[str]) -> str | None:
        old = self._string(args[0])
        self._data[args[0]] = _Entry(args[1])
        return old

    def _del(self, conn: MemoryConnection, args: list[str]) -> int:
        deleted = 0
        for key in args:
            if self._lookup(key) is not None:
                del self._data[key]
                deleted += 1
        return deleted

    def _exists(self, conn: MemoryConnection, args: list[str]) -> int:
        return sum(1 for key in args if self._lookup(key) is not None)

    def _incr_by(self, key: str, delta: int) -> int:
        current = self._string(key)
        n = _parse_int(current) if current is not None else 0
        n += delta
        if not _INT64_MIN <= n <= _INT64_MAX:
            raise ReplyError("ERR increment or decrement would overflow")
        entry = self._lookup(key)
        self._data[key] = _Entry(str(n), entry.expires_at if entry else None)
        return n

    def _incr(self, conn: MemoryConnection, args: list[str]) -> int:
        return self._incr_by(args[0], 1)

    def _incrby(self, conn: MemoryConnection, args: list[str]) -> int:
        return self._incr_by(args[0], _parse_int(args[1]))

    def _decr(self, conn: MemoryConnection, args: list[str]) -> int:
        return self._incr_by(args[0], -1)

    def _decrby(self, conn: MemoryConnection, args: list[str]) -> int:
        return self._incr_by(args[0], -_parse_int(args[1]))

    def _append(self, conn: MemoryConnection, args: list[str]) -> int:
        key = args[0]
        current = self._string(key) or ""
        entry = self._lookup(key)
        value = current + args[1]
        self._data[key] = _Entry(value, entry.expires_at if entry else None)
        return len(value)

    def _strlen(self, conn: MemoryConnection, args: list[str]) -> int:
        return len(self._string(args[0]) or "")

    def _mget(self, conn: MemoryConnection, args: list[str]) -> list[str | None]:
        values: list[str | None] = []
        for key in args:
            entry = self._lookup(key)
            values.append(entry.value if entry and isinstance(entry.value, str) else None)
        return values

    def _mset(self, conn: MemoryConnection, args: list[str]) -> str:
        if len(args) % 2:
            raise ReplyError("ERR wrong number of arguments for 'mset' command")
        for key, value in zip(args[::2], args[1::2]):
            self._data[key] = _Entry(value)
        return "OK"

    # --- Key space commands ---

    def _expire_in(self, key: str, seconds: float) -> int:
        entry = self._lookup(key)
        if entry is None:
            return 0
        if seconds <= 0:
            del self._data[key]
        else:
            entry.expires_at = time.monotonic() + seconds
        return 1

    def _expire(self, conn: MemoryConnection, args: list[str]) -> int:
        return self._expire_in(args[0], _parse_int(args[1]))

    def _pexpire(self, conn: MemoryConnection, args: list[str]) -> int:
        return self._expire_in(args[0], _parse_int(args[1]) / 1000)

    def _remaining(self, key: str, scale: int) -> int:
        entry = self._lookup(key)
        if entry is None:
            return -2
        if entry.expires_at is None:
            return -1
        return max(0, round((entry.expires_at - time.monotonic()) * scale))

    def _ttl(self, conn: MemoryConnection, args: list[str]) -> int:
        return self._remaining(args[0], 1)

    def _pttl(self, conn: MemoryConnection, args: list[str]) -> int:
        return self._remaining(args[0], 1000)

    def _persist(self, conn: MemoryConnection, args: list[str]) -> int:
        entry = self._lookup(args[0])
        if entry is None or entry.expires_at is None:
            return 0
        entry.expires_at = None
        return 1

    def _type(self, conn: MemoryConnection, args: list[str]) -> str:
        entry = self._lookup(args[0])
        if entry is None:
            return "none"
        return "string" if isinstance(entry.value, str) else "hash"

    def _keys(self, conn: MemoryConnection, args: list[str]) -> list[str]:
        user = self._users[conn.username]
        return sorted(
            key
            for key in list(self._data)
            if self._lookup(key) is not None
            and fnmatch.fnmatchcase(key, args[0])
            and user.can_access(key)
        )

    def _dbsize(self, conn: MemoryConnection, args: list[str]) -> int:
        return sum(1 for key in list(self._data) if self._lookup(key) is not None)

    def _flushall(self, conn: MemoryConnection, args: list[str]) -> str:
        if args and (len(args) > 1 or args[0].upper() not in ("ASYNC", "SYNC")):
            raise ReplyError(SYNTAX)
        self._data.clear()
        return "OK"

    # --- Hash commands ---

    def _hset(self, conn: MemoryConnection, args: list[str]) -> int:
        if len(args) % 2 == 0:
            raise ReplyError("ERR wrong number of arguments for 'hset' command")
        h = self._hash_for_write(args[0])
        added = 0
        for f, v in zip(args[1::2], args[2::2]):
            if f not in h:
                added += 1
            h[f] = v
        return added

    def _hget(self, conn: MemoryConnection, args: list[str]) -> str | None:
        h = self._hash(args[0])
        return h.get(args[1]) if h else None

    def _hdel(self, conn: MemoryConnection, args: list[str]) -> int:
        h = self._hash(args[0])
        if not h:
            return 0
        deleted = sum(1 for f in args[1:] if h.pop(f, None) is not None)
        if not h:
            del self._data[args[0]]
        return deleted

    def _hgetall(self, conn: MemoryConnection, args: list[str]) -> list[str]:
        h = self._hash(args[0]) or {}
        return [item for pair in h.items() for item in pair]

    def _hexists(self, conn: MemoryConnection, args: list[str]) -> int:
        h = self._hash(args[0]) or {}
        return int(args[1] in h)

    def _hlen(self, conn: MemoryConnection, args: list[str]) -> int:
        return len(self._hash(args[0]) or {})

    def _hkeys(self, conn: MemoryConnection, args: list[str]) -> list[str]:
        return list(self._hash(args[0]) or {})

    def _hvals(self, conn: MemoryConnection, args: list[str]) -> list[str]:
        return list((self._hash(args[0]) or {}).values())

    def _hincrby(self, conn: MemoryConnection, args: list[str]) -> int:
        delta = _parse_int(args[2])
        h = self._hash_for_write(args[0])
        current = h.get(args[1])
        if current is not None and not _INT_RE.match(current):
            raise ReplyError("ERR hash value is not an integer")
        n = (int(current) if current is not None else 0) + delta
        h[args[1]] = str(n)
        return n


class MemoryConnection:
    """Connection to a MemoryStore.

    A new connection is authenticated as the default user if that user
    needs no password.
    """

    def __init__(self, store: MemoryStore) -> None:
        self._store = store
        self._closed = False
        self.username = "default"
        self.authenticated = store._users["default"].nopass

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def execute(self, command: str, *args: Any) -> Any:
        if self._closed:
            raise BackendConnectionError("connection closed")
        return self._store.run(self, command, [str(normalize_arg(a)) for a in args])

    async def close(self) -> None:
        self._closed = True
