"""
Session identity carried across requests and runs.

A single SessionState is owned by one run. It bundles the cookie jar, the
user agent, a rotating session id (which also keys the proxy assignment) and
the content build identifier of the source site.

Usage:
    state = SessionState.load(store.get(key))
    async with state.lock:
        state.merge_cookies(response.headers.get_list("set-cookie"))
    store.put(key, state.to_dict())
"""
import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from harvest.constants import SESSION_ID_PREFIX, USER_AGENTS

logger = logging.getLogger(__name__)


def random_user_agent() -> str:
    """Get a random user agent from the pool."""
    return random.choice(USER_AGENTS)


def parse_set_cookie(line: Optional[str]) -> Optional[tuple]:
    """Parse the name=value pair of a Set-Cookie line.

    Returns:
        (name, value) tuple, or None for malformed lines
    """
    if not line:
        return None
    first_part = str(line).split(";", 1)[0]
    name, sep, value = first_part.partition("=")
    name = name.strip()
    if not sep or not name:
        return None
    return name, value.strip()


@dataclass
class SessionState:
    """Mutable identity bundle shared by every request in a run."""

    session_id: str
    user_agent: str
    cookie_jar: Dict[str, str] = field(default_factory=dict)
    build_id: Optional[str] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)
    _issued_ids: Set[str] = field(default_factory=set, repr=False, compare=False)

    def __post_init__(self):
        if not isinstance(self.cookie_jar, dict):
            self.cookie_jar = {}
        self._issued_ids.add(self.session_id)

    @classmethod
    def load(cls, persisted: Optional[Dict[str, Any]] = None) -> "SessionState":
        """Build the run's state from a persisted dict, filling gaps.

        Missing fields get fresh random choices: a user agent from the pool
        and a newly generated session id.
        """
        data = persisted if isinstance(persisted, dict) else {}

        jar = data.get("cookie_jar")
        if not isinstance(jar, dict):
            jar = {}

        state = cls(
            session_id=data.get("session_id") or _generate_session_id(),
            user_agent=data.get("user_agent") or random_user_agent(),
            cookie_jar={str(k): str(v) for k, v in jar.items() if k and v is not None},
            build_id=data.get("build_id") or None,
        )
        logger.debug(
            f"Session loaded: id={state.session_id}, cookies={len(state.cookie_jar)}, "
            f"build_id={state.build_id or 'n/a'}"
        )
        return state

    def rotate(self) -> str:
        """Switch to a fresh identity.

        The build id is kept: it belongs to the site deployment, not to the
        identity presented to it.

        Returns:
            The new session id
        """
        new_id = _generate_session_id()
        while new_id in self._issued_ids:
            new_id = _generate_session_id()
        self._issued_ids.add(new_id)

        old_id = self.session_id
        self.session_id = new_id
        self.cookie_jar = {}
        self.user_agent = random_user_agent()
        logger.debug(f"Session rotated: {old_id} -> {new_id}")
        return new_id

    def merge_cookies(self, set_cookie_headers: Optional[Iterable[str]]) -> int:
        """Upsert cookies from Set-Cookie lines into the jar.

        Args:
            set_cookie_headers: A single Set-Cookie line or an iterable of them

        Returns:
            Number of cookies merged
        """
        if not set_cookie_headers:
            return 0
        if isinstance(set_cookie_headers, str):
            set_cookie_headers = [set_cookie_headers]

        merged = 0
        for line in set_cookie_headers:
            parsed = parse_set_cookie(line)
            if parsed is None:
                continue
            name, value = parsed
            self.cookie_jar[name] = value
            merged += 1
        return merged

    def set_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        """Copy browser-held cookies (Playwright cookie dicts) into the jar."""
        for cookie in cookies:
            name = cookie.get("name")
            if name:
                self.cookie_jar[name] = cookie.get("value", "")

    def cookie_header(self) -> str:
        """Serialize the jar for a Cookie header, in insertion order."""
        return "; ".join(
            f"{name}={value}"
            for name, value in self.cookie_jar.items()
            if name and value is not None
        )

    def update_build_id(self, build_id: Optional[str]) -> bool:
        """Store a newly seen build id.

        Returns:
            True if the stored value changed
        """
        if not build_id or build_id == self.build_id:
            return False
        logger.info(f"Build id updated: {self.build_id or 'n/a'} -> {build_id}")
        self.build_id = build_id
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the persistent store."""
        return {
            "session_id": self.session_id,
            "user_agent": self.user_agent,
            "cookie_jar": dict(self.cookie_jar),
            "build_id": self.build_id,
            "saved_at": time.time(),
        }


def _generate_session_id() -> str:
    return f"{SESSION_ID_PREFIX}_{int(time.time() * 1000)}_{random.randint(1000, 9999)}"
