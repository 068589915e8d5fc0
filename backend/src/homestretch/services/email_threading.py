"""Assigns inbound and outbound messages to conversation threads.

Order of precedence:
  1. In-Reply-To points at a stored message of the same property.
  2. The newest References entry that points at a stored message.
  3. A deterministic id hashed from property id + normalized subject, so
     every message with the same normalized subject lands in the same
     thread without a lookup.
"""

import hashlib
import re
from typing import Awaitable, Callable, Optional, Sequence

# Prefixes commonly added by mail clients when replying / forwarding
REPLY_PREFIX_RE = re.compile(r"^(re|fwd?|aw|sv|vs|ref)\s*:\s*", re.IGNORECASE)

ThreadLookup = Callable[[str], Awaitable[Optional[str]]]


def normalize_subject(subject: Optional[str]) -> str:
    """'Re: Fwd: RE: Earnest Money ' -> 'earnest money'."""
    s = (subject or "").strip()
    previous = None
    while previous != s:
        previous = s
        s = REPLY_PREFIX_RE.sub("", s, count=1)
    return s.strip().lower()


def subject_thread_id(normalized_subject: str, property_id: str) -> str:
    digest = hashlib.sha256(f"{property_id}::{normalized_subject}".encode("utf-8")).hexdigest()
    return f"thr_{digest[:16]}"


async def compute_thread_id(
    property_id: str,
    subject: Optional[str],
    lookup: ThreadLookup,
    in_reply_to: Optional[str] = None,
    references: Sequence[str] = (),
) -> str:
    """Resolve a message's thread id.

    Args:
        property_id: Owning property; header matches never cross properties.
        subject: Raw subject line.
        lookup: Async callable mapping a provider Message-ID header to the
            thread id of the stored message carrying it (same property),
            or None.
        in_reply_to: In-Reply-To header value.
        references: References header values, oldest first.
    """
    if in_reply_to:
        thread_id = await lookup(in_reply_to)
        if thread_id:
            return thread_id

    for reference in reversed(list(references)):
        thread_id = await lookup(reference)
        if thread_id:
            return thread_id

    return subject_thread_id(normalize_subject(subject), property_id)
