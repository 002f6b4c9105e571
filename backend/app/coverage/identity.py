"""Deduplication keys for incoming probes."""

import hashlib

from app.coverage.cell import Probe


def identify(probe: Probe) -> str:
    """Return the dedup key for a probe.

    An explicit client id is authoritative and returned as-is. Otherwise the
    key is a short BLAKE2b digest of rounded location, raw timestamp and
    source, so a retried submission maps to the same key. This is a
    best-effort content hash: distinct probes may collide, which would drop
    one of them as a duplicate.
    """
    if probe.id:
        return str(probe.id)

    lat = f"{probe.latitude:.6f}" if probe.latitude is not None else ""
    lon = f"{probe.longitude:.6f}" if probe.longitude is not None else ""
    material = f"{lat}|{lon}|{probe.timestamp or ''}|{probe.source_id or ''}"
    digest = hashlib.blake2b(material.encode("utf-8"), digest_size=8).hexdigest()
    return f"h{digest}"
