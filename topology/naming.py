"""
topology/naming.py - Resource naming convention

Decomposes server group names of the form ``app-stack-detail-v001`` into
application, cluster, stack, detail and push sequence, following the
Frigga naming convention used by deployment tooling.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_PUSH_PATTERN = re.compile(r"^(.*?)-v([0-9]{3,6})$")
_NAME_PATTERN = re.compile(r"^([a-zA-Z0-9._]+)(?:-([a-zA-Z0-9._]*)(?:-([a-zA-Z0-9._-]*))?)?$")


@dataclass(frozen=True)
class ResourceName:
    """Parsed resource name"""

    group: str
    app: str | None = None
    cluster: str | None = None
    stack: str | None = None
    detail: str | None = None
    sequence: int | None = None

    @property
    def is_valid(self) -> bool:
        return bool(self.app)


def parse_resource_name(name: str | None) -> ResourceName:
    """Parse a server group name.

    Examples:
        >>> parse_resource_name("app-main-canary-v003").cluster
        'app-main-canary'
        >>> parse_resource_name("app-main-canary-v003").sequence
        3
        >>> parse_resource_name("app--detail").stack is None
        True

    Names that do not match the convention yield a ``ResourceName`` with no
    app and no cluster.
    """
    if not name:
        return ResourceName(group=name or "")

    cluster = name
    sequence = None
    push = _PUSH_PATTERN.match(name)
    if push:
        cluster = push.group(1)
        sequence = int(push.group(2))

    match = _NAME_PATTERN.match(cluster)
    if not match:
        return ResourceName(group=name)

    return ResourceName(
        group=name,
        app=match.group(1),
        cluster=cluster,
        stack=match.group(2) or None,
        detail=match.group(3) or None,
        sequence=sequence,
    )
