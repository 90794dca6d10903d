"""Path handling, base path provisioning and rank resolution."""

import logging
import re
from typing import Iterable, List

from .exceptions import NodeExistsError, ProvisioningError, ResolutionError, StoreError, ValidationError
from .models import Rank

logger = logging.getLogger(__name__)

# ZooKeeper formats sequential suffixes as %010d
SEQUENCE_WIDTH = 10

_SUFFIX = re.compile(r"[0-9]{%d}" % SEQUENCE_WIDTH)


def normalize_path(path: str) -> str:
    """Return ``path`` with one leading slash and no empty or trailing segments."""
    if not isinstance(path, str):
        raise ValidationError(f"Path must be a string, got {type(path).__name__}")
    segments = [s for s in path.split("/") if s]
    return "/" + "/".join(segments)


def join(base: str, name: str) -> str:
    return f"{base.rstrip('/')}/{name}"


def validate_lock_name(lock_name: str) -> None:
    """Lock names double as the sibling filter prefix."""
    if not isinstance(lock_name, str) or not lock_name:
        raise ValidationError("Lock name must be a non-empty string")
    if "/" in lock_name:
        raise ValidationError(f"Lock name must not contain '/': {lock_name!r}")


def ensure_path(store, path: str) -> str:
    """Create every missing segment of ``path`` as a persistent, empty node.

    Nodes created concurrently by someone else count as success. Nothing is
    ever deleted.

    Returns:
        The normalised path

    Raises:
        ProvisioningError: a segment could not be checked or created
    """
    path = normalize_path(path)
    prefix = ""
    for segment in path.split("/")[1:]:
        prefix = f"{prefix}/{segment}"
        try:
            if store.exists(prefix):
                continue
            store.create(prefix, b"")
            logger.debug("Created base node %s", prefix)
        except NodeExistsError:
            continue
        except StoreError as e:
            logger.error("Could not create base node %s: %s", prefix, e)
            raise ProvisioningError(f"Could not create base node {prefix}: {e}", path=prefix) from e
    return path


def is_request_node(child: str, lock_name: str) -> bool:
    """True if ``child`` is a sequential request node for ``lock_name``."""
    return child.startswith(lock_name) and _SUFFIX.fullmatch(child, len(lock_name)) is not None


def lock_requests(children: Iterable[str], lock_name: str) -> List[str]:
    """Request nodes for ``lock_name`` in creation order.

    Suffixes are fixed width and zero padded, so string order is sequence order.
    """
    return sorted(c for c in children if is_request_node(c, lock_name))


def resolve_rank(children: Iterable[str], lock_name: str, node: str) -> Rank:
    """Locate ``node`` among the requests for ``lock_name``.

    Raises:
        ResolutionError: ``node`` is not a well formed request or is not listed
    """
    if not is_request_node(node, lock_name):
        raise ResolutionError(
            f"Request node {node!r} does not carry a {SEQUENCE_WIDTH}-digit sequence suffix",
            lock_name=lock_name, node=node,
        )
    requests = lock_requests(children, lock_name)
    try:
        position = requests.index(node)
    except ValueError:
        raise ResolutionError(
            f"Request node {node!r} is no longer registered", lock_name=lock_name, node=node
        ) from None
    predecessor = requests[position - 1] if position else None
    return Rank(position=position, node=node, predecessor=predecessor)
