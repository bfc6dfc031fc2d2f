import logging
import os
from collections.abc import Mapping
from typing import Optional

from .validation import is_valid_ip, sanitize_text_field


logger = logging.getLogger(__name__)


def get_client_ip(server: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Resolve the client address from proxy-aware server variables.

    Checks ``HTTP_CLIENT_IP``, then the first valid entry of
    ``HTTP_X_FORWARDED_FOR``, then ``REMOTE_ADDR``. Returns None when none
    of them holds a valid IPv4 or IPv6 address.
    """
    if server is None:
        server = os.environ

    client_ip = server.get("HTTP_CLIENT_IP")
    if client_ip and is_valid_ip(client_ip):
        return sanitize_text_field(client_ip)

    forwarded_for = server.get("HTTP_X_FORWARDED_FOR")
    if forwarded_for:
        for candidate in forwarded_for.split(","):
            candidate = candidate.strip()
            if is_valid_ip(candidate):
                return candidate

    remote_addr = server.get("REMOTE_ADDR")
    if remote_addr and is_valid_ip(remote_addr):
        return sanitize_text_field(remote_addr)

    logger.debug("No valid client IP found in server variables")
    return None
