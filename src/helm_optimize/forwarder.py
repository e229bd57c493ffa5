"""Discover settings from the data forwarder config map in the cluster."""
from __future__ import annotations

import configparser
import logging
from typing import Dict, Optional

from .constants import FORWARDER_MARKER, FORWARDER_PROPERTIES_KEY
from .kubectl import KubectlClient, get_resource_name
from .types import KubectlError

logger = logging.getLogger(__name__)

_SECTION = "forwarder"


def parse_properties(text: str) -> Dict[str, str]:
    """Parse Java-style ``key=value`` properties into a dict."""
    parser = configparser.RawConfigParser(strict=False)
    parser.optionxform = str  # keep key case
    parser.read_string(f"[{_SECTION}]\n{text}")
    return dict(parser.items(_SECTION))


def load_forwarder_config(kubectl: KubectlClient) -> Optional[Dict[str, str]]:
    """
    Return the forwarder's properties, or None when no forwarder is installed.

    The first config map (in kubectl listing order) whose
    ``config.properties`` carries the forwarder marker wins.
    """
    try:
        configmaps = kubectl.list_configmaps()
    except KubectlError as e:
        logger.debug("Could not list config maps: %s", e)
        return None

    for configmap in configmaps:
        data = configmap.get("data")
        if not isinstance(data, dict):
            continue
        properties = data.get(FORWARDER_PROPERTIES_KEY)
        if not isinstance(properties, str) or FORWARDER_MARKER not in properties:
            continue
        try:
            parsed = parse_properties(properties)
        except configparser.Error as e:
            logger.debug("Unreadable forwarder properties in %s: %s", get_resource_name(configmap), e)
            return None
        logger.debug("Using forwarder config map %s", get_resource_name(configmap))
        return parsed

    return None


def analytics_url(properties: Dict[str, str]) -> Optional[str]:
    """Build ``<protocol>://<host>:<port>`` from forwarder properties."""
    host = properties.get("host", "").strip()
    if not host:
        return None
    protocol = properties.get("protocol", "").strip() or "https"
    port = properties.get("port", "").strip()
    return f"{protocol}://{host}:{port}" if port else f"{protocol}://{host}"
