"""Literal confirmation sentences returned by YMLP on success.

Several write endpoints do not return a structured result; success is only
visible as an exact sentence in ``Output`` (``"jane@example.com has been
added"``, ``"Removed ID: 12"``), and create endpoints answer ``"ID: <new id>"``.
The wording belongs to the remote service, so every literal lives here and the
endpoint methods only go through :func:`confirms` and :func:`created_id`.
"""

from __future__ import annotations

from typing import Any

CONTACT_ADDED = "{email} has been added"
CONTACT_REMOVED = "{email} has been removed"
CONTACT_UNSUBSCRIBED = "{email} has been unsubscribed"
ID_REMOVED = "Removed ID: {id}"
ID_UPDATED = "Updated ID: {id}"
MESSAGE_QUEUED = "Message queued for delivery"

CREATED_ID_PREFIX = "ID: "


def expected(template: str, **values: Any) -> str:
    return template.format(**{k: str(v) for k, v in values.items()})


def confirms(output: Any, template: str, **values: Any) -> bool:
    """True when *output* is exactly the sentence *template* rendered with *values*."""
    return isinstance(output, str) and output == expected(template, **values)


def created_id(output: Any) -> str:
    """Strip the ``"ID: "`` prefix from a create endpoint's answer."""
    return str(output).replace(CREATED_ID_PREFIX, "")
