"""Listing-claim verification on top of the MSSP probe.

An operator proves control of a server by publishing a one-time code,
either as an MSSP variable or as a meta tag on the listed website.

Example:
    >>> from mudwatch.verify import verify_mssp
    >>> result = verify_mssp("mud.example.org", 4000, "ml-4f2a")
    >>> result.verified
    True
"""

import json
import logging
import re
from dataclasses import dataclass

import requests

from mudwatch.client import probe
from mudwatch.models import OnlineWithData

log = logging.getLogger(__name__)

# MSSP variable operators are asked to publish the code in.
VERIFY_VARIABLE = "MUDLISTINGS"
META_NAME = "mudlistings-verification"


@dataclass(frozen=True)
class VerifyResult:
    verified: bool
    message: str


def verify_mssp(host: str, port: int, code: str, timeout: float = 10.0,
                probe_fn=probe) -> VerifyResult:
    """Check that *host*:*port* advertises *code* over MSSP.

    When the server publishes a ``MUDLISTINGS`` variable, one of its
    values must equal *code*.  Otherwise *code* is searched for
    anywhere in the serialized MSSP data.
    """
    outcome = probe_fn(host, port, timeout)
    if not outcome.is_online:
        return VerifyResult(
            False,
            "Could not connect to your MUD server. Please ensure it is "
            "online and try again.",
        )

    if isinstance(outcome, OnlineWithData):
        data = outcome.data
        published = data.variables.get(VERIFY_VARIABLE)
        if published is not None:
            if code in published:
                return VerifyResult(True, "Verification code found in MSSP response!")
        elif code in json.dumps(data.to_dict(), ensure_ascii=False):
            log.debug("%s:%d: code matched outside %s", host, port, VERIFY_VARIABLE)
            return VerifyResult(True, "Verification code found in MSSP response!")

    return VerifyResult(
        False,
        "Verification code '%s' not found in MSSP response. Please add a "
        "%s variable with the code and try again." % (code, VERIFY_VARIABLE),
    )


def verify_website(url: str | None, code: str,
                   timeout: float = 10.0) -> VerifyResult:
    """Check that the page at *url* carries the verification meta tag.

    Accepts ``<meta name="mudlistings-verification" content="CODE">``
    with the attributes in either order, case-insensitively.
    """
    if not url:
        return VerifyResult(
            False,
            "This MUD does not have a website URL configured. Please "
            "update the listing with a website first.",
        )

    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        log.debug("fetching %s failed: %s", url, exc)
        return VerifyResult(False, "Error fetching website: %s" % exc)

    name = re.escape(META_NAME)
    content = re.escape(code)
    patterns = (
        r'<meta\s+name="%s"\s+content="%s"' % (name, content),
        r'<meta\s+content="%s"\s+name="%s"' % (content, name),
    )
    if any(re.search(p, resp.text, re.IGNORECASE) for p in patterns):
        return VerifyResult(True, "Verification meta tag found on website!")

    return VerifyResult(
        False,
        'Verification meta tag not found on %s. Please add <meta name="%s" '
        'content="%s"> to your homepage.' % (url, META_NAME, code),
    )
